"""
Distributed per-key mutexes for a teacher calendar, a ledger account or a session.

Keys live in Redis (``SET NX PX`` on ``<lock_namespace>:lock:<registry>:<key>:mutex``)
so every API worker and the Celery reconciler contend on the same lock. The row
locks the repositories take inside the critical section are the second layer.
A thread that already holds a key may hold it again; only the outermost release
deletes the Redis key, and only if it still carries this holder's token.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import logging
import threading
import time
from typing import Dict, Iterator, Optional

from redis import Redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions import ResourceBusyException
from app.core.ulid_helper import generate_ulid
from app.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

# Delete the key only while it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except Exception as exc:
            logger.warning("keyed_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


@dataclass
class _Hold:
    token: str
    depth: int = 1


class KeyedLockRegistry:
    """Redis-backed mutex per key, re-entrant within the holding thread."""

    def __init__(self, namespace: str, client: Optional[Redis] = None) -> None:
        self.namespace = namespace
        self._client = client
        self._local = threading.local()

    def _lock_key(self, key: str) -> str:
        return f"{settings.lock_namespace}:lock:{self.namespace}:{key}:mutex"

    def _holds(self) -> Dict[str, _Hold]:
        holds = getattr(self._local, "holds", None)
        if holds is None:
            holds = {}
            self._local.holds = holds
        return holds

    def _redis(self) -> Optional[Redis]:
        return self._client if self._client is not None else _get_sync_redis()

    def acquire(self, key: str, timeout_s: Optional[float] = None) -> None:
        holds = self._holds()
        current = holds.get(key)
        if current is not None:
            current.depth += 1
            return

        client = self._redis()
        if client is None:
            # Without Redis there is no cross-worker exclusion; refuse rather than race
            prometheus_metrics.record_lock(self.namespace, "redis_unavailable")
            raise ResourceBusyException(self.namespace, key)

        wait = settings.lock_timeout_seconds if timeout_s is None else timeout_s
        deadline = time.monotonic() + wait
        lock_key = self._lock_key(key)
        token = generate_ulid()
        ttl_ms = int(settings.lock_ttl_seconds * 1000)

        while True:
            try:
                acquired = bool(client.set(lock_key, token, nx=True, px=ttl_ms))
            except RedisError as exc:
                prometheus_metrics.record_lock(self.namespace, "error")
                logger.warning(
                    "keyed_lock_acquire_failed",
                    extra={
                        "lock_key": lock_key,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                raise ResourceBusyException(self.namespace, key) from exc
            if acquired:
                break
            if time.monotonic() >= deadline:
                prometheus_metrics.record_lock(self.namespace, "timeout")
                logger.warning(
                    "keyed_lock_acquire_timeout",
                    extra={"lock_key": lock_key, "timeout_s": wait},
                )
                raise ResourceBusyException(self.namespace, key)
            time.sleep(settings.lock_poll_interval_seconds)

        holds[key] = _Hold(token=token)
        prometheus_metrics.record_lock(self.namespace, "acquired")

    def release(self, key: str) -> None:
        holds = self._holds()
        current = holds.get(key)
        lock_key = self._lock_key(key)
        if current is None:
            logger.warning("keyed_lock_release_unknown", extra={"lock_key": lock_key})
            return
        current.depth -= 1
        if current.depth > 0:
            return
        del holds[key]

        client = self._redis()
        if client is None:
            prometheus_metrics.record_lock(self.namespace, "redis_unavailable")
            logger.warning("keyed_lock_release_redis_unavailable", extra={"lock_key": lock_key})
            return
        try:
            deleted = client.eval(_RELEASE_SCRIPT, 1, lock_key, current.token)
        except RedisError as exc:
            prometheus_metrics.record_lock(self.namespace, "error")
            logger.warning(
                "keyed_lock_release_failed",
                extra={
                    "lock_key": lock_key,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return
        if not deleted:
            # TTL ran out while held; someone else may own the key now
            prometheus_metrics.record_lock(self.namespace, "expired")
            logger.warning("keyed_lock_expired_before_release", extra={"lock_key": lock_key})

    @contextmanager
    def hold(self, *keys: str, timeout_s: Optional[float] = None) -> Iterator[None]:
        """Hold every key for the duration of the block, acquired in sorted order."""
        acquired: list[str] = []
        try:
            for key in sorted(set(keys)):
                self.acquire(key, timeout_s=timeout_s)
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self.release(key)

    def active_keys(self) -> list[str]:
        """Keys held by the calling thread."""
        return sorted(self._holds())


teacher_calendar_locks = KeyedLockRegistry("teacher_calendar")
ledger_account_locks = KeyedLockRegistry("ledger_account")
session_locks = KeyedLockRegistry("session")


__all__ = [
    "KeyedLockRegistry",
    "ledger_account_locks",
    "session_locks",
    "teacher_calendar_locks",
]
