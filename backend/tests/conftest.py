"""
Shared fixtures for the SkillSwap backend tests.

Unit tests run against an in-memory SQLite database shared through a
StaticPool; concurrency tests get a file-backed SQLite database so every
worker thread can open its own session.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import Mock

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import models  # noqa: E402,F401
from app.core.ulid_helper import generate_ulid  # noqa: E402
from app.database import Base  # noqa: E402
from app.integrations.hundredms_client import FakeHundredMsClient  # noqa: E402
from app.models.match import SkillMatch  # noqa: E402
from app.services.ledger_service import LedgerService  # noqa: E402
from app.services.notification_service import SessionNotifier  # noqa: E402
from app.services.room_provisioning import RoomProvisioner  # noqa: E402
from app.services.session_scheduler import SessionScheduler  # noqa: E402
from app.tasks import session_tasks  # noqa: E402
from tests.factories import RedisStub, create_match  # noqa: E402


def _enable_sqlite_fk(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_pragmas(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture(autouse=True)
def redis_stub(monkeypatch: pytest.MonkeyPatch) -> RedisStub:
    """Every lock registry talks to one shared in-memory Redis per test."""
    stub = RedisStub()
    monkeypatch.setattr("app.core.keyed_lock._get_sync_redis", lambda: stub)
    return stub


@pytest.fixture(autouse=True)
def queued_reminders(monkeypatch: pytest.MonkeyPatch) -> Mock:
    """Reminder tasks are captured here instead of reaching the Celery broker."""
    queued = Mock()
    monkeypatch.setattr(session_tasks.send_session_reminder, "apply_async", queued)
    return queued


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_sqlite_fk(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(sqlite_engine: Engine) -> Iterator[Session]:
    factory = sessionmaker(bind=sqlite_engine, autoflush=False, expire_on_commit=False)
    session = factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def file_session_factory(tmp_path: Path) -> Iterator[sessionmaker]:
    """Session factory over a file-backed SQLite database, one connection per thread."""
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'skillswap.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        pool_size=20,
        max_overflow=0,
    )
    _enable_sqlite_fk(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    finally:
        engine.dispose()


@pytest.fixture
def teacher_id() -> str:
    return generate_ulid()


@pytest.fixture
def student_id() -> str:
    return generate_ulid()


@pytest.fixture
def accepted_match(db: Session, teacher_id: str, student_id: str) -> SkillMatch:
    return create_match(db, teacher_id, student_id)


@pytest.fixture
def fund(db: Session) -> Callable[[str, int], None]:
    """Give a user credits through the purchase path."""

    def _fund(user_id: str, amount: int) -> None:
        LedgerService(db).purchase_credits(user_id, amount, f"seed-{generate_ulid()}")

    return _fund


@pytest.fixture
def fake_video_client() -> FakeHundredMsClient:
    return FakeHundredMsClient()


@pytest.fixture
def notifier() -> Mock:
    return Mock(spec=SessionNotifier)


@pytest.fixture
def scheduler(
    db: Session, notifier: Mock, fake_video_client: FakeHundredMsClient
) -> SessionScheduler:
    return SessionScheduler(
        db,
        notifier=notifier,
        room_provisioner=RoomProvisioner(client=fake_video_client),
    )

