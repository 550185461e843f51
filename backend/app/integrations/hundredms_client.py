"""100ms video client used to open a room when a skill session starts.

Only the calls the session lifecycle needs are wrapped: room creation,
room teardown and the per-participant join token.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, cast
import uuid

import httpx
import jwt
from pydantic import SecretStr

logger = logging.getLogger(__name__)

MANAGEMENT_TOKEN_TTL_SECONDS = 3600
MANAGEMENT_TOKEN_ROTATE_SECONDS = 50 * 60


class HundredMsError(RuntimeError):
    """Raised when the 100ms API is unreachable or answers with an error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class HundredMsClient:
    """Synchronous client for the 100ms REST API."""

    def __init__(
        self,
        *,
        access_key: str,
        app_secret: str | SecretStr,
        base_url: str = "https://api.100ms.live/v2",
        template_id: str | None = None,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._access_key = access_key
        self._app_secret = (
            app_secret.get_secret_value() if isinstance(app_secret, SecretStr) else app_secret
        )
        self._base_url = base_url.rstrip("/")
        self._template_id = template_id
        self._timeout = timeout
        self._transport = transport
        self._mgmt_token: str | None = None
        self._mgmt_token_refresh_at: float = 0.0

    def _sign(self, claims: dict[str, Any], ttl_seconds: int) -> str:
        now = int(time.time())
        payload = {
            "access_key": self._access_key,
            "version": 2,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "nbf": now,
            "exp": now + ttl_seconds,
            **claims,
        }
        token: str = jwt.encode(
            payload,
            self._app_secret,
            algorithm="HS256",
            headers={"alg": "HS256", "typ": "JWT"},
        )
        return token

    def _management_token(self) -> str:
        now = time.monotonic()
        if self._mgmt_token is None or now >= self._mgmt_token_refresh_at:
            self._mgmt_token = self._sign({"type": "management"}, MANAGEMENT_TOKEN_TTL_SECONDS)
            self._mgmt_token_refresh_at = now + MANAGEMENT_TOKEN_ROTATE_SECONDS
        return self._mgmt_token

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self._management_token()}",
            "Content-Type": "application/json",
        }

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(url, headers=headers, json=body)
        except httpx.TransportError as exc:
            logger.error("100ms API unreachable for POST %s: %s", path, exc)
            raise HundredMsError(message=f"100ms API unreachable: {exc}") from exc

        if response.status_code >= 400:
            try:
                parsed = response.json()
            except ValueError:
                parsed = None
            error_body: dict[str, Any] = (
                parsed if isinstance(parsed, dict) else {"raw": response.text[:500]}
            )
            message = error_body.get("message") or error_body.get("description") or response.text
            logger.error(
                "100ms API error %s for POST %s: %s",
                response.status_code,
                path,
                response.text[:500],
            )
            raise HundredMsError(
                message=message,
                status_code=response.status_code,
                details=error_body.get("details"),
            )

        return cast(dict[str, Any], response.json())

    def create_room(self, *, name: str, description: str | None = None) -> dict[str, Any]:
        """Create (or fetch, when the name already exists) the room called ``name``."""
        body: dict[str, Any] = {"name": name}
        if self._template_id:
            body["template_id"] = self._template_id
        if description:
            body["description"] = description
        return self._post("rooms", body)

    def disable_room(self, room_id: str) -> dict[str, Any]:
        return self._post(f"rooms/{room_id}", {"enabled": False})

    def generate_auth_token(
        self,
        *,
        room_id: str,
        user_id: str,
        role: str,
        validity_seconds: int = 3600,
    ) -> str:
        """Join token for one participant; signed locally, no API round-trip."""
        return self._sign(
            {
                "type": "app",
                "room_id": room_id,
                "user_id": user_id,
                "role": role,
                "metadata": json.dumps({"user_id": user_id}),
            },
            validity_seconds,
        )


class FakeHundredMsClient:
    """In-memory stand-in used when 100ms is disabled and in tests."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self._errors: dict[str, HundredMsError] = {}

    def set_error(self, method: str, error: HundredMsError) -> None:
        self._errors[method] = error

    def _record(self, method: str, **fields: Any) -> None:
        self.calls.append({"method": method, **fields})
        error = self._errors.get(method)
        if error is not None:
            raise error

    def create_room(self, *, name: str, description: str | None = None) -> dict[str, Any]:
        self._record("create_room", name=name)
        return {"id": f"fake_room_{uuid.uuid4().hex[:12]}", "name": name, "enabled": True}

    def disable_room(self, room_id: str) -> dict[str, Any]:
        self._record("disable_room", room_id=room_id)
        return {"id": room_id, "enabled": False}

    def generate_auth_token(
        self, *, room_id: str, user_id: str, role: str, validity_seconds: int = 3600
    ) -> str:
        self._record("generate_auth_token", room_id=room_id, user_id=user_id, role=role)
        return f"fake_auth_token_{room_id}_{user_id}"
