"""API fixtures: the FastAPI app wired to the per-test database and fakes."""

from __future__ import annotations

from typing import Callable, Dict, Iterator
from unittest.mock import Mock

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from app.api.dependencies import get_db, get_room_provisioner, get_session_notifier
from app.auth import create_access_token
from app.integrations.hundredms_client import FakeHundredMsClient
from app.main import app
from app.services.room_provisioning import RoomProvisioner


@pytest.fixture
def client(
    db: Session, notifier: Mock, fake_video_client: FakeHundredMsClient
) -> Iterator[TestClient]:
    def _get_db() -> Iterator[Session]:
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_notifier] = lambda: notifier
    app.dependency_overrides[get_room_provisioner] = lambda: RoomProvisioner(
        client=fake_video_client
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[str], Dict[str, str]]:
    def _headers(user_id: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers
