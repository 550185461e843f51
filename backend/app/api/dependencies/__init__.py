# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import get_current_user_id
from ...database import get_db
from .services import (
    get_ledger_service,
    get_room_provisioner,
    get_session_notifier,
    get_session_reminders,
    get_session_scheduler,
)

__all__ = [
    # Auth
    "get_current_user_id",
    # Database
    "get_db",
    # Services
    "get_ledger_service",
    "get_room_provisioner",
    "get_session_notifier",
    "get_session_reminders",
    "get_session_scheduler",
]
