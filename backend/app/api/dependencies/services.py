# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Collaborators that hold no database state (notifier, room provisioner,
reminder queue) are process-wide singletons; everything else is built per
request around the request's session.
"""

from functools import lru_cache
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.ledger_service import LedgerService
from ...services.notification_service import SessionNotifier
from ...services.room_provisioning import RoomProvisioner
from ...services.session_reminders import SessionReminderQueue
from ...services.session_scheduler import SessionScheduler
from ...database import get_db

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_session_notifier() -> SessionNotifier:
    return SessionNotifier()


@lru_cache(maxsize=1)
def get_room_provisioner() -> RoomProvisioner:
    provisioner = RoomProvisioner()
    logger.info("Room provisioner ready (%s)", type(provisioner.client).__name__)
    return provisioner


@lru_cache(maxsize=1)
def get_session_reminders() -> SessionReminderQueue:
    return SessionReminderQueue()


def get_ledger_service(db: Session = Depends(get_db)) -> LedgerService:
    return LedgerService(db)


def get_session_scheduler(
    db: Session = Depends(get_db),
    notifier: SessionNotifier = Depends(get_session_notifier),
    room_provisioner: RoomProvisioner = Depends(get_room_provisioner),
    reminders: SessionReminderQueue = Depends(get_session_reminders),
    ledger: LedgerService = Depends(get_ledger_service),
) -> SessionScheduler:
    """
    Get the session scheduler with all collaborators wired.

    Returns:
        SessionScheduler instance bound to the request's database session
    """
    return SessionScheduler(
        db,
        notifier=notifier,
        room_provisioner=room_provisioner,
        reminders=reminders,
        ledger=ledger,
    )
