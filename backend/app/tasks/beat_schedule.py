# backend/app/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for SkillSwap.
"""

from datetime import timedelta
from typing import Any

from app.core.config import settings


def _base_schedule() -> dict[str, dict[str, Any]]:
    return {
        # Finish or free bookings interrupted between slot hold and escrow
        "reconcile-orphaned-reservations": {
            "task": "app.tasks.session_tasks.reconcile_orphaned_reservations",
            "schedule": timedelta(seconds=settings.reconcile_interval_seconds),
            "options": {"queue": "sessions", "priority": 7},
        },
    }


# Environment-specific overrides
SCHEDULE_CONFIG: dict[str, dict[str, dict[str, Any]]] = {
    "testing": {
        "reconcile-orphaned-reservations": {
            "task": "app.tasks.session_tasks.reconcile_orphaned_reservations",
            "schedule": timedelta(seconds=30),
            "options": {"queue": "sessions", "priority": 10},
        },
    },
}


def get_beat_schedule(environment: str = "production") -> dict[str, dict[str, Any]]:
    """
    Get the beat schedule for the specified environment.

    Args:
        environment: The environment name (production, development, testing)

    Returns:
        Mapping of task name to Celery beat configuration dict
    """
    schedule = _base_schedule()
    overrides = SCHEDULE_CONFIG.get(environment)
    if overrides:
        schedule.update(overrides)
    return schedule
