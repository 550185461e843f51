# backend/app/tasks/__init__.py
"""
Celery tasks package for SkillSwap.

Run the worker with: celery -A app.tasks worker -B
"""

from app.tasks.celery_app import BaseTask, celery_app
from app.tasks.session_tasks import reconcile_orphaned_reservations, send_session_reminder

__all__ = [
    "BaseTask",
    "celery_app",
    "reconcile_orphaned_reservations",
    "send_session_reminder",
]
