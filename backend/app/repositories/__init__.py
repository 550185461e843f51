# backend/app/repositories/__init__.py
"""
Repository Pattern Implementation for SkillSwap

This package provides the repository layer for data access,
separating business logic from database queries.

Key Components:
- BaseRepository: Foundation for all repositories with generic data access
- RepositoryFactory: Factory for creating repository instances
- SessionRepository: Skill sessions and participant listings
- CreditRepository: Credit transaction log and account heads
- ReservationRepository: Teacher calendars and slot reservations
- MatchRepository / SessionStatsRepository: collaborator storage

Usage:
    from app.repositories import RepositoryFactory

    # In a service:
    repository = RepositoryFactory.create_session_repository(db)
    upcoming = repository.get_upcoming_for_user(user_id, now)
"""

from .base_repository import BaseRepository
from .credit_repository import CreditRepository
from .factory import RepositoryFactory
from .match_repository import MatchRepository
from .reservation_repository import ReservationRepository
from .session_repository import SessionRepository
from .session_stats_repository import SessionStatsRepository

__all__ = [
    "BaseRepository",
    "CreditRepository",
    "MatchRepository",
    "RepositoryFactory",
    "ReservationRepository",
    "SessionRepository",
    "SessionStatsRepository",
]
