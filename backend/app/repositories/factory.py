# backend/app/repositories/factory.py
"""
Repository Factory for SkillSwap

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .credit_repository import CreditRepository
    from .match_repository import MatchRepository
    from .reservation_repository import ReservationRepository
    from .session_repository import SessionRepository
    from .session_stats_repository import SessionStatsRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_session_repository(db: Session) -> "SessionRepository":
        """Create repository for skill session operations."""
        from .session_repository import SessionRepository

        return SessionRepository(db)

    @staticmethod
    def create_credit_repository(db: Session) -> "CreditRepository":
        """Create repository for the credit ledger."""
        from .credit_repository import CreditRepository

        return CreditRepository(db)

    @staticmethod
    def create_reservation_repository(db: Session) -> "ReservationRepository":
        """Create repository for teacher calendars and slot reservations."""
        from .reservation_repository import ReservationRepository

        return ReservationRepository(db)

    @staticmethod
    def create_match_repository(db: Session) -> "MatchRepository":
        from .match_repository import MatchRepository

        return MatchRepository(db)

    @staticmethod
    def create_session_stats_repository(db: Session) -> "SessionStatsRepository":
        from .session_stats_repository import SessionStatsRepository

        return SessionStatsRepository(db)
