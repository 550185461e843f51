"""
Database models for SkillSwap.

The models are organized by functionality:
- Sessions and their lifecycle
- The credit ledger (transactions and per-user accounts)
- Teacher calendars and slot reservations
- Matches and profile session counters
"""

from .calendar import (
    OCCUPYING_RESERVATION_STATUSES,
    ReservationStatus,
    SlotReservation,
    TeacherCalendar,
)
from .credit import CreditAccount, CreditTransaction, TransactionType
from .match import MatchStatus, SkillMatch
from .session import (
    ACTIVE_SESSION_STATUSES,
    TERMINAL_SESSION_STATUSES,
    SessionStatus,
    SkillSession,
)
from .stats import UserSessionStats

__all__ = [
    "ACTIVE_SESSION_STATUSES",
    "OCCUPYING_RESERVATION_STATUSES",
    "TERMINAL_SESSION_STATUSES",
    "CreditAccount",
    "CreditTransaction",
    "MatchStatus",
    "ReservationStatus",
    "SessionStatus",
    "SkillMatch",
    "SkillSession",
    "SlotReservation",
    "TeacherCalendar",
    "TransactionType",
    "UserSessionStats",
]
