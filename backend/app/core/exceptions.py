# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the SkillSwap platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class status code."""
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message or "An error occurred processing your request",
            "code": self.code,
            "details": self.details if self.details else {},
        }


# Specific business exceptions


class SchedulingConflictException(ConflictException):
    """Raised when a requested slot overlaps the teacher's existing sessions."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "Teacher already has a session that overlaps this time",
            code="SCHEDULING_CONFLICT",
            details=details or {},
        )


class InsufficientCreditsException(BusinessRuleException):
    """Raised when a debit would drive a user's balance negative."""

    def __init__(self, *, user_id: str, required: int, available: int):
        super().__init__(
            message="Insufficient credits for this operation",
            code="INSUFFICIENT_CREDITS",
            details={"user_id": user_id, "required": required, "available": available},
        )


class SessionNotFoundException(NotFoundException):
    """Raised when a session id does not resolve."""

    def __init__(self, session_id: str):
        super().__init__(
            message="Session not found",
            code="SESSION_NOT_FOUND",
            details={"session_id": session_id},
        )


class MatchNotFoundException(NotFoundException):
    """Raised when the match backing a booking request does not exist."""

    def __init__(self, match_id: str):
        super().__init__(
            message="Match not found",
            code="MATCH_NOT_FOUND",
            details={"match_id": match_id},
        )


class MatchNotAcceptedException(BusinessRuleException):
    """Raised when scheduling against a match that has not been accepted."""

    def __init__(self, match_id: str, match_status: str):
        super().__init__(
            message="Match must be accepted before scheduling a session",
            code="MATCH_NOT_ACCEPTED",
            details={"match_id": match_id, "status": match_status},
        )


class UnauthorizedSessionAccessException(ForbiddenException):
    """Raised when the caller is not a participant of the session."""

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message or "You are not a participant in this session",
            code="UNAUTHORIZED_SESSION_ACCESS",
            details=details or {},
        )


class InvalidSessionStatusException(ConflictException):
    """Raised on a transition the session lifecycle does not allow."""

    def __init__(self, *, session_id: str, current: str, action: str):
        super().__init__(
            message=f"Cannot {action} a session that is {current}",
            code="INVALID_SESSION_STATUS",
            details={"session_id": session_id, "status": current, "action": action},
        )


class InvalidStartTimeException(BusinessRuleException):
    """Raised when a session is started outside its start window."""

    def __init__(self, *, session_id: str, window_opens: str, window_closes: str):
        super().__init__(
            message="Session can only be started within its start window",
            code="INVALID_START_TIME",
            details={
                "session_id": session_id,
                "window_opens": window_opens,
                "window_closes": window_closes,
            },
        )


class CannotCancelSessionException(BusinessRuleException):
    """Raised when a session is no longer cancellable."""

    def __init__(self, message: str, *, session_id: str, current: Optional[str] = None):
        details: Dict[str, Any] = {"session_id": session_id}
        if current is not None:
            details["status"] = current
        super().__init__(message=message, code="CANNOT_CANCEL_SESSION", details=details)


class RoomProvisioningException(ServiceException):
    """Raised when the video room for a starting session cannot be provisioned."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="ROOM_PROVISIONING_FAILED", details=details)


class ResourceBusyException(ServiceException):
    """Raised when a calendar, account or session lock cannot be acquired in time."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, resource: str, key: str):
        super().__init__(
            message="Resource is busy, please retry",
            code="RESOURCE_BUSY",
            details={"resource": resource, "key": key},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
