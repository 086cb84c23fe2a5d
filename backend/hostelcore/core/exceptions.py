"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across services
2. HTTP status code mapping for the API layer
3. Structured error payloads with contextual data
4. No sensitive data leaks in error messages

Every error raised by the access core is a typed, recoverable result. None of
them is treated as process-fatal.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when authentication fails.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class AuthorizationError(AppException):
    """
    Raised when a principal lacks permissions for an action.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "You do not have permission to perform this action"


class TokenExpiredError(AuthenticationError):
    """Raised when a JWT token has expired."""

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """Raised when a JWT token is malformed or has an invalid signature."""

    default_message = "Token is invalid"


class Unauthorized(AuthorizationError):
    """
    Raised when the Access Guard denies a record operation.

    WHAT: Carries the typed deny reason produced by the guard.

    WHY: Denial is distinct from "not found". Whether the API layer masks
    one as the other is its own decision; the guard always reports the
    precise reason so it can be audited.

    HTTP Status: 403 Forbidden
    """

    default_message = "Access denied"

    def __init__(self, message: Optional[str] = None, reason: Any = None, **context: Any):
        self.reason = reason
        if reason is not None:
            context["reason"] = getattr(reason, "value", reason)
        super().__init__(message, **context)


# ============================================================================
# Validation & Input Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class OrganizationNotFoundError(ResourceNotFoundError):
    """Raised when an organization doesn't exist."""

    default_message = "Organization not found"


class HostelNotFoundError(ResourceNotFoundError):
    """Raised when a hostel doesn't exist."""

    default_message = "Hostel not found"


class RoomNotFoundError(ResourceNotFoundError):
    """Raised when a room doesn't exist."""

    default_message = "Room not found"


class UserNotFoundError(ResourceNotFoundError):
    """Raised when a user doesn't exist."""

    default_message = "User not found"


class MembershipNotFoundError(ResourceNotFoundError):
    """Raised when a membership or parent link doesn't exist."""

    default_message = "Membership not found"


class LeaveNotFoundError(ResourceNotFoundError):
    """Raised when a leave request doesn't exist."""

    default_message = "Leave request not found"


class ComplaintNotFoundError(ResourceNotFoundError):
    """Raised when a complaint doesn't exist."""

    default_message = "Complaint not found"


class AnnouncementNotFoundError(ResourceNotFoundError):
    """Raised when an announcement doesn't exist."""

    default_message = "Announcement not found"


class AttendanceNotFoundError(ResourceNotFoundError):
    """Raised when an attendance log doesn't exist."""

    default_message = "Attendance record not found"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class BusinessRuleViolation(AppException):
    """
    Raised when a business rule is violated.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Business rule violation"


class ConstraintViolation(BusinessRuleViolation):
    """
    Raised when a uniqueness or relational invariant would be broken.

    WHAT: Duplicate memberships, self parent links, duplicate slugs/codes,
    student memberships without a room, tenancy mismatches.

    WHY: Mutations of the membership graph run inside a transaction, so a
    violation always means nothing was written.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Constraint violation"


class RoomFull(ConstraintViolation):
    """Raised when a room has no free bed left for a student assignment."""

    default_message = "Room is full"


class DuplicateCheckIn(ConstraintViolation):
    """
    Raised on a second check-in for the same (student, hostel, date).

    WHY: Attendance records are immutable once written; corrections go
    through an administrative override instead of a silent overwrite.
    """

    default_message = "Attendance already recorded for this date"


class InvalidStateTransition(BusinessRuleViolation):
    """
    Raised when an invalid state transition is attempted.

    WHAT: Reviewing a leave that is already decided, moving a membership
    from a status it cannot leave, closing a complaint twice.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid state transition"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    Base exception for external service failures.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class BlobStorageError(ExternalServiceError):
    """Raised when an object-storage upload fails."""

    default_message = "File storage error"


# ============================================================================
# Audit Exceptions
# ============================================================================


class AuditLogImmutableError(AppException):
    """
    Raised when attempting to update or delete an audit log.

    WHY: Audit rows are the history of membership grants and denied
    cross-organization access; once written they cannot be changed.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "Audit logs are immutable"
