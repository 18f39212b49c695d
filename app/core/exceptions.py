"""
Application-wide exception hierarchy.

Every domain error raised by a service derives from BaseApplicationError so
that the API layer can render it the same way regardless of which app raised
it. Each class carries a machine-readable ``error_code`` and the HTTP status
that best describes it.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Bad input or a business rule violated by the input
    ├── NotFoundError - Lookup of an expected record failed
    ├── PermissionDeniedError - Caller is not allowed to do this
    ├── ConflictError - Record is in the wrong lifecycle state for the operation
    ├── RateLimitError - Too many attempts
    └── ExternalServiceError - A collaborator or third party failed

Usage:
    from core.exceptions import ConflictError

    raise ConflictError(
        "Payment is not in pending state. Current status: failed",
        error_code="INVALID_STATE",
        details={"current_status": "failed"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional context (ids, amounts, current state)
        status_code: HTTP status used when the error reaches a view
    """

    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Refund amount 600000 exceeds refundable amount 500000",
                "error_code": "AMOUNT_EXCEEDS_LIMIT",
                "details": {"refundable_amount": "500000.00"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for malformed amounts, unsupported currencies, and requests that break
    a business rule before any state is touched. For DRF request bodies use
    serializer validation instead.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a single record that is expected to exist cannot be found."""

    default_error_code: str = "NOT_FOUND"
    status_code: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller may not perform the operation.

    Authentication failures (missing or invalid token) are DRF's concern;
    this covers authorization and signed-request rejections.
    """

    default_error_code: str = "PERMISSION_DENIED"
    status_code: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with the current record state.

    Use for:
    - Invalid lifecycle transitions
    - Concurrent modification detected by a lock or version check
    - Unique constraint collisions

    HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"
    status_code: int = 409


class RateLimitError(BaseApplicationError):
    """Raised when a rate limit is exceeded. Include retry_after in details."""

    default_error_code: str = "RATE_LIMIT_EXCEEDED"
    status_code: int = 429


class ExternalServiceError(BaseApplicationError):
    """
    Raised when a collaborator outside this service fails.

    Log the original error for debugging but don't expose internal details to
    clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    status_code: int = 502
