"""
Base service layer patterns for business logic encapsulation.

- ServiceResult: result wrapper for expected failures (bad state, bad input)
- BaseService: logging, transaction and exception helpers shared by services

Services hold the business rules. Views translate HTTP to service calls and
ServiceResult back to HTTP; models only hold data and state transitions.

Usage:
    from core.services import BaseService, ServiceResult

    class RefundWorkflow(BaseService):
        def approve_refund(self, refund_id, note, actor) -> ServiceResult[RefundRequest]:
            try:
                with self.atomic():
                    refund = self._lock_refund(refund_id)
                    refund.approve(actor=actor, note=note)
                    refund.save()
            except BaseApplicationError as e:
                return ServiceResult.from_exception(e)
            return ServiceResult.success(refund)

    # In view
    result = workflow.approve_refund(refund_id, note, request.user)
    if not result.success:
        return Response(result.to_response(), status=result.status_code)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures
        details: Extra error context (ids, amounts, current state)
        status_code: HTTP status a view should answer a failure with
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)
    details: dict[str, Any] | None = field(default=None)
    status_code: int = 400

    @classmethod
    def ok(cls, data: T) -> ServiceResult[T]:
        """Alias for success()."""
        return cls(success=True, data=data)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
        details: dict[str, Any] | None = None,
        status_code: int = 400,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Example:
            return ServiceResult.failure(
                "Refund amount must be greater than 0",
                error_code="INVALID_AMOUNT",
            )
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
            details=details,
            status_code=status_code,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their own message, code, details and HTTP
        status. Anything else is reported by class name with a 500.
        """
        if isinstance(exc, BaseApplicationError):
            return cls(
                success=False,
                error=exc.message,
                error_code=error_code or exc.error_code,
                details=exc.details or None,
                status_code=exc.status_code,
            )
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
            status_code=500,
        )

    def to_response(self) -> dict[str, Any]:
        """Convert to the JSON body returned from a DRF view."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        if self.details:
            response["details"] = self.details
        return response

    def map(self, func) -> ServiceResult:
        """Transform the data if successful, otherwise return self unchanged."""
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self  # type: ignore

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides:
    - A logger named after the concrete service class
    - ``atomic()``: the unit of work every multi-row mutation runs inside
    - Exception to ServiceResult conversion with logging
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Return a logger named ``<module>.<ClassName>`` for log filtering."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Nested use creates a savepoint, so a collaborator invoked inside an
        outer unit of work is rolled back together with it.
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Log an exception and convert it to a failed ServiceResult.

        Application errors are expected outcomes and are logged without a
        traceback; anything else gets the full traceback.
        """
        logger = cls.get_logger()
        message = f"{context}: {exc}" if context else str(exc)
        if isinstance(exc, BaseApplicationError):
            logger.log(log_level, message)
        else:
            logger.log(log_level, message, exc_info=True)
        return ServiceResult.from_exception(exc)

    @classmethod
    def validate_required(cls, **kwargs) -> ServiceResult | None:
        """
        Validate that required fields are provided.

        Returns a failure result naming every missing field, or None when all
        values are present.
        """
        errors = {}
        for field_name, value in kwargs.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[field_name] = ["This field is required."]

        if errors:
            return ServiceResult.failure(
                "Required fields missing",
                error_code="VALIDATION_ERROR",
                errors=errors,
            )
        return None
