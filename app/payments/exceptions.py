"""
Payment-specific exceptions.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError (404) - intent / link lookup failures
    │   └── RefundNotFoundError
    ├── PaymentValidationError (400) - bad input, mismatched amount or currency
    │   ├── InvalidAmountError
    │   └── RefundAmountExceededError
    ├── PaymentProcessingError (422) - provider could not process the payment
    │   └── ProviderNotImplementedError (501)
    └── PaymentExpiredError (410) - intent passed its expiry before completion

    Conflict family (inherit core ConflictError, HTTP 409):
    ├── LockAcquisitionError - distributed lock timeout
    ├── InvalidStateTransitionError - wrong lifecycle state for the operation
    ├── OrderNotPayableError - order status outside draft/confirmed
    └── OrderPayableStateInvalidError - order has no payment link

    WebhookSignatureError (401) - signature or timestamp rejected
    CollaboratorError (502) - inventory / accounting / notifier failure

Usage:
    from payments.exceptions import InvalidStateTransitionError

    raise InvalidStateTransitionError(
        f"Payment is not in pending state. Current status: {intent.status}",
        details={"current_status": intent.status},
    )
"""

from __future__ import annotations

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    PermissionDeniedError,
)


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """Base exception for all payment operations."""

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """
    Raised when a payment entity cannot be found.

    Example:
        raise PaymentNotFoundError(
            "Payment not found",
            details={"payment_id": str(payment_id)},
        )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"
    status_code: int = 404


class RefundNotFoundError(PaymentNotFoundError):
    default_error_code: str = "REFUND_NOT_FOUND"


class PaymentValidationError(PaymentError):
    """
    Raised when payment input fails validation.

    Use for:
    - Unsupported method/provider combination
    - Amount or currency different from the authoritative amount
    - Missing webhook fields
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class InvalidAmountError(PaymentValidationError):
    default_error_code: str = "INVALID_AMOUNT"


class RefundAmountExceededError(PaymentValidationError):
    default_error_code: str = "AMOUNT_EXCEEDS_LIMIT"


class PaymentProcessingError(PaymentError):
    """Raised when a provider cannot process the payment."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"
    status_code: int = 422


class ProviderNotImplementedError(PaymentProcessingError):
    """The card provider is not available yet; every attempt fails with this."""

    default_error_code: str = "PROVIDER_NOT_IMPLEMENTED"
    status_code: int = 501


class PaymentExpiredError(PaymentError):
    """Raised when completion is attempted after the intent expired."""

    default_error_code: str = "PAYMENT_EXPIRED"
    status_code: int = 410


# =============================================================================
# Concurrency / State Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Another worker is completing or expiring the same payment; callers
    usually answer by re-reading the record.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """Raised when a record is in the wrong lifecycle state for the operation."""

    default_error_code: str = "INVALID_STATE_TRANSITION"


class OrderNotPayableError(ConflictError):
    default_error_code: str = "ORDER_NOT_PAYABLE"


class OrderPayableStateInvalidError(ConflictError):
    default_error_code: str = "ORDER_PAYABLE_STATE_INVALID"


# =============================================================================
# Boundary Exceptions
# =============================================================================


class WebhookSignatureError(PermissionDeniedError):
    """Raised before any read or write when a webhook fails verification."""

    default_error_code: str = "INVALID_SIGNATURE"
    status_code: int = 401


class CollaboratorError(ExternalServiceError):
    """
    Raised when inventory, accounting or notification collaborators fail.

    Aborts the enclosing unit of work.
    """

    default_error_code: str = "COLLABORATOR_ERROR"
