"""
Payment services for coordinating the payment lifecycle.

This module provides:
- PaymentIntentManager: Create, complete, expire and cancel payment intents
- RefundWorkflow: Request, approve, settle and cancel refunds
- ReconciliationEngine: Match bank statement rows to refunds and payments

Usage:
    from payments.services import PaymentIntentManager

    result = PaymentIntentManager().create_or_reuse(
        order_id=order.id,
        method="transfer",
        provider="vietqr",
        actor=request.user,
    )

    from payments.services import RefundWorkflow

    result = RefundWorkflow().create_refund(payment_id, Decimal("50000"), reason="Damaged")

    from payments.services import ReconciliationEngine

    result = ReconciliationEngine().reconcile_csv(csv_base64)
"""

from payments.services.intent_manager import (
    PaymentCompletion,
    PaymentIntentManager,
    PaymentIntentResult,
    PaymentStatusInfo,
)
from payments.services.reconciliation import (
    ReconciliationEngine,
    ReconciliationReport,
    UnmatchedRow,
)
from payments.services.refund_workflow import (
    RefundableAmount,
    RefundWorkflow,
)

__all__ = [
    "PaymentCompletion",
    "PaymentIntentManager",
    "PaymentIntentResult",
    "PaymentStatusInfo",
    "ReconciliationEngine",
    "ReconciliationReport",
    "RefundableAmount",
    "RefundWorkflow",
    "UnmatchedRow",
]
