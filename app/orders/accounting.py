"""
Invoice mirror of paid orders.

InvoiceMirror is the default accounting collaborator: once an order's
commission has been calculated, the order is copied into an Invoice with one
InvoiceLine per order line and a single InvoicePayment. Mirroring is
idempotent per order.
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from core.helpers import make_reference_code
from orders.models import Invoice, InvoiceLine, InvoicePayment, InvoiceStatus, Order

logger = logging.getLogger(__name__)

INVOICE_BANK_ACCOUNT = "ACTA System"
INVOICE_SOURCE = "acta"


class InvoiceMirror:
    """Write the accounting copy of a paid order."""

    def mirror_order(self, order: Order) -> Invoice:
        existing = Invoice.objects.filter(order=order).first()
        if existing is not None:
            return existing

        now = timezone.now()
        customer = order.customer
        with transaction.atomic():
            invoice = Invoice.objects.create(
                code=make_reference_code("INV"),
                order=order,
                customer=customer,
                customer_name=customer.get_full_name(),
                total=order.total_amount,
                total_payment=order.total_amount,
                status=InvoiceStatus.COMPLETED,
                source=INVOICE_SOURCE,
                purchased_at=order.paid_at or now,
            )
            InvoiceLine.objects.bulk_create(
                [
                    InvoiceLine(
                        invoice=invoice,
                        product=line.product,
                        product_name=line.product.name,
                        quantity=line.quantity,
                        price=line.unit_price,
                        sub_total=line.subtotal,
                    )
                    for line in order.lines.select_related("product")
                ]
            )
            InvoicePayment.objects.create(
                invoice=invoice,
                code=make_reference_code("PAY"),
                amount=order.total_amount,
                method="transfer",
                status="paid",
                bank_account=INVOICE_BANK_ACCOUNT,
                description=f"Payment for order {order.code}",
                paid_at=now,
            )

        logger.info(
            "Invoice mirrored for order",
            extra={"order_id": str(order.pk), "invoice_code": invoice.code},
        )
        return invoice
