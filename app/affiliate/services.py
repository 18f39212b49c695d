"""
Affiliate commission calculation.

CommissionCalculator turns a completed order into commission rows for the
purchaser and up to two levels of referrers, then finishes the order's
bookkeeping (invoice mirror, cart cleanup, payment_status).

Per order line:
    base      = quantity x unit_price
    pool      = base x category rate   (group a 20%, b 30%, c 50%, other 50%)
    platform  = base x 10%
    available = pool - platform
    F2 (purchaser) 50%, each F1 30%, each F0 20% of available

Usage:
    from affiliate.services import CommissionCalculator

    result = CommissionCalculator().calculate(order.id)
    if result.success and result.data.skipped:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError, NotFoundError
from core.services import BaseService, ServiceResult

from affiliate.models import (
    CalculationStatus,
    CommissionLevel,
    CommissionLog,
    CommissionRecord,
    CommissionSummary,
    ReferralClosure,
)
from orders.models import CartItem, Order, OrderPaymentStatus, OrderStatus
from payments.collaborators import default_accounting

if TYPE_CHECKING:
    from typing import Any

    from orders.models import OrderLine
    from payments.protocols import AccountingGateway


CATEGORY_RATES = {
    "a": Decimal("0.20"),
    "b": Decimal("0.30"),
    "c": Decimal("0.50"),
}
DEFAULT_CATEGORY_RATE = Decimal("0.50")
PLATFORM_CUT_RATE = Decimal("0.10")

LEVEL_SHARES = {
    CommissionLevel.F2: Decimal("0.50"),
    CommissionLevel.F1: Decimal("0.30"),
    CommissionLevel.F0: Decimal("0.20"),
}

CENT = Decimal("0.01")


def category_rate(group: str | None) -> Decimal:
    return CATEGORY_RATES.get((group or "").lower(), DEFAULT_CATEGORY_RATE)


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class LineSplit:
    """Commission figures of one order line before beneficiaries are applied."""

    total_amount: Decimal
    rate: Decimal
    platform_cut: Decimal
    available: Decimal

    @classmethod
    def for_line(cls, line: OrderLine, group: str | None) -> LineSplit:
        total = line.subtotal
        rate = category_rate(group)
        platform_cut = total * PLATFORM_CUT_RATE
        return cls(
            total_amount=money(total),
            rate=rate,
            platform_cut=money(platform_cut),
            available=money(total * rate - platform_cut),
        )

    def share(self, level: str) -> Decimal:
        return money(self.available * LEVEL_SHARES[level])


@dataclass
class CommissionResult:
    order_id: str
    skipped: bool
    commission_count: int = 0
    total_amount: Decimal = Decimal("0")
    message: str = ""


class CommissionCalculator(BaseService):
    """Calculate and persist affiliate commissions for completed orders."""

    def __init__(self, accounting: AccountingGateway | None = None) -> None:
        self.accounting = accounting or default_accounting()
        self.logger = self.get_logger()

    def calculate(self, order_id: Any) -> ServiceResult[CommissionResult]:
        """
        Calculate commissions for ``order_id`` in one transaction.

        Orders whose commissions already exist, and orders whose purchaser has
        no referrers, succeed with ``skipped=True``.
        """
        try:
            with self.atomic():
                order = (
                    Order.objects.select_for_update(of=("self",))
                    .select_related("customer")
                    .filter(pk=order_id)
                    .first()
                )
                if order is None:
                    raise NotFoundError(f"Order {order_id} not found", details={"order_id": str(order_id)})

                if CommissionLog.objects.filter(order=order).exists():
                    self.logger.info(
                        "Commissions already calculated, skipping",
                        extra={"order_id": str(order.pk)},
                    )
                    return ServiceResult.success(
                        CommissionResult(order_id=str(order.pk), skipped=True, message="Already calculated")
                    )

                if order.status != OrderStatus.COMPLETED:
                    raise ConflictError(
                        f"Order must be completed to calculate commissions. Current status: {order.status}",
                        details={"order_id": str(order.pk), "status": order.status},
                    )

                return ServiceResult.success(self._calculate(order))

        except BaseApplicationError as e:
            return self.handle_exception(e, f"Commission calculation failed for order {order_id}")

    def _calculate(self, order: Order) -> CommissionResult:
        lines = list(order.lines.select_related("product", "product__category"))
        if not lines:
            self.logger.warning("Order has no products", extra={"order_id": str(order.pk)})
            return CommissionResult(order_id=str(order.pk), skipped=True, message="Order has no products")

        ancestors = list(ReferralClosure.objects.ancestors_of(order.customer, depths=(1, 2)))
        depth1 = [closure.ancestor for closure in ancestors if closure.depth == 1]
        depth2 = [closure.ancestor for closure in ancestors if closure.depth == 2]

        if not depth1 and not depth2:
            self.logger.info(
                f"No referrers found for order {order.pk}, skipping commission creation",
                extra={"order_id": str(order.pk)},
            )
            return CommissionResult(order_id=str(order.pk), skipped=True, message="No referrers")

        total = Decimal("0")
        count = 0
        for line in lines:
            category = line.product.category
            if category is None:
                self.logger.warning(
                    f"Product {line.product_id} has no category",
                    extra={"order_id": str(order.pk), "product_id": str(line.product_id)},
                )
                continue

            split = LineSplit.for_line(line, category.group)
            beneficiaries = [(CommissionLevel.F2, order.customer)]
            beneficiaries += [(CommissionLevel.F1, user) for user in depth1]
            beneficiaries += [(CommissionLevel.F0, user) for user in depth2]

            records = [
                CommissionRecord.objects.create(
                    order=order,
                    order_line=line,
                    product=line.product,
                    category=category,
                    beneficiary=user,
                    level=level,
                    rate=LEVEL_SHARES[level],
                    base_amount=split.available,
                    quantity=line.quantity,
                    amount=split.share(level),
                )
                for level, user in beneficiaries
            ]
            paid = sum((record.amount for record in records), Decimal("0"))
            by_level = {}
            for record in records:
                by_level.setdefault(record.level, record)

            CommissionSummary.objects.create(
                order_line=line,
                total_amount=split.total_amount,
                commission_paid=paid,
                platform_cut=split.platform_cut,
                remaining_amount=split.available - paid,
                category_rate=split.rate,
                f2_commission=by_level.get(CommissionLevel.F2),
                f1_commission=by_level.get(CommissionLevel.F1),
                f0_commission=by_level.get(CommissionLevel.F0),
                notes=f"Commission summary for {line.product.name} ({line.quantity} items)",
            )
            total += paid
            count += len(records)

        CommissionLog.objects.create(
            order=order,
            total_commission_amount=total,
            commission_count=count,
            calculation_status=CalculationStatus.COMPLETED,
            notes=f"Affiliate commissions calculated for order {order.code}",
        )

        product_ids = [line.product_id for line in lines]
        cleared, _ = CartItem.objects.filter(user=order.customer, product_id__in=product_ids).delete()
        self.logger.info(
            f"Cleared {cleared} cart items for user {order.customer_id}",
            extra={"order_id": str(order.pk)},
        )

        self.accounting.mirror_order(order)

        order.payment_status = OrderPaymentStatus.PAID
        order.save(update_fields=["payment_status", "updated_at"])

        self.logger.info(
            f"Created {count} affiliate commissions for order {order.pk}, total amount: {total}",
            extra={"order_id": str(order.pk), "commission_count": count},
        )
        return CommissionResult(
            order_id=str(order.pk),
            skipped=False,
            commission_count=count,
            total_amount=total,
            message=f"Successfully calculated {count} commissions",
        )
