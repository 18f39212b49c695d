"""
Order aggregate, catalogue slice, cart and invoice mirror models.

Order is the aggregate root the payment engine settles. Its status is managed
by django-fsm and only changes through the transitions below; orders are never
deleted.

State Flow:
    DRAFT -> CONFIRMED (cash on delivery accepted)
    DRAFT/CONFIRMED -> COMPLETED (payment succeeded)
    DRAFT/CONFIRMED -> CANCELLED (payment expired or cancelled)
    COMPLETED -> CANCELLED (full refund before shipment)
    COMPLETED -> REFUNDED (full refund after shipment)

Usage:
    from orders.models import Order, OrderStatus

    order = Order.objects.create(code="ORD123", customer=user, total_amount=500000)
    order.complete()
    order.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


# =============================================================================
# Choices
# =============================================================================


class OrderStatus(models.TextChoices):
    """
    Lifecycle states of an Order.

    Payable states: DRAFT, CONFIRMED
    Terminal states: CANCELLED, REFUNDED
    """

    DRAFT = "draft", "Draft"
    CONFIRMED = "confirmed", "Confirmed"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


PAYABLE_ORDER_STATUSES = frozenset([OrderStatus.DRAFT, OrderStatus.CONFIRMED])


class OrderPaymentStatus(models.TextChoices):
    """Bookkeeping flag set once the paid order is mirrored into accounting."""

    UNPAID = "unpaid", "Unpaid"
    PAID = "paid", "Paid"


class CategoryGroup(models.TextChoices):
    """Commission tier of a product category."""

    A = "a", "Group A"
    B = "b", "Group B"
    C = "c", "Group C"


# =============================================================================
# Catalogue
# =============================================================================


class Category(UUIDPrimaryKeyMixin, BaseModel):
    """Product category. The group selects the commission pool rate."""

    name = models.CharField(max_length=120, unique=True)
    group = models.CharField(
        max_length=1,
        choices=CategoryGroup.choices,
        blank=True,
        default="",
        help_text="Commission group; empty falls back to the default rate",
    )

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "Categories"

    def __str__(self) -> str:
        return self.name


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    Sellable product.

    Fields:
        stock: Units available to new orders
        reserved: Units held by unpaid orders, released on expiry
    """

    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=64, unique=True)
    category = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="products",
    )
    price = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Unit price in VND",
    )
    stock = models.PositiveIntegerField(default=0)
    reserved = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.sku})"


# =============================================================================
# Order
# =============================================================================


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    Customer order; the aggregate root mutated by payments and refunds.

    ``total_amount`` is the authoritative payable amount. ``shipped_at`` is the
    shipment-progress milestone: once set, a full refund ends the order as
    REFUNDED rather than CANCELLED.
    """

    code = models.CharField(
        max_length=64,
        unique=True,
        help_text="Human-readable order code embedded in bank remittance text",
    )
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    total_amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Authoritative order total in VND",
    )
    currency = models.CharField(max_length=3, default="VND")

    status = FSMField(
        default=OrderStatus.DRAFT,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current order status (managed by FSM)",
    )
    payment_status = models.CharField(
        max_length=16,
        choices=OrderPaymentStatus.choices,
        default=OrderPaymentStatus.UNPAID,
    )
    is_cod = models.BooleanField(
        default=False,
        help_text="Cash on delivery accepted",
    )

    # ==========================================================================
    # Milestones
    # ==========================================================================

    shipped_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refund_requested_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    # Inventory bookkeeping; each is written at most once
    inventory_committed_at = models.DateTimeField(null=True, blank=True)
    inventory_restored_at = models.DateTimeField(null=True, blank=True)

    admin_note = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["customer", "status"], name="order_customer_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name="order_total_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.code}, {self.status}, {self.total_amount} {self.currency})"

    @property
    def is_payable(self) -> bool:
        return self.status in PAYABLE_ORDER_STATUSES

    @property
    def has_shipped(self) -> bool:
        return self.shipped_at is not None

    def mark_shipped(self) -> None:
        """
        Record that fulfilment has left the warehouse.

        Called by the shipping collaborator when the carrier picks the order
        up; the caller saves ``shipped_at``. A full refund of a shipped order
        ends in REFUNDED instead of CANCELLED.
        """
        if self.shipped_at is None:
            self.shipped_at = timezone.now()

    def append_note(self, note: str) -> None:
        self.admin_note = f"{self.admin_note}\n{note}".strip() if self.admin_note else note

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[OrderStatus.DRAFT, OrderStatus.CONFIRMED],
        target=OrderStatus.CONFIRMED,
    )
    def confirm(self, cash_on_delivery: bool = False):
        """Accept the order for fulfilment before money is collected."""
        if cash_on_delivery:
            self.is_cod = True

    @transition(
        field=status,
        source=[OrderStatus.DRAFT, OrderStatus.CONFIRMED],
        target=OrderStatus.COMPLETED,
    )
    def complete(self, paid_at=None):
        """Payment received."""
        now = paid_at or timezone.now()
        self.paid_at = now
        self.completed_at = now

    @transition(
        field=status,
        source=[OrderStatus.DRAFT, OrderStatus.CONFIRMED, OrderStatus.COMPLETED],
        target=OrderStatus.CANCELLED,
    )
    def cancel(self, note: str | None = None):
        self.cancelled_at = timezone.now()
        if note:
            self.append_note(note)

    @transition(
        field=status,
        source=OrderStatus.COMPLETED,
        target=OrderStatus.REFUNDED,
    )
    def refund(self, refunded_at=None):
        """Money fully returned after the goods shipped."""
        self.refunded_at = refunded_at or timezone.now()


class OrderLine(UUIDPrimaryKeyMixin, BaseModel):
    """One purchased product within an order."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_lines")
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=15, decimal_places=2)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="order_line_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product_id} @ {self.unit_price}"

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


# =============================================================================
# Cart
# =============================================================================


class CartItem(UUIDPrimaryKeyMixin, BaseModel):
    """Product in a customer's cart; purchased products are cleared after payment."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="cart_items",
    )
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="cart_items")
    quantity = models.PositiveIntegerField(default=1)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "product"],
                name="cart_item_unique_user_product",
            ),
        ]


# =============================================================================
# Invoice mirror
# =============================================================================


class InvoiceStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    COMPLETED = "completed", "Completed"


class Invoice(UUIDPrimaryKeyMixin, BaseModel):
    """Accounting copy of a paid order. One per order."""

    code = models.CharField(max_length=64, unique=True)
    order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name="invoice")
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    customer_name = models.CharField(max_length=255, blank=True, default="")
    total = models.DecimalField(max_digits=15, decimal_places=2)
    total_payment = models.DecimalField(max_digits=15, decimal_places=2)
    discount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0"))
    status = models.CharField(
        max_length=16,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.COMPLETED,
    )
    source = models.CharField(max_length=32, default="acta")
    purchased_at = models.DateTimeField()

    def __str__(self) -> str:
        return f"Invoice({self.code}, order={self.order_id})"


class InvoiceLine(UUIDPrimaryKeyMixin, BaseModel):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="+")
    product_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=15, decimal_places=2)
    sub_total = models.DecimalField(max_digits=15, decimal_places=2)

    class Meta:
        ordering = ["created_at"]


class InvoicePayment(UUIDPrimaryKeyMixin, BaseModel):
    """Settlement line of an invoice."""

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="payments")
    code = models.CharField(max_length=64, unique=True)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    method = models.CharField(max_length=32, default="transfer")
    status = models.CharField(max_length=16, default="paid")
    bank_account = models.CharField(max_length=128, blank=True, default="")
    description = models.CharField(max_length=255, blank=True, default="")
    paid_at = models.DateTimeField()
