"""
Payment admin configuration.

Registers payment domain models with the Django admin. Lifecycle status
fields are FSM-protected and therefore read-only here; state changes go
through the services (or the refund API for staff).
"""

from django.contrib import admin

from payments.models import (
    OrderPaymentLink,
    PaymentIntent,
    RefundRequest,
    TransactionRecord,
    WebhookEvent,
)

__all__ = [
    "OrderPaymentLinkAdmin",
    "PaymentIntentAdmin",
    "RefundRequestAdmin",
    "TransactionRecordAdmin",
    "WebhookEventAdmin",
]


@admin.register(OrderPaymentLink)
class OrderPaymentLinkAdmin(admin.ModelAdmin):
    list_display = ["id", "order", "method", "provider", "amount", "currency", "status", "created_at"]
    list_filter = ["status", "method", "provider"]
    search_fields = ["id", "order__code"]
    readonly_fields = ["id", "order", "method", "provider", "amount", "currency", "status", "created_at", "updated_at"]
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


class TransactionRecordInline(admin.TabularInline):
    model = TransactionRecord
    extra = 0
    can_delete = False
    fields = ["kind", "amount", "currency", "provider_ref", "refund", "created_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PaymentIntent)
class PaymentIntentAdmin(admin.ModelAdmin):
    """
    Admin configuration for PaymentIntent.

    Provides visibility into payment attempts, their metadata and the
    transactions recorded against them.
    """

    list_display = [
        "code",
        "order",
        "provider",
        "amount_display",
        "status",
        "expires_at",
        "succeeded_at",
        "created_at",
    ]
    list_filter = ["status", "provider", "method", "created_at"]
    search_fields = ["id", "code", "order__code", "provider_ref", "idempotency_key"]
    readonly_fields = [
        "id",
        "code",
        "order_link",
        "order",
        "provider",
        "method",
        "amount",
        "currency",
        "status",
        "expires_at",
        "idempotency_key",
        "provider_ref",
        "request_meta",
        "response_meta",
        "failure_reason",
        "pending_at",
        "succeeded_at",
        "failed_at",
        "cancelled_at",
        "refunded_at",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [TransactionRecordInline]

    fieldsets = (
        (None, {"fields": ("id", "code", "order_link", "order", "status")}),
        ("Amount", {"fields": ("provider", "method", "amount", "currency")}),
        ("Provider", {"fields": ("provider_ref", "idempotency_key", "expires_at")}),
        (
            "Status Timestamps",
            {"fields": ("pending_at", "succeeded_at", "failed_at", "cancelled_at", "refunded_at")},
        ),
        (
            "Metadata",
            {
                "fields": ("request_meta", "response_meta", "failure_reason", "version"),
                "classes": ("collapse",),
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    def amount_display(self, obj: PaymentIntent) -> str:
        return f"{obj.amount:,.0f} {obj.currency}"

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payment intents (audit trail)."""
        return False


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    list_display = [
        "reference",
        "payment_intent",
        "amount",
        "status",
        "requested_by",
        "approved_by",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "reference", "payment_intent__code", "provider_ref", "reason"]
    readonly_fields = [
        "id",
        "reference",
        "payment_intent",
        "amount",
        "currency",
        "status",
        "items",
        "request_meta",
        "requested_by",
        "approved_by",
        "approval_note",
        "approved_at",
        "settled_by",
        "provider_ref",
        "processed_at",
        "cancelled_by",
        "cancel_reason",
        "cancelled_at",
        "failed_at",
        "failure_reason",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for refunds (audit trail)."""
        return False


@admin.register(TransactionRecord)
class TransactionRecordAdmin(admin.ModelAdmin):
    """Append-only ledger of charges and refunds."""

    list_display = ["id", "kind", "payment_intent", "amount", "currency", "provider_ref", "created_at"]
    list_filter = ["kind", "currency", "created_at"]
    search_fields = ["id", "payment_intent__code", "provider_ref"]
    readonly_fields = [
        "id",
        "kind",
        "payment_intent",
        "refund",
        "amount",
        "currency",
        "provider_ref",
        "meta",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "provider",
        "event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "provider", "event_type", "created_at"]
    search_fields = ["id", "event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "provider",
        "event_id",
        "event_type",
        "payload",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "provider", "event_id", "event_type", "status")}),
        ("Processing", {"fields": ("processed_at", "retry_count")}),
        ("Error Info", {"fields": ("error_message",), "classes": ("collapse",)}),
        ("Payload", {"fields": ("payload",), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False
