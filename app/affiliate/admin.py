"""
Affiliate admin configuration.

Commission rows are written by CommissionCalculator only and are read-only
here. Dead-lettered jobs can be re-queued with the admin action.
"""

from django.contrib import admin
from django.utils import timezone

from affiliate.models import (
    CommissionJob,
    CommissionJobStatus,
    CommissionLog,
    CommissionRecord,
    CommissionSummary,
    ReferralClosure,
)


@admin.register(ReferralClosure)
class ReferralClosureAdmin(admin.ModelAdmin):
    list_display = ["ancestor", "descendant", "depth", "created_at"]
    list_filter = ["depth"]
    search_fields = ["ancestor__email", "descendant__email"]


@admin.register(CommissionRecord)
class CommissionRecordAdmin(admin.ModelAdmin):
    list_display = ["order", "beneficiary", "level", "rate", "base_amount", "amount", "status", "created_at"]
    list_filter = ["level", "status"]
    search_fields = ["order__code", "beneficiary__email"]
    readonly_fields = [
        "order",
        "order_line",
        "product",
        "category",
        "beneficiary",
        "level",
        "rate",
        "base_amount",
        "quantity",
        "amount",
        "status",
        "created_at",
    ]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(CommissionSummary)
class CommissionSummaryAdmin(admin.ModelAdmin):
    list_display = ["order_line", "total_amount", "commission_paid", "platform_cut", "remaining_amount"]
    readonly_fields = [
        "order_line",
        "total_amount",
        "commission_paid",
        "platform_cut",
        "remaining_amount",
        "category_rate",
        "f2_commission",
        "f1_commission",
        "f0_commission",
        "notes",
    ]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(CommissionLog)
class CommissionLogAdmin(admin.ModelAdmin):
    list_display = ["order", "total_commission_amount", "commission_count", "calculation_status", "created_at"]
    list_filter = ["calculation_status"]
    search_fields = ["order__code"]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(CommissionJob)
class CommissionJobAdmin(admin.ModelAdmin):
    list_display = ["order", "status", "attempts", "next_attempt_at", "processed_at", "created_at"]
    list_filter = ["status"]
    search_fields = ["order__code"]
    readonly_fields = ["order", "attempts", "last_error", "processed_at", "created_at", "updated_at"]
    actions = ["requeue"]

    @admin.action(description="Re-queue selected dead-lettered jobs")
    def requeue(self, request, queryset):
        updated = queryset.filter(status=CommissionJobStatus.DEAD_LETTER).update(
            status=CommissionJobStatus.PENDING,
            attempts=0,
            next_attempt_at=timezone.now(),
        )
        self.message_user(request, f"Re-queued {updated} commission jobs.")
