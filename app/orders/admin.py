"""
Orders admin configuration.
"""

from django.contrib import admin

from orders.models import (
    CartItem,
    Category,
    Invoice,
    InvoiceLine,
    InvoicePayment,
    Order,
    OrderLine,
    Product,
)


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ["name", "group", "created_at"]
    list_filter = ["group"]
    search_fields = ["name"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "sku", "category", "price", "stock", "reserved"]
    list_filter = ["category"]
    search_fields = ["name", "sku"]


class OrderLineInline(admin.TabularInline):
    model = OrderLine
    extra = 0
    readonly_fields = ["product", "quantity", "unit_price"]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Orders are read-only here: status changes go through the payment and
    refund services so inventory and ledgers stay consistent.
    """

    list_display = ["code", "customer", "status", "total_amount", "is_cod", "payment_status", "created_at"]
    list_filter = ["status", "is_cod", "payment_status"]
    search_fields = ["code", "customer__email"]
    readonly_fields = [
        "id",
        "status",
        "paid_at",
        "completed_at",
        "cancelled_at",
        "refund_requested_at",
        "refunded_at",
        "inventory_committed_at",
        "inventory_restored_at",
        "created_at",
        "updated_at",
    ]
    inlines = [OrderLineInline]
    ordering = ["-created_at"]


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ["user", "product", "quantity", "created_at"]
    search_fields = ["user__email", "product__sku"]


class InvoiceLineInline(admin.TabularInline):
    model = InvoiceLine
    extra = 0


class InvoicePaymentInline(admin.TabularInline):
    model = InvoicePayment
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ["code", "order", "customer", "total", "status", "purchased_at"]
    search_fields = ["code", "order__code", "customer__email"]
    inlines = [InvoiceLineInline, InvoicePaymentInline]
