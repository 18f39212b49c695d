"""
Payments app: the payment lifecycle engine.

This app handles:
- Payment intents for orders (VietQR bank transfer, cash on delivery)
- Bank and gateway webhooks, verified and processed idempotently
- Expiry of unpaid intents and pre-expiry warnings
- Two-step refund approval and settlement
- Bank statement reconciliation

Related apps:
    - orders: the Order being paid, stock and invoice collaborators
    - affiliate: commissions queued when a payment succeeds

Usage:
    from payments.services import PaymentIntentManager

    result = PaymentIntentManager().create_or_reuse(
        order_id=order.id, method="transfer", provider="vietqr", actor=request.user
    )

    # Webhook deliveries
    from payments.webhooks.processor import WebhookProcessor

    WebhookProcessor().receive("vietqr", payload)
"""
