"""
Tests for payments app.

This package contains test modules for:
- test_intent_manager.py: PaymentIntentManager create/complete/expire/cancel
- test_processor.py, test_webhook_views.py: Webhook intake and dispatch
- test_refund_workflow.py: Refund request, approval and settlement
- test_reconciliation.py: Bank statement reconciliation
- test_expiration_sweeper.py: Expiry and warning sweeps
- test_views.py: API endpoint tests

Usage:
    pytest payments/tests/
    pytest payments/tests/test_intent_manager.py
"""
