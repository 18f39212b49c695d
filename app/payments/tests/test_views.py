"""
Tests for the payments REST API.

Views run with the real default collaborators; channel layer publishes are
silenced.
"""

import base64
from decimal import Decimal

import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from orders.models import Order, OrderStatus
from payments.models import PaymentIntent, RefundRequest
from payments.state_machines import PaymentIntentStatus, RefundStatus
from payments.tests.factories import OrderPaymentLinkFactory, RefundRequestFactory


@pytest.fixture(autouse=True)
def silence_channel_layer(mocker):
    return mocker.patch("payments.events.ChannelLayerNotifier.publish")


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def customer_client(api_client, customer):
    api_client.force_authenticate(user=customer)
    return api_client


@pytest.fixture
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


@pytest.mark.django_db
class TestPaymentIntentCreateView:
    url = "/api/v1/payments/intents/"

    def body(self, order):
        return {"order_id": str(order.id), "method": "transfer", "provider": "vietqr"}

    def test_creates_intent(self, customer_client, order, transfer_link):
        response = customer_client.post(self.url, self.body(order), format="json")

        assert response.status_code == 201
        data = response.data["data"]
        assert response.data["success"] is True
        assert data["reused"] is False
        assert data["payment"]["status"] == PaymentIntentStatus.PENDING
        assert data["payment"]["amount"] == "150000.00"
        assert data["payment_code"].startswith("https://img.vietqr.io/image/")
        assert data["polling_url"] == f"/api/v1/payments/{data['payment']['id']}/status/"

    def test_reused_intent_answers_200(self, customer_client, order, transfer_link):
        customer_client.post(self.url, self.body(order), format="json")

        response = customer_client.post(self.url, self.body(order), format="json")

        assert response.status_code == 200
        assert response.data["data"]["reused"] is True

    def test_idempotency_key_header(self, customer_client, order, transfer_link):
        customer_client.post(self.url, self.body(order), format="json", HTTP_IDEMPOTENCY_KEY="k-1")

        assert PaymentIntent.objects.get(order=order).idempotency_key == "k-1"

    def test_other_customers_order(self, api_client, other_customer, order, transfer_link):
        api_client.force_authenticate(user=other_customer)

        response = api_client.post(self.url, self.body(order), format="json")

        assert response.status_code == 403
        assert response.data["error_code"] == "PERMISSION_DENIED"

    def test_order_without_payment_link(self, customer_client, order):
        response = customer_client.post(self.url, self.body(order), format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "ORDER_PAYABLE_STATE_INVALID"

    def test_card_not_implemented(self, customer_client, order):
        OrderPaymentLinkFactory(order=order, method="card", provider="stripe")

        response = customer_client.post(
            self.url,
            {"order_id": str(order.id), "method": "card", "provider": "stripe"},
            format="json",
        )

        assert response.status_code == 501
        assert response.data["error_code"] == "PROVIDER_NOT_IMPLEMENTED"

    def test_invalid_body(self, customer_client):
        response = customer_client.post(self.url, {"method": "bitcoin"}, format="json")

        assert response.status_code == 400

    def test_requires_authentication(self, api_client, order):
        response = api_client.post(self.url, self.body(order), format="json")

        assert response.status_code == 401


@pytest.mark.django_db
class TestPaymentVerifyView:
    def url(self, intent):
        return reverse("payments:intent_verify", kwargs={"payment_id": intent.id})

    def test_staff_verifies_payment(self, staff_client, pending_intent):
        response = staff_client.post(
            self.url(pending_intent),
            {"amount": "150000", "provider_ref": "FT777"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["data"]["status"] == PaymentIntentStatus.SUCCEEDED
        intent = PaymentIntent.objects.get(pk=pending_intent.pk)
        assert intent.provider_ref == "FT777"
        assert Order.objects.get(pk=intent.order_id).status == OrderStatus.COMPLETED

    def test_amount_mismatch(self, staff_client, pending_intent):
        response = staff_client.post(self.url(pending_intent), {"amount": "1"}, format="json")

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_AMOUNT"

    def test_expired(self, staff_client, expired_intent):
        response = staff_client.post(self.url(expired_intent), {"amount": "150000"}, format="json")

        assert response.status_code == 410

    def test_customer_forbidden(self, customer_client, pending_intent):
        response = customer_client.post(self.url(pending_intent), {"amount": "150000"}, format="json")

        assert response.status_code == 403


@pytest.mark.django_db
class TestPaymentCancelAndStatusViews:
    def test_customer_cancels(self, customer_client, pending_intent):
        url = reverse("payments:intent_cancel", kwargs={"payment_id": pending_intent.id})

        response = customer_client.post(url, {}, format="json")

        assert response.status_code == 200
        assert PaymentIntent.objects.get(pk=pending_intent.pk).status == PaymentIntentStatus.CANCELLED

    def test_status(self, customer_client, pending_intent):
        url = reverse("payments:payment_status", kwargs={"payment_id": pending_intent.id})

        response = customer_client.get(url)

        assert response.status_code == 200
        data = response.data["data"]
        assert data["status"] == PaymentIntentStatus.PENDING
        assert data["order_code"] == pending_intent.order.code
        assert data["expires_at"] is not None

    def test_status_of_other_customers_payment(self, api_client, other_customer, pending_intent):
        api_client.force_authenticate(user=other_customer)
        url = reverse("payments:payment_status", kwargs={"payment_id": pending_intent.id})

        assert api_client.get(url).status_code == 403


@pytest.mark.django_db
class TestRefundViews:
    def test_customer_requests_refund(self, customer_client, succeeded_intent):
        response = customer_client.post(
            reverse("payments:refund_create"),
            {"payment_id": str(succeeded_intent.id), "amount": "50000", "reason": "Damaged"},
            format="json",
        )

        assert response.status_code == 201
        data = response.data["data"]
        assert data["status"] == RefundStatus.REQUESTED
        assert data["payment_id"] == str(succeeded_intent.id)
        assert data["reference"].startswith("REF-")

    def test_refund_above_refundable(self, customer_client, succeeded_intent):
        response = customer_client.post(
            reverse("payments:refund_create"),
            {"payment_id": str(succeeded_intent.id), "amount": "150001"},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "AMOUNT_EXCEEDS_LIMIT"

    def test_refundable_amount(self, customer_client, succeeded_intent):
        url = reverse("payments:intent_refundable", kwargs={"payment_id": succeeded_intent.id})

        response = customer_client.get(url)

        assert response.status_code == 200
        assert response.data["data"]["refundable_amount"] == "150000.00"

    def test_approve_then_settle(self, staff_client, second_staff_user, succeeded_intent):
        refund = RefundRequestFactory(payment_intent=succeeded_intent)

        approve = staff_client.post(
            reverse("payments:refund_approve", kwargs={"refund_id": str(refund.id)}),
            {"note": "ok"},
            format="json",
        )
        settler = APIClient()
        settler.force_authenticate(user=second_staff_user)
        settle = settler.post(
            reverse("payments:refund_settle", kwargs={"refund_id": refund.reference}),
            {"provider_ref": "FT-R9"},
            format="json",
        )

        assert approve.status_code == 200
        assert settle.status_code == 200
        refund = RefundRequest.objects.get(pk=refund.pk)
        assert refund.status == RefundStatus.SUCCEEDED
        assert refund.provider_ref == "FT-R9"

    def test_self_approval_forbidden(self, staff_client, staff_user):
        refund = RefundRequestFactory(requested_by=staff_user)

        response = staff_client.post(
            reverse("payments:refund_approve", kwargs={"refund_id": str(refund.id)}),
            {},
            format="json",
        )

        assert response.status_code == 403
        assert response.data["error_code"] == "SELF_APPROVAL_NOT_ALLOWED"

    def test_cancel_and_fail(self, staff_client):
        requested = RefundRequestFactory()
        approved = RefundRequestFactory(status=RefundStatus.APPROVED)

        cancel = staff_client.post(
            reverse("payments:refund_cancel", kwargs={"refund_id": str(requested.id)}),
            {"reason": "duplicate"},
            format="json",
        )
        fail = staff_client.post(
            reverse("payments:refund_fail", kwargs={"refund_id": str(approved.id)}),
            {"reason": "account closed"},
            format="json",
        )

        assert cancel.status_code == 200
        assert cancel.data["data"]["status"] == RefundStatus.CANCELLED
        assert fail.status_code == 200
        assert fail.data["data"]["status"] == RefundStatus.FAILED

    def test_workflow_is_staff_only(self, customer_client):
        refund = RefundRequestFactory()

        response = customer_client.post(
            reverse("payments:refund_approve", kwargs={"refund_id": str(refund.id)}),
            {},
            format="json",
        )

        assert response.status_code == 403

    def test_unknown_refund(self, staff_client):
        response = staff_client.post(
            reverse("payments:refund_approve", kwargs={"refund_id": "REF-0-NOPE"}),
            {},
            format="json",
        )

        assert response.status_code == 404


@pytest.mark.django_db
class TestReconciliationView:
    url = "/api/v1/payments/reconciliation/"

    def test_reconciles_base64_csv(self, staff_client, succeeded_intent):
        refund = RefundRequestFactory(
            payment_intent=succeeded_intent,
            amount=Decimal("50000.00"),
            status=RefundStatus.APPROVED,
        )
        csv_text = f"date,amount,reference,txn\n2026-03-01,50000,ACTA REF {refund.reference},FT-1\n"

        response = staff_client.post(
            self.url,
            {"csv_base64": base64.b64encode(csv_text.encode()).decode()},
            format="json",
        )

        assert response.status_code == 200
        data = response.data["data"]
        assert data["refunds_settled"] == 1
        assert data["unmatched_rows_count"] == 0

    def test_reconciles_text_csv(self, staff_client):
        response = staff_client.post(
            self.url,
            {"csv_text": "date,amount,reference\n2026-03-01,100,coffee\n"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["data"]["unmatched_rows"][0]["reason"] == "Unknown reference format"

    @pytest.mark.parametrize(
        "body",
        [{}, {"csv_text": "a", "csv_base64": "YQ=="}],
    )
    def test_exactly_one_input(self, staff_client, body):
        assert staff_client.post(self.url, body, format="json").status_code == 400

    def test_malformed_csv(self, staff_client):
        response = staff_client.post(self.url, {"csv_text": "date,amount,reference\n"}, format="json")

        assert response.status_code == 400
        assert response.data["error_code"] == "PAYMENT_VALIDATION_ERROR"

    def test_staff_only(self, customer_client):
        assert customer_client.post(self.url, {"csv_text": "x"}, format="json").status_code == 403
