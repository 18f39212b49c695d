"""
Tests for bank statement reconciliation.
"""

import base64
from decimal import Decimal

import pytest

from payments.events import PaymentEventType
from payments.exceptions import PaymentValidationError
from payments.models import RefundRequest
from payments.services.reconciliation import decode_statement, parse_statement_csv
from payments.state_machines import RefundStatus
from payments.tests.factories import RefundRequestFactory


def encode(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@pytest.fixture
def approved_refund(succeeded_intent):
    return RefundRequestFactory(payment_intent=succeeded_intent, status=RefundStatus.APPROVED)


class TestParseStatementCsv:
    def test_columns_found_by_header_name(self):
        rows = parse_statement_csv(
            "Transaction ID,Value Date,Amount,Reference\n"
            "FT1,2026-03-01,50000,ACTA REF REF-1\n"
        )

        assert rows == [
            {"txn_id": "FT1", "date": "2026-03-01", "amount": "50000", "reference": "ACTA REF REF-1"},
        ]

    def test_quoted_reference_with_comma(self):
        rows = parse_statement_csv('date,amount,reference\n2026-03-01,1,"ACTA ORD1, thanks"\n')

        assert rows[0]["reference"] == "ACTA ORD1, thanks"

    def test_blank_lines_ignored(self):
        rows = parse_statement_csv("date,amount,reference\n\n2026-03-01,1,x\n\n")

        assert len(rows) == 1

    def test_short_row_keeps_missing_columns_out(self):
        rows = parse_statement_csv("date,amount,reference\n2026-03-01,1\n")

        assert "reference" not in rows[0]

    def test_header_only_rejected(self):
        with pytest.raises(PaymentValidationError, match="at least header and one data row"):
            parse_statement_csv("date,amount,reference\n")

    def test_missing_required_column_rejected(self):
        with pytest.raises(PaymentValidationError, match="date, amount, and reference"):
            parse_statement_csv("date,amount,memo\n2026-03-01,1,x\n")


class TestDecodeStatement:
    def test_base64(self):
        assert decode_statement(encode("date,amount,reference")) == "date,amount,reference"

    def test_text(self):
        assert decode_statement(b"abc", encoding="text") == "abc"

    def test_invalid_base64(self):
        with pytest.raises(PaymentValidationError):
            decode_statement("%%%not base64%%%")

    def test_unknown_encoding(self):
        with pytest.raises(PaymentValidationError):
            decode_statement("abc", encoding="xml")


@pytest.mark.django_db
class TestReconcileCsv:
    def test_settles_approved_refund(self, reconciliation_engine, approved_refund, notifier):
        csv_text = (
            "date,amount,reference,txn\n"
            f"2026-03-01T09:30:00+07:00,50000,ACTA REF {approved_refund.reference},FT-R1\n"
        )

        result = reconciliation_engine.reconcile_csv(encode(csv_text))

        assert result.success
        report = result.data
        assert report.total_rows == 1
        assert report.matched_rows == 1
        assert report.refunds_settled == 1
        assert report.unmatched_rows == []

        refund = RefundRequest.objects.get(pk=approved_refund.pk)
        assert refund.status == RefundStatus.SUCCEEDED
        assert refund.provider_ref == "FT-R1"
        assert refund.settled_by is None
        assert refund.processed_at.isoformat() == "2026-03-01T02:30:00+00:00"

        events = notifier.of_type(PaymentEventType.PAYMENT_RECONCILIATION)
        assert len(events) == 1
        assert events[0].data["refunds_settled"] == 1

    def test_generated_provider_ref_without_txn_column(self, reconciliation_engine, approved_refund):
        csv_text = f"date,amount,reference\n2026-03-01,50000,ACTA REF {approved_refund.reference}\n"

        reconciliation_engine.reconcile_csv(csv_text, encoding="text")

        refund = RefundRequest.objects.get(pk=approved_refund.pk)
        assert refund.provider_ref.startswith("CSV_")
        assert refund.provider_ref.endswith("_0")

    def test_payment_reference_with_payment_id(self, reconciliation_engine, succeeded_intent):
        csv_text = (
            "date,amount,reference\n"
            f"2026-03-01,150000,ACTA {succeeded_intent.order.code} | pay:{succeeded_intent.pk}\n"
        )

        report = reconciliation_engine.reconcile_csv(csv_text, encoding="text").data

        assert report.payments_reconciled == 1
        assert report.matched_rows == 1

    def test_unmatched_rows_are_reported(self, reconciliation_engine):
        csv_text = (
            "date,amount,reference\n"
            "2026-03-01,150000,ACTA ORD1\n"
            "2026-03-01,abc,ACTA REF REF-1\n"
            "2026-03-01,-5,ACTA REF REF-1\n"
            "2026-03-01,100,ACTA REF REF-0-MISSING\n"
            "2026-03-01,100\n"
            "2026-03-01,100,coffee\n"
        )

        report = reconciliation_engine.reconcile_csv(csv_text, encoding="text").data

        assert report.total_rows == 6
        assert report.matched_rows == 0
        assert [(row.row, row.reason) for row in report.unmatched_rows] == [
            (2, "Unknown reference format"),
            (3, "Invalid amount"),
            (4, "Invalid amount"),
            (5, "Refund settlement failed: Refund REF-0-MISSING not found"),
            (6, "Invalid row format"),
            (7, "Unknown reference format"),
        ]
        invalid_format = report.unmatched_rows[4]
        assert invalid_format.reference == "N/A"
        assert invalid_format.amount == Decimal("100")

    def test_one_bad_row_does_not_stop_the_run(self, reconciliation_engine, approved_refund):
        requested = RefundRequestFactory(payment_intent=approved_refund.payment_intent)
        csv_text = (
            "date,amount,reference\n"
            f"2026-03-01,50000,ACTA REF {requested.reference}\n"
            f"2026-03-01,50000,ACTA REF {approved_refund.reference}\n"
        )

        report = reconciliation_engine.reconcile_csv(csv_text, encoding="text").data

        assert report.refunds_settled == 1
        assert report.unmatched_rows[0].reason.startswith("Refund settlement failed:")

    def test_malformed_csv_is_a_failure(self, reconciliation_engine, notifier):
        result = reconciliation_engine.reconcile_csv("date,amount\n2026-03-01,1\n", encoding="text")

        assert not result.success
        assert result.error_code == "PAYMENT_VALIDATION_ERROR"
        assert notifier.events == []

    def test_to_dict(self, reconciliation_engine):
        report = reconciliation_engine.reconcile_csv(
            "date,amount,reference\n2026-03-01,100,coffee\n",
            encoding="text",
        ).data

        data = report.to_dict()

        assert data["total_rows"] == 1
        assert data["unmatched_rows_count"] == 1
        assert data["unmatched_rows"][0] == {
            "row": 2,
            "date": "2026-03-01",
            "amount": "100",
            "reference": "coffee",
            "reason": "Unknown reference format",
        }
        assert data["summary"].startswith("Successfully processed 1 rows")


@pytest.mark.django_db
class TestReconcileRows:
    def test_rows_without_csv(self, reconciliation_engine, approved_refund):
        result = reconciliation_engine.reconcile(
            [{"date": "2026-03-01", "amount": 50000, "reference": f"ACTA REF {approved_refund.reference}"}]
        )

        assert result.data.refunds_settled == 1
