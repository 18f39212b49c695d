"""
Bank statement reconciliation.

Matches rows of a bank statement against the remittance grammar in
``payments.references``:

    ACTA REF <refundId>                 settles an approved refund
    ACTA <orderCode> | pay:<paymentId>  counted as a reconciled payment
    anything else                       reported as unmatched

Rows are processed independently; one failing row never stops the run.
Row numbers in the report are 1-based and include the header line, so the
first data row is row 2.

Usage:
    from payments.services import ReconciliationEngine

    report = ReconciliationEngine().reconcile_csv(request.data["csv_base64"])
    report.data.to_dict()
"""

from __future__ import annotations

import base64
import binascii
import csv
import io
from dataclasses import asdict, dataclass, field
from datetime import datetime, time
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from core.exceptions import BaseApplicationError
from core.helpers import timestamp_ms
from core.services import BaseService, ServiceResult

from payments.collaborators import default_notifier
from payments.events import PaymentEvent, PaymentEventType
from payments.exceptions import PaymentValidationError
from payments.references import parse_reference
from payments.services.refund_workflow import RefundWorkflow

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

    from payments.protocols import PaymentNotifier


REQUIRED_COLUMNS = ("date", "amount", "reference")


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class UnmatchedRow:
    row: int
    date: str
    amount: Decimal
    reference: str
    reason: str


@dataclass
class ReconciliationReport:
    total_rows: int = 0
    matched_rows: int = 0
    refunds_settled: int = 0
    payments_reconciled: int = 0
    unmatched_rows: list[UnmatchedRow] = field(default_factory=list)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched_rows)

    @property
    def summary(self) -> str:
        return (
            f"Successfully processed {self.total_rows} rows, matched {self.matched_rows}, "
            f"settled {self.refunds_settled} refunds, reconciled {self.payments_reconciled} payments"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "matched_rows": self.matched_rows,
            "unmatched_rows_count": self.unmatched_count,
            "refunds_settled": self.refunds_settled,
            "payments_reconciled": self.payments_reconciled,
            "summary": self.summary,
            "unmatched_rows": [
                {**asdict(row), "amount": str(row.amount)} for row in self.unmatched_rows
            ],
        }


# =============================================================================
# Parsing
# =============================================================================


def _parse_amount(value: Any) -> Decimal | None:
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _parse_statement_date(value: str) -> datetime | None:
    """Accept ISO datetimes or plain dates; naive values use the current timezone."""
    value = (value or "").strip()
    if not value:
        return None
    try:
        parsed = parse_datetime(value)
        if parsed is None:
            day = parse_date(value)
            if day is None:
                return None
            parsed = datetime.combine(day, time.min)
    except ValueError:
        return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def decode_statement(content: str | bytes, encoding: str = "base64") -> str:
    """Return the CSV text of an uploaded statement."""
    if encoding == "text":
        return content.decode("utf-8") if isinstance(content, bytes) else content
    if encoding != "base64":
        raise PaymentValidationError(
            f"Unsupported statement encoding: {encoding}",
            details={"encoding": encoding},
        )
    try:
        return base64.b64decode(content, validate=False).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise PaymentValidationError("Statement content is not valid base64 UTF-8 text")


def parse_statement_csv(text: str) -> list[dict[str, str]]:
    """
    Split a bank statement CSV into row dicts.

    Columns are located by header name, case-insensitively: ``date``,
    ``amount``, ``reference`` and an optional ``txn``/``transaction`` id.
    A row too short to hold the required columns is returned with those
    keys missing so the engine reports it as malformed.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise PaymentValidationError("CSV must have at least header and one data row")

    reader = csv.reader(io.StringIO("\n".join(lines)))
    header = [column.strip().lower() for column in next(reader)]

    def find(*names: str) -> int:
        for index, column in enumerate(header):
            if any(name in column for name in names):
                return index
        return -1

    indexes = {
        "date": find("date"),
        "amount": find("amount"),
        "reference": find("reference"),
        "txn_id": find("txn", "transaction"),
    }
    if any(indexes[name] == -1 for name in REQUIRED_COLUMNS):
        raise PaymentValidationError(
            "CSV must contain date, amount, and reference columns",
            details={"header": header},
        )

    rows = []
    for columns in reader:
        row = {}
        for name, index in indexes.items():
            if index != -1 and index < len(columns):
                row[name] = columns[index].strip()
        rows.append(row)
    return rows


# =============================================================================
# Reconciliation Engine
# =============================================================================


class ReconciliationEngine(BaseService):
    """Settle refunds and tally payments found on a bank statement."""

    def __init__(
        self,
        refund_workflow: RefundWorkflow | None = None,
        notifier: PaymentNotifier | None = None,
    ) -> None:
        self.notifier = notifier or default_notifier()
        self.refund_workflow = refund_workflow or RefundWorkflow(notifier=self.notifier)
        self.logger = self.get_logger()

    def reconcile_csv(self, content: str | bytes, encoding: str = "base64") -> ServiceResult[ReconciliationReport]:
        try:
            rows = parse_statement_csv(decode_statement(content, encoding))
        except BaseApplicationError as e:
            return self.handle_exception(e, "Bank statement reconciliation failed")
        return self.reconcile(rows)

    def reconcile(self, rows: Iterable[dict[str, Any]]) -> ServiceResult[ReconciliationReport]:
        """
        Reconcile already-split statement rows.

        Each row is a dict with ``date``, ``amount``, ``reference`` and
        optionally ``txn_id``.
        """
        report = ReconciliationReport()
        run_started = timestamp_ms()

        for i, row in enumerate(rows):
            report.total_rows += 1
            row_number = i + 2

            if any(row.get(name) is None for name in REQUIRED_COLUMNS):
                report.unmatched_rows.append(
                    UnmatchedRow(
                        row=row_number,
                        date=row.get("date") or "N/A",
                        amount=_parse_amount(row.get("amount")) or Decimal("0"),
                        reference=row.get("reference") or "N/A",
                        reason="Invalid row format",
                    )
                )
                continue

            date = str(row["date"])
            reference = str(row["reference"])
            amount = _parse_amount(row["amount"])
            if amount is None or amount <= 0:
                report.unmatched_rows.append(
                    UnmatchedRow(row=row_number, date=date, amount=Decimal("0"), reference=reference, reason="Invalid amount")
                )
                continue

            parsed = parse_reference(reference)

            if parsed.is_refund and parsed.refund_id:
                provider_ref = row.get("txn_id") or f"CSV_{run_started}_{i}"
                result = self.refund_workflow.settle_refund(
                    parsed.refund_id,
                    provider_ref=provider_ref,
                    settled_at=_parse_statement_date(date),
                    actor=None,
                )
                if result.success:
                    report.refunds_settled += 1
                    report.matched_rows += 1
                else:
                    report.unmatched_rows.append(
                        UnmatchedRow(
                            row=row_number,
                            date=date,
                            amount=amount,
                            reference=reference,
                            reason=f"Refund settlement failed: {result.error}",
                        )
                    )
            elif parsed.is_payment and parsed.payment_id:
                report.payments_reconciled += 1
                report.matched_rows += 1
            else:
                report.unmatched_rows.append(
                    UnmatchedRow(
                        row=row_number,
                        date=date,
                        amount=amount,
                        reference=reference,
                        reason="Unknown reference format",
                    )
                )

        self.logger.info(
            report.summary,
            extra={
                "total_rows": report.total_rows,
                "matched_rows": report.matched_rows,
                "unmatched_rows": report.unmatched_count,
            },
        )
        self.notifier.publish(
            PaymentEvent(
                type=PaymentEventType.PAYMENT_RECONCILIATION,
                data={
                    "total_rows": report.total_rows,
                    "matched_rows": report.matched_rows,
                    "unmatched_rows": report.unmatched_count,
                    "refunds_settled": report.refunds_settled,
                    "payments_reconciled": report.payments_reconciled,
                    "summary": report.summary,
                },
            )
        )
        return ServiceResult.success(report)
