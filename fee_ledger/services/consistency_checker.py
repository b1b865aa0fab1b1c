"""
ConsistencyChecker -- advisory audit of an invoice's confirmed payments.

Responsibility:
    Reports over-collection and duplicated transaction references across an
    invoice's confirmed payments.  Purely read-only: it never repairs
    anything (see ``InvoiceLedger.reconcile_invoice`` for that) and never
    blocks a write.

    Drift between the cached ``invoices.paid_amount`` and the confirmed
    total is reported on the report (``has_drift``) but is not an error:
    a pending confirmation elsewhere can legitimately be mid-flight.

Architecture position:
    Ledger > Services.  Read-only; uses selectors only.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from fee_ledger.config import FeeLedgerConfig
from fee_ledger.db.types import ZERO, format_currency
from fee_ledger.domain.types import ConsistencyReport, PaymentStatus
from fee_ledger.exceptions import InvoiceNotFoundError
from fee_ledger.logging_config import LogContext, get_logger
from fee_ledger.models.payment import PaymentModel
from fee_ledger.selectors.invoice_selector import InvoiceSelector
from fee_ledger.selectors.payment_selector import PaymentSelector
from fee_ledger.services.base import BaseService, storage_operation

logger = get_logger("services.consistency_checker")


def find_duplicate_references(payments: list[PaymentModel]) -> tuple[str, ...]:
    """
    Transaction references used by more than one payment.

    Blank references are ignored.  Each duplicated reference is listed once,
    in the order it first appears.
    """
    seen: set[str] = set()
    duplicates: list[str] = []
    for payment in payments:
        ref = payment.transaction_reference
        if not ref or not ref.strip():
            continue
        if ref in seen and ref not in duplicates:
            duplicates.append(ref)
        seen.add(ref)
    return tuple(duplicates)


class ConsistencyChecker(BaseService):
    """Read-only audits over invoices and their confirmed payments."""

    def __init__(self, session: Session, config: FeeLedgerConfig | None = None):
        super().__init__(session)
        self._config = config or FeeLedgerConfig()
        self._invoices = InvoiceSelector(session)
        self._payments = PaymentSelector(session)

    def _money(self, amount) -> str:
        return format_currency(amount, self._config.currency_symbol)

    def validate_invoice_payments(self, invoice_id: UUID) -> ConsistencyReport:
        """
        Audit one invoice.

        Raises:
            InvoiceNotFoundError: if no invoice has this id.
        """
        with LogContext.bind(invoice_id=invoice_id):
            with storage_operation("validate invoice payments"):
                invoice = self._invoices.get(invoice_id)
                if invoice is None:
                    raise InvoiceNotFoundError(str(invoice_id))
                confirmed = [
                    p
                    for p in self._payments.list_for_invoice(invoice_id)
                    if p.status == PaymentStatus.CONFIRMED.value
                ]

            total_payments = sum((p.amount for p in confirmed), ZERO)
            errors: list[str] = []

            if total_payments > invoice.total_amount:
                errors.append(
                    f"Total payments ({self._money(total_payments)}) exceed "
                    f"invoice total ({self._money(invoice.total_amount)})"
                )

            duplicates = find_duplicate_references(confirmed)
            if duplicates:
                errors.append(
                    f"Duplicate transaction references found: {', '.join(duplicates)}"
                )

            report = ConsistencyReport(
                invoice_id=invoice_id,
                total_payments=total_payments,
                invoice_total=invoice.total_amount,
                stored_paid_amount=invoice.paid_amount,
                errors=tuple(errors),
                duplicate_references=duplicates,
            )

            if not report.is_valid:
                logger.warning(
                    "invoice_consistency_errors",
                    extra={"errors": list(report.errors)},
                )
            if report.has_drift:
                logger.warning(
                    "invoice_paid_amount_drift",
                    extra={
                        "stored_paid_amount": str(report.stored_paid_amount),
                        "total_payments": str(report.total_payments),
                    },
                )
            return report

    def audit_all(self, limit: int | None = None) -> list[ConsistencyReport]:
        """Audit every invoice (oldest first), optionally the first ``limit``."""
        with storage_operation("audit invoices"):
            invoice_ids = self._invoices.list_ids(limit=limit)
        reports = [self.validate_invoice_payments(invoice_id) for invoice_id in invoice_ids]
        logger.info(
            "invoice_audit_completed",
            extra={
                "invoices_checked": len(reports),
                "invalid": sum(1 for r in reports if not r.is_valid),
                "drifted": sum(1 for r in reports if r.has_drift),
            },
        )
        return reports
