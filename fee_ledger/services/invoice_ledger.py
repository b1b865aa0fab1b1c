"""
InvoiceLedger -- invoice balances recomputed from confirmed payments.

Responsibility:
    Answers "how much has actually been paid on this invoice?" from the
    sum of its confirmed payments, never from the cached
    ``invoices.paid_amount`` column.  Also owns the repair operation that
    rewrites the cached column (and status) when the two have drifted.

Architecture position:
    Ledger > Services.  Read side uses InvoiceSelector / PaymentSelector.
    PaymentLifecycle uses ``current_paid_amount`` when confirming.

Invariants enforced:
    - current paid amount = sum(amount) over payments with status confirmed.
    - ``reconcile_invoice`` runs under the per-invoice lock and a row lock,
      then commits; it never touches payments.
    - overdue and cancelled are administrative statuses: reconciliation
      keeps them as long as the paid amount is already correct.

Failure modes:
    - InvoiceNotFoundError if the invoice does not exist.
    - StorageError wrapping any database failure.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from fee_ledger.domain.clock import Clock, SystemClock
from fee_ledger.domain.rules import calculate_status
from fee_ledger.domain.types import InvoiceBalance, InvoiceStatus, ReconciliationResult
from fee_ledger.exceptions import InvoiceNotFoundError
from fee_ledger.logging_config import LogContext, get_logger
from fee_ledger.selectors.invoice_selector import InvoiceSelector
from fee_ledger.selectors.payment_selector import PaymentSelector
from fee_ledger.services.base import BaseService, storage_operation
from fee_ledger.services.invoice_locks import InvoiceLockRegistry, default_invoice_locks

logger = get_logger("services.invoice_ledger")

_ADMINISTRATIVE_STATUSES = frozenset({InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED})


class InvoiceLedger(BaseService):
    """
    Balance recomputation and cached-total repair for invoices.

    Transaction boundary: read methods run in the caller's transaction;
    ``reconcile_invoice`` commits on success and rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        locks: InvoiceLockRegistry | None = None,
        lock_timeout: float | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._locks = locks if locks is not None else default_invoice_locks
        self._lock_timeout = lock_timeout
        self._invoices = InvoiceSelector(session)
        self._payments = PaymentSelector(session)

    calculate_status = staticmethod(calculate_status)

    def current_paid_amount(self, invoice_id: UUID) -> Decimal:
        """Sum of confirmed payment amounts for the invoice."""
        return self._payments.confirmed_total(invoice_id)

    def get_invoice_with_current_paid(self, invoice_id: UUID) -> InvoiceBalance:
        """
        Load an invoice and recompute its paid amount.

        Raises:
            InvoiceNotFoundError: if no invoice has this id.
        """
        with storage_operation("get invoice details"):
            invoice = self._invoices.get(invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(str(invoice_id))
            paid = self.current_paid_amount(invoice_id)
            return InvoiceBalance(invoice=invoice.to_dto(), current_paid_amount=paid)

    def reconcile_invoice(self, invoice_id: UUID, actor_id: UUID) -> ReconciliationResult:
        """
        Rewrite the cached paid amount and status from confirmed payments.

        A no-op (nothing written) when the invoice is already consistent.
        """
        with LogContext.bind(actor_id=actor_id, invoice_id=invoice_id):
            with self._locks.hold(invoice_id, timeout=self._lock_timeout):
                with self._transaction("reconcile invoice"):
                    invoice = self._invoices.get(invoice_id, for_update=True)
                    if invoice is None:
                        raise InvoiceNotFoundError(str(invoice_id))

                    previous_paid = invoice.paid_amount
                    previous_status = InvoiceStatus(invoice.status)
                    paid = self.current_paid_amount(invoice_id)

                    if paid == previous_paid and previous_status in _ADMINISTRATIVE_STATUSES:
                        status = previous_status
                    else:
                        status = calculate_status(invoice.total_amount, paid)

                    result = ReconciliationResult(
                        invoice_id=invoice_id,
                        previous_paid_amount=previous_paid,
                        paid_amount=paid,
                        previous_status=previous_status,
                        status=status,
                    )
                    if result.changed:
                        invoice.paid_amount = paid
                        invoice.status = status.value
                        self.session.flush()

            if result.changed:
                logger.warning(
                    "invoice_reconciled",
                    extra={
                        "previous_paid_amount": str(previous_paid),
                        "paid_amount": str(paid),
                        "previous_status": previous_status.value,
                        "status": status.value,
                        "reconciled_at": self._clock.now().isoformat(),
                    },
                )
            else:
                logger.info("invoice_reconcile_noop")
            return result
