"""
PaymentLifecycle -- record and confirm payments against invoices.

Responsibility:
    ``record_payment`` validates a payment against the invoice's current
    balance and stores it as pending.  ``confirm_payment`` marks a pending
    payment confirmed and rewrites the invoice's cached paid amount and
    status from the recomputed confirmed total.

Architecture position:
    Ledger > Services.  Uses InvoiceLedger for balance recomputation and the
    validation rules in domain/rules.py.

Invariants enforced:
    - A recorded payment starts pending and does not change the invoice.
    - After a successful confirmation:
        invoice.paid_amount == sum(confirmed payment amounts)
        invoice.status == calculate_status(total_amount, paid_amount)
    - The payment update and the invoice update commit together or not at
      all.
    - Confirmations on the same invoice are serialized: the per-invoice lock
      is held from the first invoice read until after COMMIT, the invoice
      row is read with SELECT ... FOR UPDATE, and the row's version column
      rejects any write computed from a stale read.

Failure modes:
    - ValidationError (field-tagged) for bad amounts or missing bank details.
    - InvoiceNotFoundError / PaymentNotFoundError for unknown ids.
    - PaymentAlreadyConfirmedError when confirming twice.
    - OptimisticLockError if the invoice row changed underneath us.
    - InvoiceLockTimeoutError if the per-invoice lock is not acquired in time.
    - StorageError wrapping any other database failure.
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fee_ledger.config import FeeLedgerConfig
from fee_ledger.db.types import format_currency
from fee_ledger.domain.clock import Clock, SystemClock
from fee_ledger.domain.references import generate_payment_reference
from fee_ledger.domain.rules import (
    calculate_status,
    validate_bank_details,
    validate_payment_amount,
)
from fee_ledger.domain.types import (
    InvoiceStatus,
    Payment,
    PaymentData,
    PaymentResult,
    PaymentStatus,
)
from fee_ledger.exceptions import (
    InvoiceNotFoundError,
    OptimisticLockError,
    PaymentAlreadyConfirmedError,
    PaymentNotFoundError,
)
from fee_ledger.logging_config import LogContext, get_logger
from fee_ledger.models.payment import PaymentModel
from fee_ledger.selectors.invoice_selector import InvoiceSelector
from fee_ledger.selectors.payment_selector import PaymentSelector
from fee_ledger.services.base import BaseService, storage_operation
from fee_ledger.services.invoice_ledger import InvoiceLedger
from fee_ledger.services.invoice_locks import InvoiceLockRegistry, default_invoice_locks

logger = get_logger("services.payment_lifecycle")


class PaymentLifecycle(BaseService):
    """
    Payment recording and confirmation.

    Transaction boundary: this service commits on success and rolls back
    on failure.

    Usage:
        lifecycle = PaymentLifecycle(session, clock=SystemClock())
        recorded = lifecycle.record_payment(
            invoice_id,
            PaymentData(amount=Decimal("5000"), payment_method="cash"),
            received_by=bursar_id,
        )
        confirmed = lifecycle.confirm_payment(
            recorded.payment.id, confirmed_by=bursar_id,
        )
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: FeeLedgerConfig | None = None,
        locks: InvoiceLockRegistry | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or FeeLedgerConfig()
        self._locks = locks if locks is not None else default_invoice_locks
        self._ledger = InvoiceLedger(
            session,
            clock=self._clock,
            locks=self._locks,
            lock_timeout=self._config.lock_timeout_seconds,
        )
        self._invoices = InvoiceSelector(session)
        self._payments = PaymentSelector(session)

    # =========================================================================
    # Recording
    # =========================================================================

    def record_payment(
        self,
        invoice_id: UUID,
        payment_data: PaymentData | Mapping[str, Any],
        received_by: UUID,
    ) -> PaymentResult:
        """
        Store a pending payment after validating it against the balance.

        The balance is ``total_amount`` minus the recomputed confirmed
        total.  Pending payments do not reduce it, so several pending
        payments may together exceed the invoice total; confirmation does
        not re-check the bound.

        Returns:
            PaymentResult with the new payment, the invoice snapshot used
            for validation, and ``status_changed=False``.
        """
        if not isinstance(payment_data, PaymentData):
            payment_data = PaymentData.from_mapping(payment_data)

        with LogContext.bind(actor_id=received_by, invoice_id=invoice_id):
            with self._transaction("record payment"):
                snapshot = self._ledger.get_invoice_with_current_paid(invoice_id)

                validate_payment_amount(
                    payment_data.amount,
                    snapshot.balance,
                    existing_confirmed_total=snapshot.current_paid_amount,
                )
                validate_bank_details(
                    payment_data.payment_method,
                    payment_data.bank_name,
                    payment_data.transaction_reference,
                )

                now = self._clock.now()
                payment = PaymentModel(
                    id=uuid4(),
                    payment_reference=generate_payment_reference(
                        now, prefix=self._config.payment_reference_prefix
                    ),
                    invoice_id=invoice_id,
                    amount=payment_data.amount,
                    payment_method=payment_data.payment_method.value,
                    payment_date=payment_data.payment_date or now.date(),
                    transaction_reference=payment_data.transaction_reference,
                    bank_name=payment_data.bank_name,
                    status=PaymentStatus.PENDING.value,
                    notes=payment_data.notes,
                    received_by=received_by,
                    created_at=now,
                )
                self.session.add(payment)
                self.session.flush()
                recorded = payment.to_dto()

            logger.info(
                "payment_recorded",
                extra={
                    "payment_id": str(recorded.id),
                    "payment_reference": recorded.payment_reference,
                    "amount": str(recorded.amount),
                    "payment_method": recorded.payment_method.value,
                },
            )
            return PaymentResult(
                payment=recorded,
                invoice=snapshot.invoice,
                status_changed=False,
            )

    # =========================================================================
    # Confirmation
    # =========================================================================

    def confirm_payment(self, payment_id: UUID, confirmed_by: UUID) -> PaymentResult:
        """
        Confirm a pending payment and update its invoice atomically.

        Returns:
            PaymentResult with the confirmed payment, the updated invoice,
            and whether the invoice status changed.
        """
        with LogContext.bind(actor_id=confirmed_by, payment_id=payment_id):
            with self._transaction("confirm payment"):
                located = self._payments.get(payment_id)
                if located is None:
                    raise PaymentNotFoundError(str(payment_id))
                invoice_id = located.invoice_id

            with LogContext.bind(invoice_id=invoice_id):
                with self._locks.hold(
                    invoice_id, timeout=self._config.lock_timeout_seconds
                ):
                    with self._transaction("confirm payment"):
                        result = self._confirm_locked(
                            payment_id, invoice_id, confirmed_by
                        )

                logger.info(
                    "payment_confirmed",
                    extra={
                        "amount": str(result.payment.amount),
                        "paid_amount": str(result.invoice.paid_amount),
                        "status": result.invoice.status.value,
                        "status_changed": result.status_changed,
                    },
                )
                return result

    def _confirm_locked(
        self,
        payment_id: UUID,
        invoice_id: UUID,
        confirmed_by: UUID,
    ) -> PaymentResult:
        invoice = self._invoices.get(invoice_id, for_update=True)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        payment = self._payments.get(payment_id, for_update=True)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        if payment.status == PaymentStatus.CONFIRMED.value:
            raise PaymentAlreadyConfirmedError(str(payment_id), payment.payment_reference)

        previous_status = InvoiceStatus(invoice.status)
        paid = self._ledger.current_paid_amount(invoice_id) + payment.amount
        status = calculate_status(invoice.total_amount, paid)

        if paid > invoice.total_amount:
            logger.warning(
                "invoice_overcollected",
                extra={
                    "paid_amount": str(paid),
                    "total_amount": str(invoice.total_amount),
                    "overcollected": format_currency(
                        paid - invoice.total_amount, self._config.currency_symbol
                    ),
                },
            )

        payment.status = PaymentStatus.CONFIRMED.value
        payment.confirmed_by = confirmed_by
        invoice.paid_amount = paid
        invoice.status = status.value
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning("invoice_version_conflict")
            raise OptimisticLockError("Invoice", str(invoice_id)) from exc

        return PaymentResult(
            payment=payment.to_dto(),
            invoice=invoice.to_dto(),
            status_changed=status != previous_status,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_payment(self, payment_id: UUID) -> Payment:
        with storage_operation("get payment"):
            payment = self._payments.get(payment_id)
            if payment is None:
                raise PaymentNotFoundError(str(payment_id))
            return payment.to_dto()

    def get_invoice_payments(self, invoice_id: UUID) -> list[Payment]:
        """All payments for an invoice, any status, newest payment_date first."""
        with storage_operation("get invoice payments"):
            return [p.to_dto() for p in self._payments.list_for_invoice(invoice_id)]
