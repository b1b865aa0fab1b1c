"""
InvoiceService -- generate fee invoices for students.

One invoice per (student, academic session, term).  A new invoice starts
pending with nothing paid; its number comes from ``generate_invoice_number``
and the UNIQUE constraint on ``invoice_number`` is the collision backstop.

Transaction boundary: this service commits on success and rolls back on
failure.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fee_ledger.config import FeeLedgerConfig
from fee_ledger.db.types import (
    STORED_DECIMAL_PLACES,
    ZERO,
    exceeds_money_precision,
    to_money,
)
from fee_ledger.domain.clock import Clock, SystemClock
from fee_ledger.domain.references import generate_invoice_number
from fee_ledger.domain.types import Invoice, InvoiceStatus, SchoolTerm
from fee_ledger.exceptions import DuplicateInvoiceError, ValidationError
from fee_ledger.logging_config import LogContext, get_logger
from fee_ledger.models.invoice import InvoiceModel
from fee_ledger.selectors.invoice_selector import InvoiceSelector
from fee_ledger.services.base import BaseService

logger = get_logger("services.invoice_service")


class InvoiceService(BaseService):
    """Invoice generation."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: FeeLedgerConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or FeeLedgerConfig()
        self._invoices = InvoiceSelector(session)

    def generate_invoice(
        self,
        student_id: UUID,
        academic_session_id: UUID,
        total_amount: Decimal | int | str,
        generated_by: UUID,
        term: SchoolTerm | str | None = None,
        due_date: date | None = None,
    ) -> Invoice:
        """
        Create a pending invoice for a student's session and term.

        Raises:
            ValidationError: ``total_amount`` not a positive number, or an
                unknown ``term``.
            DuplicateInvoiceError: the student already has an invoice for
                this session and term.
        """
        try:
            amount = to_money(total_amount)
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(
                f"Invoice total is not a number: {total_amount!r}",
                field="total_amount",
            ) from None
        if amount <= ZERO:
            raise ValidationError(
                "Invoice total must be greater than zero",
                field="total_amount",
            )
        if exceeds_money_precision(amount):
            raise ValidationError(
                f"Invoice total {amount} has more than "
                f"{STORED_DECIMAL_PLACES} decimal places or is too large",
                field="total_amount",
            )

        try:
            school_term = SchoolTerm(term) if term is not None else None
        except ValueError:
            raise ValidationError(f"Unknown term: {term!r}", field="term") from None
        term_value = school_term.value if school_term else None

        with LogContext.bind(actor_id=generated_by):
            with self._transaction("generate invoice"):
                existing = self._invoices.find_for_student_term(
                    student_id, academic_session_id, term_value
                )
                if existing is not None:
                    raise DuplicateInvoiceError(
                        str(student_id),
                        str(academic_session_id),
                        term_value,
                        str(existing.id),
                    )

                now = self._clock.now()
                invoice = InvoiceModel(
                    id=uuid4(),
                    invoice_number=generate_invoice_number(
                        now, prefix=self._config.invoice_number_prefix
                    ),
                    student_id=student_id,
                    academic_session_id=academic_session_id,
                    term=term_value,
                    total_amount=amount,
                    paid_amount=ZERO,
                    status=InvoiceStatus.PENDING.value,
                    due_date=due_date,
                    generated_at=now,
                    generated_by=generated_by,
                    created_at=now,
                )
                self.session.add(invoice)
                self.session.flush()
                generated = invoice.to_dto()

            logger.info(
                "invoice_generated",
                extra={
                    "invoice_id": str(generated.id),
                    "invoice_number": generated.invoice_number,
                    "student_id": str(student_id),
                    "total_amount": str(amount),
                    "term": term_value,
                },
            )
            return generated
