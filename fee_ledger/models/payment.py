"""
Module: fee_ledger.models.payment
Responsibility: ORM persistence for payments received against invoices.
Architecture position: Ledger > Models.  May import from db/ and domain/types
    only.

Invariants enforced:
    - payment_reference is unique (uq_payments_payment_reference).
    - Every payment references exactly one invoice (FK, NOT NULL).
    - amount is never updated after insert; only status and confirmed_by
      change, and only through PaymentLifecycle.confirm_payment().
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fee_ledger.db.base import TrackedBase
from fee_ledger.domain.types import Payment, PaymentMethod, PaymentStatus

if TYPE_CHECKING:
    from fee_ledger.models.invoice import InvoiceModel


class PaymentModel(TrackedBase):
    """ORM model for payments."""

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("payment_reference", name="uq_payments_payment_reference"),
        Index("idx_payments_invoice_status", "invoice_id", "status"),
        Index("idx_payments_payment_date", "payment_date"),
        Index("idx_payments_transaction_reference", "transaction_reference"),
    )

    payment_reference: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    received_by: Mapped[UUID] = mapped_column(nullable=False)
    confirmed_by: Mapped[UUID | None] = mapped_column(nullable=True)

    invoice: Mapped["InvoiceModel"] = relationship(back_populates="payments")

    def to_dto(self) -> Payment:
        """Convert ORM model to frozen dataclass."""
        return Payment(
            id=self.id,
            payment_reference=self.payment_reference,
            invoice_id=self.invoice_id,
            amount=self.amount,
            payment_method=PaymentMethod(self.payment_method),
            payment_date=self.payment_date,
            status=PaymentStatus(self.status),
            received_by=self.received_by,
            created_at=self.created_at,
            transaction_reference=self.transaction_reference,
            bank_name=self.bank_name,
            notes=self.notes,
            confirmed_by=self.confirmed_by,
        )

    def __repr__(self) -> str:
        return f"<PaymentModel {self.payment_reference}: {self.amount} {self.status}>"
