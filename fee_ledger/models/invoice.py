"""
Module: fee_ledger.models.invoice
Responsibility: ORM persistence for student fee invoices.
Architecture position: Ledger > Models.  May import from db/ and domain/types
    only.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - invoice_number is unique (uq_invoices_invoice_number).
    - balance is a hybrid property (total_amount - paid_amount); there is no
      balance column and nothing can set it.
    - version is SQLAlchemy's version_id_col: an UPDATE that does not match
      the version it read raises StaleDataError, which the payment lifecycle
      maps to OptimisticLockError.

Failure modes:
    - IntegrityError on duplicate invoice_number.
    - StaleDataError on concurrent modification of paid_amount/status.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fee_ledger.db.base import TrackedBase
from fee_ledger.domain.types import Invoice, InvoiceStatus, SchoolTerm

if TYPE_CHECKING:
    from fee_ledger.models.payment import PaymentModel


class InvoiceModel(TrackedBase):
    """
    ORM model for invoices.

    Guarantees:
        - total_amount is fixed at generation.
        - paid_amount is a cached projection of confirmed payments, written
          only by payment confirmation and reconciliation.
        - status stored as the InvoiceStatus string value.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        UniqueConstraint(
            "student_id",
            "academic_session_id",
            "term",
            name="uq_invoices_student_session_term",
        ),
        Index("idx_invoices_student_id", "student_id"),
        Index("idx_invoices_status", "status"),
        Index("idx_invoices_due_date", "due_date"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    student_id: Mapped[UUID] = mapped_column(nullable=False)
    academic_session_id: Mapped[UUID] = mapped_column(nullable=False)
    term: Mapped[str | None] = mapped_column(String(20), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.PENDING.value
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    generated_by: Mapped[UUID] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    payments: Mapped[list["PaymentModel"]] = relationship(
        back_populates="invoice",
        order_by="PaymentModel.created_at",
    )

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def balance(self) -> Decimal:
        return self.total_amount - self.paid_amount

    def to_dto(self) -> Invoice:
        """Convert ORM model to frozen dataclass."""
        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            student_id=self.student_id,
            academic_session_id=self.academic_session_id,
            total_amount=self.total_amount,
            paid_amount=self.paid_amount,
            status=InvoiceStatus(self.status),
            generated_at=self.generated_at,
            generated_by=self.generated_by,
            term=SchoolTerm(self.term) if self.term else None,
            due_date=self.due_date,
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number}: {self.status}>"
