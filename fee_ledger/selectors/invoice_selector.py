"""
InvoiceSelector -- point lookups and listings over invoices.

``get(..., for_update=True)`` issues ``SELECT ... FOR UPDATE`` and refreshes
any copy already in the session's identity map, so a caller holding the
lock always sees the committed row.
"""

from uuid import UUID

from sqlalchemy import select

from fee_ledger.models.invoice import InvoiceModel
from fee_ledger.selectors.base import BaseSelector


class InvoiceSelector(BaseSelector):
    """Read access to invoice rows."""

    def get(self, invoice_id: UUID, for_update: bool = False) -> InvoiceModel | None:
        stmt = select(InvoiceModel).where(InvoiceModel.id == invoice_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_for_student_term(
        self,
        student_id: UUID,
        academic_session_id: UUID,
        term: str | None,
    ) -> InvoiceModel | None:
        """The invoice billed to a student for a session/term, if any."""
        stmt = select(InvoiceModel).where(
            InvoiceModel.student_id == student_id,
            InvoiceModel.academic_session_id == academic_session_id,
        )
        if term is None:
            stmt = stmt.where(InvoiceModel.term.is_(None))
        else:
            stmt = stmt.where(InvoiceModel.term == term)
        return self.session.execute(stmt.limit(1)).scalar_one_or_none()

    def list_ids(self, limit: int | None = None) -> list[UUID]:
        """All invoice ids, oldest first."""
        stmt = select(InvoiceModel.id).order_by(
            InvoiceModel.generated_at, InvoiceModel.invoice_number
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars())
