"""
PaymentSelector -- payment lookups and aggregates.

``confirmed_total()`` is the aggregate the invoice ledger recomputes balances
from.  It sums ``payments.amount`` in the database and never reads the
cached ``invoices.paid_amount``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from fee_ledger.db.types import ZERO, to_money
from fee_ledger.domain.types import PaymentMethod, PaymentStatistics, PaymentStatus
from fee_ledger.models.payment import PaymentModel
from fee_ledger.selectors.base import BaseSelector


class PaymentSelector(BaseSelector):
    """Read access to payment rows and payment aggregates."""

    def get(self, payment_id: UUID, for_update: bool = False) -> PaymentModel | None:
        stmt = select(PaymentModel).where(PaymentModel.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def confirmed_total(self, invoice_id: UUID) -> Decimal:
        """Sum of amounts of this invoice's confirmed payments (0 if none)."""
        total = self.session.execute(
            select(func.sum(PaymentModel.amount)).where(
                PaymentModel.invoice_id == invoice_id,
                PaymentModel.status == PaymentStatus.CONFIRMED.value,
            )
        ).scalar()
        return to_money(total) if total is not None else ZERO

    def list_for_invoice(self, invoice_id: UUID) -> list[PaymentModel]:
        """All payments for an invoice, most recent payment_date first."""
        return list(
            self.session.execute(
                select(PaymentModel)
                .where(PaymentModel.invoice_id == invoice_id)
                .order_by(
                    PaymentModel.payment_date.desc(),
                    PaymentModel.created_at.desc(),
                )
            ).scalars()
        )

    def statistics(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        today: date | None = None,
    ) -> PaymentStatistics:
        """
        Totals over confirmed payments, optionally bounded by payment_date.

        ``today`` selects which day the ``today_*`` figures describe; when
        omitted they are zero.
        """
        conditions = [PaymentModel.status == PaymentStatus.CONFIRMED.value]
        if date_from is not None:
            conditions.append(PaymentModel.payment_date >= date_from)
        if date_to is not None:
            conditions.append(PaymentModel.payment_date <= date_to)

        rows = self.session.execute(
            select(
                PaymentModel.payment_method,
                func.count(PaymentModel.id),
                func.sum(PaymentModel.amount),
            )
            .where(*conditions)
            .group_by(PaymentModel.payment_method)
        ).all()

        by_method = {PaymentMethod(method): to_money(amount) for method, _, amount in rows}
        total_count = sum(count for _, count, _ in rows)

        today_count, today_amount = 0, ZERO
        if today is not None:
            count, amount = self.session.execute(
                select(func.count(PaymentModel.id), func.sum(PaymentModel.amount)).where(
                    *conditions, PaymentModel.payment_date == today
                )
            ).one()
            today_count = count
            today_amount = to_money(amount) if amount is not None else ZERO

        return PaymentStatistics(
            total_amount=sum(by_method.values(), ZERO),
            total_count=total_count,
            today_amount=today_amount,
            today_count=today_count,
            by_method=by_method,
        )
