"""
ActivityRecorder -- the human-readable activity feed.

Turns ledger results into ``activity_logs`` rows such as::

    Payment recorded: ₦5,000.00 via cash
    Payment confirmed: ₦5,000.00 - Invoice status updated to partial

Transaction boundary: flush only.  The caller decides whether the entry
commits with its own unit of work (``session_scope``) or separately.
Payment operations commit before their results reach this recorder, so a
failed activity write never undoes the payment it describes.
"""

from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fee_ledger.config import FeeLedgerConfig
from fee_ledger.db.types import format_currency
from fee_ledger.domain.clock import Clock, SystemClock
from fee_ledger.domain.types import (
    ActivityEntry,
    ActivityType,
    Invoice,
    PaymentResult,
    ReconciliationResult,
)
from fee_ledger.logging_config import get_logger
from fee_ledger.models.activity_log import ActivityLogModel
from fee_ledger.selectors.activity_selector import ActivitySelector
from fee_ledger.services.base import BaseService, storage_operation

logger = get_logger("services.activity_recorder")


class ActivityRecorder(BaseService):
    """Append entries to the activity log and read the latest ones back."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: FeeLedgerConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or FeeLedgerConfig()

    def record(
        self,
        activity_type: ActivityType,
        description: str,
        user_id: UUID | None = None,
        entity_type: str | None = None,
        entity_id: UUID | None = None,
    ) -> ActivityEntry:
        with storage_operation("record activity"):
            row = ActivityLogModel(
                id=uuid4(),
                activity_type=ActivityType(activity_type).value,
                description=description,
                user_id=user_id,
                entity_type=entity_type,
                entity_id=entity_id,
                created_at=self._clock.now(),
            )
            self.session.add(row)
            self.session.flush()
            entry = row.to_dto()

        logger.debug(
            "activity_recorded",
            extra={"activity_type": entry.activity_type.value, "entity_id": entity_id},
        )
        return entry

    def _money(self, amount) -> str:
        return format_currency(amount, self._config.currency_symbol)

    def record_payment_received(self, result: PaymentResult, actor_id: UUID) -> ActivityEntry:
        payment = result.payment
        return self.record(
            ActivityType.PAYMENT_RECEIVED,
            f"Payment recorded: {self._money(payment.amount)} "
            f"via {payment.payment_method.value}",
            user_id=actor_id,
            entity_type="payment",
            entity_id=payment.id,
        )

    def record_payment_confirmed(self, result: PaymentResult, actor_id: UUID) -> ActivityEntry:
        """The status suffix is only added when the invoice status changed."""
        description = f"Payment confirmed: {self._money(result.payment.amount)}"
        if result.status_changed:
            description += f" - Invoice status updated to {result.invoice.status.value}"
        return self.record(
            ActivityType.PAYMENT_CONFIRMED,
            description,
            user_id=actor_id,
            entity_type="payment",
            entity_id=result.payment.id,
        )

    def record_invoice_generated(
        self,
        invoice: Invoice,
        actor_id: UUID,
        student_name: str | None = None,
    ) -> ActivityEntry:
        description = f"Generated invoice {invoice.invoice_number}"
        if student_name:
            description += f" for {student_name}"
        return self.record(
            ActivityType.INVOICE_GENERATED,
            description,
            user_id=actor_id,
            entity_type="invoice",
            entity_id=invoice.id,
        )

    def record_invoice_reconciled(
        self,
        result: ReconciliationResult,
        actor_id: UUID,
    ) -> ActivityEntry:
        return self.record(
            ActivityType.INVOICE_RECONCILED,
            f"Invoice reconciled: paid amount {self._money(result.previous_paid_amount)}"
            f" -> {self._money(result.paid_amount)}, status {result.status.value}",
            user_id=actor_id,
            entity_type="invoice",
            entity_id=result.invoice_id,
        )

    def recent(self, limit: int = 20) -> list[ActivityEntry]:
        """Latest entries, newest first."""
        with storage_operation("list activity"):
            return [row.to_dto() for row in ActivitySelector(self.session).recent(limit)]
