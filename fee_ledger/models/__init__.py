"""ORM models for the fee ledger."""

from fee_ledger.models.activity_log import ActivityLogModel
from fee_ledger.models.invoice import InvoiceModel
from fee_ledger.models.payment import PaymentModel

__all__ = [
    "ActivityLogModel",
    "InvoiceModel",
    "PaymentModel",
]
