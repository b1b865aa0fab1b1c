"""Selectors for the fee ledger (read side)."""

from fee_ledger.selectors.activity_selector import ActivitySelector
from fee_ledger.selectors.base import BaseSelector
from fee_ledger.selectors.invoice_selector import InvoiceSelector
from fee_ledger.selectors.payment_selector import PaymentSelector

__all__ = [
    "ActivitySelector",
    "BaseSelector",
    "InvoiceSelector",
    "PaymentSelector",
]
