"""
Ledger services (write side and audits).

    InvoiceLedger        balances recomputed from confirmed payments, repair
    PaymentLifecycle     record / confirm payments
    ConsistencyChecker   advisory audits
    InvoiceService       invoice generation
    ActivityRecorder     human-readable activity feed
"""

from fee_ledger.services.activity_recorder import ActivityRecorder
from fee_ledger.services.base import BaseService, storage_operation
from fee_ledger.services.consistency_checker import ConsistencyChecker
from fee_ledger.services.invoice_ledger import InvoiceLedger
from fee_ledger.services.invoice_locks import InvoiceLockRegistry, default_invoice_locks
from fee_ledger.services.invoice_service import InvoiceService
from fee_ledger.services.payment_lifecycle import PaymentLifecycle

__all__ = [
    "ActivityRecorder",
    "BaseService",
    "ConsistencyChecker",
    "InvoiceLedger",
    "InvoiceLockRegistry",
    "InvoiceService",
    "PaymentLifecycle",
    "default_invoice_locks",
    "storage_operation",
]
