"""
Pure domain layer.

Value objects, enums, validation rules and status derivation with NO
dependency on sessions, the database or the system clock.
"""

from fee_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from fee_ledger.domain.rules import (
    calculate_status,
    requires_bank_details,
    validate_bank_details,
    validate_payment_amount,
)
from fee_ledger.domain.types import (
    ActivityEntry,
    ActivityType,
    ConsistencyReport,
    Invoice,
    InvoiceBalance,
    InvoiceStatus,
    Payment,
    PaymentData,
    PaymentMethod,
    PaymentResult,
    PaymentStatistics,
    PaymentStatus,
    ReconciliationResult,
    SchoolTerm,
)

__all__ = [
    "ActivityEntry",
    "ActivityType",
    "Clock",
    "ConsistencyReport",
    "DeterministicClock",
    "Invoice",
    "InvoiceBalance",
    "InvoiceStatus",
    "Payment",
    "PaymentData",
    "PaymentMethod",
    "PaymentResult",
    "PaymentStatistics",
    "PaymentStatus",
    "ReconciliationResult",
    "SchoolTerm",
    "SystemClock",
    "calculate_status",
    "requires_bank_details",
    "validate_bank_details",
    "validate_payment_amount",
]
