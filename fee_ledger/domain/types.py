"""
Fee ledger domain types (``fee_ledger.domain.types``).

Responsibility
--------------
Status enums and frozen dataclass value objects for invoices, payments and
the results returned by ledger operations.

Architecture position
---------------------
**Domain layer** -- pure data definitions with ZERO I/O.  Returned by the
services and selectors; ORM models convert to these via ``to_dto()``.

Invariants enforced
-------------------
* All value objects are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``Invoice.balance`` is derived from total and paid amounts; it has no
  setter and no constructor argument.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from fee_ledger.db.types import (
    STORED_DECIMAL_PLACES,
    ZERO,
    exceeds_money_precision,
    to_money,
)
from fee_ledger.exceptions import ValidationError


# =============================================================================
# Status enums
# =============================================================================


class InvoiceStatus(str, Enum):
    """Invoice payment status.

    ``pending``/``partial``/``paid`` are derived from the paid amount.
    ``overdue``/``cancelled`` are set outside this core.
    """

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment lifecycle status.

    Transitions implemented: PENDING -> CONFIRMED, exactly once.
    FAILED and REVERSED have no producing transition.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REVERSED = "reversed"


class PaymentMethod(str, Enum):
    """How the money was received."""

    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    POS = "pos"
    CHEQUE = "cheque"
    ONLINE = "online"


class SchoolTerm(str, Enum):
    """Academic term an invoice bills for."""

    FIRST_TERM = "first_term"
    SECOND_TERM = "second_term"
    THIRD_TERM = "third_term"


class ActivityType(str, Enum):
    """Activity log categories written by callers of the ledger."""

    INVOICE_GENERATED = "invoice_generated"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_CONFIRMED = "payment_confirmed"
    INVOICE_RECONCILED = "invoice_reconciled"


# =============================================================================
# Invoice / Payment DTOs
# =============================================================================


@dataclass(frozen=True)
class Invoice:
    """A student's fee invoice for one academic session (and optional term)."""

    id: UUID
    invoice_number: str
    student_id: UUID
    academic_session_id: UUID
    total_amount: Decimal
    paid_amount: Decimal
    status: InvoiceStatus
    generated_at: datetime
    generated_by: UUID
    term: SchoolTerm | None = None
    due_date: date | None = None

    @property
    def balance(self) -> Decimal:
        """Outstanding amount; always ``total_amount - paid_amount``."""
        return self.total_amount - self.paid_amount


@dataclass(frozen=True)
class Payment:
    """A single monetary transaction against one invoice."""

    id: UUID
    payment_reference: str
    invoice_id: UUID
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: date
    status: PaymentStatus
    received_by: UUID
    created_at: datetime
    transaction_reference: str | None = None
    bank_name: str | None = None
    notes: str | None = None
    confirmed_by: UUID | None = None

    @property
    def is_confirmed(self) -> bool:
        return self.status == PaymentStatus.CONFIRMED


@dataclass(frozen=True)
class PaymentData:
    """
    Caller-supplied input for recording a payment.

    ``amount`` accepts Decimal, int or numeric str; ``payment_method``
    accepts the enum or its string value.  Unparseable values raise
    ``ValidationError`` tagged with the field name, as do amounts that a
    ``Money`` column cannot hold exactly.  Sign and balance checks belong to
    the validation rules, not to construction.
    """

    amount: Decimal
    payment_method: PaymentMethod
    payment_date: date | None = None
    transaction_reference: str | None = None
    bank_name: str | None = None
    notes: str | None = None

    def __post_init__(self):
        try:
            object.__setattr__(self, "amount", to_money(self.amount))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(
                f"Payment amount is not a number: {self.amount!r}",
                field="amount",
            ) from None
        if exceeds_money_precision(self.amount):
            raise ValidationError(
                f"Payment amount {self.amount} has more than "
                f"{STORED_DECIMAL_PLACES} decimal places or is too large",
                field="amount",
            )
        try:
            object.__setattr__(
                self, "payment_method", PaymentMethod(self.payment_method)
            )
        except ValueError:
            raise ValidationError(
                f"Unknown payment method: {self.payment_method!r}",
                field="payment_method",
            ) from None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PaymentData:
        """Build from a plain mapping such as a decoded form or JSON body."""
        unknown = sorted(set(data) - {f.name for f in fields(cls)})
        if unknown:
            raise ValidationError(
                f"Unknown payment fields: {', '.join(unknown)}",
                field=unknown[0],
            )
        for name in ("amount", "payment_method"):
            if data.get(name) is None:
                raise ValidationError(f"Missing required field: {name}", field=name)
        return cls(**data)


@dataclass(frozen=True)
class InvoiceBalance:
    """
    Invoice plus its paid amount recomputed from confirmed payments.

    ``current_paid_amount`` is the source of truth; ``invoice.paid_amount``
    is the cached projection stored on the row.
    """

    invoice: Invoice
    current_paid_amount: Decimal

    @property
    def balance(self) -> Decimal:
        return self.invoice.total_amount - self.current_paid_amount

    @property
    def has_drift(self) -> bool:
        """True when the cached paid amount disagrees with the confirmed sum."""
        return self.invoice.paid_amount != self.current_paid_amount


@dataclass(frozen=True)
class PaymentResult:
    """
    Outcome of recording or confirming a payment.

    Shaped so that callers can write their activity log entry directly
    from it (see ``ActivityRecorder``).
    """

    payment: Payment
    invoice: Invoice
    status_changed: bool


# =============================================================================
# Audit / repair results
# =============================================================================


@dataclass(frozen=True)
class ConsistencyReport:
    """Advisory audit of one invoice's confirmed payments."""

    invoice_id: UUID
    total_payments: Decimal
    invoice_total: Decimal
    stored_paid_amount: Decimal
    errors: tuple[str, ...] = ()
    duplicate_references: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def has_drift(self) -> bool:
        """Cached paid amount differs from the confirmed total."""
        return self.stored_paid_amount != self.total_payments

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_id": str(self.invoice_id),
            "is_valid": self.is_valid,
            "total_payments": str(self.total_payments),
            "invoice_total": str(self.invoice_total),
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class ReconciliationResult:
    """Before/after values of a cached-total repair."""

    invoice_id: UUID
    previous_paid_amount: Decimal
    paid_amount: Decimal
    previous_status: InvoiceStatus
    status: InvoiceStatus

    @property
    def changed(self) -> bool:
        return (
            self.previous_paid_amount != self.paid_amount
            or self.previous_status != self.status
        )


@dataclass(frozen=True)
class PaymentStatistics:
    """Totals over confirmed payments for a date window."""

    total_amount: Decimal = ZERO
    total_count: int = 0
    today_amount: Decimal = ZERO
    today_count: int = 0
    by_method: dict[PaymentMethod, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class ActivityEntry:
    """A single activity log row."""

    id: UUID
    activity_type: ActivityType
    description: str
    created_at: datetime
    user_id: UUID | None = None
    entity_type: str | None = None
    entity_id: UUID | None = None
