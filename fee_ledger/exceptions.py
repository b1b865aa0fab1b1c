"""
Typed exception hierarchy for the fee ledger.

Every error has a typed class, a machine-readable ``code`` class attribute,
and structured attributes carrying the data a caller needs to render a
message without parsing strings.

    FeeLedgerError (base)
    |
    +-- ValidationError                 VALIDATION_ERROR
    |
    +-- PaymentError                    PAYMENT_ERROR
    |   +-- PaymentNotFoundError        PAYMENT_NOT_FOUND
    |   +-- PaymentAlreadyConfirmedError PAYMENT_ALREADY_CONFIRMED
    |
    +-- InvoiceError                    INVOICE_ERROR
    |   +-- InvoiceNotFoundError        INVOICE_NOT_FOUND
    |   +-- DuplicateInvoiceError       DUPLICATE_INVOICE
    |
    +-- ConcurrencyError                CONCURRENCY_ERROR
    |   +-- OptimisticLockError         OPTIMISTIC_LOCK_CONFLICT
    |   +-- InvoiceLockTimeoutError     INVOICE_LOCK_TIMEOUT
    |
    +-- StorageError                    STORAGE_ERROR

Handling patterns:

    try:
        lifecycle.record_payment(invoice_id, data, received_by=user_id)
    except ValidationError as e:
        form.add_error(e.field, str(e))      # inline, field-tagged
    except (PaymentError, InvoiceError) as e:
        flash(str(e), code=e.code)           # toast-level

``ValidationError``, ``PaymentError`` and ``InvoiceError`` are safe to show
to end users.  ``StorageError`` wraps lower-level database failures with the
name of the operation that failed; the original exception is chained as
``__cause__``.  Domain errors are never wrapped in ``StorageError``.
"""

from typing import Any


class FeeLedgerError(Exception):
    """
    Base exception for all fee ledger errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FEE_LEDGER_ERROR"


# Validation


class ValidationError(FeeLedgerError):
    """Bad caller input, tagged with the offending field name."""

    code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.field = field
        self.details = details
        super().__init__(message)


# Payment-related exceptions


class PaymentError(FeeLedgerError):
    """Base exception for payment domain violations."""

    code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__("Payment not found")


class PaymentAlreadyConfirmedError(PaymentError):
    """Payment has already been confirmed; re-confirmation is rejected."""

    code: str = "PAYMENT_ALREADY_CONFIRMED"

    def __init__(self, payment_id: str, payment_reference: str):
        self.payment_id = payment_id
        self.payment_reference = payment_reference
        super().__init__(f"Payment {payment_reference} is already confirmed")


# Invoice-related exceptions


class InvoiceError(FeeLedgerError):
    """Base exception for invoice domain violations."""

    code: str = "INVOICE_ERROR"


class InvoiceNotFoundError(InvoiceError):
    """Invoice with given ID was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__("Invoice not found")


class DuplicateInvoiceError(InvoiceError):
    """An invoice already exists for the student, session and term."""

    code: str = "DUPLICATE_INVOICE"

    def __init__(
        self,
        student_id: str,
        academic_session_id: str,
        term: str | None,
        existing_invoice_id: str,
    ):
        self.student_id = student_id
        self.academic_session_id = academic_session_id
        self.term = term
        self.existing_invoice_id = existing_invoice_id
        super().__init__("Invoice already exists for this student and term")


# Concurrency


class ConcurrencyError(FeeLedgerError):
    """Base exception for concurrent modification conflicts."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Row was modified by another transaction since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently; retry the operation"
        )


class InvoiceLockTimeoutError(ConcurrencyError):
    """Timed out waiting for another confirmation on the same invoice."""

    code: str = "INVOICE_LOCK_TIMEOUT"

    def __init__(self, invoice_id: str, timeout_seconds: float):
        self.invoice_id = invoice_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for invoice {invoice_id}"
        )


# Storage


class StorageError(FeeLedgerError):
    """A lower-level persistence failure, tagged with the failing operation."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause_type = type(cause).__name__
        super().__init__(f"Error in {operation}: {cause}")
