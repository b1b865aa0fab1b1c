"""
Payment validation rules and invoice status derivation.

Pure functions: no I/O, no logging, no clock.  Each validation raises
``ValidationError`` tagged with the offending field, so callers can map
errors straight onto form inputs.
"""

from decimal import Decimal

from fee_ledger.db.types import ZERO
from fee_ledger.domain.types import InvoiceStatus, PaymentMethod
from fee_ledger.exceptions import ValidationError


def validate_payment_amount(
    amount: Decimal,
    invoice_balance: Decimal,
    existing_confirmed_total: Decimal = ZERO,
) -> None:
    """
    Check a payment amount against the invoice's current balance.

    ``invoice_balance`` is ``total_amount - confirmed paid amount`` at the
    time of validation.  ``existing_confirmed_total`` is carried in the
    error details only; the balance bound is the whole contract.

    Raises:
        ValidationError: field ``amount`` if amount <= 0 or amount > balance.
    """
    if amount <= 0:
        raise ValidationError(
            "Payment amount must be greater than zero",
            field="amount",
        )

    if amount > invoice_balance:
        raise ValidationError(
            f"Payment amount ({amount}) cannot exceed invoice balance ({invoice_balance})",
            field="amount",
            details={
                "amount": str(amount),
                "invoice_balance": str(invoice_balance),
                "existing_confirmed_total": str(existing_confirmed_total),
            },
        )


def requires_bank_details(payment_method: PaymentMethod | str) -> bool:
    """Bank name and transaction reference are mandatory for bank transfers."""
    return PaymentMethod(payment_method) == PaymentMethod.BANK_TRANSFER


def validate_bank_details(
    payment_method: PaymentMethod | str,
    bank_name: str | None,
    transaction_reference: str | None,
) -> None:
    """
    Require bank details for bank transfers.

    Raises:
        ValidationError: field ``bank_name`` or ``transaction_reference``
            when blank for a bank transfer.  Bank name is checked first.
    """
    if not requires_bank_details(payment_method):
        return

    if not bank_name or not bank_name.strip():
        raise ValidationError(
            "Bank name is required for bank transfer payments",
            field="bank_name",
        )

    if not transaction_reference or not transaction_reference.strip():
        raise ValidationError(
            "Transaction reference is required for bank transfer payments",
            field="transaction_reference",
        )


def calculate_status(total_amount: Decimal, paid_amount: Decimal) -> InvoiceStatus:
    """
    Derive the payment status of an invoice.

    pending if nothing is paid, paid once the total is covered, partial in
    between.  Monotonic in ``paid_amount`` for a fixed total.
    """
    if paid_amount <= 0:
        return InvoiceStatus.PENDING
    if paid_amount >= total_amount:
        return InvoiceStatus.PAID
    return InvoiceStatus.PARTIAL
