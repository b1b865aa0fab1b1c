"""Human-readable identifiers for payments and invoices."""

import secrets
import string
from datetime import datetime

_BASE36 = string.digits + string.ascii_uppercase


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def _epoch_millis(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def generate_payment_reference(now: datetime, prefix: str = "PAY") -> str:
    """
    Build a payment reference such as ``PAY-1717000000000-X7K2QZ``.

    Uniqueness is best-effort (millisecond timestamp plus six random base-36
    characters); the UNIQUE constraint on ``payments.payment_reference`` is
    the backstop.
    """
    return f"{prefix}-{_epoch_millis(now)}-{_random_suffix(6)}"


def generate_invoice_number(now: datetime, prefix: str = "INV") -> str:
    """Build an invoice number such as ``INV-000000-A1B``."""
    timestamp = str(_epoch_millis(now))[-6:]
    return f"{prefix}-{timestamp}-{_random_suffix(3)}"
