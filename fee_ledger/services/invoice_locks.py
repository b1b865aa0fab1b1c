"""
Per-invoice mutual exclusion for read-modify-write sequences.

Confirming a payment reads the invoice, recomputes its paid amount and
writes it back.  Two confirmations on the same invoice must not overlap, or
the second write would be computed from a stale sum.  ``InvoiceLockRegistry``
hands out one ``threading.Lock`` per invoice id; operations on different
invoices never contend.

The lock is held until after COMMIT.  On PostgreSQL the same sequence also
takes ``SELECT ... FOR UPDATE`` on the invoice row, which extends the
guarantee across processes; the in-process lock covers backends without
row locks (SQLite) and keeps a waiting thread from reading before the
previous holder's commit is visible.

Locks are created on first use and dropped when their last holder leaves,
so the registry does not grow with the number of invoices ever touched.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from fee_ledger.exceptions import InvoiceLockTimeoutError
from fee_ledger.logging_config import get_logger

logger = get_logger("services.invoice_locks")


class InvoiceLockRegistry:
    """Keyed locks, one per invoice id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.Lock] = {}
        self._waiters: dict[UUID, int] = {}

    @contextmanager
    def hold(self, invoice_id: UUID, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the lock for ``invoice_id`` for the duration of the block.

        Raises:
            InvoiceLockTimeoutError: if ``timeout`` seconds pass first.
        """
        with self._guard:
            lock = self._locks.setdefault(invoice_id, threading.Lock())
            self._waiters[invoice_id] = self._waiters.get(invoice_id, 0) + 1

        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        try:
            if not acquired:
                logger.warning(
                    "invoice_lock_timeout",
                    extra={"invoice_id": str(invoice_id), "timeout_seconds": timeout},
                )
                raise InvoiceLockTimeoutError(str(invoice_id), timeout)
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                self._waiters[invoice_id] -= 1
                if self._waiters[invoice_id] == 0:
                    del self._waiters[invoice_id]
                    del self._locks[invoice_id]

    def __len__(self) -> int:
        """Number of invoices with a live lock."""
        with self._guard:
            return len(self._locks)


# Shared by every service in the process unless one is injected.
default_invoice_locks = InvoiceLockRegistry()
