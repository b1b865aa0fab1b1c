"""
BaseService -- common constructor and error mapping for ledger services.

Responsibility:
    Gives every service the caller's ``Session`` and two helpers:

    ``storage_operation(name)``
        Context manager that re-raises any ``SQLAlchemyError`` as
        ``StorageError(name, cause)`` with the original chained.  Ledger
        domain errors pass through untouched, so a ``ValidationError``
        raised inside the block is never reported as a storage failure.

    ``_transaction(name)``
        ``storage_operation`` plus commit on success and rollback on any
        exception.  Used by the services that own their transaction
        boundary (payment lifecycle, invoice generation, reconciliation).

Architecture position:
    Ledger > Services.  May import from db/, models/, selectors/, domain/.

Invariants enforced:
    - A service that owns its boundary either commits everything it wrote
      or rolls everything back; no partial writes survive an exception.

Failure modes:
    - StorageError for any SQLAlchemy failure, including a failed COMMIT.
"""

from abc import ABC
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fee_ledger.exceptions import FeeLedgerError, StorageError
from fee_ledger.logging_config import get_logger

logger = get_logger("services.base")


@contextmanager
def storage_operation(operation: str) -> Iterator[None]:
    """Map SQLAlchemy failures inside the block to ``StorageError``."""
    try:
        yield
    except FeeLedgerError:
        raise
    except SQLAlchemyError as exc:
        logger.error(
            "storage_operation_failed",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        raise StorageError(operation, exc) from exc


class BaseService(ABC):
    """
    Abstract base class for ledger services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller.  Services that
        document themselves as owning the transaction boundary commit or
        roll back through ``_transaction``; the rest only flush.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        try:
            with storage_operation(operation):
                yield
                self.session.commit()
        except Exception:
            self.session.rollback()
            raise
