"""
Pytest fixtures for the fee ledger test suite.

Provides:
- In-memory SQLite sessions (one fresh database per test)
- A deterministic clock and a private per-invoice lock registry
- Ready-built services and small factories for invoices and payments
- Structured log capture

Concurrency tests build their own file-backed database; see
tests/concurrency/test_confirm_race.py.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import fee_ledger.models  # noqa: F401  registers every table on Base.metadata
from fee_ledger.config import FeeLedgerConfig
from fee_ledger.db.base import Base
from fee_ledger.domain.clock import DeterministicClock
from fee_ledger.domain.types import PaymentData, PaymentMethod
from fee_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fee_ledger.services.activity_recorder import ActivityRecorder
from fee_ledger.services.consistency_checker import ConsistencyChecker
from fee_ledger.services.invoice_ledger import InvoiceLedger
from fee_ledger.services.invoice_locks import InvoiceLockRegistry
from fee_ledger.services.invoice_service import InvoiceService
from fee_ledger.services.payment_lifecycle import PaymentLifecycle

# Actors used by every test
BURSAR_ID = UUID("00000000-0000-0000-0000-00000000b001")
ACCOUNTANT_ID = UUID("00000000-0000-0000-0000-00000000a001")
ACADEMIC_SESSION_ID = UUID("00000000-0000-0000-0000-000000005e55")

TEST_START = datetime(2024, 9, 2, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fee_ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, lifecycle):
            lifecycle.confirm_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_confirmed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fee_ledger")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """In-memory SQLite session for fast unit tests."""
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=TEST_START)


@pytest.fixture
def config():
    return FeeLedgerConfig(database_url="sqlite:///:memory:", lock_timeout_seconds=5)


@pytest.fixture
def locks():
    return InvoiceLockRegistry()


@pytest.fixture
def invoice_service(db_session, clock, config):
    return InvoiceService(db_session, clock=clock, config=config)


@pytest.fixture
def ledger(db_session, clock, locks):
    return InvoiceLedger(db_session, clock=clock, locks=locks)


@pytest.fixture
def lifecycle(db_session, clock, config, locks):
    return PaymentLifecycle(db_session, clock=clock, config=config, locks=locks)


@pytest.fixture
def checker(db_session, config):
    return ConsistencyChecker(db_session, config=config)


@pytest.fixture
def recorder(db_session, clock, config):
    return ActivityRecorder(db_session, clock=clock, config=config)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_invoice(invoice_service):
    """Generate an invoice for a fresh student (default total 10,000)."""

    def _make(total=Decimal("10000"), student_id=None, term="first_term", **kwargs):
        return invoice_service.generate_invoice(
            student_id=student_id or uuid4(),
            academic_session_id=kwargs.pop("academic_session_id", ACADEMIC_SESSION_ID),
            total_amount=total,
            generated_by=BURSAR_ID,
            term=term,
            **kwargs,
        )

    return _make


@pytest.fixture
def record(lifecycle):
    """Record a pending cash payment (or any PaymentData overrides)."""

    def _record(invoice_id, amount, method=PaymentMethod.CASH, **kwargs):
        data = PaymentData(amount=amount, payment_method=method, **kwargs)
        return lifecycle.record_payment(invoice_id, data, received_by=BURSAR_ID)

    return _record


@pytest.fixture
def pay(record, lifecycle):
    """Record and immediately confirm a payment; returns the confirm result."""

    def _pay(invoice_id, amount, method=PaymentMethod.CASH, **kwargs):
        recorded = record(invoice_id, amount, method, **kwargs)
        return lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)

    return _pay
