"""Tests for InvoiceLedger: recomputed balances and cached-total repair."""

import threading
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from fee_ledger.domain.types import InvoiceStatus
from fee_ledger.exceptions import InvoiceLockTimeoutError, InvoiceNotFoundError
from fee_ledger.models.invoice import InvoiceModel
from fee_ledger.services.invoice_ledger import InvoiceLedger
from fee_ledger.services.invoice_locks import InvoiceLockRegistry
from tests.conftest import ACCOUNTANT_ID


def _corrupt(db_session, invoice_id, paid_amount=None, status=None):
    """Write the cached columns directly, bypassing the ledger."""
    values = {}
    if paid_amount is not None:
        values["paid_amount"] = paid_amount
    if status is not None:
        values["status"] = status.value
    db_session.execute(
        update(InvoiceModel)
        .where(InvoiceModel.id == invoice_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db_session.commit()
    db_session.expire_all()


class TestGetInvoiceWithCurrentPaid:
    def test_fresh_invoice(self, ledger, make_invoice):
        invoice = make_invoice(total=Decimal("10000"))
        snapshot = ledger.get_invoice_with_current_paid(invoice.id)
        assert snapshot.invoice.id == invoice.id
        assert snapshot.current_paid_amount == Decimal("0")
        assert snapshot.balance == Decimal("10000")

    def test_counts_only_confirmed_payments(self, ledger, make_invoice, pay, record):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("3000"))
        record(invoice.id, Decimal("2000"))  # stays pending

        snapshot = ledger.get_invoice_with_current_paid(invoice.id)
        assert snapshot.current_paid_amount == Decimal("3000")
        assert snapshot.balance == Decimal("7000")

    def test_ignores_cached_paid_amount(self, ledger, make_invoice, pay, db_session):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("4000"))
        _corrupt(db_session, invoice.id, paid_amount=Decimal("9000"))

        snapshot = ledger.get_invoice_with_current_paid(invoice.id)
        assert snapshot.invoice.paid_amount == Decimal("9000")
        assert snapshot.current_paid_amount == Decimal("4000")
        assert snapshot.has_drift

    def test_unknown_invoice(self, ledger):
        with pytest.raises(InvoiceNotFoundError) as exc_info:
            ledger.get_invoice_with_current_paid(uuid4())
        assert str(exc_info.value) == "Invoice not found"

    def test_calculate_status_exposed(self, ledger):
        assert ledger.calculate_status(Decimal("100"), Decimal("40")) is InvoiceStatus.PARTIAL


class TestReconcileInvoice:
    def test_noop_when_consistent(self, ledger, make_invoice, pay, db_session):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("2500"))
        version_before = db_session.get(InvoiceModel, invoice.id).version

        result = ledger.reconcile_invoice(invoice.id, actor_id=ACCOUNTANT_ID)

        assert not result.changed
        assert result.status is InvoiceStatus.PARTIAL
        db_session.expire_all()
        assert db_session.get(InvoiceModel, invoice.id).version == version_before

    def test_repairs_drifted_paid_amount(self, ledger, make_invoice, pay, db_session):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("10000"))
        _corrupt(
            db_session, invoice.id, paid_amount=Decimal("4000"), status=InvoiceStatus.PARTIAL
        )

        result = ledger.reconcile_invoice(invoice.id, actor_id=ACCOUNTANT_ID)

        assert result.changed
        assert result.previous_paid_amount == Decimal("4000")
        assert result.paid_amount == Decimal("10000")
        assert result.previous_status is InvoiceStatus.PARTIAL
        assert result.status is InvoiceStatus.PAID

        db_session.expire_all()
        stored = db_session.get(InvoiceModel, invoice.id)
        assert stored.paid_amount == Decimal("10000")
        assert stored.status == InvoiceStatus.PAID.value

    def test_keeps_administrative_status_without_drift(
        self, ledger, make_invoice, pay, db_session
    ):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("1000"))
        _corrupt(db_session, invoice.id, status=InvoiceStatus.OVERDUE)

        result = ledger.reconcile_invoice(invoice.id, actor_id=ACCOUNTANT_ID)

        assert not result.changed
        assert result.status is InvoiceStatus.OVERDUE

    def test_recomputes_status_when_overdue_invoice_drifted(
        self, ledger, make_invoice, pay, db_session
    ):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("10000"))
        _corrupt(
            db_session, invoice.id, paid_amount=Decimal("0"), status=InvoiceStatus.OVERDUE
        )

        result = ledger.reconcile_invoice(invoice.id, actor_id=ACCOUNTANT_ID)

        assert result.status is InvoiceStatus.PAID
        assert result.paid_amount == Decimal("10000")

    def test_reconcile_logs_warning(self, ledger, make_invoice, pay, db_session, captured_logs):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("500"))
        _corrupt(db_session, invoice.id, paid_amount=Decimal("0"))

        ledger.reconcile_invoice(invoice.id, actor_id=ACCOUNTANT_ID)

        logs = [r for r in captured_logs() if r["message"] == "invoice_reconciled"]
        assert len(logs) == 1
        assert logs[0]["level"] == "WARNING"
        assert logs[0]["invoice_id"] == str(invoice.id)

    def test_unknown_invoice(self, ledger):
        with pytest.raises(InvoiceNotFoundError):
            ledger.reconcile_invoice(uuid4(), actor_id=ACCOUNTANT_ID)

    def test_releases_lock(self, ledger, make_invoice, locks):
        invoice = make_invoice()
        ledger.reconcile_invoice(invoice.id, actor_id=ACCOUNTANT_ID)
        assert len(locks) == 0

    def test_reconcile_waits_on_injected_lock_registry(self, db_session, clock, make_invoice):
        locks = InvoiceLockRegistry()
        ledger = InvoiceLedger(db_session, clock=clock, locks=locks, lock_timeout=0.1)
        invoice = make_invoice()
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(invoice.id):
                held.set()
                release.wait(timeout=5)

        t = threading.Thread(target=holder)
        t.start()
        held.wait(timeout=5)
        try:
            with pytest.raises(InvoiceLockTimeoutError):
                ledger.reconcile_invoice(invoice.id, actor_id=ACCOUNTANT_ID)
        finally:
            release.set()
            t.join(timeout=5)

        assert not ledger.reconcile_invoice(invoice.id, actor_id=ACCOUNTANT_ID).changed
