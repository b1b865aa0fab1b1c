"""Tests for PaymentLifecycle: recording and confirming payments."""

import re
import threading
from datetime import date
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from fee_ledger.config import FeeLedgerConfig
from fee_ledger.domain.rules import calculate_status
from fee_ledger.domain.types import (
    InvoiceStatus,
    PaymentData,
    PaymentMethod,
    PaymentStatus,
)
from fee_ledger.exceptions import (
    InvoiceNotFoundError,
    InvoiceLockTimeoutError,
    OptimisticLockError,
    PaymentAlreadyConfirmedError,
    PaymentNotFoundError,
    StorageError,
    ValidationError,
)
from fee_ledger.models.invoice import InvoiceModel
from fee_ledger.models.payment import PaymentModel
from fee_ledger.services.invoice_locks import InvoiceLockRegistry
from fee_ledger.services.payment_lifecycle import PaymentLifecycle
from tests.conftest import ACCOUNTANT_ID, BURSAR_ID, TEST_START


class TestRecordPayment:
    def test_records_pending_payment(self, lifecycle, make_invoice, db_session):
        invoice = make_invoice(total=Decimal("10000"))

        result = lifecycle.record_payment(
            invoice.id,
            PaymentData(amount=Decimal("4000"), payment_method=PaymentMethod.CASH),
            received_by=BURSAR_ID,
        )

        payment = result.payment
        assert payment.status is PaymentStatus.PENDING
        assert payment.amount == Decimal("4000")
        assert payment.invoice_id == invoice.id
        assert payment.received_by == BURSAR_ID
        assert payment.confirmed_by is None
        assert payment.payment_date == TEST_START.date()
        assert re.fullmatch(r"PAY-\d+-[0-9A-Z]{6}", payment.payment_reference)
        assert result.status_changed is False
        assert result.invoice.id == invoice.id

        db_session.expire_all()
        stored_invoice = db_session.get(InvoiceModel, invoice.id)
        assert stored_invoice.paid_amount == Decimal("0")
        assert stored_invoice.status == InvoiceStatus.PENDING.value

    def test_accepts_mapping_input(self, lifecycle, make_invoice):
        invoice = make_invoice()
        result = lifecycle.record_payment(
            invoice.id,
            {"amount": "2500", "payment_method": "pos", "notes": "Term 1 part"},
            received_by=BURSAR_ID,
        )
        assert result.payment.payment_method is PaymentMethod.POS
        assert result.payment.notes == "Term 1 part"

    @pytest.mark.parametrize(
        "data, field",
        [
            ({"amount": "100", "payment_method": "cash", "reference": "X"}, "reference"),
            ({"payment_method": "cash"}, "amount"),
            ({"amount": "100", "payment_method": None}, "payment_method"),
        ],
    )
    def test_mapping_input_errors_are_field_tagged(
        self, lifecycle, make_invoice, db_session, data, field
    ):
        invoice = make_invoice()
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.record_payment(invoice.id, data, received_by=BURSAR_ID)
        assert exc_info.value.field == field
        assert db_session.query(PaymentModel).count() == 0

    def test_amount_finer_than_storage_rejected(self, record, make_invoice, db_session):
        invoice = make_invoice()
        with pytest.raises(ValidationError) as exc_info:
            record(invoice.id, Decimal("0.0000000001"))
        assert exc_info.value.field == "amount"
        assert db_session.query(PaymentModel).count() == 0

    def test_smallest_storable_amount_round_trips(self, record, make_invoice, db_session):
        result = record(make_invoice().id, Decimal("0.000000001"))
        db_session.expire_all()
        stored = db_session.get(PaymentModel, result.payment.id)
        assert stored.amount == result.payment.amount
        assert stored.amount > 0

    def test_explicit_payment_date_kept(self, record, make_invoice):
        invoice = make_invoice()
        result = record(invoice.id, Decimal("100"), payment_date=date(2024, 8, 30))
        assert result.payment.payment_date == date(2024, 8, 30)

    def test_bank_transfer_with_details(self, record, make_invoice):
        invoice = make_invoice()
        result = record(
            invoice.id,
            Decimal("5000"),
            method=PaymentMethod.BANK_TRANSFER,
            bank_name="Zenith Bank",
            transaction_reference="ZB-778812",
        )
        assert result.payment.bank_name == "Zenith Bank"
        assert result.payment.transaction_reference == "ZB-778812"

    def test_bank_transfer_without_bank_name(self, record, make_invoice, db_session):
        invoice = make_invoice()
        with pytest.raises(ValidationError) as exc_info:
            record(
                invoice.id,
                Decimal("5000"),
                method=PaymentMethod.BANK_TRANSFER,
                transaction_reference="ZB-1",
            )
        assert exc_info.value.field == "bank_name"
        assert db_session.query(PaymentModel).count() == 0

    def test_bank_transfer_without_reference(self, record, make_invoice):
        invoice = make_invoice()
        with pytest.raises(ValidationError) as exc_info:
            record(
                invoice.id,
                Decimal("5000"),
                method=PaymentMethod.BANK_TRANSFER,
                bank_name="Zenith Bank",
            )
        assert exc_info.value.field == "transaction_reference"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-50")])
    def test_non_positive_amount(self, record, make_invoice, amount):
        invoice = make_invoice()
        with pytest.raises(ValidationError) as exc_info:
            record(invoice.id, amount)
        assert exc_info.value.field == "amount"

    def test_amount_above_balance(self, record, make_invoice, db_session):
        invoice = make_invoice(total=Decimal("10000"))
        with pytest.raises(ValidationError) as exc_info:
            record(invoice.id, Decimal("10000.01"))
        assert exc_info.value.field == "amount"
        assert db_session.query(PaymentModel).count() == 0

    def test_balance_uses_confirmed_payments_only(self, record, pay, make_invoice):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("6000"))
        record(invoice.id, Decimal("4000"))  # pending, does not reduce balance

        # A second pending 4000 is still within the 4000 balance.
        record(invoice.id, Decimal("4000"))
        with pytest.raises(ValidationError):
            record(invoice.id, Decimal("4000.01"))

    def test_unknown_invoice(self, record):
        with pytest.raises(InvoiceNotFoundError):
            record(uuid4(), Decimal("100"))

    def test_logs_recording(self, record, make_invoice, captured_logs):
        invoice = make_invoice()
        result = record(invoice.id, Decimal("100"))
        logs = [r for r in captured_logs() if r["message"] == "payment_recorded"]
        assert len(logs) == 1
        assert logs[0]["payment_reference"] == result.payment.payment_reference
        assert logs[0]["invoice_id"] == str(invoice.id)
        assert logs[0]["actor_id"] == str(BURSAR_ID)


class TestConfirmPayment:
    def test_partial_confirmation(self, lifecycle, record, make_invoice, db_session):
        invoice = make_invoice(total=Decimal("10000"))
        recorded = record(invoice.id, Decimal("4000"))

        result = lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)

        assert result.payment.status is PaymentStatus.CONFIRMED
        assert result.payment.confirmed_by == ACCOUNTANT_ID
        assert result.invoice.paid_amount == Decimal("4000")
        assert result.invoice.status is InvoiceStatus.PARTIAL
        assert result.invoice.balance == Decimal("6000")
        assert result.status_changed is True

        db_session.expire_all()
        stored = db_session.get(InvoiceModel, invoice.id)
        assert stored.paid_amount == Decimal("4000")
        assert stored.status == InvoiceStatus.PARTIAL.value

    def test_completing_payment_marks_paid(self, pay, make_invoice):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("4000"))
        result = pay(invoice.id, Decimal("6000"))
        assert result.invoice.status is InvoiceStatus.PAID
        assert result.invoice.paid_amount == Decimal("10000")
        assert result.invoice.balance == Decimal("0")
        assert result.status_changed is True

    def test_status_unchanged_flag(self, pay, make_invoice):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("1000"))
        result = pay(invoice.id, Decimal("1000"))
        assert result.invoice.status is InvoiceStatus.PARTIAL
        assert result.status_changed is False

    def test_confirm_twice_rejected(self, lifecycle, record, make_invoice, db_session):
        invoice = make_invoice(total=Decimal("10000"))
        recorded = record(invoice.id, Decimal("4000"))
        lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)

        with pytest.raises(PaymentAlreadyConfirmedError) as exc_info:
            lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)
        assert recorded.payment.payment_reference in str(exc_info.value)

        db_session.expire_all()
        assert db_session.get(InvoiceModel, invoice.id).paid_amount == Decimal("4000")

    def test_unknown_payment(self, lifecycle):
        with pytest.raises(PaymentNotFoundError) as exc_info:
            lifecycle.confirm_payment(uuid4(), confirmed_by=ACCOUNTANT_ID)
        assert str(exc_info.value) == "Payment not found"

    def test_pending_payments_may_overcollect(
        self, lifecycle, record, make_invoice, captured_logs
    ):
        invoice = make_invoice(total=Decimal("10000"))
        first = record(invoice.id, Decimal("6000"))
        second = record(invoice.id, Decimal("6000"))

        lifecycle.confirm_payment(first.payment.id, confirmed_by=ACCOUNTANT_ID)
        result = lifecycle.confirm_payment(second.payment.id, confirmed_by=ACCOUNTANT_ID)

        assert result.invoice.paid_amount == Decimal("12000")
        assert result.invoice.status is InvoiceStatus.PAID
        assert result.invoice.balance == Decimal("-2000")
        warnings = [r for r in captured_logs() if r["message"] == "invoice_overcollected"]
        assert len(warnings) == 1
        assert warnings[0]["overcollected"] == "₦2,000.00"

    def test_recomputes_from_confirmed_sum_not_cache(
        self, lifecycle, record, pay, make_invoice, db_session
    ):
        invoice = make_invoice(total=Decimal("10000"))
        pay(invoice.id, Decimal("3000"))
        pending = record(invoice.id, Decimal("2000"))

        db_session.get(InvoiceModel, invoice.id).paid_amount = Decimal("9999")
        db_session.commit()

        result = lifecycle.confirm_payment(pending.payment.id, confirmed_by=ACCOUNTANT_ID)
        assert result.invoice.paid_amount == Decimal("5000")

    def test_version_conflict_maps_to_optimistic_lock_error(
        self, lifecycle, record, make_invoice, db_session
    ):
        invoice = make_invoice(total=Decimal("10000"))
        recorded = record(invoice.id, Decimal("1000"))

        def bump_version_then_calculate(total, paid):
            # Another writer commits between our read and our write.
            db_session.execute(
                update(InvoiceModel)
                .where(InvoiceModel.id == invoice.id)
                .values(version=InvoiceModel.version + 1)
                .execution_options(synchronize_session=False)
            )
            return calculate_status(total, paid)

        with patch(
            "fee_ledger.services.payment_lifecycle.calculate_status",
            side_effect=bump_version_then_calculate,
        ):
            with pytest.raises(OptimisticLockError) as exc_info:
                lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)
        assert exc_info.value.entity_id == str(invoice.id)

        db_session.expire_all()
        stored = db_session.get(PaymentModel, recorded.payment.id)
        assert stored.status == PaymentStatus.PENDING.value

    def test_database_failure_is_storage_error_and_rolled_back(
        self, lifecycle, record, make_invoice, db_session
    ):
        invoice = make_invoice(total=Decimal("10000"))
        recorded = record(invoice.id, Decimal("1000"))

        failure = OperationalError("UPDATE invoices", {}, Exception("database is locked"))
        with patch.object(db_session, "commit", side_effect=[None, failure]):
            with pytest.raises(StorageError) as exc_info:
                lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)

        assert exc_info.value.operation == "confirm payment"
        assert exc_info.value.cause_type == "OperationalError"
        assert isinstance(exc_info.value.__cause__, OperationalError)

        db_session.expire_all()
        assert db_session.get(PaymentModel, recorded.payment.id).status == "pending"
        assert db_session.get(InvoiceModel, invoice.id).paid_amount == Decimal("0")

    def test_uses_injected_lock_registry(self, db_session, clock, record, make_invoice):
        locks = InvoiceLockRegistry()
        lifecycle = PaymentLifecycle(
            db_session,
            clock=clock,
            config=FeeLedgerConfig(lock_timeout_seconds=0.1),
            locks=locks,
        )
        invoice = make_invoice()
        recorded = record(invoice.id, Decimal("100"))
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
            with pytest.raises(InvoiceLockTimeoutError) as exc_info:
                lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)
            assert exc_info.value.invoice_id == str(invoice.id)
        finally:
            release.set()
            t.join(timeout=5)

        result = lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)
        assert result.invoice.paid_amount == Decimal("100")
        assert len(locks) == 0

    def test_lock_released_after_failure(self, lifecycle, record, make_invoice, locks):
        invoice = make_invoice()
        recorded = record(invoice.id, Decimal("100"))
        lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)
        with pytest.raises(PaymentAlreadyConfirmedError):
            lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)
        assert len(locks) == 0

    def test_logs_confirmation_with_context(
        self, lifecycle, record, make_invoice, captured_logs
    ):
        invoice = make_invoice()
        recorded = record(invoice.id, Decimal("100"))
        lifecycle.confirm_payment(recorded.payment.id, confirmed_by=ACCOUNTANT_ID)

        logs = [r for r in captured_logs() if r["message"] == "payment_confirmed"]
        assert len(logs) == 1
        assert logs[0]["payment_id"] == str(recorded.payment.id)
        assert logs[0]["invoice_id"] == str(invoice.id)
        assert logs[0]["actor_id"] == str(ACCOUNTANT_ID)
        assert logs[0]["status"] == "partial"


class TestReads:
    def test_get_payment(self, lifecycle, record, make_invoice):
        invoice = make_invoice()
        recorded = record(invoice.id, Decimal("100"))
        assert lifecycle.get_payment(recorded.payment.id) == recorded.payment

    def test_get_payment_unknown(self, lifecycle):
        with pytest.raises(PaymentNotFoundError):
            lifecycle.get_payment(uuid4())

    def test_invoice_payments_newest_first(self, lifecycle, record, pay, make_invoice):
        invoice = make_invoice(total=Decimal("10000"))
        older = pay(invoice.id, Decimal("100"), payment_date=date(2024, 8, 1))
        newer = record(invoice.id, Decimal("200"), payment_date=date(2024, 9, 1))
        middle = record(invoice.id, Decimal("300"), payment_date=date(2024, 8, 15))

        payments = lifecycle.get_invoice_payments(invoice.id)

        assert [p.id for p in payments] == [
            newer.payment.id,
            middle.payment.id,
            older.payment.id,
        ]
        assert payments[2].status is PaymentStatus.CONFIRMED

    def test_invoice_payments_empty(self, lifecycle, make_invoice):
        assert lifecycle.get_invoice_payments(make_invoice().id) == []
