"""
End-to-end tests for the PaymentOrchestrator public API.

These tests commit through ``session_factory``; the fixture deletes every
row at teardown.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_config.schema import AllocationSettings
from ledger_kernel.domain.dtos import InvoiceSpec, PaymentRequest
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    BankAccountRequiredError,
    InvalidAllocationError,
    LedgerWriteConflictError,
    PaymentNotFoundError,
)
from ledger_services import (
    NotificationDispatcher,
    PaymentOrchestrator,
    RecordingDispatcher,
    call_with_conflict_retry,
)


def _inr(value: str) -> Money:
    return Money.of(value, "INR")


@pytest.fixture
def notifier():
    return RecordingDispatcher()


@pytest.fixture
def orchestrator(session_factory, ledger_config, deterministic_clock, notifier):
    return PaymentOrchestrator(
        session_factory,
        config=ledger_config,
        clock=deterministic_clock,
        notifier=notifier,
    )


def _book(orchestrator, ctx, party_id, total, number, document_type="sale", **extra):
    return orchestrator.book_invoice(
        ctx,
        InvoiceSpec(
            party_id=party_id,
            document_type=document_type,
            document_number=number,
            total_amount=_inr(total),
            document_date=extra.pop("document_date", date(2024, 4, 1)),
            **extra,
        ),
    )


def _request(party_id, amount, **kwargs):
    kwargs.setdefault("direction", "in")
    kwargs.setdefault("method", "cash")
    return PaymentRequest.create(party_id=party_id, amount=amount, currency="INR", **kwargs)


class TestRecordPayment:

    def test_partial_then_capped(self, orchestrator, ctx, seed, notifier):
        party_id = seed.party()
        invoice = _book(orchestrator, ctx, party_id, "1000", "INV-0001")

        first = orchestrator.record_payment(
            ctx, _request(party_id, "400", payment_type="against_invoice",
                          target_invoice_id=invoice.invoice_id)
        )
        second = orchestrator.record_payment(
            ctx, _request(party_id, "700", payment_type="against_invoice",
                          target_invoice_id=invoice.invoice_id)
        )

        assert first.allocations[0].payment_status == "partial"
        assert second.allocations[0].allocated_amount == _inr("600")
        assert second.allocations[0].payment_status == "paid"
        assert second.advance_amount == _inr("100")
        assert orchestrator.pending_invoices(ctx, party_id, "in") == []
        assert [event for event, _ in notifier.events] == ["payment_recorded", "payment_recorded"]

    def test_advance_with_no_invoices(self, orchestrator, ctx, seed):
        party_id = seed.party(opening_balance="0")
        result = orchestrator.record_payment(ctx, _request(party_id, "500"))
        assert result.allocations == ()
        assert result.party_balance_after == _inr("-500")

    def test_bank_method_without_account(self, orchestrator, ctx, seed, notifier):
        party_id = seed.party()
        with pytest.raises(BankAccountRequiredError):
            orchestrator.record_payment(ctx, _request(party_id, "100", method="upi"))
        assert notifier.events == []
        summary = orchestrator.get_party_payment_summary(ctx, party_id)
        assert summary.count_in == 0

    def test_rejection_leaves_no_state(self, orchestrator, ctx, seed, captured_logs):
        party_id = seed.party()
        invoice = _book(orchestrator, ctx, party_id, "100", "INV-0002")
        orchestrator.record_payment(
            ctx, _request(party_id, "100", payment_type="against_invoice",
                          target_invoice_id=invoice.invoice_id)
        )

        with pytest.raises(InvalidAllocationError, match="already fully paid"):
            orchestrator.record_payment(
                ctx, _request(party_id, "50", payment_type="against_invoice",
                              target_invoice_id=invoice.invoice_id)
            )

        summary = orchestrator.get_party_payment_summary(ctx, party_id)
        assert summary.count_in == 1
        assert summary.total_in == Decimal("100.00")
        rejected = [r for r in captured_logs() if r["message"] == "payment_rejected"]
        assert rejected and rejected[-1]["error_code"] == "INVALID_ALLOCATION"

    def test_logs_carry_request_context(self, orchestrator, ctx, seed, captured_logs):
        party_id = seed.party()
        result = orchestrator.record_payment(ctx, _request(party_id, "10"))
        recorded = [r for r in captured_logs() if r["message"] == "payment_recorded"]
        assert recorded
        assert recorded[-1]["correlation_id"] == "test-correlation"
        assert recorded[-1]["party_id"] == str(party_id)
        assert recorded[-1]["payment_id"] == str(result.payment_id)

    def test_bank_leg_payment(self, orchestrator, ctx, seed):
        party_id = seed.party()
        account_id = seed.bank_account()
        result = orchestrator.record_payment(
            ctx, _request(party_id, "250", method="bank_transfer", bank_account_id=account_id)
        )
        assert result.bank_transaction_id is not None
        assert result.method == "bank_transfer"


class TestReversePayment:

    def test_reverse_and_idempotent_replay(self, orchestrator, ctx, seed, notifier):
        party_id = seed.party()
        invoice = _book(orchestrator, ctx, party_id, "1000", "INV-0003")
        paid = orchestrator.record_payment(
            ctx, _request(party_id, "1000", payment_type="against_invoice",
                          target_invoice_id=invoice.invoice_id)
        )

        reversed_ = orchestrator.reverse_payment(ctx, paid.payment_id, reason="bounced")
        again = orchestrator.reverse_payment(ctx, paid.payment_id)

        assert reversed_.status == "reversed"
        assert not reversed_.already_reversed
        assert again.already_reversed
        pending = orchestrator.pending_invoices(ctx, party_id, "in")
        assert [i.invoice_id for i in pending] == [invoice.invoice_id]
        assert pending[0].pending_amount == _inr("1000")
        # The no-op replay is not announced
        assert [event for event, _ in notifier.events] == ["payment_recorded", "payment_reversed"]

    def test_reversed_payment_not_counted(self, orchestrator, ctx, seed):
        party_id = seed.party()
        paid = orchestrator.record_payment(ctx, _request(party_id, "300"))
        orchestrator.reverse_payment(ctx, paid.payment_id)
        summary = orchestrator.get_party_payment_summary(ctx, party_id)
        assert summary.count_in == 0
        assert summary.total_in == Decimal("0.00")


class TestGetPayment:

    @pytest.fixture
    def distributing(self, session_factory, ledger_config, deterministic_clock):
        config = replace(ledger_config, allocation=AllocationSettings(auto_distribute_advances=True))
        return PaymentOrchestrator(session_factory, config=config, clock=deterministic_clock)

    def test_two_invoice_payment_then_reversal(self, distributing, ctx, seed):
        party_id = seed.party()
        _book(distributing, ctx, party_id, "300", "INV-0020", document_date=date(2024, 3, 1))
        _book(distributing, ctx, party_id, "500", "INV-0021", document_date=date(2024, 3, 5))
        paid = distributing.record_payment(ctx, _request(party_id, "900", reference="NEFT-77"))

        detail = distributing.get_payment(ctx, paid.payment_id)

        assert detail.payment_number == paid.payment_number
        assert detail.status == "completed"
        assert detail.reference == "NEFT-77"
        assert detail.amount == _inr("900")
        assert detail.allocated_amount == _inr("800")
        assert detail.advance_amount == _inr("100")
        assert [
            (line.document_number, line.allocated_amount, line.pending_amount, line.payment_status)
            for line in detail.allocations
        ] == [
            ("INV-0020", _inr("300"), _inr("0"), "paid"),
            ("INV-0021", _inr("500"), _inr("0"), "paid"),
        ]

        distributing.reverse_payment(ctx, paid.payment_id, reason="bounced")
        after = distributing.get_payment(ctx, paid.payment_id)

        assert after.is_reversed
        assert after.reversal_reason == "bounced"
        assert after.reversed_at is not None
        # Allocation rows stay; the invoices show the restored amounts
        assert after.allocated_amount == _inr("800")
        assert [
            (line.paid_amount, line.pending_amount, line.payment_status)
            for line in after.allocations
        ] == [
            (_inr("0"), _inr("300"), "pending"),
            (_inr("0"), _inr("500"), "pending"),
        ]

    def test_unknown_payment(self, orchestrator, ctx):
        with pytest.raises(PaymentNotFoundError):
            orchestrator.get_payment(ctx, uuid4())


class TestNotifications:

    def test_failing_notifier_does_not_undo_write(
        self, session_factory, ledger_config, deterministic_clock, ctx, seed, captured_logs
    ):
        class Exploding(NotificationDispatcher):
            def payment_recorded(self, ctx, result):
                raise RuntimeError("smtp down")

        orchestrator = PaymentOrchestrator(
            session_factory, config=ledger_config, clock=deterministic_clock, notifier=Exploding()
        )
        party_id = seed.party()

        result = orchestrator.record_payment(ctx, _request(party_id, "75"))

        assert result.status == "completed"
        summary = orchestrator.get_party_payment_summary(ctx, party_id)
        assert summary.count_in == 1
        failures = [r for r in captured_logs() if r["message"] == "notification_dispatch_failed"]
        assert failures
        assert failures[-1]["exc_type"] == "RuntimeError"


class TestReports:

    def test_balance_summary_and_verification(self, orchestrator, ctx, seed):
        customer = seed.party(name="Sharma Traders", party_type="customer")
        vendor = seed.party(name="Gupta Suppliers", party_type="vendor")
        _book(orchestrator, ctx, customer, "1000", "INV-0010")
        _book(orchestrator, ctx, vendor, "2500", "PUR-0010", document_type="purchase")
        orchestrator.record_payment(ctx, _request(customer, "400"))

        summary = orchestrator.get_party_balance_summary(ctx)

        assert summary.total_parties == 2
        assert summary.customers.count == 1
        assert summary.customers.amount == Decimal("600.00")
        assert summary.vendors.amount == Decimal("2500.00")
        assert summary.net_balance == Decimal("-1900.00")
        assert orchestrator.verify_party_balances(ctx) == []

    def test_open_document_uses_explicit_link(self, orchestrator, ctx, seed):
        party_id = seed.party()
        invoice = _book(orchestrator, ctx, party_id, "500", "INV-0011")
        paid = orchestrator.record_payment(
            ctx, _request(party_id, "500", payment_type="against_invoice",
                          target_invoice_id=invoice.invoice_id)
        )

        view = orchestrator.open_document(ctx, invoice.invoice_id)

        assert view.link_source == "explicit"
        assert view.payment_id == str(paid.payment_id)
        assert view.payment_status == "paid"


class TestConflictRetry:
    """Bounded retry of write units."""

    def test_retries_until_success(self):
        calls = []
        sleeps = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise LedgerWriteConflictError("Invoice", "x", "pending consumed")
            return "ok"

        assert call_with_conflict_retry(flaky, attempts=3, backoff=0.01, sleep=sleeps.append) == "ok"
        assert len(calls) == 3
        assert sleeps == [0.01, 0.02]

    def test_gives_up_after_attempts(self, captured_logs):
        def always():
            raise LedgerWriteConflictError("Party", "p", "lock timeout")

        with pytest.raises(LedgerWriteConflictError):
            call_with_conflict_retry(always, attempts=2, backoff=0, sleep=lambda s: None)
        assert any(r["message"] == "ledger_write_conflict_exhausted" for r in captured_logs())

    def test_other_errors_not_retried(self):
        calls = []

        def broken():
            calls.append(1)
            raise InvalidAllocationError("nope")

        with pytest.raises(InvalidAllocationError):
            call_with_conflict_retry(broken, attempts=5, sleep=lambda s: None)
        assert len(calls) == 1

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            call_with_conflict_retry(lambda: None, attempts=0)
