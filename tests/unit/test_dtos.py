"""
Unit tests for the domain DTOs.

Covers boundary normalization of payment requests and legacy transaction
records, plus the conservation guarantee of allocation plans.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import (
    AllocationPlan,
    BalanceDiscrepancy,
    DocumentSnapshot,
    PaymentRequest,
    PlannedAllocation,
    TransactionCandidate,
)
from ledger_kernel.domain.payment_method import PaymentDirection, PaymentMethod, PaymentType
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import InvalidAllocationError, InvalidPaymentRequestError


def _inr(value: str) -> Money:
    return Money.of(value, "INR")


class TestPaymentRequestCreate:
    """Boundary normalization of payment requests."""

    def test_normalizes_loose_input(self):
        party_id = uuid4()
        request = PaymentRequest.create(
            party_id=party_id,
            amount="250.005",
            currency="INR",
            direction="in",
            method="NEFT",
            payment_type="against_invoice",
        )
        assert request.amount == _inr("250.01")
        assert request.direction is PaymentDirection.IN
        assert request.method is PaymentMethod.BANK_TRANSFER
        assert request.payment_type is PaymentType.AGAINST_INVOICE

    def test_defaults_to_advance(self):
        request = PaymentRequest.create(
            party_id=uuid4(), amount="10", currency="INR", direction="out", method="cash"
        )
        assert request.payment_type is PaymentType.ADVANCE

    @pytest.mark.parametrize("amount", ["0", "-5", "0.001"])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(InvalidAllocationError):
            PaymentRequest.create(
                party_id=uuid4(), amount=amount, currency="INR", direction="in", method="cash"
            )

    def test_float_amount_rejected(self):
        with pytest.raises(InvalidPaymentRequestError) as exc_info:
            PaymentRequest.create(
                party_id=uuid4(), amount=10.5, currency="INR", direction="in", method="cash"
            )
        assert exc_info.value.field == "amount"

    @pytest.mark.parametrize(
        "field, overrides",
        [
            ("method", {"method": "barter"}),
            ("direction", {"direction": "sideways"}),
            ("payment_type", {"payment_type": "refund"}),
        ],
    )
    def test_unknown_enumerations_rejected(self, field, overrides):
        kwargs = dict(
            party_id=uuid4(), amount="10", currency="INR", direction="in", method="cash"
        )
        kwargs.update(overrides)
        with pytest.raises(InvalidPaymentRequestError) as exc_info:
            PaymentRequest.create(**kwargs)
        assert exc_info.value.field == field
        assert exc_info.value.code == "INVALID_PAYMENT_REQUEST"


class TestAllocationPlan:
    """A plan always accounts for every paisa of the payment."""

    def test_conserving_plan_accepted(self):
        invoice_id = uuid4()
        plan = AllocationPlan(
            party_id=uuid4(),
            payment_type=PaymentType.AGAINST_INVOICE,
            amount=_inr("1000"),
            lines=(PlannedAllocation(invoice_id, "INV-1", _inr("600"), _inr("600")),),
            unallocated=_inr("400"),
        )
        assert plan.total_allocated == _inr("600")
        assert plan.invoice_ids == (invoice_id,)
        assert plan.lines[0].settles_invoice
        assert not plan.is_fully_allocated

    def test_non_conserving_plan_rejected(self):
        with pytest.raises(ValueError, match="conserve"):
            AllocationPlan(
                party_id=uuid4(),
                payment_type=PaymentType.AGAINST_INVOICE,
                amount=_inr("1000"),
                lines=(PlannedAllocation(uuid4(), "INV-1", _inr("600"), _inr("600")),),
                unallocated=_inr("300"),
            )

    def test_over_allocation_rejected(self):
        with pytest.raises(ValueError, match="exceeds pending"):
            AllocationPlan(
                party_id=uuid4(),
                payment_type=PaymentType.AGAINST_INVOICE,
                amount=_inr("700"),
                lines=(PlannedAllocation(uuid4(), "INV-1", _inr("700"), _inr("600")),),
                unallocated=_inr("0"),
            )

    def test_zero_line_rejected(self):
        with pytest.raises(ValueError, match="positive"):
            AllocationPlan(
                party_id=uuid4(),
                payment_type=PaymentType.ADVANCE,
                amount=_inr("10"),
                lines=(PlannedAllocation(uuid4(), "INV-1", _inr("0"), _inr("600")),),
                unallocated=_inr("10"),
            )


class TestTransactionCandidateFromRecord:
    """Legacy records normalize to one canonical shape."""

    def test_camel_case_aliases(self):
        candidate = TransactionCandidate.from_record(
            {
                "_id": "legacy-17",
                "finalTotal": "2500.00",
                "paymentMethod": "gpay",
                "bankAccountId": "acct-1",
                "transactionDate": "2024-04-02T09:30:00Z",
                "partyId": {"_id": "party-9"},
                "transactionType": "payment_out",
                "narration": "Paid against PUR-0042",
            }
        )
        assert candidate.transaction_id == "legacy-17"
        assert candidate.amount == Decimal("2500.00")
        assert candidate.method is PaymentMethod.UPI
        assert candidate.bank_account_id == "acct-1"
        assert candidate.party_id == "party-9"
        assert candidate.direction == "out"
        assert candidate.transaction_date == datetime(2024, 4, 2, 9, 30, tzinfo=timezone.utc)
        assert candidate.text_fields() == ("Paid against PUR-0042",)

    @pytest.mark.parametrize(
        "transaction_type,direction",
        [("sale", "in"), ("income", "in"), ("purchase", "out"), ("Expense", "out")],
    )
    def test_transaction_type_implies_direction(self, transaction_type, direction):
        candidate = TransactionCandidate.from_record(
            {"id": "t1", "amount": "10", "date": "2024-04-01", "transactionType": transaction_type}
        )
        assert candidate.direction == direction

    def test_negative_amount_is_absolute(self):
        candidate = TransactionCandidate.from_record(
            {"id": "t1", "amount": "-150.50", "date": date(2024, 4, 1)}
        )
        assert candidate.amount == Decimal("150.50")
        assert candidate.transaction_date.tzinfo is not None

    def test_unknown_method_dropped(self):
        candidate = TransactionCandidate.from_record(
            {"id": "t1", "amount": 10, "date": "2024-04-01", "method": "barter"}
        )
        assert candidate.method is None
        assert not candidate.requires_bank_leg

    @pytest.mark.parametrize(
        "record",
        [
            {"amount": "10", "date": "2024-04-01"},
            {"id": "t1", "date": "2024-04-01"},
            {"id": "t1", "amount": "10"},
            {"id": "t1", "amount": "ten", "date": "2024-04-01"},
        ],
    )
    def test_incomplete_records_rejected(self, record):
        with pytest.raises(ValueError):
            TransactionCandidate.from_record(record)


class TestDocumentSnapshot:

    def _doc(self, **overrides):
        fields = dict(
            document_id=uuid4(),
            company_id=uuid4(),
            party_id=uuid4(),
            document_type="sale",
            document_number="INV-0001",
            total_amount=Decimal("1000"),
            document_date=date(2024, 4, 1),
        )
        fields.update(overrides)
        return DocumentSnapshot(**fields)

    def test_bank_method_without_account_needs_one(self):
        assert self._doc(payment_method=PaymentMethod.UPI).needs_bank_account

    def test_cash_never_needs_account(self):
        assert not self._doc(payment_method=PaymentMethod.CASH).needs_bank_account

    def test_attached_account_satisfies(self):
        doc = self._doc(payment_method=PaymentMethod.CHEQUE, bank_account_id=uuid4())
        assert not doc.needs_bank_account

    def test_expected_direction(self):
        assert self._doc().expected_direction == "in"
        assert self._doc(document_type="purchase").expected_direction == "out"


def test_balance_discrepancy_difference():
    discrepancy = BalanceDiscrepancy(
        party_id=uuid4(),
        party_name="Sharma Traders",
        maintained=Decimal("1200.00"),
        recomputed=Decimal("1000.00"),
    )
    assert discrepancy.difference == Decimal("200.00")
