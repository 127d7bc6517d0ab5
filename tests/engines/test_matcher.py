"""
Tests for the ReconciliationMatcher fold and its budget.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from ledger_config.schema import ReconciliationSettings
from ledger_engines.reconciliation import ReconciliationMatcher
from ledger_kernel.domain.dtos import DocumentSnapshot, MatchStrategy, TransactionCandidate
from ledger_kernel.domain.payment_method import PaymentMethod

COMPANY = str(uuid4())
PARTY = str(uuid4())


def _doc(total="1000.00", number="INV-0007", document_type="sale"):
    return DocumentSnapshot(
        document_id=str(uuid4()),
        company_id=COMPANY,
        party_id=PARTY,
        document_type=document_type,
        document_number=number,
        total_amount=Decimal(total),
        document_date=date(2024, 4, 1),
    )


def _txn(txn_id, amount="1000.00", day=2, **overrides):
    fields = dict(
        transaction_id=txn_id,
        amount=Decimal(amount),
        transaction_date=datetime(2024, 4, day, 10, 0, tzinfo=timezone.utc),
        party_id=PARTY,
        company_id=COMPANY,
        method=PaymentMethod.CASH,
        bank_account_id=None,
        direction="in",
    )
    fields.update(overrides)
    return TransactionCandidate(**fields)


class TestStrategyOrder:
    """The first strategy that matches wins, regardless of recency."""

    def test_exact_amount_bank_beats_document_number(self):
        bank = _txn("bank", method=PaymentMethod.UPI, bank_account_id="acct", day=2)
        mention = _txn(
            "mention", amount="1.00", method=PaymentMethod.UPI, bank_account_id="acct",
            description="Against INV-0007", day=5,
        )
        match = ReconciliationMatcher().find_match(_doc(), [mention, bank])
        assert match.matched_strategy is MatchStrategy.EXACT_AMOUNT_BANK
        assert match.transaction.transaction_id == "bank"

    def test_falls_through_to_party_amount_window(self):
        match = ReconciliationMatcher().find_match(_doc(), [_txn("cash")])
        assert match.matched_strategy is MatchStrategy.PARTY_AMOUNT_WINDOW
        assert match.confidence == Decimal("0.75")

    def test_falls_through_to_broad(self):
        txn = _txn("old", amount="5.00", method=PaymentMethod.CHEQUE, bank_account_id="acct", day=1)
        match = ReconciliationMatcher().find_match(_doc(), [txn])
        assert match.matched_strategy is MatchStrategy.PARTY_BANK_BROAD

    def test_no_match(self, captured_logs):
        txn = _txn("other", party_id=str(uuid4()), amount="3.00")
        assert ReconciliationMatcher().find_match(_doc(), [txn]) is None
        assert any(r["message"] == "reconciliation_no_match" for r in captured_logs())


class TestPrefilter:
    """Candidates from another company or direction are never considered."""

    def test_other_company_excluded(self):
        txn = _txn("foreign", company_id=str(uuid4()))
        assert ReconciliationMatcher().find_match(_doc(), [txn]) is None

    def test_wrong_direction_excluded(self):
        txn = _txn("out", direction="out")
        assert ReconciliationMatcher().find_match(_doc(), [txn]) is None

    def test_purchase_expects_outgoing(self):
        txn = _txn("out", direction="out")
        match = ReconciliationMatcher().find_match(_doc(document_type="purchase"), [txn])
        assert match.transaction.transaction_id == "out"

    def test_legacy_sale_record_never_matches_purchase(self):
        record = {
            "_id": "legacy-sale",
            "finalTotal": "2500",
            "paymentMethod": "bank_transfer",
            "bankAccountId": "acct-1",
            "partyId": PARTY,
            "transactionDate": "2024-04-02T10:00:00Z",
            "transactionType": "sale",
        }
        txn = TransactionCandidate.from_record(record)
        purchase = _doc(total="2500", document_type="purchase")

        assert txn.direction == "in"
        assert ReconciliationMatcher().find_match(purchase, [txn]) is None

        outgoing = TransactionCandidate.from_record({**record, "transactionType": "purchase"})
        match = ReconciliationMatcher().find_match(purchase, [outgoing])
        assert match.matched_strategy is MatchStrategy.EXACT_AMOUNT_BANK

    def test_unknown_company_and_direction_admitted(self):
        txn = _txn("legacy", company_id=None, direction=None)
        assert ReconciliationMatcher().find_match(_doc(), [txn]) is not None


class TestBudget:
    """Budget exhaustion is reported as no match, never as an error."""

    def test_iteration_budget_exceeded(self, captured_logs):
        candidates = [_txn(f"t{i}", amount="7.00") for i in range(50)]
        matcher = ReconciliationMatcher(max_iterations=20)
        assert matcher.find_match(_doc(), candidates) is None
        records = [r for r in captured_logs() if r["message"] == "reconciliation_budget_exceeded"]
        assert records
        assert records[-1]["budget"] == "iterations"
        assert records[-1]["limit"] == 20

    def test_budget_counts_across_strategies(self):
        # 11 candidates: prefilter plus four strategy passes is 55 examinations.
        candidates = [_txn(f"t{i}", amount="7.00", party_id=str(uuid4())) for i in range(10)]
        candidates.append(
            _txn("hit", amount="7.00", method=PaymentMethod.UPI, bank_account_id="acct")
        )
        match = ReconciliationMatcher(max_iterations=55).find_match(_doc(), candidates)
        assert match.matched_strategy is MatchStrategy.PARTY_BANK_BROAD
        assert match.transaction.transaction_id == "hit"
        assert ReconciliationMatcher(max_iterations=54).find_match(_doc(), candidates) is None

    def test_time_budget_exceeded(self):
        candidates = [_txn(f"t{i}", amount="7.00") for i in range(10)]
        matcher = ReconciliationMatcher(time_budget_ms=-1)
        assert matcher.find_match(_doc(), candidates) is None


class TestConfiguration:

    def test_from_settings(self):
        settings = ReconciliationSettings(
            amount_epsilon=Decimal("0.05"),
            date_window_days_before=0,
            date_window_days_after=2,
            max_iterations=100,
            time_budget_ms=50,
        )
        matcher = ReconciliationMatcher.from_settings(settings)
        assert matcher.policy.amount_epsilon == Decimal("0.05")
        assert matcher.policy.days_after == 2
        assert matcher.max_iterations == 100

    def test_tighter_epsilon_rejects_near_amounts(self):
        txn = _txn("near", amount="1000.50")
        assert ReconciliationMatcher().find_match(_doc(), [txn]) is not None
        assert ReconciliationMatcher(amount_epsilon=Decimal("0.10")).find_match(_doc(), [txn]) is None

    def test_recent_candidate_wins_within_strategy(self):
        base = datetime(2024, 4, 2, tzinfo=timezone.utc)
        older = _txn("older", transaction_date=base)
        newer = _txn("newer", transaction_date=base + timedelta(days=1))
        match = ReconciliationMatcher().find_match(_doc(), [older, newer])
        assert match.transaction.transaction_id == "newer"
