"""
Tests for the balance aggregator and ledger recomputation.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import PartyNotFoundError
from ledger_kernel.models.invoice import Invoice
from ledger_kernel.models.party import Party
from ledger_kernel.selectors.balance_selector import BalanceSelector, bucket_for


class TestBucketFor:

    @pytest.mark.parametrize(
        "party_type, balance, bucket",
        [
            ("customer", Decimal("-10"), "customers"),
            ("vendor", Decimal("10"), "vendors"),
            ("supplier", Decimal("0"), "vendors"),
            ("both", Decimal("0"), "customers"),
            ("both", Decimal("5"), "customers"),
            ("both", Decimal("-5"), "vendors"),
        ],
    )
    def test_buckets(self, party_type, balance, bucket):
        assert bucket_for(party_type, balance) == bucket


class TestSummarize:

    def test_empty_company(self, session):
        summary = BalanceSelector(session).summarize(uuid4())
        assert summary.total_parties == 0
        assert summary.customers.count == 0
        assert summary.net_balance == Decimal("0")

    def test_receivable_and_payable(self, session, company_id, create_party):
        create_party(name="A Customer", party_type="customer", opening_balance="1500")
        create_party(name="B Vendor", party_type="vendor", opening_balance="-800")
        create_party(name="C Supplier", party_type="supplier", opening_balance="-200")
        create_party(name="D Both Owes", party_type="both", opening_balance="300")
        create_party(name="E Both Owed", party_type="both", opening_balance="-100")

        summary = BalanceSelector(session).summarize(company_id)

        assert summary.total_parties == 5
        assert summary.customers.count == 2
        assert summary.customers.amount == Decimal("1800.00")
        assert summary.vendors.count == 3
        assert summary.vendors.amount == Decimal("1100.00")
        assert summary.total_receivable == Decimal("1800.00")
        assert summary.total_payable == Decimal("1100.00")
        assert summary.net_balance == Decimal("700.00")

    def test_customer_credit_counts_toward_payable_total(self, session, company_id, create_party):
        create_party(name="Prepaid Customer", party_type="customer", opening_balance="-250")
        summary = BalanceSelector(session).summarize(company_id)
        assert summary.customers.count == 1
        assert summary.customers.amount == Decimal("0")
        assert summary.total_payable == Decimal("250.00")
        assert summary.net_balance == Decimal("-250.00")

    def test_inactive_and_foreign_parties_excluded(self, session, company_id, create_party):
        create_party(name="Active", opening_balance="100")
        inactive = create_party(name="Inactive", opening_balance="999")
        inactive.is_active = False
        session.flush()
        create_party(name="Elsewhere", opening_balance="555", company_id=uuid4())

        summary = BalanceSelector(session).summarize(company_id)

        assert summary.total_parties == 1
        assert summary.total_receivable == Decimal("100.00")

    def test_party_type_filter(self, session, company_id, create_party):
        create_party(name="Customer", party_type="customer", opening_balance="100")
        create_party(name="Vendor", party_type="vendor", opening_balance="-40")
        summary = BalanceSelector(session).summarize(company_id, party_type="vendor")
        assert summary.total_parties == 1
        assert summary.customers.count == 0
        assert summary.vendors.amount == Decimal("40.00")


class TestRecompute:

    def test_booked_invoices_explain_balance(self, session, company_id, create_party, create_invoice):
        party = create_party(opening_balance="100")
        create_invoice(party.id, total="1000")
        assert BalanceSelector(session).recompute_party_balance(company_id, party.id) == Decimal("1100.00")

    def test_cancelled_invoices_ignored(self, session, company_id, create_party, create_invoice):
        party = create_party()
        info = create_invoice(party.id, total="400")
        session.get(Invoice, info.invoice_id).status = "cancelled"
        session.flush()
        assert BalanceSelector(session).recompute_party_balance(company_id, party.id) == Decimal("0.00")

    def test_unknown_party(self, session, company_id):
        with pytest.raises(PartyNotFoundError):
            BalanceSelector(session).recompute_party_balance(company_id, uuid4())

    def test_discrepancy_reported(self, session, company_id, create_party, create_invoice,
                                  captured_logs):
        healthy = create_party(name="Healthy")
        create_invoice(healthy.id, total="500")
        drifted = create_party(name="Drifted")
        create_invoice(drifted.id, total="500")
        session.get(Party, drifted.id).current_balance = Decimal("650")
        session.flush()

        found = BalanceSelector(session).find_discrepancies(company_id)

        assert [d.party_name for d in found] == ["Drifted"]
        assert found[0].maintained == Decimal("650.00")
        assert found[0].recomputed == Decimal("500.00")
        assert found[0].difference == Decimal("150.00")
        assert any(r["message"] == "party_balance_discrepancies" for r in captured_logs())

    def test_within_tolerance_not_reported(self, session, company_id, create_party):
        party = create_party(opening_balance="10")
        party.current_balance = Decimal("10.01")
        session.flush()
        assert BalanceSelector(session).find_discrepancies(company_id) == []
