"""
Module: ledger_kernel.selectors.balance_selector
Responsibility: Read-only party balance rollups and from-scratch balance
    recomputation used to verify the incrementally maintained balances.
Architecture position: Kernel > Selectors.  May import from models/, db/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Only active parties are summarized.
    - A positive balance is receivable (the party owes the company); the
      absolute value of a negative balance is payable.
    - net_balance = total_receivable - total_payable.
    - Recomputed balance = opening_balance
          + sum(pending of active sale invoices)
          - sum(pending of active purchase invoices)
          - sum(advance of completed payments in)
          + sum(advance of completed payments out)

Failure modes:
    - Returns an all-zero summary when the company has no active parties.
    - PartyNotFoundError from recompute_party_balance for unknown parties.

Audit relevance:
    find_discrepancies() is the consistency check between the stored
    party.current_balance and the invoice/payment history.  An empty result
    means every maintained balance is explained by the ledger.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.dtos import BalanceDiscrepancy, BalanceSummary, PartyBucket
from ledger_kernel.exceptions import PartyNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.invoice import DocumentType, Invoice, InvoiceStatus
from ledger_kernel.models.party import Party, PartyType
from ledger_kernel.models.payment import Payment, PaymentRecordStatus
from ledger_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.balance")

_ZERO = Decimal("0")

_VENDOR_TYPES = (PartyType.VENDOR.value, PartyType.SUPPLIER.value)


def _dec(value) -> Decimal:
    if value is None:
        return _ZERO
    return round_money(Decimal(str(value)))


def bucket_for(party_type: str, balance: Decimal) -> str:
    """
    Summary bucket of a party: "customers" or "vendors".

    Parties that are both customer and vendor land where their balance
    points: customers while they owe the company, vendors otherwise.
    """
    if party_type == PartyType.CUSTOMER.value:
        return "customers"
    if party_type in _VENDOR_TYPES:
        return "vendors"
    return "customers" if balance >= 0 else "vendors"


class BalanceSelector(BaseSelector):
    """
    Party balance reporting.

    Contract:
        summarize() reads the maintained balances; recompute_party_balance()
        derives a balance from invoices and payments.  Neither takes locks.
    """

    def summarize(
        self,
        company_id: UUID,
        party_type: PartyType | str | None = None,
    ) -> BalanceSummary:
        """
        Receivable/payable rollup of active parties.

        ``customers.amount`` is the receivable of the customers bucket and
        ``vendors.amount`` the payable of the vendors bucket.  Totals cover
        every summarized party regardless of bucket.
        """
        non_negative = Party.current_balance >= 0
        stmt = (
            select(
                Party.party_type,
                non_negative,
                func.count(Party.id),
                func.sum(case((Party.current_balance > 0, Party.current_balance), else_=0)),
                func.sum(case((Party.current_balance < 0, -Party.current_balance), else_=0)),
            )
            .where(Party.company_id == company_id, Party.is_active.is_(True))
            .group_by(Party.party_type, non_negative)
        )
        if party_type is not None:
            stmt = stmt.where(Party.party_type == PartyType(party_type).value)

        total_parties = 0
        counts = {"customers": 0, "vendors": 0}
        receivable = {"customers": _ZERO, "vendors": _ZERO}
        payable = {"customers": _ZERO, "vendors": _ZERO}

        for ptype, is_non_negative, count, pos_sum, neg_sum in self.session.execute(stmt):
            bucket = bucket_for(ptype, _ZERO if is_non_negative else Decimal("-1"))
            total_parties += count
            counts[bucket] += count
            receivable[bucket] += _dec(pos_sum)
            payable[bucket] += _dec(neg_sum)

        total_receivable = receivable["customers"] + receivable["vendors"]
        total_payable = payable["customers"] + payable["vendors"]
        return BalanceSummary(
            total_parties=total_parties,
            customers=PartyBucket(count=counts["customers"], amount=receivable["customers"]),
            vendors=PartyBucket(count=counts["vendors"], amount=payable["vendors"]),
            total_receivable=total_receivable,
            total_payable=total_payable,
            net_balance=total_receivable - total_payable,
        )

    def recompute_party_balance(self, company_id: UUID, party_id: UUID) -> Decimal:
        """Derive a party's balance from scratch."""
        party = self.session.get(Party, party_id)
        if party is None or party.company_id != company_id:
            raise PartyNotFoundError(str(party_id))
        return self._recompute(company_id, [party_id]).get(party_id, _ZERO) + _dec(
            party.opening_balance
        )

    def _recompute(self, company_id: UUID, party_ids: list[UUID] | None = None) -> dict:
        """Ledger-derived balance movement per party, excluding opening balance."""
        movement: dict[UUID, Decimal] = {}

        is_sale = Invoice.document_type == DocumentType.SALE.value
        invoice_stmt = (
            select(
                Invoice.party_id,
                func.sum(case((is_sale, Invoice.pending_amount), else_=0)),
                func.sum(case((is_sale, 0), else_=Invoice.pending_amount)),
            )
            .where(
                Invoice.company_id == company_id,
                Invoice.status == InvoiceStatus.ACTIVE.value,
            )
            .group_by(Invoice.party_id)
        )
        is_in = Payment.direction == "in"
        payment_stmt = (
            select(
                Payment.party_id,
                func.sum(case((is_in, Payment.advance_amount), else_=0)),
                func.sum(case((is_in, 0), else_=Payment.advance_amount)),
            )
            .where(
                Payment.company_id == company_id,
                Payment.status == PaymentRecordStatus.COMPLETED.value,
            )
            .group_by(Payment.party_id)
        )
        if party_ids is not None:
            invoice_stmt = invoice_stmt.where(Invoice.party_id.in_(party_ids))
            payment_stmt = payment_stmt.where(Payment.party_id.in_(party_ids))

        for pid, sale_pending, purchase_pending in self.session.execute(invoice_stmt):
            movement[pid] = movement.get(pid, _ZERO) + _dec(sale_pending) - _dec(purchase_pending)
        for pid, advance_in, advance_out in self.session.execute(payment_stmt):
            movement[pid] = movement.get(pid, _ZERO) - _dec(advance_in) + _dec(advance_out)
        return movement

    def find_discrepancies(
        self,
        company_id: UUID,
        tolerance: Decimal = Decimal("0.01"),
    ) -> list[BalanceDiscrepancy]:
        """Active parties whose maintained balance is off by more than ``tolerance``."""
        movement = self._recompute(company_id)
        parties = self.session.execute(
            select(Party)
            .where(Party.company_id == company_id, Party.is_active.is_(True))
            .order_by(Party.name)
        ).scalars()

        discrepancies = []
        for party in parties:
            recomputed = _dec(party.opening_balance) + movement.get(party.id, _ZERO)
            maintained = _dec(party.current_balance)
            if abs(maintained - recomputed) > tolerance:
                discrepancies.append(
                    BalanceDiscrepancy(
                        party_id=party.id,
                        party_name=party.name,
                        maintained=maintained,
                        recomputed=recomputed,
                    )
                )

        if discrepancies:
            logger.warning(
                "party_balance_discrepancies",
                extra={
                    "company_id": str(company_id),
                    "count": len(discrepancies),
                    "party_ids": [str(d.party_id) for d in discrepancies],
                },
            )
        return discrepancies
