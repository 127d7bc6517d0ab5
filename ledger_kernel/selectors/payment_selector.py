"""
Module: ledger_kernel.selectors.payment_selector
Responsibility: Read-only payment queries: reconciliation candidates,
    per-party payment totals and a single payment with its allocations.
Architecture position: Kernel > Selectors.  May import from models/, db/,
    domain/ and the loaders in services/ledger_store.

Invariants enforced:
    - Only completed payments are candidates or counted in totals; reversed
      payments no longer represent money that moved.  payment_detail reads
      a payment in any status.
    - Candidates are emitted in the canonical TransactionCandidate shape.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from ledger_kernel.db.types import enum_value, round_money
from ledger_kernel.domain.clock import as_utc
from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.domain.dtos import (
    AppliedAllocation,
    PartyPaymentSummary,
    PaymentDetail,
    TransactionCandidate,
)
from ledger_kernel.domain.payment_method import PaymentDirection, PaymentMethod
from ledger_kernel.domain.values import Money
from ledger_kernel.models.bank import BankTransaction
from ledger_kernel.models.payment import Payment, PaymentRecordStatus
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.services.ledger_store import LedgerStore


class PaymentSelector(BaseSelector):
    """Queries over recorded payments."""

    def reconciliation_candidates(
        self,
        company_id: UUID,
        direction: PaymentDirection | str,
        limit: int = 500,
    ) -> list[TransactionCandidate]:
        """
        Most recent completed payments of one direction, newest first.

        When a payment has a bank leg the candidate carries the bank
        transaction's id and description; otherwise the payment's id.
        """
        direction = PaymentDirection(direction)
        stmt = (
            select(Payment, BankTransaction)
            .outerjoin(BankTransaction, BankTransaction.id == Payment.bank_transaction_id)
            .where(
                Payment.company_id == company_id,
                Payment.direction == direction.value,
                Payment.status == PaymentRecordStatus.COMPLETED.value,
            )
            .order_by(Payment.payment_date.desc(), Payment.payment_number.desc())
            .limit(limit)
        )
        candidates = []
        for payment, txn in self.session.execute(stmt).all():
            candidates.append(
                TransactionCandidate(
                    transaction_id=str(txn.id if txn is not None else payment.id),
                    amount=payment.amount,
                    transaction_date=as_utc(
                        txn.transaction_date if txn is not None else payment.payment_date
                    ),
                    party_id=str(payment.party_id),
                    company_id=str(payment.company_id),
                    payment_id=str(payment.id),
                    method=PaymentMethod(payment.method),
                    bank_account_id=str(payment.bank_account_id) if payment.bank_account_id else None,
                    description=txn.description if txn is not None else None,
                    reference=payment.reference,
                    notes=payment.notes,
                    direction=payment.direction,
                )
            )
        return candidates

    def party_payment_summary(self, company_id: UUID, party_id: UUID) -> PartyPaymentSummary:
        """Totals and counts of completed payments in each direction."""
        is_in = Payment.direction == PaymentDirection.IN.value
        is_out = Payment.direction == PaymentDirection.OUT.value
        row = self.session.execute(
            select(
                func.coalesce(func.sum(case((is_in, Payment.amount), else_=0)), 0),
                func.coalesce(func.sum(case((is_in, 1), else_=0)), 0),
                func.coalesce(func.sum(case((is_out, Payment.amount), else_=0)), 0),
                func.coalesce(func.sum(case((is_out, 1), else_=0)), 0),
            ).where(
                Payment.company_id == company_id,
                Payment.party_id == party_id,
                Payment.status == PaymentRecordStatus.COMPLETED.value,
            )
        ).one()
        total_in = round_money(Decimal(str(row[0])))
        total_out = round_money(Decimal(str(row[2])))
        return PartyPaymentSummary(
            party_id=party_id,
            total_in=total_in,
            count_in=int(row[1]),
            total_out=total_out,
            count_out=int(row[3]),
            net=total_in - total_out,
        )

    def payment_detail(self, company_id: UUID, payment_id: UUID) -> PaymentDetail:
        """
        One payment with its allocations in write order.

        Raises:
            PaymentNotFoundError: unknown id or another company's payment.
        """
        store = LedgerStore(self.session)
        payment = store.get_payment(company_id, payment_id)
        places = CurrencyRegistry.get_decimal_places(payment.currency)

        def money(value: Decimal) -> Money:
            return Money.of(round_money(value, places), payment.currency)

        lines = []
        for allocation in payment.allocations:
            invoice = store.get_invoice(company_id, allocation.invoice_id)
            lines.append(
                AppliedAllocation(
                    invoice_id=invoice.id,
                    document_number=invoice.document_number,
                    allocated_amount=money(allocation.allocated_amount),
                    paid_amount=money(invoice.paid_amount),
                    pending_amount=money(invoice.pending_amount),
                    payment_status=enum_value(invoice.payment_status),
                )
            )

        return PaymentDetail(
            payment_id=payment.id,
            payment_number=payment.payment_number,
            status=enum_value(payment.status),
            direction=payment.direction,
            payment_type=payment.payment_type,
            method=payment.method,
            amount=money(payment.amount),
            allocated_amount=money(payment.allocated_amount),
            advance_amount=money(payment.advance_amount),
            allocations=tuple(lines),
            party_id=payment.party_id,
            payment_date=as_utc(payment.payment_date),
            bank_account_id=payment.bank_account_id,
            bank_transaction_id=payment.bank_transaction_id,
            reference=payment.reference,
            notes=payment.notes,
            reversed_at=as_utc(payment.reversed_at) if payment.reversed_at else None,
            reversal_reason=payment.reversal_reason,
        )
