"""
ledger_services.reconciliation_service -- Recover missing payment links for
documents opened for view or edit.

Responsibility:
    Gathers candidate transactions (recorded payments plus any legacy
    records the collaborator supplies), runs the pure ReconciliationMatcher
    and, when nothing matches, falls back to a default bank account hint.
    Builds the read-side DocumentView.

Architecture position:
    Services -- orchestration over engines + kernel selectors.
    Composes ReconciliationMatcher (pure engine) with InvoiceSelector and
    PaymentSelector (kernel reads).

Invariants enforced:
    - Read-only: never writes the match or the hint back to the invoice.
    - Legacy records are normalized through TransactionCandidate.from_record
      before the matcher sees them; unparseable records are skipped.

Failure modes:
    - InvoiceNotFoundError from open_document for unknown invoices.
    - Matcher budget exhaustion degrades to "no match".

Usage:
    reconciler = DocumentReconciler(session, matcher, candidate_limit=500)
    view = reconciler.open_document(ctx, invoice_id)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.reconciliation import CONFIDENCE, ReconciliationMatcher
from ledger_kernel.db.types import enum_value
from ledger_kernel.domain.context import RequestContext
from ledger_kernel.domain.dtos import (
    BankAccountHint,
    DocumentSnapshot,
    DocumentView,
    MatchStrategy,
    ReconciliationMatch,
    TransactionCandidate,
)
from ledger_kernel.domain.payment_method import PaymentMethod
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.bank import BankAccount, BankTransaction
from ledger_kernel.models.payment import Payment
from ledger_kernel.selectors.invoice_selector import InvoiceSelector, to_document_snapshot
from ledger_kernel.selectors.payment_selector import PaymentSelector

logger = get_logger("services.reconciliation")

LegacyRecord = Mapping[str, Any] | TransactionCandidate


def _as_uuid(value) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class DocumentReconciler:
    """
    Read-side reconciliation for one session.

    The caller owns the session; nothing here flushes or commits.
    """

    def __init__(
        self,
        session: Session,
        matcher: ReconciliationMatcher,
        candidate_limit: int = 500,
        currency: str = "INR",
    ):
        self.session = session
        self.matcher = matcher
        self.candidate_limit = candidate_limit
        self._invoices = InvoiceSelector(session, currency=currency)
        self._payments = PaymentSelector(session)

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def normalize_records(self, records: Iterable[LegacyRecord]) -> list[TransactionCandidate]:
        """Canonicalize collaborator records, skipping the unparseable ones."""
        candidates = []
        for record in records:
            if isinstance(record, TransactionCandidate):
                candidates.append(record)
                continue
            try:
                candidates.append(TransactionCandidate.from_record(record))
            except ValueError as exc:
                logger.warning(
                    "reconciliation_record_skipped",
                    extra={"reason": str(exc)},
                )
        return candidates

    def candidates_for(
        self,
        ctx: RequestContext,
        document: DocumentSnapshot,
        extra_records: Iterable[LegacyRecord] = (),
    ) -> list[TransactionCandidate]:
        recorded = self._payments.reconciliation_candidates(
            ctx.company_id, document.expected_direction, limit=self.candidate_limit
        )
        return recorded + self.normalize_records(extra_records)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def default_bank_account(
        self,
        company_id: UUID,
        party_id: UUID | str | None,
    ) -> BankAccountHint | None:
        """First active bank account of the party, else of the company."""
        party_uuid = _as_uuid(party_id)
        if party_uuid is not None:
            account = self.session.execute(
                select(BankAccount)
                .where(
                    BankAccount.company_id == company_id,
                    BankAccount.party_id == party_uuid,
                    BankAccount.is_active.is_(True),
                )
                .order_by(BankAccount.created_at, BankAccount.account_name)
                .limit(1)
            ).scalar_one_or_none()
            if account is not None:
                return self._hint(account, "party")

        account = self.session.execute(
            select(BankAccount)
            .where(
                BankAccount.company_id == company_id,
                BankAccount.party_id.is_(None),
                BankAccount.is_active.is_(True),
            )
            .order_by(BankAccount.created_at, BankAccount.account_name)
            .limit(1)
        ).scalar_one_or_none()
        return self._hint(account, "company") if account is not None else None

    @staticmethod
    def _hint(account: BankAccount, source: str) -> BankAccountHint:
        return BankAccountHint(
            bank_account_id=account.id,
            account_name=account.account_name,
            bank_name=account.bank_name,
            source=source,
        )

    def reconcile(
        self,
        ctx: RequestContext,
        document: DocumentSnapshot,
        extra_records: Iterable[LegacyRecord] = (),
    ) -> ReconciliationMatch | None:
        """
        Find the transaction that most likely paid ``document``.

        Falls back to a DEFAULT_BANK_ACCOUNT hint (no transaction, zero
        confidence) when nothing matches and the document's recorded
        method needs a bank account it does not have.
        """
        candidates = self.candidates_for(ctx, document, extra_records)
        match = self.matcher.find_match(document, candidates)
        if match is not None or not document.needs_bank_account:
            return match

        hint = self.default_bank_account(ctx.company_id, document.party_id)
        if hint is None:
            return None
        logger.info(
            "reconciliation_default_bank_account",
            extra={
                "document_id": str(document.document_id),
                "bank_account_id": str(hint.bank_account_id),
                "source": hint.source,
            },
        )
        return ReconciliationMatch(
            transaction=None,
            confidence=CONFIDENCE[MatchStrategy.DEFAULT_BANK_ACCOUNT],
            matched_strategy=MatchStrategy.DEFAULT_BANK_ACCOUNT,
            bank_account_hint=hint,
        )

    # ------------------------------------------------------------------
    # Document view
    # ------------------------------------------------------------------

    def open_document(
        self,
        ctx: RequestContext,
        invoice_id: UUID,
        extra_records: Iterable[LegacyRecord] = (),
    ) -> DocumentView:
        """Read-side view of an invoice with its payment link resolved."""
        invoice = self._invoices.get_model(ctx.company_id, invoice_id)
        document = to_document_snapshot(invoice)
        base = {
            "document": document,
            "paid_amount": invoice.paid_amount,
            "pending_amount": invoice.pending_amount,
            "payment_status": enum_value(invoice.payment_status),
        }

        payment = self.session.get(Payment, invoice.payment_id) if invoice.payment_id else None
        if payment is not None and payment.company_id == ctx.company_id:
            txn = (
                self.session.get(BankTransaction, payment.bank_transaction_id)
                if payment.bank_transaction_id
                else None
            )
            return DocumentView(
                **base,
                link_source="explicit",
                payment_id=str(payment.id),
                payment_method=PaymentMethod(payment.method),
                bank_account_id=str(payment.bank_account_id) if payment.bank_account_id else None,
                transaction_id=str(txn.id) if txn is not None else None,
                transaction_date=txn.transaction_date if txn is not None else payment.payment_date,
            )

        match = self.reconcile(ctx, document, extra_records)
        if match is not None and match.transaction is not None:
            txn = match.transaction
            return DocumentView(
                **base,
                link_source="reconciled",
                payment_id=txn.payment_id,
                payment_method=txn.method or document.payment_method,
                bank_account_id=txn.bank_account_id or (
                    str(document.bank_account_id) if document.bank_account_id else None
                ),
                transaction_id=txn.transaction_id,
                transaction_date=txn.transaction_date,
                match=match,
            )
        if match is not None and match.bank_account_hint is not None:
            return DocumentView(
                **base,
                link_source="default_bank_account",
                payment_method=document.payment_method,
                bank_account_id=str(match.bank_account_hint.bank_account_id),
                match=match,
            )
        return DocumentView(
            **base,
            link_source="none",
            payment_method=document.payment_method,
            bank_account_id=str(document.bank_account_id) if document.bank_account_id else None,
        )
