"""
ledger_services.payment_orchestrator -- Public API of the party ledger.

Responsibility:
    Wires configuration, engines and kernel services together and runs
    every public operation in its own transaction scope:

        record_payment     normalize -> bank check -> allocate -> write -> commit -> notify
        reverse_payment    lock -> invert -> commit -> notify
        book_invoice       register a finalized invoice against the party balance
        reconcile_document / open_document     read-only reconciliation
        get_payment        one payment with its allocations and the invoices' current state
        get_party_balance_summary / get_party_payment_summary /
        pending_invoices / verify_party_balances    read-only reports

Architecture position:
    Services -- the only layer that reads configuration and owns
    transactions.  Kernel services flush; this module commits.

Invariants enforced:
    - Every call takes an explicit RequestContext; nothing is read from
      ambient state.
    - A failed write leaves no partial state: the scope rolls back.
    - Notification failures never affect a committed write.

Failure modes:
    - InvalidAllocationError / InvalidPaymentRequestError /
      BankAccountRequiredError before any state change.
    - LedgerWriteConflictError after the bounded retries are spent.

Usage:
    orchestrator = PaymentOrchestrator(get_session_factory())
    result = orchestrator.record_payment(ctx, PaymentRequest.create(...))
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from contextlib import contextmanager
from typing import TypeVar
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ledger_config import LedgerConfig, get_active_config
from ledger_engines.allocation import AllocationEngine
from ledger_engines.reconciliation import ReconciliationMatcher
from ledger_kernel.db.engine import get_session_factory, session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.context import RequestContext
from ledger_kernel.domain.dtos import (
    BalanceDiscrepancy,
    BalanceSummary,
    DocumentSnapshot,
    DocumentView,
    InvoiceInfo,
    InvoiceSpec,
    PartyPaymentSummary,
    PaymentDetail,
    PaymentRequest,
    PaymentResult,
    ReconciliationMatch,
)
from ledger_kernel.domain.payment_method import PaymentDirection
from ledger_kernel.exceptions import (
    BankAccountRequiredError,
    InvalidAllocationError,
    LedgerWriteConflictError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.balance_selector import BalanceSelector
from ledger_kernel.selectors.invoice_selector import InvoiceSelector
from ledger_kernel.selectors.payment_selector import PaymentSelector
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_services.notifications import NotificationDispatcher, dispatch_safely
from ledger_services.reconciliation_service import DocumentReconciler, LegacyRecord
from ledger_services.retry import call_with_conflict_retry

logger = get_logger("services.payment_orchestrator")

T = TypeVar("T")


class PaymentOrchestrator:
    """
    Composition root and transaction owner for ledger operations.

    Construction:
        ``session_factory`` is a sessionmaker; each public call opens one
        session from it.  ``config`` defaults to ``get_active_config()``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._allocation = AllocationEngine(
            auto_distribute_advances=self._config.allocation.auto_distribute_advances,
        )
        self._matcher = ReconciliationMatcher.from_settings(self._config.reconciliation)

    @property
    def config(self) -> LedgerConfig:
        return self._config

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _scope(self):
        """Transaction scope mapping database contention to conflicts."""
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except StaleDataError as exc:
            raise LedgerWriteConflictError(
                "Session", "", "row was modified by another transaction"
            ) from exc
        except OperationalError as exc:
            raise LedgerWriteConflictError(
                "Session", "", "database lock contention"
            ) from exc

    def _writer(self, session: Session) -> LedgerWriter:
        return LedgerWriter(
            session,
            clock=self._clock,
            currency=self._config.currency,
            lock_timeout_ms=self._config.write.lock_timeout_ms,
        )

    def _with_retry(self, fn: Callable[[], T]) -> T:
        return call_with_conflict_retry(
            fn,
            attempts=self._config.write.conflict_retries + 1,
            backoff=self._config.write.retry_backoff_ms / 1000.0,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_payment(self, ctx: RequestContext, request: PaymentRequest) -> PaymentResult:
        """
        Record a payment: allocate, write and commit as one unit.

        Conflicts are retried with a fresh plan each time, so a payment
        racing another one for the same invoice is re-planned against the
        invoice's new pending amount.

        Raises:
            BankAccountRequiredError, InvalidAllocationError,
            LedgerWriteConflictError, PartyNotFoundError,
            InvoiceNotFoundError, BankAccountNotFoundError.
        """
        if request.method.requires_bank_leg and request.bank_account_id is None:
            raise BankAccountRequiredError(request.method.value)

        def attempt() -> PaymentResult:
            with self._scope() as session:
                invoices = InvoiceSelector(session, currency=self._config.currency).candidates_for(
                    ctx.company_id,
                    request.party_id,
                    request.direction,
                    request.target_invoice_id,
                )
                plan = self._allocation.plan(
                    request=request,
                    company_id=ctx.company_id,
                    invoices=invoices,
                )
                return self._writer(session).apply(ctx, request, plan)

        with ctx.log_scope(party_id=request.party_id):
            try:
                result = self._with_retry(attempt)
            except (InvalidAllocationError, LedgerWriteConflictError) as exc:
                logger.warning(
                    "payment_rejected",
                    extra={"error_code": exc.code, "reason": str(exc)},
                )
                raise
            with ctx.log_scope(payment_id=result.payment_id):
                logger.info(
                    "payment_recorded",
                    extra={
                        "payment_number": result.payment_number,
                        "amount": str(result.amount.amount),
                        "allocated": str(result.allocated_amount.amount),
                        "advance": str(result.advance_amount.amount),
                        "party_balance_after": str(result.party_balance_after.amount),
                    },
                )
                dispatch_safely(self._notifier, "payment_recorded", ctx, result)
        return result

    def reverse_payment(
        self,
        ctx: RequestContext,
        payment_id: UUID,
        reason: str | None = None,
    ) -> PaymentResult:
        """
        Reverse a payment.  Idempotent: a second call returns
        ``already_reversed=True`` and changes nothing.
        """

        def attempt() -> PaymentResult:
            with self._scope() as session:
                return self._writer(session).reverse(ctx, payment_id, reason)

        with ctx.log_scope(payment_id=payment_id):
            result = self._with_retry(attempt)
            if result.already_reversed:
                return result
            logger.info(
                "payment_reversed",
                extra={
                    "payment_number": result.payment_number,
                    "amount": str(result.amount.amount),
                    "reason": reason,
                },
            )
            dispatch_safely(self._notifier, "payment_reversed", ctx, result)
        return result

    def book_invoice(self, ctx: RequestContext, spec: InvoiceSpec) -> InvoiceInfo:
        """Register a finalized sale/purchase invoice and move the party balance."""

        def attempt() -> InvoiceInfo:
            with self._scope() as session:
                return self._writer(session).book_invoice(ctx, spec)

        with ctx.log_scope(party_id=spec.party_id):
            return self._with_retry(attempt)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _reconciler(self, session: Session) -> DocumentReconciler:
        return DocumentReconciler(
            session,
            self._matcher,
            candidate_limit=self._config.reconciliation.candidate_limit,
            currency=self._config.currency,
        )

    def reconcile_document(
        self,
        ctx: RequestContext,
        document: DocumentSnapshot,
        extra_records: Iterable[LegacyRecord] = (),
    ) -> ReconciliationMatch | None:
        """Best-effort link between a document and the transaction that paid it."""
        with ctx.log_scope(document_id=document.document_id):
            with self._scope() as session:
                return self._reconciler(session).reconcile(ctx, document, extra_records)

    def open_document(
        self,
        ctx: RequestContext,
        invoice_id: UUID,
        extra_records: Iterable[LegacyRecord] = (),
    ) -> DocumentView:
        with ctx.log_scope(document_id=invoice_id):
            with self._scope() as session:
                return self._reconciler(session).open_document(ctx, invoice_id, extra_records)

    def get_party_balance_summary(
        self,
        ctx: RequestContext,
        party_type: str | None = None,
    ) -> BalanceSummary:
        with ctx.log_scope():
            with self._scope() as session:
                return BalanceSelector(session).summarize(ctx.company_id, party_type)

    def get_payment(self, ctx: RequestContext, payment_id: UUID) -> PaymentDetail:
        """
        A recorded payment, its allocations, allocated total and advance.

        Raises:
            PaymentNotFoundError: unknown id or another company's payment.
        """
        with ctx.log_scope(payment_id=payment_id):
            with self._scope() as session:
                return PaymentSelector(session).payment_detail(ctx.company_id, payment_id)

    def get_party_payment_summary(self, ctx: RequestContext, party_id: UUID) -> PartyPaymentSummary:
        with ctx.log_scope(party_id=party_id):
            with self._scope() as session:
                return PaymentSelector(session).party_payment_summary(ctx.company_id, party_id)

    def pending_invoices(
        self,
        ctx: RequestContext,
        party_id: UUID,
        direction: PaymentDirection | str,
    ) -> list[InvoiceInfo]:
        """Invoices a payment in ``direction`` could settle, oldest-due-first."""
        with ctx.log_scope(party_id=party_id):
            with self._scope() as session:
                return InvoiceSelector(session, currency=self._config.currency).pending_invoices_for_payment(
                    ctx.company_id, party_id, PaymentDirection(direction)
                )

    def verify_party_balances(self, ctx: RequestContext) -> list[BalanceDiscrepancy]:
        """Parties whose maintained balance disagrees with their history."""
        with ctx.log_scope():
            with self._scope() as session:
                return BalanceSelector(session).find_discrepancies(ctx.company_id)
