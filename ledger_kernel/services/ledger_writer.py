"""
LedgerWriter -- the sole mutator of invoice, party and bank monetary state.

Responsibility:
    Applies an AllocationPlan for a PaymentRequest as one write unit:
    invoice paid/pending updates, the party balance delta, the optional
    bank leg, and the completed Payment row.  Also reverses payments and
    books finalized invoices into the party balance.

Architecture position:
    Kernel > Services -- imperative shell.  Called by PaymentOrchestrator
    inside a session_scope() transaction.  Flushes only; never commits.

Invariants enforced:
    - 0 <= paid_amount <= total_amount on every touched invoice.
    - pending_amount = total_amount - paid_amount after every change.
    - sum(allocations) + advance_amount == payment amount.
    - Every allocation targets an invoice of the payment's party and company.
    - A payment-leg BankTransaction exists iff the method needs a bank leg.
    - Reversal inverts exactly what apply did and is idempotent.

Failure modes:
    - LedgerWriteConflictError: pending amount consumed by another payment
      between planning and writing, lock timeout, or stale version.  Nothing
      is written (the caller rolls back).
    - InvalidAllocationError: allocation target no longer admissible
      (other party, cancelled, wrong document type).
    - BankAccountRequiredError: method needs a bank leg, no account supplied.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from ledger_kernel.db.types import enum_value, round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.context import RequestContext
from ledger_kernel.domain.dtos import (
    AllocationPlan,
    AppliedAllocation,
    InvoiceInfo,
    InvoiceSpec,
    PaymentRequest,
    PaymentResult,
)
from ledger_kernel.domain.payment_method import PaymentDirection, PaymentMethod
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    BankAccountRequiredError,
    InvalidAllocationError,
    InvalidPaymentRequestError,
    LedgerWriteConflictError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.bank import (
    BankAccount,
    BankDirection,
    BankTransaction,
    BankTransactionType,
)
from ledger_kernel.models.invoice import (
    DocumentType,
    Invoice,
    InvoiceStatus,
    PaymentStatus,
)
from ledger_kernel.models.party import Party
from ledger_kernel.models.payment import Payment, PaymentAllocation, PaymentRecordStatus
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_store import LedgerStore, invoice_info_from_model
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_writer")


def _payment_status_for(total: Decimal, paid: Decimal) -> str:
    if paid <= 0:
        return PaymentStatus.PENDING.value
    if paid >= total:
        return PaymentStatus.PAID.value
    return PaymentStatus.PARTIAL.value


class LedgerWriter(BaseService):
    """
    Applies and reverses payment write units.

    Contract:
        ``apply`` and ``reverse`` leave the session flushed but uncommitted.
        The caller commits on success and rolls back on any exception, so a
        failed unit is never partially visible.

    Non-goals:
        - Does not decide allocations (see ledger_engines.allocation).
        - Does not retry conflicts; callers decide.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        currency: str = "INR",
        lock_timeout_ms: int = 2000,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._currency = currency
        self._places = Money.zero(currency).currency.decimal_places
        self._store = LedgerStore(session, lock_timeout_ms=lock_timeout_ms)
        self._sequences = SequenceService(session)

    @property
    def store(self) -> LedgerStore:
        return self._store

    def _money(self, value: Decimal) -> Money:
        return Money.of(round_money(value, self._places), self._currency)

    # ------------------------------------------------------------------
    # apply
    # ------------------------------------------------------------------

    def apply(
        self,
        ctx: RequestContext,
        request: PaymentRequest,
        plan: AllocationPlan,
    ) -> PaymentResult:
        """
        Apply a payment and its allocation plan as one unit.

        Preconditions:
            - ``plan`` was produced for ``request`` (same party and amount).
            - Called inside the caller's transaction.

        Postconditions:
            - Every planned invoice has paid += allocated and a recomputed
              pending_amount/payment_status, and links to this payment.
            - Party balance moved by -amount (in) or +amount (out).
            - Bank leg appended when the method requires one.
            - A completed Payment row exists with the ordered allocations.

        Raises:
            BankAccountRequiredError, InvalidAllocationError,
            LedgerWriteConflictError.
        """
        if request.method.requires_bank_leg and request.bank_account_id is None:
            raise BankAccountRequiredError(request.method.value)
        if plan.party_id != request.party_id or plan.amount != request.amount:
            raise InvalidAllocationError(
                "allocation plan does not belong to this payment request",
                party_id=str(request.party_id),
                amount=request.amount.amount,
            )
        if request.amount.currency.code != self._currency:
            raise InvalidPaymentRequestError(
                "currency", request.amount.currency.code, f"ledger currency is {self._currency}"
            )

        bank_account_id = request.bank_account_id if request.method.requires_bank_leg else None
        rows = self._store.lock_for_update(
            ctx.company_id,
            request.party_id,
            plan.invoice_ids,
            bank_account_id,
        )
        party = rows.party
        if not party.is_active:
            raise InvalidAllocationError("party is inactive", party_id=str(party.id))
        if rows.bank_account is not None and not rows.bank_account.is_active:
            raise InvalidAllocationError(
                "bank account is inactive", party_id=str(party.id)
            )

        # Step 1: re-check every target under lock
        expected_type = request.direction.document_type
        for line in plan.lines:
            invoice = rows.invoices[line.invoice_id]
            self._check_target(invoice, party, ctx.company_id, expected_type)
            pending = round_money(invoice.total_amount - invoice.paid_amount, self._places)
            if pending < line.allocated.amount:
                logger.warning(
                    "ledger_write_conflict",
                    extra={
                        "invoice_id": str(invoice.id),
                        "pending_amount": str(pending),
                        "planned_allocation": str(line.allocated.amount),
                    },
                )
                raise LedgerWriteConflictError(
                    "Invoice",
                    str(invoice.id),
                    f"pending amount {pending} is below planned allocation "
                    f"{line.allocated.amount}",
                )

        now = request.payment_date or self._clock.now()
        payment_id = uuid4()
        bank_transaction_id = uuid4() if rows.bank_account is not None else None
        balance_before = party.current_balance

        payment = Payment(
            id=payment_id,
            company_id=ctx.company_id,
            party_id=party.id,
            payment_number=self._sequences.next_payment_number(ctx.company_id, request.direction),
            direction=request.direction.value,
            payment_type=request.payment_type.value,
            amount=request.amount.amount,
            advance_amount=plan.unallocated.amount,
            currency=self._currency,
            method=request.method.value,
            bank_account_id=bank_account_id,
            bank_transaction_id=bank_transaction_id,
            status=PaymentRecordStatus.COMPLETED.value,
            payment_date=now,
            reference=request.reference,
            notes=request.notes,
            party_balance_before=balance_before,
            party_balance_after=balance_before,
            created_by_id=ctx.user_id,
        )

        # Step 2: invoices
        touched: list[tuple[Invoice, Decimal]] = []
        for sequence, line in enumerate(plan.lines, start=1):
            invoice = rows.invoices[line.invoice_id]
            invoice.paid_amount = invoice.paid_amount + line.allocated.amount
            invoice.pending_amount = invoice.total_amount - invoice.paid_amount
            invoice.payment_status = _payment_status_for(
                invoice.total_amount, invoice.paid_amount
            )
            invoice.payment_id = payment_id
            invoice.updated_by_id = ctx.user_id
            payment.allocations.append(
                PaymentAllocation(
                    invoice_id=invoice.id,
                    sequence=sequence,
                    allocated_amount=line.allocated.amount,
                )
            )
            touched.append((invoice, line.allocated.amount))

        # Step 3: party balance
        delta = self._balance_delta(request.direction, request.amount.amount)
        party.current_balance = balance_before + delta
        party.updated_by_id = ctx.user_id
        payment.party_balance_after = party.current_balance

        # Step 5 before 4: the bank row references the payment
        self.session.add(payment)
        self._store.flush("Payment", str(payment_id))

        # Step 4: bank leg
        if rows.bank_account is not None:
            direction = (
                BankDirection.CREDIT if request.direction == PaymentDirection.IN else BankDirection.DEBIT
            )
            self._append_bank_transaction(
                ctx,
                transaction_id=bank_transaction_id,
                account=rows.bank_account,
                payment=payment,
                party=party,
                direction=direction,
                transaction_type=(
                    BankTransactionType.PAYMENT_IN
                    if request.direction == PaymentDirection.IN
                    else BankTransactionType.PAYMENT_OUT
                ),
                description=self._describe(request.direction, party, touched),
                reference=request.reference,
                notes=request.notes,
                when=now,
            )

        self._store.flush("Payment", str(payment_id))

        logger.info(
            "payment_applied",
            extra={
                "payment_id": str(payment_id),
                "payment_number": payment.payment_number,
                "party_id": str(party.id),
                "direction": request.direction.value,
                "method": request.method.value,
                "amount": str(request.amount.amount),
                "allocated": str(plan.total_allocated.amount),
                "advance": str(plan.unallocated.amount),
                "invoice_count": len(plan.lines),
                "bank_leg": rows.bank_account is not None,
            },
        )
        return self._to_result(payment, touched, party_before=balance_before, party_after=party.current_balance)

    # ------------------------------------------------------------------
    # reverse
    # ------------------------------------------------------------------

    def reverse(
        self,
        ctx: RequestContext,
        payment_id: UUID,
        reason: str | None = None,
    ) -> PaymentResult:
        """
        Reverse a completed payment.

        Inverts the invoice updates, the party balance delta and the bank
        leg (by appending a compensating bank transaction), then marks the
        payment reversed.  Reversing an already reversed payment changes
        nothing and returns ``already_reversed=True``.

        Raises:
            PaymentNotFoundError, LedgerWriteConflictError.
        """
        payment = self._store.lock_payment(ctx.company_id, payment_id)

        if payment.is_reversed:
            party = self._store.get_party(ctx.company_id, payment.party_id)
            logger.info(
                "payment_reversal_noop",
                extra={"payment_id": str(payment_id), "payment_number": payment.payment_number},
            )
            touched = [
                (self._store.get_invoice(ctx.company_id, a.invoice_id), a.allocated_amount)
                for a in payment.allocations
            ]
            return self._to_result(
                payment,
                touched,
                party_before=party.current_balance,
                party_after=party.current_balance,
                already_reversed=True,
            )

        rows = self._store.lock_for_update(
            ctx.company_id,
            payment.party_id,
            [a.invoice_id for a in payment.allocations],
            payment.bank_account_id if payment.bank_transaction_id else None,
        )
        party = rows.party
        direction = PaymentDirection(payment.direction)

        touched: list[tuple[Invoice, Decimal]] = []
        for allocation in payment.allocations:
            invoice = rows.invoices[allocation.invoice_id]
            new_paid = invoice.paid_amount - allocation.allocated_amount
            if new_paid < 0:
                raise LedgerWriteConflictError(
                    "Invoice",
                    str(invoice.id),
                    f"paid amount {invoice.paid_amount} is below the allocation "
                    f"{allocation.allocated_amount} being reversed",
                )
            invoice.paid_amount = new_paid
            invoice.pending_amount = invoice.total_amount - new_paid
            invoice.payment_status = _payment_status_for(invoice.total_amount, new_paid)
            if invoice.payment_id == payment.id:
                invoice.payment_id = None
            invoice.updated_by_id = ctx.user_id
            touched.append((invoice, allocation.allocated_amount))

        balance_before = party.current_balance
        party.current_balance = balance_before - self._balance_delta(direction, payment.amount)
        party.updated_by_id = ctx.user_id

        now = self._clock.now()
        if rows.bank_account is not None:
            original = self.session.get(BankTransaction, payment.bank_transaction_id)
            self._append_bank_transaction(
                ctx,
                transaction_id=uuid4(),
                account=rows.bank_account,
                payment=payment,
                party=party,
                direction=(
                    BankDirection.DEBIT if direction == PaymentDirection.IN else BankDirection.CREDIT
                ),
                transaction_type=BankTransactionType.REVERSAL,
                description=f"Reversal of {payment.payment_number}"
                + (f": {reason}" if reason else ""),
                reference=payment.reference,
                notes=None,
                when=now,
                reverses=original.id if original is not None else None,
            )

        payment.status = PaymentRecordStatus.REVERSED.value
        payment.reversed_at = now
        payment.reversed_by_id = ctx.user_id
        payment.reversal_reason = reason
        self._store.flush("Payment", str(payment.id))

        logger.info(
            "payment_reversed",
            extra={
                "payment_id": str(payment.id),
                "payment_number": payment.payment_number,
                "party_id": str(party.id),
                "amount": str(payment.amount),
                "invoice_count": len(touched),
            },
        )
        return self._to_result(
            payment, touched, party_before=balance_before, party_after=party.current_balance
        )

    # ------------------------------------------------------------------
    # book_invoice
    # ------------------------------------------------------------------

    def book_invoice(self, ctx: RequestContext, spec: InvoiceSpec) -> InvoiceInfo:
        """
        Register a finalized sale/purchase document and apply its total to
        the party balance (sale +total, purchase -total).

        Raises:
            InvalidPaymentRequestError: unknown document type or method.
            InvalidAllocationError: non-positive total.
            PartyNotFoundError, LedgerWriteConflictError.
        """
        try:
            document_type = DocumentType(spec.document_type)
        except ValueError as exc:
            raise InvalidPaymentRequestError(
                "document_type", spec.document_type, "expected 'sale' or 'purchase'"
            ) from exc
        total = spec.total_amount.round()
        if not total.is_positive:
            raise InvalidAllocationError(
                "invoice total must be positive",
                party_id=str(spec.party_id),
                amount=total.amount,
            )
        method = None
        if spec.payment_method is not None:
            try:
                method = PaymentMethod.normalize(spec.payment_method).value
            except ValueError as exc:
                raise InvalidPaymentRequestError("payment_method", spec.payment_method, str(exc)) from exc

        rows = self._store.lock_for_update(ctx.company_id, spec.party_id)
        party = rows.party

        invoice = Invoice(
            company_id=ctx.company_id,
            party_id=party.id,
            document_type=document_type.value,
            document_number=spec.document_number,
            document_date=spec.document_date,
            due_date=spec.due_date,
            total_amount=total.amount,
            paid_amount=Decimal("0"),
            pending_amount=total.amount,
            payment_status=PaymentStatus.PENDING.value,
            status=InvoiceStatus.ACTIVE.value,
            payment_method=method,
            bank_account_id=spec.bank_account_id,
            created_by_id=ctx.user_id,
        )
        self.session.add(invoice)

        sign = Decimal("1") if document_type == DocumentType.SALE else Decimal("-1")
        party.current_balance = party.current_balance + sign * total.amount
        party.updated_by_id = ctx.user_id
        self._store.flush("Invoice", spec.document_number)

        logger.info(
            "invoice_booked",
            extra={
                "invoice_id": str(invoice.id),
                "document_number": invoice.document_number,
                "document_type": document_type.value,
                "party_id": str(party.id),
                "total_amount": str(total.amount),
            },
        )
        return invoice_info_from_model(invoice, self._currency)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _balance_delta(direction: PaymentDirection, amount: Decimal) -> Decimal:
        """Receipts reduce what the party owes; payments out raise it."""
        return -amount if direction == PaymentDirection.IN else amount

    @staticmethod
    def _check_target(
        invoice: Invoice,
        party: Party,
        company_id: UUID,
        expected_type: str,
    ) -> None:
        if invoice.party_id != party.id or invoice.company_id != company_id:
            raise InvalidAllocationError(
                "invoice belongs to a different party or company",
                invoice_id=str(invoice.id),
                party_id=str(party.id),
            )
        if enum_value(invoice.status) == InvoiceStatus.CANCELLED.value:
            raise InvalidAllocationError(
                "invoice is cancelled", invoice_id=str(invoice.id), party_id=str(party.id)
            )
        if enum_value(invoice.document_type) != expected_type:
            raise InvalidAllocationError(
                f"{enum_value(invoice.document_type)} invoice cannot take this payment",
                invoice_id=str(invoice.id),
                party_id=str(party.id),
            )

    @staticmethod
    def _describe(
        direction: PaymentDirection,
        party: Party,
        touched: list[tuple[Invoice, Decimal]],
    ) -> str:
        verb = "Payment received from" if direction == PaymentDirection.IN else "Payment made to"
        text = f"{verb} {party.name}"
        if touched:
            text += " - Against " + ", ".join(inv.document_number for inv, _ in touched)
        return text

    def _append_bank_transaction(
        self,
        ctx: RequestContext,
        *,
        transaction_id: UUID,
        account: BankAccount,
        payment: Payment,
        party: Party,
        direction: BankDirection,
        transaction_type: BankTransactionType,
        description: str,
        reference: str | None,
        notes: str | None,
        when: datetime,
        reverses: UUID | None = None,
    ) -> BankTransaction:
        before = account.running_balance
        if direction == BankDirection.CREDIT:
            account.running_balance = before + payment.amount
            account.total_credits = account.total_credits + payment.amount
        else:
            account.running_balance = before - payment.amount
            account.total_debits = account.total_debits + payment.amount
        account.transaction_count = account.transaction_count + 1
        account.updated_by_id = ctx.user_id

        txn = BankTransaction(
            id=transaction_id,
            company_id=ctx.company_id,
            bank_account_id=account.id,
            payment_id=payment.id,
            party_id=party.id,
            transaction_number=self._sequences.next_bank_transaction_number(
                ctx.company_id, when.date()
            ),
            transaction_type=transaction_type.value,
            direction=direction.value,
            amount=payment.amount,
            payment_method=payment.method,
            balance_before=before,
            balance_after=account.running_balance,
            description=description,
            reference=reference,
            notes=notes,
            transaction_date=when,
            reverses_transaction_id=reverses,
            created_by_id=ctx.user_id,
        )
        self.session.add(txn)
        logger.debug(
            "bank_transaction_appended",
            extra={
                "bank_transaction_id": str(transaction_id),
                "bank_account_id": str(account.id),
                "direction": direction.value,
                "transaction_type": transaction_type.value,
                "amount": str(payment.amount),
            },
        )
        return txn

    def _to_result(
        self,
        payment: Payment,
        touched: list[tuple[Invoice, Decimal]],
        *,
        party_before: Decimal,
        party_after: Decimal,
        already_reversed: bool = False,
    ) -> PaymentResult:
        return PaymentResult(
            payment_id=payment.id,
            payment_number=payment.payment_number,
            status=enum_value(payment.status),
            direction=payment.direction,
            method=payment.method,
            amount=self._money(payment.amount),
            advance_amount=self._money(payment.advance_amount),
            allocations=tuple(
                AppliedAllocation(
                    invoice_id=invoice.id,
                    document_number=invoice.document_number,
                    allocated_amount=self._money(allocated),
                    paid_amount=self._money(invoice.paid_amount),
                    pending_amount=self._money(invoice.pending_amount),
                    payment_status=enum_value(invoice.payment_status),
                )
                for invoice, allocated in touched
            ),
            party_id=payment.party_id,
            party_balance_before=self._money(party_before),
            party_balance_after=self._money(party_after),
            bank_transaction_id=payment.bank_transaction_id,
            already_reversed=already_reversed,
        )
