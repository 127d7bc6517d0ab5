"""
Domain DTOs -- immutable data transfer objects for the ledger core.

Responsibility:
    Defines the values that cross component boundaries: payment requests,
    invoice snapshots, payment results, reconciliation inputs/outputs and
    balance rollups.  Engines consume and produce only these; ORM models
    never leave the kernel services.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Monetary values are Money (or Decimal for SQL rollups), never float.
    - Legacy collaborator records are normalized here, at the boundary,
      via ``TransactionCandidate.from_record``; nothing downstream branches
      on field-name variants.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_kernel.domain.clock import as_utc
from ledger_kernel.domain.payment_method import (
    PaymentDirection,
    PaymentMethod,
    PaymentType,
)
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import InvalidAllocationError, InvalidPaymentRequestError


# ---------------------------------------------------------------------------
# Payment intake
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentRequest:
    """
    Normalized request to record a payment.

    Use ``PaymentRequest.create`` to build one from loosely typed input; it
    rounds the amount to the currency minor unit and resolves method aliases.
    """

    party_id: UUID
    amount: Money
    direction: PaymentDirection
    method: PaymentMethod
    payment_type: PaymentType
    target_invoice_id: UUID | None = None
    bank_account_id: UUID | None = None
    reference: str | None = None
    notes: str | None = None
    payment_date: datetime | None = None

    @classmethod
    def create(
        cls,
        *,
        party_id: UUID,
        amount: Decimal | str | int,
        currency: str,
        direction: str | PaymentDirection,
        method: str | PaymentMethod,
        payment_type: str | PaymentType = PaymentType.ADVANCE,
        target_invoice_id: UUID | None = None,
        bank_account_id: UUID | None = None,
        reference: str | None = None,
        notes: str | None = None,
        payment_date: datetime | None = None,
    ) -> PaymentRequest:
        """
        Build a request from collaborator input.

        Raises:
            InvalidPaymentRequestError: unknown method/direction/type or
                unparseable amount.
            InvalidAllocationError: amount <= 0 after rounding.
        """
        try:
            money = Money.of(amount, currency).round()
        except ValueError as exc:
            raise InvalidPaymentRequestError("amount", amount, str(exc)) from exc
        try:
            resolved_method = PaymentMethod.normalize(method)
        except ValueError as exc:
            raise InvalidPaymentRequestError("method", method, str(exc)) from exc
        try:
            resolved_direction = PaymentDirection(direction)
        except ValueError as exc:
            raise InvalidPaymentRequestError("direction", direction, "expected 'in' or 'out'") from exc
        try:
            resolved_type = PaymentType(payment_type)
        except ValueError as exc:
            raise InvalidPaymentRequestError(
                "payment_type", payment_type, "expected 'advance' or 'against_invoice'"
            ) from exc

        if not money.is_positive:
            raise InvalidAllocationError(
                "payment amount must be positive",
                party_id=str(party_id),
                amount=money.amount,
            )

        return cls(
            party_id=party_id,
            amount=money,
            direction=resolved_direction,
            method=resolved_method,
            payment_type=resolved_type,
            target_invoice_id=target_invoice_id,
            bank_account_id=bank_account_id,
            reference=reference,
            notes=notes,
            payment_date=payment_date,
        )


@dataclass(frozen=True)
class InvoiceSpec:
    """A finalized sale/purchase document handed over by invoice CRUD."""

    party_id: UUID
    document_type: str
    document_number: str
    total_amount: Money
    document_date: date
    due_date: date | None = None
    payment_method: str | None = None
    bank_account_id: UUID | None = None


@dataclass(frozen=True)
class InvoiceInfo:
    """
    Read snapshot of an invoice, as consumed by the Allocation Engine.
    """

    invoice_id: UUID
    company_id: UUID
    party_id: UUID
    document_type: str
    document_number: str
    document_date: date
    due_date: date | None
    total_amount: Money
    paid_amount: Money
    payment_status: str
    status: str = "active"

    @property
    def pending_amount(self) -> Money:
        return self.total_amount - self.paid_amount

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"


@dataclass(frozen=True)
class PlannedAllocation:
    """One step of an allocation plan: how much goes to which invoice."""

    invoice_id: UUID
    document_number: str
    allocated: Money
    pending_before: Money

    @property
    def pending_after(self) -> Money:
        return self.pending_before - self.allocated

    @property
    def settles_invoice(self) -> bool:
        return self.pending_after.is_zero


@dataclass(frozen=True)
class AllocationPlan:
    """
    Explicit allocation plan produced by the Allocation Engine and consumed
    by the Ledger Writer.

    Guarantees:
        - total_allocated + unallocated == amount.
        - Every line is positive and never exceeds its pending_before.
    """

    party_id: UUID
    payment_type: PaymentType
    amount: Money
    lines: tuple[PlannedAllocation, ...]
    unallocated: Money

    def __post_init__(self) -> None:
        for line in self.lines:
            if not line.allocated.is_positive:
                raise ValueError(f"Allocation to {line.invoice_id} must be positive")
            if line.allocated > line.pending_before:
                raise ValueError(
                    f"Allocation {line.allocated} exceeds pending {line.pending_before} "
                    f"on {line.invoice_id}"
                )
        if self.unallocated.is_negative:
            raise ValueError("Unallocated amount cannot be negative")
        if self.total_allocated + self.unallocated != self.amount:
            raise ValueError(
                f"Allocation plan does not conserve amount: "
                f"{self.total_allocated} + {self.unallocated} != {self.amount}"
            )

    @property
    def total_allocated(self) -> Money:
        total = Money.zero(self.amount.currency)
        for line in self.lines:
            total = total + line.allocated
        return total

    @property
    def invoice_ids(self) -> tuple[UUID, ...]:
        return tuple(line.invoice_id for line in self.lines)

    @property
    def is_fully_allocated(self) -> bool:
        return self.unallocated.is_zero


@dataclass(frozen=True)
class AppliedAllocation:
    """Outcome of one allocation after the write."""

    invoice_id: UUID
    document_number: str
    allocated_amount: Money
    paid_amount: Money
    pending_amount: Money
    payment_status: str


@dataclass(frozen=True)
class PaymentResult:
    """
    Result of ``record_payment`` / ``reverse_payment``.

    ``already_reversed`` is True when a reversal was requested for a payment
    that was already reversed (no-op success).
    """

    payment_id: UUID
    payment_number: str
    status: str
    direction: str
    method: str
    amount: Money
    advance_amount: Money
    allocations: tuple[AppliedAllocation, ...]
    party_id: UUID
    party_balance_before: Money
    party_balance_after: Money
    bank_transaction_id: UUID | None = None
    already_reversed: bool = False

    @property
    def allocated_amount(self) -> Money:
        total = Money.zero(self.amount.currency)
        for line in self.allocations:
            total = total + line.allocated_amount
        return total


@dataclass(frozen=True)
class PaymentDetail:
    """
    A recorded payment read back with its allocations.

    Each allocation line carries the invoice's paid/pending/status as they
    are now, not as they were when the payment was written.  Allocations
    of a reversed payment are still listed; the invoices show the restored
    amounts.
    """

    payment_id: UUID
    payment_number: str
    status: str
    direction: str
    payment_type: str
    method: str
    amount: Money
    allocated_amount: Money
    advance_amount: Money
    allocations: tuple[AppliedAllocation, ...]
    party_id: UUID
    payment_date: datetime
    bank_account_id: UUID | None = None
    bank_transaction_id: UUID | None = None
    reference: str | None = None
    notes: str | None = None
    reversed_at: datetime | None = None
    reversal_reason: str | None = None

    @property
    def is_reversed(self) -> bool:
        return self.status == "reversed"


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class MatchStrategy(str, Enum):
    """Which heuristic produced a reconciliation match, highest priority first."""

    EXACT_AMOUNT_BANK = "exact_amount_bank"
    DOCUMENT_NUMBER = "document_number"
    PARTY_AMOUNT_WINDOW = "party_amount_window"
    PARTY_BANK_BROAD = "party_bank_broad"
    DEFAULT_BANK_ACCOUNT = "default_bank_account"


@dataclass(frozen=True)
class DocumentSnapshot:
    """
    The document being opened for view/edit, as seen by the matcher.
    """

    document_id: UUID | str
    company_id: UUID | str
    party_id: UUID | str
    document_type: str
    document_number: str
    total_amount: Decimal
    document_date: date
    payment_method: PaymentMethod | None = None
    bank_account_id: UUID | str | None = None
    payment_id: UUID | str | None = None

    @property
    def expected_direction(self) -> str:
        return "out" if self.document_type == "purchase" else "in"

    @property
    def needs_bank_account(self) -> bool:
        """Recorded method needs a bank leg but no account is attached."""
        return (
            self.payment_method is not None
            and self.payment_method.requires_bank_leg
            and self.bank_account_id is None
        )


_CANDIDATE_ALIASES: dict[str, tuple[str, ...]] = {
    "transaction_id": ("transaction_id", "transactionId", "id", "_id"),
    "payment_id": ("payment_id", "paymentId", "payment"),
    "company_id": ("company_id", "companyId", "company"),
    "party_id": ("party_id", "partyId", "party"),
    "amount": ("amount", "finalTotal", "final_total", "totalAmount", "total_amount", "total"),
    "method": ("payment_method", "paymentMethod", "method", "mode"),
    "bank_account_id": ("bank_account_id", "bankAccountId", "bankAccount", "bank_account"),
    "transaction_date": (
        "transaction_date",
        "transactionDate",
        "payment_date",
        "paymentDate",
        "date",
        "created_at",
        "createdAt",
    ),
    "description": ("description", "narration"),
    "reference": ("reference", "referenceNumber", "reference_number", "refNo"),
    "notes": ("notes", "note", "remarks"),
    "direction": ("direction", "transactionType", "transaction_type", "type"),
}

_DIRECTION_ALIASES: dict[str, str] = {
    "in": "in",
    "payment_in": "in",
    "credit": "in",
    "receipt": "in",
    "sale": "in",
    "income": "in",
    "out": "out",
    "payment_out": "out",
    "debit": "out",
    "purchase": "out",
    "expense": "out",
}


def _first(record: Mapping[str, Any], field_name: str) -> Any:
    for key in _CANDIDATE_ALIASES[field_name]:
        value = record.get(key)
        if value is not None and value != "":
            if isinstance(value, Mapping):
                value = value.get("_id", value.get("id"))
            return value
    return None


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return as_utc(datetime(value.year, value.month, value.day))
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return as_utc(datetime.fromisoformat(text))
    raise ValueError(f"Cannot parse transaction date from {value!r}")


@dataclass(frozen=True)
class TransactionCandidate:
    """
    Canonical shape of a historical transaction considered by the matcher.

    Identifiers are kept as strings so legacy (non-UUID) ids compare
    uniformly with ledger ids.
    """

    transaction_id: str
    amount: Decimal
    transaction_date: datetime
    party_id: str | None = None
    company_id: str | None = None
    payment_id: str | None = None
    method: PaymentMethod | None = None
    bank_account_id: str | None = None
    description: str | None = None
    reference: str | None = None
    notes: str | None = None
    direction: str | None = None

    @property
    def has_bank_reference(self) -> bool:
        return self.bank_account_id is not None

    @property
    def requires_bank_leg(self) -> bool:
        return self.method is not None and self.method.requires_bank_leg

    def text_fields(self) -> tuple[str, ...]:
        return tuple(t for t in (self.description, self.reference, self.notes) if t)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> TransactionCandidate:
        """
        Normalize a collaborator record with aliased/optional fields.

        Raises:
            ValueError: record has no id, amount or date.
        """
        txn_id = _first(record, "transaction_id")
        if txn_id is None:
            raise ValueError("Transaction record has no id")

        raw_amount = _first(record, "amount")
        if raw_amount is None:
            raise ValueError(f"Transaction {txn_id} has no amount")
        if isinstance(raw_amount, float):
            raw_amount = repr(raw_amount)
        try:
            amount = Decimal(str(raw_amount))
        except InvalidOperation as exc:
            raise ValueError(f"Transaction {txn_id} has invalid amount {raw_amount!r}") from exc

        raw_date = _first(record, "transaction_date")
        if raw_date is None:
            raise ValueError(f"Transaction {txn_id} has no date")

        raw_method = _first(record, "method")
        try:
            method = PaymentMethod.normalize(raw_method) if raw_method is not None else None
        except ValueError:
            method = None

        raw_direction = _first(record, "direction")
        direction = (
            _DIRECTION_ALIASES.get(str(raw_direction).lower()) if raw_direction is not None else None
        )

        def _opt_str(name: str) -> str | None:
            value = _first(record, name)
            return str(value) if value is not None else None

        return cls(
            transaction_id=str(txn_id),
            amount=abs(amount),
            transaction_date=_parse_datetime(raw_date),
            party_id=_opt_str("party_id"),
            company_id=_opt_str("company_id"),
            payment_id=_opt_str("payment_id"),
            method=method,
            bank_account_id=_opt_str("bank_account_id"),
            description=_opt_str("description"),
            reference=_opt_str("reference"),
            notes=_opt_str("notes"),
            direction=direction,
        )


@dataclass(frozen=True)
class BankAccountHint:
    """Display-only default bank account for a document with none attached."""

    bank_account_id: UUID
    account_name: str
    bank_name: str | None
    source: str  # "party" or "company"


@dataclass(frozen=True)
class ReconciliationMatch:
    """
    Transient matcher output; never persisted.

    ``transaction`` is None only for the DEFAULT_BANK_ACCOUNT display hint.
    """

    transaction: TransactionCandidate | None
    confidence: Decimal
    matched_strategy: MatchStrategy
    bank_account_hint: BankAccountHint | None = None


@dataclass(frozen=True)
class DocumentView:
    """
    Read-side view of a document opened for view/edit.

    ``link_source`` is "explicit" when the invoice carries its payment link,
    "reconciled" when the matcher supplied it, "default_bank_account" when
    only a bank display hint was found and "none" otherwise.
    """

    document: DocumentSnapshot
    paid_amount: Decimal
    pending_amount: Decimal
    payment_status: str
    link_source: str
    payment_id: str | None = None
    payment_method: PaymentMethod | None = None
    bank_account_id: str | None = None
    transaction_id: str | None = None
    transaction_date: datetime | None = None
    match: ReconciliationMatch | None = None


# ---------------------------------------------------------------------------
# Balance rollups
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PartyBucket:
    count: int
    amount: Decimal


@dataclass(frozen=True)
class BalanceSummary:
    """
    Company-wide receivable/payable rollup.

    ``customers.amount`` is receivable, ``vendors.amount`` is payable.
    """

    total_parties: int
    customers: PartyBucket
    vendors: PartyBucket
    total_receivable: Decimal
    total_payable: Decimal
    net_balance: Decimal


@dataclass(frozen=True)
class PartyPaymentSummary:
    party_id: UUID
    total_in: Decimal
    count_in: int
    total_out: Decimal
    count_out: int
    net: Decimal


@dataclass(frozen=True)
class BalanceDiscrepancy:
    """A party whose maintained balance disagrees with the recomputation."""

    party_id: UUID
    party_name: str
    maintained: Decimal
    recomputed: Decimal
    difference: Decimal = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "difference", self.maintained - self.recomputed)
