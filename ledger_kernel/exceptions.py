"""
Typed Exception Hierarchy for the Party Ledger kernel.

Every error raised by the ledger core is a typed class with a stable ``code``
class attribute and structured attributes, so callers catch by type and
collaborators map errors to responses without parsing messages.

    LedgerKernelError (base)
    |
    +-- AllocationError
    |   +-- InvalidAllocationError
    |   +-- InvalidPaymentRequestError
    |
    +-- ConcurrencyError
    |   +-- LedgerWriteConflictError
    |
    +-- BankError
    |   +-- BankAccountRequiredError
    |   +-- BankAccountNotFoundError
    |
    +-- ReconciliationError
    |   +-- ReconciliationBudgetExceededError   (internal, never surfaced)
    |
    +-- NotFoundError
    |   +-- PartyNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

Category        | Code                            | When Raised
----------------|---------------------------------|-------------------------------------
Allocation      | INVALID_ALLOCATION              | Non-positive amount, wrong party,
                |                                 | invoice already paid
                | INVALID_PAYMENT_REQUEST         | Malformed request at the boundary
Concurrency     | LEDGER_WRITE_CONFLICT           | Lock timeout, stale version, pending
                |                                 | amount consumed by another payment
Bank            | BANK_ACCOUNT_REQUIRED           | Method needs a bank leg, none given
                | BANK_ACCOUNT_NOT_FOUND          | Unknown or inactive bank account
Reconciliation  | RECONCILIATION_BUDGET_EXCEEDED  | Matcher iteration/time budget spent
Not found       | PARTY_NOT_FOUND                 |
                | INVOICE_NOT_FOUND               |
                | PAYMENT_NOT_FOUND               |
Immutability    | IMMUTABILITY_VIOLATION          | Editing an append-only or completed row

ConcurrencyError subclasses are retryable; everything else is final for the
request that raised it.
"""

from __future__ import annotations

from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Allocation-related exceptions


class AllocationError(LedgerKernelError):
    """Base exception for allocation errors."""

    code: str = "ALLOCATION_ERROR"


class InvalidAllocationError(AllocationError):
    """
    Payment request cannot be allocated as asked.

    No state has been changed when this is raised.
    """

    code: str = "INVALID_ALLOCATION"

    def __init__(
        self,
        reason: str,
        *,
        invoice_id: str | None = None,
        party_id: str | None = None,
        amount: Decimal | None = None,
    ):
        self.reason = reason
        self.invoice_id = invoice_id
        self.party_id = party_id
        self.amount = amount
        super().__init__(f"Invalid allocation: {reason}")


class InvalidPaymentRequestError(InvalidAllocationError):
    """Request failed boundary normalization (unknown method, bad type...)."""

    code: str = "INVALID_PAYMENT_REQUEST"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        super().__init__(f"{field}={value!r}: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency errors. Callers may retry."""

    code: str = "CONCURRENCY_ERROR"


class LedgerWriteConflictError(ConcurrencyError):
    """
    Write unit could not be applied because of concurrent activity.

    Raised on lock timeout, on a stale optimistic version, or when the
    pending amount of an invoice was consumed by another payment between
    planning and writing.  The whole unit has been rolled back.
    """

    code: str = "LEDGER_WRITE_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Ledger write conflict on {entity_type} {entity_id}: {reason}"
        )


# Bank-related exceptions


class BankError(LedgerKernelError):
    """Base exception for bank leg errors."""

    code: str = "BANK_ERROR"


class BankAccountRequiredError(BankError):
    """Payment method needs a bank leg but no bank account was supplied."""

    code: str = "BANK_ACCOUNT_REQUIRED"

    def __init__(self, payment_method: str):
        self.payment_method = payment_method
        super().__init__(
            f"Payment method '{payment_method}' requires a bank account"
        )


class BankAccountNotFoundError(BankError):
    """Bank account does not exist, is inactive, or belongs to another company."""

    code: str = "BANK_ACCOUNT_NOT_FOUND"

    def __init__(self, bank_account_id: str):
        self.bank_account_id = bank_account_id
        super().__init__(f"Bank account not found: {bank_account_id}")


# Reconciliation-related exceptions


class ReconciliationError(LedgerKernelError):
    """Base exception for reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class ReconciliationBudgetExceededError(ReconciliationError):
    """
    Matcher spent its iteration or time budget.

    Internal only: the matcher converts this into "no match".
    """

    code: str = "RECONCILIATION_BUDGET_EXCEEDED"

    def __init__(self, budget: str, limit: int | float, strategy: str | None = None):
        self.budget = budget
        self.limit = limit
        self.strategy = strategy
        super().__init__(
            f"Reconciliation {budget} budget of {limit} exceeded"
            + (f" in strategy {strategy}" if strategy else "")
        )


# Lookup exceptions


class NotFoundError(LedgerKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class PartyNotFoundError(NotFoundError):
    """Party does not exist in the caller's company."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, party_id: str):
        self.party_id = party_id
        super().__init__(f"Party not found: {party_id}")


class InvoiceNotFoundError(NotFoundError):
    """Invoice does not exist in the caller's company."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment does not exist in the caller's company."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


# Immutability-related exceptions


class ImmutabilityError(LedgerKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    BankTransaction rows are append-only; a completed Payment may only move
    to ``reversed``.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
