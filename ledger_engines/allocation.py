"""
Module: ledger_engines.allocation
Responsibility:
    Decide how a payment is split across a party's open invoices and how
    much of it remains as advance credit on the party balance.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel domain values, DTOs and exceptions.

Invariants enforced:
    - total_allocated + unallocated == payment amount.
    - No line exceeds the invoice's pending amount; every line is positive.
    - against_invoice payments touch exactly one invoice and never spill.
    - Advance distribution is oldest-due-first: due date (falling back to
      document date), then document date, then document number.

Failure modes:
    - InvalidAllocationError for an against_invoice payment whose target is
      missing, foreign, cancelled, of the wrong document type or already
      fully paid.

Usage:
    from ledger_engines.allocation import AllocationEngine

    engine = AllocationEngine(auto_distribute_advances=False)
    plan = engine.plan(request=request, company_id=ctx.company_id, invoices=open_invoices)
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.dtos import (
    AllocationPlan,
    InvoiceInfo,
    PaymentRequest,
    PlannedAllocation,
)
from ledger_kernel.domain.payment_method import PaymentType
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import InvalidAllocationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


def allocation_order_key(invoice: InvoiceInfo) -> tuple:
    """Sort key for oldest-due-first allocation."""
    return (
        invoice.due_date or invoice.document_date,
        invoice.document_date,
        invoice.document_number,
    )


class AllocationEngine:
    """
    Pure allocation planner.

    Contract:
        ``plan`` returns an AllocationPlan the Ledger Writer can apply
        as-is.  The engine trusts nothing about the candidate list: every
        invoice is checked for party, company, document type and status.

    Non-goals:
        - Does not lock or re-read invoices; the writer re-checks pending
          amounts under lock.
    """

    def __init__(self, auto_distribute_advances: bool = False):
        self.auto_distribute_advances = auto_distribute_advances

    @traced_engine(
        "payment_allocation",
        "1.0",
        fingerprint_fields=("request.amount", "request.payment_type", "request.target_invoice_id"),
    )
    def plan(
        self,
        *,
        request: PaymentRequest,
        company_id: UUID,
        invoices: Sequence[InvoiceInfo],
    ) -> AllocationPlan:
        """
        Plan the allocation of ``request`` over ``invoices``.

        Raises:
            InvalidAllocationError: see module docstring.
        """
        if not request.amount.is_positive:
            raise InvalidAllocationError(
                "payment amount must be positive",
                party_id=str(request.party_id),
                amount=request.amount.amount,
            )

        if request.payment_type == PaymentType.AGAINST_INVOICE:
            lines = self._against_invoice(request, company_id, invoices)
        elif self.auto_distribute_advances:
            lines = self._distribute(request, company_id, invoices)
        else:
            lines = []

        allocated = Money.zero(request.amount.currency)
        for line in lines:
            allocated = allocated + line.allocated

        plan = AllocationPlan(
            party_id=request.party_id,
            payment_type=request.payment_type,
            amount=request.amount,
            lines=tuple(lines),
            unallocated=request.amount - allocated,
        )
        logger.debug(
            "allocation_planned",
            extra={
                "party_id": str(request.party_id),
                "payment_type": request.payment_type.value,
                "amount": str(request.amount.amount),
                "allocated": str(allocated.amount),
                "advance": str(plan.unallocated.amount),
                "line_count": len(lines),
            },
        )
        return plan

    def _eligible(
        self,
        request: PaymentRequest,
        company_id: UUID,
        invoice: InvoiceInfo,
    ) -> str | None:
        """Reason the invoice cannot take this payment, or None."""
        if invoice.company_id != company_id or invoice.party_id != request.party_id:
            return "invoice belongs to a different party or company"
        if invoice.is_cancelled:
            return "invoice is cancelled"
        if invoice.document_type != request.direction.document_type:
            return (
                f"payment {request.direction.value} cannot settle a "
                f"{invoice.document_type} invoice"
            )
        if not invoice.pending_amount.is_positive:
            return "invoice is already fully paid"
        return None

    def _against_invoice(
        self,
        request: PaymentRequest,
        company_id: UUID,
        invoices: Sequence[InvoiceInfo],
    ) -> list[PlannedAllocation]:
        if request.target_invoice_id is None:
            raise InvalidAllocationError(
                "against_invoice payment requires a target invoice",
                party_id=str(request.party_id),
                amount=request.amount.amount,
            )
        target = next((i for i in invoices if i.invoice_id == request.target_invoice_id), None)
        if target is None:
            raise InvalidAllocationError(
                "target invoice not found for this party",
                invoice_id=str(request.target_invoice_id),
                party_id=str(request.party_id),
            )
        reason = self._eligible(request, company_id, target)
        if reason is not None:
            raise InvalidAllocationError(
                reason,
                invoice_id=str(target.invoice_id),
                party_id=str(request.party_id),
                amount=request.amount.amount,
            )
        pending = target.pending_amount
        return [
            PlannedAllocation(
                invoice_id=target.invoice_id,
                document_number=target.document_number,
                allocated=Money.min(request.amount, pending),
                pending_before=pending,
            )
        ]

    def _distribute(
        self,
        request: PaymentRequest,
        company_id: UUID,
        invoices: Sequence[InvoiceInfo],
    ) -> list[PlannedAllocation]:
        remaining = request.amount
        lines: list[PlannedAllocation] = []
        eligible = [i for i in invoices if self._eligible(request, company_id, i) is None]
        for invoice in sorted(eligible, key=allocation_order_key):
            if not remaining.is_positive:
                break
            pending = invoice.pending_amount
            portion = Money.min(remaining, pending)
            lines.append(
                PlannedAllocation(
                    invoice_id=invoice.invoice_id,
                    document_number=invoice.document_number,
                    allocated=portion,
                    pending_before=pending,
                )
            )
            remaining = remaining - portion
        return lines
