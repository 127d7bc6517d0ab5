"""
Module: ledger_kernel.selectors.invoice_selector
Responsibility: Read-only invoice queries: open invoices in allocation order
    and document snapshots for reconciliation.
Architecture position: Kernel > Selectors.  May import from models/, db/,
    domain/ and the row converters in services/ledger_store.  MUST NOT
    import from outer layers.

Invariants enforced:
    - "Open" means status active and pending_amount > 0; cancelled invoices
      are never returned as allocation candidates.
    - Allocation order is oldest-due-first: due date (documents without one
      sort by document date), then document date, then document number.
"""

from uuid import UUID

from ledger_kernel.db.types import enum_value
from ledger_kernel.domain.dtos import DocumentSnapshot, InvoiceInfo
from ledger_kernel.domain.payment_method import PaymentDirection, PaymentMethod
from ledger_kernel.models.invoice import Invoice
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.services.ledger_store import LedgerStore, invoice_info_from_model


def to_document_snapshot(invoice: Invoice) -> DocumentSnapshot:
    """Build the matcher's view of an invoice row."""
    method = None
    if invoice.payment_method:
        try:
            method = PaymentMethod.normalize(invoice.payment_method)
        except ValueError:
            method = None
    return DocumentSnapshot(
        document_id=str(invoice.id),
        company_id=str(invoice.company_id),
        party_id=str(invoice.party_id),
        document_type=enum_value(invoice.document_type),
        document_number=invoice.document_number,
        total_amount=invoice.total_amount,
        document_date=invoice.document_date,
        payment_method=method,
        bank_account_id=str(invoice.bank_account_id) if invoice.bank_account_id else None,
        payment_id=str(invoice.payment_id) if invoice.payment_id else None,
    )


class InvoiceSelector(BaseSelector):
    """Read-only access to invoices for allocation and reconciliation."""

    def __init__(self, session, currency: str = "INR"):
        super().__init__(session)
        self._currency = currency

    def get(self, company_id: UUID, invoice_id: UUID) -> InvoiceInfo:
        return invoice_info_from_model(self.get_model(company_id, invoice_id), self._currency)

    def get_model(self, company_id: UUID, invoice_id: UUID) -> Invoice:
        """
        Raises:
            InvoiceNotFoundError: unknown id or another company's invoice.
        """
        return LedgerStore(self.session).get_invoice(company_id, invoice_id)

    def snapshot(self, company_id: UUID, invoice_id: UUID) -> DocumentSnapshot:
        return to_document_snapshot(self.get_model(company_id, invoice_id))

    def pending_invoices_for_payment(
        self,
        company_id: UUID,
        party_id: UUID,
        direction: PaymentDirection,
    ) -> list[InvoiceInfo]:
        """
        Open invoices a payment in ``direction`` may settle, oldest-due-first.

        Sale invoices for payments in, purchase invoices for payments out.
        """
        rows = LedgerStore(self.session).open_invoices(
            company_id, party_id, direction.document_type
        )
        return [invoice_info_from_model(row, self._currency) for row in rows]

    def candidates_for(
        self,
        company_id: UUID,
        party_id: UUID,
        direction: PaymentDirection,
        target_invoice_id: UUID | None = None,
    ) -> list[InvoiceInfo]:
        """
        Allocation candidates for a payment.

        An explicit target is always included, even when cancelled or paid,
        so the Allocation Engine can reject it with a precise reason.
        """
        candidates = self.pending_invoices_for_payment(company_id, party_id, direction)
        if target_invoice_id is not None and all(
            c.invoice_id != target_invoice_id for c in candidates
        ):
            invoice = self.session.get(Invoice, target_invoice_id)
            if invoice is not None:
                candidates.append(invoice_info_from_model(invoice, self._currency))
        return candidates
