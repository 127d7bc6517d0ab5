"""
Module: ledger_kernel.models.invoice
Responsibility: ORM persistence for sale and purchase documents and their
    paid/pending state.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - 0 <= paid_amount <= total_amount (CHECK constraints).
    - pending_amount = total_amount - paid_amount, maintained by the
      Ledger Writer on every allocation and reversal.
    - total_amount is fixed once the invoice is booked.

Failure modes:
    - IntegrityError when a write would break the paid/total bounds.
    - StaleDataError on concurrent modification (version column).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, VersionedMixin


class DocumentType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class InvoiceStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class Invoice(VersionedMixin, TrackedBase):
    """
    Sale or purchase document carrying an outstanding amount.

    ``payment_method`` / ``bank_account_id`` are what the document itself
    recorded at creation; ``payment_id`` is the explicit payment link, absent
    on legacy rows (those are candidates for reconciliation).
    """

    __tablename__ = "invoices"

    __table_args__ = (
        CheckConstraint("paid_amount >= 0", name="ck_invoice_paid_non_negative"),
        CheckConstraint("paid_amount <= total_amount", name="ck_invoice_paid_le_total"),
        CheckConstraint("pending_amount >= 0", name="ck_invoice_pending_non_negative"),
        Index("idx_invoice_party_open", "party_id", "document_type", "payment_status"),
        Index("idx_invoice_company_number", "company_id", "document_number"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)

    party_id: Mapped[UUID] = mapped_column(
        ForeignKey("parties.id"),
        nullable=False,
    )

    document_type: Mapped[DocumentType] = mapped_column(String(20), nullable=False)

    document_number: Mapped[str] = mapped_column(String(64), nullable=False)

    document_date: Mapped[date] = mapped_column(nullable=False)

    due_date: Mapped[date | None] = mapped_column(nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    pending_amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
    )

    status: Mapped[InvoiceStatus] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.ACTIVE.value,
    )

    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)

    bank_account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("bank_accounts.id"),
        nullable=True,
    )

    payment_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Invoice {self.document_number} total={self.total_amount} "
            f"paid={self.paid_amount} {self.payment_status}>"
        )
