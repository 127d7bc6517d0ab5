"""
Module: ledger_kernel.models.payment
Responsibility: ORM persistence for payments and their ordered invoice
    allocations.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - amount > 0 and advance_amount >= 0 (CHECK constraints).
    - sum(allocations.allocated_amount) + advance_amount == amount, so the
      allocations never exceed the payment.
    - A completed payment is immutable except for the single transition to
      ``reversed`` (see db/immutability.py).
    - payment_number is unique per company.

Failure modes:
    - ImmutabilityViolationError on edits to a completed payment.
    - IntegrityError on duplicate payment_number.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, VersionedMixin


class PaymentRecordStatus(str, Enum):
    COMPLETED = "completed"
    REVERSED = "reversed"


class Payment(VersionedMixin, TrackedBase):
    """
    Money received from or paid to a party.

    The unallocated remainder (``advance_amount``) is the advance credit
    applied to the party balance.
    """

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("company_id", "payment_number", name="uq_payment_number"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        CheckConstraint("advance_amount >= 0", name="ck_payment_advance_non_negative"),
        Index("idx_payment_party", "party_id", "status"),
        Index("idx_payment_company_date", "company_id", "payment_date"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)

    party_id: Mapped[UUID] = mapped_column(ForeignKey("parties.id"), nullable=False)

    payment_number: Mapped[str] = mapped_column(String(32), nullable=False)

    # "in" or "out"
    direction: Mapped[str] = mapped_column(String(3), nullable=False)

    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    advance_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    method: Mapped[str] = mapped_column(String(30), nullable=False)

    bank_account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("bank_accounts.id"),
        nullable=True,
    )

    # No FK: bank_transactions already references payments
    bank_transaction_id: Mapped[UUID | None] = mapped_column(nullable=True)

    status: Mapped[PaymentRecordStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentRecordStatus.COMPLETED.value,
    )

    payment_date: Mapped[datetime] = mapped_column(nullable=False)

    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    party_balance_before: Mapped[Decimal] = mapped_column(nullable=False)

    party_balance_after: Mapped[Decimal] = mapped_column(nullable=False)

    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    reversed_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    reversal_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    allocations: Mapped[list["PaymentAllocation"]] = relationship(
        back_populates="payment",
        order_by="PaymentAllocation.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def allocated_amount(self) -> Decimal:
        return sum((a.allocated_amount for a in self.allocations), Decimal("0"))

    @property
    def is_reversed(self) -> bool:
        return self.status == PaymentRecordStatus.REVERSED

    def __repr__(self) -> str:
        return f"<Payment {self.payment_number} {self.direction} {self.amount} {self.status}>"


class PaymentAllocation(Base):
    """One ordered slice of a payment applied to an invoice."""

    __tablename__ = "payment_allocations"

    __table_args__ = (
        UniqueConstraint("payment_id", "sequence", name="uq_payment_allocation_seq"),
        CheckConstraint("allocated_amount > 0", name="ck_allocation_positive"),
        Index("idx_allocation_invoice", "invoice_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(ForeignKey("payments.id"), nullable=False)

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("invoices.id"), nullable=False)

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    allocated_amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment: Mapped[Payment] = relationship(back_populates="allocations")
