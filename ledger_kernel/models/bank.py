"""
Module: ledger_kernel.models.bank
Responsibility: ORM persistence for bank accounts and the append-only bank
    transaction ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Every completed bank-leg payment has exactly one payment BankTransaction
      (credit for "in", debit for "out"); a reversal appends one
      compensating row instead of editing the original.
    - BankTransaction rows are never updated or deleted.
    - running_balance moves only together with an appended BankTransaction.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, VersionedMixin


class BankAccount(VersionedMixin, TrackedBase):
    """
    Company (or party-linked) bank account with running totals.

    ``party_id`` is set for accounts registered against a specific party;
    company accounts leave it empty.
    """

    __tablename__ = "bank_accounts"

    __table_args__ = (
        Index("idx_bank_account_company", "company_id", "is_active"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)

    party_id: Mapped[UUID | None] = mapped_column(ForeignKey("parties.id"), nullable=True)

    account_name: Mapped[str] = mapped_column(String(255), nullable=False)

    bank_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    account_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    running_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_credits: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_debits: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    transaction_count: Mapped[int] = mapped_column(nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<BankAccount {self.account_name} balance={self.running_balance}>"


class BankTransactionType(str, Enum):
    PAYMENT_IN = "payment_in"
    PAYMENT_OUT = "payment_out"
    REVERSAL = "reversal"


class BankDirection(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class BankTransaction(TrackedBase):
    """Append-only bank ledger row referencing the payment that caused it."""

    __tablename__ = "bank_transactions"

    __table_args__ = (
        UniqueConstraint("company_id", "transaction_number", name="uq_bank_txn_number"),
        Index("idx_bank_txn_payment", "payment_id"),
        Index("idx_bank_txn_party_date", "party_id", "transaction_date"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)

    bank_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("bank_accounts.id"),
        nullable=False,
    )

    payment_id: Mapped[UUID] = mapped_column(ForeignKey("payments.id"), nullable=False)

    party_id: Mapped[UUID] = mapped_column(ForeignKey("parties.id"), nullable=False)

    transaction_number: Mapped[str] = mapped_column(String(32), nullable=False)

    transaction_type: Mapped[BankTransactionType] = mapped_column(String(20), nullable=False)

    direction: Mapped[BankDirection] = mapped_column(String(10), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)

    balance_before: Mapped[Decimal] = mapped_column(nullable=False)

    balance_after: Mapped[Decimal] = mapped_column(nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    transaction_date: Mapped[datetime] = mapped_column(nullable=False)

    reverses_transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("bank_transactions.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<BankTransaction {self.transaction_number} {self.direction} {self.amount}>"
