"""
Module: ledger_kernel.models.party
Responsibility: ORM persistence for the customers, vendors and suppliers a
    company trades with, including the incrementally maintained running
    balance.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - current_balance is signed: positive means the party owes the company,
      negative means the company owes the party.
    - current_balance is mutated only by the Ledger Writer.
    - version is an optimistic lock column; concurrent writers that both
      read the same version cannot both commit.

Failure modes:
    - StaleDataError on flush when the row changed underneath (mapped to
      LedgerWriteConflictError by the store).
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, VersionedMixin


class PartyType(str, Enum):
    """Classification of parties."""

    CUSTOMER = "customer"
    VENDOR = "vendor"
    SUPPLIER = "supplier"
    BOTH = "both"


class Party(VersionedMixin, TrackedBase):
    """
    Counterparty with a running balance.

    Lifecycle: created by party CRUD, soft-deleted through is_active, never
    hard-deleted while it has payment history.
    """

    __tablename__ = "parties"

    __table_args__ = (
        Index("idx_party_company_type", "company_id", "party_type"),
        Index("idx_party_company_active", "company_id", "is_active"),
    )

    company_id: Mapped[UUID] = mapped_column(nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    party_type: Mapped[PartyType] = mapped_column(
        String(20),
        nullable=False,
    )

    # Balance the party was migrated with before any ledger activity
    opening_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    current_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Party {self.name} ({self.party_type}) balance={self.current_balance}>"
