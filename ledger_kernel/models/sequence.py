"""
Module: ledger_kernel.models.sequence
Responsibility: Named counter rows backing payment and bank transaction
    numbering.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    One row per (company, sequence name); the row is incremented in place so
    the counter is the sole source of truth for the next number.
    """

    __tablename__ = "sequence_counters"

    # e.g. "<company_id>:payment_in"
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
