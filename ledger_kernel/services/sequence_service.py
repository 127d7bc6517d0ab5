"""
SequenceService -- monotonic document numbering via locked counter rows.

Responsibility:
    Issues payment numbers (``PAY-IN-000001`` / ``PAY-OUT-000001``) per
    company and bank transaction numbers (``TXN-YYYYMMDD-000001``) per
    company and day.

Architecture position:
    Kernel > Services -- called by LedgerWriter inside its write unit.

Invariants enforced:
    - Numbers come from the counter row, never from COUNT(*)/MAX()+1.
    - The increment is transactional: a rolled back write unit returns
      its numbers.

Failure modes:
    - IntegrityError on concurrent counter creation is absorbed by a
      savepoint and the increment proceeds on the row the other
      transaction created.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.payment_method import PaymentDirection
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.
    """

    PAYMENT_IN = "payment_in"
    PAYMENT_OUT = "payment_out"
    BANK_TRANSACTION = "bank_transaction"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        The counter row is created on first use and incremented in place with
        a single UPDATE, which holds the row lock until the caller's
        transaction ends.

        Returns:
            The next sequence value (always > 0).
        """
        exists = self._session.execute(
            select(SequenceCounter.id).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        if exists is None:
            savepoint = self._session.begin_nested()
            try:
                self._session.add(SequenceCounter(name=sequence_name, current_value=0))
                self._session.flush()
                savepoint.commit()
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()

        self._session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .execution_options(synchronize_session=False)
        )
        value = self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
            .execution_options(populate_existing=True)
        ).scalar_one()

        assert value > 0, "sequence value must be strictly positive"

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def next_payment_number(self, company_id: UUID, direction: PaymentDirection) -> str:
        """``PAY-IN-000001`` / ``PAY-OUT-000001``, numbered per company and direction."""
        name = self.PAYMENT_IN if direction == PaymentDirection.IN else self.PAYMENT_OUT
        value = self.next_value(f"{company_id}:{name}")
        prefix = "PAY-IN" if direction == PaymentDirection.IN else "PAY-OUT"
        return f"{prefix}-{value:06d}"

    def next_bank_transaction_number(self, company_id: UUID, on: date) -> str:
        """``TXN-YYYYMMDD-000001``, numbered per company and calendar day."""
        stamp = on.strftime("%Y%m%d")
        value = self.next_value(f"{company_id}:{self.BANK_TRANSACTION}:{stamp}")
        return f"TXN-{stamp}-{value:06d}"

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
