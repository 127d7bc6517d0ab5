"""
ledger_services.retry -- Bounded retry of ledger write units on conflict.

A write unit that fails with LedgerWriteConflictError has been rolled back
completely, so running it again from the start is safe.  Any other error is
raised immediately.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from ledger_kernel.exceptions import LedgerWriteConflictError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")


def call_with_conflict_retry(
    fn: Callable[[], T],
    attempts: int = 3,
    backoff: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` up to ``attempts`` times while it raises
    LedgerWriteConflictError, sleeping ``backoff * attempt`` seconds between
    tries.  The last conflict is re-raised.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except LedgerWriteConflictError as exc:
            if attempt >= attempts:
                logger.warning(
                    "ledger_write_conflict_exhausted",
                    extra={
                        "attempts": attempts,
                        "entity_type": exc.entity_type,
                        "entity_id": exc.entity_id,
                    },
                )
                raise
            logger.info(
                "ledger_write_conflict_retry",
                extra={
                    "attempt": attempt,
                    "max_attempts": attempts,
                    "entity_type": exc.entity_type,
                    "entity_id": exc.entity_id,
                },
            )
            if backoff > 0:
                sleep(backoff * attempt)
    raise AssertionError("unreachable")
