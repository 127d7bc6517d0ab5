"""
ledger_engines.reconciliation.matcher -- Fold over the reconciliation
strategies under an iteration and wall-clock budget.

Responsibility:
    Pre-filters candidates to the document's company and payment direction,
    then tries each strategy in order and returns the first match.

Architecture position:
    Engines -- pure calculation layer.  Reads a monotonic clock for the
    time budget; no other I/O.

Invariants enforced:
    - The iteration budget counts every candidate examined across the whole
      traversal (pre-filter plus every strategy).
    - Exceeding either budget yields None; ReconciliationBudgetExceededError
      never escapes ``find_match``.
    - Never mutates the document or the candidates.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Iterator, Sequence
from decimal import Decimal

from ledger_engines.reconciliation.strategies import (
    DEFAULT_POLICY,
    DEFAULT_STRATEGIES,
    MatchPolicy,
    Strategy,
)
from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.dtos import (
    DocumentSnapshot,
    ReconciliationMatch,
    TransactionCandidate,
)
from ledger_kernel.exceptions import ReconciliationBudgetExceededError
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")


class _Budget:
    """Shared counter for one find_match traversal."""

    def __init__(self, max_iterations: int, time_budget_ms: int):
        self.max_iterations = max_iterations
        self.time_budget_ms = time_budget_ms
        self.iterations = 0
        self.strategy: str | None = None
        self._deadline = time.monotonic() + time_budget_ms / 1000.0

    def meter(self, candidates: Iterable[TransactionCandidate]) -> Iterator[TransactionCandidate]:
        for txn in candidates:
            self.iterations += 1
            if self.iterations > self.max_iterations:
                raise ReconciliationBudgetExceededError(
                    "iterations", self.max_iterations, strategy=self.strategy
                )
            if time.monotonic() > self._deadline:
                raise ReconciliationBudgetExceededError(
                    "time_ms", self.time_budget_ms, strategy=self.strategy
                )
            yield txn


class ReconciliationMatcher:
    """
    Ordered-strategy matcher.

    Contract:
        ``find_match`` returns the first strategy's match, or None when no
        strategy matches or the budget runs out.
    """

    def __init__(
        self,
        amount_epsilon: Decimal | None = None,
        days_before: int | None = None,
        days_after: int | None = None,
        max_iterations: int = 5000,
        time_budget_ms: int = 250,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
    ):
        self.policy = MatchPolicy(
            amount_epsilon=(
                DEFAULT_POLICY.amount_epsilon if amount_epsilon is None else amount_epsilon
            ),
            days_before=DEFAULT_POLICY.days_before if days_before is None else days_before,
            days_after=DEFAULT_POLICY.days_after if days_after is None else days_after,
        )
        self.max_iterations = max_iterations
        self.time_budget_ms = time_budget_ms
        self.strategies = tuple(strategies)

    @classmethod
    def from_settings(cls, settings) -> ReconciliationMatcher:
        """Build from a ``ReconciliationSettings`` config section."""
        return cls(
            amount_epsilon=settings.amount_epsilon,
            days_before=settings.date_window_days_before,
            days_after=settings.date_window_days_after,
            max_iterations=settings.max_iterations,
            time_budget_ms=settings.time_budget_ms,
        )

    @staticmethod
    def _admissible(document: DocumentSnapshot, txn: TransactionCandidate) -> bool:
        if txn.company_id is not None and txn.company_id != str(document.company_id):
            return False
        if txn.direction is not None and txn.direction != document.expected_direction:
            return False
        return True

    @traced_engine(
        "reconciliation_matcher",
        "1.0",
        fingerprint_fields=("document.document_id", "document.total_amount"),
    )
    def find_match(
        self,
        document: DocumentSnapshot,
        candidates: Iterable[TransactionCandidate],
    ) -> ReconciliationMatch | None:
        budget = _Budget(self.max_iterations, self.time_budget_ms)
        try:
            budget.strategy = "prefilter"
            pool = [txn for txn in budget.meter(candidates) if self._admissible(document, txn)]
            for strategy in self.strategies:
                budget.strategy = strategy.__name__
                match = strategy(document, budget.meter(pool), self.policy)
                if match is not None:
                    logger.info(
                        "reconciliation_match_found",
                        extra={
                            "document_id": str(document.document_id),
                            "document_number": document.document_number,
                            "strategy": match.matched_strategy.value,
                            "transaction_id": match.transaction.transaction_id
                            if match.transaction is not None
                            else None,
                            "confidence": str(match.confidence),
                            "iterations": budget.iterations,
                        },
                    )
                    return match
        except ReconciliationBudgetExceededError as exc:
            logger.warning(
                "reconciliation_budget_exceeded",
                extra={
                    "document_id": str(document.document_id),
                    "budget": exc.budget,
                    "limit": exc.limit,
                    "strategy": exc.strategy,
                    "iterations": budget.iterations,
                },
            )
            return None

        logger.info(
            "reconciliation_no_match",
            extra={
                "document_id": str(document.document_id),
                "candidate_count": len(pool),
                "iterations": budget.iterations,
            },
        )
        return None
