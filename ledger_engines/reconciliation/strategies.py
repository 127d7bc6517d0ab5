"""
ledger_engines.reconciliation.strategies -- Ordered heuristics that link a
document to the historical transaction that paid it.

Responsibility:
    Each strategy is a pure function
    ``(document, candidates, policy) -> ReconciliationMatch | None``.
    The matcher folds over ``DEFAULT_STRATEGIES`` in order; the first
    strategy returning a match wins.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Amount comparisons are Decimal and strict: |amount - total| < epsilon.
    - Among several qualifying candidates the most recent transaction wins;
      equal dates fall back to the amount closest to the document total.
    - Each strategy iterates its candidates exactly once, so the matcher's
      metered iterator counts every candidate examined.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from ledger_kernel.domain.dtos import (
    DocumentSnapshot,
    MatchStrategy,
    ReconciliationMatch,
    TransactionCandidate,
)


@dataclass(frozen=True)
class MatchPolicy:
    """Tunable thresholds shared by the strategies."""

    amount_epsilon: Decimal = Decimal("1.00")
    days_before: int = 1
    days_after: int = 7


DEFAULT_POLICY = MatchPolicy()

CONFIDENCE: dict[MatchStrategy, Decimal] = {
    MatchStrategy.EXACT_AMOUNT_BANK: Decimal("0.95"),
    MatchStrategy.DOCUMENT_NUMBER: Decimal("0.85"),
    MatchStrategy.PARTY_AMOUNT_WINDOW: Decimal("0.75"),
    MatchStrategy.PARTY_BANK_BROAD: Decimal("0.40"),
    MatchStrategy.DEFAULT_BANK_ACCOUNT: Decimal("0"),
}

Strategy = Callable[
    [DocumentSnapshot, Iterable[TransactionCandidate], MatchPolicy],
    "ReconciliationMatch | None",
]


def _amount_close(document: DocumentSnapshot, txn: TransactionCandidate, epsilon: Decimal) -> bool:
    return abs(txn.amount - Decimal(document.total_amount)) < epsilon


def _same_party(document: DocumentSnapshot, txn: TransactionCandidate) -> bool:
    return txn.party_id is not None and txn.party_id == str(document.party_id)


def _in_window(document: DocumentSnapshot, txn: TransactionCandidate, policy: MatchPolicy) -> bool:
    day = txn.transaction_date.date()
    start = document.document_date - timedelta(days=policy.days_before)
    end = document.document_date + timedelta(days=policy.days_after)
    return start <= day <= end


def _mentions(document: DocumentSnapshot, txn: TransactionCandidate) -> bool:
    needle = (document.document_number or "").strip().lower()
    if not needle:
        return False
    return any(needle in text.lower() for text in txn.text_fields())


def pick_best(
    document: DocumentSnapshot,
    matches: Iterable[TransactionCandidate],
) -> TransactionCandidate | None:
    """Most recent transaction; ties go to the amount closest to the total."""
    total = Decimal(document.total_amount)
    best = None
    best_key = None
    for txn in matches:
        key = (txn.transaction_date, -abs(txn.amount - total))
        if best_key is None or key > best_key:
            best, best_key = txn, key
    return best


def _select(
    document: DocumentSnapshot,
    candidates: Iterable[TransactionCandidate],
    strategy: MatchStrategy,
    predicate: Callable[[TransactionCandidate], bool],
) -> ReconciliationMatch | None:
    winner = pick_best(document, (txn for txn in candidates if predicate(txn)))
    if winner is None:
        return None
    return ReconciliationMatch(
        transaction=winner,
        confidence=CONFIDENCE[strategy],
        matched_strategy=strategy,
    )


def exact_amount_bank(document, candidates, policy=DEFAULT_POLICY):
    """Same amount, paid through a bank account by a bank-leg method."""
    return _select(
        document,
        candidates,
        MatchStrategy.EXACT_AMOUNT_BANK,
        lambda txn: (
            _amount_close(document, txn, policy.amount_epsilon)
            and txn.has_bank_reference
            and txn.requires_bank_leg
        ),
    )


def document_number(document, candidates, policy=DEFAULT_POLICY):
    """Description, reference or notes mention the document number."""
    return _select(
        document,
        candidates,
        MatchStrategy.DOCUMENT_NUMBER,
        lambda txn: txn.has_bank_reference and _mentions(document, txn),
    )


def party_amount_window(document, candidates, policy=DEFAULT_POLICY):
    """Same party and amount, dated shortly around the document."""
    return _select(
        document,
        candidates,
        MatchStrategy.PARTY_AMOUNT_WINDOW,
        lambda txn: (
            _same_party(document, txn)
            and _amount_close(document, txn, policy.amount_epsilon)
            and _in_window(document, txn, policy)
        ),
    )


def party_bank_broad(document, candidates, policy=DEFAULT_POLICY):
    # Weakest signal: any bank payment with this party
    return _select(
        document,
        candidates,
        MatchStrategy.PARTY_BANK_BROAD,
        lambda txn: (
            _same_party(document, txn) and txn.has_bank_reference and txn.requires_bank_leg
        ),
    )


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    exact_amount_bank,
    document_number,
    party_amount_window,
    party_bank_broad,
)
