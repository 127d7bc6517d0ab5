"""Document-to-transaction reconciliation engine."""

from ledger_engines.reconciliation.matcher import ReconciliationMatcher
from ledger_engines.reconciliation.strategies import (
    CONFIDENCE,
    DEFAULT_POLICY,
    DEFAULT_STRATEGIES,
    MatchPolicy,
    document_number,
    exact_amount_bank,
    party_amount_window,
    party_bank_broad,
    pick_best,
)

__all__ = [
    "CONFIDENCE",
    "DEFAULT_POLICY",
    "DEFAULT_STRATEGIES",
    "MatchPolicy",
    "ReconciliationMatcher",
    "document_number",
    "exact_amount_bank",
    "party_amount_window",
    "party_bank_broad",
    "pick_best",
]
