"""
LedgerConfig schema.

Typed, frozen view of a configuration set.  YAML is parsed into these
types by ``ledger_config.loader``; runtime code only ever sees them through
``ledger_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class AllocationSettings:
    """Allocation policy flags."""

    # Off: advance payments land entirely as balance credit
    auto_distribute_advances: bool = False


@dataclass(frozen=True)
class ReconciliationSettings:
    """Matcher thresholds and budgets."""

    amount_epsilon: Decimal = Decimal("1.00")
    date_window_days_before: int = 1
    date_window_days_after: int = 7
    max_iterations: int = 5000
    time_budget_ms: int = 250
    candidate_limit: int = 500


@dataclass(frozen=True)
class WriteSettings:
    """Ledger write unit locking and retry settings."""

    lock_timeout_ms: int = 2000
    conflict_retries: int = 3
    retry_backoff_ms: int = 50


@dataclass(frozen=True)
class LedgerConfig:
    """
    Complete runtime configuration.

    ``config_id``/``version`` identify the set; ``checksum`` is the SHA-256
    of the canonical parsed content and changes whenever any value does.
    """

    config_id: str = "default"
    version: int = 1
    currency: str = "INR"
    allocation: AllocationSettings = field(default_factory=AllocationSettings)
    reconciliation: ReconciliationSettings = field(default_factory=ReconciliationSettings)
    write: WriteSettings = field(default_factory=WriteSettings)
    checksum: str = ""
