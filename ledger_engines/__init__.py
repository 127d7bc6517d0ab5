"""
Pure calculation engines for the party ledger.

Engines take DTOs from ``ledger_kernel.domain`` and return DTOs; they never
touch the database.
"""

from ledger_engines.allocation import AllocationEngine
from ledger_engines.reconciliation import ReconciliationMatcher
from ledger_engines.tracer import traced_engine

__all__ = ["AllocationEngine", "ReconciliationMatcher", "traced_engine"]
