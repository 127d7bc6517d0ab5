"""
Kernel write services.

All services flush only; the caller's transaction scope commits.
"""

from ledger_kernel.services.ledger_store import LedgerStore, LockedRows, invoice_info_from_model
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "LedgerStore",
    "LedgerWriter",
    "LockedRows",
    "SequenceService",
    "invoice_info_from_model",
]
