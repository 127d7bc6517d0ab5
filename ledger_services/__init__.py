"""
Service layer: transaction ownership and composition of engines and kernel.

The public entry point is PaymentOrchestrator.
"""

from ledger_services.notifications import NotificationDispatcher, RecordingDispatcher
from ledger_services.payment_orchestrator import PaymentOrchestrator
from ledger_services.reconciliation_service import DocumentReconciler
from ledger_services.retry import call_with_conflict_retry

__all__ = [
    "DocumentReconciler",
    "NotificationDispatcher",
    "PaymentOrchestrator",
    "RecordingDispatcher",
    "call_with_conflict_retry",
]
