"""Read-only query selectors."""

from ledger_kernel.selectors.balance_selector import BalanceSelector, bucket_for
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.invoice_selector import InvoiceSelector, to_document_snapshot
from ledger_kernel.selectors.payment_selector import PaymentSelector

__all__ = [
    "BalanceSelector",
    "BaseSelector",
    "InvoiceSelector",
    "PaymentSelector",
    "bucket_for",
    "to_document_snapshot",
]
