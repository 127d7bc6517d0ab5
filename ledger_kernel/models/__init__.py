"""ORM models for the party ledger."""

from ledger_kernel.models.bank import (
    BankAccount,
    BankDirection,
    BankTransaction,
    BankTransactionType,
)
from ledger_kernel.models.invoice import (
    DocumentType,
    Invoice,
    InvoiceStatus,
    PaymentStatus,
)
from ledger_kernel.models.party import Party, PartyType
from ledger_kernel.models.payment import (
    Payment,
    PaymentAllocation,
    PaymentRecordStatus,
)
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "BankAccount",
    "BankDirection",
    "BankTransaction",
    "BankTransactionType",
    "DocumentType",
    "Invoice",
    "InvoiceStatus",
    "Party",
    "PartyType",
    "Payment",
    "PaymentAllocation",
    "PaymentRecordStatus",
    "PaymentStatus",
    "SequenceCounter",
]
