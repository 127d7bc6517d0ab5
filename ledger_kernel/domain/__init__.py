"""
Pure domain layer.

Value objects, DTOs and the request context.  No ORM, database or I/O
dependencies; everything here is immutable.
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.context import RequestContext
from ledger_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from ledger_kernel.domain.payment_method import (
    PaymentDirection,
    PaymentMethod,
    PaymentType,
)
from ledger_kernel.domain.values import Currency, Money, format_money

__all__ = [
    "Clock",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "Money",
    "PaymentDirection",
    "PaymentMethod",
    "PaymentType",
    "RequestContext",
    "SystemClock",
    "format_money",
]
