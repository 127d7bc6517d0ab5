"""
Module: ledger_kernel.db.types
Responsibility: The single rounding helper for persisted monetary values and
    the enum-to-column-value conversion.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/ or domain/.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a persisted monetary value to the currency minor unit.

    Used for values read back from Numeric columns and SQL aggregates, so
    that comparisons happen at currency precision.
    """
    if decimal_places == 0:
        return value.quantize(Decimal("1"), rounding=rounding)
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def enum_value(value):
    """Plain string for a str-Enum member (columns store the value)."""
    return value.value if isinstance(value, Enum) else value
