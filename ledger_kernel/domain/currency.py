"""Currency -- the ISO 4217 codes a ledger company may book in."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """
    Precision and display metadata for one currency.

    ``lakh_grouping`` marks currencies displayed as 1,23,45,678 rather
    than 12,345,678.
    """

    code: str
    decimal_places: int
    name: str
    symbol: str = ""
    lakh_grouping: bool = False

    @property
    def rounding_tolerance(self) -> Decimal:
        """One minor unit; balances closer than this agree."""
        return Decimal(1).scaleb(-self.decimal_places)


class CurrencyRegistry:
    """Currencies the ledger accepts, keyed by upper-case code."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        info.code: info
        for info in (
            CurrencyInfo("INR", 2, "Indian Rupee", "₹", lakh_grouping=True),
            CurrencyInfo("NPR", 2, "Nepalese Rupee", lakh_grouping=True),
            CurrencyInfo("BDT", 2, "Bangladeshi Taka", "৳", lakh_grouping=True),
            CurrencyInfo("LKR", 2, "Sri Lankan Rupee"),
            CurrencyInfo("USD", 2, "US Dollar", "$"),
            CurrencyInfo("EUR", 2, "Euro", "€"),
            CurrencyInfo("GBP", 2, "Pound Sterling", "£"),
            CurrencyInfo("AED", 2, "UAE Dirham"),
            CurrencyInfo("SGD", 2, "Singapore Dollar", "S$"),
            CurrencyInfo("JPY", 0, "Japanese Yen", "¥"),
            CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
            CurrencyInfo("OMR", 3, "Omani Rial"),
            CurrencyInfo("BHD", 3, "Bahraini Dinar"),
        )
    }

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return cls.get_info(code) is not None

    @classmethod
    def require(cls, code: str) -> CurrencyInfo:
        """
        Look up a currency that must be supported.

        Raises:
            ValueError: unknown or malformed code.
        """
        info = cls.get_info(code)
        if info is None:
            raise ValueError(f"Unsupported currency code: {code!r}")
        return info

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        return cls.require(code).decimal_places

    @classmethod
    def get_rounding_tolerance(cls, code: str) -> Decimal:
        return cls.require(code).rounding_tolerance
