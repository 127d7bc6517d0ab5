"""
Values -- Immutable, self-validating money value objects.

Responsibility:
    Provides Currency and Money, the fixed-point representation used for
    every monetary field in the ledger (invoice totals, paid/pending
    amounts, party balances, bank running balances, allocations).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    No outward dependencies except ledger_kernel.domain.currency.

Invariants enforced:
    - Amounts are Decimal, never float; allocation arithmetic never drifts.
    - Rounding is ROUND_HALF_UP to the currency minor unit.
    - Arithmetic and comparison never mix currencies.

Failure modes:
    - ValueError on invalid amounts or unsupported currencies.
    - ValueError when arithmetic mixes different currencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ledger_kernel.domain.currency import CurrencyRegistry


@dataclass(frozen=True, slots=True)
class Currency:
    """
    Currency code value object.

    Contract:
        Wraps a three-letter code, validated and uppercased on construction.
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if self.code else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise ValueError(f"Unsupported currency code: {self.code}")
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def rounding_tolerance(self) -> Decimal:
        return CurrencyRegistry.get_rounding_tolerance(self.code)

    @property
    def symbol(self) -> str:
        return CurrencyRegistry.require(self.code).symbol

    @property
    def lakh_grouping(self) -> bool:
        return CurrencyRegistry.require(self.code).lakh_grouping

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its Currency.  Arithmetic enforces the
        same-currency constraint.

    Non-goals:
        - Does NOT auto-round -- callers must explicitly call .round().
        - Does NOT convert between currencies.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            if isinstance(self.amount, float):
                raise ValueError(f"Money amount must not be float: {self.amount!r}")
            try:
                object.__setattr__(self, "amount", Decimal(str(self.amount)))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid amount: {self.amount}") from e

        if not self.amount.is_finite():
            raise ValueError(f"Invalid amount: {self.amount}")

        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """
        Factory method for creating Money.

        Args:
            amount: The monetary amount (Decimal, numeric string or int).
            currency: Currency code or Currency object.

        Raises:
            ValueError: If amount cannot be converted or currency is unsupported.
        """
        if isinstance(amount, (str, int)):
            try:
                amount = Decimal(str(amount).strip())
            except InvalidOperation as e:
                raise ValueError(f"Invalid amount: {amount!r}") from e
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=amount, currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        """Create a zero amount in the given currency."""
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=Decimal("0"), currency=currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    @property
    def is_positive(self) -> bool:
        return self.amount > Decimal("0")

    @property
    def is_negative(self) -> bool:
        return self.amount < Decimal("0")

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """
        Round to the currency's minor unit.

        Returns a new Money; the original is unchanged.
        """
        decimal_places = self.currency.decimal_places
        quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
        rounded = self.amount.quantize(Decimal(quantize_str), rounding=rounding)
        return Money(amount=rounded, currency=self.currency)

    def is_close_to(self, other: Money, tolerance: Decimal | None = None) -> bool:
        """True when the two amounts differ by at most ``tolerance``.

        Defaults to the currency rounding tolerance.
        """
        self._check_currency(other, "compare")
        limit = self.currency.rounding_tolerance if tolerance is None else tolerance
        return abs(self.amount - other.amount) <= limit

    @staticmethod
    def min(first: Money, second: Money) -> Money:
        """Smaller of two same-currency amounts."""
        return first if first <= second else second

    def _check_currency(self, other: Money, op: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {op} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "add")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "subtract")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount, currency=self.currency)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount), currency=self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


def _group_digits(digits: str, indian: bool) -> str:
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    size = 2 if indian else 3
    groups = []
    while head:
        groups.insert(0, head[-size:])
        head = head[:-size]
    return ",".join(groups + [tail])


def format_money(money: Money) -> str:
    """
    Render an amount for display.

    INR and other lakh-grouped currencies render as ``₹1,23,456.50``;
    the rest use thousands grouping.  Currencies without a registered symbol are
    prefixed with their code (``AED 1,000.00``).
    """
    rounded = money.round()
    places = money.currency.decimal_places
    sign = "-" if rounded.is_negative else ""
    text = f"{abs(rounded.amount):.{places}f}"
    whole, _, fraction = text.partition(".")
    grouped = _group_digits(whole, indian=money.currency.lakh_grouping)
    body = f"{grouped}.{fraction}" if fraction else grouped
    prefix = money.currency.symbol or f"{money.currency.code} "
    return f"{sign}{prefix}{body}"
