"""Payment methods, direction and the bank-leg rule."""

from enum import Enum


class PaymentMethod(str, Enum):
    """How money moved.  Every method except cash goes through a bank account."""

    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    UPI = "upi"
    CARD = "card"

    @property
    def requires_bank_leg(self) -> bool:
        return self is not PaymentMethod.CASH

    @classmethod
    def normalize(cls, value: "str | PaymentMethod") -> "PaymentMethod":
        """
        Map a method name, including legacy aliases, to a PaymentMethod.

        Raises:
            ValueError: unknown method.
        """
        if isinstance(value, PaymentMethod):
            return value
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Unknown payment method: {value!r}")
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown payment method: {value!r}") from None


_ALIASES: dict[str, str] = {
    "bank": "bank_transfer",
    "neft": "bank_transfer",
    "rtgs": "bank_transfer",
    "imps": "bank_transfer",
    "net_banking": "bank_transfer",
    "netbanking": "bank_transfer",
    "online": "bank_transfer",
    "gpay": "upi",
    "google_pay": "upi",
    "phonepe": "upi",
    "paytm": "upi",
    "bhim": "upi",
    "credit_card": "card",
    "debit_card": "card",
    "check": "cheque",
}


class PaymentDirection(str, Enum):
    """``in``: received from a customer.  ``out``: paid to a vendor."""

    IN = "in"
    OUT = "out"

    @property
    def document_type(self) -> str:
        """Invoice kind a payment in this direction settles."""
        return "sale" if self is PaymentDirection.IN else "purchase"


class PaymentType(str, Enum):
    ADVANCE = "advance"
    AGAINST_INVOICE = "against_invoice"
