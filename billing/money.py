"""Currency arithmetic in integer minor units.

All amounts are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents. Rates are basis points (10000 = 100%).
Decimal appears only at the display boundary.
"""

from decimal import Decimal

from billing.exceptions import InvalidAmount, InvalidQuantity

BPS_DENOMINATOR = 10000

_CENT = Decimal("0.01")

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "CAD": "CA$",
    "AUD": "A$",
    "ZAR": "R",
    "NGN": "₦",
    "KES": "KSh",
}


def _require_cents(value, name: str = "amount") -> int:
    # bool is an int subclass; True cents is never intended
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be a whole number of cents, got {value!r}")
    return value


def _require_non_negative(value, name: str) -> int:
    value = _require_cents(value, name)
    if value < 0:
        raise InvalidAmount(f"{name} cannot be negative, got {value}")
    return value


def add(a: int, b: int) -> int:
    """Sum two amounts in cents."""
    return _require_cents(a) + _require_cents(b)


def multiply(amount: int, factor: int) -> int:
    """
    Multiply an amount by a whole-number factor.

    Raises:
        InvalidAmount: If amount is not an integer
        InvalidQuantity: If factor is not an integer
    """
    amount = _require_cents(amount)
    if isinstance(factor, bool) or not isinstance(factor, int):
        raise InvalidQuantity(f"Factor must be a whole number, got {factor!r}")
    return amount * factor


def percentage(amount: int, rate_bps: int) -> int:
    """
    Apply a basis-point rate to an amount, rounding half up to the cent.

    Example: 12500 cents at 850 bps (8.5%) = 1062.5 -> 1063 cents.

    Raises:
        InvalidAmount: If amount or rate is negative or not an integer
    """
    amount = _require_non_negative(amount, "amount")
    rate_bps = _require_non_negative(rate_bps, "tax rate")
    return (amount * rate_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def to_decimal(amount: int) -> Decimal:
    """Cents to a two-place Decimal for display."""
    return (Decimal(_require_cents(amount)) / 100).quantize(_CENT)


def format_amount(amount: int, currency: str = "USD") -> str:
    """
    Render cents for display, e.g. 123456 -> "$1,234.56".

    Unknown currency codes are used as a prefix ("CHF 10.00").
    """
    amount = _require_cents(amount)
    code = currency.upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{to_decimal(abs(amount)):,.2f}"
