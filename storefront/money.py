"""
Money Utilities - integer minor units with Decimal at the edges.

Cart prices travel as integer cents end to end. Decimal is only used to
convert from provider amounts and to split tax out of tax-inclusive
totals, so no float arithmetic touches a stored amount.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Union

CURRENCY_SYMBOLS = {
    "ZAR": "R",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}

Numeric = Union[str, int, float, Decimal, None]


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert any value to Decimal safely.

    Returns Decimal("0") for None or unparsable input.
    """
    if value is None:
        return Decimal("0")

    if isinstance(value, Decimal):
        return value

    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def to_minor_units(value: Numeric) -> int:
    """
    Convert a major-unit amount to minor units (cents).

    Args:
        value: Amount in major units (e.g. 100.50 ZAR)

    Returns:
        Amount in minor units (e.g. 10050)
    """
    return int((to_decimal(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(minor: int) -> Decimal:
    """Convert minor units to a two-place Decimal amount."""
    return (Decimal(int(minor)) / Decimal(100)).quantize(Decimal("0.01"))


def format_money(minor: int, currency: str = "ZAR") -> str:
    """
    Format minor units with a currency symbol.

    Example:
        format_money(123450) -> "R1,234.50"
    """
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), currency.upper() + " ")
    return f"{symbol}{from_minor_units(minor):,.2f}"


def tax_from_inclusive(total: int, tax_rate: Numeric) -> int:
    """
    Tax component of a tax-inclusive amount: total - total / (1 + rate).

    Rounded half-up to a whole minor unit.
    """
    rate = to_decimal(tax_rate)
    if total <= 0 or rate <= 0:
        return 0
    net = Decimal(total) / (Decimal(1) + rate)
    return int((Decimal(total) - net).to_integral_value(rounding=ROUND_HALF_UP))


def shipping_fee(subtotal: int, threshold: int, flat_fee: int) -> int:
    """Flat shipping fee unless the tax-inclusive subtotal clears the threshold."""
    if subtotal <= 0 or subtotal > threshold:
        return 0
    return flat_fee


@dataclass(frozen=True)
class CartTotals:
    """Derived cart amounts, all in minor units."""

    subtotal: int
    tax: int
    subtotal_excl_tax: int
    shipping: int
    total: int
    amount_to_free_shipping: int
    item_count: int

    def to_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "subtotal_excl_tax": self.subtotal_excl_tax,
            "shipping": self.shipping,
            "total": self.total,
            "amount_to_free_shipping": self.amount_to_free_shipping,
            "item_count": self.item_count,
        }


def calculate_totals(
    lines: Iterable,
    tax_rate: Numeric,
    free_shipping_threshold: int,
    flat_shipping_fee: int,
) -> CartTotals:
    """
    Calculate cart totals from lines carrying `unit_price` and `quantity`.

    Args:
        lines: Cart lines (unit_price in minor units)
        tax_rate: Fixed sales tax rate, e.g. Decimal("0.15")
        free_shipping_threshold: Subtotal above which shipping is free
        flat_shipping_fee: Fee charged below the threshold

    Returns:
        CartTotals
    """
    lines = list(lines)
    subtotal = sum(line.unit_price * line.quantity for line in lines)
    tax = tax_from_inclusive(subtotal, tax_rate)
    shipping = shipping_fee(subtotal, free_shipping_threshold, flat_shipping_fee)
    return CartTotals(
        subtotal=subtotal,
        tax=tax,
        subtotal_excl_tax=subtotal - tax,
        shipping=shipping,
        total=subtotal + shipping,
        amount_to_free_shipping=max(0, free_shipping_threshold - subtotal),
        item_count=sum(line.quantity for line in lines),
    )
