"""Decimal-as-string money helpers."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0")

_NOISE = str.maketrans("", "", "₹$, \t")


class PriceFormatError(ValueError):
    pass


def parse_price(raw: str) -> Decimal:
    """
    Parse a stored price string.

    Prices are typed in by admins and may carry a currency sign or thousands
    separators: ``"₹1,250"``, ``"$500"``, ``"250.5"``.
    """
    cleaned = raw.translate(_NOISE)
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise PriceFormatError(f"Not a price: {raw!r}") from None
    if not value.is_finite() or value < 0:
        raise PriceFormatError(f"Not a price: {raw!r}")
    return value


def is_price(raw: str) -> bool:
    try:
        parse_price(raw)
    except PriceFormatError:
        return False
    return True


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def render(amount: Decimal) -> str:
    """``Decimal("1250") -> "1250.00"``"""
    return str(quantize(amount))


__all__ = (
    "CENT",
    "ZERO",
    "PriceFormatError",
    "parse_price",
    "is_price",
    "quantize",
    "render",
)
