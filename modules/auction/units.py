from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation

WEI_PER_ETHER = 10**18

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def parse_amount(value: str | int | float | Decimal, decimals: int = 18) -> int:
    """Convert a human-readable amount ("1.5") into integer base units."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as error:
        raise ValueError(f"Invalid amount: {value!r}") from error
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return int((amount * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))


def format_amount(amount: int, places: int = 4, decimals: int = 18) -> str:
    quantum = Decimal(1).scaleb(-places)
    value = (Decimal(amount) / (Decimal(10) ** decimals)).quantize(quantum, rounding=ROUND_DOWN)
    return f"{value:f}"


def div_trunc(numerator: int, denominator: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient
