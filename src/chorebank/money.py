"""Utilities for working with monetary values in ChoreBank.

All amounts are stored as integer cents. Parsing accepts ints, numeric
strings and decimals expressed in cents; ``format_currency`` renders them for
log output.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from .exceptions import ValidationError

CENT = Decimal("0.01")

AmountLike = Union[Decimal, int, float, str]


def to_cents(value: AmountLike) -> int:
    """Convert ``value`` (already in cents) to an ``int``, rounding half-up."""

    if isinstance(value, bool):
        raise ValidationError("Amount must be a number.")
    if isinstance(value, int):
        return value
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        elif isinstance(value, str):
            amount = Decimal(value.strip())
        else:
            raise ValidationError(f"Unsupported amount type: {type(value)!r}")
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount {value!r}.") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount {value!r}.")
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def require_positive(amount: int, *, allow_zero: bool = False) -> int:
    """Ensure ``amount`` is positive (or non-negative when ``allow_zero`` is true)."""

    if allow_zero:
        if amount < 0:
            raise ValidationError("Amount must be zero or greater.")
    else:
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero.")
    return amount


def format_currency(cents: int) -> str:
    """Return ``cents`` as a currency formatted string (e.g. ``$12.34``)."""

    amount = (Decimal(cents) * CENT).quantize(CENT, rounding=ROUND_HALF_UP)
    return f"${amount:,.2f}"


__all__ = ["AmountLike", "CENT", "format_currency", "require_positive", "to_cents"]
