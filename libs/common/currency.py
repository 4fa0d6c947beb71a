"""Money helpers.

All amounts are ``Decimal`` in the store currency's major unit (e.g. SAR),
rounded to two places, half away from zero.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

# ─── constants ───────────────────────────────────────────────────────────────

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, str]


# ─── helpers ─────────────────────────────────────────────────────────────────


def to_decimal(value: Number) -> Decimal:
    """Coerce ints/strings to Decimal. Floats are rejected."""
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats")
    return value if isinstance(value, Decimal) else Decimal(value)


def round_money(value: Number) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Number, currency: str) -> str:
    """Render an amount for documents, e.g. ``185.00 SAR``."""
    return f"{round_money(value):,.2f} {currency}"
