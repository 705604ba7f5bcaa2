"""
money.py — Exact decimal money rules shared by the settlement engine.

All monetary values are decimal.Decimal. Never float.

  - Amounts have 2 fractional digits (the currency's minor unit).
  - A share produced by dividing an amount across N parties keeps 8
    fractional digits. Sums of fixed-scale values are exact, so totals do
    not depend on the order in which shares are added.
  - DUST_TOLERANCE absorbs division remainders: two amounts are equal when
    they differ by at most one cent. Remainders are never redistributed.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
SHARE_QUANTUM = Decimal("0.00000001")
DUST_TOLERANCE = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Converts int/str/Decimal to Decimal. Floats are refused outright."""
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats; pass a str or Decimal.")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def quantize_money(value: Decimal) -> Decimal:
    """Rounds to whole cents (ROUND_HALF_UP)."""
    return to_money(value).quantize(CENT, rounding=ROUND_HALF_UP)


def divide_evenly(total: Decimal, parts: int) -> Decimal:
    """
    Returns total / parts at share precision.

    The remainder (at most a few units of SHARE_QUANTUM per part) is left
    unassigned; callers compare results with amounts_equal().
    """
    if parts < 1:
        raise ValueError("Cannot divide an amount across fewer than one party.")
    return (to_money(total) / Decimal(parts)).quantize(SHARE_QUANTUM, rounding=ROUND_HALF_EVEN)


def line_total(amount: Decimal, quantity: int) -> Decimal:
    return to_money(amount) * Decimal(quantity)


def amounts_equal(a: Decimal, b: Decimal, tolerance: Decimal = DUST_TOLERANCE) -> bool:
    return abs(to_money(a) - to_money(b)) <= tolerance


def is_dust(value: Decimal, tolerance: Decimal = DUST_TOLERANCE) -> bool:
    """True when |value| is small enough to be treated as zero."""
    return abs(to_money(value)) <= tolerance
