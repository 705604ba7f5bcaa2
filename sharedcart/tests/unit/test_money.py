"""
tests/unit/test_money.py — Decimal money helpers.

No database, no Flask.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from sharedcart.app.money import (
    DUST_TOLERANCE,
    SHARE_QUANTUM,
    amounts_equal,
    divide_evenly,
    is_dust,
    line_total,
    quantize_money,
    to_money,
)


def test_to_money_accepts_str_int_and_decimal():
    assert to_money("10.50") == Decimal("10.50")
    assert to_money(3) == Decimal("3")
    value = Decimal("1.23")
    assert to_money(value) is value


def test_to_money_refuses_float():
    with pytest.raises(TypeError):
        to_money(0.1)


def test_quantize_money_rounds_half_up_to_cents():
    assert quantize_money(Decimal("10.005")) == Decimal("10.01")
    assert quantize_money(Decimal("10.004")) == Decimal("10.00")
    assert quantize_money(Decimal("-3.335")) == Decimal("-3.34")


def test_divide_evenly_keeps_share_precision():
    share = divide_evenly(Decimal("10.00"), 3)
    assert share == Decimal("3.33333333")
    assert share.as_tuple().exponent == SHARE_QUANTUM.as_tuple().exponent


def test_divide_evenly_remainder_stays_within_tolerance():
    share = divide_evenly(Decimal("100.00"), 7)
    assert amounts_equal(share * 7, Decimal("100.00"))


def test_divide_evenly_rejects_zero_parts():
    with pytest.raises(ValueError):
        divide_evenly(Decimal("10.00"), 0)


def test_line_total_multiplies_amount_by_quantity():
    assert line_total(Decimal("2.50"), 4) == Decimal("10.00")
    assert line_total(Decimal("0.00"), 3) == Decimal("0.00")


def test_amounts_equal_uses_inclusive_tolerance():
    assert amounts_equal(Decimal("10.00"), Decimal("10.01"))
    assert not amounts_equal(Decimal("10.00"), Decimal("10.02"))


def test_is_dust():
    assert is_dust(DUST_TOLERANCE)
    assert is_dust(-DUST_TOLERANCE)
    assert is_dust(Decimal("0"))
    assert not is_dust(Decimal("0.02"))
