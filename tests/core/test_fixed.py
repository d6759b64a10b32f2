"""Tests for perpengine/core/fixed.py — fixed-point arithmetic."""

from decimal import Decimal

import pytest

from perpengine.core.fixed import (
    UNIT,
    ceil_div,
    clamp,
    div,
    div_floor,
    div_up,
    format_fixed,
    mul,
    mul_div,
    mul_floor,
    mul_up,
    parse_fixed,
    trunc_div,
)


# ---------------------------------------------------------------------------
# Rounding directions
# ---------------------------------------------------------------------------

class TestRounding:
    def test_trunc_div_toward_zero(self):
        assert trunc_div(7, 2) == 3
        assert trunc_div(-7, 2) == -3
        assert trunc_div(7, -2) == -3
        assert trunc_div(-7, -2) == 3

    def test_ceil_div(self):
        assert ceil_div(7, 2) == 4
        assert ceil_div(-7, 2) == -3
        assert ceil_div(8, 2) == 4

    def test_division_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            trunc_div(1, 0)
        with pytest.raises(ZeroDivisionError):
            ceil_div(1, 0)

    def test_mul_truncates(self):
        # 1.5 * 0.000001 = 0.0000015 -> 0.000001
        assert mul(1_500_000, 1) == 1
        assert mul(-1_500_000, 1) == -1

    def test_mul_up_and_floor(self):
        assert mul_up(1_500_000, 1) == 2
        assert mul_up(-1_500_000, 1) == -1
        assert mul_floor(-1_500_000, 1) == -2
        assert mul_floor(1_500_000, 1) == 1

    def test_div_variants(self):
        assert div(UNIT, 3 * UNIT) == 333_333
        assert div_up(UNIT, 3 * UNIT) == 333_334
        assert div_floor(-UNIT, 3 * UNIT) == -333_334
        assert div(-UNIT, 3 * UNIT) == -333_333

    def test_mul_div_no_rescale(self):
        assert mul_div(10, 7, 3) == 23
        assert mul_div(-10, 7, 3) == -23

    def test_clamp(self):
        assert clamp(5, 0, 3) == 3
        assert clamp(-5, 0, 3) == 0
        with pytest.raises(ValueError):
            clamp(1, 3, 0)


# ---------------------------------------------------------------------------
# Parsing / formatting
# ---------------------------------------------------------------------------

class TestParseFixed:
    def test_decimal_string(self):
        assert parse_fixed("113.882975") == 113_882_975

    def test_negative(self):
        assert parse_fixed("-0.5") == -500_000

    def test_int_is_whole_units(self):
        assert parse_fixed(7) == 7 * UNIT

    def test_decimal(self):
        assert parse_fixed(Decimal("0.000001")) == 1

    def test_too_many_decimals_rejected(self):
        with pytest.raises(ValueError):
            parse_fixed("0.0000001")

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            parse_fixed(0.5)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            parse_fixed(True)

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            parse_fixed("abc")
        with pytest.raises(ValueError):
            parse_fixed("inf")

    def test_format_round_trip(self):
        assert format_fixed(56_941_490) == "56.941490"
        assert format_fixed(-1) == "-0.000001"
        assert parse_fixed(format_fixed(-123_456_789)) == -123_456_789
