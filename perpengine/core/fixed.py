"""Fixed-point arithmetic for the settlement engine.

Every monetary quantity, position size, price and rate is a plain ``int``
scaled by ``UNIT`` (6 fractional decimal digits).

Rounding is always explicit:
- ``mul``/``div``/``mul_div`` truncate toward zero,
- ``floor_div`` rounds toward -inf (Python ``//``),
- ``ceil_div``/``mul_up``/``div_up`` round toward +inf.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

DECIMALS: int = 6
UNIT: int = 10**DECIMALS

SECONDS_PER_YEAR: int = 365 * 24 * 60 * 60


def _require_int(x: int, name: str) -> None:
    if not isinstance(x, int) or isinstance(x, bool):
        raise TypeError(f"{name} must be an int")


def trunc_div(n: int, d: int) -> int:
    """Integer division truncating toward zero."""
    if d == 0:
        raise ZeroDivisionError("division by zero")
    q = abs(n) // abs(d)
    return q if (n >= 0) == (d > 0) else -q


def floor_div(n: int, d: int) -> int:
    if d == 0:
        raise ZeroDivisionError("division by zero")
    return n // d


def ceil_div(n: int, d: int) -> int:
    if d == 0:
        raise ZeroDivisionError("division by zero")
    return -((-n) // d)


def mul(a: int, b: int) -> int:
    """``a * b`` in fixed point, truncated toward zero."""
    return trunc_div(a * b, UNIT)


def mul_up(a: int, b: int) -> int:
    """``a * b`` in fixed point, rounded toward +inf."""
    return ceil_div(a * b, UNIT)


def mul_floor(a: int, b: int) -> int:
    return (a * b) // UNIT


def div(a: int, b: int) -> int:
    """``a / b`` in fixed point, truncated toward zero."""
    return trunc_div(a * UNIT, b)


def div_up(a: int, b: int) -> int:
    return ceil_div(a * UNIT, b)


def div_floor(a: int, b: int) -> int:
    return floor_div(a * UNIT, b)


def mul_div(a: int, b: int, c: int) -> int:
    """``a * b / c`` (no rescaling), truncated toward zero."""
    return trunc_div(a * b, c)


def clamp(x: int, lo: int, hi: int) -> int:
    if lo > hi:
        raise ValueError(f"empty clamp range [{lo}, {hi}]")
    return max(lo, min(hi, x))


def parse_fixed(value: str | int | Decimal) -> int:
    """Parse a decimal literal (``"113.882975"``, ``"-0.5"``, ``7``) into fixed point.

    Raises ValueError when the literal carries more than ``DECIMALS`` digits of
    precision: silent truncation of configuration values is not allowed.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a fixed-point literal")
    if isinstance(value, int):
        return value * UNIT
    if isinstance(value, float):
        raise TypeError("floats are not accepted; pass a decimal string")
    try:
        d = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"invalid fixed-point literal: {value!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid fixed-point literal: {value!r}")
    scaled = d * UNIT
    if scaled != scaled.to_integral_value():
        raise ValueError(f"too many decimals (max {DECIMALS}): {value!r}")
    return int(scaled)


def format_fixed(x: int) -> str:
    """Render a fixed-point int as a decimal string (for logs and reports)."""
    _require_int(x, "x")
    sign = "-" if x < 0 else ""
    q, r = divmod(abs(x), UNIT)
    return f"{sign}{q}.{r:0{DECIMALS}d}"
