"""Position, order and guarantee helpers.

Every function is stateless and operates on immutable records and plain ints.
"""

from __future__ import annotations

from typing import Iterable

from .fixed import UNIT, clamp, div, mul
from .params import MarketParameter, RiskParameter
from .records import Guarantee, Order, Position


# -- Position helpers ----------------------------------------------------------

def skew(position: Position, scale: int) -> int:
    """Signed taker imbalance normalized by ``scale``, clamped to ``[-UNIT, UNIT]``."""
    return clamp(div(position.skew, scale), -UNIT, UNIT)


def taker_socialized(position: Position) -> int:
    """Major side size backed by the minor side plus maker liquidity."""
    return min(position.major, position.minor + position.maker)


def long_socialized(position: Position) -> int:
    if position.long <= position.short:
        return position.long
    return taker_socialized(position)


def short_socialized(position: Position) -> int:
    if position.short <= position.long:
        return position.short
    return taker_socialized(position)


def socialization_factor(position: Position) -> int:
    """``makerCapacity / takerExposure`` capped at ``UNIT``."""
    if position.major == 0:
        return UNIT
    return min(UNIT, div(position.minor + position.maker, position.major))


def utilization(position: Position) -> int:
    """``major / (maker + minor)`` clamped to ``[0, UNIT]``."""
    capacity = position.maker + position.minor
    if capacity == 0:
        return UNIT if position.major > 0 else 0
    return clamp(div(position.major, capacity), 0, UNIT)


def efficiency(position: Position) -> int:
    """``maker / major`` (``UNIT`` when there is no taker exposure)."""
    if position.major == 0:
        return UNIT
    return div(position.maker, position.major)


def maintenance(position: Position, price: int, risk: RiskParameter) -> int:
    if position.magnitude == 0:
        return 0
    return max(risk.min_maintenance, mul(mul(position.magnitude, abs(price)), risk.maintenance))


def margin(position: Position, price: int, risk: RiskParameter, collateralization: int = 0) -> int:
    if position.magnitude == 0:
        return 0
    ratio = max(risk.margin, collateralization)
    return max(risk.min_margin, mul(mul(position.magnitude, abs(price)), ratio))


def maintained(position: Position, price: int, risk: RiskParameter, collateral: int) -> bool:
    return collateral >= maintenance(position, price, risk)


def margined(
    position: Position, price: int, risk: RiskParameter, collateral: int, collateralization: int = 0
) -> bool:
    return collateral >= margin(position, price, risk, collateralization)


def single_sided(position: Position) -> bool:
    sides = sum(1 for v in (position.maker, position.long, position.short) if v != 0)
    return sides <= 1


def apply_pending(position: Position, orders: Iterable[Order]) -> Position:
    """Position after draining every pending order (timestamp of the last)."""
    out = position
    for order in orders:
        out = out.apply(order)
    return out


# -- Order helpers -------------------------------------------------------------

def order_from_deltas(
    *,
    timestamp: int,
    position: Position,
    maker_delta: int,
    taker_delta: int,
    collateral: int = 0,
    referral_fee: int = 0,
    protect: bool = False,
) -> Order:
    """Build an order from signed deltas against ``position`` (settled plus pending).

    A positive taker delta first closes shorts, then opens longs; a negative one
    closes longs, then opens shorts.
    """
    long_pos = long_neg = short_pos = short_neg = 0
    if taker_delta > 0:
        short_neg = min(taker_delta, position.short)
        long_pos = taker_delta - short_neg
    elif taker_delta < 0:
        long_neg = min(-taker_delta, position.long)
        short_pos = -taker_delta - long_neg
    maker_pos = max(maker_delta, 0)
    maker_neg = max(-maker_delta, 0)

    order = Order(
        timestamp=timestamp,
        maker_pos=maker_pos,
        maker_neg=maker_neg,
        long_pos=long_pos,
        long_neg=long_neg,
        short_pos=short_pos,
        short_neg=short_neg,
        collateral=collateral,
    )
    if order.is_empty:
        return order
    return Order(
        timestamp=timestamp,
        orders=1,
        maker_pos=maker_pos,
        maker_neg=maker_neg,
        long_pos=long_pos,
        long_neg=long_neg,
        short_pos=short_pos,
        short_neg=short_neg,
        collateral=collateral,
        maker_referral=mul(order.maker_total, referral_fee),
        taker_referral=mul(order.taker_total, referral_fee),
        protection=1 if protect else 0,
    )


def increases_maker(order: Order) -> bool:
    return order.maker_pos > 0


def increases_taker(order: Order) -> bool:
    return order.long_pos > 0 or order.short_pos > 0


def increases_position(order: Order) -> bool:
    return increases_maker(order) or increases_taker(order)


def decreases_liquidity(order: Order, position: Position) -> bool:
    """True when ``order`` removes maker liquidity or grows the taker skew."""
    if order.maker_neg > 0:
        return True
    after = position.apply(order)
    return abs(after.skew) > abs(position.skew)


def liquidity_check_applicable(order: Order, position: Position, market: MarketParameter) -> bool:
    return not market.closed and decreases_liquidity(order, position)


def crosses_zero(order: Order) -> bool:
    """True when a single taker order both closes one side and opens the other."""
    return (order.long_neg > 0 and order.short_pos > 0) or (order.short_neg > 0 and order.long_pos > 0)


# -- Guarantee helpers ---------------------------------------------------------

def guarantee_from(
    order: Order, price: int, solver_referral_fee: int, charge_trade_fee: bool
) -> Guarantee:
    """Guarantee overlay for an intent-filled order agreed at ``price``."""
    return Guarantee(
        orders=order.orders,
        long_pos=order.long_pos,
        long_neg=order.long_neg,
        short_pos=order.short_pos,
        short_neg=order.short_neg,
        notional=mul(order.taker, price),
        taker_fee=0 if charge_trade_fee else order.taker_total,
        order_referral=order.taker_referral,
        solver_referral=mul(order.taker_referral, solver_referral_fee),
    )


def protection_guarantee(order: Order) -> Guarantee:
    """Fee exclusion for a liquidation order (no overridden price)."""
    return Guarantee(taker_fee=order.taker_total, maker_fee=order.maker_total)


def price_adjustment(guarantee: Guarantee, price: int) -> int:
    """Collateral correction so the fill realizes its agreed price: ``taker * price - notional``."""
    if guarantee.taker == 0:
        return 0
    return mul(guarantee.taker, price) - guarantee.notional


def price_deviation(guarantee: Guarantee, price: int) -> int:
    """``|agreed_price - price| / min(agreed_price, price)``."""
    if guarantee.taker == 0:
        return 0
    agreed = div(guarantee.notional, guarantee.taker)
    floor_price = min(abs(agreed), abs(price))
    if floor_price == 0:
        return UNIT
    return div(abs(agreed - price), floor_price)
