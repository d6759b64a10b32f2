"""Accrual math: trading fee curves, funding, interest and pnl.

Pure functions over ``Position`` snapshots and parameters. Amounts returned per
side are signed from the side's point of view (credit > 0, debit < 0); every
result conserves value exactly before per-unit distribution.
"""

from __future__ import annotations

from dataclasses import dataclass

from .fees import split_cut
from .fixed import (
    SECONDS_PER_YEAR,
    ceil_div,
    clamp,
    div,
    div_floor,
    mul,
    mul_div,
    mul_floor,
    mul_up,
    trunc_div,
)
from .params import FeeCurve, PController, UtilizationCurve
from .positions import long_socialized, short_socialized, skew, utilization
from .records import PAccumulator, Position


# -- Trading fees --------------------------------------------------------------

@dataclass(frozen=True)
class TradeFeeComponents:
    base: int = 0
    linear: int = 0
    proportional: int = 0
    adiabatic: int = 0

    @property
    def linear_total(self) -> int:
        """Linear part of the fee (market base rate plus curve linear rate)."""
        return self.base + self.linear

    @property
    def total(self) -> int:
        """Fee excluding the adiabatic component, which is billed as an offset."""
        return self.base + self.linear + self.proportional


def taker_fee_components(
    *,
    units: int,
    price: int,
    skew_from: int,
    skew_to: int,
    curve: FeeCurve,
    base_rate: int,
) -> TradeFeeComponents:
    """Taker fee for ``units`` of volume moving the raw skew from ``skew_from`` to ``skew_to``.

    The adiabatic component integrates ``adiabatic_fee * price / scale`` over the
    skew interval and is negative when the skew magnitude shrinks.
    """
    if units == 0:
        return TradeFeeComponents()
    notional = mul(units, abs(price))
    impact = div(abs(skew_to), curve.scale)
    crossed = div(mul(skew_to, skew_to) - mul(skew_from, skew_from), curve.scale)
    return TradeFeeComponents(
        base=mul(notional, base_rate),
        linear=mul(notional, curve.linear_fee),
        proportional=mul(mul(notional, impact), curve.proportional_fee),
        adiabatic=mul(mul(curve.adiabatic_fee, abs(price)), crossed),
    )


def maker_fee_components(*, units: int, price: int, curve: FeeCurve, base_rate: int) -> TradeFeeComponents:
    """Maker fee; the proportional component scales with the order size."""
    if units == 0:
        return TradeFeeComponents()
    notional = mul(units, abs(price))
    return TradeFeeComponents(
        base=mul(notional, base_rate),
        linear=mul(notional, curve.linear_fee),
        proportional=mul(mul(notional, div(units, curve.scale)), curve.proportional_fee),
    )


# -- Distribution --------------------------------------------------------------

def distribute(amount: int, size: int) -> tuple[int, int]:
    """Per-unit value of ``amount`` over ``size`` units, and the undistributed residual.

    The per-unit value rounds toward -inf and the residual is taken against the
    rounded-up share, so holders can never realize more than ``amount`` and the
    residual is never negative. With ``size == 0`` the whole amount is residual
    (and must not be negative).
    """
    if size == 0:
        if amount < 0:
            raise ValueError("cannot charge a negative amount to an empty side")
        return 0, amount
    per_unit = div_floor(amount, size)
    return per_unit, amount - mul_up(per_unit, size)


# -- PnL -----------------------------------------------------------------------

@dataclass(frozen=True)
class SideAmounts:
    maker: int = 0
    long: int = 0
    short: int = 0
    fee: int = 0

    def add(self, other: SideAmounts) -> SideAmounts:
        return SideAmounts(
            maker=self.maker + other.maker,
            long=self.long + other.long,
            short=self.short + other.short,
            fee=self.fee + other.fee,
        )


def accumulate_pnl(position: Position, from_price: int, to_price: int) -> SideAmounts:
    """Price pnl over the interval; the major side is socialized against maker capacity."""
    dp = to_price - from_price
    if dp == 0:
        return SideAmounts()
    pnl_long = mul(dp, long_socialized(position))
    pnl_short = -mul(dp, short_socialized(position))
    return SideAmounts(maker=-(pnl_long + pnl_short), long=pnl_long, short=pnl_short)


# -- Funding -------------------------------------------------------------------

def next_funding_rate(acc: PAccumulator, controller: PController, skew_value: int, dt: int) -> int:
    return clamp(acc.value + mul(controller.k, skew_value) * dt, controller.min_value, controller.max_value)


def split_funding(funding: int, *, payer: int, receiver: int, fee_rate: int) -> tuple[int, int, int]:
    """Split ``funding`` paid by a side of size ``payer``.

    Returns ``(fee, maker, receiver_share)``. The receiving taker side gets
    ``min(receiver, payer) / payer`` of the post-fee amount, makers the rest.
    """
    fee, remaining = split_cut(funding, fee_rate)
    if payer == 0:
        return fee, remaining, 0
    to_maker = mul_div(remaining, payer - min(receiver, payer), payer)
    return fee, to_maker, remaining - to_maker


def accumulate_funding(
    *,
    acc: PAccumulator,
    controller: PController,
    position: Position,
    taker_scale: int,
    price: int,
    dt: int,
    fee_rate: int,
) -> tuple[SideAmounts, PAccumulator]:
    current_skew = skew(position, taker_scale)
    next_value = next_funding_rate(acc, controller, current_skew, dt)
    next_acc = PAccumulator(value=next_value, skew=current_skew)

    rate = trunc_div(acc.value + next_value, 2)
    if rate == 0 or dt <= 0:
        return SideAmounts(), next_acc

    if rate > 0:
        payer, payer_soc, receiver = position.long, long_socialized(position), position.short
    else:
        payer, payer_soc, receiver = position.short, short_socialized(position), position.long
    if payer == 0:
        return SideAmounts(), next_acc

    notional = mul(payer_soc, abs(price))
    funding = mul_div(mul(notional, abs(rate)), dt, SECONDS_PER_YEAR)
    fee, to_maker, to_receiver = split_funding(funding, payer=payer, receiver=receiver, fee_rate=fee_rate)
    if rate > 0:
        out = SideAmounts(maker=to_maker, long=-funding, short=to_receiver, fee=fee)
    else:
        out = SideAmounts(maker=to_maker, long=to_receiver, short=-funding, fee=fee)
    return out, next_acc


# -- Interest ------------------------------------------------------------------

def accumulate_interest(
    *,
    curve: UtilizationCurve,
    position: Position,
    price: int,
    dt: int,
    fee_rate: int,
) -> SideAmounts:
    """Takers pay interest on ``min(maker, long + short) * price`` to makers."""
    takers = position.long + position.short
    if dt <= 0 or takers == 0:
        return SideAmounts()
    rate = curve.compute(utilization(position))
    notional = mul(min(position.maker, takers), abs(price))
    interest = mul_div(mul(notional, rate), dt, SECONDS_PER_YEAR)
    if interest == 0:
        return SideAmounts()
    fee, to_maker = split_cut(interest, fee_rate)
    long_pays = mul_div(interest, position.long, takers)
    return SideAmounts(maker=to_maker, long=-long_pays, short=-(interest - long_pays), fee=fee)


# -- Settlement fee ------------------------------------------------------------

def settlement_fee_per_order(settlement_fee: int, orders: int) -> int:
    """Flat oracle fee split evenly over the orders settling at one version (rounded up)."""
    if orders <= 0:
        return 0
    return ceil_div(settlement_fee, orders)


def referral_share(referred_units: int, linear_per_unit: int) -> int:
    """Referral payout for ``referred_units`` (rounded down for the claimant)."""
    return mul_floor(referred_units, linear_per_unit)
