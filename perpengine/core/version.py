"""Global version accumulation.

``accumulate_version()`` turns one confirmed oracle version plus the global
order settling at it into the next immutable ``Version`` and the updated
``Global`` fee accumulators.

Order of operations for a valid version:
1. trade fees on the global order (base + linear + proportional, adiabatic offset),
2. referral carve-out, then maker / oracle / risk / protocol split,
3. settlement fee per order,
4. pnl, funding and interest over the position held during the interval
   (skipped when the market is closed),
5. per-unit distribution into pre/post values; every residual goes to protocol fee,
6. everything booked into fee buckets and exposure is debited from
   ``Global.reserve``; account checkpoints pay it back as they settle.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .accrual import (
    SideAmounts,
    TradeFeeComponents,
    accumulate_funding,
    accumulate_interest,
    accumulate_pnl,
    distribute,
    maker_fee_components,
    settlement_fee_per_order,
    taker_fee_components,
)
from .fees import FeeSplit, split_fee
from .fixed import div_up, mul_up
from .params import MarketParameter, RiskParameter
from .records import Global, Guarantee, OracleReceipt, OracleVersion, Order, Position, Version


@dataclass(frozen=True)
class VersionAccumulation:
    """Breakdown of one version step (for reporting, logging and tests)."""

    taker_fee: TradeFeeComponents = TradeFeeComponents()
    maker_fee: TradeFeeComponents = TradeFeeComponents()
    trade_fee: int = 0
    trade_fee_exact: int = 0
    referral_fee: int = 0
    adiabatic_fee: int = 0
    split: FeeSplit = FeeSplit()
    accrual_fee_split: FeeSplit = FeeSplit()
    settlement_fee: int = 0
    pnl: SideAmounts = SideAmounts()
    funding: SideAmounts = SideAmounts()
    interest: SideAmounts = SideAmounts()
    dust: int = 0


def _per_unit_up(total: int, units: int) -> int:
    return div_up(total, units) if units > 0 else 0


def accumulate_version(
    *,
    global_: Global,
    from_position: Position,
    from_version: Version,
    order: Order,
    guarantee: Guarantee,
    oracle_version: OracleVersion,
    receipt: OracleReceipt,
    risk: RiskParameter,
    market: MarketParameter,
) -> tuple[Version, Global, VersionAccumulation]:
    """Accumulate the version at ``oracle_version.timestamp``.

    ``from_position`` is the global position held during the interval
    ``[from_position.timestamp, oracle_version.timestamp]``.
    """
    ts = oracle_version.timestamp
    if not oracle_version.valid:
        carried = from_version.carried(ts)
        if carried.price == 0:
            carried = replace(carried, price=global_.latest_price)
        return carried, global_, VersionAccumulation()

    price = oracle_version.price
    to_position = from_position.apply(order)

    # 1. trade fees
    taker_units = order.taker_total - guarantee.taker_fee
    maker_units = order.maker_total - guarantee.maker_fee
    taker = taker_fee_components(
        units=taker_units,
        price=price,
        skew_from=from_position.skew,
        skew_to=to_position.skew,
        curve=risk.taker_fee,
        base_rate=market.taker_fee,
    )
    maker = maker_fee_components(
        units=maker_units, price=price, curve=risk.maker_fee, base_rate=market.maker_fee
    )

    taker_pu = _per_unit_up(taker.total, taker_units)
    maker_pu = _per_unit_up(maker.total, maker_units)
    taker_linear_pu = _per_unit_up(taker.linear_total, taker_units)
    maker_linear_pu = _per_unit_up(maker.linear_total, maker_units)
    offset_pu = _per_unit_up(taker.adiabatic, taker_units)

    booked = mul_up(taker_units, taker_pu) + mul_up(maker_units, maker_pu)
    exact = taker.total + maker.total
    adiabatic = mul_up(taker_units, offset_pu)

    # 2. referral carve-out, then split
    referral = mul_up(order.taker_referral, taker_linear_pu) + mul_up(order.maker_referral, maker_linear_pu)
    distributable = exact - referral if referral <= exact else 0
    surplus = booked - max(exact, referral)
    split = split_fee(
        distributable,
        oracle_fee=receipt.oracle_fee,
        risk_fee=market.risk_fee,
        position_fee=market.position_fee,
    )

    # 3. settlement fee
    charged_orders = order.orders - guarantee.orders
    per_order = settlement_fee_per_order(receipt.settlement_fee, charged_orders)
    settlement_fee = per_order * max(charged_orders, 0)

    # 4. accrual over the interval
    pnl = funding = interest = SideAmounts()
    p_acc = global_.p_accumulator
    if not market.closed:
        dt = ts - from_position.timestamp if from_position.timestamp > 0 else 0
        if global_.latest_price != 0:
            pnl = accumulate_pnl(from_position, global_.latest_price, price)
        funding, p_acc = accumulate_funding(
            acc=global_.p_accumulator,
            controller=risk.p_controller,
            position=from_position,
            taker_scale=risk.taker_fee.scale,
            price=price,
            dt=dt,
            fee_rate=market.funding_fee,
        )
        interest = accumulate_interest(
            curve=risk.utilization_curve,
            position=from_position,
            price=price,
            dt=dt,
            fee_rate=market.interest_fee,
        )
    accrual_fees = split_fee(
        funding.fee + interest.fee, oracle_fee=receipt.oracle_fee, risk_fee=market.risk_fee
    )
    sides = pnl.add(funding).add(interest)

    # 5. per-unit distribution
    maker_value, maker_dust = distribute(sides.maker, from_position.maker)
    long_value, long_dust = distribute(sides.long, from_position.long)
    short_value, short_dust = distribute(sides.short, from_position.short)
    maker_fee_value, maker_fee_dust = distribute(split.maker, from_position.maker)
    dust = maker_dust + long_dust + short_dust + maker_fee_dust + surplus

    maker_pre = from_version.maker_post_value + maker_value
    long_pre = from_version.long_post_value + long_value
    short_pre = from_version.short_post_value + short_value
    version = Version(
        timestamp=ts,
        price=price,
        valid=True,
        maker_pre_value=maker_pre,
        long_pre_value=long_pre,
        short_pre_value=short_pre,
        maker_post_value=maker_pre + maker_fee_value,
        long_post_value=long_pre,
        short_post_value=short_pre,
        maker_fee=maker_pu,
        taker_fee=taker_pu,
        maker_linear_fee=maker_linear_pu,
        taker_linear_fee=taker_linear_pu,
        taker_offset=offset_pu,
        settlement_fee=per_order,
        liquidation_fee=risk.liquidation_fee,
    )
    protocol_fee = split.protocol + accrual_fees.protocol + dust
    oracle_fee = split.oracle + accrual_fees.oracle + settlement_fee
    risk_fee = split.risk + accrual_fees.risk
    next_global = replace(
        global_,
        protocol_fee=global_.protocol_fee + protocol_fee,
        oracle_fee=global_.oracle_fee + oracle_fee,
        risk_fee=global_.risk_fee + risk_fee,
        latest_price=price,
        p_accumulator=p_acc,
        exposure=global_.exposure + adiabatic,
        # booked now, collected from accounts as their checkpoints settle
        reserve=global_.reserve - (protocol_fee + oracle_fee + risk_fee + adiabatic),
    )
    report = VersionAccumulation(
        taker_fee=taker,
        maker_fee=maker,
        trade_fee=booked,
        trade_fee_exact=exact,
        referral_fee=referral,
        adiabatic_fee=adiabatic,
        split=split,
        accrual_fee_split=accrual_fees,
        settlement_fee=settlement_fee,
        pnl=pnl,
        funding=funding,
        interest=interest,
        dust=dust,
    )
    return version, next_global, report


def trade_fee_total(report: VersionAccumulation) -> int:
    """Booked trade fee reassembled from its destinations (fee split completeness)."""
    return report.split.total + report.referral_fee + (report.trade_fee - max(report.trade_fee_exact, report.referral_fee))
