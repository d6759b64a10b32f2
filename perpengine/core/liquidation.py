"""Liquidation and socialization.

An account is liquidatable when its collateral falls below the maintenance
requirement of its settled position. A liquidation is an ordinary closing
order flagged ``protection = 1``: it is exempt from trading fees (through a
``Guarantee`` exclusion) and bills the flat ``liquidation_fee`` instead, paid
to the liquidator's claimable balance.

Socialization needs no extra step: pnl and funding are computed on the
socialized major side (``min(major, minor + maker)``), so when maker capacity
cannot back taker exposure every maker absorbs the deficit pro rata.
"""

from __future__ import annotations

from dataclasses import dataclass

from .fixed import UNIT
from .params import RiskParameter
from .positions import (
    maintained,
    maintenance,
    order_from_deltas,
    protection_guarantee,
    socialization_factor,
)
from .records import Guarantee, Order, Position


def liquidatable(position: Position, price: int, risk: RiskParameter, collateral: int) -> bool:
    if position.empty:
        return False
    return not maintained(position, price, risk, collateral)


def liquidation_order(*, timestamp: int, position: Position, collateral: int = 0) -> tuple[Order, Guarantee]:
    """Order closing every unit of ``position`` (settled plus pending) and its fee exclusion."""
    order = order_from_deltas(
        timestamp=timestamp,
        position=position,
        maker_delta=-position.maker,
        taker_delta=position.short - position.long,
        collateral=collateral,
        protect=True,
    )
    return order, protection_guarantee(order)


@dataclass(frozen=True)
class SocializationReport:
    factor: int
    taker_exposure: int
    maker_capacity: int

    @property
    def deficit(self) -> int:
        """Taker exposure left unbacked by maker capacity."""
        return max(self.taker_exposure - self.maker_capacity, 0)

    @property
    def socialized(self) -> bool:
        return self.factor < UNIT


def socialization(position: Position) -> SocializationReport:
    return SocializationReport(
        factor=socialization_factor(position),
        taker_exposure=position.major,
        maker_capacity=position.minor + position.maker,
    )


def shortfall(collateral: int) -> int:
    """Unrecovered loss of an account (positive when collateral went negative)."""
    return max(-collateral, 0)


def maintenance_gap(position: Position, price: int, risk: RiskParameter, collateral: int) -> int:
    """How far ``collateral`` is above (positive) or below the maintenance requirement."""
    return collateral - maintenance(position, price, risk)
