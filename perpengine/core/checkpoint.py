"""Per-account checkpoint accumulation.

``accumulate_checkpoint()`` settles one account across ``[from_version,
to_version]``: it realizes the accumulator deltas on the position held during
the interval, bills the order that settles at ``to_version`` and applies the
guarantee's price override.
"""

from __future__ import annotations

from dataclasses import dataclass

from .accrual import referral_share
from .fixed import mul_floor, mul_up
from .positions import price_adjustment
from .records import Checkpoint, Guarantee, Order, Position, Version


@dataclass(frozen=True)
class CheckpointAccumulation:
    collateral: int = 0
    price_override: int = 0
    trade_fee: int = 0
    offset: int = 0
    settlement_fee: int = 0
    liquidation_fee: int = 0
    referral_fee: int = 0
    solver_referral_fee: int = 0
    transfer: int = 0

    @property
    def net(self) -> int:
        """Net ledger delta of the step (excludes the transfer)."""
        return (
            self.collateral
            + self.price_override
            - self.trade_fee
            - self.offset
            - self.settlement_fee
            - self.liquidation_fee
        )


def realize(position: Position, from_version: Version, to_version: Version) -> int:
    """Accrual realized by ``position`` between two versions (rounded down)."""
    return (
        mul_floor(position.maker, to_version.maker_post_value - from_version.maker_post_value)
        + mul_floor(position.long, to_version.long_post_value - from_version.long_post_value)
        + mul_floor(position.short, to_version.short_post_value - from_version.short_post_value)
    )


def accumulate_checkpoint(
    *,
    position: Position,
    order: Order,
    guarantee: Guarantee,
    from_version: Version,
    to_version: Version,
) -> tuple[Checkpoint, CheckpointAccumulation]:
    collateral = realize(position, from_version, to_version)

    if not to_version.valid:
        acc = CheckpointAccumulation(collateral=collateral, transfer=order.collateral)
    else:
        taker_units = order.taker_total - guarantee.taker_fee
        maker_units = order.maker_total - guarantee.maker_fee
        referral = referral_share(order.taker_referral, to_version.taker_linear_fee) + referral_share(
            order.maker_referral, to_version.maker_linear_fee
        )
        acc = CheckpointAccumulation(
            collateral=collateral,
            price_override=price_adjustment(guarantee, to_version.price),
            trade_fee=mul_up(taker_units, to_version.taker_fee) + mul_up(maker_units, to_version.maker_fee),
            offset=mul_up(taker_units, to_version.taker_offset),
            settlement_fee=max(order.orders - guarantee.orders, 0) * to_version.settlement_fee,
            liquidation_fee=to_version.liquidation_fee if order.protection > 0 else 0,
            referral_fee=referral,
            solver_referral_fee=min(referral_share(guarantee.solver_referral, to_version.taker_linear_fee), referral),
            transfer=order.collateral,
        )

    checkpoint = Checkpoint(
        timestamp=to_version.timestamp,
        collateral=acc.net,
        transfer=acc.transfer,
        trade_fee=acc.trade_fee + acc.offset,
        settlement_fee=acc.settlement_fee + acc.liquidation_fee,
    )
    return checkpoint, acc
