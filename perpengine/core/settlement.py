"""Settlement engine: the global and local version walks.

``settle_global()`` drains pending global orders whose timestamp the oracle has
committed, writing one ``Version`` per timestamp, then syncs the global
position to the oracle's latest committed timestamp with an empty order.

``settle_local()`` drains an account's pending orders whose timestamp has a
``Version``, writing one ``Checkpoint`` per step, then syncs the account to
the latest version. Every step reports whether the account is liquidatable
with its new position at the step's price.

An order whose version is invalid is dropped (its ``invalidation`` counter is
bumped in the step record) and the position only moves to the new timestamp.

Value booked by a version is owed by the accounts settling at it; checkpoints
pay it back into ``Global.reserve``. Once every open position has reached the
latest version the reserve is pure rounding dust and is swept into the
protocol fee.

Both walks mutate the ``MarketState`` they are given; callers pass a copy and
commit it only when the whole call succeeds. Nothing to settle is not an
error: the walks simply return no steps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Optional

from ..state.ledger import GLOBAL_SCOPE
from .checkpoint import CheckpointAccumulation, accumulate_checkpoint
from .errors import MarketInvariantError
from .liquidation import liquidatable, maintenance_gap, shortfall, socialization
from .params import MarketParameter, RiskParameter
from .records import Checkpoint, Guarantee, Order, Version
from .state import MarketState
from .version import VersionAccumulation, accumulate_version, trade_fee_total

if TYPE_CHECKING:
    from ..integration.oracle import Oracle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GlobalStep:
    order_id: Optional[int]
    order: Order
    version: Version
    report: VersionAccumulation


@dataclass(frozen=True)
class LocalStep:
    account: str
    order_id: Optional[int]
    order: Order
    checkpoint: Checkpoint
    accumulation: CheckpointAccumulation
    liquidatable: bool = False


def _invalidated(order: Order) -> Order:
    if order.is_empty:
        return order
    return replace(order, invalidation=order.invalidation + 1)


# -- Global --------------------------------------------------------------------


def _process_global(
    state: MarketState,
    order_id: Optional[int],
    order: Order,
    guarantee: Guarantee,
    oracle: Oracle,
    risk: RiskParameter,
    market: MarketParameter,
) -> GlobalStep:
    oracle_version, receipt = oracle.at(order.timestamp)
    from_version = state.latest_version() or Version()
    version, next_global, report = accumulate_version(
        global_=state.global_,
        from_position=state.global_position,
        from_version=from_version,
        order=order,
        guarantee=guarantee,
        oracle_version=oracle_version,
        receipt=receipt,
        risk=risk,
        market=market,
    )
    if trade_fee_total(report) != report.trade_fee:
        raise MarketInvariantError(["fee_split_complete"])
    if not oracle_version.valid:
        logger.warning("invalid oracle version at %d: order %s dropped", order.timestamp, order_id)
        order = _invalidated(order)
        position = replace(state.global_position, timestamp=order.timestamp)
    else:
        position = state.global_position.apply(order)

    state.versions.append(GLOBAL_SCOPE, version.timestamp, version)
    state.position_history.append(GLOBAL_SCOPE, position.timestamp, position)
    state.global_position = position
    if order_id is not None:
        next_global = replace(next_global, latest_id=order_id)
        del state.global_orders[order_id]
        state.global_guarantees.pop(order_id, None)
    state.global_ = next_global

    logger.debug(
        "global version %d: price=%d trade_fee=%d dust=%d position=%s",
        version.timestamp,
        version.price,
        report.trade_fee,
        report.dust,
        position,
    )
    report_social = socialization(position)
    if report_social.socialized:
        logger.info(
            "maker deficit at %d: exposure=%d capacity=%d",
            position.timestamp,
            report_social.taker_exposure,
            report_social.maker_capacity,
        )
    return GlobalStep(order_id=order_id, order=order, version=version, report=report)


def settle_global(
    state: MarketState, oracle: Oracle, risk: RiskParameter, market: MarketParameter
) -> list[GlobalStep]:
    latest = oracle.latest()
    steps: list[GlobalStep] = []

    while state.global_.latest_id < state.global_.current_id:
        next_id = state.global_.latest_id + 1
        order = state.global_orders[next_id]
        if order.timestamp > latest.timestamp:
            break
        guarantee = state.global_guarantees.get(next_id, Guarantee())
        steps.append(_process_global(state, next_id, order, guarantee, oracle, risk, market))

    if latest.timestamp > state.global_position.timestamp:
        sync = Order(timestamp=latest.timestamp)
        steps.append(_process_global(state, None, sync, Guarantee(), oracle, risk, market))
    return steps


# -- Local ---------------------------------------------------------------------


def _credit(state: MarketState, account: str, amount: int) -> int:
    if amount == 0:
        return 0
    if not account:
        # unowned referral share
        state.global_ = replace(state.global_, protocol_fee=state.global_.protocol_fee + amount)
        return amount
    local = state.local(account)
    state.locals_[account] = replace(local, claimable=local.claimable + amount)
    return amount


def _process_local(
    state: MarketState,
    account: str,
    order_id: Optional[int],
    order: Order,
    guarantee: Guarantee,
    to_version: Version,
    risk: RiskParameter,
) -> LocalStep:
    position = state.position(account)
    from_version = state.version_at(position.timestamp) or Version()
    checkpoint, acc = accumulate_checkpoint(
        position=position,
        order=order,
        guarantee=guarantee,
        from_version=from_version,
        to_version=to_version,
    )
    if to_version.valid:
        next_position = position.apply(replace(order, timestamp=to_version.timestamp))
    else:
        order = _invalidated(order)
        next_position = replace(position, timestamp=to_version.timestamp)

    collateral = state.collateral.get(account, 0) + checkpoint.collateral
    state.collateral[account] = collateral
    state.positions[account] = next_position
    state.checkpoints.append(account, checkpoint.timestamp, checkpoint)
    state.position_history.append(account, next_position.timestamp, next_position)

    credited = 0
    if order_id is not None:
        key = (account, order_id)
        credited += _credit(state, state.order_referrers.pop(key, ""), acc.referral_fee - acc.solver_referral_fee)
        credited += _credit(state, state.guarantee_referrers.pop(key, ""), acc.solver_referral_fee)
        liquidator = state.liquidators.pop(key, "")
        if acc.liquidation_fee:
            credited += _credit(state, liquidator, acc.liquidation_fee)
        del state.orders[key]
        state.guarantees.pop(key, None)
        state.locals_[account] = replace(state.local(account), latest_id=order_id)
    g = state.global_
    state.global_ = replace(g, reserve=g.reserve - checkpoint.collateral - credited)

    logger.debug(
        "checkpoint %s@%d: collateral=%d trade_fee=%d settlement_fee=%d",
        account,
        checkpoint.timestamp,
        checkpoint.collateral,
        checkpoint.trade_fee,
        checkpoint.settlement_fee,
    )
    if collateral < 0:
        logger.warning("shortfall on %s at %d: %d", account, checkpoint.timestamp, shortfall(collateral))
    eligible = liquidatable(next_position, to_version.price, risk, collateral)
    if eligible:
        logger.info(
            "%s liquidatable at %d: %d below maintenance",
            account,
            checkpoint.timestamp,
            -maintenance_gap(next_position, to_version.price, risk, collateral),
        )
    return LocalStep(
        account=account,
        order_id=order_id,
        order=order,
        checkpoint=checkpoint,
        accumulation=acc,
        liquidatable=eligible,
    )


def settle_local(state: MarketState, account: str, risk: RiskParameter) -> list[LocalStep]:
    steps: list[LocalStep] = []
    while True:
        local = state.local(account)
        if local.latest_id >= local.current_id:
            break
        next_id = local.latest_id + 1
        order = state.orders[(account, next_id)]
        to_version = state.version_at(order.timestamp)
        if to_version is None:
            break
        guarantee = state.guarantees.get((account, next_id), Guarantee())
        steps.append(_process_local(state, account, next_id, order, guarantee, to_version, risk))

    latest = state.latest_version()
    position = state.position(account)
    if latest is not None and latest.timestamp > position.timestamp and _has_history(state, account):
        steps.append(
            _process_local(state, account, None, Order(timestamp=latest.timestamp), Guarantee(), latest, risk)
        )
    sweep_reserve(state)
    return steps


def _has_history(state: MarketState, account: str) -> bool:
    # accounts that never held a position have nothing to sync
    return account in state.positions


def sweep_reserve(state: MarketState) -> int:
    """Move the reserve into the protocol fee once nothing is owed to or by an account."""
    g = state.global_
    if g.reserve <= 0 or not state.fully_settled():
        return 0
    state.global_ = replace(g, protocol_fee=g.protocol_fee + g.reserve, reserve=0)
    logger.debug("swept %d of rounding dust to the protocol fee", g.reserve)
    return g.reserve
