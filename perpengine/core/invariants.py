"""Invariant/authorization checker.

Two registries:

- ``CHECK_REGISTRY``: admission checks run on a proposed update before it
  reaches the pending queue. Each check returns True when the update is
  acceptable; ``check_all()`` returns the violated check ids in registry
  order and ``check_update()`` raises the typed error of the first one.
- ``INVARIANT_REGISTRY``: ledger invariants over a whole ``MarketState``,
  checked after every committed transition (``check_ledger()``).

Liquidity, efficiency, maker-limit, stale-price and margin checks only apply
to orders that open or increase risk; position-reducing orders pass them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from ..state.access import Authorization
from .errors import (
    MarketClosedError,
    MarketEfficiencyUnderLimitError,
    MarketError,
    MarketExceedsPendingIdLimitError,
    MarketInsufficientCollateralError,
    MarketInsufficientLiquidityError,
    MarketInsufficientMarginError,
    MarketInvariantError,
    MarketMakerOverLimitError,
    MarketNotSingleSidedError,
    MarketOperatorNotAllowedError,
    MarketOverCloseError,
    MarketProtectedError,
    MarketSettleOnlyError,
    MarketStalePriceError,
)
from .params import MarketParameter, RiskParameter
from .positions import (
    crosses_zero,
    efficiency,
    increases_maker,
    increases_position,
    liquidity_check_applicable,
    margined,
    single_sided,
)
from .records import Global, Local, Order, Position
from .state import MarketState


@dataclass(frozen=True)
class UpdateContext:
    """Everything an admission check may look at.

    ``pending`` / ``global_pending`` are settled positions with every pending
    order applied, before the proposed ``order``. ``local`` / ``global_`` carry
    the ids after the order has been assigned its pending slot.
    """

    account: str
    order: Order
    collateral_delta: int
    auth: Authorization
    risk: RiskParameter
    market: MarketParameter
    settled: Position
    pending: Position
    global_pending: Position
    local: Local
    global_: Global
    collateral: int
    price: int
    current_timestamp: int
    latest_timestamp: int
    protected_pending: bool = False
    protect: bool = False
    collateralization: int = 0

    @property
    def pending_after(self) -> Position:
        return self.pending.apply(self.order)

    @property
    def global_after(self) -> Position:
        return self.global_pending.apply(self.order)

    @property
    def opens(self) -> bool:
        return increases_position(self.order)


def chk_unauthorized(ctx: UpdateContext) -> bool:
    # a protected close may be submitted by any liquidator
    return ctx.protect or ctx.auth.allowed


def chk_protected(ctx: UpdateContext) -> bool:
    return not ctx.protected_pending


def chk_settle_only(ctx: UpdateContext) -> bool:
    return not ctx.market.settle or (ctx.order.is_empty and ctx.collateral_delta == 0)


def chk_closed(ctx: UpdateContext) -> bool:
    return not ctx.market.closed or not ctx.opens


def chk_over_close(ctx: UpdateContext) -> bool:
    after = ctx.pending_after
    return after.maker >= 0 and after.long >= 0 and after.short >= 0


def chk_single_sided(ctx: UpdateContext) -> bool:
    if ctx.order.is_empty:
        return True
    return single_sided(ctx.pending_after) and single_sided(ctx.settled) and not crosses_zero(ctx.order)


def chk_pending_local(ctx: UpdateContext) -> bool:
    return ctx.local.current_id - ctx.local.latest_id <= ctx.market.max_pending_local


def chk_pending_global(ctx: UpdateContext) -> bool:
    return ctx.global_.current_id - ctx.global_.latest_id <= ctx.market.max_pending_global


def chk_stale(ctx: UpdateContext) -> bool:
    if not ctx.opens:
        return True
    return ctx.current_timestamp - ctx.latest_timestamp <= ctx.risk.stale_after


def chk_maker_limit(ctx: UpdateContext) -> bool:
    if not increases_maker(ctx.order):
        return True
    return ctx.global_after.maker <= ctx.risk.maker_limit


def chk_efficiency(ctx: UpdateContext) -> bool:
    if not ctx.opens or not liquidity_check_applicable(ctx.order, ctx.global_pending, ctx.market):
        return True
    return efficiency(ctx.global_after) >= ctx.risk.efficiency_limit


def chk_liquidity(ctx: UpdateContext) -> bool:
    if not ctx.opens or not liquidity_check_applicable(ctx.order, ctx.global_pending, ctx.market):
        return True
    after = ctx.global_after
    return after.major <= after.minor + after.maker


def chk_collateral(ctx: UpdateContext) -> bool:
    return ctx.collateral_delta >= 0 or ctx.collateral >= 0


def chk_margin(ctx: UpdateContext) -> bool:
    if ctx.protect or not (ctx.opens or ctx.collateral_delta < 0):
        return True
    after = ctx.pending_after
    # the larger of the settled and pending exposure must be covered
    worst = after if after.magnitude >= ctx.settled.magnitude else ctx.settled
    return margined(worst, ctx.price, ctx.risk, ctx.collateral, ctx.collateralization)


CHECK_REGISTRY: dict[str, tuple[Callable[[UpdateContext], bool], type[MarketError]]] = {
    "unauthorized": (chk_unauthorized, MarketOperatorNotAllowedError),
    "protected": (chk_protected, MarketProtectedError),
    "settle_only": (chk_settle_only, MarketSettleOnlyError),
    "closed": (chk_closed, MarketClosedError),
    "over_close": (chk_over_close, MarketOverCloseError),
    "single_sided": (chk_single_sided, MarketNotSingleSidedError),
    "pending_local": (chk_pending_local, MarketExceedsPendingIdLimitError),
    "pending_global": (chk_pending_global, MarketExceedsPendingIdLimitError),
    "stale": (chk_stale, MarketStalePriceError),
    "maker_limit": (chk_maker_limit, MarketMakerOverLimitError),
    "efficiency": (chk_efficiency, MarketEfficiencyUnderLimitError),
    "liquidity": (chk_liquidity, MarketInsufficientLiquidityError),
    "collateral": (chk_collateral, MarketInsufficientCollateralError),
    "margin": (chk_margin, MarketInsufficientMarginError),
}


def check_all(ctx: UpdateContext) -> list[str]:
    """Return list of violated check IDs (empty = update admitted)."""
    return [check_id for check_id, (check_fn, _) in CHECK_REGISTRY.items() if not check_fn(ctx)]


def check_update(ctx: UpdateContext) -> None:
    """Raise the typed error of the first violated check."""
    for check_id, (check_fn, error) in CHECK_REGISTRY.items():
        if not check_fn(ctx):
            raise error(f"{check_id} check failed for {ctx.account!r}")


# -- Ledger invariants ---------------------------------------------------------


def inv_ids_monotonic(s: MarketState) -> bool:
    if s.global_.latest_id > s.global_.current_id:
        return False
    return all(l.latest_id <= l.current_id for l in s.locals_.values())


def inv_pending_orders_present(s: MarketState) -> bool:
    g = s.global_
    if any(i not in s.global_orders for i in range(g.latest_id + 1, g.current_id + 1)):
        return False
    for account, l in s.locals_.items():
        if any((account, i) not in s.orders for i in range(l.latest_id + 1, l.current_id + 1)):
            return False
    return True


def inv_positions_nonnegative(s: MarketState) -> bool:
    positions = [s.global_position, *s.positions.values()]
    return all(p.maker >= 0 and p.long >= 0 and p.short >= 0 for p in positions)


def inv_fee_buckets_nonnegative(s: MarketState) -> bool:
    g = s.global_
    if g.protocol_fee < 0 or g.oracle_fee < 0 or g.risk_fee < 0:
        return False
    return all(l.claimable >= 0 for l in s.locals_.values())


def inv_global_is_sum_of_locals(s: MarketState) -> bool:
    # only comparable once every account is settled to the global timestamp
    if any(l.latest_id != l.current_id for l in s.locals_.values()):
        return True
    ts = s.global_position.timestamp
    if any(not p.empty and p.timestamp != ts for p in s.positions.values()):
        return True
    total_maker = sum(p.maker for p in s.positions.values())
    total_long = sum(p.long for p in s.positions.values())
    total_short = sum(p.short for p in s.positions.values())
    gp = s.global_position
    return (gp.maker, gp.long, gp.short) == (total_maker, total_long, total_short)


def inv_versions_ordered(s: MarketState) -> bool:
    latest = s.latest_version()
    if latest is None:
        return s.global_.latest_price == 0
    return latest.timestamp >= s.global_position.timestamp


def inv_reserve_swept(s: MarketState) -> bool:
    # a negative reserve once everyone has settled means value was created
    if not s.fully_settled():
        return True
    return s.global_.reserve == 0


INVARIANT_REGISTRY: dict[str, Callable[[MarketState], bool]] = {
    "inv_ids_monotonic": inv_ids_monotonic,
    "inv_pending_orders_present": inv_pending_orders_present,
    "inv_positions_nonnegative": inv_positions_nonnegative,
    "inv_fee_buckets_nonnegative": inv_fee_buckets_nonnegative,
    "inv_global_is_sum_of_locals": inv_global_is_sum_of_locals,
    "inv_versions_ordered": inv_versions_ordered,
    "inv_reserve_swept": inv_reserve_swept,
}


def check_ledger(state: MarketState) -> list[str]:
    """Return list of violated ledger invariant IDs (empty = all pass)."""
    return [inv_id for inv_id, check_fn in INVARIANT_REGISTRY.items() if not check_fn(state)]


def assert_ledger(state: MarketState) -> None:
    violations = check_ledger(state)
    if violations:
        raise MarketInvariantError(violations)
