"""Tests for perpengine/core/invariants.py — admission checks and ledger invariants."""

from dataclasses import replace

import pytest

from perpengine.core.errors import (
    MarketEfficiencyUnderLimitError,
    MarketInsufficientMarginError,
    MarketInvariantError,
)
from perpengine.core.fixed import UNIT
from perpengine.core.invariants import (
    CHECK_REGISTRY,
    INVARIANT_REGISTRY,
    UpdateContext,
    assert_ledger,
    check_all,
    check_ledger,
    check_update,
)
from perpengine.core.params import MarketParameter, RiskParameter
from perpengine.core.records import Global, Local, Order, Position
from perpengine.core.state import initial_state
from perpengine.state.access import Authorization


def _ctx(**overrides) -> UpdateContext:
    ctx = UpdateContext(
        account="a",
        order=Order(timestamp=10, orders=1, long_pos=UNIT),
        collateral_delta=0,
        auth=Authorization(is_self=True),
        risk=RiskParameter(),
        market=MarketParameter(),
        settled=Position(),
        pending=Position(),
        global_pending=Position(maker=10 * UNIT),
        local=Local(current_id=1),
        global_=Global(current_id=1),
        collateral=1000 * UNIT,
        price=100 * UNIT,
        current_timestamp=10,
        latest_timestamp=10,
    )
    return replace(ctx, **overrides)


CLOSE_LONG = Order(timestamp=10, orders=1, long_neg=UNIT)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_all_checks_registered(self):
        assert list(CHECK_REGISTRY) == [
            "unauthorized",
            "protected",
            "settle_only",
            "closed",
            "over_close",
            "single_sided",
            "pending_local",
            "pending_global",
            "stale",
            "maker_limit",
            "efficiency",
            "liquidity",
            "collateral",
            "margin",
        ]

    def test_valid_update_passes(self):
        assert check_all(_ctx()) == []
        check_update(_ctx())


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------

class TestChecks:
    def test_unauthorized(self):
        assert check_all(_ctx(auth=Authorization())) == ["unauthorized"]

    def test_protected_close_by_anyone(self):
        assert check_all(_ctx(auth=Authorization(), protect=True)) == []

    def test_protected_pending(self):
        assert check_all(_ctx(protected_pending=True)) == ["protected"]

    def test_settle_only(self):
        settle = MarketParameter(settle=True)
        assert check_all(_ctx(market=settle)) == ["settle_only"]
        assert check_all(_ctx(market=settle, order=Order(timestamp=10))) == []
        assert check_all(_ctx(market=settle, order=Order(timestamp=10), collateral_delta=5)) == ["settle_only"]

    def test_closed_blocks_opening_only(self):
        closed = MarketParameter(closed=True)
        assert check_all(_ctx(market=closed)) == ["closed"]
        assert check_all(_ctx(market=closed, order=CLOSE_LONG, pending=Position(long=UNIT))) == []

    def test_over_close(self):
        assert check_all(_ctx(order=CLOSE_LONG)) == ["over_close"]

    def test_not_single_sided(self):
        assert check_all(_ctx(pending=Position(maker=UNIT))) == ["single_sided"]

    def test_crossing_zero_rejected(self):
        order = Order(timestamp=10, orders=1, long_neg=UNIT, short_pos=UNIT)
        ctx = _ctx(order=order, pending=Position(long=UNIT), global_pending=Position(maker=10 * UNIT, long=UNIT))
        assert "single_sided" in check_all(ctx)

    def test_pending_limits(self):
        assert check_all(_ctx(local=Local(current_id=9))) == ["pending_local"]
        assert check_all(_ctx(global_=Global(current_id=9))) == ["pending_global"]

    def test_stale_price_blocks_opening_only(self):
        assert check_all(_ctx(current_timestamp=10_000)) == ["stale"]
        assert check_all(_ctx(current_timestamp=10_000, order=CLOSE_LONG, pending=Position(long=UNIT))) == []

    def test_maker_limit(self):
        order = Order(timestamp=10, orders=1, maker_pos=2 * UNIT)
        assert check_all(_ctx(order=order, risk=RiskParameter(maker_limit=11 * UNIT))) == ["maker_limit"]

    def test_efficiency_and_liquidity(self):
        order = Order(timestamp=10, orders=1, long_pos=3 * UNIT)
        ctx = _ctx(order=order, global_pending=Position(maker=UNIT, long=UNIT))
        assert check_all(ctx) == ["efficiency", "liquidity"]
        with pytest.raises(MarketEfficiencyUnderLimitError):
            check_update(ctx)

    def test_liquidity_alone(self):
        order = Order(timestamp=10, orders=1, long_pos=3 * UNIT)
        ctx = _ctx(order=order, global_pending=Position(maker=UNIT, long=UNIT), risk=RiskParameter(efficiency_limit=1))
        assert check_all(ctx) == ["liquidity"]

    def test_collateral_withdrawal(self):
        assert check_all(_ctx(collateral_delta=-10, collateral=-1)) == ["collateral", "margin"]

    def test_margin(self):
        ctx = _ctx(collateral=UNIT)
        assert check_all(ctx) == ["margin"]
        with pytest.raises(MarketInsufficientMarginError):
            check_update(ctx)

    def test_collateralization(self):
        assert check_all(_ctx(collateral=15 * UNIT)) == []
        assert check_all(_ctx(collateral=15 * UNIT, collateralization=200_000)) == ["margin"]

    def test_margin_uses_larger_of_settled_and_pending(self):
        order = Order(timestamp=10, orders=1, long_neg=4 * UNIT)
        ctx = _ctx(
            order=order,
            settled=Position(long=5 * UNIT),
            pending=Position(long=5 * UNIT),
            collateral_delta=-1,
            collateral=40 * UNIT,
        )
        assert check_all(ctx) == ["margin"]

    def test_protected_close_skips_margin(self):
        order = Order(timestamp=10, orders=1, long_neg=UNIT, protection=1)
        ctx = _ctx(order=order, pending=Position(long=UNIT), collateral=0, protect=True, auth=Authorization())
        assert check_all(ctx) == []


# ---------------------------------------------------------------------------
# Ledger invariants
# ---------------------------------------------------------------------------

class TestLedgerInvariants:
    def test_registry(self):
        assert len(INVARIANT_REGISTRY) == 7

    def test_initial_state_clean(self):
        assert check_ledger(initial_state()) == []

    def test_ids_monotonic(self):
        s = initial_state()
        s.global_ = Global(latest_id=2, current_id=1)
        assert check_ledger(s) == ["inv_ids_monotonic"]

    def test_pending_orders_present(self):
        s = initial_state()
        s.global_ = Global(current_id=1)
        assert check_ledger(s) == ["inv_pending_orders_present"]
        s.global_orders[1] = Order()
        assert check_ledger(s) == []

    def test_negative_position(self):
        s = initial_state()
        s.positions["a"] = Position(long=-1)
        assert "inv_positions_nonnegative" in check_ledger(s)

    def test_negative_fee_bucket(self):
        s = initial_state()
        s.global_ = Global(protocol_fee=-1)
        assert check_ledger(s) == ["inv_fee_buckets_nonnegative"]

    def test_global_sum(self):
        s = initial_state()
        s.positions["a"] = Position(maker=UNIT)
        assert check_ledger(s) == ["inv_global_is_sum_of_locals"]
        s.global_position = Position(maker=UNIT)
        assert check_ledger(s) == []

    def test_global_sum_skipped_while_pending(self):
        s = initial_state()
        s.positions["a"] = Position(maker=UNIT)
        s.locals_["a"] = Local(current_id=1)
        s.orders[("a", 1)] = Order()
        assert check_ledger(s) == []

    def test_price_without_version(self):
        s = initial_state()
        s.global_ = Global(latest_price=5)
        assert check_ledger(s) == ["inv_versions_ordered"]

    def test_reserve_left_after_full_settlement(self):
        s = initial_state()
        s.global_ = Global(reserve=-1)
        assert check_ledger(s) == ["inv_reserve_swept"]
        s.global_ = Global(reserve=3)
        assert check_ledger(s) == ["inv_reserve_swept"]

    def test_reserve_open_while_accounts_lag(self):
        s = initial_state()
        s.global_ = Global(reserve=-7)
        s.global_position = Position(timestamp=2000, maker=UNIT)
        s.positions["a"] = Position(timestamp=1000, maker=UNIT)
        assert not s.fully_settled()
        assert check_ledger(s) == []

    def test_assert_ledger(self):
        s = initial_state()
        s.global_ = Global(protocol_fee=-1)
        with pytest.raises(MarketInvariantError) as exc:
            assert_ledger(s)
        assert exc.value.violations == ["inv_fee_buckets_nonnegative"]
