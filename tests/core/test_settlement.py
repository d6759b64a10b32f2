"""Tests for perpengine/core/settlement.py — version walks and the reserve sweep."""

import pytest

from perpengine.core import settlement
from perpengine.core.errors import MarketInvariantError
from perpengine.core.fixed import UNIT
from perpengine.core.params import MarketParameter, RiskParameter
from perpengine.core.records import Global, Order, Position
from perpengine.core.settlement import settle_global, sweep_reserve
from perpengine.core.state import MarketState
from perpengine.integration.oracle import ScriptedOracle


def _settled(reserve: int) -> MarketState:
    s = MarketState()
    s.global_ = Global(reserve=reserve, protocol_fee=10)
    s.global_position = Position(timestamp=2000, maker=UNIT)
    s.positions["a"] = Position(timestamp=2000, maker=UNIT)
    return s


# ---------------------------------------------------------------------------
# Reserve sweep
# ---------------------------------------------------------------------------

class TestSweepReserve:
    def test_dust_moves_to_protocol(self):
        s = _settled(reserve=4)
        assert sweep_reserve(s) == 4
        assert s.global_.reserve == 0
        assert s.global_.protocol_fee == 14

    def test_waits_for_lagging_position(self):
        s = _settled(reserve=4)
        s.positions["b"] = Position(timestamp=1000, long=UNIT)
        assert sweep_reserve(s) == 0
        assert s.global_.reserve == 4

    def test_waits_for_order_at_written_version(self):
        s = _settled(reserve=4)
        s.orders[("a", 1)] = Order(timestamp=2000)
        assert sweep_reserve(s) == 0

    def test_later_orders_do_not_block(self):
        s = _settled(reserve=4)
        s.orders[("a", 1)] = Order(timestamp=2001)
        assert sweep_reserve(s) == 4

    def test_empty_positions_ignored(self):
        s = _settled(reserve=4)
        s.positions["b"] = Position(timestamp=1000)
        assert sweep_reserve(s) == 4

    def test_negative_reserve_left_in_place(self):
        s = _settled(reserve=-4)
        assert sweep_reserve(s) == 0
        assert s.global_.reserve == -4
        assert s.global_.protocol_fee == 10


# ---------------------------------------------------------------------------
# Global walk
# ---------------------------------------------------------------------------

class TestSettleGlobal:
    def test_sync_step(self):
        oracle = ScriptedOracle(current_timestamp=1000)
        oracle.commit(1000, 100 * UNIT)
        s = MarketState()
        (step,) = settle_global(s, oracle, RiskParameter(), MarketParameter())
        assert step.order_id is None
        assert step.version.timestamp == 1000
        assert s.global_position.timestamp == 1000
        assert s.global_.latest_price == 100 * UNIT

    def test_incomplete_fee_split_rejected(self, monkeypatch):
        oracle = ScriptedOracle(current_timestamp=1000)
        oracle.commit(1000, 100 * UNIT)
        monkeypatch.setattr(settlement, "trade_fee_total", lambda report: report.trade_fee + 1)
        with pytest.raises(MarketInvariantError) as exc:
            settle_global(MarketState(), oracle, RiskParameter(), MarketParameter())
        assert exc.value.violations == ["fee_split_complete"]
