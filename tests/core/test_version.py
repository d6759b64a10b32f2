"""Tests for perpengine/core/version.py — global version accumulation."""

from dataclasses import replace

from perpengine.core.fixed import UNIT
from perpengine.core.params import FeeCurve, MarketParameter, RiskParameter
from perpengine.core.records import (
    Global,
    Guarantee,
    OracleReceipt,
    OracleVersion,
    Order,
    Position,
    Version,
)
from perpengine.core.version import accumulate_version, trade_fee_total

PRICE = 113_882_975


def _maker_open(ts: int = 1000) -> Order:
    return Order(timestamp=ts, orders=1, maker_pos=10 * UNIT)


def _accumulate(**overrides):
    kwargs = dict(
        global_=Global(),
        from_position=Position(timestamp=1000),
        from_version=Version(),
        order=_maker_open(),
        guarantee=Guarantee(),
        oracle_version=OracleVersion(timestamp=1000, price=PRICE),
        receipt=OracleReceipt(oracle_fee=300_000),
        risk=RiskParameter(maker_fee=FeeCurve(linear_fee=50_000)),
        market=MarketParameter(risk_fee=571_428),
    )
    kwargs.update(overrides)
    return accumulate_version(**kwargs)


# ---------------------------------------------------------------------------
# Trade fees
# ---------------------------------------------------------------------------

class TestMakerOpen:
    def test_per_unit_fee_rounded_up(self):
        version, _, _ = _accumulate()
        assert version.valid
        assert version.price == PRICE
        assert version.maker_fee == 5_694_149
        assert version.maker_linear_fee == 5_694_149
        assert version.taker_fee == 0

    def test_report(self):
        _, _, report = _accumulate()
        assert report.maker_fee.linear == 56_941_487
        assert report.trade_fee == 56_941_490
        assert report.trade_fee_exact == 56_941_487
        assert report.dust == 3
        assert trade_fee_total(report) == report.trade_fee

    def test_global_buckets(self):
        _, g, _ = _accumulate()
        assert g.oracle_fee == 17_082_446
        assert g.risk_fee == 22_776_572
        # 17_082_469 split share plus 3 units of rounding surplus
        assert g.protocol_fee == 17_082_472
        assert g.latest_price == PRICE
        assert g.exposure == 0

    def test_nothing_created(self):
        _, g, report = _accumulate()
        assert g.protocol_fee + g.oracle_fee + g.risk_fee == report.trade_fee

    def test_reserve_owed_by_accounts(self):
        _, g, report = _accumulate()
        assert g.reserve == -report.trade_fee
        assert g.reserve + g.protocol_fee + g.oracle_fee + g.risk_fee + g.exposure == 0

    def test_excluded_units_not_billed(self):
        version, g, report = _accumulate(guarantee=Guarantee(maker_fee=10 * UNIT))
        assert version.maker_fee == 0
        assert report.trade_fee == 0
        assert g.protocol_fee == 0

    def test_settlement_fee_per_order(self):
        version, g, report = _accumulate(receipt=OracleReceipt(settlement_fee=10, oracle_fee=0), order=replace(_maker_open(), orders=3))
        assert version.settlement_fee == 4
        assert report.settlement_fee == 12
        assert g.oracle_fee == 12

    def test_settlement_fee_skips_guaranteed_orders(self):
        version, _, report = _accumulate(
            receipt=OracleReceipt(settlement_fee=10),
            order=replace(_maker_open(), orders=2),
            guarantee=Guarantee(orders=2),
        )
        assert version.settlement_fee == 0
        assert report.settlement_fee == 0

    def test_adiabatic_exposure(self):
        risk = RiskParameter(taker_fee=FeeCurve(adiabatic_fee=70_000, scale=UNIT))
        order = Order(timestamp=1000, orders=1, long_pos=UNIT)
        version, g, report = _accumulate(
            risk=risk,
            order=order,
            from_position=Position(timestamp=1000, maker=10 * UNIT),
        )
        assert version.taker_offset == 7_971_808
        assert report.adiabatic_fee == 7_971_808
        assert g.exposure == 7_971_808


# ---------------------------------------------------------------------------
# Accrual over the interval
# ---------------------------------------------------------------------------

class TestAccrual:
    def _held(self) -> Position:
        return Position(timestamp=1000, maker=10 * UNIT, long=5 * UNIT)

    def test_pnl_distributed_per_unit(self):
        version, _, report = _accumulate(
            global_=Global(latest_price=100 * UNIT),
            from_position=self._held(),
            order=Order(timestamp=2000),
            oracle_version=OracleVersion(timestamp=2000, price=200 * UNIT),
            risk=RiskParameter(),
            market=MarketParameter(),
        )
        assert report.pnl.long == 500 * UNIT
        assert version.long_post_value == 100 * UNIT
        assert version.maker_post_value == -50 * UNIT
        assert version.short_post_value == 0

    def test_closed_market_freezes_values(self):
        version, g, report = _accumulate(
            global_=Global(latest_price=100 * UNIT),
            from_position=self._held(),
            order=Order(timestamp=2000),
            oracle_version=OracleVersion(timestamp=2000, price=200 * UNIT),
            risk=RiskParameter(),
            market=MarketParameter(closed=True),
        )
        assert report.pnl.long == 0
        assert version.long_post_value == 0
        assert version.maker_post_value == 0
        assert g.latest_price == 200 * UNIT

    def test_first_version_has_no_pnl(self):
        version, _, report = _accumulate(
            from_position=self._held(),
            order=Order(timestamp=2000),
            oracle_version=OracleVersion(timestamp=2000, price=200 * UNIT),
            risk=RiskParameter(),
            market=MarketParameter(),
        )
        assert report.pnl.long == 0
        assert version.long_post_value == 0


# ---------------------------------------------------------------------------
# Invalid versions
# ---------------------------------------------------------------------------

class TestInvalidVersion:
    def test_carries_values_and_price(self):
        prior = Version(timestamp=900, price=PRICE, valid=True, maker_post_value=7, long_post_value=-3, maker_fee=11)
        g = Global(latest_price=PRICE, protocol_fee=5)
        version, g2, report = _accumulate(
            global_=g,
            from_version=prior,
            oracle_version=OracleVersion(timestamp=1000, price=1, valid=False),
        )
        assert not version.valid
        assert version.timestamp == 1000
        assert version.price == PRICE
        assert version.maker_pre_value == 7
        assert version.maker_post_value == 7
        assert version.long_post_value == -3
        assert version.maker_fee == 0
        assert g2 == g
        assert report.trade_fee == 0

    def test_uses_latest_price_when_never_valid(self):
        version, _, _ = _accumulate(
            global_=Global(latest_price=42),
            oracle_version=OracleVersion(timestamp=1000, price=1, valid=False),
        )
        assert version.price == 42
