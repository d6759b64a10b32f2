"""Tests for perpengine/core/fees.py — trade fee splitting with dust to protocol."""

import pytest

from perpengine.core.fees import FeeSplit, split_cut, split_fee
from perpengine.core.fixed import UNIT


class TestSplitFee:
    def test_market_fixture(self):
        # 10 maker units at 113.882975 with a 5% linear maker fee
        s = split_fee(56_941_487, oracle_fee=300_000, risk_fee=571_428)
        assert s.oracle == 17_082_446
        assert s.risk == 22_776_572
        assert s.protocol == 17_082_469
        assert s.maker == 0
        assert s.total == 56_941_487

    def test_position_fee_routes_rest_to_makers(self):
        s = split_fee(1000, oracle_fee=0, risk_fee=0, position_fee=400_000)
        assert s.protocol == 400
        assert s.maker == 600

    def test_zero_amount(self):
        assert split_fee(0, oracle_fee=UNIT, risk_fee=UNIT) == FeeSplit()

    def test_full_oracle_cut(self):
        s = split_fee(777, oracle_fee=UNIT, risk_fee=UNIT)
        assert s.oracle == 777
        assert s.risk == 0
        assert s.protocol == 0

    def test_dust_goes_to_protocol(self):
        # 3 * 1/3 truncates to 0 on both cuts
        s = split_fee(3, oracle_fee=333_333, risk_fee=333_333)
        assert (s.oracle, s.risk, s.protocol) == (0, 0, 3)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            split_fee(-1, oracle_fee=0, risk_fee=0)

    def test_rate_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            split_fee(10, oracle_fee=UNIT + 1, risk_fee=0)
        with pytest.raises(ValueError):
            split_fee(10, oracle_fee=0, risk_fee=0, position_fee=-1)


class TestFeeSplitRecord:
    def test_negative_part_rejected(self):
        with pytest.raises(ValueError):
            FeeSplit(oracle=-1)

    def test_add(self):
        a = FeeSplit(oracle=1, risk=2, protocol=3, maker=4)
        assert a.add(a) == FeeSplit(oracle=2, risk=4, protocol=6, maker=8)
        assert a.total == 10


class TestSplitCut:
    def test_truncates_cut(self):
        assert split_cut(1788, 20_000) == (35, 1753)

    def test_zero_cut(self):
        assert split_cut(1788, 0) == (0, 1788)
