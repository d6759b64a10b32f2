"""Ledger records for the settlement engine.

All records are frozen dataclasses (immutable). A transition never edits a
record in place: it builds a new one with ``dataclasses.replace`` or one of the
small combinators below.

Units/conventions:
- sizes, prices, amounts and rates are 6-decimal fixed point ints (``fixed.UNIT``),
- ``timestamp`` is an oracle timestamp in seconds,
- ``*_pos`` / ``*_neg`` order fields are non-negative magnitudes (opening / closing).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class Position:
    """Settled magnitudes of one account (or the global aggregate) at ``timestamp``."""

    timestamp: int = 0
    maker: int = 0
    long: int = 0
    short: int = 0

    @property
    def magnitude(self) -> int:
        return max(self.maker, self.long, self.short)

    @property
    def major(self) -> int:
        return max(self.long, self.short)

    @property
    def minor(self) -> int:
        return min(self.long, self.short)

    @property
    def skew(self) -> int:
        """Signed taker imbalance in position units (long > 0)."""
        return self.long - self.short

    @property
    def empty(self) -> bool:
        return self.maker == 0 and self.long == 0 and self.short == 0

    def apply(self, order: Order) -> Position:
        """Drain ``order`` into this position (timestamp moves to the order's)."""
        return Position(
            timestamp=order.timestamp,
            maker=self.maker + order.maker_pos - order.maker_neg,
            long=self.long + order.long_pos - order.long_neg,
            short=self.short + order.short_pos - order.short_neg,
        )


@dataclass(frozen=True)
class Order:
    """Pending (not yet settled) deltas queued at an oracle timestamp.

    ``invalidation`` counts how often the order was dropped because the oracle
    version at its timestamp turned out invalid.
    """

    timestamp: int = 0
    orders: int = 0
    maker_pos: int = 0
    maker_neg: int = 0
    long_pos: int = 0
    long_neg: int = 0
    short_pos: int = 0
    short_neg: int = 0
    collateral: int = 0
    maker_referral: int = 0
    taker_referral: int = 0
    protection: int = 0
    invalidation: int = 0

    @property
    def maker_total(self) -> int:
        return self.maker_pos + self.maker_neg

    @property
    def long_total(self) -> int:
        return self.long_pos + self.long_neg

    @property
    def short_total(self) -> int:
        return self.short_pos + self.short_neg

    @property
    def taker_total(self) -> int:
        return self.long_total + self.short_total

    @property
    def taker_pos(self) -> int:
        """Units moving skew toward long."""
        return self.long_pos + self.short_neg

    @property
    def taker_neg(self) -> int:
        """Units moving skew toward short."""
        return self.short_pos + self.long_neg

    @property
    def maker(self) -> int:
        return self.maker_pos - self.maker_neg

    @property
    def long(self) -> int:
        return self.long_pos - self.long_neg

    @property
    def short(self) -> int:
        return self.short_pos - self.short_neg

    @property
    def taker(self) -> int:
        """Signed net taker delta (long > 0)."""
        return self.taker_pos - self.taker_neg

    @property
    def is_empty(self) -> bool:
        return self.maker_total == 0 and self.taker_total == 0

    def add(self, other: Order) -> Order:
        """Merge ``other`` into this order (same pending bucket)."""
        return Order(
            timestamp=self.timestamp,
            orders=self.orders + other.orders,
            maker_pos=self.maker_pos + other.maker_pos,
            maker_neg=self.maker_neg + other.maker_neg,
            long_pos=self.long_pos + other.long_pos,
            long_neg=self.long_neg + other.long_neg,
            short_pos=self.short_pos + other.short_pos,
            short_neg=self.short_neg + other.short_neg,
            collateral=self.collateral + other.collateral,
            maker_referral=self.maker_referral + other.maker_referral,
            taker_referral=self.taker_referral + other.taker_referral,
            protection=self.protection + other.protection,
            invalidation=self.invalidation + other.invalidation,
        )


@dataclass(frozen=True)
class Guarantee:
    """Overlay on an ``Order`` for intent fills and fee exclusions.

    ``taker_fee`` / ``maker_fee`` are excluded units: the part of the order's
    volume that is not billed an ordinary trading fee.
    """

    orders: int = 0
    long_pos: int = 0
    long_neg: int = 0
    short_pos: int = 0
    short_neg: int = 0
    notional: int = 0
    taker_fee: int = 0
    maker_fee: int = 0
    order_referral: int = 0
    solver_referral: int = 0

    @property
    def taker_pos(self) -> int:
        return self.long_pos + self.short_neg

    @property
    def taker_neg(self) -> int:
        return self.short_pos + self.long_neg

    @property
    def taker(self) -> int:
        return self.taker_pos - self.taker_neg

    @property
    def taker_total(self) -> int:
        return self.taker_pos + self.taker_neg

    @property
    def is_empty(self) -> bool:
        return self == Guarantee()

    def add(self, other: Guarantee) -> Guarantee:
        return Guarantee(
            orders=self.orders + other.orders,
            long_pos=self.long_pos + other.long_pos,
            long_neg=self.long_neg + other.long_neg,
            short_pos=self.short_pos + other.short_pos,
            short_neg=self.short_neg + other.short_neg,
            notional=self.notional + other.notional,
            taker_fee=self.taker_fee + other.taker_fee,
            maker_fee=self.maker_fee + other.maker_fee,
            order_referral=self.order_referral + other.order_referral,
            solver_referral=self.solver_referral + other.solver_referral,
        )


@dataclass(frozen=True)
class Checkpoint:
    """Per-account reconciliation record written once per settlement step.

    ``collateral`` is the net ledger delta of the step (accrual, price override,
    minus fees); ``transfer`` is the collateral moved in or out by the order.
    ``settlement_fee`` includes the liquidation fee of a protected order.
    """

    timestamp: int = 0
    collateral: int = 0
    transfer: int = 0
    trade_fee: int = 0
    settlement_fee: int = 0


@dataclass(frozen=True)
class PAccumulator:
    """Funding P-controller state: current annualized rate and last skew."""

    value: int = 0
    skew: int = 0


@dataclass(frozen=True)
class Global:
    """Global sequence ids, fee buckets and accumulators.

    ``reserve`` is value in flight between the global version walk and the
    account checkpoints: versions subtract what they book into fee buckets and
    exposure, checkpoints subtract what accounts realize. Once every open
    position is settled to the latest version it holds only rounding dust,
    which is swept into ``protocol_fee``.
    """

    current_id: int = 0
    latest_id: int = 0
    protocol_fee: int = 0
    oracle_fee: int = 0
    risk_fee: int = 0
    latest_price: int = 0
    p_accumulator: PAccumulator = field(default_factory=PAccumulator)
    exposure: int = 0
    reserve: int = 0


@dataclass(frozen=True)
class Local:
    current_id: int = 0
    latest_id: int = 0
    claimable: int = 0


@dataclass(frozen=True)
class Version:
    """Accumulator snapshot at one confirmed oracle timestamp.

    ``*_value`` fields are cumulative per-unit values; the fee fields are the
    per-unit (or per-order) rates billed to orders settling at this version.
    """

    timestamp: int = 0
    price: int = 0
    valid: bool = False

    maker_pre_value: int = 0
    long_pre_value: int = 0
    short_pre_value: int = 0
    maker_post_value: int = 0
    long_post_value: int = 0
    short_post_value: int = 0

    maker_fee: int = 0
    taker_fee: int = 0
    maker_linear_fee: int = 0
    taker_linear_fee: int = 0
    taker_offset: int = 0
    settlement_fee: int = 0
    liquidation_fee: int = 0

    def carried(self, timestamp: int) -> Version:
        """Invalid successor: same values and price, no rates."""
        return replace(
            self,
            timestamp=timestamp,
            valid=False,
            maker_pre_value=self.maker_post_value,
            long_pre_value=self.long_post_value,
            short_pre_value=self.short_post_value,
            maker_fee=0,
            taker_fee=0,
            maker_linear_fee=0,
            taker_linear_fee=0,
            taker_offset=0,
            settlement_fee=0,
            liquidation_fee=0,
        )


@dataclass(frozen=True)
class OracleVersion:
    timestamp: int
    price: int
    valid: bool = True


@dataclass(frozen=True)
class OracleReceipt:
    """Fee quote attached to an oracle version."""

    settlement_fee: int = 0
    oracle_fee: int = 0
