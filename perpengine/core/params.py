"""Parameter store: risk, market and protocol parameters.

Pure data validated at construction. Rates and ratios are 6-decimal fixed
point (``UNIT`` = 100%). Cross-record bounds live on ``ProtocolParameter``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .fixed import UNIT, clamp, div, mul

INTENT_FLOW_TRADER = "trader"
INTENT_FLOW_COUNTERPARTY = "counterparty"
_INTENT_FLOWS = frozenset({INTENT_FLOW_TRADER, INTENT_FLOW_COUNTERPARTY})


def _check_int(name: str, v: object, *, lo: int | None = 0, hi: int | None = None) -> None:
    if not isinstance(v, int) or isinstance(v, bool):
        raise TypeError(f"{name} must be an int")
    if lo is not None and v < lo:
        raise ValueError(f"{name} must be >= {lo}: {v}")
    if hi is not None and v > hi:
        raise ValueError(f"{name} must be <= {hi}: {v}")


@dataclass(frozen=True)
class FeeCurve:
    """Trading fee curve for one side (maker or taker)."""

    linear_fee: int = 0
    proportional_fee: int = 0
    adiabatic_fee: int = 0
    scale: int = UNIT

    def __post_init__(self) -> None:
        for name, v in (
            ("linear_fee", self.linear_fee),
            ("proportional_fee", self.proportional_fee),
            ("adiabatic_fee", self.adiabatic_fee),
        ):
            _check_int(name, v)
        _check_int("scale", self.scale, lo=1)


@dataclass(frozen=True)
class UtilizationCurve:
    """Piecewise-linear interest rate curve over utilization in ``[0, UNIT]``."""

    min_rate: int = 0
    max_rate: int = 0
    target_rate: int = 0
    target_utilization: int = 0

    def __post_init__(self) -> None:
        for name, v in (
            ("min_rate", self.min_rate),
            ("max_rate", self.max_rate),
            ("target_rate", self.target_rate),
        ):
            _check_int(name, v)
        _check_int("target_utilization", self.target_utilization, hi=UNIT)

    def compute(self, utilization: int) -> int:
        """Annualized rate at ``utilization`` (clamped to ``[0, UNIT]``)."""
        u = clamp(utilization, 0, UNIT)
        if u <= self.target_utilization:
            if self.target_utilization == 0:
                return self.target_rate
            return self.min_rate + mul(
                self.target_rate - self.min_rate, div(u, self.target_utilization)
            )
        span = UNIT - self.target_utilization
        return self.target_rate + mul(
            self.max_rate - self.target_rate, div(u - self.target_utilization, span)
        )


@dataclass(frozen=True)
class PController:
    """Funding P-controller: ``value' = clamp(value + k * skew * dt, min_value, max_value)``."""

    k: int = 0
    min_value: int = 0
    max_value: int = 0

    def __post_init__(self) -> None:
        _check_int("k", self.k)
        _check_int("min_value", self.min_value, lo=None)
        _check_int("max_value", self.max_value, lo=None)
        if self.min_value > self.max_value:
            raise ValueError("min_value must be <= max_value")


@dataclass(frozen=True)
class RiskParameter:
    margin: int = UNIT // 10
    maintenance: int = UNIT // 20
    taker_fee: FeeCurve = field(default_factory=FeeCurve)
    maker_fee: FeeCurve = field(default_factory=FeeCurve)
    maker_limit: int = 1_000_000 * UNIT
    efficiency_limit: int = UNIT // 2
    liquidation_fee: int = 0
    utilization_curve: UtilizationCurve = field(default_factory=UtilizationCurve)
    p_controller: PController = field(default_factory=PController)
    min_margin: int = 0
    min_maintenance: int = 0
    stale_after: int = 7200
    maker_receive_only: bool = False

    def __post_init__(self) -> None:
        for name, v in (
            ("margin", self.margin),
            ("maintenance", self.maintenance),
            ("maker_limit", self.maker_limit),
            ("efficiency_limit", self.efficiency_limit),
            ("liquidation_fee", self.liquidation_fee),
            ("min_margin", self.min_margin),
            ("min_maintenance", self.min_maintenance),
            ("stale_after", self.stale_after),
        ):
            _check_int(name, v)
        if not isinstance(self.taker_fee, FeeCurve) or not isinstance(self.maker_fee, FeeCurve):
            raise TypeError("taker_fee/maker_fee must be FeeCurve")
        if self.maker_fee.adiabatic_fee != 0:
            raise ValueError("maker_fee.adiabatic_fee must be 0 (adiabatic fees are taker-only)")
        if self.maintenance == 0:
            raise ValueError("maintenance must be positive")
        if self.margin < self.maintenance:
            raise ValueError("margin must be >= maintenance")
        if self.min_margin < self.min_maintenance:
            raise ValueError("min_margin must be >= min_maintenance")
        if self.efficiency_limit == 0:
            raise ValueError("efficiency_limit must be positive")


@dataclass(frozen=True)
class MarketParameter:
    funding_fee: int = 0
    interest_fee: int = 0
    risk_fee: int = 0
    maker_fee: int = 0
    taker_fee: int = 0
    # protocol-side share of the trade fee left after referral; the rest goes to makers
    position_fee: int = UNIT
    max_pending_global: int = 8
    max_pending_local: int = 8
    max_price_deviation: int = UNIT // 10
    closed: bool = False
    settle: bool = False
    intent_fee_exclusions: tuple[str, ...] = (INTENT_FLOW_COUNTERPARTY,)

    def __post_init__(self) -> None:
        for name, v in (
            ("funding_fee", self.funding_fee),
            ("interest_fee", self.interest_fee),
            ("risk_fee", self.risk_fee),
            ("position_fee", self.position_fee),
        ):
            _check_int(name, v, hi=UNIT)
        for name, v in (
            ("maker_fee", self.maker_fee),
            ("taker_fee", self.taker_fee),
            ("max_price_deviation", self.max_price_deviation),
        ):
            _check_int(name, v)
        _check_int("max_pending_global", self.max_pending_global, lo=1)
        _check_int("max_pending_local", self.max_pending_local, lo=1)
        for flow in self.intent_fee_exclusions:
            if flow not in _INTENT_FLOWS:
                raise ValueError(f"unknown intent flow: {flow!r}")

    def charges_trade_fee(self, flow: str) -> bool:
        return flow not in self.intent_fee_exclusions


@dataclass(frozen=True)
class ProtocolParameter:
    """Protocol-wide bounds for risk and market parameters."""

    max_fee: int = UNIT
    max_liquidation_fee: int = 10_000 * UNIT
    max_cut: int = UNIT
    max_rate: int = 100 * UNIT
    min_maintenance: int = 0
    min_efficiency: int = 0
    referral_fee: int = 0
    min_scale: int = 1
    max_stale_after: int = 86_400

    def __post_init__(self) -> None:
        for name, v in (
            ("max_fee", self.max_fee),
            ("max_liquidation_fee", self.max_liquidation_fee),
            ("max_cut", self.max_cut),
            ("max_rate", self.max_rate),
            ("min_maintenance", self.min_maintenance),
            ("min_efficiency", self.min_efficiency),
            ("min_scale", self.min_scale),
            ("max_stale_after", self.max_stale_after),
        ):
            _check_int(name, v)
        _check_int("referral_fee", self.referral_fee, hi=UNIT)

    def validate_risk(self, risk: RiskParameter) -> None:
        for curve_name, curve in (("taker_fee", risk.taker_fee), ("maker_fee", risk.maker_fee)):
            for name in ("linear_fee", "proportional_fee", "adiabatic_fee"):
                if getattr(curve, name) > self.max_fee:
                    raise ValueError(f"{curve_name}.{name} exceeds max_fee")
            if curve.scale < self.min_scale:
                raise ValueError(f"{curve_name}.scale below min_scale")
        uc = risk.utilization_curve
        for name in ("min_rate", "max_rate", "target_rate"):
            if getattr(uc, name) > self.max_rate:
                raise ValueError(f"utilization_curve.{name} exceeds max_rate")
        if risk.maintenance < self.min_maintenance:
            raise ValueError("maintenance below protocol min_maintenance")
        if risk.efficiency_limit < self.min_efficiency:
            raise ValueError("efficiency_limit below protocol min_efficiency")
        if risk.liquidation_fee > self.max_liquidation_fee:
            raise ValueError("liquidation_fee exceeds max_liquidation_fee")
        if risk.stale_after > self.max_stale_after:
            raise ValueError("stale_after exceeds max_stale_after")

    def validate_market(self, market: MarketParameter) -> None:
        for name in ("funding_fee", "interest_fee", "risk_fee", "position_fee"):
            if getattr(market, name) > self.max_cut:
                raise ValueError(f"{name} exceeds max_cut")
        for name in ("maker_fee", "taker_fee"):
            if getattr(market, name) > self.max_fee:
                raise ValueError(f"{name} exceeds max_fee")
