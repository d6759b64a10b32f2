"""
Market configuration loading.

A market is described by a YAML mapping; fixed-point fields are written as
decimal strings (``"0.05"``) or whole-unit ints and parsed with
``parse_fixed``. Second-denominated and count fields stay plain ints.

Environment toggles:
- ``PERPENGINE_CHECK_INVARIANTS`` (default on): run ledger invariant checks
  after every committed transition.
"""

from __future__ import annotations

import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..core.fixed import parse_fixed
from ..core.market import MarketConfig
from ..core.params import (
    FeeCurve,
    MarketParameter,
    PController,
    ProtocolParameter,
    RiskParameter,
    UtilizationCurve,
)

# fields that are not fixed-point decimals
_PLAIN_INT_FIELDS = frozenset(
    {
        "stale_after",
        "max_stale_after",
        "max_pending_global",
        "max_pending_local",
        "min_scale",
    }
)

_NESTED = {
    "taker_fee": FeeCurve,
    "maker_fee": FeeCurve,
    "utilization_curve": UtilizationCurve,
    "p_controller": PController,
}


def _bool_env(name: str, *, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return bool(default)
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return bool(default)


def check_invariants_enabled() -> bool:
    return _bool_env("PERPENGINE_CHECK_INVARIANTS", default=True)


def _parse_value(name: str, raw: Any) -> Any:
    if isinstance(raw, bool):
        return raw
    if name in _PLAIN_INT_FIELDS:
        if not isinstance(raw, int):
            raise TypeError(f"{name} must be an int")
        return raw
    if isinstance(raw, float):
        raise TypeError(f"{name} must be a decimal string, not a float")
    return parse_fixed(raw)


def _build(cls: type, data: Any, *, section: str) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise TypeError(f"{section} must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown {section} fields: {', '.join(unknown)}")
    kwargs: dict[str, Any] = {}
    for name, raw in data.items():
        if name in _NESTED:
            kwargs[name] = _build(_NESTED[name], raw, section=f"{section}.{name}")
        elif name == "intent_fee_exclusions":
            if not isinstance(raw, (list, tuple)):
                raise TypeError("intent_fee_exclusions must be a list")
            kwargs[name] = tuple(str(v) for v in raw)
        else:
            kwargs[name] = _parse_value(name, raw)
    return cls(**kwargs)


def market_config_from_dict(data: Mapping[str, Any]) -> MarketConfig:
    if not isinstance(data, Mapping):
        raise TypeError("market config must be a mapping")
    allowed = {"market_id", "beneficiary", "coordinator", "oracle_beneficiary", "risk", "market", "protocol", "check_invariants"}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"unknown market config fields: {', '.join(unknown)}")
    check = data.get("check_invariants")
    return MarketConfig(
        market_id=str(data.get("market_id", "")),
        risk=_build(RiskParameter, data.get("risk"), section="risk"),
        market=_build(MarketParameter, data.get("market"), section="market"),
        protocol=_build(ProtocolParameter, data.get("protocol"), section="protocol"),
        beneficiary=str(data.get("beneficiary", "")),
        coordinator=str(data.get("coordinator", "")),
        oracle_beneficiary=str(data.get("oracle_beneficiary", "")),
        check_invariants=check_invariants_enabled() if check is None else bool(check),
    )


def load_market_config(path: str | Path) -> MarketConfig:
    """Load a ``MarketConfig`` from a YAML file."""
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(obj, Mapping):
        raise TypeError("market config YAML must be a mapping")
    return market_config_from_dict(obj)
