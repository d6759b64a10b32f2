"""
Core settlement and accounting engine.

Pure, deterministic, integer-only: fixed-point math, immutable records,
parameter validation, accrual math, version/checkpoint accumulation and the
typed error taxonomy. ``perpengine.core.market.Market`` is the public
settlement surface.
"""

from .errors import MarketError, MarketInvariantError, MarketStateError, MarketValidationError, VerifierError
from .fixed import UNIT, format_fixed, parse_fixed
from .params import FeeCurve, MarketParameter, PController, ProtocolParameter, RiskParameter, UtilizationCurve
from .records import Checkpoint, Global, Guarantee, Local, OracleReceipt, OracleVersion, Order, Position, Version

__all__ = [
    "UNIT",
    "parse_fixed",
    "format_fixed",
    "FeeCurve",
    "UtilizationCurve",
    "PController",
    "RiskParameter",
    "MarketParameter",
    "ProtocolParameter",
    "Position",
    "Order",
    "Guarantee",
    "Checkpoint",
    "Global",
    "Local",
    "Version",
    "OracleVersion",
    "OracleReceipt",
    "MarketError",
    "MarketValidationError",
    "MarketStateError",
    "MarketInvariantError",
    "VerifierError",
]
