"""
Fee splitting kernels (deterministic, integer-only).

The pattern here is **dust-to-protocol**: every split is computed by
truncation and the rounding remainder is assigned to the protocol bucket, so
the parts always sum exactly to the input.
"""

from __future__ import annotations

from dataclasses import dataclass

from .fixed import UNIT, mul


@dataclass(frozen=True)
class FeeSplit:
    oracle: int = 0
    risk: int = 0
    protocol: int = 0
    maker: int = 0

    def __post_init__(self) -> None:
        for name, v in (
            ("oracle", self.oracle),
            ("risk", self.risk),
            ("protocol", self.protocol),
            ("maker", self.maker),
        ):
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if v < 0:
                raise ValueError(f"{name} must be non-negative: {v}")

    @property
    def total(self) -> int:
        return self.oracle + self.risk + self.protocol + self.maker

    def add(self, other: FeeSplit) -> FeeSplit:
        return FeeSplit(
            oracle=self.oracle + other.oracle,
            risk=self.risk + other.risk,
            protocol=self.protocol + other.protocol,
            maker=self.maker + other.maker,
        )


def split_fee(
    amount: int,
    *,
    oracle_fee: int,
    risk_fee: int,
    position_fee: int = UNIT,
) -> FeeSplit:
    """
    Split `amount` into (maker, oracle, risk, protocol).

    - `position_fee` is the protocol-side share; the rest is the maker share,
    - oracle takes `oracle_fee` of the protocol side,
    - risk takes `risk_fee` of what is left after the oracle cut,
    - protocol takes the remainder (including all truncation dust).
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise ValueError(f"amount must be a non-negative int, got {amount}")
    for name, rate in (("oracle_fee", oracle_fee), ("risk_fee", risk_fee), ("position_fee", position_fee)):
        if not (0 <= rate <= UNIT):
            raise ValueError(f"{name} must be in [0, {UNIT}]: {rate}")

    protocol_side = mul(amount, position_fee)
    maker = amount - protocol_side
    oracle = mul(protocol_side, oracle_fee)
    risk = mul(protocol_side - oracle, risk_fee)
    protocol = protocol_side - oracle - risk
    out = FeeSplit(oracle=oracle, risk=risk, protocol=protocol, maker=maker)
    if out.total != amount:
        raise AssertionError("fee split does not sum to input")
    return out


def split_cut(amount: int, cut: int) -> tuple[int, int]:
    """Split `amount` into (cut, remainder) with the cut truncated toward zero."""
    fee = mul(amount, cut)
    return fee, amount - fee
