"""
Access registry (v1): operators, signers, extensions and referral rates.

- An **operator** may submit updates on behalf of an account.
- A **signer** may sign messages (intents, fills, takes) for an account.
- An **extension** is a protocol-wide trusted caller, valid for every account.
- Referral rates are looked up per referrer, falling back to the protocol
  default.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from ..core.fixed import UNIT


@dataclass(frozen=True)
class Authorization:
    """Capability set of a sender for one account."""

    is_self: bool = False
    is_operator: bool = False
    is_signer: bool = False
    is_extension: bool = False
    referral_rate: int = 0

    @property
    def allowed(self) -> bool:
        return self.is_self or self.is_operator or self.is_signer or self.is_extension


@dataclass
class AccessRegistry:
    default_referral_rate: int = 0
    _operators: Dict[str, Set[str]] = field(default_factory=dict)
    _signers: Dict[str, Set[str]] = field(default_factory=dict)
    _extensions: Set[str] = field(default_factory=set)
    _referral_rates: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_rate("default_referral_rate", self.default_referral_rate)

    # -- operators / signers ------------------------------------------------

    def set_operator(self, account: str, operator: str, approved: bool) -> None:
        _set_member(self._operators, account, operator, approved)

    def set_signer(self, account: str, signer: str, approved: bool) -> None:
        _set_member(self._signers, account, signer, approved)

    def set_extension(self, extension: str, approved: bool) -> None:
        if approved:
            self._extensions.add(extension)
        else:
            self._extensions.discard(extension)

    def is_operator(self, account: str, operator: str) -> bool:
        return operator in self._operators.get(account, ())

    def is_signer(self, account: str, signer: str) -> bool:
        return signer in self._signers.get(account, ())

    def is_extension(self, sender: str) -> bool:
        return sender in self._extensions

    # -- referrals ------------------------------------------------------------

    def set_referral_rate(self, referrer: str, rate: Optional[int]) -> None:
        """Set a per-referrer override; ``None`` removes it."""
        if rate is None:
            self._referral_rates.pop(referrer, None)
            return
        _check_rate("rate", rate)
        self._referral_rates[referrer] = rate

    def referral_rate(self, referrer: str) -> int:
        if not referrer:
            return 0
        return self._referral_rates.get(referrer, self.default_referral_rate)

    # -- capability check ---------------------------------------------------

    def authorize(
        self, account: str, sender: str, signer: str = "", referrer: str = ""
    ) -> Authorization:
        return Authorization(
            is_self=sender == account,
            is_operator=self.is_operator(account, sender),
            is_signer=bool(signer) and (signer == account or self.is_signer(account, signer)),
            is_extension=self.is_extension(sender),
            referral_rate=self.referral_rate(referrer),
        )

    def copy(self) -> AccessRegistry:
        return AccessRegistry(
            default_referral_rate=self.default_referral_rate,
            _operators={a: set(s) for a, s in self._operators.items()},
            _signers={a: set(s) for a, s in self._signers.items()},
            _extensions=set(self._extensions),
            _referral_rates=dict(self._referral_rates),
        )


def _set_member(table: Dict[str, Set[str]], account: str, member: str, approved: bool) -> None:
    if approved:
        table.setdefault(account, set()).add(member)
    else:
        table.get(account, set()).discard(member)


def _check_rate(name: str, v: object) -> None:
    if not isinstance(v, int) or isinstance(v, bool):
        raise TypeError(f"{name} must be an int")
    if not (0 <= v <= UNIT):
        raise ValueError(f"{name} must be within [0, {UNIT}]")
