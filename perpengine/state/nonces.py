"""
Nonce table for replay protection (v1).

Nonces are unordered: each ``(account, nonce)`` pair can be used once, in any
order. Accounts can also cancel a whole ``group`` of messages at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Set


def _check_u64(name: str, v: object) -> int:
    if not isinstance(v, int) or isinstance(v, bool) or v < 0:
        raise TypeError(f"{name} must be a non-negative int")
    if v > 0xFFFFFFFFFFFFFFFF:
        raise TypeError(f"{name} must fit in u64")
    return int(v)


@dataclass
class NonceTable:
    """
    Mutable tables: account -> used nonces, account -> cancelled groups.

    A small, explicit state table with deterministic iteration helpers.
    """

    _used: Dict[str, Set[int]] = field(default_factory=dict)
    _cancelled_groups: Dict[str, Set[int]] = field(default_factory=dict)

    def is_used(self, account: str, nonce: int) -> bool:
        return _check_u64("nonce", nonce) in self._used.get(account, ())

    def use(self, account: str, nonce: int) -> None:
        """Mark ``nonce`` as consumed; raises if it was already used."""
        n = _check_u64("nonce", nonce)
        used = self._used.setdefault(account, set())
        if n in used:
            raise ValueError(f"nonce {n} already used for {account!r}")
        used.add(n)

    def is_group_cancelled(self, account: str, group: int) -> bool:
        return _check_u64("group", group) in self._cancelled_groups.get(account, ())

    def cancel_group(self, account: str, group: int) -> None:
        self._cancelled_groups.setdefault(account, set()).add(_check_u64("group", group))

    def copy(self) -> NonceTable:
        return NonceTable(
            _used={a: set(s) for a, s in self._used.items()},
            _cancelled_groups={a: set(s) for a, s in self._cancelled_groups.items()},
        )

    def get_all(self) -> Mapping[str, frozenset[int]]:
        # Return a frozen copy to avoid accidental mutation during iteration.
        return {a: frozenset(s) for a, s in sorted(self._used.items())}
