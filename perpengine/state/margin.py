"""
In-memory Margin collaborator (v1).

Holds cross-margin balances per account and isolated balances per
``(account, market)``. The settlement engine emits net collateral deltas
through ``update_collateral``; this table is the authoritative balance store.

Isolated balances may go negative (an unresolved shortfall); cross balances
may not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

logger = logging.getLogger(__name__)


class MarginError(ValueError):
    """Insufficient balance or invalid amount."""


def _check_amount(amount: object) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise TypeError("amount must be an int")
    if amount < 0:
        raise MarginError("amount must be non-negative")
    return int(amount)


@dataclass
class InMemoryMargin:
    _cross: Dict[str, int] = field(default_factory=dict)
    _isolated: Dict[Tuple[str, str], int] = field(default_factory=dict)
    _claimed: Dict[str, int] = field(default_factory=dict)

    def deposit(self, account: str, amount: int) -> None:
        amt = _check_amount(amount)
        self._cross[account] = self._cross.get(account, 0) + amt

    def withdraw(self, account: str, amount: int) -> None:
        amt = _check_amount(amount)
        bal = self._cross.get(account, 0)
        if amt > bal:
            raise MarginError(f"insufficient cross-margin balance for {account!r}: {bal} < {amt}")
        self._cross[account] = bal - amt

    def claim(self, account: str, amount: int) -> None:
        """Credit a fee payout to ``account``'s cross-margin balance."""
        amt = _check_amount(amount)
        self._cross[account] = self._cross.get(account, 0) + amt
        self._claimed[account] = self._claimed.get(account, 0) + amt

    def isolate(self, account: str, market: str, amount: int) -> None:
        """Move ``amount`` between cross margin and the isolated balance (signed)."""
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TypeError("amount must be an int")
        if amount > 0:
            self.withdraw(account, amount)
        elif amount < 0:
            iso = self._isolated.get((account, market), 0)
            if -amount > iso:
                raise MarginError(f"insufficient isolated balance for {account!r}: {iso} < {-amount}")
            self.deposit(account, -amount)
        self._isolated[(account, market)] = self._isolated.get((account, market), 0) + amount

    def update_collateral(self, account: str, market: str, delta: int) -> None:
        """Apply a settlement delta to the isolated balance."""
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise TypeError("delta must be an int")
        key = (account, market)
        after = self._isolated.get(key, 0) + delta
        if after < 0:
            logger.warning("isolated balance of %s in %s is negative: %d", account, market, after)
        self._isolated[key] = after

    def isolated_balance(self, account: str, market: str) -> int:
        return self._isolated.get((account, market), 0)

    def cross_margin_balance(self, account: str) -> int:
        return self._cross.get(account, 0)

    def claimed(self, account: str) -> int:
        return self._claimed.get(account, 0)

    def copy(self) -> InMemoryMargin:
        return InMemoryMargin(
            _cross=dict(self._cross), _isolated=dict(self._isolated), _claimed=dict(self._claimed)
        )

    def get_all(self) -> Mapping[str, int]:
        return dict(sorted(self._cross.items()))
