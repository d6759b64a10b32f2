"""Market state container.

``MarketState`` groups every record the settlement engine reads and writes.
Small mutable tables (pending orders, locals, collateral) are copied by
``copy()``; the append-only ledgers are shared and rolled back through
savepoints instead (see ``perpengine.state.ledger``).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Tuple

from ..state.ledger import GLOBAL_SCOPE, TimestampLedger
from .records import Checkpoint, Global, Guarantee, Local, Order, Position, Version

PendingKey = Tuple[str, int]


@dataclass
class MarketState:
    global_: Global = field(default_factory=Global)
    global_position: Position = field(default_factory=Position)
    global_orders: Dict[int, Order] = field(default_factory=dict)
    global_guarantees: Dict[int, Guarantee] = field(default_factory=dict)

    locals_: Dict[str, Local] = field(default_factory=dict)
    positions: Dict[str, Position] = field(default_factory=dict)
    orders: Dict[PendingKey, Order] = field(default_factory=dict)
    guarantees: Dict[PendingKey, Guarantee] = field(default_factory=dict)
    order_referrers: Dict[PendingKey, str] = field(default_factory=dict)
    guarantee_referrers: Dict[PendingKey, str] = field(default_factory=dict)
    liquidators: Dict[PendingKey, str] = field(default_factory=dict)
    # ledger-internal collateral per account; mirrored into the Margin collaborator on commit
    collateral: Dict[str, int] = field(default_factory=dict)

    versions: TimestampLedger[Version] = field(default_factory=TimestampLedger)
    checkpoints: TimestampLedger[Checkpoint] = field(default_factory=TimestampLedger)
    position_history: TimestampLedger[Position] = field(default_factory=TimestampLedger)

    def copy(self) -> MarketState:
        return replace(
            self,
            global_orders=dict(self.global_orders),
            global_guarantees=dict(self.global_guarantees),
            locals_=dict(self.locals_),
            positions=dict(self.positions),
            orders=dict(self.orders),
            guarantees=dict(self.guarantees),
            order_referrers=dict(self.order_referrers),
            guarantee_referrers=dict(self.guarantee_referrers),
            liquidators=dict(self.liquidators),
            collateral=dict(self.collateral),
        )

    def savepoint(self) -> tuple[int, int, int]:
        return (
            self.versions.savepoint(),
            self.checkpoints.savepoint(),
            self.position_history.savepoint(),
        )

    def rollback(self, savepoint: tuple[int, int, int]) -> None:
        self.versions.rollback(savepoint[0])
        self.checkpoints.rollback(savepoint[1])
        self.position_history.rollback(savepoint[2])

    # -- accessors ------------------------------------------------------------

    def local(self, account: str) -> Local:
        return self.locals_.get(account, Local())

    def position(self, account: str) -> Position:
        return self.positions.get(account, Position())

    def latest_version(self) -> Version | None:
        return self.versions.latest(GLOBAL_SCOPE)

    def version_at(self, timestamp: int) -> Version | None:
        return self.versions.get(GLOBAL_SCOPE, timestamp)

    def pending_orders(self, account: str) -> list[Order]:
        local = self.local(account)
        return [
            self.orders[(account, i)]
            for i in range(local.latest_id + 1, local.current_id + 1)
            if (account, i) in self.orders
        ]

    def pending_global_orders(self) -> list[Order]:
        g = self.global_
        return [self.global_orders[i] for i in range(g.latest_id + 1, g.current_id + 1) if i in self.global_orders]

    def fully_settled(self) -> bool:
        """True once every open position sits at the latest global timestamp
        and no pending order is waiting on a version already written."""
        ts = self.global_position.timestamp
        if any(not p.empty and p.timestamp != ts for p in self.positions.values()):
            return False
        return not any(o.timestamp <= ts for o in self.orders.values())


def initial_state() -> MarketState:
    """Return an empty market state (no versions, no accounts)."""
    return MarketState()

