"""Public settlement surface.

``Market`` ties the engine together: every public call settles the global
aggregate and the accounts it touches, admits the proposed order through the
invariant checker, queues it, and commits.

Calls are atomic. Each one works on a copy of ``MarketState`` (ledgers are
rolled back through savepoints) and collects its external effects (margin
transfers, fee payouts, nonce consumption, oracle requests) in an
``_Effects`` record that is applied only after the new state is committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple, TypeVar

from ..integration.verifier import AccessUpdateBatch, OperatorUpdate, SignerUpdate
from ..state.access import AccessRegistry, Authorization
from ..state.margin import InMemoryMargin
from .errors import (
    MarketError,
    MarketInsufficientCollateralError,
    MarketIntentPriceDeviationError,
    MarketInvalidFillError,
    MarketInvalidIntentFeeError,
    MarketInvalidProtectionError,
    MarketInvalidReferrerError,
    MarketOperatorNotAllowedError,
    VerifierInvalidNonceError,
)
from .fixed import UNIT
from .invariants import UpdateContext, assert_ledger, check_update
from .liquidation import liquidatable, liquidation_order
from .params import (
    INTENT_FLOW_COUNTERPARTY,
    INTENT_FLOW_TRADER,
    MarketParameter,
    ProtocolParameter,
    RiskParameter,
)
from .positions import apply_pending, guarantee_from, maintained, order_from_deltas, price_deviation
from .records import Guarantee, Local, Order, Position
from .settlement import GlobalStep, LocalStep, settle_global, settle_local
from .state import MarketState, initial_state

if TYPE_CHECKING:
    from ..integration.oracle import Oracle
    from ..integration.verifier import Common, Fill, Intent, Take, Verifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class MarketConfig:
    """Static market configuration.

    ``beneficiary`` claims the protocol fee, ``coordinator`` the risk fee and
    ``oracle_beneficiary`` the oracle fee.
    """

    market_id: str
    risk: RiskParameter = field(default_factory=RiskParameter)
    market: MarketParameter = field(default_factory=MarketParameter)
    protocol: ProtocolParameter = field(default_factory=ProtocolParameter)
    beneficiary: str = ""
    coordinator: str = ""
    oracle_beneficiary: str = ""
    check_invariants: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.market_id, str) or not self.market_id:
            raise ValueError("market_id must be a non-empty str")
        self.protocol.validate_risk(self.risk)
        self.protocol.validate_market(self.market)


@dataclass
class _Effects:
    isolations: List[Tuple[str, int]] = field(default_factory=list)
    collateral: Dict[str, int] = field(default_factory=dict)
    claims: List[Tuple[str, int]] = field(default_factory=list)
    nonces: List[Common] = field(default_factory=list)
    requests: List[str] = field(default_factory=list)

    def add_collateral(self, account: str, steps: List[LocalStep]) -> None:
        delta = sum(s.checkpoint.collateral for s in steps)
        if delta:
            self.collateral[account] = self.collateral.get(account, 0) + delta

    def add_nonce(self, common: Common) -> None:
        if any(c.account == common.account and c.nonce == common.nonce for c in self.nonces):
            raise VerifierInvalidNonceError(f"nonce {common.nonce} used twice by {common.account!r}")
        self.nonces.append(common)


@dataclass(frozen=True)
class SettleResult:
    account: str
    global_steps: Tuple[GlobalStep, ...]
    local_steps: Tuple[LocalStep, ...]
    position: Position
    collateral: int
    maintained: bool


@dataclass(frozen=True)
class UpdateResult:
    account: str
    order_id: int
    order: Order
    guarantee: Guarantee
    local: Local


class Market:
    def __init__(
        self,
        config: MarketConfig,
        *,
        oracle: Oracle,
        margin: Optional[InMemoryMargin] = None,
        verifier: Optional[Verifier] = None,
        access: Optional[AccessRegistry] = None,
        state: Optional[MarketState] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.config = config
        self.oracle = oracle
        self.margin = margin if margin is not None else InMemoryMargin()
        self.verifier = verifier
        if access is None:
            access = getattr(verifier, "access", None)
        if access is None:
            access = AccessRegistry(default_referral_rate=config.protocol.referral_fee)
        self.access = access
        self.state = state if state is not None else initial_state()
        self._clock = clock if clock is not None else oracle.current

    # -- properties -----------------------------------------------------------

    @property
    def market_id(self) -> str:
        return self.config.market_id

    @property
    def risk(self) -> RiskParameter:
        return self.config.risk

    @property
    def parameter(self) -> MarketParameter:
        return self.config.market

    def update_parameter(
        self, *, risk: Optional[RiskParameter] = None, market: Optional[MarketParameter] = None
    ) -> None:
        """Replace risk and/or market parameters (validated against protocol bounds)."""
        self.config = replace(
            self.config,
            risk=risk if risk is not None else self.config.risk,
            market=market if market is not None else self.config.market,
        )

    # -- transaction ----------------------------------------------------------

    def _transact(self, name: str, fn: Callable[[MarketState, _Effects], T]) -> T:
        working = self.state.copy()
        savepoint = working.savepoint()
        effects = _Effects()
        try:
            result = fn(working, effects)
            if self.config.check_invariants:
                assert_ledger(working)
            # margin transfers can still fail; rehearse them before committing
            self._apply_margin(self.margin.copy(), effects)
        except MarketError as exc:
            working.rollback(savepoint)
            logger.info("%s rejected: %s (%s)", name, exc.code, exc)
            raise
        except BaseException:
            working.rollback(savepoint)
            raise
        self.state = working
        self._apply(effects)
        return result

    def _apply_margin(self, margin: InMemoryMargin, effects: _Effects) -> None:
        # settlement deltas land before withdrawals that may depend on them
        for account, delta in effects.collateral.items():
            margin.update_collateral(account, self.market_id, delta)
        for account, amount in effects.isolations:
            margin.isolate(account, self.market_id, amount)
        for account, amount in effects.claims:
            margin.claim(account, amount)

    def _apply(self, effects: _Effects) -> None:
        self._apply_margin(self.margin, effects)
        if effects.nonces and self.verifier is not None:
            for common in effects.nonces:
                self.verifier.consume(common)
        for account in effects.requests:
            self.oracle.request(account)

    # -- internals ------------------------------------------------------------

    def _settle(self, working: MarketState, effects: _Effects, account: str) -> Tuple[List[GlobalStep], List[LocalStep]]:
        global_steps = settle_global(working, self.oracle, self.risk, self.parameter)
        local_steps = settle_local(working, account, self.risk)
        effects.add_collateral(account, local_steps)
        return global_steps, local_steps

    def _require_verifier(self) -> Verifier:
        if self.verifier is None:
            raise RuntimeError("market has no verifier configured")
        return self.verifier

    def _authorize(self, account: str, sender: Optional[str], referrer: str = "") -> Authorization:
        return self.access.authorize(account, sender if sender is not None else account, referrer=referrer)

    def _signed(self, referrer: str = "") -> Authorization:
        return Authorization(is_signer=True, referral_rate=self.access.referral_rate(referrer))

    def _pending_position(self, working: MarketState, account: str) -> Position:
        return apply_pending(working.position(account), working.pending_orders(account))

    def _admit(
        self,
        working: MarketState,
        effects: _Effects,
        *,
        account: str,
        order: Order,
        guarantee: Guarantee,
        collateral_delta: int,
        auth: Authorization,
        order_referrer: str = "",
        guarantee_referrer: str = "",
        liquidator: str = "",
        protect: bool = False,
        collateralization: int = 0,
    ) -> UpdateResult:
        ts = self.oracle.current()
        local = working.local(account)
        key = (account, local.current_id)
        current = working.orders.get(key)
        same_bucket = local.current_id > local.latest_id and current is not None and current.timestamp == ts

        g = working.global_
        g_current = working.global_orders.get(g.current_id)
        g_same_bucket = g.current_id > g.latest_id and g_current is not None and g_current.timestamp == ts

        if order.is_empty and collateral_delta == 0:
            return UpdateResult(account, local.current_id, order, guarantee, local)

        if same_bucket:
            next_local = local
            merged = current.add(order)
            merged_guarantee = working.guarantees.get(key, Guarantee()).add(guarantee)
            for table, referrer in (
                (working.order_referrers, order_referrer),
                (working.guarantee_referrers, guarantee_referrer),
            ):
                existing = table.get(key, "")
                if referrer and existing and referrer != existing:
                    raise MarketInvalidReferrerError(f"referrer {referrer!r} conflicts with {existing!r}")
        else:
            next_local = replace(local, current_id=local.current_id + 1)
            key = (account, next_local.current_id)
            merged = order
            merged_guarantee = guarantee
        if g_same_bucket:
            next_global = g
            g_merged = g_current.add(order)
            g_merged_guarantee = working.global_guarantees.get(g.current_id, Guarantee()).add(guarantee)
        else:
            next_global = replace(g, current_id=g.current_id + 1)
            g_merged = order
            g_merged_guarantee = guarantee

        if collateral_delta > 0:
            pending_deposit = sum(a for acct, a in effects.isolations if acct == account and a > 0)
            available = self.margin.cross_margin_balance(account) - pending_deposit
            if available < collateral_delta:
                raise MarketInsufficientCollateralError(
                    f"cross-margin balance {available} below deposit {collateral_delta}"
                )

        pending_orders = working.pending_orders(account)
        ctx = UpdateContext(
            account=account,
            order=order,
            collateral_delta=collateral_delta,
            auth=auth,
            risk=self.risk,
            market=self.parameter,
            settled=working.position(account),
            pending=apply_pending(working.position(account), pending_orders),
            global_pending=apply_pending(working.global_position, working.pending_global_orders()),
            local=next_local,
            global_=next_global,
            collateral=working.collateral.get(account, 0) + collateral_delta,
            price=working.global_.latest_price,
            current_timestamp=ts,
            latest_timestamp=self.oracle.latest().timestamp,
            protected_pending=any(o.protection > 0 for o in pending_orders),
            protect=protect,
            collateralization=collateralization,
        )
        check_update(ctx)

        working.orders[key] = merged
        if not merged_guarantee.is_empty:
            working.guarantees[key] = merged_guarantee
        if order_referrer:
            working.order_referrers[key] = order_referrer
        if guarantee_referrer:
            working.guarantee_referrers[key] = guarantee_referrer
        if protect:
            working.liquidators[key] = liquidator
        working.locals_[account] = next_local
        working.global_orders[next_global.current_id] = g_merged
        if not g_merged_guarantee.is_empty:
            working.global_guarantees[next_global.current_id] = g_merged_guarantee
        working.global_ = next_global
        if collateral_delta:
            working.collateral[account] = ctx.collateral
            effects.isolations.append((account, collateral_delta))
        if not order.is_empty:
            effects.requests.append(account)

        logger.debug("queued order %s#%d at %d: %s", account, next_local.current_id, ts, order)
        return UpdateResult(account, next_local.current_id, merged, merged_guarantee, next_local)

    # -- public surface -------------------------------------------------------

    def settle(self, account: str) -> SettleResult:
        """Settle the global aggregate and ``account`` up to the latest oracle version."""

        def run(working: MarketState, effects: _Effects) -> SettleResult:
            global_steps, local_steps = self._settle(working, effects, account)
            position = working.position(account)
            collateral = working.collateral.get(account, 0)
            ok = maintained(position, working.global_.latest_price, self.risk, collateral)
            if not ok:
                logger.info("%s below maintenance after settlement", account)
            return SettleResult(
                account=account,
                global_steps=tuple(global_steps),
                local_steps=tuple(local_steps),
                position=position,
                collateral=collateral,
                maintained=ok,
            )

        return self._transact("settle", run)

    def update(
        self,
        account: str,
        maker_delta: int = 0,
        taker_delta: int = 0,
        collateral_delta: int = 0,
        referrer: str = "",
        *,
        sender: Optional[str] = None,
    ) -> UpdateResult:
        """Queue signed position deltas and a collateral change for ``account``."""

        def run(working: MarketState, effects: _Effects) -> UpdateResult:
            self._settle(working, effects, account)
            auth = self._authorize(account, sender, referrer)
            order = order_from_deltas(
                timestamp=self.oracle.current(),
                position=self._pending_position(working, account),
                maker_delta=maker_delta,
                taker_delta=taker_delta,
                collateral=collateral_delta,
                referral_fee=auth.referral_rate,
            )
            return self._admit(
                working,
                effects,
                account=account,
                order=order,
                guarantee=Guarantee(),
                collateral_delta=collateral_delta,
                auth=auth,
                order_referrer=referrer,
            )

        return self._transact("update", run)

    def update_take(self, take: Take, signature: str) -> UpdateResult:
        """Queue a signed taker update (``take.amount`` > 0 is long)."""
        verifier = self._require_verifier()

        def run(working: MarketState, effects: _Effects) -> UpdateResult:
            common = verifier.verify(take, signature, now=self._clock(), consume=False)
            effects.add_nonce(common)
            account = common.account
            self._settle(working, effects, account)
            auth = self._signed(take.referrer)
            order = order_from_deltas(
                timestamp=self.oracle.current(),
                position=self._pending_position(working, account),
                maker_delta=0,
                taker_delta=take.amount,
                referral_fee=auth.referral_rate,
            )
            return self._admit(
                working,
                effects,
                account=account,
                order=order,
                guarantee=Guarantee(),
                collateral_delta=0,
                auth=auth,
                order_referrer=take.referrer,
            )

        return self._transact("update_take", run)

    def update_intent(
        self, account: str, intent: Intent, signature: str, *, sender: Optional[str] = None
    ) -> Tuple[UpdateResult, UpdateResult]:
        """Fill a signed ``intent`` with ``account`` as the counterparty."""
        verifier = self._require_verifier()

        def run(working: MarketState, effects: _Effects) -> Tuple[UpdateResult, UpdateResult]:
            common = verifier.verify(intent, signature, now=self._clock(), consume=False)
            effects.add_nonce(common)
            return self._fill_intent(working, effects, intent, account, self._authorize(account, sender))

        return self._transact("update_intent", run)

    def fill(self, fill: Fill, fill_signature: str, intent_signature: str) -> Tuple[UpdateResult, UpdateResult]:
        """Execute an intent where both the trader and the counterparty signed."""
        verifier = self._require_verifier()

        def run(working: MarketState, effects: _Effects) -> Tuple[UpdateResult, UpdateResult]:
            if fill.intent.common.domain != fill.common.domain:
                raise MarketInvalidFillError("intent and fill target different markets")
            intent_common = verifier.verify(fill.intent, intent_signature, now=self._clock(), consume=False)
            fill_common = verifier.verify(fill, fill_signature, now=self._clock(), consume=False)
            effects.add_nonce(intent_common)
            effects.add_nonce(fill_common)
            return self._fill_intent(working, effects, fill.intent, fill_common.account, self._signed())

        return self._transact("fill", run)

    def _fill_intent(
        self,
        working: MarketState,
        effects: _Effects,
        intent: Intent,
        counterparty: str,
        counterparty_auth: Authorization,
    ) -> Tuple[UpdateResult, UpdateResult]:
        trader = intent.common.account
        if intent.fee > UNIT:
            raise MarketInvalidIntentFeeError(f"intent fee {intent.fee} exceeds 100%")
        if trader == counterparty:
            raise MarketInvalidFillError("trader cannot fill its own intent")

        self._settle(working, effects, trader)
        settle_local_steps = settle_local(working, counterparty, self.risk)
        effects.add_collateral(counterparty, settle_local_steps)

        ts = self.oracle.current()
        market = self.parameter
        trader_order = order_from_deltas(
            timestamp=ts,
            position=self._pending_position(working, trader),
            maker_delta=0,
            taker_delta=intent.amount,
            referral_fee=intent.fee,
        )
        trader_guarantee = guarantee_from(
            trader_order,
            intent.price,
            self.access.referral_rate(intent.solver),
            market.charges_trade_fee(INTENT_FLOW_TRADER),
        )
        counter_order = order_from_deltas(
            timestamp=ts,
            position=self._pending_position(working, counterparty),
            maker_delta=0,
            taker_delta=-intent.amount,
        )
        counter_guarantee = guarantee_from(
            counter_order, intent.price, 0, market.charges_trade_fee(INTENT_FLOW_COUNTERPARTY)
        )

        price = working.global_.latest_price
        if price != 0 and price_deviation(trader_guarantee, price) > market.max_price_deviation:
            raise MarketIntentPriceDeviationError(
                f"intent price {intent.price} deviates from {price} by more than {market.max_price_deviation}"
            )

        trader_result = self._admit(
            working,
            effects,
            account=trader,
            order=trader_order,
            guarantee=trader_guarantee,
            collateral_delta=0,
            auth=self._signed(),
            order_referrer=intent.originator,
            guarantee_referrer=intent.solver,
            collateralization=intent.collateralization,
        )
        counter_result = self._admit(
            working,
            effects,
            account=counterparty,
            order=counter_order,
            guarantee=counter_guarantee,
            collateral_delta=0,
            auth=counterparty_auth,
        )
        logger.info(
            "intent fill %s <- %s: amount=%d price=%d", trader, counterparty, intent.amount, intent.price
        )
        return trader_result, counter_result

    def close(
        self,
        account: str,
        try_protect: bool = False,
        referrer: str = "",
        *,
        sender: Optional[str] = None,
    ) -> UpdateResult:
        """Close every unit ``account`` holds; ``try_protect`` liquidates it."""

        def run(working: MarketState, effects: _Effects) -> UpdateResult:
            self._settle(working, effects, account)
            pending = self._pending_position(working, account)
            ts = self.oracle.current()
            if try_protect:
                position = working.position(account)
                collateral = working.collateral.get(account, 0)
                if not liquidatable(position, working.global_.latest_price, self.risk, collateral):
                    raise MarketInvalidProtectionError(f"{account!r} meets maintenance")
                liquidator = sender if sender is not None else account
                order, guarantee = liquidation_order(timestamp=ts, position=pending)
                logger.info("liquidating %s by %s at %d", account, liquidator, ts)
                return self._admit(
                    working,
                    effects,
                    account=account,
                    order=order,
                    guarantee=guarantee,
                    collateral_delta=0,
                    auth=self._authorize(account, liquidator),
                    liquidator=liquidator,
                    protect=True,
                )
            auth = self._authorize(account, sender, referrer)
            order = order_from_deltas(
                timestamp=ts,
                position=pending,
                maker_delta=-pending.maker,
                taker_delta=pending.short - pending.long,
                referral_fee=auth.referral_rate,
            )
            return self._admit(
                working,
                effects,
                account=account,
                order=order,
                guarantee=Guarantee(),
                collateral_delta=0,
                auth=auth,
                order_referrer=referrer,
            )

        return self._transact("close", run)

    def claim_fee(self, account: str, *, sender: Optional[str] = None) -> int:
        """Pay out ``account``'s claimable balance and any fee bucket it is beneficiary of."""

        def run(working: MarketState, effects: _Effects) -> int:
            if not self._authorize(account, sender).allowed:
                raise MarketOperatorNotAllowedError(f"{sender!r} may not claim for {account!r}")
            local = working.local(account)
            amount = local.claimable
            if amount:
                working.locals_[account] = replace(local, claimable=0)
            g = working.global_
            if account == self.config.beneficiary and g.protocol_fee:
                amount += g.protocol_fee
                g = replace(g, protocol_fee=0)
            if account == self.config.coordinator and g.risk_fee:
                amount += g.risk_fee
                g = replace(g, risk_fee=0)
            if account == self.config.oracle_beneficiary and g.oracle_fee:
                amount += g.oracle_fee
                g = replace(g, oracle_fee=0)
            working.global_ = g
            if amount:
                effects.claims.append((account, amount))
                logger.info("%s claimed %d", account, amount)
            return amount

        return self._transact("claim_fee", run)

    # -- access ---------------------------------------------------------------

    def update_operator(self, account: str, operator: str, approved: bool) -> None:
        self.access.set_operator(account, operator, approved)

    def update_signer(self, account: str, signer: str, approved: bool) -> None:
        self.access.set_signer(account, signer, approved)

    def update_extension(self, extension: str, approved: bool) -> None:
        self.access.set_extension(extension, approved)

    def update_referral_rate(self, referrer: str, rate: Optional[int]) -> None:
        self.access.set_referral_rate(referrer, rate)

    def apply_access_update(
        self, message: OperatorUpdate | SignerUpdate | AccessUpdateBatch, signature: str
    ) -> None:
        """Apply a signed operator, signer or batch access update."""
        verifier = self._require_verifier()
        common = verifier.verify(message, signature, now=self._clock())
        account = common.account
        if isinstance(message, OperatorUpdate):
            self.access.set_operator(account, message.access.accessor, message.access.approved)
        elif isinstance(message, SignerUpdate):
            self.access.set_signer(account, message.access.accessor, message.access.approved)
        elif isinstance(message, AccessUpdateBatch):
            for update in message.operators:
                self.access.set_operator(account, update.accessor, update.approved)
            for update in message.signers:
                self.access.set_signer(account, update.accessor, update.approved)
        else:
            raise TypeError(f"unsupported access update: {type(message).__name__}")

    # -- views ----------------------------------------------------------------

    def position(self, account: str) -> Position:
        return self.state.position(account)

    def pending_position(self, account: str) -> Position:
        return self._pending_position(self.state, account)

    def collateral(self, account: str) -> int:
        return self.state.collateral.get(account, 0)

    def local(self, account: str) -> Local:
        return self.state.local(account)
