"""
Signed-message verification (BLS12-381, py_ecc ``G2Basic``).

Every signed message embeds a ``Common`` block. A message is authorized when,
in order:

1. ``common.domain`` is the verifier's domain (the market id),
2. ``now < common.expiry``,
3. ``common.nonce`` was not used by ``common.account``,
4. ``common.group`` was not cancelled by ``common.account``,
5. ``common.signer`` is the account itself or a signer it registered,
6. the signature verifies against ``common.signer`` (a 48-byte BLS pubkey)
   over ``sha256(domain_sep("<type>") || canonical_json(message))``.

The nonce is consumed only after every check passed, and only when
``consume=True``; callers that must stay atomic verify first and call
``consume()`` on commit.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Protocol, Tuple, Union

from py_ecc.bls import G2Basic

from ..core.errors import (
    VerifierInvalidDomainError,
    VerifierInvalidExpiryError,
    VerifierInvalidGroupError,
    VerifierInvalidNonceError,
    VerifierInvalidSignatureError,
    VerifierInvalidSignerError,
)
from ..core.fixed import UNIT
from ..state.access import AccessRegistry
from ..state.canonical import hex_to_bytes_fixed, signing_digest
from ..state.nonces import NonceTable

logger = logging.getLogger(__name__)

PUBKEY_BYTES = 48
SIGNATURE_BYTES = 96


def _check_str(name: str, v: object, *, allow_empty: bool = False) -> None:
    if not isinstance(v, str):
        raise TypeError(f"{name} must be a str")
    if not allow_empty and not v:
        raise ValueError(f"{name} must be non-empty")


def _check_int(name: str, v: object, *, lo: int | None = 0) -> None:
    if not isinstance(v, int) or isinstance(v, bool):
        raise TypeError(f"{name} must be an int")
    if lo is not None and v < lo:
        raise ValueError(f"{name} must be >= {lo}")


# -- Messages ------------------------------------------------------------------


@dataclass(frozen=True)
class Common:
    account: str
    signer: str
    domain: str
    nonce: int
    group: int
    expiry: int

    def __post_init__(self) -> None:
        _check_str("account", self.account)
        _check_str("signer", self.signer)
        _check_str("domain", self.domain)
        _check_int("nonce", self.nonce)
        _check_int("group", self.group)
        _check_int("expiry", self.expiry)


@dataclass(frozen=True)
class Intent:
    """Trader's signed offer: take ``amount`` (long > 0) at ``price``.

    ``fee`` is the referral rate on the trader's units, ``originator`` and
    ``solver`` the two referrers sharing it. ``collateralization`` raises the
    trader's margin requirement.
    """

    amount: int
    price: int
    fee: int
    originator: str
    solver: str
    collateralization: int
    common: Common

    def __post_init__(self) -> None:
        _check_int("amount", self.amount, lo=None)
        if self.amount == 0:
            raise ValueError("amount must be non-zero")
        _check_int("price", self.price, lo=1)
        _check_int("fee", self.fee)
        _check_str("originator", self.originator, allow_empty=True)
        _check_str("solver", self.solver, allow_empty=True)
        _check_int("collateralization", self.collateralization)
        if self.collateralization > 100 * UNIT:
            raise ValueError("collateralization out of range")


@dataclass(frozen=True)
class Fill:
    intent: Intent
    common: Common


@dataclass(frozen=True)
class Take:
    amount: int
    referrer: str
    common: Common

    def __post_init__(self) -> None:
        _check_int("amount", self.amount, lo=None)
        _check_str("referrer", self.referrer, allow_empty=True)


@dataclass(frozen=True)
class AccessUpdate:
    accessor: str
    approved: bool

    def __post_init__(self) -> None:
        _check_str("accessor", self.accessor)
        if not isinstance(self.approved, bool):
            raise TypeError("approved must be a bool")


@dataclass(frozen=True)
class OperatorUpdate:
    access: AccessUpdate
    common: Common


@dataclass(frozen=True)
class SignerUpdate:
    access: AccessUpdate
    common: Common


@dataclass(frozen=True)
class AccessUpdateBatch:
    operators: Tuple[AccessUpdate, ...]
    signers: Tuple[AccessUpdate, ...]
    common: Common


@dataclass(frozen=True)
class GroupCancellation:
    group: int
    common: Common


SignedMessage = Union[Common, Intent, Fill, Take, OperatorUpdate, SignerUpdate, AccessUpdateBatch, GroupCancellation]

_LABELS: Dict[type, str] = {
    Common: "common",
    Intent: "intent",
    Fill: "fill",
    Take: "take",
    OperatorUpdate: "operator_update",
    SignerUpdate: "signer_update",
    AccessUpdateBatch: "access_update_batch",
    GroupCancellation: "group_cancellation",
}


def message_label(message: SignedMessage) -> str:
    try:
        return _LABELS[type(message)]
    except KeyError:
        raise TypeError(f"unsupported message type: {type(message).__name__}") from None


def message_to_dict(message: SignedMessage) -> Dict[str, Any]:
    return asdict(message)


def message_digest(message: SignedMessage) -> bytes:
    """The 32-byte digest a signer signs for ``message``."""
    return signing_digest(message_label(message), message_to_dict(message))


def common_of(message: SignedMessage) -> Common:
    return message if isinstance(message, Common) else message.common


# -- Verifier ------------------------------------------------------------------


class Verifier(Protocol):
    def verify(self, message: SignedMessage, signature: str, *, now: int, consume: bool = True) -> Common: ...

    def consume(self, common: Common) -> None: ...


@dataclass
class BlsVerifier:
    domain: str
    access: AccessRegistry = field(default_factory=AccessRegistry)
    nonces: NonceTable = field(default_factory=NonceTable)

    def verify(self, message: SignedMessage, signature: str, *, now: int, consume: bool = True) -> Common:
        """Authorize ``message``; raises a ``VerifierError`` subclass on rejection."""
        common = common_of(message)
        if common.domain != self.domain:
            raise VerifierInvalidDomainError(f"domain {common.domain!r} != {self.domain!r}")
        if now >= common.expiry:
            raise VerifierInvalidExpiryError(f"message expired at {common.expiry} (now {now})")
        if self.nonces.is_used(common.account, common.nonce):
            raise VerifierInvalidNonceError(f"nonce {common.nonce} already used by {common.account!r}")
        if self.nonces.is_group_cancelled(common.account, common.group):
            raise VerifierInvalidGroupError(f"group {common.group} cancelled by {common.account!r}")
        if common.signer != common.account and not self.access.is_signer(common.account, common.signer):
            raise VerifierInvalidSignerError(f"{common.signer!r} may not sign for {common.account!r}")

        try:
            pubkey_bytes = hex_to_bytes_fixed(common.signer, nbytes=PUBKEY_BYTES, name="signer")
            sig_bytes = hex_to_bytes_fixed(signature, nbytes=SIGNATURE_BYTES, name="signature")
        except (TypeError, ValueError) as exc:
            raise VerifierInvalidSignatureError(str(exc)) from exc
        ok = bool(G2Basic.Verify(pubkey_bytes, message_digest(message), sig_bytes))
        if not ok:
            logger.info("rejected %s signature for %s", message_label(message), common.account)
            raise VerifierInvalidSignatureError("invalid signature")

        if consume:
            self.consume(common)
        return common

    def consume(self, common: Common) -> None:
        self.nonces.use(common.account, common.nonce)

    # -- cancellation ---------------------------------------------------------

    def cancel_nonce(self, account: str, nonce: int) -> None:
        if not self.nonces.is_used(account, nonce):
            self.nonces.use(account, nonce)

    def cancel_group(self, account: str, group: int) -> None:
        self.nonces.cancel_group(account, group)

    def cancel_group_signed(self, message: GroupCancellation, signature: str, *, now: int) -> None:
        common = self.verify(message, signature, now=now)
        self.cancel_group(common.account, message.group)
