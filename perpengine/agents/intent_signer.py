"""
Message construction and signing for traders, solvers and keepers.

Signatures are BLS12-381 (py_ecc ``G2Basic``) over the same digest the
market's ``BlsVerifier`` checks.
"""

from __future__ import annotations

from typing import Optional

from py_ecc.bls import G2Basic

from ..integration.verifier import (
    AccessUpdate,
    AccessUpdateBatch,
    Common,
    Fill,
    GroupCancellation,
    Intent,
    OperatorUpdate,
    SignedMessage,
    SignerUpdate,
    Take,
    message_digest,
)

_BLS_CURVE_ORDER = 0x73EDA753299D7D483339D80809A1D80553BDA402FFFE5BFEFFFFFFFF00000001


def _parse_privkey(privkey: int | bytes | str) -> int:
    if isinstance(privkey, bool):
        raise TypeError("privkey must be int|bytes|str")
    if isinstance(privkey, int):
        sk = privkey
    elif isinstance(privkey, (bytes, bytearray)):
        if len(privkey) != 32:
            raise ValueError("privkey bytes must be 32 bytes")
        sk = int.from_bytes(bytes(privkey), "big")
    elif isinstance(privkey, str):
        s = privkey.strip()
        if s.lower().startswith("0x"):
            s = s[2:]
        if len(s) != 64:
            raise ValueError("privkey must be 32-byte hex (0x... or 64 hex chars)")
        sk = int(s, 16)
    else:
        raise TypeError("privkey must be int|bytes|str")
    if not (0 < sk < _BLS_CURVE_ORDER):
        raise ValueError("privkey out of range for BLS12-381")
    return sk


def keygen(seed: bytes) -> int:
    """Derive a BLS secret key from at least 32 bytes of seed material."""
    if len(seed) < 32:
        raise ValueError("seed must be at least 32 bytes")
    return G2Basic.KeyGen(seed)


def pubkey_hex(privkey: int | bytes | str) -> str:
    """0x-prefixed 48-byte public key; use it as the ``signer`` (and usually the account)."""
    return "0x" + G2Basic.SkToPk(_parse_privkey(privkey)).hex()


def sign_message(message: SignedMessage, privkey: int | bytes | str) -> str:
    """0x-prefixed 96-byte signature over ``message``."""
    sig = G2Basic.Sign(_parse_privkey(privkey), message_digest(message))
    return "0x" + bytes(sig).hex()


def build_common(
    *,
    account: str,
    domain: str,
    nonce: int,
    expiry: int,
    group: int = 0,
    signer: Optional[str] = None,
) -> Common:
    return Common(
        account=account,
        signer=signer if signer is not None else account,
        domain=domain,
        nonce=nonce,
        group=group,
        expiry=expiry,
    )


def create_intent(
    *,
    common: Common,
    amount: int,
    price: int,
    fee: int = 0,
    originator: str = "",
    solver: str = "",
    collateralization: int = 0,
) -> Intent:
    return Intent(
        amount=amount,
        price=price,
        fee=fee,
        originator=originator,
        solver=solver,
        collateralization=collateralization,
        common=common,
    )


def create_fill(*, intent: Intent, common: Common) -> Fill:
    if intent.common.domain != common.domain:
        raise ValueError("fill and intent must target the same market")
    return Fill(intent=intent, common=common)


def create_take(*, common: Common, amount: int, referrer: str = "") -> Take:
    return Take(amount=amount, referrer=referrer, common=common)


def create_operator_update(*, common: Common, operator: str, approved: bool) -> OperatorUpdate:
    return OperatorUpdate(access=AccessUpdate(accessor=operator, approved=approved), common=common)


def create_signer_update(*, common: Common, signer: str, approved: bool) -> SignerUpdate:
    return SignerUpdate(access=AccessUpdate(accessor=signer, approved=approved), common=common)


def create_access_batch(
    *,
    common: Common,
    operators: tuple[AccessUpdate, ...] = (),
    signers: tuple[AccessUpdate, ...] = (),
) -> AccessUpdateBatch:
    return AccessUpdateBatch(operators=tuple(operators), signers=tuple(signers), common=common)


def create_group_cancellation(*, common: Common, group: int) -> GroupCancellation:
    return GroupCancellation(group=group, common=common)
