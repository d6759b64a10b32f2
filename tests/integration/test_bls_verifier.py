"""Tests for perpengine/integration/verifier.py — signed message authorization."""

import pytest

from perpengine.agents.intent_signer import (
    build_common,
    create_group_cancellation,
    create_intent,
    keygen,
    pubkey_hex,
    sign_message,
)
from perpengine.core.errors import (
    VerifierInvalidDomainError,
    VerifierInvalidExpiryError,
    VerifierInvalidGroupError,
    VerifierInvalidNonceError,
    VerifierInvalidSignatureError,
    VerifierInvalidSignerError,
)
from perpengine.core.fixed import UNIT
from perpengine.integration.verifier import (
    BlsVerifier,
    Common,
    Intent,
    message_digest,
    message_label,
)

DOMAIN = "eth-usd"
ALICE_SK = keygen(b"\x0a" * 32)
BOB_SK = keygen(b"\x0b" * 32)
ALICE = pubkey_hex(ALICE_SK)
BOB = pubkey_hex(BOB_SK)


def _intent(*, account: str = ALICE, signer: str | None = None, nonce: int = 1, group: int = 0, domain: str = DOMAIN, expiry: int = 100):
    common = build_common(account=account, signer=signer, domain=domain, nonce=nonce, group=group, expiry=expiry)
    return create_intent(common=common, amount=UNIT, price=100 * UNIT)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class TestMessages:
    def test_intent_validation(self):
        common = build_common(account=ALICE, domain=DOMAIN, nonce=1, expiry=100)
        with pytest.raises(ValueError):
            create_intent(common=common, amount=0, price=UNIT)
        with pytest.raises(ValueError):
            create_intent(common=common, amount=UNIT, price=0)
        with pytest.raises(ValueError):
            create_intent(common=common, amount=UNIT, price=UNIT, collateralization=101 * UNIT)

    def test_common_validation(self):
        with pytest.raises(ValueError):
            Common(account="", signer=ALICE, domain=DOMAIN, nonce=0, group=0, expiry=1)
        with pytest.raises(TypeError):
            Common(account=ALICE, signer=ALICE, domain=DOMAIN, nonce=True, group=0, expiry=1)

    def test_labels_and_digest(self):
        intent = _intent()
        assert message_label(intent) == "intent"
        assert message_label(intent.common) == "common"
        assert len(message_digest(intent)) == 32
        assert message_digest(intent) != message_digest(_intent(nonce=2))

    def test_unknown_message(self):
        with pytest.raises(TypeError):
            message_label(object())

    def test_signer_defaults_to_account(self):
        assert _intent().common.signer == ALICE
        assert isinstance(_intent(), Intent)


# ---------------------------------------------------------------------------
# Checks that run before the signature
# ---------------------------------------------------------------------------

class TestPreChecks:
    def test_domain(self):
        with pytest.raises(VerifierInvalidDomainError):
            BlsVerifier(domain=DOMAIN).verify(_intent(domain="btc-usd"), "0x00", now=1)

    def test_expiry(self):
        with pytest.raises(VerifierInvalidExpiryError):
            BlsVerifier(domain=DOMAIN).verify(_intent(expiry=100), "0x00", now=100)

    def test_nonce(self):
        v = BlsVerifier(domain=DOMAIN)
        v.cancel_nonce(ALICE, 1)
        with pytest.raises(VerifierInvalidNonceError):
            v.verify(_intent(nonce=1), "0x00", now=1)

    def test_cancel_nonce_idempotent(self):
        v = BlsVerifier(domain=DOMAIN)
        v.cancel_nonce(ALICE, 1)
        v.cancel_nonce(ALICE, 1)
        assert v.nonces.is_used(ALICE, 1)

    def test_group(self):
        v = BlsVerifier(domain=DOMAIN)
        v.cancel_group(ALICE, 3)
        with pytest.raises(VerifierInvalidGroupError):
            v.verify(_intent(group=3), "0x00", now=1)

    def test_unregistered_signer(self):
        with pytest.raises(VerifierInvalidSignerError):
            BlsVerifier(domain=DOMAIN).verify(_intent(signer=BOB), "0x00", now=1)

    def test_malformed_signature(self):
        with pytest.raises(VerifierInvalidSignatureError):
            BlsVerifier(domain=DOMAIN).verify(_intent(), "0x00", now=1)

    def test_signer_must_be_a_pubkey(self):
        with pytest.raises(VerifierInvalidSignatureError):
            BlsVerifier(domain=DOMAIN).verify(_intent(account="alice"), "0x" + "00" * 96, now=1)


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

class TestSignatures:
    def test_valid_without_consume(self):
        v = BlsVerifier(domain=DOMAIN)
        intent = _intent()
        common = v.verify(intent, sign_message(intent, ALICE_SK), now=1, consume=False)
        assert common.account == ALICE
        assert not v.nonces.is_used(ALICE, 1)
        v.consume(common)
        assert v.nonces.is_used(ALICE, 1)

    def test_wrong_key(self):
        v = BlsVerifier(domain=DOMAIN)
        intent = _intent()
        with pytest.raises(VerifierInvalidSignatureError):
            v.verify(intent, sign_message(intent, BOB_SK), now=1)
        assert not v.nonces.is_used(ALICE, 1)

    def test_delegated_signer(self):
        v = BlsVerifier(domain=DOMAIN)
        v.access.set_signer(ALICE, BOB, True)
        intent = _intent(signer=BOB)
        v.verify(intent, sign_message(intent, BOB_SK), now=1)
        assert v.nonces.is_used(ALICE, 1)

    def test_signed_group_cancellation(self):
        v = BlsVerifier(domain=DOMAIN)
        message = create_group_cancellation(
            common=build_common(account=ALICE, domain=DOMAIN, nonce=9, expiry=100), group=4
        )
        v.cancel_group_signed(message, sign_message(message, ALICE_SK), now=1)
        assert v.nonces.is_group_cancelled(ALICE, 4)
        assert v.nonces.is_used(ALICE, 9)


class TestKeys:
    def test_keygen_needs_seed(self):
        with pytest.raises(ValueError):
            keygen(b"short")

    def test_pubkey_shape(self):
        assert ALICE.startswith("0x")
        assert len(ALICE) == 2 + 96

    def test_bad_privkey(self):
        with pytest.raises(ValueError):
            pubkey_hex(0)
        with pytest.raises(ValueError):
            pubkey_hex("0x1234")
