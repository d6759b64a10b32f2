"""Tests for perpengine/state/canonical.py — canonical JSON and signing digests."""

import hashlib
from dataclasses import asdict

import pytest

from perpengine.integration.verifier import Common
from perpengine.state.canonical import (
    canonical_json_bytes,
    domain_sep_bytes,
    hex_to_bytes_fixed,
    signing_digest,
)


class TestCanonicalJson:
    def test_sorted_compact(self):
        assert canonical_json_bytes({"b": 1, "a": [2, "x"]}) == b'{"a":[2,"x"],"b":1}'

    def test_key_order_irrelevant(self):
        assert canonical_json_bytes({"a": 1, "b": 2}) == canonical_json_bytes({"b": 2, "a": 1})

    def test_utf8(self):
        assert canonical_json_bytes({"k": "é"}) == '{"k":"é"}'.encode("utf-8")

    def test_tuples_encode_as_lists(self):
        assert canonical_json_bytes({"ops": (True, None)}) == b'{"ops":[true,null]}'

    def test_message_fields(self):
        common = Common(account="a", signer="a", domain="eth-usd", nonce=3, group=0, expiry=99)
        assert canonical_json_bytes(asdict(common)) == (
            b'{"account":"a","domain":"eth-usd","expiry":99,"group":0,"nonce":3,"signer":"a"}'
        )

    @pytest.mark.parametrize("bad", [{"price": 1.5}, {1: "x"}, {"k": "\ud800"}, {"k": object()}])
    def test_rejected(self, bad):
        with pytest.raises(TypeError):
            canonical_json_bytes(bad)


class TestDomainSeparation:
    def test_prefix(self):
        assert domain_sep_bytes("intent") == b"perpengine:intent:v1\x00"
        assert domain_sep_bytes("take", version=2) == b"perpengine:take:v2\x00"

    def test_bad_labels(self):
        with pytest.raises(TypeError):
            domain_sep_bytes("")
        with pytest.raises(ValueError):
            domain_sep_bytes("a\x00b")
        with pytest.raises(ValueError):
            domain_sep_bytes("ü")
        with pytest.raises(ValueError):
            domain_sep_bytes("fill", version=0)

    def test_digest(self):
        expected = hashlib.sha256(b"perpengine:fill:v1\x00" + b'{"a":1}').digest()
        assert signing_digest("fill", {"a": 1}) == expected

    def test_labels_separate_digests(self):
        assert signing_digest("intent", {"a": 1}) != signing_digest("fill", {"a": 1})


class TestHex:
    def test_decode(self):
        assert hex_to_bytes_fixed("0x00ff", nbytes=2, name="x") == b"\x00\xff"
        assert hex_to_bytes_fixed("00FF", nbytes=2, name="x") == b"\x00\xff"

    def test_wrong_length(self):
        with pytest.raises(ValueError):
            hex_to_bytes_fixed("0x00", nbytes=2, name="x")

    def test_not_hex(self):
        with pytest.raises(ValueError):
            hex_to_bytes_fixed("0xzz", nbytes=1, name="x")

    def test_not_str(self):
        with pytest.raises(TypeError):
            hex_to_bytes_fixed(b"\x00", nbytes=1, name="x")
