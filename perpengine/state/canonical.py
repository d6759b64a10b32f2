"""
Canonical byte encoding of signed messages.

A signature commits to ``sha256(prefix || body)`` where ``prefix`` names the
message type and encoding version and ``body`` is compact, key-sorted UTF-8
JSON of the message fields. Amounts are fixed-point ints, so floats never
reach the encoder.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

ENCODING_VERSION = 1

_HEX_DIGITS = frozenset("0123456789abcdef")


def _check_encodable(value: Any, path: str = "$") -> None:
    if value is None or isinstance(value, (bool, int)):
        return
    if isinstance(value, float):
        raise TypeError(f"{path}: floats are not encodable")
    if isinstance(value, str):
        if any(0xD800 <= ord(ch) <= 0xDFFF for ch in value):
            raise TypeError(f"{path}: lone surrogates are not encodable")
        return
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeError(f"{path}: keys must be str")
            _check_encodable(k, path)
            _check_encodable(v, f"{path}.{k}")
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check_encodable(item, f"{path}[{i}]")
        return
    raise TypeError(f"{path}: {type(value).__name__} is not encodable")


def canonical_json_bytes(value: Any) -> bytes:
    _check_encodable(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode(
        "utf-8"
    )


def domain_sep_bytes(label: str, version: int = ENCODING_VERSION) -> bytes:
    """``b"perpengine:<label>:v<version>\\x00"``; the label must be non-empty ASCII without NUL."""
    if not isinstance(label, str) or not label:
        raise TypeError("label must be a non-empty str")
    if not label.isascii() or "\x00" in label:
        raise ValueError("label must be ASCII without NUL")
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")
    return f"perpengine:{label}:v{version}".encode("ascii") + b"\x00"


def signing_digest(label: str, payload: Any) -> bytes:
    return hashlib.sha256(domain_sep_bytes(label) + canonical_json_bytes(payload)).digest()


def hex_to_bytes_fixed(hex_str: str, *, nbytes: int, name: str) -> bytes:
    """Decode exactly ``nbytes`` of hex, with or without a ``0x`` prefix."""
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a str")
    s = hex_str.strip().lower()
    if s.startswith("0x"):
        s = s[2:]
    if len(s) != 2 * nbytes:
        raise ValueError(f"{name} must be {nbytes} bytes")
    if not set(s) <= _HEX_DIGITS:
        raise ValueError(f"{name} must be hex")
    return bytes.fromhex(s)
