"""
Client helpers for traders, solvers and keepers
"""

from .intent_signer import build_common, create_fill, create_intent, create_take, pubkey_hex, sign_message

__all__ = [
    "build_common",
    "create_intent",
    "create_fill",
    "create_take",
    "pubkey_hex",
    "sign_message",
]
