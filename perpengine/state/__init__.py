"""
Persisted state for the settlement engine
"""

from .access import AccessRegistry, Authorization
from .ledger import GLOBAL_SCOPE, TimestampLedger
from .margin import InMemoryMargin, MarginError
from .nonces import NonceTable

__all__ = [
    "AccessRegistry",
    "Authorization",
    "GLOBAL_SCOPE",
    "TimestampLedger",
    "InMemoryMargin",
    "MarginError",
    "NonceTable",
]
