"""
Append-only ledgers for historical records (v1).

Versions, checkpoints and settled positions are written once and never
mutated. Records are indexed by ``(scope, timestamp)`` where ``scope`` is an
account id, or ``GLOBAL_SCOPE`` for market-wide records. Reads resolve "the
most recent record at or before a timestamp" by bisection instead of walking
back-references.

Writes are journaled so a failed transition can roll the ledger back to a
savepoint without copying history.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")

GLOBAL_SCOPE = ""


@dataclass
class TimestampLedger(Generic[T]):
    """Append-only arena: (scope, timestamp) -> immutable record."""

    _records: Dict[Tuple[str, int], T] = field(default_factory=dict)
    _index: Dict[str, List[int]] = field(default_factory=dict)
    _journal: List[Tuple[str, int]] = field(default_factory=list)

    def append(self, scope: str, timestamp: int, record: T) -> None:
        if not isinstance(timestamp, int) or isinstance(timestamp, bool) or timestamp < 0:
            raise TypeError("timestamp must be a non-negative int")
        key = (scope, timestamp)
        if key in self._records:
            raise ValueError(f"record already written for {scope or '<global>'}@{timestamp}")
        stamps = self._index.setdefault(scope, [])
        if stamps and timestamp <= stamps[-1]:
            raise ValueError(
                f"out-of-order append for {scope or '<global>'}: {timestamp} <= {stamps[-1]}"
            )
        stamps.append(timestamp)
        self._records[key] = record
        self._journal.append(key)

    def get(self, scope: str, timestamp: int) -> Optional[T]:
        return self._records.get((scope, timestamp))

    def latest(self, scope: str) -> Optional[T]:
        stamps = self._index.get(scope)
        if not stamps:
            return None
        return self._records[(scope, stamps[-1])]

    def at_or_before(self, scope: str, timestamp: int) -> Optional[T]:
        stamps = self._index.get(scope)
        if not stamps:
            return None
        i = bisect_right(stamps, timestamp)
        if i == 0:
            return None
        return self._records[(scope, stamps[i - 1])]

    def history(self, scope: str) -> List[T]:
        return [self._records[(scope, ts)] for ts in self._index.get(scope, [])]

    def timestamps(self, scope: str) -> List[int]:
        return list(self._index.get(scope, []))

    def scopes(self) -> List[str]:
        return sorted(self._index)

    def __len__(self) -> int:
        return len(self._records)

    # -- journaling -----------------------------------------------------------

    def savepoint(self) -> int:
        return len(self._journal)

    def rollback(self, savepoint: int) -> None:
        """Drop every record appended after ``savepoint``."""
        if not (0 <= savepoint <= len(self._journal)):
            raise ValueError("invalid savepoint")
        while len(self._journal) > savepoint:
            scope, ts = self._journal.pop()
            del self._records[(scope, ts)]
            stamps = self._index[scope]
            stamps.pop()
            if not stamps:
                del self._index[scope]
