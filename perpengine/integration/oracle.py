"""
Oracle collaborator seam.

The engine only consumes ``(timestamp, price, valid)`` versions and fee
receipts; it never computes a price itself. ``ScriptedOracle`` is an
in-memory implementation for tests, simulations and tooling: prices are
pushed with ``commit()`` and the pending timestamp moves with ``advance()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from ..core.records import OracleReceipt, OracleVersion

logger = logging.getLogger(__name__)


class Oracle(Protocol):
    def latest(self) -> OracleVersion: ...

    def at(self, timestamp: int) -> Tuple[OracleVersion, OracleReceipt]: ...

    def current(self) -> int: ...

    def request(self, account: str) -> None: ...


@dataclass
class ScriptedOracle:
    """
    In-memory oracle.

    - ``current()`` is the timestamp new orders are queued at.
    - ``commit(ts, price)`` confirms a version; ``ts`` must be later than the
      latest committed one. If ``current()`` is not past ``ts`` it moves to
      ``ts + 1`` so new orders never land on a committed timestamp.
    - ``at(ts)`` for a timestamp at or before the latest commit that was never
      committed itself returns an invalid version (a missed round).
    """

    current_timestamp: int = 1
    default_receipt: OracleReceipt = field(default_factory=OracleReceipt)
    _versions: Dict[int, Tuple[OracleVersion, OracleReceipt]] = field(default_factory=dict)
    _latest: OracleVersion = field(default_factory=lambda: OracleVersion(timestamp=0, price=0, valid=False))
    _requests: List[Tuple[int, str]] = field(default_factory=list)

    def current(self) -> int:
        return self.current_timestamp

    def latest(self) -> OracleVersion:
        return self._latest

    def advance(self, timestamp: int) -> None:
        if timestamp <= self._latest.timestamp:
            raise ValueError("current timestamp must be after the latest committed version")
        if timestamp < self.current_timestamp:
            raise ValueError("current timestamp cannot move backwards")
        self.current_timestamp = timestamp

    def commit(
        self,
        timestamp: int,
        price: int,
        *,
        valid: bool = True,
        receipt: Optional[OracleReceipt] = None,
    ) -> OracleVersion:
        if not isinstance(timestamp, int) or isinstance(timestamp, bool) or timestamp <= 0:
            raise TypeError("timestamp must be a positive int")
        if not isinstance(price, int) or isinstance(price, bool):
            raise TypeError("price must be an int")
        if timestamp <= self._latest.timestamp:
            raise ValueError(f"timestamp {timestamp} already committed (latest {self._latest.timestamp})")
        version = OracleVersion(timestamp=timestamp, price=price, valid=valid)
        self._versions[timestamp] = (version, receipt or self.default_receipt)
        self._latest = version
        if self.current_timestamp <= timestamp:
            self.current_timestamp = timestamp + 1
        if not valid:
            logger.warning("oracle version at %d committed invalid", timestamp)
        return version

    def at(self, timestamp: int) -> Tuple[OracleVersion, OracleReceipt]:
        found = self._versions.get(timestamp)
        if found is not None:
            return found
        if timestamp > self._latest.timestamp:
            raise ValueError(f"no oracle version committed at or after {timestamp}")
        return OracleVersion(timestamp=timestamp, price=self._latest.price, valid=False), OracleReceipt()

    def request(self, account: str) -> None:
        self._requests.append((self.current_timestamp, account))

    @property
    def requests(self) -> List[Tuple[int, str]]:
        return list(self._requests)
