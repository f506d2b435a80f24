"""
Correlation table — matches responses from MaiBot to the request that is waiting for them.

Each pending request owns a one-shot future. All mutating methods are plain
(non-async) functions, so on the event loop each one runs to completion before
any other: a ``deliver`` racing a ``cancel`` for the same id has exactly one winner.
"""

import asyncio
import logging
import time
from typing import Any, Optional

from maibot_tg.errors import DuplicateIDError

logger = logging.getLogger(__name__)


class _Pending:
    __slots__ = ("future", "created", "expires")

    def __init__(self, future: "asyncio.Future[Any]", created: float, expires: float):
        self.future = future
        self.created = created
        self.expires = expires


class CorrelationTable:
    def __init__(self, sweep_interval: float = 30.0):
        self._sweep_interval = sweep_interval
        self._pending: dict[str, _Pending] = {}

    @property
    def sweep_interval(self) -> float:
        return self._sweep_interval

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, correlation_id: object) -> bool:
        return correlation_id in self._pending

    def register(self, correlation_id: str, timeout: Optional[float] = None) -> "asyncio.Future[Any]":
        """Create the delivery slot for ``correlation_id``. The caller awaits the returned future.

        The sweeper leaves the slot alone for ``sweep_interval`` or ``timeout``,
        whichever is longer, so a caller still inside its own deadline keeps its slot.
        """
        if correlation_id in self._pending:
            raise DuplicateIDError(correlation_id)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        created = time.monotonic()
        ttl = max(self._sweep_interval, timeout or 0.0)
        self._pending[correlation_id] = _Pending(future, created, created + ttl)
        return future

    def deliver(self, correlation_id: str, payload: Any) -> bool:
        """Resolve the waiter for ``correlation_id``. False if nothing was pending (at-most-once)."""
        entry = self._pending.pop(correlation_id, None)
        if entry is None or entry.future.done():
            return False
        entry.future.set_result(payload)
        return True

    def cancel(self, correlation_id: str) -> bool:
        entry = self._pending.pop(correlation_id, None)
        if entry is None:
            return False
        entry.future.cancel()
        return True

    def sweep(self, now: Optional[float] = None) -> int:
        """Evict entries whose time to live has run out. Returns how many were evicted."""
        now = time.monotonic() if now is None else now
        expired = [
            cid for cid, entry in self._pending.items()
            if now >= entry.expires
        ]
        for cid in expired:
            age = now - self._pending[cid].created
            logger.warning("Pending request %s expired without a response after %.1fs, evicting", cid, age)
            self.cancel(cid)
        if expired:
            logger.info("Evicted %d stale pending request(s)", len(expired))
        else:
            logger.debug("Sweep found no stale pending requests (%d pending)", len(self._pending))
        return len(expired)

    def _next_sweep_delay(self) -> float:
        if not self._pending:
            return self._sweep_interval
        earliest = min(entry.expires for entry in self._pending.values())
        return min(self._sweep_interval, max(0.0, earliest - time.monotonic()))

    async def run_sweeper(self) -> None:
        """Sweep until cancelled.

        Wakes at most ``sweep_interval`` apart, and early enough that an abandoned entry is
        evicted as soon as its time to live runs out.
        """
        while True:
            await asyncio.sleep(self._next_sweep_delay())
            self.sweep()

    def close(self) -> None:
        """Cancel every pending slot."""
        for cid in list(self._pending):
            self.cancel(cid)
