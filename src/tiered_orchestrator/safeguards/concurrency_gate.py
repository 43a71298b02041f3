"""Per-tier admission control for in-flight model calls.

Each tier gets one ConcurrencyGate sized to its configured capacity. The gate
is the system's only backpressure: callers beyond capacity wait in a FIFO
queue and are admitted one per release(), longest waiter first.

Gates are built once per process (GateRegistry.from_config) and handed to
every driver explicitly, so concurrent drivers in one process share limits.
"""

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Deque, Dict, Mapping

if TYPE_CHECKING:
    from ..core.config import TierConfig
    from ..core.task import Tier

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """Counting FIFO semaphore for asyncio.

    Unlike a bare asyncio.Semaphore, release() hands the slot straight to the
    oldest waiter instead of returning it to the pool, so a newcomer calling
    acquire() in between can never jump the queue.
    """

    def __init__(self, name: str, capacity: int):
        if capacity < 1:
            raise ValueError(f"Gate '{name}' capacity must be >= 1, got {capacity}")
        self.name = name
        self._capacity = capacity
        self._available = capacity
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available(self) -> int:
        return self._available

    @property
    def in_flight(self) -> int:
        return self._capacity - self._available

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> None:
        """Take a slot, waiting in line if none is free."""
        if self._available > 0 and not self._waiters:
            self._available -= 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(f"Gate {self.name}: queued (waiting={len(self._waiters)})")
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just as we were cancelled; pass it on
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        """Return a slot, waking the longest-waiting caller if any."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Ownership transfers directly; _available is untouched
                waiter.set_result(None)
                return

        if self._available >= self._capacity:
            raise RuntimeError(f"Gate '{self.name}' released more times than acquired")
        self._available += 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold a slot for the duration of the block, on every exit path."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def __repr__(self) -> str:
        return (
            f"ConcurrencyGate(name={self.name!r}, capacity={self._capacity}, "
            f"in_flight={self.in_flight}, waiting={self.waiting})"
        )


class GateRegistry:
    """One gate per tier, constructed once at process start."""

    def __init__(self, gates: Mapping["Tier", ConcurrencyGate]):
        self._gates: Dict["Tier", ConcurrencyGate] = dict(gates)

    @classmethod
    def from_capacities(cls, capacities: Mapping["Tier", int]) -> "GateRegistry":
        return cls({tier: ConcurrencyGate(tier.value, cap) for tier, cap in capacities.items()})

    @classmethod
    def from_config(cls, tiers: Mapping["Tier", "TierConfig"]) -> "GateRegistry":
        return cls.from_capacities({tier: cfg.max_concurrency for tier, cfg in tiers.items()})

    def gate(self, tier: "Tier") -> ConcurrencyGate:
        try:
            return self._gates[tier]
        except KeyError:
            raise KeyError(f"No concurrency gate configured for tier '{tier.value}'") from None

    def __getitem__(self, tier: "Tier") -> ConcurrencyGate:
        return self.gate(tier)

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        """Current load per tier, for logging."""
        return {
            tier.value: {"capacity": g.capacity, "in_flight": g.in_flight, "waiting": g.waiting}
            for tier, g in self._gates.items()
        }
