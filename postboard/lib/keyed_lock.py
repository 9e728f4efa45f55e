"""Per-key serialization primitives for read-modify-write operations."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Hashable
from contextlib import asynccontextmanager
from typing import Any


class KeyedSingleFlight:
    """Coalesces concurrent calls that share a key into one execution.

    The first caller for a key starts the operation in its own task; callers
    that arrive for the same key while it is in flight await that same task
    instead of running their own. Each caller awaits through a shield, so a
    cancelled caller stops waiting without cancelling the shared work or the
    other callers. Entries are dropped once the operation finishes, so memory
    is bounded by the number of keys currently in flight.
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    def is_running(self, key: Hashable) -> bool:
        return key in self._inflight

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``factory()`` for ``key`` unless an identical call is already in flight."""
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark retrieved so a task nobody awaits any more does not warn
            task.exception()


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.holders = 0


class KeyedLocks:
    """One asyncio.Lock per key, discarded when nobody holds or waits on it."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _LockEntry()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._entries[key]


# Process-wide registries shared by every reaction ledger instance
reaction_flights = KeyedSingleFlight()
reaction_locks = KeyedLocks()
