"""Per-entity exclusive critical sections.

Status-changing operations on one work item run one at a time inside a
process. Across processes the row version check in WorkItemStore.save
rejects the loser with StaleState.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID


class EntityLockRegistry:
    """Async locks keyed by entity id, created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._holders: dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, entity_id: UUID) -> AsyncIterator[None]:
        """Hold the entity's lock for the duration of the block."""
        lock = self._locks.setdefault(entity_id, asyncio.Lock())
        self._holders[entity_id] = self._holders.get(entity_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[entity_id] -= 1
            if not self._holders[entity_id]:
                del self._holders[entity_id]
                del self._locks[entity_id]

    def is_locked(self, entity_id: UUID) -> bool:
        """Check if some operation currently holds the entity."""
        lock = self._locks.get(entity_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every engine in the process unless one is injected
entity_locks = EntityLockRegistry()
