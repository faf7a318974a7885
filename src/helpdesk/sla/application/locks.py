"""Per-ticket mutual exclusion for SLA clock mutations."""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class TicketLockRegistry:
    """
    Hands out one asyncio.Lock per ticket id.

    Locks are dropped once nobody holds or waits for them, so the
    registry does not grow with the number of tickets ever seen.
    Cross-process races are caught by the optimistic version check in
    the repositories.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, ticket_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(ticket_id, asyncio.Lock())
        self._users[ticket_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[ticket_id] -= 1
            if self._users[ticket_id] == 0:
                del self._users[ticket_id]
                self._locks.pop(ticket_id, None)

    def __len__(self) -> int:
        return len(self._locks)
