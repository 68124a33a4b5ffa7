"""Per-user mutual exclusion for ledger mutations."""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class UserLockRegistry:
    """Hands out one ``asyncio.Lock`` per user id.

    Locks are held weakly, so an idle user's lock is released once nobody is
    waiting on it. This serializes callers inside one process; the conditional
    writes in :mod:`entitlements.services.store` cover callers in other
    processes.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _get(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self._get(user_id)
        async with lock:
            yield
