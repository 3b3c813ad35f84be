"""Per-key async locks so updates to one conversation never interleave."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict

logger = logging.getLogger(__name__)


class KeyedLock:
    """
    Registry of asyncio locks keyed by conversation id.

    Mutations on the same id are serialized; different ids proceed in parallel.

    Example:
        >>> locks = KeyedLock()
        >>> async with locks.lock("conv-1"):
        ...     await store.append_turn("conv-1", turn)
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters per key
        self._users: Dict[str, int] = {}
        self._registry_lock = asyncio.Lock()

    @asynccontextmanager
    async def lock(self, key: str):
        async with self._registry_lock:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
                logger.debug(f"Created lock for {key}")
            lock = self._locks[key]
            self._users[key] = self._users.get(key, 0) + 1

        try:
            async with lock:
                yield
        finally:
            async with self._registry_lock:
                self._users[key] -= 1

    async def discard(self, key: str) -> bool:
        """
        Drop the lock for a key nobody holds or waits on.

        Returns:
            True if the lock was removed
        """
        async with self._registry_lock:
            if key not in self._locks or self._users.get(key, 0) > 0:
                return False
            del self._locks[key]
            self._users.pop(key, None)
            logger.debug(f"Discarded lock for {key}")
            return True

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock.locked() if lock else False

    def __len__(self) -> int:
        return len(self._locks)
