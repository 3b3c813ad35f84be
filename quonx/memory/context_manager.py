"""Per-conversation context: project info, current file, user id and other caller data."""
import copy
from typing import Any, Dict, Mapping
import logging

from quonx.memory.locks import KeyedLock

logger = logging.getLogger(__name__)


class ContextManager:
    """Holds one context mapping per conversation id."""

    def __init__(self):
        self._contexts: Dict[str, Dict[str, Any]] = {}
        self.locks = KeyedLock()

    async def update(self, conversation_id: str, updates: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Shallow-merge updates into a conversation's context.

        Args:
            conversation_id: Conversation identifier
            updates: Keys to set; existing keys not named are kept

        Returns:
            Copy of the merged context
        """
        async with self.locks.lock(conversation_id):
            current = self._contexts.setdefault(conversation_id, {})
            current.update(copy.deepcopy(dict(updates)))
            logger.debug(f"Updated context for {conversation_id}: {sorted(updates.keys())}")
            return copy.deepcopy(current)

    async def get(self, conversation_id: str) -> Dict[str, Any]:
        """Copy of a conversation's context, empty when none was set."""
        return copy.deepcopy(self._contexts.get(conversation_id, {}))

    async def clear(self, conversation_id: str):
        async with self.locks.lock(conversation_id):
            self._contexts.pop(conversation_id, None)
        await self.locks.discard(conversation_id)

    def count(self) -> int:
        return len(self._contexts)
