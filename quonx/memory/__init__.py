"""Conversation history and per-conversation context."""
from quonx.memory.context_manager import ContextManager
from quonx.memory.conversation_store import (
    ConversationStore,
    InMemoryConversationStore,
    JsonConversationStore,
    RedisConversationStore,
    create_conversation_store,
)
from quonx.memory.locks import KeyedLock

__all__ = [
    "ContextManager",
    "ConversationStore",
    "InMemoryConversationStore",
    "JsonConversationStore",
    "RedisConversationStore",
    "KeyedLock",
    "create_conversation_store",
]
