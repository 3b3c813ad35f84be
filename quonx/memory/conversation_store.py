"""Conversation storage with in-memory, JSON file and Redis backends."""
import json
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote
import logging

import aiofiles

from quonx.config import Settings
from quonx.errors import NotFoundError
from quonx.memory.locks import KeyedLock
from quonx.models.schemas import Conversation, Turn

logger = logging.getLogger(__name__)


class ConversationStore(ABC):
    """
    Ordered, append-only turn history per conversation.

    Every mutation of a conversation runs under that conversation's lock, so
    concurrent appends never lose or interleave turns. Returned conversations
    are copies: changing them does not change stored state.
    """

    def __init__(self):
        self.locks = KeyedLock()

    async def create(
        self,
        conversation_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> Conversation:
        """
        Create a conversation, generating an id when none is given.

        Creating an id that already exists returns the existing conversation.
        """
        conversation_id = conversation_id or str(uuid.uuid4())
        async with self.locks.lock(conversation_id):
            existing = await self._load(conversation_id)
            if existing is not None:
                return existing
            conversation = Conversation(id=conversation_id, context=dict(context or {}))
            await self._save(conversation)
            logger.info(f"Created conversation {conversation_id}")
            return conversation

    async def get(self, conversation_id: str) -> Conversation:
        conversation = await self._load(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def get_or_create(
        self,
        conversation_id: str,
        context: Optional[Dict[str, Any]] = None
    ) -> Conversation:
        return await self.create(conversation_id, context)

    async def append_turn(self, conversation_id: str, turn: Turn) -> Conversation:
        return await self._append(conversation_id, [turn])

    async def append_exchange(
        self,
        conversation_id: str,
        user_turn: Turn,
        assistant_turn: Turn
    ) -> Conversation:
        """Append a user turn and its assistant reply as one step."""
        return await self._append(conversation_id, [user_turn, assistant_turn])

    async def recent_turns(self, conversation_id: str, limit: int) -> List[Turn]:
        conversation = await self.get(conversation_id)
        if limit <= 0:
            return []
        return conversation.turns[-limit:]

    async def _append(self, conversation_id: str, turns: List[Turn]) -> Conversation:
        async with self.locks.lock(conversation_id):
            conversation = await self._load(conversation_id)
            if conversation is None:
                conversation = Conversation(id=conversation_id)
            conversation.turns.extend(turns)
            conversation.updated_at = datetime.now()
            await self._save(conversation, appended=turns)
            return conversation

    @abstractmethod
    async def _load(self, conversation_id: str) -> Optional[Conversation]:
        """Stored conversation as a fresh copy, or None."""
        pass

    @abstractmethod
    async def _save(self, conversation: Conversation, appended: Optional[List[Turn]] = None):
        """Persist a conversation; `appended` names the turns added since the last save."""
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    async def close(self):
        pass


class InMemoryConversationStore(ConversationStore):
    """Process-local store; the default backend."""

    def __init__(self):
        super().__init__()
        self._conversations: Dict[str, Conversation] = {}

    async def _load(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def _save(self, conversation: Conversation, appended: Optional[List[Turn]] = None):
        self._conversations[conversation.id] = conversation.model_copy(deep=True)

    async def count(self) -> int:
        return len(self._conversations)


class JsonConversationStore(ConversationStore):
    """One JSON document per conversation under a local directory."""

    def __init__(self, path: str):
        super().__init__()
        self.path = path
        os.makedirs(self.path, exist_ok=True)

    def _file_path(self, conversation_id: str) -> str:
        # Percent-encoding keeps distinct ids in distinct files
        return os.path.join(self.path, f"{quote(conversation_id, safe='')}.json")

    async def _load(self, conversation_id: str) -> Optional[Conversation]:
        file_path = self._file_path(conversation_id)
        if not os.path.exists(file_path):
            return None
        try:
            async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
                content = await f.read()
            return Conversation.model_validate_json(content)
        except Exception as e:
            logger.error(f"Error reading conversation {conversation_id} from JSON: {e}")
            raise

    async def _save(self, conversation: Conversation, appended: Optional[List[Turn]] = None):
        try:
            async with aiofiles.open(self._file_path(conversation.id), "w", encoding="utf-8") as f:
                await f.write(conversation.model_dump_json(indent=2))
        except Exception as e:
            logger.error(f"Error writing conversation {conversation.id} to JSON: {e}")
            raise

    async def count(self) -> int:
        return len([name for name in os.listdir(self.path) if name.endswith(".json")])


class RedisConversationStore(ConversationStore):
    """
    Redis backend: a metadata hash and a turn list per conversation.

    Keys expire after the configured TTL, refreshed on every write.
    """

    INDEX_KEY = "conversations"

    def __init__(self, client: Any, ttl_seconds: int = 86400):
        super().__init__()
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _meta_key(conversation_id: str) -> str:
        return f"conversation:{conversation_id}"

    @staticmethod
    def _turns_key(conversation_id: str) -> str:
        return f"conversation:{conversation_id}:turns"

    async def _load(self, conversation_id: str) -> Optional[Conversation]:
        try:
            meta = await self.client.get(self._meta_key(conversation_id))
            if meta is None:
                return None
            turns = await self.client.lrange(self._turns_key(conversation_id), 0, -1)
        except Exception as e:
            logger.error(f"Error reading conversation {conversation_id} from Redis: {e}")
            raise

        data = json.loads(meta)
        data["turns"] = [json.loads(turn) for turn in turns]
        return Conversation.model_validate(data)

    async def _save(self, conversation: Conversation, appended: Optional[List[Turn]] = None):
        meta_key = self._meta_key(conversation.id)
        turns_key = self._turns_key(conversation.id)
        meta = conversation.model_dump_json(exclude={"turns"})
        try:
            await self.client.set(meta_key, meta, ex=self.ttl_seconds)
            if appended:
                await self.client.rpush(turns_key, *[turn.model_dump_json() for turn in appended])
                await self.client.expire(turns_key, self.ttl_seconds)
            await self.client.sadd(self.INDEX_KEY, conversation.id)
        except Exception as e:
            logger.error(f"Error writing conversation {conversation.id} to Redis: {e}")
            raise

    async def count(self) -> int:
        return await self.client.scard(self.INDEX_KEY)

    async def close(self):
        await self.client.aclose()


def create_conversation_store(settings: Settings) -> ConversationStore:
    """Build the backend named by `conversation_backend`."""
    if settings.conversation_backend == "redis":
        import redis.asyncio as aioredis
        client = aioredis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password if settings.redis_password else None,
            decode_responses=True
        )
        logger.info("Conversation store using Redis")
        return RedisConversationStore(client, settings.conversation_ttl_seconds)

    if settings.conversation_backend == "json":
        logger.info(f"Conversation store using JSON files in {settings.local_memory_path}")
        return JsonConversationStore(settings.local_memory_path)

    logger.info("Conversation store using in-memory storage")
    return InMemoryConversationStore()
