"""
Tests for the conversation store backends and the context manager.
"""
import asyncio
from typing import Dict, List, Optional

import pytest

from quonx.errors import NotFoundError
from quonx.memory import (
    ContextManager,
    InMemoryConversationStore,
    JsonConversationStore,
    KeyedLock,
    RedisConversationStore,
    create_conversation_store,
)
from quonx.models.schemas import Turn


class FakeRedis:
    """The handful of redis.asyncio commands the Redis store uses."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.lists: Dict[str, List[str]] = {}
        self.sets: Dict[str, set] = {}
        self.expiries: Dict[str, int] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None):
        self.values[key] = value
        if ex:
            self.expiries[key] = ex

    async def rpush(self, key: str, *values: str):
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    async def expire(self, key: str, seconds: int):
        self.expiries[key] = seconds

    async def sadd(self, key: str, member: str):
        self.sets.setdefault(key, set()).add(member)

    async def scard(self, key: str) -> int:
        return len(self.sets.get(key, set()))

    async def aclose(self):
        pass


@pytest.fixture(params=["memory", "json", "redis"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryConversationStore()
    if request.param == "json":
        return JsonConversationStore(str(tmp_path / "conversations"))
    return RedisConversationStore(FakeRedis(), ttl_seconds=60)


class TestConversationStore:
    """Behavior every backend shares"""

    @pytest.mark.asyncio
    async def test_create_generates_id(self, store):
        conversation = await store.create(context={"project_info": {"name": "demo"}})

        assert conversation.id
        assert conversation.turns == []
        assert (await store.get(conversation.id)).context == {"project_info": {"name": "demo"}}

    @pytest.mark.asyncio
    async def test_get_unknown_raises(self, store):
        with pytest.raises(NotFoundError):
            await store.get("missing")

    @pytest.mark.asyncio
    async def test_get_or_create_is_stable(self, store):
        first = await store.get_or_create("conv-1", {"a": 1})
        second = await store.get_or_create("conv-1", {"a": 2})

        assert first.id == second.id == "conv-1"
        assert second.context == {"a": 1}
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_append_exchange_keeps_order(self, store):
        await store.create("conv-2")
        await store.append_exchange(
            "conv-2",
            Turn(role="user", content="question"),
            Turn(role="assistant", content="answer", workflow="chat-first")
        )
        await store.append_turn("conv-2", Turn(role="user", content="follow up"))

        conversation = await store.get("conv-2")
        assert [t.role for t in conversation.turns] == ["user", "assistant", "user"]
        assert conversation.turns[1].workflow == "chat-first"

    @pytest.mark.asyncio
    async def test_recent_turns(self, store):
        await store.create("conv-3")
        for i in range(5):
            await store.append_turn("conv-3", Turn(role="user", content=str(i)))

        recent = await store.recent_turns("conv-3", 2)
        assert [t.content for t in recent] == ["3", "4"]

    @pytest.mark.asyncio
    async def test_concurrent_exchanges_are_not_interleaved(self, store):
        await store.create("conv-4")

        async def exchange(i: int):
            await store.append_exchange(
                "conv-4",
                Turn(role="user", content=f"q{i}"),
                Turn(role="assistant", content=f"a{i}")
            )

        await asyncio.gather(*[exchange(i) for i in range(10)])

        turns = (await store.get("conv-4")).turns
        assert len(turns) == 20
        for user, assistant in zip(turns[::2], turns[1::2]):
            assert user.role == "user" and assistant.role == "assistant"
            assert user.content[1:] == assistant.content[1:]

    @pytest.mark.asyncio
    async def test_returned_conversations_are_copies(self, store):
        conversation = await store.create("conv-5")
        conversation.turns.append(Turn(role="user", content="sneaky"))

        assert (await store.get("conv-5")).turns == []

    @pytest.mark.asyncio
    async def test_similar_ids_do_not_share_turns(self, store):
        await store.create("team/a")
        await store.append_turn("team/a", Turn(role="user", content="secret"))

        assert (await store.get_or_create("teama")).turns == []
        assert (await store.get_or_create("??")).turns == []
        assert (await store.get_or_create("!!")).turns == []
        assert [t.content for t in (await store.get("team/a")).turns] == ["secret"]


@pytest.mark.asyncio
async def test_redis_store_sets_expiry():
    client = FakeRedis()
    store = RedisConversationStore(client, ttl_seconds=120)

    await store.create("conv-r")
    await store.append_turn("conv-r", Turn(role="user", content="hi"))

    assert client.expiries["conversation:conv-r"] == 120
    assert client.expiries["conversation:conv-r:turns"] == 120


def test_backend_selection(settings):
    assert isinstance(create_conversation_store(settings), InMemoryConversationStore)

    settings.conversation_backend = "json"
    assert isinstance(create_conversation_store(settings), JsonConversationStore)


class TestContextManager:
    """Per-conversation context merging"""

    @pytest.mark.asyncio
    async def test_shallow_merge_later_keys_win(self):
        manager = ContextManager()
        await manager.update("c1", {"project_info": {"name": "a"}, "user_id": "u1"})
        merged = await manager.update("c1", {"project_info": {"name": "b"}})

        assert merged == {"project_info": {"name": "b"}, "user_id": "u1"}

    @pytest.mark.asyncio
    async def test_get_is_idempotent(self):
        manager = ContextManager()
        await manager.update("c1", {"current_file": {"path": "a.py"}})

        assert await manager.get("c1") == await manager.get("c1")

    @pytest.mark.asyncio
    async def test_get_returns_copy(self):
        manager = ContextManager()
        await manager.update("c1", {"items": [1]})

        context = await manager.get("c1")
        context["items"].append(2)

        assert await manager.get("c1") == {"items": [1]}

    @pytest.mark.asyncio
    async def test_unknown_conversation_is_empty(self):
        assert await ContextManager().get("nope") == {}

    @pytest.mark.asyncio
    async def test_clear(self):
        manager = ContextManager()
        await manager.update("c1", {"a": 1})
        await manager.clear("c1")

        assert await manager.get("c1") == {}
        assert manager.count() == 0
        assert len(manager.locks) == 0


class TestKeyedLock:

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLock()

        async with locks.lock("a"):
            assert locks.is_locked("a")
            async with locks.lock("b"):
                assert locks.is_locked("b")

        assert not locks.is_locked("a")
        assert len(locks) == 2

    @pytest.mark.asyncio
    async def test_discard_keeps_held_locks(self):
        locks = KeyedLock()

        async with locks.lock("a"):
            assert not await locks.discard("a")
        async with locks.lock("b"):
            pass

        assert await locks.discard("b")
        assert not await locks.discard("missing")
        assert len(locks) == 1
