"""Tests for persona_rooms.storage: in-memory and JSON file adapters."""

import json

import pytest

from persona_rooms.models import Content, Memory
from persona_rooms.storage import CacheManager, InMemoryStorageAdapter, JsonFileStorageAdapter


def _memory(room_id, text, created_at, user_id="u1"):
    return Memory(
        id=f"m-{created_at}",
        agent_id="agent",
        user_id=user_id,
        room_id=room_id,
        content=Content(text=text),
        created_at=created_at,
    )


# ---------------------------------------------------------------------------
# Rooms and participants
# ---------------------------------------------------------------------------

class TestRooms:
    async def test_create_room_allocates_id(self, adapter) -> None:
        a = await adapter.create_room()
        b = await adapter.create_room()
        assert a != b
        assert await adapter.get_room(a) == a

    async def test_create_room_with_explicit_id(self, adapter) -> None:
        assert await adapter.create_room("save-slot-1") == "save-slot-1"
        assert await adapter.get_room("save-slot-1") == "save-slot-1"

    async def test_existing_room_id_refused(self, adapter) -> None:
        room = await adapter.create_room("save-slot-1")
        await adapter.add_participant("u1", room)
        with pytest.raises(ValueError, match="already exists"):
            await adapter.create_room("save-slot-1")
        assert await adapter.get_participants_for_room(room) == ["u1"]

    async def test_unknown_room(self, adapter) -> None:
        assert await adapter.get_room("nope") is None

    async def test_remove_room_drops_participants_and_memories(self, adapter) -> None:
        room = await adapter.create_room()
        await adapter.add_participant("u1", room)
        await adapter.create_memory(_memory(room, "hi", 1), "messages")
        await adapter.remove_room(room)
        assert await adapter.get_room(room) is None
        assert await adapter.get_participants_for_room(room) == []
        assert await adapter.get_memories(room, 10, "messages") == []

    async def test_participants_are_a_set(self, adapter) -> None:
        room = await adapter.create_room()
        assert await adapter.add_participant("u1", room) is True
        assert await adapter.add_participant("u1", room) is False
        assert await adapter.get_participants_for_room(room) == ["u1"]

    async def test_remove_participant(self, adapter) -> None:
        room = await adapter.create_room()
        await adapter.add_participant("u1", room)
        assert await adapter.remove_participant("u1", room) is True
        assert await adapter.remove_participant("u1", room) is False
        assert await adapter.get_participants_for_room(room) == []


# ---------------------------------------------------------------------------
# Accounts, memories, cache
# ---------------------------------------------------------------------------

class TestAccounts:
    async def test_create_once(self, adapter) -> None:
        assert await adapter.create_account({"id": "u1", "name": "Sam"}) is True
        assert await adapter.create_account({"id": "u1", "name": "Other"}) is False
        assert (await adapter.get_account("u1"))["name"] == "Sam"

    async def test_missing(self, adapter) -> None:
        assert await adapter.get_account("ghost") is None


class TestMemories:
    async def test_newest_count_oldest_first(self, adapter) -> None:
        for i in (3, 1, 2, 4):
            await adapter.create_memory(_memory("r", f"t{i}", i), "messages")
        recent = await adapter.get_memories("r", 3, "messages")
        assert [m.content.text for m in recent] == ["t2", "t3", "t4"]

    async def test_tables_are_separate(self, adapter) -> None:
        await adapter.create_memory(_memory("r", "said", 1), "messages")
        await adapter.create_memory(_memory("r", "known", 2), "documents")
        assert [m.content.text for m in await adapter.get_memories("r", 10, "documents")] == ["known"]

    async def test_zero_count(self, adapter) -> None:
        await adapter.create_memory(_memory("r", "said", 1), "messages")
        assert await adapter.get_memories("r", 0, "messages") == []


class TestCacheManager:
    async def test_scoped_per_agent(self, adapter) -> None:
        a = CacheManager(adapter, "agent-a")
        b = CacheManager(adapter, "agent-b")
        await a.set("k", [1, 2])
        assert await a.get("k") == [1, 2]
        assert await b.get("k") is None

    async def test_delete(self, adapter) -> None:
        cache = CacheManager(adapter, "agent-a")
        await cache.set("k", "v")
        await cache.delete("k")
        assert await cache.get("k") is None


# ---------------------------------------------------------------------------
# JSON file adapter
# ---------------------------------------------------------------------------

@pytest.fixture
async def json_adapter(tmp_path):
    adapter = JsonFileStorageAdapter(tmp_path)
    await adapter.init()
    return adapter


class TestJsonFileStorageAdapter:
    async def test_is_an_in_memory_adapter(self, json_adapter) -> None:
        assert isinstance(json_adapter, InMemoryStorageAdapter)
        assert json_adapter.initialized is True

    async def test_writes_rooms_file(self, json_adapter, tmp_path) -> None:
        room = await json_adapter.create_room("slot")
        await json_adapter.add_participant("u1", room)
        assert json.loads((tmp_path / "rooms.json").read_text()) == {"slot": ["u1"]}

    async def test_state_survives_reload(self, json_adapter, tmp_path) -> None:
        room = await json_adapter.create_room("slot")
        await json_adapter.add_participant("u1", room)
        await json_adapter.create_account({"id": "u1", "name": "Sam"})
        await json_adapter.create_memory(_memory(room, "hello", 5), "messages")
        await json_adapter.set_cache("agent", "knowledge/processed", ["abc"])

        reloaded = JsonFileStorageAdapter(tmp_path)
        await reloaded.init()

        assert await reloaded.get_participants_for_room("slot") == ["u1"]
        assert (await reloaded.get_account("u1"))["name"] == "Sam"
        memories = await reloaded.get_memories("slot", 10, "messages")
        assert [m.content.text for m in memories] == ["hello"]
        assert await reloaded.get_cache("agent", "knowledge/processed") == ["abc"]

    async def test_remove_room_deletes_memory_file(self, json_adapter, tmp_path) -> None:
        room = await json_adapter.create_room("slot")
        await json_adapter.create_memory(_memory(room, "hello", 5), "messages")
        assert (tmp_path / "memories" / "slot.json").is_file()
        await json_adapter.remove_room(room)
        assert not (tmp_path / "memories" / "slot.json").exists()

    async def test_unsafe_room_id_encoded(self, json_adapter, tmp_path) -> None:
        await json_adapter.create_memory(_memory("../evil/room", "x", 1), "messages")
        assert (tmp_path / "memories" / "..%2Fevil%2Froom.json").is_file()
        assert list((tmp_path / "memories").iterdir()) == [tmp_path / "memories" / "..%2Fevil%2Froom.json"]

    async def test_similar_room_ids_use_separate_files(self, json_adapter, tmp_path) -> None:
        await json_adapter.create_memory(_memory("a/b", "slash", 1), "messages")
        await json_adapter.create_memory(_memory("a_b", "underscore", 2), "messages")

        reloaded = JsonFileStorageAdapter(tmp_path)
        await reloaded.init()

        assert [m.content.text for m in await reloaded.get_memories("a/b", 10, "messages")] == ["slash"]
        assert [m.content.text for m in await reloaded.get_memories("a_b", 10, "messages")] == ["underscore"]
