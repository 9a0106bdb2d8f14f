"""Storage adapters: rooms, participants, accounts, memories and cache.

The framework talks to storage only through the async StorageAdapter
protocol. Two implementations are provided:

    InMemoryStorageAdapter  dictionaries; state is lost with the process.
    JsonFileStorageAdapter  same semantics, mirrored to flat JSON files.

Directory layout of the JSON adapter:

    {base}/
      rooms.json            ← {room_id: [participant ids]}
      accounts.json         ← {user_id: {"id", "name", "username", "details"}}
      cache.json            ← {agent_id: {key: value}}
      memories/
        {quoted room_id}.json  ← list of Memory objects, tagged with their table

A room created with an explicit id keeps that id; this is how a
caller-supplied persistence token becomes a room's identifier. Creating a
room whose id already exists raises ValueError.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

from persona_rooms.models import Memory

logger = logging.getLogger(__name__)


class StorageAdapter(Protocol):
    async def init(self) -> None: ...

    async def create_room(self, room_id: str | None = None) -> str: ...

    async def remove_room(self, room_id: str) -> None: ...

    async def get_room(self, room_id: str) -> str | None: ...

    async def add_participant(self, user_id: str, room_id: str) -> bool: ...

    async def remove_participant(self, user_id: str, room_id: str) -> bool: ...

    async def get_participants_for_room(self, room_id: str) -> list[str]: ...

    async def get_account(self, user_id: str) -> dict[str, Any] | None: ...

    async def create_account(self, account: dict[str, Any]) -> bool: ...

    async def create_memory(self, memory: Memory, table: str) -> None: ...

    async def get_memories(self, room_id: str, count: int, table: str) -> list[Memory]: ...

    async def get_cache(self, agent_id: str, key: str) -> Any | None: ...

    async def set_cache(self, agent_id: str, key: str, value: Any) -> None: ...

    async def delete_cache(self, agent_id: str, key: str) -> None: ...


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------

class InMemoryStorageAdapter:
    def __init__(self) -> None:
        self._rooms: dict[str, list[str]] = {}
        self._accounts: dict[str, dict[str, Any]] = {}
        self._memories: dict[str, list[tuple[str, Memory]]] = {}
        self._cache: dict[str, dict[str, Any]] = {}
        self.initialized = False

    async def init(self) -> None:
        self.initialized = True

    # ------------------------------------------------------------------
    # Rooms and participants
    # ------------------------------------------------------------------

    async def create_room(self, room_id: str | None = None) -> str:
        """Create an empty room. An explicit id must not already exist."""
        room_id = room_id or str(uuid.uuid4())
        if room_id in self._rooms:
            raise ValueError(f"Room already exists: {room_id}")
        self._rooms[room_id] = []
        self._persist_rooms()
        return room_id

    async def remove_room(self, room_id: str) -> None:
        self._rooms.pop(room_id, None)
        self._memories.pop(room_id, None)
        self._persist_rooms()
        self._persist_memories(room_id)

    async def get_room(self, room_id: str) -> str | None:
        return room_id if room_id in self._rooms else None

    async def add_participant(self, user_id: str, room_id: str) -> bool:
        participants = self._rooms.setdefault(room_id, [])
        if user_id in participants:
            return False
        participants.append(user_id)
        self._persist_rooms()
        return True

    async def remove_participant(self, user_id: str, room_id: str) -> bool:
        participants = self._rooms.get(room_id, [])
        if user_id not in participants:
            return False
        participants.remove(user_id)
        self._persist_rooms()
        return True

    async def get_participants_for_room(self, room_id: str) -> list[str]:
        return list(self._rooms.get(room_id, []))

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_account(self, user_id: str) -> dict[str, Any] | None:
        account = self._accounts.get(user_id)
        return dict(account) if account else None

    async def create_account(self, account: dict[str, Any]) -> bool:
        if account["id"] in self._accounts:
            return False
        self._accounts[account["id"]] = dict(account)
        self._persist_accounts()
        return True

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    async def create_memory(self, memory: Memory, table: str) -> None:
        self._memories.setdefault(memory.room_id, []).append((table, memory))
        self._persist_memories(memory.room_id)

    async def get_memories(self, room_id: str, count: int, table: str) -> list[Memory]:
        """Return up to `count` most recent memories, oldest first."""
        matching = [m for t, m in self._memories.get(room_id, []) if t == table]
        matching.sort(key=lambda m: m.created_at)
        return matching[-count:] if count > 0 else []

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def get_cache(self, agent_id: str, key: str) -> Any | None:
        return self._cache.get(agent_id, {}).get(key)

    async def set_cache(self, agent_id: str, key: str, value: Any) -> None:
        self._cache.setdefault(agent_id, {})[key] = value
        self._persist_cache()

    async def delete_cache(self, agent_id: str, key: str) -> None:
        self._cache.get(agent_id, {}).pop(key, None)
        self._persist_cache()

    # ------------------------------------------------------------------
    # Persistence hooks (no-ops in memory)
    # ------------------------------------------------------------------

    def _persist_rooms(self) -> None:
        pass

    def _persist_accounts(self) -> None:
        pass

    def _persist_memories(self, room_id: str) -> None:
        pass

    def _persist_cache(self) -> None:
        pass


# ---------------------------------------------------------------------------
# JSON file adapter
# ---------------------------------------------------------------------------

def _safe_name(value: str) -> str:
    # distinct room ids map to distinct file names
    return quote(value, safe="")


class JsonFileStorageAdapter(InMemoryStorageAdapter):
    """In-memory adapter whose state is written through to JSON files."""

    def __init__(self, base_path: Path) -> None:
        super().__init__()
        self._base = base_path
        self._memories_dir = base_path / "memories"

    async def init(self) -> None:
        self._memories_dir.mkdir(parents=True, exist_ok=True)
        self._rooms = self._read_json(self._base / "rooms.json", {})
        self._accounts = self._read_json(self._base / "accounts.json", {})
        self._cache = self._read_json(self._base / "cache.json", {})
        self._memories = {}
        for path in sorted(self._memories_dir.glob("*.json")):
            entries = self._read_json(path, [])
            for entry in entries:
                memory = Memory.model_validate(entry["memory"])
                self._memories.setdefault(memory.room_id, []).append((entry["table"], memory))
        logger.info(
            "JSON storage loaded from %s (%d rooms, %d accounts)",
            self._base, len(self._rooms), len(self._accounts),
        )
        await super().init()

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _memories_file(self, room_id: str) -> Path:
        return self._memories_dir / f"{_safe_name(room_id)}.json"

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.is_file():
            return default
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))

    # ------------------------------------------------------------------
    # Persistence hooks
    # ------------------------------------------------------------------

    def _persist_rooms(self) -> None:
        self._write_json(self._base / "rooms.json", self._rooms)

    def _persist_accounts(self) -> None:
        self._write_json(self._base / "accounts.json", self._accounts)

    def _persist_cache(self) -> None:
        self._write_json(self._base / "cache.json", self._cache)

    def _persist_memories(self, room_id: str) -> None:
        path = self._memories_file(room_id)
        entries = self._memories.get(room_id)
        if not entries:
            path.unlink(missing_ok=True)
            return
        self._write_json(
            path,
            [{"table": t, "memory": m.model_dump(mode="json")} for t, m in entries],
        )


# ---------------------------------------------------------------------------
# Cache manager: one agent's slice of the adapter cache
# ---------------------------------------------------------------------------

class CacheManager:
    def __init__(self, adapter: StorageAdapter, agent_id: str) -> None:
        self._adapter = adapter
        self.agent_id = agent_id

    async def get(self, key: str) -> Any | None:
        return await self._adapter.get_cache(self.agent_id, key)

    async def set(self, key: str, value: Any) -> None:
        await self._adapter.set_cache(self.agent_id, key, value)

    async def delete(self, key: str) -> None:
        await self._adapter.delete_cache(self.agent_id, key)
