"""Agent runtime: the live backing state for one distinct character.

A runtime owns the character's processed configuration, its memory managers
and its cache slice, and exposes the steps the message pipeline drives:
state composition, recent-message refresh, action dispatch and evaluation.

Actions and providers can be registered on the runtime itself (process-level
plugins) or passed per call. Per-call lists are merged with the runtime's
own for that call only and never stored, so concurrent messages against the
same runtime do not see each other's installed actions.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol

from pydantic import BaseModel, Field

from persona_rooms.hashing import string_to_uuid
from persona_rooms.llm import LLM
from persona_rooms.models import ActionDefinition, ActionParameter, Content, Memory, MessageExample

if TYPE_CHECKING:
    from persona_rooms.storage import CacheManager, StorageAdapter

logger = logging.getLogger(__name__)

State = dict[str, Any]
HandlerCallback = Callable[[Content], Awaitable[list[Memory]]]
ActionHandler = Callable[["AgentRuntime", Memory, State, dict, HandlerCallback], Awaitable[Any]]
Validator = Callable[["AgentRuntime", Memory, "State | None"], Awaitable[bool]]

RuntimeStatus = Literal["created", "running", "stopped"]

# Action names the model uses to mean "no action"; never dispatched.
NO_ACTION = {"none", "ignore", "continue"}


async def always_valid(runtime: AgentRuntime, message: Memory, state: State | None) -> bool:
    return True


# ---------------------------------------------------------------------------
# Runtime configuration
# ---------------------------------------------------------------------------

class StyleBuckets(BaseModel):
    all: list[str] = Field(default_factory=list)
    post: list[str] = Field(default_factory=list)
    chat: list[str] = Field(default_factory=list)


class RuntimeCharacterConfig(BaseModel):
    """A character definition flattened into the shape the runtime consumes."""

    name: str
    bio: list[str]
    lore: list[str]
    knowledge: list[str]
    message_examples: list[list[MessageExample]] = Field(default_factory=list)
    actions: list[ActionDefinition] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    adjectives: list[str] = Field(default_factory=list)
    style: StyleBuckets = Field(default_factory=StyleBuckets)
    model_provider: str
    post_examples: list[str] = Field(default_factory=list)
    clients: list[str] = Field(default_factory=list)
    plugins: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Actions, providers, evaluators
# ---------------------------------------------------------------------------

@dataclass
class RuntimeAction:
    """A dispatchable action. `handler` reports its message via the callback."""

    name: str
    description: str
    handler: ActionHandler
    similes: list[str] = field(default_factory=list)
    examples: list[list[MessageExample]] = field(default_factory=list)
    parameters: list[ActionParameter] = field(default_factory=list)
    validate: Validator = always_valid
    suppress_initial_message: bool = False


class Provider(Protocol):
    async def get(self, runtime: AgentRuntime, message: Memory, state: State | None) -> str: ...


@dataclass
class Evaluator:
    """Post-response side-effect step (e.g. fact extraction)."""

    name: str
    handler: Callable[[AgentRuntime, Memory, State], Awaitable[Any]]
    description: str = ""
    validate: Validator = always_valid


def _normalize_action_name(name: str) -> str:
    return name.strip().lower().replace("_", "")


def find_action(actions: Sequence[RuntimeAction], name: str) -> RuntimeAction | None:
    """Match by normalized name first, then by simile."""
    wanted = _normalize_action_name(name)
    for action in actions:
        if _normalize_action_name(action.name) == wanted:
            return action
    for action in actions:
        if any(_normalize_action_name(s) == wanted for s in action.similes):
            return action
    return None


def format_actions(actions: Sequence[RuntimeAction]) -> str:
    return "\n".join(f"{a.name}: {a.description}" for a in actions)


def format_action_examples(actions: Sequence[RuntimeAction]) -> str:
    blocks: list[str] = []
    for action in actions:
        for example in action.examples:
            blocks.append("\n".join(f"{line.user}: {line.content}" for line in example))
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Memory manager: one table of the adapter's memories
# ---------------------------------------------------------------------------

class MemoryManager:
    def __init__(self, runtime: AgentRuntime, table: str) -> None:
        self._runtime = runtime
        self.table = table

    async def add_embedding_to_memory(self, memory: Memory) -> Memory:
        """Attach an embedding unless one is present or the text is empty."""
        if memory.embedding is None and memory.content.text:
            memory.embedding = await self._runtime.llm.embed(memory.content.text)
        return memory

    async def create_memory(self, memory: Memory) -> None:
        await self._runtime.adapter.create_memory(memory, self.table)

    async def get_memories(self, room_id: str, count: int) -> list[Memory]:
        return await self._runtime.adapter.get_memories(room_id, count, self.table)


# ---------------------------------------------------------------------------
# AgentRuntime
# ---------------------------------------------------------------------------

class AgentRuntime:
    def __init__(
        self,
        *,
        character: RuntimeCharacterConfig,
        adapter: StorageAdapter,
        token: str,
        model_provider: str,
        cache_manager: CacheManager,
        llm: LLM,
        agent_id: str | None = None,
        conversation_length: int = 32,
    ) -> None:
        self.character = character
        self.adapter = adapter
        self.token = token
        self.model_provider = model_provider
        self.cache_manager = cache_manager
        self.llm = llm
        self.agent_id = agent_id or string_to_uuid(character.name)
        self.conversation_length = conversation_length
        self.actions: list[RuntimeAction] = []
        self.providers: list[Provider] = []
        self.evaluators: list[Evaluator] = []
        self.status: RuntimeStatus = "created"
        self.message_manager = MemoryManager(self, "messages")
        self.knowledge_manager = MemoryManager(self, "documents")

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """One-time setup: agent account and character knowledge. Idempotent."""
        if self.status == "running":
            return
        await self.ensure_connection(self.agent_id, None, self.character.name, self.character.name)
        await self._process_character_knowledge()
        self.status = "running"
        logger.info("Runtime for %s initialized (agent %s)", self.character.name, self.agent_id)

    async def stop(self) -> None:
        if self.status != "running":
            return
        self.status = "stopped"
        logger.info("Runtime for %s stopped", self.character.name)

    async def _process_character_knowledge(self) -> None:
        """Store each knowledge item as an embedded document, once per item."""
        processed = set(await self.cache_manager.get("knowledge/processed") or [])
        added = 0
        for item in self.character.knowledge:
            digest = hashlib.sha256(item.encode("utf-8")).hexdigest()
            if digest in processed:
                continue
            memory = Memory(
                id=string_to_uuid(f"{self.agent_id}-{digest}"),
                agent_id=self.agent_id,
                user_id=self.agent_id,
                room_id=self.agent_id,
                content=Content(text=item, source="knowledge"),
                created_at=_now_ms(),
            )
            await self.knowledge_manager.add_embedding_to_memory(memory)
            await self.knowledge_manager.create_memory(memory)
            processed.add(digest)
            added += 1
        if added:
            await self.cache_manager.set("knowledge/processed", sorted(processed))
        logger.debug("Knowledge for %s: %d new item(s)", self.character.name, added)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def ensure_connection(
        self,
        user_id: str,
        room_id: str | None,
        user_name: str | None = None,
        user_screen_name: str | None = None,
        source: str | None = None,
    ) -> None:
        """Make sure the user's account (and the room, when given) exist."""
        if await self.adapter.get_account(user_id) is None:
            await self.adapter.create_account({
                "id": user_id,
                "name": user_name or user_id,
                "username": user_screen_name or user_name or user_id,
                "details": {"source": source or ""},
            })
        if room_id is not None and await self.adapter.get_room(room_id) is None:
            await self.adapter.create_room(room_id)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    async def compose_state(
        self,
        message: Memory,
        extras: State | None = None,
        *,
        providers: Sequence[Provider] = (),
        actions: Sequence[RuntimeAction] = (),
    ) -> State:
        all_actions = [*self.actions, *actions]
        recent = await self.message_manager.get_memories(message.room_id, self.conversation_length)
        provider_text = await self._run_providers(message, [*self.providers, *providers])
        char = self.character

        state: State = {
            "agentId": self.agent_id,
            "agentName": char.name,
            "roomId": message.room_id,
            "bio": "\n".join(char.bio),
            "lore": "\n".join(char.lore[:10]),
            "knowledge": "\n".join(char.knowledge),
            "topics": ", ".join(char.topics),
            "adjectives": ", ".join(char.adjectives),
            "messageDirections": self._message_directions(),
            "characterMessageExamples": "\n\n".join(
                "\n".join(f"{line.user}: {line.content}" for line in example)
                for example in char.message_examples
            ),
            "actions": format_actions(all_actions),
            "actionNames": ", ".join(a.name for a in all_actions),
            "actionExamples": format_action_examples(all_actions),
            "providers": (
                f"# Additional Information About {char.name} and The World\n{provider_text}"
                if provider_text else ""
            ),
            "recentMessages": await self._format_messages(recent),
            "recentMessagesData": recent,
        }
        state.update(extras or {})
        logger.debug(
            "Composed state for %s in room %s (%d recent, %d actions)",
            char.name, message.room_id, len(recent), len(all_actions),
        )
        return state

    async def update_recent_message_state(self, state: State) -> State:
        recent = await self.message_manager.get_memories(state["roomId"], self.conversation_length)
        return {
            **state,
            "recentMessages": await self._format_messages(recent),
            "recentMessagesData": recent,
        }

    async def _run_providers(self, message: Memory, providers: Sequence[Provider]) -> str:
        results = [await p.get(self, message, None) for p in providers]
        return "\n".join(r for r in results if r)

    def _message_directions(self) -> str:
        lines = [*self.character.style.all, *self.character.style.chat]
        if not lines:
            return ""
        return f"# Message Directions for {self.character.name}\n" + "\n".join(lines)

    async def _format_messages(self, memories: Sequence[Memory]) -> str:
        names: dict[str, str] = {self.agent_id: self.character.name}
        lines: list[str] = []
        for memory in memories:
            if memory.user_id not in names:
                account = await self.adapter.get_account(memory.user_id)
                names[memory.user_id] = account["name"] if account else "Unknown User"
            line = f"{names[memory.user_id]}: {memory.content.text}"
            action = memory.content.action
            if action and _normalize_action_name(action) not in NO_ACTION:
                line += f" ({action})"
            lines.append(line)
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Actions and evaluation
    # ------------------------------------------------------------------

    async def process_actions(
        self,
        message: Memory,
        responses: Sequence[Memory],
        state: State,
        callback: HandlerCallback,
        *,
        actions: Sequence[RuntimeAction] = (),
    ) -> None:
        """Dispatch the action named by each response, if it resolves and validates."""
        available = [*self.actions, *actions]
        for response in responses:
            name = response.content.action
            if not name:
                continue
            action = find_action(available, name)
            if action is None:
                if _normalize_action_name(name) not in NO_ACTION:
                    logger.warning("No action found for %r, skipped", name)
                continue
            if not await action.validate(self, message, state):
                logger.debug("Action %s did not validate, skipped", action.name)
                continue
            logger.debug("Running action %s for room %s", action.name, message.room_id)
            await action.handler(self, message, state, {}, callback)

    async def evaluate(self, message: Memory, state: State) -> list[str]:
        """Run every evaluator that validates; return the names that ran."""
        ran: list[str] = []
        for evaluator in self.evaluators:
            if not await evaluator.validate(self, message, state):
                continue
            await evaluator.handler(self, message, state)
            ran.append(evaluator.name)
        return ran


def _now_ms() -> int:
    return int(time.time() * 1000)
