"""Framework facade: registry, conversations and pipeline behind one API.

The hosting process owns a ProcessLifecycle and passes it to the framework.
The runtime layer may be started once per lifecycle: a second start() on any
framework sharing it raises AlreadyInitializedError. Frameworks built without
an explicit lifecycle share the module's default_lifecycle, i.e. one start
per process.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from persona_rooms.config import Settings
from persona_rooms.conversations import ConversationManager
from persona_rooms.errors import AlreadyInitializedError
from persona_rooms.llm import LLM, HttpLLM, ModelClass
from persona_rooms.models import (
    Character,
    CharacterDefinition,
    ContextEntry,
    Conversation,
    ErrorResult,
    MessageResult,
    User,
)
from persona_rooms.pipeline import send_to_conversation
from persona_rooms.registry import CharacterRegistry
from persona_rooms.storage import InMemoryStorageAdapter, JsonFileStorageAdapter, StorageAdapter

logger = logging.getLogger(__name__)


class ProcessLifecycle:
    """Records which framework has started the runtime layer."""

    def __init__(self) -> None:
        self._owner: object | None = None

    @property
    def claimed(self) -> bool:
        return self._owner is not None

    def claim(self, owner: object) -> None:
        if self._owner is not None:
            raise AlreadyInitializedError(
                "Framework already initialized once. Cannot run two instances in one process."
            )
        self._owner = owner

    def release(self, owner: object) -> None:
        if self._owner is owner:
            self._owner = None


default_lifecycle = ProcessLifecycle()


class Framework:
    """Orchestrates characters, conversations and messages.

    Args:
        adapter:          Storage adapter (rooms, participants, memories, cache).
        llm:              Generative client shared by every runtime.
        provider:         Model provider name attached to runtimes.
        api_key:          Credentials attached to runtimes.
        lifecycle:        Start guard; defaults to the process-wide one.
        retain_finished:  Keep finished conversations in memory (see conversations).
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        llm: LLM,
        provider: str,
        api_key: str = "",
        lifecycle: ProcessLifecycle | None = None,
        retain_finished: bool = False,
    ) -> None:
        self.adapter = adapter
        self.registry = CharacterRegistry(adapter, llm, provider, api_key)
        self.conversations = ConversationManager(adapter, self.registry, retain_finished)
        self._lifecycle = lifecycle or default_lifecycle

    @classmethod
    def from_settings(cls, settings: Settings, lifecycle: ProcessLifecycle | None = None) -> Framework:
        adapter: StorageAdapter
        if settings.data_dir is not None:
            adapter = JsonFileStorageAdapter(settings.data_dir)
        else:
            adapter = InMemoryStorageAdapter()
        models = {
            ModelClass.SMALL: settings.model_small,
            ModelClass.MEDIUM: settings.model_medium,
            ModelClass.LARGE: settings.model_large,
        }
        llm = HttpLLM(
            provider_url=settings.provider_url,
            api_key=settings.api_key,
            provider_format=settings.provider,
            models={k: v for k, v in models.items() if v},
            embedding_model=settings.embedding_model,
            timeout=settings.timeout,
        )
        return cls(
            adapter,
            llm,
            provider=settings.provider,
            api_key=settings.api_key,
            lifecycle=lifecycle,
            retain_finished=settings.retain_finished,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Claim the lifecycle and initialize storage. A failed start can be retried."""
        self._lifecycle.claim(self)
        try:
            await self.adapter.init()
        except Exception:
            self._lifecycle.release(self)
            raise
        logger.info("Framework started")

    async def stop(self) -> None:
        await self.registry.stop_all()
        logger.info("Framework stopped")

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def validate_character(self, candidate: Any) -> bool:
        return self.registry.validate(candidate)

    async def get_or_create_character(
        self, definition: CharacterDefinition | Mapping[str, Any]
    ) -> Character:
        return await self.registry.get_or_create(definition)

    def contains_character(self, character: Character) -> bool:
        return self.registry.contains(character)

    async def load_character(self, character: Character) -> None:
        await self.registry.load(character)

    def get_character_hash(self, character: Character) -> str:
        return self.registry.character_hash(character)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def create_conversation(
        self,
        character: Character,
        users: list[User],
        persistence_token: str | None = None,
    ) -> Conversation | None:
        return await self.conversations.create_conversation(character, users, persistence_token)

    async def get_conversation_by(
        self,
        *,
        id: int | None = None,
        secret: str | None = None,
        persistence_token: str | None = None,
    ) -> Conversation | None:
        return await self.conversations.get_conversation_by(
            id=id, secret=secret, persistence_token=persistence_token,
        )

    async def set_conversation_users(
        self, conversation: Conversation, users: list[User]
    ) -> ErrorResult | None:
        return await self.conversations.set_conversation_users(conversation, users)

    async def set_conversation_character(
        self, conversation: Conversation, character: Character
    ) -> ErrorResult | None:
        return await self.conversations.set_conversation_character(conversation, character)

    async def finish_conversation(self, conversation: Conversation) -> None:
        await self.conversations.finish_conversation(conversation)

    async def send_to_conversation(
        self,
        conversation: Conversation,
        message: str,
        user_id: str,
        context: Sequence[ContextEntry | Mapping[str, str]] = (),
    ) -> MessageResult | ErrorResult:
        return await send_to_conversation(self.conversations, conversation, message, user_id, context)
