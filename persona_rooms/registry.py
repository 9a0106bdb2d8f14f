"""Character registry: one agent runtime per distinct character.

Characters are identified by their personality hash. Registering the same
definition twice returns a new handle bound to the existing runtime.
Loading a character initializes its runtime; stopping is idempotent.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import pydantic

from persona_rooms.errors import NotFoundError, ValidationError
from persona_rooms.hashing import personality_hash, string_to_uuid
from persona_rooms.llm import LLM
from persona_rooms.models import Character, CharacterDefinition
from persona_rooms.runtime import AgentRuntime, RuntimeCharacterConfig, StyleBuckets
from persona_rooms.storage import CacheManager, StorageAdapter

logger = logging.getLogger(__name__)


@dataclass
class RuntimeBinding:
    character: Character
    runtime: AgentRuntime


def _format_issue(error: dict[str, Any]) -> str:
    path = ".".join(str(part) for part in error["loc"]) or "(root)"
    return f"{path}: {error['msg']}"


def parse_definition(candidate: Any) -> CharacterDefinition:
    """Validate a character-like value, raising ValidationError with every issue."""
    if isinstance(candidate, CharacterDefinition):
        return candidate
    if not isinstance(candidate, Mapping):
        raise ValidationError([f"(root): expected a mapping, got {type(candidate).__name__}"])
    try:
        return CharacterDefinition.model_validate(dict(candidate))
    except pydantic.ValidationError as e:
        raise ValidationError([_format_issue(err) for err in e.errors()]) from e


def build_runtime_config(definition: CharacterDefinition, provider: str) -> RuntimeCharacterConfig:
    return RuntimeCharacterConfig(
        name=definition.name,
        bio=definition.bio,
        lore=definition.lore,
        knowledge=definition.knowledge,
        message_examples=definition.message_examples,
        actions=definition.actions,
        topics=definition.topics,
        adjectives=definition.adjectives,
        style=StyleBuckets(all=definition.style),
        model_provider=provider,
    )


class CharacterRegistry:
    """Owns the hash → RuntimeBinding map and the loaded-character list.

    Args:
        adapter:  Storage adapter shared by every runtime.
        llm:      Generative client shared by every runtime.
        provider: Model provider name attached to each runtime.
        api_key:  Credentials attached to each runtime.
    """

    def __init__(self, adapter: StorageAdapter, llm: LLM, provider: str, api_key: str = "") -> None:
        self._adapter = adapter
        self._llm = llm
        self._provider = provider
        self._api_key = api_key
        self.bindings: dict[str, RuntimeBinding] = {}
        self.loaded: list[Character] = []

    def validate(self, candidate: Any) -> bool:
        parse_definition(candidate)
        return True

    async def get_or_create(self, definition: CharacterDefinition | Mapping[str, Any]) -> Character:
        parsed = parse_definition(definition)
        character = Character.from_definition(parsed)
        if character.hash in self.bindings:
            return character

        runtime = AgentRuntime(
            character=build_runtime_config(parsed, self._provider),
            adapter=self._adapter,
            token=self._api_key,
            model_provider=self._provider,
            cache_manager=CacheManager(self._adapter, character.hash),
            llm=self._llm,
            agent_id=string_to_uuid(character.hash),
        )
        self.bindings[character.hash] = RuntimeBinding(character=character, runtime=runtime)
        logger.debug("Registered character %s (%s)", character.name, character.hash[:12])
        return Character.from_definition(parsed)

    def character_hash(self, character: Character) -> str:
        return personality_hash(character.definition)

    def contains(self, character: Character) -> bool:
        return self.character_hash(character) in self.bindings

    def binding_for(self, character: Character) -> RuntimeBinding | None:
        return self.bindings.get(self.character_hash(character))

    async def load(self, character: Character) -> None:
        binding = self.binding_for(character)
        if binding is None:
            raise NotFoundError(f"Character not found: {character.name}")
        await binding.runtime.initialize()
        if all(c.hash != binding.character.hash for c in self.loaded):
            self.loaded.append(character)
        logger.debug("Loaded character %s", character.name)

    async def stop_all(self) -> None:
        for binding in self.bindings.values():
            await binding.runtime.stop()
