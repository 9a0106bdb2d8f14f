"""Conversation identity and room/participant management.

Every conversation has three interchangeable identifiers:

    id                 ordinal, externally visible, allocated here
    secret             the storage room id
    persistence_token  optional caller key; when given it is also the
                       room id the storage adapter allocates

A token names at most one conversation: creating a second conversation with
a token still in use (a live room, or a retained finished one) fails. Only
conversations created with a token resolve by token.

ConversationIdentityMap pairs ids with secrets. ConversationManager keeps a
RoomBinding per secret (participant roster + current runtime binding) and
reconciles the roster against the storage adapter.

Retention: finishing a conversation always removes the storage room. With
retain_finished=False (default) the in-memory binding and identity entries
are evicted too; with retain_finished=True they are kept, marked finished,
for later inspection. Lookups return None either way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from persona_rooms.errors import UnknownCharacterError
from persona_rooms.models import Character, Conversation, ConversationData, ErrorResult, User
from persona_rooms.registry import CharacterRegistry, RuntimeBinding
from persona_rooms.storage import StorageAdapter

logger = logging.getLogger(__name__)

ROOM_NOT_FOUND = ErrorResult(status=404, message="Room not found")


class ConversationIdentityMap:
    """Bidirectional ordinal id ↔ secret mapping with a monotonic allocator."""

    def __init__(self) -> None:
        self._count = 0
        self._secrets: dict[int, str] = {}
        self._ids: dict[str, int] = {}

    def allocate(self, secret: str) -> int:
        self._count += 1
        self._secrets[self._count] = secret
        self._ids[secret] = self._count
        return self._count

    def secret_for(self, conversation_id: int) -> str | None:
        return self._secrets.get(conversation_id)

    def id_for(self, secret: str) -> int | None:
        return self._ids.get(secret)

    def release(self, secret: str) -> None:
        conversation_id = self._ids.pop(secret, None)
        if conversation_id is not None:
            self._secrets.pop(conversation_id, None)

    def __len__(self) -> int:
        return len(self._ids)


@dataclass
class RoomBinding:
    binding: RuntimeBinding
    users: list[User] = field(default_factory=list)
    persistence_token: str | None = None
    finished: bool = False


class ConversationManager:
    def __init__(
        self,
        adapter: StorageAdapter,
        registry: CharacterRegistry,
        retain_finished: bool = False,
    ) -> None:
        self._adapter = adapter
        self._registry = registry
        self.retain_finished = retain_finished
        self.identities = ConversationIdentityMap()
        self.rooms: dict[str, RoomBinding] = {}

    def room_for(self, conversation: Conversation) -> RoomBinding | None:
        room = self.rooms.get(conversation.secret)
        if room is None or room.finished:
            return None
        return room

    # ------------------------------------------------------------------
    # Create / resolve / finish
    # ------------------------------------------------------------------

    async def create_conversation(
        self,
        character: Character,
        users: list[User],
        persistence_token: str | None = None,
    ) -> Conversation | None:
        """Allocate a room bound to `character`.

        None if the character is not registered, or if `persistence_token`
        already names a room or a tracked conversation.
        """
        binding = self._registry.binding_for(character)
        if binding is None:
            return None
        if persistence_token is not None and (
            persistence_token in self.rooms
            or await self._adapter.get_room(persistence_token) is not None
        ):
            logger.warning("Persistence token %r is already in use", persistence_token)
            return None

        if binding.runtime.status == "stopped":
            await binding.runtime.initialize()
        secret = await self._adapter.create_room(persistence_token)
        await self._adapter.add_participant(binding.runtime.agent_id, secret)

        conversation_id = self.identities.allocate(secret)
        self.rooms[secret] = RoomBinding(binding=binding, persistence_token=persistence_token)
        conversation = Conversation(
            id=conversation_id,
            secret=secret,
            character=character,
            users=[],
            persistence_token=persistence_token,
        )
        await self.set_conversation_users(conversation, users)
        conversation.users = list(users)
        logger.info(
            "Conversation %d created for %s with %d user(s)",
            conversation_id, character.name, len(users),
        )
        return conversation

    async def get_conversation_by(
        self,
        *,
        id: int | None = None,
        secret: str | None = None,
        persistence_token: str | None = None,
    ) -> Conversation | None:
        """Resolve a conversation from exactly one of its identifiers."""
        selectors = [s for s in (id, secret, persistence_token) if s is not None]
        if len(selectors) != 1:
            raise ValueError("Exactly one of id, secret or persistence_token is required")

        if id is not None:
            candidate = self.identities.secret_for(id)
        else:
            candidate = secret if secret is not None else persistence_token
        if candidate is None:
            return None

        room_id = await self._adapter.get_room(candidate)
        if room_id is None:
            return None
        room = self.rooms.get(room_id)
        if room is None or room.finished:
            return None
        if persistence_token is not None and room.persistence_token != persistence_token:
            return None
        conversation_id = self.identities.id_for(room_id)
        if conversation_id is None:
            return None

        return Conversation(
            id=conversation_id,
            secret=room_id,
            character=room.binding.character,
            users=list(room.users),
            persistence_token=room.persistence_token,
            data=ConversationData(),
        )

    async def finish_conversation(self, conversation: Conversation) -> None:
        await self._adapter.remove_room(conversation.secret)
        if self.retain_finished:
            room = self.rooms.get(conversation.secret)
            if room is not None:
                room.finished = True
        else:
            self.rooms.pop(conversation.secret, None)
            self.identities.release(conversation.secret)
        conversation.data.finished = True
        logger.info("Conversation %d finished", conversation.id)

    # ------------------------------------------------------------------
    # Membership and character
    # ------------------------------------------------------------------

    async def set_conversation_users(
        self, conversation: Conversation, users: list[User]
    ) -> ErrorResult | None:
        """Make the room's storage participants exactly the given users.

        Participants not in `users` are removed first; then every user not
        yet a participant gets a runtime connection and is added.
        """
        room = self.room_for(conversation)
        if room is None:
            return ROOM_NOT_FOUND

        room.users = list(users)
        wanted = {user.id for user in users}
        participants = await self._adapter.get_participants_for_room(conversation.secret)

        for participant in participants:
            if participant not in wanted:
                await self._adapter.remove_participant(participant, conversation.secret)

        runtime = room.binding.runtime
        for user in users:
            if user.id in participants:
                continue
            await runtime.ensure_connection(user.id, conversation.secret, user.name, user.name, "direct")
            await self._adapter.add_participant(user.id, conversation.secret)

        conversation.users = list(users)
        return None

    async def set_conversation_character(
        self, conversation: Conversation, character: Character
    ) -> ErrorResult | None:
        """Rebind the room to another character's runtime.

        The current runtime is stopped when no other room still uses it.
        """
        new_binding = self._registry.binding_for(character)
        if new_binding is None:
            raise UnknownCharacterError(
                f"Character not found when setting conversation character: {character.name}"
            )
        room = self.room_for(conversation)
        if room is None:
            return ROOM_NOT_FOUND

        current = room.binding
        if current is not new_binding:
            still_used = any(
                other.binding is current and not other.finished
                for secret, other in self.rooms.items()
                if secret != conversation.secret
            )
            if not still_used:
                await current.runtime.stop()
            if new_binding.runtime.status == "stopped":
                await new_binding.runtime.initialize()
            room.binding = new_binding
            logger.info(
                "Conversation %d switched from %s to %s",
                conversation.id, current.character.name, new_binding.character.name,
            )

        conversation.character = character
        return None
