"""Core domain models.

Character definitions, conversation handles, memories and pipeline results.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from persona_rooms.hashing import personality_hash

ParameterType = Literal["number", "boolean", "string"]


# ---------------------------------------------------------------------------
# Character definitions (caller-owned, validated on entry)
# ---------------------------------------------------------------------------

class MessageExample(BaseModel):
    """One line of an example transcript."""

    user: str
    content: str


class ActionParameter(BaseModel):
    name: str
    description: str
    type: ParameterType


class ActionDefinition(BaseModel):
    """A model-invocable function a character declares."""

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    similes: list[str] = Field(min_length=1)
    examples: list[list[MessageExample]] = Field(min_length=1)
    parameters: list[ActionParameter] = Field(default_factory=list)
    suppress_initial_message: bool = Field(
        default=False,
        validation_alias=AliasChoices("suppress_initial_message", "suppressInitialMessage"),
    )


class CharacterDefinition(BaseModel):
    """A personality definition. Identity is the hash of its content."""

    name: str = Field(min_length=1)
    bio: list[str] = Field(min_length=1)
    lore: list[str] = Field(min_length=1)
    knowledge: list[str] = Field(min_length=1)
    topics: list[str] = Field(min_length=1)
    adjectives: list[str] = Field(min_length=1)
    style: list[str] = Field(min_length=1)
    message_examples: list[list[MessageExample]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("message_examples", "messageExamples"),
    )
    actions: list[ActionDefinition] = Field(
        default_factory=list,
        validation_alias=AliasChoices("actions", "functions"),
    )


# ---------------------------------------------------------------------------
# Handles returned to the caller
# ---------------------------------------------------------------------------

class Character(BaseModel):
    """Handle for a registered character: name, content hash, definition."""

    name: str
    hash: str
    definition: CharacterDefinition

    @classmethod
    def from_definition(cls, definition: CharacterDefinition) -> Character:
        return cls(
            name=definition.name,
            hash=personality_hash(definition),
            definition=definition,
        )


class User(BaseModel):
    id: str
    name: str


class ConversationData(BaseModel):
    busy: bool = False
    finished: bool = False


class Conversation(BaseModel):
    """A multi-party chat session bound to one character at a time."""

    id: int
    secret: str
    character: Character
    users: list[User] = Field(default_factory=list)
    persistence_token: str | None = None
    data: ConversationData = Field(default_factory=ConversationData)


class ContextEntry(BaseModel):
    """A caller-supplied world-state fact rendered as key=value."""

    key: str
    value: str


# ---------------------------------------------------------------------------
# Memories
# ---------------------------------------------------------------------------

class Content(BaseModel):
    """Message content as stored in memories and produced by the model.

    Model output may carry additional keys; they are kept.
    """

    model_config = ConfigDict(extra="allow")

    text: str = ""
    action: str | None = None
    data: dict[str, Any] | None = None
    source: str | None = None
    in_reply_to: str | None = None
    user: str | None = None


class Memory(BaseModel):
    id: str
    agent_id: str
    user_id: str
    room_id: str
    content: Content
    created_at: int  # epoch milliseconds
    embedding: list[float] | None = None


# ---------------------------------------------------------------------------
# Pipeline results
# ---------------------------------------------------------------------------

class ActionCall(BaseModel):
    name: str
    message: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class MessageResult(BaseModel):
    """Outward-facing result of one message."""

    content: str | None = None
    calls: list[ActionCall] = Field(default_factory=list)


class ErrorResult(BaseModel):
    """An expected failure, returned instead of raised (HTTP-like status)."""

    status: int
    message: str
