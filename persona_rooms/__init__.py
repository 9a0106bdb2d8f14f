"""persona_rooms: characters, conversations and message handling over agent runtimes.

Public API:

    Framework           facade: start/stop, characters, conversations, messages
    ProcessLifecycle    host-owned start guard passed to Framework
    load_settings       Settings from environment / .env

Typical flow: register a character definition (get_or_create_character),
load it, create a conversation with users, send messages, optionally rebind
the conversation to another character, finish it.
"""

from persona_rooms.config import Settings, load_settings  # noqa: F401
from persona_rooms.errors import (  # noqa: F401
    AlreadyInitializedError,
    FrameworkError,
    GenerationError,
    NotFoundError,
    UnknownCharacterError,
    ValidationError,
)
from persona_rooms.framework import Framework, ProcessLifecycle, default_lifecycle  # noqa: F401
from persona_rooms.models import (  # noqa: F401
    ActionCall,
    Character,
    CharacterDefinition,
    ContextEntry,
    Conversation,
    ErrorResult,
    MessageResult,
    User,
)
