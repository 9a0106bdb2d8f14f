"""Per-message pipeline: one inbound message in, one reply (and calls) out."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from persona_rooms.errors import GenerationError
from persona_rooms.generation import generate_message_response
from persona_rooms.llm import ModelClass
from persona_rooms.models import (
    ActionCall,
    Content,
    ContextEntry,
    Conversation,
    ErrorResult,
    Memory,
    MessageResult,
)
from persona_rooms.prompts import MESSAGE_HANDLER_TEMPLATE, compose_context
from persona_rooms.runtime import AgentRuntime, State, find_action

from .actions import install_actions

if TYPE_CHECKING:
    from persona_rooms.conversations import ConversationManager

logger = logging.getLogger(__name__)


@dataclass
class ContextProvider:
    """Renders caller-supplied facts as one comma-joined key=value string."""

    entries: list[ContextEntry]

    async def get(self, runtime: AgentRuntime, message: Memory, state: State | None) -> str:
        return ",".join(f"{e.key}={e.value}" for e in self.entries)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_memory(runtime: AgentRuntime, user_id: str, room_id: str, content: Content) -> Memory:
    return Memory(
        id=str(uuid.uuid4()),
        agent_id=runtime.agent_id,
        user_id=user_id,
        room_id=room_id,
        content=content,
        created_at=_now_ms(),
    )


def _context_entries(context: Sequence[ContextEntry | Mapping[str, str]]) -> list[ContextEntry]:
    return [e if isinstance(e, ContextEntry) else ContextEntry.model_validate(e) for e in context]


async def send_to_conversation(
    manager: ConversationManager,
    conversation: Conversation,
    message: str,
    user_id: str,
    context: Sequence[ContextEntry | Mapping[str, str]] = (),
    *,
    attempts: int = 3,
) -> MessageResult | ErrorResult:
    """Run one message through the conversation's bound runtime.

    Returns a MessageResult, or an ErrorResult for a missing room (404),
    an unknown sender (404) or unusable model output (500).
    """
    # 1-2. Resolve room and sender
    room = manager.room_for(conversation)
    if room is None:
        return ErrorResult(status=404, message="Room not found")

    runtime = room.binding.runtime
    character = room.binding.character
    username = next((u.name for u in room.users if u.id == user_id), None)
    if username is None:
        return ErrorResult(status=404, message="User not found")

    # 3. Inbound memory
    memory = _new_memory(runtime, user_id, conversation.secret, Content(text=message, source="direct"))
    await runtime.message_manager.add_embedding_to_memory(memory)
    await runtime.message_manager.create_memory(memory)

    # 4-5. Per-call context provider and declared actions
    providers = [ContextProvider(_context_entries(context))]
    actions = install_actions(character.definition.actions)
    logger.debug(
        "Message for %s in room %s: %d context entries, %d actions",
        character.name, conversation.secret, len(providers[0].entries), len(actions),
    )

    # 6. Dialogue generation
    state = await runtime.compose_state(
        memory,
        {
            "agentName": character.name,
            "message": message,
            "participants": "\n".join(f"{u.name} ({u.id})" for u in room.users),
            "playerName": username,
        },
        providers=providers,
        actions=actions,
    )
    prompt = compose_context(state, MESSAGE_HANDLER_TEMPLATE)
    response = await generate_message_response(
        runtime=runtime, context=prompt, model_class=ModelClass.LARGE, attempts=attempts,
    )
    if response is None:
        return ErrorResult(status=500, message="Failed to generate message")

    # 7-8. Response memory, refreshed state
    response.in_reply_to = memory.id
    response_memory = _new_memory(runtime, runtime.agent_id, conversation.secret, response)
    await runtime.message_manager.add_embedding_to_memory(response_memory)
    await runtime.message_manager.create_memory(response_memory)
    state = await runtime.update_recent_message_state(state)

    # 9. Actions
    action_content: Content | None = None

    async def collect(content: Content) -> list[Memory]:
        nonlocal action_content
        action_content = content
        content.in_reply_to = memory.id
        action_memory = _new_memory(runtime, runtime.agent_id, conversation.secret, content)
        await runtime.message_manager.add_embedding_to_memory(action_memory)
        await runtime.message_manager.create_memory(action_memory)
        return [action_memory]

    try:
        await runtime.process_actions(memory, [response_memory], state, collect, actions=actions)
    except GenerationError as e:
        logger.warning("Action for %s failed: %s", character.name, e)
        return ErrorResult(status=e.status, message=str(e))

    # 10. Evaluation (side effects only)
    await runtime.evaluate(memory, state)

    # 11. Suppression and result assembly
    selected = find_action([*runtime.actions, *actions], response.action) if response.action else None
    if selected is not None and selected.suppress_initial_message:
        outputs = [action_content] if action_content else []
    else:
        outputs = [response, action_content] if action_content else [response]

    return MessageResult(
        content=next((c.text for c in outputs if c.text), None),
        calls=[
            ActionCall(name=c.action, message=c.text, parameters=c.data.get("parameters") or {})
            for c in outputs
            if c.action and c.data
        ],
    )
