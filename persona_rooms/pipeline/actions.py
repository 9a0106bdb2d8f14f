"""Declared actions: installation as runtime actions and parameter generation.

For one declared action the generator renders a parameter prompt, converts
the parameter list into a structured-output schema requiring a `message`
string and a `parameters` object, asks the model for a matching object, and
maps the returned parameters onto the declared names.

The schema names each property after its parameter, so well-behaved models
answer with named keys. Positional keys ("0", "1", ...) are still accepted
and mapped by index onto the declared parameter order.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from persona_rooms.errors import GenerationError
from persona_rooms.generation import generate_object
from persona_rooms.llm import ModelClass
from persona_rooms.models import ActionDefinition, Content, Memory
from persona_rooms.prompts import ACTION_PARAMETERS_TEMPLATE, render_prompt
from persona_rooms.runtime import AgentRuntime, HandlerCallback, RuntimeAction, State
from persona_rooms.schema import to_structured_schema

logger = logging.getLogger(__name__)


def action_output_schema(action: ActionDefinition) -> dict[str, Any]:
    """JSON schema for the generator's output object."""
    return {
        "type": "object",
        "properties": {
            "message": {"type": "string"},
            "parameters": {
                "type": "object",
                "properties": {
                    p.name: {"type": p.type, "description": p.description}
                    for p in action.parameters
                },
            },
        },
        "required": ["message", "parameters"],
    }


def build_action_prompt(action: ActionDefinition, state: State) -> str:
    parameters = [p.model_dump() for p in action.parameters]
    return render_prompt(ACTION_PARAMETERS_TEMPLATE, {
        "actionName": action.name,
        "actionDescription": action.description,
        "parametersJson": json.dumps(parameters),
        "examples": [
            "\n".join(line.content for line in example) for example in action.examples
        ],
        "providers": state.get("providers", ""),
        "recentMessages": state.get("recentMessages", ""),
        "message": state.get("message", ""),
    })


def remap_parameters(action: ActionDefinition, raw: dict[str, Any]) -> dict[str, Any]:
    """Map generated parameters onto declared names.

    Declared names pass through; digit keys are taken as positions in the
    declared parameter list. Anything else is dropped.
    """
    declared = [p.name for p in action.parameters]
    mapped: dict[str, Any] = {}
    for key, value in raw.items():
        if key in declared:
            mapped[key] = value
        elif key.isdigit() and int(key) < len(declared):
            mapped.setdefault(declared[int(key)], value)
        else:
            logger.warning("Action %s: dropping undeclared parameter %r", action.name, key)
    return mapped


async def generate_action_call(
    runtime: AgentRuntime, action: ActionDefinition, state: State
) -> Content:
    """Generate the message and parameters for one action invocation."""
    prompt = build_action_prompt(action, state)
    schema = to_structured_schema(action_output_schema(action), name=f"{action.name}Output")
    result = await generate_object(
        runtime=runtime,
        context=prompt,
        model_class=ModelClass.LARGE,
        schema=schema,
        stage=f"action:{action.name}",
    )
    if not result.object:
        raise GenerationError("Failed to generate parameters")

    message = result.object.get("message") or ""
    parameters = remap_parameters(action, result.object.get("parameters") or {})
    return Content(
        text=message,
        action=action.name,
        data={"message": message, "parameters": parameters},
    )


def install_actions(definitions: list[ActionDefinition]) -> list[RuntimeAction]:
    """Turn declared actions into runtime actions that always validate."""
    return [_runtime_action(definition) for definition in definitions]


def _runtime_action(definition: ActionDefinition) -> RuntimeAction:
    async def handler(
        runtime: AgentRuntime,
        message: Memory,
        state: State | None,
        options: dict,
        callback: HandlerCallback | None,
    ) -> None:
        if state is None or callback is None:
            return
        content = await generate_action_call(runtime, definition, state)
        await callback(content)

    return RuntimeAction(
        name=definition.name,
        description=definition.description,
        handler=handler,
        similes=list(definition.similes),
        examples=list(definition.examples),
        parameters=list(definition.parameters),
        suppress_initial_message=definition.suppress_initial_message,
    )
