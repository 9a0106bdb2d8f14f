"""Model invocation helpers: dialogue responses and structured objects.

Both helpers send a rendered prompt through the runtime's LLM client and
parse a JSON object out of the completion text. Transport failures (LLMError)
propagate; unusable output is reported as None.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pydantic

from persona_rooms.llm import ModelClass
from persona_rooms.models import Content

if TYPE_CHECKING:
    from persona_rooms.runtime import AgentRuntime

logger = logging.getLogger(__name__)


@dataclass
class ObjectResult:
    object: dict[str, Any] | None


def parse_json_object(text: str) -> dict | None:
    """Parse a JSON object from LLM output, stripping markdown fences.

    Falls back to the outermost {...} span when the object is surrounded by
    prose.
    """
    cleaned = text.strip()
    if cleaned.startswith("```") or "```json" in cleaned:
        start = cleaned.find("```")
        lines = cleaned[start:].split("\n")
        body: list[str] = []
        for line in lines[1:]:
            if line.strip().startswith("```"):
                break
            body.append(line)
        cleaned = "\n".join(body)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        first, last = cleaned.find("{"), cleaned.rfind("}")
        if first == -1 or last <= first:
            return None
        try:
            data = json.loads(cleaned[first:last + 1])
        except json.JSONDecodeError as e:
            logger.warning("Model output is not valid JSON: %s", e)
            return None
    return data if isinstance(data, dict) else None


async def generate_message_response(
    *,
    runtime: AgentRuntime,
    context: str,
    model_class: ModelClass = ModelClass.LARGE,
    attempts: int = 3,
) -> Content | None:
    """Ask for a dialogue completion; retry while the output has no JSON object."""
    for attempt in range(1, attempts + 1):
        text = await runtime.llm("dialogue", context, model_class)
        parsed = parse_json_object(text)
        if parsed is not None:
            parsed["text"] = parsed.get("text") or ""
            try:
                return Content.model_validate(parsed)
            except pydantic.ValidationError as e:
                logger.warning("Dialogue output rejected (attempt %d): %s", attempt, e)
                continue
        logger.warning("Dialogue output had no JSON object (attempt %d/%d)", attempt, attempts)
    return None


async def generate_object(
    *,
    runtime: AgentRuntime,
    context: str,
    model_class: ModelClass = ModelClass.LARGE,
    schema: type[pydantic.BaseModel],
    stage: str = "object",
) -> ObjectResult:
    """Ask for a JSON object and validate it against `schema`."""
    text = await runtime.llm(stage, context, model_class)
    parsed = parse_json_object(text)
    if parsed is None:
        logger.warning("Structured output for stage=%s had no JSON object", stage)
        return ObjectResult(object=None)
    try:
        validated = schema.model_validate(parsed)
    except pydantic.ValidationError as e:
        logger.warning("Structured output for stage=%s failed validation: %s", stage, e)
        return ObjectResult(object=None)
    return ObjectResult(object=validated.model_dump(by_alias=True, exclude_unset=True))
