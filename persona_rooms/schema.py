"""JSON-schema to pydantic validator conversion for structured model output.

Only the subset needed for action parameters is supported: object, string,
number, integer, boolean and array. Object properties may be a mapping, or a
list (as produced when a parameter list is passed verbatim), in which case
the list positions become the keys "0", "1", ...

Generated fields get synthetic Python names and carry the schema key as
their alias, so any key (digits, reserved words) round-trips. Dump with
by_alias=True.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, create_model

_SCALARS: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
}


def to_structured_schema(schema: dict[str, Any], name: str = "StructuredOutput") -> type[BaseModel]:
    """Build a pydantic model validating objects of the given JSON schema."""
    if schema.get("type") != "object":
        raise ValueError(f"Structured output must be an object schema, got {schema.get('type')!r}")
    return _object_model(schema, name, allow_extra=False)


def schema_properties(schema: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Return an object schema's properties keyed by name (or position)."""
    props = schema.get("properties") or {}
    if isinstance(props, list):
        return {str(i): p for i, p in enumerate(props)}
    return dict(props)


def _object_model(schema: dict[str, Any], name: str, *, allow_extra: bool) -> type[BaseModel]:
    required = set(schema.get("required", []))
    fields: dict[str, Any] = {}
    for index, (key, prop) in enumerate(schema_properties(schema).items()):
        annotation = _annotation(prop, f"{name}_{index}")
        description = prop.get("description") if isinstance(prop, dict) else None
        if key in required:
            field = Field(..., alias=key, description=description)
        else:
            annotation = annotation | None
            field = Field(None, alias=key, description=description)
        fields[f"f{index}"] = (annotation, field)
    config = ConfigDict(extra="allow" if allow_extra else "ignore", populate_by_name=True)
    return create_model(name, __config__=config, **fields)


def _annotation(prop: Any, name: str) -> Any:
    if not isinstance(prop, dict):
        return Any
    kind = prop.get("type")
    if kind in _SCALARS:
        return _SCALARS[kind]
    if kind == "object":
        # nested objects keep keys the schema does not name
        return _object_model(prop, name, allow_extra=True)
    if kind == "array":
        return list[_annotation(prop.get("items"), f"{name}_item")]
    return Any
