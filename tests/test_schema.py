"""Tests for persona_rooms.schema: JSON schema to validator conversion."""

import pytest
from pydantic import ValidationError

from persona_rooms.schema import schema_properties, to_structured_schema


class TestToStructuredSchema:
    def test_rejects_non_object(self) -> None:
        with pytest.raises(ValueError, match="object schema"):
            to_structured_schema({"type": "string"})

    def test_required_keys_enforced(self) -> None:
        model = to_structured_schema({
            "type": "object",
            "properties": {"message": {"type": "string"}},
            "required": ["message"],
        })
        with pytest.raises(ValidationError):
            model.model_validate({})

    def test_optional_keys_may_be_absent(self) -> None:
        model = to_structured_schema({
            "type": "object",
            "properties": {"note": {"type": "string"}},
        })
        assert model.model_validate({}).model_dump(by_alias=True, exclude_unset=True) == {}

    def test_scalar_types(self) -> None:
        model = to_structured_schema({
            "type": "object",
            "properties": {
                "s": {"type": "string"},
                "n": {"type": "number"},
                "b": {"type": "boolean"},
            },
            "required": ["s", "n", "b"],
        })
        dumped = model.model_validate({"s": "x", "n": 2, "b": True}).model_dump(by_alias=True)
        assert dumped == {"s": "x", "n": 2.0, "b": True}
        with pytest.raises(ValidationError):
            model.model_validate({"s": "x", "n": "lots", "b": True})

    def test_top_level_extra_keys_dropped(self) -> None:
        model = to_structured_schema({
            "type": "object",
            "properties": {"message": {"type": "string"}},
            "required": ["message"],
        })
        dumped = model.model_validate({"message": "m", "junk": 1}).model_dump(by_alias=True)
        assert dumped == {"message": "m"}

    def test_nested_object_keeps_unknown_keys(self) -> None:
        model = to_structured_schema({
            "type": "object",
            "properties": {
                "parameters": {"type": "object", "properties": {"mood": {"type": "string"}}},
            },
            "required": ["parameters"],
        })
        dumped = model.model_validate({"parameters": {"mood": "calm", "0": "x"}}).model_dump(
            by_alias=True, exclude_unset=True,
        )
        assert dumped == {"parameters": {"mood": "calm", "0": "x"}}

    def test_keys_that_are_not_identifiers(self) -> None:
        model = to_structured_schema({
            "type": "object",
            "properties": {"0": {"type": "string"}, "class": {"type": "string"}},
            "required": ["0", "class"],
        })
        dumped = model.model_validate({"0": "a", "class": "b"}).model_dump(by_alias=True)
        assert dumped == {"0": "a", "class": "b"}

    def test_array_items(self) -> None:
        model = to_structured_schema({
            "type": "object",
            "properties": {"tags": {"type": "array", "items": {"type": "string"}}},
            "required": ["tags"],
        })
        assert model.model_validate({"tags": ["a"]}).model_dump(by_alias=True) == {"tags": ["a"]}


class TestSchemaProperties:
    def test_mapping_passes_through(self) -> None:
        assert schema_properties({"properties": {"a": {"type": "string"}}}) == {"a": {"type": "string"}}

    def test_list_becomes_positional(self) -> None:
        props = schema_properties({"properties": [{"type": "string"}, {"type": "number"}]})
        assert list(props) == ["0", "1"]

    def test_missing_properties(self) -> None:
        assert schema_properties({"type": "object"}) == {}
