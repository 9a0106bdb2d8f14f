"""Tests for persona_rooms.hashing."""

from persona_rooms.hashing import canonical_json, personality_hash, string_to_uuid
from persona_rooms.models import CharacterDefinition


class TestPersonalityHash:
    def test_identical_definitions_hash_equal(self, make_definition) -> None:
        assert personality_hash(make_definition()) == personality_hash(make_definition())

    def test_any_field_change_changes_hash(self, make_definition) -> None:
        base = personality_hash(make_definition())
        assert personality_hash(make_definition(name="Avery")) != base
        assert personality_hash(make_definition(topics=["the sea"])) != base
        assert personality_hash(make_definition(style=["speaks slowly"])) != base

    def test_list_order_is_significant(self, make_definition) -> None:
        a = make_definition(adjectives=["calm", "wry"])
        b = make_definition(adjectives=["wry", "calm"])
        assert personality_hash(a) != personality_hash(b)

    def test_mapping_key_order_is_not_significant(self) -> None:
        assert personality_hash({"a": 1, "b": 2}) == personality_hash({"b": 2, "a": 1})

    def test_model_and_its_dump_hash_equal(self, make_definition) -> None:
        definition = CharacterDefinition.model_validate(make_definition())
        assert personality_hash(definition) == personality_hash(definition.model_dump(mode="json"))

    def test_hex_sha256(self, make_definition) -> None:
        digest = personality_hash(make_definition())
        assert len(digest) == 64
        int(digest, 16)


class TestCanonicalJson:
    def test_compact_and_sorted(self) -> None:
        assert canonical_json({"b": [1, 2], "a": "x"}) == '{"a":"x","b":[1,2]}'


class TestStringToUuid:
    def test_stable(self) -> None:
        assert string_to_uuid("ava") == string_to_uuid("ava")

    def test_distinct_inputs(self) -> None:
        assert string_to_uuid("ava") != string_to_uuid("bob")
