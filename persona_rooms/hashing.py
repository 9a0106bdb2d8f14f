"""Personality hashing and deterministic identifiers."""

from __future__ import annotations

import hashlib
import json
import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel


def canonical_json(data: Any) -> str:
    """Serialise to JSON with sorted keys and no insignificant whitespace."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, Mapping):
        data = dict(data)
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def personality_hash(definition: Any) -> str:
    """Hex SHA-256 of a character definition's canonical serialisation.

    Identical definitions (field for field) always hash the same; list order
    is significant, mapping key order is not.
    """
    payload = canonical_json(definition)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def string_to_uuid(text: str) -> str:
    """Stable uuid derived from arbitrary text."""
    return str(uuid.uuid5(uuid.NAMESPACE_OID, text))
