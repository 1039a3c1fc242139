"""JSON codec for dataclass entities and their composite keys.

Entities are validated and dumped through pydantic type adapters, so
Decimals travel as strings, enums as their values and nested dataclasses
as objects.
"""

from __future__ import annotations

import json
from dataclasses import is_dataclass
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

T = TypeVar("T")


class CodecError(Exception):
    """Raised when a payload does not match its entity type."""


def entity_kind(entity_type: type) -> str:
    return entity_type.__name__


@lru_cache(maxsize=None)
def _adapter(entity_type: type) -> TypeAdapter[Any]:
    return TypeAdapter(entity_type)


def _is_instance(value: object) -> bool:
    return is_dataclass(value) and not isinstance(value, type)


def encode_key(key: object) -> str:
    """Encode an entity id into a stable string.

    Plain string ids are stored as-is; composite keys become a JSON array of
    their field values in declaration order.
    """
    if isinstance(key, str):
        return key
    if _is_instance(key):
        values = _adapter(type(key)).dump_python(key, mode="json")
        return json.dumps(list(values.values()), separators=(",", ":"))
    raise CodecError(f"Unsupported key type: {type(key).__name__}")


def to_payload(entity: object) -> dict[str, Any]:
    if not _is_instance(entity):
        raise CodecError(f"Not a dataclass entity: {type(entity).__name__}")
    payload: dict[str, Any] = _adapter(type(entity)).dump_python(entity, mode="json")
    return payload


def from_payload(entity_type: type[T], payload: dict[str, Any]) -> T:
    try:
        entity: T = _adapter(entity_type).validate_python(payload)
    except ValidationError as e:
        raise CodecError(f"Cannot decode {entity_type.__name__}: {e}") from e
    return entity
