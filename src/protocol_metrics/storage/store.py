"""Entity store interface and the unit-of-work base shared by backends.

All reads and writes for one event happen inside ``transaction()``. Within
a transaction ``load`` returns the same instance for the same identity, so
helpers that touch the same entity see each other's changes. Saved entities
are written to the backend only when the transaction exits cleanly; an
exception discards every staged write.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, ContextManager, Protocol, TypeVar

from protocol_metrics.storage.codec import encode_key, entity_kind, from_payload, to_payload

logger = logging.getLogger(__name__)

E = TypeVar("E")

Identity = tuple[type, Any]


class EntityStoreError(Exception):
    """Raised on store misuse (e.g. nested transactions)."""


class EntityStore(Protocol):
    def load(self, entity_type: type[E], key: object) -> E | None: ...

    def save(self, entity: Any) -> None: ...

    def transaction(self) -> ContextManager[None]: ...


@dataclass
class _UnitOfWork:
    entities: dict[Identity, Any] = field(default_factory=dict)
    # Insertion-ordered set of identities saved in this unit.
    dirty: dict[Identity, None] = field(default_factory=dict)


class UnitOfWorkStore(ABC):
    """Identity map plus deferred writes on top of a backend."""

    def __init__(self) -> None:
        self._unit: _UnitOfWork | None = None

    @property
    def in_transaction(self) -> bool:
        return self._unit is not None

    def load(self, entity_type: type[E], key: object) -> E | None:
        identity = (entity_type, key)
        if self._unit is not None and identity in self._unit.entities:
            return self._unit.entities[identity]  # type: ignore[no-any-return]

        entity = self._read(entity_type, key)
        if entity is not None and self._unit is not None:
            self._unit.entities[identity] = entity
        return entity

    def save(self, entity: Any) -> None:
        identity = (type(entity), entity.id)
        if self._unit is None:
            self._write([entity])
            return
        self._unit.entities[identity] = entity
        self._unit.dirty[identity] = None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._unit is not None:
            raise EntityStoreError("Nested transactions are not supported")

        unit = _UnitOfWork()
        self._unit = unit
        try:
            yield
        except Exception:
            logger.debug("Rolling back %d staged entities", len(unit.dirty))
            raise
        else:
            self._write([unit.entities[identity] for identity in unit.dirty])
        finally:
            self._unit = None

    @abstractmethod
    def _read(self, entity_type: type[E], key: object) -> E | None:
        """Return a fresh instance decoded from the backend, or None."""

    @abstractmethod
    def _write(self, entities: Sequence[Any]) -> None:
        """Upsert entities into the backend atomically."""


class InMemoryEntityStore(UnitOfWorkStore):
    """Dictionary-backed store.

    Records are kept in serialized form so that loaded instances never alias
    committed state, the same way rows behave in the SQL store.
    """

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[tuple[str, str], dict[str, Any]] = {}

    def _read(self, entity_type: type[E], key: object) -> E | None:
        payload = self._records.get((entity_kind(entity_type), encode_key(key)))
        if payload is None:
            return None
        return from_payload(entity_type, payload)

    def _write(self, entities: Sequence[Any]) -> None:
        staged = {
            (entity_kind(type(entity)), encode_key(entity.id)): to_payload(entity) for entity in entities
        }
        self._records.update(staged)

    def entities(self, entity_type: type[E]) -> list[E]:
        """Return every committed entity of a type."""
        kind = entity_kind(entity_type)
        return [
            from_payload(entity_type, payload)
            for (record_kind, _), payload in self._records.items()
            if record_kind == kind
        ]

    def count(self, entity_type: type) -> int:
        kind = entity_kind(entity_type)
        return sum(1 for record_kind, _ in self._records if record_kind == kind)
