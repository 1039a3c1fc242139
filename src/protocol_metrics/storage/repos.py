"""SQL-backed entity store.

Entities are upserted as JSON documents into the ``entities`` table. One
store transaction maps to one database transaction, so the writes of a
single event are committed together or not at all.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from protocol_metrics.storage.codec import encode_key, entity_kind, from_payload, to_payload
from protocol_metrics.storage.models import EntityRecordModel
from protocol_metrics.storage.store import EntityStoreError, UnitOfWorkStore

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

E = TypeVar("E")

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class SqlEntityStore(UnitOfWorkStore):
    """Entity store over a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        super().__init__()
        self._session_factory = session_factory

    def _read(self, entity_type: type[E], key: object) -> E | None:
        with self._session_factory() as session:
            result = session.execute(
                select(EntityRecordModel).where(
                    EntityRecordModel.kind == entity_kind(entity_type),
                    EntityRecordModel.entity_key == encode_key(key),
                )
            )
            model = result.scalar_one_or_none()
            return from_payload(entity_type, model.payload) if model else None

    def _write(self, entities: Sequence[Any]) -> None:
        if not entities:
            return

        with self._session_factory() as session, session.begin():
            dialect = session.get_bind().dialect.name
            insert = _UPSERT_DIALECTS.get(dialect)
            if insert is None:
                raise EntityStoreError(f"Unsupported database dialect for upsert: {dialect}")

            now = datetime.now(UTC)
            for entity in entities:
                stmt = insert(EntityRecordModel).values(
                    kind=entity_kind(type(entity)),
                    entity_key=encode_key(entity.id),
                    payload=to_payload(entity),
                    created_at=now,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["kind", "entity_key"],
                    set_={
                        "payload": stmt.excluded.payload,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                session.execute(stmt)

        logger.debug("Upserted %d entities", len(entities))

    def count(self, entity_type: type) -> int:
        with self._session_factory() as session:
            result = session.execute(
                select(EntityRecordModel.entity_key).where(
                    EntityRecordModel.kind == entity_kind(entity_type)
                )
            )
            return len(result.all())
