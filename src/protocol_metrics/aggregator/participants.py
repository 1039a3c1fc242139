"""Exactly-once counting through existence markers."""

from __future__ import annotations

import logging

from protocol_metrics.storage.entities import ExistenceMarker
from protocol_metrics.storage.keys import MarkerKey
from protocol_metrics.storage.store import EntityStore

logger = logging.getLogger(__name__)


class UniqueParticipantTracker:
    """Answers "is this the first time we see X in scope S?".

    A marker is created on first sight and never mutated afterwards, so a
    counter incremented only when ``mark_and_count_if_new`` returns True is
    incremented exactly once per marker key.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    def mark_and_count_if_new(self, key: MarkerKey) -> bool:
        if self._store.load(ExistenceMarker, key) is not None:
            return False
        self._store.save(ExistenceMarker(id=key))
        logger.debug("New %s marker %s/%s", key.scope.value, key.subject, key.participant)
        return True
