"""Dispatcher base: one store transaction per event, errors absorbed."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from protocol_metrics.events import DecodedEvent
from protocol_metrics.networks import ProtocolIdentity
from protocol_metrics.storage.store import EntityStore

logger = logging.getLogger(__name__)

Route = Callable[[DecodedEvent, ProtocolIdentity], None]


@dataclass
class DispatchStats:
    """Outcome counters of a dispatcher."""

    handled: int = 0
    ignored: int = 0
    failed: int = 0


class EventDispatcher(ABC):
    """Translate decoded events into handler calls.

    Subclasses declare ``routes`` from event name to a translation function
    that only extracts typed arguments and calls the handler core. Each
    routed event runs inside its own store transaction; an unexpected error
    rolls back that event's writes, is logged with its traceback, and never
    reaches the caller.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store
        self._stats = DispatchStats()

    @property
    def stats(self) -> DispatchStats:
        return self._stats

    @property
    @abstractmethod
    def routes(self) -> Mapping[str, Route]:
        """Event name to translation function."""

    def accepts(self, event: DecodedEvent, identity: ProtocolIdentity) -> bool:
        """Whether an event with a known name should be handled at all."""
        return True

    def dispatch(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        route = self.routes.get(event.name)
        if route is None:
            logger.debug("No handler for event %s at %s", event.name, event.context.event_key)
            self._stats.ignored += 1
            return
        if not self.accepts(event, identity):
            logger.debug("Ignoring %s at %s", event.name, event.context.event_key)
            self._stats.ignored += 1
            return

        try:
            with self._store.transaction():
                route(event, identity)
        except Exception:
            self._stats.failed += 1
            logger.exception(
                "Error handling %s at block %d (%s)",
                event.name,
                event.context.block_number,
                event.context.event_key,
            )
            return
        self._stats.handled += 1
