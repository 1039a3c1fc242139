"""Dispatch - Decoded events to handler calls."""

from protocol_metrics.chain.reader import ContractReader
from protocol_metrics.constants import ProtocolKind
from protocol_metrics.dispatch.base import DispatchStats, EventDispatcher
from protocol_metrics.dispatch.lending import LendingDispatcher
from protocol_metrics.dispatch.marketplace import MarketplaceDispatcher
from protocol_metrics.storage.store import EntityStore


def create_dispatcher(kind: ProtocolKind, store: EntityStore, reader: ContractReader) -> EventDispatcher:
    """Return the dispatcher for a protocol family."""
    if kind == ProtocolKind.LENDING:
        return LendingDispatcher(store, reader)
    return MarketplaceDispatcher(store, reader)


__all__ = [
    "DispatchStats",
    "EventDispatcher",
    "LendingDispatcher",
    "MarketplaceDispatcher",
    "create_dispatcher",
]
