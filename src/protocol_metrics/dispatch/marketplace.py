"""LooksRare exchange and royalty fee registry events."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from protocol_metrics.chain.reader import ContractReader
from protocol_metrics.dispatch.base import EventDispatcher, Route
from protocol_metrics.events import DecodedEvent
from protocol_metrics.handlers.marketplace import MarketplaceHandlers
from protocol_metrics.networks import ProtocolIdentity
from protocol_metrics.storage.store import EntityStore


class MarketplaceDispatcher(EventDispatcher):
    """Routes exchange events to ``MarketplaceHandlers``.

    Events carrying a ``currency`` are only handled when it is the
    marketplace's configured currency (WETH for LooksRare).
    """

    def __init__(self, store: EntityStore, reader: ContractReader) -> None:
        super().__init__(store)
        self._handlers = MarketplaceHandlers(store, reader)
        self._routes: Mapping[str, Route] = MappingProxyType(
            {
                "TakerBid": self._on_taker_bid,
                "TakerAsk": self._on_taker_ask,
                "RoyaltyPayment": self._on_royalty_payment,
                "RoyaltyFeeUpdate": self._on_royalty_fee_update,
            }
        )

    @property
    def routes(self) -> Mapping[str, Route]:
        return self._routes

    def accepts(self, event: DecodedEvent, identity: ProtocolIdentity) -> bool:
        if identity.marketplace is None or "currency" not in event.params:
            return True
        return event.address_param("currency") == identity.marketplace.currency.lower()

    def _on_taker_bid(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        # Taker buys from the maker's ask.
        self._match(event, identity, seller=event.address_param("maker"), buyer=event.address_param("taker"))

    def _on_taker_ask(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        # Taker sells into the maker's bid.
        self._match(event, identity, seller=event.address_param("taker"), buyer=event.address_param("maker"))

    def _match(self, event: DecodedEvent, identity: ProtocolIdentity, *, seller: str, buyer: str) -> None:
        self._handlers.match(
            identity,
            event.context,
            seller=seller,
            buyer=buyer,
            strategy=event.address_param("strategy"),
            collection=event.address_param("collection"),
            token_id=event.int_param("tokenId"),
            price=event.int_param("price"),
            amount=event.int_param("amount"),
        )

    def _on_royalty_payment(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.royalty_payment(
            identity,
            event.context,
            collection=event.address_param("collection"),
            amount=event.int_param("amount"),
        )

    def _on_royalty_fee_update(self, event: DecodedEvent, identity: ProtocolIdentity) -> None:
        self._handlers.royalty_fee_update(
            identity,
            event.context,
            collection=event.address_param("collection"),
            fee=event.int_param("fee"),
        )
