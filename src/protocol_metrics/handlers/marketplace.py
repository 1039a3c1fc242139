"""NFT marketplace handlers (LooksRare).

Amounts arrive in wei of the trade currency and are stored in ETH.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from web3.types import BlockIdentifier

from protocol_metrics.aggregator.participants import UniqueParticipantTracker
from protocol_metrics.aggregator.snapshots import SnapshotAggregator
from protocol_metrics.chain.reader import ContractReader
from protocol_metrics.constants import (
    BIGDECIMAL_HUNDRED,
    BIGDECIMAL_ZERO,
    ERC721_INTERFACE_IDENTIFIER,
    ERC1155_INTERFACE_IDENTIFIER,
    MANTISSA_FACTOR,
    NftStandard,
    SaleStrategy,
)
from protocol_metrics.events import EventContext
from protocol_metrics.handlers.common import get_or_create_marketplace
from protocol_metrics.networks import MarketplaceConfig, ProtocolIdentity
from protocol_metrics.storage.entities import Collection, ExecutionStrategy, Marketplace, Trade
from protocol_metrics.storage.keys import MarkerKey, MarkerScope
from protocol_metrics.storage.store import EntityStore

logger = logging.getLogger(__name__)


def classify_strategy(address: str, config: MarketplaceConfig | None) -> SaleStrategy:
    """Classify an execution strategy by static address-set membership."""
    if config is None:
        return SaleStrategy.UNKNOWN
    address = address.lower()
    if address in config.standard_sale_strategies:
        return SaleStrategy.STANDARD_SALE
    if address in config.any_item_from_collection_strategies:
        return SaleStrategy.ANY_ITEM_FROM_COLLECTION
    if address in config.private_sale_strategies:
        return SaleStrategy.PRIVATE_SALE
    return SaleStrategy.UNKNOWN


class MarketplaceHandlers:
    """Handler core for exchange and royalty registry events."""

    def __init__(self, store: EntityStore, reader: ContractReader) -> None:
        self._store = store
        self._reader = reader
        self._participants = UniqueParticipantTracker(store)
        self._snapshots = SnapshotAggregator(store)

    # ------------------------------------------------------------------
    # Entity resolution
    # ------------------------------------------------------------------

    def _marketplace(self, identity: ProtocolIdentity) -> Marketplace:
        return get_or_create_marketplace(self._store, identity)

    def _nft_standard(self, address: str, block_identifier: BlockIdentifier | None) -> NftStandard:
        for interface_id, standard in (
            (ERC721_INTERFACE_IDENTIFIER, NftStandard.ERC721),
            (ERC1155_INTERFACE_IDENTIFIER, NftStandard.ERC1155),
        ):
            result = self._reader.try_call(
                address,
                "supportsInterface",
                [bytes.fromhex(interface_id[2:])],
                block_identifier=block_identifier,
            )
            if result.reverted:
                logger.warning("supportsInterface(%s) reverted on %s", interface_id, address)
            elif result.value:
                return standard
        return NftStandard.UNKNOWN

    def get_or_create_collection(
        self,
        identity: ProtocolIdentity,
        address: str,
        *,
        block_identifier: BlockIdentifier | None = None,
    ) -> Collection:
        """Load a collection, reading its metadata best-effort on first sight.

        Metadata is read at ``block_identifier`` and never refreshed.
        """
        address = address.lower()
        collection = self._store.load(Collection, address)
        if collection is not None:
            return collection

        collection = Collection(id=address, nft_standard=self._nft_standard(address, block_identifier))
        name = self._reader.try_call(address, "name", block_identifier=block_identifier)
        if not name.reverted:
            collection.name = str(name.value)
        symbol = self._reader.try_call(address, "symbol", block_identifier=block_identifier)
        if not symbol.reverted:
            collection.symbol = str(symbol.value)
        total_supply = self._reader.try_call(address, "totalSupply", block_identifier=block_identifier)
        if not total_supply.reverted:
            collection.total_supply = int(total_supply.value)
        self._store.save(collection)

        marketplace = self._marketplace(identity)
        marketplace.collection_count += 1
        self._store.save(marketplace)
        logger.info("New collection %s (%s)", collection.name or "unnamed", address)
        return collection

    def get_or_create_strategy(
        self,
        identity: ProtocolIdentity,
        address: str,
        *,
        block_identifier: BlockIdentifier | None = None,
    ) -> ExecutionStrategy:
        """Resolve an execution strategy once; its fee is read at first sight only."""
        address = address.lower()
        strategy = self._store.load(ExecutionStrategy, address)
        if strategy is not None:
            return strategy

        fee = self._reader.try_call(address, "viewProtocolFee", block_identifier=block_identifier)
        if fee.reverted:
            logger.warning("viewProtocolFee reverted on strategy %s; assuming zero fee", address)
            protocol_fee = BIGDECIMAL_ZERO
        else:
            protocol_fee = Decimal(int(fee.value)) / BIGDECIMAL_HUNDRED
        strategy = ExecutionStrategy(
            id=address,
            sale_strategy=classify_strategy(address, identity.marketplace),
            protocol_fee=protocol_fee,
        )
        self._store.save(strategy)
        return strategy

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def match(
        self,
        identity: ProtocolIdentity,
        context: EventContext,
        *,
        seller: str,
        buyer: str,
        strategy: str,
        collection: str,
        token_id: int,
        price: int,
        amount: int,
    ) -> None:
        """Record a sale and fold it into collection and marketplace totals.

        Unique counts are scoped as follows: buyers and sellers per
        collection, traders per marketplace, active traders per
        marketplace-day (buyer and seller alike), traded items per
        collection-day and traded collections per marketplace-day.
        """
        if self._store.load(Trade, context.event_key) is not None:
            logger.debug("[match] Already processed %s", context.event_key)
            return

        seller = seller.lower()
        buyer = buyer.lower()
        price_eth = Decimal(price) / MANTISSA_FACTOR
        volume_eth = Decimal(amount) * price_eth
        execution_strategy = self.get_or_create_strategy(
            identity, strategy, block_identifier=context.block_number
        )
        nft_collection = self.get_or_create_collection(
            identity, collection, block_identifier=context.block_number
        )
        marketplace = self._marketplace(identity)

        self._store.save(
            Trade(
                id=context.event_key,
                collection=nft_collection.id,
                token_id=str(token_id),
                block_number=context.block_number,
                timestamp=context.timestamp,
                amount=amount,
                price_eth=price_eth,
                volume_eth=volume_eth,
                strategy=execution_strategy.sale_strategy,
                buyer=buyer,
                seller=seller,
            )
        )

        marketplace_revenue_eth = volume_eth * (execution_strategy.protocol_fee / BIGDECIMAL_HUNDRED)

        nft_collection.cumulative.add_trade(volume_eth, marketplace_revenue_eth)
        if self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.COLLECTION_BUYER, nft_collection.id, buyer)
        ):
            nft_collection.buyer_count += 1
        if self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.COLLECTION_SELLER, nft_collection.id, seller)
        ):
            nft_collection.seller_count += 1
        self._store.save(nft_collection)

        marketplace.cumulative.add_trade(volume_eth, marketplace_revenue_eth)
        new_active_traders = 0
        for trader in (buyer, seller):
            if self._participants.mark_and_count_if_new(
                MarkerKey(MarkerScope.MARKETPLACE_ACCOUNT, marketplace.id, trader)
            ):
                marketplace.cumulative_unique_traders += 1
            if self._participants.mark_and_count_if_new(
                MarkerKey(MarkerScope.DAILY_MARKETPLACE_ACCOUNT, marketplace.id, trader, context.day)
            ):
                new_active_traders += 1
        self._store.save(marketplace)

        new_traded_item = self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.DAILY_TRADED_ITEM, nft_collection.id, str(token_id), context.day)
        )
        new_traded_collection = self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.DAILY_TRADED_COLLECTION, marketplace.id, nft_collection.id, context.day)
        )

        self._snapshots.fold_collection(
            nft_collection,
            context,
            price_eth=price_eth,
            volume_eth=volume_eth,
            new_traded_item=new_traded_item,
        )
        self._snapshots.fold_marketplace(
            marketplace,
            context,
            volume_eth=volume_eth,
            new_traded_item=new_traded_item,
            new_traded_collection=new_traded_collection,
            new_active_traders=new_active_traders,
        )

    def royalty_payment(
        self,
        identity: ProtocolIdentity,
        context: EventContext,
        *,
        collection: str,
        amount: int,
    ) -> None:
        """Credit creator revenue; the next trade fold carries it into snapshots."""
        event_key = context.event_key
        if not self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.ROYALTY_PAYMENT, event_key.transaction_hash, str(event_key.log_index))
        ):
            logger.debug("[royalty_payment] Already processed %s", event_key)
            return

        creator_revenue_eth = Decimal(amount) / MANTISSA_FACTOR
        nft_collection = self.get_or_create_collection(
            identity, collection, block_identifier=context.block_number
        )
        nft_collection.cumulative.add_creator_revenue(creator_revenue_eth)
        self._store.save(nft_collection)

        marketplace = self._marketplace(identity)
        marketplace.cumulative.add_creator_revenue(creator_revenue_eth)
        self._store.save(marketplace)

    def royalty_fee_update(
        self, identity: ProtocolIdentity, context: EventContext, *, collection: str, fee: int
    ) -> None:
        nft_collection = self.get_or_create_collection(
            identity, collection, block_identifier=context.block_number
        )
        nft_collection.royalty_fee = Decimal(fee) / BIGDECIMAL_HUNDRED
        self._store.save(nft_collection)
