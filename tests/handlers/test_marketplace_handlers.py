"""Tests for the NFT marketplace handler core."""

from __future__ import annotations

from decimal import Decimal

import pytest

from protocol_metrics.constants import NftStandard, SaleStrategy
from protocol_metrics.events import EventContext
from protocol_metrics.handlers.marketplace import MarketplaceHandlers, classify_strategy
from protocol_metrics.networks import LOOKSRARE
from protocol_metrics.storage.entities import (
    Collection,
    CollectionDailySnapshot,
    ExecutionStrategy,
    Marketplace,
    MarketplaceDailySnapshot,
    Trade,
)
from protocol_metrics.storage.keys import SnapshotKey

STANDARD_SALE = "0x56244bb70cbd3ea9dc8007399f61dfc065190031"
PRIVATE_SALE = "0x58d83536d3efedb9f7f2a1ec3bdaad2b1a4dd98c"
PUNKS = "0x" + "e1" * 20
KITTIES = "0x" + "e2" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c4" * 20

DAY = 19_700
TIMESTAMP = DAY * 86400 + 600
ETHER = 10**18

ERC721_ID = bytes.fromhex("80ac58cd")
ERC1155_ID = bytes.fromhex("d9b67a26")

_next_log_index = iter(range(10_000))


def create_context(*, timestamp: int = TIMESTAMP, log_index: int | None = None) -> EventContext:
    return EventContext(
        transaction_hash="0x" + "be" * 32,
        log_index=next(_next_log_index) if log_index is None else log_index,
        block_number=15_000_000,
        timestamp=timestamp,
    )


@pytest.fixture
def handlers(store, reader) -> MarketplaceHandlers:
    reader.set(STANDARD_SALE, "viewProtocolFee", 200)
    reader.set(PUNKS, "supportsInterface", True, [ERC721_ID])
    reader.set(PUNKS, "name", "Punks")
    reader.set(PUNKS, "symbol", "PUNK")
    reader.set(KITTIES, "supportsInterface", False, [ERC721_ID])
    reader.set(KITTIES, "supportsInterface", True, [ERC1155_ID])
    return MarketplaceHandlers(store, reader)


def trade(store, handlers, identity, *, seller=BOB, buyer=ALICE, collection=PUNKS, token_id=1,
          price=ETHER, amount=1, strategy=STANDARD_SALE, context=None) -> EventContext:
    context = context or create_context()
    with store.transaction():
        handlers.match(
            identity,
            context,
            seller=seller,
            buyer=buyer,
            strategy=strategy,
            collection=collection,
            token_id=token_id,
            price=price,
            amount=amount,
        )
    return context


# === Strategies ===


class TestStrategies:
    def test_classify_by_address_set(self):
        assert classify_strategy(STANDARD_SALE.upper(), LOOKSRARE.marketplace) == SaleStrategy.STANDARD_SALE
        assert classify_strategy(PRIVATE_SALE, LOOKSRARE.marketplace) == SaleStrategy.PRIVATE_SALE
        assert classify_strategy("0x" + "00" * 20, LOOKSRARE.marketplace) == SaleStrategy.UNKNOWN
        assert classify_strategy(STANDARD_SALE, None) == SaleStrategy.UNKNOWN

    def test_fee_is_read_once(self, store, reader, handlers, looksrare_identity):
        trade(store, handlers, looksrare_identity)
        trade(store, handlers, looksrare_identity)

        strategy = store.load(ExecutionStrategy, STANDARD_SALE)
        assert strategy.protocol_fee == Decimal("2")
        assert strategy.sale_strategy == SaleStrategy.STANDARD_SALE
        assert reader.count_calls("viewProtocolFee") == 1

    def test_reverted_fee_is_zero(self, store, handlers, looksrare_identity):
        trade(store, handlers, looksrare_identity, strategy=PRIVATE_SALE)

        assert store.load(ExecutionStrategy, PRIVATE_SALE).protocol_fee == Decimal("0")
        assert store.load(Marketplace, looksrare_identity.protocol_id).cumulative.marketplace_revenue_eth == 0


# === Trades ===


class TestMatch:
    """Tests for TakerBid/TakerAsk handling."""

    def test_trade_record_and_revenue(self, store, handlers, looksrare_identity):
        context = trade(store, handlers, looksrare_identity, token_id=42)

        record = store.load(Trade, context.event_key)
        assert record.buyer == ALICE
        assert record.seller == BOB
        assert record.token_id == "42"
        assert record.price_eth == Decimal("1")
        assert record.strategy == SaleStrategy.STANDARD_SALE

        marketplace = store.load(Marketplace, looksrare_identity.protocol_id)
        assert marketplace.cumulative.trade_volume_eth == Decimal("1")
        assert marketplace.cumulative.marketplace_revenue_eth == Decimal("0.02")
        assert marketplace.cumulative.trade_count == 1

    def test_revenue_split_adds_up(self, store, handlers, looksrare_identity):
        trade(store, handlers, looksrare_identity)
        with store.transaction():
            handlers.royalty_payment(looksrare_identity, create_context(), collection=PUNKS, amount=2 * 10**16)

        for totals in (
            store.load(Collection, PUNKS).cumulative,
            store.load(Marketplace, looksrare_identity.protocol_id).cumulative,
        ):
            assert totals.creator_revenue_eth == Decimal("0.02")
            assert totals.total_revenue_eth == Decimal("0.04")
            assert totals.total_revenue_eth == totals.marketplace_revenue_eth + totals.creator_revenue_eth
            assert totals.total_revenue_eth <= totals.trade_volume_eth

    def test_bundle_volume(self, store, handlers, looksrare_identity):
        context = trade(store, handlers, looksrare_identity, collection=KITTIES, amount=3, price=ETHER // 2)

        assert store.load(Trade, context.event_key).volume_eth == Decimal("1.5")
        assert store.load(Collection, KITTIES).cumulative.trade_volume_eth == Decimal("1.5")

    def test_redelivery_is_ignored(self, store, handlers, looksrare_identity):
        context = trade(store, handlers, looksrare_identity)
        trade(store, handlers, looksrare_identity, context=context)

        assert store.count(Trade) == 1
        assert store.load(Marketplace, looksrare_identity.protocol_id).cumulative.trade_count == 1

    def test_daily_min_max_price(self, store, handlers, looksrare_identity):
        for token_id, price in enumerate((1, 3, 2)):
            trade(store, handlers, looksrare_identity, token_id=token_id, price=price * ETHER)

        snapshot = store.load(CollectionDailySnapshot, SnapshotKey(PUNKS, DAY))
        assert snapshot.daily_min_sale_price == Decimal("1")
        assert snapshot.daily_max_sale_price == Decimal("3")
        assert snapshot.daily_trade_count == 3
        assert snapshot.daily_trade_volume_eth == Decimal("6")
        assert snapshot.daily_traded_item_count == 3

    def test_active_traders_are_role_agnostic(self, store, handlers, looksrare_identity):
        trade(store, handlers, looksrare_identity, buyer=ALICE, seller=BOB)
        trade(store, handlers, looksrare_identity, buyer=BOB, seller=ALICE)
        trade(store, handlers, looksrare_identity, buyer=ALICE, seller=BOB)

        snapshot = store.load(MarketplaceDailySnapshot, SnapshotKey(looksrare_identity.protocol_id, DAY))
        marketplace = store.load(Marketplace, looksrare_identity.protocol_id)
        collection = store.load(Collection, PUNKS)

        assert snapshot.daily_active_traders == 2
        assert snapshot.cumulative_unique_traders == 2
        assert marketplace.cumulative_unique_traders == 2
        assert collection.buyer_count == 2
        assert collection.seller_count == 2

    def test_two_buyers_and_a_repeat_with_one_seller(self, store, handlers, looksrare_identity):
        trade(store, handlers, looksrare_identity, buyer=ALICE, seller=BOB)
        trade(store, handlers, looksrare_identity, buyer=CAROL, seller=BOB)
        trade(store, handlers, looksrare_identity, buyer=ALICE, seller=BOB)

        snapshot = store.load(MarketplaceDailySnapshot, SnapshotKey(looksrare_identity.protocol_id, DAY))
        collection = store.load(Collection, PUNKS)

        # Sellers count as active traders too: ALICE, CAROL and BOB.
        assert snapshot.daily_active_traders == 3
        assert snapshot.cumulative_unique_traders == 3
        assert collection.buyer_count == 2
        assert collection.seller_count == 1

    def test_active_traders_reset_per_day(self, store, handlers, looksrare_identity):
        trade(store, handlers, looksrare_identity)
        trade(store, handlers, looksrare_identity, context=create_context(timestamp=TIMESTAMP + 86400))

        next_day = store.load(MarketplaceDailySnapshot, SnapshotKey(looksrare_identity.protocol_id, DAY + 1))
        assert next_day.daily_active_traders == 2
        assert next_day.daily_trade_count == 1
        assert next_day.cumulative.trade_count == 2

    def test_traded_items_and_collections_are_distinct(self, store, handlers, looksrare_identity):
        trade(store, handlers, looksrare_identity, token_id=7)
        trade(store, handlers, looksrare_identity, token_id=7)
        trade(store, handlers, looksrare_identity, collection=KITTIES, token_id=7)

        snapshot = store.load(MarketplaceDailySnapshot, SnapshotKey(looksrare_identity.protocol_id, DAY))
        assert snapshot.daily_traded_item_count == 2
        assert snapshot.daily_traded_collection_count == 2
        assert snapshot.collection_count == 2
        assert store.load(CollectionDailySnapshot, SnapshotKey(PUNKS, DAY)).daily_traded_item_count == 1


# === Collections ===


class TestCollections:
    def test_metadata_and_standard(self, store, handlers, looksrare_identity):
        trade(store, handlers, looksrare_identity)
        trade(store, handlers, looksrare_identity, collection=KITTIES)

        punks = store.load(Collection, PUNKS)
        kitties = store.load(Collection, KITTIES)
        assert punks.nft_standard == NftStandard.ERC721
        assert punks.name == "Punks"
        assert punks.total_supply is None
        assert kitties.nft_standard == NftStandard.ERC1155
        assert kitties.name is None
        assert store.load(Marketplace, looksrare_identity.protocol_id).collection_count == 2

    def test_reads_are_made_at_the_event_block(self, store, reader, handlers, looksrare_identity):
        trade(store, handlers, looksrare_identity)
        with store.transaction():
            handlers.royalty_fee_update(
                looksrare_identity, create_context(), collection="0x" + "e4" * 20, fee=100
            )

        for method in ("viewProtocolFee", "supportsInterface", "name", "symbol", "totalSupply"):
            assert reader.blocks_for(method) == {15_000_000}

    def test_unknown_standard(self, store, handlers, looksrare_identity):
        unknown = "0x" + "e3" * 20
        with store.transaction():
            handlers.royalty_fee_update(looksrare_identity, create_context(), collection=unknown, fee=0)

        assert store.load(Collection, unknown).nft_standard == NftStandard.UNKNOWN


# === Royalties ===


class TestRoyalties:
    def test_royalty_payment_counted_once(self, store, handlers, looksrare_identity):
        context = create_context()
        for _ in range(2):
            with store.transaction():
                handlers.royalty_payment(looksrare_identity, context, collection=PUNKS, amount=10**17)

        assert store.load(Collection, PUNKS).cumulative.creator_revenue_eth == Decimal("0.1")
        assert store.load(Marketplace, looksrare_identity.protocol_id).cumulative.total_revenue_eth == Decimal("0.1")

    def test_royalty_reaches_snapshot_on_next_trade(self, store, handlers, looksrare_identity):
        with store.transaction():
            handlers.royalty_payment(looksrare_identity, create_context(), collection=PUNKS, amount=10**17)
        trade(store, handlers, looksrare_identity)

        snapshot = store.load(CollectionDailySnapshot, SnapshotKey(PUNKS, DAY))
        assert snapshot.cumulative.creator_revenue_eth == Decimal("0.1")

    def test_royalty_fee_update(self, store, handlers, looksrare_identity):
        with store.transaction():
            handlers.royalty_fee_update(looksrare_identity, create_context(), collection=PUNKS, fee=250)
        trade(store, handlers, looksrare_identity)

        assert store.load(Collection, PUNKS).royalty_fee == Decimal("2.5")
        assert store.load(CollectionDailySnapshot, SnapshotKey(PUNKS, DAY)).royalty_fee == Decimal("2.5")
