"""Time-bucketed snapshot folding.

Every fold loads (or lazily creates) the bucket for the event's timestamp,
replaces the snapshot's cumulative and gauge fields with the parent's
current values, and adds the event's deltas to the bucket-scoped fields.
Buckets are never closed: a later event in the same bucket folds into the
same snapshot again.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, TypeVar

from protocol_metrics.events import EventContext
from protocol_metrics.storage.entities import (
    Collection,
    CollectionDailySnapshot,
    LendingProtocol,
    LendingVolumes,
    Market,
    MarketDailySnapshot,
    MarketHourlySnapshot,
    Marketplace,
    MarketplaceDailySnapshot,
    MarketSnapshot,
    ProtocolDailySnapshot,
)
from protocol_metrics.storage.keys import SnapshotKey
from protocol_metrics.storage.store import EntityStore

logger = logging.getLogger(__name__)

S = TypeVar("S")


def _add_volumes(target: LendingVolumes, delta: LendingVolumes) -> None:
    target.deposit_usd += delta.deposit_usd
    target.withdraw_usd += delta.withdraw_usd
    target.borrow_usd += delta.borrow_usd
    target.repay_usd += delta.repay_usd
    target.liquidate_usd += delta.liquidate_usd
    target.liquidation_revenue_usd += delta.liquidation_revenue_usd
    target.deposit_count += delta.deposit_count
    target.withdraw_count += delta.withdraw_count
    target.borrow_count += delta.borrow_count
    target.repay_count += delta.repay_count
    target.liquidation_count += delta.liquidation_count
    target.unique_users += delta.unique_users


class SnapshotAggregator:
    """Folds events into daily and hourly snapshots.

    Example:
        ```python
        aggregator = SnapshotAggregator(store)
        daily, hourly = aggregator.fold_market(market, event.context, delta, delta)
        ```
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    def _load_or_create(self, snapshot_type: type[S], key: SnapshotKey, **fields: Any) -> S:
        snapshot = self._store.load(snapshot_type, key)
        if snapshot is None:
            snapshot = snapshot_type(id=key, **fields)
            logger.debug("Opened %s %s/%d", snapshot_type.__name__, key.parent_id, key.bucket)
        return snapshot

    # ------------------------------------------------------------------
    # Lending
    # ------------------------------------------------------------------

    def _fold_market_bucket(
        self,
        snapshot_type: type[MarketSnapshot],
        bucket: int,
        market: Market,
        context: EventContext,
        delta: LendingVolumes | None,
    ) -> MarketSnapshot:
        snapshot = self._load_or_create(
            snapshot_type,
            SnapshotKey(parent_id=market.id, bucket=bucket),
            market=market.id,
            protocol=market.protocol,
        )
        snapshot.block_number = context.block_number
        snapshot.timestamp = context.timestamp
        snapshot.input_token_balance = market.input_token_balance
        snapshot.input_token_price_usd = market.input_token_price_usd
        snapshot.total_value_locked_usd = market.total_value_locked_usd
        snapshot.total_borrow_usd = market.total_borrow_usd
        snapshot.supply_rate = market.supply_rate
        snapshot.variable_borrow_rate = market.variable_borrow_rate
        snapshot.stable_borrow_rate = market.stable_borrow_rate
        snapshot.rewards = [replace(emission) for emission in market.rewards]
        snapshot.cumulative = market.cumulative.copy()
        if delta is not None:
            _add_volumes(snapshot.activity, delta)
        self._store.save(snapshot)
        return snapshot

    def fold_market(
        self,
        market: Market,
        context: EventContext,
        daily_delta: LendingVolumes | None = None,
        hourly_delta: LendingVolumes | None = None,
    ) -> tuple[MarketDailySnapshot, MarketHourlySnapshot]:
        """Fold a market into its day and hour buckets.

        The two deltas differ only in ``unique_users``, which is counted
        per bucket.
        """
        daily = self._fold_market_bucket(MarketDailySnapshot, context.day, market, context, daily_delta)
        hourly = self._fold_market_bucket(MarketHourlySnapshot, context.hour, market, context, hourly_delta)
        return daily, hourly  # type: ignore[return-value]

    def fold_protocol(
        self,
        protocol: LendingProtocol,
        context: EventContext,
        delta: LendingVolumes | None = None,
    ) -> ProtocolDailySnapshot:
        snapshot = self._load_or_create(
            ProtocolDailySnapshot,
            SnapshotKey(parent_id=protocol.id, bucket=context.day),
            protocol=protocol.id,
        )
        snapshot.block_number = context.block_number
        snapshot.timestamp = context.timestamp
        snapshot.total_value_locked_usd = protocol.total_value_locked_usd
        snapshot.total_borrow_usd = protocol.total_borrow_usd
        snapshot.cumulative = protocol.cumulative.copy()
        snapshot.cumulative_unique_depositors = protocol.cumulative_unique_depositors
        snapshot.cumulative_unique_borrowers = protocol.cumulative_unique_borrowers
        snapshot.cumulative_unique_liquidators = protocol.cumulative_unique_liquidators
        if delta is not None:
            _add_volumes(snapshot.activity, delta)
        self._store.save(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # NFT marketplace
    # ------------------------------------------------------------------

    def fold_collection(
        self,
        collection: Collection,
        context: EventContext,
        *,
        price_eth: Decimal,
        volume_eth: Decimal,
        new_traded_item: bool,
    ) -> CollectionDailySnapshot:
        snapshot = self._load_or_create(
            CollectionDailySnapshot,
            SnapshotKey(parent_id=collection.id, bucket=context.day),
            collection=collection.id,
        )
        snapshot.block_number = context.block_number
        snapshot.timestamp = context.timestamp
        snapshot.royalty_fee = collection.royalty_fee
        snapshot.daily_min_sale_price = min(snapshot.daily_min_sale_price, price_eth)
        snapshot.daily_max_sale_price = max(snapshot.daily_max_sale_price, price_eth)
        snapshot.cumulative = collection.cumulative.copy()
        snapshot.daily_trade_volume_eth += volume_eth
        snapshot.daily_trade_count += 1
        if new_traded_item:
            snapshot.daily_traded_item_count += 1
        self._store.save(snapshot)
        return snapshot

    def fold_marketplace(
        self,
        marketplace: Marketplace,
        context: EventContext,
        *,
        volume_eth: Decimal,
        new_traded_item: bool,
        new_traded_collection: bool,
        new_active_traders: int,
    ) -> MarketplaceDailySnapshot:
        snapshot = self._load_or_create(
            MarketplaceDailySnapshot,
            SnapshotKey(parent_id=marketplace.id, bucket=context.day),
            marketplace=marketplace.id,
        )
        snapshot.block_number = context.block_number
        snapshot.timestamp = context.timestamp
        snapshot.collection_count = marketplace.collection_count
        snapshot.cumulative = marketplace.cumulative.copy()
        snapshot.cumulative_unique_traders = marketplace.cumulative_unique_traders
        snapshot.daily_trade_volume_eth += volume_eth
        snapshot.daily_trade_count += 1
        snapshot.daily_active_traders += new_active_traders
        if new_traded_item:
            snapshot.daily_traded_item_count += 1
        if new_traded_collection:
            snapshot.daily_traded_collection_count += 1
        self._store.save(snapshot)
        return snapshot
