"""Entity types maintained by the aggregation engine.

Entities are plain mutable dataclasses. Each one carries its identity in
``id``; the store keys records by ``(type(entity), entity.id)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal

from protocol_metrics.constants import (
    BIGDECIMAL_MAX,
    BIGDECIMAL_ZERO,
    DEFAULT_DECIMALS,
    ZERO_ADDRESS,
    LendingActivity,
    NftStandard,
    RewardTokenType,
    SaleStrategy,
)
from protocol_metrics.storage.keys import EventKey, MarkerKey, RewardTokenKey, SnapshotKey


# ============================================================================
# Shared
# ============================================================================


@dataclass
class Token:
    """ERC-20 token metadata, resolved once and cached."""

    id: str
    name: str = "unknown"
    symbol: str = "unknown"
    decimals: int = DEFAULT_DECIMALS


@dataclass
class RewardToken:
    id: RewardTokenKey
    token: str
    reward_type: RewardTokenType


@dataclass
class RewardEmission:
    """One reward slot of a market: token, daily native amount, daily USD."""

    reward_type: RewardTokenType
    token: str
    amount: int = 0
    amount_usd: Decimal = BIGDECIMAL_ZERO


@dataclass
class ExistenceMarker:
    """Zero-payload membership record."""

    id: MarkerKey


# ============================================================================
# Lending
# ============================================================================


@dataclass
class LendingVolumes:
    """USD volumes and counts by lending activity.

    Used both for cumulative totals on markets and protocols and for the
    per-bucket deltas on snapshots.
    """

    deposit_usd: Decimal = BIGDECIMAL_ZERO
    withdraw_usd: Decimal = BIGDECIMAL_ZERO
    borrow_usd: Decimal = BIGDECIMAL_ZERO
    repay_usd: Decimal = BIGDECIMAL_ZERO
    liquidate_usd: Decimal = BIGDECIMAL_ZERO
    # Bonus collateral captured by liquidators.
    liquidation_revenue_usd: Decimal = BIGDECIMAL_ZERO
    deposit_count: int = 0
    withdraw_count: int = 0
    borrow_count: int = 0
    repay_count: int = 0
    liquidation_count: int = 0
    unique_users: int = 0

    def record(self, activity: LendingActivity, amount_usd: Decimal) -> None:
        if activity == LendingActivity.DEPOSIT:
            self.deposit_usd += amount_usd
            self.deposit_count += 1
        elif activity == LendingActivity.WITHDRAW:
            self.withdraw_usd += amount_usd
            self.withdraw_count += 1
        elif activity == LendingActivity.BORROW:
            self.borrow_usd += amount_usd
            self.borrow_count += 1
        elif activity == LendingActivity.REPAY:
            self.repay_usd += amount_usd
            self.repay_count += 1
        elif activity == LendingActivity.LIQUIDATE:
            self.liquidate_usd += amount_usd
            self.liquidation_count += 1

    def copy(self) -> LendingVolumes:
        return replace(self)


@dataclass
class LendingProtocol:
    id: str
    name: str
    slug: str
    schema_version: str
    subgraph_version: str
    methodology_version: str
    network: str
    price_oracle: str = ZERO_ADDRESS
    is_paused: bool = False
    total_pool_count: int = 0
    market_ids: list[str] = field(default_factory=list)
    total_value_locked_usd: Decimal = BIGDECIMAL_ZERO
    total_borrow_usd: Decimal = BIGDECIMAL_ZERO
    cumulative: LendingVolumes = field(default_factory=LendingVolumes)
    cumulative_unique_depositors: int = 0
    cumulative_unique_borrowers: int = 0
    cumulative_unique_liquidators: int = 0


@dataclass
class Market:
    id: str
    protocol: str
    name: str
    input_token: str
    output_token: str | None = None
    stable_debt_token: str | None = None
    variable_debt_token: str | None = None
    created_timestamp: int = 0
    created_block_number: int = 0

    is_active: bool = True
    is_paused: bool = False
    is_frozen: bool = False
    can_borrow_from: bool = False
    can_use_as_collateral: bool = False
    maximum_ltv: Decimal = BIGDECIMAL_ZERO
    liquidation_threshold: Decimal = BIGDECIMAL_ZERO
    liquidation_penalty: Decimal = BIGDECIMAL_ZERO
    reserve_factor: Decimal = BIGDECIMAL_ZERO

    input_token_balance: int = 0
    borrow_balance: int = 0
    input_token_price_usd: Decimal = BIGDECIMAL_ZERO
    total_value_locked_usd: Decimal = BIGDECIMAL_ZERO
    total_borrow_usd: Decimal = BIGDECIMAL_ZERO

    supply_rate: Decimal = BIGDECIMAL_ZERO
    variable_borrow_rate: Decimal = BIGDECIMAL_ZERO
    stable_borrow_rate: Decimal = BIGDECIMAL_ZERO
    liquidity_index: int = 0
    variable_borrow_index: int = 0

    rewards: list[RewardEmission] = field(default_factory=list)
    cumulative: LendingVolumes = field(default_factory=LendingVolumes)
    last_update_block_number: int = 0

    def reward_emission(self, reward_type: RewardTokenType) -> RewardEmission | None:
        for emission in self.rewards:
            if emission.reward_type == reward_type:
                return emission
        return None


@dataclass
class LendingEvent:
    """Immutable record of one deposit, withdraw, borrow, repay or liquidation."""

    id: EventKey
    activity: LendingActivity
    protocol: str
    market: str
    asset: str
    account: str
    block_number: int
    timestamp: int
    amount: int
    price_usd: Decimal
    amount_usd: Decimal
    liquidator: str | None = None
    profit_usd: Decimal | None = None


@dataclass
class MarketSnapshot:
    """Bucketed view of a market: gauges and cumulative totals as of the
    latest fold, plus the activity that landed in the bucket."""

    id: SnapshotKey
    market: str
    protocol: str
    block_number: int = 0
    timestamp: int = 0
    input_token_balance: int = 0
    input_token_price_usd: Decimal = BIGDECIMAL_ZERO
    total_value_locked_usd: Decimal = BIGDECIMAL_ZERO
    total_borrow_usd: Decimal = BIGDECIMAL_ZERO
    supply_rate: Decimal = BIGDECIMAL_ZERO
    variable_borrow_rate: Decimal = BIGDECIMAL_ZERO
    stable_borrow_rate: Decimal = BIGDECIMAL_ZERO
    rewards: list[RewardEmission] = field(default_factory=list)
    cumulative: LendingVolumes = field(default_factory=LendingVolumes)
    activity: LendingVolumes = field(default_factory=LendingVolumes)


@dataclass
class MarketDailySnapshot(MarketSnapshot):
    pass


@dataclass
class MarketHourlySnapshot(MarketSnapshot):
    pass


@dataclass
class ProtocolDailySnapshot:
    id: SnapshotKey
    protocol: str
    block_number: int = 0
    timestamp: int = 0
    total_value_locked_usd: Decimal = BIGDECIMAL_ZERO
    total_borrow_usd: Decimal = BIGDECIMAL_ZERO
    cumulative: LendingVolumes = field(default_factory=LendingVolumes)
    activity: LendingVolumes = field(default_factory=LendingVolumes)
    cumulative_unique_depositors: int = 0
    cumulative_unique_borrowers: int = 0
    cumulative_unique_liquidators: int = 0


# ============================================================================
# NFT marketplace
# ============================================================================


@dataclass
class RevenueTotals:
    """Trade volume and its revenue split, all in ETH.

    ``total_revenue_eth`` only moves together with one of its two parts.
    """

    trade_volume_eth: Decimal = BIGDECIMAL_ZERO
    marketplace_revenue_eth: Decimal = BIGDECIMAL_ZERO
    creator_revenue_eth: Decimal = BIGDECIMAL_ZERO
    total_revenue_eth: Decimal = BIGDECIMAL_ZERO
    trade_count: int = 0

    def add_trade(self, volume_eth: Decimal, marketplace_revenue_eth: Decimal) -> None:
        self.trade_count += 1
        self.trade_volume_eth += volume_eth
        self.marketplace_revenue_eth += marketplace_revenue_eth
        self.total_revenue_eth += marketplace_revenue_eth

    def add_creator_revenue(self, amount_eth: Decimal) -> None:
        self.creator_revenue_eth += amount_eth
        self.total_revenue_eth += amount_eth

    def copy(self) -> RevenueTotals:
        return replace(self)


@dataclass
class Marketplace:
    id: str
    name: str
    slug: str
    schema_version: str
    subgraph_version: str
    methodology_version: str
    network: str
    collection_count: int = 0
    cumulative: RevenueTotals = field(default_factory=RevenueTotals)
    cumulative_unique_traders: int = 0


@dataclass
class Collection:
    id: str
    nft_standard: NftStandard = NftStandard.UNKNOWN
    name: str | None = None
    symbol: str | None = None
    total_supply: int | None = None
    royalty_fee: Decimal = BIGDECIMAL_ZERO
    cumulative: RevenueTotals = field(default_factory=RevenueTotals)
    buyer_count: int = 0
    seller_count: int = 0


@dataclass
class ExecutionStrategy:
    id: str
    sale_strategy: SaleStrategy
    # Percent of trade volume kept by the marketplace.
    protocol_fee: Decimal


@dataclass
class Trade:
    id: EventKey
    collection: str
    token_id: str
    block_number: int
    timestamp: int
    amount: int
    price_eth: Decimal
    volume_eth: Decimal
    strategy: SaleStrategy
    buyer: str
    seller: str
    is_bundle: bool = False


@dataclass
class CollectionDailySnapshot:
    id: SnapshotKey
    collection: str
    block_number: int = 0
    timestamp: int = 0
    royalty_fee: Decimal = BIGDECIMAL_ZERO
    daily_min_sale_price: Decimal = BIGDECIMAL_MAX
    daily_max_sale_price: Decimal = BIGDECIMAL_ZERO
    cumulative: RevenueTotals = field(default_factory=RevenueTotals)
    daily_trade_volume_eth: Decimal = BIGDECIMAL_ZERO
    daily_trade_count: int = 0
    daily_traded_item_count: int = 0


@dataclass
class MarketplaceDailySnapshot:
    id: SnapshotKey
    marketplace: str
    block_number: int = 0
    timestamp: int = 0
    collection_count: int = 0
    cumulative: RevenueTotals = field(default_factory=RevenueTotals)
    cumulative_unique_traders: int = 0
    daily_trade_volume_eth: Decimal = BIGDECIMAL_ZERO
    daily_trade_count: int = 0
    daily_traded_item_count: int = 0
    daily_active_traders: int = 0
    daily_traded_collection_count: int = 0
