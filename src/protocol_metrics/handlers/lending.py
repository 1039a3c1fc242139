"""Lending protocol handlers for the Aave v2 fork family.

Each public method handles one event kind. Handlers only touch the store,
the contract reader and the aggregation helpers; they never raise on a
missing entity or a failed contract read (see module docstrings of
``protocol_metrics.pricing``). Every entity a handler mutates is saved
explicitly so the unit of work writes it when the event commits.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal

from protocol_metrics.aggregator.participants import UniqueParticipantTracker
from protocol_metrics.aggregator.snapshots import SnapshotAggregator
from protocol_metrics.chain.reader import ContractReader
from protocol_metrics.constants import (
    BIGDECIMAL_HUNDRED,
    BIGDECIMAL_ZERO,
    RAY_DECIMALS,
    ZERO_ADDRESS,
    LendingActivity,
    RewardTokenType,
    exponent_to_decimal,
    to_units,
)
from protocol_metrics.events import EventContext
from protocol_metrics.handlers.common import get_or_create_lending_protocol, get_or_create_token
from protocol_metrics.networks import ProtocolIdentity, RewardConfig
from protocol_metrics.pricing.emissions import (
    EmissionAmounts,
    RewardEmissionCalculator,
    apply_emissions,
    ensure_reward_slots,
)
from protocol_metrics.pricing.oracle import PriceOracleResolver
from protocol_metrics.storage.entities import LendingEvent, LendingProtocol, LendingVolumes, Market
from protocol_metrics.storage.keys import MarkerKey, MarkerScope
from protocol_metrics.storage.store import EntityStore

logger = logging.getLogger(__name__)


def ray_to_percent(rate: int) -> Decimal:
    """Convert an Aave ray rate (1e27 = 100%) to a percentage."""
    return Decimal(rate) / exponent_to_decimal(RAY_DECIMALS) * BIGDECIMAL_HUNDRED


def bps_to_percent(value: int) -> Decimal:
    return Decimal(value) / BIGDECIMAL_HUNDRED


class LendingHandlers:
    """Handler core for lending pool, configurator and address provider events.

    The protocol identity is supplied per call by the dispatcher.

    Example:
        ```python
        handlers = LendingHandlers(store, reader)
        handlers.deposit(identity, event.context, reserve=asset, account=user, amount=10**18)
        ```
    """

    def __init__(self, store: EntityStore, reader: ContractReader) -> None:
        self._store = store
        self._reader = reader
        self._participants = UniqueParticipantTracker(store)
        self._snapshots = SnapshotAggregator(store)
        self._emissions = RewardEmissionCalculator(reader)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _oracle(self, identity: ProtocolIdentity) -> PriceOracleResolver:
        return PriceOracleResolver(self._reader, oracle_decimals=identity.oracle_decimals)

    def _protocol(self, identity: ProtocolIdentity) -> LendingProtocol:
        return get_or_create_lending_protocol(self._store, identity)

    def _get_or_create_market(
        self, identity: ProtocolIdentity, context: EventContext, asset: str
    ) -> Market:
        asset = asset.lower()
        market = self._store.load(Market, asset)
        if market is not None:
            return market

        token = get_or_create_token(self._store, self._reader, asset, block_identifier=context.block_number)
        market = Market(
            id=asset,
            protocol=identity.protocol_id,
            name=token.name,
            input_token=asset,
            created_timestamp=context.timestamp,
            created_block_number=context.block_number,
        )
        protocol = self._protocol(identity)
        if market.id not in protocol.market_ids:
            protocol.market_ids.append(market.id)
            protocol.total_pool_count += 1
            self._store.save(protocol)
        logger.info("New market %s (%s) on %s", token.symbol, asset, identity.slug)
        self._store.save(market)
        return market

    def _require_market(self, asset: str, event_name: str) -> Market | None:
        market = self._store.load(Market, asset.lower())
        if market is None:
            logger.warning("[%s] Market not found: %s", event_name, asset)
        return market

    def _refresh_gauges(self, market: Market, price_usd: Decimal, block_number: int) -> None:
        token = get_or_create_token(
            self._store, self._reader, market.input_token, block_identifier=block_number
        )
        market.input_token_price_usd = price_usd
        market.total_value_locked_usd = to_units(market.input_token_balance, token.decimals) * price_usd
        market.total_borrow_usd = to_units(market.borrow_balance, token.decimals) * price_usd

    def _refresh_protocol_totals(self, protocol: LendingProtocol) -> None:
        tvl = BIGDECIMAL_ZERO
        borrows = BIGDECIMAL_ZERO
        for market_id in protocol.market_ids:
            market = self._store.load(Market, market_id)
            if market is None:
                continue
            tvl += market.total_value_locked_usd
            borrows += market.total_borrow_usd
        protocol.total_value_locked_usd = tvl
        protocol.total_borrow_usd = borrows

    def _count_account(
        self,
        protocol: LendingProtocol,
        market: Market,
        context: EventContext,
        account: str,
    ) -> tuple[int, int, int]:
        """Mark an account active; return (daily market, hourly market, daily protocol) increments."""
        if self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.PROTOCOL_ACCOUNT, protocol.id, account)
        ):
            protocol.cumulative.unique_users += 1
        if self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.MARKET_ACCOUNT, market.id, account)
        ):
            market.cumulative.unique_users += 1

        daily_market = self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.DAILY_MARKET_ACCOUNT, market.id, account, context.day)
        )
        hourly_market = self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.HOURLY_MARKET_ACCOUNT, market.id, account, context.hour)
        )
        daily_protocol = self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.DAILY_PROTOCOL_ACCOUNT, protocol.id, account, context.day)
        )
        return int(daily_market), int(hourly_market), int(daily_protocol)

    def _fold(
        self,
        protocol: LendingProtocol,
        market: Market,
        context: EventContext,
        delta: LendingVolumes | None = None,
        new_users: tuple[int, int, int] = (0, 0, 0),
    ) -> None:
        if delta is None:
            self._snapshots.fold_market(market, context)
            self._snapshots.fold_protocol(protocol, context)
            return
        daily_market, hourly_market, daily_protocol = new_users
        self._snapshots.fold_market(
            market,
            context,
            replace(delta, unique_users=daily_market),
            replace(delta, unique_users=hourly_market),
        )
        self._snapshots.fold_protocol(protocol, context, replace(delta, unique_users=daily_protocol))

    def _already_recorded(self, context: EventContext, event_name: str) -> bool:
        if self._store.load(LendingEvent, context.event_key) is not None:
            logger.debug("[%s] Already processed %s", event_name, context.event_key)
            return True
        return False

    # ------------------------------------------------------------------
    # Address provider
    # ------------------------------------------------------------------

    def price_oracle_updated(self, identity: ProtocolIdentity, new_oracle: str) -> None:
        protocol = self._protocol(identity)
        protocol.price_oracle = new_oracle.lower()
        logger.info("Price oracle of %s set to %s", identity.slug, protocol.price_oracle)
        self._store.save(protocol)

    # ------------------------------------------------------------------
    # Configurator
    # ------------------------------------------------------------------

    def reserve_initialized(
        self,
        identity: ProtocolIdentity,
        context: EventContext,
        *,
        asset: str,
        a_token: str,
        stable_debt_token: str | None,
        variable_debt_token: str | None,
    ) -> None:
        market = self._get_or_create_market(identity, context, asset)
        block = context.block_number
        market.output_token = get_or_create_token(
            self._store, self._reader, a_token, block_identifier=block
        ).id
        if stable_debt_token:
            market.stable_debt_token = get_or_create_token(
                self._store, self._reader, stable_debt_token, block_identifier=block
            ).id
        if variable_debt_token:
            market.variable_debt_token = get_or_create_token(
                self._store, self._reader, variable_debt_token, block_identifier=block
            ).id
        self._store.save(market)

    def collateral_configuration_changed(
        self,
        identity: ProtocolIdentity,
        context: EventContext,
        *,
        asset: str,
        ltv: int,
        liquidation_threshold: int,
        liquidation_bonus: int,
    ) -> None:
        """Basis-point parameters become percentages.

        The bonus is quoted as 100% plus the penalty (10500 = 5% penalty);
        a zero bonus leaves the penalty unchanged.
        """
        market = self._get_or_create_market(identity, context, asset)
        market.maximum_ltv = bps_to_percent(ltv)
        market.liquidation_threshold = bps_to_percent(liquidation_threshold)
        if liquidation_bonus > 0:
            market.liquidation_penalty = bps_to_percent(liquidation_bonus) - BIGDECIMAL_HUNDRED
        market.can_use_as_collateral = liquidation_threshold > 0
        self._store.save(market)

    def borrowing_enabled(self, identity: ProtocolIdentity, context: EventContext, *, asset: str) -> None:
        self._set_flag(identity, context, asset, "can_borrow_from", True)

    def borrowing_disabled(self, identity: ProtocolIdentity, context: EventContext, *, asset: str) -> None:
        self._set_flag(identity, context, asset, "can_borrow_from", False)

    def reserve_activated(self, identity: ProtocolIdentity, context: EventContext, *, asset: str) -> None:
        self._set_flag(identity, context, asset, "is_active", True)

    def reserve_deactivated(self, identity: ProtocolIdentity, context: EventContext, *, asset: str) -> None:
        self._set_flag(identity, context, asset, "is_active", False)

    def reserve_frozen(self, identity: ProtocolIdentity, context: EventContext, *, asset: str) -> None:
        self._set_flag(identity, context, asset, "is_frozen", True)

    def reserve_unfrozen(self, identity: ProtocolIdentity, context: EventContext, *, asset: str) -> None:
        self._set_flag(identity, context, asset, "is_frozen", False)

    def _set_flag(
        self, identity: ProtocolIdentity, context: EventContext, asset: str, flag: str, value: bool
    ) -> None:
        market = self._get_or_create_market(identity, context, asset)
        setattr(market, flag, value)
        self._store.save(market)

    def reserve_factor_changed(
        self, identity: ProtocolIdentity, context: EventContext, *, asset: str, factor: int
    ) -> None:
        market = self._get_or_create_market(identity, context, asset)
        market.reserve_factor = bps_to_percent(factor)
        self._store.save(market)

    # ------------------------------------------------------------------
    # Lending pool
    # ------------------------------------------------------------------

    def paused(self, identity: ProtocolIdentity) -> None:
        self._set_paused(identity, True)

    def unpaused(self, identity: ProtocolIdentity) -> None:
        self._set_paused(identity, False)

    def _set_paused(self, identity: ProtocolIdentity, value: bool) -> None:
        protocol = self._protocol(identity)
        protocol.is_paused = value
        self._store.save(protocol)
        for market_id in protocol.market_ids:
            market = self._store.load(Market, market_id)
            if market is None:
                continue
            market.is_paused = value
            self._store.save(market)

    def reserve_data_updated(
        self,
        identity: ProtocolIdentity,
        context: EventContext,
        *,
        reserve: str,
        liquidity_rate: int,
        stable_borrow_rate: int,
        variable_borrow_rate: int,
        liquidity_index: int,
        variable_borrow_index: int,
    ) -> None:
        """Refresh price, emissions, rates and indexes of an existing market."""
        market = self._require_market(reserve, "reserve_data_updated")
        if market is None:
            return
        protocol = self._protocol(identity)
        oracle = self._oracle(identity)

        if identity.rewards is not None:
            self._update_emissions(market, protocol, identity.rewards, oracle, context.block_number)

        price_usd = oracle.resolve_price(
            market.input_token, protocol.price_oracle, block_identifier=context.block_number
        )
        market.supply_rate = ray_to_percent(liquidity_rate)
        market.stable_borrow_rate = ray_to_percent(stable_borrow_rate)
        market.variable_borrow_rate = ray_to_percent(variable_borrow_rate)
        market.liquidity_index = liquidity_index
        market.variable_borrow_index = variable_borrow_index
        market.last_update_block_number = context.block_number
        self._refresh_gauges(market, price_usd, context.block_number)
        self._store.save(market)

        self._refresh_protocol_totals(protocol)
        self._store.save(protocol)
        self._fold(protocol, market, context)

    def _update_emissions(
        self,
        market: Market,
        protocol: LendingProtocol,
        rewards: RewardConfig,
        oracle: PriceOracleResolver,
        block_number: int,
    ) -> None:
        """Recompute both reward slots at ``block_number``, or leave them untouched if any read fails."""
        if market.output_token is None:
            return
        controller = self._reader.try_call(
            market.output_token, "getIncentivesController", block_identifier=block_number
        )
        if controller.reverted or str(controller.value).lower() == ZERO_ADDRESS:
            return
        controller_address = str(controller.value)

        reward_token = get_or_create_token(
            self._store, self._reader, rewards.token_address, block_identifier=block_number
        )
        if rewards.pair_address and rewards.base_token:
            base_token = get_or_create_token(
                self._store, self._reader, rewards.base_token, block_identifier=block_number
            )
            reward_price = oracle.resolve_pair_price(
                rewards.pair_address,
                reward_token.id,
                base_token.id,
                protocol.price_oracle,
                token_decimals=reward_token.decimals,
                base_decimals=base_token.decimals,
                block_identifier=block_number,
            )
        else:
            reward_price = oracle.resolve_price(
                reward_token.id, protocol.price_oracle, block_identifier=block_number
            )

        pools = {
            RewardTokenType.DEPOSIT: market.output_token,
            RewardTokenType.BORROW: market.variable_debt_token or market.output_token,
        }
        emissions: dict[RewardTokenType, EmissionAmounts] = {}
        for reward_type, pool in pools.items():
            amounts = self._emissions.compute_emission(
                controller_address,
                pool,
                reward_decimals=reward_token.decimals,
                reward_price_usd=reward_price,
                block_identifier=block_number,
            )
            if amounts is None:
                return
            emissions[reward_type] = amounts

        ensure_reward_slots(self._store, market, reward_token.id)
        apply_emissions(market, emissions)
        self._store.save(market)

    def deposit(
        self, identity: ProtocolIdentity, context: EventContext, *, reserve: str, account: str, amount: int
    ) -> None:
        self._handle_activity(identity, context, LendingActivity.DEPOSIT, reserve, account, amount)

    def withdraw(
        self, identity: ProtocolIdentity, context: EventContext, *, reserve: str, account: str, amount: int
    ) -> None:
        self._handle_activity(identity, context, LendingActivity.WITHDRAW, reserve, account, amount)

    def borrow(
        self, identity: ProtocolIdentity, context: EventContext, *, reserve: str, account: str, amount: int
    ) -> None:
        self._handle_activity(identity, context, LendingActivity.BORROW, reserve, account, amount)

    def repay(
        self, identity: ProtocolIdentity, context: EventContext, *, reserve: str, account: str, amount: int
    ) -> None:
        self._handle_activity(identity, context, LendingActivity.REPAY, reserve, account, amount)

    def _handle_activity(
        self,
        identity: ProtocolIdentity,
        context: EventContext,
        activity: LendingActivity,
        reserve: str,
        account: str,
        amount: int,
    ) -> None:
        event_name = activity.value.lower()
        market = self._require_market(reserve, event_name)
        if market is None or self._already_recorded(context, event_name):
            return
        account = account.lower()
        protocol = self._protocol(identity)
        block = context.block_number
        token = get_or_create_token(self._store, self._reader, market.input_token, block_identifier=block)
        price_usd = self._oracle(identity).resolve_price(
            market.input_token, protocol.price_oracle, block_identifier=block
        )
        amount_usd = to_units(amount, token.decimals) * price_usd

        self._store.save(
            LendingEvent(
                id=context.event_key,
                activity=activity,
                protocol=protocol.id,
                market=market.id,
                asset=market.input_token,
                account=account,
                block_number=context.block_number,
                timestamp=context.timestamp,
                amount=amount,
                price_usd=price_usd,
                amount_usd=amount_usd,
            )
        )

        if activity == LendingActivity.DEPOSIT:
            market.input_token_balance += amount
        elif activity == LendingActivity.WITHDRAW:
            market.input_token_balance = max(market.input_token_balance - amount, 0)
        elif activity == LendingActivity.BORROW:
            market.borrow_balance += amount
        elif activity == LendingActivity.REPAY:
            market.borrow_balance = max(market.borrow_balance - amount, 0)

        market.cumulative.record(activity, amount_usd)
        protocol.cumulative.record(activity, amount_usd)

        if activity == LendingActivity.DEPOSIT and self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.PROTOCOL_DEPOSITOR, protocol.id, account)
        ):
            protocol.cumulative_unique_depositors += 1
        if activity == LendingActivity.BORROW and self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.PROTOCOL_BORROWER, protocol.id, account)
        ):
            protocol.cumulative_unique_borrowers += 1
        new_users = self._count_account(protocol, market, context, account)

        self._refresh_gauges(market, price_usd, block)
        self._store.save(market)
        self._refresh_protocol_totals(protocol)
        self._store.save(protocol)

        delta = LendingVolumes()
        delta.record(activity, amount_usd)
        self._fold(protocol, market, context, delta, new_users)

    def liquidation(
        self,
        identity: ProtocolIdentity,
        context: EventContext,
        *,
        collateral_asset: str,
        debt_asset: str,
        liquidator: str,
        borrower: str,
        liquidated_collateral_amount: int,
        debt_to_cover: int = 0,
    ) -> None:
        """Record a liquidation against the collateral market.

        The liquidator's profit is the bonus share of the seized collateral:
        ``amount_usd * penalty / (100 + penalty)``.
        """
        collateral_market = self._require_market(collateral_asset, "liquidation")
        debt_market = self._require_market(debt_asset, "liquidation")
        if collateral_market is None or debt_market is None:
            return
        if self._already_recorded(context, "liquidation"):
            return

        liquidator = liquidator.lower()
        protocol = self._protocol(identity)
        oracle = self._oracle(identity)
        block = context.block_number
        token = get_or_create_token(
            self._store, self._reader, collateral_market.input_token, block_identifier=block
        )
        price_usd = oracle.resolve_price(
            collateral_market.input_token, protocol.price_oracle, block_identifier=block
        )
        amount_usd = to_units(liquidated_collateral_amount, token.decimals) * price_usd
        penalty = collateral_market.liquidation_penalty
        profit_usd = amount_usd * penalty / (BIGDECIMAL_HUNDRED + penalty)

        self._store.save(
            LendingEvent(
                id=context.event_key,
                activity=LendingActivity.LIQUIDATE,
                protocol=protocol.id,
                market=collateral_market.id,
                asset=collateral_market.input_token,
                account=borrower.lower(),
                block_number=context.block_number,
                timestamp=context.timestamp,
                amount=liquidated_collateral_amount,
                price_usd=price_usd,
                amount_usd=amount_usd,
                liquidator=liquidator,
                profit_usd=profit_usd,
            )
        )

        delta = LendingVolumes()
        delta.record(LendingActivity.LIQUIDATE, amount_usd)
        delta.liquidation_revenue_usd = profit_usd

        collateral_market.input_token_balance = max(
            collateral_market.input_token_balance - liquidated_collateral_amount, 0
        )
        collateral_market.cumulative.record(LendingActivity.LIQUIDATE, amount_usd)
        collateral_market.cumulative.liquidation_revenue_usd += profit_usd
        protocol.cumulative.record(LendingActivity.LIQUIDATE, amount_usd)
        protocol.cumulative.liquidation_revenue_usd += profit_usd

        if self._participants.mark_and_count_if_new(
            MarkerKey(MarkerScope.PROTOCOL_LIQUIDATOR, protocol.id, liquidator)
        ):
            protocol.cumulative_unique_liquidators += 1
        new_users = self._count_account(protocol, collateral_market, context, liquidator)

        self._refresh_gauges(collateral_market, price_usd, block)
        self._store.save(collateral_market)

        if debt_to_cover and debt_market.id != collateral_market.id:
            debt_market.borrow_balance = max(debt_market.borrow_balance - debt_to_cover, 0)
            debt_price = oracle.resolve_price(
                debt_market.input_token, protocol.price_oracle, block_identifier=block
            )
            self._refresh_gauges(debt_market, debt_price, block)
            self._store.save(debt_market)
            self._snapshots.fold_market(debt_market, context)
        elif debt_to_cover:
            collateral_market.borrow_balance = max(collateral_market.borrow_balance - debt_to_cover, 0)
            self._refresh_gauges(collateral_market, price_usd, block)

        self._refresh_protocol_totals(protocol)
        self._store.save(protocol)
        self._fold(protocol, collateral_market, context, delta, new_users)
