"""Daily reward emissions of chef-style incentives controllers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from web3.types import BlockIdentifier

from protocol_metrics.chain.abis import POOL_INFO_ALLOC_POINT_INDEX
from protocol_metrics.chain.reader import ContractReader
from protocol_metrics.constants import (
    REWARD_SLOT_ORDER,
    SECONDS_PER_DAY,
    RewardTokenType,
    exponent_to_decimal,
)
from protocol_metrics.storage.entities import Market, RewardEmission, RewardToken
from protocol_metrics.storage.keys import RewardTokenKey
from protocol_metrics.storage.store import EntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmissionAmounts:
    """Daily emission of one reward slot."""

    daily_amount: Decimal
    daily_usd: Decimal
    # daily_amount at native precision, truncated.
    native_amount: int


class RewardEmissionCalculator:
    """Reads controller rates and turns them into daily emissions."""

    def __init__(self, reader: ContractReader) -> None:
        self._reader = reader

    def compute_emission(
        self,
        controller: str,
        pool: str,
        *,
        reward_decimals: int,
        reward_price_usd: Decimal,
        block_identifier: BlockIdentifier | None = None,
    ) -> EmissionAmounts | None:
        """Compute the daily emission of one pool.

        Args:
            controller: Incentives controller address.
            pool: Token whose pool weight is read (aToken or debt token).
            reward_decimals: Decimals of the reward token.
            reward_price_usd: USD price of one reward token.
            block_identifier: Block to read the controller at.

        Returns:
            The emission, or None if any of the three reads failed. Callers
            must leave existing emission fields untouched on None.
        """
        rewards_per_second = self._reader.try_call(
            controller, "rewardsPerSecond", block_identifier=block_identifier
        )
        pool_info = self._reader.try_call(
            controller, "poolInfo", [pool], block_identifier=block_identifier
        )
        total_alloc_point = self._reader.try_call(
            controller, "totalAllocPoint", block_identifier=block_identifier
        )
        if rewards_per_second.reverted or pool_info.reverted or total_alloc_point.reverted:
            logger.warning("Failed to read emission rates of %s for pool %s", controller, pool)
            return None

        total = int(total_alloc_point.value)
        if total == 0:
            logger.warning("Controller %s reports zero total allocation", controller)
            return None

        return daily_emission(
            int(rewards_per_second.value),
            int(pool_info.value[POOL_INFO_ALLOC_POINT_INDEX]),
            total,
            reward_decimals=reward_decimals,
            reward_price_usd=reward_price_usd,
        )


def daily_emission(
    rewards_per_second: int,
    pool_alloc_point: int,
    total_alloc_point: int,
    *,
    reward_decimals: int,
    reward_price_usd: Decimal,
) -> EmissionAmounts:
    """``rps * 86400 / 10**decimals * (pool / total)`` and its USD value."""
    scale = exponent_to_decimal(reward_decimals)
    daily_amount = (
        Decimal(rewards_per_second * SECONDS_PER_DAY)
        / scale
        * (Decimal(pool_alloc_point) / Decimal(total_alloc_point))
    )
    return EmissionAmounts(
        daily_amount=daily_amount,
        daily_usd=daily_amount * reward_price_usd,
        native_amount=int(daily_amount * scale),
    )


def ensure_reward_slots(store: EntityStore, market: Market, token_address: str) -> None:
    """Make ``market.rewards`` hold exactly one slot per reward type.

    Slots are kept in alphabetical order of their type. A missing slot, an
    extra slot or a slot for another token resets the whole table to zeroed
    slots before amounts are assigned.
    """
    expected = [(reward_type, token_address) for reward_type in REWARD_SLOT_ORDER]
    actual = [(emission.reward_type, emission.token) for emission in market.rewards]
    if actual == expected:
        return

    if market.rewards:
        logger.warning("Rebuilding reward slots of market %s", market.id)

    slots = []
    for reward_type in REWARD_SLOT_ORDER:
        key = RewardTokenKey(token_address=token_address, reward_type=reward_type)
        if store.load(RewardToken, key) is None:
            store.save(RewardToken(id=key, token=token_address, reward_type=reward_type))
        slots.append(RewardEmission(reward_type=reward_type, token=token_address))
    market.rewards = slots


def apply_emissions(market: Market, emissions: dict[RewardTokenType, EmissionAmounts]) -> None:
    for emission in market.rewards:
        amounts = emissions.get(emission.reward_type)
        if amounts is None:
            continue
        emission.amount = amounts.native_amount
        emission.amount_usd = amounts.daily_usd
