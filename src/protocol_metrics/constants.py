"""Shared constants and enumerations."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

SECONDS_PER_DAY = 86400
SECONDS_PER_HOUR = 3600

DEFAULT_DECIMALS = 18
# Ray units used by Aave interest rates and indexes.
RAY_DECIMALS = 27

BIGDECIMAL_ZERO = Decimal(0)
BIGDECIMAL_HUNDRED = Decimal(100)
# Seed for running minimums; any real price folds below it.
BIGDECIMAL_MAX = Decimal("1e64")
MANTISSA_FACTOR = Decimal(10) ** 18

ERC721_INTERFACE_IDENTIFIER = "0x80ac58cd"
ERC1155_INTERFACE_IDENTIFIER = "0xd9b67a26"


def exponent_to_decimal(decimals: int) -> Decimal:
    """Return 10**decimals as a Decimal."""
    return Decimal(10) ** decimals


def to_units(amount: int, decimals: int) -> Decimal:
    """Convert a native integer amount to whole-token units."""
    return Decimal(amount) / exponent_to_decimal(decimals)


class Network(str, Enum):
    """Chains with known deployments."""

    MAINNET = "mainnet"
    AVALANCHE = "avalanche"
    MATIC = "matic"


class ProtocolKind(str, Enum):
    """Entity family a protocol writes into."""

    LENDING = "lending"
    MARKETPLACE = "marketplace"


class LendingActivity(str, Enum):
    """Lending event classification tag."""

    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    BORROW = "BORROW"
    REPAY = "REPAY"
    LIQUIDATE = "LIQUIDATE"


class RewardTokenType(str, Enum):
    """Reward slot type. Slots are ordered alphabetically by value."""

    BORROW = "BORROW"
    DEPOSIT = "DEPOSIT"


REWARD_SLOT_ORDER: tuple[RewardTokenType, ...] = tuple(
    sorted(RewardTokenType, key=lambda reward_type: reward_type.value)
)


class SaleStrategy(str, Enum):
    """LooksRare execution strategy variants."""

    STANDARD_SALE = "STANDARD_SALE"
    ANY_ITEM_FROM_COLLECTION = "ANY_ITEM_FROM_COLLECTION"
    PRIVATE_SALE = "PRIVATE_SALE"
    UNKNOWN = "UNKNOWN"


class NftStandard(str, Enum):
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"
    UNKNOWN = "UNKNOWN"
