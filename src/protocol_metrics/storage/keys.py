"""Composite entity identities.

Every composite key is a frozen dataclass so that two different keys can
never collide the way delimiter-joined strings can.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from protocol_metrics.constants import RewardTokenType


@dataclass(frozen=True)
class EventKey:
    """Identity of an event record: transaction hash plus log index."""

    transaction_hash: str
    log_index: int


@dataclass(frozen=True)
class SnapshotKey:
    """Identity of a time-bucketed snapshot.

    ``bucket`` is ``timestamp // 86400`` for daily snapshots and
    ``timestamp // 3600`` for hourly ones.
    """

    parent_id: str
    bucket: int


@dataclass(frozen=True)
class RewardTokenKey:
    token_address: str
    reward_type: RewardTokenType


class MarkerScope(str, Enum):
    """Aggregation scope an existence marker counts within."""

    PROTOCOL_ACCOUNT = "PROTOCOL_ACCOUNT"
    PROTOCOL_DEPOSITOR = "PROTOCOL_DEPOSITOR"
    PROTOCOL_BORROWER = "PROTOCOL_BORROWER"
    PROTOCOL_LIQUIDATOR = "PROTOCOL_LIQUIDATOR"
    MARKET_ACCOUNT = "MARKET_ACCOUNT"
    DAILY_PROTOCOL_ACCOUNT = "DAILY_PROTOCOL_ACCOUNT"
    DAILY_MARKET_ACCOUNT = "DAILY_MARKET_ACCOUNT"
    HOURLY_MARKET_ACCOUNT = "HOURLY_MARKET_ACCOUNT"
    COLLECTION_BUYER = "COLLECTION_BUYER"
    COLLECTION_SELLER = "COLLECTION_SELLER"
    MARKETPLACE_ACCOUNT = "MARKETPLACE_ACCOUNT"
    DAILY_MARKETPLACE_ACCOUNT = "DAILY_MARKETPLACE_ACCOUNT"
    DAILY_TRADED_ITEM = "DAILY_TRADED_ITEM"
    DAILY_TRADED_COLLECTION = "DAILY_TRADED_COLLECTION"
    ROYALTY_PAYMENT = "ROYALTY_PAYMENT"


@dataclass(frozen=True)
class MarkerKey:
    """Identity of an existence marker.

    ``subject`` narrows the scope (a market, collection or marketplace id),
    ``participant`` is the counted thing (an account, token id, collection),
    and ``bucket`` is set for per-day or per-hour markers.
    """

    scope: MarkerScope
    subject: str
    participant: str
    bucket: int | None = None
