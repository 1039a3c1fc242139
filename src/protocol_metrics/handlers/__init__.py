"""Handlers - Event kind to entity mutations."""

from protocol_metrics.handlers.lending import LendingHandlers
from protocol_metrics.handlers.marketplace import MarketplaceHandlers

__all__ = [
    "LendingHandlers",
    "MarketplaceHandlers",
]
