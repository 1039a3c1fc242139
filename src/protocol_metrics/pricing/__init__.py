"""Pricing - Oracle price resolution and reward emission math."""

from protocol_metrics.pricing.emissions import EmissionAmounts, RewardEmissionCalculator
from protocol_metrics.pricing.oracle import PriceOracleResolver

__all__ = [
    "EmissionAmounts",
    "PriceOracleResolver",
    "RewardEmissionCalculator",
]
