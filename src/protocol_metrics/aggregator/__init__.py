"""Aggregator - Unique-participant counting and snapshot folding."""

from protocol_metrics.aggregator.participants import UniqueParticipantTracker
from protocol_metrics.aggregator.snapshots import SnapshotAggregator

__all__ = [
    "SnapshotAggregator",
    "UniqueParticipantTracker",
]
