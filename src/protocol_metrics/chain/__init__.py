"""Chain access layer - Read-only contract calls."""

from protocol_metrics.chain.reader import CallResult, ContractReader

__all__ = [
    "CallResult",
    "ContractReader",
]
