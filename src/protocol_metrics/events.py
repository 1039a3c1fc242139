"""Decoded event input types."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from protocol_metrics.constants import SECONDS_PER_DAY, SECONDS_PER_HOUR
from protocol_metrics.storage.keys import EventKey


@dataclass(frozen=True)
class EventContext:
    """Position and time of one on-chain event."""

    transaction_hash: str
    log_index: int
    block_number: int
    timestamp: int

    @property
    def event_key(self) -> EventKey:
        return EventKey(transaction_hash=self.transaction_hash.lower(), log_index=self.log_index)

    @property
    def day(self) -> int:
        return self.timestamp // SECONDS_PER_DAY

    @property
    def hour(self) -> int:
        return self.timestamp // SECONDS_PER_HOUR

    @property
    def ordering(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class DecodedEvent:
    """An already-decoded log as delivered by the host.

    ``params`` carries the event arguments by ABI name: addresses as hex
    strings and integers at native precision.
    """

    name: str
    address: str
    context: EventContext
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    def address_param(self, name: str) -> str:
        return str(self.params[name]).lower()

    def int_param(self, name: str) -> int:
        return int(self.params[name])

    def bool_param(self, name: str) -> bool:
        return bool(self.params[name])
