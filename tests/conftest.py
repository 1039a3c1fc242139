"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest

from protocol_metrics.chain.reader import CallResult
from protocol_metrics.networks import AAVE_V2, LOOKSRARE, UWU_LEND, ProtocolIdentity, resolve_identity
from protocol_metrics.storage.store import InMemoryEntityStore

_REVERT = object()


def _normalize(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


class StubContractReader:
    """Scripted stand-in for ContractReader.

    Unscripted calls revert, like a contract that lacks the method.
    """

    def __init__(self) -> None:
        self._responses: dict[tuple[str, str, tuple[Any, ...]], Any] = {}
        self.calls: list[tuple[str, str, tuple[Any, ...]]] = []
        self.blocks: list[tuple[str, Any]] = []

    @staticmethod
    def _key(address: str, method: str, args: Sequence[Any]) -> tuple[str, str, tuple[Any, ...]]:
        return (address.lower(), method, tuple(_normalize(arg) for arg in args))

    def set(self, address: str, method: str, value: Any, args: Sequence[Any] = ()) -> None:
        self._responses[self._key(address, method, args)] = value

    def revert(self, address: str, method: str, args: Sequence[Any] = ()) -> None:
        self._responses[self._key(address, method, args)] = _REVERT

    def try_call(
        self,
        address: str,
        method: str,
        args: Sequence[Any] = (),
        *,
        block_identifier: Any = None,
    ) -> CallResult:
        key = self._key(address, method, args)
        self.calls.append(key)
        self.blocks.append((method, block_identifier))
        value = self._responses.get(key, _REVERT)
        if value is _REVERT:
            return CallResult.failed()
        return CallResult.ok(value)

    def count_calls(self, method: str) -> int:
        return sum(1 for _, called, _ in self.calls if called == method)

    def blocks_for(self, method: str) -> set[Any]:
        """Blocks that reads of ``method`` were made at."""
        return {block for called, block in self.blocks if called == method}


@pytest.fixture
def store() -> InMemoryEntityStore:
    """Empty in-memory entity store."""
    return InMemoryEntityStore()


@pytest.fixture
def reader() -> StubContractReader:
    """Contract reader where every call reverts until scripted."""
    return StubContractReader()


@pytest.fixture
def aave_identity() -> ProtocolIdentity:
    return resolve_identity(AAVE_V2, "mainnet")


@pytest.fixture
def uwu_identity() -> ProtocolIdentity:
    return resolve_identity(UWU_LEND, "mainnet")


@pytest.fixture
def looksrare_identity() -> ProtocolIdentity:
    return resolve_identity(LOOKSRARE, "mainnet")
