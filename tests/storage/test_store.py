"""Tests for the unit-of-work entity store."""

from __future__ import annotations

import pytest

from protocol_metrics.storage.entities import ExistenceMarker, Token
from protocol_metrics.storage.keys import MarkerKey, MarkerScope
from protocol_metrics.storage.store import EntityStoreError, InMemoryEntityStore


class TestInMemoryEntityStore:
    """Tests for InMemoryEntityStore."""

    def test_load_missing(self, store: InMemoryEntityStore):
        assert store.load(Token, "0xmissing") is None

    def test_save_outside_transaction_writes_immediately(self, store: InMemoryEntityStore):
        store.save(Token(id="0xweth", symbol="WETH"))

        loaded = store.load(Token, "0xweth")

        assert loaded is not None
        assert loaded.symbol == "WETH"

    def test_loads_outside_transaction_are_independent_copies(self, store: InMemoryEntityStore):
        store.save(Token(id="0xweth"))

        first = store.load(Token, "0xweth")
        first.symbol = "changed"

        assert store.load(Token, "0xweth").symbol == "unknown"

    def test_identity_map_inside_transaction(self, store: InMemoryEntityStore):
        store.save(Token(id="0xweth"))

        with store.transaction():
            first = store.load(Token, "0xweth")
            second = store.load(Token, "0xweth")
            assert first is second

    def test_writes_are_deferred_until_commit(self, store: InMemoryEntityStore):
        with store.transaction():
            store.save(Token(id="0xweth"))
            assert store.count(Token) == 0
            assert store.load(Token, "0xweth") is not None

        assert store.count(Token) == 1

    def test_exception_discards_staged_writes(self, store: InMemoryEntityStore):
        store.save(Token(id="0xweth", symbol="WETH"))

        with pytest.raises(RuntimeError):
            with store.transaction():
                token = store.load(Token, "0xweth")
                token.symbol = "BROKEN"
                store.save(token)
                store.save(Token(id="0xdai"))
                raise RuntimeError("boom")

        assert store.load(Token, "0xweth").symbol == "WETH"
        assert store.load(Token, "0xdai") is None
        assert not store.in_transaction

    def test_nested_transaction_rejected(self, store: InMemoryEntityStore):
        with store.transaction():
            with pytest.raises(EntityStoreError):
                with store.transaction():
                    pass

    def test_composite_keys(self, store: InMemoryEntityStore):
        key = MarkerKey(MarkerScope.DAILY_MARKET_ACCOUNT, "0xmarket", "0xuser", 19000)
        store.save(ExistenceMarker(id=key))

        assert store.load(ExistenceMarker, key) == ExistenceMarker(id=key)
        assert store.load(ExistenceMarker, MarkerKey(MarkerScope.DAILY_MARKET_ACCOUNT, "0xmarket", "0xuser", 19001)) is None

    def test_entities_lists_committed_records(self, store: InMemoryEntityStore):
        store.save(Token(id="0xweth"))
        store.save(Token(id="0xdai"))

        assert sorted(token.id for token in store.entities(Token)) == ["0xdai", "0xweth"]
