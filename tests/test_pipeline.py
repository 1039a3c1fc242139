"""Tests for the pipeline host."""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from protocol_metrics.config import Settings, clear_settings_cache
from protocol_metrics.constants import ProtocolKind
from protocol_metrics.dispatch import LendingDispatcher, MarketplaceDispatcher
from protocol_metrics.events import DecodedEvent, EventContext
from protocol_metrics.networks import WETH_ADDRESS
from protocol_metrics.pipeline import Pipeline, PipelineError, PipelineState
from protocol_metrics.storage.entities import Marketplace, Trade
from protocol_metrics.storage.repos import SqlEntityStore

EXCHANGE = "0x59728544b08ab483533076417fbbb2fd0b17ce3a"
STANDARD_SALE = "0x56244bb70cbd3ea9dc8007399f61dfc065190031"
COLLECTION = "0x" + "e1" * 20


@pytest.fixture
def make_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Build Settings from a clean environment plus overrides."""
    monkeypatch.chdir(tmp_path)
    for name in ("DATABASE_URL", "RPC_URL", "RPC_FALLBACK_URL", "INDEXER_PROTOCOL", "INDEXER_NETWORK", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    def factory(**env: str) -> Settings:
        env.setdefault("DATABASE_URL", f"sqlite:///{tmp_path / 'metrics.db'}")
        for name, value in env.items():
            monkeypatch.setenv(name, value)
        clear_settings_cache()
        return Settings()

    yield factory
    clear_settings_cache()


def create_trade_event(block_number: int, log_index: int, **overrides: Any) -> DecodedEvent:
    params = {
        "taker": "0x" + "b0" * 20,
        "maker": "0x" + "a1" * 20,
        "strategy": STANDARD_SALE,
        "currency": WETH_ADDRESS,
        "collection": COLLECTION,
        "tokenId": log_index,
        "amount": 1,
        "price": 10**18,
    }
    params.update(overrides)
    context = EventContext(
        transaction_hash=f"0x{block_number:064x}",
        log_index=log_index,
        block_number=block_number,
        timestamp=19_000 * 86400 + block_number,
    )
    return DecodedEvent(name="TakerBid", address=EXCHANGE, context=context, params=params)


@pytest.fixture
def marketplace_pipeline(make_settings, store, reader):
    reader.set(STANDARD_SALE, "viewProtocolFee", 200)
    pipeline = Pipeline(make_settings(INDEXER_PROTOCOL="looksrare"), store=store, reader=reader)
    pipeline.start()
    yield pipeline
    pipeline.stop()


# ============================================================================
# Lifecycle Tests
# ============================================================================


class TestPipelineState:
    """Tests for pipeline state management."""

    def test_initial_state_is_stopped(self, make_settings):
        pipeline = Pipeline(make_settings())

        assert pipeline.state == PipelineState.STOPPED
        assert pipeline.is_running is False
        assert pipeline.identity is None

    def test_initial_stats(self, make_settings):
        stats = Pipeline(make_settings()).stats

        assert stats.started_at is None
        assert stats.events_received == 0
        assert stats.last_error is None

    def test_start_and_stop(self, make_settings, store, reader):
        pipeline = Pipeline(make_settings(), store=store, reader=reader)

        pipeline.start()
        assert pipeline.is_running
        assert pipeline.stats.started_at is not None
        assert pipeline.identity.kind == ProtocolKind.LENDING

        pipeline.stop()
        assert pipeline.state == PipelineState.STOPPED

    def test_cannot_start_twice(self, marketplace_pipeline):
        with pytest.raises(PipelineError, match="Cannot start"):
            marketplace_pipeline.start()

    def test_stop_when_already_stopped(self, make_settings):
        pipeline = Pipeline(make_settings())

        pipeline.stop()

        assert pipeline.state == PipelineState.STOPPED

    def test_start_failure_sets_error_state(self, make_settings, store, reader):
        pipeline = Pipeline(make_settings(), store=store, reader=reader)

        with patch("protocol_metrics.pipeline.create_dispatcher", side_effect=RuntimeError("no dispatcher")):
            with pytest.raises(RuntimeError):
                pipeline.start()

        assert pipeline.state == PipelineState.ERROR
        assert pipeline.stats.last_error == "no dispatcher"

    def test_applies_log_level(self, make_settings, store, reader):
        pipeline = Pipeline(make_settings(LOG_LEVEL="WARNING"), store=store, reader=reader)

        pipeline.start()

        assert logging.getLogger("protocol_metrics").level == logging.WARNING
        pipeline.stop()
        logging.getLogger("protocol_metrics").setLevel(logging.NOTSET)


class TestPipelineInitialization:
    """Tests for component wiring."""

    def test_dispatcher_follows_protocol_kind(self, make_settings, store, reader):
        lending = Pipeline(make_settings(INDEXER_PROTOCOL="uwu-lend"), store=store, reader=reader)
        lending.start()
        marketplace = Pipeline(make_settings(INDEXER_PROTOCOL="looksrare"), store=store, reader=reader)
        marketplace.start()

        assert isinstance(lending._dispatcher, LendingDispatcher)
        assert isinstance(marketplace._dispatcher, MarketplaceDispatcher)
        assert lending.identity.rewards is not None

    def test_builds_sql_store_and_reader_from_settings(self, make_settings):
        settings = make_settings(RPC_URL="https://rpc.example.org", RPC_FALLBACK_URL="https://backup.example.org")
        reader = MagicMock()

        with patch("protocol_metrics.pipeline.ContractReader.from_rpc_url", return_value=reader) as from_rpc_url:
            pipeline = Pipeline(settings)
            pipeline.start()

        from_rpc_url.assert_called_once_with(
            "https://rpc.example.org",
            fallback_rpc_url="https://backup.example.org",
            timeout_seconds=30,
        )
        assert isinstance(pipeline._store, SqlEntityStore)
        pipeline.stop()
        assert pipeline._store is None

    def test_unsupported_network_degrades(self, make_settings, store, reader):
        pipeline = Pipeline(make_settings(INDEXER_NETWORK="fantom"), store=store, reader=reader)

        pipeline.start()

        assert pipeline.identity.network == ""
        assert pipeline.is_running
        pipeline.stop()


# ============================================================================
# Processing Tests
# ============================================================================


class TestProcess:
    """Tests for Pipeline.process."""

    def test_requires_running_pipeline(self, make_settings):
        with pytest.raises(PipelineError, match="Cannot process"):
            Pipeline(make_settings()).process([])

    def test_processes_events(self, marketplace_pipeline, store):
        stats = marketplace_pipeline.process(
            [
                create_trade_event(100, 0),
                create_trade_event(100, 1),
                create_trade_event(101, 0, currency="0x" + "99" * 20),
            ]
        )

        assert stats.events_received == 3
        assert stats.events_handled == 2
        assert stats.events_ignored == 1
        assert stats.errors == 0
        assert stats.last_block_number == 101
        assert store.count(Trade) == 2

    def test_stats_accumulate_across_batches(self, marketplace_pipeline):
        marketplace_pipeline.process([create_trade_event(100, 0)])
        stats = marketplace_pipeline.process([create_trade_event(101, 0)])

        assert stats.events_received == 2
        assert stats.events_handled == 2

    def test_out_of_order_event_is_logged_and_processed(self, marketplace_pipeline, store, caplog):
        with caplog.at_level(logging.WARNING, logger="protocol_metrics.pipeline"):
            stats = marketplace_pipeline.process([create_trade_event(200, 3), create_trade_event(200, 1)])

        assert stats.out_of_order == 1
        assert stats.events_handled == 2
        assert "arrived after" in caplog.text

    def test_handler_errors_are_counted(self, marketplace_pipeline, store):
        broken = create_trade_event(300, 0)
        broken = DecodedEvent(
            name=broken.name,
            address=broken.address,
            context=broken.context,
            params={key: value for key, value in broken.params.items() if key != "price"},
        )

        stats = marketplace_pipeline.process([broken, create_trade_event(300, 1)])

        assert stats.errors == 1
        assert stats.events_handled == 1
        assert store.load(Marketplace, EXCHANGE).cumulative.trade_count == 1

    def test_sql_backed_run(self, make_settings, reader):
        reader.set(STANDARD_SALE, "viewProtocolFee", 200)
        pipeline = Pipeline(make_settings(INDEXER_PROTOCOL="looksrare"), reader=reader)
        pipeline.start()

        pipeline.process([create_trade_event(100, 0), create_trade_event(100, 0)])

        assert pipeline._store.count(Trade) == 1
        assert pipeline.stats.events_handled == 2
        pipeline.stop()
