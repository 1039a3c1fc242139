"""Tests for the SQL entity store and database manager."""

from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool

from protocol_metrics.constants import LendingActivity
from protocol_metrics.storage.database import (
    DatabaseManager,
    create_sync_engine,
    create_sync_session_factory,
    init_db,
)
from protocol_metrics.storage.entities import ExistenceMarker, Market, Token
from protocol_metrics.storage.keys import MarkerKey, MarkerScope
from protocol_metrics.storage.repos import SqlEntityStore


@pytest.fixture
def engine():
    engine = create_sync_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(engine) -> SqlEntityStore:
    return SqlEntityStore(create_sync_session_factory(engine))


def create_market(**overrides) -> Market:
    fields = {
        "id": "0xasset",
        "protocol": "0xprotocol",
        "name": "Wrapped Ether",
        "input_token": "0xasset",
    }
    fields.update(overrides)
    return Market(**fields)


# ============================================================================
# SqlEntityStore Tests
# ============================================================================


class TestSqlEntityStore:
    """Tests for SqlEntityStore."""

    def test_load_missing(self, sql_store: SqlEntityStore) -> None:
        assert sql_store.load(Market, "0xmissing") is None

    def test_save_and_load(self, sql_store: SqlEntityStore) -> None:
        market = create_market(liquidity_index=10**27)
        market.cumulative.record(LendingActivity.BORROW, Decimal("1250.75"))
        sql_store.save(market)

        loaded = sql_store.load(Market, "0xasset")

        assert loaded == market

    def test_upsert_updates_existing(self, sql_store: SqlEntityStore) -> None:
        sql_store.save(create_market())
        sql_store.save(create_market(name="Renamed"))

        assert sql_store.load(Market, "0xasset").name == "Renamed"
        assert sql_store.count(Market) == 1

    def test_transaction_commits_together(self, sql_store: SqlEntityStore) -> None:
        key = MarkerKey(MarkerScope.PROTOCOL_ACCOUNT, "0xprotocol", "0xuser")
        with sql_store.transaction():
            sql_store.save(create_market())
            sql_store.save(ExistenceMarker(id=key))
            assert sql_store.count(Market) == 0

        assert sql_store.count(Market) == 1
        assert sql_store.load(ExistenceMarker, key) is not None

    def test_transaction_rolls_back(self, sql_store: SqlEntityStore) -> None:
        with pytest.raises(ValueError):
            with sql_store.transaction():
                sql_store.save(create_market())
                raise ValueError("handler failed")

        assert sql_store.load(Market, "0xasset") is None

    def test_kinds_are_separate(self, sql_store: SqlEntityStore) -> None:
        sql_store.save(create_market())
        sql_store.save(Token(id="0xasset", symbol="WETH"))

        assert sql_store.load(Token, "0xasset").symbol == "WETH"
        assert sql_store.load(Market, "0xasset").name == "Wrapped Ether"


# ============================================================================
# DatabaseManager Tests
# ============================================================================


class TestDatabaseManager:
    """Tests for DatabaseManager."""

    def test_sqlite_file_database(self, tmp_path) -> None:
        manager = DatabaseManager(f"sqlite:///{tmp_path / 'metrics.db'}")
        manager.init_schema()

        store = SqlEntityStore(manager.session_factory)
        store.save(Token(id="0xweth", decimals=18))

        assert store.load(Token, "0xweth").decimals == 18
        manager.dispose()

    def test_dispose_resets_engine(self, tmp_path) -> None:
        manager = DatabaseManager(f"sqlite:///{tmp_path / 'metrics.db'}")
        first = manager.session_factory

        manager.dispose()

        assert manager.session_factory is not first
        manager.dispose()

    def test_session_factory_is_shared(self, tmp_path) -> None:
        manager = DatabaseManager(f"sqlite:///{tmp_path / 'metrics.db'}")

        factory = manager.session_factory
        with factory() as session:
            assert str(session.get_bind().url).endswith("metrics.db")

        assert manager.session_factory is factory
        assert not hasattr(manager, "get_session")
        manager.dispose()
