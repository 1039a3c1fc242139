"""Host pipeline for the aggregation engine.

This module provides the Pipeline class that wires settings, storage, the
contract reader, protocol identity resolution and the event dispatcher,
and feeds decoded events through them in order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from protocol_metrics.chain.reader import ContractReader
from protocol_metrics.config import Settings, get_settings
from protocol_metrics.dispatch import EventDispatcher, create_dispatcher
from protocol_metrics.events import DecodedEvent
from protocol_metrics.networks import ProtocolIdentity, get_protocol, resolve_identity
from protocol_metrics.storage.database import DatabaseManager
from protocol_metrics.storage.repos import SqlEntityStore
from protocol_metrics.storage.store import EntityStore

logger = logging.getLogger(__name__)


class PipelineError(RuntimeError):
    """Raised on pipeline lifecycle misuse."""


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    events_received: int = 0
    events_handled: int = 0
    events_ignored: int = 0
    errors: int = 0
    out_of_order: int = 0
    last_block_number: int | None = None
    last_error: str | None = None


class Pipeline:
    """Feeds decoded events of one protocol deployment into the engine.

    Example:
        ```python
        from protocol_metrics.config import get_settings
        from protocol_metrics.pipeline import Pipeline

        pipeline = Pipeline(get_settings())
        pipeline.start()
        pipeline.process(decoded_events)
        pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: EntityStore | None = None,
        reader: ContractReader | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            store: Entity store. If not provided, a SQL store is built from
                ``settings.database`` at start.
            reader: Contract reader. If not provided, one is built from
                ``settings.rpc`` at start.
        """
        self._settings = settings or get_settings()
        self._store = store
        self._reader = reader

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        # Components (initialized in start())
        self._db_manager: DatabaseManager | None = None
        self._identity: ProtocolIdentity | None = None
        self._dispatcher: EventDispatcher | None = None
        self._last_ordering: tuple[int, int] | None = None

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def identity(self) -> ProtocolIdentity | None:
        return self._identity

    @property
    def is_running(self) -> bool:
        return self._state == PipelineState.RUNNING

    def start(self) -> None:
        """Start the pipeline.

        Raises:
            PipelineError: If the pipeline is not stopped.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise PipelineError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        logging.getLogger("protocol_metrics").setLevel(self._settings.get_logging_level())
        logger.info("Starting pipeline with %s", self._settings.redacted_summary())

        try:
            self._initialize_components()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            self._cleanup()
            raise

    def stop(self) -> None:
        """Stop the pipeline and release resources."""
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")
        self._cleanup()
        self._state = PipelineState.STOPPED
        logger.info(
            "Pipeline stopped after %d events (%d handled, %d errors)",
            self._stats.events_received,
            self._stats.events_handled,
            self._stats.errors,
        )

    def _initialize_components(self) -> None:
        indexer = self._settings.indexer
        self._identity = resolve_identity(get_protocol(indexer.protocol), indexer.network)

        if self._store is None:
            logger.debug("Initializing database manager...")
            self._db_manager = DatabaseManager(self._settings.database.url)
            self._db_manager.init_schema()
            self._store = SqlEntityStore(self._db_manager.session_factory)

        if self._reader is None:
            logger.debug("Initializing contract reader...")
            rpc = self._settings.rpc
            self._reader = ContractReader.from_rpc_url(
                rpc.url,
                fallback_rpc_url=rpc.fallback_url,
                timeout_seconds=rpc.timeout_seconds,
            )

        self._dispatcher = create_dispatcher(self._identity.kind, self._store, self._reader)
        logger.info(
            "Dispatching %s events for %s on %s",
            self._identity.kind.value,
            self._identity.slug,
            self._identity.network or "(unsupported network)",
        )

    def _cleanup(self) -> None:
        if self._db_manager:
            self._db_manager.dispose()
            self._db_manager = None
            self._store = None
        self._dispatcher = None
        logger.debug("Resources cleaned up")

    def process(self, events: Iterable[DecodedEvent]) -> PipelineStats:
        """Feed events to the dispatcher one at a time.

        Events must arrive in ascending (block number, log index) order; an
        event behind the previous one is logged and still processed.

        Raises:
            PipelineError: If the pipeline is not running.
        """
        if self._state != PipelineState.RUNNING or self._dispatcher is None or self._identity is None:
            raise PipelineError(f"Cannot process events in state {self._state}")

        dispatch_stats = self._dispatcher.stats
        for event in events:
            ordering = event.context.ordering
            if self._last_ordering is not None and ordering < self._last_ordering:
                self._stats.out_of_order += 1
                logger.warning(
                    "Event %s at %s arrived after %s",
                    event.name,
                    ordering,
                    self._last_ordering,
                )
            self._last_ordering = ordering
            self._stats.events_received += 1
            self._stats.last_block_number = event.context.block_number

            self._dispatcher.dispatch(event, self._identity)

        self._stats.events_handled = dispatch_stats.handled
        self._stats.events_ignored = dispatch_stats.ignored
        self._stats.errors = dispatch_stats.failed
        return self._stats
