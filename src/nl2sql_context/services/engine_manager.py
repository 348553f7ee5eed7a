"""Context engine manager for nl2sql-context.

Provides a singleton `SchemaContextEngine` with background initialization
during FastMCP lifespan. Ensures exactly-once startup per process, fast-fails
while initializing, and keeps the embedder and snapshot manager as
process-wide singletons.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import replace
import hashlib
import threading
import time
from typing import ClassVar

from fastmcp.utilities.logging import get_logger
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from nl2sql_context.schema_tools.embeddings import Embedder
from nl2sql_context.schema_tools.engine import SchemaContextEngine
from nl2sql_context.schema_tools.exceptions import ContextEngineError
from nl2sql_context.schema_tools.intent import QueryIntentAnalyzer
from nl2sql_context.schema_tools.lightweight_ner import LightweightNER
from nl2sql_context.schema_tools.models import EngineConfig
from nl2sql_context.schema_tools.policies import PolicyRegistry
from nl2sql_context.schema_tools.reflection import SqlAlchemyCatalogDiscovery
from nl2sql_context.schema_tools.repository import (
    JsonMetadataRepository,
    MetadataRepository,
    SqlMetadataRepository,
)
from nl2sql_context.schema_tools.similarity import (
    EmbeddingSimilarity,
    LexicalSimilarity,
    SimilarityService,
)
from nl2sql_context.services.config_service import ConfigService
from nl2sql_context.services.snapshot_manager import SnapshotManager
from nl2sql_context.services.state import (
    INIT_NOT_READY_PHASES,
    EngineInitPhase,
    EngineInitState,
    RefreshState,
)


class EngineManager:
    """Singleton manager for the SchemaContextEngine.

    The engine is initialized once during FastMCP lifespan startup and shared
    by every tool call for the rest of the session.
    """

    _instance: ClassVar[EngineManager | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()
    GLOBAL_EMBEDDER: ClassVar[Embedder | None] = None

    def __init__(self) -> None:
        """Initialize the engine manager."""
        self._engine: SchemaContextEngine | None = None
        self._snapshots: SnapshotManager | None = None
        self._db_engine: sa.Engine | None = None
        self._shutdown_lock = asyncio.Lock()
        self._logger = get_logger(__name__)

        # Background thread and state
        self._thread_lock = threading.Lock()
        self._init_thread: threading.Thread | None = None
        self._thread_ready = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._state = EngineInitState(phase=EngineInitPhase.IDLE)

    @classmethod
    def get_instance(cls) -> EngineManager:
        """Get the singleton instance of EngineManager."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (primarily for testing)."""
        with cls._lock:
            cls._instance = None

    def start_background_initialization(self) -> None:
        """Start background initialization exactly once without blocking."""
        with self._thread_lock:
            if self._state.phase in {
                EngineInitPhase.STARTING,
                EngineInitPhase.RUNNING,
                EngineInitPhase.READY,
            }:
                self._logger.debug("Initialization already %s; skipping start", self._state.phase)
                return
            if self._state.phase in {EngineInitPhase.FAILED, EngineInitPhase.STOPPED}:
                # Do not auto-restart after failure or stop
                self._logger.warning(
                    "Initialization in phase %s; not restarting", self._state.phase
                )
                return

            self._state = replace(
                self._state, phase=EngineInitPhase.STARTING, started_at=time.time()
            )
            self._thread_ready.clear()
            with contextlib.suppress(RuntimeError):
                self._loop = asyncio.get_running_loop()

            def _runner() -> None:
                self._state = replace(self._state, phase=EngineInitPhase.RUNNING)
                try:
                    self._initialize_sync()
                except (
                    ValueError,
                    RuntimeError,
                    OSError,
                    SQLAlchemyError,
                    ContextEngineError,
                ) as exc:
                    self._state = replace(
                        self._state,
                        phase=EngineInitPhase.FAILED,
                        error_message=str(exc),
                        completed_at=time.time(),
                        attempts=self._state.attempts + 1,
                    )
                    self._logger.exception("Context engine initialization failed")
                else:
                    self._state = replace(
                        self._state,
                        phase=EngineInitPhase.READY,
                        completed_at=time.time(),
                        attempts=self._state.attempts + 1,
                    )
                finally:
                    self._thread_ready.set()
                    if self._loop is not None:
                        with contextlib.suppress(RuntimeError):
                            self._loop.call_soon_threadsafe(lambda: None)

            self._init_thread = threading.Thread(target=_runner, name="engine-init", daemon=True)
            self._init_thread.start()

    async def initialize(self) -> None:
        """Await until initialization completes (READY or FAILED)."""
        self.start_background_initialization()
        await self.ensure_ready(wait_timeout=None)

    async def ensure_ready(self, wait_timeout: float | None = None) -> bool:
        """Wait for initialization completion.

        Returns True when READY. Returns False on timeout or FAILED.
        """
        phase = self._state.phase
        if phase is EngineInitPhase.READY:
            return True
        if phase is EngineInitPhase.FAILED:
            return False
        await asyncio.to_thread(self._thread_ready.wait, wait_timeout)
        return self._state.phase is EngineInitPhase.READY

    def get_engine(self) -> SchemaContextEngine:
        """Get the initialized SchemaContextEngine instance.

        Raises:
            RuntimeError: If the engine is not initialized or initialization failed
        """
        phase = self._state.phase
        if phase in INIT_NOT_READY_PHASES:
            self._logger.info("Context engine requested while initializing (phase=%s)", phase)
            msg = "Context engine initialization in progress"
            raise RuntimeError(msg)
        if phase is EngineInitPhase.FAILED:
            self._logger.error(
                "Context engine initialization previously failed: %s", self._state.error_message
            )
            msg = "Context engine is not available due to initialization failure"
            raise RuntimeError(msg)
        if phase is EngineInitPhase.STOPPED:
            self._logger.error("Context engine requested after STOPPED phase")
            msg = "Context engine has been stopped"
            raise RuntimeError(msg)

        if self._engine is None:
            self._logger.error("Context engine instance is None despite successful initialization")
            error_msg = "Context engine instance is unexpectedly None"
            raise RuntimeError(error_msg)
        return self._engine

    def refresh_metadata(self) -> RefreshState:
        """Refresh the metadata snapshot now and return the refresh state.

        Raises:
            RuntimeError: If the engine is not ready
            ContextEngineError: If the refresh fails; the previous snapshot stays published
        """
        self.get_engine()
        if self._snapshots is None:
            msg = "Snapshot manager is unexpectedly None"
            raise RuntimeError(msg)
        self._snapshots.refresh()
        return self._snapshots.status()

    def invalidate_metadata(self) -> None:
        """Force a snapshot refresh on the next request."""
        if self._snapshots is not None:
            self._snapshots.invalidate()

    async def shutdown(self) -> None:
        """Shut down the engine and release database resources."""
        async with self._shutdown_lock:
            try:
                if self._engine is not None:
                    self._logger.info("Shutting down context engine…")
                    self._engine.close()
                    self._engine = None
                if self._db_engine is not None:
                    self._db_engine.dispose()
                    self._db_engine = None
                    self._logger.debug("Database engine disposed")
            except (AttributeError, OSError, RuntimeError) as exc:
                self._logger.warning("Error during context engine shutdown: %s", exc)
            finally:
                self._state = replace(self._state, phase=EngineInitPhase.STOPPED)

    @property
    def is_initialized(self) -> bool:
        """True once the engine is READY."""
        return self._state.phase is EngineInitPhase.READY

    @property
    def has_initialization_error(self) -> bool:
        """True if initialization FAILED."""
        return self._state.phase is EngineInitPhase.FAILED

    def status(self) -> EngineInitState:
        """Return a snapshot of the initialization state."""
        return self._state

    def snapshot_status(self) -> RefreshState | None:
        """Return snapshot refresh bookkeeping, or None before initialization."""
        return self._snapshots.status() if self._snapshots is not None else None

    # ---- internal ------------------------------------------------------------

    def _initialize_sync(self) -> None:
        """Perform synchronous initialization work. Runs in background thread."""
        self._logger.info("Starting context engine initialization…")
        config = ConfigService.get_engine_config()

        database_url = ConfigService.get_database_url()
        if database_url is not None:
            fp = hashlib.sha256(database_url.encode("utf-8")).hexdigest()[:10]
            self._logger.debug("Using database fingerprint: %s", fp)
            self._db_engine = ConfigService.create_database_engine(database_url)

        repository = self._build_repository()
        discovery = None
        if self._db_engine is not None:
            include, exclude = ConfigService.get_schema_filters()
            discovery = SqlAlchemyCatalogDiscovery(
                self._db_engine,
                include,
                exclude,
                timeout_sec=config.discovery_timeout_sec,
            )

        similarity: SimilarityService = LexicalSimilarity()
        if config.use_embeddings:
            self._ensure_global_embedder(config)
        embedder = type(self).GLOBAL_EMBEDDER if config.use_embeddings else None
        if embedder is not None:
            similarity = EmbeddingSimilarity(embedder)

        policy_path = ConfigService.get_policy_path()
        policies = PolicyRegistry.from_json_file(policy_path) if policy_path else None

        self._snapshots = SnapshotManager(
            repository,
            discovery,
            encoder=embedder,
            ttl_sec=config.snapshot_ttl_sec,
            discovery_timeout_sec=config.discovery_timeout_sec,
        )
        self._snapshots.refresh()

        self._engine = SchemaContextEngine(
            self._snapshots,
            similarity,
            QueryIntentAnalyzer(LightweightNER()),
            config,
            policies,
        )
        self._logger.info(
            "Context engine ready (similarity=%s)", type(similarity).__name__
        )

    def _build_repository(self) -> MetadataRepository:
        source = ConfigService.get_metadata_source()
        if source == "json":
            path = ConfigService.get_metadata_path()
            if path is None:
                msg = "Metadata source 'json' requires NL2SQL_CONTEXT_METADATA_PATH"
                raise ValueError(msg)
            self._logger.info("Loading business metadata from %s", path)
            return JsonMetadataRepository(path)
        if self._db_engine is None:
            msg = "Metadata source 'database' requires NL2SQL_CONTEXT_DATABASE_URL"
            raise ValueError(msg)
        self._logger.info("Loading business metadata from database tables")
        return SqlMetadataRepository(self._db_engine)

    def _ensure_global_embedder(self, config: EngineConfig) -> None:
        """Build the global embedder if needed."""
        if type(self).GLOBAL_EMBEDDER is None:
            self._logger.info("Building global embedder…")
            try:
                type(self).GLOBAL_EMBEDDER = Embedder(model_name=config.model_name)
                self._logger.info("Global embedder built with model: %s", config.model_name)
            except (RuntimeError, OSError, ValueError) as e:
                # Lexical similarity stays in effect
                self._logger.warning("Embeddings disabled due to initialization error: %s", e)
                type(self).GLOBAL_EMBEDDER = None
        else:
            self._logger.info("Using existing global embedder")
