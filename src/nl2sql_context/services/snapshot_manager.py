"""Snapshot publication and refresh for nl2sql-context.

`SnapshotManager` owns the single reference to the published
`SnapshotBundle`. Refresh builds a complete new bundle off to the side and
then swaps the reference, so readers never block on a refresh and never see
a half-built snapshot. A failed refresh leaves the previous bundle in service.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import replace
import threading
import time
from typing import TYPE_CHECKING

from fastmcp.utilities.logging import get_logger

from nl2sql_context.schema_tools.constants import Constants
from nl2sql_context.schema_tools.engine import SnapshotBundle
from nl2sql_context.schema_tools.exceptions import (
    ContextEngineError,
    DiscoveryUnavailableError,
    EmbeddingError,
)
from nl2sql_context.schema_tools.snapshot import build_snapshot
from nl2sql_context.services.state import RefreshPhase, RefreshState

if TYPE_CHECKING:
    from nl2sql_context.schema_tools.embeddings import TextEncoder
    from nl2sql_context.schema_tools.reflection import CatalogDiscovery
    from nl2sql_context.schema_tools.repository import MetadataRepository
    from nl2sql_context.schema_tools.snapshot import DiscoveredCatalog, MetadataSnapshot

_logger = get_logger("context_engine.snapshot_manager")


class SnapshotManager:
    """Publishes metadata snapshots and refreshes them on TTL expiry.

    Implements the engine's ``SnapshotProvider`` protocol.

    Attributes:
        repository: Business metadata repository
        discovery: Optional catalog discovery collaborator
        ttl_sec: Snapshot age that triggers a refresh on access; <= 0 disables
        discovery_timeout_sec: Timeout applied to catalog discovery
    """

    def __init__(  # noqa: PLR0913
        self,
        repository: MetadataRepository,
        discovery: CatalogDiscovery | None = None,
        *,
        encoder: TextEncoder | None = None,
        ttl_sec: float = Constants.DEFAULT_SNAPSHOT_TTL_SEC,
        discovery_timeout_sec: float = Constants.DEFAULT_DISCOVERY_TIMEOUT_SEC,
    ) -> None:
        self.repository = repository
        self.discovery = discovery
        self.encoder = encoder
        self.ttl_sec = ttl_sec
        self.discovery_timeout_sec = discovery_timeout_sec
        self._bundle: SnapshotBundle | None = None
        self._published_monotonic: float | None = None
        self._invalidated = False
        self._refresh_lock = threading.Lock()
        self._state = RefreshState()

    # ---- SnapshotProvider --------------------------------------------------
    def current(self) -> SnapshotBundle:
        """Return the published bundle, refreshing it when expired.

        When a refresh fails and a previous bundle exists, the previous bundle
        is served. Requests never wait on a refresh another thread is already
        running, unless there is nothing published yet.

        Raises:
            ContextEngineError: If no bundle has ever been published and the
                refresh attempt fails
        """
        bundle = self._bundle
        if bundle is None:
            with self._refresh_lock:
                if self._bundle is None:
                    return self._refresh_locked()
                return self._bundle

        if not self._needs_refresh():
            return bundle
        if not self._refresh_lock.acquire(blocking=False):
            return bundle
        try:
            if not self._needs_refresh():
                return self._bundle or bundle
            return self._refresh_locked()
        except ContextEngineError as exc:
            _logger.warning(
                "Serving stale snapshot %s after refresh failure: %s", bundle.version, exc
            )
            return bundle
        finally:
            self._refresh_lock.release()

    # ---- refresh -----------------------------------------------------------
    def refresh(self) -> SnapshotBundle:
        """Build and publish a new bundle now.

        Raises:
            ContextEngineError: If loading, discovery or snapshot build fails;
                the previously published bundle stays in service
        """
        with self._refresh_lock:
            return self._refresh_locked()

    def invalidate(self) -> None:
        """Force a refresh on the next access."""
        self._invalidated = True
        _logger.info("Snapshot invalidated; next access will refresh")

    def status(self) -> RefreshState:
        """Return refresh bookkeeping for observability."""
        return self._state

    @property
    def bundle(self) -> SnapshotBundle | None:
        """The published bundle without triggering a refresh."""
        return self._bundle

    def _needs_refresh(self) -> bool:
        if self._invalidated or self._published_monotonic is None:
            return True
        if self.ttl_sec <= 0:
            return False
        return time.monotonic() - self._published_monotonic >= self.ttl_sec

    def _refresh_locked(self) -> SnapshotBundle:
        started = time.time()
        self._state = replace(
            self._state, phase=RefreshPhase.REFRESHING, last_attempt_at=started
        )
        try:
            records = self.repository.load()
            catalog = self._discover() if self.discovery is not None else None
            snapshot = build_snapshot(records, catalog)
            bundle = self._bundle_for(snapshot)
        except ContextEngineError as exc:
            self._state = replace(
                self._state,
                phase=RefreshPhase.STALE if self._bundle is not None else RefreshPhase.EMPTY,
                last_error=str(exc),
                failure_count=self._state.failure_count + 1,
            )
            _logger.exception("Snapshot refresh failed")
            raise

        self._bundle = bundle
        self._published_monotonic = time.monotonic()
        self._invalidated = False
        self._state = replace(
            self._state,
            phase=RefreshPhase.CURRENT,
            version=bundle.version,
            published_at=time.time(),
            last_error=None,
            refresh_count=self._state.refresh_count + 1,
        )
        _logger.info(
            "Published snapshot %s (%d tables) in %.0fms",
            bundle.version,
            len(bundle.snapshot),
            (time.time() - started) * 1000,
        )
        return bundle

    def _bundle_for(self, snapshot: MetadataSnapshot) -> SnapshotBundle:
        if self.encoder is None:
            return SnapshotBundle.build(snapshot)
        try:
            return SnapshotBundle.build(snapshot, self.encoder)
        except EmbeddingError as exc:
            _logger.warning("Prior mapping index disabled for this snapshot: %s", exc)
            return SnapshotBundle.build(snapshot)

    def _discover(self) -> DiscoveredCatalog:
        """Run catalog discovery with the configured timeout."""
        assert self.discovery is not None
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="discovery")
        future = executor.submit(self.discovery.discover)
        try:
            return future.result(timeout=self.discovery_timeout_sec)
        except FutureTimeoutError as exc:
            msg = f"Catalog discovery timed out after {self.discovery_timeout_sec:.0f}s"
            raise DiscoveryUnavailableError(msg) from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
