"""Typed lifecycle state for the engine manager and snapshot refresh.

Internal module providing strongly-typed state for `EngineManager`
initialization and `SnapshotManager` refresh. Not exposed outside the process.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Final


class EngineInitPhase(Enum):
    """Initialization phase for the context engine lifecycle."""

    IDLE = auto()
    STARTING = auto()
    RUNNING = auto()
    READY = auto()
    FAILED = auto()
    STOPPED = auto()


@dataclass(frozen=True)
class EngineInitState:
    """Snapshot of initialization state with timestamps and error details."""

    phase: EngineInitPhase
    started_at: float | None = None
    completed_at: float | None = None
    error_message: str | None = None
    attempts: int = 0


# Convenience constants for call sites
INIT_NOT_READY_PHASES: Final[set[EngineInitPhase]] = {
    EngineInitPhase.IDLE,
    EngineInitPhase.STARTING,
    EngineInitPhase.RUNNING,
}


class RefreshPhase(Enum):
    """Phase of the metadata snapshot refresh cycle."""

    EMPTY = auto()
    REFRESHING = auto()
    CURRENT = auto()
    STALE = auto()


@dataclass(frozen=True)
class RefreshState:
    """Snapshot refresh bookkeeping.

    ``STALE`` means the last refresh failed and the previous snapshot is
    still being served.
    """

    phase: RefreshPhase = RefreshPhase.EMPTY
    version: str | None = None
    published_at: float | None = None
    last_attempt_at: float | None = None
    last_error: str | None = None
    refresh_count: int = 0
    failure_count: int = 0
