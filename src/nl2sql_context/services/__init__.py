"""Services package for nl2sql-context.

This package contains the classes that own process-level lifecycle for the
nl2sql-context application: configuration, snapshot publication and refresh,
and the singleton context engine used by the MCP tools.

Main Components:
- ConfigService: Environment configuration and database engine creation
- SnapshotManager: Publishes metadata snapshots and refreshes them on expiry
- EngineManager: Background-initialized singleton SchemaContextEngine
"""

from .config_service import ConfigService
from .engine_manager import EngineManager
from .snapshot_manager import SnapshotManager

__all__ = [
    "ConfigService",
    "EngineManager",
    "SnapshotManager",
]
