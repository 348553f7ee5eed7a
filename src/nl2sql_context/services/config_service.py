"""Configuration service for nl2sql-context.

This module provides configuration management and database connection utilities
for the nl2sql-context application. It centralizes environment variable handling
and database engine creation.
"""

from __future__ import annotations

import os
from typing import Literal

import sqlalchemy as sa

from nl2sql_context.schema_tools.constants import Constants
from nl2sql_context.schema_tools.models import EngineConfig

ENV_PREFIX = "NL2SQL_CONTEXT_"

MetadataSource = Literal["json", "database"]


def _env(name: str) -> str | None:
    value = os.getenv(f"{ENV_PREFIX}{name}")
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_int(name: str, default: int, minimum: int, maximum: int | None = None) -> int:
    val = _env(name)
    try:
        n = int(val) if val is not None else default
    except ValueError:
        n = default
    n = max(minimum, n)
    return min(maximum, n) if maximum is not None else n


def _env_float(name: str, default: float, minimum: float, maximum: float | None = None) -> float:
    val = _env(name)
    try:
        x = float(val) if val is not None else default
    except ValueError:
        x = default
    x = max(minimum, x)
    return min(maximum, x) if maximum is not None else x


def _env_bool(name: str, *, default: bool) -> bool:
    val = _env(name)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "on"}


class ConfigService:
    """Service for managing configuration and database connections."""

    @staticmethod
    def get_database_url() -> str | None:
        """Get the database URL from ``NL2SQL_CONTEXT_DATABASE_URL``.

        Returns:
            Database URL string, or None when catalog discovery is not configured
        """
        return _env("DATABASE_URL")

    @staticmethod
    def get_metadata_path() -> str | None:
        """Path of a JSON business metadata document, if configured."""
        return _env("METADATA_PATH")

    @staticmethod
    def get_policy_path() -> str | None:
        """Path of a JSON intent scoring policy document, if configured."""
        return _env("POLICY_PATH")

    @staticmethod
    def get_metadata_source() -> MetadataSource:
        """Where business metadata is loaded from.

        ``NL2SQL_CONTEXT_METADATA_SOURCE`` may be ``json`` or ``database``;
        when unset, a configured metadata path selects ``json``.

        Raises:
            ValueError: If neither a metadata path nor a database URL is configured,
                or the configured source is unknown
        """
        source = (_env("METADATA_SOURCE") or "").lower()
        if not source:
            if ConfigService.get_metadata_path():
                return "json"
            if ConfigService.get_database_url():
                return "database"
            error_msg = (
                f"Set {ENV_PREFIX}METADATA_PATH or {ENV_PREFIX}DATABASE_URL "
                "to provide business metadata"
            )
            raise ValueError(error_msg)
        if source not in {"json", "database"}:
            error_msg = f"Unknown {ENV_PREFIX}METADATA_SOURCE: {source!r}"
            raise ValueError(error_msg)
        return "json" if source == "json" else "database"

    @staticmethod
    def get_schema_filters() -> tuple[list[str] | None, list[str] | None]:
        """Comma-separated include/exclude schema lists for catalog discovery."""

        def _split(name: str) -> list[str] | None:
            raw = _env(name)
            if raw is None:
                return None
            return [s.strip() for s in raw.split(",") if s.strip()] or None

        return _split("INCLUDE_SCHEMAS"), _split("EXCLUDE_SCHEMAS")

    @staticmethod
    def create_database_engine(url: str) -> sa.Engine:
        """Create SQLAlchemy database engine.

        Args:
            url: Database connection URL

        Returns:
            SQLAlchemy Engine instance
        """
        return sa.create_engine(url, pool_pre_ping=True)

    @staticmethod
    def get_engine_config() -> EngineConfig:
        """Build the engine configuration from environment overrides.

        Values outside their valid ranges are clamped; unparsable values fall
        back to the defaults in ``Constants``.
        """
        return EngineConfig(
            relevance_threshold=_env_float(
                "RELEVANCE_THRESHOLD", Constants.DEFAULT_RELEVANCE_THRESHOLD, 0.0, 1.0
            ),
            column_threshold=_env_float(
                "COLUMN_THRESHOLD", Constants.DEFAULT_COLUMN_THRESHOLD, 0.0, 1.0
            ),
            max_tables=_env_int(
                "MAX_TABLES", Constants.DEFAULT_MAX_TABLES, 1, Constants.HARD_MAX_TABLES
            ),
            max_columns_per_table=_env_int(
                "MAX_COLUMNS_PER_TABLE", Constants.DEFAULT_MAX_COLUMNS_PER_TABLE, 1
            ),
            token_budget=_env_int("TOKEN_BUDGET", Constants.DEFAULT_TOKEN_BUDGET, 100),
            similarity_timeout_sec=_env_float(
                "SIMILARITY_TIMEOUT_SEC", Constants.DEFAULT_SIMILARITY_TIMEOUT_SEC, 0.05
            ),
            discovery_timeout_sec=_env_float(
                "DISCOVERY_TIMEOUT_SEC", Constants.DEFAULT_DISCOVERY_TIMEOUT_SEC, 1.0
            ),
            snapshot_ttl_sec=_env_float(
                "SNAPSHOT_TTL_SEC", Constants.DEFAULT_SNAPSHOT_TTL_SEC, 0.0
            ),
            related_max_depth=_env_int(
                "RELATED_MAX_DEPTH",
                Constants.DEFAULT_RELATED_MAX_DEPTH,
                1,
                Constants.MAX_RELATED_DEPTH,
            ),
            model_name=_env("EMBEDDING_MODEL") or Constants.DEFAULT_EMBEDDING_MODEL,
            use_embeddings=_env_bool("USE_EMBEDDINGS", default=False),
        )
