from __future__ import annotations

from _pytest.monkeypatch import MonkeyPatch
import pytest

from nl2sql_context.schema_tools.constants import Constants
from nl2sql_context.services.config_service import ENV_PREFIX, ConfigService

_NAMES = (
    "DATABASE_URL",
    "METADATA_PATH",
    "METADATA_SOURCE",
    "POLICY_PATH",
    "INCLUDE_SCHEMAS",
    "EXCLUDE_SCHEMAS",
    "MAX_TABLES",
    "TOKEN_BUDGET",
    "RELEVANCE_THRESHOLD",
    "SNAPSHOT_TTL_SEC",
    "USE_EMBEDDINGS",
    "EMBEDDING_MODEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: MonkeyPatch) -> None:
    for name in _NAMES:
        monkeypatch.delenv(f"{ENV_PREFIX}{name}", raising=False)


def test_defaults_without_environment() -> None:
    config = ConfigService.get_engine_config()

    assert config.max_tables == Constants.DEFAULT_MAX_TABLES
    assert config.token_budget == Constants.DEFAULT_TOKEN_BUDGET
    assert config.relevance_threshold == Constants.DEFAULT_RELEVANCE_THRESHOLD
    assert config.model_name == Constants.DEFAULT_EMBEDDING_MODEL
    assert not config.use_embeddings
    assert ConfigService.get_database_url() is None
    assert ConfigService.get_schema_filters() == (None, None)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("3", 3), ("12", 5), ("0", 1), ("many", Constants.DEFAULT_MAX_TABLES)],
)
def test_max_tables_is_clamped(monkeypatch: MonkeyPatch, raw: str, expected: int) -> None:
    monkeypatch.setenv(f"{ENV_PREFIX}MAX_TABLES", raw)
    assert ConfigService.get_engine_config().max_tables == expected


def test_numeric_overrides(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv(f"{ENV_PREFIX}RELEVANCE_THRESHOLD", "1.5")
    monkeypatch.setenv(f"{ENV_PREFIX}SNAPSHOT_TTL_SEC", "-10")
    monkeypatch.setenv(f"{ENV_PREFIX}TOKEN_BUDGET", " 2500 ")

    config = ConfigService.get_engine_config()

    assert config.relevance_threshold == 1.0
    assert config.snapshot_ttl_sec == 0.0
    assert config.token_budget == 2500


@pytest.mark.parametrize(("raw", "expected"), [("1", True), ("Yes", True), ("off", False)])
def test_use_embeddings_flag(
    monkeypatch: MonkeyPatch, raw: str, expected: bool  # noqa: FBT001
) -> None:
    monkeypatch.setenv(f"{ENV_PREFIX}USE_EMBEDDINGS", raw)
    assert ConfigService.get_engine_config().use_embeddings is expected


def test_schema_filters(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv(f"{ENV_PREFIX}INCLUDE_SCHEMAS", "dbo, sales,,")
    monkeypatch.setenv(f"{ENV_PREFIX}EXCLUDE_SCHEMAS", " ")
    assert ConfigService.get_schema_filters() == (["dbo", "sales"], None)


def test_metadata_source_inferred(monkeypatch: MonkeyPatch) -> None:
    with pytest.raises(ValueError, match="METADATA_PATH or"):
        ConfigService.get_metadata_source()

    monkeypatch.setenv(f"{ENV_PREFIX}DATABASE_URL", "sqlite+pysqlite:///:memory:")
    assert ConfigService.get_metadata_source() == "database"

    monkeypatch.setenv(f"{ENV_PREFIX}METADATA_PATH", "/tmp/metadata.json")
    assert ConfigService.get_metadata_source() == "json"


def test_metadata_source_explicit(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv(f"{ENV_PREFIX}METADATA_SOURCE", "Database")
    assert ConfigService.get_metadata_source() == "database"

    monkeypatch.setenv(f"{ENV_PREFIX}METADATA_SOURCE", "yaml")
    with pytest.raises(ValueError, match="Unknown NL2SQL_CONTEXT_METADATA_SOURCE"):
        ConfigService.get_metadata_source()
