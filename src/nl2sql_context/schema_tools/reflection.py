"""Relational catalog discovery via SQLAlchemy reflection.

This module provides the discovery side of snapshot refresh: listing tables,
columns, primary keys and foreign-key constraints across included schemas and
turning them into a :class:`DiscoveredCatalog`.

Classes:
- CatalogDiscovery: Protocol for catalog discovery collaborators
- SqlAlchemyCatalogDiscovery: Reflection-based discovery for any SA dialect
"""

from __future__ import annotations

from typing import Any, Protocol

from fastmcp.utilities.logging import get_logger
import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.engine.reflection import Inspector
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import DiscoveryUnavailableError
from .models import ColumnMetadata, ForeignKeyRelationship, TableMetadata
from .snapshot import DiscoveredCatalog
from .utils import default_excluded_schemas

# Logger
_logger = get_logger("context_engine.reflection")


class CatalogDiscovery(Protocol):
    """Introspects a relational catalog."""

    def discover(self) -> DiscoveredCatalog:  # pragma: no cover - protocol
        ...


class SqlAlchemyCatalogDiscovery:
    """Catalog discovery using SQLAlchemy's inspector.

    Attributes:
        engine: SQLAlchemy engine for database connections
        include_schemas: Optional list of schemas to include (whitelist)
        exclude_schemas: Optional list of schemas to exclude (blacklist)
    """

    def __init__(
        self,
        engine: Engine,
        include_schemas: list[str] | None = None,
        exclude_schemas: list[str] | None = None,
        *,
        timeout_sec: float | None = None,
    ) -> None:
        """Initialize the discovery adapter.

        Args:
            engine: SQLAlchemy engine connected to the database
            include_schemas: Optional whitelist of schema names to include
            exclude_schemas: Optional blacklist of schema names to exclude
            timeout_sec: Per-connection statement timeout applied where supported
        """
        self.engine = engine
        self.include_schemas = include_schemas
        self.exclude_schemas = exclude_schemas
        self._timeout_sec = timeout_sec

    def list_schemas(self, inspector: Inspector) -> list[str]:
        """List schema names with system and excluded schemas filtered out."""
        schemas = inspector.get_schema_names()
        excluded_set = {
            schema.lower()
            for schema in (
                self.exclude_schemas or default_excluded_schemas(self.engine.dialect.name)
            )
        }
        filtered = [
            schema
            for schema in schemas
            if schema.lower() not in excluded_set and not schema.lower().startswith("db_")
        ]
        if self.include_schemas:
            allowed = {schema.lower() for schema in self.include_schemas}
            filtered = [schema for schema in filtered if schema.lower() in allowed]
        return filtered

    def discover(self) -> DiscoveredCatalog:
        """Reflect tables, columns and foreign keys of the included schemas.

        Tables whose columns cannot be read are skipped with a warning; a
        failure to connect or to list schemas aborts discovery.

        Returns:
            DiscoveredCatalog with structural metadata only

        Raises:
            DiscoveryUnavailableError: If the catalog cannot be reached
        """
        tables: list[TableMetadata] = []
        columns: list[ColumnMetadata] = []
        relationships: list[ForeignKeyRelationship] = []

        try:
            with self.engine.connect() as conn:
                self._apply_timeout(conn)
                inspector: Inspector = sa.inspect(conn)
                schemas = self.list_schemas(inspector)
                _logger.info("Discovering catalog across %d schemas", len(schemas))

                for schema in schemas:
                    try:
                        table_names = inspector.get_table_names(schema=schema)
                    except SQLAlchemyError as e:
                        _logger.warning("Cannot list tables for schema %s: %s", schema, e)
                        continue
                    for table in table_names:
                        reflected = self._reflect_table(inspector, schema, table)
                        if reflected is None:
                            continue
                        table_meta, table_columns, table_fks = reflected
                        tables.append(table_meta)
                        columns.extend(table_columns)
                        relationships.extend(table_fks)
        except SQLAlchemyError as e:
            msg = f"Catalog discovery failed: {e}"
            raise DiscoveryUnavailableError(msg) from e

        _logger.info(
            "Discovered %d tables, %d columns, %d foreign keys",
            len(tables),
            len(columns),
            len(relationships),
        )
        return DiscoveredCatalog(
            dialect=self.engine.dialect.name,
            tables=tuple(tables),
            columns=tuple(columns),
            relationships=tuple(relationships),
        )

    # ---- internals ---------------------------------------------------------
    def _reflect_table(
        self, inspector: Inspector, schema: str, table: str
    ) -> tuple[TableMetadata, list[ColumnMetadata], list[ForeignKeyRelationship]] | None:
        _logger.debug("Reflecting table: %s.%s", schema, table)
        try:
            columns_metadata = inspector.get_columns(table, schema=schema)
        except SQLAlchemyError as e:
            _logger.warning("Cannot get columns for %s.%s: %s", schema, table, e)
            return None

        try:
            pk_constraint = inspector.get_pk_constraint(table, schema=schema)
            primary_key_columns = set(pk_constraint.get("constrained_columns") or [])
        except SQLAlchemyError as e:
            _logger.debug("Cannot get PK for %s.%s: %s", schema, table, e)
            primary_key_columns = set()

        table_meta = TableMetadata(schema=schema, name=table)
        foreign_keys = self._foreign_keys(inspector, schema, table)
        fk_columns = {fk.parent_column for fk in foreign_keys}
        columns = [
            ColumnMetadata(
                table_key=table_meta.key,
                name=col["name"],
                data_type=str(col["type"]),
                is_key_column=col["name"] in primary_key_columns or col["name"] in fk_columns,
            )
            for col in columns_metadata
        ]
        return table_meta, columns, foreign_keys

    def _foreign_keys(
        self, inspector: Inspector, schema: str, table: str
    ) -> list[ForeignKeyRelationship]:
        try:
            fk_constraints: list[Any] = list(inspector.get_foreign_keys(table, schema=schema))
        except SQLAlchemyError as e:
            _logger.debug("Cannot get FKs for %s.%s: %s", schema, table, e)
            return []

        fks: list[ForeignKeyRelationship] = []
        for fk in fk_constraints:
            ref_schema = fk.get("referred_schema") or schema
            ref_table = fk.get("referred_table")
            constrained_cols = fk.get("constrained_columns") or []
            referred_cols = fk.get("referred_columns") or []
            pairs = list(zip(constrained_cols, referred_cols, strict=False))
            for local_col, ref_col in pairs:
                name = fk.get("name") or f"fk_{schema}.{table}_{local_col}"
                if fk.get("name") and len(pairs) > 1:
                    name = f"{name}.{local_col}"
                fks.append(
                    ForeignKeyRelationship(
                        constraint_name=name,
                        parent_table=f"{schema}.{table}",
                        parent_column=local_col,
                        referenced_table=f"{ref_schema}.{ref_table}",
                        referenced_column=ref_col,
                    )
                )
        return fks

    def _apply_timeout(self, conn: Connection) -> None:
        """Apply a per-connection timeout suitable for metadata reflection.

        Best-effort, dialect-specific:
        - PostgreSQL: SET statement_timeout = <ms>
        - MySQL:      SET SESSION MAX_EXECUTION_TIME = <ms>
        - SQL Server: SET LOCK_TIMEOUT <ms>
        """
        timeout_sec = self._timeout_sec
        if not timeout_sec or timeout_sec <= 0:
            return
        ms = max(1, int(timeout_sec * 1000))
        dialect = self.engine.dialect.name
        try:
            if dialect == "postgresql":
                conn.execute(sa.text("SET statement_timeout = :ms"), {"ms": ms})
            elif dialect in {"mysql", "mariadb"}:
                conn.execute(sa.text("SET SESSION MAX_EXECUTION_TIME = :ms"), {"ms": ms})
            elif dialect == "mssql":
                conn.execute(sa.text(f"SET LOCK_TIMEOUT {ms}"))
        except SQLAlchemyError as e:
            _logger.debug("Could not apply discovery timeout: %s", e)
