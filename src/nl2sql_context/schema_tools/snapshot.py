"""Immutable metadata snapshots.

A snapshot is a point-in-time, read-only view of table and column business
metadata, glossary terms, foreign-key relationships and prior mappings. It is
built once from repository records (optionally merged with a discovered
catalog), filtered so that inactive elements never become visible, and then
shared by every request until a newer snapshot replaces it.

Classes:
- MetadataRecords: Raw records as loaded from a metadata repository
- DiscoveredCatalog: Structural metadata from catalog discovery
- MetadataSnapshot: Validated, immutable, versioned metadata view

Functions:
- merge_catalog(): Overlay business metadata onto a discovered catalog
- build_snapshot(): Build a snapshot from records and an optional catalog
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum
import time
from types import MappingProxyType
from typing import Any

from fastmcp.utilities.logging import get_logger

from .models import (
    ColumnMetadata,
    ForeignKeyRelationship,
    GlossaryTerm,
    PriorMapping,
    TableMetadata,
)
from .utils import build_table_index, fingerprint_payload, resolve_table

# Logger
_logger = get_logger("context_engine.snapshot")


@dataclass(frozen=True)
class MetadataRecords:
    """Business metadata records as provided by a repository."""

    tables: tuple[TableMetadata, ...] = ()
    columns: tuple[ColumnMetadata, ...] = ()
    glossary: tuple[GlossaryTerm, ...] = ()
    relationships: tuple[ForeignKeyRelationship, ...] = ()
    prior_mappings: tuple[PriorMapping, ...] = ()


@dataclass(frozen=True)
class DiscoveredCatalog:
    """Structural catalog metadata produced by discovery."""

    dialect: str
    tables: tuple[TableMetadata, ...] = ()
    columns: tuple[ColumnMetadata, ...] = ()
    relationships: tuple[ForeignKeyRelationship, ...] = ()


def _canonical(value: Any) -> Any:
    """Convert records into a JSON-friendly structure with stable ordering."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _canonical(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (set, frozenset)):
        return sorted(_canonical(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class MetadataSnapshot:
    """Validated, immutable metadata view shared across requests.

    Use :meth:`build` rather than the constructor: it filters inactive
    elements, canonicalizes table references and drops relationships whose
    endpoints are not real elements of the snapshot.

    Attributes:
        version: Deterministic fingerprint of the snapshot content
        built_at: Wall-clock time the snapshot was built
        tables: Active tables keyed by canonical ``schema.table`` key
        columns: Active columns per table key, in declared order
        glossary: Active glossary terms ordered by term
        relationships: Validated foreign-key relationships
        prior_mappings: Prior query-to-table mappings
    """

    version: str
    built_at: float
    tables: Mapping[str, TableMetadata]
    columns: Mapping[str, tuple[ColumnMetadata, ...]]
    glossary: tuple[GlossaryTerm, ...] = ()
    relationships: tuple[ForeignKeyRelationship, ...] = ()
    prior_mappings: tuple[PriorMapping, ...] = ()
    _index: Mapping[str, str] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def build(  # noqa: PLR0913
        cls,
        tables: Iterable[TableMetadata],
        columns: Iterable[ColumnMetadata] = (),
        glossary: Iterable[GlossaryTerm] = (),
        relationships: Iterable[ForeignKeyRelationship] = (),
        prior_mappings: Iterable[PriorMapping] = (),
        *,
        built_at: float | None = None,
    ) -> MetadataSnapshot:
        """Build a snapshot from raw records.

        Args:
            tables: Table metadata records (inactive ones are dropped)
            columns: Column metadata records (inactive or orphaned ones are dropped)
            glossary: Glossary terms (inactive ones are dropped)
            relationships: Foreign keys (those with unknown endpoints are dropped)
            prior_mappings: Prior query mappings
            built_at: Optional build timestamp, defaults to now

        Returns:
            A new immutable snapshot
        """
        table_map: dict[str, TableMetadata] = {}
        for table in tables:
            if not table.is_active:
                continue
            if table.key in table_map:
                _logger.debug("Duplicate table record ignored: %s", table.key)
                continue
            table_map[table.key] = table
        table_map = dict(sorted(table_map.items()))
        index = build_table_index(table_map)

        column_map: dict[str, list[ColumnMetadata]] = {key: [] for key in table_map}
        seen_columns: set[tuple[str, str]] = set()
        for column in columns:
            if not column.is_active:
                continue
            table_key = resolve_table(column.table_key, index)
            if table_key is None:
                _logger.debug("Column %s dropped: table not in snapshot", column.key)
                continue
            ident = (table_key, column.name.lower())
            if ident in seen_columns:
                continue
            seen_columns.add(ident)
            column_map[table_key].append(replace(column, table_key=table_key))

        column_names = {
            key: {c.name.lower() for c in cols} for key, cols in column_map.items() if cols
        }

        valid_relationships: list[ForeignKeyRelationship] = []
        dropped = 0
        for rel in relationships:
            parent = resolve_table(rel.parent_table, index)
            referenced = resolve_table(rel.referenced_table, index)
            if parent is None or referenced is None:
                dropped += 1
                continue
            if not _has_column(column_names, parent, rel.parent_column) or not _has_column(
                column_names, referenced, rel.referenced_column
            ):
                dropped += 1
                continue
            valid_relationships.append(
                replace(rel, parent_table=parent, referenced_table=referenced)
            )
        if dropped:
            _logger.info("Dropped %d relationships referencing unknown elements", dropped)

        active_glossary = sorted(
            (
                _canonical_glossary(term, index, column_names)
                for term in glossary
                if term.is_active
            ),
            key=lambda t: t.term.lower(),
        )

        frozen_columns = {key: tuple(cols) for key, cols in column_map.items()}
        prior = tuple(prior_mappings)
        version = fingerprint_payload(
            _canonical(
                {
                    "tables": list(table_map.values()),
                    "columns": frozen_columns,
                    "glossary": active_glossary,
                    "relationships": valid_relationships,
                    "prior": prior,
                }
            )
        )
        return cls(
            version=version,
            built_at=time.time() if built_at is None else built_at,
            tables=MappingProxyType(table_map),
            columns=MappingProxyType(frozen_columns),
            glossary=tuple(active_glossary),
            relationships=tuple(valid_relationships),
            prior_mappings=prior,
            _index=MappingProxyType(index),
        )

    def resolve_table(self, name: str) -> str | None:
        """Resolve any table reference (qualified, bare, quoted) to its key."""
        return resolve_table(name, self._index)

    def table(self, name: str) -> TableMetadata | None:
        key = self.resolve_table(name)
        return self.tables.get(key) if key is not None else None

    def columns_for(self, name: str) -> tuple[ColumnMetadata, ...]:
        key = self.resolve_table(name)
        if key is None:
            return ()
        return self.columns.get(key, ())

    def __len__(self) -> int:
        return len(self.tables)


def _has_column(column_names: Mapping[str, set[str]], table_key: str, column: str) -> bool:
    # Tables without column metadata accept any column name
    known = column_names.get(table_key)
    return known is None or column.lower() in known


def _canonical_glossary(
    term: GlossaryTerm, index: Mapping[str, str], column_names: Mapping[str, set[str]]
) -> GlossaryTerm:
    """Rewrite glossary mappings onto canonical keys, dropping unknown targets."""
    tables = frozenset(
        key for key in (resolve_table(t, index) for t in term.mapped_tables) if key is not None
    )
    mapped_columns: set[str] = set()
    for ref in term.mapped_columns:
        table_ref, _, column = ref.rpartition(".")
        if not table_ref:
            continue
        key = resolve_table(table_ref, index)
        if key is not None and _has_column(column_names, key, column):
            mapped_columns.add(f"{key}.{column}".lower())
    return replace(term, mapped_tables=tables, mapped_columns=frozenset(mapped_columns))


def merge_catalog(records: MetadataRecords, catalog: DiscoveredCatalog | None) -> MetadataRecords:
    """Overlay business metadata records onto a discovered catalog.

    The catalog decides which tables and columns exist; business records
    supply descriptive fields. Records that match no catalog table are
    dropped. Without a catalog the records are returned unchanged.

    Args:
        records: Business metadata records
        catalog: Structural catalog, or None when discovery is not configured

    Returns:
        Merged records ready for :meth:`MetadataSnapshot.build`
    """
    if catalog is None:
        return records

    index = build_table_index(t.key for t in catalog.tables)
    catalog_tables = {t.key: t for t in catalog.tables}

    overlays: dict[str, TableMetadata] = {}
    for record in records.tables:
        key = resolve_table(record.key, index)
        if key is None:
            _logger.debug("Business metadata for %s has no catalog table", record.key)
            continue
        base = catalog_tables[key]
        overlays.setdefault(key, replace(record, schema=base.schema, name=base.name))
    tables = tuple(overlays.get(t.key, t) for t in catalog.tables)

    record_columns: dict[tuple[str, str], ColumnMetadata] = {}
    for column in records.columns:
        key = resolve_table(column.table_key, index)
        if key is not None:
            record_columns.setdefault((key, column.name.lower()), column)

    columns: list[ColumnMetadata] = []
    for base_column in catalog.columns:
        ident = (base_column.table_key, base_column.name.lower())
        record = record_columns.get(ident)
        if record is None:
            columns.append(base_column)
            continue
        columns.append(
            replace(
                record,
                table_key=base_column.table_key,
                name=base_column.name,
                data_type=record.data_type or base_column.data_type,
                is_key_column=record.is_key_column or base_column.is_key_column,
            )
        )

    return MetadataRecords(
        tables=tables,
        columns=tuple(columns),
        glossary=records.glossary,
        relationships=catalog.relationships + records.relationships,
        prior_mappings=records.prior_mappings,
    )


def build_snapshot(
    records: MetadataRecords, catalog: DiscoveredCatalog | None = None
) -> MetadataSnapshot:
    """Build a snapshot from repository records and an optional catalog."""
    merged = merge_catalog(records, catalog)
    snapshot = MetadataSnapshot.build(
        merged.tables,
        merged.columns,
        merged.glossary,
        merged.relationships,
        merged.prior_mappings,
    )
    _logger.info(
        "Built metadata snapshot %s: %d tables, %d relationships, %d glossary terms",
        snapshot.version,
        len(snapshot.tables),
        len(snapshot.relationships),
        len(snapshot.glossary),
    )
    return snapshot


__all__ = [
    "DiscoveredCatalog",
    "MetadataRecords",
    "MetadataSnapshot",
    "build_snapshot",
    "merge_catalog",
]
