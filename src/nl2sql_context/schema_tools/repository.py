"""Business metadata repositories.

Repositories load the records a snapshot is built from. List-valued fields
are stored as JSON-array strings in the metadata database; they are decoded
here, at the persistence boundary, and modelled as tuples and frozensets
everywhere else.

Classes:
- MetadataRepository: Protocol for ``load() -> MetadataRecords``
- InMemoryMetadataRepository: Records held in memory (tests, embedding)
- JsonMetadataRepository: Records read from a JSON document
- SqlMetadataRepository: Records read from the business metadata tables

Functions:
- table_from_record() / column_from_record() / glossary_from_record() /
  relationship_from_record() / prior_mapping_from_record(): record decoders
"""

from __future__ import annotations

from collections.abc import Mapping
import json
from pathlib import Path
from typing import Any, Protocol

from fastmcp.utilities.logging import get_logger
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import MetadataLoadError
from .models import (
    ColumnMetadata,
    ForeignKeyRelationship,
    GlossaryTerm,
    PriorMapping,
    TableMetadata,
)
from .snapshot import MetadataRecords

# Logger
_logger = get_logger("context_engine.repository")


class MetadataRepository(Protocol):
    """Source of business metadata records."""

    def load(self) -> MetadataRecords:  # pragma: no cover - protocol
        ...


# ---- field decoding --------------------------------------------------------
def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value).strip()


def _list(data: Mapping[str, Any], key: str) -> tuple[str, ...]:
    """Decode a list field given as a list, a JSON-array string or CSV text."""
    value = data.get(key)
    if value is None:
        return ()
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return ()
        if raw.startswith("["):
            try:
                value = json.loads(raw)
            except json.JSONDecodeError as exc:
                msg = f"Field {key!r} holds malformed JSON array: {raw[:80]!r}"
                raise MetadataLoadError(msg) from exc
        else:
            return tuple(part.strip() for part in raw.split(",") if part.strip())
    if not isinstance(value, list):
        msg = f"Field {key!r} must be a list, got {type(value).__name__}"
        raise MetadataLoadError(msg)
    items: list[str] = []
    for item in value:
        if isinstance(item, Mapping):
            # Mapping entries such as {"tableName": "...", "relevanceScore": 0.9}
            name = next(
                (item[k] for k in ("table", "tableName", "TableName", "name") if item.get(k)),
                None,
            )
            if name is not None:
                items.append(str(name).strip())
        elif item is not None and str(item).strip():
            items.append(str(item).strip())
    return tuple(items)


def _float(data: Mapping[str, Any], key: str, default: float | None = None) -> float | None:
    value = data.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        msg = f"Field {key!r} must be numeric, got {value!r}"
        raise MetadataLoadError(msg) from exc


def _bool(data: Mapping[str, Any], key: str, *, default: bool) -> bool:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y"}
    return bool(value)


def _required(data: Mapping[str, Any], key: str, kind: str) -> str:
    value = _text(data, key)
    if not value:
        msg = f"{kind} record is missing required field {key!r}: {dict(data)!r}"
        raise MetadataLoadError(msg)
    return value


# ---- record decoders -------------------------------------------------------
def table_from_record(data: Mapping[str, Any]) -> TableMetadata:
    """Decode a snake_case table record."""
    return TableMetadata(
        schema=_text(data, "schema") or _text(data, "schema_name"),
        name=_required(data, "name", "Table"),
        business_purpose=_text(data, "business_purpose"),
        business_context=_text(data, "business_context"),
        semantic_description=_text(data, "semantic_description"),
        domain_classification=_text(data, "domain_classification"),
        natural_language_aliases=_list(data, "natural_language_aliases"),
        glossary_terms=frozenset(_list(data, "glossary_terms")),
        search_keywords=_list(data, "search_keywords"),
        importance_score=_float(data, "importance_score"),
        usage_frequency=_float(data, "usage_frequency"),
        is_active=_bool(data, "is_active", default=True),
    )


def column_from_record(data: Mapping[str, Any]) -> ColumnMetadata:
    """Decode a snake_case column record.

    The owning table is given as ``table`` (or ``table_key``), or as separate
    ``table_schema`` and ``table_name`` fields.
    """
    table = _text(data, "table") or _text(data, "table_key")
    if not table:
        schema, name = _text(data, "table_schema"), _text(data, "table_name")
        table = f"{schema}.{name}" if schema and name else name
    if not table:
        msg = f"Column record has no owning table: {dict(data)!r}"
        raise MetadataLoadError(msg)
    return ColumnMetadata(
        table_key=table,
        name=_required(data, "name", "Column"),
        data_type=_text(data, "data_type"),
        business_meaning=_text(data, "business_meaning"),
        business_context=_text(data, "business_context"),
        semantic_context=_text(data, "semantic_context"),
        natural_language_aliases=_list(data, "natural_language_aliases"),
        business_metrics=_list(data, "business_metrics"),
        usage_frequency=_float(data, "usage_frequency"),
        semantic_relevance_score=_float(data, "semantic_relevance_score"),
        is_key_column=_bool(data, "is_key_column", default=False),
        is_sensitive_data=_bool(data, "is_sensitive_data", default=False),
        is_active=_bool(data, "is_active", default=True),
    )


def glossary_from_record(data: Mapping[str, Any]) -> GlossaryTerm:
    """Decode a snake_case glossary record."""
    return GlossaryTerm(
        term=_required(data, "term", "Glossary"),
        definition=_text(data, "definition"),
        synonyms=frozenset(s.lower() for s in _list(data, "synonyms")),
        category=_text(data, "category"),
        domain=_text(data, "domain"),
        mapped_tables=frozenset(_list(data, "mapped_tables")),
        mapped_columns=frozenset(_list(data, "mapped_columns")),
        confidence_score=_float(data, "confidence_score", 1.0) or 0.0,
        is_active=_bool(data, "is_active", default=True),
    )


def relationship_from_record(data: Mapping[str, Any]) -> ForeignKeyRelationship:
    """Decode a snake_case foreign-key record."""
    parent = _required(data, "parent_table", "Relationship")
    parent_column = _required(data, "parent_column", "Relationship")
    return ForeignKeyRelationship(
        constraint_name=_text(data, "constraint_name") or f"fk_{parent}_{parent_column}",
        parent_table=parent,
        parent_column=parent_column,
        referenced_table=_required(data, "referenced_table", "Relationship"),
        referenced_column=_required(data, "referenced_column", "Relationship"),
        is_enabled=_bool(data, "is_enabled", default=True),
    )


def prior_mapping_from_record(data: Mapping[str, Any]) -> PriorMapping:
    """Decode a snake_case prior mapping record."""
    return PriorMapping(
        query=_required(data, "query", "Prior mapping"),
        tables=_list(data, "tables"),
        confidence=_float(data, "confidence", 1.0) or 0.0,
    )


# ---- repositories ----------------------------------------------------------
class InMemoryMetadataRepository:
    """Repository over records that are already in memory."""

    def __init__(self, records: MetadataRecords) -> None:
        self._records = records

    def load(self) -> MetadataRecords:
        return self._records


class JsonMetadataRepository:
    """Repository reading a JSON document with snake_case records.

    The document is an object with optional ``tables``, ``columns``,
    ``glossary``, ``relationships`` and ``prior_mappings`` arrays. List-valued
    fields may be real arrays or JSON-array strings.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> MetadataRecords:
        """Read and decode the document.

        Raises:
            MetadataLoadError: If the file cannot be read or decoded
        """
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            msg = f"Cannot read metadata file {self.path}: {exc}"
            raise MetadataLoadError(msg) from exc
        if not isinstance(document, dict):
            msg = f"Metadata file {self.path} must contain a JSON object"
            raise MetadataLoadError(msg)

        records = MetadataRecords(
            tables=tuple(table_from_record(r) for r in _section(document, "tables")),
            columns=tuple(column_from_record(r) for r in _section(document, "columns")),
            glossary=tuple(glossary_from_record(r) for r in _section(document, "glossary")),
            relationships=tuple(
                relationship_from_record(r) for r in _section(document, "relationships")
            ),
            prior_mappings=tuple(
                prior_mapping_from_record(r) for r in _section(document, "prior_mappings")
            ),
        )
        _logger.info(
            "Loaded metadata from %s: %d tables, %d columns, %d glossary terms",
            self.path,
            len(records.tables),
            len(records.columns),
            len(records.glossary),
        )
        return records


def _section(document: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    section = document.get(key) or []
    if not isinstance(section, list) or not all(isinstance(r, Mapping) for r in section):
        msg = f"Metadata section {key!r} must be a list of objects"
        raise MetadataLoadError(msg)
    return section


_TABLES_SQL = """
SELECT Id AS id, SchemaName AS schema_name, TableName AS name,
       BusinessPurpose AS business_purpose, BusinessContext AS business_context,
       SemanticDescription AS semantic_description,
       DomainClassification AS domain_classification,
       NaturalLanguageAliases AS natural_language_aliases,
       BusinessGlossaryTerms AS glossary_terms, VectorSearchKeywords AS search_keywords,
       ImportanceScore AS importance_score, UsageFrequency AS usage_frequency,
       IsActive AS is_active
FROM BusinessTableInfo
"""

_COLUMNS_SQL = """
SELECT t.SchemaName AS table_schema, t.TableName AS table_name, c.ColumnName AS name,
       c.BusinessMeaning AS business_meaning, c.BusinessContext AS business_context,
       c.SemanticContext AS semantic_context,
       c.NaturalLanguageAliases AS natural_language_aliases,
       c.BusinessMetrics AS business_metrics, c.UsageFrequency AS usage_frequency,
       c.SemanticRelevanceScore AS semantic_relevance_score,
       c.IsKeyColumn AS is_key_column, c.IsSensitiveData AS is_sensitive_data,
       c.IsActive AS is_active
FROM BusinessColumnInfo c
JOIN BusinessTableInfo t ON c.TableInfoId = t.Id
"""

_GLOSSARY_SQL = """
SELECT Term AS term, Definition AS definition, Synonyms AS synonyms,
       Category AS category, Domain AS domain, MappedTables AS mapped_tables,
       MappedColumns AS mapped_columns, ConfidenceScore AS confidence_score,
       IsActive AS is_active
FROM BusinessGlossary
"""

_PRIOR_MAPPINGS_SQL = """
SELECT QueryIntent AS query, RelevantTables AS tables, ConfidenceScore AS confidence
FROM SemanticSchemaMapping
WHERE IsActive = 1
"""

PRIOR_MAPPING_TABLE = "SemanticSchemaMapping"


class SqlMetadataRepository:
    """Repository reading the business metadata tables through SQLAlchemy.

    Reads ``BusinessTableInfo``, ``BusinessColumnInfo`` and
    ``BusinessGlossary``, plus ``SemanticSchemaMapping`` when it exists.
    Foreign keys come from catalog discovery, not from this repository.
    """

    def __init__(self, engine: sa.Engine) -> None:
        self.engine = engine

    def load(self) -> MetadataRecords:
        """Query and decode the metadata tables.

        Raises:
            MetadataLoadError: If the tables cannot be queried or decoded
        """
        try:
            with self.engine.connect() as conn:
                tables = [
                    table_from_record(r) for r in conn.execute(sa.text(_TABLES_SQL)).mappings()
                ]
                columns = [
                    column_from_record(r) for r in conn.execute(sa.text(_COLUMNS_SQL)).mappings()
                ]
                glossary = [
                    glossary_from_record(r)
                    for r in conn.execute(sa.text(_GLOSSARY_SQL)).mappings()
                ]
                prior: list[PriorMapping] = []
                if sa.inspect(conn).has_table(PRIOR_MAPPING_TABLE):
                    prior = [
                        prior_mapping_from_record(r)
                        for r in conn.execute(sa.text(_PRIOR_MAPPINGS_SQL)).mappings()
                    ]
        except SQLAlchemyError as exc:
            msg = f"Cannot read business metadata tables: {exc}"
            raise MetadataLoadError(msg) from exc

        _logger.info(
            "Loaded metadata from database: %d tables, %d columns, %d glossary terms, "
            "%d prior mappings",
            len(tables),
            len(columns),
            len(glossary),
            len(prior),
        )
        return MetadataRecords(
            tables=tuple(tables),
            columns=tuple(columns),
            glossary=tuple(glossary),
            prior_mappings=tuple(prior),
        )
