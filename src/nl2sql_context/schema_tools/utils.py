"""Utility functions for schema relevance and join-path resolution.

This module contains helpers shared across the engine: identifier and text
normalization, token extraction, table-name canonicalization, snapshot
fingerprinting and dialect-specific catalog defaults.

Functions:
- normalize_identifier(): Convert database identifiers to normalized tokens
- stem_token(): Reduce simple English plurals to a singular stem
- tokens_from_text(): Extract normalized, stemmed tokens from text
- split_table_name(): Parse a possibly quoted, schema-qualified table name
- build_table_index() / resolve_table(): Case-insensitive table lookup
- looks_like_key(): Detect identifier-like column names
- fingerprint_payload(): Generate deterministic hash of metadata
- default_excluded_schemas(): Get system schemas to exclude by dialect
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import hashlib
import json
import re
from typing import Any

from fastmcp.utilities.logging import get_logger
from sqlglot import exp
from sqlglot.errors import SqlglotError

from .constants import Constants

# Logger setup
_logger = get_logger("context_engine.utils")

_QUOTE_CHARS = "[]\"`'"


def normalize_identifier(name: str) -> str:
    """Normalize database identifiers to lowercase space-separated tokens.

    Converts CamelCase and snake_case identifiers to space-separated lowercase
    tokens for consistent text processing and matching.

    Args:
        name: Database identifier (table/column name) or free text

    Returns:
        Normalized lowercase string with spaces between tokens

    Example:
        >>> normalize_identifier("player_deposits")
        'player deposits'
        >>> normalize_identifier("PlayerDeposits")
        'player deposits'
    """
    if not name:
        return ""

    normalized = re.sub(r"[_\-]+", " ", name)
    # Split CamelCase boundaries only (keeps acronyms like "UK" intact)
    normalized = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", normalized)
    return re.sub(r"\s+", " ", normalized).strip().lower()


def stem_token(token: str) -> str:
    """Reduce a lower-case token to a crude singular stem.

    Example:
        >>> stem_token("countries"), stem_token("deposits"), stem_token("class")
        ('country', 'deposit', 'class')
    """
    if len(token) > 4 and token.endswith("ies"):  # noqa: PLR2004
        return token[:-3] + "y"
    if (  # noqa: PLR2004
        len(token) > 3 and token.endswith("s") and not token.endswith(("ss", "us", "is"))
    ):
        return token[:-1]
    return token


def tokens_from_text(text: str, *, keep_stopwords: bool = False) -> list[str]:
    """Extract normalized, stemmed tokens from text.

    Args:
        text: Input text or identifier to tokenize
        keep_stopwords: Keep common English function words when True

    Returns:
        List of lowercase alphanumeric tokens in order of appearance
    """
    normalized_text = normalize_identifier(text or "")
    tokens = [stem_token(tok) for tok in Constants.WORD_PATTERN.findall(normalized_text)]
    if keep_stopwords:
        return tokens
    return [tok for tok in tokens if tok not in Constants.STOPWORDS]


def split_table_name(name: str) -> tuple[str, str]:
    """Parse a table reference into lower-cased ``(schema, table)``.

    Handles quoted and bracketed identifiers such as ``[dbo].[Games]`` or
    ``"dbo"."games"``. The schema part is empty when the name is unqualified.

    Args:
        name: Table reference as written by a caller or a metadata record

    Returns:
        Tuple of lower-cased schema (possibly empty) and table name
    """
    raw = (name or "").strip()
    if not raw:
        return "", ""
    if any(ch in raw for ch in _QUOTE_CHARS):
        try:
            table = exp.to_table(raw, dialect="tsql")
        except (SqlglotError, ValueError) as exc:
            _logger.debug("Falling back to plain split for table name %r: %s", raw, exc)
        else:
            return table.db.strip().lower(), table.name.strip().lower()
    parts = [p.strip().strip(_QUOTE_CHARS) for p in raw.split(".")]
    schema = parts[-2] if len(parts) > 1 else ""
    return schema.lower(), parts[-1].lower()


def build_table_index(keys: Iterable[str]) -> dict[str, str]:
    """Build a case-insensitive lookup from table references to table keys.

    Each key is reachable by its qualified form (``schema.table``) and by its
    bare table name. When several schemas share a bare name, the first key in
    sorted order owns the bare form.

    Args:
        keys: Canonical table keys

    Returns:
        Mapping from normalized lookup strings to canonical keys
    """
    index: dict[str, str] = {}
    for key in sorted(keys):
        schema, table = split_table_name(key)
        if schema:
            index.setdefault(f"{schema}.{table}", key)
        index.setdefault(table, key)
    return index


def resolve_table(name: str, index: Mapping[str, str]) -> str | None:
    """Resolve a table reference against an index from :func:`build_table_index`."""
    schema, table = split_table_name(name)
    if not table:
        return None
    if schema:
        qualified = index.get(f"{schema}.{table}")
        if qualified is not None:
            return qualified
    return index.get(table)


def looks_like_key(column_name: str) -> bool:
    """Return True when a column name looks like an identifier or foreign key."""
    lowered = column_name.lower()
    return lowered == "id" or lowered.endswith("_id") or column_name.endswith(("Id", "ID"))


def is_date_type(data_type: str) -> bool:
    """Return True for date/time SQL type names."""
    lowered = (data_type or "").lower()
    return any(hint in lowered for hint in Constants.DATE_TYPE_HINTS)


def clip_unit(value: float) -> float:
    """Clip a value into the closed interval [0, 1]."""
    return min(1.0, max(0.0, value))


def fingerprint_payload(payload: Any) -> str:
    """Generate deterministic hash fingerprint of a metadata payload.

    Args:
        payload: JSON-serializable structure (dataclasses should be converted first)

    Returns:
        16-character hex hash string representing the payload
    """
    json_string = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(json_string.encode("utf-8")).hexdigest()[:16]


def default_excluded_schemas(dialect_name: str) -> list[str]:
    """Get default system schemas to exclude for a database dialect.

    Args:
        dialect_name: SQLAlchemy dialect name (e.g., 'postgresql', 'mssql')

    Returns:
        List of system schema names to exclude from discovery
    """
    dialect_lower = dialect_name.lower()

    if "postgresql" in dialect_lower or "postgres" in dialect_lower:
        return ["information_schema", "pg_catalog", "pg_toast"]
    if "mssql" in dialect_lower or "sqlserver" in dialect_lower:
        return ["information_schema", "sys", "guest"]
    if "mysql" in dialect_lower:
        return ["information_schema", "mysql", "performance_schema", "sys"]
    if "oracle" in dialect_lower:
        return ["sys", "system", "xdb", "mdsys", "ctxsys"]
    return ["information_schema", "pg_catalog", "sys"]
