"""Custom exception hierarchy for the schema context engine.

The hierarchy separates failures that must reach a caller (snapshot refresh)
from failures that are absorbed inside a request. Scoring, path resolution
and assembly never raise these to their callers; degraded signals become
missing values and missing join paths become explicit result records.

Exception Categories:
- Base exception for all context engine errors
- Discovery errors for catalog introspection failures
- Metadata load errors for business metadata repository failures
- Embedding errors for embedding backend failures
"""

from __future__ import annotations


class ContextEngineError(Exception):
    """Base exception for schema context engine operations.

    All other custom exceptions in this module inherit from this class.
    """


class DiscoveryUnavailableError(ContextEngineError):
    """Raised when the relational catalog cannot be introspected.

    This is fatal for the snapshot refresh that triggered it, for example when:
    - The database connection fails or is refused
    - Catalog discovery exceeds its timeout
    - Metadata access is denied

    The previously published snapshot stays in service.
    """


class MetadataLoadError(ContextEngineError):
    """Raised when business metadata records cannot be read or decoded.

    Examples include an unreadable JSON file, malformed JSON arrays in a
    list-valued field, or missing metadata tables. Like discovery failures,
    this aborts only the refresh in progress.
    """


class EmbeddingError(ContextEngineError):
    """Raised when the embedding backend fails to encode text."""
