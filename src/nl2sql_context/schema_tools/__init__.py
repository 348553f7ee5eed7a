"""Schema relevance and join-path resolution for nl2sql-context.

Narrows a large relational schema to the tables, columns and business
glossary terms relevant to a natural-language analytical question, and
resolves how the selected tables join, under a token budget.

Main Components:
- QueryIntentAnalyzer: Terms, category, intent and complexity of a query
- RelevanceScorer: Weighted, optional-signal scoring of tables and columns
- ForeignKeyGraph: FK multigraph with shortest join paths and expansion
- ContextAssembler: Token-budgeted context assembly
- SchemaContextEngine: Facade exposing the three public operations
- MetadataSnapshot: Immutable, versioned metadata view

Example Usage:
    >>> from nl2sql_context.schema_tools import (
    ...     InMemoryMetadataRepository, SchemaContextEngine, SnapshotBundle,
    ...     StaticSnapshotProvider, build_snapshot,
    ... )
    >>> records = InMemoryMetadataRepository(my_records).load()
    >>> bundle = SnapshotBundle.build(build_snapshot(records))
    >>> engine = SchemaContextEngine(StaticSnapshotProvider(bundle))
    >>> result = engine.get_relevant_schema("total deposits by country yesterday")
    >>> paths = engine.get_join_paths(result.table_keys)
"""

from .assembler import ContextAssembler
from .constants import Constants, QueryCategory, QueryIntent, ReasonCode
from .engine import SchemaContextEngine, SnapshotBundle, SnapshotProvider, StaticSnapshotProvider
from .exceptions import (
    ContextEngineError,
    DiscoveryUnavailableError,
    EmbeddingError,
    MetadataLoadError,
)
from .graph import ForeignKeyGraph
from .intent import QueryIntentAnalyzer
from .models import (
    ColumnMetadata,
    ContextualizedResult,
    EngineConfig,
    ForeignKeyRelationship,
    GlossaryTerm,
    JoinPath,
    JoinResolution,
    PriorMapping,
    QueryAnalysis,
    RelatedTableInfo,
    ScoredElement,
    TableMetadata,
)
from .policies import IntentScoringPolicy, KeywordBoostRule, PolicyRegistry
from .repository import (
    InMemoryMetadataRepository,
    JsonMetadataRepository,
    MetadataRepository,
    SqlMetadataRepository,
)
from .scoring import RelevanceScorer
from .similarity import LexicalSimilarity, SimilarityService
from .snapshot import MetadataRecords, MetadataSnapshot, build_snapshot

__all__ = [
    "ColumnMetadata",
    "Constants",
    "ContextAssembler",
    "ContextEngineError",
    "ContextualizedResult",
    "DiscoveryUnavailableError",
    "EmbeddingError",
    "EngineConfig",
    "ForeignKeyGraph",
    "ForeignKeyRelationship",
    "GlossaryTerm",
    "InMemoryMetadataRepository",
    "IntentScoringPolicy",
    "JoinPath",
    "JoinResolution",
    "JsonMetadataRepository",
    "KeywordBoostRule",
    "LexicalSimilarity",
    "MetadataLoadError",
    "MetadataRecords",
    "MetadataRepository",
    "MetadataSnapshot",
    "PolicyRegistry",
    "PriorMapping",
    "QueryAnalysis",
    "QueryCategory",
    "QueryIntent",
    "QueryIntentAnalyzer",
    "ReasonCode",
    "RelatedTableInfo",
    "RelevanceScorer",
    "ScoredElement",
    "SchemaContextEngine",
    "SimilarityService",
    "SnapshotBundle",
    "SnapshotProvider",
    "SqlMetadataRepository",
    "StaticSnapshotProvider",
    "TableMetadata",
    "build_snapshot",
]
