"""Data models for schema relevance and join-path resolution.

All records are immutable value objects. Business metadata records are
shared read-only through published snapshots; analysis, scoring and path
records are created per request and discarded after assembly.

Models:
- TableMetadata / ColumnMetadata: business metadata for schema elements
- GlossaryTerm: named business concept mapped to schema elements
- ForeignKeyRelationship: declared foreign-key edge between two tables
- PriorMapping: previously successful query-to-tables mapping
- QueryAnalysis: structured view of a natural-language query
- ScoredElement: relevance score with explainability reason codes
- JoinCondition / JoinPath / UnresolvedJoin / JoinResolution: join-path results
- RelatedTableInfo: neighbour discovered by related-table expansion
- SelectedTable / ContextualizedResult: assembled, token-budgeted context
- EngineConfig: tunable engine settings
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .constants import (
    Constants,
    JoinDirection,
    QueryCategory,
    QueryIntent,
    RelationshipType,
)


def _clamp_unit(value: float | None) -> float | None:
    if value is None:
        return None
    return min(1.0, max(0.0, float(value)))


@dataclass(frozen=True)
class TableMetadata:
    """Business metadata describing a table.

    Attributes:
        schema: Schema (owner) name
        name: Table name as defined in the database
        business_purpose: Short statement of what the table is for
        business_context: Longer free-text business context
        semantic_description: Rich description used for text similarity
        domain_classification: Business domain label (e.g. "Financial")
        natural_language_aliases: Business-friendly names, in curated order
        glossary_terms: Glossary terms tagged on the table (lower-cased)
        search_keywords: Precomputed keywords for search similarity
        importance_score: Curated importance in [0, 1], None when unknown
        usage_frequency: Observed usage in [0, 1], None when unknown
        is_active: Inactive tables are never visible to scoring or assembly
    """

    schema: str
    name: str
    business_purpose: str = ""
    business_context: str = ""
    semantic_description: str = ""
    domain_classification: str = ""
    natural_language_aliases: tuple[str, ...] = ()
    glossary_terms: frozenset[str] = frozenset()
    search_keywords: tuple[str, ...] = ()
    importance_score: float | None = None
    usage_frequency: float | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "importance_score", _clamp_unit(self.importance_score))
        object.__setattr__(self, "usage_frequency", _clamp_unit(self.usage_frequency))
        object.__setattr__(
            self, "glossary_terms", frozenset(t.strip().lower() for t in self.glossary_terms)
        )

    @property
    def key(self) -> str:
        """Identity key in ``schema.table`` form."""
        return f"{self.schema}.{self.name}" if self.schema else self.name


@dataclass(frozen=True)
class ColumnMetadata:
    """Business metadata describing a column of a table.

    ``table_key`` holds the owning table identity; snapshots rewrite it to the
    canonical ``schema.table`` key of the table it resolves to.
    """

    table_key: str
    name: str
    data_type: str = ""
    business_meaning: str = ""
    business_context: str = ""
    semantic_context: str = ""
    natural_language_aliases: tuple[str, ...] = ()
    business_metrics: tuple[str, ...] = ()
    usage_frequency: float | None = None
    semantic_relevance_score: float | None = None
    is_key_column: bool = False
    is_sensitive_data: bool = False
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "usage_frequency", _clamp_unit(self.usage_frequency))
        object.__setattr__(
            self, "semantic_relevance_score", _clamp_unit(self.semantic_relevance_score)
        )

    @property
    def key(self) -> str:
        """Identity key in ``schema.table.column`` form."""
        return f"{self.table_key}.{self.name}"


@dataclass(frozen=True)
class GlossaryTerm:
    """Named business concept with synonyms and schema mappings."""

    term: str
    definition: str = ""
    synonyms: frozenset[str] = frozenset()
    category: str = ""
    domain: str = ""
    mapped_tables: frozenset[str] = frozenset()
    mapped_columns: frozenset[str] = frozenset()
    confidence_score: float = 1.0
    is_active: bool = True


@dataclass(frozen=True)
class ForeignKeyRelationship:
    """Declared foreign key from ``parent_table`` to ``referenced_table``.

    Attributes:
        constraint_name: Constraint identifier, unique per table pair
        parent_table: Table holding the foreign-key column
        parent_column: Foreign-key column on the parent table
        referenced_table: Table being referenced
        referenced_column: Referenced (usually primary key) column
        is_enabled: False when the constraint is disabled/not trusted
    """

    constraint_name: str
    parent_table: str
    parent_column: str
    referenced_table: str
    referenced_column: str
    is_enabled: bool = True

    @property
    def relationship_type(self) -> RelationshipType:
        """Cardinality inferred from the parent column name."""
        column = self.parent_column
        lowered = column.lower()
        if lowered == "id" or lowered.endswith("_id") or column.endswith(("Id", "ID")):
            return RelationshipType.MANY_TO_ONE
        return RelationshipType.ONE_TO_MANY

    @property
    def is_self_reference(self) -> bool:
        return self.parent_table == self.referenced_table


@dataclass(frozen=True)
class PriorMapping:
    """A previously successful query and the tables it was answered from."""

    query: str
    tables: tuple[str, ...]
    confidence: float = 1.0


@dataclass(frozen=True)
class QueryAnalysis:
    """Structured analysis of a natural-language query.

    Attributes:
        original_query: Query text as received
        business_terms: Glossary terms and domain keywords found in the query
        category: Coarse business category
        intent: Analytical intent label
        complexity: Bounded complexity estimate in [0, 1]
        numeric_terms: Numeric literals captured as ``num:<value>`` pseudo-terms
        entities: Recognized entities as ``LABEL:CODE`` strings
        query_tokens: Normalized query tokens used for lexical matching
        degraded: True when analysis failed and defaults were returned
    """

    original_query: str
    business_terms: frozenset[str] = frozenset()
    category: QueryCategory = QueryCategory.GENERAL
    intent: QueryIntent = QueryIntent.UNKNOWN
    complexity: float = Constants.DEGRADED_COMPLEXITY
    numeric_terms: frozenset[str] = frozenset()
    entities: tuple[str, ...] = ()
    query_tokens: frozenset[str] = frozenset()
    degraded: bool = False

    @property
    def all_terms(self) -> frozenset[str]:
        return self.business_terms | self.numeric_terms


@dataclass(frozen=True)
class ScoredElement:
    """Relevance score for a table or column with explainability codes.

    ``element`` carries the metadata record that was scored so that callers
    can render context without a second lookup.
    """

    key: str
    name: str
    score: float
    reason_codes: tuple[str, ...] = ()
    element: TableMetadata | ColumnMetadata | None = field(default=None, compare=False)


@dataclass(frozen=True)
class JoinCondition:
    """Equality join condition oriented from foreign key to referenced key."""

    left_table: str
    left_column: str
    right_table: str
    right_column: str
    operator: str = "="


@dataclass(frozen=True)
class JoinPath:
    """Resolved join path between two tables.

    A JoinPath always carries at least one condition; pairs without a route
    are reported as :class:`UnresolvedJoin` instead.
    """

    from_table: str
    to_table: str
    tables: tuple[str, ...]
    conditions: tuple[JoinCondition, ...]
    constraint_names: tuple[str, ...]
    performance_score: float

    def __post_init__(self) -> None:
        if not self.conditions:
            msg = "JoinPath requires at least one join condition"
            raise ValueError(msg)

    @property
    def path_length(self) -> int:
        return len(self.conditions)

    @property
    def is_optimal(self) -> bool:
        return self.path_length <= Constants.OPTIMAL_PATH_MAX_HOPS


@dataclass(frozen=True)
class UnresolvedJoin:
    """A requested table pair with no join path."""

    from_table: str
    to_table: str
    reason: str


@dataclass(frozen=True)
class JoinResolution:
    """Join paths for a table set plus the pairs that could not be connected."""

    paths: tuple[JoinPath, ...] = ()
    unresolved: tuple[UnresolvedJoin, ...] = ()


@dataclass(frozen=True)
class RelatedTableInfo:
    """Table reached by breadth-first expansion from a starting table.

    ``join_column`` is the column on ``via_table`` and ``referenced_column`` the
    matching column on ``table``, whichever side holds the foreign key.
    """

    table: str
    distance: int
    relevance_score: float
    relationship_type: RelationshipType
    direction: JoinDirection
    via_table: str
    join_column: str
    referenced_column: str
    constraint_name: str


@dataclass(frozen=True)
class SelectedTable:
    """A selected table together with its selected columns."""

    table: ScoredElement
    columns: tuple[ScoredElement, ...] = ()


@dataclass(frozen=True)
class ContextualizedResult:
    """Token-budgeted schema context for a single query."""

    query: str
    analysis: QueryAnalysis
    tables: tuple[SelectedTable, ...]
    join_paths: tuple[JoinPath, ...]
    unresolved_joins: tuple[UnresolvedJoin, ...]
    glossary_terms: tuple[GlossaryTerm, ...]
    token_estimate: int
    token_budget: int
    confidence_score: float
    used_fallback: bool = False
    trimmed: int = 0
    snapshot_version: str = ""

    @property
    def table_keys(self) -> list[str]:
        return [t.table.key for t in self.tables]


@dataclass
class EngineConfig:
    """Configuration object for the schema context engine.

    Attributes:
        relevance_threshold: Minimum table score (exclusive) for selection
        column_threshold: Minimum column score (exclusive) for selection
        max_tables: Default table cap per request
        hard_max_tables: Ceiling that overrides larger requested caps
        max_columns_per_table: Default column cap per selected table
        narrow_intent_max_columns: Column cap for narrowly classified intents
        token_budget: Default token budget for assembled context
        similarity_timeout_sec: Timeout for each similarity collaborator call
        similarity_workers: Worker threads used to bound similarity calls
        discovery_timeout_sec: Timeout for catalog discovery during refresh
        snapshot_ttl_sec: Age after which a snapshot is refreshed on access
        related_max_depth: Default depth for related-table expansion
        prior_mapping_k: Number of prior mappings requested per query
        prior_mapping_threshold: Minimum similarity for a prior mapping to count
        model_name: Model2Vec model used when embeddings are enabled
        use_embeddings: Use embedding similarity instead of lexical similarity
    """

    relevance_threshold: float = Constants.DEFAULT_RELEVANCE_THRESHOLD
    column_threshold: float = Constants.DEFAULT_COLUMN_THRESHOLD
    max_tables: int = Constants.DEFAULT_MAX_TABLES
    hard_max_tables: int = Constants.HARD_MAX_TABLES
    max_columns_per_table: int = Constants.DEFAULT_MAX_COLUMNS_PER_TABLE
    narrow_intent_max_columns: int = Constants.NARROW_INTENT_MAX_COLUMNS
    token_budget: int = Constants.DEFAULT_TOKEN_BUDGET
    similarity_timeout_sec: float = Constants.DEFAULT_SIMILARITY_TIMEOUT_SEC
    similarity_workers: int = Constants.DEFAULT_SIMILARITY_WORKERS
    discovery_timeout_sec: float = Constants.DEFAULT_DISCOVERY_TIMEOUT_SEC
    snapshot_ttl_sec: float = Constants.DEFAULT_SNAPSHOT_TTL_SEC
    related_max_depth: int = Constants.DEFAULT_RELATED_MAX_DEPTH
    prior_mapping_k: int = Constants.DEFAULT_PRIOR_MAPPING_K
    prior_mapping_threshold: float = Constants.DEFAULT_PRIOR_MAPPING_THRESHOLD
    model_name: str = Constants.DEFAULT_EMBEDDING_MODEL
    use_embeddings: bool = False
