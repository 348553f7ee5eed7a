"""Constants and enums for the schema context engine.

This module contains the scoring weights, selection defaults, token cost
factors, keyword families and enumeration definitions used throughout the
relevance and join-path resolution system.
"""

from __future__ import annotations

from enum import Enum
import re
from typing import Final


class Constants:
    """Configuration constants for the schema context engine."""

    # Selection defaults
    DEFAULT_RELEVANCE_THRESHOLD: Final[float] = 0.5
    DEFAULT_COLUMN_THRESHOLD: Final[float] = 0.3
    DEFAULT_MAX_TABLES: Final[int] = 5
    HARD_MAX_TABLES: Final[int] = 5
    DEFAULT_MAX_COLUMNS_PER_TABLE: Final[int] = 15
    NARROW_INTENT_MAX_COLUMNS: Final[int] = 8
    DEFAULT_TOKEN_BUDGET: Final[int] = 4000
    MAX_GLOSSARY_TERMS: Final[int] = 15

    # Collaborators
    DEFAULT_EMBEDDING_MODEL: Final[str] = "minishlab/potion-retrieval-8M"
    DEFAULT_SIMILARITY_TIMEOUT_SEC: Final[float] = 2.0
    DEFAULT_DISCOVERY_TIMEOUT_SEC: Final[float] = 120.0
    DEFAULT_SNAPSHOT_TTL_SEC: Final[float] = 3600.0
    DEFAULT_SIMILARITY_WORKERS: Final[int] = 4
    SIMILARITY_TIMEOUT_TRIP: Final[int] = 2
    DEFAULT_PRIOR_MAPPING_K: Final[int] = 5
    DEFAULT_PRIOR_MAPPING_THRESHOLD: Final[float] = 0.7

    # Table signal weights
    TABLE_PURPOSE_WEIGHT: Final[float] = 0.30
    TABLE_DESCRIPTION_WEIGHT: Final[float] = 0.25
    TABLE_GLOSSARY_WEIGHT: Final[float] = 0.20
    TABLE_NAME_WEIGHT: Final[float] = 0.20
    TABLE_KEYWORD_WEIGHT: Final[float] = 0.15
    TABLE_IMPORTANCE_WEIGHT: Final[float] = 0.10

    # Column signal weights
    COLUMN_MEANING_WEIGHT: Final[float] = 0.30
    COLUMN_CONTEXT_WEIGHT: Final[float] = 0.25
    COLUMN_ALIAS_WEIGHT: Final[float] = 0.20
    COLUMN_METRIC_WEIGHT: Final[float] = 0.15
    COLUMN_USAGE_WEIGHT: Final[float] = 0.10

    # Additive adjustments
    DOMAIN_MATCH_BOOST: Final[float] = 0.15
    PRIOR_MAPPING_BOOST_FACTOR: Final[float] = 0.2
    KEY_COLUMN_BOOST: Final[float] = 0.35
    HIGH_USAGE_COLUMN_BOOST: Final[float] = 0.10
    TEMPORAL_COLUMN_BOOST: Final[float] = 0.35
    HIGH_USAGE_THRESHOLD: Final[float] = 0.7

    # Query complexity
    COMPLEXITY_BASE: Final[float] = 0.3
    COMPLEXITY_AGGREGATION_STEP: Final[float] = 0.2
    COMPLEXITY_TEMPORAL_STEP: Final[float] = 0.2
    COMPLEXITY_GEOGRAPHIC_STEP: Final[float] = 0.2
    COMPLEXITY_TERM_COUNT_STEP: Final[float] = 0.1
    COMPLEXITY_TERM_COUNT_THRESHOLD: Final[int] = 5
    DEGRADED_COMPLEXITY: Final[float] = 0.5

    # Join paths
    OPTIMAL_PATH_MAX_HOPS: Final[int] = 2
    PATH_HOP_PENALTY: Final[float] = 0.2
    PATH_ENABLED_BONUS: Final[float] = 0.2
    MIN_PATH_SCORE: Final[float] = 0.1

    # Related tables
    DEFAULT_RELATED_MAX_DEPTH: Final[int] = 2
    MAX_RELATED_DEPTH: Final[int] = 5
    RELATED_DEPTH_DECAY: Final[float] = 0.2
    RELATED_ENABLED_BONUS: Final[float] = 0.1
    RELATED_KEY_COLUMN_BONUS: Final[float] = 0.1
    MIN_RELATED_SCORE: Final[float] = 0.1

    # Token estimate cost factors
    TOKENS_PER_TABLE: Final[int] = 30
    TOKENS_PER_COLUMN: Final[int] = 15
    TOKENS_PER_COLUMN_METADATA: Final[int] = 10
    TOKENS_PER_GLOSSARY_TERM: Final[int] = 20
    TOKENS_PER_JOIN_PATH: Final[int] = 10

    # Overall confidence
    TABLE_CONFIDENCE_SHARE: Final[float] = 0.6
    COLUMN_CONFIDENCE_SHARE: Final[float] = 0.4
    EMPTY_CONFIDENCE: Final[float] = 0.1
    NEUTRAL_COLUMN_CONFIDENCE: Final[float] = 0.5

    # Regex patterns
    WORD_PATTERN: Final[re.Pattern[str]] = re.compile(r"[a-z0-9]+")
    NUMBER_PATTERN: Final[re.Pattern[str]] = re.compile(r"\b\d+(?:\.\d+)?\b")

    DATE_TYPE_HINTS: Final[frozenset[str]] = frozenset({"date", "datetime", "time", "timestamp"})

    STOPWORDS: Final[frozenset[str]] = frozenset(
        {
            "a",
            "an",
            "and",
            "are",
            "as",
            "at",
            "be",
            "by",
            "for",
            "from",
            "in",
            "is",
            "it",
            "me",
            "of",
            "on",
            "or",
            "per",
            "show",
            "the",
            "their",
            "this",
            "to",
            "was",
            "were",
            "what",
            "which",
            "who",
            "with",
        }
    )


class KeywordFamily(Enum):
    """Domain keyword families recognized in free-text queries."""

    FINANCIAL = "financial"
    GAMING = "gaming"
    GEOGRAPHIC = "geographic"
    TEMPORAL = "temporal"
    AGGREGATION = "aggregation"
    IDENTITY = "identity"


KEYWORD_FAMILIES: Final[dict[KeywordFamily, frozenset[str]]] = {
    KeywordFamily.FINANCIAL: frozenset(
        {
            "amount",
            "balance",
            "bet",
            "bonus",
            "deposit",
            "financial",
            "ggr",
            "money",
            "ngr",
            "payment",
            "profit",
            "revenue",
            "transaction",
            "turnover",
            "wager",
            "withdrawal",
        }
    ),
    KeywordFamily.GAMING: frozenset(
        {"activity", "casino", "game", "gaming", "round", "session", "slot", "spin"}
    ),
    KeywordFamily.GEOGRAPHIC: frozenset(
        {
            "city",
            "country",
            "geographic",
            "geography",
            "location",
            "market",
            "region",
            "territory",
            "uk",
            "usa",
        }
    ),
    KeywordFamily.TEMPORAL: frozenset(
        {
            "daily",
            "date",
            "day",
            "hourly",
            "last",
            "month",
            "monthly",
            "quarter",
            "recent",
            "since",
            "today",
            "week",
            "weekly",
            "year",
            "yearly",
            "yesterday",
        }
    ),
    KeywordFamily.AGGREGATION: frozenset(
        {
            "average",
            "avg",
            "count",
            "highest",
            "lowest",
            "max",
            "min",
            "most",
            "number",
            "sum",
            "top",
            "total",
        }
    ),
    KeywordFamily.IDENTITY: frozenset(
        {"account", "customer", "id", "identifier", "member", "player", "user"}
    ),
}

RANKING_KEYWORDS: Final[frozenset[str]] = frozenset({"top", "highest", "most", "best", "largest"})
COUNTING_KEYWORDS: Final[frozenset[str]] = frozenset({"count", "number", "many"})
SUMMARY_KEYWORDS: Final[frozenset[str]] = frozenset(
    {"total", "sum", "average", "avg", "max", "min", "lowest"}
)


class QueryCategory(Enum):
    """Coarse business category of a natural-language query."""

    FINANCIAL = "Financial"
    GAMING = "Gaming"
    GEOGRAPHIC = "Geographic"
    ANALYTICAL = "Analytical"
    GENERAL = "General"


class QueryIntent(Enum):
    """Analytical intent label derived from a query."""

    TOP_RANKING = "TopRanking"
    AGGREGATION = "Aggregation"
    COUNTING = "Counting"
    TIME_FILTERED = "TimeFiltered"
    GEOGRAPHIC_FILTERED = "GeographicFiltered"
    GENERAL = "General"
    UNKNOWN = "Unknown"


# Intents that tighten the per-table column cap
NARROW_INTENTS: Final[frozenset[QueryIntent]] = frozenset(
    {QueryIntent.COUNTING, QueryIntent.GEOGRAPHIC_FILTERED, QueryIntent.TIME_FILTERED}
)

# Business-metric vocabulary that answers each intent
INTENT_METRIC_KEYWORDS: Final[dict[QueryIntent, frozenset[str]]] = {
    QueryIntent.TOP_RANKING: frozenset({"amount", "rank", "sum", "total", "value"}),
    QueryIntent.AGGREGATION: frozenset({"amount", "average", "revenue", "sum", "total", "value"}),
    QueryIntent.COUNTING: frozenset({"count", "distinct", "number"}),
    QueryIntent.TIME_FILTERED: frozenset({"date", "daily", "period", "time", "trend"}),
    QueryIntent.GEOGRAPHIC_FILTERED: frozenset({"country", "location", "region"}),
}


class RelationshipType(Enum):
    """Cardinality inferred for a foreign-key relationship."""

    MANY_TO_ONE = "many_to_one"
    ONE_TO_MANY = "one_to_many"


class JoinDirection(Enum):
    """Traversal direction of a relationship relative to the starting table."""

    OUTGOING = "outgoing"  # starting side holds the foreign key
    INCOMING = "incoming"  # other side references the starting table


class ReasonCode(str, Enum):
    """Explainability codes attached to scored elements."""

    PURPOSE_SIMILARITY = "purpose_similarity"
    DESCRIPTION_SIMILARITY = "description_similarity"
    GLOSSARY_OVERLAP = "glossary_overlap"
    NAME_MATCH = "name_match"
    KEYWORD_SIMILARITY = "keyword_similarity"
    IMPORTANCE_USAGE = "importance_usage"
    DOMAIN_MATCH = "domain_match"
    PRIOR_MAPPING = "prior_mapping"
    FALLBACK = "fallback"
    MEANING_SIMILARITY = "meaning_similarity"
    CONTEXT_SIMILARITY = "context_similarity"
    ALIAS_MATCH = "alias_match"
    METRIC_RELEVANCE = "metric_relevance"
    USAGE_RELEVANCE = "usage_relevance"
    KEY_COLUMN = "key_column"
    HIGH_USAGE = "high_usage"
    TEMPORAL_COLUMN = "temporal_column"


__all__ = [
    "COUNTING_KEYWORDS",
    "INTENT_METRIC_KEYWORDS",
    "KEYWORD_FAMILIES",
    "NARROW_INTENTS",
    "RANKING_KEYWORDS",
    "SUMMARY_KEYWORDS",
    "Constants",
    "JoinDirection",
    "KeywordFamily",
    "QueryCategory",
    "QueryIntent",
    "ReasonCode",
    "RelationshipType",
]
