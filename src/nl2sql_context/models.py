"""Pydantic models for MCP tool I/O.

Minimal, task-focused models used by the MCP server tools and builders.
The engine itself works on frozen dataclasses; these models are the wire
shape returned to MCP clients.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

# -----------------------
# Schema context models
# -----------------------


class ColumnContext(BaseModel):
    """A selected column with its relevance score."""

    name: str = Field(description="Column name")
    data_type: str = Field(default="", description="Database data type")
    business_meaning: str = Field(default="", description="Business meaning of the column")
    score: float = Field(ge=0.0, le=1.0, description="Relevance score in [0, 1]")
    reason_codes: list[str] = Field(default_factory=list, description="Why the column scored")
    is_key: bool = Field(default=False, description="Primary or foreign key column")


class TableContext(BaseModel):
    """A selected table, its relevance score and its selected columns."""

    table: str = Field(description="Table identifier in 'schema.table' format")
    business_purpose: str = Field(default="", description="Short business purpose")
    domain: str = Field(default="", description="Business domain classification")
    score: float = Field(ge=0.0, le=1.0, description="Relevance score in [0, 1]")
    reason_codes: list[str] = Field(default_factory=list, description="Why the table scored")
    columns: list[ColumnContext] = Field(default_factory=list)


class JoinStep(BaseModel):
    """One equality condition of a join path."""

    left: str = Field(description="Foreign-key side as 'schema.table.column'")
    right: str = Field(description="Referenced side as 'schema.table.column'")
    constraint_name: str = Field(description="Foreign-key constraint used for this hop")


class JoinPathModel(BaseModel):
    """Shortest join path between two tables."""

    from_table: str
    to_table: str
    tables: list[str] = Field(description="Tables visited, endpoints included")
    steps: list[JoinStep]
    path_length: int = Field(ge=1, description="Number of join hops")
    performance_score: float = Field(ge=0.0, le=1.0)
    is_optimal: bool = Field(description="True for paths of at most two hops")


class UnresolvedJoinModel(BaseModel):
    """Requested table pair with no join path."""

    from_table: str
    to_table: str
    reason: Literal["no_path", "unknown_table"]


class JoinPathsResult(BaseModel):
    """Join paths for a set of tables."""

    paths: list[JoinPathModel] = Field(default_factory=list)
    unresolved: list[UnresolvedJoinModel] = Field(default_factory=list)


class GlossaryTermModel(BaseModel):
    """Business glossary term relevant to the selection."""

    term: str
    definition: str = ""
    synonyms: list[str] = Field(default_factory=list)
    mapped_tables: list[str] = Field(default_factory=list)
    confidence_score: float = Field(ge=0.0, le=1.0)


class QueryAnalysisModel(BaseModel):
    """Query intent analysis summary."""

    business_terms: list[str] = Field(default_factory=list)
    category: str
    intent: str
    complexity: float = Field(ge=0.0, le=1.0)
    entities: list[str] = Field(default_factory=list)
    degraded: bool = False


class RelevantSchemaResult(BaseModel):
    """Token-budgeted schema context for a natural-language question."""

    query: str
    analysis: QueryAnalysisModel
    tables: list[TableContext] = Field(default_factory=list)
    join_paths: list[JoinPathModel] = Field(default_factory=list)
    unresolved_joins: list[UnresolvedJoinModel] = Field(default_factory=list)
    glossary_terms: list[GlossaryTermModel] = Field(default_factory=list)
    token_estimate: int = Field(ge=0)
    token_budget: int = Field(ge=0)
    confidence_score: float = Field(ge=0.0, le=1.0)
    used_fallback: bool = Field(
        default=False, description="True when no table cleared the threshold"
    )
    snapshot_version: str = ""


class RelatedTable(BaseModel):
    """Table reachable from a starting table through foreign keys."""

    table: str
    distance: int = Field(ge=1)
    relevance_score: float = Field(ge=0.0, le=1.0)
    relationship_type: str
    direction: str
    via_table: str
    join_column: str = Field(description="Column on via_table")
    referenced_column: str = Field(description="Matching column on table")
    constraint_name: str


# -----------------------
# Lifecycle models
# -----------------------


class InitStatus(BaseModel):
    """Initialization status for context engine readiness."""

    phase: Literal["IDLE", "STARTING", "RUNNING", "READY", "FAILED", "STOPPED"]
    attempts: int = 0
    started_at: float | None = None
    completed_at: float | None = None
    error_message: str | None = None
    snapshot_version: str | None = None
    snapshot_phase: Literal["EMPTY", "REFRESHING", "CURRENT", "STALE"] | None = None
    # Minimal descriptive text to help LLMs reason about progression
    description: str | None = Field(default=None, description="Short status description")


class RefreshResult(BaseModel):
    """Outcome of a metadata snapshot refresh."""

    phase: Literal["EMPTY", "REFRESHING", "CURRENT", "STALE"]
    version: str | None = None
    published_at: float | None = None
    refresh_count: int = 0
    failure_count: int = 0
    last_error: str | None = None
