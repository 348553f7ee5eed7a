"""Response builders for nl2sql-context.

This module contains builder classes that turn the engine's frozen dataclass
results into the pydantic models returned by the MCP tools.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, cast

from nl2sql_context.models import (
    ColumnContext,
    GlossaryTermModel,
    InitStatus,
    JoinPathModel,
    JoinPathsResult,
    JoinStep,
    QueryAnalysisModel,
    RefreshResult,
    RelatedTable,
    RelevantSchemaResult,
    TableContext,
    UnresolvedJoinModel,
)
from nl2sql_context.schema_tools.models import ColumnMetadata, TableMetadata

if TYPE_CHECKING:
    from nl2sql_context.schema_tools.models import (
        ContextualizedResult,
        GlossaryTerm,
        JoinPath,
        JoinResolution,
        QueryAnalysis,
        RelatedTableInfo,
        SelectedTable,
        UnresolvedJoin,
    )
    from nl2sql_context.services.state import EngineInitState, RefreshState

_UnresolvedReason = Literal["no_path", "unknown_table"]
_InitPhase = Literal["IDLE", "STARTING", "RUNNING", "READY", "FAILED", "STOPPED"]
_RefreshPhase = Literal["EMPTY", "REFRESHING", "CURRENT", "STALE"]


class RelevantSchemaResultBuilder:
    """Builder for RelevantSchemaResult objects."""

    @staticmethod
    def build(result: ContextualizedResult) -> RelevantSchemaResult:
        """Build the wire model for an assembled schema context.

        Args:
            result: Assembled context from the engine

        Returns:
            RelevantSchemaResult ready to return from an MCP tool
        """
        return RelevantSchemaResult(
            query=result.query,
            analysis=RelevantSchemaResultBuilder._build_analysis(result.analysis),
            tables=[RelevantSchemaResultBuilder._build_table(t) for t in result.tables],
            join_paths=[JoinPathsResultBuilder.build_path(p) for p in result.join_paths],
            unresolved_joins=[
                JoinPathsResultBuilder.build_unresolved(u) for u in result.unresolved_joins
            ],
            glossary_terms=[
                RelevantSchemaResultBuilder._build_glossary_term(g) for g in result.glossary_terms
            ],
            token_estimate=result.token_estimate,
            token_budget=result.token_budget,
            confidence_score=result.confidence_score,
            used_fallback=result.used_fallback,
            snapshot_version=result.snapshot_version,
        )

    @staticmethod
    def _build_analysis(analysis: QueryAnalysis) -> QueryAnalysisModel:
        return QueryAnalysisModel(
            business_terms=sorted(analysis.all_terms),
            category=analysis.category.value,
            intent=analysis.intent.value,
            complexity=analysis.complexity,
            entities=list(analysis.entities),
            degraded=analysis.degraded,
        )

    @staticmethod
    def _build_table(selected: SelectedTable) -> TableContext:
        table = selected.table
        meta = table.element if isinstance(table.element, TableMetadata) else None
        columns: list[ColumnContext] = []
        for column in selected.columns:
            col_meta = column.element if isinstance(column.element, ColumnMetadata) else None
            columns.append(
                ColumnContext(
                    name=column.name,
                    data_type=_sanitize_sql_type(col_meta.data_type) if col_meta else "",
                    business_meaning=col_meta.business_meaning if col_meta else "",
                    score=column.score,
                    reason_codes=list(column.reason_codes),
                    is_key=bool(col_meta and col_meta.is_key_column),
                )
            )
        return TableContext(
            table=table.key,
            business_purpose=meta.business_purpose if meta else "",
            domain=meta.domain_classification if meta else "",
            score=table.score,
            reason_codes=list(table.reason_codes),
            columns=columns,
        )

    @staticmethod
    def _build_glossary_term(term: GlossaryTerm) -> GlossaryTermModel:
        return GlossaryTermModel(
            term=term.term,
            definition=term.definition,
            synonyms=sorted(term.synonyms),
            mapped_tables=sorted(term.mapped_tables),
            confidence_score=min(1.0, max(0.0, term.confidence_score)),
        )


class JoinPathsResultBuilder:
    """Builder for JoinPathsResult objects."""

    @staticmethod
    def build(resolution: JoinResolution) -> JoinPathsResult:
        """Build the wire model for resolved and unresolved table pairs."""
        return JoinPathsResult(
            paths=[JoinPathsResultBuilder.build_path(p) for p in resolution.paths],
            unresolved=[JoinPathsResultBuilder.build_unresolved(u) for u in resolution.unresolved],
        )

    @staticmethod
    def build_path(path: JoinPath) -> JoinPathModel:
        steps = [
            JoinStep(
                left=f"{cond.left_table}.{cond.left_column}",
                right=f"{cond.right_table}.{cond.right_column}",
                constraint_name=name,
            )
            for cond, name in zip(path.conditions, path.constraint_names, strict=True)
        ]
        return JoinPathModel(
            from_table=path.from_table,
            to_table=path.to_table,
            tables=list(path.tables),
            steps=steps,
            path_length=path.path_length,
            performance_score=path.performance_score,
            is_optimal=path.is_optimal,
        )

    @staticmethod
    def build_unresolved(unresolved: UnresolvedJoin) -> UnresolvedJoinModel:
        return UnresolvedJoinModel(
            from_table=unresolved.from_table,
            to_table=unresolved.to_table,
            reason=cast(_UnresolvedReason, unresolved.reason),
        )


class RelatedTablesBuilder:
    """Builder for RelatedTable lists."""

    @staticmethod
    def build(related: list[RelatedTableInfo]) -> list[RelatedTable]:
        return [
            RelatedTable(
                table=info.table,
                distance=info.distance,
                relevance_score=info.relevance_score,
                relationship_type=info.relationship_type.value,
                direction=info.direction.value,
                via_table=info.via_table,
                join_column=info.join_column,
                referenced_column=info.referenced_column,
                constraint_name=info.constraint_name,
            )
            for info in related
        ]


class StatusBuilder:
    """Builder for lifecycle status models."""

    @staticmethod
    def build_init_status(
        state: EngineInitState, snapshot_state: RefreshState | None = None
    ) -> InitStatus:
        """Build a concise, LLM-friendly initialization status."""
        phase = state.phase.name
        if phase in {"IDLE", "STARTING"}:
            desc = "Starting: loading configuration and metadata sources."
        elif phase == "RUNNING":
            desc = "Initializing: loading business metadata and building the FK graph."
        elif phase == "READY":
            if snapshot_state is not None and snapshot_state.phase.name == "STALE":
                desc = "Ready; serving the previous snapshot after a failed refresh."
            else:
                desc = "Ready for queries."
        elif phase == "FAILED":
            desc = "Initialization failed; see error_message."
        else:
            desc = "Stopped."

        return InitStatus(
            phase=cast(_InitPhase, phase),
            attempts=state.attempts,
            started_at=state.started_at,
            completed_at=state.completed_at,
            error_message=state.error_message,
            snapshot_version=snapshot_state.version if snapshot_state else None,
            snapshot_phase=(
                cast(_RefreshPhase, snapshot_state.phase.name) if snapshot_state else None
            ),
            description=desc,
        )

    @staticmethod
    def build_refresh_result(state: RefreshState) -> RefreshResult:
        return RefreshResult(
            phase=cast(_RefreshPhase, state.phase.name),
            version=state.version,
            published_at=state.published_at,
            refresh_count=state.refresh_count,
            failure_count=state.failure_count,
            last_error=state.last_error,
        )


def _sanitize_sql_type(type_str: str) -> str:
    """Normalize SQL type strings for readability.

    Removes noisy collation clauses and quotes; uppercases type name while
    preserving precision/scale/length details.
    """
    s = type_str or ""
    # Strip collation clauses commonly seen on MSSQL
    upper = s.upper().split(" COLLATE ")[0].strip()
    upper = upper.replace('"', "")
    return " ".join(upper.split())
