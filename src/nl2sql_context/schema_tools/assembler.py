"""Token-budgeted context assembly.

Combines scored tables, their scored columns, join paths and glossary terms
into a single :class:`ContextualizedResult`. When the estimated token cost
exceeds the budget, whole entities are dropped lowest-score first: a column,
or the lowest table together with its columns when that table scores below
every remaining column. At least one table is always kept.

Classes:
- ContextAssembler: Builds and trims contextualized results
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from fastmcp.utilities.logging import get_logger

from .constants import Constants, ReasonCode
from .models import (
    ContextualizedResult,
    GlossaryTerm,
    JoinResolution,
    QueryAnalysis,
    ScoredElement,
    SelectedTable,
)

# Logger
_logger = get_logger("context_engine.assembler")


def estimate_tokens(tables: int, columns: int, glossary_terms: int, join_paths: int) -> int:
    """Estimate the token cost of a context with the given entity counts."""
    return (
        tables * Constants.TOKENS_PER_TABLE
        + columns * (Constants.TOKENS_PER_COLUMN + Constants.TOKENS_PER_COLUMN_METADATA)
        + glossary_terms * Constants.TOKENS_PER_GLOSSARY_TERM
        + join_paths * Constants.TOKENS_PER_JOIN_PATH
    )


def select_glossary_terms(
    glossary: Iterable[GlossaryTerm],
    table_keys: Iterable[str],
    column_keys: Iterable[str],
    business_terms: Iterable[str],
    limit: int = Constants.MAX_GLOSSARY_TERMS,
) -> list[GlossaryTerm]:
    """Pick glossary terms related to the selection or named by the query.

    Args:
        glossary: Candidate glossary terms
        table_keys: Selected table keys
        column_keys: Selected column keys
        business_terms: Business terms extracted from the query
        limit: Maximum number of terms

    Returns:
        Terms deduplicated by name, ordered by confidence desc then term
    """
    tables = set(table_keys)
    columns = {c.lower() for c in column_keys}
    terms = {t.lower() for t in business_terms}

    chosen: dict[str, GlossaryTerm] = {}
    for term in glossary:
        if not term.is_active:
            continue
        name = term.term.strip().lower()
        if (
            term.mapped_tables & tables
            or {c.lower() for c in term.mapped_columns} & columns
            or name in terms
        ):
            current = chosen.get(name)
            if current is None or term.confidence_score > current.confidence_score:
                chosen[name] = term
    ranked = sorted(chosen.values(), key=lambda t: (-t.confidence_score, t.term.lower()))
    return ranked[: max(0, limit)]


class ContextAssembler:
    """Assemble scored elements into a token-budgeted context."""

    def __init__(self, max_glossary_terms: int = Constants.MAX_GLOSSARY_TERMS) -> None:
        self.max_glossary_terms = max_glossary_terms

    def assemble(  # noqa: PLR0913
        self,
        analysis: QueryAnalysis,
        scored_tables: Sequence[ScoredElement],
        scored_columns: Mapping[str, Sequence[ScoredElement]],
        join_resolution: JoinResolution,
        glossary_terms: Iterable[GlossaryTerm],
        token_budget: int,
        snapshot_version: str = "",
    ) -> ContextualizedResult:
        """Build the context for one query, trimming to the token budget.

        Args:
            analysis: Query analysis
            scored_tables: Selected tables, any order
            scored_columns: Selected columns per table key
            join_resolution: Paths and unresolved pairs for the selected tables
            glossary_terms: Candidate glossary terms from the snapshot
            token_budget: Maximum estimated tokens
            snapshot_version: Version of the snapshot the context was built from

        Returns:
            ContextualizedResult ordered by table score
        """
        tables = sorted(scored_tables, key=lambda s: (-s.score, s.name.lower(), s.key))
        columns: dict[str, list[ScoredElement]] = {
            t.key: sorted(
                scored_columns.get(t.key, ()), key=lambda s: (-s.score, s.name.lower(), s.key)
            )
            for t in tables
        }
        candidates = list(glossary_terms)
        glossary_limit = self.max_glossary_terms
        trimmed = 0

        while True:
            keys = {t.key for t in tables}
            paths = [
                p for p in join_resolution.paths if p.from_table in keys and p.to_table in keys
            ]
            glossary = select_glossary_terms(
                candidates,
                keys,
                (c.key for cols in columns.values() for c in cols),
                analysis.business_terms,
                glossary_limit,
            )
            column_count = sum(len(cols) for cols in columns.values())
            estimate = estimate_tokens(len(tables), column_count, len(glossary), len(paths))
            if estimate <= token_budget:
                break
            if not self._drop_lowest(tables, columns):
                if not glossary:
                    break
                # Only one bare table left: shed glossary terms
                glossary_limit = len(glossary) - 1
            trimmed += 1

        if trimmed:
            _logger.info(
                "Trimmed %d entities to fit token budget %d (estimate now %d)",
                trimmed,
                token_budget,
                estimate,
            )
        if estimate > token_budget:
            _logger.warning(
                "Context estimate %d still exceeds budget %d at minimum size",
                estimate,
                token_budget,
            )

        unresolved = tuple(
            u for u in join_resolution.unresolved if u.from_table in keys and u.to_table in keys
        )
        selected = tuple(SelectedTable(t, tuple(columns[t.key])) for t in tables)
        return ContextualizedResult(
            query=analysis.original_query,
            analysis=analysis,
            tables=selected,
            join_paths=tuple(paths),
            unresolved_joins=unresolved,
            glossary_terms=tuple(glossary),
            token_estimate=estimate,
            token_budget=token_budget,
            confidence_score=self.confidence(tables, columns),
            used_fallback=any(ReasonCode.FALLBACK.value in t.reason_codes for t in tables),
            trimmed=trimmed,
            snapshot_version=snapshot_version,
        )

    @staticmethod
    def _drop_lowest(
        tables: list[ScoredElement], columns: dict[str, list[ScoredElement]]
    ) -> bool:
        """Drop the lowest-value table or column in place; False when none can go."""
        lowest_column: tuple[str, ScoredElement] | None = None
        for key, cols in columns.items():
            if cols and (lowest_column is None or cols[-1].score <= lowest_column[1].score):
                lowest_column = (key, cols[-1])

        lowest_table = tables[-1] if tables else None
        if (
            lowest_table is not None
            and len(tables) > 1
            and (lowest_column is None or lowest_table.score < lowest_column[1].score)
        ):
            tables.pop()
            columns.pop(lowest_table.key, None)
            _logger.debug("Trimmed table %s (score %.3f)", lowest_table.key, lowest_table.score)
            return True
        if lowest_column is not None:
            key, column = lowest_column
            columns[key].remove(column)
            _logger.debug("Trimmed column %s (score %.3f)", column.key, column.score)
            return True
        return False

    @staticmethod
    def confidence(
        tables: Sequence[ScoredElement], columns: Mapping[str, Sequence[ScoredElement]]
    ) -> float:
        """Overall confidence from average table and column scores."""
        if not tables:
            return Constants.EMPTY_CONFIDENCE
        table_avg = sum(t.score for t in tables) / len(tables)
        column_scores = [c.score for cols in columns.values() for c in cols]
        column_avg = (
            sum(column_scores) / len(column_scores)
            if column_scores
            else Constants.NEUTRAL_COLUMN_CONFIDENCE
        )
        return round(
            Constants.TABLE_CONFIDENCE_SHARE * table_avg
            + Constants.COLUMN_CONFIDENCE_SHARE * column_avg,
            6,
        )
