"""Weighted relevance scoring of tables and columns.

Every signal is optional: a signal whose input is absent, or whose
collaborator fails or times out, is skipped rather than counted as zero. The
base score is the weighted mean of the signals that fired, so tables with
sparse metadata are not punished for what they lack. Intent policy boosts,
the domain-match boost and prior-mapping boosts are added on top and the
result is clipped to [0, 1].

Classes:
- RelevanceScorer: Table and column scoring with threshold, cap and fallback
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import threading
import time
from typing import TYPE_CHECKING

from fastmcp.utilities.logging import get_logger

from .constants import (
    INTENT_METRIC_KEYWORDS,
    KEYWORD_FAMILIES,
    NARROW_INTENTS,
    Constants,
    KeywordFamily,
    QueryCategory,
    QueryIntent,
    ReasonCode,
)
from .models import ColumnMetadata, EngineConfig, QueryAnalysis, ScoredElement, TableMetadata
from .policies import PolicyRegistry
from .similarity import LexicalSimilarity, SignalGuard, SimilarityService
from .utils import clip_unit, is_date_type, looks_like_key, stem_token, tokens_from_text

if TYPE_CHECKING:
    from .snapshot import MetadataSnapshot

# Logger
_logger = get_logger("context_engine.scoring")

SCORE_PRECISION = 6


@dataclass
class _Signals:
    """Signals collected for one element: ``(weight, value, reason)`` triples."""

    values: list[tuple[float, float, ReasonCode]] = field(default_factory=list)

    def add(self, weight: float, value: float | None, reason: ReasonCode) -> None:
        if value is not None:
            self.values.append((weight, clip_unit(value), reason))

    def weighted_mean(self) -> float:
        total_weight = sum(w for w, _, _ in self.values)
        if total_weight <= 0.0:
            return 0.0
        return sum(w * v for w, v, _ in self.values) / total_weight

    def reasons(self) -> list[str]:
        return [reason.value for _, value, reason in self.values if value > 0.0]


class _RequestSimilarity:
    """Similarity calls for one request.

    A failed call omits only its own signal. After consecutive timeouts the
    collaborator is treated as unavailable for the rest of the request, so a
    hung service costs a bounded number of timeouts.
    """

    def __init__(self, service: SimilarityService, guard: SignalGuard, query: str) -> None:
        self._service = service
        self._guard = guard
        self._query = query
        self._timeouts = 0
        self.available = bool(query.strip())

    def score(self, text: str) -> float | None:
        if not self.available or not text.strip():
            return None
        before = self._timeouts
        value = self._guard.similarity(
            self._service, self._query, text, on_timeout=self._timed_out
        )
        if self._timeouts == before:
            self._timeouts = 0
        return value

    def _timed_out(self) -> None:
        self._timeouts += 1
        if self._timeouts >= Constants.SIMILARITY_TIMEOUT_TRIP:
            self.available = False
            _logger.warning(
                "Similarity collaborator timed out %d times in a row; skipping text signals",
                self._timeouts,
            )


def _sort_key(element: ScoredElement) -> tuple[float, str, str]:
    return (-element.score, element.name.lower(), element.key)


def _name_match(candidates: list[str], query_terms: frozenset[str]) -> float | None:
    """Best fraction of a candidate's tokens present in the query terms."""
    best = 0.0
    for candidate in candidates:
        tokens = set(tokens_from_text(candidate))
        if tokens:
            best = max(best, len(tokens & query_terms) / len(tokens))
    return best if best > 0.0 else None


class RelevanceScorer:
    """Score tables and columns against a query analysis.

    Scoring never raises to the caller: collaborator failures turn into
    missing signals and an empty selection turns into an importance-ranked
    fallback.
    """

    def __init__(
        self,
        similarity: SimilarityService | None = None,
        policies: PolicyRegistry | None = None,
        guard: SignalGuard | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        """Initialize the scorer.

        Args:
            similarity: Text similarity collaborator, lexical overlap by default
            policies: Intent scoring policies, defaults when omitted
            guard: Timeout guard for collaborator calls
            config: Engine configuration with thresholds and caps
        """
        self.config = config or EngineConfig()
        self.similarity = similarity or LexicalSimilarity()
        self.policies = policies or PolicyRegistry()
        self.guard = guard or SignalGuard(
            self.config.similarity_timeout_sec, self.config.similarity_workers
        )

    # ---- tables ------------------------------------------------------------
    def score_tables(  # noqa: PLR0913
        self,
        analysis: QueryAnalysis,
        snapshot: MetadataSnapshot,
        max_tables: int | None = None,
        *,
        threshold: float | None = None,
        prior_boosts: Mapping[str, float] | None = None,
        cancel: threading.Event | None = None,
        deadline: float | None = None,
    ) -> list[ScoredElement]:
        """Score, filter and rank the snapshot's tables.

        Args:
            analysis: Query analysis
            snapshot: Metadata snapshot to score
            max_tables: Requested cap, bounded by the hard ceiling
            threshold: Exclusive minimum score, config default when None
            prior_boosts: Additive boosts per table key from prior mappings
            cancel: Event that stops scoring and ranks the partial results
            deadline: ``time.monotonic()`` value after which scoring stops

        Returns:
            Selected tables ordered by score desc then name asc, or the
            importance-ranked fallback when nothing clears the threshold
        """
        cap = self._table_cap(max_tables)
        limit = self.config.relevance_threshold if threshold is None else threshold
        if cap == 0 or not snapshot.tables:
            return []

        request = _RequestSimilarity(self.similarity, self.guard, analysis.original_query)
        query_terms = self._query_terms(analysis)
        boosts = prior_boosts or {}

        scored: list[ScoredElement] = []
        for table in snapshot.tables.values():
            if _stopped(cancel, deadline):
                _logger.warning(
                    "Table scoring stopped early; ranking %d of %d tables",
                    len(scored),
                    len(snapshot.tables),
                )
                break
            scored.append(self._score_table(table, analysis, query_terms, request, boosts))

        selected = sorted((s for s in scored if s.score > limit), key=_sort_key)[:cap]
        if selected:
            _logger.debug(
                "Selected tables: %s", ", ".join(f"{s.key}={s.score:.3f}" for s in selected)
            )
            return selected
        return self.fallback_tables(snapshot, cap)

    def fallback_tables(self, snapshot: MetadataSnapshot, max_tables: int) -> list[ScoredElement]:
        """Rank tables by curated importance when nothing clears the threshold."""
        ranked = sorted(
            snapshot.tables.values(),
            key=lambda t: (-(t.importance_score or 0.0), t.name.lower(), t.key),
        )[: max(0, max_tables)]
        _logger.warning(
            "No table cleared the relevance threshold; falling back to %d tables by importance",
            len(ranked),
        )
        return [
            ScoredElement(
                key=t.key,
                name=t.name,
                score=round(t.importance_score or 0.0, SCORE_PRECISION),
                reason_codes=(ReasonCode.FALLBACK.value,),
                element=t,
            )
            for t in ranked
        ]

    def _score_table(
        self,
        table: TableMetadata,
        analysis: QueryAnalysis,
        query_terms: frozenset[str],
        request: _RequestSimilarity,
        prior_boosts: Mapping[str, float],
    ) -> ScoredElement:
        signals = _Signals()
        signals.add(
            Constants.TABLE_PURPOSE_WEIGHT,
            request.score(table.business_purpose),
            ReasonCode.PURPOSE_SIMILARITY,
        )
        signals.add(
            Constants.TABLE_DESCRIPTION_WEIGHT,
            request.score(table.semantic_description or table.business_context),
            ReasonCode.DESCRIPTION_SIMILARITY,
        )
        if analysis.business_terms and table.glossary_terms:
            overlap = len(analysis.business_terms & table.glossary_terms)
            signals.add(
                Constants.TABLE_GLOSSARY_WEIGHT,
                overlap / max(len(analysis.business_terms), len(table.glossary_terms)),
                ReasonCode.GLOSSARY_OVERLAP,
            )
        signals.add(
            Constants.TABLE_NAME_WEIGHT,
            _name_match([table.name, *table.natural_language_aliases], query_terms),
            ReasonCode.NAME_MATCH,
        )
        signals.add(
            Constants.TABLE_KEYWORD_WEIGHT,
            request.score(" ".join(table.search_keywords)),
            ReasonCode.KEYWORD_SIMILARITY,
        )
        if table.importance_score is not None and table.usage_frequency is not None:
            signals.add(
                Constants.TABLE_IMPORTANCE_WEIGHT,
                table.importance_score * table.usage_frequency,
                ReasonCode.IMPORTANCE_USAGE,
            )

        score = signals.weighted_mean()
        reasons = signals.reasons()

        policy = self.policies.for_category(analysis.category)
        for boost, reason in policy.adjustments(_table_tokens(table)):
            score += boost
            reasons.append(reason)

        if (
            analysis.category is not QueryCategory.GENERAL
            and table.domain_classification.strip().lower() == analysis.category.value.lower()
        ):
            score += Constants.DOMAIN_MATCH_BOOST
            reasons.append(ReasonCode.DOMAIN_MATCH.value)

        prior = prior_boosts.get(table.key, 0.0)
        if prior > 0.0:
            score += prior
            reasons.append(ReasonCode.PRIOR_MAPPING.value)

        final = round(clip_unit(score), SCORE_PRECISION)
        _logger.debug("Table %s scored %.3f (%s)", table.key, final, ",".join(reasons))
        return ScoredElement(table.key, table.name, final, tuple(reasons), table)

    def _table_cap(self, max_tables: int | None) -> int:
        requested = self.config.max_tables if max_tables is None else max_tables
        return max(0, min(requested, self.config.hard_max_tables))

    # ---- columns -----------------------------------------------------------
    def score_columns(  # noqa: PLR0913
        self,
        table_key: str,
        analysis: QueryAnalysis,
        snapshot: MetadataSnapshot,
        max_columns_per_table: int | None = None,
        *,
        threshold: float | None = None,
        cancel: threading.Event | None = None,
        deadline: float | None = None,
    ) -> list[ScoredElement]:
        """Score, filter and rank the columns of one selected table.

        Args:
            table_key: Table whose columns are scored
            analysis: Query analysis
            snapshot: Metadata snapshot holding the columns
            max_columns_per_table: Requested cap, tightened for narrow intents
            threshold: Exclusive minimum score, config default when None
            cancel: Event that stops scoring and ranks the partial results
            deadline: ``time.monotonic()`` value after which scoring stops

        Returns:
            Selected columns ordered by score desc then name asc
        """
        columns = snapshot.columns_for(table_key)
        if not columns:
            return []
        cap = self.column_cap(analysis.intent, max_columns_per_table)
        limit = self.config.column_threshold if threshold is None else threshold

        request = _RequestSimilarity(self.similarity, self.guard, analysis.original_query)
        query_terms = self._query_terms(analysis)
        temporal = analysis.intent is QueryIntent.TIME_FILTERED or bool(
            analysis.business_terms & KEYWORD_FAMILIES[KeywordFamily.TEMPORAL]
        )

        scored: list[ScoredElement] = []
        for column in columns:
            if _stopped(cancel, deadline):
                _logger.warning("Column scoring for %s stopped early", table_key)
                break
            scored.append(self._score_column(column, analysis, query_terms, request, temporal))

        return sorted((s for s in scored if s.score > limit), key=_sort_key)[:cap]

    def column_cap(self, intent: QueryIntent, max_columns_per_table: int | None = None) -> int:
        """Return the per-table column cap for an intent."""
        requested = (
            self.config.max_columns_per_table
            if max_columns_per_table is None
            else max_columns_per_table
        )
        if intent in NARROW_INTENTS:
            requested = min(requested, self.config.narrow_intent_max_columns)
        return max(0, requested)

    def _score_column(
        self,
        column: ColumnMetadata,
        analysis: QueryAnalysis,
        query_terms: frozenset[str],
        request: _RequestSimilarity,
        temporal: bool,  # noqa: FBT001
    ) -> ScoredElement:
        signals = _Signals()
        signals.add(
            Constants.COLUMN_MEANING_WEIGHT,
            request.score(column.business_meaning),
            ReasonCode.MEANING_SIMILARITY,
        )
        context = " ".join(t for t in (column.business_context, column.semantic_context) if t)
        signals.add(
            Constants.COLUMN_CONTEXT_WEIGHT, request.score(context), ReasonCode.CONTEXT_SIMILARITY
        )
        signals.add(
            Constants.COLUMN_ALIAS_WEIGHT,
            _name_match([column.name, *column.natural_language_aliases], query_terms),
            ReasonCode.ALIAS_MATCH,
        )
        if column.business_metrics:
            signals.add(
                Constants.COLUMN_METRIC_WEIGHT,
                _metric_relevance(column.business_metrics, analysis.intent, query_terms),
                ReasonCode.METRIC_RELEVANCE,
            )
        if column.usage_frequency is not None and column.semantic_relevance_score is not None:
            signals.add(
                Constants.COLUMN_USAGE_WEIGHT,
                column.usage_frequency * column.semantic_relevance_score,
                ReasonCode.USAGE_RELEVANCE,
            )

        score = signals.weighted_mean()
        reasons = signals.reasons()
        if column.is_key_column or looks_like_key(column.name):
            score += Constants.KEY_COLUMN_BOOST
            reasons.append(ReasonCode.KEY_COLUMN.value)
        if (column.usage_frequency or 0.0) > Constants.HIGH_USAGE_THRESHOLD:
            score += Constants.HIGH_USAGE_COLUMN_BOOST
            reasons.append(ReasonCode.HIGH_USAGE.value)
        if temporal and is_date_type(column.data_type):
            score += Constants.TEMPORAL_COLUMN_BOOST
            reasons.append(ReasonCode.TEMPORAL_COLUMN.value)

        final = round(clip_unit(score), SCORE_PRECISION)
        return ScoredElement(column.key, column.name, final, tuple(reasons), column)

    # ---- helpers -----------------------------------------------------------
    @staticmethod
    def _query_terms(analysis: QueryAnalysis) -> frozenset[str]:
        stems = {stem_token(tok) for term in analysis.business_terms for tok in term.split()}
        return analysis.query_tokens | frozenset(stems)


def _table_tokens(table: TableMetadata) -> frozenset[str]:
    parts = [
        table.name,
        table.business_purpose,
        table.domain_classification,
        *table.natural_language_aliases,
    ]
    return frozenset(tok for part in parts for tok in tokens_from_text(part))


def _metric_relevance(
    metrics: tuple[str, ...], intent: QueryIntent, query_terms: frozenset[str]
) -> float:
    metric_tokens = {tok for metric in metrics for tok in tokens_from_text(metric)}
    if metric_tokens & INTENT_METRIC_KEYWORDS.get(intent, frozenset()):
        return 1.0
    if metric_tokens & query_terms:
        return 0.5
    return 0.0


def _stopped(cancel: threading.Event | None, deadline: float | None) -> bool:
    if cancel is not None and cancel.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline
