"""Schema context engine facade.

Ties the intent analyzer, relevance scorer, FK path resolver and context
assembler together over the currently published snapshot. A request reads
the snapshot reference once and works on that version to the end, so a
concurrent refresh never mixes two versions into one result.

Classes:
- SnapshotBundle: Snapshot published together with its FK graph and prior index
- SnapshotProvider: Protocol for anything that serves the current bundle
- StaticSnapshotProvider: Provider over a fixed bundle
- SchemaContextEngine: The exposed operations
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import threading
import time
from typing import TYPE_CHECKING, Protocol

from fastmcp.utilities.logging import get_logger

from .assembler import ContextAssembler
from .constants import Constants
from .embeddings import PriorMappingIndex
from .graph import ForeignKeyGraph
from .intent import QueryIntentAnalyzer
from .models import (
    ContextualizedResult,
    EngineConfig,
    ForeignKeyRelationship,
    JoinResolution,
    QueryAnalysis,
    RelatedTableInfo,
    ScoredElement,
)
from .policies import PolicyRegistry
from .scoring import RelevanceScorer
from .utils import clip_unit

if TYPE_CHECKING:
    from .embeddings import TextEncoder
    from .similarity import PriorMappingSearch, SimilarityService
    from .snapshot import MetadataSnapshot

# Logger
_logger = get_logger("context_engine.engine")


@dataclass(frozen=True)
class SnapshotBundle:
    """A metadata snapshot and the structures derived from it."""

    snapshot: MetadataSnapshot
    graph: ForeignKeyGraph
    prior_index: PriorMappingSearch | None = None

    @classmethod
    def build(
        cls, snapshot: MetadataSnapshot, encoder: TextEncoder | None = None
    ) -> SnapshotBundle:
        """Derive the FK graph and, with an encoder, the prior-mapping index."""
        prior_index = None
        if encoder is not None and snapshot.prior_mappings:
            prior_index = PriorMappingIndex.build(snapshot.prior_mappings, encoder)
        return cls(snapshot, ForeignKeyGraph.build(snapshot), prior_index)

    @property
    def version(self) -> str:
        return self.snapshot.version


class SnapshotProvider(Protocol):
    """Serves the currently published snapshot bundle."""

    def current(self) -> SnapshotBundle:  # pragma: no cover - protocol
        ...


class StaticSnapshotProvider:
    """Provider that always serves the same bundle."""

    def __init__(self, bundle: SnapshotBundle) -> None:
        self._bundle = bundle

    def current(self) -> SnapshotBundle:
        return self._bundle


class SchemaContextEngine:
    """Relevant-schema selection and join-path resolution for NL queries.

    Attributes:
        provider: Source of the current snapshot bundle
        config: Engine configuration
        analyzer: Query intent analyzer
        scorer: Relevance scorer
        assembler: Context assembler
    """

    def __init__(  # noqa: PLR0913
        self,
        provider: SnapshotProvider,
        similarity: SimilarityService | None = None,
        analyzer: QueryIntentAnalyzer | None = None,
        config: EngineConfig | None = None,
        policies: PolicyRegistry | None = None,
        assembler: ContextAssembler | None = None,
    ) -> None:
        self.provider = provider
        self.config = config or EngineConfig()
        self.analyzer = analyzer or QueryIntentAnalyzer()
        self.scorer = RelevanceScorer(similarity, policies, config=self.config)
        self.assembler = assembler or ContextAssembler()

    def analyze(self, query: str) -> QueryAnalysis:
        """Analyze a query against the current snapshot's glossary."""
        return self.analyzer.analyze(query, self.provider.current().snapshot.glossary)

    def get_relevant_schema(  # noqa: PLR0913
        self,
        query: str,
        relevance_threshold: float | None = None,
        max_tables: int | None = None,
        max_columns_per_table: int | None = None,
        *,
        token_budget: int | None = None,
        cancel: threading.Event | None = None,
        timeout_sec: float | None = None,
    ) -> ContextualizedResult:
        """Select the tables, columns, joins and glossary terms for a query.

        Args:
            query: Natural-language analytical question
            relevance_threshold: Exclusive minimum table score
            max_tables: Maximum tables, bounded by the hard ceiling
            max_columns_per_table: Maximum columns per table before intent tightening
            token_budget: Maximum estimated tokens for the assembled context
            cancel: Event that stops scoring early and returns partial rankings
            timeout_sec: Scoring deadline in seconds; partial rankings after it

        Returns:
            ContextualizedResult for the query

        Raises:
            ContextEngineError: If the provider has no snapshot to serve
        """
        started = time.perf_counter()
        bundle = self.provider.current()
        snapshot = bundle.snapshot
        deadline = time.monotonic() + timeout_sec if timeout_sec is not None else None
        threshold = (
            None if relevance_threshold is None else clip_unit(float(relevance_threshold))
        )

        analysis = self.analyzer.analyze(query, snapshot.glossary)
        tables = self.scorer.score_tables(
            analysis,
            snapshot,
            max_tables,
            threshold=threshold,
            prior_boosts=self._prior_boosts(bundle, analysis.original_query),
            cancel=cancel,
            deadline=deadline,
        )
        columns: dict[str, list[ScoredElement]] = {
            table.key: self.scorer.score_columns(
                table.key,
                analysis,
                snapshot,
                max_columns_per_table,
                cancel=cancel,
                deadline=deadline,
            )
            for table in tables
        }
        resolution = bundle.graph.paths_for_table_set(t.key for t in tables)
        result = self.assembler.assemble(
            analysis,
            tables,
            columns,
            resolution,
            snapshot.glossary,
            self.config.token_budget if token_budget is None else token_budget,
            snapshot.version,
        )
        _logger.info(
            "Relevant schema for query (%s/%s): %d tables, %d joins, confidence %.2f in %.0fms",
            analysis.category.value,
            analysis.intent.value,
            len(result.tables),
            len(result.join_paths),
            result.confidence_score,
            (time.perf_counter() - started) * 1000,
        )
        return result

    def get_join_paths(self, table_names: Iterable[str]) -> JoinResolution:
        """Resolve join paths between every pair of the given tables."""
        return self.provider.current().graph.paths_for_table_set(list(table_names))

    def get_related_tables(
        self, table_name: str, max_depth: int | None = None
    ) -> list[RelatedTableInfo]:
        """Tables reachable from ``table_name`` within ``max_depth`` FK hops."""
        depth = self.config.related_max_depth if max_depth is None else max_depth
        return self.provider.current().graph.related_tables(table_name, depth)

    def get_relationships(self, table_names: Iterable[str]) -> list[ForeignKeyRelationship]:
        """Foreign keys touching any of the given tables."""
        return self.provider.current().graph.relationships_for_tables(list(table_names))

    def _prior_boosts(self, bundle: SnapshotBundle, query: str) -> dict[str, float]:
        if bundle.prior_index is None or not query.strip():
            return {}
        hits = self.scorer.guard.run(
            "prior_mapping",
            bundle.prior_index.find_similar,
            query,
            self.config.prior_mapping_k,
            self.config.prior_mapping_threshold,
        )
        boosts: dict[str, float] = {}
        for mapping, _similarity in hits or []:
            boost = clip_unit(mapping.confidence) * Constants.PRIOR_MAPPING_BOOST_FACTOR
            for table in mapping.tables:
                key = bundle.snapshot.resolve_table(table)
                if key is not None:
                    boosts[key] = max(boosts.get(key, 0.0), boost)
        return boosts

    def close(self) -> None:
        """Release the scorer's collaborator worker pool."""
        self.scorer.guard.shutdown()
