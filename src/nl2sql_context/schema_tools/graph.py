"""Foreign-key graph construction and join-path resolution.

The graph is an undirected ``networkx.MultiGraph`` whose nodes are canonical
table keys and whose edges are foreign-key relationships keyed by constraint
name. Paths are found by breadth-first search with neighbours visited in
sorted order, so the same snapshot always yields the same path.

Classes:
- ForeignKeyGraph: FK graph with shortest-path and related-table expansion
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import replace
from itertools import combinations
from typing import TYPE_CHECKING

from fastmcp.utilities.logging import get_logger
import networkx as nx

from .constants import Constants, JoinDirection
from .models import (
    ForeignKeyRelationship,
    JoinCondition,
    JoinPath,
    JoinResolution,
    RelatedTableInfo,
    UnresolvedJoin,
)
from .utils import build_table_index, clip_unit, resolve_table

if TYPE_CHECKING:
    from .snapshot import MetadataSnapshot

# Logger
_logger = get_logger("context_engine.graph")

UNKNOWN_TABLE = "unknown_table"
NO_PATH = "no_path"


class ForeignKeyGraph:
    """Undirected multigraph of foreign-key relationships.

    Attributes:
        graph: Underlying NetworkX multigraph; edge keys are constraint names
    """

    def __init__(self, tables: Iterable[str] = ()) -> None:
        self.graph: nx.MultiGraph[str] = nx.MultiGraph()
        self.graph.add_nodes_from(tables)
        self._index = build_table_index(self.graph.nodes)

    @classmethod
    def build(cls, snapshot: MetadataSnapshot) -> ForeignKeyGraph:
        """Build the graph from a snapshot's tables and relationships."""
        fk_graph = cls(snapshot.tables)
        for rel in snapshot.relationships:
            fk_graph.add_relationship(rel)
        _logger.info(
            "Built FK graph: %d tables, %d relationships",
            fk_graph.graph.number_of_nodes(),
            fk_graph.graph.number_of_edges(),
        )
        return fk_graph

    def add_relationship(self, rel: ForeignKeyRelationship) -> bool:
        """Add one relationship edge.

        Returns:
            False when the same constraint already joins this table pair or an
            endpoint is not a node of the graph
        """
        parent = self.resolve(rel.parent_table)
        referenced = self.resolve(rel.referenced_table)
        if parent is None or referenced is None:
            _logger.debug("Relationship %s skipped: unknown endpoint", rel.constraint_name)
            return False
        if self.graph.has_edge(parent, referenced, key=rel.constraint_name):
            _logger.debug("Duplicate constraint %s ignored", rel.constraint_name)
            return False
        canonical = replace(rel, parent_table=parent, referenced_table=referenced)
        self.graph.add_edge(parent, referenced, key=rel.constraint_name, rel=canonical)
        return True

    def resolve(self, table_name: str) -> str | None:
        """Resolve any table reference to a node key."""
        return resolve_table(table_name, self._index)

    def relationships_between(self, a: str, b: str) -> list[ForeignKeyRelationship]:
        """Relationships joining two nodes, ordered by constraint name."""
        if not self.graph.has_edge(a, b):
            return []
        edges = self.graph.get_edge_data(a, b) or {}
        return [edges[key]["rel"] for key in sorted(edges)]

    def _neighbours(self, node: str) -> list[str]:
        return sorted(n for n in self.graph.neighbors(node) if n != node)

    # ---- shortest paths ----------------------------------------------------
    def shortest_path(self, from_table: str, to_table: str) -> JoinPath | None:
        """Find the shortest join path between two tables.

        Args:
            from_table: Starting table reference
            to_table: Target table reference

        Returns:
            JoinPath with at least one condition, or None when either table
            is unknown, both resolve to the same table, or no path exists
        """
        source = self.resolve(from_table)
        target = self.resolve(to_table)
        if source is None or target is None or source == target:
            return None
        route = self._bfs(source, target)
        if route is None:
            return None
        return self._to_join_path(route)

    def _bfs(self, source: str, target: str) -> list[str] | None:
        parents: dict[str, str | None] = {source: None}
        queue: deque[str] = deque([source])
        while queue:
            current = queue.popleft()
            for neighbour in self._neighbours(current):
                if neighbour in parents:
                    continue
                parents[neighbour] = current
                if neighbour == target:
                    route = [target]
                    while (step := parents[route[-1]]) is not None:
                        route.append(step)
                    return route[::-1]
                queue.append(neighbour)
        return None

    def _to_join_path(self, route: list[str]) -> JoinPath:
        conditions: list[JoinCondition] = []
        constraints: list[str] = []
        enabled = 0
        for left, right in zip(route, route[1:], strict=False):
            rels = self.relationships_between(left, right)
            rel = next((r for r in rels if r.is_enabled), rels[0])
            enabled += int(rel.is_enabled)
            constraints.append(rel.constraint_name)
            conditions.append(
                JoinCondition(
                    left_table=rel.parent_table,
                    left_column=rel.parent_column,
                    right_table=rel.referenced_table,
                    right_column=rel.referenced_column,
                )
            )
        hops = len(conditions)
        # Normalized so only a 1-hop path over an enabled constraint scores 1.0
        raw = (
            1.0
            - Constants.PATH_HOP_PENALTY * (hops - 1)
            + Constants.PATH_ENABLED_BONUS * (enabled / hops)
        )
        score = max(Constants.MIN_PATH_SCORE, raw / (1.0 + Constants.PATH_ENABLED_BONUS))
        return JoinPath(
            from_table=route[0],
            to_table=route[-1],
            tables=tuple(route),
            conditions=tuple(conditions),
            constraint_names=tuple(constraints),
            performance_score=round(clip_unit(score), 6),
        )

    def paths_for_table_set(self, table_names: Iterable[str]) -> JoinResolution:
        """Resolve join paths for every unordered pair of tables in a set.

        Args:
            table_names: Table references, duplicates allowed

        Returns:
            Paths sorted by length then table names, plus unresolved pairs
        """
        resolved: list[str] = []
        unresolved: list[UnresolvedJoin] = []
        unknown: list[str] = []
        for name in table_names:
            key = self.resolve(name)
            if key is None:
                if name not in unknown:
                    unknown.append(name)
            elif key not in resolved:
                resolved.append(key)

        for name in unknown:
            unresolved.extend(UnresolvedJoin(name, key, UNKNOWN_TABLE) for key in resolved)
        if len(unknown) > 1:
            unresolved.extend(
                UnresolvedJoin(a, b, UNKNOWN_TABLE) for a, b in combinations(unknown, 2)
            )

        paths: list[JoinPath] = []
        for a, b in combinations(sorted(resolved), 2):
            path = self.shortest_path(a, b)
            if path is None:
                unresolved.append(UnresolvedJoin(a, b, NO_PATH))
            else:
                paths.append(path)

        paths.sort(key=lambda p: (p.path_length, p.from_table, p.to_table))
        if unresolved:
            _logger.debug("Unresolved joins: %s", [(u.from_table, u.to_table) for u in unresolved])
        return JoinResolution(paths=tuple(paths), unresolved=tuple(unresolved))

    # ---- related tables ----------------------------------------------------
    def related_tables(
        self, table_name: str, max_depth: int | None = None
    ) -> list[RelatedTableInfo]:
        """Expand breadth-first from a table and score reached neighbours.

        Args:
            table_name: Starting table reference
            max_depth: Maximum hop distance, clamped to ``1..5``

        Returns:
            Related tables sorted by score desc, distance, then name; empty
            for an unknown table
        """
        start = self.resolve(table_name)
        if start is None:
            return []
        depth_limit = max(
            1,
            min(
                Constants.DEFAULT_RELATED_MAX_DEPTH if max_depth is None else max_depth,
                Constants.MAX_RELATED_DEPTH,
            ),
        )

        seen = {start}
        frontier = [start]
        related: list[RelatedTableInfo] = []
        for distance in range(1, depth_limit + 1):
            next_frontier: list[str] = []
            for current in frontier:
                for neighbour in self._neighbours(current):
                    if neighbour in seen:
                        continue
                    seen.add(neighbour)
                    next_frontier.append(neighbour)
                    related.append(self._related_info(current, neighbour, distance))
            if not next_frontier:
                break
            frontier = next_frontier

        related.sort(key=lambda r: (-r.relevance_score, r.distance, r.table))
        return related

    def _related_info(self, current: str, neighbour: str, distance: int) -> RelatedTableInfo:
        rels = self.relationships_between(current, neighbour)
        rel = next((r for r in rels if r.is_enabled), rels[0])
        score = 1.0 - Constants.RELATED_DEPTH_DECAY * distance
        if rel.is_enabled:
            score += Constants.RELATED_ENABLED_BONUS
        if "id" in rel.parent_column.lower():
            score += Constants.RELATED_KEY_COLUMN_BONUS
        if rel.parent_table == current:
            direction = JoinDirection.OUTGOING
            via_column, reached_column = rel.parent_column, rel.referenced_column
        else:
            direction = JoinDirection.INCOMING
            via_column, reached_column = rel.referenced_column, rel.parent_column
        return RelatedTableInfo(
            table=neighbour,
            distance=distance,
            relevance_score=round(clip_unit(max(Constants.MIN_RELATED_SCORE, score)), 6),
            relationship_type=rel.relationship_type,
            direction=direction,
            via_table=current,
            join_column=via_column,
            referenced_column=reached_column,
            constraint_name=rel.constraint_name,
        )

    def relationships_for_tables(self, table_names: Iterable[str]) -> list[ForeignKeyRelationship]:
        """Relationships with at least one endpoint in the given table set."""
        keys = {k for k in (self.resolve(n) for n in table_names) if k is not None}
        found = [
            data["rel"]
            for a, b, data in self.graph.edges(data=True)
            if a in keys or b in keys
        ]
        return sorted(
            found, key=lambda r: (r.constraint_name, r.parent_table, r.referenced_table)
        )
