from __future__ import annotations

import pytest

from nl2sql_context.schema_tools.constants import JoinDirection, RelationshipType
from nl2sql_context.schema_tools.graph import NO_PATH, UNKNOWN_TABLE, ForeignKeyGraph
from nl2sql_context.schema_tools.models import ForeignKeyRelationship, JoinCondition, JoinPath
from nl2sql_context.schema_tools.snapshot import MetadataRecords, MetadataSnapshot


def _fk(
    name: str, parent: str, parent_col: str, ref: str, ref_col: str, *, enabled: bool = True
) -> ForeignKeyRelationship:
    return ForeignKeyRelationship(name, parent, parent_col, ref, ref_col, is_enabled=enabled)


def _casino_graph(records: MetadataRecords) -> ForeignKeyGraph:
    snapshot = MetadataSnapshot.build(
        records.tables, records.columns, records.glossary, records.relationships
    )
    return ForeignKeyGraph.build(snapshot)


def _chain(*tables: str, enabled: bool = True) -> ForeignKeyGraph:
    graph = ForeignKeyGraph(tables)
    for parent, ref in zip(tables, tables[1:], strict=False):
        graph.add_relationship(
            _fk(f"FK_{parent}_{ref}", parent, f"{ref}_id", ref, "id", enabled=enabled)
        )
    return graph


def test_two_hop_path_through_players(records: MetadataRecords) -> None:
    graph = _casino_graph(records)

    path = graph.shortest_path("dbo.deposits", "dbo.countries")

    assert path is not None
    assert path.tables == ("dbo.deposits", "dbo.players", "dbo.countries")
    assert path.path_length == 2
    assert path.is_optimal
    assert path.performance_score == pytest.approx(5 / 6)
    assert path.constraint_names == ("FK_deposits_players", "FK_players_countries")
    assert path.conditions[0] == JoinCondition(
        "dbo.deposits", "player_id", "dbo.players", "player_id"
    )


def test_paths_for_table_set_sorted_by_length(records: MetadataRecords) -> None:
    graph = _casino_graph(records)

    resolution = graph.paths_for_table_set(["dbo.deposits", "dbo.countries", "dbo.players"])

    assert [(p.from_table, p.to_table, p.path_length) for p in resolution.paths] == [
        ("dbo.countries", "dbo.players", 1),
        ("dbo.deposits", "dbo.players", 1),
        ("dbo.countries", "dbo.deposits", 2),
    ]
    assert resolution.paths[2].tables == ("dbo.countries", "dbo.players", "dbo.deposits")
    assert resolution.unresolved == ()


def test_join_condition_oriented_from_foreign_key(records: MetadataRecords) -> None:
    graph = _casino_graph(records)

    path = graph.shortest_path("countries", "players")

    assert path is not None
    assert path.conditions == (
        JoinCondition("dbo.players", "country_id", "dbo.countries", "country_id"),
    )


def test_disconnected_and_unknown_tables_are_reported(records: MetadataRecords) -> None:
    graph = _casino_graph(records)

    resolution = graph.paths_for_table_set(["dbo.games", "dbo.deposits", "dbo.nope"])

    assert resolution.paths == ()
    reasons = {(u.from_table, u.to_table): u.reason for u in resolution.unresolved}
    assert reasons[("dbo.nope", "dbo.games")] == UNKNOWN_TABLE
    assert reasons[("dbo.nope", "dbo.deposits")] == UNKNOWN_TABLE
    assert reasons[("dbo.deposits", "dbo.games")] == NO_PATH


def test_same_table_has_no_path(records: MetadataRecords) -> None:
    graph = _casino_graph(records)
    assert graph.shortest_path("dbo.deposits", "DEPOSITS") is None
    assert graph.paths_for_table_set(["dbo.deposits", "deposits"]).paths == ()


def test_quoted_names_are_normalized() -> None:
    graph = ForeignKeyGraph(["dbo.Games", "dbo.Sessions"])
    graph.add_relationship(_fk("FK_sessions_games", "dbo.Sessions", "game_id", "dbo.Games", "id"))

    resolution = graph.paths_for_table_set(["[dbo].[Games]", "dbo.sessions"])

    assert len(resolution.paths) == 1
    assert resolution.paths[0].tables == ("dbo.Games", "dbo.Sessions")


def test_duplicate_constraint_names_are_ignored() -> None:
    graph = ForeignKeyGraph(["dbo.a", "dbo.b"])
    rel = _fk("FK_a_b", "dbo.a", "b_id", "dbo.b", "id")

    assert graph.add_relationship(rel)
    assert not graph.add_relationship(rel)
    assert graph.graph.number_of_edges() == 1


def test_constraint_name_reused_across_schemas() -> None:
    graph = ForeignKeyGraph(
        ["sales.orders", "sales.customers", "archive.orders", "archive.customers"]
    )

    assert graph.add_relationship(
        _fk("orders_customer_id_fkey", "sales.orders", "customer_id", "sales.customers", "id")
    )
    assert graph.add_relationship(
        _fk("orders_customer_id_fkey", "archive.orders", "customer_id", "archive.customers", "id")
    )

    path = graph.shortest_path("archive.orders", "archive.customers")
    assert path is not None
    assert path.constraint_names == ("orders_customer_id_fkey",)
    rels = graph.relationships_for_tables(["sales.orders", "archive.orders"])
    assert [r.parent_table for r in rels] == ["archive.orders", "sales.orders"]


def test_shortest_path_prefers_direct_edge_over_chain() -> None:
    graph = _chain("a", "b", "c", "d")
    graph.add_relationship(_fk("FK_a_d", "a", "d_id", "d", "id"))

    path = graph.shortest_path("a", "d")

    assert path is not None
    assert path.path_length == 1
    assert path.tables == ("a", "d")
    assert path.constraint_names == ("FK_a_d",)
    reverse = graph.shortest_path("d", "a")
    assert reverse is not None
    assert reverse.path_length == 1


def test_relationship_with_unknown_endpoint_is_skipped() -> None:
    graph = ForeignKeyGraph(["dbo.a"])
    assert not graph.add_relationship(_fk("FK_a_x", "dbo.a", "x_id", "dbo.x", "id"))


def test_self_reference_is_not_a_neighbour() -> None:
    graph = ForeignKeyGraph(["hr.employees"])
    graph.add_relationship(
        _fk("FK_manager", "hr.employees", "manager_id", "hr.employees", "employee_id")
    )

    assert graph.related_tables("hr.employees") == []
    assert graph.relationships_for_tables(["hr.employees"])[0].is_self_reference


def test_enabled_relationship_preferred() -> None:
    graph = ForeignKeyGraph(["dbo.a", "dbo.b"])
    graph.add_relationship(_fk("FK_1", "dbo.a", "b_id", "dbo.b", "id", enabled=False))
    graph.add_relationship(_fk("FK_2", "dbo.a", "alt_b_id", "dbo.b", "id"))

    path = graph.shortest_path("dbo.a", "dbo.b")

    assert path is not None
    assert path.constraint_names == ("FK_2",)


@pytest.mark.parametrize(
    ("tables", "enabled", "expected"),
    [
        (("a", "b"), True, 1.0),
        (("a", "b"), False, 5 / 6),
        (("a", "b", "c"), True, 5 / 6),
        (("a", "b", "c", "d"), True, 2 / 3),
        (("a", "b", "c"), False, 2 / 3),
        (("a", "b", "c", "d", "e", "f", "g"), False, 0.1),
    ],
)
def test_performance_score(
    tables: tuple[str, ...], enabled: bool, expected: float  # noqa: FBT001
) -> None:
    graph = _chain(*tables, enabled=enabled)

    path = graph.shortest_path(tables[0], tables[-1])

    assert path is not None
    assert path.performance_score == pytest.approx(expected)
    assert path.is_optimal is (len(tables) <= 3)


def test_join_path_requires_a_condition() -> None:
    with pytest.raises(ValueError, match="at least one join condition"):
        JoinPath("a", "b", ("a", "b"), (), (), 1.0)


def test_related_tables_by_depth(records: MetadataRecords) -> None:
    graph = _casino_graph(records)

    related = graph.related_tables("dbo.deposits", 2)

    assert [(r.table, r.distance) for r in related] == [
        ("dbo.players", 1),
        ("dbo.countries", 2),
    ]
    players, countries = related
    assert players.direction is JoinDirection.OUTGOING
    assert players.relationship_type is RelationshipType.MANY_TO_ONE
    assert players.via_table == "dbo.deposits"
    assert players.relevance_score == pytest.approx(1.0)
    assert countries.via_table == "dbo.players"
    assert countries.relevance_score == pytest.approx(0.8)


def test_related_tables_incoming_direction(records: MetadataRecords) -> None:
    graph = _casino_graph(records)

    related = graph.related_tables("dbo.countries", 1)

    assert [r.table for r in related] == ["dbo.players"]
    assert related[0].direction is JoinDirection.INCOMING
    assert related[0].join_column == "country_id"


def test_related_columns_follow_hop_direction() -> None:
    graph = ForeignKeyGraph(["hr.departments", "hr.employees"])
    graph.add_relationship(_fk("FK_emp_dept", "hr.employees", "dept_id", "hr.departments", "id"))

    (incoming,) = graph.related_tables("hr.departments", 1)
    (outgoing,) = graph.related_tables("hr.employees", 1)

    assert incoming.direction is JoinDirection.INCOMING
    assert (incoming.join_column, incoming.referenced_column) == ("id", "dept_id")
    assert outgoing.direction is JoinDirection.OUTGOING
    assert (outgoing.join_column, outgoing.referenced_column) == ("dept_id", "id")


def test_related_tables_depth_is_clamped(records: MetadataRecords) -> None:
    graph = _casino_graph(records)
    assert len(graph.related_tables("dbo.deposits", 0)) == 1
    assert len(graph.related_tables("dbo.deposits", 99)) == 2
    assert graph.related_tables("dbo.nope") == []


def test_relationships_for_tables(records: MetadataRecords) -> None:
    graph = _casino_graph(records)

    rels = graph.relationships_for_tables(["dbo.countries"])

    assert [r.constraint_name for r in rels] == ["FK_players_countries"]
    assert rels[0].parent_table == "dbo.players"
