from __future__ import annotations

import pytest

from nl2sql_context.builders.response_builders import (
    JoinPathsResultBuilder,
    RelatedTablesBuilder,
    RelevantSchemaResultBuilder,
    StatusBuilder,
    _sanitize_sql_type,
)
from nl2sql_context.schema_tools.engine import (
    SchemaContextEngine,
    SnapshotBundle,
    StaticSnapshotProvider,
)
from nl2sql_context.schema_tools.graph import ForeignKeyGraph
from nl2sql_context.schema_tools.intent import QueryIntentAnalyzer
from nl2sql_context.schema_tools.lightweight_ner import LightweightNER
from nl2sql_context.schema_tools.models import ForeignKeyRelationship
from nl2sql_context.schema_tools.snapshot import MetadataRecords, MetadataSnapshot
from nl2sql_context.services.state import (
    EngineInitPhase,
    EngineInitState,
    RefreshPhase,
    RefreshState,
)


def _graph(records: MetadataRecords) -> ForeignKeyGraph:
    snapshot = MetadataSnapshot.build(
        records.tables, records.columns, records.glossary, records.relationships
    )
    return ForeignKeyGraph.build(snapshot)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("decimal(18,2)", "DECIMAL(18,2)"),
        ('nvarchar(50) COLLATE "SQL_Latin1_General_CP1_CI_AS"', "NVARCHAR(50)"),
        ("  double   precision ", "DOUBLE PRECISION"),
        ("", ""),
    ],
)
def test_sanitize_sql_type(raw: str, expected: str) -> None:
    assert _sanitize_sql_type(raw) == expected


def test_join_path_steps_follow_each_hop(records: MetadataRecords) -> None:
    path = _graph(records).shortest_path("dbo.countries", "dbo.deposits")
    assert path is not None

    model = JoinPathsResultBuilder.build_path(path)

    assert model.tables == ["dbo.countries", "dbo.players", "dbo.deposits"]
    assert [(s.left, s.right) for s in model.steps] == [
        ("dbo.players.country_id", "dbo.countries.country_id"),
        ("dbo.deposits.player_id", "dbo.players.player_id"),
    ]
    assert "sql" not in model.model_dump()


def test_join_steps_keep_raw_identifiers() -> None:
    graph = ForeignKeyGraph(["dbo.Order Lines", "dbo.orders"])
    graph.add_relationship(
        ForeignKeyRelationship("FK_lines", "dbo.Order Lines", "order_id", "dbo.orders", "id")
    )
    path = graph.shortest_path("dbo.orders", "dbo.Order Lines")
    assert path is not None

    (step,) = JoinPathsResultBuilder.build_path(path).steps

    assert step.left == "dbo.Order Lines.order_id"
    assert step.right == "dbo.orders.id"


def test_join_paths_result(records: MetadataRecords) -> None:
    resolution = _graph(records).paths_for_table_set(
        ["dbo.deposits", "dbo.players", "dbo.games"]
    )

    model = JoinPathsResultBuilder.build(resolution)

    (path,) = model.paths
    assert path.path_length == 1
    assert path.steps[0].left == "dbo.deposits.player_id"
    assert path.steps[0].right == "dbo.players.player_id"
    assert path.steps[0].constraint_name == "FK_deposits_players"
    assert path.tables == ["dbo.deposits", "dbo.players"]
    assert sorted(u.reason for u in model.unresolved) == ["no_path", "no_path"]


def test_relevant_schema_result(records: MetadataRecords) -> None:
    snapshot = MetadataSnapshot.build(
        records.tables, records.columns, records.glossary, records.relationships
    )
    engine = SchemaContextEngine(
        StaticSnapshotProvider(SnapshotBundle.build(snapshot)),
        analyzer=QueryIntentAnalyzer(LightweightNER()),
    )
    try:
        result = engine.get_relevant_schema("total deposits by country for UK players yesterday")
    finally:
        engine.close()

    model = RelevantSchemaResultBuilder.build(result)

    assert model.analysis.category == "Financial"
    assert "COUNTRY:GB" in model.analysis.entities
    deposits = model.tables[0]
    assert deposits.table == "dbo.deposits"
    assert deposits.domain == "Financial"
    amount = next(c for c in deposits.columns if c.name == "amount")
    assert amount.data_type == "DECIMAL(18,2)"
    assert amount.business_meaning == "Deposit amount in account currency"
    assert next(c for c in deposits.columns if c.name == "player_id").is_key
    assert [g.term for g in model.glossary_terms] == ["Deposit"]
    assert model.glossary_terms[0].synonyms == ["top-up"]
    assert len(model.join_paths) == 3
    assert model.snapshot_version == snapshot.version
    assert model.model_dump()["token_estimate"] == result.token_estimate


def test_related_tables_builder(records: MetadataRecords) -> None:
    related = RelatedTablesBuilder.build(_graph(records).related_tables("dbo.deposits", 2))

    assert [(r.table, r.distance, r.direction) for r in related] == [
        ("dbo.players", 1, "outgoing"),
        ("dbo.countries", 2, "outgoing"),
    ]
    assert related[0].relationship_type == "many_to_one"
    assert related[1].via_table == "dbo.players"


def test_status_descriptions() -> None:
    ready = EngineInitState(phase=EngineInitPhase.READY, attempts=1)
    stale = RefreshState(phase=RefreshPhase.STALE, version="abc", failure_count=1)

    status = StatusBuilder.build_init_status(ready, stale)

    assert status.phase == "READY"
    assert status.snapshot_phase == "STALE"
    assert status.snapshot_version == "abc"
    assert status.description == "Ready; serving the previous snapshot after a failed refresh."
    failed = StatusBuilder.build_init_status(
        EngineInitState(phase=EngineInitPhase.FAILED, error_message="boom")
    )
    assert failed.snapshot_phase is None
    assert failed.error_message == "boom"


def test_refresh_result() -> None:
    state = RefreshState(phase=RefreshPhase.CURRENT, version="v2", refresh_count=2)
    result = StatusBuilder.build_refresh_result(state)
    assert result.phase == "CURRENT"
    assert result.refresh_count == 2
    assert result.last_error is None
