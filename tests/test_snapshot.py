from __future__ import annotations

from dataclasses import replace

import pytest

from nl2sql_context.schema_tools.models import (
    ColumnMetadata,
    ForeignKeyRelationship,
    GlossaryTerm,
    TableMetadata,
)
from nl2sql_context.schema_tools.snapshot import (
    DiscoveredCatalog,
    MetadataRecords,
    MetadataSnapshot,
    build_snapshot,
    merge_catalog,
)


def _build(records: MetadataRecords) -> MetadataSnapshot:
    return MetadataSnapshot.build(
        records.tables, records.columns, records.glossary, records.relationships
    )


def test_snapshot_indexes_tables_and_columns(records: MetadataRecords) -> None:
    snapshot = _build(records)

    assert len(snapshot) == 4
    assert list(snapshot.tables) == sorted(snapshot.tables)
    assert snapshot.resolve_table("[dbo].[Deposits]") == "dbo.deposits"
    assert [c.name for c in snapshot.columns_for("deposits")] == [
        "deposit_id",
        "player_id",
        "amount",
        "deposit_date",
        "channel_code",
    ]
    assert snapshot.columns_for("dbo.nope") == ()
    assert snapshot.table("countries") is not None


def test_inactive_elements_are_not_visible(records: MetadataRecords) -> None:
    tables = (*records.tables, TableMetadata(schema="dbo", name="legacy", is_active=False))
    columns = (
        *records.columns,
        ColumnMetadata(table_key="dbo.legacy", name="id"),
        ColumnMetadata(table_key="dbo.players", name="nickname", is_active=False),
    )
    glossary = (*records.glossary, GlossaryTerm(term="Churn", is_active=False))

    snapshot = MetadataSnapshot.build(tables, columns, glossary, records.relationships)

    assert "dbo.legacy" not in snapshot.tables
    assert snapshot.resolve_table("legacy") is None
    assert "nickname" not in {c.name for c in snapshot.columns_for("dbo.players")}
    assert [g.term for g in snapshot.glossary] == ["Deposit", "GGR"]


def test_relationships_with_unknown_elements_are_dropped(records: MetadataRecords) -> None:
    relationships = (
        *records.relationships,
        ForeignKeyRelationship("FK_ghost", "dbo.deposits", "ghost_id", "dbo.ghosts", "id"),
        ForeignKeyRelationship("FK_badcol", "dbo.deposits", "nope_id", "dbo.players", "player_id"),
    )

    snapshot = MetadataSnapshot.build(records.tables, records.columns, (), relationships)

    assert [r.constraint_name for r in snapshot.relationships] == [
        "FK_deposits_players",
        "FK_players_countries",
    ]


def test_tables_without_column_metadata_accept_any_column() -> None:
    snapshot = MetadataSnapshot.build(
        [TableMetadata(schema="dbo", name="a"), TableMetadata(schema="dbo", name="b")],
        relationships=[ForeignKeyRelationship("FK_a_b", "A", "b_id", "[dbo].[B]", "id")],
    )

    rel = snapshot.relationships[0]
    assert (rel.parent_table, rel.referenced_table) == ("dbo.a", "dbo.b")


def test_glossary_mappings_are_canonicalized(records: MetadataRecords) -> None:
    term = GlossaryTerm(
        term="Amount",
        mapped_tables=frozenset({"DEPOSITS", "dbo.unknown"}),
        mapped_columns=frozenset({"dbo.deposits.Amount", "dbo.deposits.nope", "amount"}),
    )

    snapshot = MetadataSnapshot.build(records.tables, records.columns, [term])

    (canonical,) = snapshot.glossary
    assert canonical.mapped_tables == frozenset({"dbo.deposits"})
    assert canonical.mapped_columns == frozenset({"dbo.deposits.amount"})


def test_version_is_deterministic(records: MetadataRecords) -> None:
    first = MetadataSnapshot.build(records.tables, records.columns, built_at=1.0)
    second = MetadataSnapshot.build(reversed(records.tables), records.columns, built_at=2.0)
    changed = MetadataSnapshot.build(
        (replace(records.tables[0], business_purpose="Something else"), *records.tables[1:]),
        records.columns,
    )

    assert first.version == second.version
    assert first.version != changed.version


def test_snapshot_mappings_are_read_only(records: MetadataRecords) -> None:
    snapshot = _build(records)
    with pytest.raises(TypeError):
        snapshot.tables["dbo.x"] = TableMetadata(schema="dbo", name="x")  # type: ignore[index]


def test_merge_catalog_overlays_business_metadata(records: MetadataRecords) -> None:
    catalog = DiscoveredCatalog(
        dialect="mssql",
        tables=(
            TableMetadata(schema="dbo", name="Deposits"),
            TableMetadata(schema="dbo", name="Players"),
            TableMetadata(schema="dbo", name="Audit"),
        ),
        columns=(
            ColumnMetadata(table_key="dbo.Deposits", name="Amount", data_type="DECIMAL(18, 2)"),
            ColumnMetadata(
                table_key="dbo.Deposits", name="PlayerId", data_type="INT", is_key_column=True
            ),
            ColumnMetadata(table_key="dbo.Players", name="player_id", data_type="INT"),
        ),
        relationships=(
            ForeignKeyRelationship(
                "FK_Deposits_Players", "dbo.Deposits", "PlayerId", "dbo.Players", "player_id"
            ),
        ),
    )

    merged = merge_catalog(records, catalog)

    assert [t.key for t in merged.tables] == ["dbo.Deposits", "dbo.Players", "dbo.Audit"]
    deposits = merged.tables[0]
    assert deposits.business_purpose == "Records player deposit transactions"
    amount = merged.columns[0]
    assert amount.name == "Amount"
    assert amount.business_meaning == "Deposit amount in account currency"
    assert amount.data_type == "decimal(18,2)"
    assert merged.columns[1].business_meaning == ""
    assert merged.columns[1].is_key_column
    assert merged.relationships[0].constraint_name == "FK_Deposits_Players"


def test_merge_without_catalog_is_identity(records: MetadataRecords) -> None:
    assert merge_catalog(records, None) is records


def test_build_snapshot_drops_records_missing_from_catalog(records: MetadataRecords) -> None:
    catalog = DiscoveredCatalog(
        dialect="sqlite",
        tables=(TableMetadata(schema="dbo", name="deposits"),),
        columns=(ColumnMetadata(table_key="dbo.deposits", name="player_id", data_type="INTEGER"),),
    )

    snapshot = build_snapshot(records, catalog)

    assert list(snapshot.tables) == ["dbo.deposits"]
    assert snapshot.relationships == ()
    (column,) = snapshot.columns_for("dbo.deposits")
    assert column.business_meaning == "Player who made the deposit"
