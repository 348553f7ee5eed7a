from __future__ import annotations

import pytest

from nl2sql_context.schema_tools.models import (
    ColumnMetadata,
    ForeignKeyRelationship,
    GlossaryTerm,
    TableMetadata,
)
from nl2sql_context.schema_tools.snapshot import MetadataRecords


def casino_records() -> MetadataRecords:
    """Deposits -> players -> countries, plus an unrelated games table."""
    tables = (
        TableMetadata(
            schema="dbo",
            name="deposits",
            business_purpose="Records player deposit transactions",
            semantic_description="Player deposit transactions by country",
            domain_classification="Financial",
            glossary_terms=frozenset({"deposit"}),
            importance_score=0.9,
            usage_frequency=0.8,
        ),
        TableMetadata(
            schema="dbo",
            name="players",
            business_purpose="Registered players and their profile details",
            domain_classification="Player",
            importance_score=0.8,
            usage_frequency=0.9,
        ),
        TableMetadata(
            schema="dbo",
            name="countries",
            business_purpose="Country reference data",
            domain_classification="Reference",
            importance_score=0.5,
            usage_frequency=0.6,
        ),
        TableMetadata(
            schema="dbo",
            name="games",
            business_purpose="Catalogue of casino games",
            domain_classification="Gaming",
            importance_score=0.7,
            usage_frequency=0.5,
        ),
    )
    columns = (
        ColumnMetadata(
            table_key="dbo.deposits",
            name="deposit_id",
            data_type="int",
            business_meaning="Deposit identifier",
            is_key_column=True,
        ),
        ColumnMetadata(
            table_key="dbo.deposits",
            name="player_id",
            data_type="int",
            business_meaning="Player who made the deposit",
            is_key_column=True,
        ),
        ColumnMetadata(
            table_key="dbo.deposits",
            name="amount",
            data_type="decimal(18,2)",
            business_meaning="Deposit amount in account currency",
            business_metrics=("total deposit amount",),
        ),
        ColumnMetadata(
            table_key="dbo.deposits",
            name="deposit_date",
            data_type="datetime",
            business_meaning="Date the deposit was made",
        ),
        ColumnMetadata(
            table_key="dbo.deposits",
            name="channel_code",
            data_type="varchar(10)",
            business_meaning="Marketing channel code",
        ),
        ColumnMetadata(
            table_key="dbo.players",
            name="player_id",
            data_type="int",
            business_meaning="Player identifier",
            is_key_column=True,
        ),
        ColumnMetadata(
            table_key="dbo.players",
            name="country_id",
            data_type="int",
            business_meaning="Country the player is registered in",
            is_key_column=True,
        ),
        ColumnMetadata(
            table_key="dbo.countries",
            name="country_id",
            data_type="int",
            business_meaning="Country identifier",
            is_key_column=True,
        ),
        ColumnMetadata(
            table_key="dbo.countries",
            name="name",
            data_type="nvarchar(100)",
            business_meaning="Country name",
        ),
        ColumnMetadata(
            table_key="dbo.games",
            name="game_id",
            data_type="int",
            business_meaning="Game identifier",
            is_key_column=True,
        ),
    )
    glossary = (
        GlossaryTerm(
            term="Deposit",
            definition="Money paid into a player account",
            synonyms=frozenset({"top-up"}),
            mapped_tables=frozenset({"dbo.deposits"}),
            confidence_score=0.9,
        ),
        GlossaryTerm(
            term="GGR",
            definition="Gross gaming revenue",
            synonyms=frozenset({"gross gaming revenue"}),
            mapped_tables=frozenset({"dbo.games"}),
            confidence_score=0.8,
        ),
    )
    relationships = (
        ForeignKeyRelationship(
            constraint_name="FK_deposits_players",
            parent_table="dbo.deposits",
            parent_column="player_id",
            referenced_table="dbo.players",
            referenced_column="player_id",
        ),
        ForeignKeyRelationship(
            constraint_name="FK_players_countries",
            parent_table="dbo.players",
            parent_column="country_id",
            referenced_table="dbo.countries",
            referenced_column="country_id",
        ),
    )
    return MetadataRecords(
        tables=tables, columns=columns, glossary=glossary, relationships=relationships
    )


@pytest.fixture
def records() -> MetadataRecords:
    return casino_records()
