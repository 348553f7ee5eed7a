from __future__ import annotations

import pytest

from nl2sql_context.schema_tools.utils import (
    build_table_index,
    clip_unit,
    default_excluded_schemas,
    fingerprint_payload,
    is_date_type,
    looks_like_key,
    normalize_identifier,
    resolve_table,
    split_table_name,
    stem_token,
    tokens_from_text,
)


def test_normalize_identifier_splits_case_and_separators() -> None:
    assert normalize_identifier("player_deposits") == "player deposits"
    assert normalize_identifier("PlayerDeposits") == "player deposits"
    assert normalize_identifier("") == ""


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("countries", "country"),
        ("deposits", "deposit"),
        ("class", "class"),
        ("status", "status"),
        ("bus", "bus"),
    ],
)
def test_stem_token(token: str, expected: str) -> None:
    assert stem_token(token) == expected


def test_tokens_from_text_drops_stopwords_and_stems() -> None:
    assert tokens_from_text("Show the deposits for UK players") == ["deposit", "uk", "player"]
    assert "the" in tokens_from_text("the deposits", keep_stopwords=True)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("dbo.Games", ("dbo", "games")),
        ("[dbo].[Games]", ("dbo", "games")),
        ('"dbo"."games"', ("dbo", "games")),
        ("Games", ("", "games")),
        ("  ", ("", "")),
    ],
)
def test_split_table_name(name: str, expected: tuple[str, str]) -> None:
    assert split_table_name(name) == expected


def test_resolve_table_by_qualified_bare_and_quoted_forms() -> None:
    index = build_table_index(["dbo.Games", "sales.orders"])
    assert resolve_table("[dbo].[Games]", index) == "dbo.Games"
    assert resolve_table("GAMES", index) == "dbo.Games"
    assert resolve_table("sales.Orders", index) == "sales.orders"
    assert resolve_table("dbo.unknown", index) is None
    assert resolve_table("", index) is None


def test_bare_name_prefers_first_schema_in_sorted_order() -> None:
    index = build_table_index(["sales.orders", "archive.orders"])
    assert resolve_table("orders", index) == "archive.orders"
    assert resolve_table("sales.orders", index) == "sales.orders"


def test_key_and_date_detection() -> None:
    assert looks_like_key("player_id")
    assert looks_like_key("PlayerID")
    assert looks_like_key("id")
    assert not looks_like_key("amount")
    assert is_date_type("DATETIME2")
    assert is_date_type("timestamp with time zone")
    assert not is_date_type("int")


def test_clip_unit() -> None:
    assert clip_unit(-0.2) == 0.0
    assert clip_unit(1.7) == 1.0
    assert clip_unit(0.4) == 0.4


def test_fingerprint_payload_is_order_independent() -> None:
    a = fingerprint_payload({"tables": ["a", "b"], "version": 1})
    b = fingerprint_payload({"version": 1, "tables": ["a", "b"]})
    assert a == b
    assert len(a) == 16
    assert fingerprint_payload({"tables": ["b", "a"], "version": 1}) != a


def test_default_excluded_schemas_by_dialect() -> None:
    assert "pg_catalog" in default_excluded_schemas("postgresql")
    assert "sys" in default_excluded_schemas("mssql")
    assert "performance_schema" in default_excluded_schemas("mysql")
    assert default_excluded_schemas("sqlite")
