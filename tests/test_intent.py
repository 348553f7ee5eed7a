from __future__ import annotations

from _pytest.monkeypatch import MonkeyPatch
import pytest

from nl2sql_context.schema_tools import intent as intent_mod
from nl2sql_context.schema_tools.constants import QueryCategory, QueryIntent
from nl2sql_context.schema_tools.intent import QueryIntentAnalyzer
from nl2sql_context.schema_tools.lightweight_ner import LightweightNER
from nl2sql_context.schema_tools.models import GlossaryTerm


@pytest.fixture(scope="module")
def analyzer() -> QueryIntentAnalyzer:
    return QueryIntentAnalyzer(LightweightNER())


def _glossary() -> list[GlossaryTerm]:
    return [
        GlossaryTerm(term="GGR", synonyms=frozenset({"gross gaming revenue"})),
        GlossaryTerm(term="Churn", is_active=False),
    ]


def test_financial_aggregation_with_country(analyzer: QueryIntentAnalyzer) -> None:
    analysis = analyzer.analyze("total deposits by country for UK players yesterday")
    assert analysis.category is QueryCategory.FINANCIAL
    assert analysis.intent is QueryIntent.AGGREGATION
    assert {"deposit", "country", "yesterday", "total", "player"} <= analysis.business_terms
    assert "COUNTRY:GB" in analysis.entities
    assert analysis.complexity == pytest.approx(1.0)
    assert not analysis.degraded


@pytest.mark.parametrize(
    ("query", "category", "intent"),
    [
        ("how many players", QueryCategory.GENERAL, QueryIntent.COUNTING),
        ("top 10 games by revenue", QueryCategory.FINANCIAL, QueryIntent.TOP_RANKING),
        ("spins last week", QueryCategory.GAMING, QueryIntent.TIME_FILTERED),
        ("players by region", QueryCategory.GEOGRAPHIC, QueryIntent.GEOGRAPHIC_FILTERED),
        ("average session length", QueryCategory.GAMING, QueryIntent.AGGREGATION),
        ("list the members", QueryCategory.GENERAL, QueryIntent.GENERAL),
    ],
)
def test_category_and_intent(
    analyzer: QueryIntentAnalyzer, query: str, category: QueryCategory, intent: QueryIntent
) -> None:
    analysis = analyzer.analyze(query)
    assert analysis.category is category
    assert analysis.intent is intent


def test_ranking_needs_a_metric_or_number(analyzer: QueryIntentAnalyzer) -> None:
    # "top" alone, without a financial term or a number, is only an aggregation keyword
    analysis = analyzer.analyze("top players")
    assert analysis.intent is not QueryIntent.TOP_RANKING
    assert analysis.category is QueryCategory.ANALYTICAL


def test_numeric_terms_are_captured(analyzer: QueryIntentAnalyzer) -> None:
    analysis = analyzer.analyze("top 10 games by revenue")
    assert analysis.numeric_terms == frozenset({"num:10"})
    assert "num:10" in analysis.all_terms


def test_counting_complexity(analyzer: QueryIntentAnalyzer) -> None:
    assert analyzer.analyze("how many players").complexity == pytest.approx(0.5)


def test_derived_family_words_match(analyzer: QueryIntentAnalyzer) -> None:
    analysis = analyzer.analyze("depositors in Germany")
    assert analysis.category is QueryCategory.FINANCIAL
    assert "deposit" in analysis.business_terms
    assert "COUNTRY:DE" in analysis.entities


def test_glossary_synonym_matches_term(analyzer: QueryIntentAnalyzer) -> None:
    analysis = analyzer.analyze("gross gaming revenue by market", _glossary())
    assert "ggr" in analysis.business_terms


def test_inactive_glossary_terms_are_ignored(analyzer: QueryIntentAnalyzer) -> None:
    analysis = analyzer.analyze("churn by month", _glossary())
    assert "churn" not in analysis.business_terms


def test_currency_entity_adds_financial_term(analyzer: QueryIntentAnalyzer) -> None:
    analysis = analyzer.analyze("bets placed in EUR")
    assert "currency" in analysis.business_terms
    assert "CURRENCY:EUR" in analysis.entities
    assert analysis.category is QueryCategory.FINANCIAL


def test_analysis_failure_degrades(monkeypatch: MonkeyPatch) -> None:
    def _boom(*_args: object, **_kwargs: object) -> list[str]:
        msg = "tokenizer exploded"
        raise RuntimeError(msg)

    monkeypatch.setattr(intent_mod, "tokens_from_text", _boom)

    analysis = QueryIntentAnalyzer().analyze("total deposits")
    assert analysis.degraded
    assert analysis.intent is QueryIntent.UNKNOWN
    assert analysis.category is QueryCategory.GENERAL
    assert analysis.complexity == pytest.approx(0.5)
    assert analysis.original_query == "total deposits"


def test_empty_query_is_general() -> None:
    analysis = QueryIntentAnalyzer().analyze("   ")
    assert analysis.intent is QueryIntent.GENERAL
    assert analysis.business_terms == frozenset()
    assert not analysis.degraded
