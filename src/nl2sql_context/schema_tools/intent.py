"""Rule-based query intent analysis.

Turns a free-text analytical question into a :class:`QueryAnalysis`: business
terms (glossary terms, domain keywords, recognized countries/currencies),
numeric pseudo-terms, a category chosen by fixed precedence, an intent label
and a bounded complexity estimate.

Classes:
- QueryIntentAnalyzer: Analyzer that never raises to its caller

Functions:
- degraded_analysis(): Default analysis used when analysis fails
"""

from __future__ import annotations

from collections.abc import Iterable
import re

from fastmcp.utilities.logging import get_logger

from .constants import (
    COUNTING_KEYWORDS,
    KEYWORD_FAMILIES,
    RANKING_KEYWORDS,
    SUMMARY_KEYWORDS,
    Constants,
    KeywordFamily,
    QueryCategory,
    QueryIntent,
)
from .lightweight_ner import LightweightNER
from .models import GlossaryTerm, QueryAnalysis
from .utils import clip_unit, stem_token, tokens_from_text

# Logger
_logger = get_logger("context_engine.intent")

# Family words at least this long also match with a derivational suffix ("depositors")
MIN_PREFIX_MATCH_LEN = 5
_DERIVED_SUFFIXES: frozenset[str] = frozenset({"al", "ed", "er", "ing", "ly", "or"})

_CATEGORY_PRECEDENCE: tuple[tuple[KeywordFamily, QueryCategory], ...] = (
    (KeywordFamily.FINANCIAL, QueryCategory.FINANCIAL),
    (KeywordFamily.GAMING, QueryCategory.GAMING),
    (KeywordFamily.GEOGRAPHIC, QueryCategory.GEOGRAPHIC),
    (KeywordFamily.AGGREGATION, QueryCategory.ANALYTICAL),
)


def degraded_analysis(query: str) -> QueryAnalysis:
    """Return the analysis used when the analyzer cannot process a query."""
    return QueryAnalysis(
        original_query=query,
        category=QueryCategory.GENERAL,
        intent=QueryIntent.UNKNOWN,
        complexity=Constants.DEGRADED_COMPLEXITY,
        degraded=True,
    )


class QueryIntentAnalyzer:
    """Analyze natural-language queries into structured intent.

    The analyzer is stateless apart from its entity recognizer and is safe to
    share between threads.
    """

    def __init__(self, ner: LightweightNER | None = None) -> None:
        """Initialize the analyzer.

        Args:
            ner: Optional entity recognizer for countries and currencies
        """
        self._ner = ner

    def analyze(self, query: str, glossary: Iterable[GlossaryTerm] = ()) -> QueryAnalysis:
        """Analyze a query; never raises.

        Args:
            query: Natural-language question
            glossary: Glossary terms from the current snapshot

        Returns:
            QueryAnalysis, or a degraded analysis if anything goes wrong
        """
        text = query if isinstance(query, str) else ""
        try:
            return self._analyze(text, glossary)
        except Exception as exc:  # noqa: BLE001 - analysis degrades, the request continues
            _logger.warning("Query analysis failed; using degraded analysis: %s", exc)
            return degraded_analysis(text)

    # ---- internals ---------------------------------------------------------
    def _analyze(self, text: str, glossary: Iterable[GlossaryTerm]) -> QueryAnalysis:
        lowered = text.lower()
        token_set = frozenset(tokens_from_text(text))

        family_hits = self._match_families(token_set)
        terms: set[str] = set().union(*family_hits.values()) if family_hits else set()
        terms |= self._match_glossary(lowered, token_set, glossary)

        entities: list[str] = []
        if self._ner is not None:
            for ent in self._ner.analyze(text):
                entities.append(f"{ent.label}:{ent.canonical}")
                if ent.label == "COUNTRY":
                    terms.add("country")
                    family_hits.setdefault(KeywordFamily.GEOGRAPHIC, set()).add("country")
                else:
                    terms.add("currency")
                    family_hits.setdefault(KeywordFamily.FINANCIAL, set()).add("currency")

        numeric = frozenset(f"num:{m}" for m in Constants.NUMBER_PATTERN.findall(lowered))

        category = QueryCategory.GENERAL
        for family, candidate in _CATEGORY_PRECEDENCE:
            if family in family_hits:
                category = candidate
                break

        intent = self._classify_intent(token_set, family_hits, numeric)
        complexity = self._complexity(token_set, family_hits, len(terms) + len(numeric))

        analysis = QueryAnalysis(
            original_query=text,
            business_terms=frozenset(terms),
            category=category,
            intent=intent,
            complexity=complexity,
            numeric_terms=numeric,
            entities=tuple(entities),
            query_tokens=token_set,
        )
        _logger.debug(
            "Analyzed query: category=%s intent=%s complexity=%.2f terms=%s",
            category.value,
            intent.value,
            complexity,
            sorted(analysis.all_terms),
        )
        return analysis

    @staticmethod
    def _match_families(token_set: frozenset[str]) -> dict[KeywordFamily, set[str]]:
        hits: dict[KeywordFamily, set[str]] = {}
        for family, words in KEYWORD_FAMILIES.items():
            matched = {
                word
                for word in words
                for token in token_set
                if token == word or _is_derived(token, word)
            }
            if matched:
                hits[family] = matched
        return hits

    @staticmethod
    def _match_glossary(
        lowered: str, token_set: frozenset[str], glossary: Iterable[GlossaryTerm]
    ) -> set[str]:
        """Match glossary terms or any of their synonyms against the query."""
        matched: set[str] = set()
        for term in glossary:
            if not term.is_active or not term.term.strip():
                continue
            for candidate in (term.term, *sorted(term.synonyms)):
                phrase = candidate.strip().lower()
                if not phrase:
                    continue
                if re.search(rf"\b{re.escape(phrase)}(?:e?s)?\b", lowered) or (
                    " " not in phrase and stem_token(phrase) in token_set
                ):
                    matched.add(term.term.strip().lower())
                    break
        return matched

    @staticmethod
    def _classify_intent(
        token_set: frozenset[str],
        family_hits: dict[KeywordFamily, set[str]],
        numeric: frozenset[str],
    ) -> QueryIntent:
        if token_set & RANKING_KEYWORDS and (KeywordFamily.FINANCIAL in family_hits or numeric):
            return QueryIntent.TOP_RANKING
        if token_set & SUMMARY_KEYWORDS:
            return QueryIntent.AGGREGATION
        if token_set & COUNTING_KEYWORDS:
            return QueryIntent.COUNTING
        if KeywordFamily.TEMPORAL in family_hits:
            return QueryIntent.TIME_FILTERED
        if KeywordFamily.GEOGRAPHIC in family_hits:
            return QueryIntent.GEOGRAPHIC_FILTERED
        return QueryIntent.GENERAL

    @staticmethod
    def _complexity(
        token_set: frozenset[str], family_hits: dict[KeywordFamily, set[str]], term_count: int
    ) -> float:
        score = Constants.COMPLEXITY_BASE
        if KeywordFamily.AGGREGATION in family_hits or token_set & COUNTING_KEYWORDS:
            score += Constants.COMPLEXITY_AGGREGATION_STEP
        if KeywordFamily.TEMPORAL in family_hits:
            score += Constants.COMPLEXITY_TEMPORAL_STEP
        if KeywordFamily.GEOGRAPHIC in family_hits:
            score += Constants.COMPLEXITY_GEOGRAPHIC_STEP
        if term_count > Constants.COMPLEXITY_TERM_COUNT_THRESHOLD:
            score += Constants.COMPLEXITY_TERM_COUNT_STEP
        return round(clip_unit(score), 6)


def _is_derived(token: str, word: str) -> bool:
    return (
        len(word) >= MIN_PREFIX_MATCH_LEN
        and token.startswith(word)
        and token[len(word) :] in _DERIVED_SUFFIXES
    )
