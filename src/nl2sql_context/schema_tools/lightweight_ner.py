"""Authoritative, list-free entity recognition for free-text queries.

This module uses standards-backed sources instead of hand-maintained lists:

- Countries: ISO-3166 via ``pycountry``
- Currencies: ISO-4217 codes and names via ``Babel`` (CLDR)

The recognizer is tuned for analytical questions ("deposits by country for
UK players", "revenue in EUR"). Names match case-insensitively; alphabetic
codes only match when written in upper case so that ordinary words such as
"in", "it" or "top" are not mistaken for Indian, Italian or Tongan entities.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Final, Literal
import unicodedata

from babel.numbers import (  # type: ignore[reportMissingTypeStubs]
    get_currency_name,
    list_currencies,
)
from fastmcp.utilities.logging import get_logger
import pycountry  # type: ignore[reportMissingTypeStubs]

# Logger
_logger = get_logger("context_engine.lightweight_ner")


Label = Literal["COUNTRY", "CURRENCY"]

MAX_NGRAM: Final[int] = 4

# Colloquial country names missing from ISO-3166
_COUNTRY_ALIASES: Final[dict[str, str]] = {
    "uk": "GB",
    "britain": "GB",
    "great_britain": "GB",
    "england": "GB",
    "usa": "US",
    "america": "US",
}

# Upper-case English words that collide with ISO codes
_CODE_STOPWORDS: Final[frozenset[str]] = frozenset(
    {"ALL", "AM", "AND", "ARE", "AS", "AT", "BE", "BY", "CAN", "DO", "GO", "IN", "IS", "IT"}
    | {"ME", "MY", "NO", "ON", "OR", "PER", "SO", "TO", "TOP", "CUP", "MOP", "SOS", "BAM"}
)


@dataclass(slots=True)
class Entity:
    """Recognized entity with canonical normalization.

    Attributes:
        label: Entity type label
        text: Matched surface text
        span: Start/end character offsets in the original text
        canonical: Canonical code (ISO-3166 alpha-2 or ISO-4217)
        score: Confidence score (0.0..1.0)
    """

    label: Label
    text: str
    span: tuple[int, int]
    canonical: str
    score: float


def _normalize(s: str) -> str:
    """Normalize a string for gazetteer matching.

    - Lowercase, remove diacritics, replace non-alnum with single underscore,
      and collapse consecutive underscores.
    """
    s_nfkd = unicodedata.normalize("NFKD", s)
    s_ascii = "".join(ch for ch in s_nfkd if not unicodedata.combining(ch))
    s_sub = re.sub(r"[^a-z0-9]+", "_", s_ascii.lower())
    return re.sub(r"_+", "_", s_sub).strip("_")


class LightweightNER:
    """Standards-backed recognizer for countries and currencies in queries.

    Builds name and code gazetteers from ISO/CLDR sources at initialization.
    """

    def __init__(self, *, locale: str = "en") -> None:
        """Initialize with authoritative gazetteers.

        Args:
            locale: CLDR locale code for currency names (default: "en").
        """
        self.locale = locale
        self._names, self._codes = self._build_gazetteers()

    def _build_gazetteers(
        self,
    ) -> tuple[dict[Label, dict[str, str]], dict[Label, dict[str, str]]]:
        """Build gazetteers mapping normalized names and upper-case codes to canonical codes."""
        names: dict[Label, dict[str, str]] = {"COUNTRY": {}, "CURRENCY": {}}
        codes: dict[Label, dict[str, str]] = {"COUNTRY": {}, "CURRENCY": {}}

        for country in pycountry.countries:  # type: ignore[assignment]
            alpha2 = getattr(country, "alpha_2", None)
            if not isinstance(alpha2, str):
                continue
            for attr in ("name", "official_name", "common_name"):
                value = getattr(country, attr, None)
                term = _normalize(str(value)) if value else ""
                if term:
                    names["COUNTRY"][term] = alpha2
            for attr in ("alpha_2", "alpha_3"):
                code = getattr(country, attr, None)
                if isinstance(code, str):
                    codes["COUNTRY"][code.upper()] = alpha2
        names["COUNTRY"].update(_COUNTRY_ALIASES)

        for code in list_currencies(locale=self.locale):
            code_str = str(code)
            codes["CURRENCY"][code_str.upper()] = code_str
            if code_str.startswith("X"):
                # Metals, funds and test codes have names like "Gold"
                continue
            term = _normalize(get_currency_name(code_str, locale=self.locale))
            if term and term != code_str.lower():
                names["CURRENCY"].setdefault(term, code_str)

        for gaz in codes.values():
            for word in _CODE_STOPWORDS:
                gaz.pop(word, None)

        _logger.debug(
            "NER gazetteers built: %d country names, %d currency names",
            len(names["COUNTRY"]),
            len(names["CURRENCY"]),
        )
        return names, codes

    def analyze(self, text: str) -> list[Entity]:
        """Analyze free text and return recognized entities.

        Args:
            text: Natural-language query text.

        Returns:
            List of entities, de-duplicated by (label, canonical), in text order.
        """
        if not text:
            return []

        words = list(re.finditer(r"[^\W_]+", text))
        results: list[Entity] = []

        for size in range(MAX_NGRAM, 0, -1):
            for i in range(len(words) - size + 1):
                window = words[i : i + size]
                start, end = window[0].start(), window[-1].end()
                surface = text[start:end]
                term = "_".join(_normalize(w.group(0)) for w in window)
                for label in ("COUNTRY", "CURRENCY"):
                    canon = self._names[label].get(term)
                    score = 0.9
                    if canon is None and size == 1 and surface.isupper():
                        canon = self._codes[label].get(surface)
                        score = 0.8
                    if canon is not None:
                        results.append(
                            Entity(
                                label=label,
                                text=surface,
                                span=(start, end),
                                canonical=canon,
                                score=score,
                            )
                        )

        seen: set[tuple[str, str]] = set()
        deduped: list[Entity] = []
        for ent in sorted(results, key=lambda e: (e.span[0], -e.span[1])):
            key = (ent.label, ent.canonical)
            if key not in seen:
                seen.add(key)
                deduped.append(ent)
        return deduped

    def extract_labels(self, text: str) -> list[str]:
        """Return unique labels present in the text (uppercase)."""
        return sorted({ent.label for ent in self.analyze(text)})
