"""Intent scoring policies.

A policy adjusts base table relevance with additive keyword boosts chosen by
the query category. Policies are plain data: the defaults below cover the
financial, gaming, geographic and analytical categories and can be replaced
from a JSON document shaped like::

    {
      "Financial": [
        {"keywords": ["deposit", "transaction"], "boost": 0.3, "reason": "financial_table"},
        {"keywords": ["game"], "boost": -0.2, "reason": "unrelated_domain",
         "unless": ["deposit"]}
      ]
    }

Classes:
- KeywordBoostRule: One keyword family and its additive adjustment
- IntentScoringPolicy: Ordered rules for one query category
- PolicyRegistry: Policies keyed by query category
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
import json
from pathlib import Path
from typing import Any

from fastmcp.utilities.logging import get_logger

from .constants import QueryCategory
from .utils import stem_token

# Logger
_logger = get_logger("context_engine.policies")


def _stems(words: Iterable[str]) -> frozenset[str]:
    return frozenset(stem_token(w.strip().lower()) for w in words if w.strip())


@dataclass(frozen=True)
class KeywordBoostRule:
    """Additive adjustment applied when table tokens match a keyword family.

    Attributes:
        keywords: Stemmed keywords to look for in the table's name/purpose/domain
        boost: Additive adjustment, negative values penalize
        reason: Reason code recorded on boosted elements
        require_all: Require every keyword instead of any
        unless: Skip the rule when any of these keywords is present
    """

    keywords: frozenset[str]
    boost: float
    reason: str
    require_all: bool = False
    unless: frozenset[str] = frozenset()

    def matches(self, tokens: frozenset[str]) -> bool:
        if not self.keywords or self.unless & tokens:
            return False
        if self.require_all:
            return self.keywords <= tokens
        return bool(self.keywords & tokens)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> KeywordBoostRule:
        return cls(
            keywords=_stems(data.get("keywords", ())),
            boost=float(data["boost"]),
            reason=str(data.get("reason", "intent_boost")),
            require_all=bool(data.get("require_all", False)),
            unless=_stems(data.get("unless", ())),
        )


@dataclass(frozen=True)
class IntentScoringPolicy:
    """Ordered keyword rules applied for one query category."""

    category: QueryCategory
    rules: tuple[KeywordBoostRule, ...] = ()

    def adjustments(self, tokens: frozenset[str]) -> list[tuple[float, str]]:
        """Return ``(boost, reason)`` for every rule matching the tokens."""
        return [(rule.boost, rule.reason) for rule in self.rules if rule.matches(tokens)]


def _rule(
    keywords: Iterable[str],
    boost: float,
    reason: str,
    *,
    require_all: bool = False,
    unless: Iterable[str] = (),
) -> KeywordBoostRule:
    return KeywordBoostRule(_stems(keywords), boost, reason, require_all, _stems(unless))


DEFAULT_POLICIES: dict[QueryCategory, IntentScoringPolicy] = {
    QueryCategory.FINANCIAL: IntentScoringPolicy(
        QueryCategory.FINANCIAL,
        (
            _rule(
                ["deposit", "transaction", "payment", "financial", "withdrawal"],
                0.30,
                "financial_table",
            ),
            _rule(["daily", "action"], 0.25, "daily_activity_table", require_all=True),
            _rule(["player", "user", "customer", "account"], 0.20, "entity_table"),
            _rule(["country", "location", "region", "geographic"], 0.20, "geographic_table"),
            _rule(
                ["game"],
                -0.20,
                "unrelated_domain",
                unless=["deposit", "transaction", "payment", "financial"],
            ),
        ),
    ),
    QueryCategory.GAMING: IntentScoringPolicy(
        QueryCategory.GAMING,
        (
            _rule(["game", "session", "activity", "round", "spin"], 0.25, "gaming_table"),
            _rule(["player", "user"], 0.15, "entity_table"),
        ),
    ),
    QueryCategory.GEOGRAPHIC: IntentScoringPolicy(
        QueryCategory.GEOGRAPHIC,
        (
            _rule(
                ["country", "region", "location", "city", "geographic"], 0.30, "geographic_table"
            ),
            _rule(["player", "customer", "user"], 0.10, "entity_table"),
        ),
    ),
    QueryCategory.ANALYTICAL: IntentScoringPolicy(
        QueryCategory.ANALYTICAL,
        (_rule(["daily", "summary", "aggregate", "fact", "stat"], 0.15, "analytical_table"),),
    ),
}


class PolicyRegistry:
    """Intent scoring policies keyed by query category."""

    def __init__(
        self, policies: Mapping[QueryCategory, IntentScoringPolicy] | None = None
    ) -> None:
        self._policies = dict(DEFAULT_POLICIES if policies is None else policies)

    def for_category(self, category: QueryCategory) -> IntentScoringPolicy:
        """Return the policy for a category, or an empty policy."""
        return self._policies.get(category) or IntentScoringPolicy(category)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PolicyRegistry:
        """Build a registry from ``{category: [rule, ...]}`` data.

        Categories missing from ``data`` keep their default policy.

        Raises:
            ValueError: If a category name or rule is invalid
        """
        policies = dict(DEFAULT_POLICIES)
        for name, rules in data.items():
            try:
                category = QueryCategory(name)
            except ValueError:
                if name.upper() not in QueryCategory.__members__:
                    msg = f"Unknown query category in scoring policy: {name!r}"
                    raise ValueError(msg) from None
                category = QueryCategory[name.upper()]
            try:
                parsed = tuple(KeywordBoostRule.from_mapping(rule) for rule in rules)
            except (KeyError, TypeError) as exc:
                msg = f"Invalid scoring rule for category {name!r}: {exc}"
                raise ValueError(msg) from exc
            policies[category] = IntentScoringPolicy(category, parsed)
        return cls(policies)

    @classmethod
    def from_json_file(cls, path: str | Path) -> PolicyRegistry:
        """Load a registry from a JSON file (see module docstring)."""
        with Path(path).open(encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            msg = f"Scoring policy file {path} must contain a JSON object"
            raise ValueError(msg)
        registry = cls.from_mapping(data)
        _logger.info("Loaded scoring policies for %d categories from %s", len(data), path)
        return registry
