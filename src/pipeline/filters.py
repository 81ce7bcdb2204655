"""Primitive inclusion filters for markets, event groups and output records.

Every factory returns a stateless ``PredicateFilter``; thresholds and
pattern lists come from ``FilterConfig`` via ``src.pipeline.registry``.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

from src.config import DEFAULT_ALWAYS_INCLUDE_PATTERNS
from src.connectors.polymarket_gamma import GammaMarket, MarketGroup
from src.pipeline.base import PredicateFilter
from src.storage.models import ConditionGroup, ConditionRecord


# ── Always-include patterns ──────────────────────────────────────────

class AlwaysIncludeMatcher:
    """Case-insensitive regex list; a question matching any is never dropped."""

    def __init__(self, patterns: Sequence[str] = DEFAULT_ALWAYS_INCLUDE_PATTERNS):
        self.patterns = [re.compile(p, re.IGNORECASE) for p in patterns]

    def __call__(self, question: str | None) -> bool:
        if not question:
            return False
        return any(p.search(question) for p in self.patterns)


# ── Market filters ───────────────────────────────────────────────────

def binary_markets() -> PredicateFilter[GammaMarket]:
    return PredicateFilter(
        "binary-markets",
        "Keep only markets with exactly 2 outcomes",
        lambda m: m.is_binary,
    )


def market_volume_threshold(min_volume: float) -> PredicateFilter[GammaMarket]:
    return PredicateFilter(
        "market-volume-threshold",
        f"Keep markets with volume >= ${min_volume:,.0f}",
        lambda m: m.volume >= min_volume,
    )


def market_liquidity_threshold(min_liquidity: float) -> PredicateFilter[GammaMarket]:
    return PredicateFilter(
        "market-liquidity-threshold",
        f"Keep markets with liquidity >= ${min_liquidity:,.0f}",
        lambda m: m.liquidity >= min_liquidity,
    )


def always_include_markets(matcher: AlwaysIncludeMatcher) -> PredicateFilter[GammaMarket]:
    return PredicateFilter(
        "always-include-markets",
        "Keep markets matching Fed/S&P/BTC/ETH patterns regardless of volume",
        lambda m: matcher(m.question),
    )


def exclude_existing(existing_ids: Iterable[str]) -> PredicateFilter[GammaMarket]:
    known = frozenset(existing_ids)
    return PredicateFilter(
        "exclude-existing",
        "Skip markets already in the registry",
        lambda m: m.condition_id not in known,
    )


# ── Group filters ────────────────────────────────────────────────────

def volume_threshold(min_volume: float) -> PredicateFilter[MarketGroup]:
    return PredicateFilter(
        "volume-threshold",
        f"Keep groups with at least one market having volume >= ${min_volume:,.0f}",
        lambda g: any(m.volume >= min_volume for m in g.markets),
    )


def liquidity_threshold(min_liquidity: float) -> PredicateFilter[MarketGroup]:
    return PredicateFilter(
        "liquidity-threshold",
        f"Keep groups with at least one market having liquidity >= ${min_liquidity:,.0f}",
        lambda g: any(m.liquidity >= min_liquidity for m in g.markets),
    )


def always_include_groups(matcher: AlwaysIncludeMatcher) -> PredicateFilter[MarketGroup]:
    return PredicateFilter(
        "always-include-groups",
        "Keep groups matching Fed/S&P/BTC/ETH patterns regardless of volume",
        lambda g: any(matcher(m.question) for m in g.markets),
    )


def single_market_groups() -> PredicateFilter[MarketGroup]:
    return PredicateFilter(
        "single-market-groups",
        "Remove groups with only 1 market (moved to ungrouped)",
        lambda g: len(g.markets) > 1,
    )


# ── Submission filters (output records) ──────────────────────────────

def _restricted_label(restricted: frozenset[str]) -> str:
    return "-".join(sorted(restricted)) or "none"


def non_restricted_conditions(restricted: Iterable[str]) -> PredicateFilter[ConditionRecord]:
    blocked = frozenset(restricted)
    return PredicateFilter(
        f"non-{_restricted_label(blocked)}",
        f"Keep conditions outside: {', '.join(sorted(blocked)) or 'none'}",
        lambda c: c.category_slug not in blocked,
    )


def non_restricted_groups(restricted: Iterable[str]) -> PredicateFilter[ConditionGroup]:
    blocked = frozenset(restricted)
    return PredicateFilter(
        f"non-{_restricted_label(blocked)}-groups",
        f"Keep groups outside: {', '.join(sorted(blocked)) or 'none'}",
        lambda g: g.category_slug not in blocked,
    )


def always_include_conditions(matcher: AlwaysIncludeMatcher) -> PredicateFilter[ConditionRecord]:
    return PredicateFilter(
        "always-include-conditions",
        "Keep conditions matching Fed/S&P/BTC/ETH patterns",
        lambda c: matcher(c.question),
    )


def always_include_condition_groups(
    matcher: AlwaysIncludeMatcher,
) -> PredicateFilter[ConditionGroup]:
    return PredicateFilter(
        "always-include-condition-groups",
        "Keep groups with Fed/S&P/BTC/ETH conditions",
        lambda g: any(matcher(c.question) for c in g.conditions),
    )
