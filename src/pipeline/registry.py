"""Canonical filter pipelines, in the order they run during generation.

  1. market_filters            raw markets from the listing API
  2. group_filters             event groups (volume OR always-include)
  3. ungrouped_market_filters  markets with no parent event
  4. single_market_filters     separates one-member groups (demoted to ungrouped)
  5. api_group_filters         output groups before submission
  6. api_condition_filters     output conditions before submission

With ``min_liquidity_usd`` set, liquidity becomes a third way for groups and
ungrouped markets to qualify.

Change filter order or membership here and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, List

from src.config import FilterConfig
from src.connectors.polymarket_gamma import GammaMarket, MarketGroup
from src.pipeline import filters as f
from src.pipeline.base import Filter
from src.pipeline.combinators import UnionFilter
from src.storage.models import ConditionGroup, ConditionRecord


@dataclass
class Pipelines:
    market_filters: List[Filter[GammaMarket]]
    group_filters: List[Filter[MarketGroup]]
    ungrouped_market_filters: List[Filter[GammaMarket]]
    single_market_filters: List[Filter[MarketGroup]]
    api_group_filters: List[Filter[ConditionGroup]]
    api_condition_filters: List[Filter[ConditionRecord]]


def build_pipelines(cfg: FilterConfig | None = None) -> Pipelines:
    cfg = cfg or FilterConfig()
    matcher = f.AlwaysIncludeMatcher(cfg.always_include_patterns)

    group_any: List[Filter[MarketGroup]] = [f.volume_threshold(cfg.min_volume_usd)]
    market_any: List[Filter[GammaMarket]] = [f.market_volume_threshold(cfg.min_volume_usd)]
    if cfg.min_liquidity_usd > 0:
        group_any.append(f.liquidity_threshold(cfg.min_liquidity_usd))
        market_any.append(f.market_liquidity_threshold(cfg.min_liquidity_usd))
    group_any.append(f.always_include_groups(matcher))
    market_any.append(f.always_include_markets(matcher))

    return Pipelines(
        market_filters=[f.binary_markets()],
        group_filters=[UnionFilter(group_any)],
        ungrouped_market_filters=[UnionFilter(market_any)],
        single_market_filters=[f.single_market_groups()],
        api_group_filters=[
            UnionFilter([
                f.non_restricted_groups(cfg.restricted_categories),
                f.always_include_condition_groups(matcher),
            ]),
        ],
        api_condition_filters=[
            UnionFilter([
                f.non_restricted_conditions(cfg.restricted_categories),
                f.always_include_conditions(matcher),
            ]),
        ],
    )


def filter_registry(pipelines: Pipelines | None = None) -> List[Dict[str, Any]]:
    """Name and description of every filter, grouped by pipeline."""
    pipelines = pipelines or build_pipelines()
    return [
        {
            "pipeline": fld.name,
            "filters": [
                {"name": flt.name, "description": flt.description}
                for flt in getattr(pipelines, fld.name)
            ],
        }
        for fld in fields(pipelines)
    ]
