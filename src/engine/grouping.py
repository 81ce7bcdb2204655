"""Assemble enriched markets into the exported condition document.

Markets sharing a parent event become a condition group; markets with no
event, and events that only carry one market after filtering, are emitted
as ungrouped conditions.
"""

from __future__ import annotations

import datetime as dt
from collections import Counter
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from src.connectors.polymarket_gamma import GammaMarket, MarketGroup
from src.engine.question_transform import transform_match_question
from src.observability.logger import get_logger
from src.pipeline.base import FilterStats, run_pipeline
from src.pipeline.registry import Pipelines
from src.storage.models import (
    DEFAULT_CATEGORY,
    ConditionGroup,
    ConditionRecord,
    DocumentMetadata,
    EnrichmentResult,
    OutputDocument,
)

log = get_logger(__name__)

CHAIN_ID_ETHEREAL = 5064014
POLYMARKET_URL = "https://polymarket.com"


def polymarket_url(market: GammaMarket) -> str:
    return f"{POLYMARKET_URL}#{market.slug}"


def group_markets(markets: Sequence[GammaMarket]) -> Tuple[List[MarketGroup], List[GammaMarket]]:
    """Split markets into event groups (first-seen order) and ungrouped markets."""
    groups: Dict[str, MarketGroup] = {}
    ungrouped: List[GammaMarket] = []
    for market in markets:
        if not market.event_title:
            ungrouped.append(market)
            continue
        group = groups.get(market.event_title)
        if group is None:
            group = MarketGroup(title=market.event_title, event_slug=market.event_slug)
            groups[market.event_title] = group
        group.markets.append(market)
    return list(groups.values()), ungrouped


def prepare_markets(
    markets: Sequence[GammaMarket],
    pipelines: Pipelines,
) -> Tuple[List[MarketGroup], List[GammaMarket], Dict[str, List[FilterStats]]]:
    """Group markets and run the group, ungrouped and single-member pipelines.

    Groups left with one market are demoted: their market joins the
    ungrouped list after the ungrouped filters have run.
    """
    all_groups, loose = group_markets(markets)

    grouped = run_pipeline(all_groups, pipelines.group_filters, label="groups")
    singles = run_pipeline(grouped.output, pipelines.single_market_filters, label="single-market")
    ungrouped = run_pipeline(loose, pipelines.ungrouped_market_filters, label="ungrouped")

    demoted = [m for g in singles.removed for m in g.markets]
    stats = {
        "groups": grouped.stats,
        "single_market": singles.stats,
        "ungrouped": ungrouped.stats,
    }
    return singles.output, ungrouped.output + demoted, stats


def majority_category(conditions: Sequence[ConditionRecord]) -> str:
    """Most common category slug; ties go to the slug reached first."""
    counts = Counter(c.category_slug for c in conditions)
    best, best_count = DEFAULT_CATEGORY.value, 0
    for slug, count in counts.items():
        if count > best_count:
            best, best_count = slug, count
    return best


def _first_line(text: str) -> str:
    return text.split("\n", 1)[0].strip() if text else ""


def group_description(group: MarketGroup) -> str:
    first = group.markets[0] if group.markets else None
    if first is not None:
        line = _first_line(first.event_description) or _first_line(first.description)
        if line:
            return line
    return group.title


def to_condition(
    market: GammaMarket,
    enrichment: Optional[EnrichmentResult],
    *,
    chain_id: int = CHAIN_ID_ETHEREAL,
    group_title: Optional[str] = None,
) -> ConditionRecord:
    question = transform_match_question(market)
    if enrichment is not None:
        category, short_name = enrichment.category.value, enrichment.short_name
    else:
        log.warning("grouping.missing_enrichment", market_id=market.condition_id)
        category, short_name = DEFAULT_CATEGORY.value, question
    return ConditionRecord(
        condition_hash=market.condition_id,
        question=question,
        short_name=short_name,
        end_date=market.end_date,
        description=market.description,
        similar_markets=[polymarket_url(market)],
        category_slug=category,
        chain_id=chain_id,
        group_title=group_title,
    )


def build_document(
    groups: Sequence[MarketGroup],
    ungrouped: Sequence[GammaMarket],
    enrichments: Mapping[str, EnrichmentResult],
    *,
    chain_id: int = CHAIN_ID_ETHEREAL,
    generated_at: Optional[dt.datetime] = None,
) -> OutputDocument:
    condition_groups: List[ConditionGroup] = []
    for group in groups:
        conditions = [
            to_condition(m, enrichments.get(m.condition_id), chain_id=chain_id, group_title=group.title)
            for m in group.markets
        ]
        condition_groups.append(ConditionGroup(
            title=group.title,
            category_slug=majority_category(conditions),
            description=group_description(group),
            conditions=conditions,
        ))

    # sorted() is stable, so equal-sized groups keep first-seen order
    condition_groups = sorted(condition_groups, key=lambda g: len(g.conditions), reverse=True)

    loose = [to_condition(m, enrichments.get(m.condition_id), chain_id=chain_id) for m in ungrouped]
    total = sum(len(g.conditions) for g in condition_groups) + len(loose)
    generated_at = generated_at or dt.datetime.now(dt.timezone.utc)

    return OutputDocument(
        metadata=DocumentMetadata(
            generated_at=generated_at.isoformat().replace("+00:00", "Z"),
            total_conditions=total,
            total_groups=len(condition_groups),
            binary_conditions=total,
        ),
        groups=condition_groups,
        ungrouped_conditions=loose,
    )
