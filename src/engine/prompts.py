"""Prompt templates for the three LLM enrichment contracts.

Each bucket only asks for what the deterministic rules could not supply,
and the market list is serialised with only the fields that answer needs.
Answers come back one line per market so a single bad line never spoils
the rest of the batch.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from src.connectors.polymarket_gamma import GammaMarket
from src.storage.models import Category

VALID_CATEGORIES = [c.value for c in Category]

_DESCRIPTION_CHARS = 150

_SHORT_NAME_RULES = """\
RULES for shortName:
- MUST be under 20 characters
- Use abbreviations: vs, @, &, >, <
- Team abbreviations: LAL, BOS, NYK, KC, ...
- Asset tickers: BTC, ETH, SPX, ...
- Drop articles (the, a, an) and filler words
- Examples:
  - "Will Lakers beat Celtics?" -> LAL vs BOS
  - "Bitcoin above $100k by Dec?" -> BTC >$100k Dec
  - "Fed rate cut in January?" -> Fed cut Jan
  - "Trump wins 2028 election?" -> Trump 2028"""

CATEGORY_SYSTEM_PROMPT = (
    "You are a prediction market categorization assistant. "
    "Answer with one line per market in the form id,category. "
    "No header row, no markdown code blocks, no commentary."
)

SHORT_NAME_SYSTEM_PROMPT = (
    "You write very short display names for prediction markets. "
    "Answer with one line per market in the form id,shortName. "
    "No header row, no markdown code blocks, no commentary."
)

BOTH_SYSTEM_PROMPT = (
    "You are a prediction market categorization assistant that also writes "
    "very short display names. Answer with one line per market in the form "
    "id,category,shortName. No header row, no markdown code blocks, no commentary."
)

_CATEGORY_PROMPT = """\
Categorize each prediction market.

CATEGORIES: {categories}

MARKETS:
{markets}

Respond with exactly one line per market:
<id>,<category>
Copy every id exactly as given."""

_SHORT_NAME_PROMPT = """\
Write a short display name for each prediction market. The category is
already known and is given for context.

{rules}

MARKETS:
{markets}

Respond with exactly one line per market:
<id>,<shortName>
Copy every id exactly as given."""

_BOTH_PROMPT = """\
Categorize each prediction market and write a short display name for it.

CATEGORIES: {categories}

{rules}

MARKETS:
{markets}

Respond with exactly one line per market:
<id>,<category>,<shortName>
Copy every id exactly as given."""


def _dump(rows: Sequence[dict[str, Any]]) -> str:
    return json.dumps(list(rows), ensure_ascii=False, separators=(",", ":"))


def _base_row(m: GammaMarket) -> dict[str, Any]:
    row: dict[str, Any] = {"id": m.condition_id, "q": m.question}
    if m.description:
        row["desc"] = m.description[:_DESCRIPTION_CHARS]
    if m.event_title:
        row["event"] = m.event_title
    return row


def build_category_prompt(markets: Sequence[GammaMarket], **_: Any) -> str:
    return _CATEGORY_PROMPT.format(
        categories=", ".join(VALID_CATEGORIES),
        markets=_dump([_base_row(m) for m in markets]),
    )


def build_short_name_prompt(
    markets: Sequence[GammaMarket],
    categories: dict[str, Category] | None = None,
    **_: Any,
) -> str:
    categories = categories or {}
    rows = []
    for m in markets:
        row: dict[str, Any] = {"id": m.condition_id, "q": m.question}
        if len(m.outcomes) == 2:
            row["outcomes"] = list(m.outcomes)
        if m.condition_id in categories:
            row["cat"] = categories[m.condition_id].value
        rows.append(row)
    return _SHORT_NAME_PROMPT.format(rules=_SHORT_NAME_RULES, markets=_dump(rows))


def build_both_prompt(markets: Sequence[GammaMarket], **_: Any) -> str:
    rows = []
    for m in markets:
        row = _base_row(m)
        if len(m.outcomes) == 2:
            row["outcomes"] = list(m.outcomes)
        rows.append(row)
    return _BOTH_PROMPT.format(
        categories=", ".join(VALID_CATEGORIES),
        rules=_SHORT_NAME_RULES,
        markets=_dump(rows),
    )
