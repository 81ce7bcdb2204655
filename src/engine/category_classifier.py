"""Keyword-based category classifier for Polymarket markets.

Rules are evaluated in a fixed priority order and the first match wins, so a
"Lakers vs. Celtics" market stays in sports even though "celtics" could
plausibly appear elsewhere. Returns the ``UNKNOWN`` sentinel when nothing
matches; callers decide whether to ask the LLM or fall back.

Pure and dependency-free: safe to call at filter time.
"""

from __future__ import annotations

import re
from typing import List, Tuple

from src.connectors.polymarket_gamma import GammaMarket
from src.storage.models import DEFAULT_CATEGORY, UNKNOWN, Category, CategoryGuess


# ═══════════════════════════════════════════════════════════════
#  CLASSIFICATION RULES
# ═══════════════════════════════════════════════════════════════

_Rule = Tuple[re.Pattern, Category]

_RULES: List[_Rule] = []


def _r(words: str, category: Category) -> None:
    _RULES.append((re.compile(rf"\b({words})\b", re.IGNORECASE), category))


_r(
    r"pga|nba|nfl|nhl|mlb|epl|premier-league|uefa|fifa|world-cup|super-bowl|bowl"
    r"|playoff|championship|bundesliga|la-liga|serie-a|ligue-1|champions-league"
    r"|valorant|league-of-legends|dota|soccer|football|basketball|baseball|hockey"
    r"|tennis|golf|ufc|boxing|mma|formula-1|cricket|rugby|buccaneers|chiefs|eagles"
    r"|49ers|cowboys|packers|patriots|lakers|warriors|celtics|yankees|dodgers|mets"
    r"|red-sox",
    Category.SPORTS,
)
_r(
    r"bitcoin|btc|ethereum|eth|solana|sol|xrp|crypto|cryptocurrency|blockchain"
    r"|defi|nft|token|coin|satoshi",
    Category.CRYPTO,
)
_r(
    r"weather|temperature|hottest|coldest|hurricane|tornado|flood|drought|rain"
    r"|snow|climate|celsius|fahrenheit|el-nino",
    Category.WEATHER,
)
_r(
    r"ai|artificial-intelligence|chatgpt|openai|tech|technology|science|nasa"
    r"|space|spacex|tesla|apple|google|microsoft|amazon|meta|robot|quantum"
    r"|semiconductor|chip",
    Category.TECH_SCIENCE,
)
# "s&p" ends in a letter so the trailing \b still holds
_r(
    r"stock|stocks|s&p|spx|dow|nasdaq|earning|market|fed|federal-reserve"
    r"|interest-rate|inflation|gdp|economy|economic|finance|financial|bank"
    r"|dollar|euro|yen|bond|treasury",
    Category.ECONOMY_FINANCE,
)
_r(
    r"election|president|presidential|senate|senator|congress|governor"
    r"|prime-minister|parliament|vote|voting|poll|republican|democrat|party"
    r"|political|politics|war|military|nato|ukraine|russia|china|israel"
    r"|palestine|iran|korea|taiwan|diplomacy|treaty|sanction",
    Category.GEOPOLITICS,
)
_r(
    r"oscar|emmy|grammy|award|movie|film|music|album|celebrity|actor|actress"
    r"|director|streaming|netflix|spotify|pop-culture|entertainment|fashion|art"
    r"|artist",
    Category.CULTURE,
)


def search_text(market: GammaMarket) -> str:
    parts = [market.question, market.slug, market.series_slug, market.series_title]
    return " ".join(p for p in parts if p).lower()


def classify_category(market: GammaMarket) -> CategoryGuess:
    """Return the first matching category, or ``UNKNOWN``."""
    if market.sports_market_type:
        return Category.SPORTS
    text = search_text(market)
    for pattern, category in _RULES:
        if pattern.search(text):
            return category
    return UNKNOWN


def fallback_category(market: GammaMarket) -> Category:
    guess = classify_category(market)
    return guess if isinstance(guess, Category) else DEFAULT_CATEGORY
