"""Deterministic short display names for common market archetypes.

``classify_short_name`` walks an ordered rule list (player props, totals,
spreads, matchups, price thresholds, ...) and returns the first hit, or
``None`` when no archetype applies and the LLM should be asked instead.
"""

from __future__ import annotations

import re
from typing import Callable, List, Optional, Tuple

from src.connectors.polymarket_gamma import GammaMarket


# ── Lookup tables ────────────────────────────────────────────────────

TEAM_ABBREVIATIONS: dict[str, str] = {
    # NBA
    "Lakers": "LAL", "Celtics": "BOS", "Warriors": "GSW", "Knicks": "NYK",
    "Bulls": "CHI", "Heat": "MIA", "Nuggets": "DEN", "Suns": "PHX",
    "Bucks": "MIL", "Cavaliers": "CLE", "76ers": "PHI", "Sixers": "PHI",
    "Mavericks": "DAL", "Clippers": "LAC", "Kings": "SAC", "Hawks": "ATL",
    "Nets": "BKN", "Jazz": "UTA", "Timberwolves": "MIN", "Pelicans": "NOP",
    "Rockets": "HOU", "Spurs": "SAS", "Magic": "ORL", "Pacers": "IND",
    "Hornets": "CHA", "Raptors": "TOR", "Wizards": "WAS", "Thunder": "OKC",
    "Blazers": "POR", "Pistons": "DET", "Grizzlies": "MEM",
    # NFL
    "Chiefs": "KC", "Eagles": "PHI", "Bills": "BUF", "Cowboys": "DAL",
    "Dolphins": "MIA", "Ravens": "BAL", "Bengals": "CIN", "Lions": "DET",
    "Packers": "GB", "49ers": "SF", "Seahawks": "SEA", "Commanders": "WAS",
    "Steelers": "PIT", "Browns": "CLE", "Chargers": "LAC", "Raiders": "LV",
    "Broncos": "DEN", "Vikings": "MIN", "Bears": "CHI", "Saints": "NO",
    "Buccaneers": "TB", "Falcons": "ATL", "Panthers": "CAR", "Cardinals": "ARI",
    "Rams": "LAR", "Giants": "NYG", "Jets": "NYJ", "Patriots": "NE",
    "Colts": "IND", "Texans": "HOU", "Jaguars": "JAX", "Titans": "TEN",
    # MLB
    "Yankees": "NYY", "Dodgers": "LAD", "Red Sox": "BOS", "Mets": "NYM",
    "Cubs": "CHC", "Astros": "HOU", "Braves": "ATL", "Phillies": "PHI",
    # e-sports
    "Vitality": "VIT", "NaVi": "NAVI", "Natus Vincere": "NAVI", "G2": "G2",
    "Fnatic": "FNC", "Cloud9": "C9", "Team Liquid": "TL", "Team Spirit": "TS",
    "Astralis": "AST", "FaZe": "FAZE", "MOUZ": "MOUZ", "Heroic": "HRC",
    "ENCE": "ENCE", "BIG": "BIG", "Complexity": "COL", "Evil Geniuses": "EG",
    "100 Thieves": "100T", "Sentinels": "SEN", "LOUD": "LOUD", "DRX": "DRX",
    "Gen": "GEN", "T1": "T1",
}

ASSET_ABBREVIATIONS: dict[str, str] = {
    "Bitcoin": "BTC", "Ethereum": "ETH", "Solana": "SOL", "XRP": "XRP",
    "Cardano": "ADA", "Dogecoin": "DOGE", "Polkadot": "DOT", "Avalanche": "AVAX",
    "Chainlink": "LINK", "Polygon": "MATIC",
    "S&P 500": "SPX", "S&P 500 (SPX)": "SPX", "Nasdaq": "NDX", "Dow Jones": "DJI",
    "Gold": "XAU", "Silver": "XAG",
    "Tesla": "TSLA", "Apple": "AAPL", "Microsoft": "MSFT", "Amazon": "AMZN",
    "Google": "GOOG", "Meta": "META", "Nvidia": "NVDA",
}

STAT_ABBREVIATIONS: dict[str, str] = {
    "points": "pts", "rebounds": "reb", "assists": "ast", "steals": "stl",
    "blocks": "blk", "turnovers": "to", "3-pointers": "3pts",
    "fantasy points": "fpts",
}

MONTH_ABBREVIATIONS: dict[str, str] = {
    "january": "Jan", "february": "Feb", "march": "Mar", "april": "Apr",
    "may": "May", "june": "Jun", "july": "Jul", "august": "Aug",
    "september": "Sep", "october": "Oct", "november": "Nov", "december": "Dec",
}

# Outcome labels that say nothing about who is playing
STANDARD_OUTCOMES = frozenset({"Yes", "No", "Over", "Under", "Up", "Down"})

_VOWEL_START = re.compile(r"^[aeiou]", re.IGNORECASE)
_NON_ALPHA = re.compile(r"[^a-z]", re.IGNORECASE)
_NON_CONSONANT = re.compile(r"[^bcdfghjklmnpqrstvwxyz]", re.IGNORECASE)
_DAY = re.compile(r"\s+(\d{1,2})(?:st|nd|rd|th)?\b")


def team_abbreviation(name: str) -> str:
    """Table lookup, else a generated 3-letter code."""
    name = name.strip()
    if name in TEAM_ABBREVIATIONS:
        return TEAM_ABBREVIATIONS[name]
    if len(name) <= 3:
        return name.upper()
    if _VOWEL_START.match(name):
        return _NON_ALPHA.sub("", name)[:3].upper()
    consonants = _NON_CONSONANT.sub("", name)
    if len(consonants) >= 3:
        return consonants[:3].upper()
    return name[:3].upper()


def asset_abbreviation(name: str) -> str:
    name = name.strip()
    return ASSET_ABBREVIATIONS.get(name, name)


def month_abbreviation(text: str) -> str:
    """'January 28' -> 'Jan28'; text without a month name is returned as-is."""
    lower = text.lower()
    for month, abbrev in MONTH_ABBREVIATIONS.items():
        idx = lower.find(month)
        if idx < 0:
            continue
        day = _DAY.match(lower, idx + len(month))
        return f"{abbrev}{day.group(1) if day else ''}"
    return text


def has_team_outcomes(outcomes: tuple[str, ...]) -> bool:
    return (
        len(outcomes) == 2
        and outcomes[0] not in STANDARD_OUTCOMES
        and outcomes[1] not in STANDARD_OUTCOMES
    )


# ═══════════════════════════════════════════════════════════════
#  ARCHETYPE RULES (evaluated in registration order)
# ═══════════════════════════════════════════════════════════════
#
# Each formatter receives the regex match and the market and returns the
# short name, or None to let the next rule try.

_Formatter = Callable[[re.Match, GammaMarket], Optional[str]]

_RULES: List[Tuple[re.Pattern, _Formatter]] = []


def _rule(pattern: str) -> Callable[[_Formatter], _Formatter]:
    compiled = re.compile(pattern, re.IGNORECASE)

    def register(fn: _Formatter) -> _Formatter:
        _RULES.append((compiled, fn))
        return fn

    return register


@_rule(
    r"^(.+?):\s+(Points|Rebounds|Assists|Steals|Blocks|Turnovers|3-Pointers|Fantasy Points)"
    r"\s+Over\s+(\d+(?:\.\d+)?)$"
)
def _player_prop(m: re.Match, market: GammaMarket) -> str:
    player, stat, value = m.groups()
    last_name = player.split(" ")[-1] or player
    return f"{last_name} O{value}{STAT_ABBREVIATIONS.get(stat.lower(), '')}"


@_rule(r"^(.+?)\s+vs\.?\s+(.+?):\s+(?:(1H|2H|1Q|2Q|3Q|4Q)\s+)?O/U\s+(\d+(?:\.\d+)?)$")
def _over_under(m: re.Match, market: GammaMarket) -> str:
    team1, team2, period, total = m.groups()
    period_str = f" {period}" if period else ""
    return f"{team_abbreviation(team1)}/{team_abbreviation(team2)}{period_str} O{total}"


@_rule(r"^(?:(\S+)\s+)?Spread:\s*(.+?)\s*\(([+-]?\d+(?:\.\d+)?)\)$")
def _spread(m: re.Match, market: GammaMarket) -> str:
    period, team, spread = m.groups()
    period_str = f" {period}" if period else ""
    return f"{team_abbreviation(team)} {spread}{period_str}"


@_rule(r"^(?:.+?:\s+)?(.+?)\s+vs\.?\s+(.+?)(?:\s*[-:].+)?$")
def _matchup(m: re.Match, market: GammaMarket) -> Optional[str]:
    outcomes = market.outcomes
    if not has_team_outcomes(outcomes):
        return None
    return f"{team_abbreviation(outcomes[0])} win vs {team_abbreviation(outcomes[1])}"


@_rule(r"^(.+?)\s+vs\.?\s+(.+?):\s+Both\s+Teams\s+to\s+Score$")
def _both_teams_score(m: re.Match, market: GammaMarket) -> str:
    team1, team2 = m.groups()
    return f"BTTS {team_abbreviation(team1)}/{team_abbreviation(team2)}"


@_rule(r"^(.+?)\s+to\s+win\s+(\d+)\s+maps?\?$")
def _maps(m: re.Match, market: GammaMarket) -> str:
    team, count = m.groups()
    return f"{team_abbreviation(team)} {count}+ maps"


@_rule(r"^(?:(\S+)\s+)?(?:Map\s+|Game\s+)?Handicap:\s*(.+?)\s*\(([+-]?\d+(?:\.\d+)?)\)$")
def _handicap(m: re.Match, market: GammaMarket) -> str:
    _, team, handicap = m.groups()
    return f"{team_abbreviation(team)} {handicap}"


@_rule(r"^(.+?)\s+Up\s+or\s+Down\s+(?:-\s+|on\s+)(.+?)(?:\?)?$")
def _up_or_down(m: re.Match, market: GammaMarket) -> str:
    asset, date_str = m.groups()
    return f"{asset_abbreviation(asset)} up {month_abbreviation(date_str)}"


@_rule(r"Will\s+Elon\s+(?:Musk\s+)?(?:tweet|post).+?about\s+(.+?)\??$")
def _elon_topic(m: re.Match, market: GammaMarket) -> str:
    return f"Elon tweets {asset_abbreviation(m.group(1))}"


@_rule(r"Elon\s+(?:Musk\s+)?(?:tweets?|posts?)\s+(\d+[-\d]*)\+?\s+(?:times\s+)?(.+?)(?:\?)?$")
def _elon_count(m: re.Match, market: GammaMarket) -> str:
    count, period = m.groups()
    return f"Elon {count}+ {month_abbreviation(period)}"


@_rule(r"\b(fed|federal\s+reserve)\b.+?(cut|hike|raise|hold).+?(\w+(?:\s+\d+)?)")
def _fed_decision(m: re.Match, market: GammaMarket) -> str:
    _, action, period = m.groups()
    tail = market.question[m.end(2):]
    dated = month_abbreviation(tail)
    action = action.lower()
    if action == "raise":
        action = "hike"
    return f"Fed {action} {dated if dated != tail else period}"


@_rule(r"\b(bitcoin|btc|ethereum|eth|solana|sol)\b.+?(above|below|over|under)\s*\$?([\d,]+k?)")
def _crypto_threshold(m: re.Match, market: GammaMarket) -> str:
    asset, comparison, value = m.groups()
    symbol = ">" if comparison.lower() in ("above", "over") else "<"
    return f"{asset_abbreviation(asset[0].upper() + asset[1:])} {symbol}${value}"


@_rule(r"price\s+of\s+(\w+)\s+be\s+between\s+\$?([\d,]+)\s+and\s+\$?([\d,]+)")
def _price_between(m: re.Match, market: GammaMarket) -> str:
    asset, low, high = m.groups()
    return f"{asset_abbreviation(asset)} ${low}-{high}"


@_rule(r"price\s+of\s+(\w+)\s+be\s+(above|below|greater\s+than|less\s+than)\s+\$?([\d,]+)")
def _price_above_below(m: re.Match, market: GammaMarket) -> str:
    asset, comparison, value = m.groups()
    comparison = comparison.lower()
    symbol = ">" if ("above" in comparison or "greater" in comparison) else "<"
    return f"{asset_abbreviation(asset)} {symbol}${value}"


@_rule(r"(\w+)\s+(reach|dip\s+to)\s+\$?([\d,]+)")
def _reach_or_dip(m: re.Match, market: GammaMarket) -> str:
    asset, action, value = m.groups()
    action = "dip" if "dip" in action.lower() else "reach"
    return f"{asset_abbreviation(asset)} {action} ${value}"


@_rule(
    r"temperature\s+increase\s+by\s+(?:between\s+)?([\d.]+)(?:[°º]?C)?"
    r"(?:\s+and\s+([\d.]+)(?:[°º]?C)?)?\s+in\s+(\w+)"
)
def _temperature(m: re.Match, market: GammaMarket) -> str:
    low, high, month = m.groups()
    spread = f"{low}-{high}" if high else low
    return f"Temp +{spread}C {month_abbreviation(month)}"


@_rule(r"^(.+?)\s+Team\s+Total:\s+O/U\s+(\d+(?:\.\d+)?)$")
def _team_total(m: re.Match, market: GammaMarket) -> str:
    team, total = m.groups()
    return f"{team_abbreviation(team)} Total O{total}"


def classify_short_name(market: GammaMarket) -> Optional[str]:
    """Return a short display name, or None when no archetype matches."""
    for pattern, fmt in _RULES:
        m = pattern.search(market.question)
        if m is None:
            continue
        name = fmt(m, market)
        if name:
            return name
    return None


def fallback_short_name(market: GammaMarket) -> str:
    return classify_short_name(market) or market.question or market.condition_id
