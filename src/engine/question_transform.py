"""Rephrase sports / e-sports market titles as explicit yes/no questions.

Polymarket lists many two-outcome markets with titles like
"Suns vs Heat: 1H Moneyline" or "Spread: Chiefs (-3.5)" where the outcomes
are team names. The registry needs a question whose "Yes" is the first
outcome, e.g. "Suns beats Heat? (1H Moneyline)".
"""

from __future__ import annotations

import re

from src.connectors.polymarket_gamma import GammaMarket
from src.engine.short_name import STANDARD_OUTCOMES
from src.observability.logger import get_logger

log = get_logger(__name__)


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


# ── Standard-outcome patterns (Yes/No, Over/Under, Up/Down) ──────────

_OVER_UNDER = _rx(r"^(.+?)\s+vs\.?\s+(.+?):\s+(?:(1H|2H|1Q|2Q|3Q|4Q)\s+)?O/U\s+(\d+(?:\.\d+)?)$")
_PLAYER_PROP = _rx(
    r"^(.+?):\s+(Points|Rebounds|Assists|Steals|Blocks|Turnovers|3-Pointers|Fantasy Points)"
    r"\s+Over\s+(\d+(?:\.\d+)?)$"
)
_TOTAL_ROUNDS = _rx(r"^Total\s+Rounds\s+Over/Under\s+(\d+(?:\.\d+)?)$")
_GAMES_TOTAL = _rx(r"^Games\s+Total:\s+O/U\s+(\d+(?:\.\d+)?)$")
_MAPS = _rx(r"^(.+?)\s+to\s+win\s+(\d+)\s+maps?\?$")
_BTTS = _rx(r"^(.+?)\s+vs\.?\s+(.+?):\s+Both\s+Teams\s+to\s+Score$")
_UP_DOWN = _rx(r"^(.+?)\s+Up\s+or\s+Down\s+(?:-\s+|on\s+)(.+?)(?:\?)?$")

# ── Team-outcome patterns ────────────────────────────────────────────

_SPREAD = _rx(r"^(?:(\S+)\s+)?Spread:\s*.+?\s*\(([+-]?\d+(?:\.\d+)?)\)$")
_HANDICAP = _rx(r"^(?:(\S+)\s+)?(?:Map\s+|Game\s+)?Handicap:\s*.+?\s*\(([+-]?\d+(?:\.\d+)?)\)$")
_HANDICAP_KIND = _rx(r"^(?:(\S+)\s+)?(Map|Game)\s+Handicap:")
_SERIES_HANDICAP = _rx(r"^Series\s+(.+?)\s+(\w+)\s+Handicap\s+\(([+-]?\d+(?:\.\d+)?)\)$")
_MOST = _rx(r"^(?:Series:\s+)?Most\s+(\w+)\?$")
_VERSUS = _rx(
    r"^(?:(.+?):\s+)?(.+?)\s+vs\.?\s+(.+?)(?::\s+(.+?))?(?:\s+-\s+(.+?))?(?:\s+\((.+?)\))?$"
)

_STAT_VERBS = {"points": "score", "assists": "record", "rebounds": "grab"}


def _context(*parts: str | None) -> str:
    present = [p for p in parts if p]
    return f" ({', '.join(present)})" if present else ""


def _standard_outcome_question(question: str) -> str | None:
    m = _OVER_UNDER.search(question)
    if m:
        team1, team2, period, total = m.groups()
        period_text = f"{period} " if period else ""
        return f"Will {team1} vs {team2} {period_text}total be over {total}?"

    m = _PLAYER_PROP.search(question)
    if m:
        player, stat, value = m.groups()
        stat = stat.lower()
        return f"Will {player} {_STAT_VERBS.get(stat, 'get')} over {value} {stat}?"

    m = _TOTAL_ROUNDS.search(question)
    if m:
        return f"Will total rounds be over {m.group(1)}?"

    m = _GAMES_TOTAL.search(question)
    if m:
        return f"Will total games be over {m.group(1)}?"

    m = _MAPS.search(question)
    if m:
        team, count = m.groups()
        return f"Will {team} win at least {count} {'map' if count == '1' else 'maps'}?"

    m = _BTTS.search(question)
    if m:
        team1, team2 = m.groups()
        return f"Will both {team1} and {team2} score?"

    m = _UP_DOWN.search(question)
    if m:
        asset, when = m.groups()
        return f"Will {asset} go up on {when}?"

    return None


def _team_outcome_question(question: str, first: str, second: str) -> str | None:
    m = _SPREAD.search(question)
    if m:
        prefix, spread = m.groups()
        return f"{first} covers {spread} spread vs {second}?{_context(prefix)}"

    m = _HANDICAP.search(question)
    if m:
        prefix, handicap = m.groups()
        kind = _HANDICAP_KIND.search(question)
        kind_text = kind.group(2).lower() if kind else None
        return f"{first} covers {handicap} handicap vs {second}?{_context(prefix, kind_text)}"

    m = _SERIES_HANDICAP.search(question)
    if m:
        team, kind, handicap = m.groups()
        return f"Will {team} cover the {handicap} {kind.lower()} handicap vs {second}?"

    m = _MOST.search(question)
    if m:
        return f"{first} gets most {m.group(1)}?"

    m = _VERSUS.search(question)
    if m:
        prefix, _, _, colon_suffix, dash_suffix, paren_suffix = m.groups()
        return f"{first} beats {second}?{_context(prefix, paren_suffix, dash_suffix, colon_suffix)}"

    return None


def transform_match_question(market: GammaMarket) -> str:
    """Return the yes/no phrasing of a two-outcome match market.

    Markets that are not two-outcome, or that match no known pattern, keep
    their original question.
    """
    question = market.question
    outcomes = market.outcomes
    if len(outcomes) != 2:
        return question

    transformed = _standard_outcome_question(question)
    if transformed is None:
        if outcomes[0] in STANDARD_OUTCOMES or outcomes[1] in STANDARD_OUTCOMES:
            return question
        transformed = _team_outcome_question(question, outcomes[0], outcomes[1])
    if transformed is None:
        return question

    log.debug("question_transform.rewrite", before=question, after=transformed)
    return transformed
