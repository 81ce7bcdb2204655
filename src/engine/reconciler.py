"""Turn free-text LLM answers back into per-market results.

The model is asked for one CSV-ish line per market (``id,category`` /
``id,shortName`` / ``id,category,shortName``). Models routinely add code
fences, echo a header row or mangle a character of a long hex ID, so
matching runs in three passes:

  1. exact ID match
  2. fuzzy match: Levenshtein distance < FUZZY_MATCH_THRESHOLD against the
     IDs still unaccounted for
  3. whatever is left is reported as missing
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from src.observability.logger import get_logger
from src.storage.models import DEFAULT_CATEGORY, Category

log = get_logger(__name__)

FUZZY_MATCH_THRESHOLD = 5

CATEGORY = "category"
SHORT_NAME = "short_name"

_SKIP_PREFIXES = ("```", "<")
_QUOTES = "\"'` "


@dataclass(frozen=True)
class ParsedLine:
    raw_id: str
    values: Tuple[str, ...]


@dataclass
class ReconciledEntry:
    market_id: str
    category: Optional[Category] = None
    short_name: Optional[str] = None
    fuzzy: bool = False


@dataclass
class Reconciliation:
    entries: Dict[str, ReconciledEntry] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)
    malformed_lines: int = 0


def parse_lines(text: str, arity: int) -> Tuple[List[ParsedLine], int]:
    """Split a response into ``arity``-field rows.

    Only the first ``arity - 1`` commas separate fields, so the last field
    may itself contain commas. Returns the rows and the count of malformed
    lines that were skipped.
    """
    rows: List[ParsedLine] = []
    malformed = 0
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line or line.startswith(_SKIP_PREFIXES) or line.lower().startswith("id,"):
            continue
        parts = line.split(",", arity - 1)
        if len(parts) < arity:
            malformed += 1
            log.warning("reconciler.malformed_line", line=line[:80], expected_fields=arity)
            continue
        parts = [p.strip().strip(_QUOTES) for p in parts]
        rows.append(ParsedLine(raw_id=parts[0], values=tuple(parts[1:])))
    return rows, malformed


def closest_id(candidate: str, pool: Sequence[str]) -> Optional[str]:
    """Closest ID in ``pool`` with distance below the threshold; first wins ties."""
    best: Optional[str] = None
    best_distance = FUZZY_MATCH_THRESHOLD
    for known in pool:
        distance = Levenshtein.distance(candidate, known)
        if distance < best_distance:
            best, best_distance = known, distance
    return best


def _entry(market_id: str, row: ParsedLine, fields: Sequence[str], fuzzy: bool) -> ReconciledEntry:
    entry = ReconciledEntry(market_id=market_id, fuzzy=fuzzy)
    for name, value in zip(fields, row.values):
        if name == CATEGORY:
            entry.category = Category.parse(value) or DEFAULT_CATEGORY
        elif name == SHORT_NAME:
            entry.short_name = value or None
    return entry


def reconcile(text: str, known_ids: Iterable[str], fields: Sequence[str]) -> Reconciliation:
    """Match response rows to ``known_ids``.

    ``fields`` names the columns after the ID, e.g. ``(CATEGORY, SHORT_NAME)``.
    Each known ID is assigned at most once; the first row to claim it wins.
    """
    known = list(dict.fromkeys(known_ids))
    known_set = set(known)
    rows, malformed = parse_lines(text, len(fields) + 1)

    result = Reconciliation(malformed_lines=malformed)
    unmatched: List[ParsedLine] = []

    for row in rows:
        if row.raw_id in known_set:
            if row.raw_id not in result.entries:
                result.entries[row.raw_id] = _entry(row.raw_id, row, fields, fuzzy=False)
        else:
            unmatched.append(row)

    for row in unmatched:
        pool = [k for k in known if k not in result.entries]
        if not pool:
            break
        match = closest_id(row.raw_id, pool)
        if match is None:
            log.debug("reconciler.unknown_id", raw_id=row.raw_id[:24])
            continue
        log.info(
            "reconciler.fuzzy_match",
            raw_id=row.raw_id[:24],
            market_id=match[:24],
            distance=Levenshtein.distance(row.raw_id, match),
        )
        result.entries[match] = _entry(match, row, fields, fuzzy=True)

    result.missing = [k for k in known if k not in result.entries]
    if result.missing:
        log.warning(
            "reconciler.missing",
            count=len(result.missing),
            market_ids=[m[:12] for m in result.missing],
        )
    return result
