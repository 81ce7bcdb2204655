"""Polymarket Gamma (REST) API connector.

Gamma is Polymarket's public market-listing API. We page through active
markets ordered by end date to collect everything that resolves within the
next few days.
"""

from __future__ import annotations

import datetime as dt
import json
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from src.connectors.http_retry import RetryPolicy, fetch_with_retry
from src.connectors.rate_limiter import RateLimiterRegistry, rate_limiter
from src.observability.logger import get_logger

log = get_logger(__name__)

GAMMA_BASE = "https://gamma-api.polymarket.com"


class GammaAPIError(Exception):
    """Non-retryable failure from the listing API (4xx or unreadable body)."""


# ── Data Models ──────────────────────────────────────────────────────

class GammaMarket(BaseModel):
    """Parsed, immutable representation of a Gamma market."""
    model_config = ConfigDict(frozen=True)

    condition_id: str
    question: str = ""
    description: str = ""
    slug: str = ""
    end_date: str = ""
    outcomes: tuple[str, ...] = ()
    volume: float = 0.0
    liquidity: float = 0.0
    sports_market_type: str = ""
    event_title: str = ""
    event_slug: str = ""
    event_description: str = ""
    series_slug: str = ""
    series_title: str = ""

    @property
    def end_time(self) -> dt.datetime | None:
        return parse_timestamp(self.end_date)

    @property
    def is_binary(self) -> bool:
        return len(self.outcomes) == 2


@dataclass
class MarketGroup:
    """Markets sharing one parent event."""
    title: str
    markets: list[GammaMarket] = field(default_factory=list)
    event_slug: str = ""


# ── Client ───────────────────────────────────────────────────────────

class GammaClient:
    """Async client for the Polymarket Gamma API."""

    def __init__(
        self,
        base_url: str = GAMMA_BASE,
        timeout: float = 30.0,
        *,
        retry_policy: RetryPolicy | None = None,
        limiter: RateLimiterRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self._retry = retry_policy or RetryPolicy()
        self._limiter = limiter or rate_limiter

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GammaClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def list_markets_page(
        self, *, end_date_min: dt.datetime, limit: int = 500
    ) -> list[dict[str, Any]]:
        """One page of active markets ending at or after ``end_date_min``."""
        params = {
            "limit": limit,
            "active": "true",
            "closed": "false",
            "order": "endDate",
            "ascending": "true",
            "end_date_min": _iso(end_date_min),
        }
        await self._limiter.get("gamma").acquire()
        resp = await fetch_with_retry(
            self._client, "GET", "/markets", params=params, policy=self._retry
        )
        if resp.is_error:
            log.error("gamma.page_failed", status=resp.status_code, body=resp.text[:500])
            raise GammaAPIError(f"Polymarket API error: {resp.status_code} {resp.reason_phrase}")
        data = resp.json()
        if isinstance(data, dict):
            data = data.get("data", data.get("markets", []))
        return list(data)

    async def fetch_ending_soon(
        self,
        *,
        window_days: int = 7,
        page_size: int = 500,
        min_lead_secs: int = 60,
        now: dt.datetime | None = None,
    ) -> list[GammaMarket]:
        """Collect every market ending within ``window_days`` of ``now``.

        The cursor advances to the latest end date seen in each page; overlap
        between pages is absorbed by de-duplicating on condition ID.
        """
        now = now or dt.datetime.now(dt.timezone.utc)
        cursor = now + dt.timedelta(seconds=min_lead_secs)
        window_end = now + dt.timedelta(days=window_days)

        seen: set[str] = set()
        markets: list[GammaMarket] = []
        page_no = 0
        while True:
            page_no += 1
            raw_page = await self.list_markets_page(end_date_min=cursor, limit=page_size)
            if not raw_page:
                log.info("gamma.page_empty", page=page_no)
                break

            parsed = [parse_market(raw) for raw in raw_page]
            ends = [m.end_time for m in parsed if m.end_time is not None]
            page_max = max(ends) if ends else cursor

            added = 0
            for m in parsed:
                end = m.end_time
                if end is None or end >= window_end or m.condition_id in seen:
                    continue
                seen.add(m.condition_id)
                markets.append(m)
                added += 1

            log.info(
                "gamma.page",
                page=page_no,
                fetched=len(raw_page),
                added=added,
                max_end_date=_iso(page_max),
            )
            if len(raw_page) < page_size or page_max >= window_end or added == 0:
                break
            cursor = page_max

        log.info("gamma.fetch_complete", markets=len(markets), pages=page_no)
        return markets


# ── Parsing helpers ──────────────────────────────────────────────────

def _iso(value: dt.datetime) -> str:
    return value.astimezone(dt.timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> dt.datetime | None:
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _parse_json_str(val: Any) -> list[Any]:
    """Parse a JSON-encoded list, or return the list as-is."""
    if isinstance(val, list):
        return val
    if isinstance(val, str):
        try:
            parsed = json.loads(val)
        except (json.JSONDecodeError, TypeError):
            return []
        if isinstance(parsed, list):
            return parsed
    return []


def _to_float(val: Any) -> float:
    try:
        return max(0.0, float(val))
    except (TypeError, ValueError):
        return 0.0


def parse_market(raw: dict[str, Any]) -> GammaMarket:
    """Convert a raw Gamma JSON blob into a GammaMarket.

    The list endpoint returns ``outcomes`` as a JSON string
    (``'["Yes", "No"]'``); numeric fields arrive as strings.
    """
    events = raw.get("events") or []
    event = events[0] if events and isinstance(events[0], dict) else {}
    series_list = event.get("series") or []
    series = series_list[0] if series_list and isinstance(series_list[0], dict) else {}

    return GammaMarket(
        condition_id=str(raw.get("conditionId") or raw.get("condition_id") or ""),
        question=raw.get("question") or "",
        description=raw.get("description") or "",
        slug=raw.get("slug") or raw.get("marketSlug") or "",
        end_date=raw.get("endDate") or raw.get("end_date") or "",
        outcomes=tuple(str(o) for o in _parse_json_str(raw.get("outcomes", []))),
        volume=_to_float(raw.get("volume", raw.get("volumeNum"))),
        liquidity=_to_float(raw.get("liquidity", raw.get("liquidityNum"))),
        sports_market_type=raw.get("sportsMarketType") or "",
        event_title=event.get("title") or "",
        event_slug=event.get("slug") or "",
        event_description=event.get("description") or "",
        series_slug=series.get("slug") or event.get("seriesSlug") or "",
        series_title=series.get("title") or "",
    )
