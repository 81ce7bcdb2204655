"""Run-scoped enrichment cache.

Maps market ID -> EnrichmentResult for the lifetime of one generation run.
The generator creates one instance per run and hands it to the enricher;
nothing is persisted and there is no module-level instance.

Entries are write-once: the first LLM-derived result for a market is
authoritative for the rest of the run.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from src.observability.logger import get_logger
from src.storage.models import EnrichmentResult

log = get_logger(__name__)


class EnrichmentCache:
    def __init__(self) -> None:
        self._entries: Dict[str, EnrichmentResult] = {}
        self._hits = 0
        self._misses = 0
        self._ignored_writes = 0

    def get(self, market_id: str) -> Optional[EnrichmentResult]:
        entry = self._entries.get(market_id)
        if entry is None:
            self._misses += 1
        else:
            self._hits += 1
        return entry

    def put(self, result: EnrichmentResult) -> bool:
        """Store ``result``; returns False when the ID already has an entry."""
        if result.market_id in self._entries:
            self._ignored_writes += 1
            log.debug("cache.write_ignored", market_id=result.market_id)
            return False
        self._entries[result.market_id] = result
        return True

    def __contains__(self, market_id: object) -> bool:
        return market_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "ignored_writes": self._ignored_writes,
            "hit_rate": round(self._hits / lookups, 3) if lookups else 0.0,
        }
