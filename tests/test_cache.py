"""Tests for src.storage.cache: run-scoped enrichment cache."""

from __future__ import annotations

from src.storage.cache import EnrichmentCache
from src.storage.models import Category, EnrichmentResult, Source


def _result(mid: str, short_name: str = "Short") -> EnrichmentResult:
    return EnrichmentResult(
        market_id=mid,
        category=Category.SPORTS,
        short_name=short_name,
        short_name_source=Source.LLM,
    )


class TestEnrichmentCache:
    def test_get_and_put(self):
        cache = EnrichmentCache()
        assert cache.get("a") is None
        assert cache.put(_result("a"))
        assert cache.get("a").short_name == "Short"
        assert "a" in cache
        assert len(cache) == 1

    def test_write_once(self):
        cache = EnrichmentCache()
        cache.put(_result("a", "First"))
        assert cache.put(_result("a", "Second")) is False
        assert cache.get("a").short_name == "First"

    def test_instances_are_independent(self):
        first, second = EnrichmentCache(), EnrichmentCache()
        first.put(_result("a"))
        assert "a" not in second


class TestCacheStats:
    def test_counts(self):
        cache = EnrichmentCache()
        cache.put(_result("a"))
        cache.put(_result("a"))
        cache.get("a")
        cache.get("b")
        assert cache.stats == {
            "entries": 1,
            "hits": 1,
            "misses": 1,
            "ignored_writes": 1,
            "hit_rate": 0.5,
        }

    def test_empty_hit_rate(self):
        assert EnrichmentCache().stats["hit_rate"] == 0.0
