"""Tests for src.engine.enrichment: bucketed batch orchestration."""

from __future__ import annotations

import re

import httpx
import pytest

from src.connectors.polymarket_gamma import GammaMarket
from src.engine import prompts
from src.engine.enrichment import Bucket, MarketEnricher, RuleOutput, bucket_for
from src.storage.cache import EnrichmentCache
from src.storage.models import Category, EnrichmentResult, Source

_ID_RE = re.compile(r'"id":"([^"]+)"')


# ── Helpers ──────────────────────────────────────────────────────────

class FakeLLM:
    """Answers every market in the prompt, per bucket contract."""

    def __init__(self, error: Exception | None = None, mangle: dict | None = None,
                 drop: set | None = None):
        self.calls: list[tuple[str, list[str]]] = []
        self.error = error
        self.mangle = mangle or {}
        self.drop = drop or set()

    async def complete(self, system: str, user: str, label: str = "") -> str:
        ids = _ID_RE.findall(user)
        self.calls.append((label, ids))
        if self.error is not None:
            raise self.error
        lines = []
        for mid in ids:
            if mid in self.drop:
                continue
            out_id = self.mangle.get(mid, mid)
            if system == prompts.CATEGORY_SYSTEM_PROMPT:
                lines.append(f"{out_id},culture")
            elif system == prompts.SHORT_NAME_SYSTEM_PROMPT:
                lines.append(f"{out_id},LLM name")
            else:
                lines.append(f"{out_id},tech-science,LLM both")
        return "\n".join(lines)


def _id(n: int) -> str:
    return f"0x{n:04d}" + "ab3f9c" * 3


def deterministic(n: int = 1) -> GammaMarket:
    return GammaMarket(condition_id=_id(n), question="Lakers vs. Celtics",
                       outcomes=("Lakers", "Celtics"))


def needs_category(n: int = 2) -> GammaMarket:
    return GammaMarket(condition_id=_id(n), question="Spread: Foo (-3.5)", outcomes=("Foo", "Bar"))


def needs_short_name(n: int = 3) -> GammaMarket:
    return GammaMarket(condition_id=_id(n), question="Who will win the presidential election?",
                       outcomes=("Yes", "No"))


def needs_both(n: int = 4) -> GammaMarket:
    return GammaMarket(condition_id=_id(n), question="Will X happen?", outcomes=("Yes", "No"))


def all_buckets() -> list[GammaMarket]:
    return [deterministic(), needs_category(), needs_short_name(), needs_both()]


# ═══════════════════════════════════════════════════════════════
#  BUCKETING
# ═══════════════════════════════════════════════════════════════


class TestBucketing:
    def test_bucket_for(self):
        assert bucket_for(Category.SPORTS, "LAL") is Bucket.DETERMINISTIC
        assert bucket_for(None, "LAL") is Bucket.NEEDS_CATEGORY
        assert bucket_for(Category.SPORTS, None) is Bucket.NEEDS_SHORT_NAME
        assert bucket_for(None, "") is Bucket.NEEDS_BOTH

    def test_rule_output_buckets(self):
        assert RuleOutput.of(deterministic()).bucket is Bucket.DETERMINISTIC
        assert RuleOutput.of(needs_category()).bucket is Bucket.NEEDS_CATEGORY
        assert RuleOutput.of(needs_short_name()).bucket is Bucket.NEEDS_SHORT_NAME
        assert RuleOutput.of(needs_both()).bucket is Bucket.NEEDS_BOTH


class TestRuleFallback:
    def test_defaults_when_rules_are_silent(self):
        result = RuleOutput.of(needs_both()).fallback()
        assert result.category is Category.GEOPOLITICS
        assert result.short_name == "Will X happen?"
        assert result.category_source is Source.FALLBACK
        assert result.short_name_source is Source.FALLBACK

    def test_keeps_rule_fields(self):
        result = RuleOutput.of(needs_category()).fallback()
        assert (result.short_name, result.short_name_source) == ("FOO -3.5", Source.RULE)
        assert (result.category, result.category_source) == (Category.GEOPOLITICS, Source.FALLBACK)

    def test_empty_question_uses_condition_id(self):
        market = GammaMarket(condition_id=_id(9), question="")
        result = RuleOutput.of(market).fallback()
        assert result.short_name == _id(9)
        assert result.short_name_source is Source.FALLBACK
        assert result.category is Category.GEOPOLITICS

    def test_merge_without_entry_is_fallback(self):
        rules = RuleOutput.of(needs_short_name())
        assert rules.merge(None) == rules.fallback()


# ═══════════════════════════════════════════════════════════════
#  ORCHESTRATION
# ═══════════════════════════════════════════════════════════════


class TestEnrich:
    @pytest.mark.asyncio
    async def test_every_bucket_resolved(self):
        llm = FakeLLM()
        report = await MarketEnricher(llm, EnrichmentCache()).enrich(all_buckets())

        assert len(report.results) == 4
        # one call per non-empty LLM bucket, in bucket order
        assert [label for label, _ in llm.calls] == [
            "needs_category#0", "needs_short_name#0", "needs_both#0",
        ]
        det = report.results[_id(1)]
        assert (det.category, det.short_name) == (Category.SPORTS, "LAL win vs BOS")

        cat = report.results[_id(2)]
        assert (cat.category, cat.category_source) == (Category.CULTURE, Source.LLM)
        assert (cat.short_name, cat.short_name_source) == ("FOO -3.5", Source.RULE)

        name = report.results[_id(3)]
        assert (name.category, name.category_source) == (Category.GEOPOLITICS, Source.RULE)
        assert (name.short_name, name.short_name_source) == ("LLM name", Source.LLM)

        both = report.results[_id(4)]
        assert (both.category, both.short_name) == (Category.TECH_SCIENCE, "LLM both")
        assert not report.used_fallback
        assert report.bucket_counts == {
            "deterministic": 1, "needs_category": 1, "needs_short_name": 1, "needs_both": 1,
        }

    @pytest.mark.asyncio
    async def test_deterministic_only_never_calls_llm(self):
        llm = FakeLLM()
        report = await MarketEnricher(llm, EnrichmentCache()).enrich([deterministic()])
        assert llm.calls == []
        assert report.llm_calls == 0

    @pytest.mark.asyncio
    async def test_batches_of_batch_size(self):
        llm = FakeLLM()
        markets = [needs_both(n) for n in range(100, 145)]
        report = await MarketEnricher(llm, EnrichmentCache(), batch_size=20).enrich(markets)
        assert [len(ids) for _, ids in llm.calls] == [20, 20, 5]
        assert len(report.results) == 45

    @pytest.mark.asyncio
    async def test_duplicate_ids_resolved_once(self):
        llm = FakeLLM()
        report = await MarketEnricher(llm, EnrichmentCache()).enrich([needs_both(), needs_both()])
        assert len(report.results) == 1
        assert llm.calls[0][1] == [_id(4)]

    @pytest.mark.asyncio
    async def test_mangled_id_matched_fuzzily(self):
        llm = FakeLLM(mangle={_id(4): _id(4)[:-1]})
        report = await MarketEnricher(llm, EnrichmentCache()).enrich([needs_both()])
        assert report.results[_id(4)].short_name == "LLM both"
        assert not report.used_fallback

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValueError):
            MarketEnricher(FakeLLM(), EnrichmentCache(), batch_size=0)


class TestEnrichFallback:
    @pytest.mark.asyncio
    async def test_network_failure_falls_back_whole_batch(self):
        llm = FakeLLM(error=httpx.ConnectError("connection refused"))
        report = await MarketEnricher(llm, EnrichmentCache()).enrich(all_buckets())

        assert len(report.results) == 4
        assert report.used_fallback
        assert len(report.errors) == 3
        assert sorted(report.fallback_ids) == sorted([_id(2), _id(3), _id(4)])

        cat = report.results[_id(2)]
        assert (cat.category, cat.short_name) == (Category.GEOPOLITICS, "FOO -3.5")
        assert report.results[_id(4)].short_name == "Will X happen?"
        # the deterministic market is untouched by the failure
        assert report.results[_id(1)].short_name == "LAL win vs BOS"

    @pytest.mark.asyncio
    async def test_disabled_makes_no_calls(self):
        llm = FakeLLM()
        report = await MarketEnricher(llm, EnrichmentCache(), enabled=False).enrich(all_buckets())
        assert llm.calls == []
        assert len(report.results) == 4
        assert report.used_fallback

    @pytest.mark.asyncio
    async def test_no_client_means_fallback(self):
        report = await MarketEnricher(None, EnrichmentCache()).enrich([needs_both()])
        assert report.results[_id(4)].category_source is Source.FALLBACK

    @pytest.mark.asyncio
    async def test_missing_line_falls_back_individually(self):
        other = needs_both(5)
        llm = FakeLLM(drop={_id(4)})
        report = await MarketEnricher(llm, EnrichmentCache()).enrich([needs_both(), other])
        assert report.results[_id(4)].category_source is Source.FALLBACK
        assert report.results[_id(5)].category_source is Source.LLM
        assert report.fallback_ids == [_id(4)]


class TestEnrichCache:
    @pytest.mark.asyncio
    async def test_reused_within_run(self):
        llm = FakeLLM()
        cache = EnrichmentCache()
        enricher = MarketEnricher(llm, cache)
        await enricher.enrich([needs_both()])
        report = await enricher.enrich([needs_both()])
        assert len(llm.calls) == 1
        assert report.cache_hits == 1
        assert report.results[_id(4)].short_name == "LLM both"

    @pytest.mark.asyncio
    async def test_fallbacks_are_not_cached(self):
        cache = EnrichmentCache()
        await MarketEnricher(FakeLLM(error=RuntimeError("boom")), cache).enrich([needs_both()])
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_hit_keeps_llm_fields_and_refreshes_rules(self):
        cache = EnrichmentCache()
        cache.put(EnrichmentResult(
            market_id=_id(2),
            category=Category.CULTURE,
            short_name="stale",
            category_source=Source.LLM,
            short_name_source=Source.FALLBACK,
        ))
        report = await MarketEnricher(FakeLLM(), cache).enrich([needs_category()])
        result = report.results[_id(2)]
        assert (result.category, result.category_source) == (Category.CULTURE, Source.LLM)
        assert (result.short_name, result.short_name_source) == ("FOO -3.5", Source.RULE)
