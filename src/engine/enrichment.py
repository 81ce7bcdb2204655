"""Batch enrichment orchestrator: deterministic rules first, LLM for the rest.

Every market is sorted into exactly one bucket by which rule outputs exist:

  DETERMINISTIC     category and short name both from rules; no LLM call
  NEEDS_CATEGORY    short name from rules, ask the LLM for a category
  NEEDS_SHORT_NAME  category from rules, ask the LLM for a short name
  NEEDS_BOTH        ask the LLM for both

LLM buckets are processed in that order, in batches of ``batch_size``, one
batch at a time. Any failure of a batch (transport, parsing, anything) is
logged and its markets fall back to rule output / defaults, so the run
always ends with exactly one EnrichmentResult per distinct market ID.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from src.connectors.openrouter import CompletionClient
from src.connectors.polymarket_gamma import GammaMarket
from src.engine import prompts
from src.engine.category_classifier import classify_category, fallback_category
from src.engine.reconciler import CATEGORY, SHORT_NAME, ReconciledEntry, reconcile
from src.engine.short_name import classify_short_name, fallback_short_name
from src.observability.logger import get_logger
from src.storage.cache import EnrichmentCache
from src.storage.models import Category, EnrichmentResult, Source

log = get_logger(__name__)

LLM_BATCH_SIZE = 20


class Bucket(str, Enum):
    DETERMINISTIC = "deterministic"
    NEEDS_CATEGORY = "needs_category"
    NEEDS_SHORT_NAME = "needs_short_name"
    NEEDS_BOTH = "needs_both"


def bucket_for(category: Optional[Category], short_name: Optional[str]) -> Bucket:
    if category is not None and short_name:
        return Bucket.DETERMINISTIC
    if short_name:
        return Bucket.NEEDS_CATEGORY
    if category is not None:
        return Bucket.NEEDS_SHORT_NAME
    return Bucket.NEEDS_BOTH


@dataclass(frozen=True)
class BucketContract:
    """What one LLM bucket asks for and how its prompt is built."""
    bucket: Bucket
    system_prompt: str
    build_prompt: Callable[..., str]
    fields: Tuple[str, ...]


BUCKET_CONTRACTS: Dict[Bucket, BucketContract] = {
    Bucket.NEEDS_CATEGORY: BucketContract(
        Bucket.NEEDS_CATEGORY,
        prompts.CATEGORY_SYSTEM_PROMPT,
        prompts.build_category_prompt,
        (CATEGORY,),
    ),
    Bucket.NEEDS_SHORT_NAME: BucketContract(
        Bucket.NEEDS_SHORT_NAME,
        prompts.SHORT_NAME_SYSTEM_PROMPT,
        prompts.build_short_name_prompt,
        (SHORT_NAME,),
    ),
    Bucket.NEEDS_BOTH: BucketContract(
        Bucket.NEEDS_BOTH,
        prompts.BOTH_SYSTEM_PROMPT,
        prompts.build_both_prompt,
        (CATEGORY, SHORT_NAME),
    ),
}

# Processing order for the LLM buckets
LLM_BUCKETS: Tuple[Bucket, ...] = (
    Bucket.NEEDS_CATEGORY,
    Bucket.NEEDS_SHORT_NAME,
    Bucket.NEEDS_BOTH,
)


@dataclass
class RuleOutput:
    """What the deterministic classifier says about one market."""
    market: GammaMarket
    category: Optional[Category]
    short_name: Optional[str]

    @classmethod
    def of(cls, market: GammaMarket) -> "RuleOutput":
        guess = classify_category(market)
        return cls(
            market=market,
            category=guess if isinstance(guess, Category) else None,
            short_name=classify_short_name(market),
        )

    @property
    def market_id(self) -> str:
        return self.market.condition_id

    @property
    def bucket(self) -> Bucket:
        return bucket_for(self.category, self.short_name)

    def fallback(self) -> EnrichmentResult:
        """Rule output where present, defaults everywhere else."""
        if self.category is not None:
            category, category_source = self.category, Source.RULE
        else:
            category, category_source = fallback_category(self.market), Source.FALLBACK
        if self.short_name:
            short_name, name_source = self.short_name, Source.RULE
        else:
            short_name, name_source = fallback_short_name(self.market), Source.FALLBACK
        return EnrichmentResult(
            market_id=self.market_id,
            category=category,
            short_name=short_name,
            category_source=category_source,
            short_name_source=name_source,
        )

    def merge(self, entry: Optional[ReconciledEntry]) -> EnrichmentResult:
        """Fill the gaps rules left with LLM values; defaults fill the rest."""
        result = self.fallback()
        if entry is None:
            return result
        updates = {}
        if self.category is None and entry.category is not None:
            updates.update(category=entry.category, category_source=Source.LLM)
        if not self.short_name and entry.short_name:
            updates.update(short_name=entry.short_name, short_name_source=Source.LLM)
        return result.model_copy(update=updates) if updates else result

    def refresh(self, cached: EnrichmentResult) -> EnrichmentResult:
        """Keep the cached LLM fields; take newer rule output for the others."""
        updates = {}
        if cached.category_source is not Source.LLM and self.category is not None:
            updates.update(category=self.category, category_source=Source.RULE)
        if cached.short_name_source is not Source.LLM and self.short_name:
            updates.update(short_name=self.short_name, short_name_source=Source.RULE)
        return cached.model_copy(update=updates) if updates else cached


@dataclass
class EnrichmentReport:
    results: Dict[str, EnrichmentResult] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    used_fallback: bool = False
    llm_calls: int = 0
    cache_hits: int = 0
    fallback_ids: List[str] = field(default_factory=list)
    bucket_counts: Dict[str, int] = field(default_factory=dict)


class MarketEnricher:
    def __init__(
        self,
        llm: Optional[CompletionClient],
        cache: EnrichmentCache,
        *,
        batch_size: int = LLM_BATCH_SIZE,
        enabled: bool = True,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._llm = llm
        self._cache = cache
        self._batch_size = batch_size
        self._enabled = enabled and llm is not None

    async def enrich(self, markets: Iterable[GammaMarket]) -> EnrichmentReport:
        report = EnrichmentReport()
        pending: Dict[Bucket, List[RuleOutput]] = {b: [] for b in LLM_BUCKETS}
        counts: Counter = Counter()
        seen: set = set()

        for market in markets:
            mid = market.condition_id
            if mid in seen:
                continue
            seen.add(mid)
            rules = RuleOutput.of(market)
            cached = self._cache.get(mid)
            if cached is not None:
                report.results[mid] = rules.refresh(cached)
                report.cache_hits += 1
                continue
            bucket = rules.bucket
            counts[bucket.value] += 1
            if bucket is Bucket.DETERMINISTIC:
                report.results[mid] = rules.merge(None)
            else:
                pending[bucket].append(rules)

        report.bucket_counts = {b.value: counts.get(b.value, 0) for b in Bucket}
        log.info("enrichment.buckets", cache_hits=report.cache_hits, **report.bucket_counts)

        waiting = sum(len(v) for v in pending.values())
        if waiting and not self._enabled:
            log.info("enrichment.llm_disabled", markets=waiting)
            for bucket in LLM_BUCKETS:
                for rules in pending[bucket]:
                    self._use_fallback(rules, report)
            return report

        for bucket in LLM_BUCKETS:
            items = pending[bucket]
            for index, start in enumerate(range(0, len(items), self._batch_size)):
                batch = items[start:start + self._batch_size]
                await self._classify_bucket(BUCKET_CONTRACTS[bucket], batch, index, report)

        log.info(
            "enrichment.complete",
            results=len(report.results),
            llm_calls=report.llm_calls,
            fallbacks=len(report.fallback_ids),
            errors=len(report.errors),
            cache=self._cache.stats,
        )
        return report

    async def _classify_bucket(
        self,
        contract: BucketContract,
        batch: Sequence[RuleOutput],
        batch_index: int,
        report: EnrichmentReport,
    ) -> None:
        ids = [r.market_id for r in batch]
        known_categories = {r.market_id: r.category for r in batch if r.category is not None}
        user_prompt = contract.build_prompt([r.market for r in batch], categories=known_categories)
        label = f"{contract.bucket.value}#{batch_index}"

        try:
            report.llm_calls += 1
            text = await self._llm.complete(contract.system_prompt, user_prompt, label=label)
            reconciliation = reconcile(text, ids, contract.fields)
        except Exception as e:
            log.error(
                "enrichment.batch_failed",
                bucket=contract.bucket.value,
                batch=batch_index,
                market_ids=ids,
                error=str(e),
                error_type=type(e).__name__,
            )
            report.errors.append(f"{label}: {type(e).__name__}: {e}")
            for rules in batch:
                self._use_fallback(rules, report)
            return

        for rules in batch:
            entry = reconciliation.entries.get(rules.market_id)
            if entry is None:
                self._use_fallback(rules, report)
                continue
            result = rules.merge(entry)
            report.results[rules.market_id] = result
            if Source.LLM in (result.category_source, result.short_name_source):
                self._cache.put(result)

        log.info(
            "enrichment.batch",
            bucket=contract.bucket.value,
            batch=batch_index,
            size=len(batch),
            matched=len(reconciliation.entries),
            fuzzy=sum(1 for e in reconciliation.entries.values() if e.fuzzy),
            missing=len(reconciliation.missing),
        )

    def _use_fallback(self, rules: RuleOutput, report: EnrichmentReport) -> None:
        report.results[rules.market_id] = rules.fallback()
        report.fallback_ids.append(rules.market_id)
        report.used_fallback = True
