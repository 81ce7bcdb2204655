"""One end-to-end generation run.

  fetch -> market filters -> grouping + group filters -> enrichment
        -> document -> JSON export -> dry-run table or admin submission

Collaborators are passed in so the CLI owns their lifecycle and tests can
substitute fakes for any of them.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console

from src.config import KeeperConfig
from src.connectors.admin_api import AdminClient, SubmissionSummary, render_dry_run
from src.connectors.openrouter import CompletionClient
from src.connectors.polymarket_gamma import GammaClient
from src.engine.enrichment import EnrichmentReport, MarketEnricher
from src.engine.grouping import build_document, prepare_markets
from src.observability.logger import bind_run, get_logger
from src.pipeline.base import FilterStats, run_pipeline
from src.pipeline.filters import exclude_existing
from src.pipeline.registry import build_pipelines
from src.storage.cache import EnrichmentCache
from src.storage.export import export_json
from src.storage.models import OutputDocument

log = get_logger(__name__)


@dataclass
class GenerationResult:
    run_id: str
    document: OutputDocument
    enrichment: EnrichmentReport
    output_path: Optional[Path] = None
    submission: Optional[SubmissionSummary] = None
    stats: Dict[str, List[FilterStats]] = field(default_factory=dict)

    @property
    def failed_submissions(self) -> int:
        return self.submission.failed if self.submission else 0


async def run_generation(
    config: KeeperConfig,
    *,
    gamma: GammaClient,
    llm: Optional[CompletionClient] = None,
    admin: Optional[AdminClient] = None,
    dry_run: bool = True,
    skip_existing: bool = False,
    output_path: Optional[str] = None,
    now: Optional[dt.datetime] = None,
    console: Optional[Console] = None,
) -> GenerationResult:
    run_id = bind_run(dry_run=dry_run)
    now = now or dt.datetime.now(dt.timezone.utc)
    pipelines = build_pipelines(config.filters)
    log.info("generator.start", window_days=config.source.window_days, llm=config.enrichment.enabled)

    markets = await gamma.fetch_ending_soon(
        window_days=config.source.window_days,
        page_size=config.source.page_size,
        min_lead_secs=config.source.min_lead_secs,
        now=now,
    )

    market_filters = list(pipelines.market_filters)
    if skip_existing and admin is not None:
        existing = await admin.existing_condition_ids(m.condition_id for m in markets)
        market_filters.append(exclude_existing(existing))
    stage1 = run_pipeline(markets, market_filters, label="markets")

    groups, ungrouped, stats = prepare_markets(stage1.output, pipelines)
    stats = {"markets": stage1.stats, **stats}

    selected = [m for g in groups for m in g.markets] + ungrouped
    enricher = MarketEnricher(
        llm,
        EnrichmentCache(),
        batch_size=config.enrichment.batch_size,
        enabled=config.enrichment.enabled,
    )
    report = await enricher.enrich(selected)
    if report.used_fallback:
        log.warning("generator.fallback_used", markets=len(report.fallback_ids), errors=report.errors)

    doc = build_document(
        groups,
        ungrouped,
        report.results,
        chain_id=config.admin.chain_id,
        generated_at=now,
    )
    result = GenerationResult(run_id=run_id, document=doc, enrichment=report, stats=stats)

    result.output_path = export_json(doc, output_path or config.export.output_path)

    if dry_run:
        result.submission = render_dry_run(doc, pipelines, console=console)
    elif admin is None:
        log.warning("generator.no_admin_client", hint="document exported but not submitted")
    else:
        result.submission = await admin.submit_document(doc, pipelines)

    log.info(
        "generator.complete",
        groups=doc.metadata.total_groups,
        conditions=doc.metadata.total_conditions,
        llm_calls=report.llm_calls,
        submitted=not dry_run and admin is not None,
        failed=result.failed_submissions,
    )
    return result
