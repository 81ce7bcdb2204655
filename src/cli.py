"""CLI entry point for the Polymarket condition keeper.

Commands:
  keeper generate            Fetch, filter, enrich and export (then submit)
  keeper generate --dry-run  Same, but print what would be submitted
  keeper filters             List every filter pipeline and its stages
  keeper fix-category        Correct the category of a registered group or condition
  keeper classify QUESTION   Run the deterministic classifier on one question
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from src.config import (
    ConfigError,
    KeeperConfig,
    is_production_url,
    load_config,
    require_admin_credentials,
    require_llm_credentials,
)
from src.observability.logger import TranscriptWriter, configure_logging, get_logger
from src.pipeline.base import format_stats
from src.storage.models import Category

load_dotenv()

console = Console()
log = get_logger(__name__)


def _run(coro: Any) -> Any:
    """Run an async coroutine from sync CLI."""
    return asyncio.run(coro)


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config.yaml")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """Polymarket condition keeper."""
    ctx.ensure_object(dict)
    cfg = load_config(config_path)
    ctx.obj["config"] = cfg
    configure_logging(
        level=cfg.observability.log_level,
        fmt=cfg.observability.log_format,
        log_file=cfg.observability.log_file or None,
        force=True,
    )


# ─── GENERATE ────────────────────────────────────────────────────────

@cli.command()
@click.option("--dry-run", is_flag=True, help="Print what would be submitted; submit nothing")
@click.option("--output", "output_path", default=None, help="Path for the exported JSON")
@click.option("--no-llm", is_flag=True, help="Deterministic rules and fallbacks only")
@click.option("--skip-existing", is_flag=True, help="Drop markets already in the registry")
@click.option("--yes", is_flag=True, help="Do not ask before submitting to production")
@click.pass_context
def generate(
    ctx: click.Context,
    dry_run: bool,
    output_path: str | None,
    no_llm: bool,
    skip_existing: bool,
    yes: bool,
) -> None:
    """Generate the condition document for markets ending soon."""
    cfg: KeeperConfig = ctx.obj["config"]
    if no_llm:
        cfg.enrichment.enabled = False

    try:
        require_llm_credentials(cfg)
        if not dry_run:
            require_admin_credentials(cfg)
    except ConfigError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)

    if not dry_run and is_production_url(cfg.admin.api_url) and not yes:
        console.print(f"[bold red]Submitting to PRODUCTION ({cfg.admin.api_url})[/bold red]")
        if not click.confirm("Are you sure you want to proceed?"):
            console.print("Aborted.")
            sys.exit(0)

    async def _generate():
        from src.connectors.admin_api import AdminClient, BearerTokenAuth
        from src.connectors.http_retry import RetryPolicy
        from src.connectors.openrouter import OpenRouterClient
        from src.connectors.polymarket_gamma import GammaClient
        from src.engine.generator import run_generation

        policy = RetryPolicy.from_config(cfg.http)
        gamma = GammaClient(
            cfg.source.gamma_base_url,
            timeout=cfg.http.timeout_secs,
            retry_policy=policy,
        )
        llm = None
        if cfg.enrichment.enabled:
            transcript_path = None if cfg.is_production else cfg.enrichment.transcript_path
            llm = OpenRouterClient(
                cfg.enrichment,
                retry_policy=policy,
                transcript=TranscriptWriter(transcript_path or None),
            )
        admin = None
        if not dry_run or skip_existing:
            admin = AdminClient(
                cfg.admin.api_url,
                BearerTokenAuth(cfg.admin.api_token),
                resolver_address=cfg.admin.resolver_address,
                submission_delay=cfg.admin.submission_delay_secs,
                timeout=cfg.http.timeout_secs,
                retry_policy=policy,
            )
        try:
            return await run_generation(
                cfg,
                gamma=gamma,
                llm=llm,
                admin=admin,
                dry_run=dry_run,
                skip_existing=skip_existing,
                output_path=output_path,
                console=console,
            )
        finally:
            await gamma.close()
            if llm is not None:
                await llm.close()
            if admin is not None:
                await admin.close()

    try:
        result = _run(_generate())
    except Exception as e:
        log.exception("generator.failed", error=str(e))
        console.print(f"[red]❌ Generation failed: {escape(str(e))}[/red]")
        sys.exit(1)

    doc = result.document
    report = result.enrichment

    console.print(f"\n[green]✓ Exported to {result.output_path}[/green]")
    console.print(
        f"  Groups: {doc.metadata.total_groups}  "
        f"Conditions: {doc.metadata.total_conditions}  "
        f"LLM calls: {report.llm_calls}  "
        f"Fallbacks: {len(report.fallback_ids)}"
    )
    if report.errors:
        console.print(f"[yellow]⚠ {len(report.errors)} enrichment batch(es) fell back[/yellow]")

    console.print("\n[bold]Filter pipelines[/bold]")
    for label, stats in result.stats.items():
        for line in format_stats(stats, label):
            console.print(line, markup=False, highlight=False)

    summary = result.submission
    if summary is not None and not dry_run:
        table = Table(title="Submission summary")
        table.add_column("Kind", style="cyan")
        table.add_column("Created", justify="right", style="green")
        table.add_column("Skipped", justify="right", style="yellow")
        table.add_column("Failed", justify="right", style="red")
        table.add_row(
            "groups",
            str(summary.groups_created),
            str(summary.groups_skipped),
            str(summary.groups_failed),
        )
        table.add_row(
            "conditions",
            str(summary.conditions_created),
            str(summary.conditions_skipped),
            str(summary.conditions_failed),
        )
        console.print(table)
        if summary.failed:
            sys.exit(1)


# ─── FILTERS ─────────────────────────────────────────────────────────

@cli.command()
@click.pass_context
def filters(ctx: click.Context) -> None:
    """List the filter pipelines in the order they run."""
    from src.pipeline.registry import build_pipelines, filter_registry

    cfg: KeeperConfig = ctx.obj["config"]
    table = Table(title="Filter pipelines")
    table.add_column("Pipeline", style="cyan")
    table.add_column("Filter", style="green")
    table.add_column("Description")

    for entry in filter_registry(build_pipelines(cfg.filters)):
        for flt in entry["filters"]:
            table.add_row(entry["pipeline"], flt["name"], flt["description"])

    console.print(table)


# ─── FIX-CATEGORY ────────────────────────────────────────────────────

@cli.command("fix-category")
@click.option("--group", "group_name", default=None, help="Exact name of a registered group")
@click.option("--condition", "condition_hash", default=None, help="Hash of a registered condition")
@click.option(
    "--category",
    required=True,
    type=click.Choice([c.value for c in Category]),
    help="Category slug to set",
)
@click.option("--yes", is_flag=True, help="Do not ask before writing to production")
@click.pass_context
def fix_category(
    ctx: click.Context,
    group_name: str | None,
    condition_hash: str | None,
    category: str,
    yes: bool,
) -> None:
    """Correct the category of a group and/or condition already registered."""
    cfg: KeeperConfig = ctx.obj["config"]
    if not group_name and not condition_hash:
        console.print("[red]❌ Specify --group and/or --condition[/red]")
        sys.exit(1)
    try:
        require_admin_credentials(cfg)
    except ConfigError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)

    console.print(f"API: {cfg.admin.api_url}")
    console.print(f"Target category: [bold]{category}[/bold]")
    if is_production_url(cfg.admin.api_url) and not yes:
        if not click.confirm("This writes to PRODUCTION. Proceed?"):
            console.print("Aborted.")
            sys.exit(0)

    async def _fix():
        from src.connectors.admin_api import AdminClient, BearerTokenAuth
        from src.connectors.http_retry import RetryPolicy

        admin = AdminClient(
            cfg.admin.api_url,
            BearerTokenAuth(cfg.admin.api_token),
            submission_delay=0,
            timeout=cfg.http.timeout_secs,
            retry_policy=RetryPolicy.from_config(cfg.http),
        )
        try:
            return await admin.fix_category(category, group=group_name, condition=condition_hash)
        finally:
            await admin.close()

    results = _run(_fix())
    for kind, result in results.items():
        target = group_name if kind == "group" else condition_hash
        if result.success:
            console.print(f"[green]✓ Updated {kind} {target!r} to {category}[/green]")
        else:
            console.print(f"[red]❌ {kind} {target!r}: {escape(result.note)}[/red]")
    if not all(r.success for r in results.values()):
        sys.exit(1)


# ─── CLASSIFY ────────────────────────────────────────────────────────


@cli.command()
@click.argument("question")
@click.option("--outcome", "outcomes", multiple=True, help="Outcome label (repeat for each)")
@click.option("--slug", default="", help="Market slug")
@click.option("--event", "event_title", default="", help="Parent event title")
def classify(question: str, outcomes: tuple[str, ...], slug: str, event_title: str) -> None:
    """Show what the deterministic rules make of a single question."""
    from src.connectors.polymarket_gamma import GammaMarket
    from src.engine.category_classifier import classify_category
    from src.engine.enrichment import bucket_for
    from src.engine.question_transform import transform_match_question
    from src.engine.short_name import classify_short_name

    market = GammaMarket(
        condition_id="cli",
        question=question,
        slug=slug,
        outcomes=outcomes or ("Yes", "No"),
        event_title=event_title,
    )
    category = classify_category(market)
    short_name = classify_short_name(market)
    known = category if isinstance(category, Category) else None

    table = Table(title="Deterministic classification", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Category", known.value if known else "[dim]unknown[/dim]")
    table.add_row("Short name", short_name or "[dim]none[/dim]")
    table.add_row("Question", transform_match_question(market))
    table.add_row("Bucket", bucket_for(known, short_name).value)
    console.print(table)


if __name__ == "__main__":
    cli()
