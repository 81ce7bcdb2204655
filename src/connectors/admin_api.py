"""Sapience admin API connector: registers condition groups and conditions.

Submissions are sequential and throttled through the ``admin`` rate-limit
bucket. A 409 means the record is already registered and counts as a
successful skip. Any other failure is recorded per record and never
aborts the rest of the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Protocol, Set

import httpx
from rich.console import Console
from rich.table import Table

from src.connectors.http_retry import RetryPolicy, ServerError, fetch_with_retry
from src.connectors.polymarket_gamma import parse_timestamp
from src.connectors.rate_limiter import BucketConfig, RateLimiterRegistry
from src.observability.logger import get_logger
from src.pipeline.base import run_pipeline
from src.pipeline.registry import Pipelines, build_pipelines
from src.storage.models import ConditionGroup, ConditionRecord, OutputDocument

log = get_logger(__name__)

ALREADY_EXISTS = "Already exists (skipped)"
RESOLVER_ADDRESS = "0xdC1Fa830aD1de01f1EF603749f48bD73384286BE"


class AuthProvider(Protocol):
    def headers(self) -> Dict[str, str]:
        ...


class BearerTokenAuth:
    def __init__(self, token: str):
        self._token = token

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}


@dataclass
class SubmissionResult:
    success: bool
    note: str = ""

    @property
    def skipped(self) -> bool:
        return self.success and self.note == ALREADY_EXISTS


@dataclass
class SubmissionSummary:
    groups_created: int = 0
    groups_skipped: int = 0
    groups_failed: int = 0
    conditions_created: int = 0
    conditions_skipped: int = 0
    conditions_failed: int = 0
    restricted_groups: int = 0
    restricted_conditions: int = 0

    def record(self, kind: str, result: SubmissionResult) -> None:
        if not result.success:
            outcome = "failed"
        elif result.skipped:
            outcome = "skipped"
        else:
            outcome = "created"
        attr = f"{kind}s_{outcome}"
        setattr(self, attr, getattr(self, attr) + 1)

    @property
    def failed(self) -> int:
        return self.groups_failed + self.conditions_failed


def to_unix_timestamp(value: str) -> int:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"unparseable end date: {value!r}")
    return int(parsed.timestamp())


def condition_payload(condition: ConditionRecord, resolver: str = RESOLVER_ADDRESS) -> Dict[str, Any]:
    return {
        "conditionHash": condition.condition_hash,
        "question": condition.question,
        "shortName": condition.short_name,
        "categorySlug": condition.category_slug,
        "endTime": to_unix_timestamp(condition.end_date),
        "description": condition.description,
        "similarMarkets": condition.similar_markets,
        "chainId": condition.chain_id,
        "groupName": condition.group_title,
        "resolver": resolver,
        "public": True,
    }


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.reason_phrase or "Unknown error"


class AdminClient:
    """Async client for the registry's admin endpoints."""

    def __init__(
        self,
        api_url: str,
        auth: AuthProvider,
        *,
        resolver_address: str = RESOLVER_ADDRESS,
        submission_delay: float = 0.1,
        timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        limiter: RateLimiterRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self._auth = auth
        self._resolver = resolver_address
        self._retry = retry_policy or RetryPolicy()
        self._limiter = limiter or RateLimiterRegistry()
        self._throttled = submission_delay > 0
        if self._throttled:
            self._limiter.configure("admin", BucketConfig.spaced(submission_delay, name="admin"))

    async def close(self) -> None:
        await self._client.aclose()

    async def _write(
        self, method: str, path: str, payload: Dict[str, Any], label: str,
    ) -> SubmissionResult:
        if self._throttled:
            await self._limiter.get("admin").acquire()
        try:
            resp = await fetch_with_retry(
                self._client,
                method,
                path,
                json=payload,
                headers=self._auth.headers(),
                policy=self._retry,
            )
        except (ServerError, httpx.HTTPError) as e:
            log.error("admin_api.submit_error", path=path, record=label, error=str(e))
            return SubmissionResult(False, str(e))

        if resp.is_success:
            return SubmissionResult(True)
        if resp.status_code == 409:
            return SubmissionResult(True, ALREADY_EXISTS)

        message = f"HTTP {resp.status_code}: {_error_message(resp)}"
        log.error("admin_api.submit_failed", path=path, record=label, error=message)
        return SubmissionResult(False, message)

    async def submit_group(self, group: ConditionGroup) -> SubmissionResult:
        payload = {"name": group.title, "categorySlug": group.category_slug}
        return await self._write("POST", "/admin/conditionGroups", payload, group.title[:60])

    async def submit_condition(self, condition: ConditionRecord) -> SubmissionResult:
        try:
            payload = condition_payload(condition, self._resolver)
        except ValueError as e:
            log.error("admin_api.bad_record", condition=condition.condition_hash[:12], error=str(e))
            return SubmissionResult(False, str(e))
        return await self._write("POST", "/admin/conditions", payload, condition.question[:60])

    async def existing_condition_ids(self, ids: Iterable[str]) -> Set[str]:
        """IDs already registered, via the public GraphQL endpoint.

        Lookup failures are logged and treated as "none exist" so the
        run proceeds and relies on 409 handling instead.
        """
        wanted = list(ids)
        if not wanted:
            return set()
        query = (
            "query CheckConditions($ids: [String!]!) "
            "{ conditions(where: { id: { in: $ids } }) { id } }"
        )
        try:
            resp = await fetch_with_retry(
                self._client,
                "POST",
                "/graphql",
                json={"query": query, "variables": {"ids": wanted}},
                policy=self._retry,
            )
        except (ServerError, httpx.HTTPError) as e:
            log.warning("admin_api.lookup_error", error=str(e))
            return set()
        if resp.is_error:
            log.warning("admin_api.lookup_failed", status=resp.status_code)
            return set()
        data = (resp.json() or {}).get("data") or {}
        found = {c["id"] for c in data.get("conditions") or [] if c.get("id")}
        log.info("admin_api.existing", found=len(found), checked=len(wanted))
        return found

    # ── Category corrections ─────────────────────────────────────────

    async def find_group_id(self, name: str) -> Optional[int]:
        """Numeric ID of the registered group with exactly this name."""
        try:
            resp = await fetch_with_retry(
                self._client,
                "GET",
                "/admin/conditionGroups",
                headers=self._auth.headers(),
                policy=self._retry,
            )
        except (ServerError, httpx.HTTPError) as e:
            log.error("admin_api.group_lookup_error", group=name, error=str(e))
            return None
        if resp.is_error:
            log.error("admin_api.group_lookup_failed", group=name, status=resp.status_code)
            return None
        for group in resp.json() or []:
            if group.get("name") == name:
                return int(group["id"])
        return None

    async def update_group_category(self, group_id: int, category_slug: str) -> SubmissionResult:
        return await self._write(
            "PUT", f"/admin/conditionGroups/{group_id}", {"categorySlug": category_slug}, str(group_id),
        )

    async def update_condition_category(
        self, condition_hash: str, category_slug: str,
    ) -> SubmissionResult:
        return await self._write(
            "PUT", f"/admin/conditions/{condition_hash}", {"categorySlug": category_slug},
            condition_hash[:12],
        )

    async def fix_category(
        self,
        category_slug: str,
        *,
        group: Optional[str] = None,
        condition: Optional[str] = None,
    ) -> Dict[str, SubmissionResult]:
        """Re-categorise a registered group (by name) and/or condition (by hash)."""
        results: Dict[str, SubmissionResult] = {}
        if group:
            group_id = await self.find_group_id(group)
            if group_id is None:
                results["group"] = SubmissionResult(False, f"Group not found: {group!r}")
            else:
                results["group"] = await self.update_group_category(group_id, category_slug)
        if condition:
            results["condition"] = await self.update_condition_category(condition, category_slug)
        log.info(
            "admin_api.category_fixed",
            category=category_slug,
            **{kind: r.success for kind, r in results.items()},
        )
        return results

    async def submit_document(
        self,
        doc: OutputDocument,
        pipelines: Pipelines | None = None,
    ) -> SubmissionSummary:
        """Submit every group (then its conditions) and every ungrouped condition."""
        pipelines = pipelines or build_pipelines()
        summary = SubmissionSummary()

        groups = run_pipeline(doc.groups, pipelines.api_group_filters, label="api-groups")
        summary.restricted_groups = len(groups.removed)

        for group in groups.output:
            result = await self.submit_group(group)
            summary.record("group", result)
            if result.success and not result.skipped:
                log.info("admin_api.group_created", title=group.title, conditions=len(group.conditions))
            conditions = run_pipeline(group.conditions, pipelines.api_condition_filters)
            summary.restricted_conditions += len(conditions.removed)
            for condition in conditions.output:
                summary.record("condition", await self.submit_condition(condition))

        ungrouped = run_pipeline(
            doc.ungrouped_conditions, pipelines.api_condition_filters, label="api-ungrouped"
        )
        summary.restricted_conditions += len(ungrouped.removed)
        for condition in ungrouped.output:
            summary.record("condition", await self.submit_condition(condition))

        log.info("admin_api.summary", **vars(summary))
        return summary


# ── Dry run ──────────────────────────────────────────────────────────

def _short(text: str, width: int = 60) -> str:
    return text if len(text) <= width else text[:width] + "..."


def _local_time(value: str) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return parsed.astimezone().strftime("%Y-%m-%d %H:%M")


def render_dry_run(
    doc: OutputDocument,
    pipelines: Pipelines | None = None,
    console: Console | None = None,
) -> SubmissionSummary:
    """Print what ``submit_document`` would send; returns the would-be counts."""
    pipelines = pipelines or build_pipelines()
    console = console or Console()
    plan = SubmissionSummary()

    groups = run_pipeline(doc.groups, pipelines.api_group_filters, label="api-groups")
    plan.restricted_groups = len(groups.removed)

    table = Table(title="Dry run: conditions that would be submitted")
    table.add_column("Group", style="cyan", max_width=30)
    table.add_column("Category", style="magenta")
    table.add_column("Short name", style="green")
    table.add_column("Question", max_width=60)
    table.add_column("Ends", justify="right")
    table.add_column("Hash", style="dim")

    def add(condition: ConditionRecord, group_title: str) -> None:
        plan.conditions_created += 1
        table.add_row(
            group_title,
            condition.category_slug,
            condition.short_name,
            _short(condition.question),
            _local_time(condition.end_date),
            condition.condition_hash[:10] + "...",
        )

    for group in groups.output:
        plan.groups_created += 1
        conditions = run_pipeline(group.conditions, pipelines.api_condition_filters)
        plan.restricted_conditions += len(conditions.removed)
        for condition in conditions.output:
            add(condition, group.title)

    ungrouped = run_pipeline(doc.ungrouped_conditions, pipelines.api_condition_filters)
    plan.restricted_conditions += len(ungrouped.removed)
    for condition in ungrouped.output:
        add(condition, "-")

    console.print(table)
    console.print(
        f"Would submit [bold]{plan.groups_created}[/bold] groups and "
        f"[bold]{plan.conditions_created}[/bold] conditions"
    )
    if plan.restricted_groups or plan.restricted_conditions:
        console.print(
            f"Would skip (restricted category): {plan.restricted_groups} groups, "
            f"{plan.restricted_conditions} conditions"
        )
    return plan
