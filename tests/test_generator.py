"""Tests for src.engine.generator: one end-to-end run with fake collaborators."""

from __future__ import annotations

import datetime as dt
import io
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from rich.console import Console

from src.config import KeeperConfig
from src.connectors.admin_api import SubmissionSummary
from src.connectors.polymarket_gamma import GammaMarket
from src.engine.generator import run_generation
from src.storage.export import load_document

NOW = dt.datetime(2026, 10, 19, 12, 0, tzinfo=dt.timezone.utc)


def _market(cid: str, question: str, event: str = "", outcomes=("Yes", "No"),
            volume: float = 100_000) -> GammaMarket:
    return GammaMarket(
        condition_id=cid,
        question=question,
        slug=f"slug-{cid}",
        end_date="2026-10-21T00:00:00Z",
        outcomes=tuple(outcomes),
        volume=volume,
        event_title=event,
    )


MARKETS = [
    _market("g1", "Lakers vs. Celtics", "NBA: Lakers vs. Celtics", ("Lakers", "Celtics")),
    _market("g2", "Lakers vs. Celtics: O/U 220.5", "NBA: Lakers vs. Celtics", ("Over", "Under")),
    _market("u1", "Will the Fed cut rates in December?"),
    _market("x1", "Who wins?", outcomes=("A", "B", "C")),  # not binary
    _market("x2", "Will X happen?", volume=10),              # too small
]


def _gamma(markets=MARKETS) -> MagicMock:
    gamma = MagicMock()
    gamma.fetch_ending_soon = AsyncMock(return_value=list(markets))
    return gamma


def _config(tmp_path) -> KeeperConfig:
    cfg = KeeperConfig()
    cfg.export.output_path = str(tmp_path / "conditions.json")
    return cfg



def _quiet() -> Console:
    return Console(file=io.StringIO())


# ═══════════════════════════════════════════════════════════════
#  DRY RUN
# ═══════════════════════════════════════════════════════════════


class TestDryRun:
    @pytest.mark.asyncio
    async def test_exports_without_submitting(self, tmp_path):
        out = io.StringIO()
        result = await run_generation(
            _config(tmp_path),
            gamma=_gamma(),
            dry_run=True,
            now=NOW,
            console=Console(file=out, width=200),
        )

        doc = result.document
        assert doc.metadata.total_groups == 1
        assert doc.metadata.total_conditions == 3
        assert [c.condition_hash for c in doc.groups[0].conditions] == ["g1", "g2"]
        assert doc.groups[0].conditions[0].short_name == "LAL win vs BOS"
        assert doc.ungrouped_conditions[0].short_name == "Fed cut Dec"
        assert result.enrichment.llm_calls == 0
        assert result.submission.conditions_created == 3
        assert "Would submit" in out.getvalue()

        written = json.loads(result.output_path.read_text())
        assert written["metadata"]["generatedAt"] == "2026-10-19T12:00:00Z"
        assert load_document(result.output_path) == doc
        assert result.stats["markets"][0].removed_count == 1

    @pytest.mark.asyncio
    async def test_output_path_override(self, tmp_path):
        target = tmp_path / "nested" / "out.json"
        result = await run_generation(
            _config(tmp_path), gamma=_gamma(), output_path=str(target), now=NOW,
            console=_quiet(),
        )
        assert result.output_path == target.resolve()
        assert target.exists()


class TestIdempotence:
    """Re-running on the same listing yields the same document."""

    @staticmethod
    def _without_timestamp(result) -> dict:
        data = result.document.to_json_dict()
        data["metadata"].pop("generatedAt")
        return data

    @pytest.mark.asyncio
    async def test_rules_only_runs_agree(self, tmp_path):
        cfg = _config(tmp_path)
        first = await run_generation(cfg, gamma=_gamma(), console=_quiet())
        second = await run_generation(cfg, gamma=_gamma(), console=_quiet())
        assert self._without_timestamp(first) == self._without_timestamp(second)
        assert load_document(second.output_path) == second.document

    @pytest.mark.asyncio
    async def test_llm_runs_agree(self, tmp_path):
        cfg = _config(tmp_path)
        cfg.enrichment.enabled = True
        markets = [_market("g9", "Will Oppenheimer win the Oscar for Best Picture?")]

        def llm() -> MagicMock:
            client = MagicMock()
            client.complete = AsyncMock(return_value="g9,Oscars BP")
            return client

        first = await run_generation(cfg, gamma=_gamma(markets), llm=llm(), console=_quiet())
        second = await run_generation(cfg, gamma=_gamma(markets), llm=llm(), console=_quiet())
        assert self._without_timestamp(first) == self._without_timestamp(second)


# ═══════════════════════════════════════════════════════════════
#  SUBMISSION
# ═══════════════════════════════════════════════════════════════


class TestSubmission:
    @pytest.mark.asyncio
    async def test_uses_admin_client(self, tmp_path):
        admin = MagicMock()
        admin.submit_document = AsyncMock(return_value=SubmissionSummary(conditions_created=3))
        result = await run_generation(
            _config(tmp_path), gamma=_gamma(), admin=admin, dry_run=False, now=NOW,
        )
        admin.submit_document.assert_awaited_once()
        assert result.submission.conditions_created == 3
        assert result.failed_submissions == 0

    @pytest.mark.asyncio
    async def test_skip_existing_drops_registered_markets(self, tmp_path):
        admin = MagicMock()
        admin.existing_condition_ids = AsyncMock(return_value={"u1"})
        admin.submit_document = AsyncMock(return_value=SubmissionSummary())
        result = await run_generation(
            _config(tmp_path), gamma=_gamma(), admin=admin, dry_run=False,
            skip_existing=True, now=NOW,
        )
        hashes = [c.condition_hash for c in result.document.iter_conditions()]
        assert hashes == ["g1", "g2"]


class TestEnrichment:
    @pytest.mark.asyncio
    async def test_llm_used_when_enabled(self, tmp_path):
        cfg = _config(tmp_path)
        cfg.enrichment.enabled = True
        llm = MagicMock()
        llm.complete = AsyncMock(return_value="g9,Oscars BP")
        markets = [_market("g9", "Will Oppenheimer win the Oscar for Best Picture?")]
        result = await run_generation(
            cfg, gamma=_gamma(markets), llm=llm, now=NOW, console=_quiet(),
        )
        condition = result.document.ungrouped_conditions[0]
        # category came from the rules, so only the short name is asked for
        assert condition.category_slug == "culture"
        assert condition.short_name == "Oscars BP"
        llm.complete.assert_awaited_once()
