"""Tests for src.observability.logger: redaction, run binding, transcripts."""

from __future__ import annotations

import logging

import structlog

from src.observability.logger import TranscriptWriter, _mask_secrets, bind_run, configure_logging


class TestMaskSecrets:
    def test_redacts_secret_keys(self):
        event = {"event": "x", "api_key": "sk-live", "Authorization": "Bearer t", "market_id": "0x1"}
        masked = _mask_secrets(None, "info", event)
        assert masked["api_key"] == "***REDACTED***"
        assert masked["Authorization"] == "***REDACTED***"
        assert masked["market_id"] == "0x1"

    def test_leaves_empty_values(self):
        assert _mask_secrets(None, "info", {"token": ""})["token"] == ""


class TestConfigureLogging:
    def test_force_reapplies_level_and_file(self, tmp_path):
        log_file = tmp_path / "logs" / "keeper.log"
        configure_logging(level="DEBUG", fmt="json", log_file=str(log_file), force=True)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        files = [h for h in root.handlers if isinstance(h, logging.FileHandler)]
        assert [h.baseFilename for h in files] == [str(log_file)]

        configure_logging(level="WARNING", force=True)
        assert logging.getLogger().level == logging.WARNING
        assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)

    def test_without_force_is_noop_once_configured(self):
        configure_logging(level="ERROR", force=True)
        configure_logging(level="DEBUG")
        assert logging.getLogger().level == logging.ERROR


class TestBindRun:
    def test_binds_generated_id(self):
        run_id = bind_run(dry_run=True)
        bound = structlog.contextvars.get_contextvars()
        assert bound == {"run_id": run_id, "dry_run": True}
        assert len(run_id) == 12

    def test_rebinding_clears_previous_context(self):
        bind_run(dry_run=True)
        assert bind_run("fixed") == "fixed"
        assert "dry_run" not in structlog.contextvars.get_contextvars()


class TestTranscriptWriter:
    def test_appends(self, tmp_path):
        path = tmp_path / "logs" / "llm.log"
        writer = TranscriptWriter(path)
        assert writer.enabled
        writer.record("needs_both#0", "SYS", "USER", "RESP")
        writer.record("needs_both#1", "SYS", "USER", "RESP2")
        text = path.read_text()
        assert text.count("--- RESPONSE ---") == 2
        assert "needs_both#1" in text
        assert "RESP2" in text

    def test_disabled(self, tmp_path):
        writer = TranscriptWriter(None)
        assert not writer.enabled
        writer.record("x", "s", "u", "r")
        assert list(tmp_path.iterdir()) == []
