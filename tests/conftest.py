"""Shared test fixtures."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
import structlog

# Ensure src is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Generation runs bind a run_id; keep it from leaking between tests."""
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """Undo handler and level changes made by configure_logging(force=True)."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
