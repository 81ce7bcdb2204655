"""Structured logging with structlog.

API keys, admin tokens and private keys are redacted before rendering.
Each generation run binds a ``run_id`` into the contextvars so every event
emitted by the fetcher, the enricher and the submitter can be correlated.
LLM request/response exchanges go to a separate plain-text transcript.
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import structlog


_CONFIGURED = False

_SECRET_FIELDS = frozenset({
    "api_key", "openrouter_api_key", "private_key", "admin_private_key",
    "api_token", "admin_api_token", "token", "authorization", "secret",
})

# Libraries that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def _mask_secrets(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key, value in event_dict.items():
        if key.lower() in _SECRET_FIELDS and value:
            event_dict[key] = "***REDACTED***"
    return event_dict


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    log_file: str | None = None,
    force: bool = False,
) -> None:
    """Route structlog through stdlib logging with a JSON or console renderer."""
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    log_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(log_level)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(path)))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _mask_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer: structlog.types.Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    if not _CONFIGURED:
        configure_logging(
            level=os.environ.get("LOG_LEVEL", "INFO"),
            fmt=os.environ.get("LOG_FORMAT", "console"),
        )
    return structlog.get_logger(name)


def bind_run(run_id: str | None = None, **context: object) -> str:
    """Bind a run identifier (and extra context) to all subsequent events."""
    run_id = run_id or uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(run_id=run_id, **context)
    return run_id


class TranscriptWriter:
    """Append-only plain-text log of LLM prompts and responses.

    A writer built with ``path=None`` is a no-op, which is how production
    runs disable the transcript.
    """

    def __init__(self, path: str | Path | None) -> None:
        self.path = Path(path) if path else None

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def record(self, label: str, system: str, user: str, response: str) -> None:
        if self.path is None:
            return
        stamp = datetime.now(timezone.utc).isoformat()
        rule = "=" * 72
        block = (
            f"{rule}\n[{stamp}] {label}\n{rule}\n"
            f"--- SYSTEM ---\n{system}\n"
            f"--- USER ---\n{user}\n"
            f"--- RESPONSE ---\n{response}\n\n"
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(block)
