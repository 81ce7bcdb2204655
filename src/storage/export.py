"""JSON export of the generated condition document."""

from __future__ import annotations

import json
from pathlib import Path

from src.observability.logger import get_logger
from src.storage.models import OutputDocument

log = get_logger(__name__)


def export_json(doc: OutputDocument, path: str | Path) -> Path:
    """Write ``doc`` as 2-space-indented camelCase JSON; returns the resolved path."""
    out = Path(path).resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as f:
        json.dump(doc.to_json_dict(), f, indent=2, ensure_ascii=False)
        f.write("\n")
    log.info(
        "export.written",
        path=str(out),
        groups=doc.metadata.total_groups,
        conditions=doc.metadata.total_conditions,
    )
    return out


def load_document(path: str | Path) -> OutputDocument:
    with open(path, encoding="utf-8") as f:
        return OutputDocument.model_validate(json.load(f))
