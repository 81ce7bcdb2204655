"""Composable list filters and the pipeline runner.

A filter partitions a list into ``kept`` and ``removed``; a pipeline folds a
list through filters left to right and records one ``FilterStats`` row per
stage, so every run leaves a clear trace of what was dropped and where.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, List, Optional, Protocol, Sequence, TypeVar

from src.observability.logger import get_logger

log = get_logger(__name__)

T = TypeVar("T")


@dataclass
class FilterOutcome(Generic[T]):
    kept: List[T] = field(default_factory=list)
    removed: List[T] = field(default_factory=list)


class Filter(Protocol[T]):
    name: str
    description: str

    def apply(self, items: Sequence[T]) -> FilterOutcome[T]:
        ...


class PredicateFilter(Generic[T]):
    """Filter built from a named per-item predicate."""

    def __init__(self, name: str, description: str, predicate: Callable[[T], bool]):
        self.name = name
        self.description = description
        self._predicate = predicate

    def apply(self, items: Sequence[T]) -> FilterOutcome[T]:
        outcome: FilterOutcome[T] = FilterOutcome()
        for item in items:
            if self._predicate(item):
                outcome.kept.append(item)
            else:
                outcome.removed.append(item)
        return outcome

    def __repr__(self) -> str:
        return f"PredicateFilter({self.name!r})"


@dataclass
class FilterStats:
    name: str
    description: str
    input_count: int
    kept_count: int
    removed_count: int


@dataclass
class PipelineResult(Generic[T]):
    output: List[T]
    removed: List[T]
    stats: List[FilterStats]


def run_pipeline(
    items: Iterable[T],
    filters: Sequence[Filter[T]],
    label: Optional[str] = None,
) -> PipelineResult[T]:
    """Apply ``filters`` in order; each stage sees only the previous stage's kept items."""
    current = list(items)
    removed: List[T] = []
    stats: List[FilterStats] = []

    for flt in filters:
        outcome = flt.apply(current)
        stats.append(FilterStats(
            name=flt.name,
            description=flt.description,
            input_count=len(current),
            kept_count=len(outcome.kept),
            removed_count=len(outcome.removed),
        ))
        log.info(
            "pipeline.stage",
            pipeline=label,
            filter=flt.name,
            input=len(current),
            kept=len(outcome.kept),
            removed=len(outcome.removed),
        )
        removed.extend(outcome.removed)
        current = list(outcome.kept)

    return PipelineResult(output=current, removed=removed, stats=stats)


def format_stats(stats: Sequence[FilterStats], label: Optional[str] = None) -> List[str]:
    prefix = f"[{label}] " if label else ""
    return [
        f"{prefix}[{s.name}] Kept {s.kept_count}/{s.input_count} "
        f"(filtered {s.removed_count}) - {s.description}"
        for s in stats
    ]
