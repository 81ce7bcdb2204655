"""OR / AND composition of filters.

Each item is offered to the sub-filters on its own (``apply([item])``), so
sub-filters stay independently testable and reusable.
"""

from __future__ import annotations

from typing import Generic, List, Sequence, TypeVar

from src.pipeline.base import Filter, FilterOutcome

T = TypeVar("T")


def _keeps(flt: Filter[T], item: T) -> bool:
    return bool(flt.apply([item]).kept)


class UnionFilter(Generic[T]):
    """Keep an item if ANY sub-filter would keep it."""

    def __init__(self, filters: Sequence[Filter[T]]):
        if not filters:
            raise ValueError("UnionFilter needs at least one sub-filter")
        self.filters: List[Filter[T]] = list(filters)
        names = [f.name for f in self.filters]
        self.name = "-or-".join(names)
        self.description = f"Keep items matching: {' OR '.join(names)}"

    def apply(self, items: Sequence[T]) -> FilterOutcome[T]:
        outcome: FilterOutcome[T] = FilterOutcome()
        for item in items:
            if any(_keeps(f, item) for f in self.filters):
                outcome.kept.append(item)
            else:
                outcome.removed.append(item)
        return outcome


class IntersectionFilter(Generic[T]):
    """Keep an item only if ALL sub-filters would keep it."""

    def __init__(self, filters: Sequence[Filter[T]]):
        if not filters:
            raise ValueError("IntersectionFilter needs at least one sub-filter")
        self.filters: List[Filter[T]] = list(filters)
        names = [f.name for f in self.filters]
        self.name = "-and-".join(names)
        self.description = f"Keep items matching: {' AND '.join(names)}"

    def apply(self, items: Sequence[T]) -> FilterOutcome[T]:
        outcome: FilterOutcome[T] = FilterOutcome()
        for item in items:
            if all(_keeps(f, item) for f in self.filters):
                outcome.kept.append(item)
            else:
                outcome.removed.append(item)
        return outcome
