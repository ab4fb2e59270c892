"""Group scanned entries into depth buckets, deepest first."""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from .scanner import Entry


@dataclass(frozen=True)
class DepthBucket:
    """All entries of one scan that share a depth."""

    depth: int
    entries: tuple[Entry, ...]

    @property
    def paths(self) -> list[Path]:
        return [entry.path for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


class DeletionPlan:
    """
    Depth buckets iterated in strictly descending depth.

    Removing the buckets in this order means that, without outside
    interference, no entry is removed before its descendants.
    """

    def __init__(self, buckets: dict[int, DepthBucket]):
        self._buckets = {depth: buckets[depth] for depth in sorted(buckets, reverse=True)}

    def __iter__(self) -> Iterator[DepthBucket]:
        return iter(self._buckets.values())

    def __len__(self) -> int:
        return len(self._buckets)

    @property
    def depths(self) -> list[int]:
        return list(self._buckets)

    @property
    def max_depth(self) -> int:
        return next(iter(self._buckets), 0)

    @property
    def total_entries(self) -> int:
        return sum(len(bucket) for bucket in self._buckets.values())

    def bucket(self, depth: int) -> DepthBucket:
        return self._buckets[depth]


def build_plan(entries: Iterable[Entry]) -> DeletionPlan:
    """Bucket ``entries`` by depth. A path seen twice is kept once."""
    grouped: dict[int, list[Entry]] = {}
    seen: set[Path] = set()

    for entry in entries:
        if entry.path in seen:
            continue
        seen.add(entry.path)
        grouped.setdefault(entry.depth, []).append(entry)

    return DeletionPlan({depth: DepthBucket(depth, tuple(group)) for depth, group in grouped.items()})
