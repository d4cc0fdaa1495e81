"""Value types shared by the log shipping components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from re import Pattern
from typing import FrozenSet, Optional, Set, Union


class OrderKeySource(str, Enum):
    """Where a segment's order key comes from. Fixed for a whole run."""

    FROM_FILENAME = "filename"
    FROM_MODIFICATION_TIME = "mtime"


class SegmentState(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    SKIPPED = "skipped"


@dataclass(eq=False)
class Segment:
    """A candidate log backup file. Two segments are equal when their paths are."""

    path: Path
    order_key: datetime
    state: SegmentState = SegmentState.PENDING

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Segment):
            return NotImplemented
        return self.path == other.path

    def __hash__(self) -> int:
        return hash(self.path)


@dataclass(frozen=True)
class SelectionCriteria:
    """Immutable filter applied to a directory listing."""

    name_pattern: Union[str, Pattern[str]]
    cutoff: datetime
    date_format: Optional[str] = None
    group_index: int = 1
    excluded: FrozenSet[Path] = frozenset()


@dataclass
class RunState:
    """
    Mutable state for one invocation.

    ``applied`` holds every segment attempted so far, whether or not the
    restore succeeded. It only ever grows.
    """

    cutoff: datetime
    applied: Set[Path] = field(default_factory=set)
    seed_restored: bool = False

    def exclude(self, path: Path):
        self.applied.add(path)

    def is_excluded(self, path: Path) -> bool:
        return path in self.applied

    def criteria(self, name_pattern, date_format: Optional[str]) -> SelectionCriteria:
        """Snapshot the current exclusions into selection criteria."""
        return SelectionCriteria(
            name_pattern=name_pattern,
            cutoff=self.cutoff,
            date_format=date_format,
            excluded=frozenset(self.applied),
        )
