from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable


@dataclass(frozen=True)
class TopicDiff:
    to_create: frozenset[str]
    to_remove: frozenset[str]


def diff_topics(desired: Iterable[str], current: Iterable[str]) -> TopicDiff:
    """Plain set difference between the desired and the stored topic names of one subject."""
    desired_set = frozenset(desired)
    current_set = frozenset(current)
    return TopicDiff(to_create=desired_set - current_set, to_remove=current_set - desired_set)


@dataclass
class TopicSyncResult:
    subject_name: str
    created: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    # Topics the mapping dropped but items still point at.
    kept_referenced: list[str] = field(default_factory=list)
