from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from soalbank_core.db.models import Question
from taxonomy_pipeline.content import content_fingerprint, parse_segments


@dataclass(frozen=True)
class DuplicateGroup:
    source: str
    year: int
    fingerprint: str
    keep: tuple[uuid.UUID, ...]
    delete: tuple[uuid.UUID, ...]


def find_duplicate_groups(
    questions: Iterable[Question],
    attempt_counts: dict[uuid.UUID, int],
) -> list[DuplicateGroup]:
    """
    Group items by scope (source, year) and byte-identical content.

    In each group of two or more: if any item has recorded attempts, every attempted
    item is kept and every unattempted one is slated for deletion; otherwise the oldest
    item is kept. An item with attempts is never in ``delete``.
    ``questions`` must already be in creation order.
    """
    groups: dict[tuple[str, int, str], list[Question]] = defaultdict(list)
    for question in questions:
        fingerprint = content_fingerprint(parse_segments(question.content))
        groups[(question.source, question.year, fingerprint)].append(question)

    result = []
    for (source, year, fingerprint), members in groups.items():
        if len(members) < 2:
            continue
        attempted = [q.id for q in members if attempt_counts.get(q.id, 0) > 0]
        unattempted = [q.id for q in members if attempt_counts.get(q.id, 0) == 0]
        if attempted:
            keep, delete = attempted, unattempted
        else:
            keep, delete = unattempted[:1], unattempted[1:]
        if not delete:
            continue
        result.append(
            DuplicateGroup(source=source, year=year, fingerprint=fingerprint, keep=tuple(keep), delete=tuple(delete))
        )
    return result
