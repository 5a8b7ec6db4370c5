from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Iterator

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from soalbank_core.db.models import ClassificationProposal
from taxonomy_pipeline.errors import DuplicateProposal
from taxonomy_pipeline.taxonomy.store import SENTINEL_TOPIC_NAME

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposalDraft:
    item_id: uuid.UUID
    old_subject_id: uuid.UUID | None
    old_subject_name: str
    old_topic_id: uuid.UUID | None
    old_topic_name: str
    new_subject_id: uuid.UUID | None
    new_subject_name: str
    new_topic_id: uuid.UUID | None
    new_topic_name: str
    rationale: str


class StagingLedger:
    """
    ``temp_question_subject``: one proposal per item, written once.

    A row's presence is what marks an item as processed, so an interrupted pass resumes
    from the ledger alone. ``question_id`` is unique; a second write for the same item
    is a ``DuplicateProposal`` and is reported as "already done".
    """

    def __init__(self, session: Session):
        self.session = session

    def has_proposal(self, item_id: uuid.UUID) -> bool:
        return (
            self.session.scalar(
                select(func.count())
                .select_from(ClassificationProposal)
                .where(ClassificationProposal.question_id == item_id)
            )
            or 0
        ) > 0

    def get(self, item_id: uuid.UUID) -> ClassificationProposal | None:
        return self.session.scalars(
            select(ClassificationProposal)
            .where(ClassificationProposal.question_id == item_id)
            .order_by(ClassificationProposal.created_at.desc())
        ).first()

    def processed_item_ids(self) -> set[uuid.UUID]:
        return set(self.session.scalars(select(ClassificationProposal.question_id)).all())

    def list_unprocessed_items(self, all_ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
        """Ids from ``all_ids`` with no ledger row, input order preserved."""
        done = self.processed_item_ids()
        return [item_id for item_id in all_ids if item_id not in done]

    def count(self) -> int:
        return self.session.scalar(select(func.count()).select_from(ClassificationProposal)) or 0

    def record(self, draft: ProposalDraft) -> bool:
        """Append a proposal. Returns False when the item already has one."""
        try:
            self._append(draft)
        except DuplicateProposal as dup:
            logger.info("[ledger] %s; treating as already processed", dup.message)
            return False
        return True

    def _append(self, draft: ProposalDraft) -> ClassificationProposal:
        if self.has_proposal(draft.item_id):
            raise DuplicateProposal(f"proposal already recorded for item {draft.item_id}")
        row = ClassificationProposal(
            question_id=draft.item_id,
            old_subject_id=draft.old_subject_id,
            old_subject_name=draft.old_subject_name,
            old_topic_id=draft.old_topic_id,
            old_topic_name=draft.old_topic_name,
            new_subject_id=draft.new_subject_id,
            new_subject_name=draft.new_subject_name,
            new_topic_id=draft.new_topic_id,
            new_topic_name=draft.new_topic_name,
            prediction_description=draft.rationale,
        )
        try:
            with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError as exc:
            raise DuplicateProposal(f"proposal already recorded for item {draft.item_id}") from exc
        return row

    def iter_rows(self) -> Iterator[ClassificationProposal]:
        yield from self.session.scalars(
            select(ClassificationProposal).order_by(ClassificationProposal.created_at, ClassificationProposal.id)
        ).all()

    def rewrite_target(
        self,
        row: ClassificationProposal,
        *,
        subject_id: uuid.UUID,
        subject_name: str,
        topic_id: uuid.UUID,
        topic_name: str,
    ) -> None:
        """Point a proposal at the live subject/topic rows (drift repair)."""
        row.new_subject_id = subject_id
        row.new_subject_name = subject_name
        row.new_topic_id = topic_id
        row.new_topic_name = topic_name
        self.session.flush()

    def delete_sentinel_rows(self) -> list[uuid.UUID]:
        """Drop proposals carrying the sentinel topic so their items are classified again."""
        rows = self.session.scalars(
            select(ClassificationProposal).where(
                func.lower(ClassificationProposal.new_topic_name) == SENTINEL_TOPIC_NAME.lower()
            )
        ).all()
        item_ids = [row.question_id for row in rows]
        if rows:
            self.session.execute(
                delete(ClassificationProposal).where(ClassificationProposal.id.in_([row.id for row in rows]))
            )
            self.session.expire_all()
        return item_ids
