from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from soalbank_core.db.enums import TaxonomyOrigin
from soalbank_core.db.models import ClassificationProposal, Question, QuestionAttempt, Subject, Topic
from taxonomy_pipeline.context import PipelineContext
from taxonomy_pipeline.errors import OrphanDeletionHazard
from taxonomy_pipeline.migrate.dedup import find_duplicate_groups
from taxonomy_pipeline.staging.ledger import StagingLedger
from taxonomy_pipeline.summary import PassSummary, should_report
from taxonomy_pipeline.taxonomy.store import TaxonomyStore, UndecidedBucket, is_sentinel_topic

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    migrate: PassSummary = field(default_factory=lambda: PassSummary(name="migrate"))
    orphans: PassSummary = field(default_factory=lambda: PassSummary(name="orphan-cleanup"))
    duplicates: PassSummary = field(default_factory=lambda: PassSummary(name="dedup"))

    @property
    def passes(self) -> list[PassSummary]:
        return [self.migrate, self.orphans, self.duplicates]


class MigrationDriver:
    """
    Commit staged proposals onto items.

    1. Every item is routed from its ledger proposal; items with no proposal and items
       with a sentinel proposal both go to the UNDECIDED bucket. All item updates share
       one transaction.
    2. Staging-created topics (then subjects) that nothing references are deleted.
    3. Duplicate items without attempts are deleted.
    """

    def __init__(self, ctx: PipelineContext):
        self.ctx = ctx

    def run(self, *, cleanup: bool = True, dedup: bool = True) -> MigrationReport:
        report = MigrationReport()
        with self.ctx.session_factory() as session:
            self._migrate_items(session, report.migrate)
            if cleanup:
                self._remove_orphans(session, report.orphans)
            if dedup:
                self._remove_duplicates(session, report.duplicates)
        for summary in report.passes:
            summary.log(logger)
        return report

    def _migrate_items(self, session: Session, summary: PassSummary) -> None:
        store = TaxonomyStore(session)
        ledger = StagingLedger(session)

        with session.begin():
            bucket = store.ensure_undecided_bucket()
            questions = session.scalars(select(Question).order_by(Question.created_at, Question.id)).all()
            summary.total = len(questions)
            for idx, question in enumerate(questions, start=1):
                if should_report(idx, self.ctx.progress_every):
                    logger.info("[migrate] item %d/%d id=%s", idx, len(questions), question.id)
                subject_id, topic_id = self._target_for(store, ledger.get(question.id), bucket)
                if question.subject_id == subject_id and question.topic_id == topic_id:
                    summary.skipped += 1
                    continue
                question.subject_id = subject_id
                question.topic_id = topic_id
                summary.created += 1

    def _target_for(
        self,
        store: TaxonomyStore,
        proposal: ClassificationProposal | None,
        bucket: UndecidedBucket,
    ) -> tuple[uuid.UUID, uuid.UUID]:
        if proposal is None or is_sentinel_topic(proposal.new_topic_name):
            return bucket.subject_id, bucket.topic_id
        if store.topic_belongs_to(proposal.new_topic_id, proposal.new_subject_id):
            return proposal.new_subject_id, proposal.new_topic_id

        # A staged id was nulled or no longer matches; resolve by name rather than commit a stale id.
        subject = store.resolve_subject(proposal.new_subject_id, proposal.new_subject_name)
        topic = store.find_or_create_topic(proposal.new_topic_name, subject.id)
        logger.info(
            "[migrate] item=%s re-resolved %r/%r to topic id=%s",
            proposal.question_id,
            subject.name,
            topic.name,
            topic.id,
        )
        return subject.id, topic.id

    def _remove_orphans(self, session: Session, summary: PassSummary) -> None:
        store = TaxonomyStore(session)
        topic_ids = session.scalars(
            select(Topic.id).where(Topic.origin == TaxonomyOrigin.staging).order_by(Topic.created_at)
        ).all()
        subject_ids = session.scalars(
            select(Subject.id).where(Subject.origin == TaxonomyOrigin.staging).order_by(Subject.created_at)
        ).all()
        summary.total = len(topic_ids) + len(subject_ids)

        for topic_id in topic_ids:
            if store.count_topic_references(topic_id):
                summary.skipped += 1
                continue
            self._guarded_delete(session, summary, "topic", topic_id, store.delete_topic)

        for subject_id in subject_ids:
            has_topics = session.scalar(select(func.count()).select_from(Topic).where(Topic.subject_id == subject_id))
            has_items = session.scalar(
                select(func.count()).select_from(Question).where(Question.subject_id == subject_id)
            )
            if has_topics or has_items:
                summary.skipped += 1
                continue
            self._guarded_delete(session, summary, "subject", subject_id, store.delete_subject)

    def _remove_duplicates(self, session: Session, summary: PassSummary) -> None:
        questions = session.scalars(select(Question).order_by(Question.created_at, Question.id)).all()
        attempt_counts = dict(
            session.execute(
                select(QuestionAttempt.question_id, func.count()).group_by(QuestionAttempt.question_id)
            ).all()
        )
        groups = find_duplicate_groups(questions, attempt_counts)
        summary.total = sum(len(g.delete) for g in groups)

        for group in groups:
            logger.info(
                "[dedup] source=%r year=%s keep=%s delete=%s",
                group.source,
                group.year,
                [str(i) for i in group.keep],
                [str(i) for i in group.delete],
            )
            for question_id in group.delete:
                self._guarded_delete(session, summary, "item", question_id, lambda qid: delete_item(session, qid))

    def _guarded_delete(self, session: Session, summary: PassSummary, entity: str, entity_id, deleter) -> None:
        try:
            deleter(entity_id)
            session.commit()
        except OrphanDeletionHazard as hazard:
            session.rollback()
            summary.skipped += 1
            logger.warning("[cleanup] %s", hazard.message)
            return
        summary.removed += 1
        logger.info("[cleanup] deleted %s id=%s", entity, entity_id)


def delete_item(session: Session, question_id: uuid.UUID) -> None:
    """Delete an item that has no recorded attempts, together with its ledger proposal."""
    attempts = session.scalar(
        select(func.count()).select_from(QuestionAttempt).where(QuestionAttempt.question_id == question_id)
    ) or 0
    if attempts:
        raise OrphanDeletionHazard("item", question_id, attempts)
    with session.begin_nested():
        session.execute(delete(ClassificationProposal).where(ClassificationProposal.question_id == question_id))
        session.execute(delete(Question).where(Question.id == question_id))
    session.expire_all()
