from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from soalbank_core.db.models import Question, Topic
from taxonomy_pipeline.classify.client import Classifier
from taxonomy_pipeline.content import parse_segments, primary_text
from taxonomy_pipeline.context import PipelineContext
from taxonomy_pipeline.errors import ClassificationFailed, OrphanDeletionHazard, PipelineError
from taxonomy_pipeline.staging.ledger import ProposalDraft, StagingLedger
from taxonomy_pipeline.summary import PassSummary, should_report
from taxonomy_pipeline.taxonomy.store import (
    SENTINEL_TOPIC_NAME,
    UNDECIDED,
    TaxonomyStore,
    is_sentinel_topic,
)

logger = logging.getLogger(__name__)

DEFAULT_HINT = "undecided"
NO_TEXT_RATIONALE = "No extractable text (image-only question); classifier not called."
NO_SUBTYPE_RATIONALE = "Classifier returned no usable subtype."


class ReconciliationEngine:
    """
    Drives classification proposals into the staging ledger and keeps the ledger
    consistent with the live taxonomy.

    Items are processed one at a time in creation order and committed one at a time,
    so an interrupted pass leaves the ledger holding exactly the finished items and the
    next run picks up where it stopped.
    """

    def __init__(self, ctx: PipelineContext):
        self.ctx = ctx

    def run_classification_pass(self, *, limit: int | None = None) -> PassSummary:
        classifier = self.ctx.require_classifier()
        summary = PassSummary(name="classify")

        with self.ctx.session_factory() as session:
            ledger = StagingLedger(session)
            store = TaxonomyStore(session)

            all_ids = session.scalars(select(Question.id).order_by(Question.created_at, Question.id)).all()
            pending = ledger.list_unprocessed_items(all_ids)
            summary.total = len(all_ids)
            summary.skipped = len(all_ids) - len(pending)
            if limit is not None:
                pending = pending[: max(0, limit)]
            logger.info(
                "[classify] items=%d already_processed=%d to_process=%d",
                summary.total,
                summary.skipped,
                len(pending),
            )

            for idx, item_id in enumerate(pending, start=1):
                if should_report(idx, self.ctx.progress_every):
                    logger.info("[classify] item %d/%d id=%s failed=%d", idx, len(pending), item_id, summary.failed)
                question = session.get(Question, item_id)
                if question is None:
                    summary.skipped += 1
                    continue
                try:
                    draft = self._propose(question, store=store, classifier=classifier)
                    if ledger.record(draft):
                        summary.created += 1
                    else:
                        summary.skipped += 1
                    session.commit()
                except ClassificationFailed as exc:
                    session.rollback()
                    summary.fail(f"{item_id}: {exc.message}")
                    logger.warning("[classify] item=%s classification failed: %s", item_id, exc.message)
                except (SQLAlchemyError, PipelineError, ValueError) as exc:
                    session.rollback()
                    summary.fail(f"{item_id}: {exc}")
                    logger.warning("[classify] item=%s failed: %s", item_id, exc)

            logger.info(
                "[classify] staged taxonomy subjects=%d topics=%d ledger_rows=%d",
                len(store.created_subjects),
                len(store.created_topics),
                ledger.count(),
            )

        summary.log(logger)
        return summary

    def _propose(self, question: Question, *, store: TaxonomyStore, classifier: Classifier) -> ProposalDraft:
        old_subject_name = store.subject_name(question.subject_id)
        old_topic_name = store.topic_name(question.topic_id)

        def draft(subject_id, topic_id, *, subject_name: str, topic_name: str, rationale: str) -> ProposalDraft:
            return ProposalDraft(
                item_id=question.id,
                old_subject_id=question.subject_id,
                old_subject_name=old_subject_name,
                old_topic_id=question.topic_id,
                old_topic_name=old_topic_name,
                new_subject_id=subject_id,
                new_subject_name=subject_name,
                new_topic_id=topic_id,
                new_topic_name=topic_name,
                rationale=rationale,
            )

        def undecided(rationale: str) -> ProposalDraft:
            bucket = store.ensure_undecided_bucket()
            return draft(
                bucket.subject_id,
                bucket.topic_id,
                subject_name=UNDECIDED,
                topic_name=SENTINEL_TOPIC_NAME,
                rationale=rationale,
            )

        text = primary_text(parse_segments(question.content))
        if not text.strip():
            logger.info("[classify] item=%s has no extractable text; routing to %s", question.id, UNDECIDED)
            return undecided(NO_TEXT_RATIONALE)

        hint = old_subject_name or DEFAULT_HINT
        result = classifier.classify(text, hint)
        logger.info(
            "[classify] item=%s predicted subject=%r topic=%r", question.id, result.subject_name, result.topic_name
        )

        # "No subtype" and the sentinel subtype are the same condition.
        if not result.topic_name or is_sentinel_topic(result.topic_name):
            return undecided(result.rationale or NO_SUBTYPE_RATIONALE)

        subject = store.find_or_create_subject(result.subject_name)
        topic = store.find_or_create_topic(result.topic_name, subject.id)
        return draft(subject.id, topic.id, subject_name=subject.name, topic_name=topic.name, rationale=result.rationale)

    def run_drift_repair(self) -> PassSummary:
        """
        Re-point ledger rows whose proposed topic is no longer a child of the proposed
        subject (topic moved, renamed or deleted by hand after staging).
        """
        summary = PassSummary(name="drift-repair")
        with self.ctx.session_factory() as session:
            ledger = StagingLedger(session)
            store = TaxonomyStore(session)

            for row in ledger.iter_rows():
                summary.total += 1
                if is_sentinel_topic(row.new_topic_name):
                    summary.skipped += 1
                    continue
                if store.topic_belongs_to(row.new_topic_id, row.new_subject_id):
                    summary.skipped += 1
                    continue
                question_id = row.question_id
                stale_topic_id = row.new_topic_id
                try:
                    subject = store.resolve_subject(row.new_subject_id, row.new_subject_name)
                    topic = store.find_or_create_topic(row.new_topic_name, subject.id)
                    ledger.rewrite_target(
                        row, subject_id=subject.id, subject_name=subject.name, topic_id=topic.id, topic_name=topic.name
                    )
                    session.commit()
                except (SQLAlchemyError, PipelineError, ValueError) as exc:
                    session.rollback()
                    summary.fail(f"{question_id}: {exc}")
                    logger.warning("[drift-repair] item=%s cannot be re-resolved: %s", question_id, exc)
                    continue
                summary.created += 1
                logger.info(
                    "[drift-repair] item=%s topic %s -> %s (%r in %r)",
                    question_id,
                    stale_topic_id,
                    topic.id,
                    topic.name,
                    subject.name,
                )

        summary.log(logger)
        return summary

    def run_sentinel_cleanup(self) -> PassSummary:
        """
        Forget sentinel proposals so those items are classified again, and drop the
        sentinel placeholder topics once nothing points at them.
        """
        summary = PassSummary(name="sentinel-cleanup")
        with self.ctx.session_factory() as session:
            ledger = StagingLedger(session)
            store = TaxonomyStore(session)

            item_ids = ledger.delete_sentinel_rows()
            summary.removed += len(item_ids)
            logger.info("[sentinel-cleanup] removed %d sentinel proposal(s)", len(item_ids))

            topics = session.scalars(
                select(Topic).where(func.lower(Topic.name) == SENTINEL_TOPIC_NAME.lower())
            ).all()
            summary.total = len(item_ids) + len(topics)
            for topic in topics:
                topic_id = topic.id
                try:
                    store.delete_topic(topic_id)
                except OrphanDeletionHazard as hazard:
                    summary.skipped += 1
                    logger.warning("[sentinel-cleanup] %s", hazard.message)
                    continue
                summary.removed += 1
                logger.info("[sentinel-cleanup] deleted placeholder topic id=%s", topic_id)
            session.commit()

        summary.log(logger)
        return summary

