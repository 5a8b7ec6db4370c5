from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from soalbank_core.db.enums import TaxonomyOrigin
from soalbank_core.db.models import Question, Subject, Topic
from taxonomy_pipeline.errors import OrphanDeletionHazard, TaxonomyConflict
from taxonomy_pipeline.taxonomy.diff import TopicSyncResult, diff_topics

logger = logging.getLogger(__name__)

UNDECIDED = "UNDECIDED"
# Topic name recorded for items the classifier cannot (or was not asked to) place.
SENTINEL_TOPIC_NAME = "Subtype result not found"

RowT = TypeVar("RowT", Subject, Topic)


@dataclass(frozen=True)
class UndecidedBucket:
    subject_id: uuid.UUID
    topic_id: uuid.UUID


class SubjectMapping(BaseModel):
    """One entry of a subject mapping file: ``{"name": ..., "topics": [...]}``."""

    name: str
    topics: list[str] = Field(default_factory=list)
    year: str | None = None


def is_sentinel_topic(name: str | None) -> bool:
    return (name or "").strip().lower() == SENTINEL_TOPIC_NAME.lower()


class TaxonomyStore:
    """
    Canonical Subject -> Topic hierarchy.

    Lookups are case-insensitive and always hit the database, so a row created for one
    item is visible to the next. Creation inserts inside a SAVEPOINT and, on a unique
    violation, re-reads the row the other writer created: identical concurrent calls
    converge on one stored row.
    """

    def __init__(self, session: Session):
        self.session = session
        self.created_subjects: list[Subject] = []
        self.created_topics: list[Topic] = []

    # -- lookups -------------------------------------------------------------------

    def find_subject(self, name: str) -> Subject | None:
        name = name.strip()
        candidates = self.session.scalars(
            select(Subject)
            .where(func.lower(Subject.name) == name.lower())
            .order_by(Subject.created_at, Subject.id)
        ).all()
        if not candidates:
            return None
        for subject in candidates:
            if subject.alternate_name == name:
                return subject
        return candidates[0]

    def find_topic(self, name: str, subject_id: uuid.UUID) -> Topic | None:
        return self.session.scalars(
            select(Topic).where(func.lower(Topic.name) == name.strip().lower(), Topic.subject_id == subject_id)
        ).first()

    def topic_names(self, subject_id: uuid.UUID) -> set[str]:
        return set(self.session.scalars(select(Topic.name).where(Topic.subject_id == subject_id)).all())

    def topic_belongs_to(self, topic_id: uuid.UUID | None, subject_id: uuid.UUID | None) -> bool:
        if topic_id is None or subject_id is None:
            return False
        topic = self.session.get(Topic, topic_id)
        return topic is not None and topic.subject_id == subject_id

    def subject_name(self, subject_id: uuid.UUID | None) -> str:
        subject = self.session.get(Subject, subject_id) if subject_id is not None else None
        return subject.name if subject is not None else ""

    def topic_name(self, topic_id: uuid.UUID | None) -> str:
        topic = self.session.get(Topic, topic_id) if topic_id is not None else None
        return topic.name if topic is not None else ""

    def count_topic_references(self, topic_id: uuid.UUID) -> int:
        return self.session.scalar(select(func.count()).select_from(Question).where(Question.topic_id == topic_id)) or 0

    # -- create-or-find ------------------------------------------------------------

    def find_or_create_subject(
        self,
        name: str,
        *,
        year: str | None = None,
        origin: TaxonomyOrigin = TaxonomyOrigin.staging,
    ) -> Subject:
        name = _require_name(name, "subject")
        existing = self.find_subject(name)
        if existing is not None:
            return existing
        try:
            subject = self._insert(Subject(name=name, alternate_name=name, year=year, origin=origin))
        except TaxonomyConflict as conflict:
            recovered = self.find_subject(name)
            if recovered is None:
                raise
            logger.info("[taxonomy] %s; using subject id=%s", conflict.message, recovered.id)
            return recovered
        self.created_subjects.append(subject)
        logger.info("[taxonomy] created subject %r id=%s", subject.name, subject.id)
        return subject

    def find_or_create_topic(
        self,
        name: str,
        subject_id: uuid.UUID,
        *,
        origin: TaxonomyOrigin = TaxonomyOrigin.staging,
    ) -> Topic:
        name = _require_name(name, "topic")
        existing = self.find_topic(name, subject_id)
        if existing is not None:
            return existing
        try:
            topic = self._insert(Topic(name=name, subject_id=subject_id, origin=origin))
        except TaxonomyConflict as conflict:
            recovered = self.find_topic(name, subject_id)
            if recovered is None:
                raise
            logger.info("[taxonomy] %s; using topic id=%s", conflict.message, recovered.id)
            return recovered
        self.created_topics.append(topic)
        logger.info("[taxonomy] created topic %r subject_id=%s id=%s", topic.name, subject_id, topic.id)
        return topic

    def resolve_subject(self, subject_id: uuid.UUID | None, name: str) -> Subject:
        """The subject row by id if it still exists, else find-or-create by name."""
        subject = self.session.get(Subject, subject_id) if subject_id is not None else None
        if subject is not None:
            return subject
        return self.find_or_create_subject(name)

    def ensure_undecided_bucket(self) -> UndecidedBucket:
        subject = self.find_or_create_subject(UNDECIDED, origin=TaxonomyOrigin.system)
        topic = self.find_or_create_topic(UNDECIDED, subject.id, origin=TaxonomyOrigin.system)
        return UndecidedBucket(subject_id=subject.id, topic_id=topic.id)

    def _insert(self, row: RowT) -> RowT:
        try:
            with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError as exc:
            raise TaxonomyConflict(f"concurrent create of {type(row).__name__.lower()} {row.name!r}") from exc
        return row

    # -- guarded deletes -----------------------------------------------------------

    def delete_topic(self, topic_id: uuid.UUID) -> str:
        """Delete an unreferenced topic. Raises ``OrphanDeletionHazard`` if any item points at it."""
        topic = self.session.get(Topic, topic_id)
        if topic is None:
            return ""
        references = self.count_topic_references(topic_id)
        if references:
            raise OrphanDeletionHazard("topic", topic_id, references)
        name = topic.name
        with self.session.begin_nested():
            self.session.delete(topic)
        # Ledger rows had their topic ids nulled by the database.
        self.session.expire_all()
        return name

    def delete_subject(self, subject_id: uuid.UUID) -> str:
        subject = self.session.get(Subject, subject_id)
        if subject is None:
            return ""
        references = (
            self.session.scalar(select(func.count()).select_from(Topic).where(Topic.subject_id == subject_id)) or 0
        ) + (
            self.session.scalar(select(func.count()).select_from(Question).where(Question.subject_id == subject_id))
            or 0
        )
        if references:
            raise OrphanDeletionHazard("subject", subject_id, references)
        name = subject.name
        with self.session.begin_nested():
            self.session.delete(subject)
        self.session.expire_all()
        return name

    # -- mapping sync ----------------------------------------------------------------

    def apply_topic_diff(self, subject_id: uuid.UUID, desired: Iterable[str]) -> TopicSyncResult:
        subject = self.session.get(Subject, subject_id)
        result = TopicSyncResult(subject_name=subject.name if subject is not None else str(subject_id))
        desired_names = {name.strip() for name in desired if name and name.strip()}
        diff = diff_topics(desired_names, self.topic_names(subject_id))

        for name in sorted(diff.to_create):
            self.find_or_create_topic(name, subject_id, origin=TaxonomyOrigin.seed)
            result.created.append(name)

        for name in sorted(diff.to_remove):
            topic = self.session.scalars(select(Topic).where(Topic.name == name, Topic.subject_id == subject_id)).first()
            if topic is None:
                continue
            try:
                self.delete_topic(topic.id)
            except OrphanDeletionHazard as hazard:
                logger.warning("[taxonomy] keeping topic %r of %r: %s", name, result.subject_name, hazard.message)
                result.kept_referenced.append(name)
                continue
            result.removed.append(name)
            logger.info("[taxonomy] removed topic %r of %r", name, result.subject_name)
        return result

    def sync_subject_mapping(self, mapping: Iterable[SubjectMapping]) -> list[TopicSyncResult]:
        results = []
        for entry in mapping:
            subject = self.find_or_create_subject(entry.name, year=entry.year, origin=TaxonomyOrigin.seed)
            results.append(self.apply_topic_diff(subject.id, entry.topics))
        return results


def _require_name(name: str, what: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValueError(f"{what} name must not be blank")
    return name
