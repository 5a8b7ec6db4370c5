from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from soalbank_core.db.base import Base
from soalbank_core.db.enums import QuestionType, TaxonomyOrigin


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Distinguishes subjects that share a display name (e.g. per exam year).
    alternate_name: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[str | None] = mapped_column(String(4), nullable=True)
    origin: Mapped[TaxonomyOrigin] = mapped_column(
        Enum(TaxonomyOrigin, native_enum=False), nullable=False, default=TaxonomyOrigin.seed
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    topics: Mapped[list["Topic"]] = relationship(back_populates="subject")


class Topic(Base):
    __tablename__ = "topics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("subjects.id"), nullable=False)
    origin: Mapped[TaxonomyOrigin] = mapped_column(
        Enum(TaxonomyOrigin, native_enum=False), nullable=False, default=TaxonomyOrigin.seed
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    subject: Mapped[Subject] = relationship(back_populates="topics")


# Case-insensitive uniqueness: concurrent creates of "Aljabar" and "aljabar" converge on one row.
Index("uq_subjects_name_alternate", func.lower(Subject.name), Subject.alternate_name, unique=True)
Index("uq_topics_name_subject", func.lower(Topic.name), Topic.subject_id, unique=True)


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Ordered content segments: [{"content": str, "isMedia": bool}, ...]
    content: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    answers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # [{"id": str, "content": str, "key": "A".."E", "is_true": bool}, ...]
    options: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    subject_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("subjects.id"), nullable=True)
    topic_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("topics.id"), nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[QuestionType] = mapped_column(
        Enum(QuestionType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=QuestionType.multiple_choice,
    )
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    subject: Mapped[Subject | None] = relationship()
    topic: Mapped[Topic | None] = relationship()

    __table_args__ = (
        Index("ix_questions_created", "created_at", "id"),
        Index("ix_questions_source_year", "source", "year"),
    )


class QuestionAttempt(Base):
    __tablename__ = "question_attempts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("questions.id"), nullable=False, index=True)
    answer_history: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ExtractedContent(Base):
    __tablename__ = "extracted_content"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Normalized URL; the cache key.
    source_url: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    # URL as it appeared in the input.
    url: Mapped[str] = mapped_column(Text, nullable=False)
    # Empty string records a failed/blank extraction so it is not retried.
    extracted_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class ClassificationProposal(Base):
    __tablename__ = "temp_question_subject"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    old_subject_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("subjects.id", ondelete="SET NULL"), nullable=True
    )
    old_subject_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    old_topic_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("topics.id", ondelete="SET NULL"), nullable=True
    )
    old_topic_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    new_subject_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("subjects.id", ondelete="SET NULL"), nullable=True
    )
    new_subject_name: Mapped[str] = mapped_column(Text, nullable=False)
    new_topic_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("topics.id", ondelete="SET NULL"), nullable=True
    )
    new_topic_name: Mapped[str] = mapped_column(Text, nullable=False)
    prediction_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (Index("ix_temp_question_subject_new_topic", "new_topic_name"),)
