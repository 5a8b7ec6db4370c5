from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from soalbank_core.db.enums import TaxonomyOrigin
from soalbank_core.db.models import Question, QuestionAttempt, Subject, Topic
from soalbank_core.db.session import create_tables, make_engine, make_session_factory
from taxonomy_pipeline.classify.client import ClassifierResult
from taxonomy_pipeline.content import ContentSegment, segments_to_json
from taxonomy_pipeline.context import PipelineContext
from taxonomy_pipeline.errors import ClassificationFailed

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fakes for the external services
# ---------------------------------------------------------------------------

class FakeOcr:
    """Returns canned text per URL and records every call."""

    def __init__(self, texts=None):
        self.texts = dict(texts or {})
        self.calls = []

    def scan_image_url(self, image_url):
        self.calls.append(image_url)
        return self.texts.get(image_url, "")


class FakeClassifier:
    """
    ``responses`` maps question text to a ClassifierResult, or to an exception to raise.
    Unknown text gets ``default``.
    """

    def __init__(self, responses=None, default=None):
        self.responses = dict(responses or {})
        self.default = default or ClassifierResult("Matematika", "Aljabar", "default prediction")
        self.calls = []

    def classify(self, text, tentative_category):
        self.calls.append((text, tentative_category))
        result = self.responses.get(text, self.default)
        if isinstance(result, Exception):
            raise result
        return result


def classification_error(message="classifier down"):
    return ClassificationFailed(message)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'soalbank.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def ocr():
    return FakeOcr()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def ctx(session_factory, ocr, classifier):
    return PipelineContext(session_factory=session_factory, ocr=ocr, classifier=classifier, progress_every=0)


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_question(session):
    """Insert and commit an item. Items are created one second apart, in call order."""
    ticks = count()

    def _make(text="Berapa 2 + 2?", *, segments=None, source="UTBK", year=2024, subject=None, topic=None):
        if segments is None:
            segments = [ContentSegment.text(text)] if text else []
        question = Question(
            content=segments_to_json(segments),
            answers=[],
            options=[],
            subject_id=subject.id if subject is not None else None,
            topic_id=topic.id if topic is not None else None,
            source=source,
            year=year,
            published=False,
            created_at=BASE_TIME + timedelta(seconds=next(ticks)),
        )
        session.add(question)
        session.commit()
        return question

    return _make


@pytest.fixture
def make_subject(session):
    def _make(name, *, origin=TaxonomyOrigin.seed):
        subject = Subject(name=name, alternate_name=name, origin=origin)
        session.add(subject)
        session.commit()
        return subject

    return _make


@pytest.fixture
def make_topic(session):
    def _make(name, subject, *, origin=TaxonomyOrigin.seed):
        topic = Topic(name=name, subject_id=subject.id, origin=origin)
        session.add(topic)
        session.commit()
        return topic

    return _make


@pytest.fixture
def add_attempt(session):
    def _add(question):
        session.add(QuestionAttempt(question_id=question.id, answer_history="A"))
        session.commit()

    return _add
