from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from soalbank_core.db.models import Question
from taxonomy_pipeline.content import (
    ContentSegment,
    content_fingerprint,
    options_to_json,
    parse_segments,
    segments_to_json,
)
from taxonomy_pipeline.context import PipelineContext
from taxonomy_pipeline.errors import PipelineError
from taxonomy_pipeline.extract import ContentCache, choices_to_options, extract_choices, normalize_image_url
from taxonomy_pipeline.ingest.sheet import SheetRow
from taxonomy_pipeline.summary import PassSummary, should_report
from taxonomy_pipeline.taxonomy.store import TaxonomyStore

logger = logging.getLogger(__name__)


def interleave_segments(primary: list[ContentSegment], media_urls: list[str]) -> list[ContentSegment]:
    """
    Question-image segments at even positions, media at odd positions. When one list
    runs out the rest of the other is appended in order.
    """
    segments: list[ContentSegment] = []
    for idx in range(max(len(primary), len(media_urls))):
        if idx < len(primary):
            segments.append(primary[idx])
        if idx < len(media_urls):
            segments.append(ContentSegment.media(media_urls[idx]))
    return segments


def scanned_segment(cache: ContentCache, image_url: str) -> ContentSegment:
    """
    The OCR text of a question image, or the image itself when no text could be
    extracted. Unreadable images stay distinct and the item is treated as image-only.
    """
    text = cache.get_or_extract(image_url)
    if text.strip():
        return ContentSegment.text(text)
    return ContentSegment.media(normalize_image_url(image_url))


class IngestionPass:
    """
    Turn spreadsheet rows into unpublished, unclassified items.

    Subjects are looked up by name only; an unknown subject leaves ``subject_id`` empty
    and the item is routed to UNDECIDED at migration. Topics are never set here.
    """

    def __init__(self, ctx: PipelineContext):
        self.ctx = ctx

    def run(self, rows: Iterable[SheetRow]) -> PassSummary:
        ocr = self.ctx.require_ocr()
        rows = list(rows)
        summary = PassSummary(name="ingest", total=len(rows))

        with self.ctx.session_factory() as session:
            cache = ContentCache(session, ocr)
            store = TaxonomyStore(session)

            for idx, row in enumerate(rows, start=1):
                if should_report(idx, self.ctx.progress_every):
                    logger.info("[ingest] row %d/%d created=%d", idx, len(rows), summary.created)
                if row.is_empty:
                    summary.skipped += 1
                    continue
                try:
                    if self._ingest_row(session, cache, store, row):
                        summary.created += 1
                    else:
                        summary.skipped += 1
                    session.commit()
                except (SQLAlchemyError, PipelineError, ValueError) as exc:
                    session.rollback()
                    summary.fail(f"row {row.row_number}: {exc}")
                    logger.warning("[ingest] row=%d failed: %s", row.row_number, exc)

            logger.info("[ingest] cache hits=%d misses=%d", cache.hits, cache.misses)

        summary.log(logger)
        return summary

    def _ingest_row(self, session: Session, cache: ContentCache, store: TaxonomyStore, row: SheetRow) -> bool:
        year = self.ctx.default_year
        primary = [scanned_segment(cache, url) for url in row.text_urls]
        content = interleave_segments(primary, [normalize_image_url(url) for url in row.media_urls])

        if self._already_ingested(session, row.source, year, content):
            logger.info("[ingest] row=%d source=%r already exists; skipping", row.row_number, row.source)
            return False

        options = []
        if row.choice_url:
            options = choices_to_options(extract_choices(cache.get_or_extract(row.choice_url)))

        answers = []
        for url in row.explanation_urls:
            text = cache.get_or_extract(url)
            if text.strip():
                answers.append(ContentSegment.text(text))
            else:
                logger.warning("[ingest] row=%d no text extracted from explanation %s", row.row_number, url)
        answers += [ContentSegment.media(normalize_image_url(url)) for url in row.explanation_media_urls]

        subject = store.find_subject(row.subject_name) if row.subject_name else None
        if subject is None and row.subject_name:
            logger.warning("[ingest] row=%d subject %r not found; leaving unassigned", row.row_number, row.subject_name)

        question = Question(
            content=segments_to_json(content),
            answers=segments_to_json(answers),
            options=options_to_json(options),
            subject_id=subject.id if subject is not None else None,
            topic_id=None,
            source=row.source,
            year=year,
            type=row.question_type,
            published=False,
        )
        session.add(question)
        session.flush()
        logger.info(
            "[ingest] row=%d inserted item id=%s segments=%d options=%d",
            row.row_number,
            question.id,
            len(content),
            len(options),
        )
        return True

    def _already_ingested(self, session: Session, source: str, year: int, content: list[ContentSegment]) -> bool:
        fingerprint = content_fingerprint(content)
        existing = session.scalars(select(Question.content).where(Question.source == source, Question.year == year))
        return any(content_fingerprint(parse_segments(raw)) == fingerprint for raw in existing)
