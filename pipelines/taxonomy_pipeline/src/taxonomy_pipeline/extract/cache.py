from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from soalbank_core.db.models import ExtractedContent
from taxonomy_pipeline.extract.mathpix import OcrClient, normalize_image_url

logger = logging.getLogger(__name__)


class ContentCache:
    """
    URL-keyed OCR cache backed by ``extracted_content``.

    Entries are written once per normalized URL, empty results included, and are never
    invalidated: a broken asset costs one OCR call, not one per run.
    """

    def __init__(self, session: Session, ocr: OcrClient):
        self.session = session
        self.ocr = ocr
        self.hits = 0
        self.misses = 0

    def lookup(self, source_url: str) -> ExtractedContent | None:
        key = normalize_image_url(source_url)
        return self.session.scalars(select(ExtractedContent).where(ExtractedContent.source_url == key)).first()

    def get_or_extract(self, source_url: str) -> str:
        key = normalize_image_url(source_url)
        entry = self.lookup(key)
        if entry is not None:
            self.hits += 1
            logger.debug("[cache] hit url=%s", key)
            return entry.extracted_content or ""

        self.misses += 1
        logger.info("[cache] miss url=%s; scanning image", key)
        text = self.ocr.scan_image_url(key)
        self._store(key, source_url, text)
        return text

    def _store(self, key: str, raw_url: str, text: str) -> None:
        try:
            with self.session.begin_nested():
                self.session.add(ExtractedContent(source_url=key, url=raw_url, extracted_content=text))
        except IntegrityError:
            # Another writer stored the same URL meanwhile; last writer wins.
            existing = self.lookup(key)
            if existing is not None:
                existing.extracted_content = text
                self.session.flush()
