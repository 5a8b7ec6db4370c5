from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from soalbank_core.db.session import make_engine, make_session_factory
from taxonomy_pipeline.classify.client import Classifier
from taxonomy_pipeline.errors import StoreUnavailable
from taxonomy_pipeline.extract.mathpix import OcrClient
from taxonomy_pipeline.settings import Settings


@dataclass
class PipelineContext:
    """
    Everything a pass needs, built once per run and handed to each component.

    ``ocr`` and ``classifier`` may be None for passes that never call them
    (migration, drift repair, taxonomy sync).
    """

    session_factory: sessionmaker[Session]
    ocr: OcrClient | None = None
    classifier: Classifier | None = None
    progress_every: int = 10
    default_year: int = 2024

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        ocr: OcrClient | None = None,
        classifier: Classifier | None = None,
    ) -> "PipelineContext":
        engine = make_engine(settings.database_url)
        return cls(
            session_factory=make_session_factory(engine),
            ocr=ocr,
            classifier=classifier,
            progress_every=settings.progress_every,
            default_year=settings.default_year,
        )

    def check_store(self) -> None:
        try:
            with self.session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"database unreachable: {exc}") from exc

    def require_ocr(self) -> OcrClient:
        if self.ocr is None:
            raise RuntimeError("this pass needs an OCR client")
        return self.ocr

    def require_classifier(self) -> Classifier:
        if self.classifier is None:
            raise RuntimeError("this pass needs a classifier")
        return self.classifier
