"""
Command-line interface for the soalbank taxonomy pipeline.

Usage:
    soalbank init-db                       # Create tables
    soalbank ingest-csv rows.csv           # Ingest spreadsheet rows exported as CSV
    soalbank ingest-sheet                  # Ingest rows from the configured Google Sheet
    soalbank classify [--limit N]          # Stage classification proposals
    soalbank repair-drift                  # Re-point proposals at the live taxonomy
    soalbank clean-sentinel                # Forget "no subtype" proposals
    soalbank migrate                       # Apply proposals, clean orphans and duplicates
    soalbank sync-taxonomy mapping.json    # Apply a subject -> topics mapping
    soalbank status                        # Show pipeline status
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.table import Table
from sqlalchemy import func, select

from soalbank_core.db.models import ClassificationProposal, ExtractedContent, Question, Subject, Topic
from soalbank_core.db.session import create_tables, make_engine
from taxonomy_pipeline.classify import BangsoalClassifier
from taxonomy_pipeline.context import PipelineContext
from taxonomy_pipeline.errors import StoreUnavailable
from taxonomy_pipeline.extract import MathpixClient
from taxonomy_pipeline.ingest import GoogleSheetsSource, IngestionPass, SheetRow, read_csv_rows
from taxonomy_pipeline.logging_config import configure_logging
from taxonomy_pipeline.migrate import MigrationDriver
from taxonomy_pipeline.reconcile import ReconciliationEngine
from taxonomy_pipeline.settings import Settings, get_settings
from taxonomy_pipeline.summary import PassSummary
from taxonomy_pipeline.taxonomy import UNDECIDED, SubjectMapping, TaxonomyStore, is_sentinel_topic

app = typer.Typer(name="soalbank", help="Question ingestion, classification staging and taxonomy migration.")
console = Console()


def _settings() -> Settings:
    settings = get_settings()
    configure_logging(settings.log_level, log_file=settings.log_file)
    return settings


def _context(settings: Settings, **clients) -> PipelineContext:
    ctx = PipelineContext.from_settings(settings, **clients)
    try:
        ctx.check_store()
    except StoreUnavailable as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(code=1) from exc
    return ctx


def _mathpix(settings: Settings) -> MathpixClient:
    if not settings.mathpix_app_id or not settings.mathpix_app_key:
        raise typer.BadParameter("Missing SOALBANK_MATHPIX_APP_ID / SOALBANK_MATHPIX_APP_KEY.")
    return MathpixClient(
        app_id=settings.mathpix_app_id,
        app_key=settings.mathpix_app_key,
        base_url=settings.mathpix_base_url,
        timeout_s=settings.request_timeout_s,
        max_retries=settings.max_retries,
    )


def _classifier(settings: Settings) -> BangsoalClassifier:
    if not settings.classifier_api_key:
        raise typer.BadParameter("Missing SOALBANK_CLASSIFIER_API_KEY (access-key for the predict-type-task endpoint).")
    return BangsoalClassifier(
        api_key=settings.classifier_api_key,
        base_url=settings.classifier_base_url,
        timeout_s=settings.request_timeout_s,
        max_retries=settings.max_retries,
    )


def _print_summaries(*summaries: PassSummary) -> None:
    table = Table(title="Pass summary")
    table.add_column("Pass", style="cyan")
    for column in ("Total", "Created", "Skipped", "Failed", "Removed"):
        table.add_column(column, justify="right")
    for s in summaries:
        table.add_row(s.name, str(s.total), str(s.created), str(s.skipped), str(s.failed), str(s.removed))
    console.print(table)
    for s in summaries:
        for error in s.errors[:10]:
            console.print(f"[yellow]{s.name}[/yellow] {error}")


def _ingest(settings: Settings, rows: list[SheetRow]) -> None:
    with _mathpix(settings) as ocr:
        ctx = _context(settings, ocr=ocr)
        _print_summaries(IngestionPass(ctx).run(rows))


@app.command("init-db")
def init_db() -> None:
    """Create every table that does not exist yet."""
    settings = _settings()
    engine = make_engine(settings.database_url)
    create_tables(engine)
    console.print("[green]✓ Tables created[/green]")


@app.command("ingest-csv")
def ingest_csv(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV export of the upload sheet."),
) -> None:
    settings = _settings()
    _ingest(settings, read_csv_rows(path))


@app.command("ingest-sheet")
def ingest_sheet(
    spreadsheet_url: Optional[str] = typer.Option(None, help="Overrides SOALBANK_SPREADSHEET_URL."),
) -> None:
    """Fetch the upload sheet through the Sheets values API and ingest it."""
    settings = _settings()
    url = spreadsheet_url or settings.spreadsheet_url
    if not url or not settings.google_api_key:
        raise typer.BadParameter("Missing SOALBANK_SPREADSHEET_URL / SOALBANK_GOOGLE_API_KEY.")
    with GoogleSheetsSource(
        spreadsheet_url=url,
        api_key=settings.google_api_key,
        range=settings.spreadsheet_range,
        timeout_s=settings.request_timeout_s,
    ) as source:
        rows = list(source.rows())
    _ingest(settings, rows)


@app.command()
def classify(
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Process at most N unclassified items."),
) -> None:
    """Stage a classification proposal for every item not yet in the ledger."""
    settings = _settings()
    with _classifier(settings) as classifier:
        ctx = _context(settings, classifier=classifier)
        _print_summaries(ReconciliationEngine(ctx).run_classification_pass(limit=limit))


@app.command("repair-drift")
def repair_drift() -> None:
    settings = _settings()
    ctx = _context(settings)
    _print_summaries(ReconciliationEngine(ctx).run_drift_repair())


@app.command("clean-sentinel")
def clean_sentinel() -> None:
    """Delete "no subtype" proposals so the next classify run retries those items."""
    settings = _settings()
    ctx = _context(settings)
    _print_summaries(ReconciliationEngine(ctx).run_sentinel_cleanup())


@app.command()
def migrate(
    cleanup: bool = typer.Option(True, help="Delete unreferenced staging topics and subjects."),
    dedup: bool = typer.Option(True, help="Delete duplicate items that have no attempts."),
) -> None:
    """Apply staged proposals to items."""
    settings = _settings()
    ctx = _context(settings)
    report = MigrationDriver(ctx).run(cleanup=cleanup, dedup=dedup)
    _print_summaries(*report.passes)


@app.command("sync-taxonomy")
def sync_taxonomy(
    mapping_path: Path = typer.Argument(..., exists=True, dir_okay=False, help='JSON list of {"name", "topics"}.'),
) -> None:
    settings = _settings()
    try:
        mapping = TypeAdapter(list[SubjectMapping]).validate_python(
            json.loads(mapping_path.read_text(encoding="utf-8"))
        )
    except (ValueError, ValidationError) as exc:
        raise typer.BadParameter(f"invalid mapping file: {exc}") from exc

    ctx = _context(settings)
    with ctx.session_factory() as session:
        results = TaxonomyStore(session).sync_subject_mapping(mapping)
        session.commit()

    table = Table(title="Taxonomy sync")
    table.add_column("Subject", style="cyan")
    table.add_column("Created", justify="right")
    table.add_column("Removed", justify="right")
    table.add_column("Kept (referenced)")
    for r in results:
        table.add_row(r.subject_name, str(len(r.created)), str(len(r.removed)), ", ".join(r.kept_referenced))
    console.print(table)


@app.command()
def status() -> None:
    """Counts of items, proposals and taxonomy rows."""
    settings = _settings()
    ctx = _context(settings)
    with ctx.session_factory() as session:
        def count(stmt) -> int:
            return session.scalar(stmt) or 0

        items = count(select(func.count()).select_from(Question))
        proposals = count(select(func.count()).select_from(ClassificationProposal))
        sentinel = sum(
            1 for name in session.scalars(select(ClassificationProposal.new_topic_name)) if is_sentinel_topic(name)
        )
        undecided = count(
            select(func.count())
            .select_from(Question)
            .join(Subject, Subject.id == Question.subject_id)
            .where(Subject.name == UNDECIDED)
        )
        rows = [
            ("Items", items),
            ("Items without proposal", items - proposals),
            ("Proposals", proposals),
            ("Proposals without subtype", sentinel),
            ("Items in UNDECIDED", undecided),
            ("Subjects", count(select(func.count()).select_from(Subject))),
            ("Topics", count(select(func.count()).select_from(Topic))),
            ("Cached extractions", count(select(func.count()).select_from(ExtractedContent))),
        ]

    table = Table(title="soalbank status")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    for label, value in rows:
        table.add_row(label, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
