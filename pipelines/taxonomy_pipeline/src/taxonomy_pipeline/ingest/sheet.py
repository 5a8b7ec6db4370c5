"""
Spreadsheet batch input.

Rows come from the "ready-to-upload" sheet, either exported as CSV or fetched through
the Google Sheets v4 values API. Columns are positional:

    2  label (stored as the item's source)
    3  subject name
    4  question-text image URLs, comma-separated
    5  answer-choice image URL
    6  explanation image URLs, comma-separated
    7  question media image URLs, comma-separated
    8  explanation media image URLs, comma-separated
    10 question type (ISIAN, TABEL, PILIHAN)
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Sequence
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field

from soalbank_core.db.enums import QuestionType

logger = logging.getLogger(__name__)

QUESTION_TYPE_MAPPING = {
    "ISIAN": QuestionType.fill_in,
    "TABEL": QuestionType.table_choice,
    "PILIHAN": QuestionType.multiple_choice,
}

SHEETS_VALUES_URL = "https://sheets.googleapis.com/v4/spreadsheets/{sheet_id}/values/{range}"


def _cell(values: Sequence[Any], idx: int) -> str:
    if idx >= len(values) or values[idx] is None:
        return ""
    return str(values[idx]).strip()


def _url_list(cell: str) -> list[str]:
    # Non-URL cells (the header row, notes) yield nothing.
    return [url.strip() for url in cell.split(",") if url.strip().lower().startswith(("http://", "https://"))]


class SheetRow(BaseModel):
    row_number: int = 0
    source: str = ""
    subject_name: str = ""
    text_urls: list[str] = Field(default_factory=list)
    choice_url: str | None = None
    explanation_urls: list[str] = Field(default_factory=list)
    media_urls: list[str] = Field(default_factory=list)
    explanation_media_urls: list[str] = Field(default_factory=list)
    question_type: QuestionType = QuestionType.multiple_choice

    @classmethod
    def from_values(cls, values: Sequence[Any], *, row_number: int = 0) -> "SheetRow":
        raw_type = _cell(values, 10).upper()
        return cls(
            row_number=row_number,
            source=_cell(values, 2),
            subject_name=_cell(values, 3),
            text_urls=_url_list(_cell(values, 4)),
            choice_url=next(iter(_url_list(_cell(values, 5))), None),
            explanation_urls=_url_list(_cell(values, 6)),
            media_urls=_url_list(_cell(values, 7)),
            explanation_media_urls=_url_list(_cell(values, 8)),
            question_type=QUESTION_TYPE_MAPPING.get(raw_type, QuestionType.multiple_choice),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.text_urls or self.media_urls or self.choice_url)


def rows_from_values(values: Sequence[Sequence[Any]]) -> list[SheetRow]:
    return [SheetRow.from_values(row, row_number=idx) for idx, row in enumerate(values)]


def read_csv_rows(path: Path) -> list[SheetRow]:
    with path.open(newline="", encoding="utf-8") as f:
        return rows_from_values(list(csv.reader(f)))


def spreadsheet_id_from_url(url: str) -> str:
    """``https://docs.google.com/spreadsheets/d/<id>/edit`` -> ``<id>``."""
    if "/d/" not in url:
        raise ValueError(f"not a spreadsheet URL: {url!r}")
    sheet_id = url.split("/d/", 1)[1].split("/", 1)[0]
    if not sheet_id:
        raise ValueError(f"not a spreadsheet URL: {url!r}")
    return sheet_id


@dataclass
class GoogleSheetsSource:
    spreadsheet_url: str
    api_key: str
    range: str = "ready-to-upload!A1:Z1000"
    timeout_s: float = 60.0
    transport: httpx.BaseTransport | None = None
    _client: httpx.Client | None = field(default=None, init=False, repr=False)

    def __enter__(self) -> "GoogleSheetsSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def values_url(self) -> str:
        return SHEETS_VALUES_URL.format(
            sheet_id=spreadsheet_id_from_url(self.spreadsheet_url),
            range=quote(self.range, safe=""),
        )

    def fetch_values(self) -> list[list[Any]]:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout_s, transport=self.transport)
        resp = self._client.get(self.values_url, params={"key": self.api_key})
        resp.raise_for_status()
        values = resp.json().get("values") or []
        logger.info("[sheet] fetched %d row(s) from range %r", len(values), self.range)
        return values

    def rows(self) -> Iterator[SheetRow]:
        yield from rows_from_values(self.fetch_values())
