"""Tests for spreadsheet rows and the ingestion pass."""

import httpx
import pytest
from sqlalchemy import select

from soalbank_core.db.enums import QuestionType
from soalbank_core.db.models import ExtractedContent, Question
from taxonomy_pipeline.content import AnswerOption, ContentSegment, parse_segments
from taxonomy_pipeline.ingest import (
    GoogleSheetsSource,
    IngestionPass,
    SheetRow,
    interleave_segments,
    read_csv_rows,
    spreadsheet_id_from_url,
)

TEXT_1 = "https://cdn.example.com/soal-1.png"
TEXT_2 = "https://cdn.example.com/soal-2.png"
MEDIA_1 = "https://drive.google.com/file/d/GAMBAR1/view"
CHOICES = "https://cdn.example.com/pilihan.png"
EXPLAIN = "https://cdn.example.com/pembahasan.png"


def _values(*, label="UTBK", subject="Matematika", texts=TEXT_1, choice="", explain="", media="", qtype="PILIHAN"):
    row = ["1", "", label, subject, texts, choice, explain, media, "", "", qtype]
    return row


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------

class TestSheetRow:

    def test_columns_by_position(self):
        row = SheetRow.from_values(
            _values(texts=f"{TEXT_1}, {TEXT_2}", choice=CHOICES, explain=EXPLAIN, media=MEDIA_1, qtype="ISIAN")
        )
        assert row.source == "UTBK"
        assert row.subject_name == "Matematika"
        assert row.text_urls == [TEXT_1, TEXT_2]
        assert row.choice_url == CHOICES
        assert row.explanation_urls == [EXPLAIN]
        assert row.media_urls == [MEDIA_1]
        assert row.question_type == QuestionType.fill_in

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("TABEL", QuestionType.table_choice),
            ("PILIHAN", QuestionType.multiple_choice),
            ("", QuestionType.multiple_choice),
            ("LAINNYA", QuestionType.multiple_choice),
        ],
    )
    def test_question_type_mapping(self, raw, expected):
        assert SheetRow.from_values(_values(qtype=raw)).question_type == expected

    def test_short_row_uses_defaults(self):
        row = SheetRow.from_values(["1", "", "UTBK"])
        assert row.text_urls == []
        assert row.choice_url is None
        assert row.is_empty

    def test_header_row_is_empty(self):
        header = ["No", "Kode", "Label", "Mapel", "Soal", "Pilihan", "Pembahasan", "Gambar", "", "", "Tipe"]
        assert SheetRow.from_values(header).is_empty

    def test_read_csv(self, tmp_path):
        path = tmp_path / "rows.csv"
        path.write_text(
            "No,Kode,Label,Mapel,Soal,Pilihan,Pembahasan,Gambar,GambarPembahasan,Catatan,Tipe\n"
            f'1,,UTBK,Matematika,"{TEXT_1},{TEXT_2}",{CHOICES},,,,,TABEL\n',
            encoding="utf-8",
        )
        header, row = read_csv_rows(path)
        assert header.is_empty
        assert row.text_urls == [TEXT_1, TEXT_2]
        assert row.question_type == QuestionType.table_choice
        assert row.row_number == 1


class TestGoogleSheetsSource:

    def test_spreadsheet_id(self):
        assert spreadsheet_id_from_url("https://docs.google.com/spreadsheets/d/SHEET123/edit#gid=0") == "SHEET123"
        with pytest.raises(ValueError):
            spreadsheet_id_from_url("https://example.com/sheet")

    def test_fetch_rows(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            return httpx.Response(200, json={"values": [_values(), _values(label="SIMAK")]})

        with GoogleSheetsSource(
            spreadsheet_url="https://docs.google.com/spreadsheets/d/SHEET123/edit",
            api_key="gkey",
            transport=httpx.MockTransport(handler),
        ) as source:
            rows = list(source.rows())

        assert [r.source for r in rows] == ["UTBK", "SIMAK"]
        assert seen["url"].params["key"] == "gkey"
        assert seen["url"].path.startswith("/v4/spreadsheets/SHEET123/values/")


# ---------------------------------------------------------------------------
# Ingestion pass
# ---------------------------------------------------------------------------

class TestInterleave:

    def test_text_at_even_positions(self):
        segments = interleave_segments([ContentSegment.text("t1"), ContentSegment.text("t2")], ["m1"])
        assert segments == [ContentSegment.text("t1"), ContentSegment.media("m1"), ContentSegment.text("t2")]

    def test_leftover_media_is_appended(self):
        segments = interleave_segments([ContentSegment.text("t1")], ["m1", "m2"])
        assert [s.is_media for s in segments] == [False, True, True]


class TestIngestionPass:

    def _ocr_texts(self, ocr):
        ocr.texts.update(
            {
                TEXT_1: "Diketahui f(x) = 2x + 1.",
                TEXT_2: "Tentukan f(3).",
                CHOICES: "(A) 5\n(B) 6\n(C) 7\n(D) 8\n(E) 9",
                EXPLAIN: "f(3) = 7",
            }
        )

    def test_builds_item_from_row(self, ctx, ocr, make_subject, session_factory):
        self._ocr_texts(ocr)
        math = make_subject("Matematika")
        row = SheetRow.from_values(
            _values(subject="matematika", texts=f"{TEXT_1},{TEXT_2}", choice=CHOICES, explain=EXPLAIN, media=MEDIA_1)
        )

        summary = IngestionPass(ctx).run([row])

        assert summary.created == 1
        with session_factory() as s:
            question = s.scalars(select(Question)).one()
        assert parse_segments(question.content) == [
            ContentSegment.text("Diketahui f(x) = 2x + 1."),
            ContentSegment.media("https://drive.google.com/uc?export=download&id=GAMBAR1"),
            ContentSegment.text("Tentukan f(3)."),
        ]
        assert [(o.key, o.content) for o in map(AnswerOption.model_validate, question.options)] == [
            ("A", "5"),
            ("B", "6"),
            ("C", "7"),
            ("D", "8"),
            ("E", "9"),
        ]
        assert parse_segments(question.answers) == [ContentSegment.text("f(3) = 7")]
        assert question.subject_id == math.id
        assert question.topic_id is None
        assert question.published is False
        assert question.year == 2024

    def test_unknown_subject_is_left_unassigned(self, ctx, ocr, session_factory):
        self._ocr_texts(ocr)
        IngestionPass(ctx).run([SheetRow.from_values(_values(subject="Astronomi"))])

        with session_factory() as s:
            assert s.scalars(select(Question)).one().subject_id is None

    def test_same_row_twice_is_skipped(self, ctx, ocr, session_factory):
        self._ocr_texts(ocr)
        row = SheetRow.from_values(_values())

        first = IngestionPass(ctx).run([row])
        second = IngestionPass(ctx).run([row])

        assert (first.created, second.created, second.skipped) == (1, 0, 1)
        # The second run is served from the cache.
        assert ocr.calls == [TEXT_1]
        with session_factory() as s:
            assert len(s.scalars(select(Question)).all()) == 1
            assert len(s.scalars(select(ExtractedContent)).all()) == 1

    def test_same_content_in_another_year_is_ingested(self, ctx, ocr, session_factory):
        self._ocr_texts(ocr)
        row = SheetRow.from_values(_values())
        IngestionPass(ctx).run([row])

        ctx.default_year = 2025
        assert IngestionPass(ctx).run([row]).created == 1

    def test_unreadable_explanation_is_not_stored_as_blank_answer(self, ctx, ocr, session_factory):
        ocr.texts[TEXT_1] = "Diketahui f(x) = 2x + 1."
        row = SheetRow.from_values(_values(explain=EXPLAIN))

        assert IngestionPass(ctx).run([row]).created == 1

        with session_factory() as s:
            question = s.scalars(select(Question)).one()
        assert parse_segments(question.answers) == []

    def test_unreadable_question_images_stay_distinct(self, ctx, ocr, session_factory):
        broken_1 = "https://cdn.example.com/soal-rusak-1.png"
        broken_2 = "https://cdn.example.com/soal-rusak-2.png"
        rows = [SheetRow.from_values(_values(texts=broken_1)), SheetRow.from_values(_values(texts=broken_2))]

        summary = IngestionPass(ctx).run(rows)

        assert (summary.created, summary.skipped) == (2, 0)
        with session_factory() as s:
            contents = [parse_segments(q.content) for q in s.scalars(select(Question).order_by(Question.created_at))]
        assert sorted(c[0].content for c in contents) == [broken_1, broken_2]
        assert all(c[0].is_media for c in contents)

    def test_empty_rows_are_skipped(self, ctx, ocr):
        summary = IngestionPass(ctx).run([SheetRow.from_values(["No", "", "Label"])])
        assert (summary.created, summary.skipped) == (0, 1)
        assert ocr.calls == []
