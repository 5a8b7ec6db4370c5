"""Tests for question payload parsing and fingerprints."""

from taxonomy_pipeline.content import (
    AnswerOption,
    ContentSegment,
    content_fingerprint,
    looks_like_media_url,
    parse_segments,
    primary_text,
    segments_to_json,
)


# ---------------------------------------------------------------------------
# parse_segments
# ---------------------------------------------------------------------------

class TestParseSegments:

    def test_list_of_tagged_segments(self):
        raw = [
            {"content": "Perhatikan gambar berikut.", "isMedia": False},
            {"content": "https://cdn.example.com/q1.png", "isMedia": True},
        ]
        segments = parse_segments(raw)
        assert segments == [
            ContentSegment.text("Perhatikan gambar berikut."),
            ContentSegment.media("https://cdn.example.com/q1.png"),
        ]

    def test_legacy_object_becomes_text_then_media(self):
        segments = parse_segments({"content": "Soal lama", "asset_url": "https://cdn.example.com/a.png"})
        assert [s.is_media for s in segments] == [False, True]
        assert segments[0].content == "Soal lama"

    def test_none_is_empty(self):
        assert parse_segments(None) == []

    def test_malformed_entries_are_dropped(self):
        raw = ["not a dict", {"content": 5, "isMedia": False}, {"content": "ok", "isMedia": False}]
        assert parse_segments(raw) == [ContentSegment.text("ok")]

    def test_missing_flag_is_inferred_from_content(self):
        segments = parse_segments([{"content": "https://cdn.example.com/x.png"}, {"content": "Hitung 3 x 4"}])
        assert [s.is_media for s in segments] == [True, False]


class TestMediaUrl:

    def test_bare_url_is_media(self):
        assert looks_like_media_url("https://drive.google.com/uc?export=download&id=abc")

    def test_sentence_is_not_media(self):
        assert not looks_like_media_url("Jika x = 2, maka x + 1 = 3")
        assert not looks_like_media_url("")


# ---------------------------------------------------------------------------
# Serialization and derived values
# ---------------------------------------------------------------------------

class TestWireShape:

    def test_segment_uses_is_media_alias(self):
        assert segments_to_json([ContentSegment.text("a")]) == [{"content": "a", "isMedia": False}]

    def test_option_uses_is_true_alias(self):
        option = AnswerOption(content="12", key="A", is_correct=True)
        dumped = option.to_json()
        assert dumped["is_true"] is True
        assert dumped["key"] == "A"
        assert dumped["id"]


class TestPrimaryText:

    def test_joins_text_segments_only(self):
        segments = [
            ContentSegment.text("Baris satu"),
            ContentSegment.media("https://cdn.example.com/g.png"),
            ContentSegment.text("  "),
            ContentSegment.text("Baris dua"),
        ]
        assert primary_text(segments) == "Baris satu\nBaris dua"

    def test_image_only_has_no_text(self):
        assert primary_text([ContentSegment.media("https://cdn.example.com/g.png")]) == ""


class TestFingerprint:

    def test_equal_content_equal_fingerprint(self):
        a = [ContentSegment.text("Soal"), ContentSegment.media("https://x.example.com/a.png")]
        b = parse_segments(segments_to_json(a))
        assert content_fingerprint(a) == content_fingerprint(b)

    def test_any_difference_changes_fingerprint(self):
        a = [ContentSegment.text("Soal 1")]
        b = [ContentSegment.text("Soal 2")]
        c = [ContentSegment.media("Soal 1")]
        assert len({content_fingerprint(a), content_fingerprint(b), content_fingerprint(c)}) == 3
