"""
Typed question payloads.

Question bodies, explanations and answer options are stored as JSON. They are parsed
into these models once, at the ingestion boundary, and serialized back with the wire
aliases (``isMedia``, ``is_true``) the stored rows use.
"""

from __future__ import annotations

import re
import uuid
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from soalbank_core.hashing import sha256_json

_MEDIA_URL_RE = re.compile(r"^(https?://)?([a-zA-Z0-9_-]+\.)+[a-zA-Z]{2,}(/[a-zA-Z0-9_.?=&%-]+)*/?$")


class ContentSegment(BaseModel):
    """One unit of a question body: literal text, or a reference to a media asset."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    content: str = ""
    is_media: bool = Field(default=False, alias="isMedia")

    @classmethod
    def text(cls, content: str) -> "ContentSegment":
        return cls(content=content, is_media=False)

    @classmethod
    def media(cls, url: str) -> "ContentSegment":
        return cls(content=url, is_media=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class AnswerOption(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: str = ""
    key: str
    is_correct: bool = Field(default=False, alias="is_true")

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def looks_like_media_url(text: str) -> bool:
    text = text.strip()
    return bool(text) and " " not in text and _MEDIA_URL_RE.match(text) is not None


def parse_segments(raw: Any) -> list[ContentSegment]:
    """
    Accepts the current list-of-segments shape, the legacy ``{content, asset_url}``
    object, or nothing. Entries that do not validate are dropped.
    """
    if raw is None:
        return []
    if isinstance(raw, dict):
        segments = []
        if raw.get("content"):
            segments.append(ContentSegment.text(str(raw["content"])))
        if raw.get("asset_url"):
            segments.append(ContentSegment.media(str(raw["asset_url"])))
        return segments
    if not isinstance(raw, list):
        return []

    segments = []
    for entry in raw:
        if isinstance(entry, ContentSegment):
            segments.append(entry)
            continue
        if not isinstance(entry, dict):
            continue
        if "isMedia" not in entry and "is_media" not in entry:
            # Rows written before the flag existed: infer it from the content.
            entry = {**entry, "isMedia": looks_like_media_url(str(entry.get("content", "")))}
        try:
            segments.append(ContentSegment.model_validate(entry))
        except ValidationError:
            continue
    return segments


def segments_to_json(segments: Iterable[ContentSegment]) -> list[dict[str, Any]]:
    return [s.to_json() for s in segments]


def options_to_json(options: Iterable[AnswerOption]) -> list[dict[str, Any]]:
    return [o.to_json() for o in options]


def primary_text(segments: Iterable[ContentSegment]) -> str:
    """The text a classifier sees: non-media segments joined by newlines."""
    return "\n".join(s.content for s in segments if not s.is_media and s.content.strip())


def content_fingerprint(segments: Iterable[ContentSegment]) -> str:
    return sha256_json(segments_to_json(segments))
