from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from taxonomy_pipeline.errors import ExtractionUnavailable

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ["text", "data", "html", "latex_styled"]


class OcrClient(Protocol):
    def scan_image_url(self, image_url: str) -> str: ...


def normalize_image_url(url: str) -> str:
    """
    Rewrite share links into a directly downloadable form.

    Google Drive viewer links (``https://drive.google.com/file/d/<id>/view``) become
    ``https://drive.google.com/uc?export=download&id=<id>``. Anything else is returned
    with whitespace removed.
    """
    url = "".join(url.split())
    if "drive.google" in url and "/d/" in url:
        file_id = url.split("/d/", 1)[1].split("/", 1)[0]
        if file_id:
            return f"https://drive.google.com/uc?export=download&id={file_id}"
    return url


def escape_option_markers(text: str) -> str:
    # A literal "(C)" in OCR output (copyright, labels) would otherwise parse as choice C.
    return text.replace("(C)", "&#40;C&#41;").replace("(c)", "&#40;c&#41;")


@dataclass
class MathpixClient:
    """
    Mathpix ``v3/text`` client.

    - POST {base_url} with ``{"src": <image url>, "formats": [...]}``
    - auth headers ``app_id`` / ``app_key``
    - only the plain ``text`` output is used
    """

    app_id: str
    app_key: str
    base_url: str = "https://api.mathpix.com/v3/text"
    timeout_s: float = 60.0
    max_retries: int = 3
    backoff_s: float = 1.5
    transport: httpx.BaseTransport | None = None
    _client: httpx.Client | None = field(default=None, init=False, repr=False)

    def __enter__(self) -> "MathpixClient":
        self._ensure_client()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _ensure_client(self) -> httpx.Client:
        if self._client is None:
            timeout = httpx.Timeout(self.timeout_s, connect=self.timeout_s, read=self.timeout_s, write=self.timeout_s)
            self._client = httpx.Client(timeout=timeout, transport=self.transport)
        return self._client

    def scan_image_url(self, image_url: str) -> str:
        """
        OCR one image. Never raises for provider problems: an empty string means
        "extraction unavailable" and must not be treated as a blank answer.
        """
        url = normalize_image_url(image_url)
        try:
            text = self.recognize_text(url)
        except ExtractionUnavailable as exc:
            logger.warning("[ocr] extraction unavailable url=%s: %s", url, exc.message)
            return ""
        return escape_option_markers(text)

    def recognize_text(self, url: str) -> str:
        payload = self._post({"src": url, "formats": OUTPUT_FORMATS})
        text = payload.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ExtractionUnavailable(str(payload.get("error") or "No text found"))
        return text

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        headers = {"app_id": self.app_id, "app_key": self.app_key, "Content-Type": "application/json"}
        client = self._ensure_client()

        last_exc: Exception | None = None
        resp: httpx.Response | None = None
        for attempt in range(1, max(1, self.max_retries) + 1):
            try:
                resp = client.post(self.base_url, headers=headers, json=body)
            except httpx.TransportError as exc:
                last_exc = exc
                resp = None
                if attempt < self.max_retries:
                    time.sleep(self.backoff_s * attempt)
                continue
            if resp.status_code == 429 and attempt < self.max_retries:
                time.sleep(self.backoff_s * attempt)
                continue
            break

        if resp is None:
            raise ExtractionUnavailable(f"request failed after retries: {last_exc}")
        if resp.status_code >= 400:
            raise ExtractionUnavailable(f"HTTP {resp.status_code}: {resp.text[:300]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ExtractionUnavailable(f"non-JSON response: {resp.text[:300]!r}") from exc
        if not isinstance(data, dict):
            raise ExtractionUnavailable("unexpected response shape")
        return data
