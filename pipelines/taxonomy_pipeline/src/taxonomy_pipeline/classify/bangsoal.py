from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from taxonomy_pipeline.classify.client import ClassifierResult
from taxonomy_pipeline.errors import ClassificationFailed

logger = logging.getLogger(__name__)

PREDICT_PATH = "/predict-type-task"


@dataclass
class BangsoalClassifier:
    """
    Client for the question-type prediction service.

    - POST {base_url}/predict-type-task with ``{"question": <text>, "main_type": <hint>}``
    - header ``access-key: <key>``
    - response ``{"data": {"type": <subject>, "subtype": <topic>, "description": <why>}}``

    Nothing is guessed here: any failure or malformed payload raises ``ClassificationFailed``.
    """

    api_key: str
    base_url: str = "https://ai.bangsoal.co"
    timeout_s: float = 60.0
    max_retries: int = 3
    backoff_s: float = 1.5
    transport: httpx.BaseTransport | None = None
    _client: httpx.Client | None = field(default=None, init=False, repr=False)

    def __enter__(self) -> "BangsoalClassifier":
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

    @property
    def endpoint(self) -> str:
        base = self.base_url.rstrip("/")
        # Allow callers to set either the service root or the full endpoint.
        return base if base.endswith(PREDICT_PATH) else base + PREDICT_PATH

    def classify(self, text: str, tentative_category: str) -> ClassifierResult:
        payload = {"question": text, "main_type": tentative_category}
        data = self._post(payload)
        result = _parse_prediction(data)
        logger.debug("[classifier] type=%r subtype=%r hint=%r", result.subject_name, result.topic_name, tentative_category)
        return result

    def _post(self, payload: dict[str, Any]) -> Any:
        url = self.endpoint
        headers = {"access-key": self.api_key, "Content-Type": "application/json"}
        client = self._ensure_client()

        last_exc: Exception | None = None
        resp: httpx.Response | None = None
        for attempt in range(1, max(1, self.max_retries) + 1):
            try:
                resp = client.post(url, headers=headers, json=payload)
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
            raise ClassificationFailed(f"classifier request to {url} failed after retries: {last_exc}")
        if resp.status_code >= 400:
            raise ClassificationFailed(f"classifier error {resp.status_code} from {url}: {resp.text[:500]}")
        try:
            return resp.json()
        except ValueError as exc:
            raise ClassificationFailed(f"classifier returned non-JSON body: {resp.text[:500]!r}") from exc


def _parse_prediction(data: Any) -> ClassifierResult:
    body = data.get("data") if isinstance(data, dict) else None
    if not isinstance(body, dict):
        raise ClassificationFailed(f"classifier response has no data object: {str(data)[:500]!r}")

    subject_name = body.get("type")
    topic_name = body.get("subtype")
    rationale = body.get("description")
    if not isinstance(subject_name, str) or not subject_name.strip():
        raise ClassificationFailed(f"classifier response is missing 'type': {body!r}")
    if topic_name is not None and not isinstance(topic_name, str):
        raise ClassificationFailed(f"classifier response has a non-string 'subtype': {body!r}")

    return ClassifierResult(
        subject_name=subject_name.strip(),
        topic_name=(topic_name or "").strip(),
        rationale=rationale if isinstance(rationale, str) else "",
    )
