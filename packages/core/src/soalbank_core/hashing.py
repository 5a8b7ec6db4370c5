from __future__ import annotations

import json
from hashlib import sha256
from typing import Any


def sha256_text(text: str) -> str:
    return sha256(text.encode("utf-8")).hexdigest()


def sha256_json(payload: Any) -> str:
    """Digest of the canonical JSON encoding (sorted keys, no whitespace)."""
    raw = json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return sha256_text(raw)
