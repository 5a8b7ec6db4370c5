from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import SettingsConfigDict

from soalbank_core.settings import Settings as CoreSettings


class Settings(CoreSettings):
    model_config = SettingsConfigDict(
        env_prefix="SOALBANK_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # OCR provider (Mathpix v3/text).
    mathpix_app_id: str | None = None
    mathpix_app_key: str | None = None
    mathpix_base_url: str = "https://api.mathpix.com/v3/text"

    # Question-type classifier. Accepts either the service root or the full endpoint.
    classifier_base_url: str = "https://ai.bangsoal.co"
    classifier_api_key: str | None = None

    request_timeout_s: float = 60.0
    max_retries: int = 3

    # Spreadsheet batch input (Google Sheets values API).
    google_api_key: str | None = None
    spreadsheet_url: str | None = None
    spreadsheet_range: str = "ready-to-upload!A1:Z1000"
    default_year: int = 2024

    progress_every: int = 10
    log_level: str = "INFO"
    log_file: Path | None = None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
