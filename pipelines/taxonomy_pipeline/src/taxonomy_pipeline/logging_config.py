"""Logging setup shared by every CLI entry point.

``configure_logging()`` is idempotent: when the root logger already has handlers
(pytest, an embedding application) it leaves them alone.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler


def configure_logging(level: str | int = logging.INFO, *, log_file: Path | None = None) -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    console = RichHandler(show_path=False, rich_tracebacks=True)
    console.setFormatter(logging.Formatter("%(name)s - %(message)s"))
    root.addHandler(console)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            fh.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
            root.addHandler(fh)
        except OSError:
            root.warning("could not open log file %s; logging to console only", log_file)

    root.setLevel(level)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
