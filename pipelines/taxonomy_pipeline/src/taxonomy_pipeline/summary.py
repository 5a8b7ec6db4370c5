from __future__ import annotations

import logging
from dataclasses import dataclass, field


@dataclass
class PassSummary:
    """Per-pass tally reported at the end of every pass."""

    name: str
    total: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    removed: int = 0
    errors: list[str] = field(default_factory=list)

    def fail(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)

    def log(self, logger: logging.Logger) -> None:
        logger.info(
            "[%s] done total=%d created=%d skipped=%d failed=%d removed=%d",
            self.name,
            self.total,
            self.created,
            self.skipped,
            self.failed,
            self.removed,
        )


def should_report(idx: int, progress_every: int) -> bool:
    return progress_every > 0 and (idx == 1 or idx % progress_every == 0)
