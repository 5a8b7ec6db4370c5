from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ClassifierResult:
    subject_name: str
    topic_name: str
    rationale: str


class Classifier(Protocol):
    def classify(self, text: str, tentative_category: str) -> ClassifierResult: ...
