from __future__ import annotations

import re

from taxonomy_pipeline.content import AnswerOption

CHOICE_LETTERS = ("A", "B", "C", "D", "E")


def _choice_pattern(letter: str) -> re.Pattern[str]:
    upper, lower = letter.upper(), letter.lower()
    return re.compile(rf"(?:\({upper}\)|{upper}\.|{lower}\.|\({lower}\)|{upper}\)) ([^\n]*)")


_PATTERNS = {letter: _choice_pattern(letter) for letter in CHOICE_LETTERS}


def extract_choices(text: str) -> dict[str, str]:
    """
    Pull inline answer choices out of OCR text.

    Markers may be ``(A)``, ``A.``, ``a.``, ``(a)`` or ``A)``. For each letter the first
    match wins and its text runs to the end of the line. Letters without a match are
    left out, so four-choice questions come back with four keys.
    """
    result: dict[str, str] = {}
    for letter, pattern in _PATTERNS.items():
        match = pattern.search(text)
        if match:
            result[letter] = match.group(1)
    return result


def choices_to_options(choices: dict[str, str]) -> list[AnswerOption]:
    return [AnswerOption(content=content, key=key, is_correct=False) for key, content in choices.items()]
