from __future__ import annotations

import enum


class QuestionType(str, enum.Enum):
    multiple_choice = "multiple-choice"
    fill_in = "fill-in"
    table_choice = "table-choice"
    multiple_answer = "multiple-answer"


class TaxonomyOrigin(str, enum.Enum):
    # declared by a subject mapping or by hand
    seed = "seed"
    # created while staging classification proposals
    staging = "staging"
    # the UNDECIDED bucket
    system = "system"
