"""
Failure taxonomy for the ingestion/classification/migration passes.

Most are recovered where they are raised. Any that reach a pass fail one item only.
"""

from __future__ import annotations

import uuid


class PipelineError(RuntimeError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ExtractionUnavailable(PipelineError):
    """OCR failed or produced no text. Converted to an empty string by the OCR adapter."""


class ClassificationFailed(PipelineError):
    """The classifier call failed or its response was malformed. Fatal to one item only."""


class TaxonomyConflict(PipelineError):
    """A concurrent writer created the same subject/topic first. Recovered by re-reading."""


class DuplicateProposal(PipelineError):
    """The staging ledger already holds a proposal for the item. Means "already done"."""


class OrphanDeletionHazard(PipelineError):
    """Refused to delete a row that is still referenced."""

    def __init__(self, entity: str, entity_id: uuid.UUID, references: int):
        super().__init__(f"{entity} {entity_id} is still referenced by {references} row(s); not deleting")
        self.entity = entity
        self.entity_id = entity_id
        self.references = references


class StoreUnavailable(PipelineError):
    """The database could not be reached before a pass started."""
