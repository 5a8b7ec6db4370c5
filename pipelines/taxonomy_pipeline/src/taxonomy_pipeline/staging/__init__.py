"""Append-only staging ledger of classification proposals."""

from taxonomy_pipeline.staging.ledger import ProposalDraft, StagingLedger

__all__ = ["ProposalDraft", "StagingLedger"]
