"""Classification pass, ledger drift repair and sentinel cleanup."""

from taxonomy_pipeline.reconcile.engine import ReconciliationEngine

__all__ = ["ReconciliationEngine"]
