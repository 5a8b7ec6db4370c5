"""Apply staged classifications to items, then clean orphans and duplicates."""

from taxonomy_pipeline.migrate.dedup import DuplicateGroup, find_duplicate_groups
from taxonomy_pipeline.migrate.driver import MigrationDriver, MigrationReport

__all__ = ["DuplicateGroup", "MigrationDriver", "MigrationReport", "find_duplicate_groups"]
