"""Subject -> Topic taxonomy: create-or-find store and topic diffs."""

from taxonomy_pipeline.taxonomy.diff import TopicDiff, TopicSyncResult, diff_topics
from taxonomy_pipeline.taxonomy.store import (
    SENTINEL_TOPIC_NAME,
    UNDECIDED,
    SubjectMapping,
    TaxonomyStore,
    UndecidedBucket,
    is_sentinel_topic,
)

__all__ = [
    "SENTINEL_TOPIC_NAME",
    "UNDECIDED",
    "SubjectMapping",
    "TaxonomyStore",
    "TopicDiff",
    "TopicSyncResult",
    "UndecidedBucket",
    "diff_topics",
    "is_sentinel_topic",
]
