"""Pattern extraction, topic history, reading clusters and compression."""

from dailydigest.analysis.clusters import cluster_visits
from dailydigest.analysis.compress import compress_activity, estimate_tokens
from dailydigest.analysis.history import (
    InMemoryTopicHistoryRepository,
    JsonTopicHistoryRepository,
    TopicHistory,
    TopicHistoryRepository,
)
from dailydigest.analysis.patterns import extract_patterns

__all__ = [
    "cluster_visits",
    "compress_activity",
    "estimate_tokens",
    "extract_patterns",
    "TopicHistory",
    "TopicHistoryRepository",
    "JsonTopicHistoryRepository",
    "InMemoryTopicHistoryRepository",
]
