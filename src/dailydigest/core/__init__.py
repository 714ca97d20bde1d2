"""Core records and the sanitize, filter and categorize stages.

Only the data models are re-exported here; the stage modules depend on
``dailydigest.config``, which itself imports the models.
"""

from dailydigest.core.models import (
    ActivityBundle,
    ActivitySource,
    ActivityType,
    BrowserVisit,
    ClassificationResult,
    ClaudeSession,
    FilterSummary,
    GitCommit,
    IntentType,
    PatternAnalysis,
    SearchQuery,
    StructuredEvent,
)

__all__ = [
    "ActivityBundle",
    "ActivitySource",
    "ActivityType",
    "BrowserVisit",
    "ClassificationResult",
    "ClaudeSession",
    "FilterSummary",
    "GitCommit",
    "IntentType",
    "PatternAnalysis",
    "SearchQuery",
    "StructuredEvent",
]
