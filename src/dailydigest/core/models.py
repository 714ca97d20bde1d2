"""Core data models for the daily digest pipeline.

This module consolidates the data structures that flow through one
generation run, in pipeline order:

1. RAW ACTIVITY (BrowserVisit, SearchQuery, ClaudeSession, GitCommit)
2. CLASSIFIED EVENTS (StructuredEvent, ClassificationResult)
3. PATTERNS (TemporalCluster, TopicCooccurrence, ..., PatternAnalysis)
4. SUPPLEMENTARY LAYERS (SemanticCluster, CompressedActivity)

Closed vocabularies are ``str, Enum`` classes so every consumer handles a
known set of values. Unknown strings coming from a model response are mapped
to the ``UNKNOWN`` member by the ``coerce`` helpers.

Example:
    >>> from dailydigest.core.models import BrowserVisit, ActivityBundle
    >>> visit = BrowserVisit(url="https://docs.python.org/3/", title="Python docs")
    >>> bundle = ActivityBundle(visits=[visit])
    >>> bundle.total_records
    1
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class ActivitySource(str, Enum):
    """Where a record was collected from.

    Attributes:
        BROWSER: A page visit from browser history.
        SEARCH: A search-engine query extracted from history.
        CLAUDE: A prompt sent to an AI coding assistant.
        GIT: A commit authored in a local repository.
    """

    BROWSER = "browser"
    SEARCH = "search"
    CLAUDE = "claude"
    GIT = "git"


class ActivityType(str, Enum):
    """Closed set of activity types an event can be classified as."""

    RESEARCH = "research"
    DEBUGGING = "debugging"
    IMPLEMENTATION = "implementation"
    INFRASTRUCTURE = "infrastructure"
    WRITING = "writing"
    LEARNING = "learning"
    ADMIN = "admin"
    COMMUNICATION = "communication"
    BROWSING = "browsing"
    PLANNING = "planning"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: object) -> "ActivityType":
        """Map an arbitrary value onto a member, defaulting to UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class IntentType(str, Enum):
    """Closed set of intents behind an event."""

    COMPARE = "compare"
    IMPLEMENT = "implement"
    EVALUATE = "evaluate"
    READ = "read"
    TROUBLESHOOT = "troubleshoot"
    CONFIGURE = "configure"
    EXPLORE = "explore"
    COMMUNICATE = "communicate"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: object) -> "IntentType":
        """Map an arbitrary value onto a member, defaulting to UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class SensitivityCategory(str, Enum):
    """Categories of sensitive browsing that can be filtered out.

    Attributes:
        ADULT: Adult content sites.
        GAMBLING: Betting and casino sites.
        DATING: Dating apps and relationship sites.
        HEALTH: Medical portals, pharmacies, symptom checkers.
        FINANCE: Banking, brokerage and payment portals.
        DRUGS: Drug and substance information.
        WEAPONS: Firearms and weapon retailers.
        PIRACY: Torrent and piracy sites.
        VPN_PROXY: VPN and proxy providers.
        JOB_SEARCH: Job boards and job-search pages.
        SOCIAL_PERSONAL: Personal or confessional social spaces.
        TRACKER: Email tracking and click redirect hosts.
        AUTH: Login, OAuth and SSO flows.
        CUSTOM: User-supplied domains.
    """

    ADULT = "adult"
    GAMBLING = "gambling"
    DATING = "dating"
    HEALTH = "health"
    FINANCE = "finance"
    DRUGS = "drugs"
    WEAPONS = "weapons"
    PIRACY = "piracy"
    VPN_PROXY = "vpn_proxy"
    JOB_SEARCH = "job_search"
    SOCIAL_PERSONAL = "social_personal"
    TRACKER = "tracker"
    AUTH = "auth"
    CUSTOM = "custom"


class FilterAction(str, Enum):
    """What the sensitive domain filter does with a matching record.

    Attributes:
        EXCLUDE: Drop the record entirely.
        REDACT: Keep the record but replace its identifying fields.
    """

    EXCLUDE = "exclude"
    REDACT = "redact"


class RecurrenceTrend(str, Enum):
    """Cross-day trend of a topic."""

    NEW = "new"
    RETURNING = "returning"
    RISING = "rising"
    STABLE = "stable"


# =============================================================================
# Raw Activity Records
# =============================================================================


class BrowserVisit(BaseModel):
    """A single page visit from browser history."""

    kind: Literal["visit"] = "visit"
    url: str = Field(..., description="Visited URL.")
    title: str = Field(default="", description="Page title at visit time.")
    time: datetime | None = Field(default=None, description="Visit time (local).")
    visit_count: int = Field(default=1, ge=0, description="Browser-reported visit count.")
    domain: str | None = Field(default=None, description="Hostname, if known upstream.")
    category: str | None = Field(default=None, description="Domain category label.")


class SearchQuery(BaseModel):
    """A search-engine query extracted from browser history."""

    kind: Literal["search"] = "search"
    query: str = Field(..., description="Query text as typed.")
    time: datetime | None = Field(default=None, description="Query time (local).")
    engine: str = Field(default="", description="Search engine host, e.g. google.com.")


class ClaudeSession(BaseModel):
    """A prompt sent to an AI coding assistant."""

    kind: Literal["session"] = "session"
    prompt: str = Field(..., description="User prompt text.")
    time: datetime | None = Field(default=None, description="Prompt time (local).")
    project: str = Field(default="", description="Project directory name.")
    is_conversation_opener: bool = Field(
        default=False, description="True for the first user message of a conversation."
    )
    conversation_file: str = Field(default="", description="Conversation identity.")
    conversation_turn_count: int = Field(default=1, ge=0, description="User turns in the conversation.")


class GitCommit(BaseModel):
    """A commit authored in a local repository."""

    kind: Literal["commit"] = "commit"
    hash: str = Field(default="", description="Full commit hash.")
    message: str = Field(..., description="First line of the commit message.")
    time: datetime | None = Field(default=None, description="Author date (local).")
    repo: str = Field(default="", description="Repository directory name.")
    files_changed: int = Field(default=0, ge=0)
    insertions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)


ActivityRecord = Annotated[
    Union[BrowserVisit, SearchQuery, ClaudeSession, GitCommit],
    Field(discriminator="kind"),
]


class ActivityBundle(BaseModel):
    """All activity collected for one day, grouped by source.

    Attributes:
        visits: Browser visits.
        searches: Search queries.
        sessions: AI assistant prompts.
        commits: Git commits.
        categorized: Visits grouped by domain category. Filled in by the
            categorizer; empty until then.
    """

    visits: list[BrowserVisit] = Field(default_factory=list)
    searches: list[SearchQuery] = Field(default_factory=list)
    sessions: list[ClaudeSession] = Field(default_factory=list)
    commits: list[GitCommit] = Field(default_factory=list)
    categorized: dict[str, list[BrowserVisit]] = Field(default_factory=dict)

    @classmethod
    def from_records(cls, records: list[ActivityRecord]) -> "ActivityBundle":
        """Split a heterogeneous, ordered record list into per-source lists."""
        bundle = cls()
        for record in records:
            if isinstance(record, BrowserVisit):
                bundle.visits.append(record)
            elif isinstance(record, SearchQuery):
                bundle.searches.append(record)
            elif isinstance(record, ClaudeSession):
                bundle.sessions.append(record)
            elif isinstance(record, GitCommit):
                bundle.commits.append(record)
        return bundle

    @property
    def total_records(self) -> int:
        return len(self.visits) + len(self.searches) + len(self.sessions) + len(self.commits)

    def is_empty(self) -> bool:
        return self.total_records == 0


# =============================================================================
# Classification
# =============================================================================


class StructuredEvent(BaseModel):
    """A classified abstraction of one raw activity record.

    The summary is always paraphrased; it never repeats a page title next to
    its domain or a search query verbatim.
    """

    timestamp: datetime | None = Field(default=None, description="Source record time.")
    source: ActivitySource
    activity_type: ActivityType = ActivityType.UNKNOWN
    topics: list[str] = Field(default_factory=list)
    entities: list[str] = Field(default_factory=list)
    intent: IntentType = IntentType.UNKNOWN
    confidence: float = Field(default=0.5, description="Classifier confidence in [0, 1].")
    category: str | None = Field(default=None, description="Upstream domain category.")
    summary: str = Field(default="", description="Paraphrased one-line description.")

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: object) -> float:
        """Clamp confidence into [0, 1]; non-numeric input becomes 0.5."""
        try:
            value = float(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.5
        if value != value:  # NaN
            return 0.5
        return min(1.0, max(0.0, value))


class ClassificationResult(BaseModel):
    """Output of the event classifier for one run."""

    events: list[StructuredEvent] = Field(default_factory=list)
    total_processed: int = 0
    llm_classified: int = 0
    rule_classified: int = 0
    processing_time_ms: float = 0.0


# =============================================================================
# Patterns
# =============================================================================


class TemporalCluster(BaseModel):
    """A contiguous hour range of elevated activity of one dominant type."""

    hour_start: int = Field(..., ge=0, le=23)
    hour_end: int = Field(..., ge=0, le=23)
    activity_type: ActivityType
    event_count: int
    topics: list[str] = Field(default_factory=list)
    entities: list[str] = Field(default_factory=list)
    intensity: float = Field(..., description="Events per hour within the cluster.")
    label: str = Field(..., description="Built only from activity type and topics.")


class TopicCooccurrence(BaseModel):
    """Two topics that appeared within the same time window."""

    topic_a: str
    topic_b: str
    strength: float = Field(..., ge=0.0, le=1.0)
    shared_events: int
    window: str = Field(..., description="Hour label of the window anchor, e.g. '2pm'.")


class EntityRelation(BaseModel):
    """Two entities that appeared together in individual events."""

    entity_a: str
    entity_b: str
    cooccurrences: int
    contexts: list[ActivityType] = Field(default_factory=list)


class RecurrenceSignal(BaseModel):
    """Cross-day trend of one of today's topics."""

    topic: str
    trend: RecurrenceTrend
    day_count: int = Field(..., ge=1, description="Distinct days seen, including today.")
    frequency: int = Field(default=1, description="Occurrences today.")


class KnowledgeDelta(BaseModel):
    """What is new versus recurring in today's activity."""

    new_topics: list[str] = Field(default_factory=list)
    recurring_topics: list[str] = Field(default_factory=list)
    novel_entities: list[str] = Field(default_factory=list)
    connections: list[str] = Field(default_factory=list)


class ActivityTypeShare(BaseModel):
    type: ActivityType
    count: int
    pct: int


class PeakHour(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    count: int


class PatternAnalysis(BaseModel):
    """Aggregate, per-event-free view of a day's classified activity.

    Carries no URLs, commands, or per-event timestamps; only hour buckets,
    topic/entity vocabulary and scalar summaries.
    """

    temporal_clusters: list[TemporalCluster] = Field(default_factory=list)
    topic_cooccurrences: list[TopicCooccurrence] = Field(default_factory=list)
    entity_relations: list[EntityRelation] = Field(default_factory=list)
    recurrence_signals: list[RecurrenceSignal] = Field(default_factory=list)
    knowledge_delta: KnowledgeDelta = Field(default_factory=KnowledgeDelta)
    focus_score: float = Field(default=0.0, ge=0.0, le=1.0)
    activity_concentration_score: float = Field(default=0.0, ge=0.0, le=1.0)
    top_activity_types: list[ActivityTypeShare] = Field(default_factory=list)
    peak_hours: list[PeakHour] = Field(default_factory=list)
    total_events: int = 0

    def is_empty(self) -> bool:
        return self.total_events == 0


# =============================================================================
# Supplementary Layers
# =============================================================================


class SemanticCluster(BaseModel):
    """A group of related page visits, described only in aggregate."""

    label: str
    article_count: int
    intent: Literal["research", "reference", "browsing"] = "browsing"
    domains: list[str] = Field(default_factory=list)
    engaged_count: int = 0


class CompressedActivity(BaseModel):
    """Budget-compressed text rendering of raw activity, per source."""

    browser_text: str = "  (none)"
    search_text: str = "  (none)"
    claude_text: str = "  (none)"
    git_text: str = "  (none)"
    total_events: int = 0
    token_estimate: int = 0


class FilterSummary(BaseModel):
    """Exact counts of what privacy filtering removed or redacted.

    Returned to the host for display before any remote call. Counts are
    exact, never estimated.
    """

    excluded_domains: int = Field(default=0, description="Visits dropped by the domain exclusion list.")
    sensitive_filtered: int = Field(default=0, description="Visits matched by the sensitivity filter.")
    searches_filtered: int = Field(default=0, description="Searches matched by the sensitivity filter.")
    by_category: dict[str, int] = Field(default_factory=dict)
    deduplicated: int = Field(default=0, description="Near-duplicate visits collapsed.")
    action: FilterAction = FilterAction.EXCLUDE

    @property
    def total(self) -> int:
        return self.excluded_domains + self.sensitive_filtered + self.searches_filtered
