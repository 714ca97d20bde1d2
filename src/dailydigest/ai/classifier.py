"""Event classifier: raw activity records to structured abstractions.

Two paths produce ``StructuredEvent`` objects:

- The rule path (``classify_rule_only``) is pure and deterministic and always
  runs. It maps the source and the shape of the content onto an activity
  type, topics from a fixed vocabulary, entities, and an intent. Summaries
  are templated from those fields and never repeat a page title, a search
  query, or a commit message.
- The LLM path (``classify_events``) optionally refines batches of events
  with a local model. Any failure keeps the rule result for that batch.

Classified output is the least-redacted representation that may reach a
remote provider (tier 3), so both paths guarantee the same summary floor.

Example:
    >>> from dailydigest.core.models import ActivityBundle, SearchQuery
    >>> bundle = ActivityBundle(searches=[SearchQuery(query="react vs vue", engine="google.com")])
    >>> result = classify_rule_only(bundle)
    >>> result.events[0].summary
    'Searched the web to compare options about frontend'
"""

from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from dailydigest.ai.client import LocalModelError, ModelResponse, get_client, parse_json_response
from dailydigest.config import ClassificationConfig
from dailydigest.core.categorize import OTHER, categorize_domain, category_display_name
from dailydigest.core.models import (
    ActivityBundle,
    ActivitySource,
    ActivityType,
    ClassificationResult,
    IntentType,
    StructuredEvent,
)
from dailydigest.core.scrubber import extract_hostname

logger = logging.getLogger(__name__)


# =============================================================================
# Vocabulary
# =============================================================================

# Hosts whose titles are noise for entity extraction (maps, bookings, email, shops).
ENTITY_EXTRACTION_SKIP_DOMAINS = frozenset(
    {
        "google.com", "maps.google.com", "maps.apple.com",
        "airbnb.com", "booking.com", "vrbo.com", "expedia.com", "tripadvisor.com",
        "mail.google.com", "outlook.live.com", "outlook.office.com", "mail.yahoo.com",
        "amazon.com", "adobe.com", "app.hubspot.com", "app.salesforce.com",
    }
)

ENTITY_STOPWORDS = frozenset(
    {
        "The", "This", "That", "How", "What", "Why", "When",
        "From", "With", "Here", "There", "Your", "About", "After", "Before",
        "Into", "Over", "Just", "Also", "More", "Some", "Such", "Each",
        "Fix", "Add", "Remove", "Update", "Refactor", "Revert", "Merge", "Bump",
        "Move", "Rename", "Delete", "Change", "Enable", "Disable", "Clean",
        "Init", "Create", "Build", "Test", "Deploy", "Release", "Improve",
        "Handle", "Pull", "Push", "Commit", "Branch", "Issue", "Draft",
        "Review", "Resolve", "Conflict", "Sync",
        "Inbox", "Unread", "Reply", "Forward", "Sent", "Subject", "Thread",
        "Notification", "Alert",
        "Home", "Settings", "Profile", "Dashboard", "Overview", "Summary",
        "Details", "Results", "Loading", "Untitled",
        "HTML", "CSS", "API", "URL", "SDK", "CLI", "GUI", "IDE",
    }
)

# First match wins.
TOPIC_VOCABULARY: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(oauth|auth|jwt|token|session|login|password|credential|permission|role|access)\b", re.I), "authentication"),
    (re.compile(r"\b(react|vue|angular|svelte|next\.?js|remix|component|hook|state|props|jsx|tsx)\b", re.I), "frontend"),
    (re.compile(r"\b(api|rest|graphql|endpoint|route|http|request|response|fetch|axios|webhook)\b", re.I), "api-design"),
    (re.compile(r"\b(docker|kubernetes|k8s|terraform|aws|cloud|deploy|ci|cd|pipeline|helm|ecs)\b", re.I), "infrastructure"),
    (re.compile(r"\b(test|tests|spec|mock|pytest|vitest|jest|coverage|unit|integration|e2e|assert|expect)\b", re.I), "testing"),
    (re.compile(r"\b(sql|database|postgres|mysql|sqlite|query|schema|migration|index|orm|prisma)\b", re.I), "database"),
    (re.compile(r"\b(typescript|type|types|interface|generic|infer|narrowing|zod|validation)\b", re.I), "typescript"),
    (re.compile(r"\b(performance|optimize|slow|latency|memory|cache|cdn|bundle|profil\w*)\b", re.I), "performance"),
    (re.compile(r"\b(security|vuln\w*|xss|csrf|injection|sanitize|escape|encrypt\w*|hash)\b", re.I), "security"),
    (re.compile(r"\b(git|commit|branch|merge|rebase|conflict|pr|pull\s+request|review)\b", re.I), "version-control"),
    (re.compile(r"\b(algorithm|data\s+structure|complexity|sort|search|tree|graph|dynamic\s+programming)\b", re.I), "algorithms"),
    (re.compile(r"\b(machine\s+learning|llm|ai|model|embedding|vector|neural|gpt|claude|anthropic)\b", re.I), "ai-ml"),
    (re.compile(r"\b(refactor|clean|solid|pattern|architecture|design|monolith|microservice|domain)\b", re.I), "software-design"),
    (re.compile(r"\b(error|exception|crash|stack\s+trace|debug|log|monitor|alert|incident)\b", re.I), "debugging"),
    (re.compile(r"\b(doc|docs|readme|comment|jsdoc|api\s+spec|openapi|swagger|markdown)\b", re.I), "documentation"),
]

# Assistant prompt task types; first match wins, default implementation.
TASK_TYPE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(fix|debug|why\s+(does|is|isn'?t)|not\s+work|error|crash|bug|broken|fail)\b", re.I), "debugging"),
    (re.compile(r"\b(review|check|audit|is\s+this\s+(correct|right|good)|critique|look\s+at)\b", re.I), "review"),
    (re.compile(r"\b(explain|describe|what\s+is|what\s+are|how\s+does|help\s+me\s+understand|teach|clarify)\b", re.I), "learning"),
    (re.compile(r"\b(design|plan|should\s+i|what\s+approach|architecture|structure)\b", re.I), "architecture"),
    (re.compile(r"\b(add|build|create|implement|write|refactor|update|generate|set\s+up|migrate)\b", re.I), "implementation"),
]

TASK_TYPE_ACTIVITY: dict[str, ActivityType] = {
    "implementation": ActivityType.IMPLEMENTATION,
    "debugging": ActivityType.DEBUGGING,
    "review": ActivityType.IMPLEMENTATION,
    "learning": ActivityType.LEARNING,
    "architecture": ActivityType.PLANNING,
}

TASK_TYPE_PHRASES: dict[str, str] = {
    "implementation": "an implementation task",
    "debugging": "a debugging task",
    "review": "a code review",
    "learning": "a learning question",
    "architecture": "a design question",
}

CATEGORY_TO_ACTIVITY: dict[str, ActivityType] = {
    "dev": ActivityType.IMPLEMENTATION,
    "work": ActivityType.ADMIN,
    "research": ActivityType.RESEARCH,
    "news": ActivityType.BROWSING,
    "social": ActivityType.COMMUNICATION,
    "media": ActivityType.BROWSING,
    "shopping": ActivityType.BROWSING,
    "finance": ActivityType.ADMIN,
    "ai_tools": ActivityType.IMPLEMENTATION,
    "personal": ActivityType.BROWSING,
    "education": ActivityType.LEARNING,
    "gaming": ActivityType.BROWSING,
    "writing": ActivityType.WRITING,
    "pkm": ActivityType.WRITING,
    OTHER: ActivityType.UNKNOWN,
}

INTENT_PATTERNS: list[tuple[re.Pattern[str], IntentType]] = [
    (re.compile(r"\bvs\b|\bcompare\b|\bdifference\b|\bversus\b|\balternative", re.I), IntentType.COMPARE),
    (re.compile(r"\bhow\s+to\b|\bexample\b|\btutorial\b|\bguide\b", re.I), IntentType.IMPLEMENT),
    (re.compile(r"\bbest\b|\breview\b|\brecommend\b|\bpros\b|\bcons\b", re.I), IntentType.EVALUATE),
    (re.compile(r"\bwhat\s+is\b|\bwho\s+is\b|\bdefin", re.I), IntentType.READ),
    (re.compile(r"\berror\b|\bfix\b|\bdebug\b|\bnot\s+work", re.I), IntentType.TROUBLESHOOT),
    (re.compile(r"\bconfig\b|\bsetup\b|\binstall\b|\benable\b|\bconfigure\b", re.I), IntentType.CONFIGURE),
]

INTENT_PHRASES: dict[IntentType, str] = {
    IntentType.COMPARE: "compare options",
    IntentType.IMPLEMENT: "find how-to guidance",
    IntentType.EVALUATE: "evaluate options",
    IntentType.READ: "look up a definition",
    IntentType.TROUBLESHOOT: "troubleshoot a problem",
    IntentType.CONFIGURE: "configure a tool",
    IntentType.EXPLORE: "explore a subject",
}

SOURCE_FALLBACK_TOPIC: dict[ActivitySource, str] = {
    ActivitySource.SEARCH: "web-research",
    ActivitySource.CLAUDE: "software-development",
    ActivitySource.GIT: "software-development",
}

_CAP_WORD = re.compile(r"\b[A-Z][a-zA-Z0-9]+(?:\.[a-zA-Z]+)?\b")
_KEBAB_TOOL = re.compile(r"\b[a-z]+-[a-z]+(?:-[a-z]+)?\b")

CONFIDENCE_VOCABULARY = 0.7
CONFIDENCE_CATEGORY = 0.6
CONFIDENCE_DEFAULT = 0.5

MAX_TOPICS = 3
MAX_ENTITIES = 5
MAX_SUMMARY_CHARS = 120

SYSTEM_PROMPT = (
    "You are an activity classifier. Analyze each activity and return "
    "structured classifications as a JSON array. Be concise and accurate. "
    "Return only valid JSON with no markdown fences."
)


# =============================================================================
# Normalization
# =============================================================================


@dataclass
class RawEvent:
    """One activity record flattened for classification.

    ``text`` is the raw content used for matching and for the local-model
    prompt. It never appears in a rule-path summary.
    """

    timestamp: datetime | None
    source: ActivitySource
    text: str
    category: str | None = None
    domain: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def normalize_bundle(bundle: ActivityBundle) -> list[RawEvent]:
    """Flatten a bundle into raw events, resolving visit categories."""
    domain_categories: dict[str, str] = {}
    for category, visits in bundle.categorized.items():
        for visit in visits:
            if visit.domain:
                domain_categories[visit.domain] = category

    events: list[RawEvent] = []
    for visit in bundle.visits:
        domain = visit.domain or extract_hostname(visit.url) or ""
        category = visit.category or domain_categories.get(domain) or categorize_domain(domain)
        events.append(
            RawEvent(
                timestamp=visit.time,
                source=ActivitySource.BROWSER,
                text=(visit.title or "")[:80],
                category=category,
                domain=domain,
            )
        )
    for search in bundle.searches:
        events.append(
            RawEvent(
                timestamp=search.time,
                source=ActivitySource.SEARCH,
                text=search.query,
                extra={"engine": search.engine},
            )
        )
    for session in bundle.sessions:
        events.append(
            RawEvent(
                timestamp=session.time,
                source=ActivitySource.CLAUDE,
                text=session.prompt[:200],
                extra={"project": session.project},
            )
        )
    for commit in bundle.commits:
        events.append(
            RawEvent(
                timestamp=commit.time,
                source=ActivitySource.GIT,
                text=commit.message,
                extra={
                    "repo": commit.repo,
                    "insertions": commit.insertions,
                    "deletions": commit.deletions,
                },
            )
        )
    return events


# =============================================================================
# Rule Path
# =============================================================================


def classify_task_type(prompt: str) -> str:
    text = prompt[:200]
    for pattern, task_type in TASK_TYPE_PATTERNS:
        if pattern.search(text):
            return task_type
    return "implementation"


def match_topic(text: str) -> str | None:
    """Return the first vocabulary topic matching ``text``."""
    for pattern, label in TOPIC_VOCABULARY:
        if pattern.search(text):
            return label
    return None


def infer_intent(text: str, source: ActivitySource) -> IntentType:
    if source in (ActivitySource.SEARCH, ActivitySource.BROWSER):
        for pattern, intent in INTENT_PATTERNS:
            if pattern.search(text):
                return intent
    if source in (ActivitySource.CLAUDE, ActivitySource.GIT):
        return IntentType.IMPLEMENT
    return IntentType.EXPLORE


def extract_entities(text: str, domain: str | None = None) -> list[str]:
    """Pull tool, library and service names out of free text.

    The base domain name becomes an entity (``github.com`` -> ``Github``),
    followed by capitalised words and kebab-case tool names. Noisy domains
    yield nothing.
    """
    if domain and domain in ENTITY_EXTRACTION_SKIP_DOMAINS:
        return []

    entities: list[str] = []
    if domain:
        base = re.sub(r"\.\w{2,4}$", "", domain).split(".")[-1]
        if len(base) > 2:
            entities.append(base[:1].upper() + base[1:])

    for word in _CAP_WORD.findall(text):
        if len(word) > 2 and word not in ENTITY_STOPWORDS and word not in entities:
            entities.append(word)

    for tool in _KEBAB_TOOL.findall(text):
        if len(tool) > 4 and tool not in entities:
            entities.append(tool)

    return entities[:MAX_ENTITIES]


def _rule_summary(raw: RawEvent, activity: ActivityType, intent: IntentType, topic: str | None) -> str:
    about = f" about {topic}" if topic else ""
    if raw.source is ActivitySource.BROWSER:
        if raw.category and raw.category != OTHER:
            return f"Visited a {category_display_name(raw.category)} page{about}"
        return f"Visited a web page{about}"
    if raw.source is ActivitySource.SEARCH:
        return f"Searched the web to {INTENT_PHRASES.get(intent, 'explore a subject')}{about}"
    if raw.source is ActivitySource.CLAUDE:
        task = raw.extra.get("task_type", "implementation")
        return f"Worked with an AI assistant on {TASK_TYPE_PHRASES.get(task, 'a task')}{about}"
    added = raw.extra.get("insertions", 0)
    removed = raw.extra.get("deletions", 0)
    return f"Committed code changes (+{added}/-{removed} lines){about}"


def rule_classify(raw: RawEvent) -> StructuredEvent:
    """Classify one raw event with the deterministic rule table."""
    vocabulary_topic = match_topic(raw.text)
    confidence = CONFIDENCE_VOCABULARY if vocabulary_topic else CONFIDENCE_DEFAULT
    topic = vocabulary_topic

    if raw.source is ActivitySource.BROWSER:
        category = raw.category or OTHER
        activity = CATEGORY_TO_ACTIVITY.get(category, ActivityType.UNKNOWN)
        if topic is None and category != OTHER:
            topic = category
            confidence = CONFIDENCE_CATEGORY
    elif raw.source is ActivitySource.SEARCH:
        activity = ActivityType.RESEARCH
    elif raw.source is ActivitySource.CLAUDE:
        task_type = classify_task_type(raw.text)
        raw.extra["task_type"] = task_type
        activity = TASK_TYPE_ACTIVITY[task_type]
    else:
        activity = ActivityType.IMPLEMENTATION

    if topic is None:
        topic = SOURCE_FALLBACK_TOPIC.get(raw.source)

    intent = infer_intent(raw.text, raw.source)
    if raw.source is ActivitySource.SEARCH and intent is not IntentType.EXPLORE and not vocabulary_topic:
        confidence = CONFIDENCE_CATEGORY

    return StructuredEvent(
        timestamp=raw.timestamp,
        source=raw.source,
        activity_type=activity,
        topics=[topic] if topic else [],
        entities=extract_entities(raw.text, raw.domain),
        intent=intent,
        confidence=confidence,
        category=raw.category,
        summary=_rule_summary(raw, activity, intent, topic),
    )


def _sort_key(event: StructuredEvent) -> tuple[int, float]:
    if event.timestamp is None:
        return (1, 0.0)
    return (0, event.timestamp.timestamp())


def sort_events(events: list[StructuredEvent]) -> list[StructuredEvent]:
    """Stable sort by timestamp; untimed events go last in input order."""
    return sorted(events, key=_sort_key)


def classify_rule_only(bundle: ActivityBundle) -> ClassificationResult:
    """Classify every record with rules only. Pure and synchronous."""
    start = time.perf_counter()
    events = [rule_classify(raw) for raw in normalize_bundle(bundle)]
    return ClassificationResult(
        events=sort_events(events),
        total_processed=len(events),
        llm_classified=0,
        rule_classified=len(events),
        processing_time_ms=(time.perf_counter() - start) * 1000,
    )


# =============================================================================
# LLM Path
# =============================================================================


class CompletionClient(Protocol):
    def complete(self, system_prompt: str | None, user_prompt: str) -> ModelResponse: ...


_UNSAFE_SUMMARY = re.compile(r"https?://|\b[\w-]+\.[a-z]{2,}\s+[-|]\s+\S|\"[^\"]{3,}\"|/Users/|/home/", re.I)

_TIMESTAMP = re.compile(r"\b\d{4}-\d{2}-\d{2}|\b\d{1,2}:\d{2}\b")
# Topic and entity shapes never allowed into tier 3 and 4 prompts.
_UNSAFE_TERM = re.compile(
    r"https?://|www\.|\b[\w-]+\.(?:com|org|net|io|dev|app|ai|co|edu|gov|me|info|us|uk)\b"
    r"|(?:^|\s)~?/\S|\\|[?=&@]",
    re.I,
)


def build_classification_prompt(batch: list[RawEvent]) -> str:
    lines = []
    for i, raw in enumerate(batch, start=1):
        text = f"{raw.domain} - {raw.text}" if raw.domain else raw.text
        suffix = f" ({raw.category})" if raw.category else ""
        lines.append(f"{i}. [{raw.source.value}] {text}{suffix}")
    activities = "\n".join(lines)
    types = "|".join(t.value for t in ActivityType if t is not ActivityType.UNKNOWN)
    intents = "|".join(i.value for i in IntentType if i is not IntentType.UNKNOWN)
    return (
        "Classify each activity. For each determine:\n"
        f"- activityType: {types}\n"
        "- topics: 1-3 short noun phrases describing what the activity is about\n"
        "- entities: tools, libraries, companies, or technologies mentioned\n"
        f"- intent: {intents}\n"
        "- confidence: 0.0-1.0 how confident you are in the classification\n"
        "- summary: one paraphrased sentence; never copy titles, queries, URLs or file paths\n\n"
        f"Activities:\n{activities}\n\n"
        "Return ONLY a JSON array with one element per activity, in order. "
        "Each element must have: activityType, topics, entities, intent, confidence, summary."
    )


def _is_valid_classification(raw: Any) -> bool:
    return (
        isinstance(raw, dict)
        and isinstance(raw.get("activityType"), str)
        and bool(raw.get("activityType"))
        and isinstance(raw.get("topics"), list)
        and isinstance(raw.get("entities"), list)
    )


def parse_classifications(text: str, batch_size: int) -> list[dict[str, Any] | None]:
    """Parse a model response into one validated dict (or None) per batch slot."""
    parsed = parse_json_response(text)
    if isinstance(parsed, dict):
        for key in ("classifications", "activities", "results", "items"):
            if isinstance(parsed.get(key), list):
                parsed = parsed[key]
                break
    if isinstance(parsed, dict):
        parsed = [parsed]
    if not isinstance(parsed, list):
        return [None] * batch_size
    slots: list[dict[str, Any] | None] = [c if _is_valid_classification(c) else None for c in parsed[:batch_size]]
    return slots + [None] * (batch_size - len(slots))


def _safe_summary(candidate: Any, raw: RawEvent, fallback: str) -> str:
    summary = str(candidate or "").strip()[:MAX_SUMMARY_CHARS]
    if not summary or _UNSAFE_SUMMARY.search(summary) or _TIMESTAMP.search(summary):
        return fallback
    lowered = summary.lower()
    verbatim = raw.text.strip().lower()
    if len(verbatim) >= 8 and verbatim in lowered:
        return fallback
    return summary


def _safe_terms(values: list[Any], raw: RawEvent) -> list[str]:
    verbatim = raw.text.strip().lower()
    terms: list[str] = []
    for value in values:
        term = str(value).strip()
        if not term or _UNSAFE_TERM.search(term) or _UNSAFE_SUMMARY.search(term) or _TIMESTAMP.search(term):
            continue
        if term.lower() == verbatim:
            continue
        terms.append(term)
    return terms


def merge_llm_classification(raw: RawEvent, rule_event: StructuredEvent, data: dict[str, Any]) -> StructuredEvent:
    """Build an event from a validated model classification.

    Enum values outside the closed sets become ``unknown``; confidence is
    clamped; topics, entities and summary are truncated. Topics and entities
    shaped like URLs, hostnames, paths or timestamps are dropped, as is one
    equal to the raw text. A summary that looks like copied raw text is
    replaced with the rule summary.
    """
    topics = _safe_terms(data.get("topics", []), raw)[:MAX_TOPICS]
    entities = _safe_terms(data.get("entities", []), raw)[:MAX_ENTITIES]
    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = 0.5
    return StructuredEvent(
        timestamp=raw.timestamp,
        source=raw.source,
        activity_type=ActivityType.coerce(data.get("activityType")),
        topics=topics,
        entities=entities,
        intent=IntentType.coerce(data.get("intent")),
        confidence=confidence,
        category=raw.category,
        summary=_safe_summary(data.get("summary"), raw, rule_event.summary),
    )


def _classify_batch(
    client: CompletionClient,
    batch: list[RawEvent],
    rule_events: list[StructuredEvent],
) -> tuple[list[StructuredEvent], int]:
    """Refine one batch; returns (events, number refined by the model)."""
    try:
        response = client.complete(SYSTEM_PROMPT, build_classification_prompt(batch))
    except LocalModelError as e:
        logger.warning(f"Classification batch failed, using rule results: {e}")
        return rule_events, 0

    slots = parse_classifications(response.text, len(batch))
    events: list[StructuredEvent] = []
    refined = 0
    for raw, rule_event, data in zip(batch, rule_events, slots):
        if data is None:
            events.append(rule_event)
        else:
            events.append(merge_llm_classification(raw, rule_event, data))
            refined += 1
    if refined < len(batch):
        logger.debug(f"Model classified {refined}/{len(batch)} events in batch")
    return events, refined


def classify_events(
    bundle: ActivityBundle,
    config: ClassificationConfig,
    client: CompletionClient | None = None,
    timeout_seconds: float | None = None,
) -> ClassificationResult:
    """Classify all records, refining with a local model when configured.

    Rule results are computed first for every record. Batches of
    ``config.batch_size`` are then sent to the model concurrently, with at
    most ``batch_size`` requests in flight. A batch that fails, times out or
    returns unusable JSON keeps its rule results. Output is ordered by
    timestamp.

    Args:
        bundle: Sanitized, filtered activity.
        config: Classification settings.
        client: Model client; built from ``config`` when omitted.
        timeout_seconds: Deadline for the whole run, shared by all batches.
            Defaults to the configured request timeout times the retry
            budget. Batches still pending at the deadline keep their rule
            results; requests already in flight are not interrupted.

    Returns:
        ClassificationResult with per-path counts.
    """
    start = time.perf_counter()
    raw_events = normalize_bundle(bundle)
    rule_events = [rule_classify(raw) for raw in raw_events]

    if not raw_events:
        return ClassificationResult(processing_time_ms=(time.perf_counter() - start) * 1000)

    def rule_result() -> ClassificationResult:
        return ClassificationResult(
            events=sort_events(rule_events),
            total_processed=len(rule_events),
            rule_classified=len(rule_events),
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )

    if not config.enabled or (client is None and not config.is_configured):
        logger.info("No classification endpoint configured, using rule-based classification")
        return rule_result()
    if client is None:
        try:
            client = get_client(config)
        except LocalModelError as e:
            logger.info(f"Local model unavailable ({e}), using rule-based classification")
            return rule_result()

    size = config.batch_size
    wait = timeout_seconds if timeout_seconds is not None else config.timeout_seconds * (config.max_retries + 1) * 2
    batches = [
        (raw_events[i : i + size], rule_events[i : i + size]) for i in range(0, len(raw_events), size)
    ]

    results: list[StructuredEvent] = []
    llm_classified = 0
    deadline = time.monotonic() + wait
    executor = ThreadPoolExecutor(max_workers=min(size, len(batches)), thread_name_prefix="classify")
    try:
        futures = [executor.submit(_classify_batch, client, batch, rules) for batch, rules in batches]
        for future, (_, rules) in zip(futures, batches):
            try:
                events, refined = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FutureTimeoutError:
                logger.warning("Classification batch timed out, using rule results")
                future.cancel()
                events, refined = rules, 0
            except Exception as e:  # noqa: BLE001
                logger.warning(f"Classification batch raised {type(e).__name__}, using rule results")
                events, refined = rules, 0
            results.extend(events)
            llm_classified += refined
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return ClassificationResult(
        events=sort_events(results),
        total_processed=len(results),
        llm_classified=llm_classified,
        rule_classified=len(results) - llm_classified,
        processing_time_ms=(time.perf_counter() - start) * 1000,
    )
