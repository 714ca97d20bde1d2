"""Statistical pattern extraction over classified events.

Turns a day's ``StructuredEvent`` list into a ``PatternAnalysis``:

- temporal clusters: runs of hours dominated by one activity type
- topic co-occurrences: topics appearing in the same time window
- entity relations: entities appearing together in single events
- recurrence signals: today's topics against persisted history
- knowledge delta: new versus recurring topics and entities
- scalars: focus score, activity concentration, type shares, peak hours

All computation is local and deterministic. The output carries only hour
buckets, topic/entity vocabulary and counts; never URLs, raw text or
per-event timestamps.

Example:
    >>> from dailydigest.analysis.history import TopicHistory
    >>> from dailydigest.config import PatternConfig
    >>> from dailydigest.core.models import ClassificationResult
    >>> analysis, history = extract_patterns(ClassificationResult(), PatternConfig(), TopicHistory())
    >>> analysis.is_empty(), analysis.focus_score
    (True, 0.0)
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from itertools import combinations

from dailydigest.analysis.history import TopicHistory
from dailydigest.config import PatternConfig
from dailydigest.core.models import (
    ActivitySource,
    ActivityType,
    ActivityTypeShare,
    ClassificationResult,
    EntityRelation,
    KnowledgeDelta,
    PatternAnalysis,
    PeakHour,
    RecurrenceSignal,
    RecurrenceTrend,
    StructuredEvent,
    TemporalCluster,
    TopicCooccurrence,
)

logger = logging.getLogger(__name__)

# Categories whose browser events feed the topic/entity graph. Other browsing
# still counts toward clusters, focus and distribution.
ENTITY_BEARING_CATEGORIES = frozenset({"dev", "work", "research", "education", "ai_tools", "pkm", "writing"})

MIN_ENTITY_COOCCURRENCES = 3
MAX_TOPIC_COOCCURRENCES = 20
MAX_ENTITY_RELATIONS = 15
MAX_NOVEL_ENTITIES = 10
MAX_CONNECTIONS = 8
CONNECTION_STRENGTH = 0.5

RETURNING_AFTER_DAYS = 7
RECENT_WINDOW_DAYS = 14
STABLE_RECENT_DAYS = 5
RISING_RECENT_DAYS = 3

_TREND_ORDER = {
    RecurrenceTrend.NEW: 0,
    RecurrenceTrend.RETURNING: 1,
    RecurrenceTrend.RISING: 2,
    RecurrenceTrend.STABLE: 3,
}

LEADING_NOISE = frozenset(
    {
        "the", "a", "an", "this", "that", "these", "those",
        "my", "our", "your", "his", "her", "its", "their",
        "some", "any", "all", "each", "every",
    }
)

STOPWORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "is", "are", "was", "were", "be", "been",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "can", "may", "might", "shall", "must",
        "this", "that", "these", "those", "it", "its",
        "i", "we", "you", "he", "she", "they", "me", "us", "him", "her", "them",
        "my", "our", "your", "his", "their",
        "what", "which", "who", "whom", "where", "when", "how", "why",
        "not", "no", "so", "if", "then", "than", "just", "also", "very",
        "about", "up", "out", "into", "over", "after", "before",
        "some", "any", "all", "each", "every", "few", "more", "most",
        "other", "last", "first", "next", "new", "old", "same",
        "thing", "things", "stuff", "way", "lot",
    }
)

_URLISH = re.compile(r"[/\\?=&:@]|\d{4}-\d{2}")


# =============================================================================
# Helpers
# =============================================================================


def format_hour(hour: int) -> str:
    """12-hour clock label, e.g. ``0 -> '12am'``, ``14 -> '2pm'``."""
    hour %= 24
    if hour == 0:
        return "12am"
    if hour < 12:
        return f"{hour}am"
    if hour == 12:
        return "12pm"
    return f"{hour - 12}pm"


def _local(ts: datetime) -> datetime:
    return ts.astimezone() if ts.tzinfo else ts


def _timed(events: list[StructuredEvent]) -> list[StructuredEvent]:
    return sorted((e for e in events if e.timestamp is not None), key=lambda e: e.timestamp.timestamp())


def clean_topic(raw: str) -> str:
    """Strip leading articles, pronouns and demonstratives."""
    words = raw.split()
    start = 0
    while start < len(words) and words[start].lower() in LEADING_NOISE:
        start += 1
    return " ".join(words[start:])


def _stopword_ratio(topic: str) -> float:
    words = topic.lower().split()
    if not words:
        return 1.0
    return sum(1 for w in words if w in STOPWORDS) / len(words)


def filter_cluster_topics(topics: list[str]) -> list[str]:
    """Clean topics and drop ones unfit for cluster labels.

    Rejects domain fragments (anything with a dot), multi-word proper nouns
    (all words capitalised with at least one ``Xx`` word), URL, slug or
    timestamp shapes (``:`` or a ``YYYY-MM`` date), topics shorter than 2
    characters after cleaning, and topics that are half or more stopwords.
    """
    result: list[str] = []
    for raw in topics:
        if "." in raw or _URLISH.search(raw):
            continue
        words = raw.split()
        if (
            len(words) >= 2
            and all(w[:1].isupper() for w in words)
            and any(len(w) > 1 and w[0].isupper() and w[1].islower() for w in words)
        ):
            continue
        cleaned = clean_topic(raw)
        if len(cleaned) < 2 or _stopword_ratio(cleaned) >= 0.5:
            continue
        if cleaned not in result:
            result.append(cleaned)
    return result


def is_entity_bearing(event: StructuredEvent) -> bool:
    if event.source is not ActivitySource.BROWSER:
        return True
    return (event.category or "other") in ENTITY_BEARING_CATEGORIES


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


# =============================================================================
# Temporal Clusters
# =============================================================================


def _build_cluster(
    hour_start: int, hour_end: int, activity_type: ActivityType, events: list[StructuredEvent]
) -> TemporalCluster:
    topics = filter_cluster_topics(_unique([t for e in events for t in e.topics]))
    entities = _unique([x for e in events for x in e.entities])
    label = f"{activity_type.value} {format_hour(hour_start)}-{format_hour(hour_end + 1)}"
    if topics:
        label += ": " + ", ".join(topics[:3])
    return TemporalCluster(
        hour_start=hour_start,
        hour_end=hour_end,
        activity_type=activity_type,
        event_count=len(events),
        topics=topics[:5],
        entities=entities[:5],
        intensity=len(events) / (hour_end - hour_start + 1),
        label=label,
    )


def extract_temporal_clusters(events: list[StructuredEvent], min_cluster_size: int) -> list[TemporalCluster]:
    """Group hour buckets by dominant activity type and merge adjacent hours."""
    buckets: dict[int, list[StructuredEvent]] = defaultdict(list)
    for event in events:
        if event.timestamp is not None:
            buckets[_local(event.timestamp).hour].append(event)
    if not buckets:
        return []

    hours_by_type: dict[ActivityType, list[int]] = defaultdict(list)
    for hour in sorted(buckets):
        # Ties go to the type seen first in the hour.
        dominant = Counter(e.activity_type for e in buckets[hour]).most_common(1)[0][0]
        hours_by_type[dominant].append(hour)

    clusters: list[TemporalCluster] = []
    for activity_type, hours in hours_by_type.items():
        start = prev = hours[0]
        members = list(buckets[start])
        for hour in hours[1:]:
            if hour - prev <= 1:
                members.extend(buckets[hour])
            else:
                if len(members) >= min_cluster_size:
                    clusters.append(_build_cluster(start, prev, activity_type, members))
                start = hour
                members = list(buckets[hour])
            prev = hour
        if len(members) >= min_cluster_size:
            clusters.append(_build_cluster(start, prev, activity_type, members))

    clusters.sort(key=lambda c: c.event_count, reverse=True)
    return clusters


# =============================================================================
# Co-occurrence
# =============================================================================


def extract_topic_cooccurrences(events: list[StructuredEvent], window_minutes: int) -> list[TopicCooccurrence]:
    """Count topic pairs within time windows anchored at their first event."""
    timed = _timed(events)
    if not timed:
        return []

    span = timedelta(minutes=window_minutes).total_seconds()
    windows: list[list[StructuredEvent]] = []
    current = [timed[0]]
    anchor = timed[0].timestamp.timestamp()
    for event in timed[1:]:
        moment = event.timestamp.timestamp()
        if moment - anchor <= span:
            current.append(event)
        else:
            if len(current) > 1:
                windows.append(current)
            current = [event]
            anchor = moment
    if len(current) > 1:
        windows.append(current)

    counts: Counter[tuple[str, str]] = Counter()
    window_labels: dict[tuple[str, str], str] = {}
    for window in windows:
        topics = sorted(set(t for e in window for t in e.topics))
        label = format_hour(_local(window[0].timestamp).hour)
        for pair in combinations(topics, 2):
            counts[pair] += 1
            window_labels.setdefault(pair, label)

    if not counts:
        return []
    max_count = max(counts.values())
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:MAX_TOPIC_COOCCURRENCES]
    return [
        TopicCooccurrence(
            topic_a=a,
            topic_b=b,
            strength=count / max_count,
            shared_events=count,
            window=window_labels[(a, b)],
        )
        for (a, b), count in ranked
    ]


def extract_entity_relations(events: list[StructuredEvent]) -> list[EntityRelation]:
    """Count entity pairs that appear together within single events."""
    counts: Counter[tuple[str, str]] = Counter()
    contexts: dict[tuple[str, str], list[ActivityType]] = defaultdict(list)
    for event in events:
        entities = sorted(set(event.entities))
        for pair in combinations(entities, 2):
            counts[pair] += 1
            if event.activity_type not in contexts[pair]:
                contexts[pair].append(event.activity_type)

    relations = [
        EntityRelation(entity_a=a, entity_b=b, cooccurrences=count, contexts=contexts[(a, b)])
        for (a, b), count in counts.items()
        if count >= MIN_ENTITY_COOCCURRENCES
        and not all(c is ActivityType.UNKNOWN for c in contexts[(a, b)])
    ]
    relations.sort(key=lambda r: r.cooccurrences, reverse=True)
    return relations[:MAX_ENTITY_RELATIONS]


# =============================================================================
# Recurrence & Knowledge Delta
# =============================================================================


def compute_recurrence_signals(
    topic_counts: dict[str, int], today: date, history: TopicHistory
) -> list[RecurrenceSignal]:
    """Classify each of today's topics against prior days in ``history``."""
    today_iso = today.isoformat()
    returning_cutoff = today - timedelta(days=RETURNING_AFTER_DAYS)
    recent_cutoff = today - timedelta(days=RECENT_WINDOW_DAYS)

    signals: list[RecurrenceSignal] = []
    for topic, frequency in topic_counts.items():
        prior = []
        for iso in history.dates_for(topic):
            if iso == today_iso:
                continue
            try:
                prior.append(date.fromisoformat(iso))
            except ValueError:
                continue
        prior = sorted(d for d in set(prior) if d < today)

        if not prior:
            trend = RecurrenceTrend.NEW
        elif prior[-1] < returning_cutoff:
            trend = RecurrenceTrend.RETURNING
        else:
            recent = sum(1 for d in prior if d >= recent_cutoff)
            if recent >= STABLE_RECENT_DAYS:
                trend = RecurrenceTrend.STABLE
            elif recent >= RISING_RECENT_DAYS:
                trend = RecurrenceTrend.RISING
            else:
                trend = RecurrenceTrend.STABLE

        signals.append(
            RecurrenceSignal(topic=topic, trend=trend, day_count=len(prior) + 1, frequency=frequency)
        )

    signals.sort(key=lambda s: (_TREND_ORDER[s.trend], -s.frequency))
    return signals


def compute_knowledge_delta(
    entities: list[str],
    signals: list[RecurrenceSignal],
    cooccurrences: list[TopicCooccurrence],
) -> KnowledgeDelta:
    new_topics = [s.topic for s in signals if s.trend is RecurrenceTrend.NEW]
    recurring = [s.topic for s in signals if s.trend is not RecurrenceTrend.NEW and s.day_count > 1]
    novel = [e for e in entities if not any(e.lower() in t.lower() for t in recurring)]
    connections = [
        f"{c.topic_a} ↔ {c.topic_b}" for c in cooccurrences if c.strength >= CONNECTION_STRENGTH
    ]
    return KnowledgeDelta(
        new_topics=new_topics,
        recurring_topics=recurring,
        novel_entities=novel[:MAX_NOVEL_ENTITIES],
        connections=connections[:MAX_CONNECTIONS],
    )


# =============================================================================
# Scalars
# =============================================================================

FOCUS_FLOOR = 0.30
FOCUS_CEIL = 0.98
FOCUS_STEEPNESS = 5.0


def topic_focus(events: list[StructuredEvent]) -> float:
    """One minus normalized Shannon entropy of topic mentions."""
    counts = Counter(t.lower() for e in events for t in e.topics)
    total = sum(counts.values())
    if total == 0:
        return 0.0
    entropy = -sum((c / total) * math.log2(c / total) for c in counts.values())
    max_entropy = math.log2(max(2, len(counts)))
    return max(0.0, min(1.0, 1 - entropy / max_entropy))


def concentration(events: list[StructuredEvent]) -> float:
    """Share of events in the most common activity type."""
    if not events:
        return 0.0
    return Counter(e.activity_type for e in events).most_common(1)[0][1] / len(events)


def compress_score(blended: float) -> float:
    """Sigmoid-map a blended score in [0, 1] onto [0.30, 0.98]."""

    def sig(x: float) -> float:
        return 1 / (1 + math.exp(-FOCUS_STEEPNESS * (x - 0.5)))

    low, high = sig(0.0), sig(1.0)
    return FOCUS_FLOOR + (FOCUS_CEIL - FOCUS_FLOOR) * (sig(blended) - low) / (high - low)


def focus_label(score: float) -> str:
    """Human label for a focus score; empty for the no-events sentinel 0."""
    if score == 0:
        return ""
    if score >= 0.75:
        return "Highly focused"
    if score >= 0.60:
        return "Moderately focused"
    if score >= 0.45:
        return "Varied"
    return "Widely scattered"


def activity_distribution(events: list[StructuredEvent]) -> list[ActivityTypeShare]:
    counts = Counter(e.activity_type for e in events)
    total = len(events) or 1
    return [
        ActivityTypeShare(type=t, count=c, pct=round(100 * c / total)) for t, c in counts.most_common()
    ]


def peak_hours(events: list[StructuredEvent], limit: int = 5) -> list[PeakHour]:
    counts = Counter(_local(e.timestamp).hour for e in events if e.timestamp is not None)
    return [PeakHour(hour=h, count=c) for h, c in counts.most_common(limit)]


# =============================================================================
# Entry point
# =============================================================================


def extract_patterns(
    classification: ClassificationResult,
    config: PatternConfig,
    history: TopicHistory,
    today: date | None = None,
) -> tuple[PatternAnalysis, TopicHistory]:
    """Extract patterns and return them with the updated topic history.

    Events outside entity-bearing categories still shape clusters, focus and
    distributions, but their topics and entities are dropped before graph
    analysis so shopping titles or place names do not pollute the graph.

    Args:
        classification: Classified events for the day.
        config: Pattern thresholds.
        history: Topic history loaded before this run.
        today: Date of the digest; defaults to the local date.

    Returns:
        Tuple of (PatternAnalysis, updated TopicHistory). The history is
        unchanged when recurrence tracking is off.
    """
    today = today or date.today()
    events = classification.events
    graph_events = [
        e if is_entity_bearing(e) else e.model_copy(update={"topics": [], "entities": []}) for e in events
    ]

    temporal = extract_temporal_clusters(events, config.min_cluster_size)
    cooccurrences = extract_topic_cooccurrences(graph_events, config.cooccurrence_window)
    relations = extract_entity_relations(graph_events)

    topic_counts: dict[str, int] = Counter(t for e in graph_events for t in e.topics)
    entities = _unique([x for e in graph_events for x in e.entities])

    if config.track_recurrence:
        signals = compute_recurrence_signals(topic_counts, today, history)
        updated = history.with_day(list(topic_counts), today)
    else:
        signals = []
        updated = history

    delta = compute_knowledge_delta(entities, signals, cooccurrences)
    concentration_score = concentration(events)
    focus = compress_score(0.6 * topic_focus(events) + 0.4 * concentration_score) if events else 0.0

    analysis = PatternAnalysis(
        temporal_clusters=temporal,
        topic_cooccurrences=cooccurrences,
        entity_relations=relations,
        recurrence_signals=signals,
        knowledge_delta=delta,
        focus_score=focus,
        activity_concentration_score=concentration_score,
        top_activity_types=activity_distribution(events),
        peak_hours=peak_hours(events),
        total_events=len(events),
    )
    logger.debug(
        f"Extracted {len(temporal)} clusters, {len(cooccurrences)} topic pairs, "
        f"{len(relations)} entity relations, {len(signals)} recurrence signals"
    )
    return analysis, updated
