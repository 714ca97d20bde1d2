"""Render tier-filtered layers into the summary prompt.

``assemble_prompt`` only ever sees a ``TierFilteredOptions``, so it cannot
render a layer the tier does not permit. Within the permitted set it picks
the highest-fidelity layer that actually has data, and degrades to the next
one when a layer is missing. When nothing usable remains it renders a
short prompt stating that no activity was available, so the result is
never empty.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from dailydigest.ai.prompts import PromptCapability, PromptName, render_prompt
from dailydigest.analysis.compress import estimate_tokens
from dailydigest.analysis.patterns import focus_label, format_hour
from dailydigest.core.categorize import categorize_visits, category_display_name
from dailydigest.core.models import (
    ActivityBundle,
    ClassificationResult,
    CompressedActivity,
    PatternAnalysis,
    RecurrenceTrend,
    SemanticCluster,
)
from dailydigest.privacy.tiers import DataLayer, PrivacyTier, TierFilteredOptions

logger = logging.getLogger(__name__)

# Highest fidelity first; the first layer with data is rendered.
LAYER_PREFERENCE: dict[PrivacyTier, list[DataLayer]] = {
    PrivacyTier.DEIDENTIFIED: [DataLayer.PATTERNS, DataLayer.SEMANTIC_CLUSTERS],
    PrivacyTier.CLASSIFIED: [DataLayer.CLASSIFICATION, DataLayer.PATTERNS, DataLayer.SEMANTIC_CLUSTERS],
    PrivacyTier.COMPRESSED: [
        DataLayer.RETRIEVED,
        DataLayer.COMPRESSED,
        DataLayer.CLASSIFICATION,
        DataLayer.PATTERNS,
        DataLayer.SEMANTIC_CLUSTERS,
    ],
    PrivacyTier.STANDARD: [
        DataLayer.RAW,
        DataLayer.CLASSIFICATION,
        DataLayer.PATTERNS,
        DataLayer.SEMANTIC_CLUSTERS,
    ],
}


class PromptContext(BaseModel):
    """Non-activity inputs to prompt rendering."""

    capability: PromptCapability = PromptCapability.BALANCED
    profile: str = Field(default="", description="Free-text context about the user.")


class AssembledPrompt(BaseModel):
    """A rendered prompt ready for the summary provider.

    Attributes:
        tier: Tier the prompt was filtered at.
        capability: Capability level the prompt was written for.
        token_estimate: Rough token count of ``text``.
        text: The prompt.
        layer: Primary layer rendered, or None for the no-activity prompt.
        template: Template used.
    """

    tier: PrivacyTier
    capability: PromptCapability
    token_estimate: int
    text: str
    layer: DataLayer | None = None
    template: PromptName


# =============================================================================
# Layer views
# =============================================================================


def format_date(day: date) -> str:
    """Long-form date, e.g. ``Monday, March 3, 2025``."""
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def pattern_view(patterns: PatternAnalysis | None, clusters: list[SemanticCluster] | None) -> dict[str, Any]:
    """Aggregate-only lines for the pattern block."""
    p = patterns or PatternAnalysis()

    if p.is_empty():
        focus = "n/a"
    else:
        focus = f"{round(p.focus_score * 100)}% ({focus_label(p.focus_score)})"
    peaks = ", ".join(f"{format_hour(h.hour)} ({h.count})" for h in p.peak_hours[:3]) or "unknown"

    topic_weights: Counter[str] = Counter()
    for cluster in p.temporal_clusters:
        for topic in cluster.topics:
            topic_weights[topic] += cluster.event_count

    recurrence = []
    by_trend = {trend: [s for s in p.recurrence_signals if s.trend is trend] for trend in RecurrenceTrend}
    if by_trend[RecurrenceTrend.NEW]:
        recurrence.append("New explorations: " + ", ".join(s.topic for s in by_trend[RecurrenceTrend.NEW]))
    if by_trend[RecurrenceTrend.RETURNING]:
        recurrence.append(
            "Returning interests: "
            + ", ".join(f"{s.topic} ({s.day_count} days total)" for s in by_trend[RecurrenceTrend.RETURNING])
        )
    if by_trend[RecurrenceTrend.RISING]:
        recurrence.append("Trending up: " + ", ".join(s.topic for s in by_trend[RecurrenceTrend.RISING]))
    if by_trend[RecurrenceTrend.STABLE]:
        recurrence.append("Ongoing: " + ", ".join(s.topic for s in by_trend[RecurrenceTrend.STABLE]))

    delta = p.knowledge_delta
    delta_lines = []
    if delta.new_topics:
        delta_lines.append("New topics: " + ", ".join(delta.new_topics))
    if delta.recurring_topics:
        delta_lines.append("Recurring: " + ", ".join(delta.recurring_topics))
    if delta.novel_entities:
        delta_lines.append("New entities: " + ", ".join(delta.novel_entities))
    if delta.connections:
        delta_lines.append("Cross-connections: " + "; ".join(delta.connections))

    return {
        "focus": focus,
        "peak_hours": peaks,
        "activity_distribution": [
            f"{share.type.value}: {share.count} events ({share.pct}%)" for share in p.top_activity_types
        ],
        "temporal_clusters": [
            f"{c.label} ({c.event_count} events, intensity {c.intensity:.1f}/hr)" for c in p.temporal_clusters[:6]
        ],
        "topic_distribution": [f"{topic}: ~{count} events" for topic, count in topic_weights.most_common(12)],
        "topic_connections": [
            f"{c.topic_a} ↔ {c.topic_b} (strength: {c.strength:.2f})"
            for c in p.topic_cooccurrences
            if c.strength >= 0.3
        ][:8],
        "entity_cooccurrences": [
            f"{r.entity_a} ↔ {r.entity_b} ({r.cooccurrences}x, in: {', '.join(c.value for c in r.contexts)})"
            for r in p.entity_relations[:8]
        ],
        "recurrence": recurrence,
        "knowledge_delta": delta_lines,
        # Label, count and intent only; domains stay out of the prompt.
        "semantic_clusters": [
            f"{c.label} ({c.article_count} articles, {c.intent})" for c in (clusters or [])
        ],
    }


def classified_view(classification: ClassificationResult) -> dict[str, Any]:
    """Summaries, topics and entities grouped by activity type."""
    by_type: dict[str, list] = {}
    for event in classification.events:
        by_type.setdefault(event.activity_type.value, []).append(event)

    sections = []
    for activity_type, events in by_type.items():
        sections.append(
            {
                "type": activity_type,
                "count": len(events),
                "topics": ", ".join(dict.fromkeys(t for e in events for t in e.topics)),
                "entities": ", ".join(dict.fromkeys(x for e in events for x in e.entities)),
                "summaries": [e.summary for e in events if e.summary],
            }
        )

    return {
        "total": classification.total_processed,
        "llm": classification.llm_classified,
        "rule": classification.rule_classified,
        "topics": ", ".join(dict.fromkeys(t for e in classification.events for t in e.topics)),
        "entities": ", ".join(dict.fromkeys(x for e in classification.events for x in e.entities)),
        "sections": sections,
    }


def raw_view(bundle: ActivityBundle) -> dict[str, str]:
    """Per-source raw lines with fixed caps."""
    categorized = bundle.categorized or categorize_visits(bundle.visits)
    browser_lines = []
    for category, visits in categorized.items():
        domains = list(dict.fromkeys(v.domain or "" for v in visits if v.domain))[:8]
        titles = [v.title[:60] for v in visits[:5] if v.title]
        line = f"  [{category_display_name(category)}] domains: {', '.join(domains)}"
        if titles:
            line += f" | sample titles: {'; '.join(titles)}"
        browser_lines.append(line)

    searches = [f"  - {s.query}" for s in bundle.searches[:20]]
    sessions = [f"  - {s.prompt[:120]}" for s in bundle.sessions[:10]]
    commits = [f"  - [{c.repo}] {c.message[:80]}" for c in bundle.commits[:20]]
    return {
        "browser": "\n".join(browser_lines) or "  (none)",
        "searches": "\n".join(searches) or "  (none)",
        "sessions": "\n".join(sessions) or "  (none)",
        "commits": "\n".join(commits) or "  (none)",
    }


def compressed_view(compressed: CompressedActivity) -> dict[str, str]:
    return {
        "browser": compressed.browser_text,
        "searches": compressed.search_text,
        "sessions": compressed.claude_text,
        "commits": compressed.git_text,
    }


# =============================================================================
# Assembly
# =============================================================================


def select_layer(options: TierFilteredOptions) -> DataLayer | None:
    """First preferred layer for the tier that is both permitted and populated."""
    available = options.available()
    for layer in LAYER_PREFERENCE[options.tier]:
        if layer in options.permitted and layer in available:
            return layer
    return None


def assemble_prompt(day: date, options: TierFilteredOptions, context: PromptContext | None = None) -> AssembledPrompt:
    """Render the prompt for a tier-filtered set of layers.

    Args:
        day: Digest date.
        options: Output of ``filter_by_tier``.
        context: Capability and profile; defaults to balanced with no profile.

    Returns:
        AssembledPrompt with a non-empty ``text``.
    """
    context = context or PromptContext()
    available = options.available()
    layer = select_layer(options)
    preferred = LAYER_PREFERENCE[options.tier][0]
    if layer is not preferred:
        logger.info(
            f"Tier {int(options.tier)} prefers {preferred.value} but it is unavailable, "
            f"using {layer.value if layer else 'no-activity prompt'}"
        )

    values: dict[str, Any] = {
        "date_str": format_date(day),
        "context_hint": f"\nUser profile context: {context.profile}" if context.profile.strip() else "",
    }
    has_patterns = DataLayer.PATTERNS in available or DataLayer.SEMANTIC_CLUSTERS in available
    if has_patterns and layer is not None:
        values["patterns"] = pattern_view(options.patterns, options.semantic_clusters)
    if DataLayer.CLASSIFICATION in available and options.classification is not None:
        values["classified"] = classified_view(options.classification)

    if layer in (DataLayer.PATTERNS, DataLayer.SEMANTIC_CLUSTERS):
        name = PromptName.DEIDENTIFIED
        values.pop("classified", None)
    elif layer is DataLayer.CLASSIFICATION:
        name = PromptName.CLASSIFIED
    elif layer is DataLayer.RETRIEVED:
        name = PromptName.RAG
        values["blocks"] = list(options.retrieved or [])
    elif layer is DataLayer.COMPRESSED and options.compressed is not None:
        name = PromptName.COMPRESSED
        values["raw"] = compressed_view(options.compressed)
        values["total_events"] = options.compressed.total_events
    elif layer is DataLayer.RAW and options.raw is not None:
        name = PromptName.STANDARD
        values["raw"] = raw_view(options.raw)
    else:
        name = PromptName.EMPTY
        values.pop("patterns", None)
        values.pop("classified", None)

    text = render_prompt(name, context.capability, **values)
    return AssembledPrompt(
        tier=options.tier,
        capability=context.capability,
        token_estimate=estimate_tokens(text),
        text=text,
        layer=layer,
        template=name,
    )
