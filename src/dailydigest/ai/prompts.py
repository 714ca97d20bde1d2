"""Prompt templates for the daily digest summary call.

Five templates cover the privacy tiers:

- ``deidentified``: aggregated pattern statistics only (tier 4)
- ``classified``: per-event abstractions, no raw text (tier 3)
- ``compressed`` and ``rag``: budget-compressed or pre-selected text (tier 2)
- ``standard``: raw per-source activity plus any richer layers (tier 1)

An ``empty`` template is used when nothing usable reached the assembler.

Templates are Jinja2 strings rendered from a shared environment. The
response schema block is built in Python and scaled by ``PromptCapability``
so small local models get a shorter contract than frontier models.

Example:
    >>> text = render_prompt(PromptName.EMPTY, PromptCapability.LITE, date_str="Monday, March 3, 2025")
    >>> "No activity" in text
    True
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Any

from jinja2 import DictLoader, Environment, StrictUndefined


class PromptCapability(str, Enum):
    """How capable the receiving model is, which sets prompt verbosity.

    Attributes:
        HIGH: Frontier models; full schema with meta fields.
        BALANCED: Mid-size models; full schema without meta fields.
        LITE: Small local models; core fields only.
    """

    HIGH = "high"
    BALANCED = "balanced"
    LITE = "lite"


class PromptName(str, Enum):
    STANDARD = "standard"
    COMPRESSED = "compressed"
    RAG = "rag"
    CLASSIFIED = "classified"
    DEIDENTIFIED = "deidentified"
    EMPTY = "empty"


# =============================================================================
# Response Schema
# =============================================================================

_CAPABILITY_RANK = {
    PromptCapability.LITE: 0,
    PromptCapability.BALANCED: 1,
    PromptCapability.HIGH: 2,
}

# (key, description, lowest capability that gets the field)
RESPONSE_FIELDS: list[tuple[str, str, PromptCapability]] = [
    ("headline", '"one punchy sentence capturing the day\'s essential character (max 15 words)"', PromptCapability.LITE),
    ("work_story", '"2-3 sentences narrating the arc of the day\'s work: what was being built or solved and what changed from start to end"', PromptCapability.BALANCED),
    ("mindset", '"1 sentence characterizing the working mode: exploring, building, debugging, synthesizing or learning"', PromptCapability.BALANCED),
    ("tldr", '"2-3 sentences for future recall: key accomplishment, main learning, and what this day sets up next"', PromptCapability.LITE),
    ("themes", '["3-5 broad theme tags for grouping this day with related days"]', PromptCapability.LITE),
    ("topics", '["4-8 specific noun phrases usable as note titles, e.g. \'OAuth 2.0\', \'React hooks\'"]', PromptCapability.LITE),
    ("entities", '["3-6 named tools, libraries, frameworks, services or APIs"]', PromptCapability.BALANCED),
    ("category_summaries", '{"<{category_key}>": "1-sentence plain-English summary of this area"}', PromptCapability.LITE),
    ("notable", '["2-4 notable things: decisions, pivots, or things worth linking to other notes"]', PromptCapability.BALANCED),
    ("learnings", '["2-4 concrete things learned today that can be applied later"]', PromptCapability.BALANCED),
    ("remember", '["3-5 things worth surfacing for quick future recall"]', PromptCapability.BALANCED),
    ("questions", '["1-2 open questions a thoughtful outside observer would ask; do not presuppose an outcome"]', PromptCapability.BALANCED),
    ("note_seeds", '["2-4 topics that most deserve their own permanent note"]', PromptCapability.BALANCED),
    ("work_patterns", '["1-3 behavioral observations, e.g. \'sustained morning focus block\'"]', PromptCapability.LITE),
    ("cross_source_connections", '["1-2 connections across activity types or sources"]', PromptCapability.HIGH),
]

# Only offered when aggregate patterns are part of the prompt.
META_FIELDS: list[tuple[str, str]] = [
    ("focus_narrative", '"1-2 sentences on the day\'s cognitive character and how attention was directed"'),
    ("meta_insights", '["2-3 observations: research-to-implementation ratio, depth vs breadth, fragmentation"]'),
    ("quirky_signals", '["1-3 unusual signals: topics revisited but never formalized, unexpected connections"]'),
]


def response_schema(
    capability: PromptCapability,
    category_key: str = "category_name",
    include_meta: bool = False,
) -> str:
    """Render the JSON response contract for a capability level."""
    rank = _CAPABILITY_RANK[capability]
    lines = [
        f'  "{key}": {desc.replace("{category_key}", category_key)}'
        for key, desc, minimum in RESPONSE_FIELDS
        if _CAPABILITY_RANK[minimum] <= rank
    ]
    if include_meta and capability is PromptCapability.HIGH:
        lines.extend(f'  "{key}": {desc}' for key, desc in META_FIELDS)
    return "{\n" + ",\n".join(lines) + "\n}"


# =============================================================================
# Templates
# =============================================================================

_PREAMBLE = (
    "You are building a daily note entry for a personal knowledge base. "
)

_CLOSING = """Return ONLY a JSON object with these exact keys, no markdown and no preamble:
{{ schema }}

Write `headline` and `tldr` last, as final distillations after completing all other fields.
{% if capability != "lite" %}
Themes are broad tags for cross-day filtering. Topics are specific note-title candidates.
{% endif %}
Only include category_summaries for areas that actually had activity.
Write for a person reading their own notes 3 months from now.
"""

_PATTERN_BLOCK = """<pattern_analysis>
<focus_context>Focus score: {{ p.focus }} | Peak activity hours: {{ p.peak_hours }}</focus_context>

<activity_distribution>
{% for line in p.activity_distribution %}
  {{ line }}
{% else %}
  (no activity data)
{% endfor %}
</activity_distribution>

<temporal_clusters>
{% for line in p.temporal_clusters %}
  {{ line }}
{% else %}
  No significant clusters detected.
{% endfor %}
</temporal_clusters>

<topic_distribution>
{% for line in p.topic_distribution %}
  {{ line }}
{% else %}
  (no topics extracted)
{% endfor %}
</topic_distribution>

<topic_connections>
{% for line in p.topic_connections %}
  {{ line }}
{% else %}
  No strong topic connections.
{% endfor %}
</topic_connections>

<entity_cooccurrences>
{% for line in p.entity_cooccurrences %}
  {{ line }}
{% else %}
  No entity co-occurrences detected.
{% endfor %}
</entity_cooccurrences>

<recurrence_signals>
{% for line in p.recurrence %}
  {{ line }}
{% else %}
  No recurrence data available.
{% endfor %}
</recurrence_signals>

<knowledge_delta>
{% for line in p.knowledge_delta %}
  {{ line }}
{% else %}
  No knowledge delta data.
{% endfor %}
</knowledge_delta>
{% if p.semantic_clusters %}

<reading_clusters>
{% for line in p.semantic_clusters %}
  {{ line }}
{% endfor %}
</reading_clusters>
{% endif %}
</pattern_analysis>
"""

_CLASSIFIED_BLOCK = """<activity_overview>
Total events: {{ c.total }} ({{ c.llm }} model-classified, {{ c.rule }} rule-classified)
All topics: {{ c.topics or "none" }}
All entities: {{ c.entities or "none" }}
</activity_overview>

<activity_by_type>
{% for section in c.sections %}
### {{ section.type }} ({{ section.count }} events)
Topics: {{ section.topics or "none" }}
Entities: {{ section.entities or "none" }}
Activities:
{% for summary in section.summaries %}
  - {{ summary }}
{% endfor %}

{% else %}
(no classified events)
{% endfor %}
</activity_by_type>
"""

_RAW_BLOCK = """<browser_activity>
{{ r.browser }}
</browser_activity>

<search_queries>
{{ r.searches }}
</search_queries>

<ai_sessions>
{{ r.sessions }}
</ai_sessions>

<git_commits>
{{ r.commits }}
</git_commits>
"""

TEMPLATES: dict[str, str] = {
    "closing": _CLOSING,
    "pattern_block": _PATTERN_BLOCK,
    "classified_block": _CLASSIFIED_BLOCK,
    "raw_block": _RAW_BLOCK,
    PromptName.DEIDENTIFIED.value: _PREAMBLE
    + """You are receiving ONLY aggregated distributions and meta-signals: no raw data, URLs, queries, commands, timestamps or per-event details. Synthesize focus quality, work rhythm and learning behavior from these patterns.{{ context_hint }}

Do not invent specific URLs, commands, file names, people's names, or timestamps. Every observation must be inferable from the aggregates below.

Date: {{ date_str }}

{% with p = patterns %}{% include "pattern_block" %}{% endwith %}

{% include "closing" %}""",
    PromptName.CLASSIFIED.value: _PREAMBLE
    + """You are receiving structured activity abstractions: classified events with topics, entities and paraphrased summaries. No raw URLs, page titles, queries or prompts are included.{{ context_hint }}{{ focus_hint }}

Date: {{ date_str }}

{% with c = classified %}{% include "classified_block" %}{% endwith %}
{% if patterns %}

{% with p = patterns %}{% include "pattern_block" %}{% endwith %}
{% endif %}

Refer to the topics and entities above; do not invent specific URLs, titles or queries.

{% include "closing" %}""",
    PromptName.COMPRESSED.value: _PREAMBLE
    + """Synthesize this person's activity logs into a clear picture of their focus, learning and momentum for the day. Activity was compressed to fit a token budget.{{ context_hint }}{{ focus_hint }}

Date: {{ date_str }}
Total events collected: {{ total_events }}

{% with r = raw %}{% include "raw_block" %}{% endwith %}
{% if classified %}

{% with c = classified %}{% include "classified_block" %}{% endwith %}
{% endif %}
{% if patterns %}

{% with p = patterns %}{% include "pattern_block" %}{% endwith %}
{% endif %}

Be specific and concrete. Prefer "debugged the OAuth callback race condition" over "did some dev work".

{% include "closing" %}""",
    PromptName.RAG.value: _PREAMBLE
    + """The following activity blocks were selected as the most relevant from today's data.{{ context_hint }}{{ focus_hint }}

Date: {{ date_str }}

<activity_blocks>
{% for block in blocks %}
--- Activity Block {{ loop.index }} ---
{{ block }}

{% endfor %}
</activity_blocks>
{% if classified %}

{% with c = classified %}{% include "classified_block" %}{% endwith %}
{% endif %}
{% if patterns %}

{% with p = patterns %}{% include "pattern_block" %}{% endwith %}
{% endif %}

Only include category_summaries for categories represented in the activity blocks above.

{% include "closing" %}""",
    PromptName.STANDARD.value: _PREAMBLE
    + """Synthesize this person's digital activity into meaningful, reflective intelligence: not just a log of what happened, but a clear picture of their focus, learning and the arc of the day's work.{{ context_hint }}{{ focus_hint }}

Date: {{ date_str }}

{% if patterns %}
{% with p = patterns %}{% include "pattern_block" %}{% endwith %}

{% endif %}
{% if classified %}
{% with c = classified %}{% include "classified_block" %}{% endwith %}

{% endif %}
<raw_activity>
{% with r = raw %}{% include "raw_block" %}{% endwith %}
</raw_activity>
{% if patterns or classified %}

The sections above describe the same day at different levels of granularity. Use the patterns as a calibrating prior, the structured events as evidence of what they mean, and the raw activity for concrete specifics.
{% endif %}

Be specific and concrete. Prefer "debugged the OAuth callback race condition" over "did some dev work".

{% include "closing" %}""",
    PromptName.EMPTY.value: _PREAMBLE
    + """No activity was available for this day after privacy filtering.{{ context_hint }}

Date: {{ date_str }}

Do not invent activity. Write a brief, honest note that nothing was captured.

{% include "closing" %}""",
}


@lru_cache(maxsize=1)
def get_environment() -> Environment:
    """Shared Jinja2 environment with the digest templates loaded."""
    return Environment(
        loader=DictLoader(TEMPLATES),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=False,
    )


def render_prompt(name: PromptName, capability: PromptCapability, **context: Any) -> str:
    """Render one of the named prompt templates.

    Missing optional layers default to None so templates can test for them.
    """
    include_meta = context.get("patterns") is not None
    category_key = "activity_type" if name in (PromptName.CLASSIFIED, PromptName.DEIDENTIFIED) else "category_name"
    values: dict[str, Any] = {
        "context_hint": "",
        "focus_hint": "",
        "patterns": None,
        "classified": None,
        "raw": None,
        "blocks": [],
        "total_events": 0,
    }
    values.update(context)
    values["capability"] = capability.value
    values["schema"] = response_schema(capability, category_key, include_meta)
    template = get_environment().get_template(name.value)
    return template.render(**values).strip() + "\n"
