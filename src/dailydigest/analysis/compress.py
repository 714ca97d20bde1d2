"""Budget-aware compression of a day's raw activity into prompt text.

Each active source gets a minimum share of the token budget plus a share
proportional to its event count. Within its share a source degrades
progressively: full detail, then grouped summaries, then statistics only.

Pure: no model calls and no I/O.

Example:
    >>> from dailydigest.core.models import ActivityBundle, SearchQuery
    >>> result = compress_activity(ActivityBundle(searches=[SearchQuery(query="pydantic v2", engine="google.com")]), 500)
    >>> result.search_text.splitlines()[0]
    '  1 queries via google.com (1)'
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime
from typing import Callable, Iterable, Sequence, TypeVar

from dailydigest.core.categorize import categorize_visits, category_display_name
from dailydigest.core.models import (
    ActivityBundle,
    BrowserVisit,
    ClaudeSession,
    CompressedActivity,
    GitCommit,
    SearchQuery,
)

NONE_TEXT = "  (none)"

T = TypeVar("T")


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


def _format_time(value: datetime) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def _time_range(times: Iterable[datetime | None]) -> str:
    known = sorted((t.replace(tzinfo=None) for t in times if t is not None))
    if not known:
        return ""
    return f"{_format_time(known[0])}-{_format_time(known[-1])}"


def _top_n(items: Sequence[T], key: Callable[[T], str], limit: int) -> list[tuple[str, int]]:
    return Counter(key(item) for item in items).most_common(limit)


def _counts(pairs: list[tuple[str, int]]) -> str:
    return ", ".join(f"{name} ({count})" for name, count in pairs)


def _with_range(text: str, time_range: str) -> str:
    return f"{text} | {time_range}" if time_range else text


# =============================================================================
# Per-source compressors
# =============================================================================


def compress_browser(categorized: dict[str, list[BrowserVisit]], budget: int) -> str:
    entries = [(cat, visits) for cat, visits in categorized.items() if visits]
    if not entries:
        return NONE_TEXT

    total = sum(len(visits) for _, visits in entries)
    lines = []
    for cat, visits in entries:
        label = category_display_name(cat)
        domains = _counts(_top_n(visits, lambda v: v.domain or "unknown", 8))
        title_budget = max(2, round(len(visits) / total * 20))
        titles = [v.title[:60] for v in visits[:title_budget] if v.title]
        line = f"  [{label}] ({len(visits)} visits) domains: {domains}"
        if titles:
            line += f" | titles: {'; '.join(titles)}"
        lines.append(_with_range(line, _time_range(v.time for v in visits)))
    text = "\n".join(lines)

    if estimate_tokens(text) > budget:
        text = "\n".join(
            _with_range(
                f"  [{category_display_name(cat)}] ({len(visits)} visits) "
                f"{_counts(_top_n(visits, lambda v: v.domain or 'unknown', 5))}",
                _time_range(v.time for v in visits),
            )
            for cat, visits in entries
        )

    if estimate_tokens(text) > budget:
        text = "\n".join(f"  [{category_display_name(cat)}] {len(visits)} visits" for cat, visits in entries)

    return text


def compress_searches(searches: list[SearchQuery], budget: int) -> str:
    if not searches:
        return NONE_TEXT

    header = _with_range(
        f"  {len(searches)} queries via {_counts(_top_n(searches, lambda s: s.engine or 'unknown', 5))}",
        _time_range(s.time for s in searches),
    )
    queries = [s.query for s in searches[:50]]
    text = f"{header}\n  {' | '.join(queries)}"

    if estimate_tokens(text) > budget:
        limit = max(5, budget // 3)
        more = len(searches) - limit
        text = f"{header}\n  {' | '.join(s.query for s in searches[:limit])}"
        if more > 0:
            text += f" (+{more} more)"

    if estimate_tokens(text) > budget:
        text = header

    return text


def compress_sessions(sessions: list[ClaudeSession], budget: int) -> str:
    if not sessions:
        return NONE_TEXT

    by_project: dict[str, list[ClaudeSession]] = {}
    for session in sessions:
        by_project.setdefault(session.project or "general", []).append(session)
    header = _with_range(f"  {len(sessions)} total prompts", _time_range(s.time for s in sessions))

    lines = []
    for project, items in by_project.items():
        more = len(items) - 10
        line = f"  [{project}] ({len(items)} prompts)"
        if more > 0:
            line += f" (+{more} more)"
        lines.append(line + "\n    " + " | ".join(s.prompt[:120] for s in items[:10]))
    text = header + "\n" + "\n".join(lines)

    if estimate_tokens(text) > budget:
        condensed = []
        for project, items in by_project.items():
            line = f"  [{project}] ({len(items)} prompts): " + " | ".join(s.prompt[:80] for s in items[:3])
            if len(items) > 3:
                line += f" (+{len(items) - 3} more)"
            condensed.append(line)
        text = header + "\n" + "\n".join(condensed)

    if estimate_tokens(text) > budget:
        projects = ", ".join(f"{project} ({len(items)})" for project, items in by_project.items())
        text = _with_range(f"  {len(sessions)} prompts across: {projects}", _time_range(s.time for s in sessions))

    return text


def compress_commits(commits: list[GitCommit], budget: int) -> str:
    if not commits:
        return NONE_TEXT

    by_repo: dict[str, list[GitCommit]] = {}
    for commit in commits:
        by_repo.setdefault(commit.repo or "unknown", []).append(commit)
    header = _with_range(f"  {len(commits)} total commits", _time_range(c.time for c in commits))

    def repo_stats(items: list[GitCommit]) -> str:
        added = sum(c.insertions for c in items)
        removed = sum(c.deletions for c in items)
        return f"{len(items)} commits, +{added}/-{removed}"

    lines = []
    for repo, items in by_repo.items():
        line = f"  [{repo}] ({repo_stats(items)})"
        if len(items) > 15:
            line += f" (+{len(items) - 15} more)"
        entries = " | ".join(
            f"{c.hash[:7]} {c.message[:80]} (+{c.insertions}/-{c.deletions})".strip() for c in items[:15]
        )
        lines.append(f"{line}\n    {entries}")
    text = header + "\n" + "\n".join(lines)

    if estimate_tokens(text) > budget:
        condensed = []
        for repo, items in by_repo.items():
            line = f"  [{repo}] ({repo_stats(items)}): " + " | ".join(c.message[:60] for c in items[:5])
            if len(items) > 5:
                line += f" (+{len(items) - 5} more)"
            condensed.append(line)
        text = header + "\n" + "\n".join(condensed)

    if estimate_tokens(text) > budget:
        repos = ", ".join(f"{repo} ({len(items)})" for repo, items in by_repo.items())
        text = _with_range(f"  {len(commits)} commits across: {repos}", _time_range(c.time for c in commits))

    return text


# =============================================================================
# Entry point
# =============================================================================


def compress_activity(bundle: ActivityBundle, token_budget: int = 3000) -> CompressedActivity:
    """Compress all sources to fit ``token_budget`` tokens.

    Visits are grouped by ``bundle.categorized`` when present, otherwise they
    are categorized here.
    """
    categorized = bundle.categorized or categorize_visits(bundle.visits)
    browser_count = sum(len(v) for v in categorized.values())
    counts = {
        "browser": browser_count,
        "search": len(bundle.searches),
        "claude": len(bundle.sessions),
        "git": len(bundle.commits),
    }
    total = sum(counts.values())
    if total == 0:
        return CompressedActivity()

    active = sum(1 for c in counts.values() if c > 0)
    # Minimum share per active source, capped so the minimums never exceed the budget.
    min_share = min(token_budget // 10, token_budget // active)
    flex = token_budget - active * min_share
    shares = {
        source: (min_share + round(flex * count / total)) if count else 0 for source, count in counts.items()
    }

    browser_text = compress_browser(categorized, shares["browser"])
    search_text = compress_searches(bundle.searches, shares["search"])
    claude_text = compress_sessions(bundle.sessions, shares["claude"])
    git_text = compress_commits(bundle.commits, shares["git"])

    return CompressedActivity(
        browser_text=browser_text,
        search_text=search_text,
        claude_text=claude_text,
        git_text=git_text,
        total_events=total,
        token_estimate=sum(estimate_tokens(t) for t in (browser_text, search_text, claude_text, git_text)),
    )
