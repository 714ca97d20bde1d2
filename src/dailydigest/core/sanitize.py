"""Sanitize pass over a day's collected activity.

Drops visits to excluded domains, then scrubs every free-text field with
the rules appropriate to its source:

- visit URLs go through the URL sanitizer, titles through the full scrub
- search queries and assistant prompts get the full scrub (prompts have UI
  artifacts stripped first)
- commit messages get secrets scrubbing only
"""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from dailydigest.config import SanitizeConfig
from dailydigest.core.models import ActivityBundle, BrowserVisit
from dailydigest.core.scrubber import (
    sanitize_url,
    scrub_text,
    strip_session_artifacts,
)

logger = logging.getLogger(__name__)

# Autocomplete pings, ad beacons and login hops that carry no activity signal.
DEFAULT_EXCLUDED_DOMAINS = [
    "google.com/complete",
    "google.com/gen_204",
    "accounts.google.com",
    "doubleclick.net",
    "localhost",
    "127.0.0.1",
]


class SanitizedOutput(BaseModel):
    bundle: ActivityBundle = Field(default_factory=ActivityBundle)
    excluded_visit_count: int = 0


def is_excluded_domain(domain: str, excluded_patterns: list[str], path: str = "") -> bool:
    """Substring match of each pattern against the host, or host + path for path patterns."""
    host = domain.lower()
    full = host + path.lower()
    for pattern in excluded_patterns:
        p = pattern.lower()
        if p in (full if "/" in p else host):
            return True
    return False


def filter_excluded_domains(
    visits: list[BrowserVisit], excluded_patterns: list[str]
) -> tuple[list[BrowserVisit], int]:
    """Drop visits whose host contains any excluded pattern.

    Patterns with a path (``google.com/complete``) are compared against
    ``host + path``. Visits with unparseable URLs are kept.

    Returns:
        Tuple of (kept visits, excluded count).
    """
    if not excluded_patterns:
        return list(visits), 0

    kept: list[BrowserVisit] = []
    excluded = 0
    for visit in visits:
        try:
            parts = urlsplit(visit.url)
            hostname = parts.hostname
        except ValueError:
            kept.append(visit)
            continue
        if not hostname:
            kept.append(visit)
            continue
        host = hostname[4:] if hostname.startswith("www.") else hostname
        if is_excluded_domain(host, excluded_patterns, parts.path):
            excluded += 1
        else:
            kept.append(visit)
    return kept, excluded


def sanitize_bundle(bundle: ActivityBundle, config: SanitizeConfig) -> SanitizedOutput:
    """Run domain exclusion and text scrubbing over every source.

    Args:
        bundle: Raw collected activity.
        config: Sanitize settings. When disabled the bundle passes through
            unchanged.

    Returns:
        SanitizedOutput with the scrubbed bundle and exact excluded count.
    """
    if not config.enabled:
        return SanitizedOutput(bundle=bundle)

    patterns = DEFAULT_EXCLUDED_DOMAINS + [p for p in config.excluded_domains if p not in DEFAULT_EXCLUDED_DOMAINS]
    visits, excluded = filter_excluded_domains(bundle.visits, patterns)

    def scrub(text: str) -> str:
        return scrub_text(text, config.redact_paths, config.scrub_emails)

    sanitized = ActivityBundle(
        visits=[
            v.model_copy(update={"url": sanitize_url(v.url), "title": scrub(v.title)})
            for v in visits
        ],
        searches=[s.model_copy(update={"query": scrub(s.query)}) for s in bundle.searches],
        sessions=[
            s.model_copy(update={"prompt": scrub(strip_session_artifacts(s.prompt))})
            for s in bundle.sessions
        ],
        commits=[c.model_copy(update={"message": scrub(c.message)}) for c in bundle.commits],
    )

    if excluded:
        logger.debug(f"Excluded {excluded} visits by domain")
    return SanitizedOutput(bundle=sanitized, excluded_visit_count=excluded)
