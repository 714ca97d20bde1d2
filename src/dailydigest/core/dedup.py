"""Near-duplicate collapse for browser visits.

Browsers record a history row for every reload, redirect and map pan. Two
visits are near-duplicates when their canonical keys match: same host
(without ``www.``) and same path (without trailing slash), ignoring query and
fragment. Google Maps viewport suffixes (``/@lat,lng,zoom``) are ignored too.
"""

from __future__ import annotations

from datetime import datetime
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from dailydigest.core.models import BrowserVisit
from dailydigest.core.scrubber import extract_hostname

_EPOCH = datetime.min


class DedupResult(BaseModel):
    visits: list[BrowserVisit] = Field(default_factory=list)
    collapsed_count: int = 0


def canonical_key(raw_url: str) -> str:
    """Canonical identity of a page URL.

    Example:
        >>> canonical_key("https://www.example.com/docs/?page=2#intro")
        'https://example.com/docs'
    """
    try:
        parts = urlsplit(raw_url)
        hostname = parts.hostname
    except ValueError:
        return raw_url
    if not hostname:
        return raw_url

    host = hostname[4:] if hostname.startswith("www.") else hostname
    path = parts.path
    if host in ("google.com", "maps.google.com") and path.startswith("/maps/"):
        marker = path.find("/@")
        if marker != -1:
            path = path[:marker]
    else:
        path = path.rstrip("/") or "/"
    return f"https://{host}{path}"


def _time_key(visit: BrowserVisit) -> datetime:
    if visit.time is None:
        return _EPOCH
    return visit.time.replace(tzinfo=None)


def _pick_best(group: list[BrowserVisit]) -> BrowserVisit:
    # Longest title wins; ties go to the earliest load.
    best = group[0]
    for visit in group[1:]:
        if len(visit.title or "") > len(best.title or ""):
            best = visit
        elif len(visit.title or "") == len(best.title or ""):
            if visit.time is not None and (best.time is None or _time_key(visit) < _time_key(best)):
                best = visit
    return best


def deduplicate_visits(visits: list[BrowserVisit], max_visits_per_domain: int = 5) -> DedupResult:
    """Collapse near-duplicates, then cap visits per domain.

    Args:
        visits: Visits to deduplicate.
        max_visits_per_domain: Most recent unique pages kept per domain.

    Returns:
        DedupResult with visits sorted most recent first and the number of
        visits removed.
    """
    groups: dict[str, list[BrowserVisit]] = {}
    for visit in visits:
        groups.setdefault(canonical_key(visit.url), []).append(visit)

    collapsed = 0
    unique: list[BrowserVisit] = []
    for group in groups.values():
        unique.append(_pick_best(group))
        collapsed += len(group) - 1

    by_domain: dict[str, list[BrowserVisit]] = {}
    for visit in unique:
        domain = extract_hostname(visit.url) or visit.url
        by_domain.setdefault(domain, []).append(visit)

    capped: list[BrowserVisit] = []
    for domain_visits in by_domain.values():
        domain_visits.sort(key=_time_key, reverse=True)
        kept = domain_visits[:max_visits_per_domain]
        collapsed += len(domain_visits) - len(kept)
        capped.extend(kept)

    capped.sort(key=_time_key, reverse=True)
    return DedupResult(visits=capped, collapsed_count=collapsed)
