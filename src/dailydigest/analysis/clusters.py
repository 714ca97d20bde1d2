"""Semantic clustering of browser visits by title similarity.

Visits are walked in time order and greedily assigned to an open cluster
when they are close in time to its last visit and their TF-IDF title vector
is similar enough to the cluster centroid. Each surviving cluster is
described only in aggregate: a label built from frequent title words, an
article count, an intent signal and the domains involved.

No model calls and no network access.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from dailydigest.ai.classifier import ENTITY_STOPWORDS
from dailydigest.core.models import BrowserVisit, SearchQuery, SemanticCluster
from dailydigest.core.scrubber import extract_hostname

STOPWORDS_LOWER = frozenset(w.lower() for w in ENTITY_STOPWORDS)

BRAND_SUFFIXES = (
    " | GitHub", " · GitHub", " - GitHub",
    " - Stack Overflow", " — Stack Overflow",
    " | MDN Web Docs", " | TypeScript",
    " | Google", " - Google Search",
    " | YouTube", " - YouTube",
    " | Reddit",
    " | Wikipedia", " - Wikipedia",
)

TITLE_SEPARATORS = re.compile(r"\s+[|—–·»]\s+|\s+-\s+")

NAV_NOISE_TITLES = frozenset(
    {
        "Home", "Login", "Sign In", "Dashboard", "Settings", "Profile",
        "New Tab", "Untitled", "Loading...", "404", "Error", "Page Not Found",
        "Search Results", "Google", "Bing", "DuckDuckGo",
    }
)

# Version numbers, *Error/*Exception names, call syntax, CSS selectors.
TECHNICAL_TERMS = re.compile(r"\b\d+\.\d+\b|\b\w+Error\b|\b\w+Exception\b|\b\w+\(\)|\B#\w+|\B\.\w+\(")

ENGAGEMENT_THRESHOLD = 0.5
SEARCH_LINK_WINDOW = timedelta(minutes=5)


def clean_title(raw_title: str) -> str:
    """Extract the article part of a page title; empty when it is navigation noise.

    Example:
        >>> clean_title("How to deep copy array — Stack Overflow")
        'How to deep copy array'
    """
    if not raw_title:
        return ""
    title = raw_title
    for suffix in BRAND_SUFFIXES:
        if title.endswith(suffix):
            title = title[: -len(suffix)].strip()
            break
    article = max((p.strip() for p in TITLE_SEPARATORS.split(title)), key=len, default="")
    if article in NAV_NOISE_TITLES or len(article) < 5:
        return ""
    return article


def tokenize(text: str) -> list[str]:
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    return [w for w in words if len(w) > 2 and w not in STOPWORDS_LOWER]


def build_tfidf(titles: list[str]) -> list[dict[str, float]]:
    """TF-IDF vectors with smoothed IDF ``1 + ln(N / df)``."""
    term_freqs = [Counter(tokenize(t)) for t in titles]
    doc_freq: Counter[str] = Counter()
    for tf in term_freqs:
        doc_freq.update(tf.keys())

    n = len(titles)
    vectors = []
    for tf in term_freqs:
        size = len(tf) or 1
        vectors.append({term: (count / size) * (1 + math.log(n / doc_freq[term])) for term, count in tf.items()})
    return vectors


def cosine_similarity(a: dict[str, float], b: dict[str, float]) -> float:
    dot = sum(value * b.get(term, 0.0) for term, value in a.items())
    norm = math.sqrt(sum(v * v for v in a.values())) * math.sqrt(sum(v * v for v in b.values()))
    return dot / norm if norm > 0 else 0.0


def centroid(vectors: list[dict[str, float]]) -> dict[str, float]:
    result: dict[str, float] = {}
    if not vectors:
        return result
    for vector in vectors:
        for term, value in vector.items():
            result[term] = result.get(term, 0.0) + value / len(vectors)
    return result


def label_cluster(articles: list[str]) -> str:
    """Top three frequent meaningful words across the cluster's titles."""
    freq: Counter[str] = Counter()
    for article in articles:
        freq.update(w for w in tokenize(article) if len(w) > 3)
    return " ".join(word for word, _ in freq.most_common(3))


def engagement_score(
    visit: BrowserVisit,
    cleaned_title: str,
    day_visits: list[BrowserVisit],
    searches: list[SearchQuery] | None = None,
) -> float:
    """Likelihood in [0, 1] that a visit was substantive rather than navigation."""
    score = 0.0
    if len(cleaned_title.split()) >= 5:
        score += 0.25
    if sum(1 for v in day_visits if v.url == visit.url) > 1:
        score += 0.20
    if visit.time is not None and searches:
        for search in searches:
            if search.time is None:
                continue
            gap = _naive(visit.time) - _naive(search.time)
            if timedelta(0) <= gap <= SEARCH_LINK_WINDOW:
                score += 0.25
                break
    if TECHNICAL_TERMS.search(cleaned_title):
        score += 0.15
    return min(score, 1.0)


def _naive(value: datetime) -> datetime:
    return value.astimezone().replace(tzinfo=None) if value.tzinfo else value


def infer_intent(visits: list[BrowserVisit]) -> str:
    domains = {extract_hostname(v.url) or "" for v in visits}
    if len(domains) >= 3:
        return "research"
    if any(count > 1 for count in Counter(v.url for v in visits).values()):
        return "reference"
    return "browsing"


@dataclass
class _OpenCluster:
    members: list[int] = field(default_factory=list)
    visits: list[BrowserVisit] = field(default_factory=list)
    articles: list[str] = field(default_factory=list)
    engaged: int = 0


def cluster_visits(
    visits: list[BrowserVisit],
    max_gap_minutes: int = 45,
    threshold: float = 0.3,
    searches: list[SearchQuery] | None = None,
) -> list[SemanticCluster]:
    """Group related visits into semantic clusters.

    Visits without a usable title or timestamp are skipped. Clusters with
    fewer than two articles are dropped.

    Args:
        visits: The day's (deduplicated) browser visits.
        max_gap_minutes: Largest gap from a cluster's last visit that still joins it.
        threshold: Minimum cosine similarity to the cluster centroid.
        searches: Optional searches used for the engagement signal.

    Returns:
        Clusters ordered by first visit time.
    """
    candidates = [(v, clean_title(v.title)) for v in visits if v.time is not None]
    candidates = [(v, t) for v, t in candidates if t]
    if not candidates:
        return []
    candidates.sort(key=lambda pair: _naive(pair[0].time))

    vectors = build_tfidf([t for _, t in candidates])
    gap_limit = timedelta(minutes=max_gap_minutes)
    clusters: list[_OpenCluster] = []

    for index, (visit, title) in enumerate(candidates):
        engaged = engagement_score(visit, title, visits, searches) >= ENGAGEMENT_THRESHOLD
        placed = False
        for cluster in clusters:
            if _naive(visit.time) - _naive(cluster.visits[-1].time) > gap_limit:
                continue
            if cosine_similarity(vectors[index], centroid([vectors[i] for i in cluster.members])) >= threshold:
                cluster.members.append(index)
                cluster.visits.append(visit)
                cluster.articles.append(title)
                cluster.engaged += int(engaged)
                placed = True
                break
        if not placed:
            clusters.append(_OpenCluster(members=[index], visits=[visit], articles=[title], engaged=int(engaged)))

    return [
        SemanticCluster(
            label=label_cluster(c.articles) or "general reading",
            article_count=len(c.articles),
            intent=infer_intent(c.visits),
            domains=list(dict.fromkeys(extract_hostname(v.url) or "" for v in c.visits if extract_hostname(v.url))),
            engaged_count=c.engaged,
        )
        for c in clusters
        if len(c.articles) >= 2
    ]
