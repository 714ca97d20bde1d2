"""Persisted cross-day topic history.

The history maps each topic to the ISO dates it was seen on. It is the only
state that outlives a run: read at the start, rewritten at the end, and
append-only (dates are never removed).

Storage sits behind ``TopicHistoryRepository`` so pattern extraction stays
filesystem-free. ``JsonTopicHistoryRepository`` keeps a small JSON document:

    {"version": 1, "topics": {"authentication": ["2025-03-01", "2025-03-03"]}}

A missing or unreadable file loads as an empty history with a warning.
Unknown top-level fields are ignored so older builds can read newer files.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import date
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

HISTORY_VERSION = 1


class TopicHistory(BaseModel):
    """Topic to sorted list of ISO dates on which it appeared."""

    version: int = HISTORY_VERSION
    topics: dict[str, list[str]] = Field(default_factory=dict)

    def dates_for(self, topic: str) -> list[str]:
        return self.topics.get(topic.strip().lower(), [])

    def with_day(self, topics: list[str], day: date | str) -> "TopicHistory":
        """Return a copy with ``day`` appended to each topic.

        Topics are lower-cased and trimmed; a date is added at most once per
        topic. Existing dates are never removed.
        """
        iso = day if isinstance(day, str) else day.isoformat()
        updated = {topic: list(dates) for topic, dates in self.topics.items()}
        for raw in topics:
            topic = raw.strip().lower()
            if not topic:
                continue
            dates = updated.setdefault(topic, [])
            if iso not in dates:
                dates.append(iso)
                dates.sort()
        return TopicHistory(version=self.version, topics=updated)

    def __len__(self) -> int:
        return len(self.topics)


@runtime_checkable
class TopicHistoryRepository(Protocol):
    """Load/save interface for topic history storage."""

    def load(self) -> TopicHistory: ...

    def save(self, history: TopicHistory) -> bool: ...


def parse_history(data: Any) -> TopicHistory:
    """Build a history from decoded JSON, skipping malformed entries."""
    if not isinstance(data, dict):
        raise ValueError("history root is not an object")
    raw_topics = data.get("topics", {})
    if not isinstance(raw_topics, dict):
        raise ValueError("history 'topics' is not an object")

    merged: dict[str, set[str]] = {}
    for topic, dates in raw_topics.items():
        if not isinstance(topic, str) or not isinstance(dates, list):
            continue
        clean = {d for d in dates if isinstance(d, str) and d}
        if clean:
            # Keys differing only in case share one entry.
            merged.setdefault(topic.strip().lower(), set()).update(clean)
    return TopicHistory(topics={topic: sorted(dates) for topic, dates in merged.items()})


class JsonTopicHistoryRepository:
    """Topic history stored as a JSON file with atomic rewrites.

    Attributes:
        path: Location of the history file.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> TopicHistory:
        if not self.path.exists():
            logger.debug(f"No topic history at {self.path}, starting empty")
            return TopicHistory()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                history = parse_history(json.load(f))
        except (OSError, ValueError) as e:
            logger.warning(f"Topic history unreadable, resetting to empty: {type(e).__name__}: {e}")
            return TopicHistory()
        logger.debug(f"Loaded topic history with {len(history)} topics")
        return history

    def save(self, history: TopicHistory) -> bool:
        """Write the history atomically.

        Returns:
            True on success. Failures are logged and return False.
        """
        payload = {"version": HISTORY_VERSION, "topics": history.topics}
        temp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".topic-history_", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(temp_path, self.path)
            temp_path = None
        except OSError as e:
            logger.warning(f"Failed to save topic history: {type(e).__name__}: {e}")
            return False
        finally:
            if temp_path is not None:
                Path(temp_path).unlink(missing_ok=True)
        logger.debug(f"Saved topic history ({len(history)} topics) to {self.path}")
        return True


class InMemoryTopicHistoryRepository:
    """Repository that keeps history in memory. Used by tests and dry runs."""

    def __init__(self, history: TopicHistory | None = None) -> None:
        self.history = history or TopicHistory()
        self.save_count = 0

    def load(self) -> TopicHistory:
        return self.history.model_copy(deep=True)

    def save(self, history: TopicHistory) -> bool:
        self.history = history.model_copy(deep=True)
        self.save_count += 1
        return True
