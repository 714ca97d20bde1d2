"""Central Pytest Fixtures for the daily digest core.

Provides a realistic day of activity, configuration objects, and an
in-memory topic history so tests stay off the filesystem and network.

Fixtures included:
- Activity: sample_visits, sample_searches, sample_sessions, sample_commits, sample_bundle
- Config: digest_config, classification_config, pattern_config
- History: memory_history_repo
- Mocks: mock_model_client
"""

import logging
import os
from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from dailydigest.ai.client import ModelResponse
from dailydigest.analysis.history import InMemoryTopicHistoryRepository
from dailydigest.config import (
    ClassificationConfig,
    DigestConfig,
    HistoryConfig,
    PatternConfig,
    reset_config,
)
from dailydigest.core.models import (
    ActivityBundle,
    BrowserVisit,
    ClaudeSession,
    GitCommit,
    SearchQuery,
)

DIGEST_DAY = date(2026, 10, 16)


def at(hour: int, minute: int = 0) -> datetime:
    """Naive local datetime on the digest day."""
    return datetime(2026, 10, 16, hour, minute)


# =============================================================================
# Activity Fixtures
# =============================================================================


@pytest.fixture
def digest_day() -> date:
    return DIGEST_DAY


@pytest.fixture
def sample_visits() -> list[BrowserVisit]:
    return [
        BrowserVisit(
            url="https://github.com/acme/api/pull/42",
            title="Fix OAuth token refresh · Pull Request #42 · acme/api",
            time=at(9, 5),
        ),
        BrowserVisit(
            url="https://stackoverflow.com/questions/7311/refresh-jwt-token-fastapi",
            title="How to refresh JWT token in FastAPI - Stack Overflow",
            time=at(9, 12),
        ),
        BrowserVisit(
            url="https://fastapi.tiangolo.com/tutorial/security/oauth2-jwt/",
            title="OAuth2 with Password, Bearer with JWT tokens - FastAPI",
            time=at(9, 20),
        ),
        BrowserVisit(
            url="https://www.linkedin.com/jobs/view/123",
            title="Senior Backend Engineer | Jobs",
            time=at(10, 30),
        ),
        BrowserVisit(
            url="https://www.nytimes.com/2026/10/16/world/summit-talks.html",
            title="Leaders Meet for Summit Talks",
            time=at(12, 10),
        ),
    ]


@pytest.fixture
def sample_searches() -> list[SearchQuery]:
    return [
        SearchQuery(query="fastapi oauth refresh token", time=at(9, 10), engine="google.com"),
        SearchQuery(query="react vs vue", time=at(9, 40), engine="google.com"),
    ]


@pytest.fixture
def sample_sessions() -> list[ClaudeSession]:
    return [
        ClaudeSession(
            prompt="Why does the OAuth callback fail with a 401 error after token refresh?",
            time=at(9, 30),
            project="api",
        ),
        ClaudeSession(
            prompt="Write pytest tests for the refresh token rotation",
            time=at(10, 5),
            project="api",
        ),
    ]


@pytest.fixture
def sample_commits() -> list[GitCommit]:
    return [
        GitCommit(
            hash="a1b2c3d",
            message="Fix token refresh race in auth middleware",
            time=at(9, 50),
            repo="api",
            files_changed=3,
            insertions=42,
            deletions=7,
        ),
        GitCommit(
            hash="d4e5f6a",
            message="Add tests for refresh flow",
            time=at(10, 20),
            repo="api",
            files_changed=1,
            insertions=80,
            deletions=0,
        ),
    ]


@pytest.fixture
def sample_bundle(sample_visits, sample_searches, sample_sessions, sample_commits) -> ActivityBundle:
    """One realistic morning of activity across all four sources."""
    return ActivityBundle(
        visits=sample_visits,
        searches=sample_searches,
        sessions=sample_sessions,
        commits=sample_commits,
    )


@pytest.fixture
def raw_texts(sample_bundle) -> list[str]:
    """Every raw free-text field in the sample bundle."""
    return (
        [v.title for v in sample_bundle.visits]
        + [s.query for s in sample_bundle.searches]
        + [s.prompt for s in sample_bundle.sessions]
        + [c.message for c in sample_bundle.commits]
    )


# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    """Keep DAILYDIGEST_* variables from the environment out of tests."""
    for key in list(os.environ):
        if key.upper().startswith("DAILYDIGEST_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo setup_logging() so caplog sees package records."""
    yield
    package_logger = logging.getLogger("dailydigest")
    for handler in list(package_logger.handlers):
        handler.close()
    package_logger.handlers = []
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def digest_config(tmp_path: Path) -> DigestConfig:
    """Default config with history under tmp_path."""
    return DigestConfig(history=HistoryConfig(path=tmp_path / "topic-history.json"))


@pytest.fixture
def classification_config() -> ClassificationConfig:
    return ClassificationConfig(
        enabled=True,
        endpoint="http://localhost:11434",
        model="qwen2.5:7b",
        batch_size=4,
        timeout_seconds=5,
        max_retries=0,
    )


@pytest.fixture
def pattern_config() -> PatternConfig:
    return PatternConfig(cooccurrence_window=30, min_cluster_size=2, track_recurrence=True)


# =============================================================================
# History & Mocks
# =============================================================================


@pytest.fixture
def memory_history_repo() -> InMemoryTopicHistoryRepository:
    return InMemoryTopicHistoryRepository()


@pytest.fixture
def mock_model_client() -> MagicMock:
    """Model client whose complete() returns an empty JSON array."""
    client = MagicMock()
    client.complete.return_value = ModelResponse(text="[]", model="qwen2.5:7b")
    return client
