"""Tests for pattern extraction and the persisted topic history."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from dailydigest.ai.classifier import classify_rule_only
from dailydigest.analysis.history import (
    InMemoryTopicHistoryRepository,
    JsonTopicHistoryRepository,
    TopicHistory,
    TopicHistoryRepository,
    parse_history,
)
from dailydigest.analysis.patterns import (
    compress_score,
    compute_recurrence_signals,
    extract_entity_relations,
    extract_patterns,
    extract_temporal_clusters,
    extract_topic_cooccurrences,
    filter_cluster_topics,
    focus_label,
    format_hour,
)
from dailydigest.config import PatternConfig
from dailydigest.core.models import (
    ActivityBundle,
    ActivitySource,
    ActivityType,
    ClassificationResult,
    RecurrenceTrend,
    StructuredEvent,
)

TODAY = date(2026, 10, 16)


def _event(
    hour: int,
    minute: int = 0,
    activity: ActivityType = ActivityType.IMPLEMENTATION,
    topics: list[str] | None = None,
    entities: list[str] | None = None,
) -> StructuredEvent:
    return StructuredEvent(
        timestamp=datetime(2026, 10, 16, hour, minute),
        source=ActivitySource.GIT,
        activity_type=activity,
        topics=topics or [],
        entities=entities or [],
    )


def _days_ago(*offsets: int) -> list[str]:
    return [(TODAY - timedelta(days=n)).isoformat() for n in offsets]


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    """Tests for formatting and scoring helpers."""

    @pytest.mark.parametrize("hour,label", [(0, "12am"), (9, "9am"), (12, "12pm"), (14, "2pm"), (23, "11pm")])
    def test_format_hour(self, hour: int, label: str) -> None:
        assert format_hour(hour) == label

    @pytest.mark.parametrize(
        "score,label",
        [
            (0.0, ""),
            (0.9, "Highly focused"),
            (0.75, "Highly focused"),
            (0.6, "Moderately focused"),
            (0.5, "Varied"),
            (0.3, "Widely scattered"),
        ],
    )
    def test_focus_label(self, score: float, label: str) -> None:
        assert focus_label(score) == label

    def test_compress_score_range(self) -> None:
        assert compress_score(0.0) == pytest.approx(0.30)
        assert compress_score(1.0) == pytest.approx(0.98)
        assert compress_score(0.25) < compress_score(0.5) < compress_score(0.75)

    def test_filter_cluster_topics(self) -> None:
        topics = ["github.com", "the testing", "New York City", "api/v2", "x", "of the", "testing", "caching"]
        assert filter_cluster_topics(topics) == ["testing", "caching"]

    def test_filter_cluster_topics_drops_timestamps(self) -> None:
        topics = ["2026-10-16T09:15:00", "standup 10:30", "release 2026-10", "user@host", "deploys"]
        assert filter_cluster_topics(topics) == ["deploys"]


# =============================================================================
# Clusters & Co-occurrence
# =============================================================================


class TestTemporalClusters:
    """Tests for extract_temporal_clusters."""

    def test_adjacent_hours_merge(self) -> None:
        events = [
            _event(9, 5, topics=["authentication"]),
            _event(9, 30, topics=["authentication"]),
            _event(10, 10, topics=["testing"]),
            _event(14, 0, ActivityType.RESEARCH, topics=["databases"]),
        ]
        clusters = extract_temporal_clusters(events, min_cluster_size=2)

        assert len(clusters) == 1
        cluster = clusters[0]
        assert (cluster.hour_start, cluster.hour_end) == (9, 10)
        assert cluster.event_count == 3
        assert cluster.intensity == pytest.approx(1.5)
        assert cluster.label == "implementation 9am-11am: authentication, testing"

    def test_gap_splits_runs(self) -> None:
        events = [_event(9), _event(9, 30), _event(13), _event(13, 20)]
        clusters = extract_temporal_clusters(events, min_cluster_size=2)
        assert sorted((c.hour_start, c.hour_end) for c in clusters) == [(9, 9), (13, 13)]

    def test_untimed_events_ignored(self) -> None:
        event = StructuredEvent(source=ActivitySource.GIT)
        assert extract_temporal_clusters([event], 1) == []


class TestCooccurrence:
    """Tests for topic and entity co-occurrence."""

    def test_topic_pairs_per_window(self) -> None:
        events = [
            _event(9, 0, topics=["authentication"]),
            _event(9, 10, topics=["testing"]),
            _event(11, 0, topics=["caching"]),
            _event(11, 5, topics=["databases"]),
        ]
        pairs = extract_topic_cooccurrences(events, window_minutes=30)

        assert {(p.topic_a, p.topic_b) for p in pairs} == {("authentication", "testing"), ("caching", "databases")}
        assert all(p.strength == 1.0 for p in pairs)
        assert {p.window for p in pairs} == {"9am", "11am"}

    def test_single_event_windows_ignored(self) -> None:
        events = [_event(9, topics=["a", "b"]), _event(12, topics=["c"])]
        assert extract_topic_cooccurrences(events, 30) == []

    def test_entity_relation_needs_three_events(self) -> None:
        events = [_event(9, i, entities=["React", "Vite"]) for i in range(3)]
        events.append(_event(10, entities=["React", "Jest"]))

        relations = extract_entity_relations(events)

        assert len(relations) == 1
        assert (relations[0].entity_a, relations[0].entity_b) == ("React", "Vite")
        assert relations[0].cooccurrences == 3
        assert relations[0].contexts == [ActivityType.IMPLEMENTATION]

    def test_unknown_only_contexts_dropped(self) -> None:
        events = [_event(9, i, ActivityType.UNKNOWN, entities=["A1", "B1"]) for i in range(4)]
        assert extract_entity_relations(events) == []


# =============================================================================
# Recurrence
# =============================================================================


class TestRecurrence:
    """Tests for compute_recurrence_signals."""

    def _signal(self, dates: list[str]):
        history = TopicHistory(topics={"caching": dates})
        return compute_recurrence_signals({"caching": 2}, TODAY, history)[0]

    def test_new(self) -> None:
        signal = self._signal([])
        assert signal.trend is RecurrenceTrend.NEW
        assert signal.day_count == 1

    def test_today_only_is_still_new(self) -> None:
        assert self._signal([TODAY.isoformat()]).trend is RecurrenceTrend.NEW

    def test_returning_after_gap(self) -> None:
        signal = self._signal(_days_ago(15))
        assert signal.trend is RecurrenceTrend.RETURNING
        assert signal.day_count == 2

    def test_stable_when_frequent(self) -> None:
        signal = self._signal(_days_ago(1, 2, 3, 4, 5, 6))
        assert signal.trend is RecurrenceTrend.STABLE
        assert signal.day_count == 7

    def test_rising(self) -> None:
        assert self._signal(_days_ago(1, 2, 3)).trend is RecurrenceTrend.RISING

    def test_recent_but_sparse_is_stable(self) -> None:
        assert self._signal(_days_ago(2)).trend is RecurrenceTrend.STABLE

    def test_malformed_dates_skipped(self) -> None:
        assert self._signal(["not-a-date"]).trend is RecurrenceTrend.NEW

    def test_sorted_by_trend(self) -> None:
        history = TopicHistory(topics={"old": _days_ago(30), "hot": _days_ago(1, 2, 3)})
        signals = compute_recurrence_signals({"old": 1, "hot": 1, "fresh": 1}, TODAY, history)
        assert [s.trend for s in signals] == [RecurrenceTrend.NEW, RecurrenceTrend.RETURNING, RecurrenceTrend.RISING]


# =============================================================================
# extract_patterns
# =============================================================================


class TestExtractPatterns:
    """Tests for the extract_patterns entry point."""

    def test_empty_input(self) -> None:
        analysis, history = extract_patterns(ClassificationResult(), PatternConfig(), TopicHistory(), today=TODAY)
        assert analysis.is_empty()
        assert analysis.focus_score == 0.0
        assert len(history) == 0

    def test_sample_day(self, sample_bundle: ActivityBundle, pattern_config: PatternConfig) -> None:
        classification = classify_rule_only(sample_bundle)

        analysis, updated = extract_patterns(classification, pattern_config, TopicHistory(), today=TODAY)

        assert analysis.total_events == 11
        assert 0.30 <= analysis.focus_score <= 0.98
        assert analysis.top_activity_types[0].type is ActivityType.IMPLEMENTATION
        assert analysis.peak_hours[0].hour == 9

        assert len(analysis.temporal_clusters) == 1
        cluster = analysis.temporal_clusters[0]
        assert cluster.label.startswith("implementation 9am-11am: authentication")

        assert all(s.trend is RecurrenceTrend.NEW for s in analysis.recurrence_signals)
        assert "authentication" in analysis.knowledge_delta.new_topics
        assert updated.dates_for("authentication") == [TODAY.isoformat()]

    def test_non_entity_browsing_kept_out_of_graph(
        self, sample_bundle: ActivityBundle, pattern_config: PatternConfig
    ) -> None:
        classification = classify_rule_only(sample_bundle)
        _, updated = extract_patterns(classification, pattern_config, TopicHistory(), today=TODAY)
        assert updated.dates_for("social") == []
        assert updated.dates_for("news") == []

    def test_recurring_topics_in_delta(self, sample_bundle: ActivityBundle, pattern_config: PatternConfig) -> None:
        history = TopicHistory(topics={"authentication": _days_ago(1, 2)})
        analysis, updated = extract_patterns(classify_rule_only(sample_bundle), pattern_config, history, today=TODAY)

        assert "authentication" in analysis.knowledge_delta.recurring_topics
        assert updated.dates_for("authentication") == _days_ago(2, 1, 0)

    def test_tracking_off_leaves_history(self, sample_bundle: ActivityBundle) -> None:
        history = TopicHistory(topics={"authentication": _days_ago(3)})
        config = PatternConfig(track_recurrence=False)

        analysis, updated = extract_patterns(classify_rule_only(sample_bundle), config, history, today=TODAY)

        assert analysis.recurrence_signals == []
        assert updated is history

    def test_no_urls_or_raw_text(self, sample_bundle: ActivityBundle, raw_texts: list[str]) -> None:
        analysis, _ = extract_patterns(classify_rule_only(sample_bundle), PatternConfig(), TopicHistory(), today=TODAY)
        dumped = analysis.model_dump_json()
        assert "http" not in dumped
        for raw in raw_texts:
            assert raw not in dumped


# =============================================================================
# Topic History
# =============================================================================


class TestTopicHistory:
    """Tests for TopicHistory and parse_history."""

    def test_with_day_returns_copy(self) -> None:
        history = TopicHistory(topics={"testing": ["2026-10-01"]})
        updated = history.with_day([" Testing ", "caching", "testing", ""], TODAY)

        assert history.dates_for("testing") == ["2026-10-01"]
        assert updated.dates_for("testing") == ["2026-10-01", "2026-10-16"]
        assert updated.dates_for("caching") == ["2026-10-16"]
        assert len(updated) == 2

    def test_with_day_idempotent(self) -> None:
        once = TopicHistory().with_day(["testing"], TODAY)
        assert once.with_day(["testing"], TODAY) == once

    def test_parse_skips_malformed_entries(self) -> None:
        history = parse_history(
            {"version": 1, "topics": {"Testing": ["2026-10-02", "2026-10-01", 5], "bad": "x"}, "future": True}
        )
        assert history.topics == {"testing": ["2026-10-01", "2026-10-02"]}

    def test_parse_merges_case_variants(self) -> None:
        history = parse_history(
            {"topics": {"React": ["2026-10-01", "2026-10-03"], "react": ["2026-10-02"], " REACT ": ["2026-10-03"]}}
        )
        assert history.topics == {"react": ["2026-10-01", "2026-10-02", "2026-10-03"]}

    @pytest.mark.parametrize("data", [[], {"topics": []}])
    def test_parse_rejects_bad_root(self, data: object) -> None:
        with pytest.raises(ValueError):
            parse_history(data)


class TestJsonTopicHistoryRepository:
    """Tests for the JSON file repository."""

    def test_protocol(self, tmp_path: Path) -> None:
        assert isinstance(JsonTopicHistoryRepository(tmp_path / "h.json"), TopicHistoryRepository)
        assert isinstance(InMemoryTopicHistoryRepository(), TopicHistoryRepository)

    def test_missing_file_loads_empty(self, tmp_path: Path) -> None:
        assert len(JsonTopicHistoryRepository(tmp_path / "missing.json").load()) == 0

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "history.json"
        repo = JsonTopicHistoryRepository(path)
        history = TopicHistory().with_day(["testing", "caching"], TODAY)

        assert repo.save(history) is True
        assert repo.load() == history
        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert on_disk["version"] == 1
        assert list(tmp_path.glob("nested/.topic-history_*")) == []

    def test_corrupt_file_resets_with_warning(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "history.json"
        path.write_text("{not json", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="dailydigest.analysis.history"):
            history = JsonTopicHistoryRepository(path).load()

        assert len(history) == 0
        assert "unreadable" in caplog.text

    def test_failed_write_keeps_previous_file(self, tmp_path: Path) -> None:
        path = tmp_path / "history.json"
        repo = JsonTopicHistoryRepository(path)
        original = TopicHistory().with_day(["testing"], TODAY)
        repo.save(original)

        with patch("dailydigest.analysis.history.os.replace", side_effect=OSError("disk full")):
            assert repo.save(original.with_day(["caching"], TODAY)) is False

        assert repo.load() == original
        assert [p.name for p in tmp_path.iterdir()] == ["history.json"]


class TestInMemoryRepository:
    """Tests for InMemoryTopicHistoryRepository."""

    def test_load_returns_copy(self, memory_history_repo: InMemoryTopicHistoryRepository) -> None:
        loaded = memory_history_repo.load()
        loaded.topics["x"] = ["2026-10-16"]
        assert len(memory_history_repo.load()) == 0

    def test_save_counts(self, memory_history_repo: InMemoryTopicHistoryRepository) -> None:
        memory_history_repo.save(TopicHistory().with_day(["a"], TODAY))
        assert memory_history_repo.save_count == 1
        assert memory_history_repo.load().dates_for("a") == [TODAY.isoformat()]
