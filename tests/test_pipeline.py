"""End-to-end tests for the digest pipeline."""

from __future__ import annotations

import json
import re
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from dailydigest.ai.client import ModelResponse
from dailydigest.ai.prompts import PromptCapability, PromptName
from dailydigest.analysis.history import InMemoryTopicHistoryRepository, TopicHistory
from dailydigest.config import (
    AIProvider,
    ClassificationConfig,
    DigestConfig,
    HistoryConfig,
    PatternConfig,
    PrivacyConfig,
    SanitizeConfig,
    SensitivityConfig,
)
from dailydigest.core.models import ActivityBundle
from dailydigest.pipeline import DigestPipeline, DigestResult, run_digest
from dailydigest.privacy.tiers import DataLayer, PrivacyTier

DAY = date(2026, 10, 16)


def _config(tmp_path: Path, **sections) -> DigestConfig:
    return DigestConfig(history=HistoryConfig(path=tmp_path / "topic-history.json"), **sections)


@pytest.fixture
def pipeline(digest_config: DigestConfig, memory_history_repo: InMemoryTopicHistoryRepository) -> DigestPipeline:
    return DigestPipeline(digest_config, history_repo=memory_history_repo)


# =============================================================================
# Tier Selection
# =============================================================================


class TestDigestPipeline:
    """Tests for DigestPipeline.run."""

    def test_default_is_deidentified(
        self,
        pipeline: DigestPipeline,
        sample_bundle: ActivityBundle,
        raw_texts: list[str],
    ) -> None:
        result = pipeline.run(sample_bundle, day=DAY)

        assert isinstance(result, DigestResult)
        assert result.tier is PrivacyTier.DEIDENTIFIED
        assert result.layer is DataLayer.PATTERNS
        assert result.capability is PromptCapability.BALANCED
        assert result.classification.total_processed == 11
        assert result.patterns is not None and result.patterns.total_events == 11
        assert "Date: Friday, October 16, 2026" in result.prompt.text
        assert "http" not in result.prompt.text
        for raw in raw_texts:
            assert raw not in result.prompt.text

    def test_local_provider_gets_raw_activity(self, tmp_path: Path, sample_bundle: ActivityBundle) -> None:
        config = _config(tmp_path, privacy=PrivacyConfig(provider=AIProvider.LOCAL, model="qwen2.5:14b", tier_override=4))
        result = DigestPipeline(config, history_repo=InMemoryTopicHistoryRepository()).run(sample_bundle, day=DAY)

        assert result.tier is PrivacyTier.STANDARD
        assert result.layer is DataLayer.RAW
        assert result.capability is PromptCapability.BALANCED
        assert "<raw_activity>" in result.prompt.text
        assert "  - react vs vue" in result.prompt.text

    def test_patterns_disabled_falls_to_classified(self, tmp_path: Path, sample_bundle: ActivityBundle) -> None:
        repo = InMemoryTopicHistoryRepository()
        config = _config(tmp_path, patterns=PatternConfig(enabled=False))

        result = DigestPipeline(config, history_repo=repo).run(sample_bundle, day=DAY)

        assert result.patterns is None
        assert result.tier is PrivacyTier.CLASSIFIED
        assert result.prompt.template is PromptName.CLASSIFIED
        assert result.history_saved is False
        assert repo.save_count == 0

    def test_compression_with_override(self, tmp_path: Path, sample_bundle: ActivityBundle) -> None:
        privacy = PrivacyConfig(
            provider=AIProvider.ANTHROPIC,
            model="claude-sonnet-4",
            tier_override=2,
            enable_compression=True,
        )
        stages: list[str] = []

        result = DigestPipeline(_config(tmp_path, privacy=privacy), history_repo=InMemoryTopicHistoryRepository()).run(
            sample_bundle, day=DAY, progress=stages.append
        )

        assert result.tier is PrivacyTier.COMPRESSED
        assert result.prompt.template is PromptName.COMPRESSED
        assert result.capability is PromptCapability.HIGH
        assert "compress" in stages
        assert "Total events collected: 11" in result.prompt.text

    def test_retrieved_blocks_need_retrieval_enabled(self, tmp_path: Path, sample_bundle: ActivityBundle) -> None:
        blocks = ["Debugged the OAuth refresh flow"]
        enabled = _config(tmp_path, privacy=PrivacyConfig(provider="openai", tier_override=2, enable_retrieval=True))
        disabled = _config(tmp_path, privacy=PrivacyConfig(provider="openai", tier_override=2))

        with_retrieval = DigestPipeline(enabled, history_repo=InMemoryTopicHistoryRepository()).run(
            sample_bundle, day=DAY, retrieved=blocks
        )
        without = DigestPipeline(disabled, history_repo=InMemoryTopicHistoryRepository()).run(
            sample_bundle, day=DAY, retrieved=blocks
        )

        assert with_retrieval.prompt.template is PromptName.RAG
        assert "Debugged the OAuth refresh flow" in with_retrieval.prompt.text
        assert without.prompt.template is PromptName.CLASSIFIED
        assert "Debugged the OAuth refresh flow" not in without.prompt.text

    def test_empty_bundle(self, pipeline: DigestPipeline, memory_history_repo) -> None:
        result = pipeline.run(ActivityBundle(), day=DAY)

        assert result.layer is None
        assert result.prompt.template is PromptName.EMPTY
        assert "No activity was available" in result.prompt.text
        assert result.history_saved is False
        assert memory_history_repo.save_count == 0


# =============================================================================
# Filtering
# =============================================================================


class TestPipelineFiltering:
    """Tests for the filter counts reported by a run."""

    def test_sensitive_visits_excluded(self, tmp_path: Path, sample_bundle: ActivityBundle) -> None:
        config = _config(
            tmp_path,
            sensitivity=SensitivityConfig(enabled=True, categories=["job_search"]),
            privacy=PrivacyConfig(provider=AIProvider.LOCAL),
        )

        result = DigestPipeline(config, history_repo=InMemoryTopicHistoryRepository()).run(sample_bundle, day=DAY)

        assert result.filter_summary.sensitive_filtered == 1
        assert result.filter_summary.by_category == {"job_search": 1}
        assert result.filter_summary.total == 1
        assert result.classification.total_processed == 10
        assert "linkedin.com" not in result.prompt.text
        assert "Senior Backend Engineer" not in result.prompt.text

    def test_excluded_domains_counted(self, tmp_path: Path, sample_bundle: ActivityBundle) -> None:
        config = _config(tmp_path, sanitize=SanitizeConfig(excluded_domains=["nytimes.com"]))

        result = DigestPipeline(config, history_repo=InMemoryTopicHistoryRepository()).run(sample_bundle, day=DAY)

        assert result.filter_summary.excluded_domains == 1
        assert result.classification.total_processed == 10

    def test_to_summary(self, pipeline: DigestPipeline, sample_bundle: ActivityBundle) -> None:
        summary = pipeline.run(sample_bundle, day=DAY).to_summary()

        assert summary.startswith("Digest Results:")
        assert "Privacy tier: 4 (deidentified)" in summary
        assert "Events: 11 (0 model, 11 rules)" in summary
        assert "Filtered: 0" in summary


# =============================================================================
# Stages, Classification & History
# =============================================================================


class TestPipelineStages:
    """Tests for progress reporting, classifier wiring and history writes."""

    def test_progress_stages(self, pipeline: DigestPipeline, sample_bundle: ActivityBundle) -> None:
        stages: list[str] = []
        pipeline.run(sample_bundle, day=DAY, progress=stages.append)
        assert stages == [
            "sanitize",
            "dedup",
            "sensitivity",
            "categorize",
            "classify",
            "cluster",
            "patterns",
            "assemble",
            "history",
        ]

    def test_injected_classifier_client(
        self,
        tmp_path: Path,
        sample_bundle: ActivityBundle,
        classification_config: ClassificationConfig,
        mock_model_client: MagicMock,
    ) -> None:
        config = _config(tmp_path, classification=classification_config)

        result = DigestPipeline(
            config, history_repo=InMemoryTopicHistoryRepository(), classifier_client=mock_model_client
        ).run(sample_bundle, day=DAY)

        assert mock_model_client.complete.called
        assert result.classification.total_processed == 11
        assert result.classification.llm_classified == 0

    @pytest.mark.parametrize(
        "patterns_enabled,tier", [(True, PrivacyTier.DEIDENTIFIED), (False, PrivacyTier.CLASSIFIED)]
    )
    def test_model_terms_never_leak(
        self,
        tmp_path: Path,
        sample_bundle: ActivityBundle,
        classification_config: ClassificationConfig,
        patterns_enabled: bool,
        tier: PrivacyTier,
    ) -> None:
        item = {
            "activityType": "research",
            "topics": ["https://secret.example.com/private?id=1", "2026-10-16T09:15:00", "token refresh"],
            "entities": ["https://secret.example.com/x", "Acme"],
            "intent": "learn",
            "confidence": 0.9,
            "summary": "Read about token refresh",
        }
        client = MagicMock()
        client.complete.return_value = ModelResponse(text=json.dumps([item] * classification_config.batch_size))
        config = _config(
            tmp_path, classification=classification_config, patterns=PatternConfig(enabled=patterns_enabled)
        )

        result = DigestPipeline(config, history_repo=InMemoryTopicHistoryRepository(), classifier_client=client).run(
            sample_bundle, day=DAY
        )

        assert result.tier is tier
        assert result.classification.llm_classified == 11
        text = result.prompt.text
        assert "Acme" in text
        assert "secret.example.com" not in text
        assert not re.search(r"https?://", text)
        assert not re.search(r"\d{4}-\d{2}-\d{2}T", text)

    def test_history_saved_once_per_day(
        self,
        pipeline: DigestPipeline,
        memory_history_repo: InMemoryTopicHistoryRepository,
        sample_bundle: ActivityBundle,
    ) -> None:
        first = pipeline.run(sample_bundle, day=DAY)
        second = pipeline.run(sample_bundle, day=DAY)

        assert first.history_saved is True
        assert second.history_saved is False
        assert memory_history_repo.save_count == 1
        assert memory_history_repo.history.dates_for("authentication") == ["2026-10-16"]

    def test_history_untouched_without_tracking(self, tmp_path: Path, sample_bundle: ActivityBundle) -> None:
        repo = InMemoryTopicHistoryRepository(TopicHistory(topics={"authentication": ["2026-10-01"]}))
        config = _config(tmp_path, patterns=PatternConfig(track_recurrence=False))

        result = DigestPipeline(config, history_repo=repo).run(sample_bundle, day=DAY)

        assert result.history_saved is False
        assert repo.save_count == 0
        assert repo.history.dates_for("authentication") == ["2026-10-01"]

    def test_default_repository_writes_json(self, digest_config: DigestConfig, sample_bundle: ActivityBundle) -> None:
        result = DigestPipeline(digest_config).run(sample_bundle, day=DAY)

        assert result.history_saved is True
        assert digest_config.history.path.exists()

    def test_run_digest(self, digest_config: DigestConfig, sample_bundle: ActivityBundle) -> None:
        result = run_digest(sample_bundle, digest_config, day=DAY, history_repo=InMemoryTopicHistoryRepository())
        assert result.tier is PrivacyTier.DEIDENTIFIED
        assert result.elapsed_seconds >= 0
