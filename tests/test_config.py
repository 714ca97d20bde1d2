"""Tests for configuration loading, validation, and the cached singleton."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from dailydigest.config import (
    AIProvider,
    ClassificationConfig,
    ConfigFileError,
    DigestConfig,
    HistoryConfig,
    LoggingConfig,
    PrivacyConfig,
    SensitivityConfig,
    get_config,
    load_config,
    reset_config,
    save_config,
    split_list,
)
from dailydigest.core.models import FilterAction, SensitivityCategory


@pytest.fixture
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run with no config file in the working directory or home."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("dailydigest.config.DEFAULT_CONFIG_DIR", tmp_path / "home")
    return tmp_path


def _write_yaml(path: Path, data: object) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


# =============================================================================
# Section Models
# =============================================================================


class TestSections:
    """Tests for the section models and their validators."""

    def test_defaults(self) -> None:
        config = DigestConfig()
        assert config.sanitize.enabled is True
        assert config.sensitivity.enabled is False
        assert config.classification.is_configured is False
        assert config.patterns.min_cluster_size == 3
        assert config.privacy.provider is AIProvider.NONE
        assert config.privacy.token_budget == 3000
        assert config.logging.level == "WARNING"

    @pytest.mark.parametrize(
        "value,expected",
        [
            (" Foo.com, ,bar.org/Path ", ["foo.com", "bar.org/path"]),
            (None, []),
            (["A", " b "], ["a", "b"]),
            ([SensitivityCategory.HEALTH], ["health"]),
            (5, ["5"]),
        ],
    )
    def test_split_list(self, value: object, expected: list[str]) -> None:
        assert split_list(value) == expected

    def test_provider_is_local(self) -> None:
        assert AIProvider.LOCAL.is_local
        assert not AIProvider.NONE.is_local
        assert PrivacyConfig(provider=" Local ").provider is AIProvider.LOCAL

    def test_sensitivity_parsing(self) -> None:
        config = SensitivityConfig(
            enabled=True,
            categories="Job_Search, health, job_search",
            custom_domains="www.Example.com, reddit.com/r/personalfinance",
            action=" REDACT ",
        )
        assert config.categories == [SensitivityCategory.JOB_SEARCH, SensitivityCategory.HEALTH]
        assert config.custom_domains == ["example.com", "reddit.com/r/personalfinance"]
        assert config.action is FilterAction.REDACT
        assert config.is_active

    def test_classification_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ClassificationConfig(batch_size=65)
        assert ClassificationConfig(enabled=True, endpoint=" ").is_configured is False

    def test_tier_override_not_rejected(self) -> None:
        assert PrivacyConfig(tier_override=9).tier_override == 9

    def test_history_path_expanded(self) -> None:
        assert HistoryConfig(path="~/digest/history.json").path == Path.home() / "digest" / "history.json"

    def test_log_level_uppercased(self) -> None:
        assert LoggingConfig(level=" debug ").level == "DEBUG"


# =============================================================================
# Loading
# =============================================================================


class TestLoadConfig:
    """Tests for load_config and save_config."""

    def test_no_file_uses_defaults(self, isolated_cwd: Path) -> None:
        assert load_config() == DigestConfig()

    def test_yaml_values(self, isolated_cwd: Path) -> None:
        path = _write_yaml(
            isolated_cwd / "custom.yaml",
            {
                "sensitivity": {"enabled": True, "categories": ["job_search", "finance"]},
                "privacy": {"provider": "anthropic", "model": "claude-sonnet-4", "enable_compression": True},
                "patterns": {"min_cluster_size": 2},
            },
        )

        config = load_config(path)

        assert config.sensitivity.categories == [SensitivityCategory.JOB_SEARCH, SensitivityCategory.FINANCE]
        assert config.privacy.provider is AIProvider.ANTHROPIC
        assert config.privacy.enable_compression is True
        assert config.patterns.min_cluster_size == 2
        assert config.patterns.track_recurrence is True

    def test_working_directory_file_found(self, isolated_cwd: Path) -> None:
        _write_yaml(isolated_cwd / "dailydigest.yaml", {"privacy": {"provider": "local"}})
        assert load_config().privacy.provider is AIProvider.LOCAL

    def test_environment_overrides_file(self, isolated_cwd: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write_yaml(
            isolated_cwd / "custom.yaml",
            {"privacy": {"provider": "anthropic", "model": "claude-sonnet-4"}},
        )
        monkeypatch.setenv("DAILYDIGEST_PRIVACY__PROVIDER", "local")
        monkeypatch.setenv("DAILYDIGEST_SENSITIVITY__ENABLED", "true")
        monkeypatch.setenv("DAILYDIGEST_SENSITIVITY__CATEGORIES", '["health"]')
        monkeypatch.setenv("DAILYDIGEST_DEBUG", "true")

        config = load_config(path)

        assert config.privacy.provider is AIProvider.LOCAL
        assert config.privacy.model == "claude-sonnet-4"
        assert config.sensitivity.categories == [SensitivityCategory.HEALTH]
        assert config.debug is True

    @pytest.mark.parametrize(
        "content,message",
        [
            ("privacy: [unclosed", "Failed to parse config file"),
            ("- just\n- a list\n", "unexpected format"),
            ("patterns:\n  min_cluster_size: 0\n", "Error parsing config values"),
        ],
    )
    def test_malformed_file_falls_back(
        self, isolated_cwd: Path, caplog: pytest.LogCaptureFixture, content: str, message: str
    ) -> None:
        path = isolated_cwd / "broken.yaml"
        path.write_text(content, encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="dailydigest.config"):
            config = load_config(path)

        assert config == DigestConfig()
        assert message in caplog.text

    def test_empty_file(self, isolated_cwd: Path) -> None:
        path = isolated_cwd / "empty.yaml"
        path.write_text("   \n", encoding="utf-8")
        assert load_config(path) == DigestConfig()

    def test_save_then_load(self, isolated_cwd: Path) -> None:
        original = DigestConfig(
            privacy=PrivacyConfig(provider=AIProvider.OPENAI, model="gpt-4o", tier_override=3),
            sensitivity=SensitivityConfig(enabled=True, categories=["dating"], custom_domains="example-bank.com"),
            history=HistoryConfig(path=isolated_cwd / "history.json"),
        )
        path = isolated_cwd / "nested" / "config.yaml"

        save_config(original, path)
        loaded = load_config(path)

        assert path.exists()
        assert loaded.model_dump() == original.model_dump()

    def test_save_failure(self, isolated_cwd: Path) -> None:
        blocker = isolated_cwd / "blocker"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(ConfigFileError):
            save_config(DigestConfig(), blocker / "config.yaml")


class TestGetConfig:
    """Tests for the cached singleton."""

    def test_cached_until_reset(self, isolated_cwd: Path) -> None:
        first = get_config()
        assert get_config() is first

        _write_yaml(isolated_cwd / "dailydigest.yaml", {"privacy": {"provider": "local"}})
        assert get_config().privacy.provider is AIProvider.NONE

        reset_config()
        assert get_config().privacy.provider is AIProvider.LOCAL
