"""Tests for the dailydigest command line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from dailydigest.analysis.history import JsonTopicHistoryRepository, TopicHistory
from dailydigest.cli.main import cli
from dailydigest.core.models import ActivityBundle

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Empty working directory with no home config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("dailydigest.config.DEFAULT_CONFIG_DIR", tmp_path / "home")
    return tmp_path


@pytest.fixture
def config_file(workdir: Path) -> Path:
    path = workdir / "digest.yaml"
    path.write_text(yaml.safe_dump({"history": {"path": str(workdir / "history.json")}}), encoding="utf-8")
    return path


@pytest.fixture
def activity_file(workdir: Path, sample_bundle: ActivityBundle) -> Path:
    path = workdir / "activity.json"
    path.write_text(sample_bundle.model_dump_json(), encoding="utf-8")
    return path


# =============================================================================
# Group
# =============================================================================


class TestCliGroup:
    """Tests for the top-level group."""

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "dailydigest" in result.output

    def test_help_lists_commands(self, runner: CliRunner, workdir: Path) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("digest", "scrub", "resolve-tier", "history", "config"):
            assert command in result.output


# =============================================================================
# Digest
# =============================================================================


class TestDigestCommand:
    """Tests for the digest command."""

    def test_prompt_to_stdout(self, runner: CliRunner, config_file: Path, activity_file: Path) -> None:
        result = runner.invoke(
            cli, ["-q", "--config", str(config_file), "digest", str(activity_file), "--date", "2026-10-16"]
        )

        assert result.exit_code == 0, result.output
        assert result.stdout.startswith("You are building a daily note entry")
        assert "Date: Friday, October 16, 2026" in result.stdout
        assert "<pattern_analysis>" in result.stdout
        assert "http" not in result.stdout
        assert (config_file.parent / "history.json").exists()

    def test_panel_shown_without_quiet(self, runner: CliRunner, config_file: Path, activity_file: Path) -> None:
        result = runner.invoke(cli, ["--config", str(config_file), "digest", str(activity_file), "--no-history"])

        assert result.exit_code == 0, result.output
        assert "Loaded 5 visits, 2 searches, 2 prompts, 2 commits" in result.stdout
        assert "Tier: 4 (deidentified)" in result.stdout
        assert not (config_file.parent / "history.json").exists()

    def test_local_provider_override(self, runner: CliRunner, config_file: Path, activity_file: Path) -> None:
        result = runner.invoke(
            cli,
            ["-q", "--config", str(config_file), "digest", str(activity_file), "--provider", "local", "--tier", "4"],
        )

        assert result.exit_code == 0, result.output
        assert "<raw_activity>" in result.stdout
        assert "  - react vs vue" in result.stdout

    def test_tagged_record_list(self, runner: CliRunner, config_file: Path, workdir: Path) -> None:
        records = [
            {"kind": "search", "query": "react vs vue", "time": "2026-10-16T09:40:00", "engine": "google.com"},
            {"kind": "commit", "message": "Fix token refresh race", "repo": "api", "time": "2026-10-16T09:50:00"},
        ]
        path = workdir / "records.json"
        path.write_text(json.dumps(records), encoding="utf-8")

        result = runner.invoke(cli, ["--config", str(config_file), "digest", str(path), "--no-history"])

        assert result.exit_code == 0, result.output
        assert "Loaded 0 visits, 1 searches, 0 prompts, 1 commits" in result.stdout

    def test_output_file(self, runner: CliRunner, config_file: Path, activity_file: Path, workdir: Path) -> None:
        result = runner.invoke(
            cli,
            ["--config", str(config_file), "digest", str(activity_file), "-o", "out/prompt.txt", "--no-history"],
        )

        assert result.exit_code == 0, result.output
        assert "Prompt written to" in result.stdout
        written = (workdir / "out" / "prompt.txt").read_text(encoding="utf-8")
        assert written.startswith("You are building a daily note entry")
        assert written not in result.stdout

    def test_unreadable_input(self, runner: CliRunner, workdir: Path) -> None:
        bad = workdir / "bad.json"
        bad.write_text("not json", encoding="utf-8")

        result = runner.invoke(cli, ["digest", str(bad)])

        assert result.exit_code == 1
        assert "Cannot read" in result.output

    def test_invalid_activity(self, runner: CliRunner, workdir: Path) -> None:
        bad = workdir / "bad.json"
        bad.write_text(json.dumps({"visits": [{"title": "no url"}]}), encoding="utf-8")

        result = runner.invoke(cli, ["digest", str(bad)])

        assert result.exit_code == 1
        assert "is not valid activity data" in result.output

    def test_missing_input(self, runner: CliRunner, workdir: Path) -> None:
        result = runner.invoke(cli, ["digest", "nope.json"])
        assert result.exit_code == 2


# =============================================================================
# Scrub & Resolve Tier
# =============================================================================


class TestScrubCommand:
    """Tests for the scrub command."""

    def test_argument(self, runner: CliRunner, workdir: Path) -> None:
        result = runner.invoke(cli, ["scrub", "export API_TOKEN=abc123 && run"])
        assert result.exit_code == 0
        assert "API_TOKEN=[REDACTED]" in result.stdout
        assert "abc123" not in result.stdout

    def test_stdin(self, runner: CliRunner, workdir: Path) -> None:
        result = runner.invoke(cli, ["scrub"], input="mail alice@example.com\n")
        assert result.exit_code == 0
        assert "[EMAIL]" in result.stdout

    def test_keep_emails(self, runner: CliRunner, workdir: Path) -> None:
        result = runner.invoke(cli, ["scrub", "--keep-emails", "-"], input="mail alice@example.com\n")
        assert "alice@example.com" in result.stdout


class TestResolveTierCommand:
    """Tests for the resolve-tier command."""

    def _json(self, runner: CliRunner, *args: str) -> dict:
        result = runner.invoke(cli, ["-q", "resolve-tier", "--json", *args])
        assert result.exit_code == 0, result.output
        return json.loads(result.stdout)

    def test_default_provider(self, runner: CliRunner, workdir: Path) -> None:
        assert self._json(runner) == {
            "tier": 4,
            "name": "deidentified",
            "capability": "balanced",
            "layers": ["patterns", "semantic_clusters"],
        }

    def test_local(self, runner: CliRunner, workdir: Path) -> None:
        data = self._json(runner, "--provider", "local", "--model", "qwen2.5:14b", "--tier", "4")
        assert data["tier"] == 1
        assert data["capability"] == "balanced"
        assert data["layers"] == ["classification", "patterns", "raw", "semantic_clusters"]

    def test_remote_without_patterns(self, runner: CliRunner, workdir: Path) -> None:
        data = self._json(runner, "--provider", "anthropic", "--model", "claude-opus-4", "--no-patterns")
        assert data["tier"] == 3
        assert data["capability"] == "high"

    def test_override_clamped(self, runner: CliRunner, workdir: Path) -> None:
        assert self._json(runner, "--provider", "openai", "--tier", "9")["tier"] == 4

    def test_table_output(self, runner: CliRunner, workdir: Path) -> None:
        result = runner.invoke(
            cli, ["resolve-tier", "--provider", "openai", "--no-patterns", "--no-classification", "--retrieval"]
        )
        assert result.exit_code == 0
        assert "Tier Resolution" in result.stdout
        assert "2 (compressed)" in result.stdout


# =============================================================================
# History & Config
# =============================================================================


class TestHistoryCommand:
    """Tests for history show."""

    def test_empty(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(cli, ["--config", str(config_file), "history", "show"])
        assert result.exit_code == 0
        assert "No topic history at" in result.stdout

    def test_lists_topics(self, runner: CliRunner, config_file: Path, workdir: Path) -> None:
        JsonTopicHistoryRepository(workdir / "history.json").save(
            TopicHistory(topics={"testing": ["2026-10-15", "2026-10-16"], "caching": ["2026-10-14"]})
        )

        result = runner.invoke(cli, ["--config", str(config_file), "history", "show", "-n", "1"])

        assert result.exit_code == 0
        assert "testing" in result.stdout
        assert "2026-10-16" in result.stdout
        assert "caching" not in result.stdout


class TestConfigCommands:
    """Tests for config show and config init."""

    def test_show(self, runner: CliRunner, workdir: Path) -> None:
        path = workdir / "digest.yaml"
        path.write_text(yaml.safe_dump({"privacy": {"provider": "anthropic"}}), encoding="utf-8")

        result = runner.invoke(cli, ["--config", str(path), "config", "show"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["privacy"]["provider"] == "anthropic"

    def test_init(self, runner: CliRunner, workdir: Path) -> None:
        result = runner.invoke(cli, ["config", "init", "--path", "dd.yaml"])

        assert result.exit_code == 0
        assert "Wrote default configuration to dd.yaml" in result.stdout
        assert yaml.safe_load((workdir / "dd.yaml").read_text(encoding="utf-8"))["privacy"]["provider"] == "none"

    def test_init_refuses_overwrite(self, runner: CliRunner, workdir: Path) -> None:
        (workdir / "dd.yaml").write_text("custom: true\n", encoding="utf-8")

        refused = runner.invoke(cli, ["config", "init", "--path", "dd.yaml"])
        forced = runner.invoke(cli, ["config", "init", "--path", "dd.yaml", "--force"])

        assert refused.exit_code == 1
        assert "already exists" in refused.stdout
        assert forced.exit_code == 0
        assert "custom" not in (workdir / "dd.yaml").read_text(encoding="utf-8")
