"""Central configuration for the daily digest pipeline.

Every module that needs settings imports its section model from here. The
configuration system supports:

- Multi-source configuration (environment variables > config file > defaults)
- Comma-delimited list settings (trimmed and lower-cased)
- Graceful degradation: a malformed file logs a warning and falls back to
  defaults rather than failing the run

Example:
    >>> from dailydigest.config import get_config
    >>> cfg = get_config()
    >>> cfg.patterns.min_cluster_size
    3

Config File Format (YAML):
    ```yaml
    sanitize:
      enabled: true
      excluded_domains: "mail.google.com, intranet.example.com"
      redact_paths: true
      scrub_emails: true

    sensitivity:
      enabled: true
      categories: [job_search, health, finance]
      custom_domains: "example-bank.com, reddit.com/r/personalfinance"
      action: exclude   # exclude | redact

    classification:
      enabled: false
      endpoint: http://localhost:11434
      model: qwen2.5:14b
      batch_size: 8

    patterns:
      enabled: true
      cooccurrence_window: 30
      min_cluster_size: 3
      track_recurrence: true

    privacy:
      provider: anthropic   # none | local | anthropic | openai
      model: claude-sonnet-4
      tier_override: null
      enable_compression: true

    history:
      path: ~/.dailydigest/topic-history.json
    ```
"""

from __future__ import annotations

import functools
import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from dailydigest.core.models import FilterAction, SensitivityCategory

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".dailydigest"


# =============================================================================
# Exceptions
# =============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileError(ConfigError):
    """Raised when a config file exists but cannot be read or written."""

    pass


# =============================================================================
# Enums
# =============================================================================


class AIProvider(str, Enum):
    """Which AI provider the assembled prompt is destined for.

    Attributes:
        NONE: No AI configured; prompts are built but not sent.
        LOCAL: On-device model, no network exposure.
        ANTHROPIC: Anthropic API (remote).
        OPENAI: OpenAI-compatible remote API.
    """

    NONE = "none"
    LOCAL = "local"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"

    @property
    def is_local(self) -> bool:
        return self is AIProvider.LOCAL


def split_list(value: Any) -> list[str]:
    """Normalize a comma-delimited string or list into trimmed lower-case entries.

    Empty entries are dropped.

    Example:
        >>> split_list(" Foo.com, ,bar.org/Path ")
        ['foo.com', 'bar.org/path']
    """
    if value is None:
        return []
    if isinstance(value, str):
        items: list[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        items = [value]
    result = []
    for item in items:
        text = str(item.value if isinstance(item, Enum) else item).strip().lower()
        if text:
            result.append(text)
    return result


# =============================================================================
# Configuration Sections
# =============================================================================


class SanitizeConfig(BaseModel):
    """Secret/PII scrubbing and domain exclusion settings.

    Attributes:
        enabled: Run the sanitize pass at all.
        excluded_domains: Host substrings whose visits are dropped outright.
        redact_paths: Replace home-directory paths with ``~``.
        scrub_emails: Replace email addresses with ``[EMAIL]``.
    """

    enabled: bool = Field(default=True, description="Run the sanitize pass.")
    excluded_domains: list[str] = Field(
        default_factory=list, description="Host substrings to drop entirely."
    )
    redact_paths: bool = Field(default=True, description="Replace home paths with ~.")
    scrub_emails: bool = Field(default=True, description="Replace email addresses.")

    @field_validator("excluded_domains", mode="before")
    @classmethod
    def _split_domains(cls, v: Any) -> list[str]:
        return split_list(v)


class SensitivityConfig(BaseModel):
    """Sensitive domain filter settings.

    Attributes:
        enabled: Apply the filter.
        categories: Built-in categories to match. Unknown names are dropped
            with a warning.
        custom_domains: Extra ``domain`` or ``domain/path-prefix`` entries.
        action: Exclude matching records or redact them in place.
    """

    enabled: bool = Field(default=False, description="Apply the sensitive domain filter.")
    categories: list[SensitivityCategory] = Field(
        default_factory=list, description="Built-in categories to filter."
    )
    custom_domains: list[str] = Field(
        default_factory=list, description="Extra domain or domain/path entries."
    )
    action: FilterAction = Field(default=FilterAction.EXCLUDE, description="exclude | redact")

    @field_validator("categories", mode="before")
    @classmethod
    def _parse_categories(cls, v: Any) -> list[SensitivityCategory]:
        parsed: list[SensitivityCategory] = []
        for name in split_list(v):
            try:
                category = SensitivityCategory(name)
            except ValueError:
                logger.warning(f"Unknown sensitivity category '{name}' ignored")
                continue
            if category not in parsed:
                parsed.append(category)
        return parsed

    @field_validator("custom_domains", mode="before")
    @classmethod
    def _split_custom(cls, v: Any) -> list[str]:
        return [d[4:] if d.startswith("www.") else d for d in split_list(v)]

    @field_validator("action", mode="before")
    @classmethod
    def _parse_action(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def is_active(self) -> bool:
        return self.enabled and bool(self.categories or self.custom_domains)


class ClassificationConfig(BaseModel):
    """Optional local-model refinement of the rule classifier.

    Attributes:
        enabled: Attempt LLM refinement at all.
        endpoint: Base URL of a local OpenAI-compatible server.
        model: Model name passed to the server.
        batch_size: Records per request; also the worker pool size.
        timeout_seconds: Per-request timeout.
        max_retries: Retries for retriable failures.
        max_tokens: Completion token limit per request.
    """

    enabled: bool = Field(default=False, description="Refine classification with a local model.")
    endpoint: str = Field(default="", description="Local model base URL.")
    model: str = Field(default="", description="Local model name.")
    batch_size: int = Field(default=8, ge=1, le=64, description="Records per request.")
    timeout_seconds: float = Field(default=60.0, gt=0, description="Per-request timeout.")
    max_retries: int = Field(default=2, ge=0, le=10, description="Retries for retriable errors.")
    max_tokens: int = Field(default=2048, ge=64, description="Completion token limit.")

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.endpoint.strip())


class PatternConfig(BaseModel):
    """Pattern extraction thresholds.

    Attributes:
        enabled: Run pattern extraction.
        cooccurrence_window: Minutes spanned by one co-occurrence window.
        min_cluster_size: Minimum events for a temporal cluster.
        track_recurrence: Read and update persisted topic history.
    """

    enabled: bool = Field(default=True, description="Run pattern extraction.")
    cooccurrence_window: int = Field(default=30, ge=1, le=1440, description="Window in minutes.")
    min_cluster_size: int = Field(default=3, ge=1, description="Minimum events per cluster.")
    track_recurrence: bool = Field(default=True, description="Persist topic history.")


class PrivacyConfig(BaseModel):
    """Tier resolution and prompt assembly settings.

    Attributes:
        provider: Destination AI provider.
        model: Destination model name, used for capability resolution.
        tier_override: Explicit operator tier. Out-of-range values are
            clamped into [1, 4] at resolution time, not rejected here.
        enable_compression: Allow budget-compressed text (tier 2).
        enable_retrieval: Allow retrieval-selected chunks (tier 2).
        token_budget: Budget for compressed text.
    """

    provider: AIProvider = Field(default=AIProvider.NONE, description="Destination provider.")
    model: str = Field(default="", description="Destination model name.")
    tier_override: int | None = Field(default=None, description="Explicit tier, clamped to [1, 4].")
    enable_compression: bool = Field(default=False, description="Allow compressed text (tier 2).")
    enable_retrieval: bool = Field(default=False, description="Allow retrieved chunks (tier 2).")
    token_budget: int = Field(default=3000, ge=200, description="Token budget for compressed text.")

    @field_validator("provider", mode="before")
    @classmethod
    def _parse_provider(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class DedupConfig(BaseModel):
    enabled: bool = Field(default=True, description="Collapse near-duplicate visits.")
    max_visits_per_domain: int = Field(default=5, ge=1, description="Visits kept per domain.")


class HistoryConfig(BaseModel):
    """Topic history persistence."""

    path: Path = Field(
        default_factory=lambda: DEFAULT_CONFIG_DIR / "topic-history.json",
        description="JSON file holding topic history.",
    )

    @field_validator("path", mode="before")
    @classmethod
    def _expand(cls, v: Any) -> Any:
        if isinstance(v, (str, Path)):
            return Path(v).expanduser()
        return v


class LoggingConfig(BaseModel):
    level: str = Field(default="WARNING", description="Log level name.")
    file: Path | None = Field(default=None, description="Optional log file.")

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v


class DigestConfig(BaseSettings):
    """Top-level configuration.

    Supports environment variables with the DAILYDIGEST_ prefix and ``__``
    as the nested delimiter, e.g. ``DAILYDIGEST_PRIVACY__PROVIDER=local``.

    Configuration priority (highest wins):
    1. Environment variables (DAILYDIGEST_*)
    2. Config file (YAML)
    3. In-code defaults
    """

    sanitize: SanitizeConfig = Field(default_factory=SanitizeConfig)
    sensitivity: SensitivityConfig = Field(default_factory=SensitivityConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    patterns: PatternConfig = Field(default_factory=PatternConfig)
    privacy: PrivacyConfig = Field(default_factory=PrivacyConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    debug: bool = Field(default=False, description="Enable debug mode.")

    model_config = {
        "env_prefix": "DAILYDIGEST_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values loaded from the YAML file.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


# =============================================================================
# Loading Functions
# =============================================================================


def _find_config_file(path: Path | None) -> Path | None:
    search_paths = [
        path,
        Path("./dailydigest.yaml"),
        Path("./dailydigest.yml"),
        DEFAULT_CONFIG_DIR / "config.yaml",
        DEFAULT_CONFIG_DIR / "config.yml",
    ]
    for search_path in search_paths:
        if search_path is not None and search_path.exists():
            return search_path
    return None


def _read_config_file(config_file: Path) -> dict[str, Any]:
    try:
        content = config_file.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to read config file {config_file}: {type(e).__name__}. Using defaults.")
        return {}

    if not content.strip():
        return {}

    try:
        loaded = yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse config file {config_file}: {e}. Using defaults.")
        return {}

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        logger.warning(f"Config file {config_file} has unexpected format. Using defaults.")
        return {}
    return loaded


def load_config(path: Path | None = None) -> DigestConfig:
    """Load configuration from file, environment, and defaults.

    If no config file is found, uses defaults only (not an error). If the
    file or one of its values is malformed, logs a warning and uses defaults.

    Args:
        path: Optional path to config file. If None, searches default locations.

    Returns:
        Fully-populated DigestConfig instance.

    Example:
        >>> config = load_config(Path("./dailydigest.yaml"))
    """
    config_file = _find_config_file(path)
    config_data: dict[str, Any] = _read_config_file(config_file) if config_file else {}
    if config_file is not None:
        logger.debug(f"Loaded config from {config_file}")

    try:
        return DigestConfig(**config_data)
    except ValueError as e:
        logger.warning(f"Error parsing config values: {e}. Using defaults.")
        return DigestConfig()


def save_config(config: DigestConfig, path: Path) -> None:
    """Write configuration to a YAML file.

    Raises:
        ConfigFileError: If the file cannot be written.
    """
    data = config.model_dump(mode="json")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    except OSError as e:
        raise ConfigFileError(f"Cannot write config file {path}: {e}") from e


@functools.lru_cache(maxsize=1)
def get_config() -> DigestConfig:
    """Get the cached configuration singleton."""
    return load_config()


def reset_config() -> None:
    """Clear the configuration cache so the next get_config() reloads."""
    get_config.cache_clear()
