"""Privacy tiers and the layer filter every prompt passes through.

A tier bounds how much information may enter a prompt sent to the summary
provider:

- Tier 4 (DEIDENTIFIED): aggregated patterns and semantic clusters only
- Tier 3 (CLASSIFIED): adds per-event classified abstractions
- Tier 2 (COMPRESSED): adds budget-compressed or pre-selected text
- Tier 1 (STANDARD): raw per-source arrays plus classification, patterns
  and clusters, but not the compressed text form

``filter_by_tier`` is the only way layers reach the assembler, so a new
layer cannot skip filtering by accident.

Example:
    >>> from dailydigest.config import AIProvider
    >>> resolve_tier(AIProvider.ANTHROPIC, has_patterns=True, has_classification=True, retrieval_enabled=False)
    <PrivacyTier.DEIDENTIFIED: 4>
    >>> resolve_tier(AIProvider.LOCAL, has_patterns=True, has_classification=True, retrieval_enabled=True)
    <PrivacyTier.STANDARD: 1>
"""

from __future__ import annotations

import logging
import re
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field

from dailydigest.ai.prompts import PromptCapability
from dailydigest.config import AIProvider
from dailydigest.core.models import (
    ActivityBundle,
    ClassificationResult,
    CompressedActivity,
    PatternAnalysis,
    SemanticCluster,
)

logger = logging.getLogger(__name__)


class PrivacyTier(IntEnum):
    """Privacy tier; higher is more private."""

    STANDARD = 1
    COMPRESSED = 2
    CLASSIFIED = 3
    DEIDENTIFIED = 4


class DataLayer(str, Enum):
    """A kind of data that may enter a prompt."""

    RAW = "raw"
    COMPRESSED = "compressed"
    RETRIEVED = "retrieved"
    CLASSIFICATION = "classification"
    PATTERNS = "patterns"
    SEMANTIC_CLUSTERS = "semantic_clusters"


TIER_LAYERS: dict[PrivacyTier, frozenset[DataLayer]] = {
    PrivacyTier.DEIDENTIFIED: frozenset({DataLayer.PATTERNS, DataLayer.SEMANTIC_CLUSTERS}),
    PrivacyTier.CLASSIFIED: frozenset(
        {DataLayer.PATTERNS, DataLayer.SEMANTIC_CLUSTERS, DataLayer.CLASSIFICATION}
    ),
    PrivacyTier.COMPRESSED: frozenset(
        {
            DataLayer.PATTERNS,
            DataLayer.SEMANTIC_CLUSTERS,
            DataLayer.CLASSIFICATION,
            DataLayer.COMPRESSED,
            DataLayer.RETRIEVED,
        }
    ),
    # Raw arrays replace the compressed form so tier 1 renders differently from tier 2.
    PrivacyTier.STANDARD: frozenset(
        {DataLayer.RAW, DataLayer.CLASSIFICATION, DataLayer.PATTERNS, DataLayer.SEMANTIC_CLUSTERS}
    ),
}


class AllLayers(BaseModel):
    """Every data layer produced by a run, before tier filtering."""

    model_config = ConfigDict(frozen=True)

    raw: ActivityBundle | None = None
    compressed: CompressedActivity | None = None
    retrieved: list[str] | None = Field(default=None, description="Pre-selected activity text blocks.")
    classification: ClassificationResult | None = None
    patterns: PatternAnalysis | None = None
    semantic_clusters: list[SemanticCluster] | None = None


class TierFilteredOptions(AllLayers):
    """The subset of layers a tier permits; everything else is None."""

    tier: PrivacyTier
    permitted: frozenset[DataLayer]

    def available(self) -> set[DataLayer]:
        """Permitted layers that actually carry data."""
        present: set[DataLayer] = set()
        if self.raw is not None and not self.raw.is_empty():
            present.add(DataLayer.RAW)
        if self.compressed is not None and self.compressed.total_events > 0:
            present.add(DataLayer.COMPRESSED)
        if self.retrieved:
            present.add(DataLayer.RETRIEVED)
        if self.classification is not None and self.classification.events:
            present.add(DataLayer.CLASSIFICATION)
        if self.patterns is not None and not self.patterns.is_empty():
            present.add(DataLayer.PATTERNS)
        if self.semantic_clusters:
            present.add(DataLayer.SEMANTIC_CLUSTERS)
        return present


_LAYER_FIELDS: dict[DataLayer, str] = {
    DataLayer.RAW: "raw",
    DataLayer.COMPRESSED: "compressed",
    DataLayer.RETRIEVED: "retrieved",
    DataLayer.CLASSIFICATION: "classification",
    DataLayer.PATTERNS: "patterns",
    DataLayer.SEMANTIC_CLUSTERS: "semantic_clusters",
}


def filter_by_tier(tier: PrivacyTier | int, layers: AllLayers) -> TierFilteredOptions:
    """Keep only the layers ``tier`` permits."""
    tier = PrivacyTier(tier)
    permitted = TIER_LAYERS[tier]
    kept = {
        field_name: getattr(layers, field_name)
        for layer, field_name in _LAYER_FIELDS.items()
        if layer in permitted
    }
    return TierFilteredOptions(tier=tier, permitted=permitted, **kept)


def clamp_tier(value: int) -> PrivacyTier:
    """Clamp an override into [1, 4], warning when it was out of range."""
    clamped = max(int(PrivacyTier.STANDARD), min(int(PrivacyTier.DEIDENTIFIED), int(value)))
    if clamped != value:
        logger.warning(f"Privacy tier override {value} is out of range, clamped to {clamped}")
    return PrivacyTier(clamped)


def _coerce_provider(provider: AIProvider | str) -> AIProvider:
    if isinstance(provider, AIProvider):
        return provider
    try:
        return AIProvider(str(provider).strip().lower())
    except ValueError:
        # Unknown providers are treated as remote.
        return AIProvider.OPENAI


def resolve_tier(
    provider: AIProvider | str,
    override: int | None = None,
    *,
    has_patterns: bool,
    has_classification: bool,
    retrieval_enabled: bool,
) -> PrivacyTier:
    """Pick the privacy tier for a run.

    A local provider always gets tier 1: nothing leaves the machine. For any
    other provider an explicit override wins (clamped into range); otherwise
    the most private tier the available data supports is chosen.
    """
    if _coerce_provider(provider).is_local:
        if override is not None:
            logger.debug("Ignoring tier override for local provider")
        return PrivacyTier.STANDARD
    if override is not None:
        return clamp_tier(override)
    if has_patterns:
        return PrivacyTier.DEIDENTIFIED
    if has_classification:
        return PrivacyTier.CLASSIFIED
    if retrieval_enabled:
        return PrivacyTier.COMPRESSED
    return PrivacyTier.STANDARD


_PARAM_SIZE = re.compile(r"(\d+(?:\.\d+)?)\s*b\b", re.I)

LOCAL_BALANCED_MIN_BILLIONS = 14.0


def model_size_billions(model: str) -> float | None:
    """Parameter count parsed from names like ``qwen2.5:14b`` or ``llama-3-70B``."""
    matches = _PARAM_SIZE.findall(model or "")
    if not matches:
        return None
    return float(matches[-1])


def resolve_capability(provider: AIProvider | str, model: str = "") -> PromptCapability:
    """Estimate how capable the summary model is.

    Anthropic Sonnet and Opus models are ``high``, other Anthropic models
    ``balanced``. Local models with at least 14B parameters are ``balanced``,
    smaller or unsized ones ``lite``. Any other provider is ``balanced``.
    """
    resolved = _coerce_provider(provider)
    name = (model or "").lower()
    if resolved is AIProvider.ANTHROPIC:
        if "sonnet" in name or "opus" in name:
            return PromptCapability.HIGH
        return PromptCapability.BALANCED
    if resolved is AIProvider.LOCAL:
        size = model_size_billions(name)
        if size is not None and size >= LOCAL_BALANCED_MIN_BILLIONS:
            return PromptCapability.BALANCED
        return PromptCapability.LITE
    return PromptCapability.BALANCED
