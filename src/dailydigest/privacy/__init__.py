"""Privacy tiers and prompt assembly."""

from dailydigest.privacy.assembler import AssembledPrompt, PromptContext, assemble_prompt
from dailydigest.privacy.tiers import (
    AllLayers,
    DataLayer,
    PrivacyTier,
    TierFilteredOptions,
    filter_by_tier,
    resolve_capability,
    resolve_tier,
)

__all__ = [
    "AllLayers",
    "AssembledPrompt",
    "DataLayer",
    "PrivacyTier",
    "PromptContext",
    "TierFilteredOptions",
    "assemble_prompt",
    "filter_by_tier",
    "resolve_capability",
    "resolve_tier",
]
