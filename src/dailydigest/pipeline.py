"""Digest pipeline orchestrator.

Ties the stages together for one generation run: give it an activity bundle,
get back a tier-filtered prompt plus the counts a consent screen needs.

The pipeline:
1. Sanitizes records (excluded domains, secrets, URL parameters)
2. Collapses near-duplicate visits
3. Filters sensitive domains and searches
4. Categorizes visits by domain
5. Classifies every record into a structured event
6. Clusters related reading and compresses raw text to a budget
7. Extracts patterns against the persisted topic history
8. Resolves the privacy tier, filters layers and renders the prompt
9. Saves the updated topic history

Everything happens in memory before any call to the summary provider, and
the topic history is written only after the prompt is assembled.

Typical usage:
    >>> from dailydigest.config import load_config
    >>> from dailydigest.pipeline import DigestPipeline
    >>>
    >>> pipeline = DigestPipeline(load_config())
    >>> result = pipeline.run(bundle)
    >>> print(result.to_summary())
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from dailydigest.ai.classifier import CompletionClient, classify_events
from dailydigest.ai.prompts import PromptCapability
from dailydigest.analysis.clusters import cluster_visits
from dailydigest.analysis.compress import compress_activity
from dailydigest.analysis.history import (
    JsonTopicHistoryRepository,
    TopicHistory,
    TopicHistoryRepository,
)
from dailydigest.analysis.patterns import extract_patterns
from dailydigest.config import DigestConfig
from dailydigest.core.categorize import categorize_visits
from dailydigest.core.dedup import deduplicate_visits
from dailydigest.core.models import (
    ActivityBundle,
    ClassificationResult,
    FilterSummary,
    PatternAnalysis,
    SemanticCluster,
)
from dailydigest.core.sanitize import sanitize_bundle
from dailydigest.core.sensitivity import (
    DomainMatcher,
    filter_sensitive_searches,
    filter_sensitive_visits,
)
from dailydigest.privacy.assembler import AssembledPrompt, PromptContext, assemble_prompt
from dailydigest.privacy.tiers import (
    AllLayers,
    DataLayer,
    PrivacyTier,
    filter_by_tier,
    resolve_capability,
    resolve_tier,
)
from dailydigest.utils.logging import LogContext

logger = logging.getLogger(__name__)

StageCallback = Callable[[str], None]


@dataclass
class DigestResult:
    """Everything one run produces.

    Attributes:
        prompt: The assembled, tier-filtered prompt.
        filter_summary: Exact counts of what the filters removed.
        classification: Classified events and per-path counts.
        patterns: Extracted patterns, or None when pattern extraction is off.
        semantic_clusters: Reading clusters over browser visits.
        history_saved: Whether the updated topic history was written.
        elapsed_seconds: Wall time for the run.
    """

    prompt: AssembledPrompt
    filter_summary: FilterSummary = field(default_factory=FilterSummary)
    classification: ClassificationResult = field(default_factory=ClassificationResult)
    patterns: PatternAnalysis | None = None
    semantic_clusters: list[SemanticCluster] = field(default_factory=list)
    history_saved: bool = False
    elapsed_seconds: float = 0.0

    @property
    def tier(self) -> PrivacyTier:
        return self.prompt.tier

    @property
    def capability(self) -> PromptCapability:
        return self.prompt.capability

    @property
    def token_estimate(self) -> int:
        return self.prompt.token_estimate

    @property
    def layer(self) -> DataLayer | None:
        return self.prompt.layer

    def to_summary(self) -> str:
        """Multi-line summary of the run."""
        lines = [
            "Digest Results:",
            f"  Privacy tier: {int(self.tier)} ({self.tier.name.lower()})",
            f"  Capability: {self.capability.value}",
            f"  Layer: {self.layer.value if self.layer else 'none'}",
            f"  Prompt tokens: ~{self.token_estimate}",
            f"  Events: {self.classification.total_processed} "
            f"({self.classification.llm_classified} model, {self.classification.rule_classified} rules)",
            f"  Filtered: {self.filter_summary.total}",
            f"  Time: {self.elapsed_seconds:.2f}s",
        ]
        return "\n".join(lines)


class DigestPipeline:
    """Runs the sanitize → classify → analyze → tier → assemble flow.

    Attributes:
        config: Full configuration.
        history_repo: Topic history storage.
        classifier_client: Optional model client override for the classifier.
    """

    def __init__(
        self,
        config: DigestConfig,
        history_repo: TopicHistoryRepository | None = None,
        classifier_client: CompletionClient | None = None,
    ) -> None:
        self.config = config
        self.history_repo = history_repo or JsonTopicHistoryRepository(config.history.path)
        self.classifier_client = classifier_client

    def run(
        self,
        bundle: ActivityBundle,
        day: date | None = None,
        retrieved: list[str] | None = None,
        profile: str = "",
        progress: StageCallback | None = None,
    ) -> DigestResult:
        """Produce the prompt for one day of activity.

        Args:
            bundle: Raw activity as collected.
            day: Digest date; defaults to today.
            retrieved: Pre-selected activity text blocks for the tier-2 RAG
                prompt. Used only when retrieval is enabled.
            profile: Free-text user context for the prompt.
            progress: Called with each stage name as it starts.

        Returns:
            DigestResult. The prompt text is never empty.
        """
        start = time.perf_counter()
        day = day or date.today()
        config = self.config

        def stage(name: str) -> None:
            if progress:
                progress(name)

        summary = FilterSummary(action=config.sensitivity.action)

        stage("sanitize")
        with LogContext("Sanitizing activity", logger=logger):
            sanitized = sanitize_bundle(bundle, config.sanitize)
            bundle = sanitized.bundle
            summary.excluded_domains = sanitized.excluded_visit_count

        if config.dedup.enabled:
            stage("dedup")
            deduped = deduplicate_visits(bundle.visits, config.dedup.max_visits_per_domain)
            bundle = bundle.model_copy(update={"visits": deduped.visits})
            summary.deduplicated = deduped.collapsed_count

        stage("sensitivity")
        matcher = DomainMatcher.from_config(config.sensitivity)
        visit_result = filter_sensitive_visits(bundle.visits, config.sensitivity, matcher)
        search_result = filter_sensitive_searches(bundle.searches, config.sensitivity, matcher)
        summary.sensitive_filtered = visit_result.filtered
        summary.searches_filtered = search_result.filtered
        by_category = dict(visit_result.by_category)
        for category, count in search_result.by_category.items():
            by_category[category] = by_category.get(category, 0) + count
        summary.by_category = by_category

        stage("categorize")
        bundle = bundle.model_copy(
            update={
                "visits": visit_result.kept,
                "searches": search_result.kept,
                "categorized": categorize_visits(visit_result.kept),
            }
        )

        stage("classify")
        with LogContext("Classifying events", logger=logger):
            classification = classify_events(bundle, config.classification, client=self.classifier_client)

        stage("cluster")
        clusters = cluster_visits(bundle.visits, searches=bundle.searches)

        compressed = None
        if config.privacy.enable_compression:
            stage("compress")
            compressed = compress_activity(bundle, config.privacy.token_budget)

        patterns: PatternAnalysis | None = None
        history: TopicHistory | None = None
        updated_history: TopicHistory | None = None
        if config.patterns.enabled:
            stage("patterns")
            history = self.history_repo.load() if config.patterns.track_recurrence else TopicHistory()
            with LogContext("Extracting patterns", logger=logger):
                patterns, updated_history = extract_patterns(classification, config.patterns, history, today=day)

        stage("assemble")
        privacy = config.privacy
        tier = resolve_tier(
            privacy.provider,
            privacy.tier_override,
            has_patterns=patterns is not None and not patterns.is_empty(),
            has_classification=bool(classification.events),
            retrieval_enabled=privacy.enable_retrieval or privacy.enable_compression,
        )
        capability = resolve_capability(privacy.provider, privacy.model)
        layers = AllLayers(
            raw=bundle,
            compressed=compressed,
            retrieved=retrieved if privacy.enable_retrieval else None,
            classification=classification,
            patterns=patterns,
            semantic_clusters=clusters,
        )
        options = filter_by_tier(tier, layers)
        prompt = assemble_prompt(day, options, PromptContext(capability=capability, profile=profile))
        logger.info(
            f"Assembled tier {int(tier)} prompt ({capability.value}, ~{prompt.token_estimate} tokens) "
            f"from {classification.total_processed} events"
        )

        history_saved = False
        if updated_history is not None and config.patterns.track_recurrence and updated_history != history:
            stage("history")
            history_saved = self.history_repo.save(updated_history)

        return DigestResult(
            prompt=prompt,
            filter_summary=summary,
            classification=classification,
            patterns=patterns,
            semantic_clusters=clusters,
            history_saved=history_saved,
            elapsed_seconds=time.perf_counter() - start,
        )


def run_digest(
    bundle: ActivityBundle,
    config: DigestConfig,
    day: date | None = None,
    history_repo: TopicHistoryRepository | None = None,
) -> DigestResult:
    """One-shot convenience wrapper around ``DigestPipeline``."""
    return DigestPipeline(config, history_repo=history_repo).run(bundle, day=day)
