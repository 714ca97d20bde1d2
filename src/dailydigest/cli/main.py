"""
Command Line Interface for the daily digest core.

Runs the privacy-tiered pipeline over a day of collected activity and shows
what an AI provider would be allowed to see.
"""

import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Optional

import click
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dailydigest import __version__
from dailydigest.analysis.history import JsonTopicHistoryRepository
from dailydigest.config import (
    AIProvider,
    ConfigError,
    DigestConfig,
    get_config,
    load_config,
    save_config,
)
from dailydigest.core.models import ActivityBundle, ActivityRecord, FilterSummary, SensitivityCategory
from dailydigest.core.scrubber import scrub_text
from dailydigest.core.sensitivity import category_label
from dailydigest.pipeline import DigestPipeline, DigestResult
from dailydigest.privacy.tiers import TIER_LAYERS, resolve_capability, resolve_tier
from dailydigest.utils.logging import setup_logging

logger = logging.getLogger(__name__)

console = Console()

DEFAULT_CONFIG_PATH = Path("./dailydigest.yaml")

_RECORDS = TypeAdapter(list[ActivityRecord])


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def print_header(text: str) -> None:
    """Print a styled header."""
    console.print(f"\n[bold cyan]{text}[/bold cyan]\n")


def print_success(text: str) -> None:
    console.print(f"[bold green]✓[/bold green] {text}")


def print_warning(text: str) -> None:
    console.print(f"[bold yellow]⚠[/bold yellow] {text}")


def print_error(text: str) -> None:
    console.print(f"[bold red]✗[/bold red] {text}")


def print_info_panel(title: str, content: str, border_style: str = "blue") -> None:
    console.print(Panel(content, title=title, border_style=border_style))


def load_bundle(path: Path) -> ActivityBundle:
    """Read activity from a JSON file.

    Accepts either an object with ``visits``/``searches``/``sessions``/
    ``commits`` lists, or a flat list of records tagged by ``kind``.

    Raises:
        click.ClickException: If the file is not valid activity JSON.
    """
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Cannot read {path}: {e}") from e

    try:
        if isinstance(data, list):
            return ActivityBundle.from_records(_RECORDS.validate_python(data))
        return ActivityBundle.model_validate(data)
    except ValidationError as e:
        raise click.ClickException(f"{path} is not valid activity data: {e.error_count()} errors") from e


def print_filter_table(summary: FilterSummary) -> None:
    """Print what the filters removed, by category."""
    table = Table(title="Filtered Before Sending")
    table.add_column("Filter", style="cyan")
    table.add_column("Count", justify="right")

    table.add_row("Excluded domains", str(summary.excluded_domains))
    table.add_row(f"Sensitive visits ({summary.action.value})", str(summary.sensitive_filtered))
    table.add_row(f"Sensitive searches ({summary.action.value})", str(summary.searches_filtered))
    table.add_row("Duplicate visits collapsed", str(summary.deduplicated))
    for category, count in sorted(summary.by_category.items()):
        try:
            label = category_label(SensitivityCategory(category))
        except ValueError:
            label = category
        table.add_row(f"  {label}", str(count))

    console.print(table)


def print_tier_panel(result: DigestResult) -> None:
    layers = ", ".join(sorted(layer.value for layer in TIER_LAYERS[result.tier]))
    content = (
        f"Tier: [bold]{int(result.tier)}[/bold] ({result.tier.name.lower()})\n"
        f"Capability: {result.capability.value}\n"
        f"Permitted layers: {layers}\n"
        f"Rendered layer: {result.layer.value if result.layer else 'none (no activity)'}\n"
        f"Events: {result.classification.total_processed} "
        f"({result.classification.llm_classified} model, {result.classification.rule_classified} rules)\n"
        f"Prompt tokens: ~{result.token_estimate}"
    )
    print_info_panel("Privacy", content, border_style="green" if result.tier >= 3 else "yellow")


# =============================================================================
# MAIN CLI GROUP
# =============================================================================


@click.group()
@click.version_option(__version__, prog_name="dailydigest")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help="Config file")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool, quiet: bool, config_path: Optional[Path]) -> None:
    """
    Daily Digest - privacy-tiered activity summaries.

    Sanitizes a day of browser, search, assistant and commit activity,
    classifies it, and renders the most private prompt an AI provider
    needs to summarize it.
    """
    config = load_config(config_path) if config_path else get_config()

    level = config.logging.level
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    setup_logging(level=level, log_file=config.logging.file)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.obj["quiet"] = quiet


# =============================================================================
# DIGEST COMMAND
# =============================================================================


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--date", "day", type=click.DateTime(formats=["%Y-%m-%d"]), help="Digest date (default: today)")
@click.option("--provider", type=click.Choice([p.value for p in AIProvider]), help="Destination provider")
@click.option("--model", help="Destination model name")
@click.option("--tier", type=int, help="Privacy tier override (clamped to 1-4)")
@click.option("--profile", default="", help="Free-text context about you for the prompt")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write the prompt here")
@click.option("--no-history", is_flag=True, help="Do not read or update topic history")
@click.pass_context
def digest(
    ctx: click.Context,
    input_file: Path,
    day: Optional[Any],
    provider: Optional[str],
    model: Optional[str],
    tier: Optional[int],
    profile: str,
    output: Optional[Path],
    no_history: bool,
) -> None:
    """
    Build the tier-filtered summary prompt for a day of activity.

    Example:
        dailydigest digest activity.json --provider anthropic --model claude-sonnet-4
    """
    config: DigestConfig = ctx.obj["config"]
    updates: dict[str, Any] = {}
    if provider:
        updates["provider"] = AIProvider(provider)
    if model is not None:
        updates["model"] = model
    if tier is not None:
        updates["tier_override"] = tier
    if updates:
        config = config.model_copy(update={"privacy": config.privacy.model_copy(update=updates)})
    if no_history:
        config = config.model_copy(
            update={"patterns": config.patterns.model_copy(update={"track_recurrence": False})}
        )

    bundle = load_bundle(input_file)
    if not ctx.obj["quiet"]:
        print_header("Daily Digest")
        console.print(
            f"Loaded {len(bundle.visits)} visits, {len(bundle.searches)} searches, "
            f"{len(bundle.sessions)} prompts, {len(bundle.commits)} commits"
        )

    run_day: date = day.date() if day else date.today()
    result = DigestPipeline(config).run(bundle, day=run_day, profile=profile)

    if not ctx.obj["quiet"]:
        print_tier_panel(result)
        if result.filter_summary.total or result.filter_summary.deduplicated:
            print_filter_table(result.filter_summary)

    if output:
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(result.prompt.text, encoding="utf-8")
        except OSError as e:
            print_error(f"Cannot write prompt: {e}")
            sys.exit(1)
        print_success(f"Prompt written to {output}")
    else:
        click.echo(result.prompt.text, nl=False)


# =============================================================================
# SCRUB COMMAND
# =============================================================================


@cli.command()
@click.argument("text", required=False)
@click.option("--keep-paths", is_flag=True, help="Do not rewrite home directory paths")
@click.option("--keep-emails", is_flag=True, help="Do not replace email addresses")
def scrub(text: Optional[str], keep_paths: bool, keep_emails: bool) -> None:
    """
    Redact secrets and PII from TEXT (or stdin when TEXT is '-' or omitted).

    Example:
        echo "export API_KEY=abc123" | dailydigest scrub
    """
    if text is None or text == "-":
        text = click.get_text_stream("stdin").read()
    click.echo(scrub_text(text, redact_paths_enabled=not keep_paths, scrub_emails_enabled=not keep_emails))


# =============================================================================
# RESOLVE-TIER COMMAND
# =============================================================================


@cli.command("resolve-tier")
@click.option("--provider", type=click.Choice([p.value for p in AIProvider]), default=None)
@click.option("--model", default=None)
@click.option("--tier", type=int, help="Privacy tier override")
@click.option("--patterns/--no-patterns", default=True, help="Pattern analysis is available")
@click.option("--classification/--no-classification", default=True, help="Classified events are available")
@click.option("--retrieval/--no-retrieval", default=False, help="Compression or retrieval is enabled")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def resolve_tier_command(
    ctx: click.Context,
    provider: Optional[str],
    model: Optional[str],
    tier: Optional[int],
    patterns: bool,
    classification: bool,
    retrieval: bool,
    output_json: bool,
) -> None:
    """
    Show the tier and prompt capability a provider would get.

    Example:
        dailydigest resolve-tier --provider local --model qwen2.5:14b
    """
    config: DigestConfig = ctx.obj["config"]
    provider_value = provider or config.privacy.provider.value
    model_value = model if model is not None else config.privacy.model
    override = tier if tier is not None else config.privacy.tier_override

    resolved = resolve_tier(
        provider_value,
        override,
        has_patterns=patterns,
        has_classification=classification,
        retrieval_enabled=retrieval,
    )
    capability = resolve_capability(provider_value, model_value)
    layers = sorted(layer.value for layer in TIER_LAYERS[resolved])

    if output_json:
        click.echo(
            json.dumps(
                {"tier": int(resolved), "name": resolved.name.lower(), "capability": capability.value, "layers": layers}
            )
        )
        return

    table = Table(title="Tier Resolution")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Provider", f"{provider_value} {model_value}".strip())
    table.add_row("Tier", f"{int(resolved)} ({resolved.name.lower()})")
    table.add_row("Capability", capability.value)
    table.add_row("Permitted layers", ", ".join(layers))
    console.print(table)


# =============================================================================
# HISTORY COMMANDS
# =============================================================================


@cli.group()
def history() -> None:
    """Inspect persisted topic history."""


@history.command("show")
@click.option("--limit", "-n", type=int, default=25, show_default=True, help="Topics to list")
@click.pass_context
def history_show(ctx: click.Context, limit: int) -> None:
    """
    List remembered topics by number of days seen.

    Example:
        dailydigest history show --limit 10
    """
    config: DigestConfig = ctx.find_object(dict)["config"]
    loaded = JsonTopicHistoryRepository(config.history.path).load()
    if not len(loaded):
        print_warning(f"No topic history at {config.history.path}")
        return

    table = Table(title=f"Topic History ({len(loaded)} topics)")
    table.add_column("Topic", style="cyan")
    table.add_column("Days", justify="right")
    table.add_column("Last seen")
    ranked = sorted(loaded.topics.items(), key=lambda item: (-len(item[1]), item[0]))
    for topic, dates in ranked[:limit]:
        table.add_row(topic, str(len(dates)), dates[-1])
    console.print(table)


# =============================================================================
# CONFIG COMMANDS
# =============================================================================


@cli.group()
def config() -> None:
    """View or create configuration."""


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective configuration as JSON."""
    current: DigestConfig = ctx.find_object(dict)["config"]
    click.echo(current.model_dump_json(indent=2))


@config.command("init")
@click.option("--path", type=click.Path(dir_okay=False, path_type=Path), default=DEFAULT_CONFIG_PATH, show_default=True)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def config_init(path: Path, force: bool) -> None:
    """
    Write a default configuration file.

    Example:
        dailydigest config init --path ~/.dailydigest/config.yaml
    """
    if path.exists() and not force:
        print_error(f"{path} already exists (use --force to overwrite)")
        sys.exit(1)
    try:
        save_config(DigestConfig(), path)
    except ConfigError as e:
        print_error(str(e))
        sys.exit(1)
    print_success(f"Wrote default configuration to {path}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
