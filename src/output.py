"""Rich console output: query progress markers, dry-run plan, summaries."""

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule
from rich.table import Table

from config.config_loader import CatalogConfig, ModelSpec
from src.models import Dataset, RunEvent

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_ERROR_PREVIEW = 30


def print_query_header(catalog: CatalogConfig, model_count: int, dry_run: bool) -> None:
    prefix = "[DRY RUN] " if dry_run else ""
    console.print(
        f"[bold cyan]{prefix}Querying {model_count} models × {catalog.runs_per_model} runs[/bold cyan]"
    )
    console.print(f'Prompt: [italic]"{escape(catalog.prompt)}"[/italic]')
    console.print(f"Temperature: {catalog.temperature}, Max tokens: {catalog.max_tokens}")
    console.print(Rule())


def print_plan(specs: Sequence[ModelSpec], skipped_ids: set[str]) -> None:
    """Table of what a real run would query."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Model")
    table.add_column("License")
    table.add_column("ID", style="dim")
    table.add_column("Status")
    for spec in specs:
        status = "[yellow]SKIP - already queried[/yellow]" if spec.id in skipped_ids else "query"
        table.add_row(escape(spec.name), spec.license, escape(spec.id), status)
    console.print(table)


def progress_printer(out: Console = console) -> Callable[[RunEvent], None]:
    """Callback streaming one line per model with a marker per run."""

    def on_event(event: RunEvent) -> None:
        if event.kind == "skip":
            out.print(f"\\[{event.index}/{event.total}] SKIP {escape(event.model_name)} (already queried)")
        elif event.kind == "start":
            out.print(f"\\[{event.index}/{event.total}] Querying {escape(event.model_name)}...", end="")
        elif event.kind == "retry":
            out.print(f" [yellow]↻({escape(event.detail)})[/yellow]", end="")
        elif event.kind == "ok":
            out.print(" [green]✓[/green]", end="")
        elif event.kind == "fail":
            out.print(f" [red]✗({escape(event.detail[:_ERROR_PREVIEW])})[/red]", end="")
        elif event.kind == "done":
            out.print()

    return on_event


def print_query_summary(dataset: Dataset, path: Path, top: int = 5) -> None:
    console.print(Rule())
    console.print(f"[bold green]Done![/bold green] Wrote {len(dataset.models)} models to {path}")
    console.print(f"Total successful responses: {dataset.stats.total_responses}")
    if not dataset.stats.topic_frequency:
        console.print("Top topics: none detected")
        return
    table = Table(title="Top topics", show_header=True, header_style="bold")
    table.add_column("Topic")
    table.add_column("Responses", justify="right")
    for topic, count in list(dataset.stats.topic_frequency.items())[:top]:
        table.add_row(escape(topic), str(count))
    console.print(table)


def print_new_models(new_models: Sequence[ModelSpec]) -> None:
    console.print(f"\n[bold]New models to add ({len(new_models)}):[/bold]")
    for m in new_models:
        console.print(f"  [green]+[/green] \\[{m.license:<12}] {escape(m.name)} ({escape(m.id)})")
