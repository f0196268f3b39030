"""Click CLI — query models, discover new ones, render the static site."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import NoReturn

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from config.config_loader import (
    _CATALOG_PATH,
    _SETTINGS_PATH,
    AppConfig,
    CatalogConfig,
    ConfigError,
    ModelSpec,
    load_catalog,
    load_config,
)
from src.dataset import build_dataset, load_dataset, merge_entries, plan_queries, save_dataset
from src.discovery import DiscoveryError, append_models_to_catalog, discover_new_models
from src.output import (
    console,
    print_new_models,
    print_plan,
    print_query_header,
    print_query_summary,
    progress_printer,
)
from src.providers.openrouter import OpenRouterProvider
from src.query import QueryOrchestrator
from src.render import DATA_FILE, RenderAnchorMissing, render_site
from src.topics import TopicClassifier

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    # INFO would interleave with the per-model progress line
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {message}")
    sys.exit(1)


def _filter_models(models: list[ModelSpec], filter_str: str | None) -> list[ModelSpec]:
    """Keep models whose id or name contains any comma-separated term (case-insensitive)."""
    if not filter_str:
        return list(models)
    terms = [t.strip().lower() for t in filter_str.split(",") if t.strip()]
    if not terms:
        return list(models)
    return [m for m in models if any(t in m.id.lower() or t in m.name.lower() for t in terms)]


def _load_catalog_or_exit(path: Path) -> CatalogConfig:
    try:
        return load_catalog(path)
    except ConfigError as exc:
        _fail(str(exc))


def _require_api_key(config: AppConfig) -> str:
    api_key = config.api.api_key()
    if not api_key:
        _fail(f"Set {config.api.api_key_env} environment variable (or add it to .env)")
    return api_key


@click.group()
@click.option("--settings", "settings_path", type=click.Path(path_type=Path), default=_SETTINGS_PATH,
              show_default=True, help="Application settings file")
@click.option("--catalog", "catalog_path", type=click.Path(path_type=Path), default=_CATALOG_PATH,
              show_default=True, help="Model catalog file")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, settings_path: Path, catalog_path: Path, verbose: bool) -> None:
    """Ask a fixed catalog of LLMs the same question and publish the answers.

    \b
    Examples:
      python -m src.cli query
      python -m src.cli query --filter "claude,gpt"
      python -m src.cli query --dry-run
      python -m src.cli query --append
      python -m src.cli discover
      python -m src.cli render
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(settings_path)
    except ConfigError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.obj = {"config": config, "catalog_path": catalog_path}


@main.command()
@click.option("--filter", "filter_str", default=None, help="Comma-separated substrings matched against id or name")
@click.option("--dry-run", is_flag=True, help="Show what would be queried without calling the API")
@click.option("--append", "append", is_flag=True, help="Keep existing results and skip already-queried models")
@click.option("--data", "data_path", type=click.Path(path_type=Path), default=None,
              help="Dataset file (default: <site dir>/data.json)")
@click.pass_context
def query(ctx: click.Context, filter_str: str | None, dry_run: bool, append: bool, data_path: Path | None) -> None:
    """Query every catalog model and write the dataset."""
    config: AppConfig = ctx.obj["config"]
    catalog = _load_catalog_or_exit(ctx.obj["catalog_path"])
    if not dry_run:
        _require_api_key(config)

    data_path = data_path or config.site.dir / DATA_FILE
    specs = _filter_models(catalog.models, filter_str)

    existing = None
    if append:
        try:
            existing = load_dataset(data_path)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            _fail(f"Cannot read existing dataset {data_path}: {exc}")

    _, skipped = plan_queries(specs, existing, append)
    skipped_ids = {s.id for s in skipped}

    print_query_header(catalog, len(specs), dry_run)

    if dry_run:
        print_plan(specs, skipped_ids)
        return

    try:
        provider = OpenRouterProvider(config.api)
    except ConfigError as exc:
        _fail(str(exc))
    orchestrator = QueryOrchestrator(
        provider=provider,
        classifier=TopicClassifier(config.topics),
        settings=config.query,
        on_event=progress_printer(console),
    )
    new_entries = asyncio.run(orchestrator.run(specs, catalog, existing_ids=skipped_ids))

    merged = merge_entries(existing.models if existing else [], new_entries)
    dataset = build_dataset(catalog, merged)
    saved = save_dataset(dataset, data_path)
    print_query_summary(dataset, saved)


@main.command()
@click.pass_context
def discover(ctx: click.Context) -> None:
    """Append newly discovered OpenRouter models to the catalog. Never edits existing ones."""
    config: AppConfig = ctx.obj["config"]
    catalog_path: Path = ctx.obj["catalog_path"]
    catalog = _load_catalog_or_exit(catalog_path)
    api_key = _require_api_key(config)

    console.print("Fetching models and rankings from OpenRouter...")
    try:
        new_models, catalog_size, ranked = asyncio.run(
            discover_new_models(config.discovery, api_key, catalog.ids)
        )
    except DiscoveryError as exc:
        _fail(str(exc))

    console.print(f"  Found {catalog_size} total models, {ranked} ranked")
    console.print(f"  Existing models in catalog: {len(catalog.models)}")

    if not new_models:
        console.print("\nNo new models found. Catalog is already up to date.")
        return

    print_new_models(new_models)
    try:
        append_models_to_catalog(catalog_path, new_models)
    except ConfigError as exc:
        _fail(str(exc))
    console.print(f"\n[green]Updated {catalog_path} with {len(new_models)} new model(s).[/green]")


@main.command()
@click.option("--site-dir", type=click.Path(path_type=Path), default=None,
              help="Directory holding data.json and index.html (default: from settings)")
@click.pass_context
def render(ctx: click.Context, site_dir: Path | None) -> None:
    """Pre-render data.json into index.html and write sitemap.xml."""
    config: AppConfig = ctx.obj["config"]
    site_dir = site_dir or config.site.dir
    try:
        index_path, sitemap_path = render_site(site_dir, config.site, config.topic_emojis)
    except (RenderAnchorMissing, FileNotFoundError) as exc:
        _fail(str(exc))
    except (ValueError, KeyError, TypeError) as exc:
        _fail(f"Cannot render from {site_dir / DATA_FILE}: {exc}")
    console.print(f"Rendered {index_path}")
    console.print(f"Generated {sitemap_path}")


if __name__ == "__main__":
    main()
