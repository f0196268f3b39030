"""Dataset persistence, append-mode merging and stats recomputation."""

import json
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from config.config_loader import CatalogConfig, ModelSpec
from src.models import Dataset, DatasetMeta, DatasetStats, ModelEntry

logger = logging.getLogger(__name__)

TOP_TOPICS_LIMIT = 20


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC with millisecond precision and a trailing Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_stats(models: Sequence[ModelEntry]) -> DatasetStats:
    """Recompute summary stats from scratch over successful runs."""
    topic_counts: dict[str, int] = {}
    total_responses = 0
    total_tokens = 0
    total_reasoning = 0

    for model in models:
        for run in model.runs:
            if not run.success:
                continue
            total_responses += 1
            total_tokens += run.tokens_completion or 0
            total_reasoning += run.tokens_reasoning or 0
            for topic in run.topics or ():
                topic_counts[topic] = topic_counts.get(topic, 0) + 1

    # sorted() is stable, so equal counts keep first-encountered order
    ranked = sorted(topic_counts.items(), key=lambda kv: kv[1], reverse=True)[:TOP_TOPICS_LIMIT]

    return DatasetStats(
        total_models=len(models),
        total_responses=total_responses,
        total_tokens=total_tokens,
        total_reasoning_tokens=total_reasoning,
        topic_frequency=dict(ranked),
    )


def plan_queries(
    specs: Sequence[ModelSpec],
    existing: Dataset | None,
    append: bool,
) -> tuple[list[ModelSpec], list[ModelSpec]]:
    """Split specs into (to_query, skipped).

    Only in append mode are models already in the existing dataset skipped.
    """
    if not append or existing is None:
        return list(specs), []
    known = existing.ids
    to_query = [s for s in specs if s.id not in known]
    skipped = [s for s in specs if s.id in known]
    return to_query, skipped


def merge_entries(existing: Iterable[ModelEntry], new: Iterable[ModelEntry]) -> list[ModelEntry]:
    """Existing entries first and untouched, then new ones with unseen ids."""
    merged: dict[str, ModelEntry] = {}
    for entry in existing:
        merged.setdefault(entry.id, entry)
    for entry in new:
        if entry.id in merged:
            logger.warning("Dropping duplicate entry for %s: already in dataset", entry.id)
            continue
        merged[entry.id] = entry
    return list(merged.values())


def build_dataset(
    catalog: CatalogConfig,
    models: Sequence[ModelEntry],
    generated_at: str | None = None,
) -> Dataset:
    stats = compute_stats(models)
    meta = DatasetMeta(
        prompt=catalog.prompt,
        temperature=catalog.temperature,
        max_tokens=catalog.max_tokens,
        runs_per_model=catalog.runs_per_model,
        generated_at=generated_at or utc_timestamp(),
        total_models=stats.total_models,
    )
    return Dataset(meta=meta, stats=stats, models=list(models))


def dataset_to_dict(dataset: Dataset) -> dict[str, Any]:
    meta = dataset.meta
    stats = dataset.stats
    return {
        "meta": {
            "prompt": meta.prompt,
            "temperature": meta.temperature,
            "max_tokens": meta.max_tokens,
            "runs_per_model": meta.runs_per_model,
            "generated_at": meta.generated_at,
            "total_models": meta.total_models,
        },
        "stats": {
            "total_models": stats.total_models,
            "total_responses": stats.total_responses,
            "total_tokens": stats.total_tokens,
            "total_reasoning_tokens": stats.total_reasoning_tokens,
            "topic_frequency": dict(stats.topic_frequency),
        },
        "models": [m.to_dict() for m in dataset.models],
    }


def dataset_from_dict(raw: dict[str, Any]) -> Dataset:
    """Parse a persisted dataset. Stats are recomputed rather than trusted."""
    models = [ModelEntry.from_dict(m) for m in raw.get("models") or []]
    meta_raw = raw.get("meta") or {}
    stats = compute_stats(models)
    meta = DatasetMeta(
        prompt=str(meta_raw.get("prompt", "")),
        temperature=meta_raw.get("temperature", 0.0),
        max_tokens=int(meta_raw.get("max_tokens", 0)),
        runs_per_model=int(meta_raw.get("runs_per_model", 0)),
        generated_at=str(meta_raw.get("generated_at", "")),
        total_models=stats.total_models,
    )
    return Dataset(meta=meta, stats=stats, models=models)


def load_dataset(path: Path) -> Dataset | None:
    """Read the persisted dataset, or None if there is none yet."""
    if not path.exists():
        logger.info("No existing dataset at %s", path)
        return None
    raw = json.loads(path.read_text(encoding="utf-8"))
    dataset = dataset_from_dict(raw)
    logger.info("Loaded %d models from %s", len(dataset.models), path)
    return dataset


def save_dataset(dataset: Dataset, path: Path) -> Path:
    """Write the whole dataset as pretty JSON with a trailing newline."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(dataset_to_dict(dataset), indent=2, ensure_ascii=False) + "\n"
    path.write_text(text, encoding="utf-8")
    logger.info("Dataset saved to: %s", path)
    return path
