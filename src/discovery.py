"""Discover new models on OpenRouter and append them to the catalog.

The catalog is append-only: existing entries (and every comment around
them) are never rewritten. New entries are added as raw YAML text at the
end of models.yaml, so ``models`` must remain the last top-level key.

Ranking data is scraped from the public rankings page and is best effort.
When the page can't be fetched or doesn't carry the payload shape we know,
discovery continues with the unranked catalog.
"""

import json
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import yaml
from bs4 import BeautifulSoup

from config.config_loader import ConfigError, DiscoveryConfig, LicenseRule, ModelSpec

logger = logging.getLogger(__name__)

AUTO_DISCOVERED_HEADER = "  # === Auto-discovered models ==="


class DiscoveryError(Exception):
    """The full remote catalog could not be fetched."""


class DiscoverySourceDegraded(Exception):
    """The rankings page was unreachable or not in a usable shape."""


@dataclass(frozen=True)
class RemoteModel:
    id: str
    name: str = ""


def license_for(model_id: str, licenses: Sequence[LicenseRule]) -> LicenseRule | None:
    for rule in licenses:
        if model_id.startswith(rule.prefix):
            return rule
    return None


def allowed_prefixes(licenses: Sequence[LicenseRule]) -> list[str]:
    """Provider prefixes (``org/``) covered by the license table, in table order."""
    seen: dict[str, None] = {}
    for rule in licenses:
        seen.setdefault(rule.prefix.split("/")[0] + "/", None)
    return list(seen)


def is_allowed(model_id: str, licenses: Sequence[LicenseRule]) -> bool:
    return any(model_id.startswith(p) for p in allowed_prefixes(licenses))


def derive_model_name(model_id: str, api_name: str | None) -> str:
    """Use the API-provided name, else title-case the id's trailing segment."""
    if api_name and api_name.strip():
        return api_name.strip()
    parts = model_id.split("/")
    tail = parts[1] if len(parts) > 1 and parts[1] else model_id
    spaced = re.sub(r"[-_]", " ", tail)
    return re.sub(r"\b\w", lambda m: m.group().upper(), spaced)


def extract_ranked_ids(html: str) -> list[str]:
    """Pull ranked model ids out of the rankings page's __NEXT_DATA__ payload.

    Raises DiscoverySourceDegraded for anything that isn't a list of model
    objects under ``props.pageProps.models`` or ``props.pageProps.rankings``.
    """
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        raise DiscoverySourceDegraded("no __NEXT_DATA__ payload on rankings page")

    try:
        payload = json.loads(script.string)
    except json.JSONDecodeError as exc:
        raise DiscoverySourceDegraded(f"__NEXT_DATA__ is not valid JSON: {exc}") from exc

    props = payload.get("props") if isinstance(payload, dict) else None
    page_props = props.get("pageProps") if isinstance(props, dict) else None
    if not isinstance(page_props, dict):
        raise DiscoverySourceDegraded("__NEXT_DATA__ has no props.pageProps")

    for key, id_fields in (("models", ("id", "slug")), ("rankings", ("id", "model_id"))):
        items = page_props.get(key)
        if items is None:
            continue
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise DiscoverySourceDegraded(f"pageProps.{key} is not a list of objects")
        ids: list[str] = []
        for item in items:
            value = next((item[f] for f in id_fields if isinstance(item.get(f), str) and item[f]), None)
            if value is not None:
                ids.append(value)
        return ids

    raise DiscoverySourceDegraded("pageProps carries neither models nor rankings")


async def fetch_ranked_ids(client: httpx.AsyncClient, config: DiscoveryConfig) -> list[str]:
    """Ranked model ids, or [] when the rankings source is unusable."""
    try:
        try:
            resp = await client.get(
                config.rankings_url,
                headers={"User-Agent": config.user_agent},
                timeout=config.timeout_sec,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise DiscoverySourceDegraded(f"rankings page unavailable: {exc}") from exc
        return extract_ranked_ids(resp.text)
    except DiscoverySourceDegraded as exc:
        logger.warning("Could not use rankings page (%s), falling back to full model list", exc)
        return []


async def fetch_catalog(client: httpx.AsyncClient, config: DiscoveryConfig, api_key: str) -> list[RemoteModel]:
    """Fetch every model OpenRouter lists.

    Raises:
        DiscoveryError: On transport failure, non-2xx status or bad JSON.
    """
    try:
        resp = await client.get(
            config.models_url,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=config.timeout_sec,
        )
    except httpx.HTTPError as exc:
        raise DiscoveryError(f"Failed to fetch models list: {exc}") from exc
    if resp.status_code >= 400:
        raise DiscoveryError(f"Failed to fetch models list: HTTP {resp.status_code}")

    try:
        data: Any = resp.json()
    except ValueError as exc:
        raise DiscoveryError(f"Models list is not JSON: {exc}") from exc

    models: list[RemoteModel] = []
    for item in (data.get("data") if isinstance(data, dict) else None) or []:
        if isinstance(item, dict) and item.get("id"):
            models.append(RemoteModel(id=str(item["id"]), name=str(item.get("name") or "")))
    return models


def build_candidates(
    ranked_ids: Iterable[str],
    catalog: Sequence[RemoteModel],
    licenses: Sequence[LicenseRule],
) -> list[RemoteModel]:
    """Ranked models first in rank order, then the rest of the catalog."""
    names = {m.id: m.name for m in catalog}
    candidates: list[RemoteModel] = []
    seen: set[str] = set()

    for model_id in ranked_ids:
        if model_id not in seen and is_allowed(model_id, licenses):
            candidates.append(RemoteModel(id=model_id, name=names.get(model_id, "")))
            seen.add(model_id)
    for model in catalog:
        if model.id not in seen and is_allowed(model.id, licenses):
            candidates.append(model)
            seen.add(model.id)
    return candidates


def select_new_models(
    candidates: Iterable[RemoteModel],
    existing_ids: set[str],
    licenses: Sequence[LicenseRule],
    variant_delimiter: str = ":",
) -> list[ModelSpec]:
    new_models: list[ModelSpec] = []
    for candidate in candidates:
        if candidate.id in existing_ids:
            continue
        # :free, :nitro, :extended ... are tiers of a model, not models
        if variant_delimiter and variant_delimiter in candidate.id:
            continue
        rule = license_for(candidate.id, licenses)
        if rule is None:
            continue
        new_models.append(ModelSpec(
            id=candidate.id,
            name=derive_model_name(candidate.id, candidate.name),
            provider=rule.provider,
            license=rule.license,
        ))
    return new_models


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def format_catalog_entries(new_models: Sequence[ModelSpec]) -> str:
    """YAML list items for new models, grouped by license in first-seen order."""
    by_license: dict[str, list[ModelSpec]] = {}
    for model in new_models:
        by_license.setdefault(model.license, []).append(model)

    lines = ["", AUTO_DISCOVERED_HEADER]
    for models in by_license.values():
        for m in models:
            lines.append(f"  - id: {_quote(m.id)}")
            lines.append(f"    name: {_quote(m.name)}")
            lines.append(f"    provider: {_quote(m.provider)}")
            lines.append(f"    license: {_quote(m.license)}")
            lines.append("")
    return "\n".join(lines) + "\n"


def _catalog_ids(text: str, catalog_path: Path) -> list[str]:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Appending to {catalog_path} would break its YAML: {exc}") from exc
    models = raw.get("models") if isinstance(raw, dict) else None
    if not isinstance(models, list):
        return []
    return [str(m.get("id")) for m in models if isinstance(m, dict)]


def append_models_to_catalog(catalog_path: Path, new_models: Sequence[ModelSpec]) -> bool:
    """Append new entries to models.yaml without touching existing bytes.

    Returns True if the file was written.

    Raises:
        ConfigError: If the appended text would not parse as the old models
            followed by the new ones. The file is left untouched.
    """
    if not new_models:
        return False
    existing = catalog_path.read_text(encoding="utf-8")
    addition = ("" if existing.endswith("\n") else "\n") + format_catalog_entries(new_models)

    expected = _catalog_ids(existing, catalog_path) + [m.id for m in new_models]
    if _catalog_ids(existing + addition, catalog_path) != expected:
        raise ConfigError(
            f"Appending to {catalog_path} would not extend its models list; "
            "'models' must be the last key and a block list"
        )

    with catalog_path.open("a", encoding="utf-8") as f:
        f.write(addition)
    logger.info("Appended %d model(s) to %s", len(new_models), catalog_path)
    return True


async def discover_new_models(
    config: DiscoveryConfig,
    api_key: str,
    existing_ids: set[str],
    client: httpx.AsyncClient | None = None,
) -> tuple[list[ModelSpec], int, int]:
    """Fetch catalog and rankings, return (new_models, catalog_size, ranked_count)."""
    owns_client = client is None
    client = client or httpx.AsyncClient(follow_redirects=True)
    try:
        catalog = await fetch_catalog(client, config, api_key)
        logger.info("Found %d models in remote catalog", len(catalog))
        ranked_ids = await fetch_ranked_ids(client, config)
        logger.info("Found %d ranked model ids", len(ranked_ids))
    finally:
        if owns_client:
            await client.aclose()

    candidates = build_candidates(ranked_ids, catalog, config.licenses)
    new_models = select_new_models(candidates, existing_ids, config.licenses, config.variant_delimiter)
    return new_models, len(catalog), len(ranked_ids)
