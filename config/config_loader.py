"""Load settings.yaml and the models.yaml catalog into typed dataclasses."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_CONFIG_DIR = Path(__file__).parent
_SETTINGS_PATH = _CONFIG_DIR / "settings.yaml"
_CATALOG_PATH = _CONFIG_DIR / "models.yaml"

LICENSES = ("commercial", "open-weights", "open-source")


class ConfigError(Exception):
    """Raised when settings, catalog or credentials are unusable."""


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    api_key_env: str
    timeout_sec: float
    referer: str = ""
    title: str = ""

    def api_key(self) -> str:
        return os.environ.get(self.api_key_env, "").strip()


@dataclass(frozen=True)
class QueryConfig:
    retry_max_tokens: tuple[int, ...]
    retry_backoff_sec: float
    run_delay_sec: float
    model_delay_sec: float


@dataclass(frozen=True)
class LicenseRule:
    prefix: str
    license: str
    provider: str


@dataclass(frozen=True)
class DiscoveryConfig:
    models_url: str
    rankings_url: str
    timeout_sec: float
    user_agent: str
    variant_delimiter: str
    licenses: tuple[LicenseRule, ...] = ()


@dataclass(frozen=True)
class SiteConfig:
    dir: Path
    url: str
    title: str
    author: str = ""
    author_url: str = ""
    callout_topic: str = "jellyfish"


@dataclass
class AppConfig:
    api: ApiConfig
    query: QueryConfig
    discovery: DiscoveryConfig
    site: SiteConfig
    topics: dict[str, list[str]] = field(default_factory=dict)
    topic_emojis: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelSpec:
    id: str
    name: str
    provider: str
    license: str
    released: str | None = None


@dataclass
class CatalogConfig:
    prompt: str
    temperature: float
    max_tokens: int
    runs_per_model: int
    models: list[ModelSpec] = field(default_factory=list)

    @property
    def ids(self) -> set[str]:
        return {m.id for m in self.models}


def _read_yaml(path: Path) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return raw


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load application settings from settings.yaml.

    Raises ConfigError if the file is missing or a required key is absent.
    """
    raw = _read_yaml(settings_path)

    try:
        api_raw = raw["api"]
        api = ApiConfig(
            base_url=str(api_raw["base_url"]),
            api_key_env=str(api_raw["api_key_env"]),
            timeout_sec=float(api_raw["timeout_sec"]),
            referer=str(api_raw.get("referer", "")),
            title=str(api_raw.get("title", "")),
        )

        query_raw = raw["query"]
        query = QueryConfig(
            retry_max_tokens=tuple(int(t) for t in query_raw["retry_max_tokens"]),
            retry_backoff_sec=float(query_raw["retry_backoff_sec"]),
            run_delay_sec=float(query_raw["run_delay_sec"]),
            model_delay_sec=float(query_raw["model_delay_sec"]),
        )

        disc_raw = raw["discovery"]
        discovery = DiscoveryConfig(
            models_url=str(disc_raw["models_url"]),
            rankings_url=str(disc_raw["rankings_url"]),
            timeout_sec=float(disc_raw["timeout_sec"]),
            user_agent=str(disc_raw.get("user_agent", "")),
            variant_delimiter=str(disc_raw.get("variant_delimiter", ":")),
            licenses=tuple(
                LicenseRule(prefix=str(r["prefix"]), license=str(r["license"]), provider=str(r["provider"]))
                for r in disc_raw.get("licenses", [])
            ),
        )

        site_raw = raw["site"]
        site = SiteConfig(
            dir=Path(site_raw["dir"]),
            url=str(site_raw["url"]).rstrip("/"),
            title=str(site_raw["title"]),
            author=str(site_raw.get("author", "")),
            author_url=str(site_raw.get("author_url", "")),
            callout_topic=str(site_raw.get("callout_topic", "jellyfish")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings in {settings_path}: {exc}") from exc

    topics = {str(t): [str(p) for p in patterns] for t, patterns in (raw.get("topics") or {}).items()}
    emojis = {str(t): str(e) for t, e in (raw.get("topic_emojis") or {}).items()}

    logger.debug("Loaded settings from %s (%d topics)", settings_path, len(topics))

    return AppConfig(
        api=api,
        query=query,
        discovery=discovery,
        site=site,
        topics=topics,
        topic_emojis=emojis,
    )


def load_catalog(catalog_path: Path = _CATALOG_PATH) -> CatalogConfig:
    """Load the model catalog (prompt, run settings and model list).

    Raises ConfigError on a missing file, a malformed entry, an unknown
    license or a duplicated model id.
    """
    raw = _read_yaml(catalog_path)

    models: list[ModelSpec] = []
    seen: set[str] = set()
    try:
        for entry in raw.get("models") or []:
            spec = ModelSpec(
                id=str(entry["id"]),
                name=str(entry["name"]),
                provider=str(entry["provider"]),
                license=str(entry["license"]),
                released=str(entry["released"]) if entry.get("released") else None,
            )
            if spec.license not in LICENSES:
                raise ConfigError(f"Unknown license '{spec.license}' for {spec.id}")
            if spec.id in seen:
                raise ConfigError(f"Duplicate model id in catalog: {spec.id}")
            seen.add(spec.id)
            models.append(spec)

        catalog = CatalogConfig(
            prompt=str(raw["prompt"]),
            temperature=float(raw["temperature"]),
            max_tokens=int(raw["max_tokens"]),
            runs_per_model=int(raw.get("runs_per_model", 3)),
            models=models,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid catalog {catalog_path}: {exc}") from exc

    logger.debug("Loaded %d models from %s", len(models), catalog_path)
    return catalog
