"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import CatalogConfig, ModelSpec, QueryConfig, SiteConfig
from src.models import Dataset, ModelEntry, RunResult
from src.providers.base import CompletionProvider
from src.topics import TopicClassifier

TOPICS = {
    "jellyfish": ["jellyfish", "medusa", "cnidarian"],
    "octopus": ["octopus", "octopi", "cephalopod"],
    "honey": ["honey never spoils", "honey doesn't expire"],
    "bananas": ["bananas are berries", "banana.*radioactive"],
    "tardigrade": ["tardigrade", "water bear"],
}


@pytest.fixture
def query_config() -> QueryConfig:
    return QueryConfig(
        retry_max_tokens=(2500, 5000, 10000),
        retry_backoff_sec=0.0,
        run_delay_sec=0.0,
        model_delay_sec=0.0,
    )


@pytest.fixture
def classifier() -> TopicClassifier:
    return TopicClassifier(TOPICS)


@pytest.fixture
def sample_specs() -> list[ModelSpec]:
    return [
        ModelSpec(id="anthropic/claude-sonnet-4", name="Claude Sonnet 4", provider="Anthropic", license="commercial"),
        ModelSpec(id="qwen/qwen3-32b", name="Qwen3 32B", provider="Alibaba", license="open-source",
                  released="2025-04-29"),
    ]


@pytest.fixture
def sample_catalog(sample_specs: list[ModelSpec]) -> CatalogConfig:
    return CatalogConfig(
        prompt="Tell me something I don't know.",
        temperature=0.7,
        max_tokens=1000,
        runs_per_model=3,
        models=sample_specs,
    )


@pytest.fixture
def site_config(tmp_path: Path) -> SiteConfig:
    return SiteConfig(
        dir=tmp_path / "site",
        url="https://example.test",
        title="Tell Me Something I Don't Know",
        author="Test Author",
        author_url="https://example.test/me",
        callout_topic="jellyfish",
    )


def ok_run(content: str, topics: tuple[str, ...] = (), tokens: int = 50) -> RunResult:
    return RunResult(
        success=True,
        content=content,
        tokens_prompt=12,
        tokens_completion=tokens,
        finish_reason="stop",
        topics=topics,
    )


@pytest.fixture
def sample_entries() -> list[ModelEntry]:
    return [
        ModelEntry(
            id="anthropic/claude-sonnet-4",
            name="Claude Sonnet 4",
            provider="Anthropic",
            license="commercial",
            runs=[
                ok_run("The **immortal jellyfish** can revert to its juvenile form.", ("jellyfish",), 40),
                ok_run("Octopuses have three hearts and a jellyfish has none.", ("jellyfish", "octopus"), 30),
                RunResult.failure("timeout"),
            ],
        ),
        ModelEntry(
            id="qwen/qwen3-32b",
            name="Qwen3 32B",
            provider="Alibaba",
            license="open-source",
            released="2025-04-29",
            runs=[
                ok_run("Honey never spoils; edible honey was found in tombs.", ("honey",), 20),
                ok_run("Tardigrades survive the vacuum of space.", ("tardigrade",), 25),
                ok_run("Bananas are berries, but strawberries are not.", ("bananas",), 15),
            ],
        ),
    ]


@pytest.fixture
def sample_dataset(sample_catalog: CatalogConfig, sample_entries: list[ModelEntry]) -> Dataset:
    from src.dataset import build_dataset

    return build_dataset(sample_catalog, sample_entries, generated_at="2026-10-18T09:30:00.000Z")


class MockProvider(CompletionProvider):
    """Test double CompletionProvider."""

    def __init__(self, content: str = "Mock response about a jellyfish.") -> None:
        self._content = content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because complete is defined in the class body below.
        self.complete = AsyncMock(  # type: ignore[assignment]
            return_value=RunResult(
                success=True,
                content=content,
                tokens_prompt=10,
                tokens_completion=20,
                finish_reason="stop",
            )
        )

    def name(self) -> str:
        return "mock"

    async def complete(self, model_id, prompt, temperature, max_tokens) -> RunResult:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return RunResult(success=True, content=self._content)


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()
