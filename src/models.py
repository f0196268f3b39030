"""Dataclasses for query results and the persisted dataset. No I/O."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RunResult:
    success: bool
    content: str | None = None
    error: str | None = None
    tokens_prompt: int | None = None
    tokens_completion: int | None = None
    tokens_reasoning: int | None = None
    reasoning: str | None = None
    finish_reason: str | None = None
    topics: tuple[str, ...] | None = None

    @classmethod
    def failure(cls, error: str) -> "RunResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "content": self.content, "error": self.error}
        out: dict[str, Any] = {"success": True, "content": self.content}
        for key in ("tokens_prompt", "tokens_completion", "tokens_reasoning", "finish_reason", "reasoning"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        if self.topics is not None:
            out["topics"] = list(self.topics)
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "RunResult":
        topics = raw.get("topics")
        return cls(
            success=bool(raw.get("success")),
            content=raw.get("content"),
            error=raw.get("error"),
            tokens_prompt=raw.get("tokens_prompt"),
            tokens_completion=raw.get("tokens_completion"),
            tokens_reasoning=raw.get("tokens_reasoning"),
            reasoning=raw.get("reasoning"),
            finish_reason=raw.get("finish_reason"),
            topics=tuple(topics) if topics is not None else None,
        )


@dataclass
class ModelEntry:
    id: str
    name: str
    provider: str
    license: str
    released: str | None = None
    runs: list[RunResult] = field(default_factory=list)
    # JSON mapping this entry was loaded from; re-emitted verbatim so that
    # previously persisted entries never change on disk.
    source: dict[str, Any] | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        if self.source is not None:
            return self.source
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "license": self.license,
        }
        if self.released:
            out["released"] = self.released
        out["runs"] = [r.to_dict() for r in self.runs]
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ModelEntry":
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            provider=str(raw.get("provider", "")),
            license=str(raw.get("license", "")),
            released=raw.get("released"),
            runs=[RunResult.from_dict(r) for r in raw.get("runs", [])],
            source=raw,
        )


@dataclass
class DatasetMeta:
    prompt: str
    temperature: float
    max_tokens: int
    runs_per_model: int
    generated_at: str  # ISO-8601 UTC, e.g. "2026-10-18T09:30:00.000Z"
    total_models: int


@dataclass
class DatasetStats:
    total_models: int
    total_responses: int
    total_tokens: int
    total_reasoning_tokens: int
    topic_frequency: dict[str, int] = field(default_factory=dict)

    @property
    def top_topics(self) -> list[str]:
        return list(self.topic_frequency)


@dataclass
class Dataset:
    meta: DatasetMeta
    stats: DatasetStats
    models: list[ModelEntry] = field(default_factory=list)

    @property
    def ids(self) -> set[str]:
        return {m.id for m in self.models}


@dataclass
class RunEvent:
    """Progress notification emitted by the query orchestrator."""

    kind: str              # "start", "ok", "fail", "retry", "skip", "done"
    model_id: str
    model_name: str
    index: int = 0         # position of the model in the current batch
    total: int = 0
    run_index: int | None = None
    detail: str = ""
