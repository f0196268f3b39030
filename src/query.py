"""Query orchestration: sequential model calls with the empty-content retry ladder."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from config.config_loader import CatalogConfig, ModelSpec, QueryConfig
from src.models import ModelEntry, RunEvent, RunResult
from src.providers.base import CompletionProvider, EmptyContentError, NetworkError, ProviderError
from src.topics import TopicClassifier

logger = logging.getLogger(__name__)

EMPTY_CONTENT = "empty_content"


class QueryOrchestrator:
    """Drive one completion request per (model, run) pair, one at a time.

    Failures are returned as data on the RunResult; nothing raised by a
    single attempt aborts the batch.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        classifier: TopicClassifier,
        settings: QueryConfig,
        on_event: Callable[[RunEvent], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._classifier = classifier
        self._settings = settings
        self._on_event = on_event
        self._sleep = sleep

    def _emit(self, event: RunEvent) -> None:
        if self._on_event:
            self._on_event(event)

    async def query_run(
        self,
        spec: ModelSpec,
        prompt: str,
        temperature: float,
        max_tokens: int,
        run_index: int = 0,
    ) -> RunResult:
        """Query one run, escalating the token budget while content comes back empty."""
        budgets = [max_tokens, *(t for t in self._settings.retry_max_tokens if t > max_tokens)]
        for attempt, budget in enumerate(budgets):
            if attempt:
                self._emit(RunEvent(
                    "retry", spec.id, spec.name, run_index=run_index,
                    detail=f"retry {attempt}, max_tokens={budget}",
                ))
                logger.info("%s run %d: empty content, retrying with max_tokens=%d", spec.id, run_index + 1, budget)
                await self._sleep(self._settings.retry_backoff_sec)
            try:
                result = await self._provider.complete(spec.id, prompt, temperature, budget)
            except EmptyContentError:
                continue
            except NetworkError as exc:
                logger.info("%s run %d failed: %s", spec.id, run_index + 1, exc)
                return RunResult.failure(exc.detail)
            except ProviderError as exc:
                logger.info("%s run %d failed: %s", spec.id, run_index + 1, exc)
                return RunResult.failure(str(exc))

            topics = tuple(self._classifier.classify(result.content))
            return RunResult(
                success=True,
                content=result.content,
                tokens_prompt=result.tokens_prompt,
                tokens_completion=result.tokens_completion,
                tokens_reasoning=result.tokens_reasoning,
                reasoning=result.reasoning,
                finish_reason=result.finish_reason,
                topics=topics,
            )

        logger.info("%s run %d: empty content after %d attempts", spec.id, run_index + 1, len(budgets))
        return RunResult.failure(EMPTY_CONTENT)

    async def query_model(
        self,
        spec: ModelSpec,
        prompt: str,
        temperature: float,
        max_tokens: int,
        runs: int,
    ) -> ModelEntry:
        results: list[RunResult] = []
        for run_index in range(runs):
            result = await self.query_run(spec, prompt, temperature, max_tokens, run_index)
            results.append(result)
            self._emit(RunEvent(
                "ok" if result.success else "fail", spec.id, spec.name,
                run_index=run_index, detail=result.error or "",
            ))
            if run_index < runs - 1:
                await self._sleep(self._settings.run_delay_sec)

        return ModelEntry(
            id=spec.id,
            name=spec.name,
            provider=spec.provider,
            license=spec.license,
            released=spec.released,
            runs=results,
        )

    async def run(
        self,
        specs: Sequence[ModelSpec],
        catalog: CatalogConfig,
        existing_ids: set[str] | frozenset[str] = frozenset(),
    ) -> list[ModelEntry]:
        """Query every spec not in ``existing_ids``, in catalog order.

        Returns only the newly produced entries.
        """
        entries: list[ModelEntry] = []
        total = len(specs)
        for i, spec in enumerate(specs, start=1):
            if spec.id in existing_ids:
                self._emit(RunEvent("skip", spec.id, spec.name, index=i, total=total))
                continue

            self._emit(RunEvent("start", spec.id, spec.name, index=i, total=total))
            entry = await self.query_model(
                spec,
                prompt=catalog.prompt,
                temperature=catalog.temperature,
                max_tokens=catalog.max_tokens,
                runs=catalog.runs_per_model,
            )
            entries.append(entry)
            succeeded = sum(1 for r in entry.runs if r.success)
            self._emit(RunEvent(
                "done", spec.id, spec.name, index=i, total=total,
                detail=f"{succeeded}/{len(entry.runs)}",
            ))
            logger.info("%s: %d/%d runs succeeded", spec.id, succeeded, len(entry.runs))

            if i < total:
                await self._sleep(self._settings.model_delay_sec)

        return entries
