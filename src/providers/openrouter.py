"""OpenRouter provider using the openai SDK (OpenAI-compatible API)."""

import asyncio
import logging
import time
from typing import Any

import openai
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion

from config.config_loader import ApiConfig, ConfigError
from src.models import RunResult
from src.providers.base import HTTP_ERROR, TIMEOUT, CompletionProvider, EmptyContentError, NetworkError

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 200


def _extra(obj: Any) -> dict[str, Any]:
    """Fields the SDK models don't declare (OpenRouter extensions)."""
    return getattr(obj, "model_extra", None) or {}


def _reasoning_tokens(usage: Any) -> int | None:
    if usage is None:
        return None
    details = getattr(usage, "completion_tokens_details", None)
    if details is not None and getattr(details, "reasoning_tokens", None) is not None:
        return details.reasoning_tokens
    return _extra(usage).get("reasoning_tokens")


class OpenRouterProvider(CompletionProvider):
    """Chat completions against OpenRouter via AsyncOpenAI."""

    def __init__(self, config: ApiConfig, client: AsyncOpenAI | None = None) -> None:
        self._config = config
        if client is None:
            api_key = config.api_key()
            if not api_key:
                raise ConfigError(f"Missing API key: set {config.api_key_env}")
            headers = {}
            if config.referer:
                headers["HTTP-Referer"] = config.referer
            if config.title:
                headers["X-Title"] = config.title
            # One request per attempt: retries are decided by the orchestrator
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=config.base_url,
                default_headers=headers,
                max_retries=0,
            )
        self._client = client

    def name(self) -> str:
        return "openrouter"

    async def complete(
        self,
        model_id: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> RunResult:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model_id,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temperature,
                    max_tokens=max_tokens,
                    extra_body={"include_reasoning": True},
                ),
                timeout=self._config.timeout_sec,
            )
        except (TimeoutError, openai.APITimeoutError) as exc:
            raise NetworkError(model_id, TIMEOUT, TIMEOUT) from exc
        except openai.APIStatusError as exc:
            body = exc.response.text if exc.response is not None else str(exc)
            raise NetworkError(
                model_id, HTTP_ERROR, f"HTTP {exc.status_code}: {body[:_ERROR_BODY_LIMIT]}"
            ) from exc
        except openai.OpenAIError as exc:
            raise NetworkError(model_id, HTTP_ERROR, str(exc)[:_ERROR_BODY_LIMIT]) from exc
        except ValueError as exc:
            # 2xx with an application/json body that doesn't parse
            raise NetworkError(model_id, HTTP_ERROR, f"Malformed response: {exc}"[:_ERROR_BODY_LIMIT]) from exc

        latency = time.monotonic() - start

        # Non-JSON 2xx bodies come back from the SDK as plain text
        if not isinstance(response, ChatCompletion):
            raise NetworkError(
                model_id, HTTP_ERROR, f"Malformed response: got {type(response).__name__}, not a chat completion"
            )
        choice = response.choices[0] if response.choices else None
        if choice is None or choice.message is None:
            raise NetworkError(model_id, HTTP_ERROR, "Malformed response: no choices")

        content = choice.message.content
        finish_reason = choice.finish_reason or "unknown"
        if not content or not content.strip():
            raise EmptyContentError(model_id, max_tokens, finish_reason)

        usage = response.usage
        reasoning = _extra(choice.message).get("reasoning") or None

        logger.info(
            "OpenRouter %s: %.2fs, %s completion tokens",
            model_id,
            latency,
            usage.completion_tokens if usage else None,
        )

        return RunResult(
            success=True,
            content=content,
            tokens_prompt=(usage.prompt_tokens or 0) if usage else 0,
            tokens_completion=(usage.completion_tokens or 0) if usage else 0,
            tokens_reasoning=_reasoning_tokens(usage),
            reasoning=reasoning,
            finish_reason=finish_reason,
        )
