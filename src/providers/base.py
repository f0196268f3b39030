"""Abstract base for completion providers and the per-attempt error types."""

from abc import ABC, abstractmethod

from src.models import RunResult

TIMEOUT = "timeout"
HTTP_ERROR = "http_error"


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, model_id: str, message: str) -> None:
        self.model_id = model_id
        super().__init__(f"[{model_id}] {message}")


class NetworkError(ProviderError):
    """A single attempt failed in transport: timed out or got a non-2xx reply.

    ``detail`` is what gets recorded on the failed run: ``"timeout"`` for
    timeouts, ``"HTTP <status>: <body>"`` (body cut at 200 chars) otherwise.
    """

    def __init__(self, model_id: str, kind: str, detail: str) -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(model_id, f"{kind}: {detail}")


class EmptyContentError(ProviderError):
    """A 2xx reply whose content was empty or whitespace only."""

    def __init__(self, model_id: str, max_tokens: int, finish_reason: str | None = None) -> None:
        self.max_tokens = max_tokens
        self.finish_reason = finish_reason
        super().__init__(model_id, f"Empty content (max_tokens={max_tokens}, finish_reason={finish_reason})")


class CompletionProvider(ABC):
    """Abstract base for completion APIs."""

    @abstractmethod
    def name(self) -> str:
        """Return a short provider name for logs."""
        ...

    @abstractmethod
    async def complete(
        self,
        model_id: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> RunResult:
        """Send one completion request.

        Args:
            model_id: Provider-qualified model identifier.
            prompt: Single user message.
            temperature: Sampling temperature.
            max_tokens: Completion token budget for this attempt.

        Returns:
            A successful RunResult with non-empty content (topics unset).

        Raises:
            NetworkError: On timeout, non-2xx status or malformed reply.
            EmptyContentError: When the reply has no usable content.
        """
        ...
