"""
OpenAI chat-completions adapter.

Also serves OpenAI-compatible endpoints (Ollama) through ``base_url``. The SDK is imported
lazily so the package installs without it; tests inject a fake ``client``.
"""

from __future__ import annotations

import asyncio
import importlib
import os
import random as random_module
from typing import Any, Protocol, cast

import structlog

from specforge.completion.base import (
    BackoffConfig,
    BaseCompletionService,
    Completion,
    CompletionError,
    InvalidResponseError,
    Message,
    ProviderAuthenticationError,
    ProviderUnavailableError,
    RandomFn,
    SleepFn,
    classify_exception,
    read_int,
    read_sequence,
    read_str,
    read_value,
    run_with_retries,
)

OLLAMA_BASE_URL = "http://localhost:11434/v1"
OLLAMA_DEFAULT_MODEL = "llama3.2"


class _ChatCompletionsAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _ChatAPI(Protocol):
    completions: _ChatCompletionsAPI


class _OpenAIClient(Protocol):
    chat: _ChatAPI


class OpenAIAdapter(BaseCompletionService):
    """Chat completions over the ``openai`` SDK with an optional injected client."""

    provider_name = "openai"
    default_api_key_env = "OPENAI_API_KEY"

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None = None,
        api_key_env: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: _OpenAIClient | None = None,
        backoff: BackoffConfig | None = None,
        sleep: SleepFn = asyncio.sleep,
        random_fn: RandomFn = random_module.random,
        logger: Any | None = None,
    ) -> None:
        super().__init__(model=model)
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._base_url = base_url
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._backoff = backoff if backoff is not None else BackoffConfig()
        self._sleep = sleep
        self._random_fn = random_fn
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def _complete(
        self,
        messages: tuple[Message, ...],
        *,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        payload: dict[str, object] = {
            "model": self.model,
            "messages": [message.to_dict() for message in messages],
            "temperature": temperature,
        }
        payload[self._max_tokens_field()] = max_tokens

        async def operation() -> Completion:
            client = self._ensure_client()
            raw = await client.chat.completions.create(**payload)
            return self._normalize_response(raw)

        return await run_with_retries(
            operation,
            map_exception=self._map_exception,
            backoff=self._backoff,
            sleep=self._sleep,
            random_fn=self._random_fn,
            on_retry=self._log_retry,
        )

    def _max_tokens_field(self) -> str:
        # Only the legacy gpt-3.5/gpt-4 family accepts ``max_tokens``.
        model = self.model.lower()
        if model.startswith("gpt-3.5") or model == "gpt-4" or model.startswith("gpt-4-"):
            return "max_tokens"
        return "max_completion_tokens"

    def _ensure_client(self) -> _OpenAIClient:
        if self._client is None:
            self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _OpenAIClient:
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise ProviderUnavailableError(
                "openai SDK is not installed", provider=self.provider_name
            ) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise ProviderUnavailableError(
                "openai SDK does not expose AsyncOpenAI", provider=self.provider_name
            )

        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._base_url is not None:
            init_kwargs["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_OpenAIClient", async_openai(**init_kwargs))

    def _resolve_api_key(self) -> str:
        if self._api_key is not None and self._api_key.strip():
            return self._api_key
        env_name = self._api_key_env or self.default_api_key_env
        configured = os.getenv(env_name)
        if configured is None or not configured.strip():
            raise ProviderAuthenticationError(
                f"missing API key; set {env_name}",
                provider=self.provider_name,
                http_status=401,
            )
        return configured

    def _normalize_response(self, raw: object) -> Completion:
        choices = read_sequence(raw, "choices")
        if not choices:
            raise InvalidResponseError("response has no choices", provider=self.provider_name)
        message = read_value(choices[0], "message")
        content = read_str(message, "content") if message is not None else None
        if content is None:
            raise InvalidResponseError(
                "first choice has no text content", provider=self.provider_name
            )
        usage = read_value(raw, "usage")
        return Completion(
            content=content,
            model=read_str(raw, "model") or self.model,
            provider=self.provider_name,
            input_tokens=read_int(usage, "prompt_tokens") if usage is not None else None,
            output_tokens=read_int(usage, "completion_tokens") if usage is not None else None,
        )

    def _map_exception(self, exc: Exception) -> CompletionError:
        return classify_exception(exc, provider=self.provider_name)

    def _log_retry(self, attempt: int, error: CompletionError, delay_seconds: float) -> None:
        self._logger.warning(
            "completion_retry",
            provider=self.provider_name,
            model=self.model,
            attempt=attempt,
            code=error.code,
            delay_seconds=delay_seconds,
        )


class OllamaAdapter(OpenAIAdapter):
    """Local Ollama server through its OpenAI-compatible endpoint; no API key needed."""

    provider_name = "ollama"
    default_api_key_env = "OLLAMA_API_KEY"

    def __init__(
        self, *, model: str = OLLAMA_DEFAULT_MODEL, base_url: str | None = None, **kwargs: Any
    ) -> None:
        super().__init__(model=model, base_url=base_url or OLLAMA_BASE_URL, **kwargs)

    def _resolve_api_key(self) -> str:
        # The OpenAI client requires a non-empty key; Ollama ignores it.
        env_name = self._api_key_env or self.default_api_key_env
        return self._api_key or os.getenv(env_name) or "ollama"

    def _max_tokens_field(self) -> str:
        return "max_tokens"


__all__ = ["OLLAMA_BASE_URL", "OLLAMA_DEFAULT_MODEL", "OllamaAdapter", "OpenAIAdapter"]
