"""Google Gemini adapter over the ``google-genai`` SDK's async models API."""

from __future__ import annotations

import asyncio
import importlib
import os
import random as random_module
from typing import Any, Final, Protocol, cast

import structlog

from specforge.completion.base import (
    BackoffConfig,
    BaseCompletionService,
    Completion,
    CompletionError,
    InvalidResponseError,
    Message,
    MessageRole,
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

GEMINI_DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"
_TOP_P: Final[float] = 0.95


class _GeminiModelsAPI(Protocol):
    async def generate_content(self, **kwargs: object) -> object: ...


class _GeminiAsyncAPI(Protocol):
    models: _GeminiModelsAPI


class _GeminiClient(Protocol):
    aio: _GeminiAsyncAPI


class GeminiAdapter(BaseCompletionService):
    provider_name = "gemini"
    default_api_key_env = "GEMINI_API_KEY"

    def __init__(
        self,
        *,
        model: str = GEMINI_DEFAULT_MODEL,
        api_key: str | None = None,
        api_key_env: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: _GeminiClient | None = None,
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
        payload = _build_payload(
            messages, model=self.model, temperature=temperature, max_tokens=max_tokens
        )

        async def operation() -> Completion:
            client = self._ensure_client()
            raw = await client.aio.models.generate_content(**payload)
            return self._normalize_response(raw)

        return await run_with_retries(
            operation,
            map_exception=self._map_exception,
            backoff=self._backoff,
            sleep=self._sleep,
            random_fn=self._random_fn,
            on_retry=self._log_retry,
        )

    def _ensure_client(self) -> _GeminiClient:
        if self._client is None:
            self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _GeminiClient:
        try:
            genai_module = importlib.import_module("google.genai")
        except ImportError as exc:
            raise ProviderUnavailableError(
                "google-genai SDK is not installed", provider=self.provider_name
            ) from exc

        client_type = getattr(genai_module, "Client", None)
        if client_type is None:
            raise ProviderUnavailableError(
                "google-genai SDK does not expose Client", provider=self.provider_name
            )

        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        http_options: dict[str, object] = {}
        if self._base_url is not None:
            http_options["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            # The SDK takes its HTTP timeout in milliseconds.
            http_options["timeout"] = int(self._timeout_seconds * 1000)
        if http_options:
            init_kwargs["http_options"] = http_options
        return cast("_GeminiClient", client_type(**init_kwargs))

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
        candidates = read_sequence(raw, "candidates")
        if not candidates:
            raise InvalidResponseError("response has no candidates", provider=self.provider_name)
        chunks = [
            text
            for part in read_sequence(read_value(candidates[0], "content"), "parts")
            if (text := read_str(part, "text")) is not None
        ]
        if not chunks:
            raise InvalidResponseError(
                "candidate does not contain text parts", provider=self.provider_name
            )
        usage = read_value(raw, "usage_metadata")
        return Completion(
            content="".join(chunks),
            model=read_str(raw, "model_version") or self.model,
            provider=self.provider_name,
            input_tokens=read_int(usage, "prompt_token_count") if usage is not None else None,
            output_tokens=(
                read_int(usage, "candidates_token_count") if usage is not None else None
            ),
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


def _build_payload(
    messages: tuple[Message, ...],
    *,
    model: str,
    temperature: float,
    max_tokens: int,
) -> dict[str, object]:
    # System messages become ``system_instruction``; assistant turns use the ``model`` role.
    system_parts = [m.content for m in messages if m.role is MessageRole.SYSTEM]
    contents = [
        {
            "role": "model" if m.role is MessageRole.ASSISTANT else "user",
            "parts": [{"text": m.content}],
        }
        for m in messages
        if m.role is not MessageRole.SYSTEM
    ]
    if not contents:
        raise ValueError("at least one user or assistant message is required")
    config: dict[str, object] = {
        "temperature": temperature,
        "max_output_tokens": max_tokens,
        "top_p": _TOP_P,
        "response_mime_type": "application/json",
    }
    if system_parts:
        config["system_instruction"] = "\n\n".join(system_parts)
    return {"model": model, "contents": contents, "config": config}


__all__ = ["GEMINI_DEFAULT_MODEL", "GeminiAdapter"]
