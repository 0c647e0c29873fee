"""Anthropic messages adapter with lazy SDK import and injected client support."""

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


class _AnthropicMessagesAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _AnthropicClient(Protocol):
    messages: _AnthropicMessagesAPI


class AnthropicAdapter(BaseCompletionService):
    provider_name = "anthropic"
    default_api_key_env = "ANTHROPIC_API_KEY"

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None = None,
        api_key_env: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: _AnthropicClient | None = None,
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
            raw = await client.messages.create(**payload)
            return self._normalize_response(raw)

        return await run_with_retries(
            operation,
            map_exception=self._map_exception,
            backoff=self._backoff,
            sleep=self._sleep,
            random_fn=self._random_fn,
            on_retry=self._log_retry,
        )

    def _ensure_client(self) -> _AnthropicClient:
        if self._client is None:
            self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _AnthropicClient:
        try:
            anthropic_module = importlib.import_module("anthropic")
        except ImportError as exc:
            raise ProviderUnavailableError(
                "anthropic SDK is not installed", provider=self.provider_name
            ) from exc

        async_anthropic = getattr(anthropic_module, "AsyncAnthropic", None)
        if async_anthropic is None:
            raise ProviderUnavailableError(
                "anthropic SDK does not expose AsyncAnthropic", provider=self.provider_name
            )

        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._base_url is not None:
            init_kwargs["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_AnthropicClient", async_anthropic(**init_kwargs))

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
        chunks = [
            text
            for item in read_sequence(raw, "content")
            if (read_str(item, "type") or "").lower() == "text"
            and (text := read_str(item, "text")) is not None
        ]
        if not chunks:
            raise InvalidResponseError(
                "response does not contain text content", provider=self.provider_name
            )
        usage = read_value(raw, "usage")
        return Completion(
            content="".join(chunks),
            model=read_str(raw, "model") or self.model,
            provider=self.provider_name,
            input_tokens=read_int(usage, "input_tokens") if usage is not None else None,
            output_tokens=read_int(usage, "output_tokens") if usage is not None else None,
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
    # System messages travel in the top-level ``system`` field, not the message list.
    system_parts = [m.content for m in messages if m.role is MessageRole.SYSTEM]
    chat = [m.to_dict() for m in messages if m.role is not MessageRole.SYSTEM]
    if not chat:
        raise ValueError("at least one user or assistant message is required")
    payload: dict[str, object] = {
        "model": model,
        "messages": chat,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if system_parts:
        payload["system"] = "\n\n".join(system_parts)
    return payload


__all__ = ["AnthropicAdapter"]
