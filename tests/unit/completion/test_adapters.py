"""
Unit tests for the completion adapters and shared provider plumbing.

Coverage:
- Payload shape and reply normalization for OpenAI, Ollama, Anthropic and Gemini.
- Exception classification and bounded retry on rate limits.
- Lazy SDK import and API-key resolution.
- Scripted service recording.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

import pytest

from specforge.completion import anthropic_adapter, gemini_adapter, openai_adapter
from specforge.completion.anthropic_adapter import AnthropicAdapter
from specforge.completion.base import (
    BackoffConfig,
    CompletionError,
    CompletionService,
    InvalidResponseError,
    Message,
    MessageRole,
    ProviderAuthenticationError,
    ProviderError,
    ProviderInvalidRequestError,
    ProviderRegistry,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitedError,
    classify_exception,
    compute_backoff_delay,
    read_status_code,
)
from specforge.completion.gemini_adapter import GEMINI_DEFAULT_MODEL, GeminiAdapter
from specforge.completion.openai_adapter import (
    OLLAMA_BASE_URL,
    OLLAMA_DEFAULT_MODEL,
    OllamaAdapter,
    OpenAIAdapter,
)
from specforge.completion.scripted import ScriptedCompletionService


@dataclass(slots=True)
class _ScriptedCreate:
    outcomes: deque[object | Exception]
    calls: list[dict[str, object]] = field(default_factory=list)

    async def create(self, **kwargs: object) -> object:
        self.calls.append(dict(kwargs))
        if not self.outcomes:
            raise RuntimeError("scripted outcomes exhausted")
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@dataclass(slots=True)
class _FakeOpenAIClient:
    completions: _ScriptedCreate

    @property
    def chat(self) -> SimpleNamespace:
        return SimpleNamespace(completions=self.completions)


@dataclass(slots=True)
class _FakeAnthropicClient:
    messages: _ScriptedCreate


@dataclass(slots=True)
class _SleepRecorder:
    calls: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class RateLimitError(Exception):
    status_code = 429


class AuthenticationError(Exception):
    status_code = 401


class APIConnectionError(Exception):
    pass


class APITimeoutError(Exception):
    pass


class BadRequestError(Exception):
    pass


def _openai_reply(content: str | None = "hello", *, model: str = "gpt-4o-2024") -> object:
    return {
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3},
    }


def _openai(
    *outcomes: object | Exception,
    model: str = "gpt-4o",
    sleep: _SleepRecorder | None = None,
) -> tuple[OpenAIAdapter, _ScriptedCreate]:
    api = _ScriptedCreate(deque(outcomes))
    adapter = OpenAIAdapter(
        model=model,
        client=_FakeOpenAIClient(api),
        sleep=sleep if sleep is not None else _SleepRecorder(),
    )
    return adapter, api


_MESSAGES = (Message.system("Be terse."), Message.user("Say hello."))


# OpenAI / Ollama ------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_openai_sends_chat_payload_and_normalizes_reply() -> None:
    adapter, api = _openai(_openai_reply())

    completion = await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=256)

    assert completion.content == "hello"
    assert completion.model == "gpt-4o-2024"
    assert completion.provider == "openai"
    assert (completion.input_tokens, completion.output_tokens) == (12, 3)
    assert api.calls == [
        {
            "model": "gpt-4o",
            "messages": [
                {"role": "system", "content": "Be terse."},
                {"role": "user", "content": "Say hello."},
            ],
            "temperature": 0.0,
            "max_completion_tokens": 256,
        }
    ]


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("model", "field_name"),
    [
        ("gpt-4", "max_tokens"),
        ("gpt-4-turbo", "max_tokens"),
        ("gpt-3.5-turbo", "max_tokens"),
        ("gpt-4o", "max_completion_tokens"),
        ("gpt-4.1-mini", "max_completion_tokens"),
        ("o3-mini", "max_completion_tokens"),
    ],
)
async def test_openai_token_limit_field_depends_on_model(model: str, field_name: str) -> None:
    adapter, api = _openai(_openai_reply(), model=model)

    await adapter.complete(_MESSAGES, temperature=0.2, max_tokens=100)

    assert api.calls[0][field_name] == 100
    other = "max_tokens" if field_name == "max_completion_tokens" else "max_completion_tokens"
    assert other not in api.calls[0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rate_limits_retry_with_bounded_backoff() -> None:
    sleep = _SleepRecorder()
    adapter, api = _openai(
        RateLimitError("slow down"), RateLimitError("slow down"), _openai_reply(), sleep=sleep
    )

    completion = await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert completion.content == "hello"
    assert len(api.calls) == 3
    assert sleep.calls == [0.25, 0.5]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rate_limit_exhaustion_raises_normalized_error() -> None:
    sleep = _SleepRecorder()
    adapter, api = _openai(*(RateLimitError("slow down") for _ in range(3)), sleep=sleep)

    with pytest.raises(RateLimitedError) as excinfo:
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert excinfo.value.provider == "openai"
    assert excinfo.value.http_status == 429
    assert isinstance(excinfo.value.__cause__, RateLimitError)
    assert len(api.calls) == 3
    assert len(sleep.calls) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_auth_errors_are_not_retried() -> None:
    sleep = _SleepRecorder()
    adapter, api = _openai(AuthenticationError("bad key"), _openai_reply(), sleep=sleep)

    with pytest.raises(ProviderAuthenticationError, match="code=auth"):
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert len(api.calls) == 1
    assert sleep.calls == []


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        {"choices": []},
        {"choices": [{"message": {"content": "   "}}]},
        {"choices": [{"message": None}]},
        SimpleNamespace(choices=None),
    ],
    ids=["no-choices", "blank-content", "no-message", "object-without-choices"],
)
async def test_openai_unusable_reply_is_invalid_response(raw: object) -> None:
    adapter, api = _openai(raw)

    with pytest.raises(InvalidResponseError):
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert len(api.calls) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_openai_accepts_sdk_style_objects() -> None:
    raw = SimpleNamespace(
        model="gpt-4o",
        choices=[SimpleNamespace(message=SimpleNamespace(content="from object"))],
        usage=None,
    )
    adapter, _ = _openai(raw)

    completion = await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert completion.content == "from object"
    assert completion.input_tokens is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_base_service_validates_arguments() -> None:
    adapter, api = _openai(_openai_reply())

    with pytest.raises(ValueError, match="messages"):
        await adapter.complete((), temperature=0.0, max_tokens=10)
    with pytest.raises(ValueError, match="temperature"):
        await adapter.complete(_MESSAGES, temperature=2.5, max_tokens=10)
    with pytest.raises(ValueError, match="max_tokens"):
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=0)
    with pytest.raises(ValueError, match="model"):
        OpenAIAdapter(model="  ")
    assert api.calls == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_sdk_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_import(name: str) -> object:
        raise ImportError(name)

    monkeypatch.setattr(openai_adapter.importlib, "import_module", fail_import)
    adapter = OpenAIAdapter(model="gpt-4o", api_key="sk-test")

    with pytest.raises(ProviderUnavailableError, match="openai SDK is not installed"):
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_lazy_client_uses_env_key_base_url_and_timeout(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    created: list[dict[str, Any]] = []
    api = _ScriptedCreate(deque([_openai_reply(), _openai_reply()]))

    def async_openai(**kwargs: Any) -> _FakeOpenAIClient:
        created.append(kwargs)
        return _FakeOpenAIClient(api)

    monkeypatch.setattr(
        openai_adapter.importlib,
        "import_module",
        lambda name: SimpleNamespace(AsyncOpenAI=async_openai),
    )
    monkeypatch.setenv("SPECFORGE_TEST_OPENAI_KEY", "sk-from-env")
    adapter = OpenAIAdapter(
        model="gpt-4o",
        api_key_env="SPECFORGE_TEST_OPENAI_KEY",
        base_url="https://llm.internal/v1",
        timeout_seconds=30.0,
    )

    await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)
    await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert created == [
        {"api_key": "sk-from-env", "base_url": "https://llm.internal/v1", "timeout": 30.0}
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_api_key_is_authentication_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        openai_adapter.importlib,
        "import_module",
        lambda name: SimpleNamespace(AsyncOpenAI=lambda **kwargs: None),
    )
    monkeypatch.delenv("SPECFORGE_TEST_MISSING_KEY", raising=False)
    adapter = OpenAIAdapter(model="gpt-4o", api_key_env="SPECFORGE_TEST_MISSING_KEY")

    with pytest.raises(ProviderAuthenticationError, match="set SPECFORGE_TEST_MISSING_KEY"):
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ollama_defaults_to_local_server_without_key(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    created: list[dict[str, Any]] = []
    api = _ScriptedCreate(deque([_openai_reply(model="llama3.2")]))

    def async_openai(**kwargs: Any) -> _FakeOpenAIClient:
        created.append(kwargs)
        return _FakeOpenAIClient(api)

    monkeypatch.setattr(
        openai_adapter.importlib,
        "import_module",
        lambda name: SimpleNamespace(AsyncOpenAI=async_openai),
    )
    monkeypatch.delenv("OLLAMA_API_KEY", raising=False)
    adapter = OllamaAdapter()

    completion = await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=64)

    assert adapter.model == OLLAMA_DEFAULT_MODEL
    assert completion.provider == "ollama"
    assert created == [{"api_key": "ollama", "base_url": OLLAMA_BASE_URL}]
    assert api.calls[0]["max_tokens"] == 64
    assert "max_completion_tokens" not in api.calls[0]


# Anthropic ------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_anthropic_moves_system_prompt_and_joins_text_blocks() -> None:
    api = _ScriptedCreate(
        deque(
            [
                {
                    "model": "claude-sonnet-4-5",
                    "content": [
                        {"type": "text", "text": "Hel"},
                        {"type": "tool_use", "name": "ignored"},
                        {"type": "text", "text": "lo"},
                    ],
                    "usage": {"input_tokens": 20, "output_tokens": 2},
                }
            ]
        )
    )
    adapter = AnthropicAdapter(model="claude-sonnet-4-5", client=_FakeAnthropicClient(api))

    completion = await adapter.complete(_MESSAGES, temperature=0.3, max_tokens=512)

    assert completion.content == "Hello"
    assert completion.provider == "anthropic"
    assert (completion.input_tokens, completion.output_tokens) == (20, 2)
    assert api.calls == [
        {
            "model": "claude-sonnet-4-5",
            "messages": [{"role": "user", "content": "Say hello."}],
            "temperature": 0.3,
            "max_tokens": 512,
            "system": "Be terse.",
        }
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_anthropic_retries_timeouts_then_fails_on_empty_content() -> None:
    sleep = _SleepRecorder()
    api = _ScriptedCreate(deque([APITimeoutError("took too long"), {"content": []}]))
    adapter = AnthropicAdapter(
        model="claude-sonnet-4-5",
        client=_FakeAnthropicClient(api),
        sleep=sleep,
        backoff=BackoffConfig(max_retries=1, initial_delay_seconds=0.1, max_delay_seconds=1.0),
    )

    with pytest.raises(InvalidResponseError, match="text content"):
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert len(api.calls) == 2
    assert sleep.calls == [0.1]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_anthropic_requires_a_non_system_message() -> None:
    api = _ScriptedCreate(deque())
    adapter = AnthropicAdapter(model="claude-sonnet-4-5", client=_FakeAnthropicClient(api))

    with pytest.raises(ValueError, match="user or assistant"):
        await adapter.complete((Message.system("only system"),), temperature=0.0, max_tokens=10)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_anthropic_missing_sdk_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_import(name: str) -> object:
        raise ImportError(name)

    monkeypatch.setattr(anthropic_adapter.importlib, "import_module", fail_import)
    adapter = AnthropicAdapter(model="claude-sonnet-4-5", api_key="sk-ant-test")

    with pytest.raises(ProviderUnavailableError) as excinfo:
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert excinfo.value.retryable is False


# Gemini ---------------------------------------------------------------------------


@dataclass(slots=True)
class _FakeGeminiClient:
    api: _ScriptedCreate

    @property
    def aio(self) -> SimpleNamespace:
        return SimpleNamespace(models=SimpleNamespace(generate_content=self.api.create))


class ClientError(Exception):
    def __init__(self, message: str, code: int) -> None:
        super().__init__(message)
        self.code = code


def _gemini_reply(*texts: str) -> object:
    return {
        "model_version": "gemini-2.5-flash-001",
        "candidates": [{"content": {"role": "model", "parts": [{"text": t} for t in texts]}}],
        "usage_metadata": {"prompt_token_count": 30, "candidates_token_count": 4},
    }


@pytest.mark.unit
@pytest.mark.asyncio
async def test_gemini_sends_system_instruction_and_model_role() -> None:
    api = _ScriptedCreate(deque([_gemini_reply("Hel", "lo")]))
    adapter = GeminiAdapter(client=_FakeGeminiClient(api))
    messages = (
        *_MESSAGES,
        Message(role=MessageRole.ASSISTANT, content="Hi."),
        Message.user("Again."),
    )

    completion = await adapter.complete(messages, temperature=0.2, max_tokens=256)

    assert completion.content == "Hello"
    assert completion.provider == "gemini"
    assert completion.model == "gemini-2.5-flash-001"
    assert (completion.input_tokens, completion.output_tokens) == (30, 4)
    assert api.calls == [
        {
            "model": GEMINI_DEFAULT_MODEL,
            "contents": [
                {"role": "user", "parts": [{"text": "Say hello."}]},
                {"role": "model", "parts": [{"text": "Hi."}]},
                {"role": "user", "parts": [{"text": "Again."}]},
            ],
            "config": {
                "temperature": 0.2,
                "max_output_tokens": 256,
                "top_p": 0.95,
                "response_mime_type": "application/json",
                "system_instruction": "Be terse.",
            },
        }
    ]


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ({"candidates": []}, "no candidates"),
        ({"candidates": [{"content": {"parts": [{"inline_data": "x"}]}}]}, "text parts"),
    ],
)
async def test_gemini_unusable_reply_is_invalid_response(raw: object, message: str) -> None:
    adapter = GeminiAdapter(client=_FakeGeminiClient(_ScriptedCreate(deque([raw]))))

    with pytest.raises(InvalidResponseError, match=message):
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_gemini_retries_rate_limits_reported_through_code() -> None:
    sleep = _SleepRecorder()
    api = _ScriptedCreate(deque([ClientError("RESOURCE_EXHAUSTED", 429), _gemini_reply("ok")]))
    adapter = GeminiAdapter(client=_FakeGeminiClient(api), sleep=sleep)

    completion = await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert completion.content == "ok"
    assert len(api.calls) == 2
    assert sleep.calls == [0.25]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_gemini_permission_denied_is_not_retried() -> None:
    api = _ScriptedCreate(deque([ClientError("PERMISSION_DENIED", 403)]))
    adapter = GeminiAdapter(client=_FakeGeminiClient(api))

    with pytest.raises(ProviderAuthenticationError):
        await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert len(api.calls) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_gemini_lazy_client_passes_http_options_in_milliseconds(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    created: list[dict[str, Any]] = []
    imported: list[str] = []
    api = _ScriptedCreate(deque([_gemini_reply("ok")]))

    def client(**kwargs: Any) -> _FakeGeminiClient:
        created.append(kwargs)
        return _FakeGeminiClient(api)

    def import_module(name: str) -> object:
        imported.append(name)
        return SimpleNamespace(Client=client)

    monkeypatch.setattr(gemini_adapter.importlib, "import_module", import_module)
    monkeypatch.setenv("GEMINI_API_KEY", "gm-from-env")
    adapter = GeminiAdapter(base_url="https://gemini.internal", timeout_seconds=2.5)

    await adapter.complete(_MESSAGES, temperature=0.0, max_tokens=10)

    assert imported == ["google.genai"]
    assert created == [
        {
            "api_key": "gm-from-env",
            "http_options": {"base_url": "https://gemini.internal", "timeout": 2500},
        }
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_gemini_missing_sdk_or_key(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_import(name: str) -> object:
        raise ImportError(name)

    monkeypatch.setattr(gemini_adapter.importlib, "import_module", fail_import)
    with pytest.raises(ProviderUnavailableError, match="google-genai SDK is not installed"):
        await GeminiAdapter(api_key="gm-test").complete(_MESSAGES, temperature=0.0, max_tokens=10)

    monkeypatch.setattr(
        gemini_adapter.importlib,
        "import_module",
        lambda name: SimpleNamespace(Client=lambda **kwargs: None),
    )
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(ProviderAuthenticationError, match="set GEMINI_API_KEY"):
        await GeminiAdapter().complete(_MESSAGES, temperature=0.0, max_tokens=10)


# Shared plumbing ------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    ("exc", "expected_type", "retryable"),
    [
        (RateLimitError("x"), RateLimitedError, True),
        (AuthenticationError("x"), ProviderAuthenticationError, False),
        (APITimeoutError("x"), ProviderTimeoutError, True),
        (asyncio.TimeoutError(), ProviderTimeoutError, True),
        (BadRequestError("x"), ProviderInvalidRequestError, False),
        (APIConnectionError("reset"), ProviderError, True),
    ],
)
def test_classify_exception(
    exc: Exception, expected_type: type[CompletionError], retryable: bool
) -> None:
    mapped = classify_exception(exc, provider="openai")

    assert type(mapped) is expected_type
    assert mapped.retryable is retryable
    assert mapped.provider == "openai"


@pytest.mark.unit
def test_classify_reads_nested_response_status() -> None:
    exc = Exception("unprocessable")
    exc.response = SimpleNamespace(status_code=422)  # type: ignore[attr-defined]

    mapped = classify_exception(exc, provider="anthropic")

    assert read_status_code(exc) == 422
    assert isinstance(mapped, ProviderInvalidRequestError)
    assert mapped.http_status == 422
    assert str(mapped) == (
        "provider=anthropic code=invalid_request retryable=false http_status=422 "
        "detail=unprocessable"
    )


@pytest.mark.unit
def test_backoff_is_bounded_and_jitter_is_validated() -> None:
    config = BackoffConfig(
        max_retries=5, initial_delay_seconds=1.0, multiplier=3.0, max_delay_seconds=5.0
    )

    delays = [compute_backoff_delay(retry_number=n, config=config) for n in range(1, 5)]

    assert delays == [1.0, 3.0, 5.0, 5.0]
    jittered = BackoffConfig(initial_delay_seconds=1.0, max_delay_seconds=4.0, jitter_ratio=0.5)
    assert compute_backoff_delay(retry_number=1, config=jittered, random_fn=lambda: 1.0) == 1.5
    assert compute_backoff_delay(retry_number=1, config=jittered, random_fn=lambda: 0.0) == 0.5
    with pytest.raises(ValueError, match="random_fn"):
        compute_backoff_delay(retry_number=1, config=jittered, random_fn=lambda: 2.0)
    with pytest.raises(ValueError, match="retry_number"):
        compute_backoff_delay(retry_number=0, config=config)
    with pytest.raises(ValueError, match="multiplier"):
        BackoffConfig(multiplier=0.5)


@pytest.mark.unit
def test_registry_registers_once_and_validates_services() -> None:
    registry = ProviderRegistry()
    registry.register("Scripted", lambda model: ScriptedCompletionService(model=model))

    service = registry.get("scripted", "m-1")

    assert isinstance(service, CompletionService)
    assert service.model == "m-1"
    assert registry.list() == ("scripted",)
    with pytest.raises(ValueError, match="already registered"):
        registry.register("scripted", lambda model: ScriptedCompletionService(model=model))
    with pytest.raises(ProviderUnavailableError):
        registry.get("missing", "m")

    registry.register("broken", lambda model: object(), overwrite=True)  # type: ignore
    with pytest.raises(TypeError, match="invalid service"):
        registry.get("broken", "m")
    registry.unregister("broken")
    assert not registry.is_registered("broken")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scripted_service_replays_and_records() -> None:
    service = ScriptedCompletionService(["first", RateLimitedError("later")])
    service.queue("third")

    first = await service.complete(_MESSAGES, temperature=0.1, max_tokens=5)
    with pytest.raises(RateLimitedError):
        await service.complete(_MESSAGES, temperature=0.1, max_tokens=5)
    third = await service.complete([Message.user("again")], temperature=0.2, max_tokens=6)

    assert (first.content, third.content) == ("first", "third")
    assert service.call_count == 3
    assert service.last_call is not None
    assert service.last_call.prompt == "again"
    assert service.calls[0].prompt == "Be terse.\n\nSay hello."
    with pytest.raises(InvalidResponseError, match="no scripted reply"):
        await service.complete(_MESSAGES, temperature=0.0, max_tokens=1)

    fallback = ScriptedCompletionService(default_reply="{}")
    assert (await fallback.complete(_MESSAGES, temperature=0.0, max_tokens=1)).content == "{}"
