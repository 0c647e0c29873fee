"""
Completion-service contract and shared provider plumbing.

Stages depend only on :class:`CompletionService`: an async ``complete`` over an ordered
list of chat messages that returns the model's text. Vendor adapters normalize their
SDK exceptions into three kinds:

* :class:`RateLimitedError` (retryable);
* :class:`ProviderError` and its subclasses (auth, unavailable, timeout, service);
* :class:`InvalidResponseError` when a reply cannot be normalized.

Retryable errors are retried by :func:`run_with_retries` with bounded exponential backoff.
"""

from __future__ import annotations

import abc
import asyncio
import random as random_module
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, TypeAlias, TypeVar, cast, runtime_checkable

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]
RandomFn: TypeAlias = Callable[[], float]


class MessageRole(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class Message:
    role: MessageRole
    content: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", MessageRole(self.role))
        if not isinstance(self.content, str):
            raise TypeError("content must be a string")

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=MessageRole.USER, content=content)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True, slots=True)
class Completion:
    """Normalized model reply."""

    content: str
    model: str
    provider: str = "unknown"
    input_tokens: int | None = None
    output_tokens: int | None = None


@runtime_checkable
class CompletionService(Protocol):
    """Protocol implemented by every completion adapter."""

    @property
    def name(self) -> str: ...

    @property
    def model(self) -> str: ...

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        """Send one chat request and return the normalized reply."""


class BaseCompletionService(abc.ABC):
    """Shared validation for concrete adapters."""

    provider_name: str = "provider"

    def __init__(self, *, model: str) -> None:
        self._model = _validate_non_empty_str(model, "model")

    @property
    def name(self) -> str:
        return self.provider_name

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        if not messages:
            raise ValueError("messages cannot be empty")
        if not (0.0 <= temperature <= 2.0):
            raise ValueError("temperature must be between 0.0 and 2.0")
        if max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        return await self._complete(
            tuple(messages), temperature=temperature, max_tokens=max_tokens
        )

    @abc.abstractmethod
    async def _complete(
        self,
        messages: tuple[Message, ...],
        *,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        """Adapter-specific request."""


class CompletionError(RuntimeError):
    """Base normalized completion error with machine-readable fields."""

    def __init__(
        self,
        *,
        provider: str,
        code: str,
        detail: str,
        retryable: bool,
        http_status: int | None = None,
    ) -> None:
        self.provider = _validate_non_empty_str(provider, "provider")
        self.code = _validate_non_empty_str(code, "code")
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        self.http_status = http_status

        parts = [
            f"provider={self.provider}",
            f"code={self.code}",
            f"retryable={str(self.retryable).lower()}",
        ]
        if self.http_status is not None:
            parts.append(f"http_status={self.http_status}")
        parts.append(f"detail={self.detail}")
        super().__init__(" ".join(parts))


class RateLimitedError(CompletionError):
    """Provider rate-limit responses (retryable)."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = 429,
    ) -> None:
        super().__init__(
            provider=provider,
            code="rate_limit",
            detail=detail,
            retryable=True,
            http_status=http_status,
        )


class ProviderError(CompletionError):
    """Provider API/service failures."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        code: str = "service",
        retryable: bool = True,
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code=code,
            detail=detail,
            retryable=retryable,
            http_status=http_status,
        )


class ProviderUnavailableError(ProviderError):
    """Raised when a provider SDK or credential is unavailable."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(detail, provider=provider, code="unavailable", retryable=False)


class ProviderAuthenticationError(ProviderError):
    """Authentication/authorization failures."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            detail, provider=provider, code="auth", retryable=False, http_status=http_status
        )


class ProviderInvalidRequestError(ProviderError):
    """Request payload rejected by the provider API."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            detail,
            provider=provider,
            code="invalid_request",
            retryable=False,
            http_status=http_status,
        )


class ProviderTimeoutError(ProviderError):
    """Provider timeout failures (retryable)."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(detail, provider=provider, code="timeout", retryable=True)


class InvalidResponseError(CompletionError):
    """Raised when a provider reply cannot be normalized."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(
            provider=provider, code="response_invalid", detail=detail, retryable=False
        )


def is_retryable_error(error: BaseException) -> bool:
    return isinstance(error, CompletionError) and error.retryable


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    """Bounded exponential backoff policy."""

    max_retries: int = 2
    initial_delay_seconds: float = 0.25
    multiplier: float = 2.0
    max_delay_seconds: float = 4.0
    jitter_ratio: float = 0.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.max_delay_seconds < 0:
            raise ValueError("max_delay_seconds must be >= 0")
        if self.initial_delay_seconds > self.max_delay_seconds:
            raise ValueError("initial_delay_seconds must be <= max_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")


def compute_backoff_delay(
    *,
    retry_number: int,
    config: BackoffConfig,
    random_fn: RandomFn = random_module.random,
) -> float:
    """Return the bounded backoff delay for retry attempt N (1-based)."""

    if retry_number <= 0:
        raise ValueError("retry_number must be > 0")

    base_delay = config.initial_delay_seconds * (config.multiplier ** (retry_number - 1))
    bounded_delay = min(base_delay, config.max_delay_seconds)
    if config.jitter_ratio == 0.0:
        return bounded_delay

    random_value = random_fn()
    if not (0.0 <= random_value <= 1.0):
        raise ValueError("random_fn must return values in [0.0, 1.0]")
    max_jitter = bounded_delay * config.jitter_ratio
    jitter = ((random_value * 2.0) - 1.0) * max_jitter
    return max(0.0, min(config.max_delay_seconds, bounded_delay + jitter))


_ResultT = TypeVar("_ResultT")
RetryCallback: TypeAlias = Callable[[int, CompletionError, float], None]


async def run_with_retries(
    operation: Callable[[], Awaitable[_ResultT]],
    *,
    map_exception: Callable[[Exception], CompletionError],
    backoff: BackoffConfig,
    sleep: SleepFn = asyncio.sleep,
    random_fn: RandomFn = random_module.random,
    on_retry: RetryCallback | None = None,
) -> _ResultT:
    """Run an async operation, retrying while the mapped error is retryable."""

    retry_count = 0
    while True:
        try:
            return await operation()
        except Exception as exc:  # noqa: BLE001
            mapped = exc if isinstance(exc, CompletionError) else map_exception(exc)
            if not isinstance(mapped, CompletionError):
                raise TypeError("map_exception must return CompletionError") from exc

            if not mapped.retryable or retry_count >= backoff.max_retries:
                if mapped is exc:
                    raise
                raise mapped from exc

            retry_count += 1
            delay_seconds = compute_backoff_delay(
                retry_number=retry_count,
                config=backoff,
                random_fn=random_fn,
            )
            if on_retry is not None:
                on_retry(retry_count, mapped, delay_seconds)
            await sleep(delay_seconds)


def classify_exception(exc: Exception, *, provider: str) -> CompletionError:
    """Map a vendor SDK exception onto the normalized error kinds.

    Classification uses the HTTP status when the SDK exposes one and falls back to the
    exception class name.
    """

    if isinstance(exc, CompletionError):
        return exc

    status_code = read_status_code(exc)
    class_name = exc.__class__.__name__.lower()
    detail = exception_detail(exc)

    if status_code in {401, 403} or "auth" in class_name or "permission" in class_name:
        return ProviderAuthenticationError(detail, provider=provider, http_status=status_code)
    if status_code == 429 or "ratelimit" in class_name:
        return RateLimitedError(detail, provider=provider, http_status=status_code)
    if isinstance(exc, asyncio.TimeoutError) or "timeout" in class_name:
        return ProviderTimeoutError(detail, provider=provider)
    if status_code is not None and status_code in {400, 404, 409, 413, 422}:
        return ProviderInvalidRequestError(detail, provider=provider, http_status=status_code)
    if "badrequest" in class_name or "invalidrequest" in class_name:
        return ProviderInvalidRequestError(detail, provider=provider)
    return ProviderError(detail, provider=provider, retryable=True, http_status=status_code)


def exception_detail(exc: BaseException) -> str:
    text = str(exc).strip()
    if text:
        return " ".join(text.split())
    return exc.__class__.__name__


def read_status_code(exc: BaseException) -> int | None:
    # ``code`` carries the HTTP status on google-genai errors.
    for key in ("status_code", "status", "http_status", "code"):
        value = getattr(exc, key, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    if response is not None:
        nested = getattr(response, "status_code", None)
        if isinstance(nested, int):
            return nested
    return None


def read_value(value: object, key: str, *, default: object | None = None) -> object | None:
    if isinstance(value, Mapping):
        return cast("object | None", value.get(key, default))
    return cast("object | None", getattr(value, key, default))


def read_sequence(value: object, key: str) -> tuple[object, ...]:
    candidate = read_value(value, key)
    if isinstance(candidate, Sequence) and not isinstance(candidate, (str, bytes, bytearray)):
        return tuple(candidate)
    return ()


def read_str(value: object, key: str) -> str | None:
    candidate = read_value(value, key)
    if isinstance(candidate, str) and candidate.strip():
        return candidate
    return None


def read_int(value: object, key: str) -> int | None:
    candidate = read_value(value, key)
    if isinstance(candidate, int) and not isinstance(candidate, bool):
        return candidate
    return None


ServiceFactory: TypeAlias = Callable[[str], CompletionService]


class ProviderRegistry:
    """Registry of completion-service factories keyed by provider name.

    A factory takes the model name and returns a ready service.
    """

    def __init__(self) -> None:
        self._factories: dict[str, ServiceFactory] = {}

    def register(self, name: str, factory: ServiceFactory, *, overwrite: bool = False) -> None:
        normalized = _validate_non_empty_str(name, "name").lower()
        if normalized in self._factories and not overwrite:
            raise ValueError(f"provider already registered: {normalized}")
        self._factories[normalized] = factory

    def unregister(self, name: str) -> None:
        normalized = _validate_non_empty_str(name, "name").lower()
        self._factories.pop(normalized, None)

    def is_registered(self, name: str) -> bool:
        normalized = _validate_non_empty_str(name, "name").lower()
        return normalized in self._factories

    def list(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories.keys()))

    def get(self, name: str, model: str) -> CompletionService:
        normalized = _validate_non_empty_str(name, "name").lower()
        factory = self._factories.get(normalized)
        if factory is None:
            raise ProviderUnavailableError("provider is not registered", provider=normalized)
        service = factory(_validate_non_empty_str(model, "model"))
        if not isinstance(service, CompletionService):
            raise TypeError(f"provider factory returned invalid service for {normalized}")
        return service


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


def _validate_non_empty_str(value: str, name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{name} cannot be empty")
    return normalized


__all__ = [
    "BackoffConfig",
    "BaseCompletionService",
    "Completion",
    "CompletionError",
    "CompletionService",
    "InvalidResponseError",
    "Message",
    "MessageRole",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderInvalidRequestError",
    "ProviderRegistry",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "RandomFn",
    "RateLimitedError",
    "ServiceFactory",
    "SleepFn",
    "classify_exception",
    "compute_backoff_delay",
    "exception_detail",
    "is_retryable_error",
    "read_int",
    "read_sequence",
    "read_status_code",
    "read_str",
    "read_value",
    "run_with_retries",
]
