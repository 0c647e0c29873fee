"""Completion-service contract, vendor adapters and provider selection."""

from specforge.completion.anthropic_adapter import AnthropicAdapter
from specforge.completion.base import (
    BackoffConfig,
    BaseCompletionService,
    Completion,
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
    is_retryable_error,
    run_with_retries,
)
from specforge.completion.factory import CompletionFactory, ProviderInfo
from specforge.completion.gemini_adapter import GeminiAdapter
from specforge.completion.openai_adapter import OllamaAdapter, OpenAIAdapter
from specforge.completion.scripted import RecordedCall, ScriptedCompletionService

__all__ = [
    "AnthropicAdapter",
    "BackoffConfig",
    "BaseCompletionService",
    "Completion",
    "CompletionError",
    "CompletionFactory",
    "CompletionService",
    "GeminiAdapter",
    "InvalidResponseError",
    "Message",
    "MessageRole",
    "OllamaAdapter",
    "OpenAIAdapter",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderInfo",
    "ProviderInvalidRequestError",
    "ProviderRegistry",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "RateLimitedError",
    "RecordedCall",
    "ScriptedCompletionService",
    "is_retryable_error",
    "run_with_retries",
]
