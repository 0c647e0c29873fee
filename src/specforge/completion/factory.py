"""
Completion-service selection from configuration.

Hosted providers are available when their API-key environment variable is set. With
``providers.default = "auto"`` the first available provider wins, in the order Anthropic,
Gemini, then OpenAI. Ollama never needs a key and is only used when selected explicitly.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

import structlog

from specforge.completion.anthropic_adapter import AnthropicAdapter
from specforge.completion.base import (
    BackoffConfig,
    CompletionService,
    ProviderRegistry,
    ProviderUnavailableError,
    ServiceFactory,
)
from specforge.completion.gemini_adapter import GeminiAdapter
from specforge.completion.openai_adapter import OllamaAdapter, OpenAIAdapter
from specforge.config.schema import DEFAULT_CONFIG, PROVIDER_NAMES
from specforge.domain.canonical import CanonicalModel

AUTO_PROVIDER_ORDER: Final[tuple[str, ...]] = ("anthropic", "gemini", "openai")
_KEYLESS_PROVIDERS: Final[frozenset[str]] = frozenset({"ollama"})
_DISPLAY_NAMES: Final[Mapping[str, str]] = {
    "anthropic": "Anthropic Claude",
    "gemini": "Google Gemini",
    "openai": "OpenAI",
    "ollama": "Ollama (local)",
    "scripted": "Scripted",
}


@dataclass(frozen=True, slots=True)
class ProviderInfo(CanonicalModel):
    id: str
    name: str
    available: bool
    default_model: str
    models: tuple[str, ...] = ()


class CompletionFactory:
    """Builds completion services for configured providers."""

    def __init__(
        self,
        providers_config: Mapping[str, Any] | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        backoff: BackoffConfig | None = None,
        registry: ProviderRegistry | None = None,
        logger: Any | None = None,
    ) -> None:
        self._config: Mapping[str, Any] = (
            providers_config if providers_config is not None else DEFAULT_CONFIG["providers"]
        )
        self._environ: Mapping[str, str] = os.environ if environ is None else environ
        self._backoff = backoff if backoff is not None else BackoffConfig()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._registry = registry if registry is not None else ProviderRegistry()
        self._extra_models: dict[str, str] = {}
        for name, builder in (
            ("anthropic", self._build_anthropic),
            ("gemini", self._build_gemini),
            ("openai", self._build_openai),
            ("ollama", self._build_ollama),
        ):
            if not self._registry.is_registered(name):
                self._registry.register(name, builder)

    def register(self, name: str, factory: ServiceFactory, *, model: str | None = None) -> None:
        """Register an extra provider (for example a scripted service) by name."""

        self._registry.register(name, factory, overwrite=True)
        if model is not None:
            self._extra_models[name.lower()] = model

    def is_available(self, provider: str) -> bool:
        name = provider.lower()
        if not self._registry.is_registered(name):
            return False
        if name in _KEYLESS_PROVIDERS or name not in PROVIDER_NAMES:
            return True
        return self._api_key_present(name)

    def default_provider(self) -> str:
        configured = str(self._config.get("default", "auto"))
        if configured != "auto":
            return configured
        for name in AUTO_PROVIDER_ORDER:
            if self.is_available(name):
                return name
        raise ProviderUnavailableError(
            "no completion provider configured; "
            "set ANTHROPIC_API_KEY, GEMINI_API_KEY or OPENAI_API_KEY",
            provider="auto",
        )

    def default_model(self, provider: str) -> str:
        name = provider.lower()
        if name in self._extra_models:
            return self._extra_models[name]
        settings = self._settings(name)
        model = settings.get("model")
        if isinstance(model, str) and model:
            return model
        models = settings.get("models")
        if isinstance(models, list) and models:
            return str(models[0])
        raise ProviderUnavailableError("no default model configured", provider=name)

    def create(self, provider: str, model: str | None = None) -> CompletionService:
        name = provider.strip().lower()
        if not self._registry.is_registered(name):
            raise ProviderUnavailableError("unsupported provider", provider=name)
        if not self.is_available(name):
            env_name = self._settings(name).get("api_key_env", "")
            raise ProviderUnavailableError(f"{env_name} not configured", provider=name)
        resolved_model = model.strip() if model and model.strip() else self.default_model(name)
        service = self._registry.get(name, resolved_model)
        self._logger.debug("completion_service_created", provider=name, model=resolved_model)
        return service

    def default(self) -> CompletionService:
        provider = self.default_provider()
        return self.create(provider)

    def list_providers(self) -> list[ProviderInfo]:
        infos: list[ProviderInfo] = []
        for name in self._registry.list():
            settings = self._settings(name)
            models = settings.get("models")
            try:
                default_model = self.default_model(name)
            except ProviderUnavailableError:
                default_model = ""
            infos.append(
                ProviderInfo(
                    id=name,
                    name=_DISPLAY_NAMES.get(name, name),
                    available=self.is_available(name),
                    default_model=default_model,
                    models=tuple(models) if isinstance(models, list) else (),
                )
            )
        return infos

    def _settings(self, name: str) -> Mapping[str, Any]:
        settings = self._config.get(name)
        return settings if isinstance(settings, Mapping) else {}

    def _api_key_present(self, name: str) -> bool:
        env_name = self._settings(name).get("api_key_env")
        if not isinstance(env_name, str):
            return False
        value = self._environ.get(env_name)
        return value is not None and bool(value.strip())

    def _api_key(self, name: str) -> str | None:
        env_name = self._settings(name).get("api_key_env")
        if not isinstance(env_name, str):
            return None
        return self._environ.get(env_name)

    def _build_anthropic(self, model: str) -> CompletionService:
        settings = self._settings("anthropic")
        return AnthropicAdapter(
            model=model,
            api_key=self._api_key("anthropic"),
            api_key_env=settings.get("api_key_env"),
            base_url=settings.get("base_url"),
            timeout_seconds=settings.get("timeout_seconds"),
            backoff=self._backoff,
        )

    def _build_gemini(self, model: str) -> CompletionService:
        settings = self._settings("gemini")
        return GeminiAdapter(
            model=model,
            api_key=self._api_key("gemini"),
            api_key_env=settings.get("api_key_env"),
            base_url=settings.get("base_url"),
            timeout_seconds=settings.get("timeout_seconds"),
            backoff=self._backoff,
        )

    def _build_openai(self, model: str) -> CompletionService:
        settings = self._settings("openai")
        return OpenAIAdapter(
            model=model,
            api_key=self._api_key("openai"),
            api_key_env=settings.get("api_key_env"),
            base_url=settings.get("base_url"),
            timeout_seconds=settings.get("timeout_seconds"),
            backoff=self._backoff,
        )

    def _build_ollama(self, model: str) -> CompletionService:
        settings = self._settings("ollama")
        return OllamaAdapter(
            model=model,
            base_url=settings.get("base_url"),
            timeout_seconds=settings.get("timeout_seconds"),
            backoff=self._backoff,
        )


__all__ = ["AUTO_PROVIDER_ORDER", "CompletionFactory", "ProviderInfo"]
