"""Versioned prompt templates and their renderer."""

from specforge.prompts.engine import (
    ROLE_VARIABLES,
    PromptLibrary,
    PromptRole,
    PromptTemplateError,
    PromptTemplateNotFoundError,
    PromptTemplateVariableError,
    RenderedPrompt,
)

__all__ = [
    "PromptLibrary",
    "PromptRole",
    "PromptTemplateError",
    "PromptTemplateNotFoundError",
    "PromptTemplateVariableError",
    "ROLE_VARIABLES",
    "RenderedPrompt",
]
