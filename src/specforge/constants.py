"""Stable constants shared across the compilation pipeline."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
STATE_DB_SCHEMA_VERSION: Final[int] = 2

# Prompt template set used by every model-driven stage.
PROMPT_VERSION: Final[str] = "v1"

# Default runtime paths (relative to the config file directory unless overridden).
STATE_DIR: Final[PurePosixPath] = PurePosixPath("state")
DEFAULT_STATE_DB: Final[PurePosixPath] = STATE_DIR / "specforge.sqlite3"
DEFAULT_CONFIG_FILENAME: Final[str] = "specforge.toml"

# Model call budgets.
COMPILE_MAX_TOKENS: Final[int] = 32_000
STAGE_MAX_TOKENS: Final[int] = 4_000
COMPILE_TEMPERATURE: Final[float] = 0.0
SUGGESTER_TEMPERATURE: Final[float] = 0.3

# Compiler response excerpt length carried by parse failures.
RESPONSE_EXCERPT_CHARS: Final[int] = 500

# Next-question generation bounds.
DEFAULT_NEXT_QUESTION_COUNT: Final[int] = 5
MAX_NEXT_QUESTION_COUNT: Final[int] = 50

# Top-level document sections whose changes are considered high impact.
HIGH_IMPACT_SECTIONS: Final[frozenset[str]] = frozenset(
    {"product", "architecture", "api", "data_model"}
)

__all__ = [
    "COMPILE_MAX_TOKENS",
    "COMPILE_TEMPERATURE",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_NEXT_QUESTION_COUNT",
    "DEFAULT_STATE_DB",
    "HIGH_IMPACT_SECTIONS",
    "MAX_NEXT_QUESTION_COUNT",
    "PROMPT_VERSION",
    "RESPONSE_EXCERPT_CHARS",
    "STAGE_MAX_TOKENS",
    "STATE_DB_SCHEMA_VERSION",
    "STATE_DIR",
    "SUGGESTER_TEMPERATURE",
]
