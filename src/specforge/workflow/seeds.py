"""Seed question catalog loaded from the packaged ``seed_questions.yaml``."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Final, cast

import yaml

from specforge.domain import ids
from specforge.domain.models import ProjectMode, Question, QuestionKind

SEED_CATALOG_PATH: Final[Path] = Path(__file__).parent / "seed_questions.yaml"
SEED_TAG: Final[str] = "seed"
SEED_BASE_PRIORITY: Final[int] = 100

_ALLOWED_FIELDS: Final[frozenset[str]] = frozenset({"text", "spec_path"})


@dataclass(frozen=True, slots=True)
class SeedQuestion:
    text: str
    spec_path: str


def load_seed_catalog(
    path: Path = SEED_CATALOG_PATH,
) -> dict[ProjectMode, tuple[SeedQuestion, ...]]:
    """Load and validate the seed catalog; every project mode must have an entry."""
    return dict(_load_seed_catalog_cached(path))


@lru_cache(maxsize=4)
def _load_seed_catalog_cached(path: Path) -> Mapping[ProjectMode, tuple[SeedQuestion, ...]]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise ValueError(f"{path}: invalid YAML ({exc})") from exc

    if not isinstance(loaded, dict):
        raise ValueError(f"{path}: expected top-level YAML mapping, got {type(loaded).__name__}")

    catalog: dict[ProjectMode, tuple[SeedQuestion, ...]] = {}
    for mode in ProjectMode:
        entries = loaded.get(mode.value)
        if not isinstance(entries, list) or not entries:
            raise ValueError(f"{path}: missing seed questions for mode {mode.value!r}")
        catalog[mode] = tuple(
            _parse_seed(item, location=f"{path.name}:{mode.value}[{index}]")
            for index, item in enumerate(entries)
        )
    return catalog


def _parse_seed(value: object, *, location: str) -> SeedQuestion:
    if not isinstance(value, dict):
        raise ValueError(f"{location}: expected mapping, got {type(value).__name__}")
    unknown = sorted(set(value) - _ALLOWED_FIELDS)
    if unknown:
        raise ValueError(f"{location}: unexpected fields: {unknown}")
    text = value.get("text")
    spec_path = value.get("spec_path")
    if not isinstance(text, str) or not text.strip():
        raise ValueError(f"{location}.text: expected non-empty string")
    if not isinstance(spec_path, str) or not spec_path.startswith("/"):
        raise ValueError(f"{location}.spec_path: expected absolute path")
    return SeedQuestion(text=text.strip(), spec_path=spec_path)


def seed_questions(
    project_id: str,
    mode: ProjectMode,
    *,
    created_at: datetime,
    id_factory: Callable[[], str] | None = None,
    catalog: Mapping[ProjectMode, tuple[SeedQuestion, ...]] | None = None,
) -> list[Question]:
    """Build the seed questions for a new project, priority ``100 - i`` in catalog order."""
    make_id = id_factory if id_factory is not None else ids.generate_question_id
    resolved = catalog if catalog is not None else load_seed_catalog()
    return [
        Question(
            id=make_id(),
            project_id=project_id,
            text=seed.text,
            kind=QuestionKind.FREEFORM,
            created_at=created_at,
            tags=(SEED_TAG,),
            priority=SEED_BASE_PRIORITY - index,
            spec_paths=(seed.spec_path,),
        )
        for index, seed in enumerate(resolved[ProjectMode(mode)])
    ]


__all__ = [
    "SEED_CATALOG_PATH",
    "SEED_TAG",
    "SeedQuestion",
    "load_seed_catalog",
    "seed_questions",
]
