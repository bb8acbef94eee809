"""Load runtime settings from CLI overrides and environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import ConfigurationError
from .rules import DEFAULT_RULES, ClassifierRules

ROOT_ENV = "GIT_SMART_STATUS_ROOT"
EXCLUDE_ENV = "GIT_SMART_STATUS_EXCLUDE"
WORKERS_ENV = "GIT_SMART_STATUS_WORKERS"
EDITOR_ENV = "GIT_SMART_STATUS_EDITOR"

DEFAULT_DENYLIST = ("do.doc", "docs", "documentation", "artifacts", "examples", "samples")
DEFAULT_WORKERS = 8


@dataclass(frozen=True)
class Settings:
    """Everything the orchestrator needs to find and scan repositories."""

    root: Path
    denylist: tuple[str, ...] = DEFAULT_DENYLIST
    fetch_remote: bool = True
    max_workers: int = DEFAULT_WORKERS
    editor: str = "vi"
    rules: ClassifierRules = field(default=DEFAULT_RULES)


def load_settings(root_override: Path | None = None, *, fetch_remote: bool = True) -> Settings:
    root = resolve_root(root_override)
    return Settings(
        root=root,
        denylist=DEFAULT_DENYLIST + _extra_denylist(),
        fetch_remote=fetch_remote,
        max_workers=_workers(),
        editor=resolve_editor(),
    )


def resolve_root(root_override: Path | None) -> Path:
    if root_override is not None:
        candidate = root_override.expanduser()
    else:
        raw = os.environ.get(ROOT_ENV)
        if not raw:
            raise ConfigurationError(
                f"No root directory given. Pass --root or export {ROOT_ENV}=$HOME/src"
            )
        candidate = Path(raw).expanduser()
    if not candidate.is_dir():
        raise ConfigurationError(
            f"Path [{candidate}] does not exist, please set it to the root of your project structure."
        )
    return candidate.resolve()


def resolve_editor() -> str:
    for var in (EDITOR_ENV, "VISUAL", "EDITOR"):
        value = os.environ.get(var)
        if value:
            return value
    return "vi"


def _extra_denylist() -> tuple[str, ...]:
    raw = os.environ.get(EXCLUDE_ENV, "")
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


def _workers() -> int:
    raw = os.environ.get(WORKERS_ENV)
    if not raw:
        return DEFAULT_WORKERS
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{WORKERS_ENV} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ConfigurationError(f"{WORKERS_ENV} must be at least 1")
    return value
