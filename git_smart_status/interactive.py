"""Interactive prompt helpers built on InquirerPy."""

from __future__ import annotations

import sys
from typing import Any, Sequence

from InquirerPy import inquirer
from InquirerPy.base.control import Choice

from .exceptions import UserAbort, ValidationError
from .models import FileEntry


def _ensure_tty() -> None:
    if not sys.stdin.isatty():
        raise ValidationError(
            "Interactive mode requires a TTY. Pass --yes or the missing arguments to run non-interactively."
        )


def confirm(message: str, default: bool = False) -> bool:
    _ensure_tty()
    return bool(inquirer.confirm(message=message, default=default).execute())


def require_confirmation(message: str, assume_yes: bool) -> None:
    if assume_yes:
        return
    if not confirm(message):
        raise UserAbort("Cancelled.")


def fuzzy_select(message: str, choices: Sequence[Choice | str]) -> Any:
    _ensure_tty()
    return inquirer.fuzzy(message=message, choices=choices).execute()


def build_file_choices(entries: Sequence[FileEntry]) -> list[Choice]:
    """One choice per record, keyed by label; duplicate labels collapse."""

    seen: set[str] = set()
    result: list[Choice] = []
    for entry in entries:
        if entry.label in seen:
            continue
        seen.add(entry.label)
        result.append(Choice(value=entry.label, name=f"{entry.display_label} · {entry.bucket.value}"))
    return result
