"""Decide whether a pending change is a real edit or mechanical noise."""

from __future__ import annotations

import dataclasses
import logging
import time
from pathlib import Path
from typing import Callable, Iterable

from .models import Bucket, ChangeType, FileEntry, FileType
from .rules import DEFAULT_RULES, ClassifierRules

logger = logging.getLogger(__name__)

NO_CONTENT = "-no content-"
READ_ATTEMPTS = 5
READ_BACKOFF = 0.05

# Byte-order marks show up in front of project files, decoded either way.
_BOM_ARTIFACTS = ("\ufeff", "\u00ef\u00bb\u00bf")


def change_lines(diff_output: Iterable[str]) -> str:
    """Keep only added/removed lines of a unified diff, minus the file headers."""

    kept = []
    in_hunk = False
    for raw in diff_output:
        line = raw.rstrip("\r\n")
        if line.startswith("diff "):
            in_hunk = False
        elif line.startswith("@@"):
            in_hunk = True
        elif in_hunk and line.startswith(("+", "-")):
            kept.append(line)
    return "".join(f"{line}\n" for line in kept)


def strip_bom(text: str) -> str:
    for artifact in _BOM_ARTIFACTS:
        text = text.replace(artifact, "")
    return text


def read_with_retry(
    path: Path,
    *,
    attempts: int = READ_ATTEMPTS,
    backoff: float = READ_BACKOFF,
    sleep: Callable[[float], None] = time.sleep,
) -> str | None:
    """Read a file that another process may still be writing.

    Returns None when every attempt failed.
    """

    for attempt in range(1, attempts + 1):
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.debug("read attempt %d of %s failed: %s", attempt, path, exc)
            if attempt < attempts:
                sleep(backoff * attempt)
    return None


def noise_pairs(lines: list[str]) -> set[int]:
    """Indexes of adjacent -/+ lines that differ only in their marker."""

    skipped: set[int] = set()
    index = 0
    while index < len(lines) - 1:
        first, second = lines[index], lines[index + 1]
        if {first[:1], second[:1]} == {"+", "-"} and first[1:] == second[1:]:
            skipped.update((index, index + 1))
            index += 2
            continue
        index += 1
    return skipped


def has_real_change(label: str, diff: str, rules: ClassifierRules = DEFAULT_RULES) -> bool:
    manifest = rules.is_manifest(label)
    lines = [line.rstrip("\r") for line in strip_bom(diff).splitlines()]
    lines = [line for line in lines if line.strip()]
    skipped = noise_pairs(lines)
    for index, line in enumerate(lines):
        if index in skipped:
            continue
        content = line[1:].strip() if line[:1] in "+-" else line.strip()
        if not content:
            continue
        if rules.is_reference(content, manifest=manifest):
            continue
        return True
    return False


def analyze(
    entry: FileEntry,
    *,
    rules: ClassifierRules = DEFAULT_RULES,
    reader: Callable[[Path], str | None] = read_with_retry,
) -> FileEntry:
    """Return a copy of ``entry`` with ``dirty`` (and maybe ``diff``) recomputed."""

    if entry.bucket is Bucket.UNTRACKED:
        dirty = entry.file_type is not FileType.TEMP
        if not entry.path.exists():
            return dataclasses.replace(entry, dirty=dirty, diff=NO_CONTENT)
        content = reader(entry.path)
        if content is None:
            logger.debug("keeping previous content for %s", entry.label)
            return dataclasses.replace(entry, dirty=dirty)
        return dataclasses.replace(entry, dirty=dirty, diff=content)

    if entry.change_type is ChangeType.DELETED:
        return dataclasses.replace(entry, dirty=True)

    if not entry.diff:
        return dataclasses.replace(entry, dirty=False)

    if entry.bucket in (Bucket.CONFLICTED, Bucket.STAGED):
        return dataclasses.replace(entry, dirty=True)

    return dataclasses.replace(entry, dirty=has_real_change(entry.label, entry.diff, rules))
