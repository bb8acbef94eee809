"""State machine over the human-readable ``git status`` report.

Every line is first classified on its own by :func:`classify_line`, which
returns a small tagged value. :class:`StatusParser` then walks those values,
switching buckets on section headers and turning the lines inside a section
into :class:`~git_smart_status.models.FileEntry` records.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Union

from .models import Bucket, ChangeType, FileEntry, StatusReport
from .rules import DEFAULT_RULES, ClassifierRules


class ParseState(str, Enum):
    IDLE = "idle"
    UNTRACKED = "untracked"
    NOT_STAGED = "not_staged"
    STAGED = "staged"
    CONFLICTS = "conflicts"


_STATE_BUCKETS = {
    ParseState.UNTRACKED: Bucket.UNTRACKED,
    ParseState.NOT_STAGED: Bucket.NOT_STAGED,
    ParseState.STAGED: Bucket.STAGED,
    ParseState.CONFLICTS: Bucket.CONFLICTED,
}

_HEADERS = (
    ("changes not staged for commit:", ParseState.NOT_STAGED),
    ("untracked files not listed", ParseState.IDLE),
    ("untracked files:", ParseState.UNTRACKED),
    ("changes to be committed:", ParseState.STAGED),
    ("unmerged paths:", ParseState.CONFLICTS),
    ("nothing to commit", ParseState.IDLE),
    ("no changes", ParseState.IDLE),
)

_DIVERGED = re.compile(r"and have (?P<local>\d+) and (?P<remote>\d+) different commits each")
_BEHIND = re.compile(r"behind '(?P<upstream>[^']+)' by (?P<count>\d+) commit")
_AHEAD = re.compile(r"ahead of '(?P<upstream>[^']+)' by (?P<count>\d+) commit")

# Longest verbs first so "both modified:" wins over "modified:".
_VERBS = (
    ("both modified:", ChangeType.BOTH_MODIFIED),
    ("both added:", ChangeType.BOTH_MODIFIED),
    ("added by us:", ChangeType.BOTH_MODIFIED),
    ("added by them:", ChangeType.BOTH_MODIFIED),
    ("both deleted:", ChangeType.DELETED),
    ("deleted by us:", ChangeType.DELETED),
    ("deleted by them:", ChangeType.DELETED),
    ("new file:", ChangeType.NEW),
    ("modified:", ChangeType.MODIFIED),
    ("typechange:", ChangeType.MODIFIED),
    ("deleted:", ChangeType.DELETED),
    ("renamed:", ChangeType.RENAMED),
    ("copied:", ChangeType.NEW),
)

NOTHING_ADDED = "nothing added to commit"


@dataclass(frozen=True)
class Blank:
    pass


@dataclass(frozen=True)
class Header:
    state: ParseState


@dataclass(frozen=True)
class Divergence:
    ahead: int
    behind: int


@dataclass(frozen=True)
class Behind:
    count: int


@dataclass(frozen=True)
class Ahead:
    count: int


@dataclass(frozen=True)
class Hint:
    text: str


@dataclass(frozen=True)
class Record:
    label: str
    change_type: ChangeType


LineKind = Union[Blank, Header, Divergence, Behind, Ahead, Hint, Record]


def match_header(line: str) -> Header | None:
    lowered = line.lower()
    for prefix, state in _HEADERS:
        if lowered.startswith(prefix):
            return Header(state)
    return None


def match_tracking(line: str) -> Divergence | Behind | Ahead | None:
    diverged = _DIVERGED.search(line)
    if diverged:
        return Divergence(ahead=int(diverged.group("local")), behind=int(diverged.group("remote")))
    behind = _BEHIND.search(line)
    if behind:
        return Behind(int(behind.group("count")))
    ahead = _AHEAD.search(line)
    if ahead:
        return Ahead(int(ahead.group("count")))
    return None


def is_hint(line: str) -> bool:
    if '(use "git' in line:
        return True
    if line.startswith(NOTHING_ADDED):
        return True
    return line.startswith("(") and line.endswith(")")


def parse_record(line: str) -> Record:
    """Strip the leading verb off a file line and normalise the path."""

    change_type = ChangeType.NONE
    text = line
    for verb, kind in _VERBS:
        if text.startswith(verb):
            change_type = kind
            text = text[len(verb):]
            break
    text = text.strip()
    if change_type is ChangeType.RENAMED and " -> " in text:
        text = text.split(" -> ", 1)[1]
    return Record(label=normalize_label(text), change_type=change_type)


_C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}


def unquote_c_style(body: str) -> str:
    """Decode the inside of a C-quoted git path, octal escapes being UTF-8 bytes."""

    raw = bytearray()
    index = 0
    while index < len(body):
        char = body[index]
        if char != "\\" or index + 1 == len(body):
            raw.extend(char.encode("utf-8"))
            index += 1
            continue
        escape = body[index + 1]
        octal = body[index + 1:index + 4]
        if len(octal) == 3 and all(digit in "01234567" for digit in octal):
            raw.append(int(octal, 8) & 0xFF)
            index += 4
        elif escape in _C_ESCAPES:
            raw.append(_C_ESCAPES[escape])
            index += 2
        else:
            raw.extend(escape.encode("utf-8"))
            index += 2
    return raw.decode("utf-8", errors="replace")


def normalize_label(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return unquote_c_style(text[1:-1])
    return text.replace("\\", "/")


def classify_line(raw: str) -> LineKind:
    line = raw.strip()
    if not line:
        return Blank()
    tracking = match_tracking(line)
    if tracking is not None:
        return tracking
    header = match_header(line)
    if header is not None:
        return header
    if is_hint(line):
        return Hint(line)
    return parse_record(line)


class StatusParser:
    """Feed status lines in order, then read :attr:`report`."""

    def __init__(self, repo_path: Path, rules: ClassifierRules = DEFAULT_RULES) -> None:
        self.repo_path = repo_path
        self.rules = rules
        self.state = ParseState.IDLE
        self.report = StatusReport()

    def feed(self, raw: str) -> LineKind:
        kind = classify_line(raw)
        if isinstance(kind, Divergence):
            self.report.ahead = kind.ahead
            self.report.behind = kind.behind
        elif isinstance(kind, Behind):
            self.report.behind = kind.count
        elif isinstance(kind, Ahead):
            self.report.ahead = kind.count
        elif isinstance(kind, Header):
            self.state = kind.state
        elif isinstance(kind, Record) and self.state is not ParseState.IDLE:
            bucket = _STATE_BUCKETS[self.state]
            self.report.bucket(bucket).append(self._entry(kind, bucket))
        return kind

    def _entry(self, record: Record, bucket: Bucket) -> FileEntry:
        return FileEntry(
            path=self.repo_path / record.label,
            label=record.label,
            bucket=bucket,
            file_type=self.rules.file_type(record.label),
            change_type=record.change_type,
            dirty=record.change_type is ChangeType.DELETED,
        )


def parse_status(lines: Iterable[str], repo_path: Path, rules: ClassifierRules = DEFAULT_RULES) -> StatusReport:
    parser = StatusParser(repo_path, rules)
    for line in lines:
        parser.feed(line)
    return parser.report
