"""Dataclasses shared across modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .exceptions import GitCommandError


class Bucket(str, Enum):
    """Where a file sits in a repository's status report."""

    UNTRACKED = "untracked"
    NOT_STAGED = "not_staged"
    STAGED = "staged"
    CONFLICTED = "conflicted"
    STASHED = "stashed"


class FileType(str, Enum):
    TEMP = "temp"
    PROJECT = "project"
    SOURCE = "source"


class ChangeType(str, Enum):
    NONE = "none"
    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"
    BOTH_MODIFIED = "both_modified"
    RENAMED = "renamed"


class CurrentStatus(str, Enum):
    UNTOUCHED = "untouched"
    DIRTY = "dirty"
    CONFLICTS = "conflicts"


class ScanOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


WORKING_TREE_BUCKETS = (Bucket.UNTRACKED, Bucket.NOT_STAGED, Bucket.STAGED, Bucket.CONFLICTED)


@dataclass(frozen=True)
class FileEntry:
    """A single file record inside one bucket of a repository."""

    path: Path
    label: str
    bucket: Bucket
    file_type: FileType = FileType.SOURCE
    change_type: ChangeType = ChangeType.NONE
    diff: str = ""
    dirty: bool = False

    @property
    def status(self) -> CurrentStatus:
        if self.bucket is Bucket.CONFLICTED:
            return CurrentStatus.CONFLICTS
        return CurrentStatus.DIRTY if self.dirty else CurrentStatus.UNTOUCHED

    @property
    def display_label(self) -> str:
        if not self.label:
            return "-empty-"
        if len(self.label) > 60:
            return f"{self.label[:10]}...{self.label[-30:]}"
        return self.label


@dataclass(frozen=True)
class CommandResult:
    """Output of one external command, split into lines."""

    command: tuple[str, ...]
    returncode: int
    stdout: tuple[str, ...] = ()
    stderr: tuple[str, ...] = ()

    @property
    def exited_ok(self) -> bool:
        return self.returncode == 0

    @property
    def failed(self) -> bool:
        return self.returncode != 0 or bool(self.stderr)

    def check(self) -> "CommandResult":
        """Raise GitCommandError on a non-zero exit, otherwise return self."""

        if not self.exited_ok:
            raise GitCommandError(list(self.command), self.returncode, "\n".join(self.stderr))
        return self


@dataclass(frozen=True)
class ScanResult:
    label: str
    outcome: ScanOutcome
    message: str = ""
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is ScanOutcome.SUCCESS


@dataclass(frozen=True)
class OperationResult:
    label: str
    operation: str
    success: bool
    message: str = ""


@dataclass(frozen=True)
class Capabilities:
    """Which commands a repository accepts in its current state."""

    can_scan: bool = False
    can_stage: bool = False
    can_commit: bool = False
    can_push: bool = False
    can_pull: bool = False
    can_force_pull: bool = False
    can_stash: bool = False
    can_restore_stash: bool = False
    can_clean: bool = False
    can_hard_reset: bool = False
    can_edit_files: bool = False


def _bucket_dirty(entries: tuple[FileEntry, ...]) -> CurrentStatus:
    return CurrentStatus.DIRTY if any(entry.dirty for entry in entries) else CurrentStatus.UNTOUCHED


def _bucket_present(entries: tuple[FileEntry, ...]) -> CurrentStatus:
    return CurrentStatus.DIRTY if entries else CurrentStatus.UNTOUCHED


@dataclass(frozen=True)
class RepositorySnapshot:
    """Immutable view of every bucket plus ahead/behind counts."""

    untracked: tuple[FileEntry, ...] = ()
    not_staged: tuple[FileEntry, ...] = ()
    staged: tuple[FileEntry, ...] = ()
    conflicted: tuple[FileEntry, ...] = ()
    stashed: tuple[FileEntry, ...] = ()
    ahead: int = 0
    behind: int = 0

    def bucket(self, bucket: Bucket) -> tuple[FileEntry, ...]:
        return getattr(self, bucket.value)

    def entries(self) -> list[FileEntry]:
        return [*self.conflicted, *self.staged, *self.not_staged, *self.untracked, *self.stashed]

    def find(self, path: Path) -> FileEntry | None:
        for entry in self.entries():
            if entry.bucket is not Bucket.STASHED and entry.path == path:
                return entry
        return None

    @property
    def files_to_commit(self) -> tuple[FileEntry, ...]:
        return tuple(entry for entry in self.not_staged if entry.dirty)

    @property
    def bucket_status(self) -> dict[Bucket, CurrentStatus]:
        if self.conflicted:
            conflicted = CurrentStatus.CONFLICTS
        else:
            conflicted = CurrentStatus.UNTOUCHED
        return {
            Bucket.UNTRACKED: _bucket_dirty(self.untracked),
            Bucket.NOT_STAGED: _bucket_dirty(self.not_staged),
            Bucket.STAGED: _bucket_present(self.staged),
            Bucket.CONFLICTED: conflicted,
            Bucket.STASHED: _bucket_present(self.stashed),
        }

    @property
    def dirty(self) -> bool:
        if self.conflicted:
            return True
        statuses = self.bucket_status.values()
        return any(status is not CurrentStatus.UNTOUCHED for status in statuses) or self.ahead > 0 or self.behind > 0

    @property
    def status(self) -> CurrentStatus:
        if self.conflicted:
            return CurrentStatus.CONFLICTS
        return CurrentStatus.DIRTY if self.dirty else CurrentStatus.UNTOUCHED


EMPTY_SNAPSHOT = RepositorySnapshot()


@dataclass
class StatusReport:
    """Records and counts extracted from one status report."""

    records: dict[Bucket, list[FileEntry]] = field(
        default_factory=lambda: {bucket: [] for bucket in WORKING_TREE_BUCKETS}
    )
    ahead: int = 0
    behind: int = 0

    @property
    def is_behind(self) -> bool:
        return self.behind > 0

    @property
    def has_unpushed(self) -> bool:
        return self.ahead > 0

    def bucket(self, bucket: Bucket) -> list[FileEntry]:
        return self.records[bucket]
