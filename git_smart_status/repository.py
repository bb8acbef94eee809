"""Per-repository state: the scan sequence and every mutating command.

A :class:`RepositoryState` never edits its buckets in place. A full scan
builds a new :class:`~git_smart_status.models.RepositorySnapshot` and swaps it
in; the file-watch path swaps in a copy with one path patched. Commands are
serialised through the busy lock, which is taken without blocking: asking a
busy repository to do something raises :class:`RepositoryBusyError`.
"""

from __future__ import annotations

import dataclasses
import logging
import shlex
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, Sequence

from .activity import ActivityLog
from .classifier import analyze, change_lines
from .exceptions import RepositoryBusyError, ValidationError
from .models import (
    EMPTY_SNAPSHOT,
    WORKING_TREE_BUCKETS,
    Bucket,
    Capabilities,
    ChangeType,
    FileEntry,
    OperationResult,
    RepositorySnapshot,
    ScanOutcome,
    ScanResult,
)
from .rules import DEFAULT_RULES, ClassifierRules
from .runner import CommandRunner
from .status_parser import normalize_label, parse_status

logger = logging.getLogger(__name__)

NO_STASH = "No stash entries found"
SEPARATOR = "-" * 30
Listener = Callable[["RepositoryState"], None]
BusyListener = Callable[["RepositoryState", bool], None]


class CancelToken:
    """Cooperative cancellation flag checked between scan phases."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def derive_capabilities(snapshot: RepositorySnapshot, busy: bool) -> Capabilities:
    idle = not busy
    return Capabilities(
        can_scan=idle,
        can_stage=idle and bool(snapshot.untracked or snapshot.not_staged),
        can_commit=idle and bool(snapshot.staged),
        can_push=idle and snapshot.ahead > 0,
        can_pull=idle and snapshot.behind > 0,
        can_force_pull=idle and snapshot.behind > 0,
        can_stash=idle and any(not entry.dirty for entry in snapshot.not_staged),
        can_restore_stash=idle and bool(snapshot.stashed),
        can_clean=idle,
        can_hard_reset=idle,
        can_edit_files=idle,
    )


def _without_path(entries: tuple[FileEntry, ...], path: Path) -> tuple[FileEntry, ...]:
    return tuple(entry for entry in entries if entry.path != path)


def _with_entry(snapshot: RepositorySnapshot, entry: FileEntry) -> RepositorySnapshot:
    current = snapshot.bucket(entry.bucket)
    replaced = False
    updated = []
    for existing in current:
        if existing.path == entry.path:
            updated.append(entry)
            replaced = True
        else:
            updated.append(existing)
    if not replaced:
        updated.append(entry)
    return dataclasses.replace(snapshot, **{entry.bucket.value: tuple(updated)})


def _without_entry(snapshot: RepositorySnapshot, path: Path, buckets: Iterable[Bucket]) -> RepositorySnapshot:
    changes = {bucket.value: _without_path(snapshot.bucket(bucket), path) for bucket in buckets}
    return dataclasses.replace(snapshot, **changes)


class RepositoryState:
    def __init__(
        self,
        path: Path,
        runner: CommandRunner,
        *,
        label: str | None = None,
        rules: ClassifierRules = DEFAULT_RULES,
    ) -> None:
        self.path = path
        self.label = label or path.name
        self.runner = runner
        self.rules = rules
        self._busy_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._busy = False
        self._snapshot = EMPTY_SNAPSHOT
        self._generation = 0
        self._capabilities = derive_capabilities(EMPTY_SNAPSHOT, False)
        self._listeners: list[Listener] = []
        self._busy_listeners: list[BusyListener] = []

    def __repr__(self) -> str:
        return f"RepositoryState({self.label!r}, busy={self._busy})"

    @property
    def log(self) -> ActivityLog:
        return self.runner.log

    @property
    def snapshot(self) -> RepositorySnapshot:
        return self._snapshot

    @property
    def generation(self) -> int:
        """Bumped on every wholesale snapshot replacement, never by single-path patches."""
        return self._generation

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def display_label(self) -> str:
        snapshot = self._snapshot
        if snapshot.behind > 0 or snapshot.ahead > 0:
            return f"{self.label} ({snapshot.behind}/{snapshot.ahead})"
        return self.label

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def add_busy_listener(self, listener: BusyListener) -> None:
        self._busy_listeners.append(listener)

    # -- busy flag -----------------------------------------------------

    def _acquire(self, operation: str) -> None:
        if not self._busy_lock.acquire(blocking=False):
            raise RepositoryBusyError(self.label, operation)
        self._busy = True
        self._notify_busy(True)

    def release(self) -> None:
        """Clear the busy flag; batch scans call this once every repository finished."""

        if not self._busy:
            return
        self._busy = False
        self._busy_lock.release()
        self._notify_busy(False)

    def _notify_busy(self, value: bool) -> None:
        for listener in list(self._busy_listeners):
            listener(self, value)
        self._publish()

    def _start(self, operation: str, allowed: bool | Callable[[RepositorySnapshot], bool], reason: str) -> None:
        self._acquire(operation)
        ok = allowed(self._snapshot) if callable(allowed) else allowed
        if not ok:
            self.release()
            raise ValidationError(reason)

    # -- snapshot replacement ------------------------------------------

    def _replace(self, snapshot: RepositorySnapshot) -> None:
        with self._state_lock:
            self._snapshot = snapshot
            self._generation += 1
        self._publish()

    def _patch(
        self,
        change: Callable[[RepositorySnapshot], RepositorySnapshot],
        generation: int | None = None,
    ) -> bool:
        with self._state_lock:
            if generation is not None and generation != self._generation:
                return False
            self._snapshot = change(self._snapshot)
        self._publish()
        return True

    def _publish(self) -> None:
        self._capabilities = derive_capabilities(self._snapshot, self._busy)
        for listener in list(self._listeners):
            listener(self)

    def patch_entry(self, entry: FileEntry) -> None:
        """Insert or replace one record in its bucket."""

        self._patch(lambda snapshot: _with_entry(snapshot, entry))

    def remove_entry(self, path: Path, bucket: Bucket | None = None) -> None:
        buckets = (bucket,) if bucket else WORKING_TREE_BUCKETS
        self._patch(lambda snapshot: _without_entry(snapshot, path, buckets))

    def patch_file(self, path: Path, entries: Sequence[FileEntry], *, generation: int | None = None) -> bool:
        """Swap every working-tree record of ``path`` for ``entries`` in one step.

        With ``generation`` set, the patch is dropped (and False returned) when
        a scan replaced the snapshot since the entries were resolved.
        """

        def change(snapshot: RepositorySnapshot) -> RepositorySnapshot:
            updated = _without_entry(snapshot, path, WORKING_TREE_BUCKETS)
            for entry in entries:
                updated = _with_entry(updated, entry)
            return updated

        return self._patch(change, generation)

    # -- scanning ------------------------------------------------------

    def scan(
        self,
        *,
        fetch_remote: bool = True,
        cancel: CancelToken | None = None,
        defer_release: bool = False,
    ) -> ScanResult:
        self._acquire("scan")
        try:
            return self._scan_locked(fetch_remote=fetch_remote, cancel=cancel)
        finally:
            if not defer_release:
                self.release()

    def _scan_locked(self, *, fetch_remote: bool = False, cancel: CancelToken | None = None) -> ScanResult:
        start = time.monotonic()
        self._replace(EMPTY_SNAPSHOT)

        if fetch_remote:
            remote = self.runner.git(["remote", "update"], cwd=self.path)
            if not remote.exited_ok:
                return self._scan_failed("Could not update from remote.", start)
            self.log.success("Updated from remote.")
            self.log.flush()
        if cancel is not None and cancel.cancelled:
            return self._scan_cancelled(start)

        status = self.runner.git(["status", "-u"], cwd=self.path)
        if status.failed:
            return self._scan_failed("git status failed.", start)
        if not status.stdout:
            self.log.warning("no console output.")
            return self._scan_failed("git status printed nothing.", start)
        report = parse_status(status.stdout, self.path, self.rules)
        buckets = {bucket: tuple(self._classify(entry) for entry in report.bucket(bucket)) for bucket in WORKING_TREE_BUCKETS}
        if cancel is not None and cancel.cancelled:
            return self._scan_cancelled(start)

        stashed = self._stash_entries()
        if stashed is None:
            return self._scan_failed("git stash show failed.", start)
        if cancel is not None and cancel.cancelled:
            return self._scan_cancelled(start)

        self._replace(
            RepositorySnapshot(
                untracked=buckets[Bucket.UNTRACKED],
                not_staged=buckets[Bucket.NOT_STAGED],
                staged=buckets[Bucket.STAGED],
                conflicted=buckets[Bucket.CONFLICTED],
                stashed=stashed,
                ahead=report.ahead,
                behind=report.behind,
            )
        )
        elapsed = time.monotonic() - start
        self.log.success(f"Update success in {elapsed:.2f}s")
        self.log.flush()
        return ScanResult(self.label, ScanOutcome.SUCCESS, elapsed=elapsed)

    def _scan_failed(self, message: str, start: float) -> ScanResult:
        self.log.error(f"{self.label}: {message}")
        self.log.flush()
        return ScanResult(self.label, ScanOutcome.FAILED, message, time.monotonic() - start)

    def _scan_cancelled(self, start: float) -> ScanResult:
        self.log.warning(f"{self.label}: scan cancelled.")
        self.log.flush()
        return ScanResult(self.label, ScanOutcome.CANCELLED, "Scan cancelled.", time.monotonic() - start)

    def diff(self, entry: FileEntry) -> str:
        args = ["diff"]
        if entry.bucket is Bucket.STAGED:
            args.append("--cached")
        result = self.runner.git([*args, "--", entry.label], cwd=self.path)
        return change_lines(result.stdout)

    def _classify(self, entry: FileEntry) -> FileEntry:
        if entry.bucket is Bucket.UNTRACKED:
            return analyze(entry, rules=self.rules)
        if entry.bucket is Bucket.NOT_STAGED and entry.change_type is ChangeType.DELETED:
            return entry
        return analyze(dataclasses.replace(entry, diff=self.diff(entry)), rules=self.rules)

    def _stash_entries(self) -> tuple[FileEntry, ...] | None:
        result = self.runner.git(["stash", "show", "--name-only"], cwd=self.path)
        if any(NO_STASH in line for line in (*result.stdout, *result.stderr)):
            return ()
        if not result.exited_ok:
            return None
        entries = []
        for line in result.stdout:
            if not line.strip():
                continue
            label = normalize_label(line)
            entries.append(
                FileEntry(
                    path=self.path / label,
                    label=label,
                    bucket=Bucket.STASHED,
                    file_type=self.rules.file_type(label),
                )
            )
        return tuple(entries)

    def resolve_file(self, path: Path) -> list[FileEntry]:
        """Look up the current records for one file without touching state.

        Raises GitCommandError when git cannot report on the file.
        """

        label = path.relative_to(self.path).as_posix()
        result = self.runner.git(["status", "-u", "--", label], cwd=self.path).check()
        report = parse_status(result.stdout, self.path, self.rules)
        resolved = []
        for bucket in WORKING_TREE_BUCKETS:
            for entry in report.bucket(bucket):
                if entry.path == path:
                    resolved.append(self._classify(entry))
        return resolved

    # -- commands ------------------------------------------------------

    def _execute(self, operation: str, commands: Sequence[Sequence[str]], *, fetch_remote: bool = False) -> OperationResult:
        """Run git commands in order while holding the busy lock, then rescan."""

        try:
            success = True
            for args in commands:
                if not self.runner.git(args, cwd=self.path).exited_ok:
                    success = False
                    break
            self._log_outcome(operation, success)
            self._scan_locked(fetch_remote=fetch_remote)
        finally:
            self.release()
        return OperationResult(self.label, operation, success)

    def _log_outcome(self, operation: str, success: bool) -> None:
        if success:
            self.log.success(f"Success {operation}")
        else:
            self.log.error(f"Error {operation}!")
        self.log.message(SEPARATOR)
        self.log.message("")
        self.log.flush()

    def stage_all(self) -> OperationResult:
        self._start("stage files", lambda s: bool(s.untracked or s.not_staged), "Nothing to stage.")
        return self._execute("staging files", [["add", "-A"]])

    def stage_selected(self, entries: Sequence[FileEntry]) -> OperationResult:
        self._start("stage files", bool(entries), "Select at least one file to stage.")
        return self._execute("staging files", [["add", "--", *(entry.label for entry in entries)]])

    def commit(self, message: str) -> OperationResult:
        message = message.strip()
        if not message:
            raise ValidationError("Commit message is required.")
        self._start("commit", lambda s: bool(s.staged), "There are no staged files to commit.")
        return self._execute("committing files", [["commit", "-m", message]])

    def push(self) -> OperationResult:
        self._start("push", lambda s: s.ahead > 0, "There are no unpushed commits.")
        return self._execute("pushing files", [["push"]], fetch_remote=True)

    def pull(self) -> OperationResult:
        self._start("pull", lambda s: s.behind > 0, "The branch is not behind its upstream.")
        return self._execute("pulling files", [["pull"]], fetch_remote=True)

    def force_pull(self) -> OperationResult:
        self._start("force pull", lambda s: s.behind > 0, "The branch is not behind its upstream.")
        return self._execute("force pulling", [["reset", "--hard"], ["pull"]], fetch_remote=True)

    def hard_reset(self) -> OperationResult:
        self._start("reset", True, "")
        return self._execute("reset hard", [["reset", "--hard"]])

    def clean_untracked(self) -> OperationResult:
        self._start("clean", True, "")
        return self._execute("cleaning untracked files", [["clean", "-fx"]])

    def stash_temp(self) -> OperationResult:
        """Shelve every not-staged file the classifier considered noise."""

        self._start("stash", lambda s: any(not e.dirty for e in s.not_staged), "No untouched files to stash.")
        labels = [entry.label for entry in self._snapshot.not_staged if not entry.dirty]
        return self._execute("stashing temporary files", [["stash", "push", "--", *labels]])

    def stash_all(self) -> OperationResult:
        self._start("stash", lambda s: bool(s.not_staged or s.staged), "Nothing to stash.")
        return self._execute("stashing all files", [["stash"]])

    def restore_stashed(self) -> OperationResult:
        self._start("restore stash", lambda s: bool(s.stashed), "There is nothing stashed.")
        return self._execute("restoring stash", [["stash", "apply"], ["stash", "drop"]])

    def add(self, entry: FileEntry) -> OperationResult:
        self._start("add file", True, "")
        return self._execute("adding file", [["add", "--", entry.label]])

    def unstage(self, entry: FileEntry) -> OperationResult:
        self._start("unstage file", True, "")
        return self._execute("unstaging file", [["reset", "--", entry.label]])

    def undo_changes(self, entry: FileEntry) -> OperationResult:
        self._start("undo changes", True, "")
        return self._execute("undo changes", [["checkout", "--", entry.label]])

    def delete(self, entry: FileEntry) -> OperationResult:
        self._start("delete file", True, "")
        try:
            try:
                entry.path.unlink()
            except OSError as exc:
                self.log.error(f"Error deleting file: {exc}")
                self.log.flush()
                return OperationResult(self.label, "deleting file", False, str(exc))
            self.log.success("Success deleting file.")
            self._scan_locked()
        finally:
            self.release()
        return OperationResult(self.label, "deleting file", True)

    def merge(self, entry: FileEntry, editor: str, *, restage: bool = False) -> OperationResult:
        """Open a conflicted file in an external editor, then optionally stage it."""

        self._start("merge", True, "")
        try:
            command = shlex.split(editor)
            if not command:
                raise ValidationError("No editor configured for resolving conflicts.")
            edited = self.runner.run(command[0], [*command[1:], str(entry.path)], cwd=self.path, capture=False)
            success = edited.exited_ok
            if success and restage:
                success = self.runner.git(["add", "--", entry.label], cwd=self.path).exited_ok
            self._log_outcome("merging file", success)
            self._scan_locked()
        finally:
            self.release()
        return OperationResult(self.label, "merging file", success)
