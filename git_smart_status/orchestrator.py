"""Discover repositories under a root, scan them in parallel, then watch them."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Sequence

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .activity import ActivityLog
from .config import Settings
from .dispatch import CoordinationContext
from .exceptions import GitCommandError, RepositoryBusyError
from .models import FileEntry, ScanOutcome, ScanResult
from .repository import CancelToken, RepositoryState
from .runner import CommandRunner

logger = logging.getLogger(__name__)

IGNORED_EXTENSIONS = (
    ".cache",
    ".tmp",
    ".dll",
    ".obj",
    ".suo",
    ".props",
    ".json",
    ".ide",
    ".git",
    ".lock",
    ".ide-wal",
)
DEBOUNCE_SECONDS = 1.0

BatchListener = Callable[[bool], None]


def discover_repositories(root: Path, denylist: Sequence[str]) -> list[Path]:
    """Immediate subdirectories of ``root`` whose names avoid the denylist."""

    found = []
    for child in sorted(root.iterdir()):
        if not child.is_dir():
            continue
        name = child.name.lower()
        if any(token in name for token in denylist):
            logger.debug("skipping %s (denylisted)", child)
            continue
        found.append(child)
    return found


def should_ignore_path(repo_path: Path, path: Path) -> bool:
    if path.suffix.lower() in IGNORED_EXTENSIONS:
        return True
    if path.name.endswith(("TMP", "~")):
        return True
    try:
        relative = path.relative_to(repo_path)
    except ValueError:
        return True
    return relative.as_posix().startswith(".git")


class Debouncer:
    """Drop repeat events for the same key inside a time window."""

    def __init__(self, window: float = DEBOUNCE_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._lock = threading.Lock()
        self._last: dict[str, float] = {}

    def should_process(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < self.window:
                return False
            self._last[key] = now
            return True


class RepositoryEventHandler(FileSystemEventHandler):
    def __init__(self, orchestrator: "ScanOrchestrator", state: RepositoryState) -> None:
        super().__init__()
        self.orchestrator = orchestrator
        self.state = state

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.orchestrator.handle_file_event(self.state, Path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.orchestrator.handle_file_event(self.state, Path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.orchestrator.handle_file_event(self.state, Path(event.src_path), deleted=True)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self.orchestrator.handle_file_event(self.state, Path(event.src_path), deleted=True)
        self.orchestrator.handle_file_event(self.state, Path(event.dest_path))


class ScanOrchestrator:
    """Owns every RepositoryState found under the configured root."""

    def __init__(
        self,
        settings: Settings,
        *,
        log: ActivityLog | None = None,
        runner: CommandRunner | None = None,
        context: CoordinationContext | None = None,
        observer_factory: Callable[[], Observer] = Observer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.context = context or CoordinationContext()
        self.log = log or ActivityLog(dispatch=self.context.submit)
        self.runner = runner or CommandRunner(self.log)
        self.repositories: list[RepositoryState] = []
        self._observer_factory = observer_factory
        self._observer: Observer | None = None
        self._watches: dict[Path, object] = {}
        self._debouncer = Debouncer(clock=clock)
        self._cancel = CancelToken()
        self._lock = threading.Lock()
        self._busy_repos: set[Path] = set()
        self._suspended = 0
        self._batch_busy = False
        self._batch_listeners: list[BatchListener] = []

    # -- batch busy signal ---------------------------------------------

    @property
    def batch_busy(self) -> bool:
        return self._batch_busy

    @property
    def events_suspended(self) -> bool:
        return self._suspended > 0

    def add_batch_listener(self, listener: BatchListener) -> None:
        self._batch_listeners.append(listener)

    def _on_repository_busy(self, state: RepositoryState, busy: bool) -> None:
        with self._lock:
            if busy:
                self._busy_repos.add(state.path)
            else:
                self._busy_repos.discard(state.path)
        self._update_batch_busy()

    def _update_batch_busy(self) -> None:
        with self._lock:
            value = bool(self._busy_repos) or self._suspended > 0
            changed = value != self._batch_busy
            self._batch_busy = value
        if changed:
            for listener in list(self._batch_listeners):
                listener(value)

    @contextmanager
    def suspend_events(self) -> Iterator[None]:
        """Silence file-watch events while a batch operation (build, rescan) runs."""

        with self._lock:
            self._suspended += 1
        self._update_batch_busy()
        try:
            yield
        finally:
            with self._lock:
                self._suspended -= 1
            self._update_batch_busy()

    # -- discovery and scanning ----------------------------------------

    def discover(self) -> list[RepositoryState]:
        if self.repositories:
            return self.repositories
        for path in discover_repositories(self.settings.root, self.settings.denylist):
            state = RepositoryState(path, self.runner, rules=self.settings.rules)
            state.add_busy_listener(self._on_repository_busy)
            self.repositories.append(state)
        logger.info("discovered %d repositories under %s", len(self.repositories), self.settings.root)
        return self.repositories

    def find(self, name: str) -> RepositoryState | None:
        for state in self.discover():
            if state.label == name or state.path.name == name:
                return state
        return None

    def cancel(self) -> None:
        self._cancel.cancel()

    def scan_all(self, *, fetch_remote: bool | None = None, watch: bool = True) -> dict[str, ScanResult]:
        """Scan every repository concurrently, one task per repository.

        Each repository stays busy until the whole batch finished. Watchers are
        attached afterwards to the repositories that scanned successfully.
        """

        fetch = self.settings.fetch_remote if fetch_remote is None else fetch_remote
        states = self.discover()
        self._cancel.reset()
        results: dict[str, ScanResult] = {}
        started: list[RepositoryState] = []
        with self.suspend_events():
            if states:
                with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
                    futures = {executor.submit(self._scan_one, state, fetch, started): state for state in states}
                    for future in as_completed(futures):
                        state = futures[future]
                        results[state.label] = future.result()
            for state in started:
                state.release()
        self.log.flush()
        if watch:
            for state in states:
                if results[state.label].succeeded:
                    self.watch(state)
        return {state.label: results[state.label] for state in states}

    def _scan_one(self, state: RepositoryState, fetch: bool, started: list[RepositoryState]) -> ScanResult:
        try:
            result = state.scan(fetch_remote=fetch, cancel=self._cancel, defer_release=True)
        except RepositoryBusyError as exc:
            self.log.warning(str(exc))
            return ScanResult(state.label, ScanOutcome.FAILED, str(exc))
        except Exception as exc:
            logger.exception("scan of %s crashed", state.label)
            self.log.error(f"{state.label}: {exc}")
            result = ScanResult(state.label, ScanOutcome.FAILED, str(exc))
        with self._lock:
            started.append(state)
        return result

    # -- file watching -------------------------------------------------

    def watch(self, state: RepositoryState) -> None:
        if state.path in self._watches:
            return
        if self._observer is None:
            self._observer = self._observer_factory()
            self._observer.start()
        handler = RepositoryEventHandler(self, state)
        self._watches[state.path] = self._observer.schedule(handler, str(state.path), recursive=True)
        logger.debug("watching %s", state.path)

    def handle_file_event(self, state: RepositoryState, path: Path, *, deleted: bool = False) -> Future | None:
        """Turn one raw filesystem event into a single-record patch.

        Returns the future of the patch queued on the coordination context, or
        None when the event was filtered out.
        """

        if self.events_suspended or state.busy:
            return None
        if should_ignore_path(state.path, path):
            return None
        if not deleted and not path.is_file():
            return None
        if not self._debouncer.should_process(str(path)):
            logger.debug("debounced %s", path)
            return None
        generation = state.generation
        try:
            entries = state.resolve_file(path)
        except GitCommandError as exc:
            self.log.error(f"{state.label}: {exc}")
            self.log.flush()
            return None
        return self.context.submit(self._apply_patch, state, path, entries, generation)

    def _apply_patch(self, state: RepositoryState, path: Path, entries: list[FileEntry], generation: int) -> bool:
        if state.busy or not state.patch_file(path, entries, generation=generation):
            logger.debug("dropped stale update for %s", path)
            return False
        return True

    def close(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        self._watches.clear()
        self.log.flush()
        self.context.shutdown()
        self.repositories = []
