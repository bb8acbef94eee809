"""Append-only activity log shared by every repository."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

logger = logging.getLogger(__name__)


class LogType(str, Enum):
    MESSAGE = "message"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    log_type: LogType
    text: str


Sink = Callable[[Sequence[LogEntry], bool], None]
Dispatch = Callable[..., object]

_LEVELS = {
    LogType.MESSAGE: logging.DEBUG,
    LogType.SUCCESS: logging.INFO,
    LogType.WARNING: logging.WARNING,
    LogType.ERROR: logging.WARNING,
}


def _call_now(fn: Callable[..., object], *args: object) -> None:
    fn(*args)


class ActivityLog:
    """Buffers log lines from any thread and hands them to sinks in batches.

    ``add`` only appends under a lock. ``flush`` swaps the buffer out under the
    same lock and passes the whole batch to each sink through ``dispatch``,
    which is how the batch reaches the coordination context. A sink therefore
    never observes half of a flush.
    """

    def __init__(self, dispatch: Dispatch | None = None) -> None:
        self._lock = threading.Lock()
        self._buffer: list[LogEntry] = []
        self._sinks: list[Sink] = []
        self._dispatch = dispatch or _call_now

    def set_dispatch(self, dispatch: Dispatch) -> None:
        self._dispatch = dispatch

    def add_sink(self, sink: Sink) -> None:
        self._sinks.append(sink)

    def add(self, log_type: LogType, text: str) -> None:
        logger.log(_LEVELS[log_type], text)
        with self._lock:
            self._buffer.append(LogEntry(log_type, text))

    def message(self, text: str) -> None:
        self.add(LogType.MESSAGE, text)

    def success(self, text: str) -> None:
        self.add(LogType.SUCCESS, text)

    def warning(self, text: str) -> None:
        self.add(LogType.WARNING, text)

    def error(self, text: str) -> None:
        self.add(LogType.ERROR, text)

    def pending(self) -> list[LogEntry]:
        with self._lock:
            return list(self._buffer)

    def flush(self, clear: bool = False) -> list[LogEntry]:
        with self._lock:
            batch = self._buffer
            self._buffer = []
        if batch or clear:
            for sink in self._sinks:
                self._dispatch(sink, tuple(batch), clear)
        return batch
