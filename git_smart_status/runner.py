"""Thin wrapper around external processes, mainly the git CLI."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Iterable, Mapping

from .activity import ActivityLog
from .models import CommandResult

GIT = "git"


class CommandRunner:
    """Run one command synchronously and record every line it prints.

    Callers pick the thread. Nothing here raises for a failing command: the
    exit code and the stderr lines come back in the ``CommandResult`` and the
    caller decides how bad that is.
    """

    def __init__(self, log: ActivityLog, env: Mapping[str, str] | None = None) -> None:
        self.log = log
        self._env = dict(env) if env is not None else None

    def git(self, args: Iterable[str], *, cwd: Path) -> CommandResult:
        # Headers like "Changes to be committed:" are only stable in the C locale,
        # and paths must come back as UTF-8 rather than octal escapes.
        return self.run(
            GIT,
            ["-c", "core.quotePath=false", *args],
            cwd=cwd,
            extra_env={"LC_ALL": "C", "GIT_TERMINAL_PROMPT": "0"},
        )

    def run(
        self,
        executable: str,
        args: Iterable[str],
        *,
        cwd: Path,
        capture: bool = True,
        extra_env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        cmd = [executable, *args]
        self.log.message(f"cd {cwd}")
        self.log.message(" ".join(cmd))
        env = dict(self._env if self._env is not None else os.environ)
        if extra_env:
            env.update(extra_env)
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(cwd),
                capture_output=capture,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=env,
                check=False,
            )
        except FileNotFoundError:
            message = f"{executable}: command not found"
            self.log.error(message)
            return CommandResult(command=tuple(cmd), returncode=127, stderr=(message,))
        except OSError as exc:
            message = f"{executable}: {exc}"
            self.log.error(message)
            return CommandResult(command=tuple(cmd), returncode=126, stderr=(message,))

        stdout = _split(proc.stdout)
        stderr = _split(proc.stderr)
        for line in stdout:
            self.log.message(line)
        for line in stderr:
            self.log.error(line)
        return CommandResult(command=tuple(cmd), returncode=proc.returncode, stdout=stdout, stderr=stderr)


def _split(text: str | None) -> tuple[str, ...]:
    if not text:
        return ()
    return tuple(line.rstrip("\r") for line in text.splitlines())
