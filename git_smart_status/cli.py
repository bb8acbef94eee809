"""Typer CLI entrypoint for git-smart-status."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import typer

from . import __version__, activity, render
from .config import Settings, load_settings
from .exceptions import SmartStatusError, UserAbort, ValidationError
from .interactive import build_file_choices, fuzzy_select, require_confirmation
from .models import Bucket, FileEntry, OperationResult
from .orchestrator import ScanOrchestrator
from .repository import RepositoryState

app = typer.Typer(
    help="Reconcile the status of every git repository under one root directory.",
    add_completion=False,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@dataclass
class AppState:
    root: Optional[Path]
    fetch_remote: bool
    verbose: bool


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"git-smart-status {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    root: Optional[Path] = typer.Option(
        None,
        "--root",
        "-r",
        help="Directory whose subdirectories are the repositories (defaults to $GIT_SMART_STATUS_ROOT).",
        dir_okay=True,
        file_okay=False,
    ),
    no_fetch: bool = typer.Option(False, "--no-fetch", help="Skip 'git remote update' before scanning."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show every git command and its output."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the git-smart-status version and exit.",
    ),
) -> None:
    _ = version  # handled via callback
    configure_logging(verbose)
    ctx.obj = AppState(root=root, fetch_remote=not no_fetch, verbose=verbose)


def _settings(ctx: typer.Context) -> Settings:
    state: AppState = ctx.obj
    return load_settings(state.root, fetch_remote=state.fetch_remote)


def _orchestrator(ctx: typer.Context) -> ScanOrchestrator:
    orchestrator = ScanOrchestrator(_settings(ctx))
    orchestrator.log.add_sink(render.ConsoleSink(show_messages=ctx.obj.verbose))
    # The console sink already prints every activity line.
    logging.getLogger(activity.__name__).propagate = False
    return orchestrator


def _fail(message: str, code: int = 1) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code)


def _with_repository(ctx: typer.Context, name: str, action: Callable[[RepositoryState], None]) -> None:
    """Scan one repository, run ``action`` on it, and report errors uniformly."""

    orchestrator: ScanOrchestrator | None = None
    try:
        orchestrator = _orchestrator(ctx)
        state = orchestrator.find(name)
        if state is None:
            raise ValidationError(f"No repository named {name!r} under {orchestrator.settings.root}.")
        result = state.scan(fetch_remote=orchestrator.settings.fetch_remote)
        orchestrator.log.flush()
        if not result.succeeded:
            raise ValidationError(f"Could not scan {state.label}: {result.message}")
        action(state)
        orchestrator.log.flush()
    except UserAbort as exc:
        render.warning(str(exc))
    except SmartStatusError as exc:
        _fail(str(exc))
    finally:
        if orchestrator is not None:
            orchestrator.close()


def _report(result: OperationResult) -> None:
    render.show_operation(result)
    if not result.success:
        raise typer.Exit(1)


def _pick_file(state: RepositoryState, label: Optional[str], buckets: tuple[Bucket, ...]) -> FileEntry:
    candidates = [entry for bucket in buckets for entry in state.snapshot.bucket(bucket)]
    if label is None:
        if not candidates:
            raise ValidationError("No matching files.")
        label = str(fuzzy_select("Select file", build_file_choices(candidates)))
    label = label.replace("\\", "/")
    for entry in candidates:
        if entry.label == label:
            return entry
    raise ValidationError(f"{label} is not listed in {', '.join(bucket.value for bucket in buckets)}.")


@app.command(help="Scan every repository in parallel and summarise their state")
def scan(ctx: typer.Context) -> None:
    orchestrator: ScanOrchestrator | None = None
    try:
        orchestrator = _orchestrator(ctx)
        states = orchestrator.discover()
        if not states:
            render.info("No repositories found.")
            return
        results = orchestrator.scan_all(watch=False)
        orchestrator.log.flush()
        render.console.print(render.repositories_table(states, results))
    except SmartStatusError as exc:
        _fail(str(exc))
    finally:
        if orchestrator is not None:
            orchestrator.close()


@app.command(help="Show every pending file of one repository")
def show(ctx: typer.Context, repo: str = typer.Argument(..., help="Repository directory name.")) -> None:
    _with_repository(ctx, repo, render.show_repository)


@app.command(help="Scan everything, then keep buckets current as files change")
def watch(ctx: typer.Context) -> None:
    orchestrator: ScanOrchestrator | None = None
    try:
        orchestrator = _orchestrator(ctx)
        states = orchestrator.discover()
        results = orchestrator.scan_all(watch=True)
        render.console.print(render.repositories_table(states, results))

        def on_change(state: RepositoryState) -> None:
            if not state.busy and not orchestrator.events_suspended:
                snapshot = state.snapshot
                render.info(
                    f"{state.display_label}: {len(snapshot.files_to_commit)} changed, "
                    f"{len(snapshot.untracked)} untracked, {snapshot.status.value}"
                )

        for state in states:
            state.add_listener(on_change)
        render.info("Watching for changes, press Ctrl+C to stop.")
        while True:
            time.sleep(1.0)
            orchestrator.log.flush()
    except KeyboardInterrupt:
        render.info("Stopped.")
    except SmartStatusError as exc:
        _fail(str(exc))
    finally:
        if orchestrator is not None:
            orchestrator.close()


@app.command(help="Stage files: everything, or the given paths")
def stage(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    files: Optional[list[str]] = typer.Argument(None, help="Paths to stage (default: everything)."),
) -> None:
    def action(state: RepositoryState) -> None:
        if not files:
            _report(state.stage_all())
            return
        entries = [_pick_file(state, label, (Bucket.NOT_STAGED, Bucket.UNTRACKED)) for label in files]
        _report(state.stage_selected(entries))

    _with_repository(ctx, repo, action)


@app.command(help="Stage a single file")
def add(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    file: Optional[str] = typer.Argument(None, help="Path relative to the repository."),
) -> None:
    _with_repository(
        ctx,
        repo,
        lambda state: _report(state.add(_pick_file(state, file, (Bucket.NOT_STAGED, Bucket.UNTRACKED, Bucket.CONFLICTED)))),
    )


@app.command(help="Move a staged file back to the working tree")
def unstage(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    file: Optional[str] = typer.Argument(None, help="Path relative to the repository."),
) -> None:
    _with_repository(ctx, repo, lambda state: _report(state.unstage(_pick_file(state, file, (Bucket.STAGED,)))))


@app.command(help="Discard working-tree changes of a file")
def undo(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    file: Optional[str] = typer.Argument(None, help="Path relative to the repository."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    def action(state: RepositoryState) -> None:
        entry = _pick_file(state, file, (Bucket.NOT_STAGED,))
        require_confirmation(f"Discard changes to {entry.label}?", yes)
        _report(state.undo_changes(entry))

    _with_repository(ctx, repo, action)


@app.command(help="Delete a file from disk")
def delete(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    file: Optional[str] = typer.Argument(None, help="Path relative to the repository."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    def action(state: RepositoryState) -> None:
        entry = _pick_file(state, file, (Bucket.UNTRACKED, Bucket.NOT_STAGED, Bucket.CONFLICTED))
        require_confirmation(f"Delete {entry.path}?", yes)
        _report(state.delete(entry))

    _with_repository(ctx, repo, action)


@app.command(help="Commit the staged files")
def commit(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    message: str = typer.Option(..., "--message", "-m", help="Commit message."),
) -> None:
    _with_repository(ctx, repo, lambda state: _report(state.commit(message)))


@app.command(help="Push unpushed commits")
def push(ctx: typer.Context, repo: str = typer.Argument(..., help="Repository directory name.")) -> None:
    _with_repository(ctx, repo, lambda state: _report(state.push()))


@app.command(help="Pull when the branch is behind its upstream")
def pull(ctx: typer.Context, repo: str = typer.Argument(..., help="Repository directory name.")) -> None:
    _with_repository(ctx, repo, lambda state: _report(state.pull()))


@app.command("force-pull", help="Hard reset, then pull")
def force_pull(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    def action(state: RepositoryState) -> None:
        require_confirmation("Uncommitted work will be lost. Reset and pull?", yes)
        _report(state.force_pull())

    _with_repository(ctx, repo, action)


@app.command("reset-hard", help="Throw away every uncommitted change")
def reset_hard(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    def action(state: RepositoryState) -> None:
        require_confirmation("This can not be undone and you may lose work. Reset?", yes)
        _report(state.hard_reset())

    _with_repository(ctx, repo, action)


@app.command(help="Remove untracked and ignored files")
def clean(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    def action(state: RepositoryState) -> None:
        require_confirmation("This can not be undone and you may lose work. Clean?", yes)
        _report(state.clean_untracked())

    _with_repository(ctx, repo, action)


@app.command("stash-temp", help="Stash changed files that only carry version noise")
def stash_temp(ctx: typer.Context, repo: str = typer.Argument(..., help="Repository directory name.")) -> None:
    _with_repository(ctx, repo, lambda state: _report(state.stash_temp()))


@app.command("stash-all", help="Stash every change")
def stash_all(ctx: typer.Context, repo: str = typer.Argument(..., help="Repository directory name.")) -> None:
    _with_repository(ctx, repo, lambda state: _report(state.stash_all()))


@app.command("restore-stash", help="Apply and drop the latest stash")
def restore_stash(ctx: typer.Context, repo: str = typer.Argument(..., help="Repository directory name.")) -> None:
    _with_repository(ctx, repo, lambda state: _report(state.restore_stashed()))


@app.command(help="Resolve a conflicted file in an external editor")
def merge(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="Repository directory name."),
    file: Optional[str] = typer.Argument(None, help="Path relative to the repository."),
    restage: Optional[bool] = typer.Option(None, "--add/--no-add", help="Stage the file after editing."),
) -> None:
    def action(state: RepositoryState) -> None:
        entry = _pick_file(state, file, (Bucket.CONFLICTED,))
        editor = _settings(ctx).editor
        add_after = restage
        if add_after is None:
            try:
                require_confirmation("Stage your changes after editing?", False)
                add_after = True
            except UserAbort:
                add_after = False
        _report(state.merge(entry, editor, restage=add_after))

    _with_repository(ctx, repo, action)


if __name__ == "__main__":
    app()
