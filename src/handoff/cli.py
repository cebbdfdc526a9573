"""Handoff command-line interface."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Annotated

import typer

from . import __version__
from . import log as handoff_log
from .commands import show_config as config_cmd
from .commands import show_status as status_cmd
from .commands import start_cloud_clean as clean_cmd
from .commands import start_cloud_run as run_cmd

app = typer.Typer(
    help="Move jj changes and agent sessions to a remote build host.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _log_level_callback(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in handoff_log.LEVEL_NAMES:
        raise typer.BadParameter(
            f"expected one of: {', '.join(handoff_log.LEVEL_NAMES)}",
            param_hint="--log-level",
        )
    return normalized


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show the version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            callback=_log_level_callback,
            help="Log verbosity (trace|debug|info|success|warning|error).",
        ),
    ] = None,
    no_color: Annotated[
        bool,
        typer.Option("--no-color", help="Disable colored output."),
    ] = False,
) -> None:
    if log_level is not None:
        handoff_log.set_level(log_level)
    if no_color:
        handoff_log.set_no_color(True)


def _exit_with(code: int | None) -> None:
    if code:
        raise typer.Exit(code)


@app.command("run")
def run_command(
    prompt: Annotated[
        list[str] | None,
        typer.Argument(help="Prompt for the remote agent (default: continue)."),
    ] = None,
    cwd: Annotated[
        Path | None,
        typer.Option("--cwd", help="Working directory to treat as the local cwd."),
    ] = None,
    session_file: Annotated[
        Path | None,
        typer.Option("--session-file", help="Local agent session file to carry over."),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Emit worker NDJSON events instead of human output."),
    ] = False,
) -> None:
    """Start a cloud agent run for the current jj change."""
    _exit_with(
        run_cmd(
            SimpleNamespace(
                prompt=prompt or [],
                cwd=cwd,
                session_file=session_file,
                json=json_output,
            )
        )
    )


@app.command("clean")
def clean_command(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Emit worker NDJSON events."),
    ] = False,
) -> None:
    """Interactively delete cloud workspaces for this repository."""
    _exit_with(clean_cmd(SimpleNamespace(json=json_output)))


@app.command("status")
def status_command(
    pattern: Annotated[
        str | None,
        typer.Option("--pattern", help="Session name regex (default: ^<tmux prefix>-)."),
    ] = None,
    lines: Annotated[
        int,
        typer.Option("--lines", help="Lines to capture from each pane."),
    ] = 300,
    include_pane: Annotated[
        bool,
        typer.Option("--include-pane", help="Include captured pane text in JSON."),
    ] = False,
    format: Annotated[
        str,
        typer.Option("--format", help="Output format (json|table)."),
    ] = "json",
) -> None:
    """Inspect remote cloud tmux sessions and summarize their state."""
    status_cmd(
        SimpleNamespace(
            pattern=pattern,
            lines=lines,
            include_pane=include_pane,
            format=format,
        )
    )


@app.command("config")
def config_command(
    init: Annotated[
        bool,
        typer.Option("--init", help="Write a config file with default values."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Overwrite an existing config without asking."),
    ] = False,
) -> None:
    """Show the resolved configuration."""
    config_cmd(SimpleNamespace(init=init, yes=yes))


if __name__ == "__main__":
    app()
