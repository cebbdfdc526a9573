"""Implementation for the ``handoff status`` command."""

from __future__ import annotations

import json

from rich import box
from rich.console import Console
from rich.table import Table

from .. import config, log
from ..errors import ServiceFailure
from ..io import die, say
from ..remote import RemoteShell
from ..status import DEFAULT_CAPTURE_LINES, StatusReport, collect_status

_FORMATS = {"table", "json"}


def _render_table(report: StatusReport) -> None:
    console = Console(no_color=log.color_disabled())
    console.print(f"host: {report.host}")
    console.print(f"pattern: {report.pattern}", markup=False)
    table = Table(box=box.SIMPLE)
    table.add_column("Session", overflow="fold")
    table.add_column("State")
    table.add_column("Status")
    table.add_column("Bookmark", overflow="fold")
    for session in report.sessions:
        table.add_row(session.session, session.state, session.status or "", session.bookmark or "")
    console.print(table)


def show_status(args: object) -> None:
    """Summarize remote cloud tmux sessions."""
    format_value = str(getattr(args, "format", "json") or "json").lower()
    if format_value not in _FORMATS:
        die(f"unsupported format: {format_value}")
    lines = getattr(args, "lines", None)
    if lines is None:
        lines = DEFAULT_CAPTURE_LINES
    include_pane = bool(getattr(args, "include_pane", False))
    try:
        handoff_config = config.load_config()
        pattern = getattr(args, "pattern", None) or f"^{handoff_config.tmux.prefix}-"
        report = collect_status(
            RemoteShell(handoff_config.remote),
            pattern=pattern,
            lines=int(lines),
            include_pane=include_pane,
        )
    except ServiceFailure as exc:
        die(str(exc))
    if format_value == "json":
        say(json.dumps(report.to_payload(), indent=2))
        return
    _render_table(report)
