"""Inspect remote cloud tmux sessions and summarize their state.

The remote agent finishes by printing a completion block (``Status:``,
``Bookmark:``, ``Workspace:``, ``Follow-up:`` and a ``Summary:`` bullet
list). This module captures each session's pane and extracts that block.
"""

from __future__ import annotations

import datetime as dt
import re
from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from . import log as handoff_log
from .errors import ValidationFailedError
from .remote import RemoteShell
from .shell import remote_script, sh_quote

SessionState = Literal["running", "done", "partial", "blocked", "failed", "unknown"]
SESSION_STATES: tuple[SessionState, ...] = (
    "running",
    "done",
    "partial",
    "blocked",
    "failed",
    "unknown",
)
DEFAULT_CAPTURE_LINES = 300
RECENT_PANE_LINES = 120
COMPLETION_MARKER = "✅ Cloud run complete"
FAILURE_MARKER = "/cloud failed:"
_REPORTED_STATES: tuple[SessionState, ...] = ("done", "partial", "blocked", "failed")
_SCROLL_HINT_RE = re.compile(r"^\s*[↑↓]")
_MODEL_FOOTER_RE = re.compile(r"gpt-[0-9]")


class StatusSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session: str
    target: str | None = None
    state: SessionState = "unknown"
    status: str | None = None
    bookmark: str | None = None
    workspace: str | None = None
    follow_up: str | None = Field(default=None, alias="followUp")
    summary: list[str] = Field(default_factory=list)
    last_line: str | None = Field(default=None, alias="lastLine")
    pane: str | None = None


class StatusReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    host: str
    pattern: str
    generated_at: str = Field(alias="generatedAt")
    include_pane: bool = Field(default=False, alias="includePane")
    sessions: list[StatusSession] = Field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        counts = {"total": len(self.sessions)}
        for state in SESSION_STATES:
            counts[state] = sum(1 for session in self.sessions if session.state == state)
        return counts

    def to_payload(self) -> dict:
        payload = self.model_dump(mode="json", by_alias=True)
        if not self.include_pane:
            for session in payload["sessions"]:
                session.pop("pane", None)
        payload["counts"] = self.counts
        return payload


def pick_last(lines: list[str], prefix: str) -> str | None:
    """Return the value of the last line starting with ``prefix``.

    Example:
        >>> pick_last(["Status: partial", "x", "Status: done "], "Status:")
        'done'
        >>> pick_last(["Status:   "], "Status:") is None
        True
    """
    for line in reversed(lines):
        if line.startswith(prefix):
            value = line[len(prefix) :].strip()
            return value or None
    return None


def parse_summary(lines: list[str]) -> list[str]:
    """Return the bullet items between ``Summary:`` and ``Status:``."""
    start = next((i for i, line in enumerate(lines) if line.strip() == "Summary:"), None)
    if start is None:
        return []
    items: list[str] = []
    for line in lines[start + 1 :]:
        if line.startswith("Status:"):
            break
        if line.startswith("- "):
            items.append(line[2:].strip())
    return items


def infer_state(status_raw: str | None, pane_recent: str, target: str | None) -> SessionState:
    """Classify a session from its reported status and recent pane text."""
    lowered = (status_raw or "").lower().strip()
    for state in _REPORTED_STATES:
        if lowered.startswith(state):
            return state
    if COMPLETION_MARKER in pane_recent:
        return "done"
    if FAILURE_MARKER in pane_recent:
        return "failed"
    if target:
        return "running"
    return "unknown"


def pick_last_interesting_line(lines: list[str]) -> str | None:
    """Return the last non-blank line, skipping scroll hints and model footers."""
    non_blank = [line for line in lines if line.strip()]
    preferred = [
        line
        for line in non_blank
        if not _SCROLL_HINT_RE.match(line) and not _MODEL_FOOTER_RE.search(line)
    ]
    if preferred:
        return preferred[-1].strip()
    if non_blank:
        return non_blank[-1].strip()
    return None


def summarize_pane(
    session: str, target: str | None, pane: str, *, include_pane: bool = False
) -> StatusSession:
    recent_lines = pane.split("\n")[-RECENT_PANE_LINES:]
    recent = "\n".join(recent_lines)
    status_raw = pick_last(recent_lines, "Status:")
    return StatusSession(
        session=session,
        target=target,
        state=infer_state(status_raw, recent, target),
        status=status_raw,
        bookmark=pick_last(recent_lines, "Bookmark:"),
        workspace=pick_last(recent_lines, "Workspace:"),
        follow_up=pick_last(recent_lines, "Follow-up:"),
        summary=parse_summary(recent_lines),
        last_line=pick_last_interesting_line(recent_lines),
        pane=recent if include_pane else None,
    )


def list_sessions_script() -> str:
    return remote_script(
        "if ! command -v tmux >/dev/null 2>&1; then",
        "  echo 'tmux not found on remote host' >&2",
        "  exit 2",
        "fi",
        "tmux list-sessions -F '#{session_name}' 2>/dev/null || true",
    )


def pane_target_script(session: str) -> str:
    return remote_script(
        f"tmux list-panes -t {sh_quote(session)}"
        " -F '#{session_name}:#{window_index}.#{pane_index}' | head -n1"
    )


def capture_pane_script(target: str, lines: int) -> str:
    return remote_script(f"tmux capture-pane -p -J -t {sh_quote(target)} -S -{lines} || true")


def compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ValidationFailedError(f"invalid --pattern regex: {pattern} ({exc})") from exc


def _utc_timestamp() -> str:
    now = dt.datetime.now(dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def collect_status(
    remote: RemoteShell,
    *,
    pattern: str,
    lines: int = DEFAULT_CAPTURE_LINES,
    include_pane: bool = False,
    timestamp: Callable[[], str] = _utc_timestamp,
) -> StatusReport:
    """Summarize every remote tmux session whose name matches ``pattern``.

    Listing failures raise; per-session lookups that fail leave the
    session without a target.

    Raises:
        ValidationFailedError: ``lines`` is not positive or ``pattern`` is
            not a valid regular expression.
    """
    if lines < 1:
        raise ValidationFailedError("--lines must be a positive integer")
    session_re = compile_pattern(pattern)
    listed = remote.run(list_sessions_script(), "Listing remote tmux sessions", timeout_seconds=20.0)
    names = [
        name
        for name in (line.strip() for line in listed.stdout.split("\n"))
        if name and session_re.search(name)
    ]
    sessions: list[StatusSession] = []
    for name in names:
        target_result = remote.run_unchecked(pane_target_script(name), timeout_seconds=20.0)
        target = (target_result.stdout.strip() or None) if target_result.returncode == 0 else None
        pane = ""
        if target:
            pane = remote.run_unchecked(capture_pane_script(target, lines), timeout_seconds=30.0).stdout
        else:
            handoff_log.debug(f"[status] no pane target for {name}")
        sessions.append(summarize_pane(name, target, pane, include_pane=include_pane))
    return StatusReport(
        host=remote.host,
        pattern=pattern,
        generated_at=timestamp(),
        include_pane=include_pane,
        sessions=sessions,
    )
