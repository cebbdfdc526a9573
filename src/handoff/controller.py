"""Controller side of the IO bridge: spawn the worker and drive its UI.

The controller starts ``python -m handoff.worker`` in ``ndjson`` mode,
renders its events, answers its requests through a ``WorkerUI`` and turns
a reported ``error`` (or a non-zero exit) into ``WorkerFailedError``.
"""

from __future__ import annotations

import subprocess
import sys
import threading
from collections.abc import Callable
from typing import IO, Any, Protocol

from pydantic import BaseModel
from rich.console import Console
from rich.status import Status

from . import io as handoff_io
from . import log as handoff_log
from .errors import ProtocolError, WorkerFailedError
from .protocol import (
    DoneEvent,
    ErrorEvent,
    NotifyEvent,
    NotifyLevel,
    ProgressEvent,
    RequestEvent,
    ResponseMessage,
    ResultEvent,
    encode_response,
    parse_event,
)
from .worker.context import encode_context

WORKER_MODULE = "handoff.worker"


class WorkerUI(Protocol):
    """Host surface used to render worker events and answer requests."""

    has_ui: bool

    def notify(self, text: str, level: NotifyLevel) -> None: ...

    def set_progress(self, key: str, text: str | None) -> None: ...

    def show_result(self, event: ResultEvent) -> None: ...

    def pick_many(self, title: str, options: list[str]) -> list[int] | None: ...

    def pick_one(self, title: str, options: list[str]) -> int | None: ...

    def confirm(self, title: str, summary_lines: list[str]) -> bool | None: ...

    def worker_stderr(self, line: str) -> None: ...


def format_result_message(event: ResultEvent, remote_name: str) -> str:
    """Render the one-line summary shown after a successful cloud start."""
    copied = " (copied to clipboard)" if event.copied_to_clipboard else ""
    return (
        f"Cloud started in tmux '{event.tmux_session_name}'. "
        f"Attach: {event.attach_command}{copied} | "
        f"Remote workspace: {event.remote_workspace} | "
        f"Bookmark: {event.bookmark_name} | "
        f"Pull back later: jj git fetch --remote {remote_name}"
    )


class TerminalUI:
    """Terminal rendering for worker events.

    Interactive sessions get a rich status line for progress and questionary
    prompts for requests. Non-interactive sessions print only the attach
    command (stdout) and error notifications (stderr).
    """

    def __init__(
        self,
        *,
        interactive: bool,
        remote_name: str,
        console: Console | None = None,
    ) -> None:
        self.has_ui = interactive
        self.remote_name = remote_name
        self._console = console or Console(stderr=True, no_color=handoff_log.color_disabled())
        self._progress: dict[str, str] = {}
        self._status: Status | None = None

    def notify(self, text: str, level: NotifyLevel) -> None:
        if not self.has_ui:
            if level == "error":
                print(text, file=sys.stderr)
            return
        if level == "error":
            handoff_log.error(text)
        elif level == "warning":
            handoff_log.warning(text)
        else:
            handoff_log.info(text)

    def set_progress(self, key: str, text: str | None) -> None:
        if text:
            self._progress[key] = text
        else:
            self._progress.pop(key, None)
        self._render_progress()

    def _render_progress(self) -> None:
        if not self.has_ui:
            return
        current = next(reversed(self._progress.values()), None)
        if current is None:
            self._stop_status()
        elif self._status is None:
            self._status = self._console.status(current)
            self._status.start()
        else:
            self._status.update(current)

    def _stop_status(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

    def show_result(self, event: ResultEvent) -> None:
        if not self.has_ui:
            print(event.attach_command)
            return
        handoff_log.success(format_result_message(event, self.remote_name))

    def pick_many(self, title: str, options: list[str]) -> list[int] | None:
        self._stop_status()
        return handoff_io.choose_many(title, options)

    def pick_one(self, title: str, options: list[str]) -> int | None:
        self._stop_status()
        return handoff_io.choose_one(title, options)

    def confirm(self, title: str, summary_lines: list[str]) -> bool | None:
        self._stop_status()
        return handoff_io.confirm_actions(title, summary_lines)

    def worker_stderr(self, line: str) -> None:
        if self.has_ui:
            handoff_log.debug(f"[worker] {line}")
        else:
            print(line, file=sys.stderr)


def worker_argv(command: str, context_base64: str, *, python: str | None = None) -> list[str]:
    return [
        python or sys.executable,
        "-m",
        WORKER_MODULE,
        command,
        "--mode",
        "ndjson",
        "--context-base64",
        context_base64,
    ]


class _EventLoop:
    """Per-run event handling state."""

    def __init__(self, ui: WorkerUI, stdin: IO[str] | None) -> None:
        self.ui = ui
        self.stdin = stdin
        self.final_error: str | None = None

    def respond(self, request_id: str, value: Any) -> None:
        if self.stdin is None or self.stdin.closed:
            handoff_log.debug(f"[controller] dropping response {request_id}: stdin closed")
            return
        try:
            self.stdin.write(encode_response(ResponseMessage(id=request_id, value=value)) + "\n")
            self.stdin.flush()
        except BrokenPipeError:
            handoff_log.debug(f"[controller] dropping response {request_id}: worker exited")

    def answer(self, event: RequestEvent) -> Any:
        if event.kind == "pickMany":
            return self.ui.pick_many(event.title, event.options or [])
        if event.kind == "pickOne":
            return self.ui.pick_one(event.title, event.options or [])
        return self.ui.confirm(event.title, event.summary_lines or [])

    def handle_line(self, line: str) -> None:
        trimmed = line.strip()
        if not trimmed:
            return
        try:
            event = parse_event(trimmed)
        except ProtocolError as exc:
            handoff_log.debug(f"[controller] skipping worker output: {exc}")
            return
        self.handle(event)

    def handle(self, event: BaseModel) -> None:
        if isinstance(event, NotifyEvent):
            if event.text:
                self.ui.notify(event.text, event.level)
        elif isinstance(event, ProgressEvent):
            self.ui.set_progress(event.key, event.text or None)
        elif isinstance(event, ResultEvent):
            if event.attach_command:
                self.ui.show_result(event)
        elif isinstance(event, RequestEvent):
            try:
                value = self.answer(event)
            except Exception as exc:  # pragma: no cover - prompt toolkit failures
                self.respond(event.id, None)
                self.final_error = str(exc) or exc.__class__.__name__
                return
            self.respond(event.id, value)
        elif isinstance(event, ErrorEvent):
            self.final_error = event.message or "Unknown worker error"
        elif isinstance(event, DoneEvent):
            handoff_log.debug("[controller] worker reported done")


def _pump_stderr(stream: IO[str], sink: Callable[[str], None]) -> None:
    for line in stream:
        text = line.rstrip("\n")
        if text.strip():
            sink(text)


def run_worker(
    command: str,
    context: BaseModel,
    ui: WorkerUI,
    *,
    popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    python: str | None = None,
) -> None:
    """Run one worker invocation to completion.

    Raises:
        WorkerFailedError: The worker emitted ``error`` or exited non-zero.
    """
    argv = worker_argv(command, encode_context(context), python=python)
    handoff_log.debug(f"[controller] spawning {WORKER_MODULE} {command}")
    process = popen(
        argv,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        bufsize=1,
    )
    loop = _EventLoop(ui, process.stdin)
    stderr_thread = threading.Thread(
        target=_pump_stderr,
        args=(process.stderr, ui.worker_stderr),
        name="handoff-worker-stderr",
        daemon=True,
    )
    stderr_thread.start()
    try:
        for line in process.stdout:
            loop.handle_line(line)
    finally:
        if process.stdin is not None and not process.stdin.closed:
            try:
                process.stdin.close()
            except BrokenPipeError:
                handoff_log.debug("[controller] worker closed stdin before shutdown")
        returncode = process.wait()
        stderr_thread.join(timeout=1.0)
        ui.set_progress("cloud", None)
        ui.set_progress("cloud-clean", None)
    if loop.final_error:
        raise WorkerFailedError(loop.final_error)
    if returncode != 0:
        raise WorkerFailedError(f"cloud worker exited with status {returncode}")
