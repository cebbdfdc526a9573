"""Worker side of the IO bridge: event emission and correlated requests."""

from __future__ import annotations

import itertools
import sys
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any, Literal, TextIO, TypeVar

from pydantic import BaseModel

from . import log as handoff_log
from .errors import ProtocolError
from .protocol import (
    DoneEvent,
    ErrorEvent,
    NotifyEvent,
    NotifyLevel,
    ProgressEvent,
    ProgressKey,
    RequestEvent,
    RequestKind,
    ResultEvent,
    encode_event,
    parse_response,
)

BridgeMode = Literal["ndjson", "plain"]
BRIDGE_MODES = ("ndjson", "plain")
PROGRESS_INTERVAL_SECONDS = 2.0

T = TypeVar("T")

_PROGRESS_ICONS: dict[str, str] = {"cloud": "☁️", "cloud-clean": "🧹"}


class IOBridge:
    """Emit worker events and await controller responses.

    In ``ndjson`` mode every event is one JSON line on stdout and a reader
    thread resolves pending requests from stdin by correlation id. In
    ``plain`` mode output is best-effort human text and requests are not
    supported.
    """

    def __init__(
        self,
        mode: BridgeMode,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        if mode not in BRIDGE_MODES:
            raise ValueError(f"unsupported bridge mode: {mode}")
        self.mode = mode
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout
        self._stderr = stderr if stderr is not None else sys.stderr
        self._request_ids = itertools.count(1)
        self._pending: dict[str, Future[Any]] = {}
        self._pending_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._reader: threading.Thread | None = None
        self._closed = False

    def start(self) -> None:
        """Start the response reader thread (ndjson mode only)."""
        if self.mode != "ndjson" or self._reader is not None:
            return
        self._reader = threading.Thread(
            target=self._read_responses,
            name="handoff-bridge-reader",
            daemon=True,
        )
        self._reader.start()

    def _read_responses(self) -> None:
        for raw_line in self._stdin:
            line = raw_line.strip()
            if not line:
                continue
            try:
                response = parse_response(line)
            except ProtocolError as exc:
                handoff_log.debug(f"[bridge] ignoring stdin line: {exc}")
                continue
            with self._pending_lock:
                future = self._pending.pop(response.id, None)
            if future is None:
                handoff_log.debug(f"[bridge] no pending request for id={response.id}")
                continue
            future.set_result(response.value)
        with self._pending_lock:
            self._closed = True
            orphaned = list(self._pending.values())
            self._pending.clear()
        for future in orphaned:
            future.set_exception(ProtocolError("controller closed the response channel"))

    def _write(self, stream: TextIO, text: str) -> None:
        with self._write_lock:
            stream.write(f"{text}\n")
            stream.flush()

    def emit(self, event: BaseModel) -> None:
        """Write one event in the bridge's output mode."""
        if self.mode == "ndjson":
            self._write(self._stdout, encode_event(event))
            return
        if isinstance(event, ResultEvent):
            if event.attach_command:
                self._write(self._stdout, event.attach_command)
        elif isinstance(event, ErrorEvent):
            self._write(self._stderr, f"/cloud failed: {event.message}")
        elif isinstance(event, NotifyEvent):
            self._write(self._stderr, event.text)

    def notify(self, text: str, level: NotifyLevel = "info") -> None:
        self.emit(NotifyEvent(level=level, text=text))

    def progress(self, key: ProgressKey, text: str) -> None:
        self.emit(ProgressEvent(key=key, text=text))

    def error(self, message: str) -> None:
        self.emit(ErrorEvent(message=message))

    def done(self) -> None:
        self.emit(DoneEvent())

    def request(
        self,
        kind: RequestKind,
        title: str,
        *,
        options: list[str] | None = None,
        summary_lines: list[str] | None = None,
        timeout_seconds: float | None = None,
    ) -> Any:
        """Ask the controller for a choice and block until it answers.

        Returns:
            The response ``value``; ``None`` means the user cancelled.

        Raises:
            ProtocolError: Plain mode, or the controller closed stdin.
        """
        if self.mode != "ndjson":
            raise ProtocolError("Interactive request requires ndjson mode")
        self.start()
        request_id = f"r{next(self._request_ids)}"
        future: Future[Any] = Future()
        with self._pending_lock:
            if self._closed:
                raise ProtocolError("controller closed the response channel")
            self._pending[request_id] = future
        self.emit(
            RequestEvent(
                id=request_id,
                kind=kind,
                title=title,
                options=options,
                summary_lines=summary_lines,
            )
        )
        return future.result(timeout=timeout_seconds)


class ProgressTicker:
    """Background thread that re-renders a progress line on an interval."""

    def __init__(self, render: Callable[[], None], interval_seconds: float) -> None:
        self._render = render
        self._interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="handoff-progress",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join()
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval_seconds):
            self._render()


def run_with_progress(
    io: IOBridge,
    key: ProgressKey,
    label: str,
    fn: Callable[[], T],
    *,
    interval_seconds: float = PROGRESS_INTERVAL_SECONDS,
) -> T:
    """Run ``fn`` while reporting start, elapsed time, and outcome.

    The ticker is stopped before the terminal ``done``/``failed`` line is
    emitted, on both the success and the failure path.
    """
    started = time.monotonic()
    icon = _PROGRESS_ICONS.get(key, "")

    def render() -> None:
        elapsed = int(time.monotonic() - started)
        io.progress(key, f"{icon} {label}… {elapsed}s")

    render()
    ticker = ProgressTicker(render, interval_seconds)
    ticker.start()
    try:
        result = fn()
    except BaseException:
        ticker.stop()
        io.progress(key, f"❌ {label} failed")
        raise
    ticker.stop()
    io.progress(key, f"✅ {label} done")
    return result
