from __future__ import annotations

import io
import json
import os
import threading

import pytest

from handoff.bridge import IOBridge, ProgressTicker, run_with_progress
from handoff.errors import ProtocolError
from handoff.protocol import ResponseMessage, ResultEvent, encode_response
from tests.handoff.helpers import RecordingIO


class _AutoResponder(io.StringIO):
    """Captures stdout and answers each request through a pipe."""

    def __init__(self, pipe_writer, answers: list[object]) -> None:
        super().__init__()
        self._pipe_writer = pipe_writer
        self._answers = list(answers)

    def write(self, text: str) -> int:
        written = super().write(text)
        for line in text.splitlines():
            payload = json.loads(line)
            if payload.get("type") == "request":
                self._pipe_writer.write("noise that is not json\n")
                response = ResponseMessage(id=payload["id"], value=self._answers.pop(0))
                self._pipe_writer.write(encode_response(response) + "\n")
                self._pipe_writer.flush()
        return written


@pytest.fixture
def pipe():
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "r", encoding="utf-8")
    writer = os.fdopen(write_fd, "w", encoding="utf-8")
    yield reader, writer
    writer.close()
    reader.close()


def test_request_resolves_by_correlation_id(pipe) -> None:
    reader, writer = pipe
    stdout = _AutoResponder(writer, [[0, 2], None])
    bridge = IOBridge("ndjson", stdin=reader, stdout=stdout, stderr=io.StringIO())

    first = bridge.request("pickMany", "select", options=["a", "b", "c"], timeout_seconds=5)
    second = bridge.request("pickOne", "bare repo", options=["keep", "delete"], timeout_seconds=5)

    assert first == [0, 2]
    assert second is None
    requests = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert [item["id"] for item in requests] == ["r1", "r2"]
    assert requests[0]["options"] == ["a", "b", "c"]


def test_request_fails_when_controller_closes_stdin() -> None:
    bridge = IOBridge("ndjson", stdin=io.StringIO(""), stdout=io.StringIO(), stderr=io.StringIO())

    with pytest.raises(ProtocolError):
        bridge.request("confirm", "/cloud-clean: confirm", summary_lines=[], timeout_seconds=5)


def test_plain_mode_refuses_requests() -> None:
    bridge = IOBridge("plain", stdin=io.StringIO(), stdout=io.StringIO(), stderr=io.StringIO())

    with pytest.raises(ProtocolError, match="ndjson"):
        bridge.request("confirm", "confirm")


def test_plain_mode_renders_human_output() -> None:
    stdout, stderr = io.StringIO(), io.StringIO()
    bridge = IOBridge("plain", stdin=io.StringIO(), stdout=stdout, stderr=stderr)

    bridge.notify("Preparing cloud handoff...")
    bridge.progress("cloud", "☁️ Pushing… 2s")
    bridge.emit(ResultEvent(attach_command="ssh -t h tmux attach -t s"))
    bridge.error("boom")
    bridge.done()

    assert stdout.getvalue() == "ssh -t h tmux attach -t s\n"
    assert stderr.getvalue() == "Preparing cloud handoff...\n/cloud failed: boom\n"


def test_ndjson_mode_writes_one_event_per_line() -> None:
    stdout = io.StringIO()
    bridge = IOBridge("ndjson", stdin=io.StringIO(), stdout=stdout, stderr=io.StringIO())

    bridge.notify("hello", "warning")
    bridge.done()

    assert [json.loads(line) for line in stdout.getvalue().splitlines()] == [
        {"type": "notify", "level": "warning", "text": "hello"},
        {"type": "done"},
    ]


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        IOBridge("xml")  # type: ignore[arg-type]


def test_run_with_progress_reports_start_and_done() -> None:
    recorder = RecordingIO()

    value = run_with_progress(recorder, "cloud", "Pushing cloud bookmark", lambda: 42)

    assert value == 42
    texts = recorder.progress_texts("cloud")
    assert texts[0] == "☁️ Pushing cloud bookmark… 0s"
    assert texts[-1] == "✅ Pushing cloud bookmark done"


def test_run_with_progress_reports_failure_and_reraises() -> None:
    recorder = RecordingIO()

    def fail() -> None:
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        run_with_progress(recorder, "cloud-clean", "Scanning remote cloud state", fail)

    texts = recorder.progress_texts("cloud-clean")
    assert texts[0].startswith("🧹 Scanning remote cloud state…")
    assert texts[-1] == "❌ Scanning remote cloud state failed"


def test_run_with_progress_ticks_while_work_runs() -> None:
    recorder = RecordingIO()
    release = threading.Event()

    def slow() -> str:
        release.wait(0.3)
        return "ok"

    run_with_progress(recorder, "cloud", "Creating cloud workspace", slow, interval_seconds=0.05)

    ticks = [t for t in recorder.progress_texts("cloud") if t.startswith("☁️")]
    assert len(ticks) >= 2


def test_progress_ticker_stops_cleanly() -> None:
    calls: list[int] = []
    ticker = ProgressTicker(lambda: calls.append(1), 0.01)

    ticker.start()
    ticker.stop()
    count = len(calls)
    threading.Event().wait(0.05)

    assert len(calls) == count
