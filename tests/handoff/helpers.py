# ruff: noqa: E402

from __future__ import annotations

import json
import shlex
import sys
from collections.abc import Callable
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from handoff.exec import CommandRequest, CommandResult

Predicate = Callable[[CommandRequest], bool]
Responder = Callable[[CommandRequest], CommandResult]


def jj_args(request: CommandRequest) -> tuple[str, ...] | None:
    """Return jj arguments after any ``-R <repo>`` prefix, or None."""
    argv = request.argv
    if not argv or argv[0] != "jj":
        return None
    if len(argv) >= 3 and argv[1] == "-R":
        return argv[3:]
    return argv[1:]


def remote_script(request: CommandRequest) -> str | None:
    """Return the script of an ``ssh HOST "bash -lc <script>"`` request."""
    if not request.argv or request.argv[0] != "ssh":
        return None
    words = shlex.split(request.argv[-1])
    if words[:2] != ["bash", "-lc"]:
        return None
    return words[2]


def jj_is(*prefix: str) -> Predicate:
    def predicate(request: CommandRequest) -> bool:
        args = jj_args(request)
        return args is not None and args[: len(prefix)] == prefix

    return predicate


def remote_has(text: str) -> Predicate:
    def predicate(request: CommandRequest) -> bool:
        script = remote_script(request)
        return script is not None and text in script

    return predicate


def program_is(name: str) -> Predicate:
    return lambda request: bool(request.argv) and request.argv[0] == name


class FakeRunner:
    """Scripted ``CommandRunner``: first matching rule wins, else exit 0."""

    def __init__(self) -> None:
        self.requests: list[CommandRequest] = []
        self._rules: list[tuple[Predicate, Responder]] = []

    def on(
        self,
        predicate: Predicate,
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        responder: Responder | None = None,
    ) -> FakeRunner:
        if responder is None:

            def responder(request: CommandRequest) -> CommandResult:
                return CommandResult(
                    argv=request.argv, returncode=returncode, stdout=stdout, stderr=stderr
                )

        self._rules.append((predicate, responder))
        return self

    def run(self, request: CommandRequest) -> CommandResult:
        self.requests.append(request)
        for predicate, responder in self._rules:
            if predicate(request):
                return responder(request)
        return CommandResult(argv=request.argv, returncode=0, stdout="", stderr="")

    def scripts(self) -> list[str]:
        return [script for script in map(remote_script, self.requests) if script is not None]

    def jj_calls(self) -> list[tuple[str, ...]]:
        return [args for args in map(jj_args, self.requests) if args is not None]

    def programs(self) -> list[str]:
        return [request.argv[0] for request in self.requests if request.argv]


class RecordingIO:
    """In-memory stand-in for the worker IO bridge."""

    def __init__(self, responses: list[object] | None = None) -> None:
        self.events: list[object] = []
        self.requests: list[dict] = []
        self._responses = list(responses or [])

    def emit(self, event: object) -> None:
        self.events.append(event)

    def notify(self, text: str, level: str = "info") -> None:
        from handoff.protocol import NotifyEvent

        self.emit(NotifyEvent(level=level, text=text))

    def progress(self, key: str, text: str) -> None:
        from handoff.protocol import ProgressEvent

        self.emit(ProgressEvent(key=key, text=text))

    def request(self, kind: str, title: str, **kwargs: object) -> object:
        self.requests.append({"kind": kind, "title": title, **kwargs})
        if not self._responses:
            raise AssertionError(f"unexpected request: {kind} {title}")
        return self._responses.pop(0)

    def notifications(self) -> list[str]:
        from handoff.protocol import NotifyEvent

        return [event.text for event in self.events if isinstance(event, NotifyEvent)]

    def progress_texts(self, key: str) -> list[str]:
        from handoff.protocol import ProgressEvent

        return [
            event.text
            for event in self.events
            if isinstance(event, ProgressEvent) and event.key == key
        ]


def write_session(path: Path, *, session_id: str, parent: str | None = None, lines: list[dict] | None = None) -> Path:
    header: dict = {"type": "session", "version": 3, "id": session_id}
    if parent is not None:
        header["parentSession"] = parent
    entries = [header, *(lines or [])]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(json.dumps(entry) for entry in entries) + "\n", encoding="utf-8")
    return path
