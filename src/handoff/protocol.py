"""Wire models for the worker/controller IO bridge.

The worker writes one JSON event per line on stdout; the controller
answers ``request`` events with one ``response`` object per line on the
worker's stdin. Field names are camelCase on the wire because the two
processes are versioned independently.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import ProtocolError

NotifyLevel = Literal["info", "warning", "error"]
ProgressKey = Literal["cloud", "cloud-clean"]
RequestKind = Literal["pickMany", "pickOne", "confirm"]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class NotifyEvent(_WireModel):
    type: Literal["notify"] = "notify"
    level: NotifyLevel = "info"
    text: str


class ProgressEvent(_WireModel):
    """Status line for ``key``; an empty ``text`` clears it."""

    type: Literal["progress"] = "progress"
    key: ProgressKey
    text: str = ""


class RequestEvent(_WireModel):
    type: Literal["request"] = "request"
    id: str
    kind: RequestKind
    title: str
    options: list[str] | None = None
    summary_lines: list[str] | None = Field(default=None, alias="summaryLines")


class ResultEvent(_WireModel):
    type: Literal["result"] = "result"
    attach_command: str | None = Field(default=None, alias="attachCommand")
    copied_to_clipboard: bool | None = Field(default=None, alias="copiedToClipboard")
    tmux_session_name: str | None = Field(default=None, alias="tmuxSessionName")
    remote_workspace: str | None = Field(default=None, alias="remoteWorkspace")
    bookmark_name: str | None = Field(default=None, alias="bookmarkName")


class ErrorEvent(_WireModel):
    type: Literal["error"] = "error"
    message: str


class DoneEvent(_WireModel):
    type: Literal["done"] = "done"


WorkerEvent = Annotated[
    Union[NotifyEvent, ProgressEvent, RequestEvent, ResultEvent, ErrorEvent, DoneEvent],
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[WorkerEvent] = TypeAdapter(WorkerEvent)


class ResponseMessage(_WireModel):
    """Controller answer to a request; ``value`` is ``None`` on cancel."""

    type: Literal["response"] = "response"
    id: str
    value: Any = None


def encode_event(event: BaseModel) -> str:
    """Serialize an event as one compact JSON line (without newline).

    Example:
        >>> encode_event(ProgressEvent(key="cloud", text="hi"))
        '{"type":"progress","key":"cloud","text":"hi"}'
    """
    payload = event.model_dump(by_alias=True, exclude_none=True)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def encode_response(response: ResponseMessage) -> str:
    """Serialize a response; ``value`` is kept even when it is ``null``."""
    payload = response.model_dump(by_alias=True)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _load_object(line: str) -> dict:
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid JSON line: {exc}") from exc
    if not isinstance(payload, dict):
        raise ProtocolError("expected a JSON object")
    return payload


def parse_event(line: str) -> WorkerEvent:
    """Parse one worker event line.

    Raises:
        ProtocolError: The line is not JSON, has an unknown ``type``, or
            fails validation.
    """
    payload = _load_object(line)
    try:
        return _EVENT_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise ProtocolError(f"invalid worker event: {exc}") from exc


def parse_response(line: str) -> ResponseMessage:
    """Parse one response line.

    Raises:
        ProtocolError: The line is not a well-formed response message.
    """
    payload = _load_object(line)
    try:
        return ResponseMessage.model_validate(payload)
    except ValidationError as exc:
        raise ProtocolError(f"invalid response: {exc}") from exc
