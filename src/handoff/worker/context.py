"""Worker invocation contexts passed from the controller."""

from __future__ import annotations

import base64
import binascii
import json
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ValidationFailedError

DEFAULT_CLOUD_PROMPT = "continue"

ContextT = TypeVar("ContextT", bound=BaseModel)


class RunContext(BaseModel):
    """Inputs for one ``run`` invocation.

    Example:
        >>> RunContext.model_validate({"cwd": "/r", "cloudPrompt": "  "}).cloud_prompt
        'continue'
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    cwd: Path
    session_file: Path | None = Field(default=None, alias="sessionFile")
    cloud_prompt: str = Field(default=DEFAULT_CLOUD_PROMPT, alias="cloudPrompt")
    has_ui: bool = Field(default=False, alias="hasUI")

    @field_validator("session_file", mode="before")
    @classmethod
    def normalize_session_file(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cloud_prompt", mode="before")
    @classmethod
    def normalize_prompt(cls, value: object) -> object:
        if value is None:
            return DEFAULT_CLOUD_PROMPT
        if isinstance(value, str):
            return value.strip() or DEFAULT_CLOUD_PROMPT
        return value


class CleanContext(BaseModel):
    """Inputs for one ``clean`` invocation."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    cwd: Path
    has_ui: bool = Field(default=False, alias="hasUI")


def encode_context(context: BaseModel) -> str:
    """Encode a context as base64 JSON for the worker command line."""
    payload = context.model_dump(mode="json", by_alias=True)
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_context(raw: str, model_type: type[ContextT]) -> ContextT:
    """Decode a base64 JSON context into ``model_type``.

    Raises:
        ValidationFailedError: The blob is not valid base64 JSON or does not
            match the context schema.
    """
    if not raw:
        raise ValidationFailedError("Missing --context-base64")
    try:
        decoded = base64.b64decode(raw, validate=True).decode("utf-8")
        payload = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationFailedError(f"invalid worker context: {exc}") from exc
    try:
        return model_type.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailedError(f"invalid worker context: {exc}") from exc
