"""Configuration helpers for Handoff.

This module reads the user ``config.json``, validates it with Pydantic
models, and applies environment overrides.

Example:
    >>> from pathlib import Path
    >>> load_config(Path("missing.json"), environ={}).remote.host
    'hetzner-1'
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, ValidationError

from . import paths
from .errors import ValidationFailedError
from .models import HandoffConfig

ENV_REMOTE_HOST = "HANDOFF_REMOTE_HOST"
ENV_REMOTE_NAME = "HANDOFF_REMOTE_NAME"
ENV_REMOTE_HOME = "HANDOFF_REMOTE_HOME"
ENV_CONFIG_PATH = "HANDOFF_CONFIG"


def load_json(path: Path) -> dict | None:
    """Load a JSON file if it exists.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed payload as a dict, or ``None`` if the file does not exist.

    Example:
        >>> from pathlib import Path
        >>> load_json(Path("missing.json")) is None
        True
    """
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def write_json(path: Path, payload: dict | BaseModel) -> None:
    """Write a JSON payload to disk.

    Args:
        path: Path to the JSON file to write.
        payload: Dict or Pydantic model to serialize.
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
        fh.write("\n")


def resolve_config_path(environ: Mapping[str, str] | None = None) -> Path:
    """Return the config file path, honouring ``HANDOFF_CONFIG``."""
    env = os.environ if environ is None else environ
    override = env.get(ENV_CONFIG_PATH, "").strip()
    if override:
        return Path(override).expanduser()
    return paths.config_path()


def _apply_env_overrides(payload: dict, env: Mapping[str, str]) -> dict:
    remote = dict(payload.get("remote") or {})
    for key, env_name in (
        ("host", ENV_REMOTE_HOST),
        ("name", ENV_REMOTE_NAME),
        ("home", ENV_REMOTE_HOME),
    ):
        value = env.get(env_name, "").strip()
        if value:
            remote[key] = value
    if remote:
        payload = {**payload, "remote": remote}
    return payload


def parse_config(payload: dict | None, *, source: str = "config") -> HandoffConfig:
    """Validate a raw config payload.

    Raises:
        ValidationFailedError: The payload does not match the config schema.
    """
    try:
        return HandoffConfig.model_validate(payload or {})
    except ValidationError as exc:
        raise ValidationFailedError(f"invalid {source}: {exc}") from exc


def load_config(
    path: Path | None = None, *, environ: Mapping[str, str] | None = None
) -> HandoffConfig:
    """Load the Handoff config with environment overrides applied.

    A missing file yields the defaults.

    Args:
        path: Optional explicit config path.
        environ: Optional environment mapping (defaults to ``os.environ``).

    Returns:
        Validated ``HandoffConfig``.
    """
    env = os.environ if environ is None else environ
    config_file = path or resolve_config_path(env)
    try:
        payload = load_json(config_file)
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationFailedError(f"failed to read {config_file}: {exc}") from exc
    if payload is not None and not isinstance(payload, dict):
        raise ValidationFailedError(f"invalid {config_file}: expected a JSON object")
    merged = _apply_env_overrides(payload or {}, env)
    return parse_config(merged, source=str(config_file))
