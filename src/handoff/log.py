"""Leveled terminal logging for handoff.

Levels map to a rich style and a default stream: warnings and errors go to
stderr, everything else to stdout. ``route_to_stderr`` overrides the
stream for the worker, whose stdout carries protocol events.
"""

from __future__ import annotations

import os
import sys
from enum import IntEnum

from rich.console import Console
from rich.text import Text

ENV_LOG_LEVEL = "HANDOFF_LOG_LEVEL"
ENV_NO_COLOR = "HANDOFF_NO_COLOR"


class LogLevel(IntEnum):
    TRACE = 10
    DEBUG = 20
    INFO = 30
    SUCCESS = 35
    WARNING = 40
    ERROR = 50


# level -> (style, default to stderr)
_PRESENTATION: dict[LogLevel, tuple[str, bool]] = {
    LogLevel.TRACE: ("dim", False),
    LogLevel.DEBUG: ("cyan", False),
    LogLevel.INFO: ("", False),
    LogLevel.SUCCESS: ("green", False),
    LogLevel.WARNING: ("yellow", True),
    LogLevel.ERROR: ("bold red", True),
}
_ALIASES = {"warn": LogLevel.WARNING}

LEVEL_NAMES = (*(level.name.lower() for level in LogLevel), *_ALIASES)

_configured_level: LogLevel | None = None
_no_color: bool | None = None
_stderr_only = False


def parse_level(value: str | None, default: LogLevel = LogLevel.INFO) -> LogLevel:
    """Map a level name to a ``LogLevel``; unknown or blank names give ``default``.

    Example:
        >>> parse_level(" Debug ").name
        'DEBUG'
        >>> parse_level("loud").name
        'INFO'
    """
    name = (value or "").strip().lower()
    if name in _ALIASES:
        return _ALIASES[name]
    return LogLevel.__members__.get(name.upper(), default)


def configured_level() -> LogLevel:
    global _configured_level
    if _configured_level is None:
        _configured_level = parse_level(os.environ.get(ENV_LOG_LEVEL))
    return _configured_level


def set_level(value: str | None) -> None:
    global _configured_level
    _configured_level = parse_level(value)


def set_no_color(value: bool) -> None:
    """Force colour off; ``False`` falls back to the environment."""
    global _no_color
    _no_color = True if value else None


def route_to_stderr(value: bool = True) -> None:
    global _stderr_only
    _stderr_only = value


def color_disabled() -> bool:
    if _no_color is not None:
        return _no_color
    return bool(os.environ.get("NO_COLOR") or os.environ.get(ENV_NO_COLOR))


def is_enabled(level: LogLevel) -> bool:
    return level >= configured_level()


def emit(level: LogLevel, message: str, *, style: str | None = None) -> None:
    if not is_enabled(level):
        return
    default_style, to_stderr = _PRESENTATION[level]
    stream = sys.stderr if (to_stderr or _stderr_only) else sys.stdout
    console = Console(file=stream, soft_wrap=True, highlight=False, no_color=color_disabled())
    console.print(Text(message, style=style or default_style))


def trace(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.TRACE, message, style=style)


def debug(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.DEBUG, message, style=style)


def info(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.INFO, message, style=style)


def success(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.SUCCESS, message, style=style)


def warning(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.WARNING, message, style=style)


def error(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.ERROR, message, style=style)
