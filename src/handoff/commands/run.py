"""Implementation for the ``handoff run`` command."""

from __future__ import annotations

from pathlib import Path

from .. import config
from .. import io as handoff_io
from ..errors import ServiceFailure
from ..io import die
from ..worker.context import DEFAULT_CLOUD_PROMPT, RunContext
from .dispatch import launch_workflow


def start_cloud_run(args: object) -> int:
    """Hand the current change and session over to the build host."""
    cwd = Path(getattr(args, "cwd", None) or Path.cwd()).expanduser().resolve()
    session_file = getattr(args, "session_file", None)
    words = getattr(args, "prompt", None) or []
    json_mode = bool(getattr(args, "json", False))
    try:
        handoff_config = config.load_config()
    except ServiceFailure as exc:
        die(str(exc))
    context = RunContext(
        cwd=cwd,
        session_file=Path(session_file).expanduser().resolve() if session_file else None,
        cloud_prompt=" ".join(words).strip() or DEFAULT_CLOUD_PROMPT,
        has_ui=not json_mode and handoff_io.interactive_terminal(),
    )
    return launch_workflow(
        "run",
        context,
        config=handoff_config,
        json_mode=json_mode,
        failure_prefix="/cloud",
    )
