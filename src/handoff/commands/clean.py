"""Implementation for the ``handoff clean`` command."""

from __future__ import annotations

from pathlib import Path

from .. import config
from .. import io as handoff_io
from ..errors import ServiceFailure
from ..io import die
from ..worker.context import CleanContext
from .dispatch import launch_workflow


def start_cloud_clean(args: object) -> int:
    """Interactively delete cloud workspaces for the current repository.

    Cleanup needs a terminal for its prompts; other invocations fail fast.
    """
    json_mode = bool(getattr(args, "json", False))
    try:
        handoff_config = config.load_config()
    except ServiceFailure as exc:
        die(str(exc))
    context = CleanContext(
        cwd=Path.cwd().resolve(),
        has_ui=not json_mode and handoff_io.interactive_terminal(),
    )
    return launch_workflow(
        "clean",
        context,
        config=handoff_config,
        json_mode=json_mode,
        failure_prefix="/cloud-clean",
    )
