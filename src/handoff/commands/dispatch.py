"""Shared launcher for commands that run a worker workflow."""

from __future__ import annotations

from pydantic import BaseModel

from .. import controller
from .. import io as handoff_io
from ..errors import ServiceFailure
from ..io import die
from ..models import HandoffConfig
from ..worker.context import encode_context
from ..worker.main import main as worker_main


def launch_workflow(
    command: str,
    context: BaseModel,
    *,
    config: HandoffConfig,
    json_mode: bool,
    failure_prefix: str,
) -> int:
    """Run ``command`` and return the process exit code.

    ``--json`` streams raw protocol events and non-terminal runs get plain
    text, both from an in-process worker. Terminal runs spawn the worker
    behind the interactive controller.
    """
    if json_mode or not handoff_io.interactive_terminal():
        mode = "ndjson" if json_mode else "plain"
        return worker_main([command, "--mode", mode, "--context-base64", encode_context(context)])
    ui = controller.TerminalUI(interactive=True, remote_name=config.remote_name)
    try:
        controller.run_worker(command, context, ui)
    except ServiceFailure as exc:
        die(f"{failure_prefix} failed: {exc}")
    return 0
