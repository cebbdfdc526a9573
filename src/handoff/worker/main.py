"""Worker entry point: ``handoff-worker {run|clean} --mode ... --context-base64 ...``."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from typing import TextIO

from .. import exec as exec_util
from .. import log as handoff_log
from ..bridge import BRIDGE_MODES, IOBridge
from ..config import load_config
from ..errors import ServiceFailure
from .clean import run_cloud_clean
from .context import CleanContext, RunContext, decode_context
from .run import run_cloud

WORKER_COMMANDS = ("run", "clean")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the worker process."""

    parser = argparse.ArgumentParser(
        prog="handoff-worker",
        description="Run one cloud handoff workflow and stream protocol events.",
    )
    parser.add_argument("command", choices=WORKER_COMMANDS)
    parser.add_argument(
        "--mode",
        choices=BRIDGE_MODES,
        default="ndjson",
        help="Output mode: ndjson events for a controller, or plain text (default: ndjson)",
    )
    parser.add_argument(
        "--context-base64",
        default="",
        help="Base64-encoded JSON invocation context",
    )
    return parser


def dispatch(
    command: str,
    raw_context: str,
    io: IOBridge,
    *,
    runner: exec_util.CommandRunner | None = None,
) -> None:
    config = load_config()
    if command == "run":
        run_cloud(io, decode_context(raw_context, RunContext), config=config, runner=runner)
    else:
        run_cloud_clean(io, decode_context(raw_context, CleanContext), config=config, runner=runner)


def main(
    argv: Sequence[str] | None = None,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
    runner: exec_util.CommandRunner | None = None,
) -> int:
    """Run the worker and return its exit code.

    Exactly one of ``done`` (exit 0) or ``error`` (exit 1) is emitted as
    the final event.
    """
    args = _build_parser().parse_args(argv)
    handoff_log.route_to_stderr()
    io = IOBridge(args.mode, stdin=stdin, stdout=stdout, stderr=stderr)
    try:
        dispatch(args.command, args.context_base64, io, runner=runner)
    except ServiceFailure as exc:
        handoff_log.debug(f"[worker] {args.command} failed: {exc.code}")
        io.error(str(exc))
        return 1
    except Exception as exc:  # pragma: no cover - unexpected crash boundary
        handoff_log.debug(f"[worker] {args.command} crashed: {exc!r}")
        io.error(str(exc) or exc.__class__.__name__)
        return 1
    io.done()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
