"""Best-effort local clipboard copy."""

from __future__ import annotations

import sys

from . import exec as exec_util
from .result import Result, failure, success


def copy_to_clipboard(
    value: str,
    *,
    platform: str | None = None,
    runner: exec_util.CommandRunner | None = None,
) -> Result[str]:
    """Copy ``value`` with ``pbcopy`` on macOS.

    Returns:
        ``Success`` with the copied text, or ``Failure`` describing why the
        copy did not happen. Callers decide whether to ignore the failure.
    """
    active_platform = platform or sys.platform
    if active_platform != "darwin":
        return failure(f"clipboard copy unsupported on {active_platform}")
    result = exec_util.run(["pbcopy"], input=value, timeout_seconds=3.0, runner=runner)
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip() or "pbcopy failed"
        return failure(detail)
    return success(value)
