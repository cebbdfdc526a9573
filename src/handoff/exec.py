"""Subprocess helpers for running external commands."""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from . import log as handoff_log
from .errors import ExternalCommandFailedError

TIMEOUT_RETURNCODE = 124
DEFAULT_TIMEOUT_SECONDS = 30.0
KILL_GRACE_SECONDS = 1.0


@dataclass(frozen=True)
class CommandRequest:
    """Typed command invocation request."""

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS
    input: str | None = None


@dataclass(frozen=True)
class CommandResult:
    """Typed command execution result.

    ``returncode`` is ``None`` only when the platform could not report one.
    """

    argv: tuple[str, ...]
    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Runtime command-execution interface."""

    def run(self, request: CommandRequest) -> CommandResult: ...


def _signal_group(process: subprocess.Popen[str], signum: int) -> None:
    try:
        os.killpg(os.getpgid(process.pid), signum)
    except (ProcessLookupError, PermissionError):
        return


def _timeout_annotation(timeout_seconds: float) -> str:
    return f"Command timed out after {int(timeout_seconds * 1000)}ms"


class SubprocessCommandRunner:
    """Default command-runner adapter backed by subprocess.

    Children run in their own process group so a timeout can terminate the
    whole tree: SIGTERM first, then SIGKILL once the grace window elapses.
    """

    def __init__(self, *, kill_grace_seconds: float = KILL_GRACE_SECONDS) -> None:
        self.kill_grace_seconds = kill_grace_seconds

    def run(self, request: CommandRequest) -> CommandResult:
        try:
            process = subprocess.Popen(
                list(request.argv),
                cwd=request.cwd,
                env=request.env,
                stdin=subprocess.PIPE if request.input is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except OSError as exc:
            return CommandResult(
                argv=request.argv,
                returncode=1,
                stdout="",
                stderr=str(exc),
            )
        try:
            stdout, stderr = process.communicate(
                input=request.input, timeout=request.timeout_seconds
            )
        except subprocess.TimeoutExpired:
            stdout, stderr = self._terminate(process)
            timeout = request.timeout_seconds or 0.0
            annotated = f"{stderr or ''}\n{_timeout_annotation(timeout)}".strip()
            return CommandResult(
                argv=request.argv,
                returncode=TIMEOUT_RETURNCODE,
                stdout=stdout or "",
                stderr=annotated,
                timed_out=True,
            )
        return CommandResult(
            argv=request.argv,
            returncode=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )

    def _terminate(self, process: subprocess.Popen[str]) -> tuple[str, str]:
        _signal_group(process, signal.SIGTERM)
        try:
            return process.communicate(timeout=self.kill_grace_seconds)
        except subprocess.TimeoutExpired:
            _signal_group(process, signal.SIGKILL)
            return process.communicate()


_DEFAULT_COMMAND_RUNNER: CommandRunner = SubprocessCommandRunner()


def run_with_runner(
    request: CommandRequest, *, runner: CommandRunner | None = None
) -> CommandResult:
    """Execute a typed command request with the given runner."""
    active_runner = runner or _DEFAULT_COMMAND_RUNNER
    handoff_log.debug(f"[exec] start argv={' '.join(request.argv)}")
    result = active_runner.run(request)
    handoff_log.debug(
        f"[exec] finish argv={' '.join(request.argv)} code={result.returncode}"
        + (" timed_out=1" if result.timed_out else "")
    )
    return result


def run(
    argv: list[str],
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    cwd: Path | None = None,
    input: str | None = None,
    runner: CommandRunner | None = None,
) -> CommandResult:
    """Run a command and return its captured result without raising.

    Args:
        argv: Command and arguments to execute.
        timeout_seconds: Wall-clock limit before the process group is killed.
        cwd: Optional working directory.
        input: Optional text fed to the command's stdin.
        runner: Optional command runner override.

    Returns:
        ``CommandResult``; callers decide whether a non-zero exit matters.
    """
    return run_with_runner(
        CommandRequest(
            argv=tuple(argv),
            cwd=cwd,
            timeout_seconds=timeout_seconds,
            input=input,
        ),
        runner=runner,
    )


def format_step_failure(step: str, result: CommandResult) -> str:
    """Render the step failure message shared by every workflow step.

    Example:
        >>> result = CommandResult(argv=("jj", "root"), returncode=1, stdout="", stderr="nope")
        >>> print(format_step_failure("Detecting jj repo", result))
        Detecting jj repo failed (exit 1)
        Command: jj root
        nope
    """
    code = "unknown" if result.returncode is None else str(result.returncode)
    output = result.stderr or result.stdout or "(no output)"
    return f"{step} failed (exit {code})\nCommand: {' '.join(result.argv)}\n{output}"


def run_checked(
    argv: list[str],
    step: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    cwd: Path | None = None,
    input: str | None = None,
    runner: CommandRunner | None = None,
) -> CommandResult:
    """Run a command and raise when it exits non-zero.

    Args:
        argv: Command and arguments to execute.
        step: Human-readable step label embedded in the failure message.
        timeout_seconds: Wall-clock limit before the process group is killed.

    Returns:
        The successful ``CommandResult``.

    Raises:
        ExternalCommandFailedError: The command exited non-zero or timed out.
    """
    result = run(
        argv,
        timeout_seconds=timeout_seconds,
        cwd=cwd,
        input=input,
        runner=runner,
    )
    if result.returncode != 0:
        raise ExternalCommandFailedError(format_step_failure(step, result))
    return result
