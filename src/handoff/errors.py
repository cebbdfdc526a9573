"""Failure contracts shared by the worker, controller, and commands.

Workflows raise ServiceFailure subclasses on expected failures: unmet
preconditions, failing external commands, safety-invariant violations and
malformed protocol payloads. Programmer bugs raise normal exceptions. The
worker turns any exception into exactly one ``error`` event; CLI commands
catch ServiceFailure and die with its message.
"""

from __future__ import annotations

from typing import Literal

ServiceFailureCode = Literal[
    "validation_failed",
    "external_command_failed",
    "unexpected_state",
    "protocol_error",
    "worker_failed",
]


class ServiceFailure(Exception):
    """Expected failure: precondition, external command, or state error.

    Use ``raise ServiceFailure(...) from exc`` to chain a causing exception;
    it is available as ``__cause__``.
    """

    def __init__(
        self,
        code: ServiceFailureCode,
        message: str,
        *,
        recovery_hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.recovery_hint = recovery_hint


class ValidationFailedError(ServiceFailure):
    """A precondition failed before any remote side effect was attempted."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("validation_failed", message, recovery_hint=recovery_hint)


class ExternalCommandFailedError(ServiceFailure):
    """External command (jj, ssh, rsync, ...) exited non-zero."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("external_command_failed", message, recovery_hint=recovery_hint)


class UnexpectedStateError(ServiceFailure):
    """Data or logic inconsistency, such as a delete path outside the scan base."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("unexpected_state", message, recovery_hint=recovery_hint)


class ProtocolError(ServiceFailure):
    """Malformed or unknown IO bridge payload."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("protocol_error", message, recovery_hint=recovery_hint)


class WorkerFailedError(ServiceFailure):
    """The worker process reported an error or exited non-zero."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("worker_failed", message, recovery_hint=recovery_hint)
