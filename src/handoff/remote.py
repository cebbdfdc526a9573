"""Remote shell execution against the configured build host."""

from __future__ import annotations

import shlex
from pathlib import Path

from . import exec as exec_util
from . import log as handoff_log
from .errors import UnexpectedStateError
from .models import RemoteSection
from .shell import remote_script, sh_quote

DEFAULT_REMOTE_TIMEOUT_SECONDS = 60.0
TRANSFER_TIMEOUT_SECONDS = 180.0


class RemoteShell:
    """Run strict-mode scripts and copy files to one remote host.

    Host keys are always verified (``StrictHostKeyChecking=yes``) and ssh
    never prompts (``BatchMode=yes``).
    """

    def __init__(
        self,
        settings: RemoteSection,
        *,
        runner: exec_util.CommandRunner | None = None,
    ) -> None:
        self.settings = settings
        self.runner = runner
        self._home: str | None = settings.home

    @property
    def host(self) -> str:
        return self.settings.host

    def ssh_options(self) -> list[str]:
        options = ["-o", "BatchMode=yes", "-o", "StrictHostKeyChecking=yes"]
        if self.settings.known_hosts:
            options += ["-o", f"UserKnownHostsFile={self.settings.known_hosts}"]
        if self.settings.identity:
            options += ["-o", "IdentitiesOnly=yes", "-i", self.settings.identity]
        return options

    def ssh_argv(self, script: str) -> list[str]:
        return ["ssh", *self.ssh_options(), self.host, f"bash -lc {sh_quote(script)}"]

    def run(
        self,
        script: str,
        step: str,
        *,
        timeout_seconds: float = DEFAULT_REMOTE_TIMEOUT_SECONDS,
    ) -> exec_util.CommandResult:
        """Run a remote script and raise if it exits non-zero.

        Args:
            script: Script text; callers build it with ``remote_script``.
            step: Step label used in the failure message.
            timeout_seconds: Wall-clock limit for the whole ssh round trip.

        Returns:
            The successful ``CommandResult``.
        """
        handoff_log.trace(f"[remote] {step}\n{script}")
        return exec_util.run_checked(
            self.ssh_argv(script),
            step,
            timeout_seconds=timeout_seconds,
            runner=self.runner,
        )

    def run_unchecked(
        self, script: str, *, timeout_seconds: float = DEFAULT_REMOTE_TIMEOUT_SECONDS
    ) -> exec_util.CommandResult:
        """Run a remote script and return the result without checking it."""
        handoff_log.trace(f"[remote] unchecked\n{script}")
        return exec_util.run(
            self.ssh_argv(script), timeout_seconds=timeout_seconds, runner=self.runner
        )

    def run_lines(
        self,
        *lines: str,
        step: str,
        timeout_seconds: float = DEFAULT_REMOTE_TIMEOUT_SECONDS,
    ) -> exec_util.CommandResult:
        """Run ``lines`` as one strict-mode remote script."""
        return self.run(remote_script(*lines), step, timeout_seconds=timeout_seconds)

    def mkdir(self, remote_dir: str, step: str) -> exec_util.CommandResult:
        return self.run_lines(f"mkdir -p {sh_quote(remote_dir)}", step=step, timeout_seconds=30.0)

    def copy_file(
        self,
        local_path: Path,
        remote_path: str,
        step: str,
        *,
        tool: str = "rsync",
        timeout_seconds: float = TRANSFER_TIMEOUT_SECONDS,
    ) -> exec_util.CommandResult:
        """Copy one local file to an absolute remote path.

        ``tool`` is ``rsync`` (archive + compress) or ``scp``.
        """
        target = f"{self.host}:{remote_path}"
        if tool == "rsync":
            transport = shlex.join(["ssh", *self.ssh_options()])
            argv = ["rsync", "-az", "-e", transport, str(local_path), target]
        elif tool == "scp":
            argv = ["scp", *self.ssh_options(), str(local_path), target]
        else:
            raise ValueError(f"unsupported copy tool: {tool}")
        return exec_util.run_checked(argv, step, timeout_seconds=timeout_seconds, runner=self.runner)

    def resolve_home(self) -> str:
        """Return the remote home directory, asking the host when unset."""
        if self._home:
            return self._home
        result = self.run_lines('printf %s "$HOME"', step="Resolving remote home directory")
        home = result.stdout.strip()
        if not home.startswith("/"):
            raise UnexpectedStateError(f"remote home is not an absolute path: {home!r}")
        self._home = home.rstrip("/") or "/"
        return self._home

    def attach_command(self, tmux_session: str) -> str:
        return f"ssh -t {self.host} tmux attach -t {tmux_session}"
