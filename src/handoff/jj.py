"""jj (Jujutsu) helper functions used by the cloud workflows."""

from __future__ import annotations

import re
from pathlib import Path

from . import exec as exec_util
from .errors import ValidationFailedError

CHANGE_ID_TEMPLATE = 'change_id.short(8) ++ "\\n"'
_REMOTE_LINE_RE = re.compile(r"\s+")


def _jj(repo_root: Path, *args: str) -> list[str]:
    return ["jj", "-R", str(repo_root), *args]


def repo_root(
    cwd: Path | None = None, *, runner: exec_util.CommandRunner | None = None
) -> Path:
    """Return the root of the jj repository containing ``cwd``.

    Raises:
        ValidationFailedError: ``cwd`` is not inside a jj repository.
    """
    result = exec_util.run(["jj", "root"], timeout_seconds=5.0, cwd=cwd, runner=runner)
    root = result.stdout.strip()
    if result.returncode != 0 or not root:
        detail = exec_util.format_step_failure("Detecting jj repo", result)
        raise ValidationFailedError(detail, recovery_hint="run from inside a jj repository")
    return Path(root)


def new_change(
    repo: Path, revision: str, step: str, *, runner: exec_util.CommandRunner | None = None
) -> None:
    """Create a new empty change on top of ``revision``."""
    exec_util.run_checked(_jj(repo, "new", "-r", revision), step, timeout_seconds=10.0, runner=runner)


def current_change_id(repo: Path, *, runner: exec_util.CommandRunner | None = None) -> str:
    """Return the 8-character short change id of ``@`` (may be empty)."""
    result = exec_util.run_checked(
        _jj(repo, "log", "-r", "@", "--no-graph", "-T", CHANGE_ID_TEMPLATE),
        "Reading current jj change id",
        timeout_seconds=5.0,
        runner=runner,
    )
    return result.stdout.strip()


def parse_remote_names(stdout: str) -> list[str]:
    """Return remote names from ``jj git remote list`` output.

    Example:
        >>> parse_remote_names("origin git@x:y.git\\nbuild build:/r.git\\n")
        ['origin', 'build']
    """
    names: list[str] = []
    for line in stdout.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        names.append(_REMOTE_LINE_RE.split(stripped, maxsplit=1)[0])
    return names


def ensure_git_remote(
    repo: Path, name: str, url: str, *, runner: exec_util.CommandRunner | None = None
) -> bool:
    """Point the git remote ``name`` at ``url``, adding it when missing.

    Returns:
        ``True`` when the remote was added, ``False`` when its URL was updated.
    """
    listed = exec_util.run_checked(
        _jj(repo, "git", "remote", "list"),
        "Listing jj git remotes",
        timeout_seconds=5.0,
        runner=runner,
    )
    if name in parse_remote_names(listed.stdout):
        exec_util.run_checked(
            _jj(repo, "git", "remote", "set-url", name, url),
            "Updating jj git remote URL",
            timeout_seconds=5.0,
            runner=runner,
        )
        return False
    exec_util.run_checked(
        _jj(repo, "git", "remote", "add", name, url),
        "Adding jj git remote",
        timeout_seconds=5.0,
        runner=runner,
    )
    return True


def push_named_bookmark(
    repo: Path,
    remote: str,
    bookmark: str,
    *,
    revision: str = "@",
    runner: exec_util.CommandRunner | None = None,
) -> None:
    """Create ``bookmark`` at ``revision`` and push it to ``remote``.

    Automation-generated changes are allowed to be private or undescribed.
    """
    exec_util.run_checked(
        _jj(
            repo,
            "git",
            "push",
            "--remote",
            remote,
            "--allow-private",
            "--allow-empty-description",
            "--named",
            f"{bookmark}={revision}",
        ),
        "Pushing cloud bookmark to remote",
        timeout_seconds=180.0,
        runner=runner,
    )


def forget_bookmark(
    repo: Path, bookmark: str, *, runner: exec_util.CommandRunner | None = None
) -> bool:
    """Forget a bookmark and its remote-tracking state; ``True`` on success."""
    result = exec_util.run(
        _jj(repo, "bookmark", "forget", "--include-remotes", bookmark),
        timeout_seconds=10.0,
        runner=runner,
    )
    return result.returncode == 0


def untrack_bookmark(
    repo: Path, bookmark: str, remote: str, *, runner: exec_util.CommandRunner | None = None
) -> bool:
    """Stop tracking ``bookmark`` on ``remote``; ``True`` on success."""
    result = exec_util.run(
        _jj(repo, "bookmark", "untrack", bookmark, "--remote", remote),
        timeout_seconds=10.0,
        runner=runner,
    )
    return result.returncode == 0


def remove_git_remote(
    repo: Path, name: str, *, runner: exec_util.CommandRunner | None = None
) -> bool:
    """Remove the git remote ``name``; ``True`` on success."""
    result = exec_util.run(
        _jj(repo, "git", "remote", "remove", name),
        timeout_seconds=10.0,
        runner=runner,
    )
    return result.returncode == 0
