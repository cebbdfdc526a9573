"""Cloud cleanup workflow: delete remote workspaces and related bookmark state."""

from __future__ import annotations

import posixpath
import re
import time
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .. import exec as exec_util
from .. import jj, paths
from ..bridge import IOBridge, run_with_progress
from ..errors import ProtocolError, UnexpectedStateError, ValidationFailedError
from ..models import HandoffConfig
from ..remote import RemoteShell
from ..scan import CloudCleanupSnapshot, CloudWorkspaceInfo, scan_cloud_state
from ..shell import remote_script, sh_quote
from .context import CleanContext

PROGRESS_KEY = "cloud-clean"
REF_DELETED_TAG = "REFDEL"
CANCELLED_MESSAGE = "/cloud-clean cancelled."
_REF_SAFE_CHANGE_ID = re.compile(r"^[A-Za-z0-9]+$")


@dataclass(frozen=True)
class CleanupOutcome:
    deleted_workspaces: int = 0
    forgotten_bookmarks: int = 0
    untracked_bookmarks: int = 0
    deleted_remote_refs: int = 0
    deleted_bare_repo: bool = False
    removed_local_remote: bool = False


def format_age(seconds: int) -> str:
    """Render an age in the largest whole unit.

    Example:
        >>> [format_age(value) for value in (42, 600, 7200, 172800)]
        ['42s', '10m', '2h', '2d']
    """
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3_600:
        return f"{seconds // 60}m"
    if seconds < 86_400:
        return f"{seconds // 3_600}h"
    return f"{seconds // 86_400}d"


def workspace_option_label(workspace: CloudWorkspaceInfo, now_epoch: int) -> str:
    age = max(0, now_epoch - workspace.mtime_epoch)
    state = "ACTIVE" if workspace.active else "inactive"
    return f"{workspace.change_id}/{workspace.session_short} · {format_age(age)} old · {state}"


def fully_deleted_change_ids(
    workspaces: Sequence[CloudWorkspaceInfo], selected: Sequence[CloudWorkspaceInfo]
) -> list[str]:
    """Return sorted change ids whose every workspace is in ``selected``."""
    total_by_change = Counter(ws.change_id for ws in workspaces)
    selected_by_change = Counter(ws.change_id for ws in selected)
    return sorted(
        change_id
        for change_id, count in selected_by_change.items()
        if count == total_by_change.get(change_id, 0)
    )


def ensure_paths_inside_base(
    workspaces: Sequence[CloudWorkspaceInfo], workspace_base: str
) -> None:
    """Refuse any delete target that is not exactly ``<base>/<change>/<session>``.

    Paths are normalized first, so ``..`` segments and trailing slashes
    cannot reach the base itself or anything above it.

    Raises:
        UnexpectedStateError: A workspace path escapes the base directory.
    """
    base = posixpath.normpath(workspace_base)
    for workspace in workspaces:
        components = (workspace.change_id, workspace.session_short)
        expected = posixpath.join(base, *components)
        normalized = posixpath.normpath(workspace.path)
        if normalized != expected or any(
            not part or part in (".", "..") or "/" in part for part in components
        ):
            raise UnexpectedStateError(f"Refusing to delete unexpected path: {workspace.path}")


def ref_delete_script(bare_repo: str, change_ids: Sequence[str]) -> str:
    """Delete ``refs/heads/cloud/<id>`` refs, echoing a tagged line per deletion."""
    lines = []
    for change_id in change_ids:
        ref = f"refs/heads/{paths.bookmark_name(change_id)}"
        git_dir = f"git --git-dir {sh_quote(bare_repo)}"
        marker = sh_quote(REF_DELETED_TAG + "\t" + change_id)
        lines.append(
            f"if {git_dir} show-ref --verify --quiet {sh_quote(ref)}; then "
            f"{git_dir} update-ref -d {sh_quote(ref)}; "
            f"echo {marker}; fi"
        )
    return remote_script(*lines)


def count_deleted_refs(stdout: str) -> int:
    """Count ``REFDEL`` lines in the ref deletion output.

    Example:
        >>> count_deleted_refs("REFDEL\\tabc\\nnoise\\n  REFDEL\\tdef\\n")
        2
    """
    prefix = f"{REF_DELETED_TAG}\t"
    return sum(1 for line in stdout.split("\n") if line.strip().startswith(prefix))


def cleanup_summary_lines(
    selected: Sequence[CloudWorkspaceInfo],
    change_ids: Sequence[str],
    *,
    delete_bare_repo: bool,
    bare_repo: str,
    remote_name: str,
) -> list[str]:
    lines: list[str] = []
    if selected:
        lines.append(f"Delete {len(selected)} workspace(s):")
        lines.extend(f"- {ws.path}" for ws in selected)
    if change_ids:
        lines.append(f"Clean local/remote bookmark state for {len(change_ids)} change(s).")
    if delete_bare_repo:
        lines.append(f"Delete bare repo: {bare_repo}")
        lines.append(f"Remove local remote: {remote_name}")
    return lines


def completion_message(outcome: CleanupOutcome, remote_name: str) -> str:
    message = (
        f"/cloud-clean done: deleted {outcome.deleted_workspaces} workspace(s), "
        f"forgot {outcome.forgotten_bookmarks} bookmark(s), "
        f"untracked {outcome.untracked_bookmarks} remote bookmark(s)"
    )
    if outcome.deleted_bare_repo:
        removed = "removed" if outcome.removed_local_remote else "could not remove"
        return f"{message}, deleted bare repo and {removed} local remote '{remote_name}'"
    return f"{message}, deleted {outcome.deleted_remote_refs} remote ref(s)"


def _select_workspaces(
    io: IOBridge, snapshot: CloudCleanupSnapshot, now_epoch: int
) -> list[CloudWorkspaceInfo] | None:
    options = [workspace_option_label(ws, now_epoch) for ws in snapshot.workspaces]
    indexes = io.request(
        "pickMany",
        f"/cloud-clean: select workspaces to delete ({len(snapshot.workspaces)} total)",
        options=options,
    )
    if indexes is None:
        return None
    total = len(snapshot.workspaces)
    if not isinstance(indexes, list) or not all(
        type(index) is int and 0 <= index < total for index in indexes
    ):
        raise ProtocolError(f"invalid workspace selection: {indexes!r}")
    return [snapshot.workspaces[index] for index in sorted(set(indexes))]


def _choose_bare_repo_action(
    io: IOBridge, snapshot: CloudCleanupSnapshot, remote_name: str
) -> bool | None:
    choice = io.request(
        "pickOne",
        "/cloud-clean: shared bare repo action",
        options=[
            "Keep shared bare repo",
            f"Delete {snapshot.remote_bare_repo} and remove local remote '{remote_name}'",
        ],
    )
    if choice is None:
        return None
    if type(choice) is not int or choice not in (0, 1):
        raise ProtocolError(f"invalid bare repo action: {choice!r}")
    return choice == 1


def run_cloud_clean(
    io: IOBridge,
    context: CleanContext,
    *,
    config: HandoffConfig,
    runner: exec_util.CommandRunner | None = None,
    clock: Callable[[], float] = time.time,
) -> CleanupOutcome | None:
    """Interactively delete remote workspaces and their bookmark state.

    Every decision comes from one remote scan. Cancelling any prompt, or
    answering the confirmation with anything but ``True``, ends the run
    without side effects.

    Returns:
        The cleanup counters, or ``None`` when nothing was changed.

    Raises:
        ValidationFailedError: No interactive UI is available.
        UnexpectedStateError: A selected path is outside the workspace base.
    """
    if not context.has_ui:
        raise ValidationFailedError("/cloud-clean requires UI mode.")
    remote_name = config.remote_name
    remote = RemoteShell(config.remote, runner=runner)
    try:
        repo_root = jj.repo_root(context.cwd, runner=runner)
        repo_name = repo_root.name
        snapshot = run_with_progress(
            io,
            PROGRESS_KEY,
            "Scanning remote cloud state",
            lambda: scan_cloud_state(
                remote,
                repo_name=repo_name,
                remote_home=remote.resolve_home(),
                tmux_prefix=config.tmux.prefix,
            ),
        )

        selected = _select_workspaces(io, snapshot, int(clock()))
        if selected is None:
            io.notify(CANCELLED_MESSAGE)
            return None

        delete_bare_repo = False
        everything_selected = not snapshot.workspaces or len(selected) == len(snapshot.workspaces)
        if everything_selected and snapshot.bare_repo_exists:
            choice = _choose_bare_repo_action(io, snapshot, remote_name)
            if choice is None:
                io.notify(CANCELLED_MESSAGE)
                return None
            delete_bare_repo = choice

        if not selected and not delete_bare_repo:
            io.notify("/cloud-clean: nothing selected.")
            return None

        change_ids = fully_deleted_change_ids(snapshot.workspaces, selected)
        summary = cleanup_summary_lines(
            selected,
            change_ids,
            delete_bare_repo=delete_bare_repo,
            bare_repo=snapshot.remote_bare_repo,
            remote_name=remote_name,
        )
        if io.request("confirm", "/cloud-clean: confirm", summary_lines=summary) is not True:
            io.notify(CANCELLED_MESSAGE)
            return None

        if selected:
            ensure_paths_inside_base(selected, snapshot.remote_workspace_base)
            run_with_progress(
                io,
                PROGRESS_KEY,
                "Deleting selected cloud workspaces",
                lambda: remote.run_lines(
                    *(f"rm -rf {sh_quote(posixpath.normpath(ws.path))}" for ws in selected),
                    step="Deleting selected cloud workspaces",
                    timeout_seconds=120.0,
                ),
            )

        deleted_refs = 0
        if not delete_bare_repo and snapshot.bare_repo_exists and change_ids:
            ref_safe_ids = [cid for cid in change_ids if _REF_SAFE_CHANGE_ID.match(cid)]
            if ref_safe_ids:
                deleted_refs = run_with_progress(
                    io,
                    PROGRESS_KEY,
                    "Deleting cloud refs in bare repo",
                    lambda: count_deleted_refs(
                        remote.run(
                            ref_delete_script(snapshot.remote_bare_repo, ref_safe_ids),
                            "Deleting cloud refs in bare repo",
                            timeout_seconds=30.0,
                        ).stdout
                    ),
                )

        def clean_bookmarks() -> tuple[int, int]:
            forgotten = 0
            untracked = 0
            for change_id in change_ids:
                bookmark = paths.bookmark_name(change_id)
                if jj.forget_bookmark(repo_root, bookmark, runner=runner):
                    forgotten += 1
                if jj.untrack_bookmark(repo_root, bookmark, remote_name, runner=runner):
                    untracked += 1
            return forgotten, untracked

        forgotten, untracked = run_with_progress(
            io, PROGRESS_KEY, "Cleaning local bookmark state", clean_bookmarks
        )

        removed_remote = False
        if delete_bare_repo:
            run_with_progress(
                io,
                PROGRESS_KEY,
                "Deleting shared bare repo",
                lambda: remote.run_lines(
                    f"rm -rf {sh_quote(snapshot.remote_bare_repo)}",
                    step="Deleting shared bare repo",
                    timeout_seconds=30.0,
                ),
            )
            removed_remote = jj.remove_git_remote(repo_root, remote_name, runner=runner)

        outcome = CleanupOutcome(
            deleted_workspaces=len(selected),
            forgotten_bookmarks=forgotten,
            untracked_bookmarks=untracked,
            deleted_remote_refs=deleted_refs,
            deleted_bare_repo=delete_bare_repo,
            removed_local_remote=removed_remote,
        )
        io.notify(completion_message(outcome, remote_name))
        return outcome
    finally:
        io.progress(PROGRESS_KEY, "")
