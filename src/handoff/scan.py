"""Remote cloud state scanning for cleanup.

One remote script enumerates ``<base>/<changeId>/<sessionShort>`` workspace
directories and reports whether the shared bare repository exists, using a
tab-separated tagged line format::

    WS\t<path>\t<changeId>\t<sessionShort>\t<mtimeEpoch>\t<0|1>
    BARE\t<0|1>

The scan is the only source of truth for cleanup decisions; local bookmark
state is never consulted.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from . import log as handoff_log
from . import paths
from .remote import RemoteShell
from .shell import remote_script, sh_quote

WORKSPACE_TAG = "WS"
BARE_TAG = "BARE"
SCAN_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class CloudWorkspaceInfo:
    """One discovered remote workspace directory."""

    path: str
    change_id: str
    session_short: str
    mtime_epoch: int
    active: bool


@dataclass(frozen=True)
class CloudCleanupSnapshot:
    """Point-in-time view of remote cloud state, workspaces sorted by path."""

    remote_workspace_base: str
    remote_bare_repo: str
    workspaces: tuple[CloudWorkspaceInfo, ...] = field(default_factory=tuple)
    bare_repo_exists: bool = False


def build_scan_script(
    *, workspace_base: str, bare_repo: str, repo_name: str, tmux_prefix: str
) -> str:
    """Build the remote scan script."""
    return remote_script(
        f"workspace_base={sh_quote(workspace_base)}",
        f"bare_repo={sh_quote(bare_repo)}",
        f"repo_name={sh_quote(repo_name)}",
        f"tmux_prefix={sh_quote(tmux_prefix)}",
        'if [ -d "$workspace_base" ]; then',
        "  find \"$workspace_base\" -mindepth 2 -maxdepth 2 -type d -print0"
        " | while IFS= read -r -d '' ws; do",
        '    change_id=$(basename "$(dirname "$ws")")',
        '    session_short=$(basename "$ws")',
        '    mtime=$(stat -c %Y "$ws")',
        '    if tmux has-session -t "${tmux_prefix}-${repo_name}-${change_id}-${session_short}"'
        " 2>/dev/null; then active=1; else active=0; fi",
        "    printf 'WS\\t%s\\t%s\\t%s\\t%s\\t%s\\n'"
        ' "$ws" "$change_id" "$session_short" "$mtime" "$active"',
        "  done",
        "fi",
        "if [ -d \"$bare_repo\" ]; then printf 'BARE\\t1\\n'; else printf 'BARE\\t0\\n'; fi",
    )


def _parse_epoch(value: str) -> int:
    try:
        return int(float(value))
    except ValueError:
        return 0


def parse_workspace_line(parts: list[str]) -> CloudWorkspaceInfo | None:
    """Build a workspace record from a tokenized ``WS`` line.

    Example:
        >>> parse_workspace_line(["WS", "/b/c/s", "c", "s", "10", "1"]).active
        True
        >>> parse_workspace_line(["WS", "/b/c/s", "c"]) is None
        True
    """
    if len(parts) < 6 or parts[0] != WORKSPACE_TAG:
        return None
    return CloudWorkspaceInfo(
        path=parts[1],
        change_id=parts[2],
        session_short=parts[3],
        mtime_epoch=_parse_epoch(parts[4]),
        active=parts[5] == "1",
    )


def parse_scan_output(
    stdout: str, *, workspace_base: str, bare_repo: str
) -> CloudCleanupSnapshot:
    """Parse scan output into a snapshot.

    Malformed and unknown lines are skipped so newer scripts can add tags.
    """
    workspaces: list[CloudWorkspaceInfo] = []
    bare_repo_exists = False
    for raw_line in stdout.split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split("\t")
        tag = parts[0]
        if tag == WORKSPACE_TAG:
            workspace = parse_workspace_line(parts)
            if workspace is None:
                handoff_log.debug(f"[scan] skipping malformed line: {line!r}")
                continue
            workspaces.append(workspace)
        elif tag == BARE_TAG and len(parts) >= 2:
            bare_repo_exists = parts[1] == "1"
        else:
            handoff_log.debug(f"[scan] skipping unrecognized line: {line!r}")
    workspaces.sort(key=lambda item: item.path)
    return CloudCleanupSnapshot(
        remote_workspace_base=workspace_base,
        remote_bare_repo=bare_repo,
        workspaces=tuple(workspaces),
        bare_repo_exists=bare_repo_exists,
    )


def scan_cloud_state(
    remote: RemoteShell, *, repo_name: str, remote_home: str, tmux_prefix: str
) -> CloudCleanupSnapshot:
    """Scan remote workspaces and the bare mirror for ``repo_name``."""
    workspace_base = paths.remote_workspace_base(remote_home, repo_name)
    bare_repo = paths.remote_bare_repo(remote_home, repo_name)
    script = build_scan_script(
        workspace_base=workspace_base,
        bare_repo=bare_repo,
        repo_name=repo_name,
        tmux_prefix=tmux_prefix,
    )
    result = remote.run(script, "Scanning remote cloud state", timeout_seconds=SCAN_TIMEOUT_SECONDS)
    return parse_scan_output(result.stdout, workspace_base=workspace_base, bare_repo=bare_repo)
