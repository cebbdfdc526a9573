"""Cloud run workflow: hand the current change and session to the build host."""

from __future__ import annotations

import os
import posixpath
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path

from .. import exec as exec_util
from .. import jj, paths, sessions
from ..bridge import IOBridge, run_with_progress
from ..clipboard import copy_to_clipboard
from ..errors import UnexpectedStateError
from ..models import HandoffConfig
from ..protocol import ResultEvent
from ..remote import RemoteShell
from ..result import Success
from ..shell import remote_script, sh_quote
from .context import RunContext
from .prompts import remote_agent_instructions

PROGRESS_KEY = "cloud"
WORKSPACE_EXISTS_EXIT_CODE = 22
PLACEHOLDER_TEXT = "This path was local-only and removed by /cloud transfer."
DEFAULT_ENV_FILE = ".env"
FRESH_SESSIONS_DIRNAME = "cloud-agent"


@dataclass(frozen=True)
class CloudLayout:
    """Remote paths for one cloud run."""

    remote_home: str
    bare_repo: str
    workspace: str
    placeholder: str
    sessions_root: str

    @classmethod
    def build(
        cls, remote_home: str, repo_name: str, change_id: str, session_short: str
    ) -> "CloudLayout":
        return cls(
            remote_home=remote_home,
            bare_repo=paths.remote_bare_repo(remote_home, repo_name),
            workspace=paths.remote_workspace(remote_home, repo_name, change_id, session_short),
            placeholder=paths.remote_placeholder_path(remote_home),
            sessions_root=paths.remote_sessions_root(remote_home),
        )


@dataclass(frozen=True)
class EnvFile:
    """An environment file scheduled for copy into the workspace."""

    local_path: Path
    relative_path: str
    remote_path: str


def session_short_id(session_file: Path | None, header_id: str | None) -> str:
    """Return the 8-character session identifier used in remote names.

    Example:
        >>> session_short_id(None, "0194f1d2-aaaa")
        '0194f1d2'
        >>> session_short_id(Path("/s/abcdef123456.jsonl"), None)
        'abcdef12'
    """
    if header_id:
        return header_id[:8]
    if session_file is not None:
        return session_file.stem[:8]
    return uuid.uuid4().hex[:8]


def bootstrap_script(layout: CloudLayout) -> str:
    """Refuse to reuse an existing workspace, then prepare the bare mirror."""
    return remote_script(
        f"if [ -e {sh_quote(layout.workspace)} ]; then",
        f"  echo {sh_quote(f'Workspace already exists: {layout.workspace}')}",
        f"  exit {WORKSPACE_EXISTS_EXIT_CODE}",
        "fi",
        f"mkdir -p {sh_quote(posixpath.dirname(layout.bare_repo))}",
        f"if [ ! -d {sh_quote(layout.bare_repo)} ]; then git init --bare {sh_quote(layout.bare_repo)}; fi",
        f"mkdir -p {sh_quote(posixpath.dirname(layout.placeholder))}",
        f"echo {sh_quote(PLACEHOLDER_TEXT)} > {sh_quote(layout.placeholder)}",
    )


def workspace_script(layout: CloudLayout, bookmark: str) -> str:
    """Clone the workspace at ``bookmark`` and track it against origin."""
    return remote_script(
        f"mkdir -p {sh_quote(posixpath.dirname(layout.workspace))}",
        f"jj git clone {sh_quote(layout.bare_repo)} {sh_quote(layout.workspace)} -b {sh_quote(bookmark)}",
        f"cd {sh_quote(layout.workspace)}",
        f"jj bookmark track {sh_quote(bookmark)} --remote origin",
    )


def tmux_start_script(tmux_session: str, command: str) -> str:
    """Replace any tmux session of the same name and start ``command`` detached."""
    quoted = sh_quote(tmux_session)
    return remote_script(
        f"if tmux has-session -t {quoted} 2>/dev/null; then tmux kill-session -t {quoted}; fi",
        f"tmux new-session -d -s {quoted} {sh_quote(command)}",
    )


def env_sync_candidates(config: HandoffConfig, repo_name: str) -> list[str]:
    """Return the configured env file candidates for ``repo_name`` plus ``.env``."""
    return [*config.env_files.get(repo_name, []), DEFAULT_ENV_FILE]


def select_env_files(
    repo_root: Path, candidates: list[str], remote_workspace: str
) -> tuple[list[EnvFile], list[str]]:
    """Split env file candidates into files to sync and missing paths.

    Candidates are deduplicated; anything mentioning ``example`` or
    resolving outside the repository is dropped.
    """
    to_sync: list[EnvFile] = []
    missing: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        if candidate in seen:
            continue
        seen.add(candidate)
        if "example" in candidate.lower():
            continue
        local_path = Path(os.path.normpath(repo_root / candidate))
        if not sessions.is_path_inside(local_path, repo_root):
            continue
        if not local_path.is_file():
            missing.append(candidate)
            continue
        to_sync.append(
            EnvFile(
                local_path=local_path,
                relative_path=candidate,
                remote_path=posixpath.join(remote_workspace, candidate.replace(os.sep, "/")),
            )
        )
    return to_sync, missing


def remote_working_directory(repo_root: Path, cwd: Path, remote_workspace: str) -> str:
    """Map the local working directory into the remote workspace.

    Example:
        >>> remote_working_directory(Path("/r"), Path("/r/apps/web"), "/h/ws")
        '/h/ws/apps/web'
        >>> remote_working_directory(Path("/r"), Path("/elsewhere"), "/h/ws")
        '/h/ws'
    """
    if not sessions.is_path_inside(cwd, repo_root):
        return remote_workspace
    rel = os.path.relpath(os.path.abspath(cwd), os.path.abspath(repo_root))
    if rel in ("", "."):
        return remote_workspace
    return posixpath.join(remote_workspace, rel.replace(os.sep, "/"))


def _sync_env_files(
    io: IOBridge, remote: RemoteShell, env_files: list[EnvFile], missing: list[str]
) -> None:
    if env_files:

        def sync() -> None:
            for env_file in env_files:
                remote.mkdir(
                    posixpath.dirname(env_file.remote_path),
                    f"Preparing remote directory for {env_file.relative_path}",
                )
                remote.copy_file(
                    env_file.local_path,
                    env_file.remote_path,
                    f"Syncing {env_file.relative_path} to cloud workspace",
                )

        run_with_progress(io, PROGRESS_KEY, f"Syncing env files ({len(env_files)})", sync)
        synced = ", ".join(item.relative_path for item in env_files)
        io.notify(f"Synced env files: {synced}")
    else:
        io.notify("No env files found for sync; skipping env sync.")
    if missing:
        io.notify(f"Env files not found (skipped): {', '.join(missing)}")


def _copy_session_chain(
    io: IOBridge,
    remote: RemoteShell,
    *,
    session_file: Path,
    scratch_dir: Path,
    repo_root: Path,
    layout: CloudLayout,
) -> None:
    session_files = sessions.collect_session_files(session_file)
    rewritten = {
        path: sessions.rewrite_session_for_cloud(path, scratch_dir, repo_root, layout.placeholder)
        for path in session_files
    }
    total = len(session_files)
    for index, local_file in enumerate(session_files, start=1):
        remote_path = posixpath.join(layout.sessions_root, sessions.relative_session_path(local_file))
        remote.mkdir(
            posixpath.dirname(remote_path),
            f"Creating remote session directory for {local_file.name}",
        )
        run_with_progress(
            io,
            PROGRESS_KEY,
            f"Copying session file {index}/{total}: {local_file.name}",
            lambda source=rewritten[local_file], target=remote_path, name=local_file.name: (
                remote.copy_file(source, target, f"Copying session file {name}", tool="scp")
            ),
        )


def run_cloud(
    io: IOBridge,
    context: RunContext,
    *,
    config: HandoffConfig,
    runner: exec_util.CommandRunner | None = None,
) -> ResultEvent:
    """Move the current change and session to a new remote tmux session.

    Each step must succeed before the next starts; the first failure
    propagates. The scratch directory and the progress line are cleared
    whatever happens.

    Returns:
        The ``result`` event that was emitted.
    """
    remote = RemoteShell(config.remote, runner=runner)
    scratch_dir: Path | None = None
    try:
        io.notify("Preparing cloud handoff...")
        repo_root = jj.repo_root(context.cwd, runner=runner)

        run_with_progress(
            io,
            PROGRESS_KEY,
            "Creating dedicated cloud build change",
            lambda: jj.new_change(repo_root, "@", "Creating dedicated cloud build change", runner=runner),
        )
        repo_name = repo_root.name
        change_id = jj.current_change_id(repo_root, runner=runner)
        if not change_id:
            raise UnexpectedStateError("Could not determine current jj change id")

        session_file = context.session_file
        has_local_session = session_file is not None and session_file.is_file()
        header = None
        if has_local_session:
            header = sessions.read_session_header(session_file)
        else:
            io.notify(
                "No local session transcript available; cloud run will start a fresh "
                "remote session."
            )
        session_short = session_short_id(session_file, header.id if header else None)
        bookmark = paths.bookmark_name(change_id)

        remote_home = remote.resolve_home()
        layout = CloudLayout.build(remote_home, repo_name, change_id, session_short)

        run_with_progress(
            io,
            PROGRESS_KEY,
            "Bootstrapping remote repository",
            lambda: remote.run(bootstrap_script(layout), "Bootstrapping remote bare repository"),
        )

        jj.ensure_git_remote(
            repo_root, config.remote_name, f"{remote.host}:{layout.bare_repo}", runner=runner
        )

        run_with_progress(
            io,
            PROGRESS_KEY,
            "Pushing cloud bookmark (large repos may take a while)",
            lambda: jj.push_named_bookmark(repo_root, config.remote_name, bookmark, runner=runner),
        )
        run_with_progress(
            io,
            PROGRESS_KEY,
            "Creating local sibling working change",
            lambda: jj.new_change(
                repo_root, "parents(@)", "Creating local sibling working change", runner=runner
            ),
        )
        run_with_progress(
            io,
            PROGRESS_KEY,
            "Creating cloud workspace",
            lambda: remote.run(
                workspace_script(layout, bookmark),
                "Creating cloud workspace",
                timeout_seconds=180.0,
            ),
        )

        env_files, missing_env_files = select_env_files(
            repo_root, env_sync_candidates(config, repo_name), layout.workspace
        )
        _sync_env_files(io, remote, env_files, missing_env_files)

        if has_local_session:
            session_rel_path = sessions.relative_session_path(session_file)
        else:
            session_rel_path = posixpath.join(
                FRESH_SESSIONS_DIRNAME, repo_name, change_id, f"{session_short}.jsonl"
            )
        remote_session_path = posixpath.join(layout.sessions_root, session_rel_path)
        remote.mkdir(posixpath.dirname(remote_session_path), "Creating remote session directory")

        if has_local_session:
            scratch_dir = Path(tempfile.mkdtemp(prefix="handoff-sessions-"))
            _copy_session_chain(
                io,
                remote,
                session_file=session_file,
                scratch_dir=scratch_dir,
                repo_root=repo_root,
                layout=layout,
            )

        remote_cwd = remote_working_directory(repo_root, context.cwd, layout.workspace)
        instructions = remote_agent_instructions(
            local_repo_root=repo_root,
            local_cwd=context.cwd,
            remote_workspace=layout.workspace,
            remote_cwd=remote_cwd,
            bookmark=bookmark,
            notify_command=config.agent.notify_command,
        )
        agent_argv = " ".join(sh_quote(word) for word in config.agent.argv)
        agent_command = (
            f"cd {sh_quote(remote_cwd)} && exec {agent_argv}"
            f" --session {sh_quote(remote_session_path)}"
            f" --append-system-prompt {sh_quote(instructions)}"
            f" {sh_quote(context.cloud_prompt)}"
        )
        tmux_session = paths.tmux_session_name(
            config.tmux.prefix, repo_name, change_id, session_short
        )
        remote.run(
            tmux_start_script(tmux_session, agent_command),
            "Starting remote tmux session",
            timeout_seconds=30.0,
        )

        attach_command = remote.attach_command(tmux_session)
        copied = copy_to_clipboard(attach_command, runner=runner)
        result = ResultEvent(
            attach_command=attach_command,
            copied_to_clipboard=isinstance(copied, Success),
            tmux_session_name=tmux_session,
            remote_workspace=layout.workspace,
            bookmark_name=bookmark,
        )
        io.emit(result)
        return result
    finally:
        if scratch_dir is not None:
            shutil.rmtree(scratch_dir, ignore_errors=True)
        io.progress(PROGRESS_KEY, "")


