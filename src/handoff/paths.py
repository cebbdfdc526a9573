"""Path helpers for local config files and remote layout."""

from __future__ import annotations

import posixpath
from pathlib import Path

from platformdirs import user_config_dir

HANDOFF_APP_NAME = "handoff"
CONFIG_FILENAME = "config.json"

CLOUD_REMOTES_DIRNAME = ".cloud-remotes"
CLOUD_WORKSPACES_DIRNAME = "cloud-workspaces"
AGENT_SESSIONS_SUBPATH = ".pi/agent/sessions"
PLACEHOLDER_SUBPATH = ".pi/agent/cloud-placeholders/missing-local-file.txt"


def handoff_config_dir() -> Path:
    """Return the base Handoff config directory.

    Example:
        >>> isinstance(handoff_config_dir(), Path)
        True
    """
    return Path(user_config_dir(HANDOFF_APP_NAME))


def config_path() -> Path:
    """Return the path to the user config file.

    Example:
        >>> config_path().name
        'config.json'
    """
    return handoff_config_dir() / CONFIG_FILENAME


def remote_bare_repo(remote_home: str, repo_name: str) -> str:
    """Return the shared bare mirror path for a repository.

    Example:
        >>> remote_bare_repo("/home/u", "web")
        '/home/u/.cloud-remotes/web.git'
    """
    return posixpath.join(remote_home, CLOUD_REMOTES_DIRNAME, f"{repo_name}.git")


def remote_workspace_base(remote_home: str, repo_name: str) -> str:
    """Return the directory holding every cloud workspace for a repository.

    Example:
        >>> remote_workspace_base("/home/u", "web")
        '/home/u/cloud-workspaces/web'
    """
    return posixpath.join(remote_home, CLOUD_WORKSPACES_DIRNAME, repo_name)


def remote_workspace(
    remote_home: str, repo_name: str, change_id: str, session_short: str
) -> str:
    """Return the per-change, per-session workspace directory.

    Example:
        >>> remote_workspace("/home/u", "web", "kxyzabcd", "1a2b3c4d")
        '/home/u/cloud-workspaces/web/kxyzabcd/1a2b3c4d'
    """
    return posixpath.join(remote_workspace_base(remote_home, repo_name), change_id, session_short)


def remote_sessions_root(remote_home: str) -> str:
    """Return the remote agent sessions directory."""
    return posixpath.join(remote_home, AGENT_SESSIONS_SUBPATH)


def remote_placeholder_path(remote_home: str) -> str:
    """Return the placeholder file that replaces local-only read paths."""
    return posixpath.join(remote_home, PLACEHOLDER_SUBPATH)


def tmux_session_name(prefix: str, repo_name: str, change_id: str, session_short: str) -> str:
    """Return the tmux session name for a cloud workspace.

    Example:
        >>> tmux_session_name("pi-cloud", "web", "kxyzabcd", "1a2b3c4d")
        'pi-cloud-web-kxyzabcd-1a2b3c4d'
    """
    return f"{prefix}-{repo_name}-{change_id}-{session_short}"


def bookmark_name(change_id: str) -> str:
    """Return the bookmark pushed for a cloud change.

    Example:
        >>> bookmark_name("kxyzabcd")
        'cloud/kxyzabcd'
    """
    return f"cloud/{change_id}"
