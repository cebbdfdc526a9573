"""Remote agent instruction rendering."""

from __future__ import annotations

from pathlib import Path


def remote_agent_instructions(
    *,
    local_repo_root: Path,
    local_cwd: Path,
    remote_workspace: str,
    remote_cwd: str,
    bookmark: str,
    notify_command: str,
) -> str:
    """Build the system prompt appended to the remote agent session.

    The remote agent follows the numbered finishing checklist literally and
    the status tooling parses the completion message, so the layout is fixed.
    """
    lines = [
        "This session was moved from a local machine to a cloud workspace.",
        f"Local repo root was: {local_repo_root}",
        f"Local working directory was: {local_cwd}",
        f"Remote repo root is now: {remote_workspace}",
        f"Remote working directory is now: {remote_cwd}",
        "Do not use old absolute local paths. Use remote paths from this workspace.",
        (
            "This repo may rely on a nix dev environment; if commands/tools are "
            "missing, run them via `nix develop -c <command>`."
        ),
        (
            "Cloud workers may lack untracked/generated files. If missing files "
            "break commands, infer what is needed and regenerate using repo build "
            "scripts/docs (Justfile/Makefile/package scripts)."
        ),
        "When finishing work, before your final response, you must run these commands:",
        '1) jj commit -m "<good, specific commit message>"',
        f'2) jj bookmark set "{bookmark}" -r @-',
        (
            f'3) jj git push --remote origin --bookmark "{bookmark}" '
            "--allow-private --allow-empty-description"
        ),
        (
            f"4) Send a completion notification using {notify_command} in this exact "
            "format (edit placeholders, keep structure):"
        ),
        f"   cat <<'EOF' | {notify_command}",
        "   Relay this message verbatim, with no changes:",
        "",
        "   ✅ Cloud run complete",
        "",
        "   Summary:",
        "   - <short bullet about what you changed>",
        "   - <short bullet about key result>",
        "   - <short bullet about anything important to know>",
        "",
        "   Status: <done|partial|blocked>",
        f"   Bookmark: {bookmark}",
        f"   Workspace: {remote_workspace}",
        "   Follow-up: <what the user should do next, if anything>",
        "   EOF",
        "5) tmux kill-session -t \"$(tmux display-message -p '#S')\"",
        f"Do not close tmux before {notify_command} succeeds.",
        (
            "Then explicitly confirm in your final response that commit, bookmark "
            f"move, push, {notify_command} notification, and tmux session shutdown "
            "succeeded."
        ),
    ]
    return "\n".join(lines)
