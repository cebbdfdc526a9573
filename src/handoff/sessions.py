"""Session transcript discovery and sanitization for cloud transfer.

Transcripts are JSONL files whose first line is a ``{"type": "session"}``
header. A header may name a ``parentSession`` file; the chain of ancestors
is copied along with the child so the remote agent sees full history.

Before a transcript leaves the machine, ``read`` tool calls that point at
absolute paths outside the repository are rewritten to a placeholder file
on the remote host.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ValidationFailedError

SESSIONS_MARKER = "/sessions/"
READ_TOOL_NAME = "read"


@dataclass(frozen=True)
class SessionHeader:
    """Parsed session header line."""

    id: str | None = None
    parent_session: str | None = None
    version: int | None = None


def _read_text(path: Path) -> str:
    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


def _write_text(path: Path, content: str) -> None:
    with path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(content)


def _parse_json_object(value: str) -> dict | None:
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return None
    if isinstance(parsed, dict):
        return parsed
    return None


def read_session_header(path: Path) -> SessionHeader:
    """Read and validate the header line of a session transcript.

    Args:
        path: Session JSONL file.

    Returns:
        ``SessionHeader`` for the file.

    Raises:
        ValidationFailedError: The file is empty or its first line is not a
            session header.
    """
    try:
        content = _read_text(path)
    except OSError as exc:
        raise ValidationFailedError(f"Failed to read session file {path}: {exc}") from exc
    first_line = content.split("\n", 1)[0].strip()
    if not first_line:
        raise ValidationFailedError(f"Session file is empty: {path}")
    header = _parse_json_object(first_line)
    if header is None or header.get("type") != "session":
        raise ValidationFailedError(f"Invalid session header in {path}")
    session_id = header.get("id")
    parent = header.get("parentSession")
    version = header.get("version")
    return SessionHeader(
        id=session_id if isinstance(session_id, str) and session_id else None,
        parent_session=parent if isinstance(parent, str) and parent else None,
        version=version if isinstance(version, int) else None,
    )


def resolve_parent_session_path(session_file: Path, parent_session: str) -> Path:
    """Resolve a ``parentSession`` reference relative to its child.

    Example:
        >>> resolve_parent_session_path(Path("/s/a/child.jsonl"), "../b/p.jsonl").as_posix()
        '/s/b/p.jsonl'
    """
    parent = Path(parent_session)
    if parent.is_absolute():
        return parent
    return Path(os.path.normpath(session_file.parent / parent))


def collect_session_files(session_file: Path) -> list[Path]:
    """Return ``session_file`` followed by its ancestors, oldest last.

    The walk stops at the first file without a parent or at the first
    repeated path.
    """
    files: list[Path] = []
    seen: set[Path] = set()
    current: Path | None = session_file
    while current is not None and current not in seen:
        seen.add(current)
        files.append(current)
        header = read_session_header(current)
        if not header.parent_session:
            break
        current = resolve_parent_session_path(current, header.parent_session)
    return files


def relative_session_path(session_file: Path | str) -> str:
    """Return the path of a transcript relative to its ``sessions`` root.

    Example:
        >>> relative_session_path("/home/u/.pi/agent/sessions/--repo--/2026.jsonl")
        '--repo--/2026.jsonl'
    """
    normalized = str(session_file).replace(os.sep, "/")
    index = normalized.rfind(SESSIONS_MARKER)
    if index == -1:
        raise ValidationFailedError(
            f"Session path does not contain '{SESSIONS_MARKER}': {session_file}"
        )
    return normalized[index + len(SESSIONS_MARKER) :]


def is_path_inside(candidate: Path | str, root: Path | str) -> bool:
    """Return whether ``candidate`` resolves to ``root`` or below it.

    Example:
        >>> is_path_inside("/home/u/repo/src/a.ts", "/home/u/repo")
        True
        >>> is_path_inside("/home/u/repository", "/home/u/repo")
        False
    """
    root_abs = os.path.abspath(root)
    candidate_abs = os.path.abspath(candidate)
    rel = os.path.relpath(candidate_abs, root_abs)
    return rel == "." or (not rel.startswith("..") and not os.path.isabs(rel))


def should_sanitize_read_path(read_path: str, repo_root: Path | str) -> bool:
    if not os.path.isabs(read_path):
        return False
    return not is_path_inside(read_path, repo_root)


def _sanitize_tool_call(item: dict, repo_root: Path | str, placeholder: str) -> bool:
    changed = False
    arguments = item.get("arguments")
    if isinstance(arguments, dict) and isinstance(arguments.get("path"), str):
        if should_sanitize_read_path(arguments["path"], repo_root):
            arguments["path"] = placeholder
            changed = True
    partial_json = item.get("partialJson")
    if isinstance(partial_json, str):
        partial = _parse_json_object(partial_json)
        if partial is not None and isinstance(partial.get("path"), str):
            if should_sanitize_read_path(partial["path"], repo_root):
                partial["path"] = placeholder
                item["partialJson"] = json.dumps(partial, separators=(",", ":"), ensure_ascii=False)
                changed = True
    return changed


def sanitize_line(line: str, repo_root: Path | str, placeholder: str) -> tuple[str, bool]:
    """Rewrite local-only ``read`` paths in one transcript line.

    Args:
        line: Raw JSONL line (without its newline).
        repo_root: Local repository root; paths inside it are kept.
        placeholder: Remote path substituted for local-only paths.

    Returns:
        ``(line, changed)``; unchanged lines are returned as given.
    """
    if not line.strip():
        return line, False
    entry = _parse_json_object(line)
    if entry is None or entry.get("type") != "message":
        return line, False
    message = entry.get("message")
    if not isinstance(message, dict) or message.get("role") != "assistant":
        return line, False
    content = message.get("content")
    if not isinstance(content, list):
        return line, False

    changed = False
    for item in content:
        if not isinstance(item, dict):
            continue
        if item.get("type") != "toolCall" or item.get("name") != READ_TOOL_NAME:
            continue
        if _sanitize_tool_call(item, repo_root, placeholder):
            changed = True
    if not changed:
        return line, False
    return json.dumps(entry, separators=(",", ":"), ensure_ascii=False), True


def sanitize_transcript(content: str, repo_root: Path | str, placeholder: str) -> str:
    """Sanitize every line of a transcript, preserving line structure."""
    lines = content.split("\n")
    return "\n".join(sanitize_line(line, repo_root, placeholder)[0] for line in lines)


def rewrite_session_for_cloud(
    session_file: Path,
    scratch_dir: Path,
    repo_root: Path | str,
    placeholder: str,
) -> Path:
    """Write a sanitized copy of ``session_file`` below ``scratch_dir``.

    The copy keeps the transcript's path relative to its ``sessions`` root.
    The original file is left untouched.

    Returns:
        Path of the sanitized copy.
    """
    sanitized = sanitize_transcript(_read_text(session_file), repo_root, placeholder)
    rewritten_path = scratch_dir / relative_session_path(session_file)
    rewritten_path.parent.mkdir(parents=True, exist_ok=True)
    _write_text(rewritten_path, sanitized)
    return rewritten_path
