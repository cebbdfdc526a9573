from __future__ import annotations

import json
import shlex
import tempfile
from pathlib import Path

import pytest

from handoff.errors import ExternalCommandFailedError, ValidationFailedError
from handoff.exec import CommandRequest, CommandResult
from handoff.models import HandoffConfig
from handoff.worker.context import RunContext
from handoff.worker.run import run_cloud, select_env_files
from tests.handoff.helpers import (
    FakeRunner,
    RecordingIO,
    jj_is,
    program_is,
    remote_has,
    write_session,
)

WORKSPACE_PREFIX = "/home/u/cloud-workspaces/repo/kxyzabcd/"


def _config(**overrides) -> HandoffConfig:
    payload = {"remote": {"host": "build-1", "home": "/home/u"}, **overrides}
    return HandoffConfig.model_validate(payload)


def _runner(repo: Path) -> FakeRunner:
    return (
        FakeRunner()
        .on(jj_is("root"), stdout=f"{repo}\n")
        .on(jj_is("log"), stdout="kxyzabcd\n")
    )


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "apps" / "web").mkdir(parents=True)
    return root


def test_fresh_run_pushes_change_and_starts_tmux(repo: Path) -> None:
    (repo / ".env").write_text("A=1\n", encoding="utf-8")
    (repo / "apps" / "web" / ".env.local").write_text("B=2\n", encoding="utf-8")
    config = _config(
        env_files={"repo": ["apps/web/.env.local", "apps/web/.env.example", "apps/api/.env"]}
    )
    runner = _runner(repo)
    io = RecordingIO()

    result = run_cloud(
        io,
        RunContext(cwd=repo / "apps" / "web", cloud_prompt="finish the migration"),
        config=config,
        runner=runner,
    )

    assert result.bookmark_name == "cloud/kxyzabcd"
    assert result.remote_workspace.startswith(WORKSPACE_PREFIX)
    assert result.tmux_session_name.startswith("pi-cloud-repo-kxyzabcd-")
    assert result.attach_command == f"ssh -t build-1 tmux attach -t {result.tmux_session_name}"
    assert io.events[-2] == result

    jj_calls = runner.jj_calls()
    assert jj_calls[0] == ("root",)
    assert ("new", "-r", "@") in jj_calls
    assert ("git", "remote", "add", "build-1", "build-1:/home/u/.cloud-remotes/repo.git") in jj_calls
    push = next(call for call in jj_calls if call[:2] == ("git", "push"))
    assert push[-2:] == ("--named", "cloud/kxyzabcd=@")
    assert jj_calls.index(push) < jj_calls.index(("new", "-r", "parents(@)"))

    scripts = runner.scripts()
    assert "git init --bare '/home/u/.cloud-remotes/repo.git'" in scripts[0]
    assert any("jj git clone" in script and "-b 'cloud/kxyzabcd'" in script for script in scripts)
    tmux_script = scripts[-1]
    assert "tmux new-session -d -s" in tmux_script
    assert f"{result.remote_workspace}/apps/web" in tmux_script
    assert "/home/u/.pi/agent/sessions/cloud-agent/repo/kxyzabcd/" in tmux_script
    assert "finish the migration" in tmux_script

    rsync_targets = [request.argv[-1] for request in runner.requests if request.argv[0] == "rsync"]
    assert rsync_targets == [
        f"build-1:{result.remote_workspace}/apps/web/.env.local",
        f"build-1:{result.remote_workspace}/.env",
    ]
    notes = io.notifications()
    assert notes[0] == "Preparing cloud handoff..."
    assert any("start a fresh remote session" in note for note in notes)
    assert "Synced env files: apps/web/.env.local, .env" in notes
    assert "Env files not found (skipped): apps/api/.env" in notes
    assert io.progress_texts("cloud")[-1] == ""


def test_session_chain_is_sanitized_and_copied(repo: Path, tmp_path: Path) -> None:
    sessions_dir = tmp_path / "home" / ".pi" / "agent" / "sessions" / "--repo--"
    write_session(sessions_dir / "parent.jsonl", session_id="aaaa1111-parent")
    read_outside = {
        "type": "message",
        "message": {
            "role": "assistant",
            "content": [
                {"type": "toolCall", "name": "read", "arguments": {"path": "/etc/hosts"}},
            ],
        },
    }
    child = write_session(
        sessions_dir / "child.jsonl",
        session_id="0194f1d2-child",
        parent="parent.jsonl",
        lines=[read_outside],
    )
    copied: dict[str, str] = {}

    def capture_scp(request: CommandRequest) -> CommandResult:
        copied[request.argv[-1]] = Path(request.argv[-2]).read_text(encoding="utf-8")
        return CommandResult(argv=request.argv, returncode=0, stdout="", stderr="")

    runner = _runner(repo).on(program_is("scp"), responder=capture_scp)
    io = RecordingIO()

    result = run_cloud(
        io, RunContext(cwd=repo, session_file=child), config=_config(), runner=runner
    )

    assert result.tmux_session_name == "pi-cloud-repo-kxyzabcd-0194f1d2"
    assert result.remote_workspace == WORKSPACE_PREFIX + "0194f1d2"
    assert sorted(copied) == [
        "build-1:/home/u/.pi/agent/sessions/--repo--/child.jsonl",
        "build-1:/home/u/.pi/agent/sessions/--repo--/parent.jsonl",
    ]
    child_copy = copied["build-1:/home/u/.pi/agent/sessions/--repo--/child.jsonl"]
    tool_call = json.loads(child_copy.splitlines()[1])["message"]["content"][0]
    assert tool_call["arguments"]["path"] == "/home/u/.pi/agent/cloud-placeholders/missing-local-file.txt"
    assert "/etc/hosts" in child.read_text(encoding="utf-8")
    assert any(
        text.startswith("☁️ Copying session file 2/2: parent.jsonl")
        for text in io.progress_texts("cloud")
    )
    assert "/home/u/.pi/agent/sessions/--repo--/child.jsonl" in runner.scripts()[-1]
    assert "No env files found for sync; skipping env sync." in io.notifications()


def test_existing_workspace_stops_before_push(repo: Path) -> None:
    runner = _runner(repo).on(
        remote_has("Workspace already exists"),
        returncode=22,
        stdout="Workspace already exists: /home/u/cloud-workspaces/repo/kxyzabcd/x",
    )
    io = RecordingIO()

    with pytest.raises(ExternalCommandFailedError, match=r"Bootstrapping remote bare repository failed \(exit 22\)"):
        run_cloud(io, RunContext(cwd=repo), config=_config(), runner=runner)

    assert not any(call[:2] == ("git", "push") for call in runner.jj_calls())
    texts = io.progress_texts("cloud")
    assert texts[-2] == "❌ Bootstrapping remote repository failed"
    assert texts[-1] == ""


def test_outside_jj_repo_fails_validation(tmp_path: Path) -> None:
    runner = FakeRunner().on(jj_is("root"), returncode=1, stderr="There is no jj repo in \".\"")

    with pytest.raises(ValidationFailedError, match="Detecting jj repo failed"):
        run_cloud(RecordingIO(), RunContext(cwd=tmp_path), config=_config(), runner=runner)

    assert runner.scripts() == []


def test_select_env_files_drops_examples_and_escapes(repo: Path) -> None:
    (repo / ".env").write_text("", encoding="utf-8")

    to_sync, missing = select_env_files(
        repo, [".env", ".env", "../secrets/.env", "web/.env.EXAMPLE", "web/.env"], "/ws"
    )

    assert [(item.relative_path, item.remote_path) for item in to_sync] == [(".env", "/ws/.env")]
    assert missing == ["web/.env"]


def test_agent_command_words_are_quoted_individually(repo: Path) -> None:
    config = _config(agent={"command": "pi --model 'big one'; touch /tmp/owned"})
    runner = _runner(repo)

    run_cloud(RecordingIO(), RunContext(cwd=repo), config=config, runner=runner)

    tmux_line = runner.scripts()[-1].splitlines()[-1]
    agent_command = shlex.split(tmux_line)[-1]
    words = shlex.split(agent_command)
    exec_at = words.index("exec")
    assert words[exec_at + 1 : exec_at + 6] == [
        "pi",
        "--model",
        "big one;",
        "touch",
        "/tmp/owned",
    ]
    assert "exec 'pi' '--model' 'big one;' 'touch' '/tmp/owned' --session" in agent_command


@pytest.mark.parametrize(
    "failing",
    [program_is("scp"), remote_has("tmux new-session")],
    ids=["scp", "tmux"],
)
def test_scratch_directory_is_removed_on_failure(
    repo: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, failing
) -> None:
    sessions_dir = tmp_path / "home" / ".pi" / "agent" / "sessions" / "--repo--"
    session = write_session(sessions_dir / "only.jsonl", session_id="0194f1d2-only")
    scratch = tmp_path / "scratch"

    def fake_mkdtemp(prefix: str = "") -> str:
        scratch.mkdir()
        return str(scratch)

    monkeypatch.setattr(tempfile, "mkdtemp", fake_mkdtemp)
    runner = _runner(repo).on(failing, returncode=1, stderr="boom")
    io = RecordingIO()

    with pytest.raises(ExternalCommandFailedError):
        run_cloud(io, RunContext(cwd=repo, session_file=session), config=_config(), runner=runner)

    assert not scratch.exists()
    assert io.progress_texts("cloud")[-1] == ""
