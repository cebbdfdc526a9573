from __future__ import annotations

from pathlib import Path

import pytest

from handoff import jj
from handoff.errors import ExternalCommandFailedError, ValidationFailedError
from tests.handoff.helpers import FakeRunner, jj_is

REPO = Path("/home/me/src/web")


def test_repo_root_uses_cwd() -> None:
    runner = FakeRunner().on(jj_is("root"), stdout=f"{REPO}\n")

    assert jj.repo_root(Path("/home/me/src/web/apps"), runner=runner) == REPO
    assert runner.requests[0].cwd == Path("/home/me/src/web/apps")


def test_repo_root_outside_repo_is_a_precondition_failure() -> None:
    runner = FakeRunner().on(jj_is("root"), returncode=1, stderr="Error: There is no jj repo in \".\"")

    with pytest.raises(ValidationFailedError) as excinfo:
        jj.repo_root(Path("/tmp"), runner=runner)

    assert "Detecting jj repo failed (exit 1)" in str(excinfo.value)


def test_current_change_id_strips_output() -> None:
    runner = FakeRunner().on(jj_is("log"), stdout="kxyzabcd\n")

    assert jj.current_change_id(REPO, runner=runner) == "kxyzabcd"
    assert runner.jj_calls()[0] == ("log", "-r", "@", "--no-graph", "-T", jj.CHANGE_ID_TEMPLATE)


def test_ensure_git_remote_adds_missing_remote() -> None:
    runner = FakeRunner().on(jj_is("git", "remote", "list"), stdout="origin git@github.com:me/web.git\n")

    added = jj.ensure_git_remote(REPO, "hetzner-1", "hetzner-1:/h/.cloud-remotes/web.git", runner=runner)

    assert added is True
    assert runner.jj_calls()[-1] == (
        "git",
        "remote",
        "add",
        "hetzner-1",
        "hetzner-1:/h/.cloud-remotes/web.git",
    )


def test_ensure_git_remote_updates_existing_remote() -> None:
    runner = FakeRunner().on(
        jj_is("git", "remote", "list"),
        stdout="origin git@github.com:me/web.git\nhetzner-1 hetzner-1:/old.git\n",
    )

    added = jj.ensure_git_remote(REPO, "hetzner-1", "hetzner-1:/new.git", runner=runner)

    assert added is False
    assert runner.jj_calls()[-1] == ("git", "remote", "set-url", "hetzner-1", "hetzner-1:/new.git")


def test_push_named_bookmark_allows_private_and_undescribed_changes() -> None:
    runner = FakeRunner()

    jj.push_named_bookmark(REPO, "hetzner-1", "cloud/kxyzabcd", runner=runner)

    assert runner.jj_calls() == [
        (
            "git",
            "push",
            "--remote",
            "hetzner-1",
            "--allow-private",
            "--allow-empty-description",
            "--named",
            "cloud/kxyzabcd=@",
        )
    ]
    assert runner.requests[0].timeout_seconds == 180.0


def test_push_failure_raises() -> None:
    runner = FakeRunner().on(jj_is("git", "push"), returncode=1, stderr="rejected")

    with pytest.raises(ExternalCommandFailedError, match="Pushing cloud bookmark to remote failed"):
        jj.push_named_bookmark(REPO, "hetzner-1", "cloud/x", runner=runner)


def test_best_effort_bookmark_cleanup_reports_success() -> None:
    runner = (
        FakeRunner()
        .on(jj_is("bookmark", "forget"), returncode=0)
        .on(jj_is("bookmark", "untrack"), returncode=1, stderr="not tracked")
        .on(jj_is("git", "remote", "remove"), returncode=1)
    )

    assert jj.forget_bookmark(REPO, "cloud/x", runner=runner) is True
    assert jj.untrack_bookmark(REPO, "cloud/x", "hetzner-1", runner=runner) is False
    assert jj.remove_git_remote(REPO, "hetzner-1", runner=runner) is False
