from __future__ import annotations

from handoff.clipboard import copy_to_clipboard
from handoff.result import Failure, Success
from tests.handoff.helpers import FakeRunner, program_is


def test_copy_uses_pbcopy_on_macos() -> None:
    runner = FakeRunner()

    result = copy_to_clipboard("ssh -t h tmux attach -t s", platform="darwin", runner=runner)

    assert isinstance(result, Success)
    assert runner.requests[0].argv == ("pbcopy",)
    assert runner.requests[0].input == "ssh -t h tmux attach -t s"


def test_copy_reports_pbcopy_failure() -> None:
    runner = FakeRunner().on(program_is("pbcopy"), returncode=1, stderr="no pasteboard")

    result = copy_to_clipboard("x", platform="darwin", runner=runner)

    assert isinstance(result, Failure)
    assert "no pasteboard" in result.reason


def test_copy_skipped_off_macos() -> None:
    runner = FakeRunner()

    result = copy_to_clipboard("x", platform="linux", runner=runner)

    assert isinstance(result, Failure)
    assert runner.requests == []
