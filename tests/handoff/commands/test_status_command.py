from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from handoff.commands.status import show_status
from handoff.status import StatusReport, StatusSession


def _report(**kwargs) -> StatusReport:
    return StatusReport(
        host="hetzner-1",
        pattern=kwargs.get("pattern", "^pi-cloud-"),
        generated_at="2026-01-01T00:00:00.000Z",
        sessions=[
            StatusSession(session="pi-cloud-web-a-1", state="done", status="done", bookmark="cloud/a")
        ],
    )


def _args(**overrides) -> SimpleNamespace:
    data = {"format": "json", "lines": None, "include_pane": False, "pattern": None}
    data.update(overrides)
    return SimpleNamespace(**data)


def test_json_output_uses_prefix_pattern(capsys: pytest.CaptureFixture[str]) -> None:
    seen: dict = {}

    def fake_collect(remote, *, pattern, lines, include_pane):
        seen.update(host=remote.host, pattern=pattern, lines=lines)
        return _report(pattern=pattern)

    with patch("handoff.commands.status.collect_status", fake_collect):
        show_status(_args())

    payload = json.loads(capsys.readouterr().out)
    assert seen == {"host": "hetzner-1", "pattern": "^pi-cloud-", "lines": 300}
    assert payload["counts"]["done"] == 1
    assert payload["sessions"][0]["bookmark"] == "cloud/a"


def test_table_output(capsys: pytest.CaptureFixture[str]) -> None:
    with patch("handoff.commands.status.collect_status", lambda *a, **k: _report()):
        show_status(_args(format="table"))

    output = capsys.readouterr().out
    assert "host: hetzner-1" in output
    assert "pi-cloud-web-a-1" in output
    assert "cloud/a" in output


def test_unknown_format_dies(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        show_status(_args(format="yaml"))

    assert "unsupported format: yaml" in capsys.readouterr().err


def test_zero_lines_is_rejected(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        show_status(_args(lines=0))

    assert "--lines must be a positive integer" in capsys.readouterr().err
