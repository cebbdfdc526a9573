# ruff: noqa: E402

import builtins
import sys
from pathlib import Path

import pytest
from _pytest.doctest import DoctestModule

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import handoff.io as handoff_io
import handoff.log as handoff_log

DOCTEST_MODULES = {
    ROOT / "src" / "handoff" / "__init__.py",
    ROOT / "src" / "handoff" / "config.py",
    ROOT / "src" / "handoff" / "exec.py",
    ROOT / "src" / "handoff" / "jj.py",
    ROOT / "src" / "handoff" / "log.py",
    ROOT / "src" / "handoff" / "models.py",
    ROOT / "src" / "handoff" / "paths.py",
    ROOT / "src" / "handoff" / "protocol.py",
    ROOT / "src" / "handoff" / "scan.py",
    ROOT / "src" / "handoff" / "sessions.py",
    ROOT / "src" / "handoff" / "shell.py",
    ROOT / "src" / "handoff" / "status.py",
    ROOT / "src" / "handoff" / "worker" / "clean.py",
    ROOT / "src" / "handoff" / "worker" / "context.py",
    ROOT / "src" / "handoff" / "worker" / "run.py",
}

_ENV_OVERRIDES = (
    "HANDOFF_REMOTE_HOST",
    "HANDOFF_REMOTE_NAME",
    "HANDOFF_REMOTE_HOME",
    "HANDOFF_LOG_LEVEL",
    "HANDOFF_NO_COLOR",
)


@pytest.fixture(autouse=True)
def _isolated_handoff(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HANDOFF_CONFIG", str(tmp_path / "handoff-config.json"))
    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(handoff_io, "interactive_terminal", lambda: False)
    monkeypatch.setattr(handoff_log, "_configured_level", None)
    monkeypatch.setattr(handoff_log, "_no_color", None)
    monkeypatch.setattr(handoff_log, "_stderr_only", False)

    def fail_input(prompt: str = "") -> str:
        raise AssertionError("prompted unexpectedly")

    monkeypatch.setattr(builtins, "input", fail_input)


def pytest_collect_file(
    parent: pytest.Collector, file_path: Path
) -> DoctestModule | None:
    path = file_path if isinstance(file_path, Path) else Path(str(file_path))
    if path in DOCTEST_MODULES:
        return DoctestModule.from_parent(parent, path=path)
    return None
