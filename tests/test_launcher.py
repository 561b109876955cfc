"""Tests for the ssh connection launcher."""

from __future__ import annotations

from typing import Sequence

import pytest

from sshdeck.launcher import ConnectionFailure, ConnectionLauncher, Failure, Success


class _RecordingRunner:
    def __init__(self, exit_code: int = 0) -> None:
        self.exit_code = exit_code
        self.calls: list[list[str]] = []

    def __call__(self, argv: Sequence[str]) -> int:
        self.calls.append(list(argv))
        return self.exit_code


def test_build_command_sets_connect_timeout() -> None:
    launcher = ConnectionLauncher(timeout=7)

    assert launcher.build_command("alice@db.internal") == [
        "ssh",
        "-o",
        "ConnectTimeout=7",
        "alice@db.internal",
    ]
    assert launcher.build_command("alice@db.internal", timeout=2)[2] == "ConnectTimeout=2"


def test_connect_reports_success() -> None:
    runner = _RecordingRunner(0)
    launcher = ConnectionLauncher(runner=runner)

    result = launcher.connect("alice@db.internal")

    assert result == Success("alice@db.internal")
    assert runner.calls == [["ssh", "-o", "ConnectTimeout=5", "alice@db.internal"]]


def test_connect_reports_failure_once_without_retry() -> None:
    runner = _RecordingRunner(255)
    launcher = ConnectionLauncher(ssh_binary="/usr/bin/ssh", runner=runner)

    result = launcher.connect("bob@gone.internal")

    assert result == Failure("bob@gone.internal", 255)
    assert len(runner.calls) == 1
    error = result.as_error()
    assert isinstance(error, ConnectionFailure)
    assert error.exit_code == 255
    assert "bob@gone.internal" in str(error)


def test_missing_binary_is_a_failure() -> None:
    def _missing(argv: Sequence[str]) -> int:
        raise FileNotFoundError(argv[0])

    launcher = ConnectionLauncher(ssh_binary="no-such-ssh", runner=_missing)

    assert launcher.connect("alice@host") == Failure("alice@host", 127)


def test_default_runner_uses_subprocess(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    class _Completed:
        returncode = 3

    def _fake_run(argv, check):  # type: ignore[no-untyped-def]
        captured["argv"] = argv
        captured["check"] = check
        return _Completed()

    monkeypatch.setattr("sshdeck.launcher.subprocess.run", _fake_run)
    launcher = ConnectionLauncher(timeout=9)

    result = launcher.connect("alice@host")

    assert result == Failure("alice@host", 3)
    assert captured == {"argv": ["ssh", "-o", "ConnectTimeout=9", "alice@host"], "check": False}


def test_timeout_must_be_positive() -> None:
    launcher = ConnectionLauncher()

    with pytest.raises(ValueError):
        launcher.timeout = 0
    launcher.timeout = 12
    assert launcher.timeout == 12
