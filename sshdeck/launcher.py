"""Runs the external ssh client for a stored connection string."""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence

from .config import DEFAULT_TIMEOUT

LOG = logging.getLogger(__name__)

MISSING_BINARY_EXIT = 127

Runner = Callable[[Sequence[str]], int]


class ConnectionFailure(RuntimeError):
    """Raised (or reported) when ssh exits with a non-zero status."""

    def __init__(self, connection_string: str, exit_code: int) -> None:
        super().__init__(f"Connection to {connection_string} failed (exit code {exit_code}).")
        self.connection_string = connection_string
        self.exit_code = exit_code


@dataclass(frozen=True, slots=True)
class Success:
    connection_string: str


@dataclass(frozen=True, slots=True)
class Failure:
    connection_string: str
    exit_code: int

    def as_error(self) -> ConnectionFailure:
        return ConnectionFailure(self.connection_string, self.exit_code)


LaunchResult = Success | Failure


def _run_subprocess(argv: Sequence[str]) -> int:
    return subprocess.run(list(argv), check=False).returncode


class ConnectionLauncher:
    """Invokes ``ssh -o ConnectTimeout=N target`` and reports the exit status.

    There are no retries: a failed attempt is reported once and retrying is up
    to the user.
    """

    def __init__(
        self,
        *,
        ssh_binary: str = "ssh",
        timeout: int = DEFAULT_TIMEOUT,
        runner: Runner | None = None,
    ) -> None:
        self._ssh_binary = ssh_binary
        self._timeout = timeout
        self._runner = runner or _run_subprocess

    @property
    def timeout(self) -> int:
        return self._timeout

    @timeout.setter
    def timeout(self, seconds: int) -> None:
        if seconds <= 0:
            raise ValueError("Timeout must be a positive number of seconds.")
        self._timeout = seconds

    def build_command(self, connection_string: str, timeout: int | None = None) -> list[str]:
        seconds = self._timeout if timeout is None else timeout
        return [self._ssh_binary, "-o", f"ConnectTimeout={seconds}", connection_string]

    def connect(self, connection_string: str, timeout: int | None = None) -> LaunchResult:
        argv = self.build_command(connection_string, timeout)
        LOG.info("Running %s", " ".join(shlex.quote(part) for part in argv))
        try:
            exit_code = self._runner(argv)
        except FileNotFoundError:
            LOG.error("ssh executable '%s' was not found", self._ssh_binary)
            exit_code = MISSING_BINARY_EXIT
        except OSError as exc:
            LOG.error("Could not start %s: %s", self._ssh_binary, exc)
            exit_code = MISSING_BINARY_EXIT
        if exit_code == 0:
            LOG.info("Session with %s ended normally", connection_string)
            return Success(connection_string)
        LOG.warning("Connection to %s failed with exit code %s", connection_string, exit_code)
        return Failure(connection_string, exit_code)


__all__ = [
    "ConnectionFailure",
    "ConnectionLauncher",
    "Failure",
    "LaunchResult",
    "Success",
]
