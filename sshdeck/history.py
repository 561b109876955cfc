"""Shell history mining for previously used SSH targets."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Collection, Iterable

from .registry import Registry, ValidationError, validate_connection_string

LOG = logging.getLogger(__name__)

_SSH_COMMAND = re.compile(r"^ssh\s+(?P<target>[^\s@]+@\S+)")
_ZSH_EXTENDED = re.compile(r"^: \d+:\d+;")
_PRINTABLE = re.compile(rb"[\x20-\x7e\t]+")


def read_history(path: Path) -> list[str]:
    """Return the printable text of each history line.

    The file is read as bytes so binary noise (zsh metafied characters, stray
    escape codes) never aborts a scan.
    """

    try:
        data = path.read_bytes()
    except FileNotFoundError:
        LOG.warning("History file %s does not exist", path)
        return []
    lines: list[str] = []
    for raw in data.splitlines():
        text = " ".join(chunk.decode("ascii") for chunk in _PRINTABLE.findall(raw))
        if text:
            lines.append(text)
    return lines


def scan(lines: Iterable[str]) -> tuple[str, ...]:
    """Extract unique ``user@host`` targets from ``ssh user@host ...`` lines."""

    seen: dict[str, None] = {}
    for line in lines:
        command = _ZSH_EXTENDED.sub("", line.strip(), count=1).lstrip()
        match = _SSH_COMMAND.match(command)
        if not match:
            continue
        target = match.group("target")
        try:
            validate_connection_string(target)
        except ValidationError:
            LOG.debug("Ignoring history target %r", target)
            continue
        seen.setdefault(target, None)
    return tuple(seen)


def diff_against_registry(candidates: Iterable[str], registry: Registry | Collection[str]) -> tuple[str, ...]:
    """Drop candidates already saved as some entry's connection string."""

    if isinstance(registry, Registry):
        known = registry.connection_strings()
    else:
        known = set(registry)
    return tuple(candidate for candidate in candidates if candidate not in known)


class HistoryScanner:
    """Reads a history file and lists targets not yet in the registry."""

    def __init__(self, history_file: Path) -> None:
        self._history_file = Path(history_file)

    @property
    def history_file(self) -> Path:
        return self._history_file

    def scan(self) -> tuple[str, ...]:
        candidates = scan(read_history(self._history_file))
        LOG.info("Found %d ssh targets in %s", len(candidates), self._history_file)
        return candidates

    def new_candidates(self, registry: Registry) -> tuple[str, ...]:
        return diff_against_registry(self.scan(), registry)


__all__ = ["HistoryScanner", "diff_against_registry", "read_history", "scan"]
