"""Keystroke-driven single choice menu state machine.

The navigator owns no terminal state: callers feed it keys (``MenuKey``
members or Textual key names such as ``"up"`` or ``"enter"``) and render
``labels``/``index`` however they like. A key either moves the cursor, yields
a terminal outcome, or is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence


class MenuKey(str, Enum):
    """Keys understood by the navigator."""

    UP = "up"
    DOWN = "down"
    CONFIRM = "confirm"
    BACK = "back"
    CANCEL = "cancel"
    OTHER = "other"

    @classmethod
    def from_name(cls, name: str) -> MenuKey:
        """Translate a Textual key name (or character) into a ``MenuKey``."""

        return _KEY_NAMES.get(name, cls.OTHER)


_KEY_NAMES: dict[str, MenuKey] = {
    "up": MenuKey.UP,
    "down": MenuKey.DOWN,
    "enter": MenuKey.CONFIRM,
    "b": MenuKey.BACK,
    "B": MenuKey.BACK,
    "q": MenuKey.CANCEL,
    "Q": MenuKey.CANCEL,
    "escape": MenuKey.CANCEL,
}


@dataclass(frozen=True, slots=True)
class Selected:
    index: int


@dataclass(frozen=True, slots=True)
class Back:
    pass


@dataclass(frozen=True, slots=True)
class Cancelled:
    pass


MenuOutcome = Selected | Back | Cancelled


class MenuNavigator:
    """Cursor over a fixed list of labels with wrap-around movement."""

    def __init__(
        self,
        labels: Sequence[str],
        *,
        title: str = "",
        allow_back: bool = False,
        index: int = 0,
    ) -> None:
        if not labels:
            raise ValueError("A menu needs at least one label.")
        self._labels = tuple(labels)
        self._title = title
        self._allow_back = allow_back
        self._index = index % len(self._labels)
        self._outcome: MenuOutcome | None = None

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    @property
    def title(self) -> str:
        return self._title

    @property
    def allow_back(self) -> bool:
        return self._allow_back

    @property
    def index(self) -> int:
        return self._index

    @property
    def current_label(self) -> str:
        return self._labels[self._index]

    @property
    def outcome(self) -> MenuOutcome | None:
        """Terminal outcome, once reached; further keys are ignored."""

        return self._outcome

    def press(self, key: MenuKey | str) -> MenuOutcome | None:
        """Apply one key and return the terminal outcome it produced, if any."""

        if self._outcome is not None:
            return self._outcome
        if not isinstance(key, MenuKey):
            key = MenuKey.from_name(key)
        count = len(self._labels)
        if key is MenuKey.UP:
            self._index = (self._index - 1 + count) % count
        elif key is MenuKey.DOWN:
            self._index = (self._index + 1) % count
        elif key is MenuKey.CONFIRM:
            self._outcome = Selected(self._index)
        elif key is MenuKey.BACK and self._allow_back:
            self._outcome = Back()
        elif key is MenuKey.CANCEL:
            self._outcome = Cancelled()
        return self._outcome

    def run(self, keys: Iterable[MenuKey | str]) -> MenuOutcome | None:
        """Feed a scripted key sequence, stopping at the first terminal outcome."""

        for key in keys:
            outcome = self.press(key)
            if outcome is not None:
                return outcome
        return None


__all__ = [
    "Back",
    "Cancelled",
    "MenuKey",
    "MenuNavigator",
    "MenuOutcome",
    "Selected",
]
