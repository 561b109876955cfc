"""Widget rendering a ``MenuNavigator`` and feeding it keystrokes."""

from __future__ import annotations

from rich.text import Text
from textual import events
from textual.message import Message
from textual.widgets import Static

from sshdeck.navigator import MenuKey, MenuNavigator, MenuOutcome


class MenuView(Static, can_focus=True):
    """Single choice list highlighted at the navigator's current index."""

    DEFAULT_CSS = """
    MenuView {
        height: auto;
        padding: 1 2;
        border: round $primary 40%;
    }

    MenuView:focus {
        border: round $primary;
    }
    """

    class Chosen(Message):
        """Posted once the navigator reaches a terminal outcome."""

        def __init__(self, outcome: MenuOutcome) -> None:
            super().__init__()
            self.outcome = outcome

    def __init__(self, navigator: MenuNavigator, **kwargs) -> None:
        super().__init__("", **kwargs)
        self._navigator = navigator

    @property
    def navigator(self) -> MenuNavigator:
        return self._navigator

    def on_mount(self) -> None:
        self._render_menu()

    def on_key(self, event: events.Key) -> None:
        name = event.key
        if MenuKey.from_name(name) is MenuKey.OTHER and event.character:
            name = event.character
        if MenuKey.from_name(name) is MenuKey.OTHER:
            return
        event.stop()
        event.prevent_default()
        outcome = self._navigator.press(name)
        self._render_menu()
        if outcome is not None:
            self.post_message(self.Chosen(outcome))

    def _render_menu(self) -> None:
        navigator = self._navigator
        text = Text()
        if navigator.title:
            text.append(f"{navigator.title}\n\n", style="bold")
        for idx, label in enumerate(navigator.labels):
            if idx == navigator.index:
                text.append(f"> {label}\n", style="reverse")
            else:
                text.append(f"  {label}\n")
        hints = ["↑/↓ move", "Enter select"]
        if navigator.allow_back:
            hints.append("B back")
        hints.append("Q quit")
        text.append("\n" + " · ".join(hints), style="dim")
        self.update(text)


__all__ = ["MenuView"]
