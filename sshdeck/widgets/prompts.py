"""Modal screens asking the user for text input or a yes/no answer."""

from __future__ import annotations

from typing import Sequence

from textual import events, on
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Input, Label, Static

from sshdeck.session import PromptField, Validator


class PromptScreen(ModalScreen[dict[str, str] | None]):
    """Collects one value per field; Enter advances, Escape cancels.

    When a validator is given, submission is refused (and the message shown)
    until every field passes.
    """

    DEFAULT_CSS = """
    PromptScreen {
        align: center middle;
    }

    #prompt-dialog {
        width: 64;
        height: auto;
        padding: 1 2;
        border: round $secondary;
        background: $surface;
    }

    #prompt-title {
        text-style: bold;
        margin-bottom: 1;
    }

    #prompt-error {
        color: $error;
        height: auto;
    }
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(
        self,
        title: str,
        fields: Sequence[PromptField],
        validator: Validator | None = None,
    ) -> None:
        super().__init__()
        self._title = title
        self._fields = tuple(fields)
        self._validator = validator
        self._inputs: list[Input] = []
        self.error: str | None = None

    def compose(self) -> ComposeResult:
        with Vertical(id="prompt-dialog"):
            yield Label(self._title, id="prompt-title")
            for field in self._fields:
                yield Label(field.label)
                field_input = Input(value=field.value, placeholder=field.placeholder, id=f"field-{field.key}")
                self._inputs.append(field_input)
                yield field_input
            yield Static("", id="prompt-error")
            yield Static("Enter to continue · Esc to cancel", classes="prompt-hint")

    def on_mount(self) -> None:
        if self._inputs:
            self._inputs[0].focus()

    @property
    def values(self) -> dict[str, str]:
        return {field.key: field_input.value.strip() for field, field_input in zip(self._fields, self._inputs)}

    @on(Input.Submitted)
    def _handle_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        try:
            position = self._inputs.index(event.input)
        except ValueError:
            return
        if position + 1 < len(self._inputs):
            self._inputs[position + 1].focus()
            return
        self.submit()

    def submit(self) -> None:
        values = self.values
        if self._validator is not None:
            problem = self._validator(values)
            self.error = problem or None
            if problem:
                self.query_one("#prompt-error", Static).update(problem)
                return
        self.dismiss(values)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no question answered with a single key."""

    DEFAULT_CSS = """
    ConfirmScreen {
        align: center middle;
    }

    #confirm-dialog {
        width: 64;
        height: auto;
        padding: 1 2;
        border: round $warning;
        background: $surface;
    }
    """

    def __init__(self, question: str) -> None:
        super().__init__()
        self._question = question

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-dialog"):
            yield Static(self._question, id="confirm-question")
            yield Static("[y] yes · [n] no", classes="confirm-hint", markup=False)

    def on_key(self, event: events.Key) -> None:
        answer = (event.character or "").lower()
        if answer == "y":
            event.stop()
            self.dismiss(True)
        elif answer == "n" or event.key == "escape":
            event.stop()
            self.dismiss(False)


__all__ = ["ConfirmScreen", "PromptScreen"]
