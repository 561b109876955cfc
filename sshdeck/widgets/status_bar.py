"""Status bar widget that mirrors session notices."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from sshdeck.session import SessionController, SessionNotice


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }

    StatusBar.error {
        background: $error;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__("", id="status-bar", markup=False)
        self._controller = controller
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_notice)
        notices = self._controller.notices
        self._render_status(notices[-1] if notices else None)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_notice(self, notice: SessionNotice) -> None:
        self._render_status(notice)

    def _render_status(self, notice: SessionNotice | None) -> None:
        controller = self._controller
        parts = [
            f"Registry: {controller.store.path}",
            f"Servers: {controller.entry_count}",
            f"Timeout: {controller.timeout}s",
        ]
        if notice is not None:
            stamp = notice.created_at.strftime("%H:%M:%S")
            parts.append(f"{stamp} {notice.message.splitlines()[0][:80]}")
        self.set_class(notice is not None and notice.severity == "error", "error")
        self.update(" | ".join(parts))


__all__ = ["StatusBar"]
