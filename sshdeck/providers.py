"""Command palette providers for quick connections and session actions."""

from __future__ import annotations

from typing import Iterator

from textual.command import DiscoveryHit, Hit, Hits, Provider
from textual.types import IgnoreReturnCallbackType

from .session import SessionController


class _SessionProvider(Provider):
    """Base for providers that need the running app's session controller."""

    @property
    def controller(self) -> SessionController | None:
        controller = getattr(self.app, "controller", None)
        if isinstance(controller, SessionController):
            return controller
        return None

    def _app_callback(self, method: str, *args: str) -> IgnoreReturnCallbackType:
        """Call ``app.<method>(*args)`` if the app offers it."""

        async def _run() -> None:
            handler = getattr(self.app, method, None)
            if handler is not None:
                handler(*args)

        return _run


class ServerConnectProvider(_SessionProvider):
    """Expose every saved server to the command palette."""

    async def search(self, query: str) -> Hits:
        matcher = self.matcher(query)
        for category, name, target in self._servers():
            label = f"{category} / {name}"
            # The connection string is searchable but only the label is shown.
            score = matcher.match(f"{label} {target}")
            if score > 0:
                yield Hit(
                    score=score,
                    match_display=f"Connect to {matcher.highlight(label)}",
                    command=self._app_callback("connect_entry", category, name),
                    help=target,
                )

    async def discover(self) -> Hits:
        for category, name, target in self._servers():
            yield DiscoveryHit(
                display=f"Connect to {category} / {name}",
                command=self._app_callback("connect_entry", category, name),
                help=target,
            )

    def _servers(self) -> Iterator[tuple[str, str, str]]:
        controller = self.controller
        if controller is not None:
            yield from controller.store.all_entries()


class SessionActionProvider(_SessionProvider):
    """Registry backup and connect timeout commands."""

    ACTIONS: tuple[tuple[str, str, str], ...] = (
        ("Back up server registry", "Copy the registry file to a timestamped backup.", "backup_registry"),
        ("Set connect timeout", "Change the ssh connect timeout for this session.", "change_timeout"),
    )

    async def search(self, query: str) -> Hits:
        if self.controller is None:
            return
        matcher = self.matcher(query)
        for label, help_text, method in self.ACTIONS:
            score = matcher.match(label)
            if score > 0:
                yield Hit(
                    score=score,
                    match_display=matcher.highlight(label),
                    command=self._app_callback(method),
                    help=help_text,
                )

    async def discover(self) -> Hits:
        if self.controller is None:
            return
        for label, help_text, method in self.ACTIONS:
            yield DiscoveryHit(display=label, command=self._app_callback(method), help=help_text)


__all__ = ["ServerConnectProvider", "SessionActionProvider"]
