"""Textual application and command line entry point for sshdeck."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Callable, Sequence, TypeVar

from textual import on, work
from textual.app import App, ComposeResult, SuspendNotSupported
from textual.containers import Container
from textual.screen import Screen
from textual.widgets import Footer, Header

from . import __version__
from .config import AppConfig, configure_logging, load_config
from .navigator import Cancelled, MenuNavigator, MenuOutcome
from .providers import ServerConnectProvider, SessionActionProvider
from .registry import ConfigCorrupt, PersistenceError, RegistryStore
from .session import (
    TIMEOUT_FIELD,
    TIMEOUT_PROBLEM,
    PromptField,
    SessionController,
    SessionNotice,
    Validator,
    parse_timeout,
)
from .widgets import ConfirmScreen, MenuView, PromptScreen, StatusBar

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class MenuScreen(Screen[MenuOutcome]):
    """Full screen menu; dismissed with the navigator's outcome."""

    def __init__(self, navigator: MenuNavigator, controller: SessionController) -> None:
        super().__init__()
        self._navigator = navigator
        self._controller = controller

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Container(MenuView(self._navigator, id="menu"), id="main-column")
        yield StatusBar(self._controller)
        yield Footer()

    def on_mount(self) -> None:
        self.query_one(MenuView).focus()

    @on(MenuView.Chosen)
    def _handle_chosen(self, event: MenuView.Chosen) -> None:
        event.stop()
        self.dismiss(event.outcome)


class SshDeckApp(App[int]):
    """Interactive session: browse categories, launch ssh, manage entries."""

    TITLE = "sshdeck"
    COMMANDS = App.COMMANDS | {ServerConnectProvider, SessionActionProvider}
    CSS = """
    #main-column {
        height: 1fr;
        padding: 1 2;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__()
        self._controller = controller
        self._unsubscribe: Callable[[], None] | None = None
        self.failure: str | None = None
        self.sub_title = str(controller.store.path)

    @property
    def controller(self) -> SessionController:
        """Expose the session controller for providers and tests."""

        return self._controller

    def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_notice)
        self.run_session()

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    @work(exclusive=True, group="session")
    async def run_session(self) -> None:
        try:
            await self._controller.run(self)
        except Exception as exc:
            LOG.exception("Session aborted")
            self.failure = (
                f"sshdeck stopped unexpectedly: {exc}. "
                f"See {self._controller.config.log_file} for details."
            )
            self.exit(return_code=1, message=self.failure)
            return
        self.exit(0)

    # ------------------------------------------------------------ SessionUI
    async def choose(self, navigator: MenuNavigator) -> MenuOutcome:
        outcome = await self.push_screen_wait(MenuScreen(navigator, self._controller))
        return outcome if outcome is not None else Cancelled()

    async def prompt(
        self,
        title: str,
        fields: Sequence[PromptField],
        validator: Validator | None = None,
    ) -> dict[str, str] | None:
        return await self.push_screen_wait(PromptScreen(title, fields, validator))

    async def confirm(self, question: str) -> bool:
        return bool(await self.push_screen_wait(ConfirmScreen(question)))

    def run_external(self, action: Callable[[], T]) -> T:
        """Run ``action`` with the terminal handed back to the user."""

        try:
            with self.suspend():
                return action()
        except SuspendNotSupported:
            LOG.debug("Terminal suspension unavailable; running in place")
            return action()

    # ------------------------------------------------------------ commands
    def connect_entry(self, category: str, name: str) -> None:
        self.run_external(lambda: self._controller.launch_entry(category, name))

    def backup_registry(self) -> None:
        self._controller.backup()

    def change_timeout(self) -> None:
        """Ask for a new connect timeout and apply it to this session."""

        field = replace(TIMEOUT_FIELD, value=str(self._controller.timeout))

        def _apply(values: dict[str, str] | None) -> None:
            if values is not None:
                self._controller.set_timeout(parse_timeout(values["timeout"]))

        self.push_screen(
            PromptScreen("Set connect timeout", (field,), self._controller.check_timeout),
            _apply,
        )

    def _handle_notice(self, notice: SessionNotice) -> None:
        try:
            self.notify(notice.message, severity=notice.severity)  # type: ignore[arg-type]
        except Exception:
            LOG.exception("Failed to display notification")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sshdeck",
        description="Organize, launch and discover SSH connection shortcuts.",
    )
    parser.add_argument("--version", action="store_true", help="Print the version and exit")
    parser.add_argument(
        "--set-timeout",
        action="store_true",
        help="Prompt for a new connect timeout, report it and exit",
    )
    parser.add_argument("--timeout", type=int, default=None, help="Connect timeout for this session (seconds)")
    parser.add_argument("--config-dir", default=None, help="Directory holding servers.toml and the log")
    parser.add_argument("--history-file", default=None, help="Shell history file to scan")
    parser.add_argument("--backup", action="store_true", help="Back up the server registry and exit")
    parser.add_argument("--log-level", default="INFO", help="Python logging level (default: INFO)")
    return parser.parse_args(argv)


def prompt_timeout(config: AppConfig, input_fn: Callable[[str], str] | None = None) -> int:
    """Interactively pick a connect timeout; returns the process exit status."""

    read = input_fn or input
    raw = read(f"Enter the SSH connect timeout in seconds [{config.ssh_timeout}]: ").strip()
    if not raw:
        print(f"SSH connect timeout unchanged: {config.ssh_timeout} seconds.")
        return 0
    try:
        updated = config.with_timeout(parse_timeout(raw))
    except ValueError:
        print(TIMEOUT_PROBLEM, file=sys.stderr)
        return 2
    print(f"SSH connect timeout set to {updated.ssh_timeout} seconds for this session.")
    print(f"Pass --timeout {updated.ssh_timeout} to use it when launching sshdeck.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line interface; returns the exit status."""

    args = parse_args(argv)
    if args.version:
        print(f"sshdeck {__version__}")
        return 0
    try:
        config = load_config(
            config_dir=args.config_dir,
            history_file=args.history_file,
            ssh_timeout=args.timeout,
        )
    except ValueError as exc:
        print(f"Invalid settings: {exc}", file=sys.stderr)
        return 2
    if args.set_timeout:
        return prompt_timeout(config)
    try:
        configure_logging(config, str(args.log_level).upper())
    except (OSError, ValueError) as exc:
        print(f"Cannot set up logging in {config.config_dir}: {exc}", file=sys.stderr)
        return 1
    store = RegistryStore(config.registry_file)
    try:
        store.load()
    except (ConfigCorrupt, PersistenceError) as exc:
        LOG.error("Cannot open server registry: %s", exc)
        print(f"Cannot open server registry: {exc}", file=sys.stderr)
        return 1
    controller = SessionController(store, config=config)
    if args.backup:
        target = controller.backup()
        if target is None:
            print("No backup written.", file=sys.stderr)
            return 1
        print(f"Backup written to {target}")
        return 0
    app = SshDeckApp(controller)
    app.run()
    return app.return_code or 0


if __name__ == "__main__":
    sys.exit(main())
