"""Session controller: the menu flow over the registry, scanner and launcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Protocol, Sequence, TypeVar

from .config import DEFAULT_TIMEOUT, AppConfig
from .history import HistoryScanner
from .launcher import ConnectionLauncher, Failure, LaunchResult, Success
from .navigator import Back, Cancelled, MenuNavigator, MenuOutcome, Selected
from .registry import (
    PersistenceError,
    RegistryError,
    RegistryStore,
    ValidationError,
    validate_connection_string,
    validate_token,
)

LOG = logging.getLogger(__name__)

T = TypeVar("T")

SCAN_HISTORY = "Scan shell history"
CONNECT_NEW = "Connect to a new host"
UTILITY_MENU = "Utility menu"
EXIT = "Cancel and exit"
MAIN_SENTINELS = (SCAN_HISTORY, CONNECT_NEW, UTILITY_MENU, EXIT)

ADD_SERVER = "Add a server"
DELETE_SERVER = "Delete a server"
UTILITY_BACK = "Back"
UTILITY_ITEMS = (ADD_SERVER, DELETE_SERVER, UTILITY_BACK)

NOTICE_HISTORY = 50

SessionListener = Callable[["SessionNotice"], None]
Validator = Callable[[Mapping[str, str]], "str | None"]


@dataclass(frozen=True, slots=True)
class PromptField:
    """One line of input requested from the user."""

    key: str
    label: str
    placeholder: str = ""
    value: str = ""


CATEGORY_FIELD = PromptField("category", "Category", "e.g. Work")
NAME_FIELD = PromptField("name", "Name", "e.g. db1")
CONNECTION_FIELD = PromptField("connection_string", "Connection", "user@hostname")
ENTRY_FIELDS = (CATEGORY_FIELD, NAME_FIELD, CONNECTION_FIELD)
TIMEOUT_FIELD = PromptField("timeout", "Connect timeout (seconds)", str(DEFAULT_TIMEOUT))

TIMEOUT_PROBLEM = "Timeout must be a positive whole number of seconds."


def parse_timeout(raw: str) -> int:
    """Parse a positive whole number of seconds; raises ``ValueError`` otherwise."""

    seconds = int(raw.strip())
    if seconds <= 0:
        raise ValueError(f"timeout must be positive, got {seconds}")
    return seconds


@dataclass(frozen=True, slots=True)
class SessionNotice:
    """Message surfaced to the user (and mirrored to the log)."""

    message: str
    severity: str = "information"
    created_at: datetime = field(default_factory=datetime.now)


class MainChoiceKind(str, Enum):
    CATEGORY = "category"
    SCAN_HISTORY = "scan_history"
    CONNECT_NEW = "connect_new"
    UTILITY = "utility"
    EXIT = "exit"


@dataclass(frozen=True, slots=True)
class MainChoice:
    kind: MainChoiceKind
    category: str | None = None


_SENTINEL_KINDS = {
    SCAN_HISTORY: MainChoiceKind.SCAN_HISTORY,
    CONNECT_NEW: MainChoiceKind.CONNECT_NEW,
    UTILITY_MENU: MainChoiceKind.UTILITY,
    EXIT: MainChoiceKind.EXIT,
}


class SessionUI(Protocol):
    """Interaction surface the controller drives (the Textual app in practice)."""

    async def choose(self, navigator: MenuNavigator) -> MenuOutcome: ...

    async def prompt(
        self,
        title: str,
        fields: Sequence[PromptField],
        validator: Validator | None = None,
    ) -> dict[str, str] | None: ...

    async def confirm(self, question: str) -> bool: ...

    def run_external(self, action: Callable[[], T]) -> T: ...


class SessionController:
    """Composes the registry store, history scanner and launcher into menus."""

    def __init__(
        self,
        store: RegistryStore,
        *,
        config: AppConfig,
        launcher: ConnectionLauncher | None = None,
        scanner: HistoryScanner | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._launcher = launcher or ConnectionLauncher(
            ssh_binary=config.ssh_binary,
            timeout=config.ssh_timeout,
        )
        self._scanner = scanner or HistoryScanner(config.history_file)
        self._listeners: set[SessionListener] = set()
        self._notices: list[SessionNotice] = []

    @property
    def store(self) -> RegistryStore:
        return self._store

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def launcher(self) -> ConnectionLauncher:
        return self._launcher

    @property
    def timeout(self) -> int:
        return self._launcher.timeout

    @property
    def notices(self) -> tuple[SessionNotice, ...]:
        """Most recent notices, oldest first."""

        return tuple(self._notices)

    @property
    def entry_count(self) -> int:
        return len(self._store.all_entries())

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to notices; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def notify(self, message: str, *, severity: str = "information") -> None:
        if severity == "error":
            LOG.error(message)
        elif severity == "warning":
            LOG.warning(message)
        else:
            LOG.info(message)
        notice = SessionNotice(message, severity)
        self._notices.append(notice)
        del self._notices[:-NOTICE_HISTORY]
        for listener in tuple(self._listeners):
            listener(notice)

    # ------------------------------------------------------------------ menus
    def main_menu_labels(self) -> tuple[str, ...]:
        return self._store.list_categories() + MAIN_SENTINELS

    def resolve_main_choice(self, index: int) -> MainChoice:
        labels = self.main_menu_labels()
        categories = self._store.list_categories()
        if index < len(categories):
            return MainChoice(MainChoiceKind.CATEGORY, categories[index])
        return MainChoice(_SENTINEL_KINDS[labels[index]])

    def entry_labels(self, category: str) -> tuple[str, ...]:
        return tuple(name for name, _ in self._store.list_entries(category))

    def deletion_targets(self) -> tuple[tuple[str, str], ...]:
        return tuple((category, name) for category, name, _ in self._store.all_entries())

    @staticmethod
    def deletion_label(category: str, name: str) -> str:
        return f"{category} / {name}"

    # ---------------------------------------------------------------- actions
    def check_entry(self, values: Mapping[str, str]) -> str | None:
        """Return a message describing the first invalid field, if any."""

        try:
            if "category" in values:
                validate_token(values["category"], "Category")
            if "name" in values:
                validate_token(values["name"], "Name")
            if "connection_string" in values:
                validate_connection_string(values["connection_string"])
        except ValidationError as exc:
            return str(exc)
        return None

    def check_timeout(self, values: Mapping[str, str]) -> str | None:
        try:
            parse_timeout(values.get("timeout", ""))
        except ValueError:
            return TIMEOUT_PROBLEM
        return None

    def add_entry(self, category: str, name: str, connection_string: str) -> bool:
        try:
            self._store.add_entry(category, name, connection_string)
        except RegistryError as exc:
            self._report_error(exc)
            return False
        self.notify(f"Saved {category} / {name} ({connection_string}).")
        return True

    def delete_entry(self, category: str, name: str) -> bool:
        try:
            self._store.delete_entry(category, name)
        except RegistryError as exc:
            self._report_error(exc)
            return False
        self.notify(f"Deleted {category} / {name}.")
        return True

    def backup(self) -> Path | None:
        try:
            target = self._store.backup()
        except PersistenceError as exc:
            self._report_error(exc)
            return None
        if target is None:
            self.notify("Nothing to back up yet.", severity="warning")
        else:
            self.notify(f"Backup written to {target}.")
        return target

    def launch(self, connection_string: str) -> LaunchResult:
        result = self._launcher.connect(connection_string)
        if isinstance(result, Success):
            self.notify(f"Session with {connection_string} ended.")
        else:
            self.notify(str(result.as_error()), severity="error")
        return result

    def launch_entry(self, category: str, name: str) -> LaunchResult | None:
        try:
            target = dict(self._store.list_entries(category))[name]
        except RegistryError as exc:
            self._report_error(exc)
            return None
        except KeyError:
            self.notify(f"'{name}' not found in category '{category}'.", severity="warning")
            return None
        return self.launch(target)

    def history_candidates(self) -> tuple[str, ...]:
        """Targets from shell history that are not saved yet."""

        try:
            candidates = self._scanner.new_candidates(self._store.registry)
        except OSError as exc:
            self.notify(f"Cannot read {self._scanner.history_file}: {exc}", severity="error")
            return ()
        if not candidates:
            self.notify(f"No new ssh targets found in {self._scanner.history_file}.")
        return candidates

    def set_timeout(self, seconds: int) -> None:
        self._config = self._config.with_timeout(seconds)
        self._launcher.timeout = seconds
        self.notify(f"Connect timeout set to {seconds} seconds for this session.")

    # ------------------------------------------------------------------- loop
    async def run(self, ui: SessionUI) -> None:
        """Show the main menu until the user exits or cancels."""

        while True:
            labels = self.main_menu_labels()
            outcome = await ui.choose(MenuNavigator(labels, title="Select a server group"))
            if not isinstance(outcome, Selected):
                break
            choice = self.resolve_main_choice(outcome.index)
            if choice.kind is MainChoiceKind.EXIT:
                break
            if choice.kind is MainChoiceKind.CATEGORY:
                keep_going = await self._browse_category(ui, choice.category or "")
            elif choice.kind is MainChoiceKind.SCAN_HISTORY:
                keep_going = await self._scan_history(ui)
            elif choice.kind is MainChoiceKind.CONNECT_NEW:
                keep_going = await self._connect_new(ui)
            else:
                keep_going = await self._utility_menu(ui)
            if not keep_going:
                break
        LOG.info("Session finished")

    async def _browse_category(self, ui: SessionUI, category: str) -> bool:
        try:
            entries = self._store.list_entries(category)
        except RegistryError as exc:
            self._report_error(exc)
            return True
        navigator = MenuNavigator(
            [name for name, _ in entries],
            title=f"{category}: select a server",
            allow_back=True,
        )
        outcome = await ui.choose(navigator)
        if isinstance(outcome, Cancelled):
            return False
        if isinstance(outcome, Selected):
            _, target = entries[outcome.index]
            ui.run_external(lambda: self.launch(target))
        return True

    async def _utility_menu(self, ui: SessionUI) -> bool:
        while True:
            outcome = await ui.choose(MenuNavigator(UTILITY_ITEMS, title="Utility menu", allow_back=True))
            if isinstance(outcome, Cancelled):
                return False
            if isinstance(outcome, Back) or UTILITY_ITEMS[outcome.index] == UTILITY_BACK:
                return True
            if UTILITY_ITEMS[outcome.index] == ADD_SERVER:
                await self._add_server(ui)
            elif not await self._delete_server(ui):
                return False

    async def _add_server(self, ui: SessionUI) -> None:
        values = await ui.prompt(ADD_SERVER, ENTRY_FIELDS, self.check_entry)
        if values is None:
            self.notify("Add cancelled.")
            return
        self.add_entry(values["category"], values["name"], values["connection_string"])

    async def _delete_server(self, ui: SessionUI) -> bool:
        targets = self.deletion_targets()
        if not targets:
            self.notify("No servers saved yet.", severity="warning")
            return True
        labels = [self.deletion_label(category, name) for category, name in targets]
        outcome = await ui.choose(MenuNavigator(labels, title=DELETE_SERVER, allow_back=True))
        if isinstance(outcome, Cancelled):
            return False
        if isinstance(outcome, Selected):
            category, name = targets[outcome.index]
            self.delete_entry(category, name)
        return True

    async def _scan_history(self, ui: SessionUI) -> bool:
        candidates = self.history_candidates()
        for candidate in candidates:
            self.notify(f"Attempting to connect to {candidate}...")
            result = ui.run_external(lambda target=candidate: self.launch(target))
            if isinstance(result, Failure):
                continue
            await self._offer_save(ui, candidate)
        if candidates:
            self.notify("Finished scanning shell history.")
        return True

    async def _connect_new(self, ui: SessionUI) -> bool:
        values = await ui.prompt(CONNECT_NEW, (CONNECTION_FIELD,), self.check_entry)
        if values is None:
            return True
        target = values["connection_string"].strip()
        result = ui.run_external(lambda: self.launch(target))
        if isinstance(result, Success):
            await self._offer_save(ui, target)
        return True

    async def _offer_save(self, ui: SessionUI, connection_string: str) -> None:
        if not await ui.confirm(f"Connection to {connection_string} succeeded. Save it?"):
            self.notify(f"{connection_string} not saved.")
            return

        def _validate(values: Mapping[str, str]) -> str | None:
            return self.check_entry({**values, "connection_string": connection_string})

        values = await ui.prompt(
            f"Save {connection_string}",
            (CATEGORY_FIELD, NAME_FIELD),
            _validate,
        )
        if values is None:
            self.notify(f"{connection_string} not saved.")
            return
        self.add_entry(values["category"], values["name"], connection_string)

    def _report_error(self, exc: Exception) -> None:
        severity = "error" if isinstance(exc, PersistenceError) else "warning"
        self.notify(str(exc), severity=severity)


__all__ = [
    "CONNECTION_FIELD",
    "ENTRY_FIELDS",
    "MAIN_SENTINELS",
    "MainChoice",
    "MainChoiceKind",
    "PromptField",
    "SessionController",
    "SessionNotice",
    "SessionUI",
    "TIMEOUT_FIELD",
    "TIMEOUT_PROBLEM",
    "UTILITY_ITEMS",
    "parse_timeout",
]
