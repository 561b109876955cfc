"""Persistent category -> name -> connection string registry."""

from __future__ import annotations

import logging
import math
import os
import re
import shutil
import tempfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Callable, Iterable, Mapping

import pydantic
import tomllib
from pydantic import BaseModel, ConfigDict, Field

LOG = logging.getLogger(__name__)

BACKUP_TIMESTAMP = "%Y%m%d%H%M%S"
_ALLOWED = re.compile(r"[A-Za-z0-9@._-]+")
_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


class RegistryError(RuntimeError):
    """Base error for registry operations."""


class ValidationError(RegistryError):
    """Raised when a category, name or connection string is malformed."""


class DuplicateEntry(RegistryError):
    """Raised when adding a (category, name) pair that already exists."""


class NotFound(RegistryError):
    """Raised when a category or entry does not exist."""


class ConfigCorrupt(RegistryError):
    """Raised when the persisted registry cannot be parsed."""


class PersistenceError(RegistryError):
    """Raised when the registry or a backup cannot be written."""


def validate_token(value: str, field: str) -> str:
    """Return ``value`` untouched, or raise ``ValidationError``; nothing is trimmed."""

    token = value or ""
    if not token.strip():
        raise ValidationError(f"{field} must not be empty.")
    if not _ALLOWED.fullmatch(token):
        raise ValidationError(
            f"{field} '{token}' may only contain letters, digits, '@', '.', '_' and '-'."
        )
    return token


def validate_connection_string(value: str) -> str:
    token = validate_token(value, "Connection string")
    if token.startswith("-"):
        raise ValidationError(f"Connection string '{token}' must not start with '-'.")
    if token.startswith("@") or token.endswith("@") or token.count("@") > 1:
        raise ValidationError(f"Connection string '{token}' must look like [user@]host.")
    return token


class Registry(BaseModel):
    """In-memory registry; unknown top-level document keys are kept as extras."""

    model_config = ConfigDict(extra="allow")

    servers: dict[str, dict[str, str]] = Field(default_factory=dict)

    def categories(self) -> tuple[str, ...]:
        return tuple(self.servers)

    def entries(self, category: str) -> tuple[tuple[str, str], ...]:
        try:
            bucket = self.servers[category]
        except KeyError:
            raise NotFound(f"Category '{category}' not found.") from None
        return tuple(bucket.items())

    def all_entries(self) -> tuple[tuple[str, str, str], ...]:
        return tuple(
            (category, name, target)
            for category, bucket in self.servers.items()
            for name, target in bucket.items()
        )

    def connection_strings(self) -> set[str]:
        return {target for _, _, target in self.all_entries()}

    def has_entry(self, category: str, name: str) -> bool:
        return name in self.servers.get(category, {})

    def with_entry(self, category: str, name: str, connection_string: str) -> Registry:
        """Return a copy with the entry inserted (category created if needed)."""

        servers = self._copy_servers()
        servers.setdefault(category, {})[name] = connection_string
        return self.model_copy(update={"servers": servers})

    def without_entry(self, category: str, name: str) -> Registry:
        """Return a copy with the entry removed; empty categories disappear."""

        servers = self._copy_servers()
        bucket = servers[category]
        del bucket[name]
        if not bucket:
            del servers[category]
        return self.model_copy(update={"servers": servers})

    def to_document(self) -> dict[str, object]:
        document: dict[str, object] = dict(self.model_extra or {})
        document["servers"] = self._copy_servers()
        return document

    def _copy_servers(self) -> dict[str, dict[str, str]]:
        return {category: dict(bucket) for category, bucket in self.servers.items()}


class RegistryStore:
    """Loads, mutates and atomically persists the registry file."""

    def __init__(self, path: Path, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self._path = Path(path)
        self._clock = clock
        self._registry = Registry()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def registry(self) -> Registry:
        """Registry as of the last successful load or save."""

        return self._registry

    def load(self) -> Registry:
        """Read the registry, creating an empty file on first run."""

        try:
            with self._path.open("rb") as handle:
                raw = tomllib.load(handle)
        except FileNotFoundError:
            LOG.info("Registry %s not found; creating an empty one", self._path)
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise PersistenceError(f"Cannot create config directory {self._path.parent}: {exc}") from exc
            self.save(Registry())
            return self._registry
        except tomllib.TOMLDecodeError as exc:
            raise ConfigCorrupt(f"{self._path} is not valid TOML: {exc}") from exc
        except OSError as exc:
            raise PersistenceError(f"Cannot read {self._path}: {exc}") from exc
        self._registry = _parse_document(raw, self._path)
        LOG.info(
            "Loaded %d categories from %s", len(self._registry.servers), self._path
        )
        return self._registry

    def save(self, registry: Registry) -> None:
        """Write ``registry`` atomically; on failure nothing in memory changes."""

        content = render_document(registry.to_document())
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write {self._path}: {exc}") from exc
        self._registry = registry

    def backup(self) -> Path | None:
        """Copy the persisted file to ``<name>.bak.<timestamp>``."""

        if not self._path.exists():
            LOG.warning("Skipping backup: %s does not exist yet", self._path)
            return None
        stamp = self._clock().strftime(BACKUP_TIMESTAMP)
        target = self._path.with_name(f"{self._path.name}.bak.{stamp}")
        counter = 1
        while target.exists():
            target = self._path.with_name(f"{self._path.name}.bak.{stamp}-{counter}")
            counter += 1
        try:
            shutil.copy2(self._path, target)
        except OSError as exc:
            raise PersistenceError(f"Cannot back up {self._path} to {target}: {exc}") from exc
        LOG.info("Backed up %s to %s", self._path, target)
        return target

    def add_entry(self, category: str, name: str, connection_string: str) -> Registry:
        category = validate_token(category, "Category")
        name = validate_token(name, "Name")
        connection_string = validate_connection_string(connection_string)
        if self._registry.has_entry(category, name):
            raise DuplicateEntry(f"'{name}' already exists in category '{category}'.")
        updated = self._registry.with_entry(category, name, connection_string)
        self.backup()
        self.save(updated)
        LOG.info("Added %s/%s -> %s", category, name, connection_string)
        return updated

    def delete_entry(self, category: str, name: str) -> Registry:
        if not self._registry.has_entry(category, name):
            raise NotFound(f"'{name}' not found in category '{category}'.")
        updated = self._registry.without_entry(category, name)
        self.backup()
        self.save(updated)
        LOG.info("Deleted %s/%s", category, name)
        return updated

    def list_categories(self) -> tuple[str, ...]:
        return self._registry.categories()

    def list_entries(self, category: str) -> tuple[tuple[str, str], ...]:
        return self._registry.entries(category)

    def all_entries(self) -> tuple[tuple[str, str, str], ...]:
        return self._registry.all_entries()

    def connection_strings(self) -> set[str]:
        return self._registry.connection_strings()


def _parse_document(raw: Mapping[str, object], path: Path) -> Registry:
    try:
        registry = Registry.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise ConfigCorrupt(f"{path} does not contain a valid server registry: {exc}") from exc
    for category, bucket in registry.servers.items():
        if not bucket:
            LOG.warning("Ignoring empty category '%s' in %s", category, path)
    servers = {category: bucket for category, bucket in registry.servers.items() if bucket}
    return registry.model_copy(update={"servers": servers})


def render_document(document: Mapping[str, object]) -> str:
    """Serialize a TOML document; tables follow the scalars of their parent."""

    lines: list[str] = []
    _emit_table(lines, (), document)
    while lines and not lines[0]:
        lines.pop(0)
    return "\n".join(lines) + "\n"


def _emit_table(lines: list[str], path: tuple[str, ...], table: Mapping[str, object]) -> None:
    scalars = [(key, value) for key, value in table.items() if not _is_table(value) and not _is_table_array(value)]
    tables = [(key, value) for key, value in table.items() if _is_table(value)]
    arrays = [(key, value) for key, value in table.items() if _is_table_array(value)]
    if path and (scalars or not (tables or arrays)):
        lines.append("")
        lines.append(f"[{_dotted(path)}]")
    for key, value in scalars:
        lines.append(f"{_format_key(key)} = {_format_value(value)}")
    for key, value in tables:
        _emit_table(lines, (*path, key), value)  # type: ignore[arg-type]
    for key, items in arrays:
        for item in items:  # type: ignore[union-attr]
            lines.append("")
            lines.append(f"[[{_dotted((*path, key))}]]")
            _emit_array_item(lines, (*path, key), item)


def _emit_array_item(lines: list[str], path: tuple[str, ...], item: Mapping[str, object]) -> None:
    for key, value in item.items():
        if not _is_table(value) and not _is_table_array(value):
            lines.append(f"{_format_key(key)} = {_format_value(value)}")
    for key, value in item.items():
        if _is_table(value):
            _emit_table(lines, (*path, key), value)  # type: ignore[arg-type]
        elif _is_table_array(value):
            for child in value:  # type: ignore[union-attr]
                lines.append("")
                lines.append(f"[[{_dotted((*path, key))}]]")
                _emit_array_item(lines, (*path, key), child)


def _is_table(value: object) -> bool:
    return isinstance(value, Mapping)


def _is_table_array(value: object) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(item, Mapping) for item in value)


def _dotted(path: Iterable[str]) -> str:
    return ".".join(_format_key(part) for part in path)


def _format_key(key: str) -> str:
    if _BARE_KEY.match(key):
        return key
    return _quote(key)


def _format_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "nan"
        if math.isinf(value):
            return "inf" if value > 0 else "-inf"
        return repr(value)
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Mapping):
        inner = ", ".join(f"{_format_key(key)} = {_format_value(item)}" for key, item in value.items())
        return f"{{ {inner} }}" if inner else "{}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_format_value(item) for item in value) + "]"
    raise TypeError(f"Cannot serialize {type(value).__name__} to TOML")


def _quote(text: str) -> str:
    out: list[str] = ['"']
    for char in text:
        if char == '"':
            out.append('\\"')
        elif char == "\\":
            out.append("\\\\")
        elif char == "\n":
            out.append("\\n")
        elif char == "\t":
            out.append("\\t")
        elif char == "\r":
            out.append("\\r")
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            out.append(f"\\u{ord(char):04x}")
        else:
            out.append(char)
    out.append('"')
    return "".join(out)


__all__ = [
    "ConfigCorrupt",
    "DuplicateEntry",
    "NotFound",
    "PersistenceError",
    "Registry",
    "RegistryError",
    "RegistryStore",
    "ValidationError",
    "render_document",
    "validate_connection_string",
    "validate_token",
]
