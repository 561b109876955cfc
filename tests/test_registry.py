"""Tests for the registry store."""

from __future__ import annotations

import tomllib
from datetime import datetime
from pathlib import Path

import pytest

from sshdeck import registry as registry_module
from sshdeck.registry import (
    ConfigCorrupt,
    DuplicateEntry,
    NotFound,
    PersistenceError,
    Registry,
    RegistryStore,
    ValidationError,
    render_document,
)

FIXED_NOW = datetime(2024, 3, 9, 14, 5, 7)


@pytest.fixture
def store(tmp_path: Path) -> RegistryStore:
    store = RegistryStore(tmp_path / "sshdeck" / "servers.toml", clock=lambda: FIXED_NOW)
    store.load()
    return store


def test_load_creates_empty_registry_when_missing(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "servers.toml"
    store = RegistryStore(path)

    result = store.load()

    assert result.categories() == ()
    assert path.exists()
    assert tomllib.loads(path.read_text()) == {"servers": {}}


def test_load_reads_categories_in_file_order(tmp_path: Path) -> None:
    path = tmp_path / "servers.toml"
    path.write_text(
        """
[servers.Work]
db1 = "alice@db.internal"
web = "deploy@web.internal"

[servers.Home]
nas = "nas.local"
"""
    )
    store = RegistryStore(path)

    store.load()

    assert store.list_categories() == ("Work", "Home")
    assert store.list_entries("Work") == (("db1", "alice@db.internal"), ("web", "deploy@web.internal"))


def test_load_rejects_invalid_toml(tmp_path: Path) -> None:
    path = tmp_path / "servers.toml"
    path.write_text("servers = [unterminated")
    store = RegistryStore(path)

    with pytest.raises(ConfigCorrupt):
        store.load()

    assert path.read_text() == "servers = [unterminated"


def test_load_rejects_wrong_shape(tmp_path: Path) -> None:
    path = tmp_path / "servers.toml"
    path.write_text('[servers.Work]\ndb1 = 42\n')
    store = RegistryStore(path)

    with pytest.raises(ConfigCorrupt):
        store.load()


def test_load_reports_unwritable_directory(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = RegistryStore(blocker / "servers.toml")

    with pytest.raises(PersistenceError):
        store.load()


def test_add_entry_then_list_entries(store: RegistryStore) -> None:
    store.add_entry("Work", "db1", "alice@db.internal")

    assert store.list_entries("Work").count(("db1", "alice@db.internal")) == 1
    reloaded = RegistryStore(store.path)
    reloaded.load()
    assert reloaded.list_entries("Work") == (("db1", "alice@db.internal"),)


def test_add_entry_accepts_host_without_user(store: RegistryStore) -> None:
    store.add_entry("Lab", "router", "192.168.1.1")

    assert store.list_entries("Lab") == (("router", "192.168.1.1"),)


@pytest.mark.parametrize(
    ("category", "name", "target"),
    [
        ("", "db1", "alice@db"),
        ("Work", "  ", "alice@db"),
        ("Work", "db1", ""),
        ("Work Stuff", "db1", "alice@db"),
        ("Work", "db1", "alice@db;rm"),
        ("Work", "db1", "-oProxyCommand"),
        ("Work", "db1", "alice@@db"),
        (" Work", "db1", "alice@db"),
        ("Work", "db1 ", "alice@db"),
        ("Work", "db1", "alice@db\n"),
    ],
)
def test_add_entry_validates_inputs(store: RegistryStore, category: str, name: str, target: str) -> None:
    with pytest.raises(ValidationError):
        store.add_entry(category, name, target)

    assert store.list_categories() == ()


def test_padded_arguments_are_rejected_not_trimmed(store: RegistryStore) -> None:
    store.add_entry("Work", "db1", "alice@db")

    with pytest.raises(ValidationError):
        store.add_entry(" Work ", "db2 ", "alice@db")
    with pytest.raises(NotFound):
        store.delete_entry(" Work ", "db1 ")

    assert store.list_entries("Work") == (("db1", "alice@db"),)


def test_add_entry_rejects_duplicates(store: RegistryStore) -> None:
    store.add_entry("Work", "db1", "alice@db.internal")
    before = store.path.read_text()

    with pytest.raises(DuplicateEntry):
        store.add_entry("Work", "db1", "bob@other.internal")

    assert store.list_entries("Work") == (("db1", "alice@db.internal"),)
    assert store.path.read_text() == before


def test_same_connection_string_allowed_under_different_names(store: RegistryStore) -> None:
    store.add_entry("Work", "db1", "alice@db.internal")
    store.add_entry("Work", "db-primary", "alice@db.internal")

    assert len(store.list_entries("Work")) == 2


def test_delete_missing_entry_raises(store: RegistryStore) -> None:
    store.add_entry("Work", "db1", "alice@db.internal")

    with pytest.raises(NotFound):
        store.delete_entry("Work", "db2")
    with pytest.raises(NotFound):
        store.delete_entry("Home", "db1")

    assert store.list_entries("Work") == (("db1", "alice@db.internal"),)


def test_delete_removes_category_only_when_empty(store: RegistryStore) -> None:
    store.add_entry("Work", "db1", "alice@db.internal")
    store.add_entry("Work", "web", "deploy@web.internal")

    store.delete_entry("Work", "db1")
    assert store.list_categories() == ("Work",)

    store.delete_entry("Work", "web")
    assert store.list_categories() == ()


def test_list_entries_unknown_category(store: RegistryStore) -> None:
    with pytest.raises(NotFound):
        store.list_entries("Nope")


def test_end_to_end_add_then_delete(store: RegistryStore) -> None:
    store.add_entry("Work", "db1", "alice@db.internal")

    assert store.list_categories() == ("Work",)
    assert store.list_entries("Work") == (("db1", "alice@db.internal"),)

    store.delete_entry("Work", "db1")

    assert store.list_categories() == ()


def test_round_trip_preserves_structure_and_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "servers.toml"
    path.write_text(
        """
schema = 2
owner = "ops"

[servers.Work]
db1 = "alice@db.internal"
"db.replica" = "alice@replica.internal"

[servers."team.blue"]
jump = "bastion"

[ui]
theme = "dark"
recent = ["db1", "jump"]
"""
    )
    original = tomllib.loads(path.read_text())
    store = RegistryStore(path)

    store.save(store.load())

    assert tomllib.loads(path.read_text()) == original


def test_mutations_keep_unknown_keys(store: RegistryStore) -> None:
    store.path.write_text('schema = 2\n\n[servers]\n')
    store.load()

    store.add_entry("Work", "db1", "alice@db.internal")

    data = tomllib.loads(store.path.read_text())
    assert data["schema"] == 2
    assert data["servers"] == {"Work": {"db1": "alice@db.internal"}}


def test_backup_uses_timestamped_sibling(store: RegistryStore) -> None:
    target = store.backup()

    assert target is not None
    assert target.name == "servers.toml.bak.20240309140507"
    assert target.parent == store.path.parent
    assert target.read_text() == store.path.read_text()


def test_backup_never_overwrites_existing_backup(store: RegistryStore) -> None:
    first = store.backup()
    second = store.backup()

    assert first is not None and second is not None
    assert first != second
    assert second.name == "servers.toml.bak.20240309140507-1"


def test_backup_is_noop_when_file_missing(tmp_path: Path) -> None:
    store = RegistryStore(tmp_path / "servers.toml")

    assert store.backup() is None


def test_mutation_writes_backup_of_previous_state(store: RegistryStore) -> None:
    before = store.path.read_text()

    store.add_entry("Work", "db1", "alice@db.internal")

    backups = sorted(store.path.parent.glob("servers.toml.bak.*"))
    assert len(backups) == 1
    assert backups[0].read_text() == before


def test_failed_save_leaves_registry_unchanged(store: RegistryStore, monkeypatch: pytest.MonkeyPatch) -> None:
    store.add_entry("Work", "db1", "alice@db.internal")
    before = store.path.read_text()

    def _broken_replace(src: str, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(registry_module.os, "replace", _broken_replace)

    with pytest.raises(PersistenceError):
        store.add_entry("Work", "web", "deploy@web.internal")

    assert store.list_entries("Work") == (("db1", "alice@db.internal"),)
    assert store.path.read_text() == before
    assert not list(store.path.parent.glob(".servers.toml.*.tmp"))


def test_registry_copies_do_not_share_state() -> None:
    base = Registry()

    updated = base.with_entry("Work", "db1", "alice@db.internal")

    assert base.categories() == ()
    assert updated.all_entries() == (("Work", "db1", "alice@db.internal"),)
    assert updated.without_entry("Work", "db1").categories() == ()
    assert updated.connection_strings() == {"alice@db.internal"}


def test_render_document_quotes_keys_and_escapes_strings() -> None:
    document = {
        "note": 'say "hi"\n',
        "servers": {"a.b": {"x@y": "user@host"}},
    }

    rendered = render_document(document)

    assert tomllib.loads(rendered) == document
    assert '[servers."a.b"]' in rendered
