"""Roster-script store tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from rosterlab.errors import EntryNotFound, NotFoundError
from rosterlab.roster import EntryKind, RosterScriptStore, codec


def _store(tmp_path: Path, keep: int = 20) -> RosterScriptStore:
    return RosterScriptStore(tmp_path / "data" / "select.def", tmp_path / "backups", keep=keep)


def test_load_missing_script_raises(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        _store(tmp_path).load()


def test_transaction_backs_up_before_writing(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.script_path.parent.mkdir(parents=True)
    store.script_path.write_bytes(b"[Characters]\r\nkfm\r\n")

    store.transaction(lambda model: codec.disable(model, EntryKind.CHARACTER, "kfm"))

    assert store.script_path.read_bytes() == b"[Characters]\r\n;kfm\r\n"
    backups = store.backups()
    assert len(backups) == 1
    assert backups[0].read_bytes() == b"[Characters]\r\nkfm\r\n"


def test_transaction_without_changes_writes_nothing(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.script_path.parent.mkdir(parents=True)
    store.script_path.write_text("[Characters]\n;kfm\n", encoding="utf-8")

    store.transaction(lambda model: codec.disable(model, EntryKind.CHARACTER, "kfm"))

    assert store.backups() == []


def test_failed_edit_leaves_script_untouched(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.script_path.parent.mkdir(parents=True)
    store.script_path.write_text("[Characters]\nkfm\n", encoding="utf-8")

    with pytest.raises(EntryNotFound):
        store.transaction(lambda model: codec.remove(model, EntryKind.CHARACTER, "ghost"))

    assert store.script_path.read_text(encoding="utf-8") == "[Characters]\nkfm\n"
    assert store.backups() == []


def test_write_leaves_no_temporary_files(tmp_path: Path) -> None:
    store = _store(tmp_path)

    store.write(codec.parse("[Characters]\nkfm\n"))

    assert [path.name for path in store.script_path.parent.iterdir()] == ["select.def"]


def test_transaction_can_create_missing_script(tmp_path: Path) -> None:
    store = _store(tmp_path)

    store.transaction(
        lambda model: codec.add(model, EntryKind.CHARACTER, "kfm"), create_missing=True
    )

    assert store.script_path.read_text(encoding="utf-8") == "[Characters]\nkfm\n"
    assert store.backups() == []


def test_backups_are_pruned_to_keep_limit(tmp_path: Path) -> None:
    store = _store(tmp_path, keep=2)
    store.script_path.parent.mkdir(parents=True)
    store.script_path.write_text("[Characters]\n", encoding="utf-8")
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    for offset in range(4):
        store.backup(now=start + timedelta(seconds=offset))

    assert len(store.backups()) == 2


def test_backups_with_same_timestamp_do_not_collide(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.script_path.parent.mkdir(parents=True)
    store.script_path.write_text("[Characters]\n", encoding="utf-8")
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    first = store.backup(now=now)
    second = store.backup(now=now)

    assert first != second
    assert len(store.backups()) == 2


def test_backup_without_script_returns_none(tmp_path: Path) -> None:
    assert _store(tmp_path).backup() is None
