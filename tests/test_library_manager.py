"""End-to-end tests for the library manager."""

from __future__ import annotations

from typing import Iterator

import pytest
from conftest import Engine

from rosterlab.config import RosterLabConfig
from rosterlab.curation import Combinator, Comparator, FilterField, FilterRule
from rosterlab.errors import (
    ConflictError,
    EntryNotFound,
    InvalidContentError,
    NotFoundError,
    RosterScriptError,
)
from rosterlab.library import ContentKind, ContentStatus
from rosterlab.roster import EntryKind, codec
from rosterlab.service import LibraryManager


@pytest.fixture()
def manager(engine: Engine) -> Iterator[LibraryManager]:
    library = LibraryManager.from_config(RosterLabConfig(), working_dir=engine.root)
    yield library
    library.close()


def _status(manager: LibraryManager, kind: ContentKind, item_id: str) -> ContentStatus | None:
    entry = manager.current_report().get(kind, item_id)
    return entry.status if entry is not None else None


def _ids(engine: Engine, kind: EntryKind) -> list[str]:
    return [entry.item_id for entry in codec.parse(engine.read_select()).entries(kind)]


def test_disable_and_enable_round_trip(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("kfm")
    engine.write_select("[Characters]\r\nkfm\r\n")

    report = manager.disable(ContentKind.CHARACTER, "kfm")

    assert report.get(ContentKind.CHARACTER, "kfm").status is ContentStatus.DISABLED
    assert engine.read_select() == "[Characters]\r\n;kfm\r\n"
    assert len(manager.store.backups()) == 1

    manager.enable(ContentKind.CHARACTER, "kfm")
    assert engine.read_select() == "[Characters]\r\nkfm\r\n"
    assert _status(manager, ContentKind.CHARACTER, "kfm") is ContentStatus.ACTIVE


def test_edits_on_unlisted_items_raise(engine: Engine, manager: LibraryManager) -> None:
    engine.write_select("[Characters]\nkfm\n")

    with pytest.raises(EntryNotFound):
        manager.disable(ContentKind.CHARACTER, "ghost")
    with pytest.raises(InvalidContentError):
        manager.enable(ContentKind.SCREENPACK, "arcade")


def test_register_adds_unregistered_stage_in_subfolder(engine: Engine, manager: LibraryManager) -> None:
    engine.add_stage("arena", subdir="Pack")
    engine.write_select("[Characters]\n")

    report = manager.register(ContentKind.STAGE, "arena")

    assert "stages/Pack/arena.def" in engine.read_select()
    assert report.get(ContentKind.STAGE, "arena").status is ContentStatus.ACTIVE


def test_register_creates_missing_roster_script(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("kfm")

    manager.register(ContentKind.CHARACTER, "kfm")

    assert _ids(engine, EntryKind.CHARACTER) == ["kfm"]


def test_reorder(engine: Engine, manager: LibraryManager) -> None:
    for folder in ("kfm", "ryu", "suika"):
        engine.add_character(folder)
    engine.write_select("[Characters]\nkfm\nryu\nsuika\n")

    report = manager.reorder(ContentKind.CHARACTER, ["suika", "kfm"])

    assert _ids(engine, EntryKind.CHARACTER) == ["suika", "kfm", "ryu"]
    assert [entry.item_id for entry in report.of_kind(ContentKind.CHARACTER)] == ["suika", "kfm", "ryu"]


def test_rename_character_moves_folder_and_script(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("ryu")
    engine.add_character("ken")
    engine.write_select("[Characters]\nryu, stages/x.def\n")

    report = manager.rename(ContentKind.CHARACTER, "ryu", "Ryu_HD")

    assert (engine.chars / "Ryu_HD" / "ryu.def").is_file()
    assert engine.read_select() == "[Characters]\nRyu_HD, stages/x.def\n"
    assert report.get(ContentKind.CHARACTER, "Ryu_HD").status is ContentStatus.ACTIVE
    with pytest.raises(ConflictError):
        manager.rename(ContentKind.CHARACTER, "Ryu_HD", "ken")
    with pytest.raises(NotFoundError):
        manager.rename(ContentKind.CHARACTER, "ghost", "spirit")


def test_rename_stage_renames_definition_file(engine: Engine, manager: LibraryManager) -> None:
    engine.add_stage("arena", subdir="Pack")
    engine.write_select("[ExtraStages]\nstages/Pack/arena.def\n")

    manager.rename(ContentKind.STAGE, "arena", "Colosseum")

    assert (engine.stages / "Pack" / "Colosseum.def").is_file()
    assert engine.read_select() == "[ExtraStages]\nstages/Pack/Colosseum.def\n"


def test_remove_with_files_deletes_folder(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("kfm")
    engine.add_character("loose")
    engine.write_select("[Characters]\nkfm\n;kfm/kfm720.def\n")

    manager.remove(ContentKind.CHARACTER, "kfm", delete_files=True)
    report = manager.remove(ContentKind.CHARACTER, "loose", delete_files=True)

    assert engine.read_select() == "[Characters]\n"
    assert not (engine.chars / "kfm").exists()
    assert not (engine.chars / "loose").exists()
    assert report.items == []
    with pytest.raises(EntryNotFound):
        manager.remove(ContentKind.CHARACTER, "ghost")


def test_sanitize_all_rewrites_roster_script_once(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("kung fu man", def_name="kfm.def")
    engine.add_character("Ryu")
    original = engine.write_select("[Characters]\nkung fu man/kfm.def\nRyu\n").read_bytes()

    result = manager.sanitize_all()

    assert result.succeeded == [("kung fu man", "Kung_Fu_Man")]
    assert engine.read_select() == "[Characters]\nKung_Fu_Man/kfm.def\nRyu\n"
    backups = manager.store.backups()
    assert backups
    assert all(backup.read_bytes() == original for backup in backups)
    assert _status(manager, ContentKind.CHARACTER, "Kung_Fu_Man") is ContentStatus.ACTIVE


def test_sanitize_stage_folders_relocates_entries(engine: Engine, manager: LibraryManager) -> None:
    engine.add_stage("arena", subdir="old pack")
    engine.write_select("[ExtraStages]\nstages/old pack/arena.def\n")

    manager.sanitize_all(ContentKind.STAGE)

    assert (engine.stages / "Old_Pack" / "arena.def").is_file()
    assert engine.read_select() == "[ExtraStages]\nstages/Old_Pack/arena.def\n"


def test_sanitize_refuses_screenpacks(manager: LibraryManager) -> None:
    with pytest.raises(InvalidContentError):
        manager.sanitize_all(ContentKind.SCREENPACK)


def test_fix_mismatched_uses_declared_names(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("char01", name="Kung Fu Man")
    engine.write_select("[Characters]\nchar01\n")

    assert [(path.name, name) for path, name in manager.find_mismatched()] == [("char01", "Kung_Fu_Man")]
    result = manager.fix_mismatched()

    assert result.succeeded == [("char01", "Kung_Fu_Man")]
    assert engine.read_select() == "[Characters]\nKung_Fu_Man\n"
    assert manager.find_mismatched() == []


def test_fix_stage_names_replaces_placeholders(engine: Engine, manager: LibraryManager) -> None:
    dark = engine.add_stage("dark_temple", name="A")
    engine.add_stage("temple", name="Temple")

    result = manager.fix_stage_names()

    assert result.succeeded == [("A", "Dark Temple")]
    assert 'name = "Dark Temple"' in dark.read_text(encoding="utf-8")
    assert manager.fix_stage_names().succeeded == []


def test_refresh_in_background_returns_report(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("kfm")
    engine.write_select("[Characters]\nkfm\n")

    report = manager.refresh_in_background().result(timeout=10)

    assert manager.report is report
    assert report.counts()["active"] == 1
    assert manager.index.counts() == {"character": 1, "stage": 0}


def test_smart_queries_and_tags(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("kfm", author="Elecbyte")
    engine.add_character("ryu", author="Phantom")
    engine.add_stage("temple", width=640)
    engine.write_select("[Characters]\nkfm\nryu\n[ExtraStages]\nstages/temple.def\n")
    manager.refresh()
    manager.add_tag(ContentKind.CHARACTER, "ryu", "favourite")

    by_author = manager.smart([FilterRule(field=FilterField.AUTHOR, comparator=Comparator.EQUALS, value="phantom")])
    either = manager.smart(
        [
            FilterRule(field=FilterField.TAG, comparator=Comparator.CONTAINS, value="favourite"),
            FilterRule(field=FilterField.TOTAL_WIDTH, comparator=Comparator.GREATER_THAN, value="600"),
        ],
        Combinator.ANY,
    )

    assert [entry.id for entry in by_author] == ["ryu"]
    assert [entry.id for entry in either] == ["ryu", "temple"]
    assert [record.id for record in manager.search(ContentKind.CHARACTER, "kf")] == ["kfm"]


def test_collection_members_for_default_and_manual(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("kfm")
    engine.add_character("ryu")
    engine.write_select("[Characters]\nkfm\nryu\n")
    arcade = manager.collections.create("Arcade")
    arcade = manager.collections.add_character(arcade.id, "ryu")

    everyone = manager.collection_members(manager.collections.default())
    chosen = manager.collection_members(arcade)

    assert [entry.id for entry in everyone] == ["kfm", "ryu"]
    assert [entry.id for entry in chosen] == ["ryu"]


def test_corrupt_script_blocks_folder_renames(engine: Engine, manager: LibraryManager) -> None:
    engine.add_character("kung fu man", def_name="kfm.def")
    engine.add_character("char01", name="Kung Fu Man")
    engine.write_select("[Characters]\nkung fu man/kfm.def\n[Broken\n")

    with pytest.raises(RosterScriptError):
        manager.sanitize_all()
    with pytest.raises(RosterScriptError):
        manager.fix_mismatched()
    with pytest.raises(RosterScriptError):
        manager.rename(ContentKind.CHARACTER, "kung fu man", "KFM")

    assert sorted(path.name for path in engine.chars.iterdir()) == ["char01", "kung fu man"]
    assert engine.read_select() == "[Characters]\nkung fu man/kfm.def\n[Broken\n"
    assert manager.store.backups() == []
