"""Resource-reference validation tests."""

from __future__ import annotations

from pathlib import Path

from conftest import Engine

from rosterlab.library import LibraryScanner
from rosterlab.reconcile import ContentValidator, Severity, apply_fixes
from rosterlab.reconcile.validator import check_filename


def test_complete_character_has_no_issues(engine: Engine) -> None:
    folder = engine.add_character("kfm")

    result = ContentValidator(engine.root).validate_character(folder, folder / "kfm.def")

    assert result.issues == []
    assert result.is_valid


def test_missing_animation_file_is_an_error(engine: Engine) -> None:
    folder = engine.add_character("kfm")
    (folder / "kfm.air").unlink()

    result = ContentValidator(engine.root).validate_character(folder, folder / "kfm.def")

    assert result.has_errors
    assert [issue.message for issue in result.issues] == ["Anim file not found: 'kfm.air'"]
    assert not result.issues[0].is_fixable


def test_missing_required_key_is_reported(engine: Engine) -> None:
    folder = engine.chars / "bare"
    folder.mkdir()
    (folder / "bare.def").write_text("[Files]\nsprite = bare.sff\n", encoding="utf-8")
    (folder / "bare.sff").write_bytes(b"")

    result = ContentValidator(engine.root).validate_character(folder, folder / "bare.def")

    messages = [issue.message for issue in result.issues]
    assert messages == [
        "Missing required 'anim' reference in [Files] section",
        "Missing required 'cmd' reference in [Files] section",
        "Missing required 'cns' reference in [Files] section",
    ]


def test_missing_optional_sound_is_only_a_warning(engine: Engine) -> None:
    folder = engine.add_character("kfm")
    definition = folder / "kfm.def"
    definition.write_text(definition.read_text(encoding="utf-8") + "sound = kfm.snd\n", encoding="utf-8")

    result = ContentValidator(engine.root).validate_character(folder, definition)

    assert result.is_valid
    assert [issue.severity for issue in result.issues] == [Severity.WARNING]


def test_case_mismatch_carries_a_fix(engine: Engine) -> None:
    folder = engine.add_character("kfm")
    (folder / "kfm.sff").rename(folder / "KFM.sff")

    result = ContentValidator(engine.root).validate_character(folder, folder / "kfm.def")

    assert result.has_errors
    issue = result.issues[0]
    assert "case mismatch" in issue.message
    assert issue.fix is not None
    assert (issue.fix.old, issue.fix.new) == ("kfm.sff", "KFM.sff")


def test_apply_fixes_rewrites_only_the_reference_value(engine: Engine) -> None:
    folder = engine.add_character("kfm")
    (folder / "kfm.sff").rename(folder / "KFM.sff")
    definition = folder / "kfm.def"
    definition.write_text(
        definition.read_text(encoding="utf-8") + "; kfm.sff is the sprite archive\n", encoding="utf-8"
    )
    validator = ContentValidator(engine.root)

    outcome = apply_fixes([validator.validate_character(folder, definition)])

    assert outcome.succeeded == ["kfm.def: kfm.sff -> KFM.sff"]
    text = definition.read_text(encoding="utf-8")
    assert "sprite = KFM.sff" in text
    assert "; kfm.sff is the sprite archive" in text
    assert validator.validate_character(folder, definition).issues == []


def test_root_relative_references_resolve(engine: Engine) -> None:
    folder = engine.add_character("kfm")
    shared = engine.root / "shared"
    shared.mkdir()
    (shared / "common.snd").write_bytes(b"")
    definition = folder / "kfm.def"
    definition.write_text(
        definition.read_text(encoding="utf-8") + "sound = shared/common.snd\n", encoding="utf-8"
    )

    assert ContentValidator(engine.root).validate_character(folder, definition).issues == []


def test_stage_without_sprite_archive_is_broken(engine: Engine) -> None:
    definition = engine.add_stage("temple")
    (engine.stages / "temple.sff").unlink()

    result = ContentValidator(engine.root).validate_stage(definition)

    assert result.has_errors
    assert result.issues[0].message == "Sprite file (.sff) not found: 'temple.sff'"


def test_validate_all_skips_clean_items(engine: Engine) -> None:
    engine.add_character("kfm")
    broken = engine.add_character("ryu")
    (broken / "ryu.cns").unlink()
    engine.add_stage("temple")

    results = ContentValidator(engine.root).validate_all(LibraryScanner(engine.layout).scan().items)

    assert [(result.kind.value, result.item_id) for result in results] == [("character", "ryu")]


def test_check_filename_flags_awkward_names() -> None:
    severities = [issue.severity for issue in check_filename("Kung Fu Man's!")]

    assert severities == [Severity.WARNING, Severity.INFO, Severity.WARNING]
    assert check_filename("Kung_Fu_Man") == []


def test_unreadable_definition_is_an_error(tmp_path: Path) -> None:
    result = ContentValidator().validate_stage(tmp_path / "missing.def")

    assert result.has_errors
    assert result.issues[0].message == "Cannot read .def file"
