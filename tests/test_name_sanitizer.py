"""Folder-name sanitizer tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from rosterlab.config.models import NamingSettings
from rosterlab.naming import (
    FALLBACK_NAME,
    NameSanitizer,
    needs_sanitization,
    sanitize,
    stage_needs_better_name,
    suggest_stage_name,
    unique_name,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("kung fu man", "Kung_Fu_Man"),
        ("KFM (edit)!!", "KFM_Edit"),
        ("__evil--ryu__", "Evil-Ryu"),
        ("ryu2", "Ryu2"),
        ("sf3 ryu", "Sf3_Ryu"),
        ("!!!", FALLBACK_NAME),
        ("Caf\u00e9 Ryu", "Caf_Ryu"),
        ("\u00dfa", "A"),
    ],
)
def test_sanitize_examples(raw: str, expected: str) -> None:
    assert sanitize(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["kung fu man", "KFM (edit)!!", "a--b__c", "Ryu", "\u00dfa", "Caf\u00e9", "\u0130stanbul", "a1B2c"],
)
def test_sanitize_is_idempotent(raw: str) -> None:
    once = sanitize(raw)

    assert sanitize(once) == once
    assert needs_sanitization(once) is False


def test_unique_name_appends_counter(tmp_path: Path) -> None:
    (tmp_path / "Ryu").mkdir()
    (tmp_path / "Ryu_2").mkdir()

    assert unique_name(tmp_path, "Ryu") == "Ryu_3"
    assert unique_name(tmp_path, "Ryu", ignore=tmp_path / "Ryu") == "Ryu"


def test_sanitize_all_reports_renames(tmp_path: Path) -> None:
    (tmp_path / "kung fu man").mkdir()
    (tmp_path / "Ryu").mkdir()
    seen: list[tuple[str, str]] = []

    result = NameSanitizer().sanitize_all(tmp_path, on_renamed=lambda old, new: seen.append((old, new)))

    assert result.succeeded == [("kung fu man", "Kung_Fu_Man")]
    assert seen == result.succeeded
    assert (tmp_path / "Kung_Fu_Man").is_dir()
    assert result.ok


def test_sanitize_all_avoids_collisions(tmp_path: Path) -> None:
    (tmp_path / "Kung_Fu_Man").mkdir()
    (tmp_path / "kung fu man").mkdir()

    result = NameSanitizer().sanitize_all(tmp_path)

    assert result.succeeded == [("kung fu man", "Kung_Fu_Man_2")]


def _character(folder: Path, name: str) -> None:
    folder.mkdir()
    (folder / f"{folder.name}.def").write_text(
        f'[Info]\nname = "{name}"\n[Files]\nsprite = x.sff\n', encoding="utf-8"
    )


def test_detect_mismatch_only_flags_generic_folders(tmp_path: Path) -> None:
    _character(tmp_path / "char01", "Kung Fu Man")
    _character(tmp_path / "MyRyu", "Ryu")
    _character(tmp_path / "new", "AB")
    sanitizer = NameSanitizer()

    assert sanitizer.detect_mismatch(tmp_path / "char01") == "Kung_Fu_Man"
    assert sanitizer.detect_mismatch(tmp_path / "MyRyu") is None
    assert sanitizer.detect_mismatch(tmp_path / "new") is None


def test_generic_prefixes_come_from_settings(tmp_path: Path) -> None:
    _character(tmp_path / "draft_a", "Kung Fu Man")

    default = NameSanitizer()
    custom = NameSanitizer(NamingSettings(generic_folder_prefixes=["draft"]))

    assert default.detect_mismatch(tmp_path / "draft_a") is None
    assert custom.detect_mismatch(tmp_path / "draft_a") == "Kung_Fu_Man"


def test_fix_all_mismatched_renames_folders(tmp_path: Path) -> None:
    _character(tmp_path / "1st", "Kung Fu Man")

    result = NameSanitizer().fix_all_mismatched(tmp_path)

    assert result.succeeded == [("1st", "Kung_Fu_Man")]
    assert (tmp_path / "Kung_Fu_Man" / "1st.def").is_file()


@pytest.mark.parametrize(
    ("name", "expected"),
    [("A", True), ("XYZ", True), ("ab", True), ("Temple", False), ("Abc", False)],
)
def test_stage_needs_better_name(name: str, expected: bool) -> None:
    assert stage_needs_better_name(name) is expected


def test_suggest_stage_name() -> None:
    assert suggest_stage_name("dark_temple-NIGHT") == "Dark Temple Night"
