"""Duplicate and outdated-version detection tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from rosterlab.library import ContentItem, ContentKind
from rosterlab.reconcile import DuplicateDetector, DuplicateReason, normalized_name
from rosterlab.reconcile.duplicates import VersionInfo, author_key

STAMP = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _item(
    item_id: str,
    name: str | None = None,
    *,
    kind: ContentKind = ContentKind.CHARACTER,
    author: str = "Elecbyte",
    **extra,
) -> ContentItem:
    extra.setdefault("modified_at", STAMP)
    return ContentItem(
        id=item_id,
        kind=kind,
        name=name or item_id,
        author=author,
        path=Path("/engine/chars") / item_id,
        **extra,
    )


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Ryu_v1.2", "ryu"),
        ("Kung-Fu_Man", "kung fu man"),
        ("Ken ver2", "ken"),
        ("Sakura_2", "sakura"),
        ("  Guile  ", "guile"),
    ],
)
def test_normalized_name(name: str, expected: str) -> None:
    assert normalized_name(name) == expected


def test_anonymous_authors_have_no_key() -> None:
    assert author_key("N/A") is None
    assert author_key(" Unknown ") is None
    assert author_key("Phantom.of.the.Server") == "phantom.of.the.server"


def test_exact_names_group_per_author() -> None:
    detector = DuplicateDetector()
    items = [
        _item("ryu", "Ryu"),
        _item("ryu_v2", "Ryu v2"),
        _item("ryu_capcom", "Ryu", author="Capcom"),
    ]

    groups = detector.find_duplicates(items)

    assert [(group.reason, [item.id for item in group.items]) for group in groups] == [
        (DuplicateReason.EXACT_NAME, ["ryu", "ryu_v2"])
    ]
    assert groups[0].primary.id == "ryu"
    assert groups[0].affects_status


def test_similar_names_need_compatible_authors() -> None:
    detector = DuplicateDetector()
    items = [
        _item("terry", "Terry Bogard"),
        _item("terry_alt", "Terry Bogart", author="Unknown"),
        _item("terry_other", "Terry Bogarf", author="SNK"),
    ]

    groups = detector.find_duplicates(items)

    assert len(groups) == 1
    assert groups[0].reason is DuplicateReason.SIMILAR_NAME
    assert [item.id for item in groups[0].items] == ["terry", "terry_alt"]
    assert not groups[0].affects_status


def test_short_names_are_never_fuzzy_matches() -> None:
    detector = DuplicateDetector()

    assert not detector.similar("Ryu", "Ryo")
    assert detector.similar("Chun-Li EX", "Chun-Li EX2")


def test_identical_definitions_group_by_hash(tmp_path: Path) -> None:
    for name in ("a.def", "b.def"):
        (tmp_path / name).write_text("[Info]\nname = Same\n", encoding="utf-8")
    items = [
        _item("first", "Akuma", def_path=tmp_path / "a.def"),
        _item("second", "Gouki", def_path=tmp_path / "b.def"),
    ]

    groups = DuplicateDetector().find_duplicates(items)

    assert [(group.reason, [item.id for item in group.items]) for group in groups] == [
        (DuplicateReason.DEF_HASH, ["first", "second"])
    ]


def test_stages_ignore_authors() -> None:
    items = [
        _item("temple", "Temple", kind=ContentKind.STAGE, author="A"),
        _item("temple_hd", "temple", kind=ContentKind.STAGE, author="B"),
    ]

    groups = DuplicateDetector().find_duplicates(items)

    assert [group.reason for group in groups] == [DuplicateReason.EXACT_NAME]


def test_outdated_characters_compare_version_dates() -> None:
    items = [
        _item("kfm_old", "Kung Fu Man", version_date="01/02/2010"),
        _item("kfm_new", "Kung Fu Man", version_date="2019-06-30"),
        _item("kfm_undated", "Kung Fu Man"),
    ]

    outdated = DuplicateDetector().find_outdated(items)

    assert [(entry.item.id, entry.newer.id) for entry in outdated] == [("kfm_old", "kfm_new")]


def test_outdated_characters_fall_back_to_version_numbers() -> None:
    items = [
        _item("ryu_a", "Ryu v1.10"),
        _item("ryu_b", "Ryu v1.9"),
    ]

    outdated = DuplicateDetector().find_outdated(items)

    assert [(entry.item.id, entry.newer.id) for entry in outdated] == [("ryu_b", "ryu_a")]


def test_outdated_stages_compare_modification_time() -> None:
    items = [
        _item("arena", "Arena", kind=ContentKind.STAGE, modified_at=STAMP),
        _item("arena_2", "Arena", kind=ContentKind.STAGE, modified_at=STAMP + timedelta(days=1)),
    ]

    outdated = DuplicateDetector().find_outdated(items)

    assert [(entry.item.id, entry.newer.id) for entry in outdated] == [("arena", "arena_2")]


def test_equal_versions_are_not_outdated() -> None:
    items = [_item("a", "Ken", version_date="2020-01-01"), _item("b", "Ken", version_date="2020-01-01")]

    assert DuplicateDetector().find_outdated(items) == []
    assert VersionInfo(version="1.0").is_newer_than(VersionInfo()) is None
