"""Library index tests."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from rosterlab.batch import CancelToken
from rosterlab.errors import NotFoundError, OperationCancelled
from rosterlab.index import LibraryIndex, LibraryIndexRecord
from rosterlab.library import ContentItem, ContentKind

STAMP = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _item(item_id: str, name: str | None = None, *, kind: ContentKind = ContentKind.CHARACTER, **extra) -> ContentItem:
    return ContentItem(
        id=item_id,
        kind=kind,
        name=name or item_id,
        path=Path("/engine/chars") / item_id,
        modified_at=STAMP,
        **extra,
    )


@pytest.fixture()
def index(tmp_path: Path):
    library_index = LibraryIndex(tmp_path / "index" / "library.db")
    yield library_index
    library_index.close()


def test_upsert_reports_inserted_unchanged_and_updated(index: LibraryIndex) -> None:
    record = LibraryIndexRecord.from_item(_item("kfm", "Kung Fu Man"))

    assert index.upsert(record, now=STAMP) == "inserted"
    assert index.upsert(record, now=STAMP + timedelta(hours=1)) == "unchanged"

    renamed = LibraryIndexRecord.from_item(_item("kfm", "KFM Classic"))
    assert index.upsert(renamed, now=STAMP + timedelta(hours=2)) == "updated"

    stored = index.get(ContentKind.CHARACTER, "kfm")
    assert stored is not None
    assert stored.name == "KFM Classic"
    assert stored.installed_at == STAMP
    assert stored.updated_at == STAMP + timedelta(hours=2)


def test_search_matches_name_or_author_case_insensitively(index: LibraryIndex) -> None:
    index.reindex(
        [
            _item("ryu", "Ryu", author="Phantom.of.the.Server"),
            _item("kfm", "Kung Fu Man", author="Elecbyte"),
            _item("pct", "100% Ryu", author="Someone"),
        ],
        now=STAMP,
    )

    assert [record.id for record in index.search(ContentKind.CHARACTER, "RYU")] == ["pct", "ryu"]
    assert [record.id for record in index.search(ContentKind.CHARACTER, "elecbyte")] == ["kfm"]
    assert [record.id for record in index.search(ContentKind.CHARACTER, "%")] == ["pct"]
    assert len(index.search(ContentKind.CHARACTER, "  ")) == 3


def test_reindex_mirrors_scan_and_deletes_stale_rows(index: LibraryIndex) -> None:
    index.reindex([_item("kfm"), _item("ryu"), _item("temple", kind=ContentKind.STAGE)], now=STAMP)
    index.add_tag(ContentKind.CHARACTER, "ryu", "favourite")

    summary = index.reindex([_item("kfm"), _item("temple", kind=ContentKind.STAGE)], now=STAMP)

    assert summary.as_dict() == {
        "inserted": 0,
        "updated": 0,
        "unchanged": 2,
        "deleted": 1,
        "degraded": 0,
    }
    assert index.get(ContentKind.CHARACTER, "ryu") is None
    assert index.snapshot()["custom_tags"] == []
    assert index.counts() == {"character": 1, "stage": 1}


def test_reindexing_the_same_scan_twice_is_a_no_op(index: LibraryIndex) -> None:
    items = [_item("kfm", "Kung Fu Man"), _item("ryu"), _item("temple", kind=ContentKind.STAGE)]
    index.reindex(items, now=STAMP)
    first = index.snapshot()

    summary = index.reindex(items, now=STAMP + timedelta(days=1))

    assert summary.unchanged == 3
    assert index.snapshot() == first


def test_reindex_counts_degraded_items(index: LibraryIndex) -> None:
    summary = index.reindex([_item("broken", valid=False, error="No definition")], now=STAMP)

    assert summary.inserted == 1
    assert summary.degraded == 1


def test_cancelled_reindex_leaves_index_untouched(index: LibraryIndex) -> None:
    index.reindex([_item("kfm")], now=STAMP)
    before = index.snapshot()
    token = CancelToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        index.reindex([_item("ryu")], cancel=token)

    assert index.snapshot() == before


def test_reindex_seeds_but_never_overwrites_classification(index: LibraryIndex) -> None:
    index.reindex([_item("kof_iori", "Iori (KOF HD)")], now=STAMP)
    seeded = index.get(ContentKind.CHARACTER, "kof_iori")
    assert seeded is not None
    assert seeded.source_game == "KOF"
    assert seeded.is_hd is True

    index.set_classification(ContentKind.CHARACTER, "kof_iori", source_game="Custom", style="POTS Style")
    index.reindex([_item("kof_iori", "Iori (KOF HD)")], now=STAMP)

    kept = index.get(ContentKind.CHARACTER, "kof_iori")
    assert kept is not None
    assert kept.source_game == "Custom"
    assert kept.style == "POTS Style"


def test_set_classification_rejects_unknown_fields_and_ids(index: LibraryIndex) -> None:
    index.reindex([_item("kfm")], now=STAMP)

    with pytest.raises(ValueError):
        index.set_classification(ContentKind.CHARACTER, "kfm", name="Other")
    with pytest.raises(NotFoundError):
        index.set_classification(ContentKind.CHARACTER, "ghost", style="POTS Style")


def test_custom_tags_round_trip(index: LibraryIndex) -> None:
    index.reindex([_item("kfm")], now=STAMP)

    index.add_tag(ContentKind.CHARACTER, "kfm", " mascot ")
    index.add_tag(ContentKind.CHARACTER, "kfm", "mascot")
    index.add_tag(ContentKind.CHARACTER, "kfm", "classic")

    assert index.tags(ContentKind.CHARACTER, "kfm") == ["classic", "mascot"]
    record = index.get(ContentKind.CHARACTER, "kfm")
    assert record is not None
    assert record.tags == ["classic", "mascot"]

    index.remove_tag(ContentKind.CHARACTER, "kfm", "classic")
    assert index.tags(ContentKind.CHARACTER, "kfm") == ["mascot"]
    with pytest.raises(NotFoundError):
        index.add_tag(ContentKind.CHARACTER, "ghost", "mascot")


def test_index_survives_reopening(tmp_path: Path) -> None:
    path = tmp_path / "library.db"
    first = LibraryIndex(path)
    first.reindex([_item("kfm")], now=STAMP)
    first.close()

    second = LibraryIndex(path)
    try:
        assert [record.id for record in second.all(ContentKind.CHARACTER)] == ["kfm"]
    finally:
        second.close()


def test_concurrent_reader_never_sees_a_partial_reindex(index: LibraryIndex) -> None:
    index.reindex([_item("kfm")], now=STAMP)
    old = frozenset({"kfm"})
    new = frozenset(f"char{number:03d}" for number in range(300))
    seen: list[frozenset[str]] = []
    errors: list[Exception] = []
    started = threading.Event()
    done = threading.Event()

    def read() -> None:
        try:
            while not done.is_set():
                seen.append(frozenset(record.id for record in index.all(ContentKind.CHARACTER)))
                started.set()
        except Exception as exc:
            errors.append(exc)
        finally:
            started.set()

    reader = threading.Thread(target=read)
    reader.start()
    assert started.wait(timeout=5)
    try:
        index.reindex([_item(item_id) for item_id in sorted(new)], now=STAMP)
    finally:
        done.set()
        reader.join(timeout=10)

    assert errors == []
    assert seen
    assert set(seen) <= {old, new}
    assert frozenset(record.id for record in index.all(ContentKind.CHARACTER)) == new
