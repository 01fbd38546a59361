"""Find duplicate and outdated copies of the same content.

Items are grouped in three passes, each working on what the previous passes
left ungrouped: identical normalized names, similar names (Levenshtein distance
below a fraction of the longer name) and byte-identical definition files.
Characters only group when their authors agree.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from rosterlab.library import UNKNOWN_AUTHOR, ContentItem, ContentKind

LOGGER = logging.getLogger(__name__)

_VERSION_MARKERS = [
    re.compile(pattern)
    for pattern in (r"v\d+\.\d+", r"v\d+", r"ver\d+", r"version\d+", r"_\d+\.\d+", r"_\d+$")
]
_VERSION_NUMBER = re.compile(r"v?(\d+\.?\d*)", re.IGNORECASE)
_DATE_FORMATS = ("%m/%d/%Y", "%m-%d-%Y", "%Y/%m/%d", "%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")
_ANONYMOUS_AUTHORS = {"", "unknown", "n/a", "na"}


class DuplicateReason(str, Enum):
    EXACT_NAME = "exact_name"
    SIMILAR_NAME = "similar_name"
    DEF_HASH = "def_hash"


@dataclass(slots=True)
class DuplicateGroup:
    """Items believed to be copies of one another.

    Attributes:
        kind: Kind shared by every member.
        reason: Which pass grouped them.
        items: Members, the one to keep first.
    """

    kind: ContentKind
    reason: DuplicateReason
    items: list[ContentItem] = field(default_factory=list)

    @property
    def primary(self) -> ContentItem | None:
        return self.items[0] if self.items else None

    @property
    def duplicates(self) -> list[ContentItem]:
        return self.items[1:]

    @property
    def affects_status(self) -> bool:
        """Fuzzy matches are advisory; exact names and identical files are not."""
        return self.reason is not DuplicateReason.SIMILAR_NAME


@dataclass(slots=True, frozen=True)
class VersionInfo:
    version: Optional[str] = None
    date: Optional[datetime] = None

    def is_newer_than(self, other: "VersionInfo") -> bool | None:
        """Compare dates first, then dotted version numbers; None when undecidable."""
        if self.date is not None and other.date is not None:
            return self.date > other.date
        if self.version is not None and other.version is not None:
            return _compare_versions(self.version, other.version) > 0
        return None


@dataclass(slots=True)
class OutdatedItem:
    item: ContentItem
    newer: ContentItem
    version: VersionInfo
    newer_version: VersionInfo


def normalized_name(name: str) -> str:
    """Lowercase ``name`` and strip version markers and separators.

    ``"Ryu_v1.2"`` and ``"Ryu_2"`` both normalize to ``"ryu"``.
    """
    text = name.lower()
    for pattern in _VERSION_MARKERS:
        text = pattern.sub("", text)
    text = text.replace("_", " ").replace("-", " ")
    return " ".join(text.split())


def author_key(author: str | None) -> str | None:
    """Return a comparable author, or None for anonymous placeholders."""
    normalized = (author or "").strip().lower()
    if normalized in _ANONYMOUS_AUTHORS or normalized == UNKNOWN_AUTHOR.lower():
        return None
    return normalized


def version_info(item: ContentItem) -> VersionInfo | None:
    """Extract a comparable version from a character's version date and name."""
    raw = item.version_date.strip()
    parsed = None
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt)
            break
        except ValueError:
            continue
    match = _VERSION_NUMBER.search(f"{item.display_name} {raw}")
    version = match.group(1) if match else None
    if parsed is None and version is None:
        return None
    return VersionInfo(version=version, date=parsed)


def _compare_versions(left: str, right: str) -> int:
    def parts(value: str) -> list[int]:
        return [int(part) for part in value.split(".") if part.isdigit()]

    first, second = parts(left), parts(right)
    width = max(len(first), len(second))
    first += [0] * (width - len(first))
    second += [0] * (width - len(second))
    for a, b in zip(first, second):
        if a != b:
            return a - b
    return 0


def _file_hash(path: Path | None) -> str | None:
    if path is None:
        return None
    try:
        return hashlib.sha256(path.read_bytes()).hexdigest()
    except OSError as exc:
        LOGGER.debug("Could not hash %s: %s", path, exc)
        return None


class DuplicateDetector:
    """Group duplicate items and spot outdated versions.

    Args:
        similarity: Maximum edit distance, as a fraction of the longer
            normalized name, for two names to count as similar.
        min_length: Names must be longer than this to be compared fuzzily.
    """

    def __init__(self, similarity: float = 0.2, min_length: int = 5) -> None:
        self.similarity = similarity
        self.min_length = min_length

    def find_duplicates(self, items: Iterable[ContentItem]) -> list[DuplicateGroup]:
        """Return duplicate groups for every kind present in ``items``."""
        by_kind: dict[ContentKind, list[ContentItem]] = {}
        for item in items:
            by_kind.setdefault(item.kind, []).append(item)
        groups: list[DuplicateGroup] = []
        for kind in ContentKind:
            members = sorted(by_kind.get(kind, []), key=lambda item: (item.id.casefold(), str(item.path)))
            if len(members) > 1:
                groups.extend(self._groups_for_kind(kind, members))
        return groups

    def similar(self, first: str, second: str) -> bool:
        left, right = normalized_name(first), normalized_name(second)
        longest = max(len(left), len(right))
        if longest <= self.min_length:
            return False
        return Levenshtein.distance(left, right) / longest < self.similarity

    def find_outdated(self, items: Iterable[ContentItem]) -> list[OutdatedItem]:
        """Return items superseded by a newer copy with the same normalized name.

        Characters compare their declared version date or version number;
        stages compare the modification time of their definition file.
        """
        by_name: dict[tuple[ContentKind, str], list[ContentItem]] = {}
        for item in items:
            if item.kind is ContentKind.SCREENPACK:
                continue
            name = normalized_name(item.display_name)
            if name:
                by_name.setdefault((item.kind, name), []).append(item)

        outdated: list[OutdatedItem] = []
        for (kind, _), members in sorted(by_name.items(), key=lambda pair: pair[0][1]):
            if len(members) < 2:
                continue
            if kind is ContentKind.CHARACTER:
                versioned = [(item, info) for item in members if (info := version_info(item)) is not None]
            else:
                versioned = [(item, VersionInfo(date=item.modified_at)) for item in members]
            if len(versioned) < 2:
                continue
            newest, newest_info = versioned[0]
            for item, info in versioned[1:]:
                if info.is_newer_than(newest_info):
                    newest, newest_info = item, info
            for item, info in versioned:
                if item is not newest and newest_info.is_newer_than(info):
                    outdated.append(OutdatedItem(item, newest, info, newest_info))
        return outdated

    # Internal helpers -------------------------------------------------

    def _groups_for_kind(self, kind: ContentKind, members: Sequence[ContentItem]) -> list[DuplicateGroup]:
        groups: list[DuplicateGroup] = []
        grouped: set[int] = set()

        exact: dict[tuple[str, str | None], list[ContentItem]] = {}
        for item in members:
            name = normalized_name(item.display_name)
            if not name:
                continue
            author = author_key(item.author) if kind is ContentKind.CHARACTER else None
            exact.setdefault((name, author), []).append(item)
        for same in exact.values():
            if len(same) > 1:
                groups.append(DuplicateGroup(kind, DuplicateReason.EXACT_NAME, list(same)))
                grouped.update(id(item) for item in same)

        remaining = [item for item in members if id(item) not in grouped]
        for index, item in enumerate(remaining):
            if id(item) in grouped:
                continue
            similar = [item]
            known = author_key(item.author) if kind is ContentKind.CHARACTER else None
            for other in remaining[index + 1 :]:
                if id(other) in grouped or not self.similar(item.display_name, other.display_name):
                    continue
                if kind is ContentKind.CHARACTER:
                    # At most one known author per group; anonymous copies join any group.
                    other_author = author_key(other.author)
                    if known is not None and other_author is not None and other_author != known:
                        continue
                    known = known or other_author
                similar.append(other)
            if len(similar) > 1:
                groups.append(DuplicateGroup(kind, DuplicateReason.SIMILAR_NAME, similar))
                grouped.update(id(entry) for entry in similar)

        hashed: dict[str, list[ContentItem]] = {}
        for item in members:
            if id(item) in grouped:
                continue
            digest = _file_hash(item.def_path)
            if digest is not None:
                hashed.setdefault(digest, []).append(item)
        for same in hashed.values():
            if len(same) > 1:
                groups.append(DuplicateGroup(kind, DuplicateReason.DEF_HASH, list(same)))
        return groups


__all__ = [
    "DuplicateDetector",
    "DuplicateGroup",
    "DuplicateReason",
    "OutdatedItem",
    "VersionInfo",
    "author_key",
    "normalized_name",
    "version_info",
]
