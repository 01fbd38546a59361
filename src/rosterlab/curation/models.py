"""Collection, filter-rule and catalog models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rosterlab.library import ContentKind, ContentStatus, TagDetector

if TYPE_CHECKING:
    from rosterlab.index import LibraryIndexRecord
    from rosterlab.reconcile import ReconciledItem


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FilterField(str, Enum):
    """Item fields a smart-collection rule can test."""

    NAME = "name"
    AUTHOR = "author"
    TAG = "tag"
    INSTALLED_AT = "installed_at"
    SOURCE_GAME = "source_game"
    STYLE = "style"
    IS_HD = "is_hd"
    HAS_AI = "has_ai"
    TOTAL_WIDTH = "total_width"
    HAS_MUSIC = "has_music"
    RESOLUTION = "resolution"
    STATUS = "status"


class Comparator(str, Enum):
    """Comparison applied between a field and the rule literal."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    WITHIN_DAYS = "within_days"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class Combinator(str, Enum):
    """How rule results combine."""

    ALL = "all"
    ANY = "any"


class FilterRule(BaseModel):
    """A single ``(field, comparator, value)`` predicate."""

    id: str = Field(default_factory=_new_id)
    field: FilterField
    comparator: Comparator
    value: str = ""


class SlotKind(str, Enum):
    """What a collection roster slot holds."""

    CHARACTER = "character"
    RANDOM_SELECT = "random_select"
    EMPTY_SLOT = "empty_slot"


class GridCell(BaseModel):
    """Manual select-screen position."""

    row: int
    column: int


class RosterSlot(BaseModel):
    """One slot of a collection roster.

    Attributes:
        id: Identifier used to remove the slot.
        kind: Character, random-select placeholder or empty spacer.
        folder: Character folder for character slots.
        def_file: Optional sub-definition inside ``folder``.
        grid: Optional manual grid position.
    """

    id: str = Field(default_factory=_new_id)
    kind: SlotKind = SlotKind.CHARACTER
    folder: Optional[str] = None
    def_file: Optional[str] = None
    grid: Optional[GridCell] = None

    @classmethod
    def character(cls, folder: str, def_file: str | None = None) -> "RosterSlot":
        return cls(kind=SlotKind.CHARACTER, folder=folder, def_file=def_file)

    @classmethod
    def random_select(cls) -> "RosterSlot":
        return cls(kind=SlotKind.RANDOM_SELECT)

    @classmethod
    def empty_slot(cls) -> "RosterSlot":
        return cls(kind=SlotKind.EMPTY_SLOT)


class Collection(BaseModel):
    """A named game profile: roster, stages, screenpack and optional smart rules.

    Attributes:
        smart_rules: Rules for smart collections; None for hand-curated ones.
        combinator: How ``smart_rules`` combine.
        include_characters: Whether smart evaluation considers characters.
        include_stages: Whether smart evaluation considers stages.
    """

    id: str = Field(default_factory=_new_id)
    name: str
    icon: str = "folder"
    characters: List[RosterSlot] = Field(default_factory=list)
    stages: List[str] = Field(default_factory=list)
    screenpack_path: Optional[str] = None
    lifebars_path: Optional[str] = None
    fonts: List[str] = Field(default_factory=list)
    sounds: List[str] = Field(default_factory=list)
    is_default: bool = False
    is_active: bool = False
    smart_rules: Optional[List[FilterRule]] = None
    combinator: Combinator = Combinator.ALL
    include_characters: bool = True
    include_stages: bool = True
    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)

    @property
    def is_smart(self) -> bool:
        return self.smart_rules is not None


class CatalogEntry(BaseModel):
    """Reconciled item joined with its index record, as seen by rule evaluation."""

    model_config = ConfigDict(frozen=True)

    kind: ContentKind
    id: str
    name: str
    author: Optional[str] = None
    status: Optional[ContentStatus] = None
    installed_at: Optional[datetime] = None
    source_game: Optional[str] = None
    style: Optional[str] = None
    resolution: Optional[str] = None
    is_hd: Optional[bool] = None
    has_ai: Optional[bool] = None
    total_width: Optional[int] = None
    has_music: Optional[bool] = None
    tags: List[str] = Field(default_factory=list)

    @classmethod
    def from_sources(
        cls,
        reconciled: "ReconciledItem",
        record: "LibraryIndexRecord | None" = None,
        *,
        detector: TagDetector | None = None,
    ) -> "CatalogEntry":
        """Join a reconciled item with its index record.

        Tags are the ones inferred from the current id, name and author plus the
        custom tags stored in the index, without case-insensitive duplicates.
        """
        item = reconciled.item
        detected = (detector or TagDetector()).detect(
            reconciled.item_id, reconciled.name, reconciled.author
        )
        tags: list[str] = []
        seen: set[str] = set()
        for tag in [*detected.as_list(), *(record.tags if record else [])]:
            if tag.casefold() not in seen:
                seen.add(tag.casefold())
                tags.append(tag)

        return cls(
            kind=reconciled.kind,
            id=reconciled.item_id,
            name=reconciled.name,
            author=reconciled.author,
            status=reconciled.status,
            installed_at=record.installed_at if record else None,
            source_game=record.source_game if record else detected.source_game,
            style=record.style if record else detected.style,
            resolution=record.resolution if record else None,
            is_hd=record.is_hd if record else detected.is_hd,
            has_ai=record.has_ai if record else detected.has_ai,
            total_width=item.total_width if item else None,
            has_music=item.has_music if item else None,
            tags=tags,
        )


__all__ = [
    "FilterField",
    "Comparator",
    "Combinator",
    "FilterRule",
    "SlotKind",
    "GridCell",
    "RosterSlot",
    "Collection",
    "CatalogEntry",
]
