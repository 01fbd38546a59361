"""Records stored in the library index."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from rosterlab.library import ContentItem, ContentKind, TagSet
from rosterlab.library.models import UNKNOWN_AUTHOR


class LibraryIndexRecord(BaseModel):
    """Cached projection of a ContentItem plus bookkeeping fields.

    Attributes:
        id: Stable identifier shared with ContentItem.
        kind: Character or stage.
        installed_at: First time the item was indexed.
        updated_at: Last time any cached field changed.
        source_game: Lazily inferred or user-assigned source game.
        style: Lazily inferred or user-assigned style tag.
        resolution: Optional resolution label.
        is_hd: Whether the item is flagged as high resolution.
        has_ai: Whether the item is flagged as shipping custom AI.
        tags: Custom tags attached by the user.
    """

    id: str
    kind: ContentKind
    name: str
    author: str = UNKNOWN_AUTHOR
    version_date: str = ""
    sprite_file: Optional[str] = None
    path: str
    def_path: Optional[str] = None
    modified_at: Optional[datetime] = None
    valid: bool = True
    readable: bool = True
    error: Optional[str] = None
    total_width: Optional[int] = None
    has_music: Optional[bool] = None
    music_file: Optional[str] = None
    installed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    source_game: Optional[str] = None
    style: Optional[str] = None
    resolution: Optional[str] = None
    is_hd: Optional[bool] = None
    has_ai: Optional[bool] = None
    tags: list[str] = Field(default_factory=list)

    @classmethod
    def from_item(cls, item: ContentItem, tags: TagSet | None = None) -> "LibraryIndexRecord":
        """Project a scanned item, optionally seeding classification fields."""
        record = cls(
            id=item.id,
            kind=item.kind,
            name=item.display_name,
            author=item.author,
            version_date=item.version_date,
            sprite_file=item.sprite_file,
            path=str(item.path),
            def_path=str(item.def_path) if item.def_path else None,
            modified_at=item.modified_at,
            valid=item.valid,
            readable=item.readable,
            error=item.error,
            total_width=item.total_width,
            has_music=item.has_music,
            music_file=item.music_file,
        )
        if tags is not None:
            record.source_game = tags.source_game
            record.style = tags.style
            record.is_hd = tags.is_hd
            record.has_ai = tags.has_ai
        return record


@dataclass(slots=True)
class ReindexSummary:
    """Counts produced by a full reindex."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    degraded: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "deleted": self.deleted,
            "degraded": self.degraded,
        }


__all__ = ["LibraryIndexRecord", "ReindexSummary"]
