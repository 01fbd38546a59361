"""Content models produced by library scans."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from rosterlab.config.models import LibrarySettings


class ContentKind(str, Enum):
    """Kinds of installable content."""

    CHARACTER = "character"
    STAGE = "stage"
    SCREENPACK = "screenpack"


class ContentStatus(str, Enum):
    """Reconciled state of a library item."""

    ACTIVE = "active"
    UNREGISTERED = "unregistered"
    MISSING = "missing"
    BROKEN = "broken"
    DUPLICATE = "duplicate"
    DISABLED = "disabled"


UNKNOWN_AUTHOR = "Unknown"


class ContentItem(BaseModel):
    """An item discovered on disk.

    Attributes:
        id: Folder name (characters, screenpacks) or definition stem (stages).
        kind: Content kind.
        name: Display name declared by the definition file, or a fallback.
        author: Declared author, ``Unknown`` when absent or unreadable.
        version_date: Declared version date, empty when absent.
        sprite_file: Declared sprite archive reference.
        path: Character/screenpack folder or stage definition file.
        def_path: Definition file chosen for the item, if any.
        modified_at: Last-modified timestamp of ``def_path`` (or ``path``).
        valid: Whether a readable, well-formed definition file was found.
        readable: False when the definition file exists but could not be read.
        error: Human-readable reason when the item is degraded.
        total_width: Camera-bound width (stages).
        has_music: Whether the stage declares background music.
        music_file: Declared background music reference (stages).
        name_override: User-supplied display name.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: ContentKind
    name: str
    author: str = UNKNOWN_AUTHOR
    version_date: str = ""
    sprite_file: Optional[str] = None
    path: Path
    def_path: Optional[Path] = None
    modified_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    valid: bool = True
    readable: bool = True
    error: Optional[str] = None
    total_width: Optional[int] = None
    has_music: Optional[bool] = None
    music_file: Optional[str] = None
    name_override: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name_override or self.name

    @property
    def key(self) -> tuple[ContentKind, str]:
        """Logical identity used for duplicate detection."""
        return self.kind, self.id.casefold()


class LibraryLayout(BaseModel):
    """Absolute paths of the engine installation."""

    model_config = ConfigDict(frozen=True)

    working_dir: Path
    roster_script: Path
    chars_dir: Path
    stages_dir: Path
    data_dir: Path

    @classmethod
    def from_settings(cls, settings: LibrarySettings, working_dir: Path | None = None) -> "LibraryLayout":
        root = (working_dir or Path(settings.working_dir)).expanduser().resolve()
        return cls(
            working_dir=root,
            roster_script=root / settings.roster_script,
            chars_dir=root / settings.chars_dir,
            stages_dir=root / settings.stages_dir,
            data_dir=root / settings.data_dir,
        )

    def relative(self, path: Path) -> str:
        """Return ``path`` relative to the working directory using ``/`` separators."""
        try:
            return path.relative_to(self.working_dir).as_posix()
        except ValueError:
            return path.as_posix()


__all__ = [
    "ContentKind",
    "ContentStatus",
    "ContentItem",
    "LibraryLayout",
    "UNKNOWN_AUTHOR",
]
