"""Filesystem discovery of characters, stages and screenpacks."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from rosterlab.batch import CancelToken, check_cancelled
from rosterlab.defs import DefFile, parse_def_file
from rosterlab.errors import InvalidContentError

from .models import UNKNOWN_AUTHOR, ContentItem, ContentKind, LibraryLayout

LOGGER = logging.getLogger(__name__)

SYSTEM_DEF = "system.def"


def _is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


def _modified(path: Path) -> datetime:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError:
        return datetime.now(timezone.utc)


def stage_display_name(declared: str | None, stem: str, *, min_length: int = 2) -> str:
    """Prefer the declared stage name when longer than ``min_length`` characters.

    Shorter names (often placeholders like ``"a"``) fall back to the file stem
    with underscores and dashes turned into spaces.
    """
    if declared and len(declared.strip()) > min_length:
        return declared.strip()
    return stem.replace("_", " ").replace("-", " ")


@dataclass(slots=True)
class ScanResult:
    """Items found by a scan, in discovery order."""

    items: list[ContentItem] = field(default_factory=list)

    def of_kind(self, kind: ContentKind) -> list[ContentItem]:
        return [item for item in self.items if item.kind is kind]

    def grouped(self) -> dict[tuple[ContentKind, str], list[ContentItem]]:
        """Group items by logical identity (kind + case-folded id)."""
        groups: dict[tuple[ContentKind, str], list[ContentItem]] = defaultdict(list)
        for item in self.items:
            groups[item.key].append(item)
        return dict(groups)

    def duplicates(self) -> dict[tuple[ContentKind, str], list[ContentItem]]:
        return {key: items for key, items in self.grouped().items() if len(items) > 1}


class LibraryScanner:
    """Discover library content beneath an engine working directory."""

    def __init__(
        self,
        layout: LibraryLayout,
        *,
        include_hidden: bool = False,
        min_declared_name_length: int = 2,
    ) -> None:
        self.layout = layout
        self.include_hidden = include_hidden
        self.min_declared_name_length = min_declared_name_length

    def scan(self, cancel: CancelToken | None = None) -> ScanResult:
        """Scan characters, stages and screenpacks.

        Args:
            cancel: Optional token checked between items.

        Returns:
            ScanResult: Every item found, degraded items included.

        Raises:
            OperationCancelled: If ``cancel`` is triggered mid-scan.
        """
        result = ScanResult()
        for producer in (self.iter_characters, self.iter_stages, self.iter_screenpacks):
            for item in producer(cancel):
                result.items.append(item)
        LOGGER.info("Scanned %d items under %s", len(result.items), self.layout.working_dir)
        return result

    # Characters -------------------------------------------------------

    def iter_characters(self, cancel: CancelToken | None = None) -> Iterator[ContentItem]:
        for folder in self._children(self.layout.chars_dir):
            check_cancelled(cancel)
            if folder.is_dir():
                yield self.describe_character(folder)

    def describe_character(self, folder: Path) -> ContentItem:
        """Build a ContentItem for a character folder, degraded if needed."""
        try:
            def_path, parsed, error = self._choose_character_def(folder)
        except OSError as exc:
            def_path, parsed, error = None, None, f"Could not list {folder.name}: {exc}"

        if def_path is None or parsed is None:
            LOGGER.debug("Character folder %s has no usable definition: %s", folder, error)
            # An error without a valid def means something was there but unreadable.
            return ContentItem(
                id=folder.name,
                kind=ContentKind.CHARACTER,
                name=folder.name,
                path=folder,
                def_path=def_path,
                modified_at=_modified(folder),
                valid=False,
                readable=error is None,
                error=error or f"No character definition file found in {folder.name}",
            )

        return ContentItem(
            id=folder.name,
            kind=ContentKind.CHARACTER,
            name=parsed.display_name or parsed.name or folder.name,
            author=parsed.author or UNKNOWN_AUTHOR,
            version_date=parsed.version_date or "",
            sprite_file=parsed.sprite_file,
            path=folder,
            def_path=def_path,
            modified_at=_modified(def_path),
        )

    def character_def_is_valid(self, folder: Path, def_name: str) -> bool:
        """Return True when ``folder/def_name`` is a readable character definition."""
        path = folder / def_name
        if not path.is_file():
            return False
        try:
            return parse_def_file(path).is_character
        except InvalidContentError:
            return False

    def _choose_character_def(
        self, folder: Path
    ) -> tuple[Path | None, DefFile | None, str | None]:
        candidates = sorted(
            (path for path in folder.iterdir() if path.is_file() and path.suffix.lower() == ".def"),
            key=lambda path: path.name.casefold(),
        )
        valid: list[tuple[Path, DefFile]] = []
        first_error: str | None = None
        unreadable: Path | None = None
        for path in candidates:
            try:
                parsed = parse_def_file(path)
            except InvalidContentError as exc:
                first_error = first_error or str(exc)
                unreadable = unreadable or path
                continue
            if parsed.is_character:
                valid.append((path, parsed))

        for path, parsed in valid:
            if path.name == f"{folder.name}.def":
                return path, parsed, None
        for path, parsed in valid:
            if path.stem.casefold() == folder.name.casefold():
                return path, parsed, None
        if valid:
            return valid[0][0], valid[0][1], None
        return unreadable, None, first_error

    # Stages -----------------------------------------------------------

    def iter_stages(self, cancel: CancelToken | None = None) -> Iterator[ContentItem]:
        for entry in self._children(self.layout.stages_dir):
            check_cancelled(cancel)
            if entry.is_dir():
                candidates = [path for path in self._children(entry) if self._is_def(path)]
            elif self._is_def(entry):
                candidates = [entry]
            else:
                continue
            for path in candidates:
                item = self.describe_stage(path)
                if item is not None:
                    yield item

    def describe_stage(self, path: Path, *, include_invalid: bool = False) -> ContentItem | None:
        """Build a ContentItem for a stage definition.

        Unreadable files yield a degraded item. Readable files that are not stage
        definitions return None unless ``include_invalid`` is set.
        """
        try:
            parsed = parse_def_file(path)
        except InvalidContentError as exc:
            return ContentItem(
                id=path.stem,
                kind=ContentKind.STAGE,
                name=stage_display_name(None, path.stem),
                path=path,
                def_path=path,
                modified_at=_modified(path),
                valid=False,
                readable=False,
                error=str(exc),
            )

        if not parsed.is_stage and not include_invalid:
            return None

        left, right = parsed.camera_bounds
        music = parsed.music_file
        return ContentItem(
            id=path.stem,
            kind=ContentKind.STAGE,
            name=stage_display_name(
                parsed.name, path.stem, min_length=self.min_declared_name_length
            ),
            author=parsed.author or UNKNOWN_AUTHOR,
            version_date=parsed.version_date or "",
            sprite_file=parsed.sprite_file,
            path=path,
            def_path=path,
            modified_at=_modified(path),
            valid=parsed.is_stage,
            error=None if parsed.is_stage else f"{path.name} is not a stage definition",
            total_width=right - left,
            has_music=bool(music),
            music_file=music,
        )

    # Screenpacks ------------------------------------------------------

    def iter_screenpacks(self, cancel: CancelToken | None = None) -> Iterator[ContentItem]:
        for folder in self._children(self.layout.data_dir):
            check_cancelled(cancel)
            system_def = folder / SYSTEM_DEF
            if folder.is_dir() and system_def.is_file():
                yield self.describe_screenpack(folder)

    def describe_screenpack(self, folder: Path) -> ContentItem:
        system_def = folder / SYSTEM_DEF
        try:
            parsed = parse_def_file(system_def)
        except InvalidContentError as exc:
            return ContentItem(
                id=folder.name,
                kind=ContentKind.SCREENPACK,
                name=folder.name,
                path=folder,
                def_path=system_def,
                modified_at=_modified(system_def),
                valid=False,
                readable=False,
                error=str(exc),
            )
        return ContentItem(
            id=folder.name,
            kind=ContentKind.SCREENPACK,
            name=parsed.name or folder.name,
            author=parsed.author or UNKNOWN_AUTHOR,
            version_date=parsed.version_date or "",
            path=folder,
            def_path=system_def,
            modified_at=_modified(system_def),
        )

    # Helpers ----------------------------------------------------------

    def _children(self, directory: Path) -> list[Path]:
        if not directory.is_dir():
            return []
        try:
            children = list(directory.iterdir())
        except OSError as exc:
            LOGGER.warning("Could not list %s: %s", directory, exc)
            return []
        if not self.include_hidden:
            children = [child for child in children if not _is_hidden(child)]
        return sorted(children, key=lambda path: path.name.casefold())

    @staticmethod
    def _is_def(path: Path) -> bool:
        return path.is_file() and path.suffix.lower() == ".def"


__all__ = ["LibraryScanner", "ScanResult", "stage_display_name"]
