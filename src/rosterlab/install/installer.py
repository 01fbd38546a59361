"""Install extracted content folders into the engine tree."""

from __future__ import annotations

import logging
import os
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence

from rosterlab.batch import BatchResult, CancelToken
from rosterlab.defs import parse_def_file, read_def_text
from rosterlab.errors import (
    ConflictError,
    InvalidContentError,
    IOFailure,
    NotFoundError,
    OperationCancelled,
    RosterLabError,
)
from rosterlab.index import LibraryIndex, LibraryIndexRecord
from rosterlab.library import ContentItem, ContentKind, LibraryLayout, LibraryScanner, TagDetector
from rosterlab.naming import sanitize
from rosterlab.roster import EntryKind, RosterScriptStore, ScriptModel, codec

LOGGER = logging.getLogger(__name__)

STAGE_FILE_SUFFIXES = frozenset({".def", ".sff", ".mp3", ".ogg", ".wav"})
CHARACTER_FILE_SUFFIXES = frozenset({".air", ".cmd", ".cns"})
SCREENPACK_SECTIONS = ("[title info]", "[select info]", "[vs screen]", "[option info]")

_SELECT_LINE = re.compile(r"""(?im)^(\s*select\s*=\s*)["']?select\.def["']?""")


@dataclass(slots=True)
class InstallRequest:
    """One folder (or stage file) to install.

    Attributes:
        source: Extracted content folder, or a single stage ``.def`` file.
        kind: Content kind; detected from the files when omitted.
        overwrite: Whether an existing item with the same id may be replaced.
    """

    source: Path
    kind: Optional[ContentKind] = None
    overwrite: bool = False


def detect_kind(source: Path) -> ContentKind:
    """Guess what an extracted folder contains.

    Screenpacks win over characters, characters over stages. Storyboard
    definitions (intros, endings) are ignored.

    Raises:
        NotFoundError: If ``source`` does not exist.
        InvalidContentError: If nothing installable is recognised.
    """
    if not source.exists():
        raise NotFoundError(f"Install source {source} does not exist", path=source)
    if source.is_file():
        if source.suffix.lower() == ".def":
            return ContentKind.STAGE
        raise InvalidContentError(f"{source.name} is not a definition file", path=source)

    files = [path for path in source.iterdir() if path.is_file()]
    system_def = next((path for path in files if path.name.lower() == "system.def"), None)
    if system_def is not None:
        text = read_def_text(system_def).lower()
        if "[files]" in text and any(word in text for word in ("select", "fight", "title")):
            return ContentKind.SCREENPACK
        if any(section in text for section in SCREENPACK_SECTIONS):
            return ContentKind.SCREENPACK

    defs = [path for path in files if path.suffix.lower() == ".def"]
    stage_found = False
    for path in defs:
        try:
            parsed = parse_def_file(path)
        except InvalidContentError:
            continue
        if parsed.has_section("scenedef"):
            continue
        if parsed.is_character:
            return ContentKind.CHARACTER
        stage_found = stage_found or parsed.is_stage

    if stage_found:
        return ContentKind.STAGE
    if any(path.suffix.lower() in CHARACTER_FILE_SUFFIXES for path in files):
        return ContentKind.CHARACTER
    if defs:
        return ContentKind.STAGE
    raise InvalidContentError(
        f"Could not determine the content type of {source.name}: expected character files "
        "(.def, .sff, .air, .cmd, .cns) or stage files (.def, .sff)",
        path=source,
    )


def _is_stage_def(path: Path) -> bool:
    if path.suffix.lower() != ".def":
        return False
    try:
        parsed = parse_def_file(path)
    except InvalidContentError:
        return False
    return parsed.is_stage and not parsed.has_section("scenedef")


def redirect_screenpack_select(system_def: Path, target: str) -> bool:
    """Point a screenpack's ``select = select.def`` line at ``target``.

    Returns:
        bool: True when the file was rewritten.

    Raises:
        IOFailure: If the rewritten file cannot be saved.
    """
    if not system_def.is_file():
        return False
    text = read_def_text(system_def)
    updated, count = _SELECT_LINE.subn(lambda match: match.group(1) + target, text)
    if not count:
        return False
    try:
        system_def.write_bytes(updated.encode("utf-8"))
    except OSError as exc:
        raise IOFailure(f"Could not update {system_def}: {exc}", path=system_def) from exc
    LOGGER.info("Redirected %s to the shared roster script", system_def.parent.name)
    return True


class ContentInstaller:
    """Copy content into place, register it in the roster script and index it.

    Every installer checks for identity conflicts before touching the disk, so a
    refused install leaves the content tree and the roster script unchanged.
    """

    def __init__(
        self,
        scanner: LibraryScanner,
        store: RosterScriptStore,
        index: LibraryIndex | None = None,
        *,
        tag_detector: TagDetector | None = None,
    ) -> None:
        self.scanner = scanner
        self.store = store
        self.index = index
        self.tag_detector = tag_detector or TagDetector()

    @property
    def layout(self) -> LibraryLayout:
        return self.scanner.layout

    def install(self, request: InstallRequest) -> str:
        """Install one request, detecting its kind when needed."""
        kind = request.kind or detect_kind(request.source)
        if kind is ContentKind.CHARACTER:
            return self.install_character(request.source, overwrite=request.overwrite)
        if kind is ContentKind.STAGE:
            return self.install_stage(request.source, overwrite=request.overwrite)
        return self.install_screenpack(request.source, overwrite=request.overwrite)

    def install_many(
        self, requests: Iterable[InstallRequest], cancel: CancelToken | None = None
    ) -> BatchResult[str]:
        """Install every request, collecting failures instead of stopping.

        Cancellation stops before the next request; finished installs stay.
        """
        result: BatchResult[str] = BatchResult()
        for request in requests:
            if cancel is not None and cancel.cancelled:
                result.record_failure(request.source.name, OperationCancelled())
                continue
            try:
                result.succeeded.append(self.install(request))
            except RosterLabError as exc:
                LOGGER.warning("Install of %s failed: %s", request.source, exc)
                result.record_failure(request.source.name, exc)
        LOGGER.info("Install batch finished: %s", result.summary())
        return result

    # Characters -------------------------------------------------------

    def install_character(self, source: Path, *, overwrite: bool = False) -> str:
        """Install a character folder as ``chars/<sanitized name>``.

        The folder name comes from the character definition file stem (or the
        source folder name) and is sanitized.

        Returns:
            str: The installed character id.

        Raises:
            NotFoundError: If ``source`` is not a folder.
            ConflictError: If the id exists and ``overwrite`` is False.
            IOFailure: If copying fails.
        """
        if not source.is_dir():
            raise NotFoundError(f"Character folder {source} does not exist", path=source)

        item_id = sanitize(self._character_name(source))
        chars_dir = self.layout.chars_dir
        existing = self._existing_child(chars_dir, item_id)
        if existing is not None and not overwrite:
            raise ConflictError(
                f"Character {item_id!r} is already installed", item_id=item_id, path=existing
            )

        destination = chars_dir / (existing.name if existing is not None else item_id)
        item_id = destination.name
        self._place_tree(source, destination)

        item = self.scanner.describe_character(destination)
        def_name = item.def_path.name if item.def_path is not None else None
        reference = codec.character_reference(item_id, def_name)
        try:
            self._register(EntryKind.CHARACTER, [(item_id, reference)])
        except RosterLabError:
            if existing is None:
                shutil.rmtree(destination, ignore_errors=True)
            raise
        self._index(item)
        LOGGER.info("Installed character %s from %s", item_id, source)
        return item_id

    def _character_name(self, source: Path) -> str:
        defs = sorted(
            (path for path in source.iterdir() if path.is_file() and path.suffix.lower() == ".def"),
            key=lambda path: path.name.casefold(),
        )
        characters = []
        for path in defs:
            try:
                if parse_def_file(path).is_character:
                    characters.append(path)
            except InvalidContentError:
                continue
        for path in characters:
            if path.stem.casefold() == source.name.casefold():
                return path.stem
        if characters:
            return characters[0].stem
        return source.name

    # Stages -----------------------------------------------------------

    def install_stage(self, source: Path, *, overwrite: bool = False) -> str:
        """Copy stage definitions with their sprites and music into ``stages/``.

        Commas in definition file names become underscores; resource files keep
        their exact names because definitions reference them verbatim.

        Returns:
            str: Id of the first installed stage.

        Raises:
            NotFoundError: If ``source`` does not exist.
            InvalidContentError: If no stage definition is found.
            ConflictError: If a file or stage id exists and ``overwrite`` is False.
            IOFailure: If copying fails.
        """
        if not source.exists():
            raise NotFoundError(f"Stage source {source} does not exist", path=source)
        if source.is_file():
            files = [source]
        else:
            files = sorted(
                (path for path in source.iterdir() if path.is_file() and path.suffix.lower() in STAGE_FILE_SUFFIXES),
                key=lambda path: path.name.casefold(),
            )

        plan = {path: self._stage_file_name(path) for path in files}
        stage_ids = [Path(name).stem for path, name in plan.items() if _is_stage_def(path)]
        if not stage_ids:
            raise InvalidContentError(f"No stage definition found in {source.name}", path=source)

        stages_dir = self.layout.stages_dir
        if not overwrite:
            for name in plan.values():
                clash = self._existing_child(stages_dir, name)
                if clash is not None:
                    raise ConflictError(f"Stage file {name!r} already exists", path=clash)
            installed = {item.id.casefold() for item in self.scanner.iter_stages()}
            for stage_id in stage_ids:
                if stage_id.casefold() in installed:
                    raise ConflictError(f"Stage {stage_id!r} is already installed", item_id=stage_id)

        fresh = [stages_dir / name for name in plan.values() if self._existing_child(stages_dir, name) is None]
        try:
            stages_dir.mkdir(parents=True, exist_ok=True)
            for path, name in plan.items():
                self._place_file(path, stages_dir / name)
        except OSError as exc:
            self._discard(fresh)
            raise IOFailure(f"Could not copy stage files from {source}: {exc}", path=source) from exc

        try:
            self._register(
                EntryKind.STAGE,
                [(stage_id, codec.stage_reference(stage_id)) for stage_id in stage_ids],
            )
        except RosterLabError:
            self._discard(fresh)
            raise
        for stage_id in stage_ids:
            item = self.scanner.describe_stage(stages_dir / f"{stage_id}.def", include_invalid=True)
            if item is not None:
                self._index(item)
        LOGGER.info("Installed stage(s) %s from %s", ", ".join(stage_ids), source)
        return stage_ids[0]

    @staticmethod
    def _stage_file_name(path: Path) -> str:
        if path.suffix.lower() == ".def":
            return path.name.replace(",", "_")
        return path.name

    # Screenpacks ------------------------------------------------------

    def install_screenpack(self, source: Path, *, overwrite: bool = False) -> str:
        """Install a screenpack folder into ``data/<name>``.

        Its ``select = select.def`` line is redirected to the shared roster
        script so every screenpack uses the same roster.

        Returns:
            str: The installed screenpack id.

        Raises:
            NotFoundError: If ``source`` is not a folder.
            ConflictError: If the folder exists and ``overwrite`` is False.
            IOFailure: If copying fails.
        """
        if not source.is_dir():
            raise NotFoundError(f"Screenpack folder {source} does not exist", path=source)
        item_id = sanitize(source.name)
        data_dir = self.layout.data_dir
        existing = self._existing_child(data_dir, item_id)
        if existing is not None and not overwrite:
            raise ConflictError(
                f"Screenpack {item_id!r} is already installed", item_id=item_id, path=existing
            )

        destination = data_dir / (existing.name if existing is not None else item_id)
        self._place_tree(source, destination)
        target = Path(os.path.relpath(self.layout.roster_script, destination)).as_posix()
        redirect_screenpack_select(destination / "system.def", target)
        LOGGER.info("Installed screenpack %s from %s", destination.name, source)
        return destination.name

    # Internal helpers -------------------------------------------------

    @staticmethod
    def _existing_child(directory: Path, name: str) -> Path | None:
        if not directory.is_dir():
            return None
        folded = name.casefold()
        for child in directory.iterdir():
            if child.name.casefold() == folded:
                return child
        return None

    @staticmethod
    def _place_tree(source: Path, destination: Path) -> None:
        """Copy ``source`` beside ``destination`` first, then swap it into place."""
        parent = destination.parent
        token = uuid.uuid4().hex[:8]
        staging = parent / f".{destination.name}.installing-{token}"
        retired = parent / f".{destination.name}.replaced-{token}"
        try:
            parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source, staging)
            if destination.exists():
                destination.rename(retired)
            try:
                staging.rename(destination)
            except OSError:
                if retired.exists():
                    retired.rename(destination)
                raise
        except OSError as exc:
            raise IOFailure(f"Could not install {source.name}: {exc}", path=destination) from exc
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        if retired.exists():
            shutil.rmtree(retired, ignore_errors=True)

    @staticmethod
    def _place_file(source: Path, destination: Path) -> None:
        temp = destination.with_name(f".{destination.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            shutil.copy2(source, temp)
            os.replace(temp, destination)
        finally:
            if temp.exists():
                temp.unlink()

    @staticmethod
    def _discard(paths: Iterable[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.warning("Could not remove %s after a failed install: %s", path, exc)

    def _register(self, kind: EntryKind, entries: Sequence[tuple[str, str]]) -> None:
        def _edit(model: ScriptModel) -> ScriptModel:
            for item_id, reference in entries:
                if not model.find(kind, item_id):
                    model = codec.add(model, kind, reference)
            return model

        self.store.transaction(_edit, create_missing=True)

    def _index(self, item: ContentItem) -> None:
        if self.index is None:
            return
        tags = self.tag_detector.detect(item.id, item.name, item.author)
        try:
            self.index.upsert(LibraryIndexRecord.from_item(item, tags))
        except IOFailure as exc:
            # The next refresh rebuilds the index from disk.
            LOGGER.warning("Could not index %s: %s", item.id, exc)


__all__ = [
    "ContentInstaller",
    "InstallRequest",
    "detect_kind",
    "redirect_screenpack_select",
    "STAGE_FILE_SUFFIXES",
]
