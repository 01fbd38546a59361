"""JSON persistence for collections."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from pydantic import ValidationError

from rosterlab.errors import ConflictError, InvalidContentError, IOFailure, NotFoundError
from rosterlab.library import ContentKind

from .evaluator import SmartCollectionEvaluator
from .models import CatalogEntry, Collection, Combinator, FilterRule, RosterSlot, SlotKind

LOGGER = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "All Characters"
DEFAULT_COLLECTION_ICON = "grid"


class CollectionStore:
    """Manage collections stored as one JSON file each.

    Exactly one collection is the default and at most one is active. The default
    collection cannot be deleted; deleting the active collection activates the
    default one.
    """

    def __init__(
        self, directory: Path, *, clock: Optional[Callable[[], datetime]] = None
    ) -> None:
        """Initialize the store.

        Args:
            directory: Folder holding ``<collection id>.json`` files.
            clock: Source of ``created_at``/``modified_at`` timestamps.
        """
        self.directory = directory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # Queries ----------------------------------------------------------

    def list(self) -> list[Collection]:
        """Return every readable collection, default first, then by creation time.

        Unreadable files are logged and left on disk untouched.
        """
        collections = []
        if self.directory.is_dir():
            for path in sorted(self.directory.glob("*.json")):
                try:
                    collections.append(self._read(path))
                except InvalidContentError as exc:
                    LOGGER.warning("Skipping unreadable collection file %s: %s", path, exc)
        return sorted(collections, key=lambda item: (not item.is_default, item.created_at, item.name))

    def get(self, collection_id: str) -> Collection:
        """Load one collection.

        Raises:
            NotFoundError: If no collection has that id.
            InvalidContentError: If the stored file cannot be parsed.
        """
        path = self._path(collection_id)
        if not path.exists():
            raise NotFoundError(f"No collection with id {collection_id!r}", item_id=collection_id)
        return self._read(path)

    def find(self, name_or_id: str) -> Collection:
        """Look a collection up by id, or else by case-insensitive name.

        Raises:
            NotFoundError: If nothing matches.
        """
        if self._path(name_or_id).exists():
            return self.get(name_or_id)
        folded = name_or_id.casefold()
        for collection in self.list():
            if collection.name.casefold() == folded:
                return collection
        raise NotFoundError(f"No collection named {name_or_id!r}", item_id=name_or_id)

    def default(self) -> Collection:
        return self.ensure_default()

    def active(self) -> Collection | None:
        for collection in self.list():
            if collection.is_active:
                return collection
        return None

    # Lifecycle --------------------------------------------------------

    def ensure_default(self) -> Collection:
        """Return the default collection, creating it (and activating it) if needed."""
        collections = self.list()
        for collection in collections:
            if collection.is_default:
                return collection

        now = self._clock()
        default = Collection(
            name=DEFAULT_COLLECTION_NAME,
            icon=DEFAULT_COLLECTION_ICON,
            is_default=True,
            is_active=not any(collection.is_active for collection in collections),
            created_at=now,
            modified_at=now,
        )
        self._write(default)
        LOGGER.info("Created default collection %s", default.id)
        return default

    def create(self, name: str, icon: str = "folder") -> Collection:
        self.ensure_default()
        now = self._clock()
        collection = Collection(name=name, icon=icon, created_at=now, modified_at=now)
        self._write(collection)
        return collection

    def save(self, collection: Collection) -> Collection:
        """Persist ``collection`` with a fresh ``modified_at`` stamp."""
        collection.modified_at = self._clock()
        self._write(collection)
        return collection

    def delete(self, collection_id: str) -> None:
        """Delete a collection.

        Raises:
            NotFoundError: If no collection has that id.
            ConflictError: If it is the default collection.
            IOFailure: If the file cannot be removed.
        """
        collection = self.get(collection_id)
        if collection.is_default:
            raise ConflictError("The default collection cannot be deleted", item_id=collection_id)
        try:
            self._path(collection_id).unlink()
        except OSError as exc:
            raise IOFailure(f"Could not delete collection {collection.name}: {exc}") from exc
        LOGGER.info("Deleted collection %s", collection.name)
        if collection.is_active:
            self.set_active(self.ensure_default().id)

    def set_active(self, collection_id: str) -> Collection:
        """Mark one collection active and clear the flag everywhere else."""
        target = self.get(collection_id)
        for collection in self.list():
            if collection.is_active and collection.id != target.id:
                collection.is_active = False
                self.save(collection)
        if not target.is_active:
            target.is_active = True
            self.save(target)
        return target

    # Roster slots -----------------------------------------------------

    def add_character(
        self, collection_id: str, folder: str, def_file: str | None = None
    ) -> Collection:
        """Append a character slot; a folder already present is not added twice."""
        collection = self.get(collection_id)
        folded = folder.casefold()
        if any(
            slot.kind is SlotKind.CHARACTER and (slot.folder or "").casefold() == folded
            for slot in collection.characters
        ):
            return collection
        collection.characters.append(RosterSlot.character(folder, def_file))
        return self.save(collection)

    def add_random_select(self, collection_id: str) -> Collection:
        collection = self.get(collection_id)
        collection.characters.append(RosterSlot.random_select())
        return self.save(collection)

    def add_empty_slot(self, collection_id: str) -> Collection:
        collection = self.get(collection_id)
        collection.characters.append(RosterSlot.empty_slot())
        return self.save(collection)

    def remove_character(self, collection_id: str, slot_id: str) -> Collection:
        collection = self.get(collection_id)
        collection.characters = [slot for slot in collection.characters if slot.id != slot_id]
        return self.save(collection)

    def reorder_characters(self, collection_id: str, source: int, destination: int) -> Collection:
        """Move the slot at ``source`` so that it ends up at ``destination``.

        Raises:
            NotFoundError: If either index is out of range.
        """
        collection = self.get(collection_id)
        slots = collection.characters
        if not (0 <= source < len(slots) and 0 <= destination < len(slots)):
            raise NotFoundError(
                f"Slot index out of range for {collection.name}: {source} -> {destination}",
                item_id=collection_id,
            )
        slots.insert(destination, slots.pop(source))
        return self.save(collection)

    # Stages -----------------------------------------------------------

    def add_stage(self, collection_id: str, stage_id: str) -> Collection:
        collection = self.get(collection_id)
        if stage_id.casefold() in {stage.casefold() for stage in collection.stages}:
            return collection
        collection.stages.append(stage_id)
        return self.save(collection)

    def remove_stage(self, collection_id: str, stage_id: str) -> Collection:
        collection = self.get(collection_id)
        folded = stage_id.casefold()
        collection.stages = [stage for stage in collection.stages if stage.casefold() != folded]
        return self.save(collection)

    # Smart rules ------------------------------------------------------

    def set_smart_rules(
        self,
        collection_id: str,
        rules: Sequence[FilterRule] | None,
        combinator: Combinator = Combinator.ALL,
        *,
        include_characters: bool = True,
        include_stages: bool = True,
    ) -> Collection:
        """Turn a collection into a smart one, or back with ``rules=None``."""
        collection = self.get(collection_id)
        collection.smart_rules = list(rules) if rules is not None else None
        collection.combinator = combinator
        collection.include_characters = include_characters
        collection.include_stages = include_stages
        return self.save(collection)

    def resolve(
        self,
        collection: Collection,
        items: Iterable[CatalogEntry],
        evaluator: SmartCollectionEvaluator,
    ) -> list[CatalogEntry]:
        """Return the catalog entries a collection contains.

        Smart collections evaluate their rules over the included kinds. The default
        collection holds every item. Other collections list their characters in slot
        order followed by their stages, skipping ids not present in ``items``.
        """
        pool = list(items)
        if collection.is_smart:
            kinds = set()
            if collection.include_characters:
                kinds.add(ContentKind.CHARACTER)
            if collection.include_stages:
                kinds.add(ContentKind.STAGE)
            candidates = [item for item in pool if item.kind in kinds]
            return evaluator.evaluate(candidates, collection.smart_rules or [], collection.combinator)
        if collection.is_default:
            return pool

        by_key = {(item.kind, item.id.casefold()): item for item in pool}
        resolved = []
        for slot in collection.characters:
            if slot.kind is SlotKind.CHARACTER and slot.folder:
                match = by_key.get((ContentKind.CHARACTER, slot.folder.casefold()))
                if match is not None:
                    resolved.append(match)
        for stage in collection.stages:
            match = by_key.get((ContentKind.STAGE, stage.casefold()))
            if match is not None:
                resolved.append(match)
        return resolved

    # Internal helpers -------------------------------------------------

    def _path(self, collection_id: str) -> Path:
        return self.directory / f"{Path(collection_id).name}.json"

    @staticmethod
    def _read(path: Path) -> Collection:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Collection.model_validate(data)
        except OSError as exc:
            raise IOFailure(f"Could not read collection file {path}: {exc}", path=path) from exc
        except (json.JSONDecodeError, ValidationError) as exc:
            raise InvalidContentError(f"Invalid collection data in {path.name}: {exc}", path=path) from exc

    def _write(self, collection: Collection) -> None:
        path = self._path(collection.id)
        payload = json.dumps(collection.model_dump(mode="json"), indent=2, sort_keys=True)
        temp_name: str | None = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.directory, suffix=".tmp", delete=False
            ) as handle:
                temp_name = handle.name
                handle.write(payload)
            os.replace(temp_name, path)
            temp_name = None
        except OSError as exc:
            raise IOFailure(f"Could not save collection {collection.name}: {exc}", path=path) from exc
        finally:
            if temp_name is not None and os.path.exists(temp_name):
                os.unlink(temp_name)


__all__ = ["CollectionStore", "DEFAULT_COLLECTION_NAME"]
