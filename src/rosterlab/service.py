"""High-level library manager wiring every component together."""

from __future__ import annotations

import logging
import shutil
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, Optional, Sequence

from rosterlab.batch import BatchResult, CancelToken
from rosterlab.config import RosterLabConfig
from rosterlab.config.models import NamingSettings
from rosterlab.curation import (
    CatalogEntry,
    Collection,
    CollectionStore,
    Combinator,
    FilterRule,
    SmartCollectionEvaluator,
)
from rosterlab.defs import parse_def_file, read_def_text, replace_stage_name
from rosterlab.errors import (
    ConflictError,
    EntryNotFound,
    InvalidContentError,
    IOFailure,
    NotFoundError,
    RosterLabError,
)
from rosterlab.index import LibraryIndex, LibraryIndexRecord
from rosterlab.install import ContentInstaller, InstallRequest
from rosterlab.library import ContentKind, LibraryLayout, LibraryScanner, TagDetector
from rosterlab.naming import NameSanitizer, rename_entry, stage_needs_better_name, suggest_stage_name
from rosterlab.reconcile import (
    ContentStatusReconciler,
    DuplicateGroup,
    OutdatedItem,
    ReconciliationReport,
    ValidationResult,
    apply_fixes,
)
from rosterlab.roster import EntryKind, RosterScriptStore, ScriptModel, codec

LOGGER = logging.getLogger(__name__)


def _entry_kind(kind: ContentKind) -> EntryKind:
    if kind is ContentKind.SCREENPACK:
        raise InvalidContentError("Screenpacks are not listed in the roster script")
    return EntryKind(kind.value)


class LibraryManager:
    """Single writer for the library.

    Every mutation runs under one lock, rewrites the roster script through a
    single backed-up atomic transaction and then re-runs reconciliation. Reads
    (index search, smart evaluation) do not take the lock.
    """

    def __init__(
        self,
        layout: LibraryLayout,
        store: RosterScriptStore,
        index: LibraryIndex,
        collections: CollectionStore,
        *,
        naming: NamingSettings | None = None,
        evaluator: SmartCollectionEvaluator | None = None,
        tag_detector: TagDetector | None = None,
    ) -> None:
        naming = naming or NamingSettings()
        self.layout = layout
        self.store = store
        self.index = index
        self.collections = collections
        self.tag_detector = tag_detector or TagDetector()
        self.evaluator = evaluator or SmartCollectionEvaluator()
        self.scanner = LibraryScanner(
            layout, min_declared_name_length=naming.min_declared_name_length
        )
        self.sanitizer = NameSanitizer(naming)
        self.reconciler = ContentStatusReconciler(self.scanner, store, index)
        self.installer = ContentInstaller(
            self.scanner, store, index, tag_detector=self.tag_detector
        )
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rosterlab-refresh")
        self._report: Optional[ReconciliationReport] = None

    @classmethod
    def from_config(
        cls, config: RosterLabConfig, working_dir: Path | None = None
    ) -> "LibraryManager":
        """Build a manager for the engine installation described by ``config``."""
        layout = LibraryLayout.from_settings(config.library, working_dir)
        root = layout.working_dir
        store = RosterScriptStore(
            layout.roster_script, root / config.backups.directory, keep=config.backups.keep
        )
        index = LibraryIndex(root / config.library.index_path)
        collections = CollectionStore(root / config.collections.directory)
        return cls(layout, store, index, collections, naming=config.naming)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self.index.close()

    def __enter__(self) -> "LibraryManager":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Reconciliation ---------------------------------------------------

    @property
    def report(self) -> ReconciliationReport | None:
        """Latest reconciliation; None until the first refresh."""
        return self._report

    def refresh(self, cancel: CancelToken | None = None) -> ReconciliationReport:
        """Scan, reconcile and reindex, replacing the current report."""
        with self._lock:
            report = self.reconciler.run(cancel)
            self._report = report
            return report

    def refresh_in_background(
        self, cancel: CancelToken | None = None
    ) -> Future[ReconciliationReport]:
        """Run ``refresh`` on the worker thread and return its future."""
        return self._executor.submit(self.refresh, cancel)

    def current_report(self) -> ReconciliationReport:
        return self._report or self.refresh()

    # Roster-script edits ----------------------------------------------

    def enable(
        self, kind: ContentKind, item_id: str, selector: str | None = None
    ) -> ReconciliationReport:
        entry_kind = _entry_kind(kind)
        return self._edit(lambda model: codec.enable(model, entry_kind, item_id, selector))

    def disable(
        self, kind: ContentKind, item_id: str, selector: str | None = None
    ) -> ReconciliationReport:
        entry_kind = _entry_kind(kind)
        return self._edit(lambda model: codec.disable(model, entry_kind, item_id, selector))

    def reorder(self, kind: ContentKind, ids: Sequence[str]) -> ReconciliationReport:
        entry_kind = _entry_kind(kind)
        return self._edit(lambda model: codec.reorder(model, entry_kind, ids))

    def register(self, kind: ContentKind, item_id: str) -> ReconciliationReport:
        """Add an unregistered item to the roster script."""
        entry_kind = _entry_kind(kind)
        with self._lock:
            if kind is ContentKind.CHARACTER:
                item = self.scanner.describe_character(self.layout.chars_dir / item_id)
                def_name = item.def_path.name if item.def_path is not None else None
                reference = codec.character_reference(item_id, def_name)
            else:
                path = self._content_path(kind, item_id)
                reference = codec.stage_reference(
                    path.relative_to(self.layout.stages_dir).as_posix()
                )
            self.store.transaction(
                lambda model: codec.add(model, entry_kind, reference), create_missing=True
            )
            return self.refresh()

    def remove(
        self,
        kind: ContentKind,
        item_id: str,
        selector: str | None = None,
        *,
        delete_files: bool = False,
    ) -> ReconciliationReport:
        """Remove roster entries for an item, optionally deleting its files.

        Raises:
            EntryNotFound: If nothing references the item and files are kept.
            IOFailure: If deleting files fails.
        """
        entry_kind = _entry_kind(kind)
        with self._lock:
            try:
                self.store.transaction(
                    lambda model: codec.remove(model, entry_kind, item_id, selector)
                )
            except (EntryNotFound, NotFoundError):
                if not delete_files:
                    raise
            if delete_files:
                self._delete_files(kind, item_id)
                self.index.delete(kind, item_id)
            return self.refresh()

    def rename(self, kind: ContentKind, old_id: str, new_id: str) -> ReconciliationReport:
        """Rename a character folder or stage file and update the roster script.

        Raises:
            NotFoundError: If nothing named ``old_id`` exists on disk.
            ConflictError: If ``new_id`` is taken.
            RosterScriptError: If the roster script cannot be parsed; nothing is renamed.
            IOFailure: If the rename fails.
        """
        entry_kind = _entry_kind(kind)
        with self._lock:
            self._check_script()
            source = self._content_path(kind, old_id)
            target = source.with_name(new_id if kind is ContentKind.CHARACTER else f"{new_id}{source.suffix}")
            if target.exists() and not source.samefile(target):
                raise ConflictError(f"{kind.value.capitalize()} {new_id!r} already exists", item_id=new_id)
            try:
                rename_entry(source, target.name)
            except OSError as exc:
                raise IOFailure(f"Could not rename {old_id} to {new_id}: {exc}", path=source) from exc
            self._rewrite_references(entry_kind, [(old_id, new_id)])
            self.index.delete(kind, old_id)
            return self.refresh()

    # Installation -----------------------------------------------------

    def install(
        self, source: Path, *, kind: ContentKind | None = None, overwrite: bool = False
    ) -> str:
        with self._lock:
            item_id = self.installer.install(InstallRequest(source, kind, overwrite))
            self.refresh()
            return item_id

    def install_many(
        self, requests: Iterable[InstallRequest], cancel: CancelToken | None = None
    ) -> BatchResult[str]:
        with self._lock:
            result = self.installer.install_many(requests, cancel)
            self.refresh()
            return result

    # Naming -----------------------------------------------------------

    def sanitize_all(self, kind: ContentKind = ContentKind.CHARACTER) -> BatchResult[tuple[str, str]]:
        """Sanitize character folders or stage sub-folders.

        The roster script is rewritten once at the end for every renamed item.

        Raises:
            InvalidContentError: For screenpacks, or when the roster script cannot
                be parsed. No folder is renamed in either case.
        """
        if kind is ContentKind.SCREENPACK:
            raise InvalidContentError("Screenpack folders are not sanitized")
        with self._lock:
            self._check_script()
            self._backup_before_batch()
            if kind is ContentKind.CHARACTER:
                result = self.sanitizer.sanitize_all(self.layout.chars_dir)
                self._rewrite_references(EntryKind.CHARACTER, result.succeeded, result)
            else:
                result = self.sanitizer.sanitize_all(self.layout.stages_dir)
                self._relocate_stage_folders(result)
            self.refresh()
            return result

    def find_mismatched(self) -> list[tuple[Path, str]]:
        return self.sanitizer.find_mismatched(self.layout.chars_dir, self._character_def)

    def fix_mismatched(self) -> BatchResult[tuple[str, str]]:
        """Rename generic-looking character folders after their declared names."""
        with self._lock:
            self._check_script()
            self._backup_before_batch()
            result = self.sanitizer.fix_all_mismatched(
                self.layout.chars_dir, def_lookup=self._character_def
            )
            self._rewrite_references(EntryKind.CHARACTER, result.succeeded, result)
            self.refresh()
            return result

    def fix_stage_names(self) -> BatchResult[tuple[str, str]]:
        """Give placeholder-named stages a name derived from their file name."""
        with self._lock:
            result: BatchResult[tuple[str, str]] = BatchResult()
            for item in self.scanner.iter_stages():
                if item.def_path is None or not item.readable:
                    continue
                try:
                    declared = (parse_def_file(item.def_path).name or "").strip()
                    if not stage_needs_better_name(declared):
                        continue
                    suggestion = suggest_stage_name(item.def_path.stem)
                    if not suggestion or suggestion == declared:
                        continue
                    original = read_def_text(item.def_path)
                    text = replace_stage_name(original, suggestion)
                    if text == original:
                        continue
                    item.def_path.write_bytes(text.encode("utf-8"))
                    LOGGER.info("Renamed stage %s from %r to %r", item.id, declared, suggestion)
                except (InvalidContentError, OSError) as exc:
                    result.record_failure(item.id, exc)
                    continue
                result.succeeded.append((declared, suggestion))
            self.refresh()
            return result

    def fix_references(self) -> BatchResult[str]:
        """Rewrite definition references that differ from the files on disk by case or quotes."""
        with self._lock:
            report = self.refresh()
            result = apply_fixes(report.validation_results())
            if result.succeeded:
                self.refresh()
            return result

    # Health -----------------------------------------------------------

    def validate(self) -> list[ValidationResult]:
        """Return the resource checks of the current report that found issues."""
        return self.current_report().validation_results()

    def duplicates(self) -> list[DuplicateGroup]:
        return self.current_report().duplicate_groups

    def outdated(self) -> list[OutdatedItem]:
        return self.current_report().outdated

    # Queries ----------------------------------------------------------

    def search(self, kind: ContentKind, query: str) -> list[LibraryIndexRecord]:
        return self.index.search(kind, query)

    def catalog(self) -> list[CatalogEntry]:
        """Join the latest reconciliation with index records for rule evaluation."""
        report = self.current_report()
        return [
            CatalogEntry.from_sources(
                item,
                self.index.get(item.kind, item.item_id) if item.item is not None else None,
                detector=self.tag_detector,
            )
            for item in report.items
        ]

    def smart(
        self, rules: Sequence[FilterRule], combinator: Combinator = Combinator.ALL
    ) -> list[CatalogEntry]:
        return self.evaluator.evaluate(self.catalog(), rules, combinator)

    def collection_members(self, collection: Collection) -> list[CatalogEntry]:
        return self.collections.resolve(collection, self.catalog(), self.evaluator)

    def add_tag(self, kind: ContentKind, item_id: str, tag: str) -> None:
        self.index.add_tag(kind, item_id, tag)

    def remove_tag(self, kind: ContentKind, item_id: str, tag: str) -> None:
        self.index.remove_tag(kind, item_id, tag)

    # Internal helpers -------------------------------------------------

    def _edit(self, edit) -> ReconciliationReport:
        with self._lock:
            self.store.transaction(edit)
            return self.refresh()

    def _check_script(self) -> None:
        """Load the roster script so a corrupt one fails before any folder moves."""
        if self.store.exists():
            self.store.load()

    def _backup_before_batch(self) -> None:
        if self.store.exists():
            self.store.backup()

    def _character_def(self, folder: Path) -> Path | None:
        return self.scanner.describe_character(folder).def_path

    def _content_path(self, kind: ContentKind, item_id: str) -> Path:
        if kind is ContentKind.CHARACTER:
            path = self.layout.chars_dir / item_id
            if path.is_dir():
                return path
        else:
            for item in self.scanner.iter_stages():
                if item.id.casefold() == item_id.casefold():
                    return item.path
        raise NotFoundError(f"No {kind.value} {item_id!r} on disk", item_id=item_id)

    def _delete_files(self, kind: ContentKind, item_id: str) -> None:
        try:
            path = self._content_path(kind, item_id)
        except NotFoundError:
            LOGGER.info("Nothing on disk to delete for %s %s", kind.value, item_id)
            return
        try:
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as exc:
            raise IOFailure(f"Could not delete {path}: {exc}", path=path) from exc
        LOGGER.info("Deleted %s", path)

    def _rewrite_references(
        self,
        kind: EntryKind,
        renames: Sequence[tuple[str, str]],
        result: BatchResult[tuple[str, str]] | None = None,
    ) -> None:
        if not renames or not self.store.exists():
            return

        def _edit(model: ScriptModel) -> ScriptModel:
            for old, new in renames:
                if model.find(kind, old):
                    model = codec.rename(model, kind, old, new)
            return model

        try:
            self.store.transaction(_edit)
        except RosterLabError as exc:
            if result is None:
                raise
            for old, new in renames:
                result.record_failure(old, f"renamed to {new} but {exc}")

    def _relocate_stage_folders(self, result: BatchResult[tuple[str, str]]) -> None:
        if not result.succeeded or not self.store.exists():
            return

        def _edit(model: ScriptModel) -> ScriptModel:
            for old, new in result.succeeded:
                model = codec.relocate_stages(model, old, new)
            return model

        try:
            self.store.transaction(_edit)
        except RosterLabError as exc:
            for old, new in result.succeeded:
                result.record_failure(old, f"renamed to {new} but {exc}")


__all__ = ["LibraryManager"]
