"""Reconcile the filesystem, the roster script and the library index."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rosterlab.batch import CancelToken, check_cancelled
from rosterlab.errors import NotFoundError
from rosterlab.index import LibraryIndex, ReindexSummary
from rosterlab.library import (
    ContentItem,
    ContentKind,
    ContentStatus,
    LibraryLayout,
    LibraryScanner,
    ScanResult,
)
from rosterlab.roster import EntryKind, RosterEntry, RosterScriptStore, ScriptModel

from .duplicates import DuplicateDetector, DuplicateGroup, OutdatedItem
from .status import ScriptState, derive_status
from .validator import ContentValidator, ValidationResult

LOGGER = logging.getLogger(__name__)

RECONCILED_KINDS = (ContentKind.CHARACTER, ContentKind.STAGE)


@dataclass(slots=True)
class ReconciledItem:
    """One item with its derived status.

    Attributes:
        kind: Character or stage.
        item_id: Folder name or stage stem.
        status: Derived status.
        item: Scanned item, None when missing from disk.
        script_state: How the roster script refers to the item.
        entries: Roster entries referencing the item, in script order.
        paths: Every on-disk path claiming the identity (several for duplicates).
        position: Index in roster-script order; None for unlisted items.
        validation: Resource check of the definition in use, when one ran.
    """

    kind: ContentKind
    item_id: str
    status: ContentStatus
    item: Optional[ContentItem] = None
    script_state: ScriptState = ScriptState.ABSENT
    entries: list[RosterEntry] = field(default_factory=list)
    paths: list[Path] = field(default_factory=list)
    position: Optional[int] = None
    validation: Optional[ValidationResult] = None

    @property
    def name(self) -> str:
        return self.item.display_name if self.item is not None else self.item_id

    @property
    def author(self) -> str | None:
        return self.item.author if self.item is not None else None

    @property
    def reference(self) -> str | None:
        return self.entries[0].reference if self.entries else None


@dataclass(slots=True)
class ReconciliationReport:
    """Result of one reconciliation pass."""

    items: list[ReconciledItem] = field(default_factory=list)
    screenpacks: list[ContentItem] = field(default_factory=list)
    duplicate_groups: list[DuplicateGroup] = field(default_factory=list)
    outdated: list[OutdatedItem] = field(default_factory=list)
    index_summary: Optional[ReindexSummary] = None
    reconciled_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def validation_results(self) -> list[ValidationResult]:
        """Return the resource checks that found at least one issue."""
        return [entry.validation for entry in self.items if entry.validation is not None and entry.validation.issues]

    def of_kind(self, kind: ContentKind) -> list[ReconciledItem]:
        return [entry for entry in self.items if entry.kind is kind]

    def with_status(self, status: ContentStatus) -> list[ReconciledItem]:
        return [entry for entry in self.items if entry.status is status]

    def get(self, kind: ContentKind, item_id: str) -> ReconciledItem | None:
        folded = item_id.casefold()
        for entry in self.items:
            if entry.kind is kind and entry.item_id.casefold() == folded:
                return entry
        return None

    def counts(self) -> dict[str, int]:
        """Return item counts keyed by status value."""
        counter = Counter(entry.status.value for entry in self.items)
        return {status.value: counter.get(status.value, 0) for status in ContentStatus}


class ContentStatusReconciler:
    """Derive one status per item without ever repairing anything.

    An item is broken when its definition cannot be parsed or references a
    required resource that is not on disk. It is a duplicate when another path
    claims the same identity, or when it is a secondary copy in an exact-name or
    identical-definition group; similar-name groups are reported only.
    """

    def __init__(
        self,
        scanner: LibraryScanner,
        store: RosterScriptStore,
        index: LibraryIndex | None = None,
        *,
        validator: ContentValidator | None = None,
        detector: DuplicateDetector | None = None,
    ) -> None:
        self.scanner = scanner
        self.store = store
        self.index = index
        self.validator = validator or ContentValidator(scanner.layout.working_dir)
        self.detector = detector or DuplicateDetector()

    @property
    def layout(self) -> LibraryLayout:
        return self.scanner.layout

    def run(self, cancel: CancelToken | None = None) -> ReconciliationReport:
        """Scan, load the script, derive statuses and reindex.

        Args:
            cancel: Token checked between items; a cancelled run leaves the
                index as it was.

        Returns:
            ReconciliationReport: Statuses plus the reindex summary.

        Raises:
            OperationCancelled: If ``cancel`` fires.
            RosterScriptError: If the roster script cannot be parsed.
        """
        scan = self.scanner.scan(cancel)
        model = self._load_script()
        check_cancelled(cancel)
        report = self.reconcile(scan, model)
        if self.index is not None:
            report.index_summary = self.index.reindex(scan.items, cancel=cancel)
        LOGGER.info("Reconciled library: %s", report.counts())
        return report

    def reconcile(self, scan: ScanResult, model: ScriptModel) -> ReconciliationReport:
        """Derive statuses from a scan and a parsed roster script.

        Listed items come first in roster-script order; items only found on disk
        follow sorted by name.
        """
        report = ReconciliationReport(screenpacks=scan.of_kind(ContentKind.SCREENPACK))
        groups = scan.grouped()
        listed: set[tuple[ContentKind, str]] = set()

        content = [item for item in scan.items if item.kind in RECONCILED_KINDS]
        report.duplicate_groups = self.detector.find_duplicates(content)
        report.outdated = self.detector.find_outdated(content)
        shadowed = self._shadowed(report.duplicate_groups, model)

        position = 0
        for kind in RECONCILED_KINDS:
            for folded, entries in self._script_groups(model, kind).items():
                key = (kind, folded)
                listed.add(key)
                reconciled = self._reconcile_listed(kind, entries, groups.get(key, []), key in shadowed)
                if reconciled is None:
                    continue
                reconciled.position = position
                position += 1
                report.items.append(reconciled)

        unlisted = []
        for key, found in groups.items():
            if key[0] not in RECONCILED_KINDS or key in listed:
                continue
            item = found[0]
            duplicate = len(found) > 1 or key in shadowed
            validation = None if duplicate or not item.valid else self.validator.validate(item)
            valid = item.valid and (validation is None or not validation.has_errors)
            status = derive_status(True, ScriptState.ABSENT, valid, duplicate)
            if status is None:
                continue
            unlisted.append(
                ReconciledItem(
                    kind=item.kind,
                    item_id=item.id,
                    status=status,
                    item=item,
                    paths=[candidate.path for candidate in found],
                    validation=validation,
                )
            )
        unlisted.sort(key=lambda entry: (entry.kind.value, entry.name.casefold(), entry.item_id))
        report.items.extend(unlisted)
        return report

    # Internal helpers -------------------------------------------------

    def _load_script(self) -> ScriptModel:
        try:
            return self.store.load()
        except NotFoundError:
            LOGGER.warning("No roster script at %s; treating it as empty", self.store.script_path)
            return ScriptModel(lines=())

    @staticmethod
    def _script_groups(model: ScriptModel, kind: ContentKind) -> dict[str, list[RosterEntry]]:
        groups: dict[str, list[RosterEntry]] = {}
        for entry in model.entries(EntryKind(kind.value)):
            if entry.is_content:
                groups.setdefault(entry.item_id.casefold(), []).append(entry)
        return groups

    @staticmethod
    def _shadowed(groups: list[DuplicateGroup], model: ScriptModel) -> set[tuple[ContentKind, str]]:
        """Order each group so the copy to keep comes first; return the others' keys.

        The copy to keep is the first one the roster script enables, otherwise
        the first by id.
        """
        enabled: dict[tuple[ContentKind, str], int] = {}
        for kind in RECONCILED_KINDS:
            for entry in model.entries(EntryKind(kind.value)):
                if entry.is_content and entry.enabled:
                    enabled.setdefault((kind, entry.item_id.casefold()), len(enabled))

        def rank(item: ContentItem) -> tuple[int, str]:
            return enabled.get(item.key, len(enabled)), item.id.casefold()

        shadowed: set[tuple[ContentKind, str]] = set()
        for group in groups:
            group.items.sort(key=rank)
            if not group.affects_status or group.primary is None:
                continue
            keep = group.primary.key
            shadowed.update(item.key for item in group.duplicates if item.key != keep)
        return shadowed

    def _reconcile_listed(
        self,
        kind: ContentKind,
        entries: list[RosterEntry],
        found: list[ContentItem],
        shadowed: bool = False,
    ) -> ReconciledItem | None:
        enabled = [entry for entry in entries if entry.enabled]
        state = ScriptState.ENABLED if enabled else ScriptState.DISABLED
        primary = (enabled or entries)[0]
        validation = None

        if len(found) > 1:
            item: ContentItem | None = found[0]
            valid = True
            paths = [candidate.path for candidate in found]
        else:
            item, valid = self._locate(kind, primary, found)
            paths = [item.path] if item is not None else []
            if item is not None and valid and not shadowed:
                validation = self.validator.validate(item, self._definition(kind, primary, item))
                valid = not validation.has_errors

        status = derive_status(item is not None, state, valid, len(found) > 1 or shadowed)
        if status is None:
            return None
        return ReconciledItem(
            kind=kind,
            item_id=item.id if item is not None else primary.item_id,
            status=status,
            item=item,
            script_state=state,
            entries=entries,
            paths=paths,
            validation=validation,
        )

    @staticmethod
    def _definition(kind: ContentKind, entry: RosterEntry, item: ContentItem) -> Path | None:
        """Return the definition file a roster entry actually loads."""
        if kind is ContentKind.CHARACTER and entry.selector is not None:
            return item.path / entry.selector
        return item.def_path

    def _locate(
        self, kind: ContentKind, entry: RosterEntry, found: list[ContentItem]
    ) -> tuple[ContentItem | None, bool]:
        """Check the path an entry references directly on disk."""
        if kind is ContentKind.CHARACTER:
            folder = self.layout.chars_dir / entry.item_id
            if not folder.is_dir():
                return None, False
            item = found[0] if found else self.scanner.describe_character(folder)
            valid = item.valid
            if valid and entry.selector is not None:
                valid = self.scanner.character_def_is_valid(item.path, entry.selector)
            return item, valid

        path = self.layout.stages_dir / (entry.selector or f"{entry.item_id}.def")
        if not path.is_file():
            return None, False
        item = next((candidate for candidate in found if candidate.path == path), None)
        if item is None:
            item = self.scanner.describe_stage(path, include_invalid=True)
        if item is None:
            return None, False
        return item, item.valid


__all__ = ["ContentStatusReconciler", "ReconciledItem", "ReconciliationReport", "RECONCILED_KINDS"]
