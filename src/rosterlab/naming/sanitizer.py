"""Folder-name normalization and declared-name mismatch detection."""

from __future__ import annotations

import logging
import re
import string
import uuid
from itertools import takewhile
from pathlib import Path
from typing import Callable, Iterable

from rosterlab.batch import BatchResult
from rosterlab.config.models import NamingSettings
from rosterlab.defs import parse_def_file
from rosterlab.errors import InvalidContentError, RosterLabError

LOGGER = logging.getLogger(__name__)

FALLBACK_NAME = "Unnamed"

_RUNS = (re.compile(r"_{2,}"), re.compile(r"-{2,}"))
_ACRONYM_MAX = 4
_ALLOWED = frozenset(string.ascii_letters + string.digits + "_-")

RenameCallback = Callable[[str, str], None]


def _title_word(word: str) -> str:
    if not word:
        return word
    if word.upper() == word and len(word) <= _ACRONYM_MAX:
        return word
    if word[-1].isdigit():
        letters = "".join(takewhile(lambda char: not char.isdigit(), word))
        if not letters:
            return word
        return letters[:1].upper() + letters[1:].lower() + word[len(letters) :]
    return word[:1].upper() + word[1:].lower()


def sanitize(name: str) -> str:
    """Map ``name`` onto the engine-friendly ``Title_Case`` identifier set.

    Spaces become underscores, anything other than ASCII letters, digits,
    ``_`` and ``-`` is dropped, separator runs collapse, and each ``_``/``-`` separated
    word is title-cased (short all-caps acronyms and digit-only words are kept).
    The function is pure and idempotent; an empty result becomes ``Unnamed``.

    Examples:
        >>> sanitize("kung fu man")
        'Kung_Fu_Man'
        >>> sanitize("KFM (edit)!!")
        'KFM_Edit'
    """
    text = name.replace(" ", "_")
    text = "".join(char for char in text if char in _ALLOWED)
    text = _RUNS[0].sub("_", text)
    text = _RUNS[1].sub("-", text)
    text = text.replace("_-", "_").replace("-_", "_")
    text = _RUNS[0].sub("_", text).strip("_-")
    text = "_".join(
        "-".join(_title_word(word) for word in segment.split("-")) for segment in text.split("_")
    )
    return text or FALLBACK_NAME


def needs_sanitization(name: str) -> bool:
    return sanitize(name) != name


def unique_name(parent: Path, base: str, *, ignore: Path | None = None) -> str:
    """Return ``base`` or the first free ``base_N`` (N >= 2) inside ``parent``."""
    candidate = base
    counter = 2
    while (parent / candidate).exists() and not _same_entry(parent / candidate, ignore):
        candidate = f"{base}_{counter}"
        counter += 1
    return candidate


def _same_entry(path: Path, other: Path | None) -> bool:
    if other is None:
        return False
    try:
        return path.samefile(other)
    except OSError:
        return False


def rename_entry(path: Path, new_name: str) -> Path:
    """Rename ``path`` within its parent, handling case-only renames.

    Raises:
        OSError: If the filesystem refuses the rename.
    """
    target = path.with_name(new_name)
    if target.exists() and _same_entry(target, path) and path.name != new_name:
        # Case-insensitive filesystems need a detour for case-only renames.
        interim = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}")
        path.rename(interim)
        path = interim
    path.rename(target)
    return target


def stage_needs_better_name(name: str) -> bool:
    """Flag placeholder-looking stage names such as ``"A"`` or ``"XYZ"``."""
    return len(name) <= 2 or (len(name) <= 3 and name == name.upper() and " " not in name)


def suggest_stage_name(stem: str) -> str:
    """Derive a readable stage name from a definition file stem."""
    words = stem.replace("_", " ").replace("-", " ").split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


class NameSanitizer:
    """Sanitize content folders and reconcile them with declared names."""

    def __init__(self, settings: NamingSettings | None = None) -> None:
        self.settings = settings or NamingSettings()

    sanitize = staticmethod(sanitize)
    needs_sanitization = staticmethod(needs_sanitization)

    def declared_name(self, def_path: Path) -> str | None:
        """Return the declared name when it passes the length threshold."""
        try:
            parsed = parse_def_file(def_path)
        except InvalidContentError as exc:
            LOGGER.debug("Skipping mismatch check for %s: %s", def_path, exc)
            return None
        declared = (parsed.name or parsed.display_name or "").strip()
        if len(declared) <= self.settings.min_declared_name_length:
            return None
        return declared

    def detect_mismatch(self, folder: Path, def_path: Path | None = None) -> str | None:
        """Suggest a folder name derived from the declared character name.

        Args:
            folder: Character folder.
            def_path: Definition file to read; defaults to ``<folder>/<folder>.def``.

        Returns:
            str | None: Suggested folder name, or None when the folder is fine.
        """
        def_path = def_path or folder / f"{folder.name}.def"
        if not def_path.is_file():
            return None
        declared = self.declared_name(def_path)
        if declared is None:
            return None

        ideal = sanitize(declared)
        current = folder.name
        if ideal.casefold() == current.casefold():
            return None
        if self._looks_generic(current):
            return ideal
        return None

    def sanitize_folder(self, folder: Path) -> str | None:
        """Rename ``folder`` to its sanitized name.

        Returns:
            str | None: The new name, or None when no rename was needed.

        Raises:
            OSError: If the rename fails.
        """
        target = sanitize(folder.name)
        if target == folder.name:
            return None
        new_name = unique_name(folder.parent, target, ignore=folder)
        rename_entry(folder, new_name)
        LOGGER.info("Sanitized folder %s -> %s", folder.name, new_name)
        return new_name

    def sanitize_all(
        self, directory: Path, on_renamed: RenameCallback | None = None
    ) -> BatchResult[tuple[str, str]]:
        """Sanitize every visible sub-folder of ``directory``.

        Failures are collected per folder; the batch always runs to the end.
        """
        return self._batch(self._folders(directory), self.sanitize_folder, on_renamed)

    def fix_mismatched(self, folder: Path, def_path: Path | None = None) -> str | None:
        """Rename ``folder`` to its suggested name, if any.

        Raises:
            OSError: If the rename fails.
        """
        suggestion = self.detect_mismatch(folder, def_path)
        if suggestion is None:
            return None
        new_name = unique_name(folder.parent, suggestion, ignore=folder)
        rename_entry(folder, new_name)
        LOGGER.info("Renamed misnamed folder %s -> %s", folder.name, new_name)
        return new_name

    def find_mismatched(
        self, directory: Path, def_lookup: Callable[[Path], Path | None] | None = None
    ) -> list[tuple[Path, str]]:
        found = []
        for folder in self._folders(directory):
            def_path = def_lookup(folder) if def_lookup else None
            suggestion = self.detect_mismatch(folder, def_path)
            if suggestion is not None:
                found.append((folder, suggestion))
        return found

    def fix_all_mismatched(
        self,
        directory: Path,
        on_renamed: RenameCallback | None = None,
        def_lookup: Callable[[Path], Path | None] | None = None,
    ) -> BatchResult[tuple[str, str]]:
        """Apply ``fix_mismatched`` to every visible sub-folder of ``directory``."""

        def _fix(folder: Path) -> str | None:
            return self.fix_mismatched(folder, def_lookup(folder) if def_lookup else None)

        return self._batch(self._folders(directory), _fix, on_renamed)

    # Internal helpers -------------------------------------------------

    def _looks_generic(self, folder_name: str) -> bool:
        lowered = folder_name.casefold()
        if self.settings.flag_numeric_prefix and lowered[:1].isdigit():
            return True
        return any(lowered.startswith(prefix.casefold()) for prefix in self.settings.generic_folder_prefixes)

    @staticmethod
    def _folders(directory: Path) -> list[Path]:
        if not directory.is_dir():
            return []
        return sorted(
            (child for child in directory.iterdir() if child.is_dir() and not child.name.startswith(".")),
            key=lambda path: path.name.casefold(),
        )

    @staticmethod
    def _batch(
        folders: Iterable[Path],
        action: Callable[[Path], str | None],
        on_renamed: RenameCallback | None,
    ) -> BatchResult[tuple[str, str]]:
        result: BatchResult[tuple[str, str]] = BatchResult()
        for folder in folders:
            old_name = folder.name
            try:
                new_name = action(folder)
            except OSError as exc:
                LOGGER.warning("Could not rename %s: %s", folder, exc)
                result.record_failure(old_name, exc)
                continue
            if new_name is None:
                continue
            result.succeeded.append((old_name, new_name))
            if on_renamed is not None:
                try:
                    on_renamed(old_name, new_name)
                except RosterLabError as exc:
                    result.record_failure(old_name, f"renamed to {new_name} but {exc}")
        return result


__all__ = [
    "FALLBACK_NAME",
    "NameSanitizer",
    "sanitize",
    "needs_sanitization",
    "unique_name",
    "rename_entry",
    "stage_needs_better_name",
    "suggest_stage_name",
]
