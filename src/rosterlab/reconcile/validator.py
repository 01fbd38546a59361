"""Check that definition files point at resources that exist on disk.

A character must declare ``sprite``, ``anim``, ``cmd`` and ``cns`` files in its
``[Files]`` section; ``sound`` and ``ai`` are optional. A stage must declare a
``spr`` sprite archive. References are looked up relative to the definition
file, its parent folder and the engine root. When the exact name is absent but
a file differs only by case or by quote characters, the issue carries a fix
that rewrites the reference.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Sequence

from rosterlab.batch import BatchResult
from rosterlab.defs import DefFile, parse_def_text, read_def_text
from rosterlab.errors import InvalidContentError
from rosterlab.library import ContentItem, ContentKind

LOGGER = logging.getLogger(__name__)

CHARACTER_REQUIRED = ("sprite", "anim", "cmd", "cns")
CHARACTER_OPTIONAL = ("sound", "ai")

_QUOTES = str.maketrans("", "", "'`\"‘’")
_SPECIAL = set("&%$#@!*()[]{}|\\:\"<>?")


class Severity(str, Enum):
    """How serious a validation issue is; only errors make content broken."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(slots=True, frozen=True)
class ReferenceFix:
    """Rewrite ``old`` to ``new`` inside ``def_path``."""

    def_path: Path
    old: str
    new: str


@dataclass(slots=True)
class ValidationIssue:
    severity: Severity
    message: str
    file: str
    suggestion: Optional[str] = None
    fix: Optional[ReferenceFix] = None

    @property
    def is_fixable(self) -> bool:
        return self.fix is not None

    def as_warning(self) -> "ValidationIssue":
        if self.severity is not Severity.ERROR:
            return self
        return ValidationIssue(Severity.WARNING, self.message, self.file, self.suggestion, self.fix)


@dataclass(slots=True)
class ValidationResult:
    """Issues found for one character folder or stage definition."""

    item_id: str
    kind: ContentKind
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity is Severity.ERROR for issue in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def count(self, severity: Severity) -> int:
        return sum(1 for issue in self.issues if issue.severity is severity)

    @property
    def fixable(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.is_fixable]


class ContentValidator:
    """Validate the resources referenced by character and stage definitions.

    Args:
        root: Engine working directory, used as the last lookup location for
            root-relative references such as ``chars/kfm/kfm.sff``.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = root

    def validate(self, item: ContentItem, def_path: Path | None = None) -> ValidationResult:
        """Validate a scanned item, optionally against a specific definition file."""
        if item.kind is ContentKind.CHARACTER:
            return self.validate_character(item.path, def_path or item.def_path)
        if item.kind is ContentKind.STAGE:
            return self.validate_stage(def_path or item.def_path or item.path)
        return ValidationResult(item.id, item.kind)

    def validate_character(self, folder: Path, def_path: Path | None) -> ValidationResult:
        result = ValidationResult(folder.name, ContentKind.CHARACTER)
        if def_path is None or not def_path.is_file():
            result.issues.append(
                ValidationIssue(
                    Severity.ERROR,
                    "No .def file found",
                    folder.name,
                    suggestion=f"Add a character definition such as {folder.name}.def",
                )
            )
            return result

        parsed = self._parse(def_path, result)
        if parsed is None:
            return result
        files = parsed.sections.get("files", {})
        for key in CHARACTER_REQUIRED:
            reference = files.get(key) or None
            if reference is None:
                result.issues.append(
                    ValidationIssue(
                        Severity.ERROR,
                        f"Missing required '{key}' reference in [Files] section",
                        def_path.name,
                        suggestion=f"Add '{key} = <filename>' to the [Files] section",
                    )
                )
                continue
            result.issues.extend(self.check_reference(reference, def_path, f"{key.capitalize()} file"))
        for key in CHARACTER_OPTIONAL:
            reference = files.get(key) or None
            if reference is not None:
                issues = self.check_reference(reference, def_path, f"{key.capitalize()} file")
                result.issues.extend(issue.as_warning() for issue in issues)
        result.issues.extend(check_filename(folder.name))
        return result

    def validate_stage(self, def_path: Path) -> ValidationResult:
        result = ValidationResult(def_path.stem, ContentKind.STAGE)
        parsed = self._parse(def_path, result)
        if parsed is None:
            return result
        sprite = parsed.value("spr", "bgdef") or parsed.value("spr")
        if not sprite:
            result.issues.append(
                ValidationIssue(
                    Severity.ERROR,
                    "No sprite file (spr) defined",
                    def_path.name,
                    suggestion="Add 'spr = <filename>.sff' to the [BGdef] section",
                )
            )
        else:
            result.issues.extend(self.check_reference(sprite, def_path, "Sprite file (.sff)"))
        sound = parsed.value("snd", "bgdef")
        if sound:
            issues = self.check_reference(sound, def_path, "Sound file (.snd)")
            result.issues.extend(issue.as_warning() for issue in issues)
        result.issues.extend(check_filename(def_path.stem))
        return result

    def validate_all(self, items: Iterable[ContentItem]) -> list[ValidationResult]:
        """Validate characters and stages, keeping only results with issues."""
        results = []
        for item in items:
            if item.kind is ContentKind.SCREENPACK:
                continue
            result = self.validate(item)
            if result.issues:
                results.append(result)
        return results

    def check_reference(self, reference: str, def_path: Path, label: str) -> list[ValidationIssue]:
        """Return the issues for one resource reference; empty when it resolves."""
        normalized = reference.replace("\\", "/")
        candidates = self._candidates(normalized, def_path)
        if any(candidate.is_file() for candidate in candidates):
            return []

        folder_part, _, search_name = normalized.rpartition("/")
        for candidate in candidates:
            actual = _find_similar(candidate.parent, search_name)
            if actual is None:
                continue
            new_reference = reference[: len(reference) - len(search_name)] + actual
            return [
                ValidationIssue(
                    Severity.ERROR,
                    f"{label} has {_mismatch_kind(search_name, actual)}: "
                    f"{reference!r} -> actual: {actual!r}",
                    def_path.name,
                    suggestion=f"Update the .def file to reference {new_reference!r}",
                    fix=ReferenceFix(def_path, reference, new_reference),
                )
            ]
        return [
            ValidationIssue(
                Severity.ERROR,
                f"{label} not found: {reference!r}",
                def_path.name,
                suggestion=f"Check that {search_name!r} exists{' in ' + folder_part if folder_part else ''}",
            )
        ]

    def _candidates(self, normalized: str, def_path: Path) -> list[Path]:
        base = def_path.parent
        if "/" not in normalized:
            return [base / normalized]
        candidates = [base / normalized, base.parent / normalized]
        if self.root is not None:
            candidates.append(self.root / normalized)
        return candidates

    @staticmethod
    def _parse(def_path: Path, result: ValidationResult) -> DefFile | None:
        try:
            return parse_def_text(read_def_text(def_path))
        except InvalidContentError as exc:
            result.issues.append(
                ValidationIssue(
                    Severity.ERROR,
                    "Cannot read .def file",
                    def_path.name,
                    suggestion=str(exc),
                )
            )
            return None


def check_filename(name: str) -> list[ValidationIssue]:
    """Flag folder or file names the engine may trip over on some systems."""
    issues = []
    if "'" in name:
        issues.append(
            ValidationIssue(
                Severity.WARNING,
                "Name contains an apostrophe",
                name,
                suggestion="Remove the apostrophe to avoid path issues",
            )
        )
    if " " in name:
        issues.append(ValidationIssue(Severity.INFO, "Name contains spaces", name))
    if any(char in _SPECIAL for char in name):
        issues.append(
            ValidationIssue(
                Severity.WARNING,
                "Name contains special characters",
                name,
                suggestion="Use only letters, numbers, underscores and hyphens",
            )
        )
    return issues


def apply_fixes(results: Sequence[ValidationResult]) -> BatchResult[str]:
    """Rewrite every fixable reference in place.

    Only ``key = value`` values equal to the old reference are rewritten, so a
    file name that also appears in a comment or another key stays untouched.

    Returns:
        BatchResult[str]: Descriptions of applied fixes plus per-file failures.
    """
    outcome: BatchResult[str] = BatchResult()
    for result in results:
        for issue in result.fixable:
            fix = issue.fix
            if fix is None:
                continue
            try:
                original = read_def_text(fix.def_path)
                pattern = re.compile(
                    r"(?m)^(\s*[^;=\r\n]+?=\s*\"?)" + re.escape(fix.old) + r"(?=\"?\s*(?:;|$))"
                )
                text = pattern.sub(lambda match: match.group(1) + fix.new, original)
                if text == original:
                    outcome.record_failure(fix.def_path.name, f"reference {fix.old!r} not found")
                    continue
                fix.def_path.write_bytes(text.encode("utf-8"))
            except (InvalidContentError, OSError) as exc:
                outcome.record_failure(fix.def_path.name, exc)
                continue
            LOGGER.info("Updated %s: %s -> %s", fix.def_path, fix.old, fix.new)
            outcome.succeeded.append(f"{fix.def_path.name}: {fix.old} -> {fix.new}")
    return outcome


def _find_similar(directory: Path, name: str) -> str | None:
    if not directory.is_dir():
        return None
    folded = name.casefold()
    loose = name.casefold().translate(_QUOTES)
    for child in sorted(directory.iterdir(), key=lambda path: path.name):
        if child.name == name or not child.is_file():
            continue
        if child.name.casefold() == folded or child.name.casefold().translate(_QUOTES) == loose:
            return child.name
    return None


def _mismatch_kind(reference: str, actual: str) -> str:
    if reference.casefold() == actual.casefold():
        return "a case mismatch"
    if reference.translate(_QUOTES) == actual.translate(_QUOTES):
        return "a special character mismatch"
    return "a case and character mismatch"


__all__ = [
    "CHARACTER_OPTIONAL",
    "CHARACTER_REQUIRED",
    "ContentValidator",
    "ReferenceFix",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "apply_fixes",
    "check_filename",
]
