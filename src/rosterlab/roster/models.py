"""Line-level model of the roster script."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Union


class EntryKind(str, Enum):
    """Kind of content an entry section references."""

    CHARACTER = "character"
    STAGE = "stage"


class SlotType(str, Enum):
    """What a roster entry occupies in the select grid."""

    CONTENT = "content"
    RANDOM = "random"
    EMPTY = "empty"


SECTION_FOR_KIND = {EntryKind.CHARACTER: "characters", EntryKind.STAGE: "extrastages"}
KIND_FOR_SECTION = {section: kind for kind, section in SECTION_FOR_KIND.items()}
HEADER_FOR_KIND = {EntryKind.CHARACTER: "[Characters]", EntryKind.STAGE: "[ExtraStages]"}


def normalize_selector(value: str | None) -> str | None:
    if value is None:
        return None
    return value.replace("\\", "/").strip("/").casefold()


@dataclass(frozen=True, slots=True)
class GridPosition:
    """Manual select-screen cell for an entry."""

    row: int
    column: int


@dataclass(frozen=True, slots=True)
class RosterEntry:
    """Parsed content of an entry line.

    Attributes:
        kind: Section kind the entry belongs to.
        slot: Content reference, random placeholder or empty spacer.
        reference: First comma field exactly as written, stripped.
        item_id: Character folder or stage def stem; empty for placeholders.
        selector: Sub-definition (``kfm720.def``) or stage path relative to ``stages/``.
        params: Remaining comma fields, stripped.
        grid: Optional manual grid position annotation.
        comment: Inline comment text with any grid annotation removed.
        enabled: False when the line is commented out.
    """

    kind: EntryKind
    slot: SlotType
    reference: str
    item_id: str
    selector: Optional[str]
    params: tuple[str, ...]
    grid: Optional[GridPosition]
    comment: Optional[str]
    enabled: bool

    @property
    def is_content(self) -> bool:
        return self.slot is SlotType.CONTENT

    def matches(self, item_id: str, selector: str | None = None) -> bool:
        """Return True when this entry references ``item_id`` (and ``selector`` if given)."""
        if not self.is_content or self.item_id.casefold() != item_id.casefold():
            return False
        if selector is None:
            return True
        return normalize_selector(self.selector) == normalize_selector(selector)


@dataclass(frozen=True, slots=True)
class ScriptLine:
    """A physical line: text without terminator plus its own terminator."""

    raw: str
    newline: str
    section: Optional[str]


@dataclass(frozen=True, slots=True)
class BlankLine(ScriptLine):
    pass


@dataclass(frozen=True, slots=True)
class CommentLine(ScriptLine):
    pass


@dataclass(frozen=True, slots=True)
class UnknownLine(ScriptLine):
    """A line matching no known grammar; kept verbatim."""


@dataclass(frozen=True, slots=True)
class SectionHeader(ScriptLine):
    name: str


@dataclass(frozen=True, slots=True)
class Directive(ScriptLine):
    key: str
    value: str


@dataclass(frozen=True, slots=True)
class EntryLine(ScriptLine):
    entry: RosterEntry


Line = Union[BlankLine, CommentLine, UnknownLine, SectionHeader, Directive, EntryLine]


@dataclass(frozen=True, slots=True)
class ScriptModel:
    """Ordered, comment-preserving representation of a roster script.

    Attributes:
        lines: Every physical line in file order.
        encoding: Codec used to decode the file (``utf-8`` or ``latin-1``).
        bom: Whether the file started with a UTF-8 byte-order mark.
    """

    lines: tuple[Line, ...]
    encoding: str = "utf-8"
    bom: bool = False

    @property
    def newline(self) -> str:
        """Terminator used for newly inserted lines: the first one seen, else ``\\n``."""
        for line in self.lines:
            if line.newline:
                return line.newline
        return "\n"

    def iter_entry_lines(
        self, kind: EntryKind | None = None
    ) -> Iterator[tuple[int, EntryLine]]:
        for index, line in enumerate(self.lines):
            if isinstance(line, EntryLine) and (kind is None or line.entry.kind is kind):
                yield index, line

    def entries(self, kind: EntryKind | None = None) -> list[RosterEntry]:
        """Return entries (enabled and disabled) in file order."""
        return [line.entry for _, line in self.iter_entry_lines(kind)]

    def find(self, kind: EntryKind, item_id: str, selector: str | None = None) -> list[int]:
        """Return indexes of lines whose entry matches ``item_id``/``selector``."""
        return [
            index
            for index, line in self.iter_entry_lines(kind)
            if line.entry.matches(item_id, selector)
        ]

    def section_names(self) -> list[str]:
        return [line.name for line in self.lines if isinstance(line, SectionHeader)]

    def directives(self, section: str | None = None) -> list[Directive]:
        wanted = section.casefold() if section else None
        return [
            line
            for line in self.lines
            if isinstance(line, Directive) and (wanted is None or line.section == wanted)
        ]


__all__ = [
    "EntryKind",
    "SlotType",
    "GridPosition",
    "RosterEntry",
    "ScriptLine",
    "BlankLine",
    "CommentLine",
    "UnknownLine",
    "SectionHeader",
    "Directive",
    "EntryLine",
    "Line",
    "ScriptModel",
    "SECTION_FOR_KIND",
    "KIND_FOR_SECTION",
    "HEADER_FOR_KIND",
    "normalize_selector",
]
