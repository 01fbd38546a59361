"""Round-trip-safe parsing, rendering and editing of the roster script.

Every line keeps its raw text and terminator, so ``render(parse(text)) == text``
for any input the parser accepts. Edits replace, insert or delete whole lines
and re-parse only the lines they touch; every other line is carried over as
the same object.

Disabled entries use the engine's own comment convention: a ``;`` placed
directly in front of the first non-blank character of the entry line.
"""

from __future__ import annotations

import codecs
import logging
import re
from dataclasses import replace
from pathlib import PurePosixPath
from typing import Iterable, Sequence

from rosterlab.errors import ConflictError, EntryNotFound, RosterScriptError

from .models import (
    HEADER_FOR_KIND,
    KIND_FOR_SECTION,
    SECTION_FOR_KIND,
    BlankLine,
    CommentLine,
    Directive,
    EntryKind,
    EntryLine,
    GridPosition,
    Line,
    RosterEntry,
    ScriptModel,
    SectionHeader,
    SlotType,
    UnknownLine,
    normalize_selector,
)

LOGGER = logging.getLogger(__name__)

COMMENT_MARKER = ";"

_LINE_SPLIT = re.compile(r"(\r\n|\r|\n)")
_SECTION = re.compile(r"^\s*\[([^\]]*)\]")
_DIRECTIVE = re.compile(
    r"^(?P<lead>\s*)(?P<key>[^=;\[\s][^=;]*?)(?P<eq>\s*=\s*)(?P<value>[^;]*?)(?P<trail>\s*(?:;.*)?)$"
)
_GRID = re.compile(r"@grid\s*=\s*(\d+)\s*,\s*(\d+)", re.IGNORECASE)
_PLACEHOLDERS = {"randomselect": SlotType.RANDOM, "empty": SlotType.EMPTY}


# Parsing -----------------------------------------------------------------


def parse(text: str, *, encoding: str = "utf-8", bom: bool = False) -> ScriptModel:
    """Parse roster-script text into a line model.

    Args:
        text: Decoded script contents.
        encoding: Codec the text was decoded with, kept for rendering to bytes.
        bom: Whether a UTF-8 byte-order mark preceded the text.

    Returns:
        ScriptModel: Model whose rendering reproduces ``text`` exactly.

    Raises:
        RosterScriptError: If the text has structure the engine could not read
            back either (NUL bytes, an unterminated section header).
    """
    if text.startswith("\ufeff"):
        text = text[1:]
        bom = True

    parts = _LINE_SPLIT.split(text)
    lines: list[Line] = []
    section: str | None = None
    for index in range(0, len(parts), 2):
        raw = parts[index]
        newline = parts[index + 1] if index + 1 < len(parts) else ""
        if not raw and not newline:
            continue
        line = parse_line(raw, newline, section, line_number=len(lines) + 1)
        if isinstance(line, SectionHeader):
            section = line.section
        lines.append(line)

    return ScriptModel(lines=tuple(lines), encoding=encoding, bom=bom)


def parse_bytes(data: bytes) -> ScriptModel:
    """Decode raw file bytes and parse them.

    UTF-8 is tried first; files written by older tools in a legacy code page
    fall back to Latin-1, which maps every byte and therefore re-encodes
    identically.
    """
    bom = data.startswith(codecs.BOM_UTF8)
    payload = data[len(codecs.BOM_UTF8) :] if bom else data
    try:
        return parse(payload.decode("utf-8"), encoding="utf-8", bom=bom)
    except UnicodeDecodeError:
        LOGGER.info("Roster script is not valid UTF-8; decoding as Latin-1")
        return parse(payload.decode("latin-1"), encoding="latin-1", bom=bom)


def parse_line(
    raw: str, newline: str, section: str | None, *, line_number: int | None = None
) -> Line:
    """Classify a single physical line given the section it appears in."""
    if "\x00" in raw:
        raise RosterScriptError("Roster script contains NUL bytes", line_number=line_number)

    stripped = raw.strip()
    if not stripped:
        return BlankLine(raw, newline, section)

    if stripped.startswith("["):
        match = _SECTION.match(raw)
        if match is None:
            raise RosterScriptError(
                f"Unterminated section header: {stripped!r}", line_number=line_number
            )
        name = match.group(1).strip()
        return SectionHeader(raw, newline, name.casefold(), name)

    kind = KIND_FOR_SECTION.get(section or "")

    if stripped.startswith(COMMENT_MARKER):
        if kind is not None:
            entry = _parse_disabled(stripped, kind)
            if entry is not None:
                return EntryLine(raw, newline, section, entry)
        return CommentLine(raw, newline, section)

    if kind is not None:
        entry = _parse_entry(stripped, kind, enabled=True)
        if entry is not None:
            return EntryLine(raw, newline, section, entry)
        return UnknownLine(raw, newline, section)

    match = _DIRECTIVE.match(raw)
    if match is not None:
        return Directive(
            raw, newline, section, match.group("key").strip(), match.group("value").strip()
        )
    return UnknownLine(raw, newline, section)


def _parse_disabled(stripped: str, kind: EntryKind) -> RosterEntry | None:
    body = stripped[len(COMMENT_MARKER) :]
    if not body or not (body[0].isalnum() or body[0] == "_"):
        return None
    entry = _parse_entry(body, kind, enabled=False)
    if entry is None:
        return None
    reference = entry.reference
    if any(char in reference for char in "=[]"):
        return None
    # Prose such as ";Add your characters below" only counts when it names a path.
    if any(char.isspace() for char in reference) and not _looks_like_path(reference):
        return None
    return entry


def _looks_like_path(reference: str) -> bool:
    return "/" in reference or "\\" in reference or reference.casefold().endswith(".def")


def _parse_entry(body: str, kind: EntryKind, *, enabled: bool) -> RosterEntry | None:
    code, marker, comment_text = body.partition(COMMENT_MARKER)
    fields = code.split(",")
    reference = fields[0].strip()
    if not reference:
        return None
    params = tuple(field.strip() for field in fields[1:])

    grid = None
    comment = None
    if marker:
        grid_match = _GRID.search(comment_text)
        if grid_match is not None:
            grid = GridPosition(int(grid_match.group(1)), int(grid_match.group(2)))
            comment_text = comment_text[: grid_match.start()] + comment_text[grid_match.end() :]
        comment = comment_text.strip() or None

    slot = _PLACEHOLDERS.get(reference.casefold()) if kind is EntryKind.CHARACTER else None
    if slot is not None:
        item_id, selector = "", None
    else:
        slot = SlotType.CONTENT
        if kind is EntryKind.CHARACTER:
            item_id, selector = character_identity(reference)
        else:
            item_id, selector = stage_identity(reference)

    return RosterEntry(
        kind=kind,
        slot=slot,
        reference=reference,
        item_id=item_id,
        selector=selector,
        params=params,
        grid=grid,
        comment=comment,
        enabled=enabled,
    )


def character_identity(reference: str) -> tuple[str, str | None]:
    """Return ``(folder, sub-definition)`` for a character reference.

    ``kfm`` -> ``("kfm", None)``; ``chars\\kfm\\kfm720.def`` -> ``("kfm", "kfm720.def")``;
    a bare ``Ryu.def`` -> ``("Ryu", "Ryu.def")``.
    """
    path = reference.replace("\\", "/").strip().strip("/")
    if path.casefold().startswith("chars/"):
        path = path[len("chars/") :]
    folder, slash, rest = path.partition("/")
    if slash:
        return folder, rest or None
    if folder.casefold().endswith(".def"):
        return folder[: -len(".def")], folder
    return folder, None


def stage_identity(reference: str) -> tuple[str, str]:
    """Return ``(stem, path relative to stages/)`` for a stage reference."""
    path = reference.replace("\\", "/").strip().strip("/")
    if path.casefold().startswith("stages/"):
        path = path[len("stages/") :]
    return PurePosixPath(path).stem, path


# Rendering ---------------------------------------------------------------


def render(model: ScriptModel) -> str:
    """Serialize a model back to text (without any byte-order mark)."""
    return "".join(line.raw + line.newline for line in model.lines)


def render_bytes(model: ScriptModel) -> bytes:
    """Serialize a model to the bytes it was read from, BOM included."""
    payload = render(model).encode(model.encoding)
    return codecs.BOM_UTF8 + payload if model.bom else payload


# Canonical formatting ----------------------------------------------------


def character_reference(folder: str, def_file: str | None = None) -> str:
    """Return the canonical entry reference for a character.

    The bare folder name is used when the definition file is ``<folder>.def``
    (exact case); otherwise ``folder/file.def``.
    """
    if def_file is None or def_file == f"{folder}.def":
        return folder
    return f"{folder}/{def_file}"


def stage_reference(name: str) -> str:
    """Return the canonical ``stages/<name>.def`` reference."""
    relative = name if name.casefold().endswith(".def") else f"{name}.def"
    return f"stages/{relative}"


def format_entry(
    reference: str,
    params: Sequence[str] = (),
    *,
    grid: GridPosition | None = None,
    comment: str | None = None,
) -> str:
    """Build entry-line text such as ``kfm, stages/kfm.def ; @grid=1,2``."""
    text = ", ".join([reference, *params])
    trailer = [part for part in (comment, _grid_token(grid)) if part]
    if trailer:
        text += f" {COMMENT_MARKER} " + " ".join(trailer)
    return text


def _grid_token(grid: GridPosition | None) -> str | None:
    if grid is None:
        return None
    return f"@grid={grid.row},{grid.column}"


# Editing -----------------------------------------------------------------


def disable(
    model: ScriptModel, kind: EntryKind, item_id: str, selector: str | None = None
) -> ScriptModel:
    """Comment out every enabled entry matching ``item_id``.

    Raises:
        EntryNotFound: If no entry, enabled or disabled, matches.
    """
    indexes = _require(model, kind, item_id, selector)
    lines = list(model.lines)
    for index in indexes:
        line = lines[index]
        if not isinstance(line, EntryLine) or not line.entry.enabled:
            continue
        lead = _leading_ws(line.raw)
        raw = line.raw[:lead] + COMMENT_MARKER + line.raw[lead:]
        lines[index] = _reparse(line, raw)
    return replace(model, lines=tuple(lines))


def enable(
    model: ScriptModel, kind: EntryKind, item_id: str, selector: str | None = None
) -> ScriptModel:
    """Remove the comment marker from every disabled entry matching ``item_id``.

    Raises:
        EntryNotFound: If no entry, enabled or disabled, matches.
    """
    indexes = _require(model, kind, item_id, selector)
    lines = list(model.lines)
    for index in indexes:
        line = lines[index]
        if not isinstance(line, EntryLine) or line.entry.enabled:
            continue
        lead = _leading_ws(line.raw)
        raw = line.raw[:lead] + line.raw[lead + len(COMMENT_MARKER) :]
        lines[index] = _reparse(line, raw)
    return replace(model, lines=tuple(lines))


def add(
    model: ScriptModel,
    kind: EntryKind,
    reference: str,
    *,
    params: Sequence[str] = (),
    position: int | None = None,
    grid: GridPosition | None = None,
    comment: str | None = None,
) -> ScriptModel:
    """Insert a new entry line into the section for ``kind``.

    Args:
        model: Script to edit.
        kind: Character or stage section.
        reference: Entry reference, normally from ``character_reference`` or
            ``stage_reference``.
        params: Extra comma fields for the entry.
        position: Insert before the section's entry at this index; appends after
            the last entry when omitted or out of range.
        grid: Optional grid annotation.
        comment: Optional inline comment.

    Returns:
        ScriptModel: Edited model. A missing section is created at end of file.

    Raises:
        ConflictError: If an entry for the same id and sub-definition exists.
    """
    if reference.casefold() not in _PLACEHOLDERS or kind is EntryKind.STAGE:
        identity = (
            character_identity(reference)
            if kind is EntryKind.CHARACTER
            else stage_identity(reference)
        )
        for _, line in model.iter_entry_lines(kind):
            entry = line.entry
            if entry.matches(identity[0]) and normalize_selector(
                entry.selector
            ) == normalize_selector(identity[1]):
                raise ConflictError(
                    f"{kind.value.capitalize()} {identity[0]!r} is already in the roster script",
                    item_id=identity[0],
                )

    text = format_entry(reference, params, grid=grid, comment=comment)
    section = SECTION_FOR_KIND[kind]
    lines = list(model.lines)
    bounds = _section_bounds(lines, section)
    if bounds is None:
        LOGGER.debug("Creating %s section for new entry", HEADER_FOR_KIND[kind])
        return _append(model, lines, [HEADER_FOR_KIND[kind], text])

    header_index, end = bounds
    slots = [
        index
        for index in range(header_index + 1, end)
        if isinstance(lines[index], EntryLine)
    ]
    if position is not None and 0 <= position < len(slots):
        insert_at = slots[position]
    else:
        insert_at = (slots[-1] if slots else header_index) + 1
    return _insert(model, lines, insert_at, text, section)


def remove(
    model: ScriptModel, kind: EntryKind, item_id: str, selector: str | None = None
) -> ScriptModel:
    """Delete every line (enabled or disabled) referencing ``item_id``.

    Raises:
        EntryNotFound: If nothing matches.
    """
    doomed = set(_require(model, kind, item_id, selector))
    kept = tuple(line for index, line in enumerate(model.lines) if index not in doomed)
    return replace(model, lines=kept)


def reorder(model: ScriptModel, kind: EntryKind, order: Iterable[str]) -> ScriptModel:
    """Rearrange content entries of ``kind`` to follow ``order``.

    Listed ids come first in the given order (an id with several entries keeps
    their relative order); unlisted entries follow in their current order. Ids
    without entries are ignored. Placeholder, comment, blank and directive lines
    stay where they are, and every slot keeps its own line terminator.
    """
    rank: dict[str, int] = {}
    for item_id in order:
        rank.setdefault(item_id.casefold(), len(rank))

    pairs = [
        (index, line)
        for index, line in model.iter_entry_lines(kind)
        if line.entry.is_content and line.entry.enabled
    ]
    slots = [index for index, _ in pairs]
    moving = [line for _, line in pairs]
    unknown = set(rank) - {line.entry.item_id.casefold() for line in moving}
    if unknown:
        LOGGER.debug("Ignoring reorder ids without entries: %s", sorted(unknown))

    ordered = sorted(moving, key=lambda line: rank.get(line.entry.item_id.casefold(), len(rank)))
    lines = list(model.lines)
    for slot, line in zip(slots, ordered):
        lines[slot] = replace(line, newline=model.lines[slot].newline)
    return replace(model, lines=tuple(lines))


def rename(model: ScriptModel, kind: EntryKind, old_id: str, new_id: str) -> ScriptModel:
    """Point every entry for ``old_id`` at ``new_id``, keeping params and comments.

    Raises:
        EntryNotFound: If no entry references ``old_id``.
    """
    indexes = _require(model, kind, old_id, None)
    lines = list(model.lines)
    for index in indexes:
        line = lines[index]
        if not isinstance(line, EntryLine):
            continue
        reference = line.entry.reference
        start = line.raw.index(reference, _leading_ws(line.raw))
        if kind is EntryKind.CHARACTER:
            renamed = _rename_character_reference(reference, new_id)
        else:
            renamed = _rename_stage_reference(reference, new_id)
        raw = line.raw[:start] + renamed + line.raw[start + len(reference) :]
        lines[index] = _reparse(line, raw)
    return replace(model, lines=tuple(lines))


def relocate_stages(model: ScriptModel, old_dir: str, new_dir: str) -> ScriptModel:
    """Point stage entries under ``stages/<old_dir>/`` at ``stages/<new_dir>/``.

    Used after a stage sub-folder is renamed. Entries elsewhere are untouched and
    a model without matching entries is returned unchanged.
    """
    prefix = old_dir.casefold() + "/"
    lines = list(model.lines)
    for index, line in model.iter_entry_lines(EntryKind.STAGE):
        entry = line.entry
        if not entry.is_content or not (entry.selector or "").casefold().startswith(prefix):
            continue
        reference = entry.reference
        normalized = reference.replace("\\", "/")
        offset = len("stages/") if normalized.casefold().startswith("stages/") else 0
        relocated = reference[:offset] + new_dir + reference[offset + len(old_dir) :]
        start = line.raw.index(reference, _leading_ws(line.raw))
        raw = line.raw[:start] + relocated + line.raw[start + len(reference) :]
        lines[index] = _reparse(line, raw)
    return replace(model, lines=tuple(lines))


def get_directive(model: ScriptModel, section: str, key: str) -> str | None:
    """Return the value of ``key`` in ``section``; the last occurrence wins."""
    value = None
    for line in model.directives(section):
        if line.key.casefold() == key.casefold():
            value = line.value
    return value


def set_directive(model: ScriptModel, section: str, key: str, value: str) -> ScriptModel:
    """Set ``key = value`` in ``section``, rewriting only the value text.

    The last existing occurrence is updated in place, keeping its spacing and
    trailing comment. A missing key is inserted at the end of the section, and a
    missing section is created at end of file.
    """
    wanted = section.casefold()
    lines = list(model.lines)
    for index in range(len(lines) - 1, -1, -1):
        line = lines[index]
        if (
            isinstance(line, Directive)
            and line.section == wanted
            and line.key.casefold() == key.casefold()
        ):
            match = _DIRECTIVE.match(line.raw)
            if match is None:
                continue
            raw = match.group("lead") + match.group("key") + match.group("eq") + value
            raw += match.group("trail")
            lines[index] = _reparse(line, raw)
            return replace(model, lines=tuple(lines))

    text = f"{key} = {value}"
    bounds = _section_bounds(lines, wanted)
    if bounds is None:
        return _append(model, lines, [f"[{section}]", text])
    header_index, end = bounds
    insert_at = end
    while insert_at - 1 > header_index and isinstance(lines[insert_at - 1], BlankLine):
        insert_at -= 1
    return _insert(model, lines, insert_at, text, wanted)


# Internal helpers --------------------------------------------------------


def _require(
    model: ScriptModel, kind: EntryKind, item_id: str, selector: str | None
) -> list[int]:
    indexes = model.find(kind, item_id, selector)
    if not indexes:
        target = f"{item_id}/{selector}" if selector else item_id
        raise EntryNotFound(
            f"No {kind.value} entry for {target!r} in the roster script", item_id=item_id
        )
    return indexes


def _leading_ws(raw: str) -> int:
    return len(raw) - len(raw.lstrip())


def _reparse(line: Line, raw: str) -> Line:
    return parse_line(raw, line.newline, line.section)


def _section_bounds(lines: Sequence[Line], section: str) -> tuple[int, int] | None:
    start = None
    for index, line in enumerate(lines):
        if isinstance(line, SectionHeader):
            if start is not None:
                return start, index
            if line.section == section:
                start = index
    if start is None:
        return None
    return start, len(lines)


def _insert(
    model: ScriptModel, lines: list[Line], index: int, text: str, section: str
) -> ScriptModel:
    newline = model.newline
    if index >= len(lines):
        return _append(model, lines, [text], section=section)
    lines.insert(index, parse_line(text, newline, section))
    return replace(model, lines=tuple(lines))


def _append(
    model: ScriptModel, lines: list[Line], texts: Sequence[str], *, section: str | None = None
) -> ScriptModel:
    newline = model.newline
    # Keep the file's "no final newline" shape: the previous last line gains a
    # terminator and the new last line goes without one.
    ends_bare = bool(lines) and lines[-1].newline == ""
    if ends_bare:
        lines[-1] = replace(lines[-1], newline=newline)

    current = section
    if current is None:
        for line in lines:
            if isinstance(line, SectionHeader):
                current = line.section
    for position, text in enumerate(texts):
        last = position == len(texts) - 1
        line = parse_line(text, "" if (last and ends_bare) else newline, current)
        if isinstance(line, SectionHeader):
            current = line.section
        lines.append(line)
    return replace(model, lines=tuple(lines))


def _rename_character_reference(reference: str, new_id: str) -> str:
    match = re.match(r"^(?P<prefix>chars[\\/])?(?P<folder>[^\\/]+)(?P<rest>.*)$", reference, re.I)
    if match is None:
        return new_id
    folder = match.group("folder")
    rest = match.group("rest")
    if not rest and folder.casefold().endswith(".def"):
        # A bare ``Name.def`` names both folder and file; keep the file name.
        return f"{match.group('prefix') or ''}{new_id}/{folder}"
    return f"{match.group('prefix') or ''}{new_id}{rest}"


def _rename_stage_reference(reference: str, new_id: str) -> str:
    head, sep, tail = reference.replace("\\", "/").rpartition("/")
    suffix = PurePosixPath(tail).suffix or ".def"
    # Preserve the original separator style of the directory part.
    directory = reference[: len(head)] + (reference[len(head)] if sep else "")
    return f"{directory}{new_id}{suffix}"


__all__ = [
    "COMMENT_MARKER",
    "parse",
    "parse_bytes",
    "parse_line",
    "render",
    "render_bytes",
    "character_identity",
    "stage_identity",
    "character_reference",
    "stage_reference",
    "format_entry",
    "disable",
    "enable",
    "add",
    "remove",
    "reorder",
    "rename",
    "relocate_stages",
    "get_directive",
    "set_directive",
]
