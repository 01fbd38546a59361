"""Parser for engine definition (``.def``) files.

Only the handful of fields needed for identity and status are interpreted;
everything else is kept as raw strings in the parsed maps.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rosterlab.errors import InvalidContentError

DEFAULT_BOUND_LEFT = -150
DEFAULT_BOUND_RIGHT = 150

_INFO_NAME = re.compile(r"(?im)^(\s*name\s*=\s*)[^\r\n;]*")


@dataclass(slots=True)
class DefFile:
    """Key/value content of a definition file.

    Attributes:
        values: Flat map of lowercased keys; the last occurrence wins.
        sections: Per-section maps keyed by lowercased section name.
    """

    values: dict[str, str] = field(default_factory=dict)
    sections: dict[str, dict[str, str]] = field(default_factory=dict)

    def value(self, key: str, section: str | None = None) -> Optional[str]:
        if section is not None:
            return self.sections.get(section.lower(), {}).get(key.lower())
        return self.values.get(key.lower())

    def int_value(self, key: str, section: str | None = None, *, default: int = 0) -> int:
        raw = self.value(key, section)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            try:
                return int(float(raw))
            except ValueError:
                return default

    def has_section(self, name: str) -> bool:
        return name.lower() in self.sections

    def _info(self, key: str) -> Optional[str]:
        value = self.value(key, "info")
        if value is None:
            value = self.value(key)
        return value or None

    @property
    def name(self) -> Optional[str]:
        return self._info("name")

    @property
    def display_name(self) -> Optional[str]:
        return self._info("displayname")

    @property
    def author(self) -> Optional[str]:
        return self._info("author")

    @property
    def version_date(self) -> Optional[str]:
        return self._info("versiondate")

    @property
    def effective_name(self) -> Optional[str]:
        return self.name or self.display_name

    @property
    def sprite_file(self) -> Optional[str]:
        """Character ``sprite`` or stage ``spr`` reference."""
        return self.value("sprite") or self.value("spr", "bgdef") or self.value("spr") or None

    @property
    def music_file(self) -> Optional[str]:
        return self.value("bgmusic", "music") or self.value("bgmusic") or None

    @property
    def camera_bounds(self) -> tuple[int, int]:
        left = self.int_value("boundleft", "camera", default=DEFAULT_BOUND_LEFT)
        right = self.int_value("boundright", "camera", default=DEFAULT_BOUND_RIGHT)
        return left, right

    @property
    def is_character(self) -> bool:
        return self.has_section("files") and not self.has_section("scenedef")

    @property
    def is_stage(self) -> bool:
        return (
            self.has_section("stageinfo") or self.has_section("bgdef")
        ) and not self.has_section("files")


def parse_def_text(text: str) -> DefFile:
    """Parse definition-file text into flat and per-section maps."""
    result = DefFile()
    section: str | None = None
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(";"):
            continue
        if stripped.startswith("[") and "]" in stripped:
            section = stripped[1 : stripped.index("]")].strip().lower()
            result.sections.setdefault(section, {})
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.split(";", 1)[0].strip().replace('"', "")
        if section is not None:
            result.sections[section][key] = value
        result.values[key] = value
    return result


def read_def_text(path: Path) -> str:
    """Read definition-file text, tolerating legacy single-byte encodings.

    Raises:
        InvalidContentError: If the file cannot be read.
    """
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise InvalidContentError(
            f"Could not read definition file for {path.parent.name}: {exc.strerror or exc}",
            path=path,
        ) from exc
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def parse_def_file(path: Path) -> DefFile:
    """Read and parse ``path``.

    Raises:
        InvalidContentError: If the file cannot be read.
    """
    return parse_def_text(read_def_text(path))


def replace_stage_name(text: str, new_name: str) -> str:
    """Rewrite the first ``name = ...`` line of a stage definition to ``new_name``."""
    quoted = '"' + new_name.replace('"', "") + '"'
    return _INFO_NAME.sub(lambda match: match.group(1) + quoted, text, count=1)


__all__ = [
    "DefFile",
    "parse_def_text",
    "parse_def_file",
    "read_def_text",
    "replace_stage_name",
    "DEFAULT_BOUND_LEFT",
    "DEFAULT_BOUND_RIGHT",
]
