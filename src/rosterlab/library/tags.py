"""Keyword-based inference of classification tags."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_SOURCE_GAMES: tuple[tuple[str, str], ...] = (
    ("king of fighters", "KOF"),
    ("kof", "KOF"),
    ("marvel vs capcom", "MVC"),
    ("mvc", "MVC"),
    ("capcom vs snk", "CVS"),
    ("cvs", "CVS"),
    ("street fighter", "Street Fighter"),
    ("guilty gear", "Guilty Gear"),
    ("guiltygear", "Guilty Gear"),
    ("ggxx", "Guilty Gear"),
    ("ggxrd", "Guilty Gear"),
    ("melty", "Melty Blood"),
    ("mbaa", "Melty Blood"),
    ("jojo", "JoJo"),
    ("hftf", "JoJo"),
    ("dragon ball", "Dragon Ball"),
    ("dragonball", "Dragon Ball"),
    ("dbz", "Dragon Ball"),
    ("naruto", "Naruto"),
    ("blazblue", "BlazBlue"),
    ("bbcf", "BlazBlue"),
    ("tekken", "Tekken"),
    ("mortal kombat", "Mortal Kombat"),
    ("fatal fury", "Fatal Fury"),
    ("garou", "Fatal Fury"),
    ("samurai shodown", "Samurai Shodown"),
    ("samsho", "Samurai Shodown"),
    ("darkstalkers", "Darkstalkers"),
    ("vampire savior", "Darkstalkers"),
)

_STYLES: tuple[tuple[str, str], ...] = (
    ("pots", "POTS Style"),
    ("infinite", "Infinite Style"),
    ("mvc2", "MVC Style"),
)

_SF_WORD = re.compile(r"\bsf\b(?!x)")
_HD_WORD = re.compile(r"\b(hd|hi-?res)\b")
_AI_WORD = re.compile(r"\b(ai|cpu|boss)\b")


@dataclass(slots=True)
class TagSet:
    """Tags inferred for one item."""

    source_game: str | None = None
    style: str | None = None
    is_hd: bool = False
    has_ai: bool = False
    extra: list[str] = field(default_factory=list)

    def as_list(self) -> list[str]:
        tags = [tag for tag in (self.source_game, self.style) if tag]
        if self.is_hd:
            tags.append("HD")
        if self.has_ai:
            tags.append("AI Enhanced")
        tags.extend(self.extra)
        return tags


class TagDetector:
    """Infer source game, style and quality flags from names and authors."""

    def detect(self, *texts: str | None) -> TagSet:
        haystack = " ".join(text.casefold() for text in texts if text)
        result = TagSet()

        for pattern, tag in _SOURCE_GAMES:
            if pattern in haystack:
                result.source_game = tag
                break
        else:
            if _SF_WORD.search(haystack):
                result.source_game = "Street Fighter"

        for pattern, tag in _STYLES:
            if pattern in haystack:
                result.style = tag
                break

        result.is_hd = bool(_HD_WORD.search(haystack))
        result.has_ai = bool(_AI_WORD.search(haystack))
        if "beta" in haystack or "wip" in haystack:
            result.extra.append("Beta")
        if "edit" in haystack:
            result.extra.append("Edit")
        return result


__all__ = ["TagDetector", "TagSet"]
