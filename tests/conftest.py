"""Shared fixtures building a throwaway engine installation."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest

from rosterlab.config.models import LibrarySettings
from rosterlab.library import LibraryLayout

CHARACTER_DEF = """[Info]
name = "{name}"
displayname = "{name}"
author = "{author}"

[Files]
sprite = {stem}.sff
anim = {stem}.air
cmd = {stem}.cmd
cns = {stem}.cns
"""

CHARACTER_RESOURCES = (".sff", ".air", ".cmd", ".cns")

STAGE_DEF = """[Info]
name = "{name}"
author = "{author}"

[Camera]
boundleft = {left}
boundright = {right}

[BGdef]
spr = {stem}.sff
{music}"""


class Engine:
    """Writes characters, stages and the roster script beneath ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.chars = root / "chars"
        self.stages = root / "stages"
        self.data = root / "data"
        self.select = self.data / "select.def"
        for directory in (self.chars, self.stages, self.data):
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def layout(self) -> LibraryLayout:
        return LibraryLayout.from_settings(LibrarySettings(), self.root)

    def add_character(
        self,
        folder: str,
        *,
        name: str | None = None,
        author: str = "Elecbyte",
        def_name: str | None = None,
    ) -> Path:
        path = self.chars / folder
        path.mkdir(parents=True, exist_ok=True)
        stem = Path(def_name).stem if def_name else folder
        (path / (def_name or f"{folder}.def")).write_text(
            CHARACTER_DEF.format(name=name or folder, author=author, stem=stem), encoding="utf-8"
        )
        for suffix in CHARACTER_RESOURCES:
            (path / f"{stem}{suffix}").write_bytes(b"")
        return path

    def add_stage(
        self,
        stem: str,
        *,
        name: str | None = None,
        author: str = "Elecbyte",
        subdir: str | None = None,
        width: int = 300,
        music: str | None = None,
    ) -> Path:
        directory = self.stages / subdir if subdir else self.stages
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{stem}.def"
        path.write_text(
            STAGE_DEF.format(
                name=name or stem,
                author=author,
                stem=stem,
                left=-(width // 2),
                right=width - width // 2,
                music=f"\n[Music]\nbgmusic = {music}\n" if music else "",
            ),
            encoding="utf-8",
        )
        (directory / f"{stem}.sff").write_bytes(b"")
        return path

    def write_select(self, text: str) -> Path:
        self.select.write_text(text, encoding="utf-8", newline="")
        return self.select

    def read_select(self) -> str:
        return self.select.read_bytes().decode("utf-8")


@pytest.fixture()
def engine(tmp_path: Path) -> Engine:
    return Engine(tmp_path / "engine")


@pytest.fixture()
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point ``HOME`` at a temporary folder so the user config is never touched."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for key in [key for key in os.environ if key.startswith("ROSTERLAB__")]:
        monkeypatch.delenv(key)
    yield home
