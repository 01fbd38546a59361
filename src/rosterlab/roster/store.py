"""Disk persistence for the roster script: timestamped backups and atomic writes."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from rosterlab.errors import IOFailure, NotFoundError

from . import codec
from .models import ScriptModel

LOGGER = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"


class RosterScriptStore:
    """Read, back up and atomically replace the roster script."""

    def __init__(self, script_path: Path, backup_dir: Path, *, keep: int = 20) -> None:
        """Create a store for one roster script.

        Args:
            script_path: Location of the roster script.
            backup_dir: Folder receiving timestamped copies before each write.
            keep: Number of backups to retain; ``0`` keeps every backup.
        """
        self.script_path = script_path
        self.backup_dir = backup_dir
        self.keep = keep

    def exists(self) -> bool:
        return self.script_path.exists()

    def load(self) -> ScriptModel:
        """Read and parse the roster script.

        Returns:
            ScriptModel: Parsed script.

        Raises:
            NotFoundError: If the script does not exist.
            IOFailure: If the file cannot be read.
            RosterScriptError: If the contents cannot be parsed faithfully.
        """
        try:
            data = self.script_path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError(
                f"Roster script not found at {self.script_path}", path=self.script_path
            ) from exc
        except OSError as exc:
            raise IOFailure(
                f"Could not read roster script {self.script_path}: {exc}", path=self.script_path
            ) from exc
        return codec.parse_bytes(data)

    def backup(self, *, now: datetime | None = None) -> Path | None:
        """Copy the current script to ``<name>.<YYYYmmdd-HHMMSS>.bak``.

        Returns:
            Path | None: The backup written, or None when there is no script yet.

        Raises:
            IOFailure: If the copy fails.
        """
        if not self.script_path.exists():
            return None

        stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d-%H%M%S")
        base = f"{self.script_path.name}.{stamp}"
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            target = self.backup_dir / f"{base}{BACKUP_SUFFIX}"
            counter = 1
            while target.exists():
                target = self.backup_dir / f"{base}-{counter}{BACKUP_SUFFIX}"
                counter += 1
            shutil.copy2(self.script_path, target)
        except OSError as exc:
            raise IOFailure(
                f"Could not back up roster script to {self.backup_dir}: {exc}",
                path=self.script_path,
            ) from exc

        LOGGER.info("Backed up roster script to %s", target)
        self._prune()
        return target

    def backups(self) -> list[Path]:
        """Return existing backups, oldest first."""
        if not self.backup_dir.exists():
            return []
        pattern = f"{self.script_path.name}.*{BACKUP_SUFFIX}"
        return sorted(self.backup_dir.glob(pattern), key=lambda path: (path.stat().st_mtime, path.name))

    def write(self, model: ScriptModel) -> None:
        """Replace the script with ``model`` via a temporary file and ``os.replace``.

        Raises:
            IOFailure: If the temporary file cannot be written or moved into place.
        """
        payload = codec.render_bytes(model)
        directory = self.script_path.parent
        temp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "wb", dir=directory, prefix=f".{self.script_path.name}.", suffix=".tmp", delete=False
            ) as handle:
                temp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            if self.script_path.exists():
                shutil.copymode(self.script_path, temp_name)
            os.replace(temp_name, self.script_path)
            temp_name = None
        except OSError as exc:
            raise IOFailure(
                f"Could not write roster script {self.script_path}: {exc}", path=self.script_path
            ) from exc
        finally:
            if temp_name is not None and os.path.exists(temp_name):
                os.unlink(temp_name)
        LOGGER.debug("Wrote %d bytes to %s", len(payload), self.script_path)

    def transaction(
        self, edit: Callable[[ScriptModel], ScriptModel], *, create_missing: bool = False
    ) -> ScriptModel:
        """Load, back up, apply ``edit`` in memory and write the result once.

        Nothing is written when ``edit`` raises or returns an unchanged model.

        Args:
            edit: Pure function producing the new model.
            create_missing: Start from an empty script when none exists yet.

        Returns:
            ScriptModel: The model now on disk.
        """
        if create_missing and not self.exists():
            current = ScriptModel(lines=())
        else:
            current = self.load()
        updated = edit(current)
        if updated == current:
            return current
        self.backup()
        self.write(updated)
        return updated

    def _prune(self) -> None:
        if self.keep <= 0:
            return
        existing = self.backups()
        for stale in existing[: max(0, len(existing) - self.keep)]:
            try:
                stale.unlink()
            except OSError as exc:
                LOGGER.warning("Could not remove old backup %s: %s", stale, exc)


__all__ = ["RosterScriptStore", "BACKUP_SUFFIX"]
