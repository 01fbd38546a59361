"""Configuration models describing rosterlab settings."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class RosterLabBaseModel(BaseModel):
    """Shared configuration for rosterlab Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class LibrarySettings(RosterLabBaseModel):
    """Location of the engine installation and its content folders.

    Attributes:
        working_dir: Engine working directory that holds the content tree.
        roster_script: Roster script path relative to ``working_dir``.
        chars_dir: Character folder relative to ``working_dir``.
        stages_dir: Stage folder relative to ``working_dir``.
        data_dir: Screenpack/data folder relative to ``working_dir``.
        index_path: SQLite index location relative to ``working_dir``.
    """

    working_dir: str = "."
    roster_script: str = "data/select.def"
    chars_dir: str = "chars"
    stages_dir: str = "stages"
    data_dir: str = "data"
    index_path: str = ".rosterlab/library.sqlite3"


class NamingSettings(RosterLabBaseModel):
    """Heuristics for folder-name sanitization and mismatch detection.

    Attributes:
        min_declared_name_length: A declared name must be longer than this many
            characters before it is preferred over the folder name.
        generic_folder_prefixes: Folder-name prefixes treated as placeholders
            that a declared name may replace.
        flag_numeric_prefix: Whether folders starting with a digit count as generic.
    """

    min_declared_name_length: int = Field(default=2, ge=0)
    generic_folder_prefixes: List[str] = Field(
        default_factory=lambda: [
            "intro",
            "ending",
            "temp",
            "new",
            "untitled",
            "character",
            "char",
        ]
    )
    flag_numeric_prefix: bool = True


class BackupSettings(RosterLabBaseModel):
    """Roster-script backup policy.

    Attributes:
        directory: Backup folder relative to the working directory.
        keep: Number of backups to retain; ``0`` keeps all of them.
    """

    directory: str = ".rosterlab/backups"
    keep: int = Field(default=20, ge=0)


class CollectionSettings(RosterLabBaseModel):
    """Collection persistence settings.

    Attributes:
        directory: Folder relative to the working directory holding one JSON file per collection.
    """

    directory: str = ".rosterlab/collections"


class LoggingSettings(RosterLabBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Log file relative to the working directory; empty disables file logging.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: str = ".rosterlab/rosterlab.log"
    max_size_mb: int = 10
    backup_count: int = 5


class CLIOptions(RosterLabBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
    """

    quiet_default: bool = False
    summary_default: bool = False


class RosterLabConfig(RosterLabBaseModel):
    """Top-level configuration struct for rosterlab.

    Attributes:
        library: Engine installation layout.
        naming: Sanitizer heuristics.
        backups: Roster-script backup policy.
        collections: Collection persistence settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    library: LibrarySettings = Field(default_factory=LibrarySettings)
    naming: NamingSettings = Field(default_factory=NamingSettings)
    backups: BackupSettings = Field(default_factory=BackupSettings)
    collections: CollectionSettings = Field(default_factory=CollectionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "RosterLabBaseModel",
    "LibrarySettings",
    "NamingSettings",
    "BackupSettings",
    "CollectionSettings",
    "LoggingSettings",
    "CLIOptions",
    "RosterLabConfig",
]
