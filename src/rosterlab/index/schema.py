"""SQLite schema for the library index."""

from __future__ import annotations

from rosterlab.library import ContentKind

SCHEMA_VERSION = 1

TABLES = {ContentKind.CHARACTER: "characters", ContentKind.STAGE: "stages"}

# Columns refreshed from every scan.
CONTENT_COLUMNS = (
    "name",
    "author",
    "version_date",
    "sprite_file",
    "path",
    "def_path",
    "modified_at",
    "valid",
    "readable",
    "error",
    "total_width",
    "has_music",
    "music_file",
)

# Columns filled lazily; a scan only fills them while they are still NULL.
CLASSIFICATION_COLUMNS = ("source_game", "style", "resolution", "is_hd", "has_ai")

BOOKKEEPING_COLUMNS = ("installed_at", "updated_at")

ALL_COLUMNS = ("id", *CONTENT_COLUMNS, *CLASSIFICATION_COLUMNS, *BOOKKEEPING_COLUMNS)


def _item_table(table: str) -> str:
    return f"""
CREATE TABLE IF NOT EXISTS {table} (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    author TEXT NOT NULL DEFAULT 'Unknown',
    version_date TEXT NOT NULL DEFAULT '',
    sprite_file TEXT,
    path TEXT NOT NULL,
    def_path TEXT,
    modified_at TEXT,
    valid INTEGER NOT NULL DEFAULT 1,
    readable INTEGER NOT NULL DEFAULT 1,
    error TEXT,
    total_width INTEGER,
    has_music INTEGER,
    music_file TEXT,
    source_game TEXT,
    style TEXT,
    resolution TEXT,
    is_hd INTEGER,
    has_ai INTEGER,
    installed_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_{table}_name ON {table}(name COLLATE NOCASE);
CREATE INDEX IF NOT EXISTS idx_{table}_author ON {table}(author COLLATE NOCASE);
CREATE INDEX IF NOT EXISTS idx_{table}_installed ON {table}(installed_at);
"""


SCHEMA_SQL = (
    _item_table("characters")
    + _item_table("stages")
    + """
CREATE TABLE IF NOT EXISTS custom_tags (
    kind TEXT NOT NULL,
    item_id TEXT NOT NULL,
    tag TEXT NOT NULL COLLATE NOCASE,
    PRIMARY KEY (kind, item_id, tag)
);
CREATE INDEX IF NOT EXISTS idx_custom_tags_item ON custom_tags(kind, item_id);
"""
)


def table_for(kind: ContentKind) -> str:
    """Return the table for ``kind``.

    Raises:
        ValueError: If ``kind`` is not indexed (screenpacks are not).
    """
    try:
        return TABLES[kind]
    except KeyError:
        raise ValueError(f"{kind.value} items are not indexed") from None


__all__ = [
    "SCHEMA_VERSION",
    "SCHEMA_SQL",
    "TABLES",
    "CONTENT_COLUMNS",
    "CLASSIFICATION_COLUMNS",
    "BOOKKEEPING_COLUMNS",
    "ALL_COLUMNS",
    "table_for",
]
