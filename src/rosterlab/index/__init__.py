"""SQLite library index."""

from .models import LibraryIndexRecord, ReindexSummary
from .schema import SCHEMA_VERSION, table_for
from .store import LibraryIndex

__all__ = [
    "LibraryIndex",
    "LibraryIndexRecord",
    "ReindexSummary",
    "SCHEMA_VERSION",
    "table_for",
]
