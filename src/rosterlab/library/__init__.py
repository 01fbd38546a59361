"""Library content models and filesystem discovery."""

from .models import UNKNOWN_AUTHOR, ContentItem, ContentKind, ContentStatus, LibraryLayout
from .scanner import LibraryScanner, ScanResult, stage_display_name
from .tags import TagDetector, TagSet

__all__ = [
    "UNKNOWN_AUTHOR",
    "ContentItem",
    "ContentKind",
    "ContentStatus",
    "LibraryLayout",
    "LibraryScanner",
    "ScanResult",
    "stage_display_name",
    "TagDetector",
    "TagSet",
]
