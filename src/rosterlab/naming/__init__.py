"""Folder-name sanitization helpers."""

from .sanitizer import (
    FALLBACK_NAME,
    NameSanitizer,
    needs_sanitization,
    rename_entry,
    sanitize,
    stage_needs_better_name,
    suggest_stage_name,
    unique_name,
)

__all__ = [
    "FALLBACK_NAME",
    "NameSanitizer",
    "needs_sanitization",
    "rename_entry",
    "sanitize",
    "stage_needs_better_name",
    "suggest_stage_name",
    "unique_name",
]
