"""Installation of extracted content folders."""

from .installer import (
    STAGE_FILE_SUFFIXES,
    ContentInstaller,
    InstallRequest,
    detect_kind,
    redirect_screenpack_select,
)

__all__ = [
    "ContentInstaller",
    "InstallRequest",
    "detect_kind",
    "redirect_screenpack_select",
    "STAGE_FILE_SUFFIXES",
]
