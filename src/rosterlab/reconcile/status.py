"""Pure status derivation for reconciled library items."""

from __future__ import annotations

from enum import Enum

from rosterlab.library import ContentStatus


class ScriptState(str, Enum):
    """How the roster script refers to an item."""

    ABSENT = "absent"
    ENABLED = "enabled"
    DISABLED = "disabled"


def derive_status(
    on_disk: bool, script_state: ScriptState, valid: bool, duplicate: bool = False
) -> ContentStatus | None:
    """Combine filesystem presence, script presence and validity into one status.

    Args:
        on_disk: Whether the item exists on the filesystem.
        script_state: Whether the roster script lists it, enabled or disabled.
        valid: Whether its definition files are usable.
        duplicate: Whether more than one path claims the same identity.

    Returns:
        ContentStatus | None: The derived status, or None for items that are
        neither on disk nor enabled (nothing to report).
    """
    if on_disk and duplicate:
        return ContentStatus.DUPLICATE
    if on_disk:
        if script_state is ScriptState.DISABLED:
            return ContentStatus.DISABLED
        if not valid:
            return ContentStatus.BROKEN
        if script_state is ScriptState.ENABLED:
            return ContentStatus.ACTIVE
        return ContentStatus.UNREGISTERED
    if script_state is ScriptState.ENABLED:
        return ContentStatus.MISSING
    return None


__all__ = ["ScriptState", "derive_status"]
