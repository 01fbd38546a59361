"""Roster script model, codec and on-disk store."""

from . import codec
from .models import (
    BlankLine,
    CommentLine,
    Directive,
    EntryKind,
    EntryLine,
    GridPosition,
    RosterEntry,
    ScriptModel,
    SectionHeader,
    SlotType,
    UnknownLine,
)
from .store import RosterScriptStore

__all__ = [
    "codec",
    "BlankLine",
    "CommentLine",
    "Directive",
    "EntryKind",
    "EntryLine",
    "GridPosition",
    "RosterEntry",
    "ScriptModel",
    "SectionHeader",
    "SlotType",
    "UnknownLine",
    "RosterScriptStore",
]
