"""Error taxonomy shared by the library engine."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence


class RosterLabError(Exception):
    """Base exception for library operations.

    Attributes:
        item_id: Identifier of the item involved, when known.
        path: Filesystem path involved, when known.
    """

    def __init__(
        self,
        message: str,
        *,
        item_id: str | None = None,
        path: Path | str | None = None,
    ) -> None:
        super().__init__(message)
        self.item_id = item_id
        self.path = Path(path) if path is not None else None


class NotFoundError(RosterLabError):
    """Raised when an item or file is absent."""


class EntryNotFound(NotFoundError):
    """Raised when the roster script holds no matching entry."""


class InvalidContentError(RosterLabError):
    """Raised when a definition file or script line cannot be understood."""


class RosterScriptError(InvalidContentError):
    """Raised when the roster script cannot be parsed faithfully.

    Attributes:
        line_number: 1-based line number of the offending line, if known.
    """

    def __init__(self, message: str, *, line_number: int | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.line_number = line_number


class ConflictError(RosterLabError):
    """Raised when an identity collides and overwriting was not requested."""


class IOFailure(RosterLabError):
    """Raised when reading or writing the library on disk fails."""


class OperationCancelled(RosterLabError):
    """Raised when a cooperative cancellation request interrupts work."""

    def __init__(self, message: str = "Operation cancelled.") -> None:
        super().__init__(message)


class PartialBatchFailure(RosterLabError):
    """Raised when some items of a batch operation failed.

    Attributes:
        succeeded: Results of the items that completed.
        failures: ``(item, reason)`` pairs for the items that failed.
    """

    def __init__(self, succeeded: Sequence[Any], failures: Sequence[tuple[str, str]]) -> None:
        total = len(succeeded) + len(failures)
        reasons = "; ".join(f"{item}: {reason}" for item, reason in failures)
        super().__init__(f"Completed {len(succeeded)} of {total}, {len(failures)} failed: {reasons}")
        self.succeeded = list(succeeded)
        self.failures = list(failures)


__all__ = [
    "RosterLabError",
    "NotFoundError",
    "EntryNotFound",
    "InvalidContentError",
    "RosterScriptError",
    "ConflictError",
    "IOFailure",
    "OperationCancelled",
    "PartialBatchFailure",
]
