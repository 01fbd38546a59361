"""Batch outcome and cooperative cancellation primitives."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from rosterlab.errors import OperationCancelled, PartialBatchFailure

T = TypeVar("T")


@dataclass(slots=True)
class BatchResult(Generic[T]):
    """Success and failure lists collected by a batch operation.

    Attributes:
        succeeded: Results for items that completed.
        failures: ``(item, reason)`` pairs for items that failed.
    """

    succeeded: list[T] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failures)

    def record_failure(self, item: Any, exc: BaseException | str) -> None:
        self.failures.append((str(item), str(exc)))

    def summary(self) -> str:
        """Return a one-line human-readable outcome such as ``3 of 4 succeeded``."""
        text = f"{len(self.succeeded)} of {self.total} succeeded"
        if self.failures:
            reasons = "; ".join(f"{item}: {reason}" for item, reason in self.failures)
            text += f", {len(self.failures)} failed: {reasons}"
        return text

    def raise_for_failures(self) -> None:
        """Raise ``PartialBatchFailure`` when any item failed."""
        if self.failures:
            raise PartialBatchFailure(self.succeeded, self.failures)


class CancelToken:
    """Thread-safe flag checked between items of long-running work."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()


def check_cancelled(token: CancelToken | None) -> None:
    """Raise ``OperationCancelled`` when ``token`` has been cancelled."""
    if token is not None:
        token.raise_if_cancelled()


__all__ = ["BatchResult", "CancelToken", "check_cancelled"]
