"""Error taxonomy for the plan store, layout registry and reconciliation."""

from __future__ import annotations

from collections.abc import Iterable


class WastePlanError(Exception):
    """Base class for all wasteplan errors."""


class ValidationError(WastePlanError):
    """Malformed or constraint-violating input.

    Raised before any write reaches the store, so it never leaves partial state.
    """

    def __init__(self, message: str, problems: Iterable[str] | None = None):
        self.problems = list(problems) if problems else [message]
        super().__init__(message)

    @classmethod
    def from_problems(cls, subject: str, problems: list[str]) -> ValidationError:
        summary = f"{subject}: {problems[0]}"
        if len(problems) > 1:
            summary += f" (+{len(problems) - 1} more)"
        return cls(summary, problems)


class NotFoundError(WastePlanError):
    """Lookup of something that was expected to exist."""


class ConflictError(WastePlanError):
    """Concurrent snapshot/save contention detected by the store."""


class StorageError(WastePlanError):
    """Backend I/O or transaction failure. Never retried internally."""


class OperationTimeoutError(StorageError):
    """The unit of work exceeded its deadline and was rolled back."""
