"""Cell-level comparison between two versions of a month's plan."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from wasteplan.models import ColumnKey, PlanEntry

COMPARED_FIELDS = ("day_class", "company_id", "vol", "planned_time", "note")


class ChangeKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(slots=True)
class CellChange:
    date: date
    column: ColumnKey
    kind: ChangeKind
    before: PlanEntry | None
    after: PlanEntry | None
    fields: list[str] = field(default_factory=list)


def compare_entries(
    base: Sequence[PlanEntry], other: Sequence[PlanEntry]
) -> list[CellChange]:
    """Differences going from ``base`` to ``other``, ordered by (date, column).

    Version and created_at are ignored: a fresh snapshot compares equal to
    the live plan it was taken from.
    """
    before = {entry.coordinate: entry for entry in base}
    after = {entry.coordinate: entry for entry in other}
    changes: list[CellChange] = []

    for coordinate in sorted(before.keys() | after.keys()):
        day, column = coordinate
        old, new = before.get(coordinate), after.get(coordinate)
        if old is None:
            changes.append(CellChange(day, column, ChangeKind.ADDED, None, new))
        elif new is None:
            changes.append(CellChange(day, column, ChangeKind.REMOVED, old, None))
        else:
            differing = [
                name for name in COMPARED_FIELDS if getattr(old, name) != getattr(new, name)
            ]
            if differing:
                changes.append(
                    CellChange(day, column, ChangeKind.MODIFIED, old, new, differing)
                )

    return changes
