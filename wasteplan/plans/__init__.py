"""Versioned plan store, month locks and version comparison."""

from wasteplan.plans.history import CellChange, ChangeKind, compare_entries
from wasteplan.plans.locks import MonthLockRegistry, acquire_month_lock
from wasteplan.plans.store import PlanStore

__all__ = [
    "PlanStore",
    "MonthLockRegistry",
    "acquire_month_lock",
    "CellChange",
    "ChangeKind",
    "compare_entries",
]
