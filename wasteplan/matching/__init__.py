"""Plan/actual reconciliation."""

from wasteplan.matching.engine import ReconciliationEngine, reconcile
from wasteplan.matching.models import (
    ActualResult,
    ReconciledRecord,
    ReconciliationReport,
    RecordError,
    Tolerances,
)

__all__ = [
    "ReconciliationEngine",
    "reconcile",
    "ActualResult",
    "ReconciledRecord",
    "ReconciliationReport",
    "RecordError",
    "Tolerances",
]
