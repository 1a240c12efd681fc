"""Data structures consumed and produced by the reconciliation engine."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from wasteplan.errors import ValidationError
from wasteplan.models import PlanEntry, ReconciliationStatus


@dataclass(slots=True)
class ActualResult:
    """One observed occurrence, supplied by an external source.

    ``actual_time`` is kept as delivered; the engine parses it per record.
    """

    date: date
    actual_time: Any
    waste_type: str
    type_sequence: int | None = None
    company_id: int | None = None
    vol: Decimal | None = None
    note: str | None = None
    result_id: int | None = None


@dataclass(slots=True)
class Tolerances:
    """Deviation thresholds in minutes.

    on_schedule_minutes is T1, acceptable_delay_minutes is T2. When
    early_slack_minutes is set, an actual recorded more than that many minutes
    before the planned time is not eligible for pairing.
    """

    on_schedule_minutes: int
    acceptable_delay_minutes: int
    early_slack_minutes: int | None = None

    def __post_init__(self) -> None:
        problems = []
        if self.on_schedule_minutes < 0:
            problems.append("on_schedule_minutes must be >= 0")
        if self.acceptable_delay_minutes < self.on_schedule_minutes:
            problems.append("acceptable_delay_minutes must be >= on_schedule_minutes")
        if self.early_slack_minutes is not None and self.early_slack_minutes < 0:
            problems.append("early_slack_minutes must be >= 0")
        if problems:
            raise ValidationError.from_problems("Invalid tolerances", problems)

    def classify(self, diff_minutes: int) -> ReconciliationStatus:
        deviation = abs(diff_minutes)
        if deviation <= self.on_schedule_minutes:
            return ReconciliationStatus.ON_SCHEDULE
        if deviation <= self.acceptable_delay_minutes:
            return ReconciliationStatus.DELAYED_ACCEPTABLE
        return ReconciliationStatus.DELAYED_SEVERE


@dataclass(slots=True)
class ReconciledRecord:
    date: date
    waste_type: str
    planned: PlanEntry | None
    actual: ActualResult | None
    status: ReconciliationStatus
    time_diff_minutes: int | None = None
    header_name: str | None = None

    @property
    def type_sequence(self) -> int | None:
        if self.planned is not None:
            return self.planned.column.type_sequence
        if self.actual is not None:
            return self.actual.type_sequence
        return None

    @property
    def is_performed(self) -> bool:
        return self.actual is not None


@dataclass(slots=True)
class RecordError:
    """A record excluded from pairing because one of its values was malformed."""

    record: PlanEntry | ActualResult
    error: ValidationError

    @property
    def side(self) -> str:
        return "plan" if isinstance(self.record, PlanEntry) else "actual"


@dataclass(slots=True)
class ReconciliationReport:
    records: list[ReconciledRecord] = field(default_factory=list)
    unplanned: list[ActualResult] = field(default_factory=list)
    errors: list[RecordError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def by_status(self, status: ReconciliationStatus) -> list[ReconciledRecord]:
        return [record for record in self.records if record.status == status]

    def summary(self) -> dict[str, int]:
        counts = Counter(record.status.value for record in self.records)
        result = {status.value: counts.get(status.value, 0) for status in ReconciliationStatus}
        result["unplanned"] = len(self.unplanned)
        result["errors"] = len(self.errors)
        return result
