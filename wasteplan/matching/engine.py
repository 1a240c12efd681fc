"""Plan/actual reconciliation engine.

Pairs planned occurrences with observed ones per (date, waste type) using
first-plan/first-actual (FIFO) matching, then classifies the timing deviation.
Malformed records are reported individually and never abort the month.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time

from wasteplan.errors import ValidationError
from wasteplan.matching.models import (
    ActualResult,
    ReconciledRecord,
    ReconciliationReport,
    RecordError,
    Tolerances,
)
from wasteplan.models import PlanEntry, ReconciliationStatus, parse_time_of_day

logger = logging.getLogger(__name__)


@dataclass
class _Group:
    plans: list[tuple[PlanEntry, int | None]] = field(default_factory=list)
    actuals: list[tuple[ActualResult, int]] = field(default_factory=list)


def minute_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


class ReconciliationEngine:
    """Stateless plan/actual matcher. Tolerances are always supplied by the caller."""

    def reconcile(
        self,
        planned: Sequence[PlanEntry],
        actual: Sequence[ActualResult],
        tolerances: Tolerances,
    ) -> ReconciliationReport:
        """Pair plans with actuals and classify each pair.

        Args:
            planned: Plan entries of one month (any version)
            actual: Actual results of the same month
            tolerances: T1/T2 thresholds and optional early-slack bound

        Returns:
            ReconciliationReport with reconciled records, unplanned actuals and
            record-level errors kept apart
        """
        report = ReconciliationReport()
        groups: dict[tuple[date, str], _Group] = defaultdict(_Group)

        for entry in planned:
            try:
                minute = self._plan_minute(entry)
            except ValidationError as exc:
                report.errors.append(RecordError(record=entry, error=exc))
                continue
            groups[(entry.date, entry.column.waste_type)].plans.append((entry, minute))

        for result in actual:
            try:
                minute = self._actual_minute(result)
            except ValidationError as exc:
                report.errors.append(RecordError(record=result, error=exc))
                continue
            groups[(result.date, result.waste_type)].actuals.append((result, minute))

        for key in sorted(groups):
            self._pair_group(key, groups[key], tolerances, report)

        if report.errors:
            logger.warning(
                "Reconciliation excluded %d malformed record(s)", len(report.errors)
            )
        logger.debug("Reconciliation summary: %s", report.summary())
        return report

    def _pair_group(
        self,
        key: tuple[date, str],
        group: _Group,
        tolerances: Tolerances,
        report: ReconciliationReport,
    ) -> None:
        day, waste_type = key

        # Plans without a time sort last; sorted() is stable for duplicate times
        plans = sorted(
            group.plans,
            key=lambda item: (item[1] is None, item[1] or 0, item[0].column.type_sequence),
        )
        actuals = sorted(group.actuals, key=lambda item: item[1])
        consumed = [False] * len(actuals)

        for entry, plan_minute in plans:
            match_index = None
            for index, (_, actual_minute) in enumerate(actuals):
                if consumed[index]:
                    continue
                if self._eligible(plan_minute, actual_minute, tolerances):
                    match_index = index
                    break

            if match_index is None:
                report.records.append(
                    ReconciledRecord(
                        date=day,
                        waste_type=waste_type,
                        planned=entry,
                        actual=None,
                        status=ReconciliationStatus.NOT_PERFORMED,
                    )
                )
                continue

            consumed[match_index] = True
            result, actual_minute = actuals[match_index]
            if plan_minute is None:
                diff = None
                status = ReconciliationStatus.ON_SCHEDULE
            else:
                diff = actual_minute - plan_minute
                status = tolerances.classify(diff)

            report.records.append(
                ReconciledRecord(
                    date=day,
                    waste_type=waste_type,
                    planned=entry,
                    actual=result,
                    status=status,
                    time_diff_minutes=diff,
                )
            )

        report.unplanned.extend(
            result for index, (result, _) in enumerate(actuals) if not consumed[index]
        )

    @staticmethod
    def _eligible(plan_minute: int | None, actual_minute: int, tolerances: Tolerances) -> bool:
        if plan_minute is None or tolerances.early_slack_minutes is None:
            return True
        return actual_minute >= plan_minute - tolerances.early_slack_minutes

    @staticmethod
    def _plan_minute(entry: PlanEntry) -> int | None:
        try:
            planned_time = parse_time_of_day(entry.planned_time)
        except ValueError as exc:
            raise ValidationError(
                f"Plan {entry.date.isoformat()} {entry.column}: {exc}"
            ) from exc
        return minute_of_day(planned_time) if planned_time is not None else None

    @staticmethod
    def _actual_minute(result: ActualResult) -> int:
        if not isinstance(result.date, date) or isinstance(result.date, datetime):
            raise ValidationError(
                f"Actual {result.waste_type or '?'}: invalid date {result.date!r}"
            )
        label = f"Actual {result.date.isoformat()} {result.waste_type or '?'}"
        if not result.waste_type or not isinstance(result.waste_type, str):
            raise ValidationError(f"{label}: missing waste type")
        try:
            actual_time = parse_time_of_day(result.actual_time)
        except ValueError as exc:
            raise ValidationError(f"{label}: {exc}") from exc
        if actual_time is None:
            raise ValidationError(f"{label}: missing actual time")
        return minute_of_day(actual_time)


def reconcile(
    planned: Sequence[PlanEntry],
    actual: Sequence[ActualResult],
    tolerances: Tolerances,
) -> ReconciliationReport:
    """Convenience function: reconcile with a default engine instance."""
    return ReconciliationEngine().reconcile(planned, actual, tolerances)
