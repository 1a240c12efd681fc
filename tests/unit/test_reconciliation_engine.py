"""Tests for the plan/actual reconciliation engine."""

from __future__ import annotations

from datetime import date, datetime, time

import pytest

from wasteplan.errors import ValidationError
from wasteplan.matching.engine import ReconciliationEngine, minute_of_day, reconcile
from wasteplan.matching.models import ActualResult, Tolerances
from wasteplan.models import ReconciliationStatus

TOLERANCES = Tolerances(on_schedule_minutes=15, acceptable_delay_minutes=60)


def actual(day: date, at, waste_type: str = "廃プラ", **kwargs) -> ActualResult:
    return ActualResult(date=day, actual_time=at, waste_type=waste_type, **kwargs)


class TestTolerances:
    @pytest.mark.parametrize(
        ("diff", "status"),
        [
            (0, ReconciliationStatus.ON_SCHEDULE),
            (15, ReconciliationStatus.ON_SCHEDULE),
            (-15, ReconciliationStatus.ON_SCHEDULE),
            (16, ReconciliationStatus.DELAYED_ACCEPTABLE),
            (60, ReconciliationStatus.DELAYED_ACCEPTABLE),
            (-45, ReconciliationStatus.DELAYED_ACCEPTABLE),
            (61, ReconciliationStatus.DELAYED_SEVERE),
            (-90, ReconciliationStatus.DELAYED_SEVERE),
        ],
    )
    def test_classify_boundaries(self, diff, status):
        assert TOLERANCES.classify(diff) == status

    def test_t2_below_t1_rejected(self):
        with pytest.raises(ValidationError, match="acceptable_delay_minutes"):
            Tolerances(on_schedule_minutes=30, acceptable_delay_minutes=10)

    def test_negative_values_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            Tolerances(on_schedule_minutes=-1, acceptable_delay_minutes=10, early_slack_minutes=-5)

        assert len(exc_info.value.problems) == 2


class TestConcreteScenario:
    """Three January days: not performed, on schedule, severely delayed."""

    def test_statuses(self, entry_factory):
        planned = [
            entry_factory(date(2025, 1, 10), "廃プラ", planned_time="09:00", vol="10"),
            entry_factory(date(2025, 1, 11), "廃プラ", planned_time="13:00", vol="5"),
            entry_factory(date(2025, 1, 12), "廃プラ", planned_time="08:00"),
        ]
        actuals = [
            actual(date(2025, 1, 11), "13:10"),
            actual(date(2025, 1, 12), "09:30"),
        ]

        report = ReconciliationEngine().reconcile(planned, actuals, TOLERANCES)

        by_date = {record.date: record for record in report.records}
        assert by_date[date(2025, 1, 10)].status == ReconciliationStatus.NOT_PERFORMED
        assert by_date[date(2025, 1, 10)].time_diff_minutes is None
        assert by_date[date(2025, 1, 10)].actual is None

        assert by_date[date(2025, 1, 11)].status == ReconciliationStatus.ON_SCHEDULE
        assert by_date[date(2025, 1, 11)].time_diff_minutes == 10

        assert by_date[date(2025, 1, 12)].status == ReconciliationStatus.DELAYED_SEVERE
        assert by_date[date(2025, 1, 12)].time_diff_minutes == 90

        assert report.unplanned == []
        assert not report.has_errors


class TestFifoPairing:
    def test_duplicate_plan_times_pair_in_order(self, entry_factory):
        day = date(2025, 1, 10)
        planned = [
            entry_factory(day, "廃プラ", 1, planned_time="09:00"),
            entry_factory(day, "廃プラ", 2, planned_time="09:00"),
        ]
        actuals = [actual(day, "09:40", result_id=2), actual(day, "09:05", result_id=1)]

        report = reconcile(planned, actuals, TOLERANCES)

        first, second = report.records
        assert first.planned.column.type_sequence == 1
        assert first.actual.result_id == 1
        assert first.time_diff_minutes == 5
        assert second.planned.column.type_sequence == 2
        assert second.actual.result_id == 2
        assert second.time_diff_minutes == 40
        assert second.status == ReconciliationStatus.DELAYED_ACCEPTABLE

    def test_not_nearest_neighbour(self, entry_factory):
        """The earliest plan takes the earliest actual even if a later plan is closer."""
        day = date(2025, 1, 10)
        planned = [
            entry_factory(day, planned_time="09:00"),
            entry_factory(day, type_sequence=2, planned_time="11:00"),
        ]
        actuals = [actual(day, "10:55"), actual(day, "11:30")]

        report = reconcile(planned, actuals, TOLERANCES)

        assert [r.time_diff_minutes for r in report.records] == [115, 30]

    def test_groups_do_not_mix_waste_types(self, entry_factory):
        day = date(2025, 1, 10)
        planned = [entry_factory(day, "可燃", planned_time="09:00")]
        actuals = [actual(day, "09:00", waste_type="缶")]

        report = reconcile(planned, actuals, TOLERANCES)

        assert report.records[0].status == ReconciliationStatus.NOT_PERFORMED
        assert [a.waste_type for a in report.unplanned] == ["缶"]

    def test_actual_before_plan_allowed_without_slack(self, entry_factory):
        day = date(2025, 1, 10)
        report = reconcile([entry_factory(day, planned_time="09:00")], [actual(day, "08:50")], TOLERANCES)

        record = report.records[0]
        assert record.time_diff_minutes == -10
        assert record.status == ReconciliationStatus.ON_SCHEDULE

    def test_early_slack_excludes_too_early_actuals(self, entry_factory):
        day = date(2025, 1, 10)
        tolerances = Tolerances(15, 60, early_slack_minutes=30)
        planned = [entry_factory(day, planned_time="12:00")]
        actuals = [actual(day, "09:00"), actual(day, "11:45")]

        report = reconcile(planned, actuals, tolerances)

        assert report.records[0].time_diff_minutes == -15
        assert [a.actual_time for a in report.unplanned] == ["09:00"]

    def test_plans_without_time_sort_last(self, entry_factory):
        day = date(2025, 1, 10)
        planned = [
            entry_factory(day, type_sequence=1, planned_time=None),
            entry_factory(day, type_sequence=2, planned_time="10:00"),
        ]
        actuals = [actual(day, "10:05")]

        report = reconcile(planned, actuals, TOLERANCES)

        timed, untimed = report.records
        assert timed.planned.column.type_sequence == 2
        assert timed.time_diff_minutes == 5
        assert untimed.status == ReconciliationStatus.NOT_PERFORMED

    def test_untimed_plan_paired_has_no_diff(self, entry_factory):
        day = date(2025, 1, 10)
        report = reconcile([entry_factory(day, planned_time=None)], [actual(day, "10:05")], TOLERANCES)

        record = report.records[0]
        assert record.is_performed
        assert record.time_diff_minutes is None
        assert record.status == ReconciliationStatus.ON_SCHEDULE


class TestUnplannedAndErrors:
    def test_extra_actual_surfaced(self, entry_factory):
        day = date(2025, 1, 10)
        planned = [entry_factory(day, planned_time="09:00")]
        actuals = [actual(day, "09:02"), actual(day, "15:00")]

        report = reconcile(planned, actuals, TOLERANCES)

        assert len(report.records) == 1
        assert report.records[0].status == ReconciliationStatus.ON_SCHEDULE
        assert [a.actual_time for a in report.unplanned] == ["15:00"]

    def test_malformed_actual_reported_not_fatal(self, entry_factory):
        day = date(2025, 1, 10)
        planned = [entry_factory(day, planned_time="09:00")]
        actuals = [actual(day, "9時"), actual(day, "09:10")]

        report = reconcile(planned, actuals, TOLERANCES)

        assert report.records[0].time_diff_minutes == 10
        assert len(report.errors) == 1
        error = report.errors[0]
        assert error.side == "actual"
        assert isinstance(error.error, ValidationError)
        assert "malformed" in str(error.error)

    def test_missing_actual_time_and_waste_type(self):
        day = date(2025, 1, 10)
        actuals = [actual(day, None), actual(day, "09:00", waste_type="")]

        report = reconcile([], actuals, TOLERANCES)

        messages = sorted(str(e.error) for e in report.errors)
        assert any("missing actual time" in m for m in messages)
        assert any("missing waste type" in m for m in messages)
        assert report.records == []
        assert report.unplanned == []

    def test_actual_without_date_reported_not_fatal(self, entry_factory):
        day = date(2025, 1, 10)
        planned = [entry_factory(day, planned_time="09:00")]
        actuals = [
            actual(None, "09:00"),
            actual(datetime(2025, 1, 10, 9, 0), "09:00"),
            actual(day, "09:05"),
        ]

        report = reconcile(planned, actuals, TOLERANCES)

        assert report.records[0].time_diff_minutes == 5
        assert report.unplanned == []
        assert len(report.errors) == 2
        assert all("invalid date" in str(e.error) for e in report.errors)

    def test_actual_time_types(self, entry_factory):
        day = date(2025, 1, 10)
        planned = [entry_factory(day, planned_time="09:00")]

        report = reconcile(planned, [actual(day, time(9, 20))], TOLERANCES)

        assert report.records[0].time_diff_minutes == 20
        assert report.records[0].status == ReconciliationStatus.DELAYED_ACCEPTABLE


class TestReport:
    def test_summary_counts(self, entry_factory):
        day = date(2025, 1, 10)
        planned = [
            entry_factory(day, planned_time="09:00"),
            entry_factory(day, type_sequence=2, planned_time="14:00"),
        ]
        actuals = [actual(day, "09:00"), actual(day, "bad"), actual(day, "23:00", waste_type="缶")]

        report = reconcile(planned, actuals, TOLERANCES)

        assert report.summary() == {
            "NotPerformed": 1,
            "OnSchedule": 1,
            "DelayedAcceptable": 0,
            "DelayedSevere": 0,
            "unplanned": 1,
            "errors": 1,
        }
        assert len(report.by_status(ReconciliationStatus.NOT_PERFORMED)) == 1

    def test_empty_inputs(self):
        report = reconcile([], [], TOLERANCES)
        assert report.records == [] and report.unplanned == [] and report.errors == []

    def test_minute_of_day_truncates_seconds(self):
        assert minute_of_day(time(9, 5, 59)) == 545
