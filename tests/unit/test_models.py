"""Unit tests for wasteplan value types."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from wasteplan.models import (
    ColumnKey,
    DayClass,
    HeaderColumn,
    HeaderDefinition,
    PlanEntry,
    PlanVersion,
    PlanVersionSnapshot,
    default_display_name,
    month_bounds,
    parse_time_of_day,
)


class TestColumnKey:
    def test_equality_and_hash(self):
        assert ColumnKey("廃プラ", 2) == ColumnKey("廃プラ", 2)
        assert len({ColumnKey("廃プラ", 1), ColumnKey("廃プラ", 1)}) == 1

    def test_ordering(self):
        keys = [ColumnKey("廃プラ", 2), ColumnKey("廃プラ", 1)]
        assert sorted(keys) == [ColumnKey("廃プラ", 1), ColumnKey("廃プラ", 2)]

    def test_str(self):
        assert str(ColumnKey("可燃", 3)) == "可燃#3"


class TestPlanVersion:
    def test_live(self):
        live = PlanVersion.live()
        assert live.number == 0
        assert live.is_live
        assert live.state == "live"

    def test_frozen(self):
        frozen = PlanVersion.frozen(3)
        assert not frozen.is_live
        assert frozen.state == "frozen"

    def test_frozen_rejects_zero(self):
        with pytest.raises(ValueError):
            PlanVersion.frozen(0)

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            PlanVersion.of(-1)


class TestDisplayName:
    def test_circled_digits(self):
        assert default_display_name("廃プラ", 1) == "廃プラ①"
        assert default_display_name("廃プラ", 2) == "廃プラ②"
        assert default_display_name("缶", 20) == "缶⑳"

    def test_beyond_circled_range(self):
        assert default_display_name("缶", 21) == "缶(21)"

    def test_header_column_fills_display_name(self):
        column = HeaderColumn(order=1, waste_type="廃プラ", type_sequence=2)
        assert column.display_name == "廃プラ②"
        assert column.column == ColumnKey("廃プラ", 2)

    def test_explicit_display_name_kept(self):
        column = HeaderColumn(order=1, waste_type="可燃", display_name="燃えるごみ")
        assert column.display_name == "燃えるごみ"

    def test_header_column_rejects_zero_order(self):
        with pytest.raises(PydanticValidationError):
            HeaderColumn(order=0, waste_type="可燃")


class TestParseTimeOfDay:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("09:05", time(9, 5)),
            ("13:10:30", time(13, 10, 30)),
            (" 08:00 ", time(8, 0)),
            (time(7, 45), time(7, 45)),
            (datetime(2025, 1, 10, 9, 30), time(9, 30)),
            (timedelta(hours=14, minutes=5), time(14, 5)),
            (None, None),
            ("", None),
        ],
    )
    def test_accepted_values(self, value, expected):
        assert parse_time_of_day(value) == expected

    @pytest.mark.parametrize("value", ["9", "ab:cd", "25:00", "09:61", "1:2:3:4", 930])
    def test_malformed_values(self, value):
        with pytest.raises(ValueError):
            parse_time_of_day(value)

    def test_timedelta_out_of_range(self):
        with pytest.raises(ValueError):
            parse_time_of_day(timedelta(hours=25))


class TestPlanEntry:
    def test_minimal_entry(self):
        entry = PlanEntry(
            year=2025, month=1, date=date(2025, 1, 10), column=ColumnKey("廃プラ", 1)
        )
        assert entry.version == 0
        assert entry.day_class == DayClass.ORDINARY
        assert entry.plan_version.is_live
        assert entry.coordinate == (date(2025, 1, 10), ColumnKey("廃プラ", 1))

    def test_column_coercion(self):
        from_tuple = PlanEntry(year=2025, month=1, date=date(2025, 1, 1), column=("缶", 2))
        from_dict = PlanEntry(
            year=2025,
            month=1,
            date=date(2025, 1, 1),
            column={"waste_type": "缶", "type_sequence": 2},
        )
        assert from_tuple.column == from_dict.column == ColumnKey("缶", 2)

    def test_planned_time_string(self):
        entry = PlanEntry(
            year=2025,
            month=1,
            date=date(2025, 1, 1),
            column=("缶", 1),
            planned_time="13:00",
            vol=Decimal("5"),
        )
        assert entry.planned_time == time(13, 0)

    def test_date_outside_month_rejected(self):
        with pytest.raises(PydanticValidationError, match="outside 2025-01"):
            PlanEntry(year=2025, month=1, date=date(2025, 2, 1), column=("缶", 1))

    def test_negative_vol_rejected(self):
        with pytest.raises(PydanticValidationError, match="non-negative"):
            PlanEntry(
                year=2025, month=1, date=date(2025, 1, 1), column=("缶", 1), vol=Decimal("-1")
            )

    def test_malformed_time_rejected(self):
        with pytest.raises(PydanticValidationError):
            PlanEntry(
                year=2025, month=1, date=date(2025, 1, 1), column=("缶", 1), planned_time="9h"
            )

    def test_invalid_month_rejected(self):
        with pytest.raises(PydanticValidationError):
            PlanEntry(year=2025, month=13, date=date(2025, 1, 1), column=("缶", 1))


class TestHeaderDefinition:
    def test_inherits_column_fields(self):
        definition = HeaderDefinition(
            header_id=7, year=2025, month=1, day_class=DayClass.SPECIAL,
            order=1, waste_type="可燃",
        )
        assert definition.display_name == "可燃①"
        assert definition.column == ColumnKey("可燃", 1)


class TestSnapshotAndMonth:
    def test_snapshot_requires_frozen_version(self):
        with pytest.raises(PydanticValidationError):
            PlanVersionSnapshot(
                year=2025, month=1, version=0, created_at=datetime.now(), created_user="x"
            )

    def test_month_bounds(self):
        assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_bounds(2025, 12) == (date(2025, 12, 1), date(2025, 12, 31))

    def test_month_bounds_rejects_invalid_month(self):
        with pytest.raises(ValueError):
            month_bounds(2025, 0)
