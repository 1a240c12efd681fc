"""Wasteplan Pydantic models for type-safe data validation.

Column addressing is unified behind ColumnKey; version 0 is the live copy.
"""

from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

LIVE_VERSION = 0

_CIRCLED_DIGITS = 20


class DayClass(str, Enum):
    """Header layout variant for a day."""

    ORDINARY = "ordinary"
    SPECIAL = "special"


class ReconciliationStatus(str, Enum):
    """Plan/actual deviation classification."""

    NOT_PERFORMED = "NotPerformed"
    ON_SCHEDULE = "OnSchedule"
    DELAYED_ACCEPTABLE = "DelayedAcceptable"
    DELAYED_SEVERE = "DelayedSevere"


@dataclass(frozen=True, slots=True, order=True)
class ColumnKey:
    """A (waste type, occurrence sequence) column of the monthly layout."""

    waste_type: str
    type_sequence: int = 1

    def __str__(self) -> str:
        return f"{self.waste_type}#{self.type_sequence}"


@dataclass(frozen=True, slots=True)
class PlanVersion:
    """Live (0) vs Frozen(k >= 1) tag carried by every stored plan row."""

    number: int

    def __post_init__(self) -> None:
        if self.number < 0:
            raise ValueError(f"plan version must be >= 0, got {self.number}")

    @classmethod
    def live(cls) -> PlanVersion:
        return cls(LIVE_VERSION)

    @classmethod
    def frozen(cls, number: int) -> PlanVersion:
        if number < 1:
            raise ValueError(f"frozen versions start at 1, got {number}")
        return cls(number)

    @classmethod
    def of(cls, number: int) -> PlanVersion:
        return cls(number)

    @property
    def is_live(self) -> bool:
        return self.number == LIVE_VERSION

    @property
    def state(self) -> Literal["live", "frozen"]:
        return "live" if self.is_live else "frozen"


def default_display_name(waste_type: str, type_sequence: int) -> str:
    """Render a column caption such as ``廃プラ②``."""
    if 1 <= type_sequence <= _CIRCLED_DIGITS:
        return f"{waste_type}{chr(0x2460 + type_sequence - 1)}"
    return f"{waste_type}({type_sequence})"


def parse_time_of_day(value: Any) -> time | None:
    """Coerce ``HH:MM``/``HH:MM:SS`` strings, timedeltas and times to ``time``.

    Returns None for None or blank strings. Raises ValueError when malformed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    if isinstance(value, timedelta):
        seconds = int(value.total_seconds())
        if not 0 <= seconds < 24 * 3600:
            raise ValueError(f"time of day out of range: {value}")
        return time(seconds // 3600, (seconds % 3600) // 60, seconds % 60)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parts = text.split(":")
        if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
            raise ValueError(f"malformed time of day: {value!r}")
        hour, minute = int(parts[0]), int(parts[1])
        second = int(parts[2]) if len(parts) == 3 else 0
        return time(hour, minute, second)
    raise ValueError(f"unsupported time of day value: {value!r}")


class HeaderColumn(BaseModel):
    """One declared column as submitted by an operator."""

    order: int = Field(ge=1)
    waste_type: str = Field(min_length=1)
    type_sequence: int = Field(default=1, ge=1)
    display_name: str = ""

    @model_validator(mode="after")
    def _fill_display_name(self) -> HeaderColumn:
        if not self.display_name:
            self.display_name = default_display_name(self.waste_type, self.type_sequence)
        return self

    @property
    def column(self) -> ColumnKey:
        return ColumnKey(self.waste_type, self.type_sequence)


class HeaderDefinition(HeaderColumn):
    """A stored column of the live layout for (year, month, day class)."""

    header_id: int | None = None
    year: int
    month: int = Field(ge=1, le=12)
    day_class: DayClass = DayClass.ORDINARY
    created_at: datetime | None = None


class PlanEntry(BaseModel):
    """One scheduled occurrence: a single plan cell."""

    year: int
    month: int = Field(ge=1, le=12)
    version: int = Field(default=LIVE_VERSION, ge=0)
    date: dt.date
    column: ColumnKey
    day_class: DayClass = DayClass.ORDINARY
    company_id: int | None = None
    vol: Decimal | None = None
    planned_time: time | None = None
    note: str | None = None
    created_at: datetime | None = None

    @field_validator("column", mode="before")
    @classmethod
    def _coerce_column(cls, v: Any) -> ColumnKey:
        if isinstance(v, ColumnKey):
            return v
        if isinstance(v, dict):
            return ColumnKey(v["waste_type"], int(v.get("type_sequence", 1)))
        if isinstance(v, (tuple, list)) and len(v) == 2:
            return ColumnKey(v[0], int(v[1]))
        raise ValueError(f"cannot interpret column reference {v!r}")

    @field_validator("planned_time", mode="before")
    @classmethod
    def _coerce_planned_time(cls, v: Any) -> time | None:
        return parse_time_of_day(v)

    @field_validator("vol")
    @classmethod
    def _validate_vol(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("vol must be non-negative")
        return v

    @model_validator(mode="after")
    def _date_inside_month(self) -> PlanEntry:
        if (self.date.year, self.date.month) != (self.year, self.month):
            raise ValueError(
                f"date {self.date.isoformat()} is outside {self.year}-{self.month:02d}"
            )
        return self

    @property
    def plan_version(self) -> PlanVersion:
        return PlanVersion.of(self.version)

    @property
    def coordinate(self) -> tuple[date, ColumnKey]:
        return (self.date, self.column)


class PlanVersionSnapshot(BaseModel):
    """Metadata row for a frozen copy of a month's plan."""

    year: int
    month: int = Field(ge=1, le=12)
    version: int = Field(ge=1)
    created_at: datetime
    created_user: str


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1..12, got {month}")
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)
