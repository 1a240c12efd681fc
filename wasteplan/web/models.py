"""Request models for the wasteplan JSON API.

Usage:
    from wasteplan.web.models import PlanSaveRequest

    @router.put("/api/plans/{year}/{month}")
    async def save_plan(year: int, month: int, request: PlanSaveRequest):
        ...
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from wasteplan.models import DayClass, HeaderColumn, PlanEntry


# ============================================================================
# Layout Models
# ============================================================================


class LayoutReplaceRequest(BaseModel):
    """Full column list for one (year, month, day class).

    Used by: PUT /api/layouts/{year}/{month}/{day_class}
    """

    columns: List[HeaderColumn]


# ============================================================================
# Plan Models
# ============================================================================


class PlanCellPayload(BaseModel):
    """One plan cell as submitted by the editing screen."""

    date: dt.date
    waste_type: str = Field(min_length=1)
    type_sequence: int = Field(default=1, ge=1)
    day_class: DayClass = DayClass.ORDINARY
    company_id: Optional[int] = None
    vol: Optional[Decimal] = None
    planned_time: Optional[str] = None
    note: Optional[str] = None

    def to_entry(self, year: int, month: int) -> PlanEntry:
        return PlanEntry(
            year=year,
            month=month,
            date=self.date,
            column=(self.waste_type, self.type_sequence),
            day_class=self.day_class,
            company_id=self.company_id,
            vol=self.vol,
            planned_time=self.planned_time,
            note=self.note,
        )


class PlanSaveRequest(BaseModel):
    """Complete live plan of a month; cells not listed are removed.

    Used by: PUT /api/plans/{year}/{month}
    """

    entries: List[PlanCellPayload] = Field(default_factory=list)


class SnapshotRequest(BaseModel):
    """Used by: POST /api/plans/{year}/{month}/snapshots"""

    created_user: Optional[str] = None
