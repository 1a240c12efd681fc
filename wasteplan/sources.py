"""External collaborators consumed by the schedule service.

Actual results, the company directory and the waste type master are owned
elsewhere; this package only reads them. SQL-backed implementations read the
shared database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from typing import Protocol

from sqlalchemy import and_, select

from wasteplan.db.connection import SessionScope, get_session
from wasteplan.db.models import (
    ActualResultModel,
    CompanyModel,
    WasteTypeDefaultTimeModel,
    WasteTypeModel,
)
from wasteplan.matching.models import ActualResult
from wasteplan.models import DayClass, month_bounds


@dataclass(slots=True)
class Company:
    id: int
    name: str
    color: str | None = None
    default_time: time | None = None


@dataclass(slots=True)
class WasteType:
    """A waste type header columns may use, with the defaults for new cells."""

    id: int
    name: str
    display_order: int = 0
    default_vol: Decimal | None = None
    default_times: dict[DayClass, time] = field(default_factory=dict)

    def default_time(self, day_class: DayClass = DayClass.ORDINARY) -> time | None:
        return self.default_times.get(day_class)


class ActualResultSource(Protocol):
    async def get_monthly_actual(self, year: int, month: int) -> list[ActualResult]: ...


class CompanyDirectory(Protocol):
    async def list_companies(self) -> list[Company]: ...


class WasteTypeDirectory(Protocol):
    async def list_waste_types(self) -> list[WasteType]: ...


class SqlActualResultSource:
    """Reads ``actual_results`` for a month, ordered by (date, actual_time)."""

    def __init__(self, session_scope: SessionScope = get_session):
        self._session_scope = session_scope

    async def get_monthly_actual(self, year: int, month: int) -> list[ActualResult]:
        first, last = month_bounds(year, month)
        stmt = (
            select(ActualResultModel)
            .where(
                and_(
                    ActualResultModel.date >= first,
                    ActualResultModel.date <= last,
                )
            )
            .order_by(ActualResultModel.date.asc(), ActualResultModel.actual_time.asc())
        )
        async with self._session_scope() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return [
            ActualResult(
                result_id=row.result_id,
                date=row.date,
                actual_time=row.actual_time,
                waste_type=row.waste_type,
                type_sequence=row.type_sequence,
                company_id=row.company_id,
                vol=row.vol,
                note=row.note,
            )
            for row in rows
        ]


class SqlCompanyDirectory:
    """Active companies from the ``companies`` master table."""

    def __init__(self, session_scope: SessionScope = get_session):
        self._session_scope = session_scope

    async def list_companies(self) -> list[Company]:
        stmt = (
            select(CompanyModel)
            .where(CompanyModel.is_active.is_(True))
            .order_by(CompanyModel.company_id.asc())
        )
        async with self._session_scope() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return [
            Company(
                id=row.company_id,
                name=row.name,
                color=row.color,
                default_time=row.default_time,
            )
            for row in rows
        ]


class SqlWasteTypeDirectory:
    """Active waste types ordered by ``display_order``, with their default times."""

    def __init__(self, session_scope: SessionScope = get_session):
        self._session_scope = session_scope

    async def list_waste_types(self) -> list[WasteType]:
        stmt = (
            select(WasteTypeModel)
            .where(WasteTypeModel.is_active.is_(True))
            .order_by(WasteTypeModel.display_order.asc(), WasteTypeModel.waste_type_id.asc())
        )
        async with self._session_scope() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
            defaults = await session.execute(
                select(WasteTypeDefaultTimeModel).where(
                    WasteTypeDefaultTimeModel.waste_type_id.in_([row.waste_type_id for row in rows])
                )
            )
            times: dict[int, dict[DayClass, time]] = {}
            for default in defaults.scalars():
                times.setdefault(default.waste_type_id, {})[DayClass(default.day_class)] = (
                    default.default_time
                )

        return [
            WasteType(
                id=row.waste_type_id,
                name=row.name,
                display_order=row.display_order,
                default_vol=row.default_vol,
                default_times=times.get(row.waste_type_id, {}),
            )
            for row in rows
        ]
