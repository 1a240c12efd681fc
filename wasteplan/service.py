"""Schedule service: the boundary called by the HTTP, CLI and batch layers.

Composes the header layout registry, the plan store and the reconciliation
engine. Each operation is one unit of work: it opens a session, commits on
success, and rolls back on validation failure, storage failure, timeout or
cancellation. Writes for the same (year, month) are mutually exclusive.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import TypeVar

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from wasteplan.config import AppConfig, get_config
from wasteplan.db.connection import SessionScope, get_session
from wasteplan.errors import (
    ConflictError,
    NotFoundError,
    OperationTimeoutError,
    StorageError,
    ValidationError,
)
from wasteplan.layout.registry import HeaderLayoutRegistry
from wasteplan.matching.engine import ReconciliationEngine
from wasteplan.matching.models import ActualResult, ReconciliationReport, Tolerances
from wasteplan.models import (
    ColumnKey,
    DayClass,
    HeaderColumn,
    HeaderDefinition,
    PlanEntry,
    PlanVersionSnapshot,
)
from wasteplan.plans.history import CellChange, compare_entries
from wasteplan.plans.locks import MonthLockRegistry
from wasteplan.plans.store import PlanStore, require_month
from wasteplan.sources import (
    ActualResultSource,
    CompanyDirectory,
    SqlActualResultSource,
    WasteType,
    WasteTypeDirectory,
)

logger = structlog.get_logger()

T = TypeVar("T")

# Shared by every service instance in the process
_default_locks = MonthLockRegistry()


@dataclass(slots=True)
class PlanCell:
    """A plan entry resolved against the current layout."""

    entry: PlanEntry
    header: HeaderDefinition | None
    company_name: str | None = None

    @property
    def display_name(self) -> str:
        if self.header is not None:
            return self.header.display_name
        return str(self.entry.column)

    @property
    def order(self) -> int | None:
        return self.header.order if self.header is not None else None

    @property
    def header_id(self) -> int | None:
        return self.header.header_id if self.header is not None else None


@dataclass(slots=True)
class DayPlan:
    date: date
    day_class: DayClass
    cells: list[PlanCell]
    note: str | None = None


@dataclass(slots=True)
class MonthView:
    year: int
    month: int
    version: int
    available_versions: list[int]
    layouts: dict[DayClass, list[HeaderDefinition]]
    cells: list[PlanCell] = field(default_factory=list)

    def by_date(self) -> list[DayPlan]:
        """Group cells per date, in the order the store returned them."""
        days: dict[date, DayPlan] = {}
        for cell in self.cells:
            day = days.get(cell.entry.date)
            if day is None:
                day = days[cell.entry.date] = DayPlan(
                    date=cell.entry.date, day_class=cell.entry.day_class, cells=[]
                )
            day.cells.append(cell)
            if day.note is None and cell.entry.note:
                day.note = cell.entry.note
        return list(days.values())


class ScheduleService:
    """Orchestrates layout, plan and reconciliation use cases."""

    def __init__(
        self,
        session_scope: SessionScope = get_session,
        actual_source: ActualResultSource | None = None,
        company_directory: CompanyDirectory | None = None,
        waste_type_directory: WasteTypeDirectory | None = None,
        engine: ReconciliationEngine | None = None,
        locks: MonthLockRegistry | None = None,
        config: AppConfig | None = None,
    ) -> None:
        """Initialize schedule service.

        Args:
            session_scope: Unit-of-work context manager factory
            actual_source: Source of observed results (default: SQL table)
            company_directory: Optional directory used to validate company ids
            waste_type_directory: Optional waste type master used to validate
                layout columns
            engine: Custom reconciliation engine
            locks: Per-month lock registry (default: process-wide)
            config: Application config (default: loaded from environment)
        """
        self.config = config or get_config()
        self._session_scope = session_scope
        self.actual_source = actual_source or SqlActualResultSource(session_scope)
        self.company_directory = company_directory
        self.waste_type_directory = waste_type_directory
        self.engine = engine or ReconciliationEngine()
        self.locks = locks or _default_locks

    def default_tolerances(self) -> Tolerances:
        """Tolerances used when a caller supplies none (see ReconciliationConfig)."""
        cfg = self.config.reconciliation
        return Tolerances(
            on_schedule_minutes=cfg.on_schedule_minutes,
            acceptable_delay_minutes=cfg.acceptable_delay_minutes,
            early_slack_minutes=cfg.early_slack_minutes,
        )

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    async def get_layout(
        self,
        year: int,
        month: int,
        day_class: DayClass = DayClass.ORDINARY,
        timeout: float | None = None,
    ) -> list[HeaderDefinition]:
        async def work(session: AsyncSession) -> list[HeaderDefinition]:
            return await HeaderLayoutRegistry(session).get_layout(year, month, day_class)

        return await self._run("get_layout", work, timeout=timeout)

    async def replace_layout(
        self,
        year: int,
        month: int,
        day_class: DayClass,
        columns: Sequence[HeaderColumn],
        timeout: float | None = None,
    ) -> list[HeaderDefinition]:
        """Replace the layout of (year, month, day_class).

        Raises:
            ValidationError: If the columns break the layout rules or, when a
                waste type master is configured and populated, name a waste type
                it does not list
        """

        async def work(session: AsyncSession) -> list[HeaderDefinition]:
            await self._check_waste_types(columns)
            registry = HeaderLayoutRegistry(session)
            return await registry.replace_layout(year, month, day_class, columns)

        return await self._run(
            "replace_layout", work, timeout=timeout, lock=(year, month)
        )

    async def order_of(self, header_id: int, timeout: float | None = None) -> int:
        async def work(session: AsyncSession) -> int:
            return await HeaderLayoutRegistry(session).order_of(header_id)

        return await self._run("order_of", work, timeout=timeout)

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def get_month(
        self, year: int, month: int, version: int = 0, timeout: float | None = None
    ) -> MonthView:
        """Plan of a month at ``version``, each entry resolved to its header."""
        require_month(year, month)

        async def work(session: AsyncSession) -> MonthView:
            companies = await self._company_names()
            registry = HeaderLayoutRegistry(session)
            store = PlanStore(session)
            layouts = {
                day_class: await registry.get_layout(year, month, day_class)
                for day_class in DayClass
            }
            entries = await store.get_month(year, month, version)
            versions = await store.available_versions(year, month)
            return MonthView(
                year=year,
                month=month,
                version=version,
                available_versions=versions,
                layouts=layouts,
                cells=_resolve_cells(entries, layouts, companies),
            )

        return await self._run("get_month", work, timeout=timeout)

    async def save_month(
        self,
        year: int,
        month: int,
        entries: Sequence[PlanEntry],
        timeout: float | None = None,
    ) -> int:
        """Replace the live plan of a month.

        Raises:
            ValidationError: If an entry is not live, lies outside the month,
                references a column missing from the current layout, or names
                an unknown company
        """
        async def work(session: AsyncSession) -> int:
            companies = await self._company_names()
            if companies is not None:
                unknown = sorted(
                    {e.company_id for e in entries if e.company_id is not None}
                    - companies.keys()
                )
                if unknown:
                    raise ValidationError(f"Unknown company id(s): {unknown}")

            registry = HeaderLayoutRegistry(session)
            indexes = {
                day_class: await registry.column_index(year, month, day_class)
                for day_class in DayClass
            }
            problems = [
                f"{e.date.isoformat()} {e.column}: no such column in the "
                f"{e.day_class.value} layout of {year}-{month:02d}"
                for e in entries
                if e.column not in indexes[e.day_class]
            ]
            if problems:
                raise ValidationError.from_problems("Plan references unknown headers", problems)

            return await PlanStore(session).save(year, month, entries)

        return await self._run("save_month", work, timeout=timeout, lock=(year, month))

    async def snapshot_month(
        self,
        year: int,
        month: int,
        created_user: str | None = None,
        timeout: float | None = None,
    ) -> int:
        user = created_user or self.config.default_user

        async def work(session: AsyncSession) -> int:
            return await PlanStore(session).snapshot(year, month, created_user=user)

        version = await self._run(
            "snapshot_month", work, timeout=timeout, lock=(year, month)
        )
        logger.info("plan_snapshot_created", year=year, month=month, version=version, user=user)
        return version

    async def latest_version(self, year: int, month: int, timeout: float | None = None) -> int:
        async def work(session: AsyncSession) -> int:
            return await PlanStore(session).latest_version(year, month)

        return await self._run("latest_version", work, timeout=timeout)

    async def available_versions(
        self, year: int, month: int, timeout: float | None = None
    ) -> list[int]:
        async def work(session: AsyncSession) -> list[int]:
            return await PlanStore(session).available_versions(year, month)

        return await self._run("available_versions", work, timeout=timeout)

    async def list_snapshots(
        self, year: int, month: int, timeout: float | None = None
    ) -> list[PlanVersionSnapshot]:
        async def work(session: AsyncSession) -> list[PlanVersionSnapshot]:
            return await PlanStore(session).list_snapshots(year, month)

        return await self._run("list_snapshots", work, timeout=timeout)

    async def available_year_months(self, timeout: float | None = None) -> list[tuple[int, int]]:
        async def work(session: AsyncSession) -> list[tuple[int, int]]:
            return await PlanStore(session).available_year_months()

        return await self._run("available_year_months", work, timeout=timeout)

    async def compare_versions(
        self,
        year: int,
        month: int,
        from_version: int,
        to_version: int = 0,
        timeout: float | None = None,
    ) -> list[CellChange]:
        """Cell changes going from ``from_version`` to ``to_version``."""

        async def work(session: AsyncSession) -> list[CellChange]:
            store = PlanStore(session)
            versions = await store.available_versions(year, month)
            missing = [v for v in (from_version, to_version) if v not in versions]
            if missing:
                raise NotFoundError(
                    f"Version(s) {missing} do not exist for {year}-{month:02d}"
                )
            base = await store.get_month(year, month, from_version)
            other = await store.get_month(year, month, to_version)
            return compare_entries(base, other)

        return await self._run("compare_versions", work, timeout=timeout)

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------

    async def list_waste_types(self, timeout: float | None = None) -> list[WasteType]:
        """Active waste types in display order; empty when no master is configured."""
        if self.waste_type_directory is None:
            return []
        return await self._guard(
            "list_waste_types", self.waste_type_directory.list_waste_types(), timeout=timeout
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile_month(
        self,
        year: int,
        month: int,
        tolerances: Tolerances | None = None,
        timeout: float | None = None,
    ) -> ReconciliationReport:
        """Reconcile the live plan of a month against its actual results."""
        require_month(year, month)
        tolerances = tolerances or self.default_tolerances()

        async def work(session: AsyncSession) -> tuple[list[PlanEntry], list[ActualResult], dict]:
            try:
                actual = await self.actual_source.get_monthly_actual(year, month)
            except SQLAlchemyError as exc:
                raise StorageError(
                    f"Failed to load actual results for {year}-{month:02d}"
                ) from exc
            registry = HeaderLayoutRegistry(session)
            indexes = {
                day_class: await registry.column_index(year, month, day_class)
                for day_class in DayClass
            }
            return await PlanStore(session).get_month(year, month, 0), actual, indexes

        planned, actual, indexes = await self._run("reconcile_month", work, timeout=timeout)

        report = self.engine.reconcile(planned, actual, tolerances)
        for record in report.records:
            if record.planned is not None:
                header = indexes[record.planned.day_class].get(record.planned.column)
                record.header_name = header.display_name if header else None

        logger.info(
            "plan_reconciled",
            year=year,
            month=month,
            **{key.lower(): value for key, value in report.summary().items()},
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _company_names(self) -> dict[int, str] | None:
        if self.company_directory is None:
            return None
        companies = await self.company_directory.list_companies()
        return {company.id: company.name for company in companies}

    async def _check_waste_types(self, columns: Sequence[HeaderColumn]) -> None:
        if self.waste_type_directory is None:
            return
        waste_types = await self.waste_type_directory.list_waste_types()
        if not waste_types:
            return
        known = {waste_type.name for waste_type in waste_types}
        problems = [
            f"column {column.order}: unknown waste type {column.waste_type!r}"
            for column in columns
            if column.waste_type not in known
        ]
        if problems:
            raise ValidationError.from_problems("Invalid header layout", problems)

    async def _run(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        timeout: float | None,
        lock: tuple[int, int] | None = None,
    ) -> T:
        async def unit() -> T:
            if lock is None:
                async with self._session_scope() as session:
                    return await work(session)
            async with self.locks.hold(*lock):
                async with self._session_scope() as session:
                    return await work(session)

        return await self._guard(operation, unit(), timeout=timeout)

    async def _guard(self, operation: str, call: Awaitable[T], *, timeout: float | None) -> T:
        """Await ``call`` under the operation deadline, mapping storage failures."""
        deadline = timeout if timeout is not None else self.config.operation_timeout_seconds
        log = logger.bind(operation=operation)
        try:
            return await asyncio.wait_for(call, deadline)
        except TimeoutError as exc:
            log.warning("operation_timed_out", timeout=deadline)
            raise OperationTimeoutError(
                f"{operation} exceeded {deadline}s and was rolled back"
            ) from exc
        except IntegrityError as exc:
            log.warning("operation_conflict", error=str(exc.orig))
            raise ConflictError(f"{operation} conflicted with a concurrent write") from exc
        except SQLAlchemyError as exc:
            log.error("storage_failure", error=str(exc))
            raise StorageError(f"{operation} failed: {exc}") from exc


def _resolve_cells(
    entries: Sequence[PlanEntry],
    layouts: dict[DayClass, list[HeaderDefinition]],
    companies: dict[int, str] | None,
) -> list[PlanCell]:
    indexes: dict[DayClass, dict[ColumnKey, HeaderDefinition]] = {
        day_class: {d.column: d for d in layout} for day_class, layout in layouts.items()
    }
    return [
        PlanCell(
            entry=entry,
            header=indexes.get(entry.day_class, {}).get(entry.column),
            company_name=(companies or {}).get(entry.company_id)
            if entry.company_id is not None
            else None,
        )
        for entry in entries
    ]
