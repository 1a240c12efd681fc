"""Versioned plan store.

Version 0 is the live, freely edited copy of a month's plan. Snapshots copy
the live rows into a new frozen version (1, 2, ...) that is never modified
again. The write path stamps every row with its live/frozen state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from sqlalchemy import and_, delete, func, insert, literal, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.types import DateTime, Integer, String

from wasteplan.db.models import (
    HeaderDefinitionModel,
    PlanEntryModel,
    PlanVersionSnapshotModel,
)
from wasteplan.errors import ValidationError
from wasteplan.models import (
    ColumnKey,
    DayClass,
    PlanEntry,
    PlanVersion,
    PlanVersionSnapshot,
    month_bounds,
)
from wasteplan.plans.locks import acquire_month_lock

logger = logging.getLogger(__name__)

# Columns copied verbatim from the live rows into a snapshot
_COPIED_COLUMNS = (
    "year",
    "month",
    "date",
    "day_class",
    "waste_type",
    "type_sequence",
    "company_id",
    "vol",
    "planned_time",
    "note",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require_month(year: int, month: int) -> None:
    try:
        month_bounds(year, month)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def validate_live_entries(year: int, month: int, entries: Sequence[PlanEntry]) -> None:
    """In-memory checks run before any row is touched.

    Raises:
        ValidationError: On non-live versions, entries outside the month or
            duplicate (date, column) coordinates
    """
    require_month(year, month)
    problems: list[str] = []
    seen: set[tuple] = set()

    for entry in entries:
        label = f"{entry.date.isoformat()} {entry.column}"
        if not entry.plan_version.is_live:
            problems.append(
                f"{label}: version {entry.version} is frozen; only version 0 can be saved"
            )
        if (entry.year, entry.month) != (year, month):
            problems.append(f"{label}: belongs to {entry.year}-{entry.month:02d}")
        if entry.coordinate in seen:
            problems.append(f"{label}: duplicate plan cell")
        seen.add(entry.coordinate)

    if problems:
        raise ValidationError.from_problems(
            f"Cannot save plan for {year}-{month:02d}", problems
        )


class PlanStore:
    """Session-scoped repository for plan entries and their snapshots.

    Write methods flush but never commit; the caller's unit of work decides.
    """

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = _utcnow):
        """Initialize plan store with database session.

        Args:
            session: SQLAlchemy async session
            clock: Source of created_at timestamps
        """
        self.session = session
        self.clock = clock

    async def get_month(self, year: int, month: int, version: int = 0) -> list[PlanEntry]:
        """Plan entries of a month at one version, ordered by (date, column order).

        Unknown (year, month, version) combinations yield an empty list.
        Columns missing from the current layout sort after the declared ones.

        Raises:
            SQLAlchemyError: If database query fails
        """
        header = HeaderDefinitionModel
        stmt = (
            select(PlanEntryModel, header.header_order)
            .outerjoin(
                header,
                and_(
                    header.year == PlanEntryModel.year,
                    header.month == PlanEntryModel.month,
                    header.day_class == PlanEntryModel.day_class,
                    header.waste_type == PlanEntryModel.waste_type,
                    header.type_sequence == PlanEntryModel.type_sequence,
                ),
            )
            .where(
                and_(
                    PlanEntryModel.year == year,
                    PlanEntryModel.month == month,
                    PlanEntryModel.version == version,
                )
            )
            .order_by(
                PlanEntryModel.date.asc(),
                header.header_order.is_(None),
                header.header_order.asc(),
                PlanEntryModel.waste_type.asc(),
                PlanEntryModel.type_sequence.asc(),
            )
        )

        result = await self.session.execute(stmt)
        return [_to_entry(row.PlanEntryModel) for row in result.all()]

    async def save(self, year: int, month: int, entries: Sequence[PlanEntry]) -> int:
        """Full replace of the month's live (version 0) plan.

        Deletes every live row of the month, then bulk inserts ``entries``.
        Frozen rows are never touched. Saving the same entries twice leaves
        the same state.

        Returns:
            Number of rows written

        Raises:
            ValidationError: If any entry is not live or falls outside the month
            ConflictError: On concurrent creation of the month's lock row
            SQLAlchemyError: If database operation fails
        """
        validate_live_entries(year, month, entries)
        await acquire_month_lock(self.session, year, month, "save")

        live = PlanVersion.live()
        await self.session.execute(
            delete(PlanEntryModel).where(
                and_(
                    PlanEntryModel.year == year,
                    PlanEntryModel.month == month,
                    PlanEntryModel.version == live.number,
                )
            )
        )

        now = self.clock()
        if entries:
            await self.session.execute(
                insert(PlanEntryModel),
                [_to_row(entry, live, now) for entry in entries],
            )
        await self.session.flush()

        logger.info("Saved %d live plan entries for %d-%02d", len(entries), year, month)
        return len(entries)

    async def latest_version(self, year: int, month: int) -> int:
        """Highest recorded snapshot version, or 0 when none exist."""
        stmt = select(func.coalesce(func.max(PlanVersionSnapshotModel.version), 0)).where(
            and_(
                PlanVersionSnapshotModel.year == year,
                PlanVersionSnapshotModel.month == month,
            )
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def snapshot(self, year: int, month: int, created_user: str = "system") -> int:
        """Freeze the current live plan as version ``latest_version + 1``.

        Copies every live row of the month with INSERT ... SELECT and records
        the snapshot metadata row, all inside the caller's transaction. The
        live rows are left as they are.

        Returns:
            The new frozen version number

        Raises:
            ConflictError: On concurrent creation of the month's lock row
            IntegrityError: If another writer recorded the same version first
            SQLAlchemyError: If database operation fails
        """
        require_month(year, month)
        await acquire_month_lock(self.session, year, month, "snapshot")

        frozen = PlanVersion.frozen(await self.latest_version(year, month) + 1)
        now = self.clock()

        source = select(
            *(getattr(PlanEntryModel, name) for name in _COPIED_COLUMNS),
            literal(frozen.number, Integer).label("version"),
            literal(frozen.state, String).label("state"),
            literal(now, DateTime(timezone=True)).label("created_at"),
        ).where(
            and_(
                PlanEntryModel.year == year,
                PlanEntryModel.month == month,
                PlanEntryModel.version == PlanVersion.live().number,
            )
        )
        copy_stmt = insert(PlanEntryModel).from_select(
            [*_COPIED_COLUMNS, "version", "state", "created_at"], source
        )
        result = await self.session.execute(copy_stmt)

        self.session.add(
            PlanVersionSnapshotModel(
                year=year,
                month=month,
                version=frozen.number,
                created_at=now,
                created_user=created_user,
            )
        )
        await self.session.flush()

        logger.info(
            "Created snapshot %d-%02d v%d (%d rows) by %s",
            year,
            month,
            frozen.number,
            result.rowcount,
            created_user,
        )
        return frozen.number

    async def available_versions(self, year: int, month: int) -> list[int]:
        """Version 0 followed by every recorded snapshot version, ascending."""
        stmt = (
            select(PlanVersionSnapshotModel.version)
            .where(
                and_(
                    PlanVersionSnapshotModel.year == year,
                    PlanVersionSnapshotModel.month == month,
                )
            )
            .order_by(PlanVersionSnapshotModel.version.asc())
        )
        result = await self.session.execute(stmt)
        return [PlanVersion.live().number, *result.scalars().all()]

    async def list_snapshots(self, year: int, month: int) -> list[PlanVersionSnapshot]:
        stmt = (
            select(PlanVersionSnapshotModel)
            .where(
                and_(
                    PlanVersionSnapshotModel.year == year,
                    PlanVersionSnapshotModel.month == month,
                )
            )
            .order_by(PlanVersionSnapshotModel.version.asc())
        )
        result = await self.session.execute(stmt)
        return [
            PlanVersionSnapshot(
                year=row.year,
                month=row.month,
                version=row.version,
                created_at=row.created_at,
                created_user=row.created_user,
            )
            for row in result.scalars().all()
        ]

    async def available_year_months(self) -> list[tuple[int, int]]:
        """(year, month) pairs holding any plan data, live or frozen."""
        stmt = (
            select(PlanEntryModel.year, PlanEntryModel.month)
            .distinct()
            .order_by(PlanEntryModel.year.asc(), PlanEntryModel.month.asc())
        )
        result = await self.session.execute(stmt)
        return [(row.year, row.month) for row in result.all()]


def _to_row(entry: PlanEntry, version: PlanVersion, created_at: datetime) -> dict:
    return {
        "year": entry.year,
        "month": entry.month,
        "version": version.number,
        "state": version.state,
        "date": entry.date,
        "day_class": entry.day_class.value,
        "waste_type": entry.column.waste_type,
        "type_sequence": entry.column.type_sequence,
        "company_id": entry.company_id,
        "vol": entry.vol,
        "planned_time": entry.planned_time,
        "note": entry.note,
        "created_at": created_at,
    }


def _to_entry(row: PlanEntryModel) -> PlanEntry:
    return PlanEntry(
        year=row.year,
        month=row.month,
        version=row.version,
        date=row.date,
        column=ColumnKey(row.waste_type, row.type_sequence),
        day_class=DayClass(row.day_class),
        company_id=row.company_id,
        vol=row.vol,
        planned_time=row.planned_time,
        note=row.note,
        created_at=row.created_at,
    )
