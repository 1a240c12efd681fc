"""Per-month exclusive critical sections for plan writes.

Two layers: an in-process asyncio lock per (year, month) held by the
service for the whole unit of work, and a row lock on ``plan_month_locks``
taken inside the transaction so separate processes also serialize.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wasteplan.db.models import PlanMonthLockModel
from wasteplan.errors import ConflictError


class MonthLockRegistry:
    """asyncio.Lock per (year, month), created on first use."""

    def __init__(self) -> None:
        self._locks: dict[tuple[int, int], asyncio.Lock] = {}

    def lock_for(self, year: int, month: int) -> asyncio.Lock:
        key = (year, month)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, year: int, month: int) -> AsyncIterator[None]:
        async with self.lock_for(year, month):
            yield

    def is_locked(self, year: int, month: int) -> bool:
        lock = self._locks.get((year, month))
        return lock is not None and lock.locked()


async def acquire_month_lock(
    session: AsyncSession, year: int, month: int, operation: str
) -> None:
    """Take the month's row lock for the rest of the current transaction.

    The UPDATE holds a row lock on PostgreSQL and the database write lock on
    SQLite. The first writer of a month inserts the row.

    Raises:
        ConflictError: If another transaction created the lock row concurrently
    """
    now = datetime.now(timezone.utc)
    condition = and_(
        PlanMonthLockModel.year == year, PlanMonthLockModel.month == month
    )

    result = await session.execute(
        update(PlanMonthLockModel)
        .where(condition)
        .values(locked_at=now, operation=operation)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        return

    session.add(
        PlanMonthLockModel(year=year, month=month, locked_at=now, operation=operation)
    )
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConflictError(
            f"Concurrent {operation} on {year}-{month:02d}; retry the operation"
        ) from exc

    # Re-read under the lock so PostgreSQL holds it FOR UPDATE as well
    await session.execute(select(PlanMonthLockModel.year).where(condition).with_for_update())
