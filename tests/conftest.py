"""Pytest configuration and fixtures for wasteplan tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from wasteplan.config import reset_config
from wasteplan.db.models import Base
from wasteplan.models import ColumnKey, DayClass, HeaderColumn, PlanEntry


@pytest.fixture(autouse=True)
def _test_env(monkeypatch):
    """Isolate every test from the developer's environment and .env file."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    for name in (
        "ON_SCHEDULE_MINUTES",
        "ACCEPTABLE_DELAY_MINUTES",
        "EARLY_SLACK_MINUTES",
        "OPERATION_TIMEOUT_SECONDS",
        "DEFAULT_USER",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    """File-backed database shared by several sessions (one per unit of work)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'wasteplan.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def ordinary_columns() -> list[HeaderColumn]:
    """Typical ordinary-day layout: 可燃, 廃プラ①, 廃プラ②, 缶."""
    return [
        HeaderColumn(order=1, waste_type="可燃"),
        HeaderColumn(order=2, waste_type="廃プラ", type_sequence=1),
        HeaderColumn(order=3, waste_type="廃プラ", type_sequence=2),
        HeaderColumn(order=4, waste_type="缶"),
    ]


def make_entry(
    day: date,
    waste_type: str = "廃プラ",
    type_sequence: int = 1,
    planned_time: time | str | None = "09:00",
    vol: str | None = "10",
    company_id: int | None = 1,
    version: int = 0,
    day_class: DayClass = DayClass.ORDINARY,
    note: str | None = None,
) -> PlanEntry:
    """Build a plan entry for the month ``day`` falls in."""
    return PlanEntry(
        year=day.year,
        month=day.month,
        version=version,
        date=day,
        column=ColumnKey(waste_type, type_sequence),
        day_class=day_class,
        company_id=company_id,
        vol=Decimal(vol) if vol is not None else None,
        planned_time=planned_time,
        note=note,
    )


@pytest.fixture
def entry_factory():
    """Expose make_entry to tests as a fixture."""
    return make_entry


@pytest.fixture
def january_plan() -> list[PlanEntry]:
    """A small January 2025 plan spread over three days."""
    return [
        make_entry(date(2025, 1, 10), "可燃", 1, "10:30", "4", company_id=2),
        make_entry(date(2025, 1, 10), "廃プラ", 1, "09:00", "10"),
        make_entry(date(2025, 1, 11), "廃プラ", 1, "13:00", "5"),
        make_entry(date(2025, 1, 12), "廃プラ", 2, "08:00", None, note="午前中"),
    ]
