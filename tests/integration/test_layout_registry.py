"""Integration tests for the header layout registry against SQLite."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from wasteplan.errors import NotFoundError, ValidationError
from wasteplan.layout.registry import HeaderLayoutRegistry
from wasteplan.models import ColumnKey, DayClass, HeaderColumn


@pytest.mark.asyncio
async def test_undefined_layout_is_empty(db_session: AsyncSession):
    registry = HeaderLayoutRegistry(db_session)

    assert await registry.get_layout(2025, 1, DayClass.ORDINARY) == []


@pytest.mark.asyncio
async def test_replace_and_read_back(db_session: AsyncSession, ordinary_columns):
    registry = HeaderLayoutRegistry(db_session)

    stored = await registry.replace_layout(2025, 1, DayClass.ORDINARY, ordinary_columns)
    await db_session.commit()

    layout = await registry.get_layout(2025, 1, DayClass.ORDINARY)
    assert [h.display_name for h in layout] == ["可燃①", "廃プラ①", "廃プラ②", "缶①"]
    assert [h.order for h in layout] == [1, 2, 3, 4]
    assert all(h.header_id is not None for h in stored)
    assert {h.header_id for h in stored} == {h.header_id for h in layout}


@pytest.mark.asyncio
async def test_day_classes_are_independent(db_session: AsyncSession, ordinary_columns):
    registry = HeaderLayoutRegistry(db_session)
    await registry.replace_layout(2025, 1, DayClass.ORDINARY, ordinary_columns)
    await registry.replace_layout(
        2025, 1, DayClass.SPECIAL, [HeaderColumn(order=1, waste_type="粗大")]
    )
    await db_session.commit()

    assert len(await registry.get_layout(2025, 1, DayClass.ORDINARY)) == 4
    special = await registry.get_layout(2025, 1, DayClass.SPECIAL)
    assert [h.waste_type for h in special] == ["粗大"]


@pytest.mark.asyncio
async def test_replace_is_full_replace(db_session: AsyncSession, ordinary_columns):
    registry = HeaderLayoutRegistry(db_session)
    await registry.replace_layout(2025, 1, DayClass.ORDINARY, ordinary_columns)
    await db_session.commit()

    reordered = [
        HeaderColumn(order=1, waste_type="缶"),
        HeaderColumn(order=2, waste_type="可燃"),
    ]
    await registry.replace_layout(2025, 1, DayClass.ORDINARY, reordered)
    await db_session.commit()

    layout = await registry.get_layout(2025, 1, DayClass.ORDINARY)
    assert [h.waste_type for h in layout] == ["缶", "可燃"]


@pytest.mark.asyncio
async def test_invalid_layout_leaves_previous_intact(db_session: AsyncSession, ordinary_columns):
    """Orders {1, 2, 2, 4} are rejected and the stored layout is unchanged."""
    registry = HeaderLayoutRegistry(db_session)
    await registry.replace_layout(2025, 1, DayClass.ORDINARY, ordinary_columns)
    await db_session.commit()
    before = await registry.get_layout(2025, 1, DayClass.ORDINARY)

    broken = [
        HeaderColumn(order=1, waste_type="可燃"),
        HeaderColumn(order=2, waste_type="廃プラ"),
        HeaderColumn(order=2, waste_type="缶"),
        HeaderColumn(order=4, waste_type="びん"),
    ]
    with pytest.raises(ValidationError):
        await registry.replace_layout(2025, 1, DayClass.ORDINARY, broken)

    assert await registry.get_layout(2025, 1, DayClass.ORDINARY) == before


@pytest.mark.asyncio
async def test_order_of_and_header_lookup(db_session: AsyncSession, ordinary_columns):
    registry = HeaderLayoutRegistry(db_session)
    stored = await registry.replace_layout(2025, 1, DayClass.ORDINARY, ordinary_columns)
    await db_session.commit()

    third = stored[2]
    assert await registry.order_of(third.header_id) == 3
    header = await registry.get_header(third.header_id)
    assert header.column == ColumnKey("廃プラ", 2)


@pytest.mark.asyncio
async def test_order_of_unknown_header(db_session: AsyncSession):
    registry = HeaderLayoutRegistry(db_session)

    with pytest.raises(NotFoundError):
        await registry.order_of(999)
    with pytest.raises(NotFoundError):
        await registry.get_header(999)


@pytest.mark.asyncio
async def test_column_index(db_session: AsyncSession, ordinary_columns):
    registry = HeaderLayoutRegistry(db_session)
    await registry.replace_layout(2025, 1, DayClass.ORDINARY, ordinary_columns)
    await db_session.commit()

    index = await registry.column_index(2025, 1, DayClass.ORDINARY)

    assert set(index) == {
        ColumnKey("可燃", 1),
        ColumnKey("廃プラ", 1),
        ColumnKey("廃プラ", 2),
        ColumnKey("缶", 1),
    }
    assert index[ColumnKey("廃プラ", 2)].order == 3
