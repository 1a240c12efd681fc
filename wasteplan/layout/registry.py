"""Header layout registry.

Owns the ordered waste-type/sequence columns for each (year, month, day class).
Layouts live only at the live layer; edits replace the whole set atomically.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from wasteplan.db.models import HeaderDefinitionModel
from wasteplan.errors import NotFoundError, ValidationError
from wasteplan.models import ColumnKey, DayClass, HeaderColumn, HeaderDefinition

logger = logging.getLogger(__name__)


def validate_layout(
    year: int,
    month: int,
    day_class: DayClass,
    definitions: Sequence[HeaderColumn],
) -> list[HeaderColumn]:
    """Check a proposed layout entirely in memory.

    Rules:
    - at least one column
    - ``order`` values form exactly 1..N
    - (waste_type, type_sequence) pairs are unique
    - full HeaderDefinitions must target the same (year, month, day class)

    Returns:
        The columns sorted by order

    Raises:
        ValidationError: listing every problem found
    """
    problems: list[str] = []

    if not definitions:
        raise ValidationError("Header layout is empty")

    orders = [d.order for d in definitions]
    expected = list(range(1, len(definitions) + 1))
    if sorted(orders) != expected:
        duplicates = sorted(o for o, n in Counter(orders).items() if n > 1)
        missing = sorted(set(expected) - set(orders))
        detail = []
        if duplicates:
            detail.append(f"duplicate {duplicates}")
        if missing:
            detail.append(f"missing {missing}")
        problems.append(
            f"order must be contiguous 1..{len(definitions)}, got {sorted(orders)}"
            + (f" ({', '.join(detail)})" if detail else "")
        )

    columns = Counter(d.column for d in definitions)
    for column, count in columns.items():
        if count > 1:
            problems.append(f"column {column} declared {count} times")

    for d in definitions:
        if isinstance(d, HeaderDefinition) and (d.year, d.month, d.day_class) != (
            year,
            month,
            day_class,
        ):
            problems.append(
                f"column {d.column} belongs to {d.year}-{d.month:02d}/{d.day_class.value}"
            )

    if problems:
        raise ValidationError.from_problems(
            f"Invalid header layout for {year}-{month:02d}/{day_class.value}", problems
        )

    return sorted(definitions, key=lambda d: d.order)


class HeaderLayoutRegistry:
    """Session-scoped repository for monthly header layouts."""

    def __init__(self, session: AsyncSession):
        """Initialize registry with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def get_layout(
        self, year: int, month: int, day_class: DayClass = DayClass.ORDINARY
    ) -> list[HeaderDefinition]:
        """Ordered columns for a month. Empty list when no layout is configured.

        Raises:
            SQLAlchemyError: If database query fails
        """
        stmt = (
            select(HeaderDefinitionModel)
            .where(
                and_(
                    HeaderDefinitionModel.year == year,
                    HeaderDefinitionModel.month == month,
                    HeaderDefinitionModel.day_class == day_class.value,
                )
            )
            .order_by(HeaderDefinitionModel.header_order.asc())
        )

        result = await self.session.execute(stmt)
        return [_to_definition(row) for row in result.scalars().all()]

    async def replace_layout(
        self,
        year: int,
        month: int,
        day_class: DayClass,
        definitions: Sequence[HeaderColumn],
    ) -> list[HeaderDefinition]:
        """Validate, then delete the prior set and insert the new one.

        Both statements run in the caller's transaction; nothing is written
        when validation fails.

        Returns:
            The stored layout with assigned header ids

        Raises:
            ValidationError: On duplicate or non-contiguous input
            SQLAlchemyError: If database operation fails
        """
        columns = validate_layout(year, month, day_class, definitions)

        await self.session.execute(
            delete(HeaderDefinitionModel).where(
                and_(
                    HeaderDefinitionModel.year == year,
                    HeaderDefinitionModel.month == month,
                    HeaderDefinitionModel.day_class == day_class.value,
                )
            )
        )

        now = datetime.now(timezone.utc)
        rows = [
            HeaderDefinitionModel(
                year=year,
                month=month,
                day_class=day_class.value,
                header_order=column.order,
                waste_type=column.waste_type,
                type_sequence=column.type_sequence,
                display_name=column.display_name,
                created_at=now,
            )
            for column in columns
        ]
        self.session.add_all(rows)
        await self.session.flush()

        logger.info(
            "Replaced header layout %d-%02d/%s with %d columns",
            year,
            month,
            day_class.value,
            len(rows),
        )
        return [_to_definition(row) for row in rows]

    async def get_header(self, header_id: int) -> HeaderDefinition:
        row = await self.session.get(HeaderDefinitionModel, header_id)
        if row is None:
            raise NotFoundError(f"Header {header_id} does not exist")
        return _to_definition(row)

    async def order_of(self, header_id: int) -> int:
        """Display position of a header.

        Raises:
            NotFoundError: If the header id does not exist
        """
        stmt = select(HeaderDefinitionModel.header_order).where(
            HeaderDefinitionModel.header_id == header_id
        )
        result = await self.session.execute(stmt)
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError(f"Header {header_id} does not exist")
        return order

    async def column_index(
        self, year: int, month: int, day_class: DayClass = DayClass.ORDINARY
    ) -> dict[ColumnKey, HeaderDefinition]:
        """Map each ColumnKey of the layout to its definition."""
        return {d.column: d for d in await self.get_layout(year, month, day_class)}


def _to_definition(row: HeaderDefinitionModel) -> HeaderDefinition:
    return HeaderDefinition(
        header_id=row.header_id,
        year=row.year,
        month=row.month,
        day_class=DayClass(row.day_class),
        order=row.header_order,
        waste_type=row.waste_type,
        type_sequence=row.type_sequence,
        display_name=row.display_name,
        created_at=row.created_at,
    )
