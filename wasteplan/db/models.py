"""SQLAlchemy async database models for wasteplan.

Plan rows carry an explicit live/frozen state tag next to their version
number; the database rejects any row where the two disagree.
"""

from __future__ import annotations

import datetime as dt
from datetime import datetime, time
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class HeaderDefinitionModel(Base):
    """Live column layout for (year, month, day class). Never snapshotted."""

    __tablename__ = "header_definitions"

    header_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    day_class: Mapped[str] = mapped_column(String(16), nullable=False)

    header_order: Mapped[int] = mapped_column(Integer, nullable=False)
    waste_type: Mapped[str] = mapped_column(Text, nullable=False)
    type_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("header_order >= 1", name="check_header_order_positive"),
        CheckConstraint("type_sequence >= 1", name="check_type_sequence_positive"),
        CheckConstraint(
            "day_class IN ('ordinary', 'special')", name="check_day_class_valid"
        ),
        UniqueConstraint(
            "year", "month", "day_class", "header_order", name="uq_header_order"
        ),
        UniqueConstraint(
            "year",
            "month",
            "day_class",
            "waste_type",
            "type_sequence",
            name="uq_header_column",
        ),
    )


class PlanEntryModel(Base):
    """One plan cell at a given version (0 = live, >= 1 = frozen snapshot)."""

    __tablename__ = "plan_entries"

    plan_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String(8), nullable=False)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    day_class: Mapped[str] = mapped_column(String(16), nullable=False, default="ordinary")
    waste_type: Mapped[str] = mapped_column(Text, nullable=False)
    type_sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    company_id: Mapped[int | None] = mapped_column(Integer)
    vol: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    planned_time: Mapped[time | None] = mapped_column(Time)
    note: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "(state = 'live' AND version = 0) OR (state = 'frozen' AND version >= 1)",
            name="check_version_state",
        ),
        CheckConstraint("vol IS NULL OR vol >= 0", name="check_vol_non_negative"),
        UniqueConstraint(
            "year",
            "month",
            "version",
            "date",
            "waste_type",
            "type_sequence",
            name="uq_plan_coordinate",
        ),
        Index("idx_plan_month_version", "year", "month", "version"),
    )


class PlanVersionSnapshotModel(Base):
    """Append-only metadata for frozen plan copies."""

    __tablename__ = "plan_version_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    created_user: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint("version >= 1", name="check_snapshot_version_frozen"),
        UniqueConstraint("year", "month", "version", name="uq_snapshot_version"),
    )


class PlanMonthLockModel(Base):
    """One row per (year, month); updated to take the month's write lock."""

    __tablename__ = "plan_month_locks"

    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    month: Mapped[int] = mapped_column(Integer, primary_key=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    operation: Mapped[str | None] = mapped_column(Text)


class ActualResultModel(Base):
    """Observed disposal occurrence. Written by the intake side, read-only here."""

    __tablename__ = "actual_results"

    result_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    actual_time: Mapped[str | None] = mapped_column(String(8))
    waste_type: Mapped[str] = mapped_column(Text, nullable=False)
    type_sequence: Mapped[int | None] = mapped_column(Integer)
    company_id: Mapped[int | None] = mapped_column(Integer)
    vol: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CompanyModel(Base):
    """Collection company master data."""

    __tablename__ = "companies"

    company_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[str | None] = mapped_column(String(16))
    default_time: Mapped[time | None] = mapped_column(Time)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class WasteTypeModel(Base):
    """Waste type master. Header columns are drawn from the active rows."""

    __tablename__ = "waste_types"

    waste_type_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    default_vol: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class WasteTypeDefaultTimeModel(Base):
    """Default planned time of a waste type per day class, used to seed new cells."""

    __tablename__ = "waste_type_default_times"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    waste_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("waste_types.waste_type_id", ondelete="CASCADE"), nullable=False
    )
    day_class: Mapped[str] = mapped_column(String(16), nullable=False)
    default_time: Mapped[time] = mapped_column(Time, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "day_class IN ('ordinary', 'special')", name="check_default_time_day_class"
        ),
        UniqueConstraint("waste_type_id", "day_class", name="uq_waste_type_default_time"),
    )
