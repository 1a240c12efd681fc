"""Schedule routes for the wasteplan JSON API.

Routes:
- GET  /api/layouts/{year}/{month}                      - Column layout for a day class
- PUT  /api/layouts/{year}/{month}/{day_class}          - Replace a layout
- GET  /api/plans                                       - Months holding plan data
- GET  /api/plans/{year}/{month}                        - Plan of a month at a version
- PUT  /api/plans/{year}/{month}                        - Replace the live plan
- GET  /api/plans/{year}/{month}/versions               - Available versions
- GET  /api/plans/{year}/{month}/snapshots              - Snapshot metadata
- POST /api/plans/{year}/{month}/snapshots              - Freeze the live plan
- GET  /api/plans/{year}/{month}/compare                - Cell changes between versions
- GET  /api/reconciliation/{year}/{month}               - Plan vs actual report
- GET  /api/waste-types                                 - Waste type master and cell defaults
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from wasteplan.errors import ValidationError, WastePlanError
from wasteplan.matching.models import ReconciledRecord, ReconciliationReport, Tolerances
from wasteplan.models import DayClass, HeaderDefinition, PlanEntry
from wasteplan.plans.history import CellChange
from wasteplan.service import MonthView, PlanCell, ScheduleService
from wasteplan.sources import WasteType
from wasteplan.web.dependencies import get_service, http_error
from wasteplan.web.models import LayoutReplaceRequest, PlanSaveRequest, SnapshotRequest

router = APIRouter(tags=["schedule"])


# ============================================================================
# Layout Routes
# ============================================================================


@router.get("/api/layouts/{year}/{month}")
async def get_layout(
    year: int,
    month: int,
    day_class: DayClass = Query(DayClass.ORDINARY),
    service: ScheduleService = Depends(get_service),
):
    try:
        layout = await service.get_layout(year, month, day_class)
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content={
        "year": year,
        "month": month,
        "day_class": day_class.value,
        "columns": [_header_to_dict(h) for h in layout],
    })


@router.put("/api/layouts/{year}/{month}/{day_class}")
async def replace_layout(
    year: int,
    month: int,
    day_class: DayClass,
    request: LayoutReplaceRequest,
    service: ScheduleService = Depends(get_service),
):
    """Replace the whole layout; rejected layouts leave the previous one intact."""
    try:
        layout = await service.replace_layout(year, month, day_class, request.columns)
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content={
        "year": year,
        "month": month,
        "day_class": day_class.value,
        "columns": [_header_to_dict(h) for h in layout],
    })


# ============================================================================
# Plan Routes
# ============================================================================


@router.get("/api/plans")
async def list_plan_months(service: ScheduleService = Depends(get_service)):
    try:
        months = await service.available_year_months()
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content={
        "months": [{"year": year, "month": month} for year, month in months],
    })


@router.get("/api/plans/{year}/{month}")
async def get_plan(
    year: int,
    month: int,
    version: int = Query(default=0, ge=0),
    service: ScheduleService = Depends(get_service),
):
    """Plan of a month grouped per date, each cell resolved to its header."""
    try:
        view = await service.get_month(year, month, version)
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content=_month_to_dict(view))


@router.put("/api/plans/{year}/{month}")
async def save_plan(
    year: int,
    month: int,
    request: PlanSaveRequest,
    service: ScheduleService = Depends(get_service),
):
    try:
        entries = _to_entries(year, month, request)
        saved = await service.save_month(year, month, entries)
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content={"year": year, "month": month, "saved": saved})


@router.get("/api/plans/{year}/{month}/versions")
async def get_versions(
    year: int,
    month: int,
    service: ScheduleService = Depends(get_service),
):
    try:
        versions = await service.available_versions(year, month)
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content={"year": year, "month": month, "versions": versions})


@router.get("/api/plans/{year}/{month}/snapshots")
async def get_snapshots(
    year: int,
    month: int,
    service: ScheduleService = Depends(get_service),
):
    try:
        snapshots = await service.list_snapshots(year, month)
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content={
        "year": year,
        "month": month,
        "snapshots": [
            {
                "version": s.version,
                "created_at": s.created_at.isoformat(),
                "created_user": s.created_user,
            }
            for s in snapshots
        ],
    })


@router.post("/api/plans/{year}/{month}/snapshots", status_code=201)
async def create_snapshot(
    year: int,
    month: int,
    request: SnapshotRequest | None = None,
    service: ScheduleService = Depends(get_service),
):
    created_user = request.created_user if request else None
    try:
        version = await service.snapshot_month(year, month, created_user=created_user)
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(
        status_code=201,
        content={"year": year, "month": month, "version": version},
    )


@router.get("/api/plans/{year}/{month}/compare")
async def compare_versions(
    year: int,
    month: int,
    from_version: int = Query(..., ge=0),
    to_version: int = Query(default=0, ge=0),
    service: ScheduleService = Depends(get_service),
):
    try:
        changes = await service.compare_versions(year, month, from_version, to_version)
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content={
        "year": year,
        "month": month,
        "from_version": from_version,
        "to_version": to_version,
        "count": len(changes),
        "changes": [_change_to_dict(c) for c in changes],
    })


# ============================================================================
# Reconciliation Routes
# ============================================================================


@router.get("/api/reconciliation/{year}/{month}")
async def reconcile_month(
    year: int,
    month: int,
    on_schedule_minutes: int | None = Query(None, ge=0),
    acceptable_delay_minutes: int | None = Query(None, ge=0),
    early_slack_minutes: int | None = Query(None, ge=0),
    service: ScheduleService = Depends(get_service),
):
    """Reconcile the live plan; thresholds not supplied fall back to configuration."""
    try:
        defaults = service.default_tolerances()
        tolerances = Tolerances(
            on_schedule_minutes=_pick(on_schedule_minutes, defaults.on_schedule_minutes),
            acceptable_delay_minutes=_pick(
                acceptable_delay_minutes, defaults.acceptable_delay_minutes
            ),
            early_slack_minutes=_pick(early_slack_minutes, defaults.early_slack_minutes),
        )
        report = await service.reconcile_month(year, month, tolerances)
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content=_report_to_dict(year, month, report))


# ============================================================================
# Master Data Routes
# ============================================================================


@router.get("/api/waste-types")
async def list_waste_types(service: ScheduleService = Depends(get_service)):
    """Active waste types with the default time and volume used for new cells."""
    try:
        waste_types = await service.list_waste_types()
    except WastePlanError as exc:
        raise http_error(exc) from exc

    return JSONResponse(content={"waste_types": [_waste_type_to_dict(w) for w in waste_types]})


# ============================================================================
# Serialization helpers
# ============================================================================


def _pick(value, default):
    return default if value is None else value


def _to_entries(year: int, month: int, request: PlanSaveRequest) -> list[PlanEntry]:
    entries, problems = [], []
    for index, cell in enumerate(request.entries):
        try:
            entries.append(cell.to_entry(year, month))
        except PydanticValidationError as exc:
            for error in exc.errors():
                problems.append(f"entries[{index}]: {error['msg']}")
    if problems:
        raise ValidationError.from_problems(f"Invalid plan for {year}-{month:02d}", problems)
    return entries


def _time_str(value) -> str | None:
    return value.strftime("%H:%M") if value is not None else None


def _header_to_dict(header: HeaderDefinition) -> dict:
    return {
        "header_id": header.header_id,
        "order": header.order,
        "waste_type": header.waste_type,
        "type_sequence": header.type_sequence,
        "display_name": header.display_name,
    }


def _waste_type_to_dict(waste_type: WasteType) -> dict:
    return {
        "id": waste_type.id,
        "name": waste_type.name,
        "display_order": waste_type.display_order,
        "default_vol": str(waste_type.default_vol) if waste_type.default_vol is not None else None,
        "default_times": {
            day_class.value: _time_str(waste_type.default_time(day_class)) for day_class in DayClass
        },
    }


def _entry_to_dict(entry: PlanEntry) -> dict:
    return {
        "date": entry.date.isoformat(),
        "waste_type": entry.column.waste_type,
        "type_sequence": entry.column.type_sequence,
        "day_class": entry.day_class.value,
        "company_id": entry.company_id,
        "vol": str(entry.vol) if entry.vol is not None else None,
        "planned_time": _time_str(entry.planned_time),
        "note": entry.note,
    }


def _cell_to_dict(cell: PlanCell) -> dict:
    return {
        **_entry_to_dict(cell.entry),
        "header_id": cell.header_id,
        "order": cell.order,
        "display_name": cell.display_name,
        "company_name": cell.company_name,
    }


def _month_to_dict(view: MonthView) -> dict:
    return {
        "year": view.year,
        "month": view.month,
        "version": view.version,
        "available_versions": view.available_versions,
        "layouts": {
            day_class.value: [_header_to_dict(h) for h in layout]
            for day_class, layout in view.layouts.items()
        },
        "days": [
            {
                "date": day.date.isoformat(),
                "day_class": day.day_class.value,
                "note": day.note,
                "cells": [_cell_to_dict(c) for c in day.cells],
            }
            for day in view.by_date()
        ],
    }


def _change_to_dict(change: CellChange) -> dict:
    return {
        "date": change.date.isoformat(),
        "waste_type": change.column.waste_type,
        "type_sequence": change.column.type_sequence,
        "kind": change.kind.value,
        "fields": change.fields,
        "before": _entry_to_dict(change.before) if change.before else None,
        "after": _entry_to_dict(change.after) if change.after else None,
    }


def _record_to_dict(record: ReconciledRecord) -> dict:
    actual = record.actual
    return {
        "date": record.date.isoformat(),
        "waste_type": record.waste_type,
        "type_sequence": record.type_sequence,
        "header_name": record.header_name,
        "status": record.status.value,
        "time_diff_minutes": record.time_diff_minutes,
        "planned_time": _time_str(record.planned.planned_time) if record.planned else None,
        "actual_time": str(actual.actual_time) if actual is not None else None,
        "company_id": record.planned.company_id if record.planned else None,
    }


def _report_to_dict(year: int, month: int, report: ReconciliationReport) -> dict:
    return {
        "year": year,
        "month": month,
        "summary": report.summary(),
        "records": [_record_to_dict(r) for r in report.records],
        "unplanned": [
            {
                "date": a.date.isoformat(),
                "waste_type": a.waste_type,
                "actual_time": str(a.actual_time),
                "company_id": a.company_id,
            }
            for a in report.unplanned
        ],
        "errors": [
            {"side": e.side, "date": e.record.date.isoformat(), "error": str(e.error)}
            for e in report.errors
        ],
    }
