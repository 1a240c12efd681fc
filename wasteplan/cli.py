"""Wasteplan CLI.

Commands:
- init: Initialize database schema
- layout show / layout set: Inspect or replace a month's header layout
- plan show: Print a month's plan at a version
- plan versions: List available versions and snapshot metadata
- plan snapshot: Freeze the live plan as a new version
- plan compare: Cell changes between two versions
- reconcile: Plan vs actual report for a month
- waste-types: Waste type master with default time and volume
- web serve: Run the JSON API
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from wasteplan.config import get_config
from wasteplan.core.logging import configure_logging
from wasteplan.db.connection import close_db, init_db
from wasteplan.errors import ValidationError, WastePlanError
from wasteplan.models import DayClass, HeaderColumn, ReconciliationStatus
from wasteplan.service import ScheduleService
from wasteplan.sources import SqlCompanyDirectory, SqlWasteTypeDirectory

T = TypeVar("T")

app = typer.Typer(
    name="wasteplan",
    help="Wasteplan - versioned waste collection plans and plan/actual reconciliation",
    no_args_is_help=True,
)
layout_cli = typer.Typer(help="Header layouts")
app.add_typer(layout_cli, name="layout")

plan_cli = typer.Typer(help="Monthly plans and versions")
app.add_typer(plan_cli, name="plan")

web_cli = typer.Typer(help="JSON API")
app.add_typer(web_cli, name="web")

console = Console()

_STATUS_STYLE = {
    ReconciliationStatus.NOT_PERFORMED: "red",
    ReconciliationStatus.ON_SCHEDULE: "green",
    ReconciliationStatus.DELAYED_ACCEPTABLE: "yellow",
    ReconciliationStatus.DELAYED_SEVERE: "bold red",
}


def build_service() -> ScheduleService:
    return ScheduleService(
        company_directory=SqlCompanyDirectory(),
        waste_type_directory=SqlWasteTypeDirectory(),
    )


def _run(work: Callable[[ScheduleService], Awaitable[T]]) -> T:
    """Run one service call, printing wasteplan errors instead of a traceback."""

    async def _main() -> T:
        try:
            return await work(build_service())
        finally:
            await close_db()

    config = get_config()
    configure_logging(config.log_level, config.log_format)
    try:
        return asyncio.run(_main())
    except WastePlanError as exc:
        console.print(f"[red]✗[/red] {exc}")
        problems = getattr(exc, "problems", [])
        if len(problems) > 1:
            for problem in problems:
                console.print(f"  {problem}", style="dim")
        raise typer.Exit(code=1) from exc


def parse_columns(specs: list[str]) -> list[HeaderColumn]:
    """Turn ``waste_type[:sequence]`` arguments into ordered header columns.

    Without an explicit sequence, repeated waste types are numbered 1, 2, ...
    in the order they appear.

    Raises:
        ValidationError: If an argument has no waste type or a non-numeric
            sequence
    """
    seen: Counter[str] = Counter()
    columns = []
    problems = []
    for order, spec in enumerate(specs, start=1):
        waste_type, _, sequence = spec.partition(":")
        seen[waste_type] += 1
        try:
            columns.append(
                HeaderColumn(
                    order=order,
                    waste_type=waste_type,
                    type_sequence=int(sequence) if sequence else seen[waste_type],
                )
            )
        except ValueError as exc:
            problems.append(f"{spec!r}: {_first_error(exc)}")
    if problems:
        raise ValidationError.from_problems("Invalid column argument", problems)
    return columns


def _first_error(exc: ValueError) -> str:
    if isinstance(exc, PydanticValidationError):
        return exc.errors()[0]["msg"]
    return "sequence must be an integer"


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        try:
            if drop:
                console.print("[yellow]Dropping existing tables...[/yellow]")
            await init_db(drop=drop)
        finally:
            await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


# ============================================================================
# Layouts
# ============================================================================


@layout_cli.command("show")
def layout_show(
    year: int = typer.Argument(..., help="Year"),
    month: int = typer.Argument(..., help="Month (1-12)"),
    day_class: DayClass = typer.Option(DayClass.ORDINARY, "--day-class", help="Day class"),
):
    """Show the column layout of a month."""
    layout = _run(lambda service: service.get_layout(year, month, day_class))
    if not layout:
        console.print(f"[yellow]No layout configured for {year}-{month:02d}/{day_class.value}[/yellow]")
        return

    table = Table(title=f"Layout {year}-{month:02d} ({day_class.value})")
    table.add_column("Order", justify="right")
    table.add_column("Header")
    table.add_column("Waste type")
    table.add_column("Seq", justify="right")
    table.add_column("ID", justify="right", style="dim")
    for header in layout:
        table.add_row(
            str(header.order),
            header.display_name,
            header.waste_type,
            str(header.type_sequence),
            str(header.header_id),
        )
    console.print(table)


@layout_cli.command("set")
def layout_set(
    year: int = typer.Argument(..., help="Year"),
    month: int = typer.Argument(..., help="Month (1-12)"),
    columns: list[str] = typer.Argument(..., help="Columns in order, as waste_type[:sequence]"),
    day_class: DayClass = typer.Option(DayClass.ORDINARY, "--day-class", help="Day class"),
):
    """Replace the column layout of a month."""
    layout = _run(
        lambda service: service.replace_layout(year, month, day_class, parse_columns(columns))
    )
    names = ", ".join(header.display_name for header in layout)
    console.print(f"[bold green]✓[/bold green] Layout saved ({len(layout)} columns): {names}")


# ============================================================================
# Plans
# ============================================================================


@plan_cli.command("show")
def plan_show(
    year: int = typer.Argument(..., help="Year"),
    month: int = typer.Argument(..., help="Month (1-12)"),
    version: int = typer.Option(0, "--version", "-v", help="Plan version (0 = live)"),
):
    """Print a month's plan, one row per scheduled cell."""
    view = _run(lambda service: service.get_month(year, month, version))
    label = "live" if version == 0 else f"v{version}"

    table = Table(title=f"Plan {year}-{month:02d} ({label})")
    table.add_column("Date")
    table.add_column("Day")
    table.add_column("Header")
    table.add_column("Company")
    table.add_column("Time")
    table.add_column("Vol", justify="right")
    table.add_column("Note", style="dim")

    for day in view.by_date():
        for cell in day.cells:
            entry = cell.entry
            table.add_row(
                day.date.isoformat(),
                day.day_class.value,
                cell.display_name,
                cell.company_name or (str(entry.company_id) if entry.company_id else "-"),
                entry.planned_time.strftime("%H:%M") if entry.planned_time else "-",
                str(entry.vol) if entry.vol is not None else "-",
                entry.note or "",
            )

    console.print(table)
    console.print(f"Available versions: {view.available_versions}")


@plan_cli.command("versions")
def plan_versions(
    year: int = typer.Argument(..., help="Year"),
    month: int = typer.Argument(..., help="Month (1-12)"),
):
    """List the versions of a month's plan."""
    snapshots = _run(lambda service: service.list_snapshots(year, month))

    table = Table(title=f"Versions {year}-{month:02d}")
    table.add_column("Version", justify="right")
    table.add_column("Created")
    table.add_column("By")
    table.add_row("0", "-", "live")
    for snapshot in snapshots:
        table.add_row(
            str(snapshot.version),
            snapshot.created_at.strftime("%Y-%m-%d %H:%M"),
            snapshot.created_user,
        )
    console.print(table)


@plan_cli.command("snapshot")
def plan_snapshot(
    year: int = typer.Argument(..., help="Year"),
    month: int = typer.Argument(..., help="Month (1-12)"),
    user: str | None = typer.Option(None, "--user", "-u", help="Recorded as the snapshot author"),
):
    """Freeze the live plan as a new version."""
    version = _run(lambda service: service.snapshot_month(year, month, created_user=user))
    console.print(f"[bold green]✓[/bold green] Snapshot {year}-{month:02d} v{version} created")


@plan_cli.command("compare")
def plan_compare(
    year: int = typer.Argument(..., help="Year"),
    month: int = typer.Argument(..., help="Month (1-12)"),
    from_version: int = typer.Option(..., "--from", help="Base version"),
    to_version: int = typer.Option(0, "--to", help="Compared version (0 = live)"),
):
    """Show cell changes between two versions."""
    changes = _run(
        lambda service: service.compare_versions(year, month, from_version, to_version)
    )
    if not changes:
        console.print(f"[green]No changes between v{from_version} and v{to_version}[/green]")
        return

    table = Table(title=f"Changes {year}-{month:02d}: v{from_version} → v{to_version}")
    table.add_column("Date")
    table.add_column("Column")
    table.add_column("Change")
    table.add_column("Fields")
    for change in changes:
        table.add_row(
            change.date.isoformat(),
            str(change.column),
            change.kind.value,
            ", ".join(change.fields),
        )
    console.print(table)


# ============================================================================
# Reconciliation
# ============================================================================


@app.command()
def reconcile(
    year: int = typer.Argument(..., help="Year"),
    month: int = typer.Argument(..., help="Month (1-12)"),
    show_all: bool = typer.Option(False, "--all", help="Include on-schedule records"),
):
    """Reconcile the live plan of a month against actual results."""
    report = _run(lambda service: service.reconcile_month(year, month))

    table = Table(title=f"Reconciliation {year}-{month:02d}")
    table.add_column("Date")
    table.add_column("Header")
    table.add_column("Planned")
    table.add_column("Actual")
    table.add_column("Diff", justify="right")
    table.add_column("Status")

    for record in report.records:
        if record.status == ReconciliationStatus.ON_SCHEDULE and not show_all:
            continue
        planned = record.planned.planned_time if record.planned else None
        style = _STATUS_STYLE[record.status]
        table.add_row(
            record.date.isoformat(),
            record.header_name or record.waste_type,
            planned.strftime("%H:%M") if planned else "-",
            str(record.actual.actual_time) if record.actual else "-",
            str(record.time_diff_minutes) if record.time_diff_minutes is not None else "-",
            f"[{style}]{record.status.value}[/{style}]",
        )
    console.print(table)

    summary = report.summary()
    if report.unplanned:
        extra = Table(title="Unplanned actuals")
        extra.add_column("Date")
        extra.add_column("Waste type")
        extra.add_column("Actual")
        extra.add_column("Company", justify="right")
        extra.add_column("Vol", justify="right")
        for result in report.unplanned:
            extra.add_row(
                str(result.date),
                result.waste_type,
                str(result.actual_time),
                str(result.company_id) if result.company_id is not None else "-",
                str(result.vol) if result.vol is not None else "-",
            )
        console.print(extra)

    console.print(
        "  ".join(f"{name}: [bold]{count}[/bold]" for name, count in summary.items())
    )
    for error in report.errors:
        console.print(f"[yellow]⚠[/yellow] {error.error}")


# ============================================================================
# Master data
# ============================================================================


@app.command("waste-types")
def waste_types():
    """List active waste types with their default time and volume."""
    rows = _run(lambda service: service.list_waste_types())
    if not rows:
        console.print("[yellow]No waste types configured[/yellow]")
        return

    table = Table(title="Waste types")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name")
    table.add_column("Ordinary")
    table.add_column("Special")
    table.add_column("Vol", justify="right")
    for waste_type in rows:
        times = [waste_type.default_time(day_class) for day_class in DayClass]
        table.add_row(
            str(waste_type.id),
            waste_type.name,
            *(t.strftime("%H:%M") if t else "-" for t in times),
            str(waste_type.default_vol) if waste_type.default_vol is not None else "-",
        )
    console.print(table)


# ============================================================================
# Web
# ============================================================================


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI JSON API."""
    import uvicorn

    typer.echo(f"Starting wasteplan API on http://{host}:{port}")
    uvicorn.run("wasteplan.web.app:app", host=host, port=port, reload=reload, workers=1)


if __name__ == "__main__":
    app()
