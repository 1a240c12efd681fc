"""Wasteplan web route modules.

Each module exports a ``router`` (APIRouter instance).

Usage:
    from wasteplan.web.routes import schedule
    app.include_router(schedule.router)
"""

from wasteplan.web.routes import schedule

__all__ = ["schedule"]
