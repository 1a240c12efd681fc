"""Shared dependencies for wasteplan web routes.

Usage:
    from fastapi import Depends
    from wasteplan.web.dependencies import get_service

    @router.get("/api/plans")
    async def plans(service: ScheduleService = Depends(get_service)):
        ...
"""

from __future__ import annotations

from fastapi import HTTPException

from wasteplan.errors import (
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
    WastePlanError,
)
from wasteplan.service import ScheduleService
from wasteplan.sources import SqlCompanyDirectory, SqlWasteTypeDirectory

# Global singleton for the service
_service: ScheduleService | None = None


def get_service() -> ScheduleService:
    """Get the process-wide ScheduleService.

    Built on first use so importing the routes does not require DATABASE_URL.
    Tests replace it through ``app.dependency_overrides``.
    """
    global _service
    if _service is None:
        _service = ScheduleService(
            company_directory=SqlCompanyDirectory(),
            waste_type_directory=SqlWasteTypeDirectory(),
        )
    return _service


def http_error(exc: WastePlanError) -> HTTPException:
    """Translate a wasteplan error into the matching HTTP status."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail={"message": str(exc), "problems": exc.problems})
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StorageError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
