"""Database layer for wasteplan with async SQLAlchemy."""

from wasteplan.db.connection import close_db, get_session, init_db, session_scope
from wasteplan.db.models import (
    ActualResultModel,
    Base,
    CompanyModel,
    HeaderDefinitionModel,
    PlanEntryModel,
    PlanMonthLockModel,
    PlanVersionSnapshotModel,
    WasteTypeDefaultTimeModel,
    WasteTypeModel,
)

__all__ = [
    "Base",
    "HeaderDefinitionModel",
    "PlanEntryModel",
    "PlanVersionSnapshotModel",
    "PlanMonthLockModel",
    "ActualResultModel",
    "CompanyModel",
    "WasteTypeModel",
    "WasteTypeDefaultTimeModel",
    "get_session",
    "session_scope",
    "init_db",
    "close_db",
]
