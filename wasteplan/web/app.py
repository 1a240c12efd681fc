"""FastAPI application for the wasteplan JSON API."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from wasteplan.core.logging import configure_logging
from wasteplan.db.connection import close_db
from wasteplan.web.routes import schedule


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield
    await close_db()


app = FastAPI(title="Wasteplan Schedule API", lifespan=lifespan)
app.include_router(schedule.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
