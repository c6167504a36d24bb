"""FastAPI application factory for the record importer."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .errors import ConfigurationError, InvalidStateError, NotFoundError
from .worker import expiry_sweeper

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-create tables for SQLite (local dev)
    if "sqlite" in settings.database_url:
        from .database import engine
        from .models import Base
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    expiry_sweeper.start()
    yield
    await expiry_sweeper.stop()


app = FastAPI(title=settings.app_title, lifespan=lifespan)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "status": exc.status})


@app.exception_handler(ConfigurationError)
async def configuration_handler(request: Request, exc: ConfigurationError):
    logger.warning("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# Import and register routers
from .routers import enrichment, health, pipeline, records, rules  # noqa: E402

app.include_router(pipeline.router)
app.include_router(records.router)
app.include_router(rules.router)
app.include_router(enrichment.router)
app.include_router(health.router)
