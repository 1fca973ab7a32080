"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers all API routers under ``/api``.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.logging_config import configure_logging

from .api.routers import (
    accounts, admin_users, auth, dashboard, entries, jobs, members, reports, stats, teachers
)
from .domain.reports.service import StatsService
from .utils.cancellation import CancellationRegistry

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
        yield
        return

    from .db.session import init_db

    try:
        init_db()
        logger.info("Database tables ready")
    except Exception:
        logger.exception("Failed to initialize database tables; the application cannot start")
        raise

    yield


app = FastAPI(
    title="Gestionale ASD API",
    version="1.0.0",
    description="Members, ledger and reports for an amateur sports association",
    lifespan=lifespan,
)

# Process-wide state shared by the routers
app.state.cancellations = CancellationRegistry()
app.state.stats = StatsService()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (auth, members, entries, accounts, jobs, stats, dashboard, reports, teachers, admin_users):
    app.include_router(module.router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Gestionale ASD API",
        "version": "1.0.0"
    }


@app.get(f"{API_PREFIX}/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "gestionale-asd-api"
    }
