"""
Shared dependencies for the API routers.

Process-wide state (the cancellation registry for running jobs and the stats
service with its cache) lives on ``app.state`` and is created by
``gestionale.main``; routers reach it through the functions below.
"""
import logging
from typing import Optional

from fastapi import HTTPException, Request, UploadFile

from gestionale.db.models import StoreUnavailableError
from gestionale.domain.reports.service import StatsService
from gestionale.utils.cancellation import CancellationRegistry
from gestionale.utils.coercion import to_iso_date_or_none

logger = logging.getLogger(__name__)


def get_cancellation_registry(request: Request) -> CancellationRegistry:
    return request.app.state.cancellations


def get_stats_service(request: Request) -> StatsService:
    return request.app.state.stats


def parse_date_param(value: Optional[str]) -> Optional[str]:
    """Query-string date as ``YYYY-MM-DD``; unparsable values are treated as absent."""
    return to_iso_date_or_none(value)


def store_unavailable(exc: StoreUnavailableError) -> HTTPException:
    logger.error("Store unavailable: %s", exc.message)
    return HTTPException(status_code=503, detail="Database unavailable, please retry later")


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload without buffering more than ``max_bytes + 1`` bytes (413 beyond the limit)."""
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise HTTPException(status_code=413, detail="File too large")
    return content
