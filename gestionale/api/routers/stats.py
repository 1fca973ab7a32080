"""
Dashboard statistics endpoints.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from gestionale.api.dependencies import get_stats_service, parse_date_param, store_unavailable
from gestionale.core.security import User, get_current_user
from gestionale.db.models import StoreUnavailableError
from gestionale.db.session import get_db
from gestionale.domain.reports.procedures import ProcedureError
from gestionale.domain.reports.service import BAR_LIMIT_DEFAULT, StatsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/dashboard")
def dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats: StatsService = Depends(get_stats_service),
) -> Dict[str, Any]:
    try:
        return stats.dashboard(db, current_user.id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    except ProcedureError as exc:
        raise HTTPException(status_code=500, detail=f"Dashboard stats failed: {exc.message}")


@router.get("/bar")
def bar_stats(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    limit: int = BAR_LIMIT_DEFAULT,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    stats: StatsService = Depends(get_stats_service),
) -> Dict[str, Any]:
    """Best-selling bar items in the range; results are cached for a few minutes."""
    try:
        return stats.bar_top_items(
            db,
            current_user.id,
            parse_date_param(date_from),
            parse_date_param(date_to),
            limit=limit,
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    except ProcedureError as exc:
        raise HTTPException(status_code=500, detail=f"Bar stats failed: {exc.message}")
