"""
Dashboard endpoints: admin totals and member counters for everybody.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from gestionale.api.dependencies import store_unavailable
from gestionale.core.security import User, get_current_user, require_admin
from gestionale.db.models import StoreUnavailableError
from gestionale.db.session import get_db
from gestionale.domain.reports.models import AdminDashboard
from gestionale.domain.reports.procedures import ProcedureError
from gestionale.domain.reports.service import build_admin_dashboard, build_public_dashboard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=AdminDashboard)
def admin_dashboard(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Income, expenses, balance and VAT over the whole ledger. Admin access only."""
    try:
        return build_admin_dashboard(db, current_user.id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    except ProcedureError as exc:
        logger.exception("Admin dashboard failed")
        raise HTTPException(status_code=500, detail=f"Dashboard failed: {exc.message}")


@router.get("/public")
def public_dashboard(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        return build_public_dashboard(db, current_user.id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
