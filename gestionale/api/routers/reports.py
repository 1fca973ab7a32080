"""
Accounting reports: financial statement with operating result, and the
monthly VAT report by nature.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from gestionale.api.dependencies import parse_date_param, store_unavailable
from gestionale.core.security import User, require_admin
from gestionale.db.models import StoreUnavailableError
from gestionale.db.session import get_db
from gestionale.domain.reports.models import FullReport, ReportSummary, VatReport
from gestionale.domain.reports.procedures import ProcedureError
from gestionale.domain.reports.service import build_full_report, build_report_summary, build_vat_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/report", tags=["reports"])


@router.get("/full", response_model=FullReport)
def full_report(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Financial statement rows with the cash/bank recap, the operating result
    per account and the global totals for the range.
    """
    try:
        return build_full_report(db, current_user.id, parse_date_param(date_from), parse_date_param(date_to))
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    except ProcedureError as exc:
        logger.exception("Full report failed")
        raise HTTPException(status_code=500, detail=f"Report failed: {exc.message}")


@router.get("/iva/monthly-nature", response_model=VatReport)
def vat_monthly_nature(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return build_vat_report(db, current_user.id, parse_date_param(date_from), parse_date_param(date_to))
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    except ProcedureError as exc:
        logger.exception("VAT report failed")
        raise HTTPException(status_code=500, detail=f"VAT report failed: {exc.message}")


@router.get("/summary", response_model=ReportSummary)
def report_summary(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Global income, expenses, balance and VAT for the range."""
    try:
        return build_report_summary(db, current_user.id, parse_date_param(date_from), parse_date_param(date_to))
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    except ProcedureError as exc:
        logger.exception("Report summary failed")
        raise HTTPException(status_code=500, detail=f"Report summary failed: {exc.message}")
