"""
Report assembly on top of the stored aggregation functions.
"""
from datetime import date, datetime, time, timezone
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gestionale.core.config import settings
from gestionale.db.models import Member, translate_transport_errors
from gestionale.domain.entries.store import EntryStore
from gestionale.domain.reports import procedures
from gestionale.domain.reports.models import (
    AdminDashboard,
    BarItem,
    CashBankRecap,
    FinancialStatement,
    FinancialStatementRow,
    FullReport,
    GlobalTotals,
    OperatingResult,
    OperatingResultRow,
    ReportPeriod,
    ReportSummary,
    VatDetailRow,
    VatReport,
    VatSummaryRow,
    VatTotals,
)
from gestionale.utils.cache import TTLCache
from gestionale.utils.coercion import round2

logger = logging.getLogger(__name__)

BAR_LIMIT_DEFAULT = 10
BAR_LIMIT_MAX = 50
LATEST_MEMBERS_LIMIT = 10
COMPLETED_PAYMENT_STATUSES = {"completo", "completato"}


def _range_params(owner_id: int, date_from: Optional[str], date_to: Optional[str]) -> Dict[str, Any]:
    return {"p_user_id": owner_id, "p_from": date_from, "p_to": date_to}


def fetch_global_totals(
    db: Session, owner_id: int, date_from: Optional[str] = None, date_to: Optional[str] = None
) -> GlobalTotals:
    rows = procedures.call_procedure(db, procedures.GLOBAL_TOTALS, _range_params(owner_id, date_from, date_to))
    return GlobalTotals.model_validate(rows[0] if rows else {})


def build_report_summary(
    db: Session, owner_id: int, date_from: Optional[str] = None, date_to: Optional[str] = None
) -> ReportSummary:
    """Global totals of the range only, without statement rows."""
    totals = fetch_global_totals(db, owner_id, date_from, date_to)
    return ReportSummary(**totals.model_dump(), meta=ReportPeriod(date_from=date_from, date_to=date_to))


def build_full_report(
    db: Session, owner_id: int, date_from: Optional[str] = None, date_to: Optional[str] = None
) -> FullReport:
    """Financial statement rows with cash/bank recap, operating result per account, global totals."""
    params = _range_params(owner_id, date_from, date_to)
    financial_rows = [
        FinancialStatementRow.model_validate(row)
        for row in procedures.call_procedure(db, procedures.FINANCIAL_STATEMENT, params)
    ]
    operating_rows = [
        OperatingResultRow.model_validate(row)
        for row in procedures.call_procedure(db, procedures.OPERATING_RESULT, params)
    ]
    totals = fetch_global_totals(db, owner_id, date_from, date_to)

    return FullReport(
        financial_statement=FinancialStatement(rows=financial_rows, recap=CashBankRecap.from_rows(financial_rows)),
        operating_result=OperatingResult(rows=operating_rows),
        global_totals=totals,
        meta=ReportPeriod(date_from=date_from, date_to=date_to),
    )


def build_vat_report(
    db: Session,
    owner_id: int,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    account_codes: Optional[Sequence[str]] = None,
) -> VatReport:
    """Monthly VAT summary by nature and rate, per-account detail, and totals of the summary."""
    codes = list(account_codes if account_codes is not None else settings.vat_account_codes)
    params = {**_range_params(owner_id, date_from, date_to), "p_account_codes": codes}

    summary_rows = [
        VatSummaryRow.model_validate(row)
        for row in procedures.call_procedure(db, procedures.VAT_MONTHLY_NATURE, params)
    ]
    detail_rows = [
        VatDetailRow.model_validate(row)
        for row in procedures.call_procedure(db, procedures.VAT_MONTHLY_NATURE_DETAIL, params)
    ]

    return VatReport(
        summary_rows=summary_rows,
        detail_rows=detail_rows,
        totals=VatTotals.from_rows(summary_rows),
        meta=ReportPeriod(date_from=date_from, date_to=date_to, account_codes=codes),
    )


def build_admin_dashboard(db: Session, owner_id: int) -> AdminDashboard:
    totals = fetch_global_totals(db, owner_id)
    return AdminDashboard(
        total_income=totals.total_income,
        total_expenses=totals.total_expenses,
        balance=totals.balance,
        total_vat=totals.total_vat,
        total_movements=EntryStore(db).count(owner_id),
    )


def build_public_dashboard(db: Session, owner_id: int, today: Optional[date] = None) -> Dict[str, Any]:
    """Member counters without any amount, for every authenticated user."""
    today = today or datetime.now(timezone.utc).date()
    start = datetime.combine(today, time.min)
    end = datetime.combine(today, time.max)

    with translate_transport_errors():
        owned = Member.user_id == owner_id
        total_members = db.scalar(select(func.count()).select_from(Member).where(owned)) or 0
        joined_today = db.scalar(
            select(func.count()).select_from(Member).where(owned, Member.created_at >= start, Member.created_at <= end)
        ) or 0
        statuses = db.scalars(select(Member.payment_status).where(owned)).all()
        latest = db.scalars(
            select(Member).where(owned).order_by(Member.created_at.desc(), Member.id.desc()).limit(LATEST_MEMBERS_LIMIT)
        ).all()

    to_complete = sum(
        1 for status in statuses if status and status.strip().lower() not in COMPLETED_PAYMENT_STATUSES
    )
    return {
        "total_members": total_members,
        "members_joined_today": joined_today,
        "memberships_to_complete": to_complete,
        "latest_members": [
            {
                "id": member.id,
                "name": f"{member.first_name or ''} {member.last_name or ''}".strip(),
                "created_at": member.created_at.isoformat() if member.created_at else None,
                "payment_status": member.payment_status or "",
            }
            for member in latest
        ],
    }


class StatsService:
    """
    Dashboard statistics. Bar top items are cached per owner, range, limit and
    account codes for ``ttl_seconds``.
    """

    def __init__(self, ttl_seconds: int = None, bar_account_codes: Sequence[str] = None):
        self.cache = TTLCache(ttl_seconds or settings.stats_cache_ttl_seconds)
        self.bar_account_codes = list(bar_account_codes or settings.bar_account_codes)

    def dashboard(self, db: Session, owner_id: int) -> Dict[str, Any]:
        data = procedures.call_scalar_procedure(db, procedures.DASHBOARD_STATS, {"p_user_id": owner_id})
        return data if isinstance(data, dict) else {}

    def bar_top_items(
        self,
        db: Session,
        owner_id: int,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        limit: int = BAR_LIMIT_DEFAULT,
    ) -> Dict[str, Any]:
        limit = max(1, min(BAR_LIMIT_MAX, int(limit or BAR_LIMIT_DEFAULT)))
        key = (owner_id, date_from, date_to, limit, tuple(self.bar_account_codes))

        cached = self.cache.get(key)
        if cached is not None:
            return {**cached, "cached": True}

        rows = procedures.call_procedure(
            db,
            procedures.BAR_TOP_ITEMS,
            {
                **_range_params(owner_id, date_from, date_to),
                "p_bar_account_codes": self.bar_account_codes,
                "p_limit": limit,
            },
        )
        items: List[BarItem] = [BarItem.model_validate(row) for row in rows]
        payload = {
            "items": [item.model_dump(by_alias=True) for item in items],
            "total": round2(sum(item.amount for item in items)),
            "meta": {
                "from": date_from,
                "to": date_to,
                "limit": limit,
                "barAccountCodes": list(self.bar_account_codes),
            },
        }
        self.cache.set(key, payload)
        logger.debug("Bar top items cached for owner %s (%d item(s))", owner_id, len(items))
        return {**payload, "cached": False}
