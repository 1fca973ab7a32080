"""
Calls into the aggregation functions that live in Postgres.

The functions are treated as opaque: parameters are passed by name
(``p_user_id``, ``p_from`` ...) and rows come back as plain dicts to be
coerced by the report models.
"""
import logging
import re
from typing import Any, Dict, List, Mapping

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gestionale.db.models import TRANSPORT_ERRORS, translate_transport_errors

logger = logging.getLogger(__name__)

DASHBOARD_STATS = "dashboard_stats"
BAR_TOP_ITEMS = "bar_top_items"
VAT_MONTHLY_NATURE = "iva_monthly_nature"
VAT_MONTHLY_NATURE_DETAIL = "iva_monthly_nature_detail"
FINANCIAL_STATEMENT = "report_financial_statement"
OPERATING_RESULT = "report_operating_result"
GLOBAL_TOTALS = "report_global_totals"

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


class ProcedureError(Exception):
    """Raised when a stored function call fails for a reason other than connectivity."""

    def __init__(self, name: str, message: str):
        self.name = name
        self.message = message
        super().__init__(f"{name}: {message}")


def _arguments(name: str, params: Mapping[str, Any]) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid procedure name '{name}'")
    for key in params:
        if not _IDENTIFIER.match(key):
            raise ValueError(f"Invalid parameter name '{key}'")
    return ", ".join(f"{key} => :{key}" for key in params)


def call_procedure(db: Session, name: str, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Run a set-returning function and return its rows as dicts."""
    sql = f"SELECT * FROM {name}({_arguments(name, params)})"
    with translate_transport_errors():
        try:
            result = db.execute(text(sql), dict(params))
            return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as exc:
            if isinstance(exc, TRANSPORT_ERRORS):
                raise
            logger.error("Stored function %s failed: %s", name, exc)
            db.rollback()
            raise ProcedureError(name, str(getattr(exc, "orig", None) or exc)) from exc


def call_scalar_procedure(db: Session, name: str, params: Mapping[str, Any]) -> Any:
    """Run a function returning a single value (e.g. a JSON object)."""
    sql = f"SELECT {name}({_arguments(name, params)})"
    with translate_transport_errors():
        try:
            return db.execute(text(sql), dict(params)).scalar()
        except SQLAlchemyError as exc:
            if isinstance(exc, TRANSPORT_ERRORS):
                raise
            logger.error("Stored function %s failed: %s", name, exc)
            db.rollback()
            raise ProcedureError(name, str(getattr(exc, "orig", None) or exc)) from exc
