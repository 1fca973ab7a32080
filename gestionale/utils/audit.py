"""
Best-effort audit trail.

Failure here is swallowed and logged, never propagated: an audit row that
cannot be written must not fail the request that triggered it.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Request

from gestionale.db.models import AuditLog
from gestionale.db.session import get_session_local

logger = logging.getLogger(__name__)


def _client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def write_audit(
    request: Optional[Request],
    *,
    actor_user_id: Optional[int],
    action: str,
    target_user_id: Optional[int] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> bool:
    """Persist one audit row in its own session. Returns False when the write failed."""
    try:
        SessionLocal = get_session_local()
        with SessionLocal() as db:
            db.add(
                AuditLog(
                    actor_user_id=actor_user_id,
                    action=action,
                    target_user_id=target_user_id,
                    meta=meta or {},
                    ip=_client_ip(request),
                    user_agent=request.headers.get("user-agent") if request is not None else None,
                )
            )
            db.commit()
        return True
    except Exception as exc:  # noqa: BLE001
        logger.error("Audit write failed for action '%s': %s", action, exc)
        return False
