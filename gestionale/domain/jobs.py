"""
Persistent tracking for long-running background jobs (member imports and
bulk ledger updates).

Every helper opens its own short session so progress written from a worker
thread is visible to the polling endpoint straight away.
"""
from __future__ import annotations

from datetime import datetime, timezone
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, func, select

from gestionale.db.models import translate_transport_errors
from gestionale.db.session import Base, get_session_local

logger = logging.getLogger(__name__)

JOB_KIND_MEMBER_IMPORT = "member_import"
JOB_KIND_ENTRY_BULK_META = "entry_bulk_meta"

STATUS_RUNNING = "running"
STATUS_SUCCEEDED = "succeeded"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"
FINAL_STATUSES = (STATUS_SUCCEEDED, STATUS_FAILED, STATUS_CANCELLED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String(50), nullable=False)
    status = Column(String(50), nullable=False, default=STATUS_RUNNING, index=True)
    stage = Column(String(50), nullable=False, default="queued")
    progress = Column(Integer, nullable=False, default=0)
    processed = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    result_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)


def _row_to_job(row: Job) -> Dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "kind": row.kind,
        "status": row.status,
        "stage": row.stage,
        "progress": row.progress,
        "processed": row.processed,
        "total": row.total,
        "error_message": row.error_message,
        "result_metadata": row.result_metadata,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
        "completed_at": row.completed_at,
    }


def _clamp_progress(progress: Any) -> int:
    return max(0, min(100, int(round(progress))))


def create_job(
    *,
    user_id: int,
    kind: str,
    total: int = 0,
    stage: str = "queued",
) -> Dict[str, Any]:
    """Create and persist a new running job."""
    job_id = str(uuid.uuid4())
    SessionLocal = get_session_local()
    with translate_transport_errors(), SessionLocal() as db:
        job = Job(
            id=job_id,
            user_id=user_id,
            kind=kind,
            status=STATUS_RUNNING,
            stage=stage,
            progress=0,
            processed=0,
            total=total,
        )
        db.add(job)
        db.commit()
        db.refresh(job)
        logger.info("Created %s job %s for user %s (total=%d)", kind, job_id, user_id, total)
        return _row_to_job(job)


def update_job(
    job_id: str,
    *,
    status: Optional[str] = None,
    stage: Optional[str] = None,
    progress: Optional[float] = None,
    processed: Optional[int] = None,
    total: Optional[int] = None,
    error_message: Optional[str] = None,
    result_metadata: Optional[Dict[str, Any]] = None,
    completed: bool = False,
) -> Optional[Dict[str, Any]]:
    """Update an existing job; unset arguments leave their column untouched."""
    SessionLocal = get_session_local()
    with translate_transport_errors(), SessionLocal() as db:
        job = db.get(Job, job_id)
        if job is None:
            return None
        if status is not None:
            job.status = status
        if stage is not None:
            job.stage = stage
        if progress is not None:
            job.progress = _clamp_progress(progress)
        if processed is not None:
            job.processed = processed
        if total is not None:
            job.total = total
        if error_message is not None:
            job.error_message = error_message
        if result_metadata is not None:
            job.result_metadata = result_metadata
        if completed and job.completed_at is None:
            job.completed_at = _utcnow()
        job.updated_at = _utcnow()
        db.commit()
        db.refresh(job)
        return _row_to_job(job)


def complete_job(
    job_id: str,
    *,
    status: str,
    error_message: Optional[str] = None,
    result_metadata: Optional[Dict[str, Any]] = None,
    progress: Optional[float] = None,
) -> Optional[Dict[str, Any]]:
    """Mark a job as finished with one of the final statuses."""
    if status not in FINAL_STATUSES:
        raise ValueError(f"Invalid final job status '{status}'")
    job = update_job(
        job_id,
        status=status,
        stage="completed",
        progress=progress,
        error_message=error_message,
        result_metadata=result_metadata,
        completed=True,
    )
    if job:
        log = logger.warning if status == STATUS_FAILED else logger.info
        log("Job %s finished with status %s", job_id, status)
    return job


def get_job(job_id: str, user_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Fetch a single job by ID, optionally restricted to its owner."""
    SessionLocal = get_session_local()
    with translate_transport_errors(), SessionLocal() as db:
        stmt = select(Job).where(Job.id == job_id)
        if user_id is not None:
            stmt = stmt.where(Job.user_id == user_id)
        job = db.scalars(stmt).first()
        return _row_to_job(job) if job else None


def list_jobs(
    *,
    user_id: int,
    kind: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Dict[str, Any]], int]:
    """List the owner's jobs, newest first."""
    SessionLocal = get_session_local()
    with translate_transport_errors(), SessionLocal() as db:
        conditions = [Job.user_id == user_id]
        if kind:
            conditions.append(Job.kind == kind)

        stmt = (
            select(Job)
            .where(*conditions)
            .order_by(Job.created_at.desc(), Job.id.desc())
            .limit(limit)
            .offset(offset)
        )
        jobs = [_row_to_job(job) for job in db.scalars(stmt)]
        total = db.scalar(select(func.count()).select_from(Job).where(*conditions)) or 0
        return jobs, total
