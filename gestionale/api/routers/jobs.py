"""
Endpoints for tracking and cancelling background jobs.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from gestionale.api.dependencies import get_cancellation_registry, store_unavailable
from gestionale.api.schemas.jobs import JobEnvelope, JobListResponse
from gestionale.core.security import User, get_current_user
from gestionale.db.models import StoreUnavailableError
from gestionale.domain.jobs import FINAL_STATUSES, get_job, list_jobs
from gestionale.utils.cancellation import CancellationRegistry

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=JobEnvelope)
def get_job_endpoint(job_id: str, current_user: User = Depends(get_current_user)):
    try:
        job = get_job(job_id, user_id=current_user.id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobEnvelope(success=True, job=job)


@router.get("", response_model=JobListResponse)
def list_jobs_endpoint(
    kind: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    current_user: User = Depends(get_current_user),
):
    try:
        jobs, total = list_jobs(user_id=current_user.id, kind=kind, limit=limit, offset=offset)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    return JobListResponse(
        success=True,
        jobs=jobs,
        total_count=total,
        limit=limit,
        offset=offset,
    )


@router.post("/{job_id}/cancel", response_model=JobEnvelope)
def cancel_job_endpoint(
    job_id: str,
    current_user: User = Depends(get_current_user),
    registry: CancellationRegistry = Depends(get_cancellation_registry),
):
    """
    Ask a running job to stop at its next chunk or unit boundary.

    Work already committed is kept; the job ends with status ``cancelled``.
    """
    try:
        job = get_job(job_id, user_id=current_user.id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    if job["status"] in FINAL_STATUSES:
        raise HTTPException(status_code=409, detail=f"Job already {job['status']}")
    if not registry.cancel(job_id):
        raise HTTPException(status_code=409, detail="Job is not running in this process")
    return JobEnvelope(success=True, job=job)
