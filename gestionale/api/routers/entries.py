"""
Ledger entry ("prima nota") endpoints.
"""
import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, File, HTTPException, Query, Response, UploadFile
from sqlalchemy.orm import Session

from gestionale.api.dependencies import get_cancellation_registry, read_upload, store_unavailable
from gestionale.api.schemas.entries import (
    BulkMetaRequest,
    EntryCreate,
    EntryListResponse,
    EntryMetaUpdate,
    EntryResponse,
    SumUpImportResponse,
)
from gestionale.api.schemas.jobs import JobEnvelope
from gestionale.core.config import settings
from gestionale.core.security import User, get_current_user
from gestionale.db.models import StoreUnavailableError
from gestionale.db.session import get_db, get_session_local
from gestionale.domain import jobs
from gestionale.domain.entries.bulk import (
    STATUS_CANCELLED,
    STATUS_ERROR,
    EntryMetaPatch,
    apply_patch_to_ids,
    apply_patch_to_matching,
)
from gestionale.domain.entries.store import EntryFilters, EntryStore
from gestionale.domain.entries.sumup import parse_sumup_workbook
from gestionale.utils.cancellation import CancellationRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entries", tags=["entries"])


@router.get("", response_model=EntryListResponse)
def list_entries(
    search: Optional[str] = None,
    date_from: Optional[dt.datetime] = Query(None, alias="from"),
    date_to: Optional[dt.datetime] = Query(None, alias="to"),
    without_account: bool = Query(False, alias="withoutAccount"),
    account_code: Optional[str] = Query(None, alias="accountCode"),
    vat_rate: Optional[float] = Query(None, alias="vatRate"),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    One page of the user's entries, newest operation first.

    ``withoutAccount=true`` keeps only entries with no account code and takes
    precedence over ``accountCode``. ``pageSize`` is capped.
    """
    size = min(page_size or settings.entries_default_page_size, settings.entries_max_page_size)
    filters = EntryFilters(
        search=search or None,
        date_from=date_from,
        date_to=date_to,
        without_account=without_account,
        account_code=account_code or None,
        vat_rate=vat_rate,
    )
    try:
        items, total = EntryStore(db).list_entries(current_user.id, filters, page=page, page_size=size)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)

    return EntryListResponse(
        items=items,
        total=total,
        page=page,
        page_size=size,
        total_pages=max(1, -(-total // size)),
    )


@router.post("", response_model=EntryResponse, status_code=201)
def create_entry(
    request: EntryCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payload = request.model_dump()
    if payload["operation_datetime"] is None and payload["date"] is not None:
        payload["operation_datetime"] = dt.datetime.combine(payload["date"], dt.time.min)
    if payload["date"] is None and payload["operation_datetime"] is not None:
        payload["date"] = payload["operation_datetime"].date()
    payload["account_code"] = payload["account_code"] or None
    payload["nature"] = payload["nature"] or None
    payload["source"] = "Manuale"

    try:
        return EntryStore(db).create(current_user.id, payload)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)


@router.delete("/{entry_id}", status_code=204)
def delete_entry(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        deleted = EntryStore(db).delete(current_user.id, entry_id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if not deleted:
        raise HTTPException(status_code=404, detail="Entry not found")
    return Response(status_code=204)


@router.patch("/{entry_id}/meta", response_model=EntryResponse)
def update_entry_meta(
    entry_id: int,
    request: EntryMetaUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Set account code, nature and/or description of one entry."""
    sent = request.model_dump(exclude_unset=True)
    updates = {}
    if "account_code" in sent:
        updates["account_code"] = (sent["account_code"] or "").strip() or None
    if "nature" in sent:
        updates["nature"] = (sent["nature"] or "").strip() or None
    if "description" in sent:
        updates["description"] = (sent["description"] or "").strip()
    if not updates:
        raise HTTPException(
            status_code=400,
            detail="Body contains no updatable field (account_code, nature, description)",
        )

    try:
        entry = EntryStore(db).update_meta(current_user.id, entry_id, updates)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if entry is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    return entry


@router.post("/import/sumup", response_model=SumUpImportResponse)
async def import_sumup(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Import the sales of a SumUp .xlsx export; each sheet name becomes the cost centre."""
    if not (file.filename or "").lower().endswith(".xlsx"):
        raise HTTPException(status_code=400, detail="Expected a SumUp .xlsx export")
    content = await read_upload(file, settings.upload_max_file_size_mb * 1024 * 1024)

    try:
        payloads, discarded = parse_sumup_workbook(content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not payloads:
        raise HTTPException(status_code=400, detail="No valid sale found in the file")

    try:
        imported = EntryStore(db).create_many(current_user.id, payloads)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)

    logger.info("SumUp import for user %s: %d entries, %d rows discarded", current_user.id, imported, discarded)
    return SumUpImportResponse(success=True, imported=imported, discarded=discarded)


def run_bulk_meta_job(
    job_id: str,
    owner_id: int,
    request: BulkMetaRequest,
    registry: CancellationRegistry,
) -> None:
    """Background task applying a metadata patch to many entries."""
    token = registry.register(job_id)
    SessionLocal = get_session_local()
    db = SessionLocal()

    def _on_progress(progress: float, done: int, total: int) -> None:
        jobs.update_job(job_id, progress=progress, processed=done, total=total)

    try:
        store = EntryStore(db)
        patch = EntryMetaPatch(account_code=request.account_code, nature=request.nature)
        if request.mode == "all":
            filters_model = request.filters
            filters = EntryFilters(**filters_model.model_dump()) if filters_model else EntryFilters()
            jobs.update_job(job_id, stage="collecting")
            result = apply_patch_to_matching(
                store,
                owner_id,
                filters,
                patch,
                page_size=settings.bulk_page_size,
                on_progress=_on_progress,
                cancel_token=token,
            )
        else:
            jobs.update_job(job_id, stage="updating")
            result = apply_patch_to_ids(
                store,
                owner_id,
                request.ids,
                patch,
                on_progress=_on_progress,
                cancel_token=token,
            )

        if result.status == STATUS_ERROR:
            status = jobs.STATUS_FAILED
        elif result.status == STATUS_CANCELLED:
            status = jobs.STATUS_CANCELLED
        else:
            status = jobs.STATUS_SUCCEEDED
        jobs.update_job(job_id, processed=result.done, total=result.total)
        jobs.complete_job(
            job_id,
            status=status,
            progress=result.progress,
            error_message=result.error,
            result_metadata=result.as_dict(),
        )
    except Exception as exc:
        logger.exception("Bulk meta job %s failed", job_id)
        jobs.complete_job(job_id, status=jobs.STATUS_FAILED, error_message=str(exc))
    finally:
        db.close()
        registry.unregister(job_id)


@router.post("/bulk-meta", response_model=JobEnvelope, status_code=202)
def start_bulk_meta(
    background_tasks: BackgroundTasks,
    request: BulkMetaRequest = Body(...),
    current_user: User = Depends(get_current_user),
    registry: CancellationRegistry = Depends(get_cancellation_registry),
):
    """
    Assign account code and/or nature to the selected entries or to every
    entry matching the filters. Runs as a job; poll ``/api/jobs/{id}``.
    """
    total = len(set(request.ids)) if request.mode == "selected" else 0
    try:
        job = jobs.create_job(user_id=current_user.id, kind=jobs.JOB_KIND_ENTRY_BULK_META, total=total)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)

    registry.register(job["id"])
    background_tasks.add_task(run_bulk_meta_job, job["id"], current_user.id, request, registry)
    return JobEnvelope(success=True, job=job)
