"""
Member ("tesserati") endpoints: CRUD plus the spreadsheet import workflow.

Import flow: ``preview`` (normalize, dedupe, find conflicts) -> operator
decisions -> ``plan`` -> ``commit`` (synchronous) or ``jobs`` (background,
with progress and cancellation).
"""
import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Response, UploadFile
from sqlalchemy.orm import Session

from gestionale.api.dependencies import get_cancellation_registry, read_upload, store_unavailable
from gestionale.api.schemas.jobs import JobEnvelope
from gestionale.api.schemas.members import (
    ImportActionModel,
    ImportCommitRequest,
    ImportCommitResponse,
    ImportPlanRequest,
    ImportPlanResponse,
    ImportPreviewRequest,
    ImportPreviewResponse,
    MemberCreate,
    MemberResponse,
    MemberUpdate,
)
from gestionale.core.config import settings
from gestionale.core.security import User, get_current_user
from gestionale.db.models import DuplicateFiscalCodeError, StoreUnavailableError
from gestionale.db.session import get_db, get_session_local
from gestionale.domain import jobs
from gestionale.domain.members.executor import execute_import_actions
from gestionale.domain.members.normalizer import (
    EmptyPayloadError,
    member_create_payload,
    member_update_payload,
    prepare_import_rows,
)
from gestionale.domain.members.reconciliation import (
    ImportAction,
    ImportPlanValidationError,
    check_choices,
    deduplicate_rows,
    detect_conflicts,
    plan_actions,
)
from gestionale.domain.members.store import MemberStore
from gestionale.processors.spreadsheet import read_member_rows
from gestionale.utils.cancellation import CancellationRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tesserati", tags=["members"])


@router.get("", response_model=List[MemberResponse])
def list_members(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return MemberStore(db).list_members(current_user.id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)


@router.post("", response_model=MemberResponse, status_code=201)
def create_member(
    request: MemberCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        payload = member_create_payload(request.model_dump())
        return MemberStore(db).create(current_user.id, payload)
    except EmptyPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except DuplicateFiscalCodeError as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)


@router.patch("/{member_id}", response_model=MemberResponse)
def update_member(
    member_id: int,
    request: MemberUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        payload = member_update_payload(request.model_dump(exclude_unset=True))
        member = MemberStore(db).update(current_user.id, member_id, payload)
    except EmptyPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except DuplicateFiscalCodeError as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if member is None:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


@router.delete("/{member_id}", status_code=204)
def delete_member(
    member_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        deleted = MemberStore(db).delete(current_user.id, member_id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if not deleted:
        raise HTTPException(status_code=404, detail="Member not found")
    return Response(status_code=204)


# ----------------------------------------------------------------------
# Import workflow
# ----------------------------------------------------------------------
def _preview(db: Session, owner_id: int, raw_rows: List[dict]) -> ImportPreviewResponse:
    rows, empty_discarded = prepare_import_rows(raw_rows)
    deduplicated = deduplicate_rows(rows)
    conflicts = detect_conflicts(
        MemberStore(db),
        owner_id,
        deduplicated.rows,
        chunk_size=settings.conflict_lookup_chunk_size,
    )
    valid_rows = deduplicated.rows
    return ImportPreviewResponse(
        success=True,
        valid_rows=valid_rows,
        conflicts=[{"existing": conflict.existing, "incoming": conflict.incoming} for conflict in conflicts],
        duplicates_in_file=deduplicated.duplicates_in_file,
        duplicates=deduplicated.duplicates,
        stats={
            "received": len(raw_rows),
            "empty_discarded": empty_discarded,
            "duplicates_in_file": deduplicated.duplicates_in_file,
            "valid": len(valid_rows),
            "conflicts": len(conflicts),
            "new": len(valid_rows) - len(conflicts),
        },
    )


@router.post("/import/preview", response_model=ImportPreviewResponse)
def preview_import(
    request: ImportPreviewRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Normalize raw rows, drop fully empty rows and in-file duplicates, and list
    the rows whose fiscal code already belongs to one of the user's members.

    Nothing is written.
    """
    try:
        return _preview(db, current_user.id, request.rows)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)


@router.post("/import/upload", response_model=ImportPreviewResponse)
async def upload_import(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Preview a .xlsx/.csv file (the sheet named like "tesserati", else the first one)."""
    content = await read_upload(file, settings.upload_max_file_size_mb * 1024 * 1024)
    try:
        raw_rows = read_member_rows(file.filename or "", content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        return _preview(db, current_user.id, raw_rows)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)


@router.post("/import/plan", response_model=ImportPlanResponse)
def plan_import(
    request: ImportPlanRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Turn previewed rows and the operator choices into one action per row.

    Conflicts are looked up again so the plan reflects the store as it is now.
    """
    try:
        check_choices(request.choices, request.alternate_fiscal_codes)
        rows, _ = prepare_import_rows(request.rows)
        rows = deduplicate_rows(rows).rows
        conflicts = detect_conflicts(
            MemberStore(db),
            current_user.id,
            rows,
            chunk_size=settings.conflict_lookup_chunk_size,
        )
        actions = plan_actions(rows, conflicts, request.choices, request.alternate_fiscal_codes)
    except ImportPlanValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": exc.message, "missing_alternate_ids": exc.missing_alternate_ids,
                    "invalid_choices": exc.invalid_choices},
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)

    counts = {"insert": 0, "overwrite": 0, "skip": 0}
    for action in actions:
        counts[action.action] = counts.get(action.action, 0) + 1
    return ImportPlanResponse(
        success=True,
        actions=[
            ImportActionModel(action=action.action, incoming=action.incoming, target_id=action.target_id)
            for action in actions
        ],
        counts=counts,
    )


def _to_actions(models: List[ImportActionModel]) -> List[ImportAction]:
    return [ImportAction(action=model.action, incoming=model.incoming, target_id=model.target_id) for model in models]


@router.post("/import/commit", response_model=ImportCommitResponse)
def commit_import(
    request: ImportCommitRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Apply planned actions in chunks; per-row failures are listed in ``errors``."""
    try:
        result = execute_import_actions(
            MemberStore(db),
            current_user.id,
            _to_actions(request.actions),
            chunk_size=settings.import_chunk_size,
        )
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)

    logger.info(
        "Member import for user %s: inserted=%d updated=%d skipped=%d errors=%d",
        current_user.id,
        result.inserted,
        result.updated,
        result.skipped,
        len(result.errors),
    )
    return ImportCommitResponse(success=True, **result.as_dict())


def run_member_import_job(
    job_id: str,
    owner_id: int,
    actions: List[ImportAction],
    registry: CancellationRegistry,
) -> None:
    """Background task running a member import and recording its progress on the job row."""
    token = registry.register(job_id)
    SessionLocal = get_session_local()
    db = SessionLocal()

    def _on_progress(processed: int, total: int) -> None:
        jobs.update_job(
            job_id,
            stage="importing",
            processed=processed,
            total=total,
            progress=processed / total * 100 if total else 100,
        )

    try:
        jobs.update_job(job_id, stage="importing")
        result = execute_import_actions(
            MemberStore(db),
            owner_id,
            actions,
            chunk_size=settings.import_chunk_size,
            on_progress=_on_progress,
            cancel_token=token,
        )
        jobs.complete_job(
            job_id,
            status=jobs.STATUS_CANCELLED if result.cancelled else jobs.STATUS_SUCCEEDED,
            result_metadata=result.as_dict(),
        )
    except StoreUnavailableError as exc:
        logger.error("Member import job %s aborted: %s", job_id, exc.message)
        jobs.complete_job(job_id, status=jobs.STATUS_FAILED, error_message=exc.message)
    except Exception as exc:
        logger.exception("Member import job %s failed", job_id)
        jobs.complete_job(job_id, status=jobs.STATUS_FAILED, error_message=str(exc))
    finally:
        db.close()
        registry.unregister(job_id)


@router.post("/import/jobs", response_model=JobEnvelope, status_code=202)
def start_import_job(
    request: ImportCommitRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    registry: CancellationRegistry = Depends(get_cancellation_registry),
):
    """Start the commit as a background job; poll ``/api/jobs/{id}`` for progress."""
    actions = _to_actions(request.actions)
    try:
        job = jobs.create_job(user_id=current_user.id, kind=jobs.JOB_KIND_MEMBER_IMPORT, total=len(actions))
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)

    registry.register(job["id"])
    background_tasks.add_task(run_member_import_job, job["id"], current_user.id, actions, registry)
    return JobEnvelope(success=True, job=job)


@router.get("/{member_id}", response_model=MemberResponse)
def get_member(
    member_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        member = MemberStore(db).get(current_user.id, member_id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if member is None:
        raise HTTPException(status_code=404, detail="Member not found")
    return member
