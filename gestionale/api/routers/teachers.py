"""
Teachers registry: everybody reads it, administrators maintain it.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from gestionale.api.dependencies import store_unavailable
from gestionale.api.schemas.teachers import (
    TeacherCreate,
    TeacherEnvelope,
    TeacherListResponse,
    TeacherResponse,
    TeacherUpdate,
)
from gestionale.core.security import User, get_current_user, require_admin
from gestionale.db.models import StoreUnavailableError
from gestionale.db.session import get_db
from gestionale.domain.teachers import InvalidTeacherPayloadError, TeacherStore, teacher_update_payload

router = APIRouter(prefix="/teachers", tags=["teachers"])


@router.get("", response_model=TeacherListResponse)
def list_teachers(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Every teacher, ordered by name."""
    try:
        teachers = TeacherStore(db).list_teachers()
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    return TeacherListResponse(success=True, teachers=[TeacherResponse.model_validate(t) for t in teachers])


@router.post("", response_model=TeacherEnvelope, status_code=201)
def create_teacher(
    request: TeacherCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not request.full_name.strip():
        raise HTTPException(status_code=400, detail="Missing full_name")
    try:
        teacher = TeacherStore(db).create(request.full_name, request.courses)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    return TeacherEnvelope(success=True, teacher=TeacherResponse.model_validate(teacher))


@router.post("/{teacher_id}/update", response_model=TeacherEnvelope)
def update_teacher(
    teacher_id: int,
    request: TeacherUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Rename a teacher and/or replace their course list."""
    try:
        updates = teacher_update_payload(request.full_name, request.courses)
    except InvalidTeacherPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    try:
        teacher = TeacherStore(db).update(teacher_id, updates)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if teacher is None:
        raise HTTPException(status_code=404, detail="Teacher not found")
    return TeacherEnvelope(success=True, teacher=TeacherResponse.model_validate(teacher))
