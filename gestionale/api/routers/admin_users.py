"""
Administrative endpoints for managing users and reading the audit trail.

Every change made here writes an audit row; a failed audit write is logged and
does not fail the request.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from gestionale.api.schemas.auth import UserResponse
from gestionale.api.schemas.users import (
    AdminCreateUserRequest,
    AdminDeleteUserResponse,
    AdminListUsersResponse,
    AdminSetPasswordRequest,
    AdminSetPasswordResponse,
    AdminUpdateUserRequest,
    AdminUserResponse,
    AuditLogListResponse,
    AuditLogResponse,
)
from gestionale.core.security import (
    User,
    create_user,
    delete_user,
    generate_temporary_password,
    require_admin,
    set_user_password,
    update_user_access,
)
from gestionale.db.models import AuditLog
from gestionale.db.session import get_db
from gestionale.utils.audit import write_audit

router = APIRouter(prefix="/admin", tags=["admin-users"])

AUDIT_LIMIT_MAX = 500


@router.get("/users", response_model=AdminListUsersResponse)
async def list_users(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    List all users in the system. Admin access only.
    """
    users = db.query(User).order_by(User.created_at.desc()).all()
    return AdminListUsersResponse(
        success=True,
        users=[UserResponse.model_validate(user) for user in users],
    )


@router.post("/users", response_model=AdminUserResponse, status_code=201)
async def create_user_admin(
    payload: AdminCreateUserRequest,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = create_user(
        db=db,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        role=payload.role,
    )
    write_audit(
        request,
        actor_user_id=current_user.id,
        action="USER_CREATE",
        target_user_id=user.id,
        meta={"email": user.email, "role": user.role},
    )
    return AdminUserResponse(success=True, user=UserResponse.model_validate(user))


@router.patch("/users/{user_id}", response_model=AdminUserResponse)
async def update_user_admin(
    user_id: int,
    payload: AdminUpdateUserRequest,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Enable/disable a user or change their role. Admin access only.

    Administrators cannot disable themselves.
    """
    if payload.role is None and payload.is_active is None:
        raise HTTPException(status_code=400, detail="Nothing to update")
    if user_id == current_user.id and payload.is_active is False:
        raise HTTPException(status_code=400, detail="Cannot disable the currently authenticated admin user")

    before = db.query(User).filter(User.id == user_id).first()
    previous_role = before.role if before else None
    previous_active = before.is_active if before else None

    user = update_user_access(db, user_id, role=payload.role, is_active=payload.is_active)

    if payload.is_active is not None and payload.is_active != previous_active:
        write_audit(
            request,
            actor_user_id=current_user.id,
            action="USER_ENABLE" if payload.is_active else "USER_DISABLE",
            target_user_id=user.id,
        )
    if payload.role is not None and payload.role != previous_role:
        write_audit(
            request,
            actor_user_id=current_user.id,
            action="USER_ROLE_CHANGE",
            target_user_id=user.id,
            meta={"from": previous_role, "to": payload.role},
        )
    return AdminUserResponse(success=True, user=UserResponse.model_validate(user))


@router.patch("/users/{user_id}/password", response_model=AdminSetPasswordResponse)
async def set_user_password_admin(
    user_id: int,
    payload: AdminSetPasswordRequest,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Reset a user's password. Without a password in the body a temporary one is
    generated and returned once.
    """
    temporary_password = None
    new_password = payload.password
    if not new_password:
        temporary_password = new_password = generate_temporary_password()

    updated_user = set_user_password(db=db, user_id=user_id, new_password=new_password)
    write_audit(
        request,
        actor_user_id=current_user.id,
        action="USER_RESET_PASSWORD",
        target_user_id=updated_user.id,
        meta={"generated": temporary_password is not None},
    )
    return AdminSetPasswordResponse(
        success=True,
        user=UserResponse.model_validate(updated_user),
        temporary_password=temporary_password,
    )


@router.delete("/users/{user_id}", response_model=AdminDeleteUserResponse)
async def delete_user_admin(
    user_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Delete a user. Admin access only.
    """
    if user_id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete the currently authenticated admin user",
        )

    deleted = delete_user(db=db, user_id=user_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")

    write_audit(request, actor_user_id=current_user.id, action="USER_DELETE", target_user_id=user_id)
    return AdminDeleteUserResponse(success=True, deleted_user_id=user_id)


@router.get("/audit", response_model=AuditLogListResponse)
async def list_audit_logs(
    limit: int = Query(100, ge=1, le=AUDIT_LIMIT_MAX),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    logs = (
        db.query(AuditLog)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
    return AuditLogListResponse(
        success=True,
        logs=[AuditLogResponse.model_validate(log) for log in logs],
    )
