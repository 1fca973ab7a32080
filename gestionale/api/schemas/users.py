"""
Schemas for administrative user management endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr

from gestionale.api.schemas.auth import UserResponse


class AdminCreateUserRequest(BaseModel):
    """Payload for creating a user as an administrator."""

    email: EmailStr
    password: str
    full_name: Optional[str] = None
    role: Literal["admin", "user"] = "user"


class AdminUserResponse(BaseModel):
    success: bool
    user: UserResponse


class AdminListUsersResponse(BaseModel):
    """Response with the current set of users."""

    success: bool
    users: List[UserResponse]


class AdminUpdateUserRequest(BaseModel):
    """Role and/or active flag change; omitted fields stay as they are."""

    role: Optional[Literal["admin", "user"]] = None
    is_active: Optional[bool] = None


class AdminSetPasswordRequest(BaseModel):
    """Payload for resetting a user's password; omit it to get a generated one."""

    password: Optional[str] = None


class AdminSetPasswordResponse(BaseModel):
    success: bool
    user: UserResponse
    temporary_password: Optional[str] = None


class AdminDeleteUserResponse(BaseModel):
    """Response returned when deleting a user."""

    success: bool
    deleted_user_id: int


class AuditLogResponse(BaseModel):
    id: int
    actor_user_id: Optional[int] = None
    action: str
    target_user_id: Optional[int] = None
    meta: Optional[Dict[str, Any]] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    success: bool
    logs: List[AuditLogResponse]
