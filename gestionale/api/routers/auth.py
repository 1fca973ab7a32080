"""
Authentication endpoints. Accounts are created by administrators only.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from gestionale.api.schemas.auth import AuthResponse, Token, UserLogin, UserResponse
from gestionale.core.security import User, authenticate_user, create_access_token, get_current_user
from gestionale.db.session import get_db

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/register")
async def register():
    """Self-registration is closed; ask an administrator for an account."""
    raise HTTPException(status_code=403, detail="Registration disabled")


@router.post("/login", response_model=AuthResponse)
async def login(credentials: UserLogin, db: Session = Depends(get_db)):
    """
    Login with email and password.

    Parameters:
    - email: User's email address
    - password: User's password

    Returns:
    - JWT access token
    - User information
    """
    user = authenticate_user(db, credentials.email, credentials.password)
    if not user:
        raise HTTPException(status_code=401, detail="Incorrect email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User is disabled")

    return AuthResponse(
        success=True,
        token=Token(access_token=create_access_token(user)),
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """
    Get current authenticated user information.

    Requires: Bearer token in Authorization header
    """
    return UserResponse.model_validate(current_user)
