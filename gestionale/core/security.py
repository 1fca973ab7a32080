"""
Users, password hashing and JWT bearer authentication.

Tokens carry the user id as ``sub`` plus ``email``, ``role`` and ``is_admin``
so the frontend can gate admin pages without an extra round trip; the server
never trusts those claims and reloads the user on every request.
"""
from datetime import datetime, timedelta, timezone
import logging
import secrets
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import Session

from gestionale.db.session import Base, get_db
from .config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ROLE_ADMIN = "admin"
ROLE_USER = "user"
VALID_ROLES = {ROLE_ADMIN, ROLE_USER}
MIN_PASSWORD_LENGTH = 6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


bearer_scheme = HTTPBearer()


class User(Base):
    """Operator of the association backend (secretary, treasurer, admin)."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    is_active = Column(Boolean, nullable=False, default=True)
    role = Column(String, nullable=False, server_default=ROLE_USER, default=ROLE_USER)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == ROLE_ADMIN


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash stored for this user
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    expire = _utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role or ROLE_USER,
        "is_admin": user.is_admin,
        "exp": expire,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_user_id(token: str) -> Optional[int]:
    """User id from a bearer token, or None when the token is invalid or expired."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
        return int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        return None


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == _normalize_email(email)).first()


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    """Return the user when the password matches; disabled users are returned too."""
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active user (401 invalid token, 403 disabled)."""
    user_id = decode_user_id(credentials.credentials)
    user = db.get(User, user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is disabled")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return current_user


def _check_role(role: str) -> None:
    if role not in VALID_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid role '{role}'. Must be one of {sorted(VALID_ROLES)}",
        )


def _check_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        )


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User with id {user_id} not found")
    return user


def create_user(
    db: Session,
    email: str,
    password: str,
    full_name: Optional[str] = None,
    role: str = ROLE_USER,
) -> User:
    """Create a user; 400 on bad role or short password, 409 on a taken email."""
    _check_role(role)
    _check_password(password)
    if get_user_by_email(db, email) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        email=_normalize_email(email),
        hashed_password=get_password_hash(password),
        full_name=full_name,
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created %s user %s", role, user.email)
    return user


def set_user_password(db: Session, user_id: int, new_password: str) -> User:
    _check_password(new_password)
    user = _get_user_or_404(db, user_id)
    user.hashed_password = get_password_hash(new_password)
    db.commit()
    db.refresh(user)
    return user


def update_user_access(
    db: Session,
    user_id: int,
    *,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> User:
    """Change the role and/or the active flag; omitted values are left alone."""
    user = _get_user_or_404(db, user_id)
    if role is not None:
        _check_role(role)
        user.role = role
    if is_active is not None:
        user.is_active = is_active
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> bool:
    """Returns False when no such user exists."""
    user = db.get(User, user_id)
    if user is None:
        return False
    db.delete(user)
    db.commit()
    logger.info("Deleted user %s", user_id)
    return True


def generate_temporary_password() -> str:
    """Random URL-safe password handed once to the admin who reset it."""
    return secrets.token_urlsafe(9)
