"""
ORM models for the association's business tables and the store-level errors
raised by the repositories built on top of them.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
import logging

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError

from gestionale.db.session import Base

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoreUnavailableError(Exception):
    """Raised when the database cannot be reached; aborts the whole operation."""

    def __init__(self, message: str = None, original: Exception = None):
        self.original = original
        self.message = message or "Database unavailable"
        super().__init__(self.message)


class DuplicateFiscalCodeError(Exception):
    """Raised when a member write collides with an existing fiscal code of the same owner."""

    def __init__(self, fiscal_code: str = None, message: str = None):
        self.fiscal_code = fiscal_code
        self.message = message or "Duplicate data (fiscal code already present)"
        super().__init__(self.message)


TRANSPORT_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


@contextmanager
def translate_transport_errors():
    """Re-raise connectivity failures as StoreUnavailableError, leave everything else alone."""
    try:
        yield
    except TRANSPORT_ERRORS as exc:
        logger.error("Database transport error: %s", exc)
        raise StoreUnavailableError(str(getattr(exc, "orig", exc) or exc), original=exc) from exc


class Member(Base):
    """A registered member ("tesserato") owned by one account."""
    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("user_id", "fiscal_code", name="uq_members_user_fiscal_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(String(255), nullable=False, default="")
    last_name = Column(String(255), nullable=False, default="")
    fiscal_code = Column(String(32), nullable=True, index=True)
    mobile = Column(String(64), nullable=False, default="")
    address = Column(String(255), nullable=False, default="")
    city = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=False, default="")
    member_type = Column(String(64), nullable=False, default="Tesserato")
    membership_year = Column(String(16), nullable=False, default="25/26")
    payment_status = Column(String(64), nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Entry(Base):
    """A ledger movement ("movimento") of the prima nota."""
    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=True)
    operation_datetime = Column(DateTime, nullable=True, index=True)
    description = Column(Text, nullable=True)
    amount_in = Column(Numeric(12, 2), nullable=False, default=0)
    amount_out = Column(Numeric(12, 2), nullable=False, default=0)
    account_code = Column(String(32), nullable=True, index=True)
    method = Column(String(64), nullable=True)
    center = Column(String(128), nullable=True)
    note = Column(Text, nullable=True)
    nature = Column(String(32), nullable=True)
    vat_rate = Column(Numeric(5, 2), nullable=True)
    vat_amount = Column(Numeric(12, 2), nullable=True)
    source = Column(String(32), nullable=False, default="Manuale")
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Account(Base):
    """Chart-of-accounts row ("conto")."""
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(32), nullable=False)
    name = Column(String(255), nullable=True)
    type = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Teacher(Base):
    """Instructor of the association's courses; shared by every operator."""
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False, index=True)
    courses = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_user_id = Column(Integer, nullable=True, index=True)
    action = Column(String(64), nullable=False)
    target_user_id = Column(Integer, nullable=True)
    meta = Column(JSON, nullable=True)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
