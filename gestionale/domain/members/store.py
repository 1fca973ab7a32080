"""
Owner-scoped persistence for members.

Every read and write is filtered by ``user_id`` so one account can never see
or touch another account's members.
"""
from contextlib import contextmanager
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gestionale.db.models import DuplicateFiscalCodeError, Member, translate_transport_errors
from gestionale.domain.members.normalizer import MEMBER_FIELDS

logger = logging.getLogger(__name__)


def member_to_dict(member: Member) -> Dict[str, Any]:
    data = {"id": member.id}
    for field in MEMBER_FIELDS:
        data[field] = getattr(member, field)
    data["created_at"] = member.created_at
    data["updated_at"] = member.updated_at
    return data


def is_unique_violation(error: IntegrityError) -> bool:
    origin = getattr(error, "orig", None)
    if getattr(origin, "pgcode", None) == "23505":
        return True
    message = str(origin or error).lower()
    return "unique" in message or "duplicate" in message


class MemberStore:
    """Narrow CRUD surface over the ``members`` table used by routes and the import workflow."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Direct CRUD
    # ------------------------------------------------------------------
    def list_members(self, owner_id: int) -> List[Member]:
        with translate_transport_errors():
            stmt = (
                select(Member)
                .where(Member.user_id == owner_id)
                .order_by(Member.last_name.asc(), Member.first_name.asc(), Member.id.asc())
            )
            return list(self.db.scalars(stmt))

    def get(self, owner_id: int, member_id: int) -> Optional[Member]:
        with translate_transport_errors():
            stmt = select(Member).where(Member.user_id == owner_id, Member.id == member_id)
            return self.db.scalars(stmt).first()

    def create(self, owner_id: int, payload: Dict[str, Any]) -> Member:
        try:
            with translate_transport_errors():
                member = Member(user_id=owner_id, **payload)
                self.db.add(member)
                self.db.commit()
                self.db.refresh(member)
                return member
        except IntegrityError as exc:
            self.db.rollback()
            if is_unique_violation(exc):
                raise DuplicateFiscalCodeError(payload.get("fiscal_code")) from exc
            raise

    def update(self, owner_id: int, member_id: int, payload: Dict[str, Any]) -> Optional[Member]:
        try:
            with translate_transport_errors():
                member = self.get(owner_id, member_id)
                if member is None:
                    return None
                for field, value in payload.items():
                    setattr(member, field, value)
                self.db.commit()
                self.db.refresh(member)
                return member
        except IntegrityError as exc:
            self.db.rollback()
            if is_unique_violation(exc):
                raise DuplicateFiscalCodeError(payload.get("fiscal_code")) from exc
            raise

    def delete(self, owner_id: int, member_id: int) -> bool:
        with translate_transport_errors():
            member = self.get(owner_id, member_id)
            if member is None:
                return False
            self.db.delete(member)
            self.db.commit()
            return True

    # ------------------------------------------------------------------
    # Import workflow primitives (no implicit commit)
    # ------------------------------------------------------------------
    def find_by_fiscal_codes(self, owner_id: int, fiscal_codes: Iterable[str]) -> List[Member]:
        codes = [code for code in fiscal_codes if code]
        if not codes:
            return []
        with translate_transport_errors():
            stmt = select(Member).where(Member.user_id == owner_id, Member.fiscal_code.in_(codes))
            return list(self.db.scalars(stmt))

    def update_by_id(self, owner_id: int, member_id: int, payload: Dict[str, Any]) -> int:
        with translate_transport_errors():
            stmt = (
                update(Member)
                .where(Member.user_id == owner_id, Member.id == member_id)
                .values(**payload)
                .execution_options(synchronize_session=False)
            )
            return self.db.execute(stmt).rowcount or 0

    def update_by_fiscal_code(self, owner_id: int, fiscal_code: str, payload: Dict[str, Any]) -> int:
        with translate_transport_errors():
            stmt = (
                update(Member)
                .where(Member.user_id == owner_id, Member.fiscal_code == fiscal_code)
                .values(**payload)
                .execution_options(synchronize_session=False)
            )
            return self.db.execute(stmt).rowcount or 0

    def insert(self, owner_id: int, payload: Dict[str, Any]) -> Member:
        with translate_transport_errors():
            member = Member(user_id=owner_id, **payload)
            self.db.add(member)
            self.db.flush()
            return member

    @contextmanager
    def savepoint(self):
        """Run one row's writes in a nested transaction so a failure only undoes that row."""
        with translate_transport_errors():
            with self.db.begin_nested():
                yield

    def commit(self) -> None:
        with translate_transport_errors():
            self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
