"""
Owner-scoped persistence for ledger entries and the chart of accounts.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from gestionale.db.models import Account, Entry, translate_transport_errors
from gestionale.utils.coercion import to_number

logger = logging.getLogger(__name__)

META_FIELDS = ("account_code", "nature", "description")
ACCOUNT_FIELDS = ("code", "name", "type")


@dataclass
class EntryFilters:
    """Filters of the entries list; the same object drives bulk "all matching" updates."""
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    without_account: bool = False
    account_code: Optional[str] = None
    vat_rate: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "search": self.search,
            "from": self.date_from.isoformat() if self.date_from else None,
            "to": self.date_to.isoformat() if self.date_to else None,
            "without_account": self.without_account,
            "account_code": self.account_code,
            "vat_rate": self.vat_rate,
        }


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def entry_to_dict(entry: Entry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "date": _json_value(entry.date),
        "operation_datetime": _json_value(entry.operation_datetime),
        "description": entry.description,
        "amount_in": to_number(entry.amount_in),
        "amount_out": to_number(entry.amount_out),
        "account_code": entry.account_code,
        "method": entry.method,
        "center": entry.center,
        "note": entry.note,
        "nature": entry.nature,
        "vat_rate": _json_value(entry.vat_rate),
        "vat_amount": _json_value(entry.vat_amount),
        "source": entry.source,
        "created_at": _json_value(entry.created_at),
    }


def account_to_dict(account: Account) -> Dict[str, Any]:
    return {
        "id": account.id,
        "user_id": account.user_id,
        "code": account.code,
        "name": account.name,
        "type": account.type,
        "created_at": _json_value(account.created_at),
    }


class EntryStore:
    """Entries of one database session; every call takes the owner id explicitly."""

    def __init__(self, db: Session):
        self.db = db

    def _filtered(self, owner_id: int, filters: Optional[EntryFilters]):
        conditions = [Entry.user_id == owner_id]
        filters = filters or EntryFilters()
        if filters.search:
            conditions.append(Entry.description.ilike(f"%{filters.search}%"))
        if filters.date_from is not None:
            conditions.append(Entry.operation_datetime >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(Entry.operation_datetime <= filters.date_to)
        if filters.without_account:
            conditions.append(or_(Entry.account_code.is_(None), Entry.account_code == ""))
        elif filters.account_code:
            conditions.append(Entry.account_code == filters.account_code)
        if filters.vat_rate is not None:
            conditions.append(Entry.vat_rate == filters.vat_rate)
        return conditions

    def list_entries(
        self,
        owner_id: int,
        filters: Optional[EntryFilters] = None,
        *,
        page: int = 1,
        page_size: int = 100,
    ) -> Tuple[List[Entry], int]:
        """
        Return one page of matching entries plus the total match count.

        Ordering is newest operation first with the id as tie-breaker, so
        consecutive pages never overlap or skip rows.
        """
        conditions = self._filtered(owner_id, filters)
        offset = (max(1, page) - 1) * page_size
        with translate_transport_errors():
            stmt = (
                select(Entry)
                .where(*conditions)
                .order_by(Entry.operation_datetime.desc(), Entry.id.desc())
                .offset(offset)
                .limit(page_size)
            )
            items = list(self.db.scalars(stmt))
            total = self.db.scalar(select(func.count()).select_from(Entry).where(*conditions)) or 0
            return items, total

    def list_ids(
        self,
        owner_id: int,
        filters: Optional[EntryFilters] = None,
        *,
        page: int = 1,
        page_size: int = 500,
    ) -> Tuple[List[int], int]:
        """Id-only variant of ``list_entries`` used to collect bulk-update targets."""
        conditions = self._filtered(owner_id, filters)
        offset = (max(1, page) - 1) * page_size
        with translate_transport_errors():
            stmt = (
                select(Entry.id)
                .where(*conditions)
                .order_by(Entry.operation_datetime.desc(), Entry.id.desc())
                .offset(offset)
                .limit(page_size)
            )
            ids = list(self.db.scalars(stmt))
            total = self.db.scalar(select(func.count()).select_from(Entry).where(*conditions)) or 0
            return ids, total

    def count(self, owner_id: Optional[int] = None) -> int:
        with translate_transport_errors():
            stmt = select(func.count()).select_from(Entry)
            if owner_id is not None:
                stmt = stmt.where(Entry.user_id == owner_id)
            return self.db.scalar(stmt) or 0

    def create(self, owner_id: int, payload: Dict[str, Any]) -> Entry:
        with translate_transport_errors():
            entry = Entry(user_id=owner_id, **payload)
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
            return entry

    def create_many(self, owner_id: int, payloads: List[Dict[str, Any]]) -> int:
        """Insert all payloads in one transaction; returns the number inserted."""
        if not payloads:
            return 0
        with translate_transport_errors():
            self.db.add_all(Entry(user_id=owner_id, **payload) for payload in payloads)
            self.db.commit()
            return len(payloads)

    def delete(self, owner_id: int, entry_id: int) -> bool:
        with translate_transport_errors():
            entry = self.db.scalars(
                select(Entry).where(Entry.user_id == owner_id, Entry.id == entry_id)
            ).first()
            if entry is None:
                return False
            self.db.delete(entry)
            self.db.commit()
            return True

    def update_meta(self, owner_id: int, entry_id: int, updates: Dict[str, Any]) -> Optional[Entry]:
        """
        Apply a metadata patch to one entry and commit it.

        Returns None when the owner has no entry with this id.
        """
        values = {key: value for key, value in updates.items() if key in META_FIELDS}
        if not values:
            raise ValueError("No updatable metadata fields")
        with translate_transport_errors():
            result = self.db.execute(
                update(Entry)
                .where(Entry.user_id == owner_id, Entry.id == entry_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if not result.rowcount:
                self.db.rollback()
                return None
            self.db.commit()
            return self.db.scalars(
                select(Entry).where(Entry.user_id == owner_id, Entry.id == entry_id)
            ).first()


class AccountStore:
    def __init__(self, db: Session):
        self.db = db

    def list_accounts(self, owner_id: int) -> List[Account]:
        with translate_transport_errors():
            stmt = select(Account).where(Account.user_id == owner_id).order_by(Account.code.asc(), Account.id.asc())
            return list(self.db.scalars(stmt))

    def get(self, owner_id: int, account_id: int) -> Optional[Account]:
        with translate_transport_errors():
            return self.db.scalars(
                select(Account).where(Account.user_id == owner_id, Account.id == account_id)
            ).first()

    def create(self, owner_id: int, payload: Dict[str, Any]) -> Account:
        with translate_transport_errors():
            account = Account(user_id=owner_id, **{key: payload.get(key) for key in ACCOUNT_FIELDS})
            self.db.add(account)
            self.db.commit()
            self.db.refresh(account)
            return account

    def update(self, owner_id: int, account_id: int, payload: Dict[str, Any]) -> Optional[Account]:
        with translate_transport_errors():
            account = self.get(owner_id, account_id)
            if account is None:
                return None
            for key in ACCOUNT_FIELDS:
                if key in payload:
                    setattr(account, key, payload[key])
            self.db.commit()
            self.db.refresh(account)
            return account

    def delete(self, owner_id: int, account_id: int) -> bool:
        with translate_transport_errors():
            account = self.get(owner_id, account_id)
            if account is None:
                return False
            self.db.delete(account)
            self.db.commit()
            return True
