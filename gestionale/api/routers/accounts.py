"""
Chart of accounts endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from gestionale.api.dependencies import store_unavailable
from gestionale.api.schemas.entries import AccountCreate, AccountResponse, AccountUpdate
from gestionale.core.security import User, get_current_user
from gestionale.db.models import StoreUnavailableError
from gestionale.db.session import get_db
from gestionale.domain.entries.store import AccountStore

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("", response_model=List[AccountResponse])
def list_accounts(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return AccountStore(db).list_accounts(current_user.id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)


@router.post("", response_model=AccountResponse, status_code=201)
def create_account(
    request: AccountCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return AccountStore(db).create(current_user.id, request.model_dump())
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)


@router.patch("/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: int,
    request: AccountUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payload = request.model_dump(exclude_unset=True)
    if not payload:
        raise HTTPException(status_code=400, detail="Nothing to update")
    try:
        account = AccountStore(db).update(current_user.id, account_id, payload)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.delete("/{account_id}", status_code=204)
def delete_account(
    account_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        deleted = AccountStore(db).delete(current_user.id, account_id)
    except StoreUnavailableError as exc:
        raise store_unavailable(exc)
    if not deleted:
        raise HTTPException(status_code=404, detail="Account not found")
    return Response(status_code=204)
