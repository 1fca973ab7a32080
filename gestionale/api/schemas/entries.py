"""
Schemas for ledger entries, bulk metadata updates and the chart of accounts.
"""
import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EntryCreate(BaseModel):
    date: Optional[dt.date] = None
    operation_datetime: Optional[dt.datetime] = None
    description: Optional[str] = None
    amount_in: float = 0
    amount_out: float = 0
    account_code: Optional[str] = None
    method: Optional[str] = None
    center: Optional[str] = None
    note: Optional[str] = None
    nature: Optional[str] = None
    vat_rate: Optional[float] = None
    vat_amount: Optional[float] = None


class EntryResponse(BaseModel):
    id: int
    date: Optional[dt.date] = None
    operation_datetime: Optional[dt.datetime] = None
    description: Optional[str] = None
    amount_in: float = 0
    amount_out: float = 0
    account_code: Optional[str] = None
    method: Optional[str] = None
    center: Optional[str] = None
    note: Optional[str] = None
    nature: Optional[str] = None
    vat_rate: Optional[float] = None
    vat_amount: Optional[float] = None
    source: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EntryListResponse(BaseModel):
    items: List[EntryResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class EntryMetaUpdate(BaseModel):
    """Unset fields are untouched; empty account code or nature clears the value."""
    account_code: Optional[str] = None
    nature: Optional[str] = None
    description: Optional[str] = None


class EntryFiltersModel(BaseModel):
    search: Optional[str] = None
    date_from: Optional[dt.datetime] = Field(default=None, alias="from")
    date_to: Optional[dt.datetime] = Field(default=None, alias="to")
    without_account: bool = False
    account_code: Optional[str] = None
    vat_rate: Optional[float] = None

    model_config = ConfigDict(populate_by_name=True)


class BulkMetaRequest(BaseModel):
    """
    ``mode="selected"`` patches ``ids``; ``mode="all"`` patches every entry
    matching ``filters`` at the time the job starts.
    """
    mode: Literal["selected", "all"] = "selected"
    ids: List[int] = Field(default_factory=list)
    filters: Optional[EntryFiltersModel] = None
    account_code: Optional[str] = None
    nature: Optional[str] = None

    @model_validator(mode="after")
    def _check_patch(self):
        if self.account_code is None and self.nature is None:
            raise ValueError("At least one of account_code or nature must be provided")
        if self.mode == "selected" and not self.ids:
            raise ValueError("ids are required when mode is 'selected'")
        return self


class SumUpImportResponse(BaseModel):
    success: bool
    imported: int
    discarded: int


class AccountCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)
    name: Optional[str] = None
    type: Optional[str] = None


class AccountUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=32)
    name: Optional[str] = None
    type: Optional[str] = None


class AccountResponse(BaseModel):
    id: int
    code: str
    name: Optional[str] = None
    type: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    model_config = ConfigDict(from_attributes=True)
