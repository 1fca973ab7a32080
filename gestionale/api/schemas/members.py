"""
Schemas for member CRUD and the member import workflow.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MemberBase(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    fiscal_code: Optional[str] = None
    mobile: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    email: Optional[str] = None
    member_type: Optional[str] = None
    membership_year: Optional[str] = None
    payment_status: Optional[str] = None
    notes: Optional[str] = None


class MemberCreate(MemberBase):
    pass


class MemberUpdate(MemberBase):
    """Partial update; only the fields sent are changed."""


class MemberResponse(MemberBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ImportPreviewRequest(BaseModel):
    """Raw rows keyed by spreadsheet headers or canonical field names."""
    rows: List[Dict[str, Any]] = Field(default_factory=list)


class ConflictResponse(BaseModel):
    existing: Dict[str, Any]
    incoming: Dict[str, Any]


class DuplicateInFile(BaseModel):
    incoming: Dict[str, Any]
    first_occurrence: Dict[str, Any]


class ImportPreviewStats(BaseModel):
    received: int
    empty_discarded: int
    duplicates_in_file: int
    valid: int
    conflicts: int
    new: int


class ImportPreviewResponse(BaseModel):
    success: bool
    valid_rows: List[Dict[str, Any]]
    conflicts: List[ConflictResponse]
    duplicates_in_file: int
    duplicates: List[DuplicateInFile]
    stats: ImportPreviewStats


class ImportPlanRequest(BaseModel):
    """
    Rows as returned by the preview plus the operator decisions.

    ``choices`` and ``alternate_fiscal_codes`` are keyed by the id of the
    existing member in conflict.
    """
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    choices: Dict[str, str] = Field(default_factory=dict)
    alternate_fiscal_codes: Dict[str, str] = Field(default_factory=dict)


class ImportActionModel(BaseModel):
    action: str
    incoming: Dict[str, Any] = Field(default_factory=dict)
    target_id: Optional[int] = None


class ImportPlanResponse(BaseModel):
    success: bool
    actions: List[ImportActionModel]
    counts: Dict[str, int]


class ImportCommitRequest(BaseModel):
    actions: List[ImportActionModel] = Field(default_factory=list)


class ImportRowError(BaseModel):
    action: Optional[str] = None
    incoming: Dict[str, Any] = Field(default_factory=dict)
    error: str


class ImportCommitResponse(BaseModel):
    success: bool
    inserted: int
    updated: int
    skipped: int
    errors: List[ImportRowError]
    processed: int
    total: int
    cancelled: bool = False
