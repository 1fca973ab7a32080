"""
Schemas for the teachers registry.
"""
import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class TeacherCreate(BaseModel):
    full_name: str
    courses: List[str] = []


class TeacherUpdate(BaseModel):
    """Omitted fields stay as they are."""
    full_name: Optional[str] = None
    courses: Optional[List[str]] = None


class TeacherResponse(BaseModel):
    id: int
    full_name: str
    courses: List[str] = []
    created_at: Optional[dt.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TeacherEnvelope(BaseModel):
    success: bool
    teacher: TeacherResponse


class TeacherListResponse(BaseModel):
    success: bool
    teachers: List[TeacherResponse]
