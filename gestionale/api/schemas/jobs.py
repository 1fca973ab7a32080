"""
Schemas for background job tracking.
"""
import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class JobResponse(BaseModel):
    id: str
    kind: str
    status: str
    stage: str
    progress: int
    processed: int
    total: int
    error_message: Optional[str] = None
    result_metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None


class JobEnvelope(BaseModel):
    success: bool
    job: JobResponse


class JobListResponse(BaseModel):
    success: bool
    jobs: List[JobResponse]
    total_count: int
    limit: int
    offset: int
