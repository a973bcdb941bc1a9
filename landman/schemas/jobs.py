"""
Pydantic schemas for the /api/v1/jobs endpoints.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class JobStatus(BaseModel):
    """Status of one background job (assessment or downloads)."""
    job_id: str
    job_type: str
    status: str
    enqueued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[Any] = None


class QueueStats(BaseModel):
    queue_name: str
    queued: int
    started: int
    finished: int
    failed: int
    deferred: int
    workers: int
