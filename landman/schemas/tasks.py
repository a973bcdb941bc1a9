"""
Pydantic request/response schemas for the /api/v1/tasks endpoints.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from landman.models.enums import PartyRole, TaskStatus


# ── Request Schemas ──────────────────────────────────────────

class TaskCreate(BaseModel):
    """Body for creating a search task."""
    portal_id: uuid.UUID
    county_id: int
    party_name: str = Field(min_length=1)
    party_role: PartyRole = PartyRole.BOTH
    date_from: date
    date_to: date
    legal_description: Optional[str] = None
    document_reference: Optional[str] = None
    priority: int = Field(default=5, ge=1, le=10)
    notes: str = ""


class TaskUpdate(BaseModel):
    """Partial update. Only the fields sent are changed."""
    party_name: Optional[str] = None
    party_role: Optional[PartyRole] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    legal_description: Optional[str] = None
    document_reference: Optional[str] = None
    notes: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=1, le=10)

    model_config = {"extra": "forbid"}


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class TaskPriorityUpdate(BaseModel):
    priority: int = Field(ge=1, le=10)


# ── Response Schemas ─────────────────────────────────────────

class TaskResponse(BaseModel):
    """Full search task."""
    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID
    portal_id: uuid.UUID
    county_id: int
    party_name: str
    party_role: str
    date_from: date
    date_to: date
    legal_description: Optional[str] = None
    document_reference: Optional[str] = None
    priority: int
    status: str
    notes: str = ""
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]
    limit: int
    offset: int


class QueueStatsResponse(BaseModel):
    """Task counts per status for the caller."""
    queued: int = 0
    running: int = 0
    completed: int = 0
    paused: int = 0
    failed: int = 0
    total: int = 0
