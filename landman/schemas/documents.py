"""
Pydantic request/response schemas for search results, document reviews and
downloads.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from landman.models.enums import ResultStatus, UserDecision
from landman.schemas.contracts import SearchCriteria


# ── Request Schemas ──────────────────────────────────────────

class ManualDocument(BaseModel):
    """One document typed or pasted in by the user."""
    document_number: str = Field(alias="documentNumber", min_length=1)
    recording_date: Optional[str] = Field(default=None, alias="recordingDate")
    grantor: Optional[str] = None
    grantee: Optional[str] = None
    document_type: Optional[str] = Field(default=None, alias="documentType")
    legal_description: Optional[str] = Field(default=None, alias="legalDescription")
    page_count: Optional[int] = Field(default=None, alias="pageCount")
    portal_url: Optional[str] = Field(default=None, alias="portalUrl")

    model_config = {"populate_by_name": True}


class ManualSubmitRequest(BaseModel):
    documents: list[ManualDocument]


class ResultStatusUpdate(BaseModel):
    status: ResultStatus
    notes: Optional[str] = None


class ExcludeRequest(BaseModel):
    reason: Optional[str] = None


class AnalyzeRequest(BaseModel):
    """Start an AI assessment over the given search result ids."""
    document_ids: list[uuid.UUID] = Field(min_length=1)
    criteria: SearchCriteria


class DecisionRequest(BaseModel):
    decision: UserDecision
    notes: Optional[str] = None
    mark_for_download: Optional[bool] = None


class MarkForDownloadRequest(BaseModel):
    review_ids: list[uuid.UUID] = Field(min_length=1)


# ── Response Schemas ─────────────────────────────────────────

class SearchResultResponse(BaseModel):
    id: uuid.UUID
    search_task_id: uuid.UUID
    document_number: str
    recording_date: Optional[date] = None
    grantor: Optional[str] = None
    grantee: Optional[str] = None
    document_type: Optional[str] = None
    legal_description: Optional[str] = None
    page_count: Optional[int] = None
    portal_url: Optional[str] = None
    status: str
    review_notes: str = ""
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ResultListResponse(BaseModel):
    documents: list[SearchResultResponse]
    total: int


class IngestResponse(BaseModel):
    documents_created: int
    documents: list[SearchResultResponse]


class ReviewRow(BaseModel):
    """A review joined with the result it judges."""
    review_id: uuid.UUID
    search_result_id: uuid.UUID
    document_number: str
    document_type: Optional[str] = None
    recording_date: Optional[date] = None
    grantor: Optional[str] = None
    grantee: Optional[str] = None
    ai_assessment: str
    ai_confidence: Optional[float] = None
    ai_evidence: Optional[str] = None
    ai_quotes: Optional[str] = None
    ai_relevant_pages: Optional[str] = None
    ai_details: Optional[dict] = None
    ai_outcome: Optional[str] = None
    user_decision: Optional[str] = None
    user_notes: Optional[str] = None
    user_confirmed: bool = False
    marked_for_download: bool = False
    downloaded_at: Optional[datetime] = None
    file_path: Optional[str] = None


class AnalyzeResponse(BaseModel):
    analysis_id: str
    documents_queued: int
    message: str = "Analysis queued. Poll the task's analysis endpoint for results."


class AnalysisResultsResponse(BaseModel):
    task_id: uuid.UUID
    total: int
    analyzed: int
    analysis_complete: bool
    reviews: list[ReviewRow]


class ReviewResponse(BaseModel):
    id: uuid.UUID
    search_result_id: uuid.UUID
    user_id: uuid.UUID
    ai_assessment: str
    user_decision: Optional[str] = None
    user_notes: Optional[str] = None
    user_confirmed: bool
    marked_for_download: bool
    downloaded_at: Optional[datetime] = None
    file_path: Optional[str] = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class MarkForDownloadResponse(BaseModel):
    marked: int


class ReviewStatsResponse(BaseModel):
    total: int = 0
    meets_criteria: int = 0
    probable_match: int = 0
    exclude: int = 0
    pending: int = 0
    user_reviewed: int = 0
    marked_for_download: int = 0
    downloaded: int = 0


class DownloadStartResponse(BaseModel):
    download_id: str
    documents_to_download: int


class DownloadStatusResponse(BaseModel):
    task_id: uuid.UUID
    status: str
    downloaded_count: int
    total_marked: int
    items: list[ReviewRow]
