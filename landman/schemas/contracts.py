"""
Contracts with the external collaborators.
The portal adapter, the AI assessment client, the downloader and the
credential resolver all speak these types - never raw dicts or script text.
"""

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

from landman.models.enums import AIAssessment, AIOutcome, PartyRole
from landman.pipeline.date_parser import parse_recording_date


class PortalCredentials(BaseModel):
    """Decrypted portal login. The password never leaves this process."""
    username: str
    password: SecretStr


class SearchParams(BaseModel):
    """Search request sent to a portal adapter."""
    portal_url: str
    party_name: str
    party_role: PartyRole = PartyRole.BOTH
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    legal_description: Optional[str] = None
    document_reference: Optional[str] = None


class PortalDocument(BaseModel):
    """One document row returned by a portal search."""
    document_number: str = Field(alias="documentNumber", min_length=1)
    recording_date: Optional[date] = Field(default=None, alias="recordingDate")
    grantor: Optional[str] = None
    grantee: Optional[str] = None
    document_type: Optional[str] = Field(default=None, alias="documentType")
    page_count: Optional[int] = Field(default=None, alias="pageCount")
    link: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("recording_date", mode="before")
    @classmethod
    def _lenient_date(cls, value):
        return parse_recording_date(value)


class PortalSearchOutcome(BaseModel):
    """Binary success/failure result of a portal search."""
    success: bool
    documents: list[PortalDocument] = []
    error: Optional[str] = None


class SearchCriteria(BaseModel):
    """What the AI assessment judges each document against."""
    party_name: str = Field(min_length=1)
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    legal_description: Optional[str] = None
    document_types: list[str] = []


class AssessableDocument(BaseModel):
    """The result fields an assessment is allowed to see."""
    document_number: str
    document_type: Optional[str] = None
    recording_date: Optional[date] = None
    grantor: Optional[str] = None
    grantee: Optional[str] = None
    legal_description: Optional[str] = None
    page_count: Optional[int] = None

    model_config = {"from_attributes": True}


class AssessmentResult(BaseModel):
    """Structured relevance judgment for one document."""
    assessment: AIAssessment = AIAssessment.PENDING
    confidence: float = Field(ge=0.0, le=1.0, default=0.5)
    evidence: str = ""
    quotes: str = ""
    relevant_pages: str = "all"
    party_match: Optional[dict] = None
    date_match: Optional[dict] = None
    legal_match: Optional[dict] = None
    outcome: AIOutcome = AIOutcome.ASSESSED


class DownloadItem(BaseModel):
    """One marked review handed to the downloader."""
    review_id: uuid.UUID
    task_id: uuid.UUID
    document_number: str
    portal_url: Optional[str] = None
