"""
Abstract base classes for the external collaborators.
Coordinators only ever talk to these interfaces.
"""

import json
import re
from abc import ABC, abstractmethod

import structlog

from landman.models.enums import AIAssessment, AIOutcome
from landman.schemas.contracts import (
    AssessableDocument,
    AssessmentResult,
    DownloadItem,
    PortalCredentials,
    PortalSearchOutcome,
    SearchCriteria,
    SearchParams,
)

logger = structlog.get_logger(__name__)

RAW_EXCERPT_CHARS = 200
JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class PortalSearchAdapter(ABC):
    """
    Drives one county records portal.

    Every adapter must:
    1. Accept decrypted credentials and typed search parameters
    2. Return PortalSearchOutcome (success + documents, or failure + error)
    3. Report selector/navigation failures as success=False, not by raising
    """

    @property
    @abstractmethod
    def adapter_name(self) -> str:
        """Unique identifier: 'browserless', 'stub'"""
        ...

    @abstractmethod
    async def execute(
        self,
        credentials: PortalCredentials,
        params: SearchParams,
    ) -> PortalSearchOutcome:
        ...


class AssessmentClient(ABC):
    """
    AI relevance judgment for a single document.

    Subclasses implement complete(); prompt building and response parsing
    live here so every model backend degrades the same way.
    """

    @property
    @abstractmethod
    def client_name(self) -> str:
        ...

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Send the prompt, return the raw model text. May raise."""
        ...

    async def assess(self, document: AssessableDocument, criteria: SearchCriteria) -> AssessmentResult:
        raw = await self.complete(build_assessment_prompt(document, criteria))
        return parse_assessment_response(raw)


class DocumentDownloader(ABC):
    """Fetches one marked document and returns where it was stored."""

    @abstractmethod
    async def download(self, item: DownloadItem) -> str:
        """Return the stored file path. Raise on failure."""
        ...


def _or(value, default: str) -> str:
    return str(value) if value not in (None, "") else default


def build_assessment_prompt(document: AssessableDocument, criteria: SearchCriteria) -> str:
    doc_types = ", ".join(criteria.document_types) if criteria.document_types else "Any"
    return f"""You are a land title analyst assistant. Analyze this document record to determine if it matches the search criteria.

DOCUMENT RECORD:
- Document Number: {_or(document.document_number, 'N/A')}
- Document Type: {_or(document.document_type, 'N/A')}
- Recording Date: {_or(document.recording_date, 'N/A')}
- Grantor (Seller): {_or(document.grantor, 'N/A')}
- Grantee (Buyer): {_or(document.grantee, 'N/A')}
- Legal Description: {_or(document.legal_description, 'N/A')}
- Page Count: {_or(document.page_count, 'N/A')}

SEARCH CRITERIA:
- Party Name to Match: {criteria.party_name}
- Date Range: {_or(criteria.date_from, 'Any')} to {_or(criteria.date_to, 'Any')}
- Legal Description to Match: {_or(criteria.legal_description, 'Any')}
- Document Types of Interest: {doc_types}

ANALYSIS INSTRUCTIONS:
1. Check if the party name appears in either Grantor or Grantee fields (consider partial matches, variations, and common abbreviations like LLC, Inc, Corp)
2. Check if the recording date falls within the specified date range
3. Check if the legal description matches or overlaps with the search criteria
4. Determine if the document type is relevant

Provide your analysis in the following JSON format:
{{
  "assessment": "meets_criteria" | "probable_match" | "exclude",
  "confidence": 0.0-1.0,
  "evidence": "Brief explanation of why this document matches or does not match",
  "partyMatch": {{"found": true/false, "matchType": "grantor" | "grantee" | "both" | "none", "details": "..."}},
  "dateMatch": {{"inRange": true/false, "details": "..."}},
  "legalMatch": {{"matches": true/false, "details": "..."}},
  "quotes": "Any relevant excerpts or key information from the document fields",
  "relevantPages": "all" | "none" | "1,2,3"
}}

Respond ONLY with the JSON object, no additional text."""


def unparseable_result(raw: str) -> AssessmentResult:
    return AssessmentResult(
        assessment=AIAssessment.PENDING,
        confidence=0.5,
        evidence="Failed to parse AI response: " + (raw or "")[:RAW_EXCERPT_CHARS],
        quotes="",
        relevant_pages="all",
        outcome=AIOutcome.UNPARSEABLE,
    )


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def parse_assessment_response(raw: str) -> AssessmentResult:
    """
    Decode the first JSON object in the model output.
    Never raises: anything that cannot be read degrades to a pending
    result carrying an excerpt of the raw text.
    """
    match = JSON_BLOCK.search(raw or "")
    if not match:
        logger.warning("assessment_response_unparseable", reason="no_json", raw_length=len(raw or ""))
        return unparseable_result(raw)

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning("assessment_response_unparseable", reason="invalid_json", error=str(e))
        return unparseable_result(raw)

    if not isinstance(parsed, dict):
        return unparseable_result(raw)

    try:
        assessment = AIAssessment(parsed.get("assessment") or AIAssessment.PENDING.value)
    except ValueError:
        assessment = AIAssessment.PENDING

    try:
        confidence = float(parsed.get("confidence", 0.5))
    except (TypeError, ValueError):
        confidence = 0.5
    confidence = min(max(confidence, 0.0), 1.0)

    def as_dict(value):
        return value if isinstance(value, dict) else None

    return AssessmentResult(
        assessment=assessment,
        confidence=confidence,
        evidence=_as_text(parsed.get("evidence")),
        quotes=_as_text(parsed.get("quotes")),
        relevant_pages=_as_text(parsed.get("relevantPages")) or "all",
        party_match=as_dict(parsed.get("partyMatch")),
        date_match=as_dict(parsed.get("dateMatch")),
        legal_match=as_dict(parsed.get("legalMatch")),
        outcome=AIOutcome.ASSESSED,
    )
