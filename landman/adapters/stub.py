"""
Stub collaborators for testing pipeline plumbing.
Return configured outcomes without touching a portal or an AI service.
"""

from typing import Optional

from landman.adapters.base import AssessmentClient, DocumentDownloader, PortalSearchAdapter
from landman.errors import ExternalDependencyError
from landman.schemas.contracts import (
    DownloadItem,
    PortalCredentials,
    PortalSearchOutcome,
    SearchParams,
)


class StubPortalAdapter(PortalSearchAdapter):
    """Returns a fixed outcome and records every call."""

    def __init__(self, outcome: Optional[PortalSearchOutcome] = None):
        self.outcome = outcome or PortalSearchOutcome(success=True, documents=[])
        self.calls: list[tuple[PortalCredentials, SearchParams]] = []

    @property
    def adapter_name(self) -> str:
        return "stub"

    async def execute(self, credentials: PortalCredentials, params: SearchParams) -> PortalSearchOutcome:
        self.calls.append((credentials, params))
        return self.outcome


class StubAssessmentClient(AssessmentClient):
    """Answers every prompt with the same raw text."""

    def __init__(self, response: str = '{"assessment": "pending", "confidence": 0.5}'):
        self.response = response
        self.prompts: list[str] = []

    @property
    def client_name(self) -> str:
        return "stub"

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.response


class StubDownloader(DocumentDownloader):
    """Pretends to download; fails for the document numbers listed."""

    def __init__(self, failing: Optional[set[str]] = None):
        self.failing = failing or set()
        self.downloaded: list[str] = []

    async def download(self, item: DownloadItem) -> str:
        if item.document_number in self.failing:
            raise ExternalDependencyError("download", f"stub failure for {item.document_number}")
        self.downloaded.append(item.document_number)
        return f"tasks/{item.task_id}/documents/{item.document_number}.pdf"
