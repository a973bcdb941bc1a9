"""
Portal document downloader.
Fetches the document behind a result's portal link and stores it through
the artifact store.
"""

from typing import Optional

import httpx
import structlog

from landman.adapters.base import DocumentDownloader
from landman.errors import ExternalDependencyError
from landman.schemas.contracts import DownloadItem
from landman.storage.artifact_store import ArtifactStore
from landman.storage.paths import downloaded_document_path

logger = structlog.get_logger(__name__)

EXTENSIONS = {
    "application/pdf": "pdf",
    "image/tiff": "tif",
    "image/png": "png",
    "image/jpeg": "jpg",
}


class PortalDocumentDownloader(DocumentDownloader):

    def __init__(
        self,
        store: ArtifactStore,
        timeout_seconds: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def download(self, item: DownloadItem) -> str:
        if not item.portal_url:
            raise ExternalDependencyError("download", f"No portal link for {item.document_number}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(item.portal_url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalDependencyError("download", f"{item.document_number}: {e}") from e

        if not response.content:
            raise ExternalDependencyError("download", f"{item.document_number}: empty response")

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        extension = EXTENSIONS.get(content_type, "pdf")
        relative_path = downloaded_document_path(str(item.task_id), item.document_number, extension)
        return self.store.save_bytes(relative_path, response.content)
