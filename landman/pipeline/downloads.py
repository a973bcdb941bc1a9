"""
Download Coordinator.
Serially fetches every marked, not-yet-downloaded review of a task.
A failed item is logged and skipped; it stays marked so a later run picks
it up again.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from landman.adapters.base import DocumentDownloader
from landman.observability.metrics import downloads_total
from landman.schemas.contracts import DownloadItem
from landman.stores.reviews import DocumentReviewStore

logger = structlog.get_logger(__name__)


@dataclass
class DownloadSummary:
    attempted: int = 0
    downloaded: int = 0
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "downloaded": self.downloaded,
            "failed": list(self.failed),
        }


class DownloadCoordinator:

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        downloader: DocumentDownloader,
        item_delay: float = 1.0,
        timeout: float = 120.0,
    ):
        self.session_factory = session_factory
        self.downloader = downloader
        self.item_delay = item_delay
        self.timeout = timeout

    async def run(self, task_id: uuid.UUID) -> DownloadSummary:
        async with self.session_factory() as session:
            pairs = await DocumentReviewStore(session).marked_for_download(task_id, pending_only=True)
            items = [
                DownloadItem(
                    review_id=review.id,
                    task_id=task_id,
                    document_number=result.document_number,
                    portal_url=result.portal_url,
                )
                for review, result in pairs
            ]

        summary = DownloadSummary(attempted=len(items))
        logger.info("downloads_started", task_id=str(task_id), items=len(items))

        for index, item in enumerate(items):
            if await self._download_one(item):
                summary.downloaded += 1
            else:
                summary.failed.append(item.document_number)

            if index < len(items) - 1 and self.item_delay > 0:
                await asyncio.sleep(self.item_delay)

        logger.info("downloads_finished", task_id=str(task_id), **summary.to_dict())
        return summary

    async def _download_one(self, item: DownloadItem) -> bool:
        try:
            file_path = await asyncio.wait_for(self.downloader.download(item), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("download_failed", document_number=item.document_number, error="timeout")
            downloads_total.labels(outcome="failed").inc()
            return False
        except Exception as e:
            logger.warning("download_failed", document_number=item.document_number, error=str(e))
            downloads_total.labels(outcome="failed").inc()
            return False

        async with self.session_factory() as session:
            stamped = await DocumentReviewStore(session).mark_downloaded(item.review_id, file_path)
            await session.commit()

        if not stamped:
            # Unmarked or already stamped while we were fetching
            logger.info("download_not_recorded", review_id=str(item.review_id))
            downloads_total.labels(outcome="skipped").inc()
            return False

        downloads_total.labels(outcome="downloaded").inc()
        logger.info("document_downloaded", document_number=item.document_number, file_path=file_path)
        return True
