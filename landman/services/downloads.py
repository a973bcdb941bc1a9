"""
Download use cases: trigger the background download job and report its
progress from the stored review state.
"""

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from landman.errors import ValidationError
from landman.models.enums import DownloadJobStatus
from landman.services.reviews import review_row
from landman.services.tasks import get_owned_task
from landman.stores.reviews import DocumentReviewStore
from landman.stores.tasks import SearchTaskStore

logger = structlog.get_logger(__name__)


class DownloadService:
    """`jobs` is anything with enqueue_downloads(task_id) -> job id."""

    def __init__(self, session: AsyncSession, jobs=None):
        self.session = session
        self.jobs = jobs
        self.tasks = SearchTaskStore(session)
        self.reviews = DocumentReviewStore(session)

    async def execute_downloads(self, task_id: uuid.UUID, user_id: uuid.UUID) -> dict:
        await get_owned_task(self.tasks, task_id, user_id)
        marked = await self.reviews.marked_for_download(task_id)
        if not marked:
            raise ValidationError("No documents marked for download")
        if self.jobs is None:
            raise RuntimeError("DownloadService needs a job queue to execute downloads")

        pending = [review for review, _ in marked if review.downloaded_at is None]
        job_id = self.jobs.enqueue_downloads(task_id)
        logger.info(
            "downloads_queued",
            task_id=str(task_id),
            job_id=job_id,
            documents_to_download=len(pending),
        )
        return {"download_id": job_id, "documents_to_download": len(pending)}

    async def get_download_status(self, task_id: uuid.UUID, user_id: uuid.UUID) -> dict:
        await get_owned_task(self.tasks, task_id, user_id)
        rows = [review_row(r, res) for r, res in await self.reviews.marked_for_download(task_id)]
        downloaded = sum(1 for row in rows if row["downloaded_at"] is not None)
        status = (
            DownloadJobStatus.COMPLETE
            if downloaded == len(rows)
            else DownloadJobStatus.IN_PROGRESS
        )
        return {
            "task_id": task_id,
            "status": status.value,
            "downloaded_count": downloaded,
            "total_marked": len(rows),
            "items": rows,
        }

    async def get_downloaded_documents(self, task_id: uuid.UUID, user_id: uuid.UUID) -> list[dict]:
        await get_owned_task(self.tasks, task_id, user_id)
        return [review_row(r, res) for r, res in await self.reviews.downloaded_for_task(task_id)]
