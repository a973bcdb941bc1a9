"""
RQ job queue and job functions for the background coordinators.
The API enqueues through JobQueue and gets a job id back immediately;
the worker process runs the job functions below.
"""

import asyncio
import uuid

import structlog
from redis import Redis
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job
from rq.worker import Worker

from landman.config import settings
from landman.errors import NotFoundError
from landman.observability.metrics import worker_jobs_active
from landman.schemas.contracts import SearchCriteria

logger = structlog.get_logger(__name__)

RESULT_TTL = 86400  # Keep results for 24 hours
FAILURE_TTL = 604800  # Keep failures for 7 days


class JobQueue:
    """Submits coordinator jobs and reports on them."""

    def __init__(self, queue: Queue, job_timeout: int = 3600):
        self.queue = queue
        self.job_timeout = job_timeout

    @classmethod
    def from_settings(cls, settings) -> "JobQueue":
        conn = Redis.from_url(settings.REDIS_URL)
        return cls(Queue(settings.QUEUE_NAME, connection=conn), job_timeout=settings.JOB_TIMEOUT_SECONDS)

    def _enqueue(self, func, *args) -> str:
        job = self.queue.enqueue(
            func,
            *args,
            job_timeout=self.job_timeout,
            result_ttl=RESULT_TTL,
            failure_ttl=FAILURE_TTL,
        )
        return job.id

    def enqueue_assessment(self, review_ids: list[uuid.UUID], criteria: SearchCriteria) -> str:
        job_id = self._enqueue(
            run_assessment_job,
            [str(r) for r in review_ids],
            criteria.model_dump(mode="json"),
        )
        logger.info("job_enqueued", job="assessment", job_id=job_id, reviews=len(review_ids))
        return job_id

    def enqueue_downloads(self, task_id: uuid.UUID) -> str:
        job_id = self._enqueue(run_download_job, str(task_id))
        logger.info("job_enqueued", job="downloads", job_id=job_id, task_id=str(task_id))
        return job_id

    def job_status(self, job_id: str) -> dict:
        try:
            job = Job.fetch(job_id, connection=self.queue.connection)
        except NoSuchJobError:
            raise NotFoundError(f"Job {job_id} not found")

        status = job.get_status()
        return {
            "job_id": job_id,
            "job_type": job.func_name.rsplit(".", 1)[-1],
            "status": getattr(status, "value", status),
            "enqueued_at": job.enqueued_at,
            "started_at": job.started_at,
            "ended_at": job.ended_at,
            "error_message": str(job.exc_info) if job.exc_info else None,
            "result": job.return_value() if job.is_finished else None,
        }

    def stats(self) -> dict:
        q = self.queue
        return {
            "queue_name": q.name,
            "queued": len(q),
            "started": q.started_job_registry.count,
            "finished": q.finished_job_registry.count,
            "failed": q.failed_job_registry.count,
            "deferred": q.deferred_job_registry.count,
            "workers": len(Worker.all(queue=q)),
        }


def run_assessment_job(review_ids: list[str], criteria: dict) -> dict:
    """
    Worker entry point for a batch assessment.
    Per-document failures are stored on the reviews, not raised.
    """
    logger.info("job_started", job="assessment", reviews=len(review_ids))
    worker_jobs_active.labels(job="assessment").inc()
    try:
        result = asyncio.run(_run_assessment(
            [uuid.UUID(r) for r in review_ids],
            SearchCriteria.model_validate(criteria),
        ))
        logger.info("job_completed", job="assessment", **result)
        return result
    except Exception as e:
        logger.error("job_failed", job="assessment", error=str(e))
        raise
    finally:
        worker_jobs_active.labels(job="assessment").dec()


def run_download_job(task_id: str) -> dict:
    """Worker entry point for downloading a task's marked documents."""
    logger.info("job_started", job="downloads", task_id=task_id)
    worker_jobs_active.labels(job="downloads").inc()
    try:
        result = asyncio.run(_run_downloads(uuid.UUID(task_id)))
        logger.info("job_completed", job="downloads", task_id=task_id, **result)
        return result
    except Exception as e:
        logger.error("job_failed", job="downloads", task_id=task_id, error=str(e))
        raise
    finally:
        worker_jobs_active.labels(job="downloads").dec()


async def _run_assessment(review_ids: list[uuid.UUID], criteria: SearchCriteria) -> dict:
    from landman.adapters.anthropic_client import AnthropicAssessmentClient
    from landman.models.database import Database
    from landman.pipeline.assessment import BatchAssessmentCoordinator

    db = Database.from_settings(settings)
    client = AnthropicAssessmentClient(
        api_key=settings.ANTHROPIC_API_KEY,
        model=settings.AI_MODEL,
        max_tokens=settings.AI_MAX_TOKENS,
        timeout_seconds=settings.AI_TIMEOUT_SECONDS,
    )
    try:
        coordinator = BatchAssessmentCoordinator(
            db.session_factory,
            client,
            concurrency=settings.ASSESSMENT_CONCURRENCY,
            batch_delay=settings.ASSESSMENT_BATCH_DELAY_MS / 1000,
            call_timeout=settings.AI_TIMEOUT_SECONDS,
        )
        summary = await coordinator.run(review_ids, criteria)
        return summary.to_dict()
    finally:
        await client.close()
        await db.close()


async def _run_downloads(task_id: uuid.UUID) -> dict:
    from landman.adapters.downloader import PortalDocumentDownloader
    from landman.models.database import Database
    from landman.pipeline.downloads import DownloadCoordinator
    from landman.storage.artifact_store import ArtifactStore

    db = Database.from_settings(settings)
    downloader = PortalDocumentDownloader(
        ArtifactStore(settings.ARTIFACT_ROOT),
        timeout_seconds=settings.DOWNLOAD_TIMEOUT_SECONDS,
    )
    try:
        coordinator = DownloadCoordinator(
            db.session_factory,
            downloader,
            item_delay=settings.DOWNLOAD_DELAY_MS / 1000,
            timeout=settings.DOWNLOAD_TIMEOUT_SECONDS,
        )
        summary = await coordinator.run(task_id)
        return summary.to_dict()
    finally:
        await db.close()
