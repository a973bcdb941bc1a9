"""
RQ worker entry point for assessment and download jobs.
Run with: python -m landman.worker.runner
"""

import structlog
from redis import Redis
from rq import Worker

from landman.config import settings
from landman.observability.logging import setup_logging_from_settings

logger = structlog.get_logger(__name__)


def main():
    """Start the RQ worker."""
    setup_logging_from_settings(settings, service="landman-worker")

    conn = Redis.from_url(settings.REDIS_URL)
    worker = Worker(
        queues=[settings.QUEUE_NAME],
        connection=conn,
        name=f"landman-worker-{settings.APP_VERSION}",
    )

    logger.info("worker_starting", queue=settings.QUEUE_NAME)
    worker.work(with_scheduler=False)


if __name__ == "__main__":
    main()
