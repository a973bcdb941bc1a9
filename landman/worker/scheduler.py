"""
Task Scheduler entry point.
Run with: python -m landman.worker.scheduler

SIGINT/SIGTERM set the stop event; the loop finishes its current cycle and
exits.
"""

import asyncio
import signal

import structlog

from landman.adapters.base import PortalSearchAdapter
from landman.config import Settings, settings
from landman.credentials import CredentialResolver
from landman.models.database import Database
from landman.observability.logging import setup_logging_from_settings
from landman.pipeline.scheduler import TaskScheduler

logger = structlog.get_logger(__name__)


def build_portal_adapter(settings: Settings) -> PortalSearchAdapter:
    if settings.PORTAL_ADAPTER == "stub":
        from landman.adapters.stub import StubPortalAdapter
        return StubPortalAdapter()
    if settings.PORTAL_ADAPTER == "browserless":
        from landman.adapters.portal import BrowserlessPortalAdapter
        return BrowserlessPortalAdapter(
            endpoint=settings.BROWSERLESS_ENDPOINT,
            api_key=settings.BROWSERLESS_API_KEY,
            timeout_seconds=settings.PORTAL_SEARCH_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown PORTAL_ADAPTER: {settings.PORTAL_ADAPTER}")


def build_scheduler(db: Database, settings: Settings) -> TaskScheduler:
    if not settings.CREDENTIAL_ENCRYPTION_KEY:
        raise RuntimeError("CREDENTIAL_ENCRYPTION_KEY must be set to run the scheduler")
    return TaskScheduler(
        db.session_factory,
        build_portal_adapter(settings),
        CredentialResolver.from_key(db.session_factory, settings.CREDENTIAL_ENCRYPTION_KEY),
        poll_interval=settings.SCHEDULER_POLL_INTERVAL_SECONDS,
        search_timeout=settings.PORTAL_SEARCH_TIMEOUT_SECONDS,
    )


async def run(settings: Settings) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    db = Database.from_settings(settings)
    try:
        await build_scheduler(db, settings).run(stop)
    finally:
        await db.close()


def main():
    setup_logging_from_settings(settings, service="landman-scheduler")
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
