"""
FastAPI dependency injection.
Provides DB sessions, the job queue, caller identity, and API key validation.
Process-scoped handles live on app.state and are built in the lifespan.
"""

import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from landman.config import settings
from landman.models.database import Database
from landman.services.downloads import DownloadService
from landman.services.results import ResultService
from landman.services.reviews import ReviewService
from landman.services.tasks import TaskService
from landman.worker.jobs import JobQueue


@dataclass(frozen=True)
class CurrentUser:
    """Caller identity as asserted by the upstream gateway."""
    user_id: uuid.UUID
    organization_id: uuid.UUID


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.jobs


async def get_db(db: Database = Depends(get_database)) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session, committed when the request succeeds."""
    async for session in db.session():
        yield session


def _header_uuid(value: Optional[str], header: str) -> uuid.UUID:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {header} header",
        )
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{header} must be a UUID",
        )


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_organization_id: Optional[str] = Header(None, alias="X-Organization-Id"),
) -> CurrentUser:
    return CurrentUser(
        user_id=_header_uuid(x_user_id, "X-User-Id"),
        organization_id=_header_uuid(x_organization_id, "X-Organization-Id"),
    )


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify API key if configured.
    If API_KEY is not set, all requests are allowed (dev mode).
    """
    if settings.API_KEY is None:
        return None

    if x_api_key is None or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key


# ── Services ─────────────────────────────────────────────────

def get_task_service(session: AsyncSession = Depends(get_db)) -> TaskService:
    return TaskService(session)


def get_result_service(session: AsyncSession = Depends(get_db)) -> ResultService:
    return ResultService(session)


def get_review_service(
    session: AsyncSession = Depends(get_db),
    jobs: JobQueue = Depends(get_job_queue),
) -> ReviewService:
    return ReviewService(session, jobs)


def get_download_service(
    session: AsyncSession = Depends(get_db),
    jobs: JobQueue = Depends(get_job_queue),
) -> DownloadService:
    return DownloadService(session, jobs)
