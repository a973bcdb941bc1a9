"""
/api/v1/tasks endpoints.
Search task lifecycle plus the per-task views of results, analysis and
downloads.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from landman.dependencies import (
    CurrentUser,
    get_current_user,
    get_download_service,
    get_result_service,
    get_review_service,
    get_task_service,
    verify_api_key,
)
from landman.schemas.documents import (
    AnalysisResultsResponse,
    DownloadStartResponse,
    DownloadStatusResponse,
    IngestResponse,
    ManualSubmitRequest,
    ResultListResponse,
    ReviewRow,
    ReviewStatsResponse,
)
from landman.schemas.tasks import (
    QueueStatsResponse,
    TaskCreate,
    TaskListResponse,
    TaskPriorityUpdate,
    TaskResponse,
    TaskStatusUpdate,
    TaskUpdate,
)
from landman.services.downloads import DownloadService
from landman.services.results import ResultService
from landman.services.reviews import ReviewService
from landman.services.tasks import TaskService

router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"], dependencies=[Depends(verify_api_key)])


# ── Task lifecycle ───────────────────────────────────────────

@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    body: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.create(user.user_id, user.organization_id, body.model_dump())


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    tasks = await service.list_tasks(user.user_id, status=status_filter, limit=limit, offset=offset)
    return TaskListResponse(
        tasks=[TaskResponse.model_validate(t) for t in tasks],
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=QueueStatsResponse)
async def queue_stats(
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.queue_stats(user.user_id)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.get(task_id, user.user_id)


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.update(task_id, user.user_id, body.model_dump(exclude_unset=True))


@router.put("/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: uuid.UUID,
    body: TaskStatusUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.update_status(task_id, user.user_id, body.status.value)


@router.put("/{task_id}/priority", response_model=TaskResponse)
async def update_task_priority(
    task_id: uuid.UUID,
    body: TaskPriorityUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.update_priority(task_id, user.user_id, body.priority)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    await service.delete(task_id, user.user_id)


# ── Search results ───────────────────────────────────────────

@router.get("/{task_id}/results", response_model=ResultListResponse)
async def list_results(
    task_id: uuid.UUID,
    status_filter: Optional[str] = Query(None, alias="status"),
    user: CurrentUser = Depends(get_current_user),
    service: ResultService = Depends(get_result_service),
):
    results = await service.list_results(task_id, user.user_id, status=status_filter)
    return {"documents": results, "total": len(results)}


@router.get("/{task_id}/results/for-review", response_model=ResultListResponse)
async def results_for_review(
    task_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    service: ResultService = Depends(get_result_service),
):
    results = await service.results_for_review(task_id, user.user_id)
    return {"documents": results, "total": len(results)}


@router.post("/{task_id}/results/manual", response_model=IngestResponse, status_code=status.HTTP_201_CREATED)
async def submit_manual_results(
    task_id: uuid.UUID,
    body: ManualSubmitRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ResultService = Depends(get_result_service),
):
    rows = [doc.model_dump() for doc in body.documents]
    stored = await service.submit_manual_results(task_id, user.user_id, rows)
    return {"documents_created": len(stored), "documents": stored}


@router.post("/{task_id}/results/upload", response_model=IngestResponse, status_code=status.HTTP_201_CREATED)
async def upload_results(
    task_id: uuid.UUID,
    file: UploadFile = File(...),
    user: CurrentUser = Depends(get_current_user),
    service: ResultService = Depends(get_result_service),
):
    """Upload portal results as CSV or JSON."""
    content = await file.read()
    stored = await service.upload_results(task_id, user.user_id, file.filename, file.content_type, content)
    return {"documents_created": len(stored), "documents": stored}


# ── Analysis ─────────────────────────────────────────────────

@router.get("/{task_id}/analysis", response_model=AnalysisResultsResponse)
async def get_analysis_results(
    task_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    return await service.get_analysis_results(task_id, user.user_id)


@router.get("/{task_id}/review-stats", response_model=ReviewStatsResponse)
async def review_stats(
    task_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    return await service.review_stats(task_id, user.user_id)


# ── Downloads ────────────────────────────────────────────────

@router.post("/{task_id}/downloads", response_model=DownloadStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def execute_downloads(
    task_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    service: DownloadService = Depends(get_download_service),
):
    return await service.execute_downloads(task_id, user.user_id)


@router.get("/{task_id}/downloads", response_model=DownloadStatusResponse)
async def get_download_status(
    task_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    service: DownloadService = Depends(get_download_service),
):
    return await service.get_download_status(task_id, user.user_id)


@router.get("/{task_id}/downloads/documents", response_model=list[ReviewRow])
async def get_downloaded_documents(
    task_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    service: DownloadService = Depends(get_download_service),
):
    return await service.get_downloaded_documents(task_id, user.user_id)
