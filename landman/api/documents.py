"""
/api/v1/documents endpoints.
AI analysis trigger, human decisions, download marking and result status.
"""

import uuid

from fastapi import APIRouter, Depends, status

from landman.dependencies import (
    CurrentUser,
    get_current_user,
    get_result_service,
    get_review_service,
    verify_api_key,
)
from landman.schemas.documents import (
    AnalyzeRequest,
    AnalyzeResponse,
    DecisionRequest,
    ExcludeRequest,
    MarkForDownloadRequest,
    MarkForDownloadResponse,
    ResultStatusUpdate,
    ReviewResponse,
    SearchResultResponse,
)
from landman.services.results import ResultService
from landman.services.reviews import ReviewService

router = APIRouter(prefix="/api/v1/documents", tags=["documents"], dependencies=[Depends(verify_api_key)])


@router.post("/analyze", response_model=AnalyzeResponse, status_code=status.HTTP_202_ACCEPTED)
async def analyze_documents(
    body: AnalyzeRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    """Queue AI assessment. Poll /api/v1/tasks/{task_id}/analysis for results."""
    return await service.start_analysis(user.user_id, body.document_ids, body.criteria)


@router.put("/reviews/{review_id}/decision", response_model=ReviewResponse)
async def record_decision(
    review_id: uuid.UUID,
    body: DecisionRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    return await service.record_decision(
        review_id,
        user.user_id,
        body.decision.value,
        notes=body.notes,
        mark_for_download=body.mark_for_download,
    )


@router.post("/reviews/mark-for-download", response_model=MarkForDownloadResponse)
async def mark_for_download(
    body: MarkForDownloadRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    marked = await service.mark_for_download(user.user_id, body.review_ids)
    return MarkForDownloadResponse(marked=marked)


@router.put("/results/{result_id}/status", response_model=SearchResultResponse)
async def set_result_status(
    result_id: uuid.UUID,
    body: ResultStatusUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: ResultService = Depends(get_result_service),
):
    return await service.set_result_status(result_id, user.user_id, body.status.value, body.notes)


@router.post("/results/{result_id}/exclude", response_model=SearchResultResponse)
async def exclude_result(
    result_id: uuid.UUID,
    body: ExcludeRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ResultService = Depends(get_result_service),
):
    return await service.exclude_result(result_id, user.user_id, body.reason)
