"""
Document review use cases: queueing AI assessment, polling its results,
recording human decisions, and marking documents for download.
"""

import uuid
from typing import Optional

import pydantic
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from landman.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from landman.models.enums import ResultStatus, UserDecision, values
from landman.models.tables import DocumentReview, SearchResult
from landman.schemas.contracts import SearchCriteria
from landman.services.tasks import get_owned_task
from landman.stores.results import SearchResultStore
from landman.stores.reviews import DocumentReviewStore
from landman.stores.tasks import SearchTaskStore

logger = structlog.get_logger(__name__)


def review_row(review: DocumentReview, result: SearchResult) -> dict:
    """Flat view of a review and the result it judges."""
    return {
        "review_id": review.id,
        "search_result_id": result.id,
        "document_number": result.document_number,
        "document_type": result.document_type,
        "recording_date": result.recording_date,
        "grantor": result.grantor,
        "grantee": result.grantee,
        "ai_assessment": review.ai_assessment,
        "ai_confidence": float(review.ai_confidence) if review.ai_confidence is not None else None,
        "ai_evidence": review.ai_evidence,
        "ai_quotes": review.ai_quotes,
        "ai_relevant_pages": review.ai_relevant_pages,
        "ai_details": review.ai_details,
        "ai_outcome": review.ai_outcome,
        "user_decision": review.user_decision,
        "user_notes": review.user_notes,
        "user_confirmed": review.user_confirmed,
        "marked_for_download": review.marked_for_download,
        "downloaded_at": review.downloaded_at,
        "file_path": review.file_path,
    }


def parse_criteria(criteria) -> SearchCriteria:
    if isinstance(criteria, SearchCriteria):
        return criteria
    try:
        return SearchCriteria.model_validate(criteria or {})
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid search criteria: {e.errors()[0]['msg']}")


class ReviewService:
    """`jobs` is anything with enqueue_assessment(review_ids, criteria) -> job id."""

    def __init__(self, session: AsyncSession, jobs=None):
        self.session = session
        self.jobs = jobs
        self.tasks = SearchTaskStore(session)
        self.results = SearchResultStore(session)
        self.reviews = DocumentReviewStore(session)

    async def start_analysis(self, user_id: uuid.UUID, document_ids: list[uuid.UUID], criteria) -> dict:
        """
        Queue the caller's documents for AI assessment and hand the batch to
        a background job. Returns immediately with the job id as handle.
        """
        criteria = parse_criteria(criteria)
        if not document_ids:
            raise ValidationError("No documents to analyze")
        if self.jobs is None:
            raise RuntimeError("ReviewService needs a job queue to start analysis")

        owned = await self.results.owned_result_ids(document_ids, user_id)
        skipped = len(set(document_ids)) - len(owned)
        if not owned:
            raise ValidationError("None of the documents exist or belong to the caller")

        review_ids = [await self.reviews.queue_for_assessment(rid, user_id) for rid in owned]
        await self.session.commit()

        job_id = self.jobs.enqueue_assessment(review_ids, criteria)
        logger.info(
            "analysis_queued",
            job_id=job_id,
            documents_queued=len(review_ids),
            skipped=skipped,
        )
        return {"analysis_id": job_id, "documents_queued": len(review_ids)}

    async def get_analysis_results(self, task_id: uuid.UUID, user_id: uuid.UUID) -> dict:
        await get_owned_task(self.tasks, task_id, user_id)
        rows = [review_row(r, res) for r, res in await self.reviews.list_for_task(task_id, user_id)]
        analyzed = sum(1 for row in rows if row["ai_outcome"] is not None)
        return {
            "task_id": task_id,
            "total": len(rows),
            "analyzed": analyzed,
            "analysis_complete": bool(rows) and analyzed == len(rows),
            "reviews": rows,
        }

    async def record_decision(
        self,
        review_id: uuid.UUID,
        user_id: uuid.UUID,
        decision: str,
        notes: Optional[str] = None,
        mark_for_download: Optional[bool] = None,
    ) -> DocumentReview:
        if decision not in values(UserDecision):
            raise ValidationError(f"Invalid decision: {decision}")

        found = await self.reviews.get_with_context(review_id)
        if found is None:
            raise NotFoundError(f"Document review {review_id} not found")
        review, result, owner_id = found
        if owner_id != user_id:
            raise UnauthorizedError(f"Document review {review_id} belongs to another user")

        marked = mark_for_download if mark_for_download is not None else decision == UserDecision.APPROVED.value
        if review.downloaded_at is not None and not marked:
            raise ConflictError("Document was already downloaded and cannot be unmarked")

        updated = await self.reviews.save_decision(review_id, decision, notes, marked)
        result_status = (
            ResultStatus.EXCLUDED.value
            if decision == UserDecision.REJECTED.value
            else ResultStatus.MARKED_FOR_REVIEW.value
        )
        await self.results.set_status(result.id, result_status)

        logger.info(
            "decision_recorded",
            review_id=str(review_id),
            decision=decision,
            marked_for_download=marked,
        )
        return updated

    async def mark_for_download(self, user_id: uuid.UUID, review_ids: list[uuid.UUID]) -> int:
        """Bulk mark. Missing or foreign reviews are skipped; returns how many were marked."""
        owned = await self.reviews.owned_review_ids(review_ids, user_id)
        marked = await self.reviews.mark_for_download(owned, True)
        logger.info("reviews_marked_for_download", requested=len(review_ids), marked=marked)
        return marked

    async def review_stats(self, task_id: uuid.UUID, user_id: uuid.UUID) -> dict[str, int]:
        await get_owned_task(self.tasks, task_id, user_id)
        return await self.reviews.stats_for_task(task_id)
