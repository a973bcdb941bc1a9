"""
Document Review Store.
One row per (search_result_id, user_id). The AI stage is written by the
assessment coordinator, the human stage by user decisions, the download
stage by the download coordinator.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from landman.models.enums import AIAssessment
from landman.models.tables import DocumentReview, SearchResult, SearchTask
from landman.schemas.contracts import AssessmentResult
from landman.stores.results import dialect_insert

logger = structlog.get_logger(__name__)


class DocumentReviewStore:
    """Data access for document_reviews. Callers own the transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def queue_for_assessment(self, result_id: uuid.UUID, user_id: uuid.UUID) -> uuid.UUID:
        """
        Create the review in pending AI stage, or reset the AI stage of the
        existing (result, user) row. Human and download stages are kept.
        """
        pending = {
            "ai_assessment": AIAssessment.PENDING.value,
            "ai_outcome": None,
        }
        stmt = dialect_insert(self.session, DocumentReview).values(
            id=uuid.uuid4(),
            search_result_id=result_id,
            user_id=user_id,
            **pending,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["search_result_id", "user_id"],
            set_={**pending, "updated_at": func.now()},
        ).returning(DocumentReview.id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def get(self, review_id: uuid.UUID) -> Optional[DocumentReview]:
        return await self.session.get(DocumentReview, review_id, populate_existing=True)

    async def get_with_context(self, review_id: uuid.UUID) -> Optional[tuple]:
        """(review, result, task owner id) for ownership checks."""
        result = await self.session.execute(
            select(DocumentReview, SearchResult, SearchTask.user_id)
            .join(SearchResult, SearchResult.id == DocumentReview.search_result_id)
            .join(SearchTask, SearchTask.id == SearchResult.search_task_id)
            .where(DocumentReview.id == review_id)
            .execution_options(populate_existing=True)
        )
        row = result.first()
        return tuple(row) if row else None

    async def load_for_assessment(self, review_ids: list[uuid.UUID]) -> list[tuple[DocumentReview, SearchResult]]:
        if not review_ids:
            return []
        result = await self.session.execute(
            select(DocumentReview, SearchResult)
            .join(SearchResult, SearchResult.id == DocumentReview.search_result_id)
            .where(DocumentReview.id.in_(review_ids))
        )
        rows = {r[0].id: (r[0], r[1]) for r in result.all()}
        # Keep the caller's order so batches are deterministic
        return [rows[rid] for rid in review_ids if rid in rows]

    async def list_for_task(
        self,
        task_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> list[tuple[DocumentReview, SearchResult]]:
        query = (
            select(DocumentReview, SearchResult)
            .join(SearchResult, SearchResult.id == DocumentReview.search_result_id)
            .where(SearchResult.search_task_id == task_id)
        )
        if user_id is not None:
            query = query.where(DocumentReview.user_id == user_id)
        result = await self.session.execute(
            query.order_by(DocumentReview.created_at.desc()).execution_options(populate_existing=True)
        )
        return [(r[0], r[1]) for r in result.all()]

    async def save_assessment(self, review_id: uuid.UUID, outcome: AssessmentResult) -> bool:
        """Overwrite the AI stage. Idempotent: the latest call wins."""
        details = {
            "partyMatch": outcome.party_match,
            "dateMatch": outcome.date_match,
            "legalMatch": outcome.legal_match,
        }
        result = await self.session.execute(
            update(DocumentReview)
            .where(DocumentReview.id == review_id)
            .values(
                ai_assessment=outcome.assessment.value,
                ai_confidence=outcome.confidence,
                ai_evidence=outcome.evidence,
                ai_quotes=outcome.quotes,
                ai_relevant_pages=outcome.relevant_pages,
                ai_details=details,
                ai_outcome=outcome.outcome.value,
                ai_assessed_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def save_decision(
        self,
        review_id: uuid.UUID,
        decision: str,
        notes: Optional[str],
        marked_for_download: bool,
    ) -> Optional[DocumentReview]:
        await self.session.execute(
            update(DocumentReview)
            .where(DocumentReview.id == review_id)
            .values(
                user_decision=decision,
                user_notes=notes,
                user_confirmed=True,
                marked_for_download=marked_for_download,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return await self.get(review_id)

    async def owned_review_ids(self, review_ids: list[uuid.UUID], owner_id: uuid.UUID) -> list[uuid.UUID]:
        """Subset of review_ids whose parent task belongs to owner_id."""
        if not review_ids:
            return []
        result = await self.session.execute(
            select(DocumentReview.id)
            .join(SearchResult, SearchResult.id == DocumentReview.search_result_id)
            .join(SearchTask, SearchTask.id == SearchResult.search_task_id)
            .where(DocumentReview.id.in_(review_ids), SearchTask.user_id == owner_id)
        )
        return list(result.scalars().all())

    async def mark_for_download(self, review_ids: list[uuid.UUID], mark: bool = True) -> int:
        if not review_ids:
            return 0
        result = await self.session.execute(
            update(DocumentReview)
            .where(DocumentReview.id.in_(review_ids))
            .values(marked_for_download=mark)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def marked_for_download(
        self,
        task_id: uuid.UUID,
        pending_only: bool = False,
    ) -> list[tuple[DocumentReview, SearchResult]]:
        query = (
            select(DocumentReview, SearchResult)
            .join(SearchResult, SearchResult.id == DocumentReview.search_result_id)
            .where(
                SearchResult.search_task_id == task_id,
                DocumentReview.marked_for_download.is_(True),
            )
        )
        if pending_only:
            query = query.where(DocumentReview.downloaded_at.is_(None))
        result = await self.session.execute(
            query.order_by(SearchResult.recording_date.desc(), SearchResult.document_number)
            .execution_options(populate_existing=True)
        )
        return [(r[0], r[1]) for r in result.all()]

    async def mark_downloaded(self, review_id: uuid.UUID, file_path: Optional[str] = None) -> bool:
        """
        Stamp downloaded_at. Only applies to a marked review that was not
        downloaded before, so the stamp is written at most once.
        """
        changes = {"downloaded_at": func.now()}
        if file_path is not None:
            changes["file_path"] = file_path
        result = await self.session.execute(
            update(DocumentReview)
            .where(
                DocumentReview.id == review_id,
                DocumentReview.marked_for_download.is_(True),
                DocumentReview.downloaded_at.is_(None),
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def downloaded_for_task(self, task_id: uuid.UUID) -> list[tuple[DocumentReview, SearchResult]]:
        result = await self.session.execute(
            select(DocumentReview, SearchResult)
            .join(SearchResult, SearchResult.id == DocumentReview.search_result_id)
            .where(
                SearchResult.search_task_id == task_id,
                DocumentReview.downloaded_at.is_not(None),
            )
            .order_by(DocumentReview.downloaded_at.desc())
            .execution_options(populate_existing=True)
        )
        return [(r[0], r[1]) for r in result.all()]

    async def stats_for_task(self, task_id: uuid.UUID) -> dict[str, int]:
        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        result = await self.session.execute(
            select(
                func.count(DocumentReview.id),
                count_where(DocumentReview.ai_assessment == AIAssessment.MEETS_CRITERIA.value),
                count_where(DocumentReview.ai_assessment == AIAssessment.PROBABLE_MATCH.value),
                count_where(DocumentReview.ai_assessment == AIAssessment.EXCLUDE.value),
                count_where(DocumentReview.ai_assessment == AIAssessment.PENDING.value),
                count_where(DocumentReview.user_confirmed.is_(True)),
                count_where(DocumentReview.marked_for_download.is_(True)),
                count_where(DocumentReview.downloaded_at.is_not(None)),
            )
            .join(SearchResult, SearchResult.id == DocumentReview.search_result_id)
            .where(SearchResult.search_task_id == task_id)
        )
        row = result.one()
        keys = (
            "total",
            "meets_criteria",
            "probable_match",
            "exclude",
            "pending",
            "user_reviewed",
            "marked_for_download",
            "downloaded",
        )
        return {k: int(v or 0) for k, v in zip(keys, row)}
