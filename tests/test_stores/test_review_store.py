"""
Tests for the result and review stores: uniqueness and the download stamp.
"""

import pytest
from sqlalchemy import func, select

from landman.models.enums import AIAssessment, AIOutcome
from landman.models.tables import DocumentReview, SearchResult
from landman.schemas.contracts import AssessmentResult
from landman.stores.results import SearchResultStore
from landman.stores.reviews import DocumentReviewStore


class TestResultUpsert:
    """At most one result per (task, document number)."""

    @pytest.mark.asyncio
    async def test_upsert_returns_existing_row(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)

        async with db.session_factory() as session:
            store = SearchResultStore(session)
            first = await store.upsert(task.id, {"document_number": "A-1", "grantor": "Acme"})
            second = await store.upsert(task.id, {"document_number": "A-1", "grantor": "Other"})
            await session.commit()

        assert first == second
        async with db.session_factory() as session:
            count = await session.scalar(select(func.count(SearchResult.id)))
            row = await session.get(SearchResult, first)
        assert count == 1
        assert row.grantor == "Acme"

    @pytest.mark.asyncio
    async def test_same_number_allowed_on_different_tasks(self, db, factory, owner_id):
        portal = await factory.portal()
        one = await factory.task(owner_id, portal)
        two = await factory.task(owner_id, portal)

        async with db.session_factory() as session:
            store = SearchResultStore(session)
            assert await store.insert_or_ignore(one.id, {"document_number": "A-1"}) is True
            assert await store.insert_or_ignore(two.id, {"document_number": "A-1"}) is True
            assert await store.insert_or_ignore(one.id, {"document_number": "A-1"}) is False


class TestReviewStore:

    @pytest.mark.asyncio
    async def test_requeue_reuses_review_and_resets_ai_stage(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)
        result = await factory.result(task, "A-1")
        existing = await factory.review(
            result,
            owner_id,
            ai_assessment="exclude",
            ai_outcome="assessed",
            user_decision="approved",
            user_confirmed=True,
        )

        async with db.session_factory() as session:
            review_id = await DocumentReviewStore(session).queue_for_assessment(result.id, owner_id)
            await session.commit()

        assert review_id == existing.id
        async with db.session_factory() as session:
            review = await session.get(DocumentReview, review_id)
            count = await session.scalar(select(func.count(DocumentReview.id)))
        assert count == 1
        assert review.ai_assessment == "pending"
        assert review.ai_outcome is None
        # Human stage is kept
        assert review.user_decision == "approved"

    @pytest.mark.asyncio
    async def test_save_assessment_overwrites(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)
        review = await factory.review(await factory.result(task, "A-1"), owner_id)

        async with db.session_factory() as session:
            store = DocumentReviewStore(session)
            await store.save_assessment(review.id, AssessmentResult(
                assessment=AIAssessment.EXCLUDE, confidence=0.3, evidence="first",
            ))
            await store.save_assessment(review.id, AssessmentResult(
                assessment=AIAssessment.MEETS_CRITERIA,
                confidence=0.9,
                evidence="second",
                party_match={"found": True},
            ))
            await session.commit()
            stored = await store.get(review.id)

        assert stored.ai_assessment == "meets_criteria"
        assert float(stored.ai_confidence) == pytest.approx(0.9)
        assert stored.ai_evidence == "second"
        assert stored.ai_outcome == AIOutcome.ASSESSED.value
        assert stored.ai_details["partyMatch"] == {"found": True}
        assert stored.ai_assessed_at is not None

    @pytest.mark.asyncio
    async def test_download_stamp_requires_mark_and_is_written_once(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)
        unmarked = await factory.review(await factory.result(task, "A-1"), owner_id)
        marked = await factory.review(
            await factory.result(task, "A-2"), owner_id, marked_for_download=True
        )

        async with db.session_factory() as session:
            store = DocumentReviewStore(session)
            assert await store.mark_downloaded(unmarked.id, "a1.pdf") is False
            assert await store.mark_downloaded(marked.id, "a2.pdf") is True
            assert await store.mark_downloaded(marked.id, "again.pdf") is False
            await session.commit()
            stored = await store.get(marked.id)

        assert stored.file_path == "a2.pdf"
        assert stored.downloaded_at is not None

    @pytest.mark.asyncio
    async def test_stats_for_task(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)
        await factory.review(await factory.result(task, "A-1"), owner_id, ai_assessment="meets_criteria")
        await factory.review(
            await factory.result(task, "A-2"), owner_id,
            ai_assessment="exclude", user_confirmed=True,
        )
        await factory.review(await factory.result(task, "A-3"), owner_id, marked_for_download=True)

        async with db.session_factory() as session:
            stats = await DocumentReviewStore(session).stats_for_task(task.id)

        assert stats == {
            "total": 3,
            "meets_criteria": 1,
            "probable_match": 0,
            "exclude": 1,
            "pending": 1,
            "user_reviewed": 1,
            "marked_for_download": 1,
            "downloaded": 0,
        }
