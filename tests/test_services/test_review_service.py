"""
Tests for the review and download use cases: queueing analysis, human
decisions, bulk marking, and starting downloads.
"""

import uuid
from datetime import datetime

import pytest

from landman.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from landman.models.tables import DocumentReview, SearchResult
from landman.services.downloads import DownloadService
from landman.services.reviews import ReviewService

CRITERIA = {"party_name": "Acme Oil", "date_from": "2010-01-01"}


async def _task_with_results(factory, user_id, numbers, status="completed"):
    portal = await factory.portal()
    task = await factory.task(user_id, portal, status=status)
    results = [await factory.result(task, n) for n in numbers]
    return task, results


class TestStartAnalysis:

    @pytest.mark.asyncio
    async def test_queues_only_owned_results(self, db, factory, jobs, owner_id, other_user_id):
        task, results = await _task_with_results(factory, owner_id, ["A-1", "A-2"])
        _, foreign = await _task_with_results(factory, other_user_id, ["F-1"])
        ids = [results[0].id, foreign[0].id, uuid.uuid4(), results[1].id]

        async with db.session_factory() as session:
            started = await ReviewService(session, jobs).start_analysis(owner_id, ids, CRITERIA)

        assert started == {"analysis_id": "assessment-1", "documents_queued": 2}
        review_ids, criteria = jobs.assessments[0]
        assert len(review_ids) == 2
        assert criteria.party_name == "Acme Oil"

        async with db.session_factory() as session:
            for review_id in review_ids:
                review = await session.get(DocumentReview, review_id)
                assert review.ai_assessment == "pending"
                assert review.ai_outcome is None
                assert review.user_id == owner_id

    @pytest.mark.asyncio
    async def test_nothing_owned_is_rejected(self, db, factory, jobs, owner_id, other_user_id):
        _, foreign = await _task_with_results(factory, other_user_id, ["F-1"])

        async with db.session_factory() as session:
            service = ReviewService(session, jobs)
            with pytest.raises(ValidationError):
                await service.start_analysis(owner_id, [foreign[0].id], CRITERIA)
            with pytest.raises(ValidationError):
                await service.start_analysis(owner_id, [], CRITERIA)

        assert jobs.assessments == []

    @pytest.mark.asyncio
    async def test_criteria_need_party_name(self, db, factory, jobs, owner_id):
        _, results = await _task_with_results(factory, owner_id, ["A-1"])

        async with db.session_factory() as session:
            with pytest.raises(ValidationError):
                await ReviewService(session, jobs).start_analysis(owner_id, [results[0].id], {"party_name": ""})


class TestAnalysisResults:

    @pytest.mark.asyncio
    async def test_complete_once_every_review_has_an_outcome(self, db, factory, owner_id):
        task, results = await _task_with_results(factory, owner_id, ["A-1", "A-2"])
        await factory.review(results[0], owner_id, ai_assessment="meets_criteria", ai_outcome="assessed")
        second = await factory.review(results[1], owner_id)

        async with db.session_factory() as session:
            report = await ReviewService(session).get_analysis_results(task.id, owner_id)
        assert report["total"] == 2
        assert report["analyzed"] == 1
        assert report["analysis_complete"] is False

        async with db.session_factory() as session:
            review = await session.get(DocumentReview, second.id)
            review.ai_outcome = "failed"
            await session.commit()

        async with db.session_factory() as session:
            report = await ReviewService(session).get_analysis_results(task.id, owner_id)
        assert report["analysis_complete"] is True

    @pytest.mark.asyncio
    async def test_no_reviews_is_not_complete(self, db, factory, owner_id):
        task, _ = await _task_with_results(factory, owner_id, ["A-1"])

        async with db.session_factory() as session:
            report = await ReviewService(session).get_analysis_results(task.id, owner_id)

        assert report["total"] == 0
        assert report["analysis_complete"] is False


class TestRecordDecision:

    @pytest.mark.asyncio
    async def test_approval_marks_for_download(self, db, factory, owner_id):
        _, results = await _task_with_results(factory, owner_id, ["A-1"])
        review = await factory.review(results[0], owner_id)

        async with db.session_factory() as session:
            updated = await ReviewService(session).record_decision(review.id, owner_id, "approved", "looks right")
            await session.commit()

        assert updated.user_decision == "approved"
        assert updated.user_confirmed is True
        assert updated.user_notes == "looks right"
        assert updated.marked_for_download is True
        async with db.session_factory() as session:
            assert (await session.get(SearchResult, results[0].id)).status == "marked_for_review"

    @pytest.mark.asyncio
    async def test_rejection_excludes_result(self, db, factory, owner_id):
        _, results = await _task_with_results(factory, owner_id, ["A-1"])
        review = await factory.review(results[0], owner_id)

        async with db.session_factory() as session:
            updated = await ReviewService(session).record_decision(review.id, owner_id, "rejected")
            await session.commit()

        assert updated.marked_for_download is False
        async with db.session_factory() as session:
            assert (await session.get(SearchResult, results[0].id)).status == "excluded"

    @pytest.mark.asyncio
    async def test_explicit_flag_wins(self, db, factory, owner_id):
        _, results = await _task_with_results(factory, owner_id, ["A-1"])
        review = await factory.review(results[0], owner_id)

        async with db.session_factory() as session:
            updated = await ReviewService(session).record_decision(
                review.id, owner_id, "needs_review", mark_for_download=True
            )

        assert updated.marked_for_download is True

    @pytest.mark.asyncio
    async def test_downloaded_review_cannot_be_unmarked(self, db, factory, owner_id):
        _, results = await _task_with_results(factory, owner_id, ["A-1"])
        review = await factory.review(
            results[0],
            owner_id,
            marked_for_download=True,
            downloaded_at=datetime(2024, 1, 2),
            file_path="a.pdf",
        )

        async with db.session_factory() as session:
            with pytest.raises(ConflictError):
                await ReviewService(session).record_decision(review.id, owner_id, "rejected")

    @pytest.mark.asyncio
    async def test_ownership_and_validation(self, db, factory, owner_id, other_user_id):
        _, results = await _task_with_results(factory, owner_id, ["A-1"])
        review = await factory.review(results[0], owner_id)

        async with db.session_factory() as session:
            service = ReviewService(session)
            with pytest.raises(ValidationError):
                await service.record_decision(review.id, owner_id, "maybe")
            with pytest.raises(UnauthorizedError):
                await service.record_decision(review.id, other_user_id, "approved")
            with pytest.raises(NotFoundError):
                await service.record_decision(uuid.uuid4(), owner_id, "approved")


class TestMarkForDownload:

    @pytest.mark.asyncio
    async def test_foreign_reviews_are_skipped(self, db, factory, owner_id, other_user_id):
        _, mine = await _task_with_results(factory, owner_id, ["A-1", "A-2"])
        _, theirs = await _task_with_results(factory, other_user_id, ["F-1"])
        reviews = [
            await factory.review(mine[0], owner_id),
            await factory.review(mine[1], owner_id),
            await factory.review(theirs[0], other_user_id),
        ]

        async with db.session_factory() as session:
            marked = await ReviewService(session).mark_for_download(owner_id, [r.id for r in reviews])
            await session.commit()

        assert marked == 2
        async with db.session_factory() as session:
            assert (await session.get(DocumentReview, reviews[2].id)).marked_for_download is False


class TestExecuteDownloads:

    @pytest.mark.asyncio
    async def test_nothing_marked(self, db, factory, jobs, owner_id):
        task, results = await _task_with_results(factory, owner_id, ["A-1"])
        await factory.review(results[0], owner_id)

        async with db.session_factory() as session:
            with pytest.raises(ValidationError):
                await DownloadService(session, jobs).execute_downloads(task.id, owner_id)
        assert jobs.downloads == []

    @pytest.mark.asyncio
    async def test_counts_only_pending_documents(self, db, factory, jobs, owner_id):
        task, results = await _task_with_results(factory, owner_id, ["A-1", "A-2"])
        await factory.review(results[0], owner_id, marked_for_download=True)
        await factory.review(
            results[1], owner_id, marked_for_download=True, downloaded_at=datetime(2024, 1, 2)
        )

        async with db.session_factory() as session:
            started = await DownloadService(session, jobs).execute_downloads(task.id, owner_id)

        assert started == {"download_id": "downloads-1", "documents_to_download": 1}
        assert jobs.downloads == [task.id]

    @pytest.mark.asyncio
    async def test_foreign_task(self, db, factory, jobs, owner_id, other_user_id):
        task, _ = await _task_with_results(factory, owner_id, ["A-1"])

        async with db.session_factory() as session:
            with pytest.raises(UnauthorizedError):
                await DownloadService(session, jobs).execute_downloads(task.id, other_user_id)
