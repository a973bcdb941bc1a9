"""
Tests for the Batch Assessment Coordinator.
"""

import asyncio
import uuid

import pytest

from landman.adapters.base import AssessmentClient
from landman.adapters.stub import StubAssessmentClient
from landman.models.tables import DocumentReview
from landman.pipeline.assessment import BatchAssessmentCoordinator
from landman.schemas.contracts import SearchCriteria
from landman.stores.reviews import DocumentReviewStore

CRITERIA = SearchCriteria(party_name="Acme Oil")


class TrackingClient(AssessmentClient):
    """Counts in-flight calls; fails or hangs for chosen document numbers."""

    client_name = "tracking"

    def __init__(self, failing=(), hanging=()):
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.in_flight = 0
        self.max_in_flight = 0
        self.seen = []

    async def complete(self, prompt: str) -> str:
        raise NotImplementedError

    async def assess(self, document, criteria):
        self.seen.append(document.document_number)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if document.document_number in self.hanging:
                await asyncio.sleep(5)
            if document.document_number in self.failing:
                raise ConnectionError("AI service unreachable")
            return await StubAssessmentClient(
                '{"assessment": "probable_match", "confidence": 0.6}'
            ).assess(document, criteria)
        finally:
            self.in_flight -= 1


async def _reviews(factory, owner_id, count):
    portal = await factory.portal()
    task = await factory.task(owner_id, portal)
    reviews = []
    for i in range(count):
        result = await factory.result(task, f"DOC-{i}")
        reviews.append(await factory.review(result, owner_id))
    return reviews


async def _load(db, review_id):
    async with db.session_factory() as session:
        return await session.get(DocumentReview, review_id)


class TestBatchAssessment:

    @pytest.mark.asyncio
    async def test_writes_ai_stage_for_every_review(self, db, factory, owner_id):
        reviews = await _reviews(factory, owner_id, 2)
        client = StubAssessmentClient('{"assessment": "meets_criteria", "confidence": 0.95, "evidence": "ok"}')

        summary = await BatchAssessmentCoordinator(
            db.session_factory, client, batch_delay=0
        ).run([r.id for r in reviews], CRITERIA)

        assert summary.assessed == 2
        assert len(client.prompts) == 2
        for review in reviews:
            stored = await _load(db, review.id)
            assert stored.ai_assessment == "meets_criteria"
            assert float(stored.ai_confidence) == pytest.approx(0.95)
            assert stored.ai_outcome == "assessed"

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded_by_batch_size(self, db, factory, owner_id):
        reviews = await _reviews(factory, owner_id, 7)
        client = TrackingClient()

        await BatchAssessmentCoordinator(
            db.session_factory, client, concurrency=3, batch_delay=0
        ).run([r.id for r in reviews], CRITERIA)

        assert client.max_in_flight == 3
        assert len(client.seen) == 7

    @pytest.mark.asyncio
    async def test_failure_is_isolated_to_its_document(self, db, factory, owner_id):
        reviews = await _reviews(factory, owner_id, 3)
        client = TrackingClient(failing={"DOC-1"})

        summary = await BatchAssessmentCoordinator(
            db.session_factory, client, batch_delay=0
        ).run([r.id for r in reviews], CRITERIA)

        assert summary.failed == 1
        assert summary.assessed == 2

        failed = await _load(db, reviews[1].id)
        assert failed.ai_assessment == "pending"
        assert float(failed.ai_confidence) == 0.0
        assert failed.ai_evidence == "Analysis failed: AI service unreachable"
        assert failed.ai_outcome == "failed"

        sibling = await _load(db, reviews[2].id)
        assert sibling.ai_assessment == "probable_match"

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, db, factory, owner_id):
        reviews = await _reviews(factory, owner_id, 2)
        client = TrackingClient(hanging={"DOC-0"})

        summary = await BatchAssessmentCoordinator(
            db.session_factory, client, batch_delay=0, call_timeout=0.1
        ).run([r.id for r in reviews], CRITERIA)

        assert summary.failed == 1
        stored = await _load(db, reviews[0].id)
        assert stored.ai_outcome == "failed"
        assert stored.ai_evidence.startswith("Analysis failed: timed out")

    @pytest.mark.asyncio
    async def test_unparseable_output_stored_as_pending(self, db, factory, owner_id):
        reviews = await _reviews(factory, owner_id, 1)
        raw = "Sorry, I can't help with that. " * 10

        summary = await BatchAssessmentCoordinator(
            db.session_factory, StubAssessmentClient(raw), batch_delay=0
        ).run([reviews[0].id], CRITERIA)

        assert summary.unparseable == 1
        stored = await _load(db, reviews[0].id)
        assert stored.ai_assessment == "pending"
        assert float(stored.ai_confidence) == pytest.approx(0.5)
        assert stored.ai_evidence == "Failed to parse AI response: " + raw[:200]
        assert stored.ai_outcome == "unparseable"

    @pytest.mark.asyncio
    async def test_rerun_overwrites_with_latest_output(self, db, factory, owner_id):
        reviews = await _reviews(factory, owner_id, 1)
        ids = [reviews[0].id]

        await BatchAssessmentCoordinator(
            db.session_factory, StubAssessmentClient('{"assessment": "exclude", "confidence": 0.2}'), batch_delay=0
        ).run(ids, CRITERIA)
        await BatchAssessmentCoordinator(
            db.session_factory, StubAssessmentClient('{"assessment": "meets_criteria", "confidence": 0.8}'), batch_delay=0
        ).run(ids, CRITERIA)

        stored = await _load(db, ids[0])
        assert stored.ai_assessment == "meets_criteria"
        assert float(stored.ai_confidence) == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_missing_reviews_are_reported(self, db, factory, owner_id):
        reviews = await _reviews(factory, owner_id, 1)
        ghost = uuid.uuid4()

        summary = await BatchAssessmentCoordinator(
            db.session_factory, StubAssessmentClient(), batch_delay=0
        ).run([reviews[0].id, ghost], CRITERIA)

        assert summary.requested == 2
        assert summary.missing == [ghost]

    @pytest.mark.asyncio
    async def test_failed_batch_write_does_not_stop_later_batches(self, db, factory, owner_id, monkeypatch):
        reviews = await _reviews(factory, owner_id, 4)
        real_save = DocumentReviewStore.save_assessment
        calls = []

        async def flaky_save(self, review_id, outcome):
            calls.append(review_id)
            if len(calls) == 1:
                raise RuntimeError("database is locked")
            return await real_save(self, review_id, outcome)

        monkeypatch.setattr(DocumentReviewStore, "save_assessment", flaky_save)
        summary = await BatchAssessmentCoordinator(
            db.session_factory, TrackingClient(), concurrency=3, batch_delay=0
        ).run([r.id for r in reviews], CRITERIA)

        assert summary.failed == 3
        assert summary.assessed == 1
        stored = [await _load(db, r.id) for r in reviews]
        assert sorted(s.ai_outcome or "" for s in stored) == ["", "", "", "assessed"]
