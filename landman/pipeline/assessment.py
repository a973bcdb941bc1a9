"""
Batch Assessment Coordinator.

Runs the AI relevance judgment over a set of queued reviews:
  LOAD   -> reviews joined with their search results
  BATCH  -> at most `concurrency` calls in flight, `batch_delay` between batches
  WRITE  -> overwrite the AI stage of every review in the batch

A failing or timed-out call degrades its own review to pending/failed and
never aborts its siblings. A batch whose write fails is counted as failed
and the run moves on to the next batch.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from landman.adapters.base import AssessmentClient
from landman.models.enums import AIAssessment, AIOutcome
from landman.observability.metrics import assessment_latency_seconds, assessments_total
from landman.schemas.contracts import AssessableDocument, AssessmentResult, SearchCriteria
from landman.stores.reviews import DocumentReviewStore

logger = structlog.get_logger(__name__)


def failed_result(error: str) -> AssessmentResult:
    return AssessmentResult(
        assessment=AIAssessment.PENDING,
        confidence=0.0,
        evidence=f"Analysis failed: {error}",
        quotes="",
        relevant_pages="all",
        outcome=AIOutcome.FAILED,
    )


@dataclass
class AssessmentSummary:
    requested: int = 0
    assessed: int = 0
    unparseable: int = 0
    failed: int = 0
    missing: list[uuid.UUID] = field(default_factory=list)

    def count(self, outcome: AIOutcome) -> None:
        if outcome == AIOutcome.ASSESSED:
            self.assessed += 1
        elif outcome == AIOutcome.UNPARSEABLE:
            self.unparseable += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        return {
            "requested": self.requested,
            "assessed": self.assessed,
            "unparseable": self.unparseable,
            "failed": self.failed,
            "missing": [str(m) for m in self.missing],
        }


class BatchAssessmentCoordinator:

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        client: AssessmentClient,
        concurrency: int = 3,
        batch_delay: float = 0.5,
        call_timeout: float = 60.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.session_factory = session_factory
        self.client = client
        self.concurrency = concurrency
        self.batch_delay = batch_delay
        self.call_timeout = call_timeout

    async def run(self, review_ids: list[uuid.UUID], criteria: SearchCriteria) -> AssessmentSummary:
        summary = AssessmentSummary(requested=len(review_ids))

        async with self.session_factory() as session:
            pairs = await DocumentReviewStore(session).load_for_assessment(review_ids)

        documents = [
            (review.id, AssessableDocument.model_validate(result))
            for review, result in pairs
        ]
        found = {review_id for review_id, _ in documents}
        summary.missing = [rid for rid in review_ids if rid not in found]
        if summary.missing:
            logger.warning("assessment_reviews_missing", count=len(summary.missing))

        logger.info(
            "assessment_started",
            documents=len(documents),
            concurrency=self.concurrency,
            client=self.client.client_name,
        )

        batches = [
            documents[i:i + self.concurrency]
            for i in range(0, len(documents), self.concurrency)
        ]
        for index, batch in enumerate(batches):
            outcomes = await asyncio.gather(
                *(self._assess_one(review_id, doc, criteria) for review_id, doc in batch)
            )
            try:
                await self._write_batch(list(zip((rid for rid, _ in batch), outcomes)))
            except Exception as e:
                # The whole batch rolled back; its reviews keep their previous state
                logger.error(
                    "assessment_write_failed",
                    batch=index,
                    size=len(batch),
                    error=str(e),
                    exc_info=True,
                )
                summary.failed += len(batch)
            else:
                for outcome in outcomes:
                    summary.count(outcome.outcome)

            if index < len(batches) - 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        logger.info("assessment_finished", **summary.to_dict())
        return summary

    async def _assess_one(
        self,
        review_id: uuid.UUID,
        document: AssessableDocument,
        criteria: SearchCriteria,
    ) -> AssessmentResult:
        started = time.time()
        try:
            outcome = await asyncio.wait_for(
                self.client.assess(document, criteria),
                timeout=self.call_timeout,
            )
        except asyncio.TimeoutError:
            outcome = failed_result(f"timed out after {self.call_timeout:g}s")
        except Exception as e:
            outcome = failed_result(str(e) or e.__class__.__name__)

        if outcome.outcome == AIOutcome.FAILED:
            logger.warning(
                "assessment_failed",
                review_id=str(review_id),
                document_number=document.document_number,
                error=outcome.evidence,
            )
        else:
            assessment_latency_seconds.observe(time.time() - started)

        assessments_total.labels(
            outcome=outcome.outcome.value,
            assessment=outcome.assessment.value,
        ).inc()
        return outcome

    async def _write_batch(self, rows: list[tuple[uuid.UUID, AssessmentResult]]) -> None:
        async with self.session_factory() as session:
            store = DocumentReviewStore(session)
            for review_id, outcome in rows:
                await store.save_assessment(review_id, outcome)
            await session.commit()
