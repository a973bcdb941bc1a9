"""
Task Scheduler: the single-consumer polling loop that executes search tasks.

Each cycle:
  CLAIM   -> pick the best queued task with a usable credential, CAS to running
  RESOLVE -> decrypt the owner's portal credential
  SEARCH  -> call the portal adapter under a timeout
  PERSIST -> insert-or-ignore results, then completed; or failed + error

One task per cycle. No automatic retry: a failed task stays failed until
its owner re-queues it.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from landman.adapters.base import PortalSearchAdapter
from landman.credentials import CredentialResolver
from landman.errors import LandmanError
from landman.models.enums import PartyRole, TaskStatus, values
from landman.models.tables import Portal, SearchTask
from landman.observability.metrics import (
    search_results_ingested_total,
    task_runs_total,
    tasks_by_status,
    tasks_claimed_total,
)
from landman.schemas.contracts import PortalSearchOutcome, SearchParams
from landman.stores.results import SearchResultStore
from landman.stores.tasks import SearchTaskStore

logger = structlog.get_logger(__name__)


@dataclass
class TaskRunOutcome:
    """What one scheduler cycle did."""
    task_id: uuid.UUID
    status: str
    documents_found: int = 0
    documents_added: int = 0
    error: Optional[str] = None


@dataclass
class _ClaimedTask:
    id: uuid.UUID
    user_id: uuid.UUID
    portal_id: uuid.UUID
    params: SearchParams


class TaskScheduler:
    """Claims and runs queued search tasks, one per cycle."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        adapter: PortalSearchAdapter,
        resolver: CredentialResolver,
        poll_interval: float = 30.0,
        search_timeout: float = 300.0,
    ):
        self.session_factory = session_factory
        self.adapter = adapter
        self.resolver = resolver
        self.poll_interval = poll_interval
        self.search_timeout = search_timeout

    async def run(self, stop: asyncio.Event) -> None:
        """Poll until `stop` is set. Cycle errors are logged, never fatal."""
        logger.info("scheduler_started", poll_interval=self.poll_interval, adapter=self.adapter.adapter_name)
        while not stop.is_set():
            try:
                await self.run_once()
                await self.refresh_status_gauge()
            except Exception as e:
                logger.error("scheduler_cycle_failed", error=str(e), exc_info=True)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("scheduler_stopped")

    async def refresh_status_gauge(self) -> dict[str, int]:
        """Publish global per-status task counts to the tasks_by_status gauge."""
        async with self.session_factory() as session:
            counts = await SearchTaskStore(session).status_counts()
        for status in values(TaskStatus):
            tasks_by_status.labels(status=status).set(counts.get(status, 0))
        return counts

    async def run_once(self) -> Optional[TaskRunOutcome]:
        """Run at most one task. Returns None when nothing was claimed."""
        claimed = await self._claim_next()
        if claimed is None:
            return None

        structlog.contextvars.bind_contextvars(task_id=str(claimed.id))
        try:
            return await self._execute(claimed)
        finally:
            structlog.contextvars.unbind_contextvars("task_id")

    async def _claim_next(self) -> Optional[_ClaimedTask]:
        async with self.session_factory() as session:
            store = SearchTaskStore(session)
            candidate = await store.next_claimable()
            if candidate is None:
                return None

            task = await store.claim(candidate.id)
            if task is None:
                # Another worker moved it first
                await session.rollback()
                logger.info("task_claim_lost", task_id=str(candidate.id))
                return None

            portal = await session.get(Portal, task.portal_id)
            claimed = _ClaimedTask(
                id=task.id,
                user_id=task.user_id,
                portal_id=task.portal_id,
                params=self._build_params(task, portal.url),
            )
            await session.commit()

        tasks_claimed_total.inc()
        logger.info("task_claimed", task_id=str(claimed.id), party_name=claimed.params.party_name)
        return claimed

    @staticmethod
    def _build_params(task: SearchTask, portal_url: str) -> SearchParams:
        return SearchParams(
            portal_url=portal_url,
            party_name=task.party_name,
            party_role=PartyRole(task.party_role),
            date_from=task.date_from,
            date_to=task.date_to,
            legal_description=task.legal_description,
            document_reference=task.document_reference,
        )

    async def _execute(self, claimed: _ClaimedTask) -> TaskRunOutcome:
        started = time.time()
        try:
            credentials = await self.resolver.resolve(claimed.user_id, claimed.portal_id)
            outcome = await asyncio.wait_for(
                self.adapter.execute(credentials, claimed.params),
                timeout=self.search_timeout,
            )
        except asyncio.TimeoutError:
            outcome = PortalSearchOutcome(
                success=False,
                error=f"Portal search timed out after {self.search_timeout:g}s",
            )
        except LandmanError as e:
            outcome = PortalSearchOutcome(success=False, error=e.message)
        except Exception as e:
            logger.error("portal_adapter_crashed", error=str(e), exc_info=True)
            outcome = PortalSearchOutcome(success=False, error=f"{e.__class__.__name__}: {e}")

        if outcome.success:
            try:
                result = await self._complete(claimed, outcome)
            except Exception as e:
                logger.error("task_persist_failed", task_id=str(claimed.id), error=str(e), exc_info=True)
                result = await self._fail(claimed, f"Persisting results failed: {e}")
        else:
            result = await self._fail(claimed, outcome.error or "Search failed")

        task_runs_total.labels(status=result.status).inc()
        logger.info(
            "task_run_finished",
            task_id=str(claimed.id),
            status=result.status,
            documents_found=result.documents_found,
            documents_added=result.documents_added,
            duration_ms=int((time.time() - started) * 1000),
        )
        return result

    async def _complete(self, claimed: _ClaimedTask, outcome: PortalSearchOutcome) -> TaskRunOutcome:
        async with self.session_factory() as session:
            results = SearchResultStore(session)
            added = 0
            for doc in outcome.documents:
                inserted = await results.insert_or_ignore(
                    claimed.id,
                    {
                        "document_number": doc.document_number,
                        "recording_date": doc.recording_date,
                        "grantor": doc.grantor,
                        "grantee": doc.grantee,
                        "document_type": doc.document_type,
                        "page_count": doc.page_count,
                        "portal_url": doc.link,
                    },
                )
                added += int(inserted)

            task = await SearchTaskStore(session).transition(
                claimed.id,
                TaskStatus.COMPLETED.value,
                expected=TaskStatus.RUNNING.value,
            )
            if task is None:
                # Row left running (or is gone) while the search was in flight; keep nothing
                await session.rollback()
                return TaskRunOutcome(
                    task_id=claimed.id,
                    status="abandoned",
                    documents_found=len(outcome.documents),
                    error="Task left running state during search",
                )
            await session.commit()

        search_results_ingested_total.labels(source="scheduler").inc(added)
        return TaskRunOutcome(
            task_id=claimed.id,
            status=TaskStatus.COMPLETED.value,
            documents_found=len(outcome.documents),
            documents_added=added,
        )

    async def _fail(self, claimed: _ClaimedTask, error: str) -> TaskRunOutcome:
        async with self.session_factory() as session:
            task = await SearchTaskStore(session).transition(
                claimed.id,
                TaskStatus.FAILED.value,
                expected=TaskStatus.RUNNING.value,
                error_message=error,
            )
            if task is None:
                await session.rollback()
                logger.warning("task_fail_abandoned", task_id=str(claimed.id), error=error)
                return TaskRunOutcome(task_id=claimed.id, status="abandoned", error=error)
            await session.commit()

        logger.warning("task_failed", task_id=str(claimed.id), error=error)
        return TaskRunOutcome(task_id=claimed.id, status=TaskStatus.FAILED.value, error=error)
