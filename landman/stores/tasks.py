"""
Search Task Store: persistence and atomic status transitions.

Every status change goes through transition(), which owns the timestamp
rules:
  running   -> stamps started_at (never cleared)
  completed -> stamps completed_at
  any other -> clears completed_at, so it is set only while completed
"""

import uuid
from typing import Iterable, Optional

import structlog
from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from landman.errors import ValidationError
from landman.models.enums import TaskStatus, values
from landman.models.tables import DocumentReview, Portal, PortalCredential, SearchResult, SearchTask

logger = structlog.get_logger(__name__)

EDITABLE_FIELDS = frozenset({
    "party_name",
    "party_role",
    "date_from",
    "date_to",
    "legal_description",
    "document_reference",
    "notes",
    "priority",
})


class SearchTaskStore:
    """Data access for search_tasks. Callers own the transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **fields) -> SearchTask:
        task = SearchTask(status=TaskStatus.QUEUED.value, **fields)
        self.session.add(task)
        await self.session.flush()
        await self.session.refresh(task)
        logger.info("task_created", task_id=str(task.id), priority=task.priority)
        return task

    async def get(self, task_id: uuid.UUID) -> Optional[SearchTask]:
        result = await self.session.execute(
            select(SearchTask)
            .where(SearchTask.id == task_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SearchTask]:
        query = select(SearchTask).where(SearchTask.user_id == user_id)
        if status:
            query = query.where(SearchTask.status == status)
        result = await self.session.execute(
            query.order_by(SearchTask.priority, SearchTask.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def update_fields(
        self,
        task_id: uuid.UUID,
        fields: dict,
        frozen_statuses: Iterable[str] = (),
    ) -> Optional[SearchTask]:
        """
        Update editable columns. Status is never touched here.

        Rows currently in one of `frozen_statuses` are left alone and None
        is returned, as it is for a missing task.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
        if not fields:
            return await self.get(task_id)

        stmt = update(SearchTask).where(SearchTask.id == task_id)
        frozen = list(frozen_statuses)
        if frozen:
            stmt = stmt.where(SearchTask.status.not_in(frozen))
        result = await self.session.execute(
            stmt.values(**fields).execution_options(synchronize_session=False)
        )
        await self.session.flush()
        if result.rowcount != 1:
            return None
        return await self._reload(task_id)

    async def transition(
        self,
        task_id: uuid.UUID,
        new_status: str,
        expected: Optional[str] = None,
        error_message: Optional[str] = None,
        clear_error: bool = False,
    ) -> Optional[SearchTask]:
        """
        Set status, applying the timestamp rules.

        With `expected`, the UPDATE is a compare-and-swap on the current
        status and returns None if the row was not in that status (or is
        gone). Without it, returns None only if the task does not exist.
        """
        if new_status not in values(TaskStatus):
            raise ValidationError(f"Invalid status: {new_status}")

        changes = {"status": new_status}
        if new_status == TaskStatus.RUNNING.value:
            changes["started_at"] = func.now()
        if new_status == TaskStatus.COMPLETED.value:
            changes["completed_at"] = func.now()
        else:
            changes["completed_at"] = None
        if error_message is not None:
            changes["error_message"] = error_message
        elif clear_error:
            changes["error_message"] = None

        stmt = update(SearchTask).where(SearchTask.id == task_id)
        if expected is not None:
            stmt = stmt.where(SearchTask.status == expected)
        result = await self.session.execute(
            stmt.values(**changes).execution_options(synchronize_session=False)
        )
        await self.session.flush()

        if result.rowcount != 1:
            return None

        logger.info(
            "task_status_changed",
            task_id=str(task_id),
            status=new_status,
            expected=expected,
        )
        return await self._reload(task_id)

    async def delete(self, task_id: uuid.UUID, expected: Optional[str] = None) -> bool:
        """
        Delete a task with its results and their reviews.

        With `expected`, the task row is only deleted while in that status.
        Returns False when nothing was deleted.
        """
        stmt = delete(SearchTask).where(SearchTask.id == task_id)
        if expected is not None:
            stmt = stmt.where(SearchTask.status == expected)
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            return False

        # Children go explicitly: SQLite does not enforce ON DELETE CASCADE
        # unless foreign keys are switched on per connection.
        task_results = select(SearchResult.id).where(SearchResult.search_task_id == task_id)
        await self.session.execute(
            delete(DocumentReview)
            .where(DocumentReview.search_result_id.in_(task_results))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(SearchResult)
            .where(SearchResult.search_task_id == task_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        logger.info("task_deleted", task_id=str(task_id))
        return True

    async def next_claimable(self) -> Optional[SearchTask]:
        """
        Highest-priority queued task whose owner holds an active credential
        for the task's active portal. Lowest priority number wins, then
        oldest. Row-locked with SKIP LOCKED where the backend supports it.
        """
        query = (
            select(SearchTask)
            .join(Portal, Portal.id == SearchTask.portal_id)
            .join(
                PortalCredential,
                and_(
                    PortalCredential.portal_id == SearchTask.portal_id,
                    PortalCredential.user_id == SearchTask.user_id,
                ),
            )
            .where(
                SearchTask.status == TaskStatus.QUEUED.value,
                Portal.is_active.is_(True),
                PortalCredential.is_active.is_(True),
            )
            .order_by(SearchTask.priority, SearchTask.created_at)
            .limit(1)
            .with_for_update(of=SearchTask, skip_locked=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def claim(self, task_id: uuid.UUID) -> Optional[SearchTask]:
        """Atomically move a queued task to running. None if someone else won."""
        return await self.transition(
            task_id, TaskStatus.RUNNING.value, expected=TaskStatus.QUEUED.value
        )

    async def status_counts(self, user_id: Optional[uuid.UUID] = None) -> dict[str, int]:
        query = select(SearchTask.status, func.count(SearchTask.id)).group_by(SearchTask.status)
        if user_id is not None:
            query = query.where(SearchTask.user_id == user_id)
        result = await self.session.execute(query)
        return {row[0]: row[1] for row in result.all()}

    async def _reload(self, task_id: uuid.UUID) -> Optional[SearchTask]:
        # Core UPDATEs bypass the identity map, so refresh any loaded instance
        task = await self.session.get(SearchTask, task_id, populate_existing=True)
        return task
