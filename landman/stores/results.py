"""
Search Result Store.
(search_task_id, document_number) is unique: re-discovery of a document is
an upsert, never a second row.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from landman.models.enums import ResultStatus
from landman.models.tables import SearchResult, SearchTask

logger = structlog.get_logger(__name__)

RESULT_COLUMNS = (
    "document_number",
    "recording_date",
    "grantor",
    "grantee",
    "document_type",
    "legal_description",
    "page_count",
    "portal_url",
)


def dialect_insert(session: AsyncSession, model):
    """INSERT construct with ON CONFLICT support for the session's backend."""
    if session.bind.dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


class SearchResultStore:
    """Data access for search_results. Callers own the transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, task_id: uuid.UUID, document: dict) -> Optional[uuid.UUID]:
        """
        Insert a result, or touch updated_at of the existing row for the
        same (task, document number). Returns the row id.
        """
        row = {k: document.get(k) for k in RESULT_COLUMNS}
        stmt = dialect_insert(self.session, SearchResult).values(
            id=uuid.uuid4(),
            search_task_id=task_id,
            status=ResultStatus.NEW.value,
            **row,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["search_task_id", "document_number"],
            set_={"updated_at": func.now()},
        ).returning(SearchResult.id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def insert_or_ignore(self, task_id: uuid.UUID, document: dict) -> bool:
        """Insert a result unless it already exists. True if a row was added."""
        row = {k: document.get(k) for k in RESULT_COLUMNS}
        stmt = dialect_insert(self.session, SearchResult).values(
            id=uuid.uuid4(),
            search_task_id=task_id,
            status=ResultStatus.NEW.value,
            **row,
        ).on_conflict_do_nothing(index_elements=["search_task_id", "document_number"])
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get(self, result_id: uuid.UUID) -> Optional[SearchResult]:
        result = await self.session.execute(
            select(SearchResult).where(SearchResult.id == result_id)
        )
        return result.scalar_one_or_none()

    async def get_with_owner(self, result_id: uuid.UUID) -> Optional[tuple[SearchResult, uuid.UUID]]:
        """Result plus the user id of its parent task's owner."""
        result = await self.session.execute(
            select(SearchResult, SearchTask.user_id)
            .join(SearchTask, SearchTask.id == SearchResult.search_task_id)
            .where(SearchResult.id == result_id)
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def get_many(self, result_ids: list[uuid.UUID]) -> list[SearchResult]:
        if not result_ids:
            return []
        result = await self.session.execute(
            select(SearchResult)
            .where(SearchResult.id.in_(result_ids))
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def owned_result_ids(self, result_ids: list[uuid.UUID], owner_id: uuid.UUID) -> list[uuid.UUID]:
        """Subset of result_ids whose parent task belongs to owner_id, in input order."""
        if not result_ids:
            return []
        result = await self.session.execute(
            select(SearchResult.id)
            .join(SearchTask, SearchTask.id == SearchResult.search_task_id)
            .where(SearchResult.id.in_(result_ids), SearchTask.user_id == owner_id)
        )
        owned = set(result.scalars().all())
        return [rid for rid in dict.fromkeys(result_ids) if rid in owned]

    async def list_for_task(
        self,
        task_id: uuid.UUID,
        statuses: Optional[list[str]] = None,
    ) -> list[SearchResult]:
        query = select(SearchResult).where(SearchResult.search_task_id == task_id)
        if statuses:
            query = query.where(SearchResult.status.in_(statuses))
        result = await self.session.execute(
            query.order_by(SearchResult.recording_date.desc(), SearchResult.document_number)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def set_status(
        self,
        result_id: uuid.UUID,
        status: str,
        notes: Optional[str] = None,
    ) -> Optional[SearchResult]:
        changes = {"status": status}
        if notes is not None:
            changes["review_notes"] = notes
        result = await self.session.execute(
            update(SearchResult)
            .where(SearchResult.id == result_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        if result.rowcount != 1:
            return None
        logger.info("result_status_changed", result_id=str(result_id), status=status)
        return await self.session.get(SearchResult, result_id, populate_existing=True)
