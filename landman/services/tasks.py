"""
Search task use cases: validation, ownership, and the user-facing side of
the task state machine. The scheduler drives queued -> running -> completed
/ failed through SearchTaskStore directly.
"""

import uuid
from datetime import date
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from landman.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from landman.models.enums import TERMINAL_TASK_STATUSES, PartyRole, TaskStatus, values
from landman.models.tables import SearchTask
from landman.observability.metrics import tasks_created_total
from landman.stores.tasks import SearchTaskStore

logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = ("portal_id", "county_id", "party_name", "date_from", "date_to")
DEFAULT_PRIORITY = 5


def validate_priority(priority: Any) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ValidationError("Priority must be an integer between 1 and 10")
    if not 1 <= priority <= 10:
        raise ValidationError("Priority must be between 1 and 10")
    return priority


def validate_party_role(role: Any) -> str:
    role = role.value if isinstance(role, PartyRole) else role
    if role not in values(PartyRole):
        raise ValidationError(f"Invalid party role: {role}")
    return role


def as_date(value: Any, field_name: str) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"{field_name} must be an ISO date (YYYY-MM-DD)")


def as_uuid(value: Any, field_name: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"{field_name} must be a UUID")


def check_date_range(date_from: date, date_to: date) -> None:
    if date_from > date_to:
        raise ValidationError("date_from must not be after date_to")


async def get_owned_task(store: SearchTaskStore, task_id: uuid.UUID, user_id: uuid.UUID) -> SearchTask:
    """Load a task, distinguishing missing from foreign."""
    task = await store.get(task_id)
    if task is None:
        raise NotFoundError(f"Search task {task_id} not found")
    if task.user_id != user_id:
        raise UnauthorizedError(f"Search task {task_id} belongs to another user")
    return task


class TaskService:

    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = SearchTaskStore(session)

    async def create(self, user_id: uuid.UUID, organization_id: uuid.UUID, data: dict) -> SearchTask:
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        party_name = str(data["party_name"]).strip()
        if not party_name:
            raise ValidationError("party_name must not be blank")

        date_from = as_date(data["date_from"], "date_from")
        date_to = as_date(data["date_to"], "date_to")
        check_date_range(date_from, date_to)

        county_id = data["county_id"]
        if isinstance(county_id, bool) or not isinstance(county_id, int):
            raise ValidationError("county_id must be an integer")

        priority = data.get("priority")
        task = await self.store.create(
            organization_id=organization_id,
            user_id=user_id,
            portal_id=as_uuid(data["portal_id"], "portal_id"),
            county_id=county_id,
            party_name=party_name,
            party_role=validate_party_role(data.get("party_role") or PartyRole.BOTH.value),
            date_from=date_from,
            date_to=date_to,
            legal_description=data.get("legal_description"),
            document_reference=data.get("document_reference"),
            priority=DEFAULT_PRIORITY if priority is None else validate_priority(priority),
            notes=data.get("notes") or "",
        )
        tasks_created_total.inc()
        return task

    async def get(self, task_id: uuid.UUID, user_id: uuid.UUID) -> SearchTask:
        return await get_owned_task(self.store, task_id, user_id)

    async def list_tasks(
        self,
        user_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SearchTask]:
        if status is not None and status not in values(TaskStatus):
            raise ValidationError(f"Invalid status: {status}")
        return await self.store.list_for_user(user_id, status=status, limit=limit, offset=offset)

    async def update(self, task_id: uuid.UUID, user_id: uuid.UUID, fields: dict) -> SearchTask:
        """Edit a task that has not finished. Completed and failed tasks are frozen."""
        task = await get_owned_task(self.store, task_id, user_id)
        if task.status in TERMINAL_TASK_STATUSES:
            raise ConflictError(f"Cannot update a {task.status} task")
        if not fields:
            raise ValidationError("No fields to update")

        changes = dict(fields)
        if "priority" in changes:
            changes["priority"] = validate_priority(changes["priority"])
        if "party_role" in changes:
            changes["party_role"] = validate_party_role(changes["party_role"])
        if "party_name" in changes:
            name = str(changes["party_name"] or "").strip()
            if not name:
                raise ValidationError("party_name must not be blank")
            changes["party_name"] = name
        if "notes" in changes and changes["notes"] is None:
            changes["notes"] = ""
        for key in ("date_from", "date_to"):
            if key in changes:
                changes[key] = as_date(changes[key], key)
        check_date_range(
            changes.get("date_from", task.date_from),
            changes.get("date_to", task.date_to),
        )

        updated = await self.store.update_fields(
            task_id, changes, frozen_statuses=TERMINAL_TASK_STATUSES
        )
        if updated is None:
            raise ConflictError("Task finished while being edited")
        logger.info("task_updated", task_id=str(task_id), fields=sorted(changes))
        return updated

    async def update_status(self, task_id: uuid.UUID, user_id: uuid.UUID, status: str) -> SearchTask:
        """
        User override. `running` is reserved for the scheduler and a running
        task cannot be overridden. queued after failed is the retry path.
        """
        if status not in values(TaskStatus):
            raise ValidationError(f"Invalid status: {status}")
        if status == TaskStatus.RUNNING.value:
            raise ValidationError("Only the scheduler can start a task")

        task = await get_owned_task(self.store, task_id, user_id)
        if task.status == TaskStatus.RUNNING.value:
            raise ConflictError("Cannot override a running task")

        retry = task.status == TaskStatus.FAILED.value and status == TaskStatus.QUEUED.value
        updated = await self.store.transition(
            task_id,
            status,
            expected=task.status,
            clear_error=retry,
        )
        if updated is None:
            raise ConflictError("Task status changed concurrently, try again")
        if retry:
            logger.info("task_requeued", task_id=str(task_id))
        return updated

    async def update_priority(self, task_id: uuid.UUID, user_id: uuid.UUID, priority: Any) -> SearchTask:
        priority = validate_priority(priority)
        await get_owned_task(self.store, task_id, user_id)
        return await self.store.update_fields(task_id, {"priority": priority})

    async def delete(self, task_id: uuid.UUID, user_id: uuid.UUID) -> None:
        task = await get_owned_task(self.store, task_id, user_id)
        if task.status != TaskStatus.QUEUED.value:
            raise ConflictError(f"Only queued tasks can be deleted (task is {task.status})")
        if not await self.store.delete(task_id, expected=TaskStatus.QUEUED.value):
            raise ConflictError("Task left the queue before it could be deleted")

    async def queue_stats(self, user_id: uuid.UUID) -> dict[str, int]:
        counts = await self.store.status_counts(user_id)
        stats = {status: int(counts.get(status, 0)) for status in values(TaskStatus)}
        stats["total"] = sum(stats.values())
        return stats

