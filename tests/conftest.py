"""
Shared test fixtures.
Async tests run against an in-memory SQLite database built from the ORM
metadata; external collaborators are stubbed.
"""

import uuid
from datetime import date, datetime
from typing import Optional

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet

from landman.credentials import CredentialResolver, encrypt_password
from landman.models.database import Database
from landman.models.tables import (
    DocumentReview,
    Portal,
    PortalCredential,
    SearchResult,
    SearchTask,
)

ORG_ID = uuid.UUID("00000000-0000-0000-0000-00000000000a")
OWNER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")


class Factory:
    """Inserts rows directly, one committed session per call."""

    def __init__(self, db: Database, fernet: Fernet):
        self.db = db
        self.fernet = fernet
        self._portals = 0

    async def _add(self, row):
        async with self.db.session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
        return row

    async def portal(self, is_active: bool = True) -> Portal:
        self._portals += 1
        return await self._add(Portal(
            name=f"County Records {self._portals}",
            slug=f"county-{self._portals}",
            url=f"https://records.county{self._portals}.example",
            is_active=is_active,
        ))

    async def credential(
        self,
        user_id: uuid.UUID,
        portal: Portal,
        password: str = "hunter2",
        is_active: bool = True,
        fernet: Optional[Fernet] = None,
    ) -> PortalCredential:
        return await self._add(PortalCredential(
            user_id=user_id,
            portal_id=portal.id,
            username="landman",
            encrypted_password=encrypt_password(fernet or self.fernet, password),
            is_active=is_active,
        ))

    async def task(
        self,
        user_id: uuid.UUID,
        portal: Portal,
        priority: int = 5,
        status: str = "queued",
        created_at: Optional[datetime] = None,
        **fields,
    ) -> SearchTask:
        values = {
            "organization_id": ORG_ID,
            "user_id": user_id,
            "portal_id": portal.id,
            "county_id": 48001,
            "party_name": "Acme Oil LLC",
            "party_role": "both",
            "date_from": date(2010, 1, 1),
            "date_to": date(2020, 12, 31),
            "priority": priority,
            "status": status,
        }
        if created_at is not None:
            values["created_at"] = created_at
        values.update(fields)
        return await self._add(SearchTask(**values))

    async def result(self, task: SearchTask, document_number: str, **fields) -> SearchResult:
        values = {
            "search_task_id": task.id,
            "document_number": document_number,
            "recording_date": date(2015, 6, 1),
            "grantor": "Acme Oil LLC",
            "grantee": "Jane Smith",
            "document_type": "Warranty Deed",
            "portal_url": f"https://records.example/doc/{document_number}",
        }
        values.update(fields)
        return await self._add(SearchResult(**values))

    async def review(self, result: SearchResult, user_id: uuid.UUID, **fields) -> DocumentReview:
        return await self._add(DocumentReview(search_result_id=result.id, user_id=user_id, **fields))


@pytest_asyncio.fixture
async def db():
    database = Database("sqlite+aiosqlite:///:memory:")
    await database.create_all()
    yield database
    await database.close()


@pytest.fixture
def fernet():
    return Fernet(Fernet.generate_key())


@pytest.fixture
def factory(db, fernet):
    return Factory(db, fernet)


@pytest.fixture
def resolver(db, fernet):
    return CredentialResolver(db.session_factory, fernet)


class FakeJobQueue:
    """Records enqueued jobs instead of talking to Redis."""

    def __init__(self):
        self.assessments = []
        self.downloads = []

    def enqueue_assessment(self, review_ids, criteria) -> str:
        self.assessments.append((list(review_ids), criteria))
        return f"assessment-{len(self.assessments)}"

    def enqueue_downloads(self, task_id) -> str:
        self.downloads.append(task_id)
        return f"downloads-{len(self.downloads)}"


@pytest.fixture
def jobs():
    return FakeJobQueue()


@pytest.fixture
def owner_id():
    return OWNER_ID


@pytest.fixture
def other_user_id():
    return OTHER_USER_ID
