"""
Tests for SearchTaskStore transitions and claiming.
"""

import pytest
from sqlalchemy import select

from landman.errors import ValidationError
from landman.models.tables import DocumentReview, SearchResult
from landman.stores.tasks import SearchTaskStore


class TestTransition:
    """Timestamp rules owned by transition()."""

    @pytest.mark.asyncio
    async def test_running_stamps_started_at(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)
        assert task.started_at is None

        async with db.session_factory() as session:
            updated = await SearchTaskStore(session).transition(task.id, "running")
            await session.commit()

        assert updated.status == "running"
        assert updated.started_at is not None
        assert updated.completed_at is None

    @pytest.mark.asyncio
    async def test_completed_at_only_while_completed(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)

        async with db.session_factory() as session:
            store = SearchTaskStore(session)
            await store.transition(task.id, "running")
            done = await store.transition(task.id, "completed")
            assert done.completed_at is not None

            reopened = await store.transition(task.id, "queued")
            assert reopened.completed_at is None
            # started_at survives leaving running
            assert reopened.started_at is not None

    @pytest.mark.asyncio
    async def test_invalid_status_rejected(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)

        async with db.session_factory() as session:
            with pytest.raises(ValidationError):
                await SearchTaskStore(session).transition(task.id, "archived")

    @pytest.mark.asyncio
    async def test_expected_status_is_compare_and_swap(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal, status="paused")

        async with db.session_factory() as session:
            store = SearchTaskStore(session)
            assert await store.transition(task.id, "running", expected="queued") is None
            assert (await store.get(task.id)).status == "paused"

    @pytest.mark.asyncio
    async def test_error_message_set_and_cleared(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal, status="running")

        async with db.session_factory() as session:
            store = SearchTaskStore(session)
            failed = await store.transition(task.id, "failed", error_message="portal down")
            assert failed.error_message == "portal down"
            requeued = await store.transition(task.id, "queued", clear_error=True)
            assert requeued.error_message is None


class TestClaim:

    @pytest.mark.asyncio
    async def test_second_claim_loses(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)

        async with db.session_factory() as first:
            assert (await SearchTaskStore(first).claim(task.id)).status == "running"
            await first.commit()

        async with db.session_factory() as second:
            assert await SearchTaskStore(second).claim(task.id) is None


class TestUpdateFields:

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)

        async with db.session_factory() as session:
            with pytest.raises(ValidationError):
                await SearchTaskStore(session).update_fields(task.id, {"status": "completed"})

    @pytest.mark.asyncio
    async def test_frozen_status_leaves_row_untouched(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal, status="completed", notes="original")

        async with db.session_factory() as session:
            updated = await SearchTaskStore(session).update_fields(
                task.id, {"notes": "late edit"}, frozen_statuses=["completed", "failed"]
            )
            assert updated is None
            await session.commit()

        async with db.session_factory() as session:
            assert (await SearchTaskStore(session).get(task.id)).notes == "original"


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_cascades_to_results_and_reviews(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)
        result = await factory.result(task, "2015-0001")
        await factory.review(result, owner_id)

        async with db.session_factory() as session:
            assert await SearchTaskStore(session).delete(task.id) is True
            await session.commit()

        async with db.session_factory() as session:
            assert (await session.execute(select(SearchResult))).first() is None
            assert (await session.execute(select(DocumentReview))).first() is None
            assert await SearchTaskStore(session).get(task.id) is None

    @pytest.mark.asyncio
    async def test_expected_status_guards_delete(self, db, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal, status="running")
        result = await factory.result(task, "2015-0001")
        await factory.review(result, owner_id)

        async with db.session_factory() as session:
            assert await SearchTaskStore(session).delete(task.id, expected="queued") is False
            await session.commit()

        async with db.session_factory() as session:
            assert (await SearchTaskStore(session).get(task.id)).status == "running"
            assert (await session.execute(select(SearchResult))).first() is not None
            assert (await session.execute(select(DocumentReview))).first() is not None
