"""
HTTP-level tests: routing, caller identity headers and the error mapping.
The app is built with the test database and a fake job queue injected on
app.state, since the ASGI transport does not run the lifespan.
"""

import uuid

import httpx
import pytest
import pytest_asyncio

from landman.config import Settings
from landman.main import create_app

ORG_ID = "00000000-0000-0000-0000-00000000000a"
HEADERS = {"X-User-Id": "00000000-0000-0000-0000-000000000001", "X-Organization-Id": ORG_ID}
OTHER_HEADERS = {"X-User-Id": "00000000-0000-0000-0000-000000000002", "X-Organization-Id": ORG_ID}


@pytest_asyncio.fixture
async def client(db, jobs):
    app = create_app(Settings(PROMETHEUS_ENABLED=False), db=db, jobs=jobs)
    app.state.db = db
    app.state.jobs = jobs
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _task_body(portal_id, **overrides):
    body = {
        "portal_id": str(portal_id),
        "county_id": 48001,
        "party_name": "Acme Oil LLC",
        "date_from": "2010-01-01",
        "date_to": "2020-12-31",
    }
    body.update(overrides)
    return body


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestTaskRoutes:

    @pytest.mark.asyncio
    async def test_create_then_fetch(self, client, factory):
        portal = await factory.portal()

        created = await client.post("/api/v1/tasks", json=_task_body(portal.id, priority=2), headers=HEADERS)
        assert created.status_code == 201
        task = created.json()
        assert task["status"] == "queued"
        assert task["priority"] == 2

        fetched = await client.get(f"/api/v1/tasks/{task['id']}", headers=HEADERS)
        assert fetched.status_code == 200
        assert fetched.json()["party_name"] == "Acme Oil LLC"

    @pytest.mark.asyncio
    async def test_missing_identity_header(self, client):
        response = await client.get("/api/v1/tasks", headers={"X-Organization-Id": ORG_ID})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_reversed_dates_map_to_400(self, client, factory):
        portal = await factory.portal()
        response = await client.post(
            "/api/v1/tasks",
            json=_task_body(portal.id, date_from="2021-01-01", date_to="2020-01-01"),
            headers=HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "ERR_VALIDATION"

    @pytest.mark.asyncio
    async def test_error_status_mapping(self, client, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal, status="completed")

        missing = await client.get(f"/api/v1/tasks/{uuid.uuid4()}", headers=HEADERS)
        foreign = await client.get(f"/api/v1/tasks/{task.id}", headers=OTHER_HEADERS)
        frozen = await client.patch(f"/api/v1/tasks/{task.id}", json={"notes": "x"}, headers=HEADERS)

        assert missing.status_code == 404
        assert foreign.status_code == 403
        assert frozen.status_code == 409

    @pytest.mark.asyncio
    async def test_status_and_delete(self, client, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal)

        paused = await client.put(f"/api/v1/tasks/{task.id}/status", json={"status": "paused"}, headers=HEADERS)
        assert paused.json()["status"] == "paused"

        refused = await client.delete(f"/api/v1/tasks/{task.id}", headers=HEADERS)
        assert refused.status_code == 409

        await client.put(f"/api/v1/tasks/{task.id}/status", json={"status": "queued"}, headers=HEADERS)
        deleted = await client.delete(f"/api/v1/tasks/{task.id}", headers=HEADERS)
        assert deleted.status_code == 204

        stats = await client.get("/api/v1/tasks/stats", headers=HEADERS)
        assert stats.json()["total"] == 0


class TestReviewFlow:

    @pytest.mark.asyncio
    async def test_upload_analyze_decide_download(self, client, factory, jobs, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal, status="completed")

        uploaded = await client.post(
            f"/api/v1/tasks/{task.id}/results/upload",
            files={"file": ("results.csv", b"document_number,grantor\nU-1,Acme\nU-2,Acme\n", "text/csv")},
            headers=HEADERS,
        )
        assert uploaded.status_code == 201
        assert uploaded.json()["documents_created"] == 2
        result_ids = [d["id"] for d in uploaded.json()["documents"]]

        analyze = await client.post(
            "/api/v1/documents/analyze",
            json={"document_ids": result_ids, "criteria": {"party_name": "Acme"}},
            headers=HEADERS,
        )
        assert analyze.status_code == 202
        assert analyze.json()["documents_queued"] == 2
        review_ids = [str(r) for r in jobs.assessments[0][0]]

        decided = await client.put(
            f"/api/v1/documents/reviews/{review_ids[0]}/decision",
            json={"decision": "approved"},
            headers=HEADERS,
        )
        assert decided.status_code == 200
        assert decided.json()["marked_for_download"] is True

        started = await client.post(f"/api/v1/tasks/{task.id}/downloads", headers=HEADERS)
        assert started.status_code == 202
        assert started.json()["documents_to_download"] == 1
        assert jobs.downloads == [task.id]

        status = await client.get(f"/api/v1/tasks/{task.id}/downloads", headers=HEADERS)
        assert status.json()["status"] == "in_progress"
        assert status.json()["total_marked"] == 1

    @pytest.mark.asyncio
    async def test_download_without_marks_is_400(self, client, factory, owner_id):
        portal = await factory.portal()
        task = await factory.task(owner_id, portal, status="completed")

        response = await client.post(f"/api/v1/tasks/{task.id}/downloads", headers=HEADERS)

        assert response.status_code == 400
