import pytest
from fastapi.testclient import TestClient

from brandkb.api.deps import get_aggregator, get_enqueuer
from brandkb.config import Settings
from brandkb.jobs.store import JobStore
from brandkb.main import app
from brandkb.models import JobType
from brandkb.models.base import get_db


class StubAggregator:
    def __init__(self):
        self.settings = Settings(default_connectors="semrush,serpapi")
        self.calls = []

    def run(self, session, brand_id, names, ctx):
        self.calls.append((brand_id, names, ctx))
        return {
            "results": [{"connector": name, "success": True, "executionTimeMs": 1, "data": {}} for name in names],
            "processedData": {"topicsGenerated": 0, "competitorsAdded": 0, "errors": []},
            "summary": {"total": len(names), "successful": len(names), "failed": 0, "averageExecutionTimeMs": 1},
        }


@pytest.fixture
def enqueued():
    return []


@pytest.fixture
def aggregator():
    return StubAggregator()


@pytest.fixture
def client(session_factory, enqueued, aggregator):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_enqueuer] = lambda: enqueued.append
    app.dependency_overrides[get_aggregator] = lambda: aggregator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_submit_onboard_creates_pending_job_and_enqueues(client, brand, enqueued):
    response = client.post("/jobs/onboard", json={
        "brandId": brand.id,
        "payload": {"maxPages": 10, "respectRobots": True},
    })

    assert response.status_code == 201
    body = response.json()
    assert body["type"] == "onboard"
    assert body["status"] == "pending"
    assert body["priority"] == 5
    assert body["dependsOn"] == []
    assert enqueued == [body["id"]]


def test_submit_with_dependency_waits_for_the_dispatcher(client, brand, enqueued):
    first = client.post("/jobs/onboard", json={"brandId": brand.id}).json()

    response = client.post("/jobs/analyze", json={
        "brandId": brand.id,
        "payload": {"connectors": ["semrush"]},
        "dependsOn": [first["id"]],
    })

    assert response.status_code == 201
    assert response.json()["dependsOn"] == [first["id"]]
    assert enqueued == [first["id"]]


def test_submit_for_unknown_brand_is_404(client):
    response = client.post("/jobs/onboard", json={"brandId": "nope"})
    assert response.status_code == 404


def test_duplicate_idempotency_key_is_409(client, brand):
    request = {"brandId": brand.id, "idempotencyKey": "acme-onboard-1"}
    first = client.post("/jobs/onboard", json=request)
    second = client.post("/jobs/onboard", json=request)

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["detail"]["existingJobId"] == first.json()["id"]


def test_invalid_payload_is_422(client, brand, enqueued):
    response = client.post("/jobs/onboard", json={
        "brandId": brand.id,
        "payload": {"seedUrls": ["ftp://acme.test/"]},
    })
    assert response.status_code == 422
    assert enqueued == []


def test_priority_out_of_range_is_rejected(client, brand):
    response = client.post("/jobs/onboard", json={"brandId": brand.id, "priority": 0})
    assert response.status_code == 422


def test_get_list_and_logs(client, brand):
    created = client.post("/jobs/normalize", json={
        "brandId": brand.id,
        "payload": {"rawPageIds": [], "brandId": brand.id},
    }).json()

    fetched = client.get(f"/jobs/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == created["id"]

    listed = client.get("/jobs", params={"brandId": brand.id, "type": "normalize"})
    assert [job["id"] for job in listed.json()] == [created["id"]]
    assert client.get("/jobs", params={"status": "complete"}).json() == []

    logs = client.get(f"/jobs/{created['id']}/logs").json()
    assert logs[0]["message"] == "Job created"
    assert "createdAt" in logs[0]


def test_unknown_job_is_404(client):
    assert client.get("/jobs/missing").status_code == 404
    assert client.get("/jobs/missing/logs").status_code == 404
    assert client.post("/jobs/missing:cancel").status_code == 404


def test_stats(client, brand):
    client.post("/jobs/onboard", json={"brandId": brand.id})
    client.post("/jobs/analyze", json={"brandId": brand.id})

    stats = client.get("/jobs/stats", params={"brandId": brand.id}).json()

    assert stats["total"] == 2
    assert stats["byStatus"]["pending"] == 2
    assert stats["byType"] == {"onboard": 1, "normalize": 0, "analyze": 1}


def test_cancel_pending_job_fails_it(client, brand):
    created = client.post("/jobs/onboard", json={"brandId": brand.id}).json()

    response = client.post(f"/jobs/{created['id']}:cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["errorMessage"] == "Job cancelled"
    assert client.post(f"/jobs/{created['id']}:cancel").status_code == 409


def test_retry_failed_job(client, brand, db, enqueued):
    store = JobStore(db)
    job = store.create(brand.id, JobType.onboard, {})
    assert store.claim(job.id)
    store.fail(job.id, "boom")

    response = client.post(f"/jobs/{job.id}:retry")

    assert response.status_code == 201
    body = response.json()
    assert body["retriesFrom"] == job.id
    assert body["retryCount"] == 1
    assert body["status"] == "pending"
    assert enqueued == [body["id"]]


def test_retry_of_pending_job_is_409(client, brand):
    created = client.post("/jobs/onboard", json={"brandId": brand.id}).json()
    assert client.post(f"/jobs/{created['id']}:retry").status_code == 409


def test_aggregate_uses_default_connectors(client, brand, aggregator):
    response = client.post("/connectors:aggregate", json={"brandId": brand.id})

    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["total"] == 2
    brand_id, names, ctx = aggregator.calls[0]
    assert brand_id == brand.id
    assert names == ["semrush", "serpapi"]
    assert ctx.domain == "acme.test"
    assert ctx.competitors == ["rival.test"]


def test_aggregate_for_unknown_brand_is_404(client):
    response = client.post("/connectors:aggregate", json={"brandId": "nope", "connectors": ["semrush"]})
    assert response.status_code == 404
