import asyncio
from unittest.mock import patch

from jobcore.v1.jobs.models import JobKind, JobStatus
from jobcore.v1.jobs.schemas import JobRecord


def test_healthz_endpoint(client):
    """Test the health check endpoint returns correct response."""
    response = client.get("/v1/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    health = data["data"]
    assert health["ok"] is True
    assert health["version"] == "1.0.0"
    assert health["environment"] == "test"
    assert health["store"]["connected"] is True
    assert health["store"]["backend"] == "memory"
    assert health["queue"] == {"pending": 0, "processing": 0, "retrying": 0, "failed": 0}


def test_healthz_needs_no_token(client):
    assert client.get("/v1/healthz").status_code == 200


def test_healthz_counts_queue(client, store):
    for status in (JobStatus.PENDING, JobStatus.PENDING, JobStatus.FAILED, JobStatus.COMPLETED):
        asyncio.run(store.insert_job(JobRecord(kind=JobKind.SYNC, status=status)))

    queue = client.get("/v1/healthz").json()["data"]["queue"]

    assert queue == {"pending": 2, "processing": 0, "retrying": 0, "failed": 1}


def test_healthz_reports_store_down(client, store):
    with patch.object(store, "ping", side_effect=ConnectionError("connection refused")):
        response = client.get("/v1/healthz")

    health = response.json()["data"]
    assert health["ok"] is False
    assert health["store"]["connected"] is False
    assert health["store"]["error"] == "connection refused"
    assert health["queue"] is None


def test_request_id_is_echoed(client):
    response = client.get("/v1/healthz", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_request_id_is_generated(client):
    assert client.get("/v1/healthz").headers["X-Request-ID"]
