import asyncio
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from jobcore.main import create_app
from jobcore.v1.jobs.models import JobKind, JobStatus
from jobcore.v1.jobs.schemas import JobRecord
from jobcore.v1.orchestrators.context import JobContext


class TestCronAuth:
    def test_missing_token_rejected(self, client):
        response = client.post("/v1/cron/translation")
        assert response.status_code == 401
        body = response.json()
        assert body["ok"] is False
        assert body["error"]["message"] == "Invalid or missing bearer token"

    def test_wrong_token_rejected(self, client):
        response = client.post(
            "/v1/cron/translation", headers={"Authorization": "Bearer wrong"}
        )
        assert response.status_code == 401

    def test_empty_secret_rejects_everything(self, job_context):
        settings = job_context.settings.model_copy(update={"cron_secret": ""})
        context = JobContext(
            settings=settings, store=job_context.store, dispatcher=job_context.dispatcher
        )
        client = TestClient(create_app(context=context))

        response = client.post("/v1/cron/translation", headers={"Authorization": "Bearer "})

        assert response.status_code == 401


def test_unknown_orchestrator(client, auth_headers):
    response = client.post("/v1/cron/reindex", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["error"]["details"]["available"] == [
        "scheduled-publish",
        "sync",
        "translation",
    ]


@pytest.mark.parametrize("method", ["GET", "POST"])
def test_run_with_nothing_to_do(client, auth_headers, method):
    response = client.request(method, "/v1/cron/sync", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["kind"] == "sync"
    assert body["processed"] == 0
    assert body["worker_id"] == "worker-test"


def test_translation_run_processes_jobs(client, auth_headers, store, http_router):
    job = JobRecord(
        kind=JobKind.TRANSLATION, payload={"article_id": "a1"}, target_languages=["fr", "de"]
    )
    asyncio.run(store.insert_job(job))

    response = client.post("/v1/cron/translation", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["completed"] == 1
    assert body["details"] == [
        {"job_id": str(job.id), "outcome": "completed", "article_id": "a1"}
    ]
    assert len(http_router.requests_to("http://translator.test")) == 2
    assert asyncio.run(store.get_job(job.id)).status == JobStatus.COMPLETED


def test_failed_run_returns_500(client, auth_headers, store):
    with patch.object(store, "select_candidates", side_effect=RuntimeError("database is down")):
        response = client.post("/v1/cron/scheduled-publish", headers=auth_headers)

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert "database is down" in body["error"]
