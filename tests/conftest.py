import os
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from jobcore.config.settings import Settings, StoreBackend
from jobcore.main import create_app
from jobcore.v1.core.registries import PublisherRegistry
from jobcore.v1.jobs.models import TargetKind
from jobcore.v1.jobs.store import InMemoryJobStore
from jobcore.v1.orchestrators.actions import (
    CmsPublisher,
    HttpSearchEnginePinger,
    HttpTranslator,
    WebhookPublisher,
)
from jobcore.v1.orchestrators.context import JobContext
from jobcore.v1.webhooks.dispatcher import WebhookDispatcher

CRON_SECRET = "test-cron-secret"
SYNC_SECRET = "test-sync-secret"
PAYMENT_SECRET = "test-payment-secret"
WORKER_ID = "worker-test"

TRANSLATOR_URL = "http://translator.test/translate"
CMS_URL = "http://cms.test/publish"
PING_URL = "http://search.test/ping?sitemap={url}"


class FrozenClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime.now(UTC).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class HttpRouter:
    """``httpx.MockTransport`` handler with per-URL scripted responses.

    Each URL holds a queue of entries: a status code, a ``(status, body)``
    tuple or an ``httpx`` exception class. The last entry repeats once the
    queue is down to it. Unscripted URLs answer 200 with an empty object.
    """

    def __init__(self):
        self.routes: dict[str, list] = {}
        self.requests: list[httpx.Request] = []

    def script(self, url: str, *entries) -> None:
        self.routes[url] = list(entries)

    def requests_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url).startswith(url)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(str(request.url))
        if not queue:
            return httpx.Response(200, json={})
        entry = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(entry, type) and issubclass(entry, Exception):
            raise entry("simulated failure", request=request)
        if isinstance(entry, tuple):
            status, body = entry
            if isinstance(body, dict):
                return httpx.Response(status, json=body)
            return httpx.Response(status, text=body)
        return httpx.Response(entry, text="")


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def test_settings():
    return Settings(
        environment="test",
        store_backend=StoreBackend.MEMORY,
        cron_secret=CRON_SECRET,
        sync_webhook_secret=SYNC_SECRET,
        payment_webhook_secret=PAYMENT_SECRET,
        webhook_dispatch_base_delay_s=0,
        translation_backend_url=TRANSLATOR_URL,
        cms_publish_url=CMS_URL,
        search_engine_ping_urls=[PING_URL],
    )


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def http_router():
    return HttpRouter()


@pytest.fixture
def http_client(http_router):
    return httpx.AsyncClient(transport=httpx.MockTransport(http_router))


@pytest.fixture
def job_context(test_settings, store, clock, http_client):
    """Job context wired to the in-memory store and the scripted transport."""
    dispatcher = WebhookDispatcher.from_settings(http_client, test_settings)
    publishers = PublisherRegistry()
    publishers.register(TargetKind.INTERNAL.value, CmsPublisher(http_client, CMS_URL))
    publishers.register(TargetKind.EXTERNAL.value, WebhookPublisher(dispatcher, store, clock))
    return JobContext(
        settings=test_settings,
        store=store,
        dispatcher=dispatcher,
        clock=clock,
        worker_id=WORKER_ID,
        translator=HttpTranslator(http_client, TRANSLATOR_URL),
        publishers=publishers,
        notifier=HttpSearchEnginePinger(http_client, [PING_URL]),
        http_client=http_client,
    )


@pytest.fixture
def app(job_context):
    return create_app(context=job_context)


@pytest.fixture
def client(app):
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def postgres_url():
    """PostgreSQL URL for store tests, skipped when none is configured."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url or "postgresql" not in database_url:
        pytest.skip("DATABASE_URL does not point at PostgreSQL")
    return database_url
