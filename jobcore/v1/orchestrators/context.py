"""
Everything an orchestrator run needs, passed in explicitly.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from jobcore.config.settings import Settings, StoreBackend
from jobcore.infra.database import Database
from jobcore.v1.core.registries import PublisherRegistry
from jobcore.v1.jobs.claim import make_worker_id
from jobcore.v1.jobs.models import TargetKind, utcnow
from jobcore.v1.jobs.sql_store import SqlJobStore
from jobcore.v1.jobs.store import InMemoryJobStore, JobStore
from jobcore.v1.orchestrators.actions import (
    CmsPublisher,
    HttpSearchEnginePinger,
    HttpTranslator,
    SearchEngineNotifier,
    Translator,
    WebhookPublisher,
)
from jobcore.v1.webhooks.dispatcher import WebhookDispatcher


@dataclass
class JobContext:
    settings: Settings
    store: JobStore
    dispatcher: WebhookDispatcher
    clock: Callable[[], datetime] = utcnow
    worker_id: str = field(default_factory=make_worker_id)
    translator: Translator | None = None
    publishers: PublisherRegistry = field(default_factory=PublisherRegistry)
    notifier: SearchEngineNotifier | None = None
    http_client: httpx.AsyncClient | None = None
    database: Database | None = None

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
        if self.database is not None:
            await self.database.close()


def build_context(settings: Settings) -> JobContext:
    """Wire the production collaborators described by ``settings``."""
    database = None
    if settings.store_backend == StoreBackend.SQL:
        database = Database(settings)
        store: JobStore = SqlJobStore(database)
    else:
        store = InMemoryJobStore()

    client = httpx.AsyncClient(timeout=settings.webhook_timeout_s)
    dispatcher = WebhookDispatcher.from_settings(client, settings)

    publishers = PublisherRegistry()
    publishers.register(
        TargetKind.INTERNAL.value,
        CmsPublisher(client, settings.cms_publish_url, settings.publish_timeout_s),
    )
    publishers.register(TargetKind.EXTERNAL.value, WebhookPublisher(dispatcher, store))
    if settings.environment != "development":
        publishers.freeze()

    return JobContext(
        settings=settings,
        store=store,
        dispatcher=dispatcher,
        translator=HttpTranslator(
            client, settings.translation_backend_url, settings.translation_timeout_s
        ),
        publishers=publishers,
        notifier=HttpSearchEnginePinger(client, settings.search_engine_ping_urls),
        http_client=client,
        database=database,
    )
