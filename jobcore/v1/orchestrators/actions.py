"""
Domain actions invoked from inside a claimed job.

The orchestrators only see the protocols below. The HTTP implementations
call the services that own translation, CMS publishing and search-engine
notification, and turn their failures into job core exceptions so the
retry scheduler can classify them.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol
from urllib.parse import quote
from uuid import UUID

import httpx

from jobcore.config.logging import get_logger
from jobcore.v1.core.exceptions import (
    DeliveryTimeout,
    NetworkError,
    RemoteClientError,
    RemoteServerError,
    ValidationError,
    error_for_status,
)
from jobcore.v1.jobs.models import DeliveryStatus, utcnow
from jobcore.v1.jobs.schemas import DeliveryLogRecord, DestinationRecord, JobRecord
from jobcore.v1.jobs.store import JobStore
from jobcore.v1.webhooks.dispatcher import DispatchErrorKind, DispatchResult, WebhookDispatcher
from jobcore.v1.webhooks.schemas import ContentEventType

logger = get_logger(__name__)


class Translator(Protocol):
    async def translate(self, job: JobRecord, language: str) -> dict[str, Any]:
        """Translate the job's article into ``language``.

        Must upsert by (article, language) so a repeated call after a
        crash does not create a second translation.
        """
        ...


class SearchEngineNotifier(Protocol):
    async def notify(self, url: str) -> None:
        ...


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    body: dict[str, Any],
    timeout: float,
    service: str,
) -> dict[str, Any]:
    """POST ``body`` and return the decoded JSON response."""
    try:
        response = await client.post(url, json=body, timeout=timeout)
    except httpx.TimeoutException as exc:
        raise DeliveryTimeout(f"{service} timed out after {timeout}s") from exc
    except httpx.HTTPError as exc:
        raise NetworkError(f"{service} unreachable: {exc}") from exc

    if not response.is_success:
        raise error_for_status(response.status_code, response.text, service)
    if not response.content:
        return {}
    try:
        decoded = response.json()
    except ValueError:
        return {"response": response.text[:1000]}
    return decoded if isinstance(decoded, dict) else {"response": decoded}


def raise_for_dispatch(result: DispatchResult, service: str) -> None:
    """Raise the exception matching a failed webhook dispatch."""
    if result.success:
        return
    message = f"{service}: {result.error}"
    if result.error_kind == DispatchErrorKind.CLIENT_ERROR:
        raise RemoteClientError(message, result.status_code or 0)
    if result.error_kind == DispatchErrorKind.SERVER_ERROR:
        raise RemoteServerError(message, result.status_code or 0)
    if result.error_kind == DispatchErrorKind.TIMEOUT:
        raise DeliveryTimeout(message)
    raise NetworkError(message)


class HttpTranslator:
    """Calls the translation backend once per (article, language)."""

    def __init__(self, client: httpx.AsyncClient, url: str, timeout: float = 120.0):
        self.client = client
        self.url = url
        self.timeout = timeout

    async def translate(self, job: JobRecord, language: str) -> dict[str, Any]:
        if not self.url:
            raise ValidationError("Translation backend URL is not configured")
        return await post_json(
            self.client,
            self.url,
            {
                "job_id": str(job.id),
                "article_id": job.payload.get("article_id"),
                "website_id": job.payload.get("website_id"),
                "source_language": job.payload.get("source_language"),
                "target_language": language,
            },
            self.timeout,
            "Translation backend",
        )


class CmsPublisher:
    """Publishes to an internal site through the CMS publish endpoint."""

    def __init__(self, client: httpx.AsyncClient, url: str, timeout: float = 30.0):
        self.client = client
        self.url = url
        self.timeout = timeout

    async def publish(self, job: JobRecord) -> dict[str, Any]:
        if not self.url:
            raise ValidationError("CMS publish URL is not configured")
        return await post_json(
            self.client,
            self.url,
            {
                "job_id": str(job.id),
                "article_id": job.payload.get("article_id"),
                "website_id": job.payload.get("website_id"),
            },
            self.timeout,
            "CMS publisher",
        )


class WebhookPublisher:
    """Publishes to an external site by sending it a signed article event.

    Each attempt is recorded as the job's delivery log for the destination
    and mirrored onto the destination's last-sync fields, the same way
    sync fan-out reports its deliveries.
    """

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        store: JobStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.dispatcher = dispatcher
        self.store = store
        self.clock = clock

    async def publish(self, job: JobRecord) -> dict[str, Any]:
        raw_id = job.payload.get("destination_id")
        try:
            destination_id = UUID(str(raw_id))
        except ValueError:
            raise ValidationError(f"Invalid destination id: {raw_id}") from None

        destination = await self.store.get_destination(destination_id)
        if destination is None or not destination.webhook_url:
            raise ValidationError(
                "Destination not found or has no webhook URL",
                {"destination_id": str(destination_id)},
            )

        started = self.clock()
        event = {
            "type": ContentEventType.ARTICLE_CREATED.value,
            "data": {
                "article_id": job.payload.get("article_id"),
                "website_id": job.payload.get("website_id"),
                **job.payload.get("article", {}),
            },
            "timestamp": started.isoformat(),
        }
        result = await self.dispatcher.send(
            destination.webhook_url, destination.webhook_secret, event
        )
        await self._record(job, destination, result, started)
        raise_for_dispatch(result, f"Destination {destination.name}")
        return {
            "destination_id": str(destination.id),
            "status_code": result.status_code,
            "attempts": result.attempts,
        }

    async def _record(
        self,
        job: JobRecord,
        destination: DestinationRecord,
        result: DispatchResult,
        started: datetime,
    ) -> None:
        now = self.clock()
        previous = {
            log.destination_id: log for log in await self.store.get_delivery_logs(job.id)
        }.get(destination.id)
        retry_count = previous.retry_count if previous else 0
        if result.success:
            status = DeliveryStatus.SUCCESS
        else:
            retry_count += 1
            status = DeliveryStatus.RETRYING if result.retryable else DeliveryStatus.FAILED

        await self.store.upsert_delivery_log(
            DeliveryLogRecord(
                job_id=job.id,
                destination_id=destination.id,
                status=status,
                response_status=result.status_code,
                response_body_snippet=result.body_snippet,
                error_message=result.error,
                retry_count=retry_count,
                duration_ms=result.duration_ms,
                started_at=started,
                completed_at=now if status != DeliveryStatus.RETRYING else None,
            )
        )
        await self.store.update_destination(
            destination.id,
            {
                "last_synced_at": now,
                "last_sync_status": status.value,
                "last_sync_error": result.error,
            },
        )


class HttpSearchEnginePinger:
    """Pings search engines that a URL changed. ``{url}`` in each ping
    endpoint is replaced by the quoted article URL. Endpoints are pinged
    concurrently; the first failure is raised once all have answered."""

    def __init__(self, client: httpx.AsyncClient, ping_urls: list[str], timeout: float = 10.0):
        self.client = client
        self.ping_urls = ping_urls
        self.timeout = timeout

    async def notify(self, url: str) -> None:
        quoted = quote(url, safe="")
        endpoints = [template.replace("{url}", quoted) for template in self.ping_urls]
        results = await asyncio.gather(
            *(self._ping(endpoint) for endpoint in endpoints), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _ping(self, endpoint: str) -> None:
        response = await self.client.get(endpoint, timeout=self.timeout)
        response.raise_for_status()
        logger.debug("Search engine pinged", endpoint=endpoint, status_code=response.status_code)
