"""
Outbound webhook delivery.

Each call signs the body, posts it and retries server errors, timeouts and
connection failures a bounded number of times with a linearly growing
delay. Client errors (4xx) are returned immediately.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from jobcore.config.logging import get_logger
from jobcore.config.settings import Settings
from jobcore.v1.webhooks.signing import signature_headers

logger = get_logger(__name__)

ERROR_SNIPPET_CHARS = 200
LOG_SNIPPET_CHARS = 1000


class DispatchErrorKind(str, Enum):
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    NETWORK = "network"


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    status_code: int | None = None
    body_snippet: str | None = None
    error: str | None = None
    error_kind: DispatchErrorKind | None = None
    duration_ms: int = 0
    attempts: int = 0

    @property
    def retryable(self) -> bool:
        return not self.success and self.error_kind != DispatchErrorKind.CLIENT_ERROR


class WebhookDispatcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        max_attempts: int = 3,
        base_delay_s: float = 1.0,
        default_timeout_s: float = 30.0,
        user_agent: str = "JobCore-Webhook/1.0",
    ):
        self.client = client
        self.max_attempts = max(1, max_attempts)
        self.base_delay_s = base_delay_s
        self.default_timeout_s = default_timeout_s
        self.user_agent = user_agent

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: Settings) -> "WebhookDispatcher":
        return cls(
            client,
            max_attempts=settings.webhook_dispatch_attempts,
            base_delay_s=settings.webhook_dispatch_base_delay_s,
            default_timeout_s=settings.webhook_timeout_s,
            user_agent=settings.webhook_user_agent,
        )

    async def send(
        self,
        url: str,
        secret: str | None,
        payload: dict[str, Any],
        timeout_s: float | None = None,
    ) -> DispatchResult:
        body = json.dumps(payload, separators=(",", ":"), default=str)
        timeout = timeout_s or self.default_timeout_s
        started = time.monotonic()

        if not secret:
            logger.warning("Sending unsigned webhook, no secret configured", url=url)

        result = DispatchResult(success=False)
        for attempt in range(1, self.max_attempts + 1):
            # Signed per attempt so the timestamp stays inside the receiver's window
            headers = {
                "Content-Type": "application/json",
                "User-Agent": self.user_agent,
                **signature_headers(secret, body),
            }
            result = await self._attempt(url, body, headers, timeout, attempt, started)
            if result.success or not result.retryable:
                break
            if attempt < self.max_attempts:
                delay = self.base_delay_s * attempt
                logger.warning(
                    "Webhook attempt failed, retrying",
                    url=url,
                    attempt=attempt,
                    delay_s=delay,
                    error=result.error,
                )
                await asyncio.sleep(delay)

        log = logger.info if result.success else logger.warning
        log(
            "Webhook delivered" if result.success else "Webhook delivery failed",
            url=url,
            status_code=result.status_code,
            attempts=result.attempts,
            duration_ms=result.duration_ms,
            error=result.error,
        )
        return result

    async def _attempt(
        self,
        url: str,
        body: str,
        headers: dict[str, str],
        timeout: float,
        attempt: int,
        started: float,
    ) -> DispatchResult:
        try:
            response = await self.client.post(url, content=body, headers=headers, timeout=timeout)
        except httpx.TimeoutException:
            return DispatchResult(
                success=False,
                error=f"Request timed out after {timeout}s",
                error_kind=DispatchErrorKind.TIMEOUT,
                duration_ms=_elapsed_ms(started),
                attempts=attempt,
            )
        except httpx.HTTPError as exc:
            return DispatchResult(
                success=False,
                error=f"Network error: {exc}",
                error_kind=DispatchErrorKind.NETWORK,
                duration_ms=_elapsed_ms(started),
                attempts=attempt,
            )

        text = response.text
        if response.is_success:
            return DispatchResult(
                success=True,
                status_code=response.status_code,
                body_snippet=text[:LOG_SNIPPET_CHARS],
                duration_ms=_elapsed_ms(started),
                attempts=attempt,
            )

        # Only 5xx is worth repeating; redirects and 4xx will not change
        kind = (
            DispatchErrorKind.SERVER_ERROR
            if response.status_code >= 500
            else DispatchErrorKind.CLIENT_ERROR
        )
        return DispatchResult(
            success=False,
            status_code=response.status_code,
            body_snippet=text[:LOG_SNIPPET_CHARS],
            error=f"HTTP {response.status_code}: {text[:ERROR_SNIPPET_CHARS]}",
            error_kind=kind,
            duration_ms=_elapsed_ms(started),
            attempts=attempt,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
