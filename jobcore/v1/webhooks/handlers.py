"""
Default handlers for verified inbound webhook events.

Domain handlers (content import, billing) replace these through the
webhook handler registry; the defaults acknowledge and record the event.
"""

from jobcore.config.logging import get_logger
from jobcore.v1.webhooks.schemas import WebhookEvent

logger = get_logger(__name__)


class LoggingEventHandler:
    """Acknowledge an event by logging it."""

    def __init__(self, source: str):
        self.source = source

    async def handle(self, event: WebhookEvent) -> None:
        logger.info(
            "Webhook event received",
            source=self.source,
            event_type=event.type,
            event_timestamp=event.timestamp,
            data_keys=sorted(event.data.keys()),
        )


class ContentEventHandler(LoggingEventHandler):
    """Content-sync events must reference the article they describe."""

    def __init__(self):
        super().__init__("content-sync")

    async def handle(self, event: WebhookEvent) -> None:
        article_id = event.data.get("article_id") or event.data.get("id")
        if not article_id:
            raise ValueError(f"{event.type} event without article id")
        await super().handle(event)
