"""
Registers the default inbound webhook handlers.
"""

from jobcore.config.logging import get_logger
from jobcore.v1.core.registries import webhook_handler_registry
from jobcore.v1.webhooks.handlers import ContentEventHandler, LoggingEventHandler
from jobcore.v1.webhooks.schemas import ContentEventType, PaymentEventType

logger = get_logger(__name__)


def register_webhook_handlers() -> None:
    """Register a handler for every event type the receivers accept."""

    content_handler = ContentEventHandler()
    for event_type in ContentEventType:
        if not webhook_handler_registry.has(event_type.value):
            webhook_handler_registry.register(event_type.value, content_handler)

    payment_handler = LoggingEventHandler("payment")
    for event_type in PaymentEventType:
        if not webhook_handler_registry.has(event_type.value):
            webhook_handler_registry.register(event_type.value, payment_handler)

    logger.info(
        "Webhook handlers registered",
        registered_handlers=webhook_handler_registry.list(),
    )
