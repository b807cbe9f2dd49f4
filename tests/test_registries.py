from typing import Any

import pytest

from jobcore.v1.core.registries import (
    PublisherRegistry,
    Registry,
    WebhookHandlerRegistry,
    webhook_handler_registry,
)
from jobcore.v1.webhooks.handlers import ContentEventHandler, LoggingEventHandler
from jobcore.v1.webhooks.registry_init import register_webhook_handlers
from jobcore.v1.webhooks.schemas import WebhookEvent


class MockPublisher:
    async def publish(self, job: Any) -> dict[str, Any]:
        return {"url": "https://example.test/article"}


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    # Test empty registry
    assert registry.list() == []

    # Test register and get
    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.has("test_impl")
    assert registry.list() == ["test_impl"]

    # Test KeyError for missing implementation
    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_freeze():
    registry = PublisherRegistry()
    registry.register("internal", MockPublisher())
    registry.freeze()

    assert registry.is_frozen()
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("external", MockPublisher())
    assert registry.list() == ["internal"]


def test_registration_replaces_existing():
    registry = PublisherRegistry()
    first, second = MockPublisher(), MockPublisher()
    registry.register("internal", first)
    registry.register("internal", second)
    assert registry.get("internal") is second


def test_default_webhook_handlers_registered():
    if not webhook_handler_registry.is_frozen():
        register_webhook_handlers()

    assert isinstance(webhook_handler_registry.get("article.created"), ContentEventHandler)
    assert isinstance(webhook_handler_registry.get("payment.success"), LoggingEventHandler)


def test_webhook_handler_registry_is_separate():
    registry = WebhookHandlerRegistry()
    assert registry.name == "WebhookHandler"
    assert registry.list() == []


@pytest.mark.asyncio
async def test_content_handler_requires_article_id():
    handler = ContentEventHandler()
    event = WebhookEvent(type="article.updated", data={"title": "x"}, timestamp="now")

    with pytest.raises(ValueError, match="without article id"):
        await handler.handle(event)

    await handler.handle(
        WebhookEvent(type="article.updated", data={"id": "a1"}, timestamp="now")
    )
