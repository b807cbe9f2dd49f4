from typing import Any, Generic, Protocol, TypeVar

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def has(self, name: str) -> bool:
        return name in self._implementations

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Webhook handler registry - inbound events by type
class WebhookEventHandler(Protocol):
    """Protocol for handlers of verified inbound webhook events."""

    async def handle(self, event: Any) -> None:
        """Act on a ``WebhookEvent`` that passed every receiver check."""
        ...


class WebhookHandlerRegistry(Registry[WebhookEventHandler]):
    """Registry for inbound webhook handlers, keyed by event type."""

    def __init__(self):
        super().__init__("WebhookHandler")


# Publisher registry - scheduled-publish targets
class Publisher(Protocol):
    """Protocol for publishing one article for a claimed job."""

    async def publish(self, job: Any) -> dict[str, Any]:
        """
        Publish the article referenced by ``job.payload``.

        Must be idempotent: publishing an already published article
        succeeds without side effects.

        Returns a result dictionary stored on the completed job, e.g.
        {"url": "https://...", "external_id": "..."}
        """
        ...


class PublisherRegistry(Registry[Publisher]):
    """Registry for publishers (internal, external)."""

    def __init__(self):
        super().__init__("Publisher")


# Global registry instances (singletons)
webhook_handler_registry = WebhookHandlerRegistry()
