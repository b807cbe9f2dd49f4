"""
Inbound webhook validation.

A request moves through signature, timestamp, JSON, shape and event-type
checks in that order; the first failing check decides the outcome. Only a
request passing all of them produces a ``WebhookEvent``.
"""

import json
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError as PydanticValidationError

from jobcore.config.logging import get_logger
from jobcore.config.settings import Settings
from jobcore.v1.core.exceptions import SignatureError
from jobcore.v1.webhooks import signing
from jobcore.v1.webhooks.schemas import WebhookEvent

logger = get_logger(__name__)


class ReceiveOutcome(str, Enum):
    ACCEPTED = "ACCEPTED"
    MISSING_SIGNATURE = "MISSING_SIGNATURE"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_JSON = "INVALID_JSON"
    INVALID_EVENT_FORMAT = "INVALID_EVENT_FORMAT"
    UNKNOWN_EVENT_TYPE = "UNKNOWN_EVENT_TYPE"


OUTCOME_STATUS = {
    ReceiveOutcome.ACCEPTED: 200,
    ReceiveOutcome.MISSING_SIGNATURE: 401,
    ReceiveOutcome.INVALID_SIGNATURE: 401,
    ReceiveOutcome.INVALID_JSON: 400,
    ReceiveOutcome.INVALID_EVENT_FORMAT: 400,
    ReceiveOutcome.UNKNOWN_EVENT_TYPE: 422,
}


@dataclass(frozen=True)
class ReceiveResult:
    outcome: ReceiveOutcome
    message: str
    event: WebhookEvent | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == ReceiveOutcome.ACCEPTED

    @property
    def status_code(self) -> int:
        return OUTCOME_STATUS[self.outcome]


class WebhookReceiver:
    def __init__(
        self,
        name: str,
        secret: str,
        event_types: Iterable[str],
        max_age_ms: int = signing.DEFAULT_MAX_AGE_MS,
        max_future_ms: int = signing.DEFAULT_MAX_FUTURE_MS,
    ):
        self.name = name
        self.secret = secret
        self.event_types = frozenset(event_types)
        self.max_age_ms = max_age_ms
        self.max_future_ms = max_future_ms

    @classmethod
    def from_settings(
        cls, name: str, secret: str, event_types: Iterable[str], settings: Settings
    ) -> "WebhookReceiver":
        return cls(
            name,
            secret,
            event_types,
            max_age_ms=settings.webhook_max_age_ms,
            max_future_ms=settings.webhook_max_future_skew_ms,
        )

    def receive(
        self,
        raw_body: bytes | str,
        signature: str | None,
        timestamp: str | None,
        now: int | None = None,
    ) -> ReceiveResult:
        if not signature:
            return self._reject(ReceiveOutcome.MISSING_SIGNATURE, "Missing webhook signature")

        try:
            signing.verify_request(
                self.secret,
                raw_body,
                signature,
                timestamp,
                now=now,
                max_age_ms=self.max_age_ms,
                max_future_ms=self.max_future_ms,
            ).raise_for_error()
        except SignatureError as exc:
            return self._reject(ReceiveOutcome.INVALID_SIGNATURE, exc.message)

        try:
            parsed = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return self._reject(ReceiveOutcome.INVALID_JSON, "Body is not valid JSON")

        try:
            event = WebhookEvent.model_validate(parsed)
        except PydanticValidationError:
            return self._reject(
                ReceiveOutcome.INVALID_EVENT_FORMAT,
                "Event must have string type, object data and string timestamp",
            )

        if event.type not in self.event_types:
            return self._reject(
                ReceiveOutcome.UNKNOWN_EVENT_TYPE, f"Unknown event type: {event.type}"
            )

        logger.info("Webhook accepted", receiver=self.name, event_type=event.type)
        return ReceiveResult(ReceiveOutcome.ACCEPTED, f"Processed {event.type}", event)

    def _reject(self, outcome: ReceiveOutcome, message: str) -> ReceiveResult:
        logger.warning(
            "Webhook rejected", receiver=self.name, outcome=outcome.value, reason=message
        )
        return ReceiveResult(outcome, message)
