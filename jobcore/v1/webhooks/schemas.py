from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, StrictStr


class ContentEventType(str, Enum):
    ARTICLE_CREATED = "article.created"
    ARTICLE_UPDATED = "article.updated"
    ARTICLE_DELETED = "article.deleted"


class PaymentEventType(str, Enum):
    PAYMENT_SUCCESS = "payment.success"
    PAYMENT_FAILED = "payment.failed"
    PERIOD_AUTHORIZED = "period.authorized"
    PERIOD_DEDUCTED = "period.deducted"
    PERIOD_FAILED = "period.failed"


class WebhookEvent(BaseModel):
    """Body of a signed webhook, inbound or outbound."""

    type: StrictStr
    data: dict[str, Any]
    timestamp: StrictStr


class WebhookAck(BaseModel):
    success: bool = True
    message: str
    event: str


class WebhookRejection(BaseModel):
    success: bool = False
    error: str
    message: str = Field(default="", description="Human readable reason")
