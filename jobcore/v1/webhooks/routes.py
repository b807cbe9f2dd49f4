from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from jobcore.config.logging import get_logger
from jobcore.v1.core.registries import webhook_handler_registry
from jobcore.v1.core.security import JobContextDep
from jobcore.v1.orchestrators.context import JobContext
from jobcore.v1.webhooks.receiver import WebhookReceiver
from jobcore.v1.webhooks.schemas import (
    ContentEventType,
    PaymentEventType,
    WebhookAck,
    WebhookRejection,
)
from jobcore.v1.webhooks.signing import SIGNATURE_HEADER, TIMESTAMP_HEADER

logger = get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _receive(request: Request, receiver: WebhookReceiver) -> JSONResponse:
    raw_body = await request.body()
    result = receiver.receive(
        raw_body,
        request.headers.get(SIGNATURE_HEADER),
        request.headers.get(TIMESTAMP_HEADER),
    )
    if not result.ok:
        return JSONResponse(
            status_code=result.status_code,
            content=WebhookRejection(
                error=result.outcome.value, message=result.message
            ).model_dump(),
        )

    event = result.event
    try:
        handler = webhook_handler_registry.get(event.type)
        await handler.handle(event)
    except Exception as exc:
        logger.exception(
            "Webhook handler failed", receiver=receiver.name, event_type=event.type
        )
        return JSONResponse(
            status_code=500,
            content=WebhookRejection(error="HANDLER_ERROR", message=str(exc)).model_dump(),
        )

    return JSONResponse(
        status_code=200,
        content=WebhookAck(message=result.message, event=event.type).model_dump(),
    )


@router.post("/sync")
async def receive_content_event(request: Request, context: JobContext = JobContextDep):
    """Receive a signed content-sync event."""
    settings = context.settings
    receiver = WebhookReceiver.from_settings(
        "content-sync",
        settings.sync_webhook_secret,
        [event_type.value for event_type in ContentEventType],
        settings,
    )
    return await _receive(request, receiver)


@router.post("/payment")
async def receive_payment_event(request: Request, context: JobContext = JobContextDep):
    """Receive a signed payment-provider event."""
    settings = context.settings
    receiver = WebhookReceiver.from_settings(
        "payment",
        settings.payment_webhook_secret,
        [event_type.value for event_type in PaymentEventType],
        settings,
    )
    return await _receive(request, receiver)
