from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from starlette.requests import ClientDisconnect

from leadrelay.config import settings
from leadrelay.dependencies import get_pipeline
from leadrelay.logging_config import get_logger
from leadrelay.schemas.webhook import WebhookResponse
from leadrelay.services.inbound_service import parse_webhook_event
from leadrelay.services.pipeline_service import DeliveryPipeline

logger = get_logger("webhook")

router = APIRouter()


async def _read_payload(request: Request) -> Any | WebhookResponse:
    try:
        return await request.json()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during read")
        return WebhookResponse(ok=True, message="Client disconnected")
    except Exception as exc:
        try:
            raw = await request.body()
        except ClientDisconnect:
            return WebhookResponse(ok=True, message="Client disconnected")
        if not raw or not raw.strip():
            logger.info("Webhook probe with empty body")
            return WebhookResponse(ok=True, message="Empty payload")

        logger.warning(
            "Webhook payload is not valid JSON",
            extra={
                "context": {
                    "error": str(exc),
                    "body_preview": raw[:200].decode("utf-8", "ignore"),
                }
            },
        )
        return WebhookResponse(ok=True, message="Invalid JSON payload")


async def _accept_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: DeliveryPipeline,
) -> WebhookResponse:
    """Acknowledge at once; the pipeline runs after the response is sent."""
    payload = await _read_payload(request)
    if isinstance(payload, WebhookResponse):
        return payload

    messages = parse_webhook_event(payload, fallback_instance=settings.sales_instance_name)
    if messages:
        background_tasks.add_task(pipeline.handle_messages, messages)

    logger.info(
        "Webhook received",
        extra={"context": {"path": request.url.path, "queued": len(messages)}},
    )
    return WebhookResponse(ok=True, queued=len(messages))


@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: DeliveryPipeline = Depends(get_pipeline),
):
    """Evolution webhook (global URL)."""
    return await _accept_webhook(request, background_tasks, pipeline)


@router.post("/webhook/{event_path:path}", response_model=WebhookResponse)
async def handle_webhook_by_event(
    event_path: str,
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: DeliveryPipeline = Depends(get_pipeline),
):
    """Evolution webhook with "webhook by events" enabled (/webhook/messages-upsert etc.)."""
    return await _accept_webhook(request, background_tasks, pipeline)


@router.get("/webhook")
async def handle_webhook_probe():
    """Health probe for webhook URL checks; real events must use POST."""
    return {"ok": True, "message": "Use POST with JSON payload"}
