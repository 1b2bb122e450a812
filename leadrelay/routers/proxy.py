from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from leadrelay.dependencies import get_pipeline
from leadrelay.logging_config import get_logger
from leadrelay.services.errors import GatewayError
from leadrelay.services.pipeline_service import DeliveryPipeline

logger = get_logger("proxy")

router = APIRouter()


@router.post("/openrouter-proxy")
def openrouter_proxy(payload: dict = Body(...), pipeline: DeliveryPipeline = Depends(get_pipeline)):
    """Forward a chat-completions payload using the server's OpenRouter credentials."""
    try:
        return pipeline.gateway.forward(payload)
    except GatewayError as exc:
        logger.error(f"Proxy error: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})
