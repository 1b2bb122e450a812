from fastapi import Request

from leadrelay.services.pipeline_service import DeliveryPipeline


def get_pipeline(request: Request) -> DeliveryPipeline:
    """Process-wide pipeline built at startup."""
    return request.app.state.pipeline
