"""Operator endpoints for staged leads that are still awaiting delivery."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from leadrelay.config import settings
from leadrelay.dependencies import get_pipeline
from leadrelay.logging_config import get_logger
from leadrelay.schemas.admin import StagedLeadResponse
from leadrelay.services.errors import StoreError
from leadrelay.services.pipeline_service import DeliveryPipeline
from leadrelay.services.staging_service import MAX_LIST_LIMIT

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_api_token
    if not expected:
        return
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.get("/staged-leads", response_model=list[StagedLeadResponse])
def list_staged_leads(
    limit: int = Query(default=MAX_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    x_admin_token: Optional[str] = Header(default=None),
    pipeline: DeliveryPipeline = Depends(get_pipeline),
):
    """Staged leads, newest first."""
    _require_admin_token(x_admin_token)
    try:
        rows = pipeline.store.list_recent(limit)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return [StagedLeadResponse.model_validate(row) for row in rows]


@router.get("/staged-leads/{lead_id}", response_model=StagedLeadResponse)
def get_staged_lead(
    lead_id: UUID,
    x_admin_token: Optional[str] = Header(default=None),
    pipeline: DeliveryPipeline = Depends(get_pipeline),
):
    _require_admin_token(x_admin_token)
    try:
        row = pipeline.store.get_by_id(lead_id)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    if row is None:
        raise HTTPException(status_code=404, detail="not found")
    return StagedLeadResponse.model_validate(row)


@router.post("/staged-leads/{lead_id}/retry")
def retry_staged_lead(
    lead_id: UUID,
    x_admin_token: Optional[str] = Header(default=None),
    pipeline: DeliveryPipeline = Depends(get_pipeline),
) -> dict:
    """Re-deliver a staged lead to the sheet and the sales chat.

    Returns {"ok": true, "deleted": ...} when both legs succeed, otherwise
    {"ok": false, "sheetOk": ..., "notifyOk": ...}.
    """
    _require_admin_token(x_admin_token)
    try:
        report = pipeline.retry_staged_lead(lead_id)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    if report is None:
        raise HTTPException(status_code=404, detail="not found")

    response = report.to_retry_response()
    logger.info(
        "Staged lead retry finished",
        extra={"context": {"staged_lead_id": str(lead_id), **response.model_dump(by_alias=True, exclude_none=True)}},
    )
    return response.model_dump(by_alias=True, exclude_none=True)
