from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class StagedLeadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    bot_id: Optional[UUID] = None
    instance_name: str
    name: Optional[str] = None
    phone: Optional[str] = None
    priority: str
    contact_method: str
    notes: str
    raw_message: Any = None
    created_at: Optional[datetime] = None


class RetryResponse(BaseModel):
    """Outcome of an operator retry.

    Full success serializes as {"ok": true, "deleted": ...}; a partial failure
    as {"ok": false, "sheetOk": ..., "notifyOk": ...}.
    """

    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    deleted: Optional[bool] = None
    sheet_ok: Optional[bool] = Field(default=None, serialization_alias="sheetOk")
    notify_ok: Optional[bool] = Field(default=None, serialization_alias="notifyOk")
