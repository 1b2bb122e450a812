from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class WebhookEnvelope(BaseModel):
    """Top level of an Evolution webhook body. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    event: Optional[Any] = None
    instance: Optional[Any] = Field(
        default=None,
        validation_alias=AliasChoices("instance", "instanceName", "instance_name"),
    )
    data: Optional[Any] = None


class InboundMessage(BaseModel):
    sender: Optional[str] = None
    instance: str
    text: str
    raw: dict = Field(default_factory=dict)


class WebhookResponse(BaseModel):
    ok: bool = True
    queued: int = 0
    message: Optional[str] = None
