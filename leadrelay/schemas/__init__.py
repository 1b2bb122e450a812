from leadrelay.schemas.admin import RetryResponse, StagedLeadResponse
from leadrelay.schemas.lead import ContactMethod, LeadFields, Priority
from leadrelay.schemas.webhook import InboundMessage, WebhookResponse

__all__ = [
    "ContactMethod",
    "InboundMessage",
    "LeadFields",
    "Priority",
    "RetryResponse",
    "StagedLeadResponse",
    "WebhookResponse",
]
