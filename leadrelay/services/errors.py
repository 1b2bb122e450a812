"""Failure taxonomy for the lead pipeline.

Every external call is wrapped so its failure surfaces as one of these types.
The pipeline recovers from all of them except a StoreError raised while
resolving the bot.
"""


class LeadRelayError(Exception):
    """Base class for pipeline failures."""

    code = "unknown"


class GatewayError(LeadRelayError):
    """LLM call failed: timeout, transport error, non-2xx or missing key."""

    code = "gateway_error"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class StoreError(LeadRelayError):
    """Database unreachable or constraint violated."""

    code = "store_error"


class DeliveryError(LeadRelayError):
    """Spreadsheet append or messaging send failed."""

    code = "delivery_error"

    def __init__(self, message: str, code: str | None = None):
        if code:
            self.code = code
        super().__init__(message)


class ExtractionError(LeadRelayError):
    """Model output could not be parsed into lead fields."""

    code = "extraction_error"
