import json
from typing import Optional

from pydantic import ValidationError

from leadrelay.logging_config import get_logger
from leadrelay.schemas.lead import LeadFields
from leadrelay.services.errors import ExtractionError, GatewayError
from leadrelay.services.llm.base import LLMProvider

logger = get_logger("extraction")

EXTRACTION_TEMPERATURE = 0.0

EXTRACTION_PROMPT = """
You are a JSON extractor. Given a customer message and optionally business context, extract lead info into a JSON object with these fields:
{{
  "name": "string or null",
  "phone": "string or null",
  "priority": "low|medium|high|unknown",
  "contact_method": "phone|text|whatsapp|unknown",
  "notes": "free text"
}}
Return ONLY the JSON object. Business context: {context}
Customer message: {message}
"""


def build_extraction_prompt(message: str, business_context: str = "") -> str:
    return EXTRACTION_PROMPT.format(context=business_context or "", message=message)


def parse_lead_reply(reply: str) -> LeadFields:
    """Parse the model's reply into lead fields.

    Models often put commentary before the object, so decoding starts at the
    first '{'. Anything after the first complete JSON value is ignored.

    Raises:
        ExtractionError: no JSON object could be decoded
    """
    start = reply.find("{")
    if start < 0:
        raise ExtractionError("no JSON object in model reply")

    try:
        parsed, _ = json.JSONDecoder().raw_decode(reply[start:])
    except (ValueError, RecursionError) as exc:
        raise ExtractionError(f"invalid JSON in model reply: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ExtractionError("model reply JSON is not an object")

    try:
        return LeadFields(
            name=parsed.get("name"),
            phone=parsed.get("phone"),
            priority=parsed.get("priority"),
            contact_method=parsed.get("contact_method"),
            notes=parsed.get("notes"),
        )
    except ValidationError as exc:
        raise ExtractionError(f"unusable lead fields: {exc}") from exc


class LeadExtractor:
    """Structured lead extraction on top of the model gateway.

    extract() never raises: an unusable reply becomes a salvage record whose
    notes carry the raw model output, and a failed model call becomes an
    empty salvage record.
    """

    def __init__(self, gateway: LLMProvider):
        self.gateway = gateway

    def extract(self, model: Optional[str], message: str, business_context: str = "") -> LeadFields:
        prompt = build_extraction_prompt(message, business_context)

        try:
            reply = self.gateway.complete(model, prompt, EXTRACTION_TEMPERATURE)
        except GatewayError as exc:
            logger.warning("Lead extraction call failed", extra={"context": {"error": str(exc)}})
            return LeadFields.salvage("")

        try:
            return parse_lead_reply(reply or "")
        except ExtractionError as exc:
            logger.info(
                "Lead extraction fell back to salvage record",
                extra={"context": {"error": str(exc), "reply_preview": (reply or "")[:200]}},
            )
            return LeadFields.salvage(reply)
