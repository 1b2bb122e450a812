from typing import Optional
from urllib.parse import quote

import httpx

from leadrelay.logging_config import get_logger, mask_number
from leadrelay.services.errors import DeliveryError

logger = get_logger("evolution_service")


class EvolutionClient:
    """Outbound text messages through an Evolution API server."""

    def __init__(self, base_url: Optional[str], api_key: Optional[str], timeout_seconds: float = 30.0):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def send_text(self, instance: str, number: Optional[str], text: str) -> dict:
        """Send a text message from instance to number.

        Raises:
            DeliveryError: not configured, missing recipient, transport error or non-2xx
        """
        if not self.configured:
            raise DeliveryError("Evolution API is not configured", code="messaging_not_configured")
        if not instance or not number:
            raise DeliveryError(f"missing instance={instance!r} or recipient", code="messaging_error")

        url = f"{self.base_url}/message/sendText/{quote(instance, safe='')}"
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    url,
                    headers={"Content-Type": "application/json", "apikey": self.api_key},
                    json={"number": number, "text": text},
                )
        except httpx.HTTPError as exc:
            logger.error(f"Error sending WhatsApp message: {exc}")
            raise DeliveryError(f"Evolution transport error: {exc}", code="messaging_error") from exc

        logger.info(
            f"Evolution response: status={response.status_code}, instance={instance}, to={mask_number(number)}"
        )
        if not response.is_success:
            raise DeliveryError(
                f"Evolution API error: {response.status_code} - {response.text[:200]}",
                code="messaging_error",
            )

        try:
            return response.json()
        except ValueError:
            return {"status": response.status_code}
