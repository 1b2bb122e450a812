from typing import Optional

from leadrelay.logging_config import get_logger
from leadrelay.schemas.lead import LeadFields
from leadrelay.services.errors import DeliveryError
from leadrelay.services.evolution_service import EvolutionClient

logger = get_logger("notification_service")

EMPTY_FIELD = "—"


def format_lead_summary(instance_name: str, fields: LeadFields) -> str:
    """Fixed-format summary posted to the sales chat."""
    return (
        f"New lead (bot={instance_name}):\n"
        f"Name: {fields.name or EMPTY_FIELD}\n"
        f"Phone: {fields.phone or EMPTY_FIELD}\n"
        f"Priority: {fields.priority.value}\n"
        f"Contact: {fields.contact_method.value}\n"
        f"Notes: {fields.notes or EMPTY_FIELD}"
    )


class SalesNotifier:
    """Sends lead summaries from the sales instance to the sales number."""

    def __init__(
        self,
        messenger: EvolutionClient,
        sales_instance: Optional[str],
        sales_number: Optional[str],
    ):
        self.messenger = messenger
        self.sales_instance = sales_instance
        self.sales_number = sales_number

    @property
    def configured(self) -> bool:
        return bool(self.sales_instance and self.sales_number)

    def notify(self, instance_name: str, fields: LeadFields) -> None:
        """
        Raises:
            DeliveryError: notification target not configured or send failed
        """
        if not self.configured:
            raise DeliveryError("sales notification target not configured", code="notify_not_configured")

        summary = format_lead_summary(instance_name, fields)
        try:
            self.messenger.send_text(self.sales_instance, self.sales_number, summary)
        except DeliveryError as exc:
            raise DeliveryError(str(exc), code="notify_error") from exc
