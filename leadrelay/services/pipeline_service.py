"""Inbound message -> reply + staged lead -> sheet + sales chat -> cleanup.

A staged lead is deleted only when both the sheet append and the sales
notification succeeded in the same attempt, so any lead whose delivery was
not confirmed stays in the store for an operator retry. Every step reports
a Result; no step's failure stops the steps after it, except failing to
resolve the bot, which drops the message.
"""

import json
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import sessionmaker

from leadrelay.config import Settings
from leadrelay.logging_config import LoggerAdapter, get_logger, mask_number
from leadrelay.models import StagedLead
from leadrelay.schemas.admin import RetryResponse
from leadrelay.schemas.lead import LeadFields
from leadrelay.schemas.webhook import InboundMessage
from leadrelay.services.bot_registry import BotRegistry
from leadrelay.services.errors import DeliveryError, GatewayError, StoreError
from leadrelay.services.evolution_service import EvolutionClient
from leadrelay.services.extraction_service import LeadExtractor
from leadrelay.services.llm import LLMProvider, OpenRouterProvider
from leadrelay.services.notification_service import SalesNotifier
from leadrelay.services.result import Result
from leadrelay.services.sheets_service import SheetsClient, build_sheets_client
from leadrelay.services.staging_service import StagingStore
from leadrelay.services.state_machine import PipelineStage, transition

logger = get_logger("pipeline")

APOLOGY_TEXT = "Sorry, I'm having trouble right now. We'll get back to you shortly."
REPLY_TEMPERATURE = 0.2
REPLY_PROMPT = "Business context: {context}\n\nUser: {text}\n\nReply as a helpful sales assistant."


@dataclass
class StageTracker:
    stage: Optional[PipelineStage] = None

    def advance(self, to_stage: PipelineStage) -> None:
        self.stage = transition(self.stage, to_stage)


@dataclass
class DeliveryReport(StageTracker):
    sheet: Result[None] = field(default_factory=lambda: Result.failure("not attempted", "not_attempted"))
    notify: Result[None] = field(default_factory=lambda: Result.failure("not attempted", "not_attempted"))
    cleanup: Result[bool] = field(default_factory=lambda: Result.success(False))

    @property
    def delivered(self) -> bool:
        return self.sheet.ok and self.notify.ok

    def to_retry_response(self) -> RetryResponse:
        if self.delivered:
            return RetryResponse(ok=True, deleted=self.cleanup.ok)
        return RetryResponse(ok=False, sheet_ok=self.sheet.ok, notify_ok=self.notify.ok)


@dataclass
class PipelineOutcome(StageTracker):
    instance: str = ""
    sender: Optional[str] = None
    dropped: bool = False
    bot_id: Optional[UUID] = None
    reply: Optional[Result[str]] = None
    reply_text: Optional[str] = None
    lead: Optional[LeadFields] = None
    staged: Optional[Result[StagedLead]] = None
    delivery: Optional[DeliveryReport] = None
    respond: Optional[Result[None]] = None

    @property
    def staged_lead_id(self) -> Optional[UUID]:
        if self.staged is not None and self.staged.ok and self.staged.value is not None:
            return self.staged.value.id
        return None


class DeliveryPipeline:
    """Runs the delivery pipeline for inbound messages and operator retries.

    Built once per process; the collaborators are long-lived clients.
    """

    def __init__(
        self,
        *,
        registry: BotRegistry,
        store: StagingStore,
        gateway: LLMProvider,
        extractor: LeadExtractor,
        messenger: EvolutionClient,
        notifier: SalesNotifier,
        sheets: Optional[SheetsClient] = None,
    ):
        self.registry = registry
        self.store = store
        self.gateway = gateway
        self.extractor = extractor
        self.messenger = messenger
        self.notifier = notifier
        self.sheets = sheets

    def handle_messages(self, messages: list[InboundMessage]) -> list[PipelineOutcome]:
        """Process messages of one webhook body in order, each independently."""
        outcomes = []
        for message in messages:
            try:
                outcomes.append(self.process_message(message))
            except Exception:
                logger.exception(
                    "Webhook processing error",
                    extra={"context": {"instance": message.instance, "sender": mask_number(message.sender)}},
                )
        return outcomes

    def process_message(self, message: InboundMessage) -> PipelineOutcome:
        log = LoggerAdapter(logger, {"instance": message.instance, "sender": mask_number(message.sender)})
        outcome = PipelineOutcome(instance=message.instance, sender=message.sender)

        outcome.advance(PipelineStage.RESOLVE)
        try:
            bot = self.registry.resolve(message.instance)
        except StoreError as exc:
            outcome.dropped = True
            log.error("Bot registry unavailable, dropping message", context={"error": str(exc)})
            return outcome
        outcome.bot_id = bot.id
        model = bot.model or self.registry.default_model
        business_context = json.dumps(bot.business_context, ensure_ascii=False)

        outcome.advance(PipelineStage.REPLY_GENERATE)
        outcome.reply = self.generate_reply(model, business_context, message.text)
        outcome.reply_text = outcome.reply.unwrap_or(APOLOGY_TEXT)
        if not outcome.reply.ok:
            log.warning("Reply generation failed, using apology", context={"error": outcome.reply.detail})

        outcome.advance(PipelineStage.EXTRACT)
        outcome.lead = self.extractor.extract(model, message.text, business_context)
        log.info(
            "Lead extracted",
            context={"priority": outcome.lead.priority.value, "contact_method": outcome.lead.contact_method.value},
        )

        outcome.advance(PipelineStage.STAGE)
        outcome.staged = self.stage(bot.id, message, outcome.lead)
        if outcome.staged.ok:
            log.info("Temp lead created", context={"staged_lead_id": str(outcome.staged_lead_id)})
        else:
            log.error("Insert temp lead failed, continuing unstaged", context={"error": outcome.staged.detail})

        outcome.delivery = self.deliver(message.instance, outcome.lead, outcome.staged_lead_id)
        outcome.stage = outcome.delivery.stage

        outcome.advance(PipelineStage.RESPOND)
        outcome.respond = self.respond(message, outcome.reply_text)
        if outcome.respond.ok:
            log.info("Reply sent")
        else:
            log.warning("Send reply failed", context={"error": outcome.respond.detail})
        return outcome

    def generate_reply(self, model: Optional[str], business_context: str, text: str) -> Result[str]:
        prompt = REPLY_PROMPT.format(context=business_context, text=text)
        try:
            return Result.success(self.gateway.complete(model, prompt, REPLY_TEMPERATURE))
        except GatewayError as exc:
            return Result.from_exception(exc)

    def stage(self, bot_id: Optional[UUID], message: InboundMessage, fields: LeadFields) -> Result[StagedLead]:
        try:
            return Result.success(self.store.insert(bot_id, message.instance, fields, message.raw))
        except StoreError as exc:
            return Result.from_exception(exc)

    def deliver_sheet(self, fields: LeadFields) -> Result[None]:
        if self.sheets is None:
            return Result.failure("Sheets client not configured", "sheet_not_configured")
        try:
            self.sheets.append_lead(fields)
        except DeliveryError as exc:
            return Result.from_exception(exc, "sheet_error")
        return Result.success()

    def deliver_notify(self, instance_name: str, fields: LeadFields) -> Result[None]:
        try:
            self.notifier.notify(instance_name, fields)
        except DeliveryError as exc:
            return Result.from_exception(exc)
        return Result.success()

    def cleanup(self, staged_lead_id: Optional[UUID], sheet: Result, notify: Result) -> Result[bool]:
        """Delete the staged lead only when both delivery legs succeeded.

        Result value is True when a row was removed. A failed delete leaves
        the row for a later retry.
        """
        if staged_lead_id is None or not (sheet.ok and notify.ok):
            return Result.success(False)
        try:
            return Result.success(self.store.delete_by_id(staged_lead_id))
        except StoreError as exc:
            return Result.from_exception(exc)

    def deliver(self, instance_name: str, fields: LeadFields, staged_lead_id: Optional[UUID]) -> DeliveryReport:
        report = DeliveryReport()
        context = {"instance": instance_name, "staged_lead_id": str(staged_lead_id) if staged_lead_id else None}

        report.advance(PipelineStage.DELIVER_SHEET)
        report.sheet = self.deliver_sheet(fields)

        report.advance(PipelineStage.DELIVER_NOTIFY)
        report.notify = self.deliver_notify(instance_name, fields)

        report.advance(PipelineStage.CLEANUP)
        report.cleanup = self.cleanup(staged_lead_id, report.sheet, report.notify)

        logger.info(
            "Lead delivery finished",
            extra={
                "context": {
                    **context,
                    "sheet_ok": report.sheet.ok,
                    "sheet_error": report.sheet.detail,
                    "notify_ok": report.notify.ok,
                    "notify_error": report.notify.detail,
                    "deleted": bool(report.cleanup.ok and report.cleanup.value),
                }
            },
        )
        if not report.cleanup.ok:
            logger.error("Delete temp lead failed", extra={"context": {**context, "error": report.cleanup.detail}})
        return report

    def respond(self, message: InboundMessage, reply_text: str) -> Result[None]:
        try:
            self.messenger.send_text(message.instance, message.sender, reply_text)
        except DeliveryError as exc:
            return Result.from_exception(exc, "reply_error")
        return Result.success()

    def retry_staged_lead(self, lead_id: UUID) -> Optional[DeliveryReport]:
        """Re-run sheet, notify and cleanup for a staged lead.

        Returns:
            DeliveryReport, or None if no staged lead has that id

        Raises:
            StoreError: the staged lead could not be read
        """
        lead = self.store.get_by_id(lead_id)
        if lead is None:
            return None

        fields = LeadFields(
            name=lead.name,
            phone=lead.phone,
            priority=lead.priority,
            contact_method=lead.contact_method,
            notes=lead.notes,
        )
        logger.info("Retrying staged lead", extra={"context": {"staged_lead_id": str(lead_id)}})
        return self.deliver(lead.instance_name, fields, lead.id)


def build_pipeline(settings: Settings, session_factory: sessionmaker) -> DeliveryPipeline:
    """Wire the process-wide pipeline from settings."""
    gateway = OpenRouterProvider(
        api_key=settings.openrouter_api_key,
        api_url=settings.openrouter_api_url,
        default_model=settings.default_model,
        max_tokens=settings.llm_max_tokens,
        timeout_seconds=settings.llm_timeout_seconds,
    )
    messenger = EvolutionClient(
        base_url=settings.evolution_base_url,
        api_key=settings.evolution_api_key,
        timeout_seconds=settings.messaging_timeout_seconds,
    )
    return DeliveryPipeline(
        registry=BotRegistry(session_factory, default_model=settings.default_model),
        store=StagingStore(session_factory),
        gateway=gateway,
        extractor=LeadExtractor(gateway),
        messenger=messenger,
        notifier=SalesNotifier(messenger, settings.sales_instance_name, settings.sales_whatsapp_number),
        sheets=build_sheets_client(settings),
    )
