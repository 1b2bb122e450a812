from unittest.mock import Mock
from uuid import uuid4

from leadrelay.models import Bot
from leadrelay.schemas.lead import LeadFields, Priority
from leadrelay.schemas.webhook import InboundMessage
from leadrelay.services.errors import DeliveryError, GatewayError, StoreError
from leadrelay.services.pipeline_service import APOLOGY_TEXT, REPLY_TEMPERATURE
from leadrelay.services.state_machine import PipelineStage

SENDER = "15551234567@s.whatsapp.net"


def _message(text="call me at 555-1234, urgent", instance="shop-bot"):
    return InboundMessage(sender=SENDER, instance=instance, text=text, raw={"key": {"remoteJid": SENDER}})


def _replies(messenger):
    return [c for c in messenger.send_text.call_args_list if c.args[1] == SENDER]


def _notifications(pipeline):
    sales_instance = pipeline.notifier.sales_instance
    return [c for c in pipeline.messenger.send_text.call_args_list if c.args[0] == sales_instance]


def _fail_notifications(pipeline):
    sales_instance = pipeline.notifier.sales_instance

    def send_text(instance, number, text):
        if instance == sales_instance:
            raise DeliveryError("Evolution API error: 500", code="messaging_error")
        return {"status": "PENDING"}

    return send_text


class TestHappyPath:
    def test_reply_delivery_and_cleanup(self, pipeline, messenger, sheets, store):
        outcome = pipeline.process_message(_message())

        assert outcome.stage == PipelineStage.RESPOND
        assert outcome.dropped is False
        assert outcome.reply.ok is True

        replies = _replies(messenger)
        assert len(replies) == 1
        assert replies[0].args == ("shop-bot", SENDER, "Thanks! We'll call you.")
        assert messenger.send_text.call_args_list[-1] == replies[0]

        sheets.append_lead.assert_called_once()
        appended = sheets.append_lead.call_args[0][0]
        assert appended.phone == "555-1234"
        assert appended.priority == Priority.HIGH

        notifications = _notifications(pipeline)
        assert len(notifications) == 1
        summary = notifications[0].args[2]
        assert summary.startswith("New lead (bot=shop-bot):")
        assert "Phone: 555-1234" in summary

        assert outcome.staged.ok is True
        assert outcome.delivery.cleanup.value is True
        assert store.count() == 0

    def test_reply_prompt_carries_business_context(self, pipeline, gateway):
        pipeline.process_message(_message(text="do you fix boilers?"))

        reply_call = gateway.reply_calls[0]
        assert reply_call["temperature"] == REPLY_TEMPERATURE
        assert reply_call["model"] == "test/model"
        prompt = reply_call["messages"][1]["content"]
        assert prompt == "Business context: {}\n\nUser: do you fix boilers?\n\nReply as a helpful sales assistant."

    def test_bot_model_used_for_both_calls(self, pipeline, gateway, registry, session_factory):
        registry.resolve("shop-bot")
        db = session_factory()
        db.query(Bot).filter(Bot.instance_name == "shop-bot").update({"model": "custom/model"})
        db.commit()
        db.close()

        pipeline.process_message(_message())

        assert {call["model"] for call in gateway.calls} == {"custom/model"}


class TestReplyFailure:
    def test_apology_sent_exactly_once(self, pipeline, gateway, messenger, store):
        gateway.reply = GatewayError("timed out")

        outcome = pipeline.process_message(_message())

        assert outcome.reply.ok is False
        assert outcome.reply.error_code == "gateway_error"
        replies = _replies(messenger)
        assert len(replies) == 1
        assert replies[0].args[2] == APOLOGY_TEXT
        assert outcome.lead.phone == "555-1234"
        assert store.count() == 0

    def test_nested_extraction_reply_still_answers_customer(self, pipeline, gateway, messenger):
        gateway.extraction = '{"notes": ' + "[" * 100_000

        outcomes = pipeline.handle_messages([_message()])

        assert len(outcomes) == 1
        assert outcomes[0].lead.priority == Priority.UNKNOWN
        assert outcomes[0].staged.ok is True
        replies = _replies(messenger)
        assert len(replies) == 1
        assert replies[0].args[2] == "Thanks! We'll call you."

    def test_model_down_still_stages_salvage_lead(self, pipeline, gateway, sheets, store):
        gateway.reply = GatewayError("timed out")
        gateway.extraction = GatewayError("timed out")
        sheets.append_lead.side_effect = DeliveryError("quota", code="sheet_error")

        outcome = pipeline.process_message(_message())

        assert outcome.lead == LeadFields.salvage("")
        assert store.count() == 1
        assert store.get_by_id(outcome.staged_lead_id).priority == "unknown"


class TestPartialDelivery:
    def test_no_sheets_client_keeps_staged_lead(self, pipeline, messenger, store):
        pipeline.sheets = None

        outcome = pipeline.process_message(_message())

        assert outcome.delivery.sheet.error_code == "sheet_not_configured"
        assert outcome.delivery.notify.ok is True
        assert len(_notifications(pipeline)) == 1
        assert store.get_by_id(outcome.staged_lead_id) is not None
        assert len(_replies(messenger)) == 1

    def test_sheet_failure_keeps_staged_lead(self, pipeline, sheets, store):
        sheets.append_lead.side_effect = DeliveryError("403 forbidden", code="sheet_error")

        outcome = pipeline.process_message(_message())

        assert outcome.delivery.sheet.error_code == "sheet_error"
        assert len(_notifications(pipeline)) == 1
        assert store.count() == 1

    def test_notify_failure_keeps_staged_lead(self, pipeline, messenger, sheets, store):
        messenger.send_text.side_effect = _fail_notifications(pipeline)

        outcome = pipeline.process_message(_message())

        sheets.append_lead.assert_called_once()
        assert outcome.delivery.notify.error_code == "notify_error"
        assert store.count() == 1
        assert len(_replies(messenger)) == 1

    def test_notify_not_configured(self, pipeline, store):
        pipeline.notifier.sales_number = None

        outcome = pipeline.process_message(_message())

        assert outcome.delivery.notify.error_code == "notify_not_configured"
        assert store.count() == 1

    def test_cleanup_failure_keeps_staged_lead(self, pipeline, store, monkeypatch):
        monkeypatch.setattr(store, "delete_by_id", Mock(side_effect=StoreError("connection reset")))

        outcome = pipeline.process_message(_message())

        assert outcome.delivery.delivered is True
        assert outcome.delivery.cleanup.ok is False
        assert outcome.stage == PipelineStage.RESPOND
        assert store.count() == 1


class TestStoreFailures:
    def test_staging_failure_continues_unstaged(self, pipeline, store, sheets, messenger, monkeypatch):
        monkeypatch.setattr(store, "insert", Mock(side_effect=StoreError("disk full")))
        monkeypatch.setattr(store, "delete_by_id", Mock())

        outcome = pipeline.process_message(_message())

        assert outcome.staged.ok is False
        assert outcome.staged_lead_id is None
        sheets.append_lead.assert_called_once()
        assert len(_notifications(pipeline)) == 1
        store.delete_by_id.assert_not_called()
        assert len(_replies(messenger)) == 1

    def test_resolve_failure_drops_message(self, pipeline, registry, gateway, messenger, sheets, monkeypatch):
        monkeypatch.setattr(registry, "resolve", Mock(side_effect=StoreError("connection refused")))

        outcome = pipeline.process_message(_message())

        assert outcome.dropped is True
        assert outcome.stage == PipelineStage.RESOLVE
        assert gateway.calls == []
        messenger.send_text.assert_not_called()
        sheets.append_lead.assert_not_called()


class TestReplySendFailure:
    def test_send_failure_is_recorded(self, pipeline, messenger, store):
        def send_text(instance, number, text):
            if number == SENDER:
                raise DeliveryError("Evolution API error: 404", code="messaging_error")
            return {"status": "PENDING"}

        messenger.send_text.side_effect = send_text

        outcome = pipeline.process_message(_message())

        assert outcome.respond.ok is False
        assert outcome.respond.error_code == "reply_error"
        assert len(_replies(messenger)) == 1
        assert store.count() == 0


class TestHandleMessages:
    def test_failure_in_one_message_does_not_stop_the_rest(self, pipeline, monkeypatch):
        monkeypatch.setattr(pipeline, "process_message", Mock(side_effect=[RuntimeError("boom"), "second"]))

        outcomes = pipeline.handle_messages([_message(text="one"), _message(text="two")])

        assert outcomes == ["second"]
        assert pipeline.process_message.call_count == 2


class TestRetry:
    def _stage(self, store, notes="wants a callback"):
        fields = LeadFields(name="Ann", phone="555-1234", priority="high", contact_method="phone", notes=notes)
        return store.insert(None, "shop-bot", fields, {"key": {"id": "1"}})

    def test_successful_retry_deletes_lead(self, pipeline, store, sheets, messenger):
        lead = self._stage(store)

        report = pipeline.retry_staged_lead(lead.id)

        assert report.delivered is True
        assert report.stage == PipelineStage.CLEANUP
        assert report.to_retry_response().model_dump(by_alias=True, exclude_none=True) == {
            "ok": True,
            "deleted": True,
        }
        assert store.get_by_id(lead.id) is None
        assert sheets.append_lead.call_args[0][0].notes == "wants a callback"
        assert _replies(messenger) == []

    def test_partial_retry_keeps_lead(self, pipeline, store, messenger):
        lead = self._stage(store)
        messenger.send_text.side_effect = _fail_notifications(pipeline)

        report = pipeline.retry_staged_lead(lead.id)

        assert report.to_retry_response().model_dump(by_alias=True, exclude_none=True) == {
            "ok": False,
            "sheetOk": True,
            "notifyOk": False,
        }
        assert store.get_by_id(lead.id) is not None

    def test_missing_lead(self, pipeline):
        assert pipeline.retry_staged_lead(uuid4()) is None

    def test_retry_after_success_finds_nothing(self, pipeline, store):
        lead = self._stage(store)
        pipeline.retry_staged_lead(lead.id)

        assert pipeline.retry_staged_lead(lead.id) is None
