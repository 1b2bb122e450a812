"""Turn Evolution webhook bodies into InboundMessage records.

The canonical shape is the ``messages.upsert`` envelope::

    {"event": "messages.upsert", "instance": "...",
     "data": {"key": {"remoteJid": "...", "fromMe": false},
              "message": {"conversation": "..."}}}

Bodies carrying a generic ``messages`` array (older deployments posting
``{"instance": ..., "messages": [{"from": ..., "text": ...}]}``) go through the
legacy adapter. Field lookup for both shapes is driven by the ordered path
tables below: the first path that yields a non-empty string wins.
"""

from typing import Any, Iterable, Optional

from pydantic import ValidationError

from leadrelay.logging_config import get_logger
from leadrelay.schemas.webhook import InboundMessage, WebhookEnvelope

logger = get_logger("inbound")

DEFAULT_INSTANCE = "default-instance"
UPSERT_EVENT = "messages.upsert"

FieldPath = tuple[str, ...]

CANONICAL_FIELD_PATHS: dict[str, tuple[FieldPath, ...]] = {
    "text": (
        ("message", "conversation"),
        ("message", "extendedTextMessage", "text"),
    ),
    "sender": (("key", "remoteJid"),),
}

LEGACY_FIELD_PATHS: dict[str, tuple[FieldPath, ...]] = {
    "text": (
        ("body", "text"),
        ("text",),
        ("message",),
        ("data", "text"),
    ),
    "sender": (
        ("from",),
        ("author",),
        ("sender",),
    ),
}

LEGACY_MESSAGE_LIST_PATHS: tuple[FieldPath, ...] = (
    ("messages",),
    ("payload", "messages"),
    ("body", "messages"),
)


def dig(document: Any, path: Iterable[str]) -> Any:
    current = document
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def first_non_empty(document: Any, paths: Iterable[FieldPath]) -> Optional[str]:
    for path in paths:
        value = dig(document, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_event_name(event: Any) -> str:
    if not isinstance(event, str):
        return ""
    return event.strip().lower().replace("_", ".")


def resolve_instance(envelope: WebhookEnvelope, fallback_instance: Optional[str]) -> str:
    if isinstance(envelope.instance, str) and envelope.instance.strip():
        return envelope.instance.strip()
    return fallback_instance or DEFAULT_INSTANCE


def _parse_upsert(data: Any, instance: str) -> list[InboundMessage]:
    entries = data if isinstance(data, list) else [data]
    messages: list[InboundMessage] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        if dig(entry, ("key", "fromMe")) is True:
            logger.debug("Skipping message sent by the instance itself")
            continue
        text = first_non_empty(entry, CANONICAL_FIELD_PATHS["text"])
        if not text:
            continue
        sender = first_non_empty(entry, CANONICAL_FIELD_PATHS["sender"])
        messages.append(InboundMessage(sender=sender, instance=instance, text=text, raw=entry))
    return messages


def _find_legacy_messages(payload: dict) -> Optional[list]:
    for path in LEGACY_MESSAGE_LIST_PATHS:
        value = dig(payload, path)
        if isinstance(value, list):
            return value
    return None


def _parse_legacy(entries: list, instance: str) -> list[InboundMessage]:
    messages: list[InboundMessage] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        text = first_non_empty(entry, LEGACY_FIELD_PATHS["text"])
        if not text:
            continue
        sender = first_non_empty(entry, LEGACY_FIELD_PATHS["sender"])
        messages.append(InboundMessage(sender=sender, instance=instance, text=text, raw=entry))
    return messages


def parse_webhook_event(payload: Any, *, fallback_instance: Optional[str] = None) -> list[InboundMessage]:
    """Extract every processable message from one webhook body.

    Entries without text, and upserts echoed back from the bot's own number,
    are dropped. Unknown shapes yield an empty list rather than an error.
    """
    if not isinstance(payload, dict):
        return []

    try:
        envelope = WebhookEnvelope.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Webhook envelope validation failed", extra={"context": {"error": str(exc)}})
        return []

    instance = resolve_instance(envelope, fallback_instance)

    if normalize_event_name(envelope.event) == UPSERT_EVENT:
        return _parse_upsert(envelope.data, instance)

    legacy_entries = _find_legacy_messages(payload)
    if legacy_entries is not None:
        return _parse_legacy(legacy_entries, instance)

    logger.info(
        "Ignoring webhook without processable messages",
        extra={"context": {"event": envelope.event, "payload_keys": list(payload.keys())[:20]}},
    )
    return []
