"""WhatsApp inbound webhook (Meta Graph ``whatsapp_business_account`` events).

GET answers the subscription handshake; POST carries message batches::

    {"object": "whatsapp_business_account",
     "entry": [{"changes": [{"value": {
         "messaging_product": "whatsapp",
         "metadata": {"display_phone_number": "...", "phone_number_id": "..."},
         "messages": [{"from": "...", "id": "wamid...", "timestamp": "...",
                       "text": {"body": "..."}, "type": "text"}]}}]}]}

Processing is best-effort: a malformed message, an unknown business number or
a failed hand-off skips that message only, and Meta always gets a 200 once
the signature has been verified.
"""

from __future__ import annotations

import logging
from typing import Any

from integration_apps.errors import RequestFailedError, SignatureInvalidError
from integration_apps.webhooks.models import (
    InboundMessage,
    WebhookContext,
    WebhookRequest,
    WebhookResponse,
)
from integration_apps.webhooks.signatures import (
    META_SIGNATURE_HEADER,
    verify_challenge,
    verify_meta_signature,
)

logger = logging.getLogger(__name__)

WABA_OBJECT = "whatsapp_business_account"


def e164(number: str) -> str:
    """``"1 (555) 010-0000"`` → ``"+15550100000"``."""
    digits = "".join(ch for ch in number if ch.isdigit())
    return f"+{digits}" if digits else ""


def _dicts(items: Any, what: str) -> list[dict[str, Any]]:
    """Keep the dict items of a list, warning about anything else."""
    if not isinstance(items, list):
        if items:
            logger.warning("Skipping WhatsApp %s list of type %s", what, type(items).__name__)
        return []
    kept = [item for item in items if isinstance(item, dict)]
    if len(kept) != len(items):
        logger.warning("Skipping %d malformed WhatsApp %s item(s)", len(items) - len(kept), what)
    return kept


def normalize_whatsapp_messages(payload: dict[str, Any]) -> list[InboundMessage]:
    """Flatten ``entry[].changes[].value.messages[]`` into :class:`InboundMessage` items.

    Messages without a sender or a text body, changes without a business
    number and items of the wrong shape are skipped with a warning.
    """
    messages: list[InboundMessage] = []
    for entry in _dicts(payload.get("entry"), "entry"):
        for change in _dicts(entry.get("changes"), "change"):
            value = change.get("value")
            if not isinstance(value, dict) or value.get("messaging_product") != "whatsapp":
                continue

            metadata = value.get("metadata")
            business_number = metadata.get("display_phone_number") if isinstance(metadata, dict) else None
            if not business_number or not isinstance(business_number, str):
                logger.warning("Skipping WhatsApp change without display_phone_number")
                continue

            for message in _dicts(value.get("messages"), "message"):
                sender = message.get("from")
                text = message.get("text")
                body = text.get("body") if isinstance(text, dict) else None
                if not sender or not isinstance(sender, str) or not body or not isinstance(body, str):
                    logger.warning(
                        "Skipping WhatsApp message %s without sender or text body",
                        message.get("id"),
                    )
                    continue
                messages.append(
                    InboundMessage(
                        external_id=message.get("id"),
                        from_identifier=e164(sender),
                        to_identifier=e164(business_number),
                        message_body=body,
                        timestamp=message.get("timestamp"),
                    )
                )
    return messages


async def receive_whatsapp(request: WebhookRequest, context: WebhookContext) -> WebhookResponse:
    if request.method == "GET":
        challenge = verify_challenge(request.query, context.env.get("META_WEBHOOK_VERIFY_TOKEN"))
        if challenge is None:
            logger.info("WhatsApp webhook verification failed (mode=%s)", request.query.get("hub.mode"))
            return WebhookResponse.error("Verification failed", 403)
        logger.info("WhatsApp webhook verification successful")
        return WebhookResponse.text(challenge)

    if request.method != "POST":
        return WebhookResponse.error("Method not allowed", 405)

    app_secret = context.env.get("META_APP_SECRET")
    if not app_secret:
        logger.error("META_APP_SECRET is not configured")
        return WebhookResponse.error("META_APP_SECRET is not configured", 500)

    try:
        verify_meta_signature(request.raw_body, request.header(META_SIGNATURE_HEADER), app_secret)
    except SignatureInvalidError as exc:
        return WebhookResponse.error(str(exc), exc.status_code)

    try:
        payload = request.json()
    except ValueError:
        return WebhookResponse.error("Invalid JSON payload", 400)

    if not isinstance(payload, dict) or payload.get("object") != WABA_OBJECT:
        logger.info("Ignoring non-WhatsApp webhook")
        return WebhookResponse.json({"success": True})

    processed = 0
    for message in normalize_whatsapp_messages(payload):
        try:
            channels = await context.host.list_channels(
                {"identifierValue": message.to_identifier}, limit=1,
            )
            if not channels:
                logger.info("No channel for WhatsApp number %s; skipping", message.to_identifier)
                continue
            await context.host.receive_message(channels[0]["id"], message)
            processed += 1
        except (RequestFailedError, KeyError):
            logger.exception("Failed to hand off WhatsApp message %s", message.external_id)

    logger.info("WhatsApp webhook processed %d message(s)", processed)
    return WebhookResponse.json({"success": True})
