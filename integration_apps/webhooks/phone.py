"""Twilio inbound webhooks: SMS, voice forwarding and compliance bundle status."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from twilio.twiml.messaging_response import MessagingResponse
from twilio.twiml.voice_response import VoiceResponse

from integration_apps.errors import RequestFailedError, SignatureInvalidError
from integration_apps.services.twilio_client import map_bundle_status
from integration_apps.webhooks.models import (
    InboundMessage,
    WebhookContext,
    WebhookRequest,
    WebhookResponse,
)
from integration_apps.webhooks.signatures import (
    TWILIO_SIGNATURE_HEADER,
    public_url,
    verify_twilio_signature,
)

logger = logging.getLogger(__name__)


def empty_twiml() -> str:
    return str(MessagingResponse())


def say_twiml(text: str) -> str:
    response = VoiceResponse()
    response.say(text)
    return str(response)


def dial_twiml(forward_to: str, caller_id: str) -> str:
    response = VoiceResponse()
    response.dial(forward_to, caller_id=caller_id)
    return str(response)


def _verify(
    request: WebhookRequest,
    context: WebhookContext,
    params: Mapping[str, str],
) -> WebhookResponse | None:
    """Run Twilio verification; return an error response, or ``None`` if valid."""
    signature = request.header(TWILIO_SIGNATURE_HEADER)
    if not signature:
        logger.info("Missing Twilio signature")
        return WebhookResponse.error("Missing Twilio signature", 401)

    auth_token = context.env.get("TWILIO_AUTH_TOKEN")
    if not auth_token:
        logger.error("TWILIO_AUTH_TOKEN is not configured")
        return WebhookResponse.error("TWILIO_AUTH_TOKEN is not configured", 500)

    if not request.url:
        return WebhookResponse.error("Missing webhook URL", 400)

    url = public_url(request.url, context.env.get("PUBLIC_WEBHOOK_HOST"))
    try:
        verify_twilio_signature(auth_token, signature, url, params)
    except SignatureInvalidError as exc:
        return WebhookResponse.error(str(exc), exc.status_code)
    return None


# ── receive_sms ──────────────────────────────────────────────────────


async def receive_sms(request: WebhookRequest, context: WebhookContext) -> WebhookResponse:
    params = request.form()
    rejected = _verify(request, context, params)
    if rejected is not None:
        return rejected

    message = InboundMessage(
        external_id=params.get("MessageSid") or None,
        from_identifier=params.get("From", ""),
        to_identifier=params.get("To", ""),
        message_body=params.get("Body", ""),
    )
    if not message.from_identifier or not message.message_body:
        logger.warning("Skipping SMS %s without sender or body", message.external_id)
        return WebhookResponse.xml(empty_twiml())

    try:
        channels = await context.host.list_channels(
            {"identifierValue": message.to_identifier}, limit=1,
        )
        if not channels:
            logger.info("No communication channel for %s; dropping SMS", message.to_identifier)
            return WebhookResponse.xml(empty_twiml())

        result = await context.host.receive_message(channels[0]["id"], message)
        logger.info(
            "SMS %s from %s handed to channel %s (message %s)",
            message.external_id, message.from_identifier, channels[0]["id"],
            (result or {}).get("messageId"),
        )
    except RequestFailedError:
        logger.exception("Failed to process inbound SMS %s", message.external_id)

    return WebhookResponse.xml(empty_twiml())


# ── receive_call ─────────────────────────────────────────────────────


async def receive_call(request: WebhookRequest, context: WebhookContext) -> WebhookResponse:
    """Forward an inbound call to the number's configured forwarding number.

    Twilio may call with GET (parameters in the query string, signed as part
    of the URL) or POST (form body).
    """
    if request.method == "GET":
        params = dict(request.query)
        signed_params: Mapping[str, str] = {}
    else:
        params = request.form()
        signed_params = params

    rejected = _verify(request, context, signed_params)
    if rejected is not None:
        return rejected

    to = params.get("To") or params.get("Called") or ""
    caller = params.get("From") or params.get("Caller") or ""
    if not to:
        logger.info("Call webhook without To/Called")
        return WebhookResponse.xml(say_twiml("Invalid request"), status=400)

    records = await context.host.list_records("phone_number", {"phone": to}, limit=1)
    record = records[0] if records else None
    if not record or not record.get("forwarding_phone_number"):
        logger.info("No forwarding number configured for %s", to)
        return WebhookResponse.xml(say_twiml("This number is not configured to receive calls."))

    logger.info(
        "Forwarding call from %s to %s -> %s",
        caller, record["phone"], record["forwarding_phone_number"],
    )
    return WebhookResponse.xml(dial_twiml(record["forwarding_phone_number"], record["phone"]))


# ── compliance_status ────────────────────────────────────────────────


async def compliance_status(request: WebhookRequest, context: WebhookContext) -> WebhookResponse:
    """Apply a Twilio regulatory bundle status change to its compliance record.

    The record id comes from the metadata stored when the callback URL was
    registered (``registration["complianceRecordId"]``).
    """
    params = request.form()
    rejected = _verify(request, context, params)
    if rejected is not None:
        return rejected

    bundle_sid = params.get("BundleSid")
    status = params.get("Status")
    if not bundle_sid or not status:
        logger.warning("Compliance callback without BundleSid or Status")
        return WebhookResponse.error("Missing BundleSid or Status", 400)

    record_id = context.registration.get("complianceRecordId")
    if not record_id:
        logger.warning("Compliance callback for %s has no complianceRecordId", bundle_sid)
        return WebhookResponse.error("Missing complianceRecordId in webhook context", 400)

    internal_status = map_bundle_status(status)
    logger.info(
        "Bundle %s is now %s (%s); updating compliance record %s",
        bundle_sid, status, internal_status, record_id,
    )

    try:
        await context.host.update_record(
            "compliance_record",
            record_id,
            {"status": internal_status, "rejection_reason": params.get("FailureReason")},
        )
    except RequestFailedError:
        logger.exception("Failed to update compliance record %s", record_id)
        return WebhookResponse.error("Failed to update compliance record", 500)

    return WebhookResponse.json(
        {"received": True, "complianceRecordId": record_id, "status": internal_status}
    )
