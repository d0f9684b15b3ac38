"""Phone (Twilio) tools: SMS, call forwarding and compliance status."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from integration_apps.errors import RequestFailedError
from integration_apps.services.twilio_client import TwilioClient, map_bundle_status
from integration_apps.tools.common import ToolContext, ToolResult

logger = logging.getLogger(__name__)


class SendSmsInput(BaseModel):
    channel_identifier: str = Field(..., description="Twilio number sending the message")
    to: str = Field(..., description="Recipient number in E.164 format")
    message: str = Field(..., min_length=1, max_length=1600)


class UpdateForwardingNumberInput(BaseModel):
    phone_id: str = Field(..., description="phone_number record ID")
    forwarding_phone_number: str = Field("", description="Number to forward calls to; empty clears it")


class CheckComplianceStatusInput(BaseModel):
    compliance_record_id: str | None = Field(
        None, description="compliance_record ID; defaults to the installation's only record",
    )


# ── SMS ──────────────────────────────────────────────────────────────


async def send_sms(inputs: SendSmsInput, ctx: ToolContext) -> ToolResult:
    async with TwilioClient.from_env(ctx.env) as client:
        try:
            sent = await client.send_sms(inputs.to, inputs.channel_identifier, inputs.message)
        except RequestFailedError as exc:
            return ToolResult.fail("send_sms", str(exc))
    return ToolResult.ok("send_sms", sent, f"SMS {sent['status']} to {inputs.to}")


# ── Call forwarding ──────────────────────────────────────────────────


async def update_forwarding_number(inputs: UpdateForwardingNumberInput, ctx: ToolContext) -> ToolResult:
    """Save the forwarding number and point the Twilio number's voice URL at us.

    The record is saved first.  Twilio problems after that (number missing
    from the account, failed update) are reported as ``partial_success``.
    """
    host = ctx.require_host()
    forwarding = inputs.forwarding_phone_number.strip()

    record = await host.get_record("phone_number", inputs.phone_id)
    if not record or not record.get("phone"):
        return ToolResult.fail("update_forwarding_number", "Phone number not found")

    try:
        await host.update_record(
            "phone_number", inputs.phone_id, {"forwarding_phone_number": forwarding or None},
        )
    except RequestFailedError as exc:
        return ToolResult.fail("update_forwarding_number", f"Failed to save forwarding number: {exc}")

    phone = record["phone"]
    async with TwilioClient.from_env(ctx.env) as client:
        try:
            number = await client.find_incoming_number(phone)
            if number is None:
                logger.info("Phone number %s not found in Twilio account", phone)
                return _partial("Forwarding number saved, but phone number not found in Twilio account")

            voice_url = ""
            if forwarding:
                webhook = await host.create_webhook("receive_call")
                voice_url = webhook["url"]
            await client.update_incoming_number(number["sid"], voice_url=voice_url)
        except RequestFailedError as exc:
            logger.exception("Failed to configure Twilio voice URL for %s", phone)
            return _partial(f"Forwarding number saved, but failed to configure Twilio: {exc}")

    logger.info("Voice URL for %s %s", phone, "configured" if forwarding else "cleared")
    message = (
        "Forwarding number saved and Twilio configured"
        if forwarding
        else "Forwarding number cleared and Twilio updated"
    )
    return ToolResult.ok("update_forwarding_number", {"status": "success"}, message)


def _partial(message: str) -> ToolResult:
    return ToolResult.ok("update_forwarding_number", {"status": "partial_success"}, message)


# ── Compliance ───────────────────────────────────────────────────────


async def check_compliance_status(inputs: CheckComplianceStatusInput, ctx: ToolContext) -> ToolResult:
    """Fetch the regulatory bundle from Twilio and sync its status to the record."""
    host = ctx.require_host()
    if inputs.compliance_record_id:
        record = await host.get_record("compliance_record", inputs.compliance_record_id)
    else:
        records = await host.list_records("compliance_record", {}, limit=1)
        record = records[0] if records else None

    if not record:
        return ToolResult.fail("check_compliance_status", "No compliance record found")
    bundle_sid = record.get("bundle_sid")
    if not bundle_sid:
        return ToolResult.ok(
            "check_compliance_status",
            {"status": record.get("status", "PENDING")},
            "Compliance documents have not been submitted yet.",
        )

    async with TwilioClient.from_env(ctx.env) as client:
        try:
            bundle = await client.fetch_bundle(bundle_sid)
        except RequestFailedError as exc:
            return ToolResult.fail("check_compliance_status", str(exc))

    status = map_bundle_status(bundle.get("status", ""))
    if status != record.get("status"):
        logger.info("Compliance record %s: %s -> %s", record.get("id"), record.get("status"), status)
        await host.update_record(
            "compliance_record",
            record["id"],
            {"status": status, "rejection_reason": bundle.get("failure_reason")},
        )

    return ToolResult.ok(
        "check_compliance_status",
        {"status": status, "last_updated": datetime.now(UTC).isoformat()},
        f"Compliance status is {status}",
    )
