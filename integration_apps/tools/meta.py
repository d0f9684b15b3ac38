"""Meta tools: WhatsApp messaging, WABA number management and Instagram lookup."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from integration_apps.errors import RequestFailedError
from integration_apps.services.meta_client import MetaClient
from integration_apps.tools.common import NoInput, ToolContext, ToolResult
from integration_apps.webhooks.meta import e164

logger = logging.getLogger(__name__)


class SendWhatsAppInput(BaseModel):
    channel_identifier: str = Field(..., description="Business WhatsApp number sending the message")
    to: str = Field(..., description="Recipient number in E.164 format")
    message: str = Field(..., min_length=1, max_length=4096)


class AddWhatsAppNumberInput(BaseModel):
    phone_number_id: str = Field(..., min_length=1, description="Meta phone number ID")
    name: str | None = Field(None, description="Friendly name for the phone number")


async def _meta_connection(ctx: ToolContext) -> dict | None:
    connections = await ctx.require_host().list_records("meta_connection", {}, limit=1)
    return connections[0] if connections else None


# ── Messaging ────────────────────────────────────────────────────────


async def send_whatsapp(inputs: SendWhatsAppInput, ctx: ToolContext) -> ToolResult:
    numbers = await ctx.require_host().list_records(
        "whatsapp_phone_number", {"phone": e164(inputs.channel_identifier)}, limit=1,
    )
    if not numbers:
        return ToolResult.fail(
            "send_whatsapp", f"WhatsApp phone number not found: {inputs.channel_identifier}",
        )

    async with MetaClient.from_env(ctx.env) as client:
        try:
            response = await client.send_message(
                numbers[0]["phone_number_id"], inputs.to, inputs.message,
            )
        except RequestFailedError as exc:
            return ToolResult.fail("send_whatsapp", str(exc))

    messages = (response or {}).get("messages") or [{}]
    return ToolResult.ok(
        "send_whatsapp",
        {"status": "sent", "remote_id": messages[0].get("id", "")},
        f"WhatsApp message sent to {inputs.to}",
    )


# ── WABA numbers ─────────────────────────────────────────────────────


async def fetch_registered_wa_business_numbers(inputs: NoInput, ctx: ToolContext) -> ToolResult:
    """List the phone numbers registered on the connected WABA.

    Returns an empty list when there is no connection yet or the lookup
    fails for a reason other than an invalid token.
    """
    connection = await _meta_connection(ctx)
    if not connection or not connection.get("waba_id"):
        return ToolResult.ok("fetch_registered_wa_business_numbers", [], "No WhatsApp business account connected")

    async with MetaClient.from_env(ctx.env) as client:
        try:
            numbers = await client.get_phone_numbers(connection["waba_id"])
        except RequestFailedError:
            logger.exception("Failed to fetch phone numbers for WABA %s", connection["waba_id"])
            return ToolResult.ok("fetch_registered_wa_business_numbers", [], "Could not fetch phone numbers")

    data = [
        {
            "id": n.get("id"),
            "display_phone_number": n.get("display_phone_number"),
            "verified_name": n.get("verified_name"),
            "quality_rating": n.get("quality_rating", "UNKNOWN"),
        }
        for n in numbers
    ]
    return ToolResult.ok(
        "fetch_registered_wa_business_numbers", data, f"Found {len(data)} registered numbers",
    )


async def add_whatsapp_number(inputs: AddWhatsAppNumberInput, ctx: ToolContext) -> ToolResult:
    """Add a WABA number to the installation and open a WhatsApp channel for it."""
    host = ctx.require_host()
    connection = await _meta_connection(ctx)
    if not connection:
        return ToolResult.fail(
            "add_whatsapp_number", "Meta connection not found. Please complete the OAuth flow first.",
        )
    if not connection.get("waba_id"):
        return ToolResult.fail(
            "add_whatsapp_number",
            "Meta connection is missing WABA ID. Please reconnect your Meta account.",
        )

    async with MetaClient.from_env(ctx.env) as client:
        try:
            numbers = await client.get_phone_numbers(connection["waba_id"])
        except RequestFailedError as exc:
            return ToolResult.fail("add_whatsapp_number", f"Failed to fetch phone number details: {exc}")

    details = next((n for n in numbers if n.get("id") == inputs.phone_number_id), None)
    if details is None:
        return ToolResult.fail(
            "add_whatsapp_number", f"Phone number {inputs.phone_number_id} not found in WABA",
        )

    display = details.get("display_phone_number", "")
    identifier = e164(display)
    existing = await host.list_records(
        "whatsapp_phone_number", {"phone_number_id": inputs.phone_number_id}, limit=1,
    )
    if existing:
        return ToolResult(
            tool_name="add_whatsapp_number",
            success=False,
            data={"existing_id": existing[0].get("id")},
            error=f"Phone number {display} is already added",
            message=f"Phone number {display} is already added",
        )

    try:
        record = await host.create_record(
            "whatsapp_phone_number",
            {
                "phone": identifier,
                "phone_number_id": details["id"],
                "display_name": details.get("verified_name"),
                "quality_rating": details.get("quality_rating"),
                "name": inputs.name,
                "meta_connection": connection.get("id"),
            },
        )
    except RequestFailedError as exc:
        logger.exception("Failed to create whatsapp_phone_number for %s", display)
        return ToolResult.fail("add_whatsapp_number", f"Failed to create WhatsApp phone number: {exc}")

    if not record or not record.get("id"):
        return ToolResult.fail(
            "add_whatsapp_number", "Failed to create WhatsApp phone number record - no instance ID returned",
        )

    try:
        await host.create_channel(
            {
                "type": "whatsapp",
                "name": inputs.name or f"WhatsApp {display}",
                "identifierValue": identifier,
            }
        )
    except RequestFailedError:
        # The number record stands; the channel can be recreated from the UI.
        logger.exception("Failed to create WhatsApp channel for %s", display)

    return ToolResult.ok(
        "add_whatsapp_number",
        {"id": record["id"], "phone_number": identifier, "phone_number_id": details["id"]},
        f"Successfully added WhatsApp number {display}",
    )


# ── Instagram ────────────────────────────────────────────────────────


async def list_instagram_accounts(inputs: NoInput, ctx: ToolContext) -> ToolResult:
    async with MetaClient.from_env(ctx.env) as client:
        try:
            accounts = await client.get_instagram_accounts()
        except RequestFailedError as exc:
            return ToolResult.fail("list_instagram_accounts", str(exc))
    return ToolResult.ok(
        "list_instagram_accounts", accounts, f"Found {len(accounts)} Instagram business accounts",
    )
