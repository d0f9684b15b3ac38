"""Static directory of every app's tools and webhooks.

Each app maps tool names to a :class:`ToolDefinition` (pydantic input model
plus async handler) and webhook names to a :class:`WebhookDefinition`.  The
server and CLI dispatch through :func:`invoke_tool` and :func:`get_webhook`;
:func:`to_langchain_tools` exposes an app's tools to LangChain agents.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel

from integration_apps.errors import UnknownHandlerError
from integration_apps.tools import meta as meta_tools
from integration_apps.tools import petbooqz as petbooqz_tools
from integration_apps.tools import phone as phone_tools
from integration_apps.tools.common import NoInput, ToolContext, ToolResult
from integration_apps.webhooks import meta as meta_webhooks
from integration_apps.webhooks import phone as phone_webhooks
from integration_apps.webhooks.models import WebhookContext, WebhookRequest, WebhookResponse

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolResult]]
WebhookHandler = Callable[[WebhookRequest, WebhookContext], Awaitable[WebhookResponse]]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler


@dataclass(frozen=True)
class WebhookDefinition:
    name: str
    description: str
    methods: tuple[str, ...]
    handler: WebhookHandler


@dataclass(frozen=True)
class AppDefinition:
    name: str
    tools: dict[str, ToolDefinition] = field(default_factory=dict)
    webhooks: dict[str, WebhookDefinition] = field(default_factory=dict)


def _tools(*definitions: ToolDefinition) -> dict[str, ToolDefinition]:
    return {d.name: d for d in definitions}


def _webhooks(*definitions: WebhookDefinition) -> dict[str, WebhookDefinition]:
    return {d.name: d for d in definitions}


# ── Apps ─────────────────────────────────────────────────────────────

PETBOOQZ = AppDefinition(
    name="petbooqz",
    tools=_tools(
        ToolDefinition(
            "calendars_list", "List the practice's calendars",
            NoInput, petbooqz_tools.calendars_list,
        ),
        ToolDefinition(
            "appointment_types_list", "List the appointment types the practice offers",
            NoInput, petbooqz_tools.appointment_types_list,
        ),
        ToolDefinition(
            "calendar_slots_availability_list",
            "List free slot times for the given calendars and dates",
            petbooqz_tools.AvailabilityInput, petbooqz_tools.calendar_slots_availability_list,
        ),
        ToolDefinition(
            "calendar_slots_reserve",
            "Reserve a calendar slot; with several candidate times the first free one is taken",
            petbooqz_tools.ReserveInput, petbooqz_tools.calendar_slots_reserve,
        ),
        ToolDefinition(
            "calendar_slots_confirm",
            "Confirm a reserved slot for a client and patient",
            petbooqz_tools.ConfirmInput, petbooqz_tools.calendar_slots_confirm,
        ),
        ToolDefinition(
            "calendar_slots_book",
            "Reserve and confirm a calendar slot in one step",
            petbooqz_tools.BookInput, petbooqz_tools.calendar_slots_book,
        ),
        ToolDefinition(
            "calendar_slots_get", "Get the details of a calendar slot",
            petbooqz_tools.SlotRefInput, petbooqz_tools.calendar_slots_get,
        ),
        ToolDefinition(
            "calendar_slots_release", "Release a reserved, unconfirmed slot",
            petbooqz_tools.SlotRefInput, petbooqz_tools.calendar_slots_release,
        ),
        ToolDefinition(
            "calendar_slots_cancel", "Cancel a confirmed appointment",
            petbooqz_tools.SlotRefInput, petbooqz_tools.calendar_slots_cancel,
        ),
        ToolDefinition(
            "appointments_book",
            "Book an appointment, taking the next free slot that day if the requested time is gone",
            petbooqz_tools.AppointmentsBookInput, petbooqz_tools.appointments_book,
        ),
        ToolDefinition(
            "clients_get", "Get a client by ID",
            petbooqz_tools.ClientsGetInput, petbooqz_tools.clients_get,
        ),
        ToolDefinition(
            "clients_search", "Search clients by mobile number",
            petbooqz_tools.ClientsSearchInput, petbooqz_tools.clients_search,
        ),
        ToolDefinition(
            "patients_get", "Get a patient by ID",
            petbooqz_tools.PatientsGetInput, petbooqz_tools.patients_get,
        ),
        ToolDefinition(
            "patient_history_create", "Add a history note to a patient record",
            petbooqz_tools.PatientHistoryCreateInput, petbooqz_tools.patient_history_create,
        ),
        ToolDefinition(
            "asap_orders_get", "Get an ASAP order by ID",
            petbooqz_tools.AsapOrdersGetInput, petbooqz_tools.asap_orders_get,
        ),
        ToolDefinition(
            "verify_credentials", "Verify Petbooqz API credentials during installation",
            NoInput, petbooqz_tools.verify_credentials,
        ),
    ),
)

META = AppDefinition(
    name="meta",
    tools=_tools(
        ToolDefinition(
            "send_whatsapp", "Send a WhatsApp message via the Meta Graph API",
            meta_tools.SendWhatsAppInput, meta_tools.send_whatsapp,
        ),
        ToolDefinition(
            "fetch_registered_wa_business_numbers",
            "List the phone numbers registered on the connected WhatsApp business account",
            NoInput, meta_tools.fetch_registered_wa_business_numbers,
        ),
        ToolDefinition(
            "add_whatsapp_number",
            "Add a registered WhatsApp business number to the installation",
            meta_tools.AddWhatsAppNumberInput, meta_tools.add_whatsapp_number,
        ),
        ToolDefinition(
            "list_instagram_accounts",
            "List Instagram business accounts linked to the user's Facebook pages",
            NoInput, meta_tools.list_instagram_accounts,
        ),
    ),
    webhooks=_webhooks(
        WebhookDefinition(
            "receive_whatsapp", "Receive inbound WhatsApp messages from Meta",
            ("GET", "POST"), meta_webhooks.receive_whatsapp,
        ),
    ),
)

PHONE = AppDefinition(
    name="phone",
    tools=_tools(
        ToolDefinition(
            "send_sms", "Send an SMS message via Twilio",
            phone_tools.SendSmsInput, phone_tools.send_sms,
        ),
        ToolDefinition(
            "update_forwarding_number",
            "Update the call forwarding number and configure the Twilio voice URL",
            phone_tools.UpdateForwardingNumberInput, phone_tools.update_forwarding_number,
        ),
        ToolDefinition(
            "check_compliance_status", "Check the regulatory compliance status with Twilio",
            phone_tools.CheckComplianceStatusInput, phone_tools.check_compliance_status,
        ),
    ),
    webhooks=_webhooks(
        WebhookDefinition(
            "receive_sms", "Receive inbound SMS messages from Twilio",
            ("POST",), phone_webhooks.receive_sms,
        ),
        WebhookDefinition(
            "receive_call", "Forward inbound voice calls to the configured number",
            ("GET", "POST"), phone_webhooks.receive_call,
        ),
        WebhookDefinition(
            "compliance_status", "Receive compliance bundle status updates from Twilio",
            ("POST",), phone_webhooks.compliance_status,
        ),
    ),
)

APPS: dict[str, AppDefinition] = {app.name: app for app in (PETBOOQZ, META, PHONE)}


# ── Lookup & dispatch ────────────────────────────────────────────────


def get_app(app: str) -> AppDefinition:
    try:
        return APPS[app]
    except KeyError:
        raise UnknownHandlerError(f"Unknown app: {app}") from None


def get_tool(app: str, tool: str) -> ToolDefinition:
    try:
        return get_app(app).tools[tool]
    except KeyError:
        raise UnknownHandlerError(f"Unknown tool: {app}/{tool}") from None


def get_webhook(app: str, name: str) -> WebhookDefinition:
    try:
        return get_app(app).webhooks[name]
    except KeyError:
        raise UnknownHandlerError(f"Unknown webhook: {app}/{name}") from None


async def invoke_tool(
    app: str, tool: str, inputs: dict[str, Any], context: ToolContext,
) -> ToolResult:
    """Validate *inputs* against the tool's model and run it.

    Raises:
        UnknownHandlerError: no such app or tool.
        pydantic.ValidationError: *inputs* do not match the input model.
    """
    definition = get_tool(app, tool)
    parsed = definition.input_model.model_validate(inputs)
    logger.info("Invoking %s/%s", app, tool)
    return await definition.handler(parsed, context)


# ── LangChain export ─────────────────────────────────────────────────


def _structured_tool(definition: ToolDefinition, context: ToolContext) -> StructuredTool:
    async def _run(**kwargs: Any) -> dict[str, Any]:
        result = await definition.handler(definition.input_model(**kwargs), context)
        return result.model_dump()

    return StructuredTool.from_function(
        coroutine=_run,
        name=definition.name,
        description=definition.description,
        args_schema=definition.input_model,
    )


def to_langchain_tools(app: str, context: ToolContext) -> list[StructuredTool]:
    """Bind an app's tools to *context* as LangChain ``StructuredTool`` objects."""
    return [_structured_tool(d, context) for d in get_app(app).tools.values()]
