"""Petbooqz tools: calendars, slot booking, clients, patients and histories.

Vendor failures come back as ``ToolResult(success=False)``.  Invalid input
raises :class:`~integration_apps.errors.InputValidationError` and rejected
credentials raise :class:`~integration_apps.errors.AuthInvalidError`.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from pydantic import BaseModel, Field, model_validator

from integration_apps.booking.auto_book import book_first_available
from integration_apps.booking.coordinator import (
    ClientIdentity,
    PatientIdentity,
    SlotReservationCoordinator,
)
from integration_apps.errors import RequestFailedError
from integration_apps.services.petbooqz_client import (
    ApiVersion,
    PetbooqzClient,
    first_item,
    is_petbooqz_error,
    petbooqz_error_message,
)
from integration_apps.tools.common import NoInput, ToolContext, ToolResult

logger = logging.getLogger(__name__)


# ── Input models ─────────────────────────────────────────────────────


class AvailabilityInput(BaseModel):
    calendars: list[str] = Field(..., min_length=1, description="Calendar columns to search")
    dates: list[str] = Field(..., min_length=1, description="Dates in YYYY-MM-DD format")


class ReserveInput(BaseModel):
    calendar_id: str
    datetime: str | None = Field(None, description="Single slot time, e.g. 2025-12-02T17:00:00")
    datetimes: list[str] | None = Field(
        None, description="Candidate times in order of preference; the first free one is reserved",
    )
    duration: int = Field(..., gt=0, description="Duration in minutes")
    appointment_note: str | None = None

    @model_validator(mode="after")
    def _one_time_source(self) -> ReserveInput:
        if bool(self.datetime) == bool(self.datetimes):
            raise ValueError("Provide exactly one of datetime or datetimes")
        return self

    def candidate_times(self) -> str | list[str]:
        return self.datetime or list(self.datetimes or [])


class IdentityFields(BaseModel):
    client_first: str
    client_last: str
    email_address: str
    phone_number: str
    patient_name: str
    appointment_type: str | None = None
    reason: str | None = None
    appointment_note: str | None = None
    client_id: str | None = None
    patient_id: str | None = None

    def client_identity(self) -> ClientIdentity:
        return ClientIdentity(
            first_name=self.client_first,
            last_name=self.client_last,
            email=self.email_address,
            phone=self.phone_number,
            client_id=self.client_id,
        )

    def patient_identity(self) -> PatientIdentity:
        return PatientIdentity(name=self.patient_name, patient_id=self.patient_id)


class ConfirmInput(IdentityFields):
    calendar_id: str
    slot_id: str | int


class BookInput(IdentityFields):
    calendar_id: str
    datetime: str | None = None
    datetimes: list[str] | None = None
    duration: int = Field(..., gt=0)

    @model_validator(mode="after")
    def _one_time_source(self) -> BookInput:
        if bool(self.datetime) == bool(self.datetimes):
            raise ValueError("Provide exactly one of datetime or datetimes")
        return self


class AppointmentsBookInput(IdentityFields):
    datetime: str = Field(..., description="Requested local time, e.g. 2025-12-02T17:00:00")
    duration_minutes: int = Field(..., gt=0)
    calendar_name: str | None = Field(None, description="Calendar name or column; defaults to the first")


class SlotRefInput(BaseModel):
    calendar_id: str
    slot_id: str | int


class ClientsGetInput(BaseModel):
    client_id: str


class ClientsSearchInput(BaseModel):
    phone: str = Field(..., description="Mobile number, e.g. 0456789123 or +61456789123")


class PatientsGetInput(BaseModel):
    patient_id: str


class PatientHistoryCreateInput(BaseModel):
    title: str
    client_id: str
    patient_id: str
    notes: str


class AsapOrdersGetInput(BaseModel):
    order_id: str = Field(..., description="The unique identifier of the ASAP order")


# ── Helpers ──────────────────────────────────────────────────────────


def _client(ctx: ToolContext) -> PetbooqzClient:
    return PetbooqzClient.from_env(ctx.env)


async def _fetch(
    tool_name: str,
    ctx: ToolContext,
    endpoint: str,
    *,
    params: dict[str, str] | None = None,
    api_version: ApiVersion | None = None,
) -> tuple[Any, ToolResult | None]:
    """GET *endpoint*; return ``(payload, None)`` or ``(None, failure)``."""
    async with _client(ctx) as client:
        try:
            payload = await client.get(endpoint, params=params, api_version=api_version)
        except RequestFailedError as exc:
            return None, ToolResult.fail(tool_name, str(exc))
    if is_petbooqz_error(payload):
        return None, ToolResult.fail(tool_name, petbooqz_error_message(payload))
    return payload, None


def _as_list(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    return [payload] if payload else []


# ── Calendars & availability ─────────────────────────────────────────


async def calendars_list(inputs: NoInput, ctx: ToolContext) -> ToolResult:
    payload, failed = await _fetch("calendars_list", ctx, "/calendars")
    if failed:
        return failed
    calendars = _as_list(payload)
    return ToolResult.ok("calendars_list", {"calendars": calendars}, f"Found {len(calendars)} calendars")


async def appointment_types_list(inputs: NoInput, ctx: ToolContext) -> ToolResult:
    payload, failed = await _fetch("appointment_types_list", ctx, "/appointmenttypes")
    if failed:
        return failed
    types = _as_list(payload)
    return ToolResult.ok(
        "appointment_types_list", {"appointment_types": types}, f"Found {len(types)} appointment types",
    )


async def calendar_slots_availability_list(inputs: AvailabilityInput, ctx: ToolContext) -> ToolResult:
    async with _client(ctx) as client:
        try:
            payload = await client.post("/slots", {"calendars": inputs.calendars, "dates": inputs.dates})
        except RequestFailedError as exc:
            return ToolResult.fail("calendar_slots_availability_list", str(exc))
    if is_petbooqz_error(payload):
        return ToolResult.fail("calendar_slots_availability_list", petbooqz_error_message(payload))
    return ToolResult.ok(
        "calendar_slots_availability_list",
        {"available_slots": _as_list(payload)},
        "Availability retrieved",
    )


# ── Slot lifecycle ───────────────────────────────────────────────────


async def calendar_slots_reserve(inputs: ReserveInput, ctx: ToolContext) -> ToolResult:
    async with _client(ctx) as client:
        result = await SlotReservationCoordinator(client).reserve(
            inputs.calendar_id,
            inputs.candidate_times(),
            inputs.duration,
            inputs.appointment_note,
        )
    data = asdict(result.data) if result.success else None
    return ToolResult.from_result("calendar_slots_reserve", result, data)


async def calendar_slots_confirm(inputs: ConfirmInput, ctx: ToolContext) -> ToolResult:
    async with _client(ctx) as client:
        result = await SlotReservationCoordinator(client).confirm(
            inputs.calendar_id,
            inputs.slot_id,
            inputs.client_identity(),
            inputs.patient_identity(),
            appointment_type=inputs.appointment_type,
            reason=inputs.reason,
            note=inputs.appointment_note,
        )
    data = asdict(result.data) if result.success else None
    return ToolResult.from_result("calendar_slots_confirm", result, data)


async def calendar_slots_book(inputs: BookInput, ctx: ToolContext) -> ToolResult:
    async with _client(ctx) as client:
        result = await SlotReservationCoordinator(client).book(
            inputs.calendar_id,
            inputs.datetime or list(inputs.datetimes or []),
            inputs.duration,
            inputs.client_identity(),
            inputs.patient_identity(),
            appointment_type=inputs.appointment_type,
            reason=inputs.reason,
            note=inputs.appointment_note,
        )
    data = asdict(result.data) if result.success else None
    return ToolResult.from_result("calendar_slots_book", result, data)


async def calendar_slots_get(inputs: SlotRefInput, ctx: ToolContext) -> ToolResult:
    async with _client(ctx) as client:
        result = await SlotReservationCoordinator(client).get(inputs.calendar_id, inputs.slot_id)
    return ToolResult.from_result("calendar_slots_get", result, {"slot": result.data})


async def calendar_slots_release(inputs: SlotRefInput, ctx: ToolContext) -> ToolResult:
    async with _client(ctx) as client:
        result = await SlotReservationCoordinator(client).release(inputs.calendar_id, inputs.slot_id)
    return ToolResult.from_result("calendar_slots_release", result)


async def calendar_slots_cancel(inputs: SlotRefInput, ctx: ToolContext) -> ToolResult:
    async with _client(ctx) as client:
        result = await SlotReservationCoordinator(client).cancel(inputs.calendar_id, inputs.slot_id)
    return ToolResult.from_result("calendar_slots_cancel", result)


async def appointments_book(inputs: AppointmentsBookInput, ctx: ToolContext) -> ToolResult:
    """Book the requested time, falling back to the next free slot that day."""
    async with _client(ctx) as client:
        result = await book_first_available(
            client,
            SlotReservationCoordinator(client),
            datetime=inputs.datetime,
            duration_minutes=inputs.duration_minutes,
            client_identity=inputs.client_identity(),
            patient=inputs.patient_identity(),
            appointment_type=inputs.appointment_type,
            reason=inputs.reason,
            note=inputs.appointment_note,
            calendar_name=inputs.calendar_name,
        )
    data = asdict(result.data) if result.success else None
    return ToolResult.from_result("appointments_book", result, data)


# ── Clients, patients, histories ─────────────────────────────────────


async def clients_get(inputs: ClientsGetInput, ctx: ToolContext) -> ToolResult:
    payload, failed = await _fetch(
        "clients_get", ctx, f"/clients/{inputs.client_id}", api_version="Vetstoria/v2",
    )
    if failed:
        return failed
    return ToolResult.ok("clients_get", {"client": first_item(payload)}, f"Client {inputs.client_id} retrieved")


async def clients_search(inputs: ClientsSearchInput, ctx: ToolContext) -> ToolResult:
    phone = inputs.phone.replace("+", "")
    async with _client(ctx) as client:
        try:
            payload = await client.get("/clients/search", params={"phone": phone})
        except RequestFailedError as exc:
            return ToolResult.fail("clients_search", str(exc))

    if is_petbooqz_error(payload):
        message = petbooqz_error_message(payload)
        if message.strip().lower() != "no client found":
            return ToolResult.fail("clients_search", message)
        payload = []

    clients = _as_list(payload)
    plural = "" if len(clients) == 1 else "s"
    return ToolResult.ok(
        "clients_search", {"clients": clients}, f"Found {len(clients)} client{plural} matching phone {phone}",
    )


async def patients_get(inputs: PatientsGetInput, ctx: ToolContext) -> ToolResult:
    payload, failed = await _fetch("patients_get", ctx, f"/patients/{inputs.patient_id}")
    if failed:
        return failed
    return ToolResult.ok(
        "patients_get", {"patient": first_item(payload)}, f"Patient {inputs.patient_id} retrieved",
    )


async def patient_history_create(inputs: PatientHistoryCreateInput, ctx: ToolContext) -> ToolResult:
    body = inputs.model_dump()
    async with _client(ctx) as client:
        try:
            payload = await client.post("/newHistory", body)
        except RequestFailedError as exc:
            return ToolResult.fail("patient_history_create", str(exc))
    if is_petbooqz_error(payload):
        return ToolResult.fail("patient_history_create", petbooqz_error_message(payload))
    return ToolResult.ok("patient_history_create", {"history": body}, "Patient history created")


async def asap_orders_get(inputs: AsapOrdersGetInput, ctx: ToolContext) -> ToolResult:
    payload, failed = await _fetch(
        "asap_orders_get", ctx, f"/asapOrder/{inputs.order_id}", api_version="Skedyul/v1",
    )
    if failed:
        return failed
    return ToolResult.ok("asap_orders_get", {"order": first_item(payload)}, f"Order {inputs.order_id} retrieved")


# ── Installation ─────────────────────────────────────────────────────


async def verify_credentials(inputs: NoInput, ctx: ToolContext) -> ToolResult:
    """Check the installation's credentials by listing calendars.

    A Petbooqz error envelope is reported as a failed result; a failed
    request raises so that installation cannot complete.
    """
    async with _client(ctx) as client:
        try:
            payload = await client.get("/calendars")
        except RequestFailedError as exc:
            raise RequestFailedError(
                f"Failed to verify Petbooqz credentials: {exc}. "
                "Please check your API URL, username, password, and API key.",
                status_code=exc.status_code,
                envelope=exc.envelope,
                kind=exc.kind,
            ) from exc

    if is_petbooqz_error(payload):
        return ToolResult.fail(
            "verify_credentials", f"Invalid credentials: {petbooqz_error_message(payload)}",
        )
    logger.info("Petbooqz credentials verified")
    return ToolResult.ok("verify_credentials", {}, "Petbooqz API credentials verified successfully")
