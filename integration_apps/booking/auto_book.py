"""Availability-driven booking: find a free slot on a day and book it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from integration_apps.booking.coordinator import (
    ClientIdentity,
    PatientIdentity,
    Result,
    SlotCandidate,
    SlotReservationCoordinator,
    SlotState,
    require_appointment_type,
)
from integration_apps.errors import RequestFailedError
from integration_apps.services.petbooqz_client import (
    PetbooqzClient,
    is_petbooqz_error,
    petbooqz_error_message,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingOutcome:
    calendar_name: str
    requested_time: str
    reserved_time: str
    slot_id: str
    client_id: str | None = None
    patient_id: str | None = None
    alternative_time: str | None = None


def time_fragment(datetime: str) -> str:
    """``"2025-12-02T17:00:00"`` → ``"17:00"``; strings without a time pass through."""
    t = datetime.find("T")
    if t == -1 or t + 3 >= len(datetime):
        return datetime
    return f"{datetime[t + 1:t + 3]}:{datetime[t + 4:t + 6]}"


def pick_calendar(
    calendars: list[dict[str, Any]], calendar_name: str | None = None,
) -> dict[str, Any] | None:
    """Match *calendar_name* against name, then column; fall back to the first calendar."""
    if not calendars:
        return None
    if not calendar_name:
        return calendars[0]

    target = calendar_name.strip().lower()
    for key in ("name", "column"):
        for calendar in calendars:
            if str(calendar.get(key, "")).lower() == target:
                return calendar
    return calendars[0]


def day_slots(availability: Any, calendar_column: str, date: str) -> list[str]:
    if not isinstance(availability, list):
        return []
    column = calendar_column.lower()
    for day in availability:
        if str(day.get("calendar", "")).lower() == column and day.get("date") == date:
            return [str(slot) for slot in day.get("slots") or []]
    return []


async def book_first_available(
    client: PetbooqzClient,
    coordinator: SlotReservationCoordinator,
    *,
    datetime: str,
    duration_minutes: int,
    client_identity: ClientIdentity,
    patient: PatientIdentity,
    appointment_type: str | None = None,
    reason: str | None = None,
    note: str | None = None,
    calendar_name: str | None = None,
) -> Result[BookingOutcome]:
    """Book the requested time, or the next free slot that day if it is taken.

    The exact time is tried first, then the day's other free slots in the
    order Petbooqz lists them.
    """
    require_appointment_type(appointment_type, reason)

    try:
        calendars = await client.get("/calendars")
    except RequestFailedError as exc:
        return Result.fail(f"Failed to list calendars: {exc}", kind=exc.kind)
    if is_petbooqz_error(calendars):
        return Result.fail(petbooqz_error_message(calendars))

    calendar = pick_calendar(calendars if isinstance(calendars, list) else [], calendar_name)
    if calendar is None:
        return Result.fail("No calendars are available in Petbooqz.")

    column = str(calendar.get("column", ""))
    name = str(calendar.get("name", column))
    date = datetime[:10]
    wanted = time_fragment(datetime)

    try:
        availability = await client.post("/slots", {"calendars": [column], "dates": [date]})
    except RequestFailedError as exc:
        return Result.fail(f"Failed to load availability: {exc}", kind=exc.kind)
    if is_petbooqz_error(availability):
        return Result.fail(petbooqz_error_message(availability))

    slots = day_slots(availability, column, date)
    if not slots:
        return Result.fail(f"No available slots on {date} for calendar {name}.")

    exact = [s for s in slots if wanted in s][:1]
    ordered = exact + [s for s in slots if s not in exact]
    candidates = [SlotCandidate(column, f"{date}T{s}", duration_minutes, note) for s in ordered]

    reserved = await coordinator.reserve_first(candidates)
    if not reserved.success:
        return Result.fail(reserved.error, kind=reserved.kind, state=SlotState.FAILED)

    confirmed = await coordinator.confirm_reserved(
        reserved.data,
        client_identity,
        patient,
        appointment_type=appointment_type,
        reason=reason,
        note=note,
    )
    if not confirmed.success:
        return Result.fail(confirmed.error, kind=confirmed.kind, state=confirmed.state)

    reserved_time = reserved.data.datetime
    chosen = reserved_time[11:]
    used_requested = bool(exact) and chosen == exact[0]
    outcome = BookingOutcome(
        calendar_name=name,
        requested_time=datetime,
        reserved_time=reserved_time,
        slot_id=reserved.data.slot_id,
        client_id=confirmed.data.client_id,
        patient_id=confirmed.data.patient_id,
        alternative_time=None if used_requested else chosen,
    )
    if used_requested:
        message = f"Booked an appointment at {reserved_time} on calendar {name}."
    else:
        message = (
            f"The requested time {wanted} was not available. "
            f"Reserved {chosen} on {date} for calendar {name} instead."
        )
    logger.info("Booked slot %s on %s at %s", outcome.slot_id, name, reserved_time)
    return Result.ok(outcome, message, SlotState.CONFIRMED)
