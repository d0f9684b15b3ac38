"""Slot reservation coordinator for Petbooqz calendars.

A booking is a short vendor-side protocol::

    NOT_RESERVED ──reserve──▶ RESERVED ──confirm──▶ CONFIRMED
         │                       ├──release──▶ RELEASED
         ▼                       └──cancel───▶ CANCELLED
       FAILED

The reservation itself lives on the Petbooqz side; the coordinator holds at
most one outstanding reservation per call and keeps nothing between calls.

Reserving accepts an ordered list of candidate times.  Slots can be claimed
by someone else between availability lookup and reserve, so a rejected
candidate means "try the next one", never "give up".  Candidates are tried
strictly one after another; the first success wins.

Expected vendor failures come back as a :class:`Result`; invalid input raises
:class:`~integration_apps.errors.InputValidationError` before any request is
made, and :class:`~integration_apps.errors.AuthInvalidError` always
propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from integration_apps.config import AUTO_RELEASE_ON_CONFIRM_FAILURE
from integration_apps.errors import ErrorKind, InputValidationError, RequestFailedError
from integration_apps.services.petbooqz_client import (
    PetbooqzClient,
    first_item,
    is_petbooqz_error,
    petbooqz_error_message,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SlotId = str | int


class SlotState(str, Enum):
    NOT_RESERVED = "not_reserved"
    RESERVED = "reserved"
    CONFIRMED = "confirmed"
    RELEASED = "released"
    CANCELLED = "cancelled"
    FAILED = "failed"


# ── Value types ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class SlotCandidate:
    calendar_id: str
    datetime: str
    duration_minutes: int
    note: str | None = None


@dataclass(frozen=True)
class ReservedSlot:
    slot_id: str
    datetime: str
    calendar_id: str


@dataclass(frozen=True)
class ConfirmedAppointment:
    slot_id: str
    client_id: str | None = None
    patient_id: str | None = None


@dataclass(frozen=True)
class ClientIdentity:
    first_name: str
    last_name: str
    email: str
    phone: str
    client_id: str | None = None


@dataclass(frozen=True)
class PatientIdentity:
    name: str
    patient_id: str | None = None


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of one coordinator operation."""

    success: bool
    data: T | None = None
    error: str | None = None
    kind: ErrorKind | None = None
    message: str = ""
    state: SlotState | None = None

    @classmethod
    def ok(cls, data: T, message: str, state: SlotState | None = None) -> Result[T]:
        return cls(success=True, data=data, message=message, state=state)

    @classmethod
    def fail(
        cls,
        error: str,
        *,
        kind: ErrorKind = ErrorKind.PERMANENT,
        state: SlotState | None = None,
    ) -> Result[T]:
        return cls(success=False, error=error, kind=kind, message=error, state=state)


def normalize_slot_id(slot_id: SlotId | None) -> str:
    """Vendor slot ids arrive as strings or numbers; always hand out strings."""
    if slot_id is None or isinstance(slot_id, bool) or slot_id == "":
        raise InputValidationError("slot_id is required")
    return str(slot_id)


def _optional_id(value: Any) -> str | None:
    return None if value is None or value == "" else str(value)


# ── Coordinator ──────────────────────────────────────────────────────


class SlotReservationCoordinator:
    """Reserve/confirm/release/cancel flow over one Petbooqz client."""

    def __init__(
        self,
        client: PetbooqzClient,
        *,
        auto_release_on_confirm_failure: bool = AUTO_RELEASE_ON_CONFIRM_FAILURE,
    ):
        self._client = client
        self._auto_release = auto_release_on_confirm_failure

    # ── Reserve ──────────────────────────────────────────────────────

    async def reserve(
        self,
        calendar_id: str,
        datetimes: str | Sequence[str],
        duration_minutes: int,
        note: str | None = None,
    ) -> Result[ReservedSlot]:
        """Reserve one slot at the first of *datetimes* the vendor accepts."""
        if isinstance(datetimes, str):
            datetimes = [datetimes]
        return await self.reserve_first(
            [SlotCandidate(calendar_id, dt, duration_minutes, note) for dt in datetimes]
        )

    async def reserve_first(self, candidates: Sequence[SlotCandidate]) -> Result[ReservedSlot]:
        if not candidates:
            raise InputValidationError("At least one candidate datetime is required")

        last_error = "No slot reserved"
        last_kind = ErrorKind.PERMANENT
        for index, candidate in enumerate(candidates, start=1):
            logger.info(
                "Reserving %s on calendar %s (candidate %d/%d)",
                candidate.datetime, candidate.calendar_id, index, len(candidates),
            )
            try:
                response = await self._client.post(
                    f"/calendars/{candidate.calendar_id}/reserve",
                    {
                        "datetime": candidate.datetime,
                        "duration": str(candidate.duration_minutes),
                        "appointment_note": candidate.note,
                    },
                )
            except RequestFailedError as exc:
                last_error, last_kind = str(exc), exc.kind
                logger.info("Candidate %s rejected: %s", candidate.datetime, last_error)
                continue

            if is_petbooqz_error(response):
                last_error, last_kind = petbooqz_error_message(response), ErrorKind.PERMANENT
                logger.info("Candidate %s rejected: %s", candidate.datetime, last_error)
                continue

            slot = first_item(response)
            slot_id = slot.get("slot_id") if isinstance(slot, dict) else None
            if slot_id is None or slot_id == "":
                last_error, last_kind = "No slot_id returned from API", ErrorKind.PERMANENT
                logger.info("Candidate %s rejected: %s", candidate.datetime, last_error)
                continue

            reserved = ReservedSlot(
                slot_id=normalize_slot_id(slot_id),
                datetime=candidate.datetime,
                calendar_id=candidate.calendar_id,
            )
            return Result.ok(reserved, f"Slot {reserved.slot_id} reserved", SlotState.RESERVED)

        if len(candidates) > 1:
            last_error = f"All {len(candidates)} candidate times failed. Last error: {last_error}"
        return Result.fail(last_error, kind=last_kind, state=SlotState.FAILED)

    # ── Confirm ──────────────────────────────────────────────────────

    async def confirm(
        self,
        calendar_id: str,
        slot_id: SlotId,
        client: ClientIdentity,
        patient: PatientIdentity,
        *,
        appointment_type: str | None = None,
        reason: str | None = None,
        note: str | None = None,
    ) -> Result[ConfirmedAppointment]:
        """Attach client and patient identity to a reserved slot.

        Raises:
            InputValidationError: neither *appointment_type* nor *reason* given.
        """
        resolved_type = require_appointment_type(appointment_type, reason)
        slot_id = normalize_slot_id(slot_id)

        try:
            response = await self._client.post(
                f"/calendars/{calendar_id}/confirm",
                {
                    "client_first": client.first_name,
                    "client_last": client.last_name,
                    "email_address": client.email,
                    "phone_number": client.phone,
                    "patient_name": patient.name,
                    "appointment_type": resolved_type,
                    "reason": reason,
                    "appointment_note": note,
                    "client_id": client.client_id,
                    "patient_id": patient.patient_id,
                },
                params={"slot_id": slot_id},
            )
        except RequestFailedError as exc:
            return Result.fail(str(exc), kind=exc.kind, state=SlotState.RESERVED)

        if is_petbooqz_error(response):
            return Result.fail(petbooqz_error_message(response), state=SlotState.RESERVED)

        body = first_item(response)
        body = body if isinstance(body, dict) else {}
        appointment = ConfirmedAppointment(
            slot_id=slot_id,
            client_id=_optional_id(body.get("clientid", body.get("client_id"))),
            patient_id=_optional_id(body.get("patientid", body.get("patient_id"))),
        )
        return Result.ok(appointment, "Slot confirmed", SlotState.CONFIRMED)

    # ── Book ─────────────────────────────────────────────────────────

    async def book(
        self,
        calendar_id: str,
        datetimes: str | Sequence[str],
        duration_minutes: int,
        client: ClientIdentity,
        patient: PatientIdentity,
        *,
        appointment_type: str | None = None,
        reason: str | None = None,
        note: str | None = None,
    ) -> Result[ConfirmedAppointment]:
        """Reserve then confirm on the same calendar and slot.

        If confirmation fails the slot stays reserved unless the coordinator
        was built with ``auto_release_on_confirm_failure=True``.
        """
        require_appointment_type(appointment_type, reason)

        reserved = await self.reserve(calendar_id, datetimes, duration_minutes, note)
        if not reserved.success:
            return Result.fail(reserved.error, kind=reserved.kind, state=SlotState.FAILED)

        return await self.confirm_reserved(
            reserved.data,
            client,
            patient,
            appointment_type=appointment_type,
            reason=reason,
            note=note,
        )

    async def confirm_reserved(
        self,
        slot: ReservedSlot,
        client: ClientIdentity,
        patient: PatientIdentity,
        *,
        appointment_type: str | None = None,
        reason: str | None = None,
        note: str | None = None,
    ) -> Result[ConfirmedAppointment]:
        confirmed = await self.confirm(
            slot.calendar_id,
            slot.slot_id,
            client,
            patient,
            appointment_type=appointment_type,
            reason=reason,
            note=note,
        )
        if confirmed.success:
            return Result.ok(confirmed.data, "Appointment booked and confirmed", SlotState.CONFIRMED)

        error = f"Slot {slot.slot_id} was reserved but confirmation failed: {confirmed.error}"
        if not self._auto_release:
            return Result.fail(
                f"{error}. The slot remains reserved.",
                kind=confirmed.kind,
                state=SlotState.RESERVED,
            )

        released = await self.release(slot.calendar_id, slot.slot_id)
        if released.success:
            return Result.fail(
                f"{error}. The slot was released.", kind=confirmed.kind, state=SlotState.RELEASED,
            )
        return Result.fail(
            f"{error}. Releasing the slot also failed: {released.error}",
            kind=confirmed.kind,
            state=SlotState.RESERVED,
        )

    # ── Release / cancel / get ───────────────────────────────────────

    async def get(self, calendar_id: str, slot_id: SlotId) -> Result[dict[str, Any]]:
        slot_id = normalize_slot_id(slot_id)
        try:
            response = await self._client.get(
                f"/calendars/{calendar_id}/check", params={"slot_id": slot_id},
            )
        except RequestFailedError as exc:
            return Result.fail(str(exc), kind=exc.kind)

        if is_petbooqz_error(response):
            return Result.fail(petbooqz_error_message(response))

        slot = first_item(response)
        return Result.ok(slot if isinstance(slot, dict) else {}, f"Slot {slot_id} retrieved")

    async def release(self, calendar_id: str, slot_id: SlotId) -> Result[dict[str, Any]]:
        """Abandon an unconfirmed reservation.

        The slot is checked first; if the check fails the release is not
        attempted.
        """
        slot_id = normalize_slot_id(slot_id)
        check = await self.get(calendar_id, slot_id)
        if not check.success:
            logger.info("Not releasing slot %s: check failed (%s)", slot_id, check.error)
            return Result.fail(check.error, kind=check.kind, state=SlotState.RESERVED)

        try:
            response = await self._client.delete(
                f"/calendars/{calendar_id}/release", params={"slot_id": slot_id},
            )
        except RequestFailedError as exc:
            return Result.fail(str(exc), kind=exc.kind, state=SlotState.RESERVED)

        if is_petbooqz_error(response):
            return Result.fail(petbooqz_error_message(response), state=SlotState.RESERVED)

        return Result.ok({}, "Slot released", SlotState.RELEASED)

    async def cancel(self, calendar_id: str, slot_id: SlotId) -> Result[dict[str, Any]]:
        """Cancel a confirmed appointment; any 2xx response counts as success."""
        slot_id = normalize_slot_id(slot_id)
        try:
            response = await self._client.delete(
                f"/calendars/{calendar_id}/cancel", params={"slot_id": slot_id},
            )
        except RequestFailedError as exc:
            return Result.fail(str(exc), kind=exc.kind)

        body = first_item(response)
        data: dict[str, Any] = {}
        if isinstance(body, dict):
            if body.get("messagecode") is not None:
                data["messagecode"] = str(body["messagecode"])
            if body.get("message") is not None:
                data["message"] = str(body["message"])
        return Result.ok(data, data.get("message", "Slot cancelled"), SlotState.CANCELLED)


def require_appointment_type(appointment_type: str | None, reason: str | None) -> str:
    resolved = appointment_type or reason
    if not resolved:
        raise InputValidationError("Either appointment_type or reason is required")
    return resolved
