"""Tests for the slot reservation coordinator."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from conftest import PETBOOQZ_ENV, make_response

from integration_apps.booking.coordinator import (
    ClientIdentity,
    PatientIdentity,
    SlotReservationCoordinator,
    SlotState,
    normalize_slot_id,
)
from integration_apps.errors import AuthInvalidError, ErrorKind, InputValidationError
from integration_apps.services.petbooqz_client import PetbooqzClient

JANE = ClientIdentity(first_name="Jane", last_name="Doe", email="jane@example.com", phone="+15555555555")
FLUFFY = PatientIdentity(name="Fluffy")


@pytest.fixture
def client():
    return PetbooqzClient.from_env(PETBOOQZ_ENV)


def _coordinator(client, **kwargs) -> SlotReservationCoordinator:
    return SlotReservationCoordinator(client, **kwargs)


def _reserved_datetimes(mock: AsyncMock) -> list[str]:
    return [c.kwargs["json"]["datetime"] for c in mock.call_args_list if c.args[1].endswith("/reserve")]


class TestNormalizeSlotId:
    def test_numbers_become_strings(self):
        assert normalize_slot_id(123) == "123"
        assert normalize_slot_id("abc") == "abc"

    @pytest.mark.parametrize("bad", [None, "", True])
    def test_missing_slot_id_raises(self, bad):
        with pytest.raises(InputValidationError):
            normalize_slot_id(bad)


class TestReserve:
    @pytest.mark.asyncio
    async def test_array_response_is_normalised(self, client):
        mock = AsyncMock(return_value=make_response(200, [{"slot_id": 123}]))
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).reserve("cal-1", "2025-12-02T17:00:00", 30)

        assert result.success
        assert result.data.slot_id == "123"
        assert result.data.calendar_id == "cal-1"
        assert result.state is SlotState.RESERVED
        body = mock.call_args.kwargs["json"]
        assert body["datetime"] == "2025-12-02T17:00:00"
        assert body["duration"] == "30"
        assert mock.call_args.args[1] == "/petbooqz/ExternalAPI/Vetstoria/v1/calendars/cal-1/reserve"

    @pytest.mark.asyncio
    async def test_candidates_tried_in_order_until_one_succeeds(self, client):
        mock = AsyncMock(
            side_effect=[
                make_response(200, {"error_description": "Slot A taken"}),
                make_response(200, [{}]),
                make_response(200, [{"slot_id": "slot-c"}]),
            ]
        )
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).reserve("cal-1", ["A", "B", "C"], 30)

        assert result.success
        assert result.data.slot_id == "slot-c"
        assert result.data.datetime == "C"
        assert _reserved_datetimes(mock) == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_stops_at_first_success(self, client):
        mock = AsyncMock(
            side_effect=[
                make_response(409, text="conflict"),
                make_response(200, {"slot_id": 7}),
            ]
        )
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).reserve("cal-1", ["A", "B", "C"], 15)

        assert result.data.slot_id == "7"
        assert _reserved_datetimes(mock) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_all_candidates_failing_reports_last_error(self, client):
        mock = AsyncMock(
            side_effect=[
                make_response(200, {"error_description": "first"}),
                make_response(503, text="down"),
            ]
        )
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).reserve("cal-1", ["A", "B"], 15)

        assert not result.success
        assert result.state is SlotState.FAILED
        assert result.kind is ErrorKind.TRANSIENT
        assert result.error.startswith("All 2 candidate times failed. Last error:")
        assert "503" in result.error

    @pytest.mark.asyncio
    async def test_single_candidate_failure_keeps_vendor_message(self, client):
        mock = AsyncMock(return_value=make_response(200, {"error_description": "Slot unavailable"}))
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).reserve("cal-1", "A", 15)
        assert result.error == "Slot unavailable"

    @pytest.mark.asyncio
    async def test_empty_candidates_raise_without_request(self, client):
        mock = AsyncMock()
        with patch.object(client._client, "request", mock):
            with pytest.raises(InputValidationError):
                await _coordinator(client).reserve("cal-1", [], 15)
        assert mock.call_count == 0

    @pytest.mark.asyncio
    async def test_auth_failure_aborts_candidate_loop(self, client):
        mock = AsyncMock(return_value=make_response(401, text="denied"))
        with patch.object(client._client, "request", mock):
            with pytest.raises(AuthInvalidError):
                await _coordinator(client).reserve("cal-1", ["A", "B"], 15)
        assert mock.call_count == 1


class TestConfirm:
    @pytest.mark.asyncio
    async def test_requires_appointment_type_or_reason(self, client):
        mock = AsyncMock()
        with patch.object(client._client, "request", mock):
            with pytest.raises(InputValidationError):
                await _coordinator(client).confirm("cal-1", "123", JANE, FLUFFY)
        assert mock.call_count == 0

    @pytest.mark.asyncio
    async def test_reason_stands_in_for_appointment_type(self, client):
        mock = AsyncMock(return_value=make_response(200, {"clientid": 5, "patientid": 9}))
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).confirm("cal-1", 123, JANE, FLUFFY, reason="Vaccination")

        assert result.success
        assert result.data.client_id == "5"
        assert result.data.patient_id == "9"
        assert mock.call_args.kwargs["params"] == {"slot_id": "123"}
        body = mock.call_args.kwargs["json"]
        assert body["appointment_type"] == "Vaccination"
        assert body["client_first"] == "Jane"
        assert body["patient_name"] == "Fluffy"

    @pytest.mark.asyncio
    async def test_vendor_error_leaves_slot_reserved(self, client):
        mock = AsyncMock(return_value=make_response(200, {"messagecode": "Error", "message": "Client invalid"}))
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).confirm(
                "cal-1", "123", JANE, FLUFFY, appointment_type="CONSULTATION",
            )
        assert not result.success
        assert result.error == "Client invalid"
        assert result.state is SlotState.RESERVED


class TestBook:
    @pytest.mark.asyncio
    async def test_reserve_then_confirm(self, client):
        mock = AsyncMock(
            side_effect=[
                make_response(200, [{"slot_id": 123}]),
                make_response(200, {"client_id": "client-1", "patient_id": "patient-1"}),
            ]
        )
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).book(
                "cal-1", "2025-12-02T17:00:00", 30, JANE, FLUFFY, appointment_type="CONSULTATION",
            )

        assert result.success
        assert result.data.slot_id == "123"
        assert result.data.client_id == "client-1"
        assert result.data.patient_id == "patient-1"
        assert result.state is SlotState.CONFIRMED
        confirm_call = mock.call_args_list[1]
        assert confirm_call.args[1].endswith("/calendars/cal-1/confirm")
        assert confirm_call.kwargs["params"] == {"slot_id": "123"}

    @pytest.mark.asyncio
    async def test_validation_happens_before_reserve(self, client):
        mock = AsyncMock()
        with patch.object(client._client, "request", mock):
            with pytest.raises(InputValidationError):
                await _coordinator(client).book("cal-1", "A", 30, JANE, FLUFFY)
        assert mock.call_count == 0

    @pytest.mark.asyncio
    async def test_confirm_failure_keeps_reservation_by_default(self, client):
        mock = AsyncMock(
            side_effect=[
                make_response(200, [{"slot_id": 123}]),
                make_response(400, text="bad client"),
            ]
        )
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).book("cal-1", "A", 30, JANE, FLUFFY, reason="Checkup")

        assert not result.success
        assert result.state is SlotState.RESERVED
        assert result.error.startswith("Slot 123 was reserved but confirmation failed:")
        assert result.error.endswith("The slot remains reserved.")
        assert mock.call_count == 2

    @pytest.mark.asyncio
    async def test_confirm_failure_releases_when_configured(self, client):
        mock = AsyncMock(
            side_effect=[
                make_response(200, [{"slot_id": 123}]),
                make_response(400, text="bad client"),
                make_response(200, [{"slot_id": "123", "status": "reserved"}]),
                make_response(200, {"messagecode": "Success"}),
            ]
        )
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client, auto_release_on_confirm_failure=True).book(
                "cal-1", "A", 30, JANE, FLUFFY, reason="Checkup",
            )

        assert not result.success
        assert result.state is SlotState.RELEASED
        assert "The slot was released." in result.error
        assert mock.call_args_list[3].args[0] == "DELETE"
        assert mock.call_args_list[3].args[1].endswith("/calendars/cal-1/release")


class TestReleaseAndCancel:
    @pytest.mark.asyncio
    async def test_release_skips_delete_when_check_fails(self, client):
        mock = AsyncMock(return_value=make_response(200, {"error_description": "Slot not found"}))
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).release("cal-1", "slot-9")

        assert not result.success
        assert result.error == "Slot not found"
        assert mock.call_count == 1
        assert mock.call_args.args[0] == "GET"
        assert mock.call_args.args[1].endswith("/calendars/cal-1/check")

    @pytest.mark.asyncio
    async def test_release_after_successful_check(self, client):
        mock = AsyncMock(
            side_effect=[
                make_response(200, [{"slot_id": "slot-9"}]),
                make_response(204),
            ]
        )
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).release("cal-1", "slot-9")

        assert result.success
        assert result.state is SlotState.RELEASED
        assert [c.args[0] for c in mock.call_args_list] == ["GET", "DELETE"]

    @pytest.mark.asyncio
    async def test_cancel_issues_one_delete_and_accepts_any_2xx(self, client):
        mock = AsyncMock(return_value=make_response(200, text="whatever"))
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).cancel("cal-1", "slot-1")

        assert result.success
        assert result.state is SlotState.CANCELLED
        assert mock.call_count == 1
        method, path = mock.call_args.args
        assert method == "DELETE"
        assert path == "/petbooqz/ExternalAPI/Vetstoria/v1/calendars/cal-1/cancel"
        assert mock.call_args.kwargs["params"] == {"slot_id": "slot-1"}

    @pytest.mark.asyncio
    async def test_cancel_passes_vendor_message_through(self, client):
        mock = AsyncMock(return_value=make_response(200, {"messagecode": "Success", "message": "Cancelled"}))
        with patch.object(client._client, "request", mock):
            result = await _coordinator(client).cancel("cal-1", "slot-1")
        assert result.data == {"messagecode": "Success", "message": "Cancelled"}
        assert result.message == "Cancelled"
