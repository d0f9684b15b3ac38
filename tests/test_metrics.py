"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import PETBOOQZ_ENV, make_response

from integration_apps.errors import RequestFailedError
from integration_apps.services.metrics import NAMESPACE, MetricsClient
from integration_apps.services.petbooqz_client import PetbooqzClient


def _make_client(*, enabled: bool = False) -> MetricsClient:
    with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
        return MetricsClient()


def _dims(metric: dict) -> dict[str, str]:
    return {d["Name"]: d["Value"] for d in metric["Dimensions"]}


class TestMetricsRecording:
    def test_record_success_appends_count_and_latency(self):
        client = _make_client()
        client.record_success("petbooqz", "GET /calendars", latency_ms=123.4)
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"VendorAPI/RequestCount", "VendorAPI/Latency"}

    def test_record_failure_without_latency(self):
        client = _make_client()
        client.record_failure("meta", "GET /me/accounts", error_kind="auth_invalid")
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"VendorAPI/RequestCount", "VendorAPI/ErrorCount"}

    def test_record_failure_with_latency(self):
        client = _make_client()
        client.record_failure("twilio", "POST /Messages.json", error_kind="transient", latency_ms=500.0)
        assert len(client._buffer) == 3

    def test_failure_dimensions_include_error_kind(self):
        client = _make_client()
        client.record_failure("meta", "GET /me/accounts", error_kind="auth_invalid")
        error_metric = next(m for m in client._buffer if m["MetricName"] == "VendorAPI/ErrorCount")
        assert _dims(error_metric) == {"Vendor": "meta", "ErrorKind": "auth_invalid"}

    def test_success_dimensions_include_vendor_and_status(self):
        client = _make_client()
        client.record_success("petbooqz", "GET /calendars", latency_ms=50.0)
        count_metric = next(m for m in client._buffer if m["MetricName"] == "VendorAPI/RequestCount")
        assert _dims(count_metric) == {"Vendor": "petbooqz", "Status": "success"}


class TestMetricsFlush:
    def test_flush_when_disabled_clears_buffer_without_sending(self):
        client = _make_client()
        client.record_success("petbooqz", "GET /calendars", latency_ms=100.0)
        assert client.flush() == 0
        assert client._buffer == []

    def test_flush_when_enabled_calls_put_metric_data(self):
        client = _make_client(enabled=True)
        mock_cw = MagicMock()
        client._cw_client = mock_cw

        client.record_success("petbooqz", "GET /calendars", latency_ms=100.0)
        sent = client.flush()

        assert sent == 2
        call_args = mock_cw.put_metric_data.call_args
        assert call_args.kwargs["Namespace"] == NAMESPACE
        assert len(call_args.kwargs["MetricData"]) == 2

    def test_flush_empty_buffer_returns_zero(self):
        assert _make_client(enabled=True).flush() == 0


class TestVendorCallsAreRecorded:
    @pytest.mark.asyncio
    async def test_success_and_failure_recorded_per_call(self):
        client = PetbooqzClient.from_env(PETBOOQZ_ENV)
        mock = AsyncMock(side_effect=[make_response(200, []), make_response(503, text="busy")])
        with (
            patch.object(client._client, "request", mock),
            patch("integration_apps.services.http_client.metrics") as recorder,
        ):
            await client.get("/calendars")
            with pytest.raises(RequestFailedError):
                await client.get("/calendars")

        recorder.record_success.assert_called_once()
        assert recorder.record_success.call_args.args[:2] == (
            "petbooqz", "GET /petbooqz/ExternalAPI/Vetstoria/v1/calendars",
        )
        recorder.record_failure.assert_called_once()
        assert recorder.record_failure.call_args.args[2] == "transient"
