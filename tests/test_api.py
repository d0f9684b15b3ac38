"""Tests for the FastAPI endpoints."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from conftest import META_ENV, PETBOOQZ_ENV, make_response
from fastapi.testclient import TestClient

from integration_apps.server import app
from integration_apps.webhooks.signatures import compute_hmac_sha256


@pytest.fixture
def client():
    """Test client with provision env attached the way the lifespan does it."""
    app.state.provision_env = {**META_ENV, "HOST_API_TOKEN": "host-token"}
    yield TestClient(app)
    app.state.provision_env = {}


def _vendor(*responses):
    return patch("httpx.AsyncClient.request", new_callable=AsyncMock, side_effect=list(responses))


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "integration-apps"}

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_root_lists_apps(self, client):
        assert client.get("/").json()["apps"] == ["meta", "petbooqz", "phone"]


class TestToolEndpoint:
    def test_runs_tool_with_call_env(self, client):
        with _vendor(make_response(200, [{"column": "1", "name": "Dr Smith"}])):
            response = client.post(
                "/api/apps/petbooqz/tools/calendars_list", json={"inputs": {}, "env": PETBOOQZ_ENV},
            )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"] == {"calendars": [{"column": "1", "name": "Dr Smith"}]}

    def test_vendor_failure_is_200_with_success_false(self, client):
        with _vendor(make_response(500, text="down")):
            response = client.post("/api/apps/petbooqz/tools/calendars_list", json={"env": PETBOOQZ_ENV})
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_auth_invalid_maps_to_401(self, client):
        with _vendor(make_response(401, text="denied")):
            response = client.post("/api/apps/petbooqz/tools/calendars_list", json={"env": PETBOOQZ_ENV})
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_INVALID"

    def test_invalid_inputs_map_to_422(self, client):
        response = client.post(
            "/api/apps/petbooqz/tools/clients_get", json={"inputs": {}, "env": PETBOOQZ_ENV},
        )
        assert response.status_code == 422

    def test_precondition_failure_maps_to_422(self, client):
        inputs = {
            "calendar_id": "cal-1",
            "slot_id": "1",
            "client_first": "Jane",
            "client_last": "Doe",
            "email_address": "jane@example.com",
            "phone_number": "+15555555555",
            "patient_name": "Fluffy",
        }
        with _vendor() as mock:
            response = client.post(
                "/api/apps/petbooqz/tools/calendar_slots_confirm", json={"inputs": inputs, "env": PETBOOQZ_ENV},
            )
        assert response.status_code == 422
        assert mock.call_count == 0

    def test_unknown_tool_is_404(self, client):
        response = client.post("/api/apps/petbooqz/tools/teleport", json={})
        assert response.status_code == 404

    def test_missing_credentials_is_400(self, client):
        response = client.post("/api/apps/petbooqz/tools/calendars_list", json={"env": {}})
        assert response.status_code == 400
        assert "PETBOOQZ_BASE_URL" in response.json()["error"]


class TestWebhookEndpoint:
    def test_whatsapp_challenge(self, client):
        response = client.get(
            "/api/apps/meta/webhooks/receive_whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "4242"},
        )
        assert response.status_code == 200
        assert response.text == "4242"

    def test_whatsapp_post_forwards_raw_body(self, client):
        raw = json.dumps({"object": "page", "entry": []}).encode()
        signature = compute_hmac_sha256(META_ENV["META_APP_SECRET"], raw)
        response = client.post(
            "/api/apps/meta/webhooks/receive_whatsapp",
            content=raw,
            headers={"X-Hub-Signature-256": f"sha256={signature}", "Content-Type": "application/json"},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_whatsapp_bad_signature(self, client):
        response = client.post(
            "/api/apps/meta/webhooks/receive_whatsapp",
            content=b'{"object": "whatsapp_business_account"}',
            headers={"X-Hub-Signature-256": "sha256=deadbeef"},
        )
        assert response.status_code == 403

    def test_method_not_allowed(self, client):
        response = client.get("/api/apps/phone/webhooks/receive_sms")
        assert response.status_code == 405

    def test_unknown_webhook_is_404(self, client):
        response = client.post("/api/apps/phone/webhooks/receive_fax")
        assert response.status_code == 404

    def test_malformed_context_header_is_400(self, client):
        response = client.post(
            "/api/apps/phone/webhooks/compliance_status",
            headers={"X-Webhook-Context": "{not json"},
        )
        assert response.status_code == 400


class TestWebhookWithoutHostToken:
    @pytest.fixture
    def client(self):
        app.state.provision_env = dict(META_ENV)
        yield TestClient(app)
        app.state.provision_env = {}

    def test_handshake_still_answers(self, client):
        response = client.get(
            "/api/apps/meta/webhooks/receive_whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "4242"},
        )
        assert response.status_code == 200
        assert response.text == "4242"

    def test_bad_signature_still_rejected(self, client):
        response = client.post(
            "/api/apps/meta/webhooks/receive_whatsapp",
            content=b'{"object": "whatsapp_business_account"}',
            headers={"X-Hub-Signature-256": "sha256=deadbeef"},
        )
        assert response.status_code == 403

    def test_message_needing_host_is_500(self, client):
        payload = {
            "object": "whatsapp_business_account",
            "entry": [{"changes": [{"value": {
                "messaging_product": "whatsapp",
                "metadata": {"display_phone_number": "15550100000"},
                "messages": [{"from": "15551112222", "id": "wamid.1", "text": {"body": "Hi"}}],
            }}]}],
        }
        raw = json.dumps(payload).encode()
        signature = compute_hmac_sha256(META_ENV["META_APP_SECRET"], raw)
        response = client.post(
            "/api/apps/meta/webhooks/receive_whatsapp",
            content=raw,
            headers={"X-Hub-Signature-256": f"sha256={signature}", "Content-Type": "application/json"},
        )
        assert response.status_code == 500
