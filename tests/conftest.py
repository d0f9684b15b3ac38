"""Shared test fixtures for the integration apps test suite."""

from __future__ import annotations

import itertools
import os
from typing import Any

import httpx
import pytest

PETBOOQZ_ENV = {
    "PETBOOQZ_BASE_URL": "https://practice.example.com",
    "PETBOOQZ_USERNAME": "vet-user",
    "PETBOOQZ_PASSWORD": "vet-pass",
    "PETBOOQZ_API_KEY": "api-key-1",
    "PETBOOQZ_CLIENT_PRACTICE": "practice-7",
}

META_ENV = {
    "META_APP_ID": "app-123",
    "META_APP_SECRET": "meta-app-secret",
    "META_ACCESS_TOKEN": "meta-user-token",
    "META_WEBHOOK_VERIFY_TOKEN": "verify-me",
}

TWILIO_ENV = {
    "TWILIO_ACCOUNT_SID": "AC0000000000000000000000000000test",
    "TWILIO_AUTH_TOKEN": "twilio-auth-token",
}


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    Metrics stay disabled so no flush thread or boto3 client is started.
    """
    os.environ.setdefault("METRICS_ENABLED", "false")
    os.environ.pop("AWS_EXECUTION_ENV", None)


def make_response(
    status_code: int = 200,
    json: Any = None,
    *,
    text: str | None = None,
    method: str = "GET",
    url: str = "https://vendor.test/",
) -> httpx.Response:
    """Build a real ``httpx.Response`` bound to a request."""
    request = httpx.Request(method, url)
    if text is not None:
        return httpx.Response(status_code, text=text, request=request)
    if json is None:
        return httpx.Response(status_code, request=request)
    return httpx.Response(status_code, json=json, request=request)


class FakeHostPlatform:
    """In-memory stand-in for the host platform API.

    Records are stored per model; ``list_records`` matches filters by
    equality on every given key.  Every call is appended to ``calls``.
    """

    def __init__(self) -> None:
        self.records: dict[str, list[dict[str, Any]]] = {}
        self.channels: list[dict[str, Any]] = []
        self.received: list[tuple[str, Any]] = []
        self.webhooks: list[tuple[str, dict[str, Any]]] = []
        self.calls: list[str] = []
        self._ids = itertools.count(1)

    def add(self, model: str, **fields: Any) -> dict[str, Any]:
        record = {"id": fields.pop("id", f"{model}-{next(self._ids)}"), **fields}
        self.records.setdefault(model, []).append(record)
        return record

    def add_channel(self, **fields: Any) -> dict[str, Any]:
        channel = {"id": fields.pop("id", f"channel-{next(self._ids)}"), **fields}
        self.channels.append(channel)
        return channel

    @staticmethod
    def _matches(item: dict[str, Any], filter: dict[str, Any] | None) -> bool:
        return all(item.get(k) == v for k, v in (filter or {}).items())

    async def list_records(self, model, filter=None, limit=None):
        self.calls.append("list_records")
        found = [r for r in self.records.get(model, []) if self._matches(r, filter)]
        return found[:limit] if limit else found

    async def get_record(self, model, record_id):
        self.calls.append("get_record")
        return next((r for r in self.records.get(model, []) if r["id"] == record_id), None)

    async def create_record(self, model, data):
        self.calls.append("create_record")
        return self.add(model, **dict(data))

    async def update_record(self, model, record_id, data):
        self.calls.append("update_record")
        record = await self.get_record(model, record_id)
        record.update(data)
        return record

    async def list_channels(self, filter=None, limit=None):
        self.calls.append("list_channels")
        found = [c for c in self.channels if self._matches(c, filter)]
        return found[:limit] if limit else found

    async def create_channel(self, data):
        self.calls.append("create_channel")
        return self.add_channel(**dict(data))

    async def receive_message(self, channel_id, message):
        self.calls.append("receive_message")
        self.received.append((channel_id, message))
        return {"id": f"msg-{len(self.received)}"}

    async def create_webhook(self, name, registration=None):
        self.calls.append("create_webhook")
        self.webhooks.append((name, dict(registration or {})))
        return {"url": f"https://hooks.example.com/{name}"}


@pytest.fixture
def fake_host():
    return FakeHostPlatform()
