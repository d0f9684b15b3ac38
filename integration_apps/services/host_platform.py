"""Client for the host platform's core API.

The integration apps never own storage.  Connection state, phone records and
compliance records live in host-managed *instances* (records of a named
model); inbound messages are handed to the host's communication-channel API,
which owns deduplication and delivery.

:class:`HostPlatform` is the interface handlers depend on, so tests can swap
in an in-memory fake; :class:`HostPlatformClient` is the HTTP implementation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

import httpx

from integration_apps.config import HOST_API_BASE_URL, HOST_API_TOKEN_KEY, env_value
from integration_apps.services.http_client import VendorHTTPClient
from integration_apps.webhooks.models import InboundMessage

logger = logging.getLogger(__name__)


class HostPlatform(Protocol):
    async def list_records(
        self, model: str, filter: Mapping[str, Any] | None = None, limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def get_record(self, model: str, record_id: str) -> dict[str, Any] | None: ...

    async def create_record(self, model: str, data: Mapping[str, Any]) -> dict[str, Any]: ...

    async def update_record(
        self, model: str, record_id: str, data: Mapping[str, Any],
    ) -> dict[str, Any]: ...

    async def list_channels(
        self, filter: Mapping[str, Any] | None = None, limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def create_channel(self, data: Mapping[str, Any]) -> dict[str, Any]: ...

    async def receive_message(self, channel_id: str, message: InboundMessage) -> dict[str, Any]: ...

    async def create_webhook(
        self, name: str, registration: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]: ...


class HostPlatformClient(VendorHTTPClient):
    """HTTP implementation of :class:`HostPlatform`, scoped to one installation."""

    vendor = "host"

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = HOST_API_BASE_URL,
        app_installation_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }
        if app_installation_id:
            headers["X-App-Installation-Id"] = app_installation_id
        super().__init__(base_url, headers=headers, transport=transport)

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str | None],
        app_installation_id: str | None = None,
    ) -> HostPlatformClient:
        return cls(
            env_value(env, HOST_API_TOKEN_KEY),
            base_url=env.get("HOST_API_BASE_URL") or HOST_API_BASE_URL,
            app_installation_id=app_installation_id,
        )

    # ── Instances ────────────────────────────────────────────────────

    async def list_records(
        self, model: str, filter: Mapping[str, Any] | None = None, limit: int | None = None,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"filter": dict(filter or {})}
        if limit is not None:
            body["limit"] = limit
        data = await self._request("POST", f"/instances/{model}/list", json_body=body)
        return data.get("data", []) if data else []

    async def get_record(self, model: str, record_id: str) -> dict[str, Any] | None:
        data = await self._request("GET", f"/instances/{model}/{record_id}")
        return data or None

    async def create_record(self, model: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/instances/{model}", json_body=dict(data))

    async def update_record(
        self, model: str, record_id: str, data: Mapping[str, Any],
    ) -> dict[str, Any]:
        return await self._request(
            "PATCH", f"/instances/{model}/{record_id}", json_body=dict(data),
        )

    # ── Communication channels ───────────────────────────────────────

    async def list_channels(
        self, filter: Mapping[str, Any] | None = None, limit: int | None = None,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"filter": dict(filter or {})}
        if limit is not None:
            body["limit"] = limit
        data = await self._request("POST", "/communication-channels/list", json_body=body)
        return data.get("data", []) if data else []

    async def create_channel(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/communication-channels", json_body=dict(data))

    async def receive_message(self, channel_id: str, message: InboundMessage) -> dict[str, Any]:
        """Hand an inbound message to the host, which deduplicates by remote id."""
        return await self._request(
            "POST",
            f"/communication-channels/{channel_id}/receive",
            json_body={
                "from": message.from_identifier,
                "contact": {"identifierValue": message.from_identifier},
                "message": {
                    "message": message.message_body,
                    "remoteId": message.external_id,
                },
                "remoteId": message.external_id,
                "timestamp": message.timestamp,
            },
        )

    # ── Webhooks ─────────────────────────────────────────────────────

    async def create_webhook(
        self, name: str, registration: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Register (or fetch) a per-installation callback URL for webhook *name*."""
        return await self._request(
            "POST",
            "/webhooks",
            json_body={"name": name, "context": dict(registration or {})},
        )


class LazyHostPlatform:
    """:class:`HostPlatform` that builds its :class:`HostPlatformClient` on first use.

    Webhook handlers that reject a request, or answer a handshake, never touch
    the host, so a missing ``HOST_API_TOKEN`` only surfaces (as
    ``ConfigurationError``) once a handler actually needs it.
    """

    def __init__(self, env: Mapping[str, str | None], app_installation_id: str | None = None):
        self._env = env
        self._app_installation_id = app_installation_id
        self._client: HostPlatformClient | None = None

    def _host(self) -> HostPlatformClient:
        if self._client is None:
            self._client = HostPlatformClient.from_env(self._env, self._app_installation_id)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def list_records(
        self, model: str, filter: Mapping[str, Any] | None = None, limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return await self._host().list_records(model, filter, limit)

    async def get_record(self, model: str, record_id: str) -> dict[str, Any] | None:
        return await self._host().get_record(model, record_id)

    async def create_record(self, model: str, data: Mapping[str, Any]) -> dict[str, Any]:
        return await self._host().create_record(model, data)

    async def update_record(
        self, model: str, record_id: str, data: Mapping[str, Any],
    ) -> dict[str, Any]:
        return await self._host().update_record(model, record_id, data)

    async def list_channels(
        self, filter: Mapping[str, Any] | None = None, limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return await self._host().list_channels(filter, limit)

    async def create_channel(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return await self._host().create_channel(data)

    async def receive_message(self, channel_id: str, message: InboundMessage) -> dict[str, Any]:
        return await self._host().receive_message(channel_id, message)

    async def create_webhook(
        self, name: str, registration: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await self._host().create_webhook(name, registration)
