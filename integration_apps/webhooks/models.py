"""Transport-neutral request/response types for webhook handlers."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl

if TYPE_CHECKING:
    from integration_apps.services.host_platform import HostPlatform


@dataclass(frozen=True)
class WebhookRequest:
    """One inbound vendor callback, with the body kept as raw bytes.

    Header lookups are case-insensitive.
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    raw_body: bytes = b""

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    def form(self) -> dict[str, str]:
        """Decode an ``application/x-www-form-urlencoded`` body."""
        return dict(parse_qsl(self.raw_body.decode("utf-8"), keep_blank_values=True))

    def json(self) -> Any:
        return json.loads(self.raw_body)


@dataclass(frozen=True)
class WebhookContext:
    """Everything a webhook handler may use besides the request itself."""

    env: Mapping[str, str | None]
    host: HostPlatform
    registration: Mapping[str, Any] = field(default_factory=dict)
    app_installation_id: str | None = None


@dataclass(frozen=True)
class WebhookResponse:
    status: int = 200
    body: Any = None
    media_type: str = "application/json"

    @classmethod
    def json(cls, body: Any, status: int = 200) -> WebhookResponse:
        return cls(status=status, body=body)

    @classmethod
    def error(cls, message: str, status: int) -> WebhookResponse:
        return cls(status=status, body={"error": message})

    @classmethod
    def xml(cls, body: str, status: int = 200) -> WebhookResponse:
        return cls(status=status, body=body, media_type="application/xml")

    @classmethod
    def text(cls, body: str, status: int = 200) -> WebhookResponse:
        return cls(status=status, body=body, media_type="text/plain")


@dataclass(frozen=True)
class InboundMessage:
    """A vendor message normalised for hand-off to the host platform.

    ``external_id`` is the vendor-assigned message id; the host platform uses
    it to deduplicate redelivered webhooks.
    """

    external_id: str | None
    from_identifier: str
    to_identifier: str
    message_body: str
    timestamp: str | None = None
