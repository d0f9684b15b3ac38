"""HTTP client for the Petbooqz practice-management External API.

Every URL has the shape ``{root}/petbooqz/ExternalAPI/{version}/{endpoint}``.
The version segment depends on the endpoint family (see
:func:`petbooqz_api_version`) and can be overridden per call.

Authentication is HTTP Basic plus two optional vendor headers, ``APIKEY`` and
``CLIENT_PRACTICE``.  Petbooqz frequently reports failures inside a 200
response (``{"error_description": ...}`` or ``{"messagecode": "Error"}``);
those are returned as-is and recognised with :func:`is_petbooqz_error`, so
that callers can treat them as ordinary results rather than exceptions.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from integration_apps.config import env_value
from integration_apps.services.http_client import VendorHTTPClient

logger = logging.getLogger(__name__)

ApiVersion = Literal["Skedyul/v1", "Vetstoria/v1", "Vetstoria/v2"]

API_PREFIX = "petbooqz/ExternalAPI"

# Endpoint families served by the Skedyul/v1 API; everything else (calendars,
# slots, appointment types) lives under Vetstoria/v1.
_SKEDYUL_PREFIXES = (
    "/newHistory",
    "/histories/",
    "/clients/",
    "/patients/",
    "/asap",
)


def petbooqz_api_version(endpoint: str) -> ApiVersion:
    """Return the API version segment for *endpoint*."""
    path = endpoint.split("?", 1)[0]
    if not path.startswith("/"):
        path = f"/{path}"
    if path.startswith(_SKEDYUL_PREFIXES):
        return "Skedyul/v1"
    return "Vetstoria/v1"


@dataclass(frozen=True)
class PetbooqzCredentials:
    root_url: str
    username: str
    password: str
    api_key: str | None = None
    client_practice: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str | None]) -> PetbooqzCredentials:
        """Build credentials from an installation env mapping.

        Raises:
            ConfigurationError: if the base URL, username or password is missing.
        """
        return cls(
            root_url=env_value(env, "PETBOOQZ_BASE_URL"),
            username=env_value(env, "PETBOOQZ_USERNAME"),
            password=env_value(env, "PETBOOQZ_PASSWORD"),
            api_key=env_value(env, "PETBOOQZ_API_KEY", required=False),
            client_practice=env_value(env, "PETBOOQZ_CLIENT_PRACTICE", required=False),
        )

    def basic_auth_header(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode("ascii")
        return f"Basic {token}"


def is_petbooqz_error(payload: Any) -> bool:
    """Return True if *payload* is a Petbooqz error envelope."""
    return isinstance(payload, dict) and (
        "error_description" in payload or payload.get("messagecode") == "Error"
    )


def petbooqz_error_message(payload: dict[str, Any]) -> str:
    return payload.get("error_description") or payload.get("message") or "Unknown error"


def first_item(payload: Any) -> Any:
    """Collapse the "bare object or single-element array" response shape."""
    if isinstance(payload, list):
        return payload[0] if payload else None
    return payload


class PetbooqzClient(VendorHTTPClient):
    """Async Petbooqz API client bound to one installation's credentials."""

    vendor = "petbooqz"

    def __init__(
        self,
        credentials: PetbooqzCredentials,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {
            "Content-Type": "application/json",
            "Authorization": credentials.basic_auth_header(),
        }
        if credentials.api_key:
            headers["APIKEY"] = credentials.api_key
        if credentials.client_practice:
            headers["CLIENT_PRACTICE"] = credentials.client_practice

        super().__init__(credentials.root_url, headers=headers, transport=transport)

    @classmethod
    def from_env(cls, env: Mapping[str, str | None]) -> PetbooqzClient:
        return cls(PetbooqzCredentials.from_env(env))

    def build_path(self, endpoint: str, api_version: ApiVersion | None = None) -> str:
        version = api_version or petbooqz_api_version(endpoint)
        return f"/{API_PREFIX}/{version}/{endpoint.lstrip('/')}"

    def _failure_message(self, status_code: int, reason: str, text: str) -> str:
        return f"API request failed: {status_code} {reason}" + (f" - {text}" if text else "")

    # ── Verbs ────────────────────────────────────────────────────────

    async def get(
        self,
        endpoint: str,
        params: dict[str, str] | None = None,
        api_version: ApiVersion | None = None,
    ) -> Any:
        return await self._request("GET", self.build_path(endpoint, api_version), params=params)

    async def post(
        self,
        endpoint: str,
        data: Any = None,
        params: dict[str, str] | None = None,
        api_version: ApiVersion | None = None,
    ) -> Any:
        return await self._request(
            "POST", self.build_path(endpoint, api_version), params=params, json_body=data,
        )

    async def delete(
        self,
        endpoint: str,
        params: dict[str, str] | None = None,
        api_version: ApiVersion | None = None,
    ) -> Any:
        return await self._request("DELETE", self.build_path(endpoint, api_version), params=params)
