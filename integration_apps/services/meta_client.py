"""Client for the Meta Graph API.

Covers:
- OAuth token exchange (code → short-lived → long-lived token)
- WhatsApp Business Account (WABA) and phone number lookups
- Facebook Pages and their linked Instagram business accounts
- Sending WhatsApp text messages

The access token travels as the ``access_token`` query parameter.  Token
errors (codes 190 and 102, or an ``OAuthException`` with code 10) are raised
as :class:`~integration_apps.errors.AuthInvalidError` whatever the HTTP status,
because Graph sometimes returns them inside a 200 envelope.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from integration_apps.config import GRAPH_API_BASE_URL, GRAPH_API_VERSION, env_value
from integration_apps.errors import (
    AuthInvalidError,
    ConfigurationError,
    ErrorKind,
    RequestFailedError,
    VendorErrorEnvelope,
    classify_error,
    raise_for_kind,
)
from integration_apps.services.http_client import VendorHTTPClient

logger = logging.getLogger(__name__)

META_AUTH_CODES = frozenset({190, 102})
META_AUTH_TYPE_CODES = frozenset({("OAuthException", 10)})

_INSTAGRAM_FIELDS = "instagram_business_account{id,username,name,profile_picture_url}"


def is_token_invalid_error(status_code: int | None, envelope: VendorErrorEnvelope | None) -> bool:
    return (
        classify_error(
            status_code,
            envelope,
            auth_codes=META_AUTH_CODES,
            auth_type_codes=META_AUTH_TYPE_CODES,
        )
        is ErrorKind.AUTH_INVALID
    )


@dataclass(frozen=True)
class MetaCredentials:
    app_id: str
    app_secret: str
    graph_api_version: str = GRAPH_API_VERSION
    access_token: str | None = None

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str | None],
        *,
        require_token: bool = True,
    ) -> MetaCredentials:
        """Build credentials from a call env.

        ``META_ACCESS_TOKEN`` is per-installation (from OAuth); the app id and
        secret are provision-level and merged into the env by the server.
        """
        access_token = env_value(env, "META_ACCESS_TOKEN", required=False)
        if require_token and not access_token:
            raise ConfigurationError(
                "META_ACCESS_TOKEN is not configured. Please complete the OAuth flow."
            )
        return cls(
            app_id=env_value(env, "META_APP_ID"),
            app_secret=env_value(env, "META_APP_SECRET"),
            graph_api_version=env.get("GRAPH_API_VERSION") or GRAPH_API_VERSION,
            access_token=access_token,
        )


class MetaClient(VendorHTTPClient):
    """Async wrapper around the Graph API endpoints used by the Meta app."""

    vendor = "meta"

    def __init__(
        self,
        credentials: MetaCredentials,
        *,
        base_url: str = GRAPH_API_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._credentials = credentials
        super().__init__(
            f"{base_url.rstrip('/')}/{credentials.graph_api_version}",
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str | None]) -> MetaClient:
        return cls(MetaCredentials.from_env(env))

    # ── Error hooks ──────────────────────────────────────────────────

    def _error_kind(self, status_code: int, envelope: VendorErrorEnvelope | None) -> ErrorKind:
        return classify_error(
            status_code,
            envelope,
            auth_codes=META_AUTH_CODES,
            auth_type_codes=META_AUTH_TYPE_CODES,
        )

    def _check_success_payload(self, status_code: int, payload: Any) -> None:
        envelope = VendorErrorEnvelope.from_payload(payload)
        if envelope is None or not isinstance(payload.get("error"), dict):
            return
        kind = self._error_kind(status_code, envelope)
        if kind is ErrorKind.AUTH_INVALID:
            raise AuthInvalidError(
                envelope.message or "Meta access token is invalid or expired",
                status_code=status_code,
            )
        raise_for_kind(
            kind,
            f"Meta API error: {envelope.message}",
            status_code=status_code,
            envelope=envelope,
        )

    def _token(self, access_token: str | None) -> str:
        token = access_token or self._credentials.access_token
        if not token:
            raise AuthInvalidError("Meta access token is missing. Please re-authorize the app.")
        return token

    # ── OAuth ────────────────────────────────────────────────────────

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> str:
        """Exchange an authorization code for a short-lived access token."""
        data = await self._request(
            "GET",
            "/oauth/access_token",
            params={
                "client_id": self._credentials.app_id,
                "client_secret": self._credentials.app_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )
        return data["access_token"]

    async def exchange_for_long_lived_token(self, short_lived_token: str) -> str:
        """Exchange a short-lived token for a long-lived one (60 days)."""
        data = await self._request(
            "GET",
            "/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self._credentials.app_id,
                "client_secret": self._credentials.app_secret,
                "fb_exchange_token": short_lived_token,
            },
        )
        return data["access_token"]

    # ── WhatsApp Business ────────────────────────────────────────────

    async def get_wabas(self, access_token: str | None = None) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            "/me/owned_whatsapp_business_accounts",
            params={"access_token": self._token(access_token)},
        )
        return data.get("data", []) if data else []

    async def get_phone_numbers(
        self, waba_id: str, access_token: str | None = None,
    ) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            f"/{waba_id}/phone_numbers",
            params={"access_token": self._token(access_token)},
        )
        return data.get("data", []) if data else []

    async def send_message(
        self,
        phone_number_id: str,
        to: str,
        message: str,
        access_token: str | None = None,
    ) -> dict[str, Any]:
        """Send a WhatsApp text message; returns the Graph send response."""
        return await self._request(
            "POST",
            f"/{phone_number_id}/messages",
            params={"access_token": self._token(access_token)},
            json_body={
                "messaging_product": "whatsapp",
                "to": to,
                "type": "text",
                "text": {"body": message},
            },
        )

    # ── Pages & Instagram ────────────────────────────────────────────

    async def get_pages(self, access_token: str | None = None) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            "/me/accounts",
            params={"access_token": self._token(access_token), "fields": "id,name,access_token"},
        )
        return data.get("data", []) if data else []

    async def get_instagram_accounts(
        self, access_token: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return the Instagram business accounts linked to the user's pages.

        Pages are looked up one by one.  A page whose lookup fails for any
        reason other than an invalid token is skipped; an invalid token
        aborts the whole lookup.
        """
        token = self._token(access_token)
        accounts: list[dict[str, Any]] = []

        for page in await self.get_pages(token):
            page_id = page.get("id")
            try:
                page_data = await self._request(
                    "GET",
                    f"/{page_id}",
                    params={"access_token": token, "fields": _INSTAGRAM_FIELDS},
                )
            except RequestFailedError as exc:
                # TODO: surface transient failures separately from "no linked account"
                # so callers can tell an outage from an empty result.
                logger.warning(
                    "Skipping page %s: Instagram lookup failed (%s, %s)",
                    page_id, exc.kind.value, exc,
                )
                continue

            ig = page_data.get("instagram_business_account") if page_data else None
            if not ig:
                continue
            accounts.append(
                {
                    "id": ig.get("id"),
                    "username": ig.get("username"),
                    "name": ig.get("name"),
                    "profile_picture_url": ig.get("profile_picture_url"),
                    "page_id": page_id,
                }
            )

        return accounts
