"""Twilio REST client (SMS, incoming phone numbers, regulatory bundles).

Requests use HTTP Basic auth with the account SID and auth token and send
form-encoded bodies, as the Twilio REST API expects.  Error code ``20003``
("authenticate") is treated as an invalid-credential error alongside
401/403.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from integration_apps.config import TWILIO_API_BASE_URL, TWILIO_NUMBERS_BASE_URL, env_value
from integration_apps.errors import ErrorKind, VendorErrorEnvelope, classify_error
from integration_apps.services.http_client import VendorHTTPClient

logger = logging.getLogger(__name__)

TWILIO_AUTH_CODES = frozenset({20003})

# Twilio bundle status → compliance_record status
BUNDLE_STATUS_MAP: dict[str, str] = {
    "draft": "PENDING",
    "pending-review": "PENDING_REVIEW",
    "in-review": "PENDING_REVIEW",
    "twilio-approved": "APPROVED",
    "twilio-rejected": "REJECTED",
}


def map_bundle_status(status: str) -> str:
    """Map a Twilio bundle status to the internal one (unknown values pass through)."""
    return BUNDLE_STATUS_MAP.get(status, status)


@dataclass(frozen=True)
class TwilioCredentials:
    account_sid: str
    auth_token: str

    @classmethod
    def from_env(cls, env: Mapping[str, str | None]) -> TwilioCredentials:
        return cls(
            account_sid=env_value(env, "TWILIO_ACCOUNT_SID"),
            auth_token=env_value(env, "TWILIO_AUTH_TOKEN"),
        )


class TwilioClient(VendorHTTPClient):
    vendor = "twilio"

    def __init__(
        self,
        credentials: TwilioCredentials,
        *,
        base_url: str = TWILIO_API_BASE_URL,
        numbers_base_url: str = TWILIO_NUMBERS_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._account_sid = credentials.account_sid
        self._numbers_base_url = numbers_base_url.rstrip("/")
        super().__init__(
            base_url,
            auth=(credentials.account_sid, credentials.auth_token),
            transport=transport,
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str | None]) -> TwilioClient:
        return cls(TwilioCredentials.from_env(env))

    def _error_kind(self, status_code: int, envelope: VendorErrorEnvelope | None) -> ErrorKind:
        return classify_error(status_code, envelope, auth_codes=TWILIO_AUTH_CODES)

    def _account_path(self, resource: str) -> str:
        return f"/Accounts/{self._account_sid}/{resource}"

    # ── Messaging ────────────────────────────────────────────────────

    async def send_sms(self, to: str, from_: str, body: str) -> dict[str, Any]:
        """Send an SMS and return ``{"status", "remote_id"}``.

        Twilio reports ``queued``/``accepted`` for most sends; only ``sent``
        or ``delivered`` count as sent.
        """
        message = await self._request(
            "POST",
            self._account_path("Messages.json"),
            form={"To": to, "From": from_, "Body": body},
        )
        status = "sent" if message.get("status") in ("sent", "delivered") else "queued"
        logger.info("SMS %s to %s: %s", message.get("sid"), to, message.get("status"))
        return {"status": status, "remote_id": message.get("sid")}

    # ── Incoming phone numbers ───────────────────────────────────────

    async def find_incoming_number(self, phone_number: str) -> dict[str, Any] | None:
        """Return the IncomingPhoneNumber resource for *phone_number*, if owned."""
        data = await self._request(
            "GET",
            self._account_path("IncomingPhoneNumbers.json"),
            params={"PhoneNumber": phone_number},
        )
        numbers = data.get("incoming_phone_numbers", []) if data else []
        return numbers[0] if numbers else None

    async def update_incoming_number(
        self,
        number_sid: str,
        *,
        voice_url: str | None = None,
        sms_url: str | None = None,
    ) -> dict[str, Any]:
        """Point a number's voice and/or SMS webhook somewhere (``""`` clears it)."""
        form: dict[str, str] = {}
        if voice_url is not None:
            form.update(VoiceUrl=voice_url, VoiceMethod="POST")
        if sms_url is not None:
            form.update(SmsUrl=sms_url, SmsMethod="POST")
        return await self._request(
            "POST",
            self._account_path(f"IncomingPhoneNumbers/{number_sid}.json"),
            form=form,
        )

    # ── Regulatory compliance ────────────────────────────────────────

    async def fetch_bundle(self, bundle_sid: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"{self._numbers_base_url}/RegulatoryCompliance/Bundles/{bundle_sid}",
        )
