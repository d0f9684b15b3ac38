"""Error taxonomy shared by every integration app.

Vendors report failures in different shapes (an HTTP status, a JSON error
envelope, or both - sometimes inside a 200 response).  Everything funnels
through :func:`classify_error` so that callers only ever need to tell three
things apart:

* :class:`AuthInvalidError` - the vendor rejected our credentials.  The host
  platform must ask a human to re-authorise; retrying will not help.
* :class:`RequestFailedError` - any other non-success response.  Carries the
  HTTP status, the vendor message and an :class:`ErrorKind`.
* :class:`InputValidationError` - a precondition failed before any network
  call was made.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    AUTH_INVALID = "auth_invalid"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


_TRANSIENT_STATUSES = frozenset({408, 425, 429})


@dataclass(frozen=True)
class VendorErrorEnvelope:
    """Normalised error payload parsed from a vendor response."""

    message: str
    code: int | None = None
    subcode: int | None = None
    type: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> VendorErrorEnvelope | None:
        """Parse *payload* into an envelope, or ``None`` if it is not an error.

        Recognised shapes:

        * Meta Graph: ``{"error": {"code", "error_subcode", "type", "message"}}``
        * Petbooqz: ``{"error_description": ...}`` or ``{"messagecode": "Error", "message": ...}``
        * Twilio: ``{"code": 20003, "message": ..., "status": 401}``
        """
        if not isinstance(payload, dict):
            return None

        error = payload.get("error")
        if isinstance(error, dict):
            return cls(
                message=str(error.get("message") or "Unknown error"),
                code=_as_int(error.get("code")),
                subcode=_as_int(error.get("error_subcode")),
                type=error.get("type"),
            )

        if "error_description" in payload or payload.get("messagecode") == "Error":
            return cls(
                message=str(
                    payload.get("error_description")
                    or payload.get("message")
                    or "Unknown error"
                ),
            )

        if "code" in payload and "message" in payload and "more_info" in payload:
            return cls(message=str(payload["message"]), code=_as_int(payload["code"]))

        return None


def _as_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class IntegrationError(Exception):
    """Base class for every error raised by this package."""


class AuthInvalidError(IntegrationError):
    """The vendor rejected the configured credentials or access token."""

    kind = ErrorKind.AUTH_INVALID

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RequestFailedError(IntegrationError):
    """A vendor call failed for a reason other than authentication."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        envelope: VendorErrorEnvelope | None = None,
        kind: ErrorKind = ErrorKind.PERMANENT,
    ):
        self.status_code = status_code
        self.envelope = envelope
        self.kind = kind
        super().__init__(message)


class InputValidationError(IntegrationError):
    """Caller input failed a precondition; no vendor call was made."""


class SignatureInvalidError(IntegrationError):
    """An inbound webhook signature was missing or did not match."""

    def __init__(self, message: str, *, status_code: int = 403):
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(IntegrationError):
    """A required credential or setting is missing."""


def classify_error(
    status_code: int | None,
    envelope: VendorErrorEnvelope | None = None,
    *,
    auth_codes: frozenset[int] = frozenset(),
    auth_type_codes: frozenset[tuple[str, int]] = frozenset(),
) -> ErrorKind:
    """Decide the :class:`ErrorKind` of a failed vendor response.

    Args:
        status_code: HTTP status of the response (may be 2xx when the vendor
            embeds errors in a success envelope).
        envelope: Parsed vendor error payload, if any.
        auth_codes: Vendor error codes that always mean the token is invalid.
        auth_type_codes: ``(type, code)`` pairs that mean the same, e.g.
            ``("OAuthException", 10)`` for Meta.
    """
    if status_code in (401, 403):
        return ErrorKind.AUTH_INVALID

    if envelope is not None and envelope.code is not None:
        if envelope.code in auth_codes:
            return ErrorKind.AUTH_INVALID
        if envelope.type and (envelope.type, envelope.code) in auth_type_codes:
            return ErrorKind.AUTH_INVALID

    if status_code is not None and (status_code >= 500 or status_code in _TRANSIENT_STATUSES):
        return ErrorKind.TRANSIENT

    return ErrorKind.PERMANENT


def raise_for_kind(
    kind: ErrorKind,
    message: str,
    *,
    status_code: int | None = None,
    envelope: VendorErrorEnvelope | None = None,
) -> None:
    """Raise the exception matching *kind*."""
    if kind is ErrorKind.AUTH_INVALID:
        raise AuthInvalidError(message, status_code=status_code)
    raise RequestFailedError(
        message, status_code=status_code, envelope=envelope, kind=kind,
    )


class UnknownHandlerError(IntegrationError, LookupError):
    """No app, tool or webhook is registered under the requested name."""
