"""Inbound webhook verification.

Two schemes are supported:

* **Meta**: ``X-Hub-Signature-256: sha256=<hex>``, an HMAC-SHA256 of the raw
  request body keyed with the app secret.
* **Twilio**: ``X-Twilio-Signature``, an HMAC-SHA1 over the full callback URL
  plus the sorted form parameters (validated with the Twilio SDK's
  :class:`~twilio.request_validator.RequestValidator`).

Both compare in constant time and run before the payload is parsed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Mapping
from urllib.parse import urlsplit, urlunsplit

from twilio.request_validator import RequestValidator

from integration_apps.errors import SignatureInvalidError

logger = logging.getLogger(__name__)

META_SIGNATURE_HEADER = "X-Hub-Signature-256"
TWILIO_SIGNATURE_HEADER = "X-Twilio-Signature"


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_meta_signature(raw_body: bytes, signature: str | None, app_secret: str) -> None:
    """Check a Meta webhook signature over the exact raw body.

    Raises:
        SignatureInvalidError: 401 when the header is missing, 403 on mismatch.
    """
    if not signature:
        raise SignatureInvalidError("Missing webhook signature", status_code=401)

    received = signature.removeprefix("sha256=")
    expected = compute_hmac_sha256(app_secret, raw_body)
    if not constant_time_compare(expected, received):
        logger.warning("Meta webhook signature mismatch (body %d bytes)", len(raw_body))
        raise SignatureInvalidError("Invalid webhook signature", status_code=403)


def public_url(url: str, public_host: str | None) -> str:
    """Swap the host of *url* for *public_host* (e.g. a dev tunnel hostname).

    Twilio signs the URL it called, which differs from the one we see when
    requests arrive through a tunnel or proxy.
    """
    if not public_host:
        return url
    parts = urlsplit(url)
    host = public_host.removeprefix("https://").removeprefix("http://").rstrip("/")
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def verify_twilio_signature(
    auth_token: str,
    signature: str | None,
    url: str,
    params: Mapping[str, str],
) -> None:
    """Validate a Twilio request signature.

    For GET callbacks pass the full URL (query string included) and empty
    *params*; for POST pass the URL and the decoded form body.

    Raises:
        SignatureInvalidError: 401 when the header is missing, 403 on mismatch.
    """
    if not signature:
        raise SignatureInvalidError("Missing Twilio signature", status_code=401)

    validator = RequestValidator(auth_token)
    if not validator.validate(url, dict(params), signature):
        logger.warning(
            "Invalid Twilio signature for %s (%d params)", url.split("?")[0], len(params),
        )
        raise SignatureInvalidError("Invalid Twilio signature", status_code=403)


def verify_challenge(query: Mapping[str, str], verify_token: str | None) -> str | None:
    """Return ``hub.challenge`` for a valid subscription handshake, else ``None``."""
    mode = query.get("hub.mode")
    token = query.get("hub.verify_token")
    if mode == "subscribe" and verify_token and constant_time_compare(token or "", verify_token):
        return query.get("hub.challenge") or ""
    return None
